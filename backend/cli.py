"""
Records CLI.

Command-line interface for checking collections, inspecting records and
sending revalidation signals.
"""

import asyncio
import sys

import typer
from pydantic import BaseModel
from rich.console import Console
from rich.table import Table

from records_api import __version__
from records_api.services.crud import (
    CRUDOptions,
    QueryOptions,
    RedisRevalidationNotifier,
    SqlAlchemyRecordStorage,
    StaticIdentityProvider,
    create_crud_operations,
)
from records_api.services.crud.factory import resolve_config
from shared.config.logging import setup_logging
from shared.config.settings import settings
from shared.infrastructure.db import build_engine, get_engine
from shared.utils.exceptions import AppException

app = typer.Typer(
    name="records",
    help="Owner-scoped record service CLI",
    add_completion=False,
)
console = Console()


def _storage(database_url: str | None) -> SqlAlchemyRecordStorage:
    engine = build_engine(database_url) if database_url else get_engine()
    return SqlAlchemyRecordStorage(engine)


# =============================================================================
# Collection Commands
# =============================================================================

@app.command()
def verify(
    collections: list[str] = typer.Argument(..., help="Collections to check"),
    owner_column: str | None = typer.Option(None, help="Owner column (default: settings override or owner_id)"),
    hard_delete: bool = typer.Option(False, "--hard-delete", help="Collections have no soft-delete columns"),
    select_query: str = typer.Option("*", "--select", help="Projection the collections must support"),
    database_url: str | None = typer.Option(None, help="Database URL (default: settings)"),
):
    """Check that collections have every column the record operations use."""
    storage = _storage(database_url)
    options = CRUDOptions(
        owner_id_column=owner_column,
        has_soft_delete=not hard_delete,
        select_query=select_query,
    )

    async def _verify() -> int:
        table = Table(title="Collection Check")
        table.add_column("Collection", style="cyan")
        table.add_column("Status")

        failures = 0
        for collection in collections:
            try:
                config = resolve_config(collection, options)
                await storage.ensure_columns(collection, config.required_columns)
                table.add_row(collection, "[green]✓ OK[/green]")
            except AppException as e:
                failures += 1
                table.add_row(collection, f"[red]✗ {e}[/red]")

        console.print(table)
        return failures

    if asyncio.run(_verify()):
        raise typer.Exit(1)


@app.command("list")
def list_records(
    collection: str = typer.Argument(..., help="Collection to list"),
    owner: str = typer.Option(..., "--owner", "-o", help="Owner identity"),
    owner_column: str | None = typer.Option(None, help="Owner column (default: settings override or owner_id)"),
    limit: int = typer.Option(20, min=0, help="Max rows"),
    offset: int = typer.Option(0, min=0, help="Rows to skip"),
    include_archived: bool = typer.Option(False, "--include-archived", "-a", help="Include archived rows"),
    hard_delete: bool = typer.Option(False, "--hard-delete", help="Collection has no soft-delete columns"),
    database_url: str | None = typer.Option(None, help="Database URL (default: settings)"),
):
    """List one owner's records."""
    operations = create_crud_operations(
        collection,
        BaseModel,
        BaseModel,
        storage=_storage(database_url),
        identity=StaticIdentityProvider(owner),
        options=CRUDOptions(owner_id_column=owner_column, has_soft_delete=not hard_delete),
        development_mode=False,
    )

    try:
        rows = asyncio.run(
            operations.list_all(QueryOptions(limit=limit, offset=offset, include_archived=include_archived))
        )
    except AppException as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)

    if not rows:
        console.print("[yellow]No records[/yellow]")
        return

    table = Table(title=f"{collection} ({owner})")
    columns = list(rows[0])
    for name in columns:
        table.add_column(name, style="cyan" if name == "id" else None)
    for row in rows:
        table.add_row(*["" if row.get(name) is None else str(row.get(name)) for name in columns])

    console.print(table)


# =============================================================================
# Revalidation Commands
# =============================================================================

@app.command()
def revalidate(
    paths: list[str] = typer.Argument(..., help="Paths to mark stale, e.g. /contacts"),
    redis_url: str | None = typer.Option(None, help="Redis URL (default: settings)"),
    channel: str | None = typer.Option(None, help="Pub/sub channel (default: settings)"),
):
    """Publish a revalidation signal."""
    notifier = RedisRevalidationNotifier.from_url(redis_url, channel)

    try:
        asyncio.run(notifier.notify(paths))
    except Exception as e:
        console.print(f"[red]✗ Publish failed: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Sent {len(paths)} path(s) on {notifier.channel}[/green]")


# =============================================================================
# Configuration Commands
# =============================================================================

@app.command()
def config_check():
    """Show the effective configuration and check it for production use."""
    table = Table(title="Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Environment", settings.environment)
    table.add_row("Debug", str(settings.debug))
    table.add_row("Database", settings.database_url)
    table.add_row("Redis", settings.redis_url)
    table.add_row("Revalidation Channel", settings.revalidation_channel)
    table.add_row("Idempotency TTL (s)", str(settings.idempotency_ttl_seconds))
    table.add_row("Profile Lookup", f"{settings.profile_table}.{settings.profile_auth_column}")
    for collection, column in sorted(settings.owner_column_overrides.items()):
        table.add_row(f"Owner Column ({collection})", column)

    console.print(table)

    errors = settings.validate_production_settings()
    if errors:
        for error in errors:
            console.print(f"[red]✗ {error}[/red]")
        raise typer.Exit(1)
    console.print("[green]✓ Configuration OK[/green]")


@app.command()
def version():
    """Show version information."""
    table = Table(title="Records Version")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")

    table.add_row("records-api", __version__)
    table.add_row("Python", sys.version.split()[0])

    console.print(table)


def main():
    """Console entry point."""
    setup_logging()
    app()


if __name__ == "__main__":
    main()
