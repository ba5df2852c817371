"""
Tests for the records CLI.
"""

import pytest
from sqlalchemy import Column, DateTime, MetaData, String, Table, create_engine, insert
from typer.testing import CliRunner

from cli import app
from tests.conftest import OWNER_A, OWNER_B

runner = CliRunner()


@pytest.fixture
def database_url(tmp_path):
    """File-backed SQLite database with a contacts table."""
    url = f"sqlite:///{tmp_path / 'records.db'}"
    engine = create_engine(url)
    metadata = MetaData()
    contacts = Table(
        "contacts",
        metadata,
        Column("id", String(36), primary_key=True),
        Column("owner_id", String(36), nullable=False),
        Column("name", String(200), nullable=False),
        Column("status", String(20), nullable=False),
        Column("archived_at", DateTime(timezone=True), nullable=True),
        Column("created_at", DateTime(timezone=True), nullable=True),
    )
    metadata.create_all(engine)
    with engine.begin() as conn:
        conn.execute(insert(contacts), [
            {"id": "c-1", "owner_id": OWNER_A, "name": "Jane", "status": "active"},
            {"id": "c-2", "owner_id": OWNER_B, "name": "Eve", "status": "active"},
        ])
    engine.dispose()
    return url


class TestVerifyCommand:
    def test_valid_collection(self, database_url):
        result = runner.invoke(app, ["verify", "contacts", "--database-url", database_url])

        assert result.exit_code == 0
        assert "OK" in result.output

    def test_missing_columns_fail(self, database_url):
        result = runner.invoke(
            app,
            ["verify", "contacts", "--owner-column", "tenant_id", "--database-url", database_url],
        )

        assert result.exit_code == 1
        assert "tenant_id" in result.output

    def test_unknown_collection_fails(self, database_url):
        result = runner.invoke(app, ["verify", "invoices", "--database-url", database_url])

        assert result.exit_code == 1


class TestListCommand:
    def test_lists_only_owner_records(self, database_url):
        result = runner.invoke(app, ["list", "contacts", "--owner", OWNER_A, "--database-url", database_url])

        assert result.exit_code == 0
        assert "Jane" in result.output
        assert "Eve" not in result.output

    def test_no_records(self, database_url):
        result = runner.invoke(app, ["list", "contacts", "--owner", "nobody", "--database-url", database_url])

        assert result.exit_code == 0
        assert "No records" in result.output


class TestMiscCommands:
    def test_config_check_in_development(self):
        result = runner.invoke(app, ["config-check"])

        assert result.exit_code == 0
        assert "Configuration OK" in result.output

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "records-api" in result.output
