"""
SQLAlchemy implementation of the record storage capability.

Tables are addressed by name. They are taken from the given MetaData or
reflected from the database on first use. Session work is blocking, so
each call runs on a worker thread via asyncio.to_thread.

Usage:
    storage = SqlAlchemyRecordStorage(engine, metadata)
    rows = await storage.select(
        "contacts",
        where={"owner_id": owner_id},
        null_columns=["archived_at"],
        order_by=SortSpec("created_at", ascending=False),
    )
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from typing import Any, Callable, Iterable, Mapping, Sequence

from sqlalchemy import MetaData, Table, and_, delete, insert, or_, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError
from sqlalchemy.sql import ColumnElement
from sqlalchemy.types import String

from records_api.services.crud.storage import Record, SortSpec, parse_select
from shared.config.logging import get_logger
from shared.infrastructure.db import make_session_factory, safe_commit, session_scope
from shared.utils.exceptions import ConfigurationError, StorageError

logger = get_logger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class SqlAlchemyRecordStorage:
    """
    Record storage on SQLAlchemy Core tables.

    Every SQLAlchemyError is reported as StorageError with the driver
    exception as its cause. A missing string ``id`` on insert is filled
    with a UUID4.
    """

    def __init__(
        self,
        engine: Engine,
        metadata: MetaData | None = None,
        *,
        reflect: bool = True,
        id_factory: Callable[[], str] = _new_id,
    ):
        self._engine = engine
        self._metadata = metadata if metadata is not None else MetaData()
        self._session_factory = make_session_factory(engine)
        self._reflect = reflect
        self._id_factory = id_factory
        self._reflect_lock = threading.Lock()

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def metadata(self) -> MetaData:
        return self._metadata

    # =========================================================================
    # Table / column lookup
    # =========================================================================

    def _table(self, collection: str) -> Table:
        table = self._metadata.tables.get(collection)
        if table is not None:
            return table
        if not self._reflect:
            raise ConfigurationError(f"Unknown collection: {collection}", collection=collection)

        with self._reflect_lock:
            table = self._metadata.tables.get(collection)
            if table is not None:
                return table
            try:
                return Table(collection, self._metadata, autoload_with=self._engine)
            except NoSuchTableError as exc:
                raise ConfigurationError(f"Unknown collection: {collection}", collection=collection) from exc

    @staticmethod
    def _column(table: Table, name: str, operation: str):
        if name not in table.c:
            raise StorageError(table.name, operation, reason=f"unknown column {name}")
        return table.c[name]

    def _conditions(
        self,
        table: Table,
        operation: str,
        where: Mapping[str, Any] | None,
        null_columns: Sequence[str] = (),
    ) -> list[ColumnElement[bool]]:
        conditions = [self._column(table, name, operation) == value for name, value in (where or {}).items()]
        conditions.extend(self._column(table, name, operation).is_(None) for name in null_columns)
        return conditions

    def _check_values(self, table: Table, values: Mapping[str, Any], operation: str) -> None:
        for name in values:
            self._column(table, name, operation)

    @staticmethod
    def _pk_filter(table: Table, keys: Sequence[Sequence[Any]]) -> ColumnElement[bool]:
        pk_columns = list(table.primary_key.columns)
        if len(pk_columns) == 1:
            return pk_columns[0].in_([key[0] for key in keys])
        return or_(*[and_(*[col == value for col, value in zip(pk_columns, key)]) for key in keys])

    def _run(self, collection: str, operation: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except SQLAlchemyError as exc:
            logger.error(
                "Storage operation failed",
                collection=collection,
                operation=operation,
                error=str(exc),
            )
            raise StorageError(collection, operation, reason=type(exc).__name__) from exc

    # =========================================================================
    # Sync implementations
    # =========================================================================

    def _ensure_columns_sync(self, collection: str, columns: Iterable[str]) -> None:
        table = self._run(collection, "reflect", lambda: self._table(collection))
        missing = [name for name in columns if name not in table.c]
        if missing:
            raise ConfigurationError(
                f"Collection {collection} is missing columns: {', '.join(missing)}",
                collection=collection,
                missing=missing,
            )

    def _select_sync(
        self,
        collection: str,
        columns: str,
        where: Mapping[str, Any] | None,
        null_columns: Sequence[str],
        order_by: SortSpec | None,
        limit: int | None,
        offset: int | None,
    ) -> list[Record]:
        def work() -> list[Record]:
            table = self._table(collection)
            names = parse_select(columns)
            if names is None:
                stmt = select(table)
            else:
                stmt = select(*[self._column(table, name, "select") for name in names])

            stmt = stmt.where(*self._conditions(table, "select", where, null_columns))

            if order_by is not None:
                column = self._column(table, order_by.column, "select")
                stmt = stmt.order_by(column.asc() if order_by.ascending else column.desc())
            if offset is not None:
                stmt = stmt.offset(offset)
            if limit is not None:
                stmt = stmt.limit(limit)

            with session_scope(self._session_factory) as db:
                return [dict(row) for row in db.execute(stmt).mappings().all()]

        return self._run(collection, "select", work)

    def _insert_sync(self, collection: str, values: Mapping[str, Any]) -> Record:
        def work() -> Record:
            table = self._table(collection)
            data = dict(values)
            self._check_values(table, data, "insert")

            if "id" in table.c and data.get("id") is None and isinstance(table.c.id.type, String):
                data["id"] = self._id_factory()

            with session_scope(self._session_factory) as db:
                result = db.execute(insert(table).values(**data))
                key = tuple(result.inserted_primary_key)
                safe_commit(db)
                row = db.execute(select(table).where(self._pk_filter(table, [key]))).mappings().one()
                return dict(row)

        return self._run(collection, "insert", work)

    def _update_sync(
        self,
        collection: str,
        values: Mapping[str, Any],
        where: Mapping[str, Any],
    ) -> list[Record]:
        def work() -> list[Record]:
            table = self._table(collection)
            self._check_values(table, values, "update")
            conditions = self._conditions(table, "update", where)
            pk_columns = list(table.primary_key.columns)

            with session_scope(self._session_factory) as db:
                keys = [tuple(row) for row in db.execute(select(*pk_columns).where(*conditions)).all()]
                if not keys:
                    return []
                if values:
                    db.execute(update(table).where(self._pk_filter(table, keys)).values(**values))
                    safe_commit(db)
                rows = db.execute(select(table).where(self._pk_filter(table, keys))).mappings().all()
                return [dict(row) for row in rows]

        return self._run(collection, "update", work)

    def _delete_sync(self, collection: str, where: Mapping[str, Any]) -> int:
        def work() -> int:
            table = self._table(collection)
            conditions = self._conditions(table, "delete", where)
            with session_scope(self._session_factory) as db:
                result = db.execute(delete(table).where(*conditions))
                safe_commit(db)
                return result.rowcount or 0

        return self._run(collection, "delete", work)

    # =========================================================================
    # RecordStorage interface
    # =========================================================================

    async def ensure_columns(self, collection: str, columns: Iterable[str]) -> None:
        await asyncio.to_thread(self._ensure_columns_sync, collection, list(columns))

    async def select(
        self,
        collection: str,
        *,
        columns: str = "*",
        where: Mapping[str, Any] | None = None,
        null_columns: Sequence[str] = (),
        order_by: SortSpec | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Record]:
        return await asyncio.to_thread(
            self._select_sync, collection, columns, where, null_columns, order_by, limit, offset
        )

    async def select_one(
        self,
        collection: str,
        *,
        columns: str = "*",
        where: Mapping[str, Any],
    ) -> Record | None:
        rows = await self.select(collection, columns=columns, where=where, limit=1)
        return rows[0] if rows else None

    async def insert(self, collection: str, values: Mapping[str, Any]) -> Record:
        return await asyncio.to_thread(self._insert_sync, collection, values)

    async def update(
        self,
        collection: str,
        values: Mapping[str, Any],
        *,
        where: Mapping[str, Any],
    ) -> list[Record]:
        return await asyncio.to_thread(self._update_sync, collection, values, where)

    async def delete(self, collection: str, *, where: Mapping[str, Any]) -> int:
        return await asyncio.to_thread(self._delete_sync, collection, where)
