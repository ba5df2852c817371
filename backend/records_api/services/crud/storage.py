"""
Storage capability consumed by the record operations.

The operations only need a narrow, collection-parameterized interface:
projection + equality filter + ordering + range, single-row fetch,
insert/update returning rows, and delete. Failures are reported as
shared.utils.exceptions.StorageError, never as an empty result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol, Sequence

Record = dict[str, Any]


@dataclass(frozen=True)
class SortSpec:
    """Ordering for list queries."""
    column: str
    ascending: bool = True


def parse_select(select_query: str) -> list[str] | None:
    """
    Parse a projection string.

    Returns None for "*" (every column), otherwise the column names of a
    comma-separated list such as "id, name, email".
    """
    query = select_query.strip()
    if query == "*":
        return None
    columns = [part.strip() for part in query.split(",")]
    if not all(columns):
        raise ValueError(f"Invalid select query: {select_query!r}")
    return columns


class RecordStorage(Protocol):
    """Async storage interface parameterized by collection name."""

    async def ensure_columns(self, collection: str, columns: Iterable[str]) -> None:
        """Raise ConfigurationError if the collection or a column is unknown."""
        ...

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
        """Rows matching every equality in ``where`` and NULL in ``null_columns``."""
        ...

    async def select_one(
        self,
        collection: str,
        *,
        columns: str = "*",
        where: Mapping[str, Any],
    ) -> Record | None:
        """First matching row, or None."""
        ...

    async def insert(self, collection: str, values: Mapping[str, Any]) -> Record:
        """Insert one row and return it as stored."""
        ...

    async def update(
        self,
        collection: str,
        values: Mapping[str, Any],
        *,
        where: Mapping[str, Any],
    ) -> list[Record]:
        """Update matching rows and return them as stored."""
        ...

    async def delete(self, collection: str, *, where: Mapping[str, Any]) -> int:
        """Delete matching rows and return how many were removed."""
        ...
