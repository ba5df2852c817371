"""
Operation context handed to lifecycle hooks.

Tracks who, what and when for every record operation. A context is built
fresh for each hook call and never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class Operation(str, Enum):
    """Kind of record operation."""
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class OperationContext:
    """
    Immutable description of one record operation.

    Attributes:
        operation: Kind of operation being performed.
        entity_type: Collection name (e.g. "contacts").
        entity_id: Affected record ID; None for list reads and for
            create before the row exists.
        user_id: Resolved owner identity of the caller.
        timestamp: When the context was built (UTC).
        metadata: Free-form read-only key/value bag.
    """

    operation: Operation
    entity_type: str
    entity_id: str | None
    user_id: str
    timestamp: datetime
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def as_dict(self) -> dict[str, Any]:
        """Plain dict form, e.g. for an outbox payload."""
        return {
            "operation": self.operation.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "timestamp": self.timestamp.isoformat(),
            "metadata": dict(self.metadata),
        }


def build_operation_context(
    operation: Operation,
    entity_type: str,
    user_id: str,
    entity_id: str | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> OperationContext:
    """Build a context stamped with the current UTC time."""
    return OperationContext(
        operation=operation,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        timestamp=datetime.now(timezone.utc),
        metadata=MappingProxyType(dict(metadata or {})),
    )
