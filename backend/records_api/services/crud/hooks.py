"""
Lifecycle hooks for record operations.

Hooks are optional callables grouped in a CRUDHooks bag. Each may be a
plain function or a coroutine function. Typical uses are audit logging
and event emission, e.g. writing an outbox row after create:

    async def emit_created(record, context):
        await outbox.add(f"{context.entity_type}.created", record, context.as_dict())

    hooks = CRUDHooks(after_create=emit_created)

A "before" hook that raises aborts the operation before storage is
touched. An "after" hook that raises reaches the caller after the write
has been committed. Hook errors are never wrapped.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, fields
from typing import Any, Awaitable, Callable, Optional, Union

from records_api.services.crud.context import OperationContext

Record = dict[str, Any]
HookResult = Union[None, Awaitable[None]]

BeforeCreateHook = Callable[[Record, OperationContext], HookResult]
AfterCreateHook = Callable[[Record, OperationContext], HookResult]
BeforeUpdateHook = Callable[[str, Record, OperationContext], HookResult]
AfterUpdateHook = Callable[[Record, Optional[Record], OperationContext], HookResult]
BeforeDeleteHook = Callable[[str, OperationContext], HookResult]
AfterDeleteHook = Callable[[Record, OperationContext], HookResult]
BeforeReadHook = Callable[[Optional[str], OperationContext], HookResult]


@dataclass(frozen=True)
class CRUDHooks:
    """Optional lifecycle callbacks. Unset slots are skipped."""

    # Validation, authorization
    before_create: BeforeCreateHook | None = None
    # Event emission point
    after_create: AfterCreateHook | None = None

    before_update: BeforeUpdateHook | None = None
    # Receives the pre-update row for diffing (None if it was not found)
    after_update: AfterUpdateHook | None = None

    # Authorization, cascade checks
    before_delete: BeforeDeleteHook | None = None
    after_delete: AfterDeleteHook | None = None

    before_read: BeforeReadHook | None = None

    def registered(self) -> list[str]:
        """Names of the slots that hold a callback."""
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]


async def run_hook(hook: Callable[..., Any] | None, *args: Any) -> None:
    """Call ``hook`` if set, awaiting the result when it is awaitable."""
    if hook is None:
        return
    result = hook(*args)
    if inspect.isawaitable(result):
        await result
