"""
Tests for lifecycle hooks around record operations.

Tests verify:
- Each hook slot fires with the documented arguments and context
- Sync and async hooks are both supported
- Before hooks abort before storage access
- After hook failures surface after the write is committed
- Pre-fetches only happen when the matching after hook is registered
"""

import pytest

from records_api.services.crud import (
    CRUDHooks,
    CRUDOptions,
    Operation,
    StaticIdentityProvider,
    create_crud_operations,
)
from records_api.services.crud.context import build_operation_context
from records_api.services.crud.idempotency import scoped_key
from shared.infrastructure.correlation import bind_request_id
from shared.utils.exceptions import NotFoundError
from tests.conftest import OWNER_A, OWNER_B, ContactCreate, ContactUpdate


class HookFailure(Exception):
    """Error raised by a test hook."""


class CountingStorage:
    """Wraps a storage and counts calls per method."""

    def __init__(self, inner):
        self._inner = inner
        self.calls: list[str] = []

    def __getattr__(self, name):
        attr = getattr(self._inner, name)

        async def wrapper(*args, **kwargs):
            self.calls.append(name)
            return await attr(*args, **kwargs)

        return wrapper


@pytest.fixture
def counting_storage(storage):
    return CountingStorage(storage)


@pytest.fixture
def make_ops(counting_storage):
    def factory(hooks: CRUDHooks, user_id: str = OWNER_A, **option_overrides):
        return create_crud_operations(
            "contacts",
            ContactCreate,
            ContactUpdate,
            storage=counting_storage,
            identity=StaticIdentityProvider(user_id),
            options=CRUDOptions(hooks=hooks, **option_overrides),
            development_mode=False,
        )

    return factory


class TestCRUDHooks:
    def test_registered_lists_set_slots(self):
        hooks = CRUDHooks(before_create=lambda d, c: None, after_delete=lambda d, c: None)
        assert hooks.registered() == ["before_create", "after_delete"]

    def test_empty_bag(self):
        assert CRUDHooks().registered() == []


class TestOperationContext:
    def test_context_fields(self):
        ctx = build_operation_context(Operation.UPDATE, "contacts", OWNER_A, entity_id="c-1", metadata={"source": "api"})

        assert ctx.operation is Operation.UPDATE
        assert ctx.entity_type == "contacts"
        assert ctx.entity_id == "c-1"
        assert ctx.user_id == OWNER_A
        assert ctx.timestamp.tzinfo is not None
        assert ctx.as_dict()["metadata"] == {"source": "api"}

    def test_context_is_immutable(self):
        ctx = build_operation_context(Operation.READ, "contacts", OWNER_A)

        with pytest.raises(AttributeError):
            ctx.user_id = OWNER_B  # type: ignore[misc]
        with pytest.raises(TypeError):
            ctx.metadata["x"] = 1  # type: ignore[index]


class TestCreateHooks:
    @pytest.mark.asyncio
    async def test_before_and_after_create(self, make_ops):
        events = []

        def before_create(data, ctx):
            events.append(("before", dict(data), ctx))

        async def after_create(row, ctx):
            events.append(("after", row, ctx))

        ops = make_ops(CRUDHooks(before_create=before_create, after_create=after_create))
        row = await ops.create({"name": "Jane"})

        (_, data, before_ctx), (_, after_row, after_ctx) = events
        assert data["name"] == "Jane"
        assert data["owner_id"] == OWNER_A
        assert before_ctx.operation is Operation.CREATE
        assert before_ctx.entity_id is None
        assert after_row == row
        assert after_ctx.entity_id == row["id"]
        assert after_ctx.user_id == OWNER_A
        assert after_ctx.entity_type == "contacts"
        assert after_ctx.timestamp == before_ctx.timestamp
        assert after_ctx.metadata == before_ctx.metadata

    @pytest.mark.asyncio
    async def test_context_carries_bound_request_id(self, make_ops):
        seen = []
        ops = make_ops(CRUDHooks(before_create=lambda d, c: seen.append(c), after_create=lambda r, c: seen.append(c)))

        with bind_request_id("req-42"):
            await ops.create({"name": "Jane"})
        await ops.create({"name": "John"})

        assert [dict(c.metadata) for c in seen] == [{"request_id": "req-42"}] * 2 + [{}] * 2

    @pytest.mark.asyncio
    async def test_failing_before_create_inserts_nothing(self, make_ops, counting_storage):
        def before_create(data, ctx):
            raise HookFailure("blocked")

        ops = make_ops(CRUDHooks(before_create=before_create))

        with pytest.raises(HookFailure):
            await ops.create({"name": "Jane"})

        assert "insert" not in counting_storage.calls
        assert await ops.list_all() == []

    @pytest.mark.asyncio
    async def test_failing_after_create_keeps_row(self, make_ops):
        async def after_create(row, ctx):
            raise HookFailure("email service down")

        ops = make_ops(CRUDHooks(after_create=after_create))

        with pytest.raises(HookFailure):
            await ops.create({"name": "Jane"}, "key-1")

        rows = await ops.list_all()
        assert [r["name"] for r in rows] == ["Jane"]
        assert ops.idempotency_store.lookup(scoped_key(OWNER_A, "key-1")) is None

    @pytest.mark.asyncio
    async def test_cache_hit_runs_no_hooks(self, make_ops):
        calls = []
        ops = make_ops(CRUDHooks(
            before_create=lambda d, c: calls.append("before"),
            after_create=lambda r, c: calls.append("after"),
        ))

        await ops.create({"name": "Jane"}, "key-1")
        await ops.create({"name": "Jane"}, "key-1")

        assert calls == ["before", "after"]


class TestUpdateHooks:
    @pytest.mark.asyncio
    async def test_after_update_receives_previous(self, make_ops):
        seen = []

        async def after_update(row, previous, ctx):
            seen.append((row, previous, ctx))

        ops = make_ops(CRUDHooks(after_update=after_update))
        created = await ops.create({"name": "Jane"})

        updated = await ops.update(created["id"], {"name": "Janet"})

        row, previous, ctx = seen[0]
        assert row == updated
        assert previous["name"] == "Jane"
        assert ctx.operation is Operation.UPDATE
        assert ctx.entity_id == created["id"]

    @pytest.mark.asyncio
    async def test_no_prefetch_without_after_update(self, make_ops, counting_storage):
        ops = make_ops(CRUDHooks())
        created = await ops.create({"name": "Jane"})
        counting_storage.calls.clear()

        await ops.update(created["id"], {"name": "Janet"})

        assert counting_storage.calls == ["update"]

    @pytest.mark.asyncio
    async def test_prefetch_with_after_update(self, make_ops, counting_storage):
        ops = make_ops(CRUDHooks(after_update=lambda r, p, c: None))
        created = await ops.create({"name": "Jane"})
        counting_storage.calls.clear()

        await ops.update(created["id"], {"name": "Janet"})

        assert counting_storage.calls == ["select_one", "update"]

    @pytest.mark.asyncio
    async def test_before_update_receives_payload(self, make_ops):
        seen = []
        ops = make_ops(CRUDHooks(before_update=lambda i, d, c: seen.append((i, d, c.operation))))
        created = await ops.create({"name": "Jane"})

        await ops.update(created["id"], {"name": "Janet"})

        assert seen == [(created["id"], {"name": "Janet"}, Operation.UPDATE)]

    @pytest.mark.asyncio
    async def test_failing_before_update_writes_nothing(self, make_ops):
        def before_update(record_id, data, ctx):
            raise HookFailure("locked")

        ops = make_ops(CRUDHooks(before_update=before_update))
        created = await ops.create({"name": "Jane"})

        with pytest.raises(HookFailure):
            await ops.update(created["id"], {"name": "Janet"})

        assert (await ops.get_one(created["id"]))["name"] == "Jane"

    @pytest.mark.asyncio
    async def test_failing_after_update_keeps_change(self, make_ops):
        def after_update(row, previous, ctx):
            raise HookFailure("audit failed")

        ops = make_ops(CRUDHooks(after_update=after_update))
        created = await ops.create({"name": "Jane"})

        with pytest.raises(HookFailure):
            await ops.update(created["id"], {"name": "Janet"})

        assert (await ops.get_one(created["id"]))["name"] == "Janet"

    @pytest.mark.asyncio
    async def test_foreign_update_does_not_fire_after_update(self, make_ops):
        fired = []
        theirs = await make_ops(CRUDHooks(), user_id=OWNER_B).create({"name": "Theirs"})
        ops = make_ops(CRUDHooks(after_update=lambda r, p, c: fired.append(p)))

        with pytest.raises(NotFoundError):
            await ops.update(theirs["id"], {"name": "Hijacked"})

        assert fired == []


    @pytest.mark.asyncio
    async def test_before_and_after_update_share_context(self, make_ops):
        contexts = []
        ops = make_ops(CRUDHooks(
            before_update=lambda i, d, c: contexts.append(c),
            after_update=lambda r, p, c: contexts.append(c),
        ))
        created = await ops.create({"name": "Jane"})

        await ops.update(created["id"], {"name": "Janet"})

        before, after = contexts
        assert before is after


class TestDeleteHooks:
    @pytest.mark.asyncio
    async def test_before_and_after_delete_share_context(self, make_ops):
        contexts = []
        ops = make_ops(CRUDHooks(
            before_delete=lambda i, c: contexts.append(c),
            after_delete=lambda r, c: contexts.append(c),
        ))
        created = await ops.create({"name": "Jane"})

        await ops.delete(created["id"])

        before, after = contexts
        assert before is after
        assert before.entity_id == created["id"]

    @pytest.mark.asyncio
    async def test_after_delete_receives_pre_delete_row(self, make_ops):
        seen = []
        ops = make_ops(CRUDHooks(after_delete=lambda row, ctx: seen.append((row, ctx))))
        created = await ops.create({"name": "Jane"})

        await ops.delete(created["id"])

        row, ctx = seen[0]
        assert row == created
        assert row["status"] == "active"
        assert ctx.operation is Operation.DELETE
        assert ctx.entity_id == created["id"]

    @pytest.mark.asyncio
    async def test_archive_uses_delete_hooks(self, make_ops):
        calls = []
        ops = make_ops(CRUDHooks(
            before_delete=lambda i, c: calls.append(("before", i)),
            after_delete=lambda r, c: calls.append(("after", r["id"])),
        ))
        created = await ops.create({"name": "Jane"})

        await ops.archive(created["id"])

        assert calls == [("before", created["id"]), ("after", created["id"])]

    @pytest.mark.asyncio
    async def test_unarchive_runs_no_hooks(self, make_ops):
        calls = []
        ops = make_ops(CRUDHooks(
            before_update=lambda i, d, c: calls.append("before_update"),
            after_update=lambda r, p, c: calls.append("after_update"),
            before_delete=lambda i, c: calls.append("before_delete"),
            after_delete=lambda r, c: calls.append("after_delete"),
        ))
        created = await ops.create({"name": "Jane"})
        await ops.archive(created["id"])
        calls.clear()

        await ops.unarchive(created["id"])

        assert calls == []

    @pytest.mark.asyncio
    async def test_failing_before_delete_keeps_record(self, make_ops):
        def before_delete(record_id, ctx):
            raise HookFailure("has dependents")

        ops = make_ops(CRUDHooks(before_delete=before_delete))
        created = await ops.create({"name": "Jane"})

        with pytest.raises(HookFailure):
            await ops.delete(created["id"])

        assert (await ops.get_one(created["id"]))["status"] == "active"

    @pytest.mark.asyncio
    async def test_no_prefetch_without_after_delete(self, make_ops, counting_storage):
        ops = make_ops(CRUDHooks(before_delete=lambda i, c: None))
        created = await ops.create({"name": "Jane"})
        counting_storage.calls.clear()

        await ops.delete(created["id"])

        assert counting_storage.calls == ["update"]

    @pytest.mark.asyncio
    async def test_foreign_delete_fires_no_after_delete(self, make_ops):
        fired = []
        theirs = await make_ops(CRUDHooks(), user_id=OWNER_B).create({"name": "Theirs"})
        ops = make_ops(CRUDHooks(after_delete=lambda r, c: fired.append(r)))

        with pytest.raises(NotFoundError):
            await ops.delete(theirs["id"])

        assert fired == []


class TestReadHooks:
    @pytest.mark.asyncio
    async def test_before_read_on_list(self, make_ops):
        seen = []
        ops = make_ops(CRUDHooks(before_read=lambda i, c: seen.append((i, c.operation, c.entity_id))))

        await ops.list_all()

        assert seen == [(None, Operation.READ, None)]

    @pytest.mark.asyncio
    async def test_before_read_on_get_one(self, make_ops):
        seen = []
        ops = make_ops(CRUDHooks(before_read=lambda i, c: seen.append(i)))
        created = await ops.create({"name": "Jane"})

        await ops.get_one(created["id"])

        assert seen == [created["id"]]

    @pytest.mark.asyncio
    async def test_failing_before_read_skips_storage(self, make_ops, counting_storage):
        async def before_read(record_id, ctx):
            raise HookFailure("forbidden")

        ops = make_ops(CRUDHooks(before_read=before_read))

        with pytest.raises(HookFailure):
            await ops.list_all()

        assert counting_storage.calls == []
