"""
Generic record CRUD operation factory.

Given a collection name and two pydantic schemas (insert shape, update
shape), builds the full operation set for that collection:
list_all, get_one, create, update, delete, archive, unarchive.

Every operation is scoped to the caller's owner identity. Mutations are
validated, may be deduplicated with an idempotency key, run lifecycle
hooks around the storage call and emit a best-effort revalidation signal.

Usage:
    contacts = create_crud_operations(
        "contacts",
        ContactCreate,
        ContactUpdate,
        storage=SqlAlchemyRecordStorage(engine, metadata),
        identity=ContextIdentityProvider(),
        options=CRUDOptions(
            select_query="id, name, email, status",
            hooks=CRUDHooks(after_create=emit_contact_created),
        ),
    )

    contact = await contacts.create({"name": "Jane Doe"}, idempotency_key="key-1")
    rows = await contacts.list_all(QueryOptions(limit=20, offset=40))
    await contacts.archive(contact["id"])

Pre-fetches of the "previous" row for after_update / after_delete are not
transactional: a concurrent write between the read and the mutation can
hand the hook a stale previous row. Callers that need exact diffs must
serialize writes per record themselves.

Every hook of one operation receives the same OperationContext, stamped
once after tenant resolution (create adds the new id for after_create).
The request id bound by CorrelationIdMiddleware, if any, is carried in
its metadata.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Generic, Literal, Mapping, TypeVar

from pydantic import BaseModel

from records_api.services.crud.context import Operation, OperationContext, build_operation_context
from records_api.services.crud.hooks import CRUDHooks, run_hook
from records_api.services.crud.idempotency import IdempotencyStore, InMemoryIdempotencyStore, scoped_key
from records_api.services.crud.revalidation import (
    LoggingRevalidationNotifier,
    RevalidationNotifier,
    notify_best_effort,
)
from records_api.services.crud.storage import Record, RecordStorage, SortSpec, parse_select
from records_api.services.crud.tenant import IdentityProvider, TenantContext, TenantResolver
from records_api.services.crud.validation import validate_payload
from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.infrastructure.correlation import correlation_metadata
from shared.utils.exceptions import (
    ConfigurationError,
    NotFoundError,
    StorageError,
    UnsupportedOperationError,
    ValidationError,
)

logger = get_logger(__name__)

InsertT = TypeVar("InsertT", bound=BaseModel)
UpdateT = TypeVar("UpdateT", bound=BaseModel)

DEFAULT_OWNER_COLUMN = "owner_id"
STATUS_ACTIVE = "active"
STATUS_ARCHIVED = "archived"


@dataclass(frozen=True)
class CRUDOptions:
    """Configuration for a record operation set. Every field is optional."""

    # Column holding the owner identity (default: settings override or "owner_id")
    owner_id_column: str | None = None
    # Include archived rows in list_all
    include_archived: bool = False
    # Paths signalled after mutations (default: ["/<collection>"])
    revalidate_paths: tuple[str, ...] | None = None
    # Projection for list_all / get_one, e.g. "id, name, email"
    select_query: str = "*"
    # Resolve owner identity through the profiles collection
    use_profile_lookup: bool = False
    # Collection has archived_at / status columns
    has_soft_delete: bool = True
    default_sort: SortSpec = SortSpec("created_at", ascending=False)
    hooks: CRUDHooks = field(default_factory=CRUDHooks)


@dataclass(frozen=True)
class QueryOptions:
    """Filtering and pagination for list_all."""

    # Column equality filters, e.g. {"status": "active"}
    filters: Mapping[str, Any] | None = None
    sort_by: str | None = None
    sort_order: Literal["asc", "desc"] | None = None
    limit: int | None = None
    # Applied only together with limit
    offset: int | None = None
    # Overrides CRUDOptions.include_archived for this call
    include_archived: bool | None = None


@dataclass(frozen=True)
class ResolvedCRUDConfig:
    """Configuration with every default applied."""

    collection: str
    owner_id_column: str
    include_archived: bool
    revalidate_paths: tuple[str, ...]
    select_query: str
    use_profile_lookup: bool
    has_soft_delete: bool
    default_sort: SortSpec
    hooks: CRUDHooks

    @property
    def required_columns(self) -> list[str]:
        """Columns the collection must have for this configuration."""
        columns = ["id", self.owner_id_column, self.default_sort.column]
        if self.has_soft_delete:
            columns.extend(["archived_at", "status"])
        projection = parse_select(self.select_query)
        if projection:
            columns.extend(projection)
        return list(dict.fromkeys(columns))


def determine_owner_column(collection: str, options: CRUDOptions) -> str:
    """
    Owner column for ``collection``.

    An explicit option wins, then settings.owner_column_overrides, then
    "owner_id".
    """
    if options.owner_id_column:
        return options.owner_id_column
    return settings.owner_column_overrides.get(collection, DEFAULT_OWNER_COLUMN)


def resolve_config(collection: str, options: CRUDOptions) -> ResolvedCRUDConfig:
    """
    Apply defaults and check the configuration.

    Raises:
        ConfigurationError: on an empty name or an unparsable projection.
    """
    if not collection or not collection.strip():
        raise ConfigurationError("Collection name must not be empty")

    owner_column = determine_owner_column(collection, options)
    if not owner_column.strip():
        raise ConfigurationError("Owner column must not be empty", collection=collection)
    if not options.default_sort.column.strip():
        raise ConfigurationError("Default sort column must not be empty", collection=collection)

    try:
        parse_select(options.select_query)
    except ValueError as exc:
        raise ConfigurationError(str(exc), collection=collection) from exc

    revalidate_paths = options.revalidate_paths
    if revalidate_paths is None:
        revalidate_paths = (f"/{collection}",)

    return ResolvedCRUDConfig(
        collection=collection,
        owner_id_column=owner_column,
        include_archived=options.include_archived,
        revalidate_paths=tuple(revalidate_paths),
        select_query=options.select_query,
        use_profile_lookup=options.use_profile_lookup,
        has_soft_delete=options.has_soft_delete,
        default_sort=options.default_sort,
        hooks=options.hooks,
    )


class CRUDOperations(Generic[InsertT, UpdateT]):
    """
    Operation set for one collection.

    Instances are immutable after construction. The idempotency store is
    shared by every call on the instance and by copies made with
    for_identity().
    """

    def __init__(
        self,
        collection: str,
        insert_schema: type[InsertT],
        update_schema: type[UpdateT],
        *,
        storage: RecordStorage,
        identity: IdentityProvider,
        options: CRUDOptions | None = None,
        idempotency_store: IdempotencyStore | None = None,
        revalidator: RevalidationNotifier | None = None,
        privileged_storage: RecordStorage | None = None,
        development_mode: bool | None = None,
    ):
        self.config = resolve_config(collection, options or CRUDOptions())
        self.insert_schema = insert_schema
        self.update_schema = update_schema
        self._storage = storage
        self._resolver = TenantResolver(
            identity,
            storage,
            privileged_storage=privileged_storage,
            use_profile_lookup=self.config.use_profile_lookup,
            development_mode=development_mode,
        )
        self._idempotency = idempotency_store if idempotency_store is not None else InMemoryIdempotencyStore()
        self._revalidator = revalidator or LoggingRevalidationNotifier()

    @property
    def collection(self) -> str:
        return self.config.collection

    @property
    def hooks(self) -> CRUDHooks:
        return self.config.hooks

    @property
    def supports_archive(self) -> bool:
        return self.config.has_soft_delete

    @property
    def idempotency_store(self) -> IdempotencyStore:
        return self._idempotency

    def for_identity(self, identity: IdentityProvider) -> CRUDOperations[InsertT, UpdateT]:
        """Same operation set, resolving the caller through ``identity``."""
        clone = copy.copy(self)
        clone._resolver = self._resolver.with_identity(identity)
        return clone

    async def verify(self) -> None:
        """
        Check that the collection has every column this configuration uses.

        Raises:
            ConfigurationError: unknown collection or missing columns.
        """
        await self._storage.ensure_columns(self.collection, self.config.required_columns)

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def list_all(self, query: QueryOptions | None = None) -> list[Record]:
        """
        List the caller's records.

        Archived rows are excluded unless include_archived is configured
        or requested for this call. The offset is only honoured together
        with a limit.
        """
        query = query or QueryOptions()
        _check_pagination(self.collection, query)

        tenant = await self._resolver.resolve()
        await run_hook(self.hooks.before_read, None, self._context(Operation.READ, tenant))

        include_archived = self.config.include_archived if query.include_archived is None else query.include_archived
        null_columns = ["archived_at"] if self.config.has_soft_delete and not include_archived else []

        where = dict(query.filters or {})
        where[self.config.owner_id_column] = tenant.owner_id

        sort_column = query.sort_by or self.config.default_sort.column
        if query.sort_order is None:
            ascending = self.config.default_sort.ascending
        else:
            ascending = query.sort_order == "asc"

        return await tenant.storage.select(
            self.collection,
            columns=self.config.select_query,
            where=where,
            null_columns=null_columns,
            order_by=SortSpec(sort_column, ascending),
            limit=query.limit,
            offset=query.offset if query.limit is not None else None,
        )

    async def get_one(self, record_id: str) -> Record:
        """
        Get one of the caller's records.

        Raises:
            NotFoundError: no such record, or it belongs to another owner.
        """
        tenant = await self._resolver.resolve()
        await run_hook(self.hooks.before_read, record_id, self._context(Operation.READ, tenant, record_id))

        record = await tenant.storage.select_one(
            self.collection,
            columns=self.config.select_query,
            where=self._scope(record_id, tenant),
        )
        if record is None:
            raise NotFoundError(self.collection, record_id)
        return record

    # =========================================================================
    # Create Operations
    # =========================================================================

    async def create(self, data: Any, idempotency_key: str | None = None) -> Record:
        """
        Validate and insert a record owned by the caller.

        With ``idempotency_key`` a repeated call by the same caller inside
        the TTL returns a copy of the first result without validation,
        hooks or storage access. Keys are scoped per caller identity.

        Raises:
            ValidationError: payload rejected by the insert schema.
            StorageError: the insert failed; after hooks are skipped.
        """
        cache_key = await self._cache_key(idempotency_key)
        if cache_key:
            hit = self._idempotency.lookup(cache_key)
            if hit is not None:
                logger.debug("Idempotent replay", collection=self.collection, operation="create")
                return hit.result

        tenant = await self._resolver.resolve()
        owner_column = self.config.owner_id_column

        validated = validate_payload(
            self.insert_schema,
            data,
            entity=self.collection,
            owner_column=owner_column,
            owner_id=tenant.owner_id,
        )
        payload = validated.model_dump(exclude_none=True)
        payload[owner_column] = tenant.owner_id
        if self.config.has_soft_delete:
            payload["status"] = STATUS_ACTIVE
            payload["archived_at"] = None

        context = self._context(Operation.CREATE, tenant)
        await run_hook(self.hooks.before_create, payload, context)

        try:
            record = await tenant.storage.insert(self.collection, payload)
        except StorageError:
            logger.error("Create failed", collection=self.collection)
            raise

        record_id = _record_id(record)
        await run_hook(self.hooks.after_create, record, replace(context, entity_id=record_id))

        await self._revalidate()

        if cache_key:
            self._idempotency.store(cache_key, record)

        logger.info("Record created", collection=self.collection, record_id=record_id)
        return record

    # =========================================================================
    # Update Operations
    # =========================================================================

    async def update(self, record_id: str, data: Any, idempotency_key: str | None = None) -> Record:
        """
        Validate and apply a partial update to one of the caller's records.

        The id, owner and soft-delete columns cannot be changed here.
        ``idempotency_key`` behaves as in create().

        Raises:
            ValidationError: payload rejected by the update schema.
            NotFoundError: no such record, or it belongs to another owner.
        """
        cache_key = await self._cache_key(idempotency_key)
        if cache_key:
            hit = self._idempotency.lookup(cache_key)
            if hit is not None:
                logger.debug("Idempotent replay", collection=self.collection, operation="update")
                return hit.result

        tenant = await self._resolver.resolve()

        validated = validate_payload(self.update_schema, data, entity=self.collection)
        payload = self._strip_protected(validated.model_dump(exclude_unset=True))
        scope = self._scope(record_id, tenant)
        context = self._context(Operation.UPDATE, tenant, record_id)

        previous = None
        if self.hooks.after_update is not None:
            previous = await tenant.storage.select_one(self.collection, where=scope)

        await run_hook(self.hooks.before_update, record_id, payload, context)

        records = await tenant.storage.update(self.collection, payload, where=scope)
        if not records:
            raise NotFoundError(self.collection, record_id)
        record = records[0]

        await run_hook(self.hooks.after_update, record, previous, context)

        await self._revalidate()

        if cache_key:
            self._idempotency.store(cache_key, record)

        logger.info("Record updated", collection=self.collection, record_id=record_id)
        return record

    # =========================================================================
    # Delete Operations
    # =========================================================================

    async def delete(self, record_id: str) -> None:
        """
        Delete one of the caller's records.

        Soft delete (archive) when the collection supports it, hard delete
        otherwise. after_delete only fires when the record was found by
        the pre-fetch.

        Raises:
            NotFoundError: no such record, or it belongs to another owner.
        """
        tenant = await self._resolver.resolve()
        scope = self._scope(record_id, tenant)
        context = self._context(Operation.DELETE, tenant, record_id)

        previous = None
        if self.hooks.after_delete is not None:
            previous = await tenant.storage.select_one(self.collection, where=scope)

        await run_hook(self.hooks.before_delete, record_id, context)

        if self.config.has_soft_delete:
            archived = await tenant.storage.update(
                self.collection,
                {"archived_at": datetime.now(timezone.utc), "status": STATUS_ARCHIVED},
                where=scope,
            )
            affected = len(archived)
        else:
            affected = await tenant.storage.delete(self.collection, where=scope)

        if not affected:
            raise NotFoundError(self.collection, record_id)

        if previous is not None:
            await run_hook(self.hooks.after_delete, previous, context)

        await self._revalidate()
        logger.info(
            "Record deleted",
            collection=self.collection,
            record_id=record_id,
            soft=self.config.has_soft_delete,
        )

    async def archive(self, record_id: str) -> None:
        """
        Archive a record (the soft-delete path of delete()).

        Raises:
            UnsupportedOperationError: collection has no soft delete.
        """
        if not self.config.has_soft_delete:
            raise UnsupportedOperationError(self.collection, "archive")
        await self.delete(record_id)

    async def unarchive(self, record_id: str) -> None:
        """
        Restore an archived record. No lifecycle hooks fire.

        Raises:
            UnsupportedOperationError: collection has no soft delete.
            NotFoundError: no such record, or it belongs to another owner.
        """
        if not self.config.has_soft_delete:
            raise UnsupportedOperationError(self.collection, "unarchive")

        tenant = await self._resolver.resolve()
        restored = await tenant.storage.update(
            self.collection,
            {"archived_at": None, "status": STATUS_ACTIVE},
            where=self._scope(record_id, tenant),
        )
        if not restored:
            raise NotFoundError(self.collection, record_id)

        await self._revalidate()
        logger.info("Record restored", collection=self.collection, record_id=record_id)

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def _scope(self, record_id: str, tenant: TenantContext) -> dict[str, Any]:
        return {"id": record_id, self.config.owner_id_column: tenant.owner_id}

    def _context(
        self,
        operation: Operation,
        tenant: TenantContext,
        record_id: str | None = None,
    ) -> OperationContext:
        return build_operation_context(
            operation,
            self.collection,
            tenant.owner_id,
            entity_id=record_id,
            metadata=correlation_metadata(),
        )

    async def _cache_key(self, idempotency_key: str | None) -> str | None:
        if not idempotency_key:
            return None
        return scoped_key(await self._resolver.caller_id(), idempotency_key)

    def _strip_protected(self, payload: dict[str, Any]) -> dict[str, Any]:
        protected = {"id", self.config.owner_id_column}
        if self.config.has_soft_delete:
            protected.update({"archived_at", "status"})
        return {key: value for key, value in payload.items() if key not in protected}

    async def _revalidate(self) -> None:
        await notify_best_effort(self._revalidator, self.config.revalidate_paths, entity=self.collection)


def create_crud_operations(
    collection: str,
    insert_schema: type[InsertT],
    update_schema: type[UpdateT],
    *,
    storage: RecordStorage,
    identity: IdentityProvider,
    options: CRUDOptions | None = None,
    idempotency_store: IdempotencyStore | None = None,
    revalidator: RevalidationNotifier | None = None,
    privileged_storage: RecordStorage | None = None,
    development_mode: bool | None = None,
) -> CRUDOperations[InsertT, UpdateT]:
    """Build the operation set for ``collection``. See CRUDOperations."""
    return CRUDOperations(
        collection,
        insert_schema,
        update_schema,
        storage=storage,
        identity=identity,
        options=options,
        idempotency_store=idempotency_store,
        revalidator=revalidator,
        privileged_storage=privileged_storage,
        development_mode=development_mode,
    )


def _record_id(record: Record) -> str | None:
    value = record.get("id")
    return None if value is None else str(value)


def _check_pagination(collection: str, query: QueryOptions) -> None:
    for name in ("limit", "offset"):
        value = getattr(query, name)
        if value is not None and value < 0:
            raise ValidationError(
                f"Invalid {collection} query",
                issues=[{"type": "greater_than_equal", "loc": [name], "msg": f"{name} must be >= 0"}],
                entity=collection,
            )
