"""
CRUD Services - Generic record operations with tenant isolation.

Provides:
- create_crud_operations / CRUDOperations: list, get, create, update,
  delete, archive, unarchive for any collection
- CRUDHooks / OperationContext: lifecycle callbacks and their context
- TenantResolver and identity providers
- InMemoryIdempotencyStore: TTL cache for retried mutations
- Revalidation notifiers (log, callback, Redis pub/sub)
- SqlAlchemyRecordStorage: storage on SQLAlchemy Core tables
"""

from .context import Operation, OperationContext, build_operation_context
from .factory import (
    CRUDOperations,
    CRUDOptions,
    QueryOptions,
    ResolvedCRUDConfig,
    create_crud_operations,
    STATUS_ACTIVE,
    STATUS_ARCHIVED,
)
from .hooks import CRUDHooks
from .idempotency import CacheHit, IdempotencyStore, InMemoryIdempotencyStore
from .repository import SqlAlchemyRecordStorage
from .revalidation import (
    CallbackRevalidationNotifier,
    LoggingRevalidationNotifier,
    RedisRevalidationNotifier,
    RevalidationNotifier,
)
from .storage import RecordStorage, SortSpec
from .tenant import (
    ContextIdentityProvider,
    IdentityProvider,
    StaticIdentityProvider,
    TenantContext,
    TenantResolver,
    bind_identity,
)
from .validation import normalize_identifiers, validate_payload

__all__ = [
    # Factory
    "CRUDOperations",
    "CRUDOptions",
    "QueryOptions",
    "ResolvedCRUDConfig",
    "create_crud_operations",
    "STATUS_ACTIVE",
    "STATUS_ARCHIVED",
    # Hooks
    "CRUDHooks",
    "Operation",
    "OperationContext",
    "build_operation_context",
    # Idempotency
    "CacheHit",
    "IdempotencyStore",
    "InMemoryIdempotencyStore",
    # Revalidation
    "RevalidationNotifier",
    "LoggingRevalidationNotifier",
    "CallbackRevalidationNotifier",
    "RedisRevalidationNotifier",
    # Storage
    "RecordStorage",
    "SortSpec",
    "SqlAlchemyRecordStorage",
    # Tenant
    "IdentityProvider",
    "StaticIdentityProvider",
    "ContextIdentityProvider",
    "bind_identity",
    "TenantContext",
    "TenantResolver",
    # Validation
    "normalize_identifiers",
    "validate_payload",
]
