"""
Tenant resolution for record operations.

Every operation is scoped to the caller's owner identity. The identity
comes from an IdentityProvider; with profile indirection enabled it is
translated into a profile ID through a read on the profiles collection.

Usage:
    resolver = TenantResolver(StaticIdentityProvider(user_id), storage)
    tenant = await resolver.resolve()
    rows = await tenant.storage.select("contacts", where={"owner_id": tenant.owner_id})
"""

from __future__ import annotations

import copy
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Iterator, Protocol

from records_api.services.crud.storage import RecordStorage
from shared.config.logging import get_logger, mask_user_id
from shared.config.settings import settings
from shared.utils.exceptions import NotAuthenticatedError

logger = get_logger(__name__)


class IdentityProvider(Protocol):
    """Source of the authenticated caller identity."""

    async def current_user_id(self) -> str | None:
        """Authenticated user ID, or None for anonymous callers."""
        ...


class StaticIdentityProvider:
    """Identity fixed at construction (per request, per job, tests)."""

    def __init__(self, user_id: str | None):
        self._user_id = user_id

    async def current_user_id(self) -> str | None:
        return self._user_id


# Context variable for the caller identity (task/thread local)
current_identity_var: ContextVar[str | None] = ContextVar("current_identity", default=None)


class ContextIdentityProvider:
    """Identity read from ``current_identity_var``."""

    async def current_user_id(self) -> str | None:
        return current_identity_var.get()


@contextmanager
def bind_identity(user_id: str | None) -> Iterator[None]:
    """
    Bind ``user_id`` for ContextIdentityProvider inside the block.

    Usage:
        with bind_identity(user_id):
            await contacts.list_all()
    """
    token = current_identity_var.set(user_id)
    try:
        yield
    finally:
        current_identity_var.reset(token)


@dataclass(frozen=True)
class TenantContext:
    """Storage handle and owner identity for one operation."""
    storage: RecordStorage
    owner_id: str
    user_id: str


class TenantResolver:
    """
    Resolve the owner identity used to scope record operations.

    Without an identity the resolver either fails with
    NotAuthenticatedError or, in development mode, serves the caller as
    ``dev_user_id`` through the privileged storage handle so local work
    runs without a login.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        storage: RecordStorage,
        *,
        privileged_storage: RecordStorage | None = None,
        use_profile_lookup: bool = False,
        development_mode: bool | None = None,
        dev_user_id: str | None = None,
        profile_table: str | None = None,
        profile_auth_column: str | None = None,
    ):
        self._identity = identity
        self._storage = storage
        self._privileged_storage = privileged_storage
        self._use_profile_lookup = use_profile_lookup
        self._development_mode = settings.is_development if development_mode is None else development_mode
        self._dev_user_id = dev_user_id or settings.dev_user_id
        self._profile_table = profile_table or settings.profile_table
        self._profile_auth_column = profile_auth_column or settings.profile_auth_column

    def with_identity(self, identity: IdentityProvider) -> TenantResolver:
        """Copy of this resolver reading identity from ``identity``."""
        clone = copy.copy(self)
        clone._identity = identity
        return clone

    async def caller_id(self) -> str | None:
        """Raw caller identity, without profile lookup or dev fallback."""
        return await self._identity.current_user_id()

    async def resolve(self) -> TenantContext:
        """
        Establish storage handle and owner identity.

        Raises:
            NotAuthenticatedError: no identity outside development mode.
            StorageError: the profile lookup failed.
        """
        user_id = await self.caller_id()

        if not user_id:
            if not self._development_mode:
                raise NotAuthenticatedError()
            logger.warning(
                "No authenticated user found, using development identity",
                dev_user_id=self._dev_user_id,
            )
            storage = self._privileged_storage or self._storage
            return TenantContext(storage=storage, owner_id=self._dev_user_id, user_id=self._dev_user_id)

        owner_id = user_id
        if self._use_profile_lookup:
            owner_id = await self.lookup_profile_id(user_id)

        return TenantContext(storage=self._storage, owner_id=owner_id, user_id=user_id)

    async def lookup_profile_id(self, user_id: str) -> str:
        """
        Translate an auth identity into its profile ID.

        Falls back to ``user_id`` itself when no profile row exists.
        """
        profile = await self._storage.select_one(
            self._profile_table,
            columns="id",
            where={self._profile_auth_column: user_id},
        )
        if profile is None:
            logger.warning("Profile not found for user, using auth identity", user_id=mask_user_id(user_id))
            return user_id
        return str(profile["id"])
