"""
Idempotency cache for retried create/update calls.

A caller may pass an idempotency key with a mutating call. While the key is
fresh, repeating the call returns the stored result without touching
validation, hooks or storage. Entries expire after a fixed TTL (5 minutes
by default) and are purged lazily on lookup.

Each operation set owns its own store unless one is injected, so separate
collections never share cached results by accident.
Keys are scoped to the caller identity (see scoped_key), so one tenant can
never replay another tenant's result by reusing its key. Results are
deep-copied on the way in and out.
"""

from __future__ import annotations

import copy
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from shared.config.logging import get_logger
from shared.config.settings import settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Stored operation result."""
    result: Any
    stored_at: float


@dataclass(frozen=True)
class CacheHit:
    """
    Lookup result wrapper.

    Separates "cached None" from "not cached".
    """
    result: Any


class IdempotencyStore(Protocol):
    """Key -> result store with TTL semantics."""

    def lookup(self, key: str) -> CacheHit | None:
        """Return the fresh entry for ``key`` or None."""
        ...

    def store(self, key: str, result: Any) -> None:
        """Record ``result`` under ``key`` (last write wins)."""
        ...

    def clear(self) -> None:
        """Drop every entry."""
        ...


class InMemoryIdempotencyStore:
    """
    Process-local idempotency store.

    Guarded by a threading.Lock so it can be shared by concurrent
    coroutines and by threadpool workers alike. The purge pass runs under
    the same lock as lookups and stores.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = settings.idempotency_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge_expired(self, now: float) -> int:
        """Remove every expired entry. Caller must hold the lock."""
        expired = [k for k, e in self._entries.items() if now - e.stored_at > self._ttl]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def lookup(self, key: str) -> CacheHit | None:
        with self._lock:
            now = self._clock()
            purged = self._purge_expired(now)
            if purged:
                logger.debug("Purged expired idempotency entries", count=purged)

            entry = self._entries.get(key)
            if entry is None or now - entry.stored_at > self._ttl:
                return None
            return CacheHit(copy.deepcopy(entry.result))

    def store(self, key: str, result: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(result=copy.deepcopy(result), stored_at=self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def scoped_key(caller_id: str | None, key: str) -> str:
    """Cache key for ``key`` sent by ``caller_id`` ("-" for anonymous callers)."""
    return f"{caller_id or '-'}:{key}"
