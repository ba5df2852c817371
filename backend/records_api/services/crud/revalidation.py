"""
Revalidation signals sent after successful mutations.

Downstream caches (rendered pages, API caches) are told which paths or
tags went stale. Delivery is best effort: notify_best_effort() logs and
discards every failure so a mutation never fails because of it.
"""

from __future__ import annotations

import inspect
import json
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Protocol, Sequence, Union

import redis.asyncio as redis

from shared.config.logging import get_logger
from shared.config.settings import REDIS_URL, settings

logger = get_logger(__name__)

REVALIDATE = "REVALIDATE"


class RevalidationNotifier(Protocol):
    """Receives the stale paths after a mutation. May be sync or async."""

    def notify(self, paths: Sequence[str]) -> Union[None, Awaitable[None]]:
        ...


class LoggingRevalidationNotifier:
    """Default notifier: records the signal in the log only."""

    def notify(self, paths: Sequence[str]) -> None:
        logger.debug("Revalidation requested", paths=list(paths))


class CallbackRevalidationNotifier:
    """Calls ``callback(path)`` for every path, awaiting async callbacks."""

    def __init__(self, callback: Callable[[str], Any]):
        self._callback = callback

    async def notify(self, paths: Sequence[str]) -> None:
        for path in paths:
            result = self._callback(path)
            if inspect.isawaitable(result):
                await result


class RedisRevalidationNotifier:
    """
    Publishes revalidation signals on a Redis pub/sub channel.

    Message format:
        {"type": "REVALIDATE", "paths": ["/contacts"], "ts": "<iso8601>"}
    """

    def __init__(self, client: redis.Redis, channel: str | None = None):
        self._client = client
        self._channel = channel or settings.revalidation_channel

    @classmethod
    def from_url(cls, url: str | None = None, channel: str | None = None) -> RedisRevalidationNotifier:
        client = redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
            health_check_interval=30,
        )
        return cls(client, channel)

    @property
    def channel(self) -> str:
        return self._channel

    async def notify(self, paths: Sequence[str]) -> None:
        message = json.dumps({
            "type": REVALIDATE,
            "paths": list(paths),
            "ts": datetime.now(timezone.utc).isoformat(),
        })
        receivers = await self._client.publish(self._channel, message)
        logger.debug("Revalidation published", channel=self._channel, receivers=receivers)


async def notify_best_effort(
    notifier: RevalidationNotifier,
    paths: Sequence[str],
    *,
    entity: str,
) -> bool:
    """
    Deliver a revalidation signal, swallowing any failure.

    Returns True if the notifier completed without raising.
    """
    if not paths:
        return True
    try:
        result = notifier.notify(list(paths))
        if inspect.isawaitable(result):
            await result
        return True
    except Exception as exc:
        logger.warning(
            "Revalidation failed, continuing",
            entity=entity,
            paths=list(paths),
            error=str(exc),
        )
        return False
