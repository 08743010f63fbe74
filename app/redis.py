"""Redis hot cache and popularity tracker for pastes.

This module provides the advisory cache in front of blob storage: cached paste
bodies keyed by hash, plus a sorted set counting reads per hash that decides
when a paste is popular enough to be promoted.

Flow Diagram — Redis Operations
===============================
::
    ┌─────────────┐
    │ PasteService│
    │   get()     │
    └──────┬──────┘
           ▼
    ┌─────────────┐       ┌──────────────────┐
    │ GET <hash>  │──────▶│ ZINCRBY popular_ │
    │             │       │ pastes 1 <hash>  │
    └──────┬──────┘       └────────┬─────────┘
           │                       ▼
           │              ┌──────────────────┐
           │              │ count>=threshold │
           │              │ SET <hash> EXAT  │
           │              └──────────────────┘
           ▼
    ┌─────────────┐
    │ DEL <hash>  │  (delete / sweep)
    │ ZREM <hash> │
    └─────────────┘

How to Use
===========
**Step 1 — Create on startup**::
    cache = RedisPasteCache.from_settings(settings)

**Step 2 — Use from the service**::
    content = await cache.get("abc123")
    count = await cache.increment_popularity("abc123")

**Step 3 — Cleanup on shutdown**::
    await cache.close()

Key Behaviours
===============
- Entries carry no TTL of their own beyond the paste's expires_at.
- Every failure surfaces as PasteError(STORE_UNAVAILABLE); callers decide whether to ignore it.
- UTF-8 encoding with decode_responses for string operations.
"""

import datetime
import logging

import redis.asyncio as redis
from prometheus_client import Counter
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.config import Settings
from app.enums import ErrorKind
from app.errors import PasteError
from app.retry import RetryPolicy, call_with_retry

__all__ = ["RedisPasteCache"]

logger = logging.getLogger("pastebin")

REDIS_OPERATIONS_TOTAL = Counter(
    "pastebin_redis_operations_total",
    "Total Redis operations",
)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, (RedisConnectionError, RedisTimeoutError))


class RedisPasteCache:
    """Paste cache and popularity counter on a single Redis database."""

    def __init__(
        self,
        client: redis.Redis,
        popularity_key: str = "popular_pastes",
        retry_policy: RetryPolicy | None = None,
    ):
        self._client = client
        self._popularity_key = popularity_key
        self._retry = retry_policy or RetryPolicy()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisPasteCache":
        client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
        return cls(client, settings.POPULARITY_KEY, RetryPolicy.from_settings(settings))

    async def _run(self, op: str, operation):
        REDIS_OPERATIONS_TOTAL.inc()
        try:
            return await call_with_retry(operation, self._retry, is_retryable=_is_transient, op=f"cache.{op}")
        except RedisError as exc:
            raise PasteError(ErrorKind.STORE_UNAVAILABLE, f"cache.{op}: {exc}") from exc

    async def get(self, identifier: str) -> str | None:
        return await self._run("get", lambda: self._client.get(identifier))

    async def set(self, identifier: str, content: str, expires_at: datetime.datetime | None = None) -> None:
        if expires_at is None:
            await self._run("set", lambda: self._client.set(identifier, content))
        else:
            await self._run("set", lambda: self._client.set(identifier, content, exat=expires_at))

    async def delete(self, identifier: str) -> None:
        async def _delete() -> None:
            pipe = self._client.pipeline(transaction=False)
            pipe.delete(identifier)
            pipe.zrem(self._popularity_key, identifier)
            await pipe.execute()

        await self._run("delete", _delete)

    async def increment_popularity(self, identifier: str) -> int:
        score = await self._run(
            "increment_popularity",
            lambda: self._client.zincrby(self._popularity_key, 1, identifier),
        )
        return int(score)

    async def ping(self) -> None:
        await self._run("ping", lambda: self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()
