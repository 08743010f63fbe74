"""Paste Service Layer - Core Business Logic

This module provides the paste lifecycle engine: saving text under a
pre-generated hash, reading it back through a popularity-driven cache, and
deleting it consistently across the metadata and blob stores.

Architecture Overview
=====================
::
    ┌─────────────────────────────────────────────────────────────┐
    │                      PasteService                           │
    │  ┌──────────────┐  ┌──────────────┐  ┌──────────────────┐   │
    │  │    save()    │  │    get()     │  │     delete()     │   │
    │  │ claim hash   │  │ cache-aside  │  │ cache, metadata, │   │
    │  │ blob, meta   │  │ lazy expiry  │  │ then blob        │   │
    │  └──────────────┘  └──────────────┘  └──────────────────┘   │
    └─────────────────────────────────────────────────────────────┘
          │                 │                 │              │
          ▼                 ▼                 ▼              ▼
    ┌───────────┐   ┌──────────────┐   ┌───────────┐   ┌──────────┐
    │   Kafka   │   │  PostgreSQL  │   │   MinIO   │   │  Redis   │
    │  (hashes) │   │  (metadata)  │   │  (blobs)  │   │ (cache)  │
    └───────────┘   └──────────────┘   └───────────┘   └──────────┘

Request Flow Diagrams
=====================

Save Flow
---------
::
    ┌─────────────┐
    │ consume one │──FAIL──▶ ALLOCATION_UNAVAILABLE (no side effects)
    │ hash (Kafka)│
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ put blob    │──FAIL──▶ STORE_UNAVAILABLE (no metadata written)
    │ (MinIO)     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ insert row  │──FAIL──▶ STORE_UNAVAILABLE (orphan blob accepted)
    │ (SQL)       │
    └──────┬──────┘
           ▼
      return hash

Get Flow
--------
::
    ┌─────────────┐
    │ cache GET   │──HIT──▶ incr popularity ──▶ return cached text
    └──────┬──────┘
        MISS│
           ▼
    ┌─────────────┐
    │ metadata    │──none──▶ NOT_FOUND
    │ row         │──past──▶ EXPIRED
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ blob GET    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ incr        │──count >= threshold──▶ cache SET (best effort)
    │ popularity  │
    └──────┬──────┘
           ▼
      return text

Key Behaviours
===============
- The cache is advisory: every cache or popularity failure is logged and ignored.
- Expiry is decided by the metadata row only; cached copies expire with it.
- A claimed hash that already has a metadata row (a redelivered queue
  message) is skipped and the next one is claimed, up to CLAIM_ATTEMPTS.
- Delete removes metadata before the blob so a paste is invisible as soon as
  its row is gone, even if blob removal fails afterwards.
- If cache eviction fails during delete, a copy promoted earlier keeps being
  served until its expires_at; such failures are counted in
  pastebin_delete_eviction_failures_total.
- No locking: concurrent operations on one hash may interleave.

Usage Examples
==============
```python
service = PasteService(queue, metadata, blobs, cache, popularity_threshold=500)

hash_ = await service.save("hello", datetime.timedelta(days=1))
text = await service.get(hash_)
await service.delete(hash_)
```
"""

import datetime
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from prometheus_client import Counter, Histogram

from app.enums import CacheStatus, ErrorKind, RequestStatus
from app.errors import PasteError
from app.interfaces import BlobStore, IdentifierQueue, MetadataStore, PasteCache

__all__ = ["PasteService", "utcnow"]

T = TypeVar("T")


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

PASTE_SAVE_REQUESTS_TOTAL = Counter(
    "pastebin_save_requests_total",
    "Total paste save requests",
    ["status"],
)
PASTE_GET_REQUESTS_TOTAL = Counter(
    "pastebin_get_requests_total",
    "Total paste get requests",
    ["status", "cache_hit"],
)
PASTE_DELETE_REQUESTS_TOTAL = Counter(
    "pastebin_delete_requests_total",
    "Total paste delete requests",
    ["status"],
)
PASTE_SAVE_DURATION = Histogram(
    "pastebin_save_duration_seconds",
    "Time taken to save pastes",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
PASTE_GET_DURATION = Histogram(
    "pastebin_get_duration_seconds",
    "Time taken to read pastes",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5],
)
CACHE_PROMOTIONS_TOTAL = Counter(
    "pastebin_cache_promotions_total",
    "Pastes copied into the cache after crossing the popularity threshold",
)
CACHE_FAILURES_TOTAL = Counter(
    "pastebin_cache_failures_total",
    "Ignored cache failures",
    ["operation"],
)
DUPLICATE_HASHES_TOTAL = Counter(
    "pastebin_duplicate_hashes_total",
    "Claimed hashes skipped because a paste already uses them",
)
DELETE_EVICTION_FAILURES_TOTAL = Counter(
    "pastebin_delete_eviction_failures_total",
    "Deletes whose cache eviction failed, leaving a cached copy until expiry",
)

CLAIM_ATTEMPTS = 3


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


# ============================================================================
# CORE SERVICE CLASS
# ============================================================================


class PasteService:
    """Orchestrates saves, reads and deletes across the paste backends.

    One instance is built per process at startup and shared by every request;
    it holds no per-request state.

    Example:
        >>> service = PasteService(queue, metadata, blobs, cache, popularity_threshold=3)
        >>> hash_ = await service.save("hello", datetime.timedelta(days=1))
        >>> await service.get(hash_)
        'hello'
    """

    def __init__(
        self,
        queue: IdentifierQueue,
        metadata: MetadataStore,
        blobs: BlobStore,
        cache: PasteCache,
        *,
        popularity_threshold: int,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        clock: Callable[[], datetime.datetime] = utcnow,
    ):
        if popularity_threshold < 1:
            raise ValueError("popularity_threshold must be >= 1")
        self._queue = queue
        self._metadata = metadata
        self._blobs = blobs
        self._cache = cache
        self._threshold = popularity_threshold
        self._logger = logger or logging.getLogger("pastebin")
        self._clock = clock

    @property
    def popularity_threshold(self) -> int:
        return self._threshold

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def save(self, content: str, ttl: datetime.timedelta) -> str:
        """Store ``content`` under a freshly claimed hash.

        Args:
            content: Text to store.
            ttl: Retention period; must be positive.

        Returns:
            str: The hash the paste is reachable under.

        Raises:
            ValueError: If ttl is not positive.
            PasteError: ALLOCATION_UNAVAILABLE if no hash could be claimed,
                STORE_UNAVAILABLE if the blob or metadata write failed.
        """
        if ttl <= datetime.timedelta(0):
            raise ValueError("ttl must be positive")

        start_time = time.perf_counter()
        try:
            identifier = await self._claim_identifier()
            await self._guard(
                ErrorKind.STORE_UNAVAILABLE,
                "blob.put",
                lambda: self._blobs.put(identifier, content.encode("utf-8")),
            )

            created_at = self._clock()
            expires_at = created_at + ttl
            try:
                await self._guard(
                    ErrorKind.STORE_UNAVAILABLE,
                    "metadata.insert",
                    lambda: self._metadata.insert(identifier, created_at, expires_at),
                )
            except PasteError:
                self._logger.warning(f"Metadata write failed after blob write, orphan blob left for {identifier}")
                raise

        except PasteError as exc:
            PASTE_SAVE_DURATION.observe(time.perf_counter() - start_time)
            PASTE_SAVE_REQUESTS_TOTAL.labels(status=exc.kind.value).inc()
            self._logger.error(f"Paste save failed: {exc}")
            raise

        duration = time.perf_counter() - start_time
        PASTE_SAVE_DURATION.observe(duration)
        PASTE_SAVE_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        self._logger.info(f"Paste saved: {identifier} (expires {expires_at.isoformat()}) in {duration:.3f}s")
        return identifier

    async def get(self, identifier: str) -> str:
        """Read a paste, serving popular ones from the cache.

        Raises:
            PasteError: NOT_FOUND if no metadata row exists, EXPIRED if the row's
                expiry has passed, STORE_UNAVAILABLE on metadata/blob failures.
        """
        start_time = time.perf_counter()

        cached = await self._cache_lookup(identifier)
        if cached is not None:
            await self._increment_popularity(identifier)
            PASTE_GET_DURATION.observe(time.perf_counter() - start_time)
            PASTE_GET_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=CacheStatus.HIT).inc()
            self._logger.debug(f"Cache hit for {identifier}")
            return cached

        try:
            content, expires_at = await self._read_from_stores(identifier)
        except PasteError as exc:
            PASTE_GET_DURATION.observe(time.perf_counter() - start_time)
            PASTE_GET_REQUESTS_TOTAL.labels(status=exc.kind.value, cache_hit=CacheStatus.MISS).inc()
            if exc.is_missing:
                self._logger.info(f"Paste {identifier} unavailable: {exc.kind.value}")
            else:
                self._logger.error(f"Paste read error for {identifier}: {exc}")
            raise

        views = await self._increment_popularity(identifier)
        if views is not None and views >= self._threshold:
            await self._promote(identifier, content, expires_at)

        PASTE_GET_DURATION.observe(time.perf_counter() - start_time)
        PASTE_GET_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=CacheStatus.MISS).inc()
        return content

    async def delete(self, identifier: str) -> None:
        """Remove a paste from every backend.

        Raises:
            PasteError: STORE_UNAVAILABLE if the metadata row could not be
                deleted (nothing else was touched), PARTIAL_DELETE_FAILURE if
                the row is gone but the blob could not be removed.
        """
        await self._evict(identifier)

        try:
            await self._guard(
                ErrorKind.STORE_UNAVAILABLE,
                "metadata.delete_by_identifier",
                lambda: self._metadata.delete_by_identifier(identifier),
            )
        except PasteError as exc:
            PASTE_DELETE_REQUESTS_TOTAL.labels(status=exc.kind.value).inc()
            self._logger.error(f"Paste delete failed for {identifier}: {exc}")
            raise

        try:
            await self._blobs.delete(identifier)
        except Exception as exc:
            PASTE_DELETE_REQUESTS_TOTAL.labels(status=ErrorKind.PARTIAL_DELETE_FAILURE).inc()
            self._logger.error(f"Blob delete failed for {identifier}, metadata already removed: {exc}")
            raise PasteError(
                ErrorKind.PARTIAL_DELETE_FAILURE, f"metadata removed but blob delete failed: {exc}"
            ) from exc

        PASTE_DELETE_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        self._logger.info(f"Paste deleted: {identifier}")

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    async def _guard(self, kind: ErrorKind, op: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run a backend call, classifying unexpected errors as ``kind``."""
        try:
            return await operation()
        except PasteError:
            raise
        except Exception as exc:
            raise PasteError(kind, f"{op}: {exc}") from exc

    async def _claim_identifier(self) -> str:
        """Claim a hash from the queue that no stored paste uses yet."""
        for _ in range(CLAIM_ATTEMPTS):
            identifier = await self._guard(ErrorKind.ALLOCATION_UNAVAILABLE, "queue.consume", self._queue.consume)
            existing = await self._guard(
                ErrorKind.STORE_UNAVAILABLE,
                "metadata.get_by_identifier",
                lambda: self._metadata.get_by_identifier(identifier),
            )
            if existing is None:
                return identifier
            DUPLICATE_HASHES_TOTAL.inc()
            self._logger.warning(f"Claimed hash {identifier} is already in use, claiming another")
        raise PasteError(ErrorKind.ALLOCATION_UNAVAILABLE, f"no unused hash after {CLAIM_ATTEMPTS} claims")

    async def _read_from_stores(self, identifier: str) -> tuple[str, datetime.datetime]:
        row = await self._guard(
            ErrorKind.STORE_UNAVAILABLE,
            "metadata.get_by_identifier",
            lambda: self._metadata.get_by_identifier(identifier),
        )
        if row is None:
            raise PasteError(ErrorKind.NOT_FOUND, f"no paste with hash {identifier}")
        if row.is_expired(self._clock()):
            raise PasteError(ErrorKind.EXPIRED, f"paste {identifier} expired at {row.expires_at.isoformat()}")

        try:
            data = await self._guard(ErrorKind.STORE_UNAVAILABLE, "blob.get", lambda: self._blobs.get(identifier))
        except PasteError as exc:
            if exc.kind is ErrorKind.NOT_FOUND:
                raise PasteError(ErrorKind.STORE_UNAVAILABLE, f"blob missing for {identifier}") from exc
            raise
        return data.decode("utf-8"), row.expires_at

    async def _cache_lookup(self, identifier: str) -> str | None:
        try:
            return await self._cache.get(identifier)
        except Exception as exc:
            CACHE_FAILURES_TOTAL.labels(operation="get").inc()
            self._logger.warning(f"Cache lookup failed for {identifier}, falling back to stores: {exc}")
            return None

    async def _increment_popularity(self, identifier: str) -> int | None:
        try:
            return await self._cache.increment_popularity(identifier)
        except Exception as exc:
            CACHE_FAILURES_TOTAL.labels(operation="increment_popularity").inc()
            self._logger.warning(f"Popularity increment failed for {identifier}: {exc}")
            return None

    async def _promote(self, identifier: str, content: str, expires_at: datetime.datetime) -> None:
        try:
            await self._cache.set(identifier, content, expires_at=expires_at)
        except Exception as exc:
            CACHE_FAILURES_TOTAL.labels(operation="set").inc()
            self._logger.warning(f"Cache warm failed for {identifier}: {exc}")
            return
        CACHE_PROMOTIONS_TOTAL.inc()
        self._logger.debug(f"Promoted {identifier} into cache")

    async def _evict(self, identifier: str) -> None:
        try:
            await self._cache.delete(identifier)
        except Exception as exc:
            CACHE_FAILURES_TOTAL.labels(operation="delete").inc()
            DELETE_EVICTION_FAILURES_TOTAL.inc()
            self._logger.warning(f"Cache eviction failed for {identifier}, a cached copy may outlive the delete: {exc}")
