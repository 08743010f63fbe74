"""Daily expiry sweep for stale pastes.

Reads are already protected by lazy expiry (a row past ``expires_at`` is
reported as expired); this sweeper performs the eager part, physically
removing expired pastes from the cache, the metadata store and blob storage.

State Machine
=============
::
    ┌──────┐   schedule   ┌─────────┐  time reached  ┌─────────┐
    │ IDLE │─────────────▶│ WAITING │───────────────▶│ RUNNING │
    └──────┘              └────┬────┘                └────┬────┘
        ▲                      │ stop event               │
        │                      ▼                          │
        │                 ┌─────────┐                     │
        │                 │ STOPPED │                     │
        │                 └─────────┘                     │
        └─────────────────────────────────────────────────┘

Per-hash Deletion Order
=======================
::
    cache (best effort) ──▶ metadata (skip hash on failure) ──▶ blob (log on failure)

Key Behaviours
===============
- Runs once a day at SWEEPER_HOUR:SWEEPER_MINUTE in SWEEPER_TIMEZONE; if that
  moment has already passed today the run is scheduled for tomorrow.
- Failures are never retried within a run; skipped hashes are picked up by the
  next scheduled run.
- Metadata goes before the blob so a paste is invisible once its row is gone.
- Optional orphan reconciliation deletes blobs that have no metadata row and
  are older than a grace period.
"""

import asyncio
import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass
from zoneinfo import ZoneInfo

from prometheus_client import Counter, Gauge

from app.config import Settings
from app.enums import SweeperState
from app.interfaces import MetadataStore, PasteCache, ReconcilableBlobStore
from app.paste_service import utcnow

__all__ = ["ExpirySweeper", "SweepReport", "next_run_at"]

SWEEPS_TOTAL = Counter(
    "pastebin_sweeps_total",
    "Completed expiry sweeps",
)
SWEEP_DELETIONS_TOTAL = Counter(
    "pastebin_sweep_deletions_total",
    "Pastes removed by the expiry sweeper",
)
SWEEP_FAILURES_TOTAL = Counter(
    "pastebin_sweep_failures_total",
    "Backend failures during expiry sweeps",
    ["backend"],
)
SWEEPER_LAST_RUN_TIMESTAMP = Gauge(
    "pastebin_sweeper_last_run_timestamp_seconds",
    "Unix time of the last completed sweep",
)


@dataclass
class SweepReport:
    """Outcome counters of a single sweep."""

    expired: int = 0
    deleted: int = 0
    cache_failures: int = 0
    metadata_failures: int = 0
    blob_failures: int = 0
    orphans_deleted: int = 0

    @property
    def deletions(self) -> int:
        return self.deleted + self.orphans_deleted


def next_run_at(now: datetime.datetime, hour: int, minute: int) -> datetime.datetime:
    """Next occurrence of ``hour:minute`` strictly after ``now``, in now's timezone."""
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += datetime.timedelta(days=1)
    return candidate


class ExpirySweeper:
    """Background task removing expired pastes from every backend."""

    def __init__(
        self,
        metadata: MetadataStore,
        blobs: ReconcilableBlobStore,
        cache: PasteCache,
        *,
        hour: int = 3,
        minute: int = 0,
        timezone: str = "UTC",
        reconcile_orphans: bool = False,
        orphan_grace: datetime.timedelta = datetime.timedelta(hours=1),
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime.datetime] = utcnow,
    ):
        self._metadata = metadata
        self._blobs = blobs
        self._cache = cache
        self._hour = hour
        self._minute = minute
        self._tz = ZoneInfo(timezone)
        self._reconcile_orphans = reconcile_orphans
        self._orphan_grace = orphan_grace
        self._logger = logger or logging.getLogger("pastebin")
        self._clock = clock
        self._state = SweeperState.IDLE
        self.last_report: SweepReport | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        metadata: MetadataStore,
        blobs: ReconcilableBlobStore,
        cache: PasteCache,
        logger: logging.Logger | None = None,
    ) -> "ExpirySweeper":
        return cls(
            metadata,
            blobs,
            cache,
            hour=settings.SWEEPER_HOUR,
            minute=settings.SWEEPER_MINUTE,
            timezone=settings.SWEEPER_TIMEZONE,
            reconcile_orphans=settings.SWEEPER_RECONCILE_ORPHANS,
            orphan_grace=datetime.timedelta(seconds=settings.SWEEPER_ORPHAN_GRACE_SECONDS),
            logger=logger,
        )

    @property
    def state(self) -> SweeperState:
        return self._state

    def seconds_until_next_run(self) -> float:
        now = self._clock().astimezone(self._tz)
        scheduled = next_run_at(now, self._hour, self._minute)
        # Subtract in UTC so DST transitions do not skew the delay.
        utc = datetime.timezone.utc
        return max(0.0, (scheduled.astimezone(utc) - now.astimezone(utc)).total_seconds())

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Sweep once per scheduled time until ``stop_event`` is set."""
        self._logger.info(f"Expiry sweeper started, daily at {self._hour:02d}:{self._minute:02d} {self._tz.key}")
        while not stop_event.is_set():
            delay = self.seconds_until_next_run()
            self._state = SweeperState.WAITING
            self._logger.debug(f"Next expiry sweep in {delay:.0f}s")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.sweep_once()
            except Exception as exc:
                self._state = SweeperState.IDLE
                self._logger.error(f"Expiry sweep aborted: {exc}")

        self._state = SweeperState.STOPPED
        self._logger.info("Expiry sweeper stopped")

    async def sweep_once(self) -> SweepReport:
        """Delete every paste whose expiry is at or before now."""
        self._state = SweeperState.RUNNING
        report = SweepReport()
        self._logger.info("Starting cleanup task...")

        try:
            try:
                expired = await self._metadata.list_expired(self._clock())
            except Exception as exc:
                SWEEP_FAILURES_TOTAL.labels(backend="metadata").inc()
                self._logger.error(f"Failed to get expired hashes: {exc}")
                return report

            report.expired = len(expired)
            if not expired:
                self._logger.info("No expired entries found")
            for identifier in expired:
                await self._remove(identifier, report)

            if self._reconcile_orphans:
                await self._reconcile(report)
        finally:
            self._state = SweeperState.IDLE
            self.last_report = report

        SWEEPS_TOTAL.inc()
        SWEEPER_LAST_RUN_TIMESTAMP.set_to_current_time()
        self._logger.info(
            f"Cleanup task completed: {report.deleted}/{report.expired} expired removed, "
            f"{report.metadata_failures} metadata failures, {report.blob_failures} blob failures, "
            f"{report.orphans_deleted} orphans removed"
        )
        return report

    async def _remove(self, identifier: str, report: SweepReport) -> None:
        try:
            await self._cache.delete(identifier)
        except Exception as exc:
            report.cache_failures += 1
            SWEEP_FAILURES_TOTAL.labels(backend="cache").inc()
            self._logger.warning(f"Failed to delete {identifier} from cache: {exc}")

        try:
            await self._metadata.delete_by_identifier(identifier)
        except Exception as exc:
            report.metadata_failures += 1
            SWEEP_FAILURES_TOTAL.labels(backend="metadata").inc()
            self._logger.error(f"Failed to delete metadata for {identifier}: {exc}")
            return

        report.deleted += 1
        SWEEP_DELETIONS_TOTAL.inc()

        try:
            await self._blobs.delete(identifier)
        except Exception as exc:
            report.blob_failures += 1
            SWEEP_FAILURES_TOTAL.labels(backend="blob").inc()
            self._logger.error(f"Failed to delete blob for {identifier}: {exc}")
            return

        self._logger.debug(f"Deleted expired paste {identifier}")

    async def _reconcile(self, report: SweepReport) -> None:
        try:
            objects = await self._blobs.list_objects()
        except Exception as exc:
            SWEEP_FAILURES_TOTAL.labels(backend="blob").inc()
            self._logger.error(f"Failed to list blobs for reconciliation: {exc}")
            return

        cutoff = self._clock() - self._orphan_grace
        for obj in objects:
            if obj.last_modified > cutoff:
                continue
            try:
                row = await self._metadata.get_by_identifier(obj.hash)
                if row is not None:
                    continue
                await self._blobs.delete(obj.hash)
            except Exception as exc:
                SWEEP_FAILURES_TOTAL.labels(backend="reconcile").inc()
                self._logger.error(f"Failed to reconcile blob {obj.hash}: {exc}")
                continue
            report.orphans_deleted += 1
            self._logger.info(f"Deleted orphan blob {obj.hash}")
