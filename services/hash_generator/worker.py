"""Fixed-rate issuing worker for paste hashes.

Tick Loop
=========
::
    ┌───────────┐  tick   ┌────────────┐ batch full ┌───────────┐
    │ wait for  │────────▶│ generate() │───────────▶│ publish() │
    │ stop/tick │         │ append     │            │ clear     │
    └─────┬─────┘         └─────┬──────┘            └─────┬─────┘
          │ stop event          └─────────────┬───────────┘
          ▼                                   ▼
    ┌───────────┐                       next tick
    │  return   │  (partial batch dropped)
    └───────────┘

Key Behaviours
===============
- Ticks are scheduled against the loop clock, so slow publishes do not drift
  the rate upwards; missed ticks are not replayed.
- A failed generation skips the tick; a failed publish drops the batch.
- Workers share nothing but the publisher, so throughput scales with their count.
"""

import asyncio
import logging
from dataclasses import dataclass

from prometheus_client import Counter

from app.interfaces import IdentifierPublisher
from services.hash_generator.generator import HashGenerator

__all__ = ["IssuingWorker", "IssuingWorkerStats"]

HASHES_GENERATED_TOTAL = Counter(
    "hash_generator_generated_total",
    "Identifiers generated by issuing workers",
    ["worker"],
)
HASHES_PUBLISHED_TOTAL = Counter(
    "hash_generator_published_total",
    "Identifiers acknowledged by the allocation topic",
    ["worker"],
)
HASH_WORKER_FAILURES_TOTAL = Counter(
    "hash_generator_failures_total",
    "Generation and publish failures of issuing workers",
    ["worker", "stage"],
)


@dataclass
class IssuingWorkerStats:
    generated: int = 0
    published: int = 0
    generate_failures: int = 0
    publish_failures: int = 0


class IssuingWorker:
    """Generates one identifier per tick and publishes them in batches."""

    def __init__(
        self,
        worker_id: int,
        generator: HashGenerator,
        publisher: IdentifierPublisher,
        *,
        rate: float = 10.0,
        batch_size: int = 1,
        logger: logging.Logger | None = None,
    ):
        if rate <= 0:
            raise ValueError(f"rate must be > 0, got {rate}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.worker_id = worker_id
        self._generator = generator
        self._publisher = publisher
        self._interval = 1.0 / rate
        self._batch_size = batch_size
        self._logger = logger or logging.getLogger("hash-generator")
        self._label = str(worker_id)
        self.stats = IssuingWorkerStats()

    async def run(self, stop_event: asyncio.Event) -> IssuingWorkerStats:
        loop = asyncio.get_running_loop()
        batch: list[str] = []
        next_tick = loop.time() + self._interval
        self._logger.info(f"worker {self.worker_id} started, interval {self._interval:.3f}s")

        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=max(0.0, next_tick - loop.time()))
                break
            except asyncio.TimeoutError:
                pass

            next_tick += self._interval
            now = loop.time()
            if next_tick < now:
                next_tick = now + self._interval

            try:
                identifier = self._generator.generate()
            except Exception as exc:
                self.stats.generate_failures += 1
                HASH_WORKER_FAILURES_TOTAL.labels(worker=self._label, stage="generate").inc()
                self._logger.error(f"worker {self.worker_id} failed to generate hash: {exc}")
                continue

            self.stats.generated += 1
            HASHES_GENERATED_TOTAL.labels(worker=self._label).inc()
            batch.append(identifier)
            if len(batch) < self._batch_size:
                continue

            await self._flush(batch)
            batch = []

        if batch:
            self._logger.debug(f"worker {self.worker_id} dropped {len(batch)} unpublished hashes on shutdown")
        self._logger.info(f"worker {self.worker_id} stopped: {self.stats}")
        return self.stats

    async def _flush(self, batch: list[str]) -> None:
        try:
            await self._publisher.publish(batch)
        except Exception as exc:
            self.stats.publish_failures += 1
            HASH_WORKER_FAILURES_TOTAL.labels(worker=self._label, stage="publish").inc()
            self._logger.error(f"worker {self.worker_id} failed to publish {len(batch)} hashes: {exc}")
            return
        self.stats.published += len(batch)
        HASHES_PUBLISHED_TOTAL.labels(worker=self._label).inc(len(batch))
