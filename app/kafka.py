"""Kafka consumer that hands out pre-generated paste hashes.

The hash generator publishes identifiers to KAFKA_HASH_TOPIC; every save claims
exactly one of them here. Consumption is serialized with a lock so concurrent
saves in one process never see the same message, and horizontally scaled
instances are arbitrated by the consumer group.
"""

import asyncio
import logging

from aiokafka import AIOKafkaConsumer
from aiokafka.errors import KafkaError
from prometheus_client import Counter

from app.config import Settings
from app.enums import ErrorKind
from app.errors import PasteError

__all__ = ["KafkaIdentifierQueue"]

logger = logging.getLogger("pastebin")

HASHES_CLAIMED_TOTAL = Counter(
    "pastebin_hashes_claimed_total",
    "Identifiers claimed from the allocation queue",
)
HASH_CLAIM_FAILURES_TOTAL = Counter(
    "pastebin_hash_claim_failures_total",
    "Failed attempts to claim an identifier",
    ["reason"],
)


class KafkaIdentifierQueue:
    """Allocation queue reader backed by an aiokafka consumer."""

    def __init__(self, consumer: AIOKafkaConsumer, timeout_seconds: float | None = None):
        self._consumer = consumer
        self._timeout = timeout_seconds
        self._lock = asyncio.Lock()
        self._started = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "KafkaIdentifierQueue":
        consumer = AIOKafkaConsumer(
            settings.KAFKA_HASH_TOPIC,
            bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
            group_id=settings.KAFKA_CONSUMER_GROUP,
            auto_offset_reset=settings.KAFKA_AUTO_OFFSET_RESET,
            enable_auto_commit=True,
            value_deserializer=lambda payload: payload.decode("utf-8"),
        )
        return cls(consumer, settings.ALLOCATION_TIMEOUT_SECONDS)

    async def start(self) -> None:
        if self._started:
            return
        await self._consumer.start()
        self._started = True

    async def stop(self) -> None:
        if not self._started:
            return
        await self._consumer.stop()
        self._started = False

    async def consume(self) -> str:
        if not self._started:
            HASH_CLAIM_FAILURES_TOTAL.labels(reason="not_started").inc()
            raise PasteError(ErrorKind.ALLOCATION_UNAVAILABLE, "allocation queue is not running")

        async with self._lock:
            try:
                record = await asyncio.wait_for(self._consumer.getone(), timeout=self._timeout)
            except asyncio.TimeoutError as exc:
                HASH_CLAIM_FAILURES_TOTAL.labels(reason="timeout").inc()
                raise PasteError(
                    ErrorKind.ALLOCATION_UNAVAILABLE, f"no identifier available within {self._timeout}s"
                ) from exc
            except KafkaError as exc:
                HASH_CLAIM_FAILURES_TOTAL.labels(reason="broker").inc()
                raise PasteError(ErrorKind.ALLOCATION_UNAVAILABLE, f"kafka.consume: {exc}") from exc

        identifier = record.value
        if not identifier:
            HASH_CLAIM_FAILURES_TOTAL.labels(reason="empty").inc()
            raise PasteError(ErrorKind.ALLOCATION_UNAVAILABLE, "received an empty identifier")

        HASHES_CLAIMED_TOTAL.inc()
        logger.debug(f"Claimed identifier {identifier} from partition {record.partition}")
        return identifier
