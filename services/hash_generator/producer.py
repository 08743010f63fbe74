"""Kafka publisher for freshly generated paste hashes."""

import asyncio
import logging
import time

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from app.config import Settings
from app.enums import ErrorKind
from app.errors import PasteError
from app.interfaces import IdentifierPublisher

__all__ = ["KafkaHashPublisher"]

logger = logging.getLogger("hash-generator")


class KafkaHashPublisher:
    """Sends identifier batches to the allocation topic and waits for acks."""

    def __init__(self, producer: AIOKafkaProducer, topic: str):
        self._producer = producer
        self._topic = topic
        self._started = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "KafkaHashPublisher":
        producer = AIOKafkaProducer(
            bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
            key_serializer=lambda key: key.encode("utf-8"),
            value_serializer=lambda value: value.encode("utf-8"),
            acks="all",
        )
        return cls(producer, settings.KAFKA_HASH_TOPIC)

    async def start(self) -> None:
        if self._started:
            return
        await self._producer.start()
        self._started = True

    async def stop(self) -> None:
        if not self._started:
            return
        await self._producer.stop()
        self._started = False

    async def publish(self, batch: list[str], worker_id: int = 0) -> None:
        if not batch:
            return
        try:
            futures = [
                await self._producer.send(self._topic, value=identifier, key=f"w{worker_id}-{time.time_ns()}")
                for identifier in batch
            ]
            await asyncio.gather(*futures)
        except KafkaError as exc:
            raise PasteError(ErrorKind.ALLOCATION_UNAVAILABLE, f"kafka.publish: {exc}") from exc
        logger.debug(f"worker {worker_id} published {len(batch)} hashes to {self._topic}")

    def for_worker(self, worker_id: int) -> IdentifierPublisher:
        return _WorkerPublisher(self, worker_id)


class _WorkerPublisher:
    """Publisher view that stamps message keys with one worker's id."""

    def __init__(self, parent: KafkaHashPublisher, worker_id: int):
        self._parent = parent
        self._worker_id = worker_id

    async def publish(self, batch: list[str]) -> None:
        await self._parent.publish(batch, worker_id=self._worker_id)
