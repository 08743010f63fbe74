"""Hash generator, issuing worker and publisher tests."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiokafka.errors import KafkaError

from app.enums import ErrorKind
from app.errors import PasteError
from services.hash_generator.generator import ALPHABET, HashGenerator
from services.hash_generator.producer import KafkaHashPublisher
from services.hash_generator.worker import IssuingWorker


class RecordingPublisher:
    def __init__(self, fail: bool = False):
        self.batches: list[list[str]] = []
        self.fail = fail

    async def publish(self, batch: list[str]) -> None:
        if self.fail:
            raise PasteError(ErrorKind.ALLOCATION_UNAVAILABLE, "broker down")
        self.batches.append(list(batch))

    @property
    def identifiers(self) -> list[str]:
        return [identifier for batch in self.batches for identifier in batch]


async def _run_for(worker: IssuingWorker, seconds: float):
    stop_event = asyncio.Event()
    task = asyncio.create_task(worker.run(stop_event))
    await asyncio.sleep(seconds)
    stop_event.set()
    return await asyncio.wait_for(task, timeout=1.0)


# ============================================================================
# GENERATOR
# ============================================================================


def test_generated_hash_has_configured_length() -> None:
    generator = HashGenerator(length=12)
    assert len(generator.generate()) == 12


def test_generated_hash_is_alphanumeric() -> None:
    generator = HashGenerator(length=32)
    assert set(generator.generate()) <= set(ALPHABET)


def test_generated_hashes_are_unique() -> None:
    generator = HashGenerator(length=8)
    hashes = {generator.generate() for _ in range(1000)}
    assert len(hashes) == 1000


@pytest.mark.parametrize("length", [0, -1])
def test_invalid_length_rejected(length: int) -> None:
    with pytest.raises(ValueError):
        HashGenerator(length=length)


# ============================================================================
# ISSUING WORKER
# ============================================================================


@pytest.mark.asyncio
async def test_two_workers_issue_distinct_hashes() -> None:
    publisher = RecordingPublisher()
    generator = HashGenerator(length=8)
    stop_event = asyncio.Event()
    workers = [IssuingWorker(i, generator, publisher, rate=10) for i in range(2)]

    tasks = [asyncio.create_task(worker.run(stop_event)) for worker in workers]
    await asyncio.sleep(0.15)
    stop_event.set()
    await asyncio.wait_for(asyncio.gather(*tasks), timeout=1.0)

    assert len(publisher.identifiers) == 2
    assert len(set(publisher.identifiers)) == 2


@pytest.mark.asyncio
async def test_worker_publishes_full_batches() -> None:
    publisher = RecordingPublisher()
    worker = IssuingWorker(0, HashGenerator(), publisher, rate=100, batch_size=3)

    stats = await _run_for(worker, 0.2)

    assert publisher.batches
    assert all(len(batch) == 3 for batch in publisher.batches)
    assert stats.published == len(publisher.identifiers)
    assert stats.generated >= stats.published


@pytest.mark.asyncio
async def test_publish_failure_discards_batch_and_continues() -> None:
    publisher = RecordingPublisher(fail=True)
    worker = IssuingWorker(0, HashGenerator(), publisher, rate=100)

    stats = await _run_for(worker, 0.1)

    assert stats.publish_failures >= 2
    assert stats.published == 0


@pytest.mark.asyncio
async def test_generate_failure_skips_tick() -> None:
    publisher = RecordingPublisher()
    generator = MagicMock()
    generator.generate.side_effect = [RuntimeError("entropy"), "abcd1234", "efgh5678"] + ["zzzz0000"] * 100
    worker = IssuingWorker(0, generator, publisher, rate=100)

    stats = await _run_for(worker, 0.1)

    assert stats.generate_failures == 1
    assert publisher.identifiers[:2] == ["abcd1234", "efgh5678"]


@pytest.mark.asyncio
async def test_worker_stops_before_first_tick() -> None:
    publisher = RecordingPublisher()
    worker = IssuingWorker(0, HashGenerator(), publisher, rate=1)
    stop_event = asyncio.Event()
    stop_event.set()

    stats = await worker.run(stop_event)

    assert stats.generated == 0
    assert publisher.batches == []


@pytest.mark.parametrize("kwargs", [{"rate": 0}, {"batch_size": 0}])
def test_invalid_worker_configuration(kwargs) -> None:
    with pytest.raises(ValueError):
        IssuingWorker(0, HashGenerator(), RecordingPublisher(), **kwargs)


# ============================================================================
# PUBLISHER
# ============================================================================


@pytest.mark.asyncio
async def test_publisher_sends_each_identifier_with_worker_key() -> None:
    producer = MagicMock()
    ack = asyncio.get_running_loop().create_future()
    ack.set_result(None)
    producer.send = AsyncMock(return_value=ack)
    publisher = KafkaHashPublisher(producer, "hashes")

    await publisher.for_worker(7).publish(["a", "b"])

    assert producer.send.await_count == 2
    sent = [call.kwargs["value"] for call in producer.send.await_args_list]
    assert sent == ["a", "b"]
    assert all(call.kwargs["key"].startswith("w7-") for call in producer.send.await_args_list)
    assert all(call.args == ("hashes",) for call in producer.send.await_args_list)


@pytest.mark.asyncio
async def test_publisher_maps_broker_errors() -> None:
    producer = MagicMock()
    producer.send = AsyncMock(side_effect=KafkaError())
    publisher = KafkaHashPublisher(producer, "hashes")

    with pytest.raises(PasteError) as exc_info:
        await publisher.publish(["a"])
    assert exc_info.value.kind is ErrorKind.ALLOCATION_UNAVAILABLE


@pytest.mark.asyncio
async def test_publisher_lifecycle_is_idempotent() -> None:
    producer = MagicMock()
    producer.start = AsyncMock()
    producer.stop = AsyncMock()
    publisher = KafkaHashPublisher(producer, "hashes")

    await publisher.start()
    await publisher.start()
    await publisher.stop()
    await publisher.stop()

    producer.start.assert_awaited_once()
    producer.stop.assert_awaited_once()
