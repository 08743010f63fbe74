"""Standalone hash generator process feeding the allocation topic.

How to Use
===========
::
    python -m services.hash_generator.main

Runs HASH_WORKERS issuing workers at HASH_RATE hashes per second each until
SIGINT or SIGTERM, with Prometheus metrics on HASH_METRICS_PORT.
"""

import asyncio
import signal

from prometheus_client import start_http_server

from app.config import get_settings
from app.logger import setup_logger
from services.hash_generator.generator import HashGenerator
from services.hash_generator.producer import KafkaHashPublisher
from services.hash_generator.worker import IssuingWorker

__all__ = ["run"]

settings = get_settings()


async def run() -> None:
    logger = setup_logger("hash-generator", settings.APP_ENV)
    start_http_server(settings.HASH_METRICS_PORT)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    publisher = KafkaHashPublisher.from_settings(settings)
    await publisher.start()

    generator = HashGenerator(settings.HASH_LENGTH)
    workers = [
        IssuingWorker(
            worker_id,
            generator,
            publisher.for_worker(worker_id),
            rate=settings.HASH_RATE,
            batch_size=settings.HASH_BATCH_SIZE,
            logger=logger,
        )
        for worker_id in range(settings.HASH_WORKERS)
    ]
    tasks = [asyncio.create_task(worker.run(stop_event)) for worker in workers]
    logger.info(f"hash generator started with {len(tasks)} workers at {settings.HASH_RATE}/s each")

    try:
        await stop_event.wait()
        logger.info("shutdown signal received, stopping workers")
        _, pending = await asyncio.wait(tasks, timeout=settings.HASH_SHUTDOWN_GRACE_SECONDS)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
    finally:
        await publisher.stop()
        logger.info("hash generator stopped")


if __name__ == "__main__":
    asyncio.run(run())
