"""Service container and FastAPI dependency injection.

This module owns every backend handle of the process. The application
lifespan builds one ServiceContainer, stores it on ``app.state`` and tears it
down on shutdown; request handlers reach it through the dependency functions
below, which tests replace with ``app.dependency_overrides``.
"""

import asyncio
import datetime
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from app.blob_storage import MinioBlobStore
from app.config import Settings, get_settings
from app.database import close_db, create_engine, create_session_factory, init_db
from app.kafka import KafkaIdentifierQueue
from app.logger import setup_logger
from app.metadata_store import SqlMetadataStore
from app.paste_service import PasteService
from app.redis import RedisPasteCache
from app.retry import RetryPolicy
from app.sweeper import ExpirySweeper

__all__ = [
    "ServiceContainer",
    "RequestContext",
    "get_container",
    "get_request_context",
    "get_paste_service",
]


# ============================================================================
# SERVICE CONTAINER
# ============================================================================


class ServiceContainer:
    """Process-wide owner of store clients, the paste service and the sweeper.

    Shared resources are created once at startup and passed by reference to
    every component, significantly reducing per-request overhead.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.logger = setup_logger("pastebin", self.settings.APP_ENV)
        self.stop_event = asyncio.Event()
        self.engine: AsyncEngine | None = None
        self.metadata: SqlMetadataStore | None = None
        self.blobs: MinioBlobStore | None = None
        self.cache: RedisPasteCache | None = None
        self.queue: KafkaIdentifierQueue | None = None
        self.paste_service: PasteService | None = None
        self.sweeper: ExpirySweeper | None = None
        self._sweeper_task: asyncio.Task | None = None
        self._initialized = False

    async def initialize(self) -> None:
        """Connect every backend and start the expiry sweeper."""
        if self._initialized:
            return
        settings = self.settings
        retry_policy = RetryPolicy.from_settings(settings)

        self.engine = create_engine(settings)
        await init_db(self.engine)
        self.metadata = SqlMetadataStore(create_session_factory(self.engine), retry_policy)

        self.blobs = MinioBlobStore.from_settings(settings)
        await self.blobs.ensure_bucket()

        self.cache = RedisPasteCache.from_settings(settings)

        self.queue = KafkaIdentifierQueue.from_settings(settings)
        await self.queue.start()

        self.paste_service = PasteService(
            self.queue,
            self.metadata,
            self.blobs,
            self.cache,
            popularity_threshold=settings.POPULARITY_THRESHOLD,
            logger=self.logger,
        )

        self.sweeper = ExpirySweeper.from_settings(settings, self.metadata, self.blobs, self.cache, self.logger)
        if settings.SWEEPER_ENABLED:
            self._sweeper_task = asyncio.create_task(self.sweeper.run_forever(self.stop_event))

        self._initialized = True
        self.logger.info(f"Service container initialized (env={settings.APP_ENV})")

    async def cleanup(self) -> None:
        """Signal background tasks to stop and release backend connections."""
        self.stop_event.set()
        if self._sweeper_task is not None:
            try:
                await asyncio.wait_for(self._sweeper_task, timeout=5.0)
            except asyncio.TimeoutError:
                self._sweeper_task.cancel()
            self._sweeper_task = None

        if self.queue is not None:
            await self.queue.stop()
        if self.cache is not None:
            await self.cache.close()
        if self.engine is not None:
            await close_db(self.engine)
        self._initialized = False
        self.logger.info("Service container stopped")

    def ttl(self, ttl_units: int | None) -> datetime.timedelta:
        return self.settings.ttl_to_timedelta(ttl_units or self.settings.DEFAULT_TTL)


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request tracking data with a context-aware logger.

    Attributes:
        container: Process-wide service container
        request_id: Unique identifier for this request
        user_agent: Client user agent string
        client_ip: Client IP address
        start_time: Request start timestamp
    """

    container: ServiceContainer
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())

    @property
    def settings(self) -> Settings:
        return self.container.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Get shared logger with request context."""
        return logging.LoggerAdapter(
            self.container.logger,
            {
                "request_id": self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
            },
        )

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_request_context(
    request: Request,
    container: ServiceContainer = Depends(get_container),
) -> RequestContext:
    client_ip = request.client.host if request.client else None
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    return RequestContext(
        container=container,
        request_id=request_id,
        user_agent=request.headers.get("user-agent"),
        client_ip=client_ip,
    )


def get_paste_service(container: ServiceContainer = Depends(get_container)) -> PasteService:
    if container.paste_service is None:
        raise RuntimeError("Service container not initialized. Call initialize() first.")
    return container.paste_service
