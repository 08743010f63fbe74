"""Capability contracts between the paste engine and its backends.

The engine only depends on these protocols. Concrete adapters live in
app.kafka, app.metadata_store, app.blob_storage and app.redis; tests plug in
in-memory doubles.

Every method raises app.errors.PasteError on failure. Cache failures are
advisory: callers are allowed to log and discard them.
"""

import datetime
from typing import Protocol

from app.schemas import BlobObject, PasteMetadata

__all__ = [
    "IdentifierQueue",
    "IdentifierPublisher",
    "MetadataStore",
    "BlobStore",
    "ReconcilableBlobStore",
    "PasteCache",
]


class IdentifierQueue(Protocol):
    async def consume(self) -> str:
        """Claim the next identifier, suspending until one is available."""
        ...


class IdentifierPublisher(Protocol):
    async def publish(self, batch: list[str]) -> None: ...


class MetadataStore(Protocol):
    async def insert(
        self, identifier: str, created_at: datetime.datetime, expires_at: datetime.datetime
    ) -> None: ...

    async def get_by_identifier(self, identifier: str) -> PasteMetadata | None: ...

    async def list_expired(self, now: datetime.datetime) -> list[str]: ...

    async def delete_by_identifier(self, identifier: str) -> None: ...


class BlobStore(Protocol):
    async def put(self, identifier: str, data: bytes) -> None: ...

    async def get(self, identifier: str) -> bytes: ...

    async def delete(self, identifier: str) -> None: ...


class PasteCache(Protocol):
    async def get(self, identifier: str) -> str | None: ...

    async def set(
        self, identifier: str, content: str, expires_at: datetime.datetime | None = None
    ) -> None: ...

    async def delete(self, identifier: str) -> None: ...

    async def increment_popularity(self, identifier: str) -> int: ...


class ReconcilableBlobStore(BlobStore, Protocol):
    async def list_objects(self) -> list[BlobObject]: ...
