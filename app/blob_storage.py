"""MinIO blob storage for paste contents.

Paste bodies are stored as ``<hash>.txt`` objects (``text/plain``) in a single
bucket. The MinIO client is synchronous, so every call is pushed to a worker
thread with ``asyncio.to_thread`` to keep the event loop free.

Flow Diagram — put()
====================
::
    ┌─────────────┐
    │ put(hash,   │
    │   data)     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ to_thread   │
    │ put_object  │
    └──────┬──────┘
    FAIL?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌──────────────┐
│ return  │  │ retry, then  │
│         │  │ PasteError   │
└─────────┘  └──────────────┘

Key Behaviours
===============
- Missing objects raise PasteError(NOT_FOUND); other failures STORE_UNAVAILABLE.
- Deleting a missing object is not an error.
- Connection-level failures are retried; S3 error responses are not.
"""

import asyncio
import io
import logging

from minio import Minio
from minio.error import S3Error
from prometheus_client import Counter

from app.config import Settings
from app.enums import ErrorKind
from app.errors import PasteError
from app.retry import RetryPolicy, call_with_retry
from app.schemas import BlobObject

__all__ = ["MinioBlobStore", "object_name", "identifier_from_object"]

logger = logging.getLogger("pastebin")

OBJECT_SUFFIX = ".txt"
MISSING_OBJECT_CODES = {"NoSuchKey", "NoSuchObject", "NotFound"}

BLOB_OPERATIONS_TOTAL = Counter(
    "pastebin_blob_operations_total",
    "Total blob storage operations",
    ["operation"],
)


def object_name(identifier: str) -> str:
    return f"{identifier}{OBJECT_SUFFIX}"


def identifier_from_object(name: str) -> str | None:
    if not name.endswith(OBJECT_SUFFIX):
        return None
    return name[: -len(OBJECT_SUFFIX)]


def _is_transient(exc: BaseException) -> bool:
    return not isinstance(exc, S3Error)


class MinioBlobStore:
    """Blob store backed by a MinIO (S3-compatible) bucket."""

    def __init__(self, client: Minio, bucket: str, retry_policy: RetryPolicy | None = None):
        self._client = client
        self._bucket = bucket
        self._retry = retry_policy or RetryPolicy()

    @classmethod
    def from_settings(cls, settings: Settings) -> "MinioBlobStore":
        client = Minio(
            settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_USE_SSL,
        )
        return cls(client, settings.MINIO_BUCKET, RetryPolicy.from_settings(settings))

    async def _run(self, op: str, func, *args, **kwargs):
        BLOB_OPERATIONS_TOTAL.labels(operation=op).inc()
        try:
            return await call_with_retry(
                lambda: asyncio.to_thread(func, *args, **kwargs),
                self._retry,
                is_retryable=_is_transient,
                op=f"blob.{op}",
            )
        except S3Error as exc:
            if exc.code in MISSING_OBJECT_CODES:
                raise PasteError(ErrorKind.NOT_FOUND, f"blob.{op}: {exc.code}") from exc
            raise PasteError(ErrorKind.STORE_UNAVAILABLE, f"blob.{op}: {exc}") from exc
        except Exception as exc:
            raise PasteError(ErrorKind.STORE_UNAVAILABLE, f"blob.{op}: {exc}") from exc

    async def ensure_bucket(self) -> None:
        exists = await self._run("bucket_exists", self._client.bucket_exists, self._bucket)
        if not exists:
            await self._run("make_bucket", self._client.make_bucket, self._bucket)
            logger.info(f"Created blob bucket {self._bucket}")

    def _write_object(self, name: str, data: bytes) -> None:
        # Fresh stream per attempt; a retried upload must start from byte 0.
        self._client.put_object(self._bucket, name, io.BytesIO(data), len(data), content_type="text/plain")

    async def put(self, identifier: str, data: bytes) -> None:
        await self._run("put", self._write_object, object_name(identifier), data)

    def _read_object(self, name: str) -> bytes:
        response = self._client.get_object(self._bucket, name)
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    async def get(self, identifier: str) -> bytes:
        return await self._run("get", self._read_object, object_name(identifier))

    async def delete(self, identifier: str) -> None:
        try:
            await self._run("delete", self._client.remove_object, self._bucket, object_name(identifier))
        except PasteError as exc:
            if exc.kind is not ErrorKind.NOT_FOUND:
                raise

    def _list(self) -> list[BlobObject]:
        objects: list[BlobObject] = []
        for obj in self._client.list_objects(self._bucket, recursive=True):
            identifier = identifier_from_object(obj.object_name)
            if identifier is None or obj.last_modified is None:
                continue
            objects.append(BlobObject(hash=identifier, last_modified=obj.last_modified))
        return objects

    async def list_objects(self) -> list[BlobObject]:
        return await self._run("list", self._list)

    async def ping(self) -> None:
        await self._run("bucket_exists", self._client.bucket_exists, self._bucket)
