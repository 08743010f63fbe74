"""SQLAlchemy-backed metadata store for paste rows.

Each call opens its own short-lived session from the shared session factory,
the same way the background workers of this project talk to the database, so
the store can be used from request handlers and from the sweeper alike.
"""

import datetime
import logging

from prometheus_client import Counter
from sqlalchemy import delete, select, text
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.enums import ErrorKind
from app.errors import PasteError
from app.models import Paste
from app.retry import RetryPolicy, call_with_retry
from app.schemas import PasteMetadata

__all__ = ["SqlMetadataStore"]

logger = logging.getLogger("pastebin")

DATABASE_READS_TOTAL = Counter(
    "pastebin_database_reads_total",
    "Total metadata read operations",
)
DATABASE_WRITES_TOTAL = Counter(
    "pastebin_database_writes_total",
    "Total metadata write operations",
)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, (OperationalError, InterfaceError))


class SqlMetadataStore:
    """Metadata store over the ``pastes`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], retry_policy: RetryPolicy | None = None):
        self._session_factory = session_factory
        self._retry = retry_policy or RetryPolicy()

    async def _run(self, op: str, operation):
        try:
            return await call_with_retry(operation, self._retry, is_retryable=_is_transient, op=op)
        except SQLAlchemyError as exc:
            raise PasteError(ErrorKind.STORE_UNAVAILABLE, f"{op}: {exc}") from exc

    async def insert(
        self, identifier: str, created_at: datetime.datetime, expires_at: datetime.datetime
    ) -> None:
        async def _insert() -> None:
            async with self._session_factory() as session:
                session.add(Paste(hash=identifier, created_at=created_at, expires_at=expires_at))
                await session.commit()

        await self._run("metadata.insert", _insert)
        DATABASE_WRITES_TOTAL.inc()

    async def get_by_identifier(self, identifier: str) -> PasteMetadata | None:
        async def _get() -> Paste | None:
            async with self._session_factory() as session:
                result = await session.execute(select(Paste).where(Paste.hash == identifier))
                return result.scalar_one_or_none()

        row = await self._run("metadata.get_by_identifier", _get)
        DATABASE_READS_TOTAL.inc()
        if row is None:
            return None
        return PasteMetadata.model_validate(row)

    async def list_expired(self, now: datetime.datetime) -> list[str]:
        async def _list() -> list[str]:
            async with self._session_factory() as session:
                result = await session.execute(select(Paste.hash).where(Paste.expires_at <= now))
                return list(result.scalars().all())

        hashes = await self._run("metadata.list_expired", _list)
        DATABASE_READS_TOTAL.inc()
        return hashes

    async def delete_by_identifier(self, identifier: str) -> None:
        async def _delete() -> None:
            async with self._session_factory() as session:
                await session.execute(delete(Paste).where(Paste.hash == identifier))
                await session.commit()

        await self._run("metadata.delete_by_identifier", _delete)
        DATABASE_WRITES_TOTAL.inc()

    async def ping(self) -> None:
        async def _ping() -> None:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))

        await self._run("metadata.ping", _ping)
