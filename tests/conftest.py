"""Shared pytest fixtures: in-memory backends and a controllable clock."""

import datetime
from collections import deque

import pytest

from app.enums import ErrorKind
from app.errors import PasteError
from app.paste_service import PasteService
from app.schemas import BlobObject, PasteMetadata


class FakeClock:
    """Mutable UTC clock for driving expiry deterministically."""

    def __init__(self, now: datetime.datetime | None = None):
        self.now = now or datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += datetime.timedelta(**kwargs)


class FakeQueue:
    def __init__(self, identifiers=()):
        self.identifiers = deque(identifiers)
        self.fail = False

    async def consume(self) -> str:
        if self.fail or not self.identifiers:
            raise PasteError(ErrorKind.ALLOCATION_UNAVAILABLE, "queue empty")
        return self.identifiers.popleft()


class FakeMetadataStore:
    def __init__(self):
        self.rows: dict[str, PasteMetadata] = {}
        self.fail_insert = False
        self.fail_get = False
        self.fail_delete = False
        self.fail_list = False

    async def insert(self, identifier, created_at, expires_at) -> None:
        if self.fail_insert:
            raise PasteError(ErrorKind.STORE_UNAVAILABLE, "insert failed")
        if identifier in self.rows:
            raise PasteError(ErrorKind.STORE_UNAVAILABLE, f"duplicate key {identifier}")
        self.rows[identifier] = PasteMetadata(hash=identifier, created_at=created_at, expires_at=expires_at)

    async def get_by_identifier(self, identifier):
        if self.fail_get:
            raise PasteError(ErrorKind.STORE_UNAVAILABLE, "get failed")
        return self.rows.get(identifier)

    async def list_expired(self, now):
        if self.fail_list:
            raise PasteError(ErrorKind.STORE_UNAVAILABLE, "list failed")
        return [row.hash for row in self.rows.values() if row.expires_at <= now]

    async def delete_by_identifier(self, identifier) -> None:
        if self.fail_delete:
            raise PasteError(ErrorKind.STORE_UNAVAILABLE, "delete failed")
        self.rows.pop(identifier, None)

    async def ping(self) -> None:
        if self.fail_get:
            raise PasteError(ErrorKind.STORE_UNAVAILABLE, "ping failed")


class FakeBlobStore:
    def __init__(self, clock: FakeClock):
        self.objects: dict[str, bytes] = {}
        self.modified: dict[str, datetime.datetime] = {}
        self.clock = clock
        self.reads = 0
        self.fail_put = False
        self.fail_get = False
        self.fail_delete = False

    async def put(self, identifier, data) -> None:
        if self.fail_put:
            raise PasteError(ErrorKind.STORE_UNAVAILABLE, "put failed")
        self.objects[identifier] = data
        self.modified[identifier] = self.clock()

    async def get(self, identifier) -> bytes:
        self.reads += 1
        if self.fail_get:
            raise PasteError(ErrorKind.STORE_UNAVAILABLE, "get failed")
        if identifier not in self.objects:
            raise PasteError(ErrorKind.NOT_FOUND, f"no blob {identifier}")
        return self.objects[identifier]

    async def delete(self, identifier) -> None:
        if self.fail_delete:
            raise PasteError(ErrorKind.STORE_UNAVAILABLE, "delete failed")
        self.objects.pop(identifier, None)
        self.modified.pop(identifier, None)

    async def list_objects(self):
        return [BlobObject(hash=name, last_modified=self.modified[name]) for name in self.objects]

    async def ping(self) -> None:
        if self.fail_get:
            raise PasteError(ErrorKind.STORE_UNAVAILABLE, "ping failed")


class FakeCache:
    def __init__(self, clock: FakeClock):
        self.entries: dict[str, tuple[str, datetime.datetime | None]] = {}
        self.popularity: dict[str, int] = {}
        self.clock = clock
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise PasteError(ErrorKind.STORE_UNAVAILABLE, "cache down")

    async def get(self, identifier):
        self._check()
        entry = self.entries.get(identifier)
        if entry is None:
            return None
        content, expires_at = entry
        if expires_at is not None and expires_at <= self.clock():
            del self.entries[identifier]
            return None
        return content

    async def set(self, identifier, content, expires_at=None) -> None:
        self._check()
        self.entries[identifier] = (content, expires_at)

    async def delete(self, identifier) -> None:
        self._check()
        self.entries.pop(identifier, None)
        self.popularity.pop(identifier, None)

    async def increment_popularity(self, identifier) -> int:
        self._check()
        self.popularity[identifier] = self.popularity.get(identifier, 0) + 1
        return self.popularity[identifier]

    async def ping(self) -> None:
        self._check()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def queue() -> FakeQueue:
    return FakeQueue([f"hash{i:04d}" for i in range(100)])


@pytest.fixture
def metadata() -> FakeMetadataStore:
    return FakeMetadataStore()


@pytest.fixture
def blobs(clock: FakeClock) -> FakeBlobStore:
    return FakeBlobStore(clock)


@pytest.fixture
def cache(clock: FakeClock) -> FakeCache:
    return FakeCache(clock)


@pytest.fixture
def service(queue, metadata, blobs, cache, clock) -> PasteService:
    return PasteService(queue, metadata, blobs, cache, popularity_threshold=3, clock=clock)
