"""Paste service behaviour against in-memory backends."""

import datetime
from collections import deque

import pytest
from prometheus_client import REGISTRY

from app.enums import ErrorKind
from app.errors import PasteError
from app.paste_service import CLAIM_ATTEMPTS, PasteService

ONE_DAY = datetime.timedelta(days=1)


@pytest.mark.asyncio
async def test_save_then_get_round_trip(service: PasteService) -> None:
    hash_ = await service.save("hello world", ONE_DAY)
    assert await service.get(hash_) == "hello world"


@pytest.mark.asyncio
async def test_save_preserves_unicode(service: PasteService) -> None:
    text = "żółw 🐢 テキスト"
    hash_ = await service.save(text, ONE_DAY)
    assert await service.get(hash_) == text


@pytest.mark.asyncio
async def test_save_writes_metadata_with_expiry(service: PasteService, metadata, blobs, clock) -> None:
    hash_ = await service.save("hello", ONE_DAY)

    row = metadata.rows[hash_]
    assert row.created_at == clock.now
    assert row.expires_at == clock.now + ONE_DAY
    assert blobs.objects[hash_] == b"hello"


@pytest.mark.asyncio
async def test_save_claims_distinct_hashes(service: PasteService) -> None:
    first = await service.save("a", ONE_DAY)
    second = await service.save("b", ONE_DAY)
    assert first != second


@pytest.mark.asyncio
@pytest.mark.parametrize("ttl", [datetime.timedelta(0), datetime.timedelta(seconds=-1)])
async def test_save_rejects_non_positive_ttl(service: PasteService, queue, ttl) -> None:
    before = len(queue.identifiers)
    with pytest.raises(ValueError):
        await service.save("hello", ttl)
    assert len(queue.identifiers) == before


@pytest.mark.asyncio
async def test_save_without_identifier_has_no_side_effects(service: PasteService, queue, metadata, blobs) -> None:
    queue.fail = True

    with pytest.raises(PasteError) as exc_info:
        await service.save("hello", ONE_DAY)

    assert exc_info.value.kind is ErrorKind.ALLOCATION_UNAVAILABLE
    assert blobs.objects == {}
    assert metadata.rows == {}


@pytest.mark.asyncio
async def test_blob_failure_leaves_no_metadata_row(service: PasteService, metadata, blobs) -> None:
    blobs.fail_put = True

    with pytest.raises(PasteError) as exc_info:
        await service.save("hello", ONE_DAY)

    assert exc_info.value.kind is ErrorKind.STORE_UNAVAILABLE
    assert metadata.rows == {}


@pytest.mark.asyncio
async def test_metadata_failure_after_blob_write_leaves_orphan(service: PasteService, metadata, blobs) -> None:
    metadata.fail_insert = True

    with pytest.raises(PasteError) as exc_info:
        await service.save("hello", ONE_DAY)

    assert exc_info.value.kind is ErrorKind.STORE_UNAVAILABLE
    assert metadata.rows == {}
    assert list(blobs.objects.values()) == [b"hello"]


@pytest.mark.asyncio
async def test_unexpected_queue_exception_is_classified(service: PasteService, queue) -> None:
    async def broken() -> str:
        raise RuntimeError("boom")

    queue.consume = broken

    with pytest.raises(PasteError) as exc_info:
        await service.save("hello", ONE_DAY)
    assert exc_info.value.kind is ErrorKind.ALLOCATION_UNAVAILABLE


@pytest.mark.asyncio
async def test_get_unknown_hash_is_not_found(service: PasteService) -> None:
    with pytest.raises(PasteError) as exc_info:
        await service.get("missing1")
    assert exc_info.value.kind is ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_get_after_ttl_is_expired_before_sweep(service: PasteService, metadata, clock) -> None:
    hash_ = await service.save("hello", ONE_DAY)
    clock.advance(days=1)

    with pytest.raises(PasteError) as exc_info:
        await service.get(hash_)

    assert exc_info.value.kind is ErrorKind.EXPIRED
    assert hash_ in metadata.rows


@pytest.mark.asyncio
async def test_get_just_before_expiry_succeeds(service: PasteService, clock) -> None:
    hash_ = await service.save("hello", ONE_DAY)
    clock.advance(days=1, microseconds=-1)
    assert await service.get(hash_) == "hello"


@pytest.mark.asyncio
async def test_get_with_missing_blob_is_store_unavailable(service: PasteService, blobs) -> None:
    hash_ = await service.save("hello", ONE_DAY)
    blobs.objects.clear()

    with pytest.raises(PasteError) as exc_info:
        await service.get(hash_)
    assert exc_info.value.kind is ErrorKind.STORE_UNAVAILABLE


@pytest.mark.asyncio
async def test_get_metadata_failure_propagates(service: PasteService, metadata) -> None:
    hash_ = await service.save("hello", ONE_DAY)
    metadata.fail_get = True

    with pytest.raises(PasteError) as exc_info:
        await service.get(hash_)
    assert exc_info.value.kind is ErrorKind.STORE_UNAVAILABLE


@pytest.mark.asyncio
async def test_popularity_counts_every_read(service: PasteService, cache) -> None:
    hash_ = await service.save("hello", ONE_DAY)

    counts = []
    for _ in range(5):
        await service.get(hash_)
        counts.append(cache.popularity[hash_])

    assert counts == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_popular_paste_is_served_from_cache(service: PasteService, blobs, cache) -> None:
    hash_ = await service.save("hello", ONE_DAY)

    for _ in range(service.popularity_threshold):
        assert await service.get(hash_) == "hello"
    reads_at_threshold = blobs.reads
    assert hash_ in cache.entries

    for _ in range(10):
        assert await service.get(hash_) == "hello"

    assert blobs.reads == reads_at_threshold


@pytest.mark.asyncio
async def test_promoted_entry_expires_with_metadata(service: PasteService, cache, metadata, clock) -> None:
    hash_ = await service.save("hello", ONE_DAY)
    for _ in range(service.popularity_threshold):
        await service.get(hash_)

    _, expires_at = cache.entries[hash_]
    assert expires_at == metadata.rows[hash_].expires_at

    clock.advance(days=1)
    with pytest.raises(PasteError) as exc_info:
        await service.get(hash_)
    assert exc_info.value.kind is ErrorKind.EXPIRED


@pytest.mark.asyncio
async def test_cache_failures_never_surface(service: PasteService, cache, blobs) -> None:
    hash_ = await service.save("hello", ONE_DAY)
    cache.fail = True

    for _ in range(5):
        assert await service.get(hash_) == "hello"
    assert blobs.reads == 5


@pytest.mark.asyncio
async def test_delete_makes_paste_not_found(service: PasteService, metadata, blobs) -> None:
    hash_ = await service.save("hello", ONE_DAY)

    await service.delete(hash_)

    assert hash_ not in metadata.rows
    assert hash_ not in blobs.objects
    with pytest.raises(PasteError) as exc_info:
        await service.get(hash_)
    assert exc_info.value.kind is ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_delete_evicts_promoted_copy(service: PasteService, cache) -> None:
    hash_ = await service.save("hello", ONE_DAY)
    for _ in range(service.popularity_threshold):
        await service.get(hash_)
    assert hash_ in cache.entries

    await service.delete(hash_)

    assert hash_ not in cache.entries
    assert hash_ not in cache.popularity
    with pytest.raises(PasteError) as exc_info:
        await service.get(hash_)
    assert exc_info.value.kind is ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_delete_metadata_failure_leaves_blob(service: PasteService, metadata, blobs) -> None:
    hash_ = await service.save("hello", ONE_DAY)
    metadata.fail_delete = True

    with pytest.raises(PasteError) as exc_info:
        await service.delete(hash_)

    assert exc_info.value.kind is ErrorKind.STORE_UNAVAILABLE
    assert hash_ in blobs.objects


@pytest.mark.asyncio
async def test_delete_blob_failure_is_partial(service: PasteService, blobs) -> None:
    hash_ = await service.save("hello", ONE_DAY)
    blobs.fail_delete = True

    with pytest.raises(PasteError) as exc_info:
        await service.delete(hash_)

    assert exc_info.value.kind is ErrorKind.PARTIAL_DELETE_FAILURE
    with pytest.raises(PasteError) as exc_info:
        await service.get(hash_)
    assert exc_info.value.kind is ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_delete_tolerates_cache_outage(service: PasteService, cache, metadata) -> None:
    hash_ = await service.save("hello", ONE_DAY)
    cache.fail = True

    await service.delete(hash_)
    assert hash_ not in metadata.rows


def test_threshold_must_be_positive(queue, metadata, blobs, cache) -> None:
    with pytest.raises(ValueError):
        PasteService(queue, metadata, blobs, cache, popularity_threshold=0)


@pytest.mark.asyncio
async def test_redelivered_hash_does_not_overwrite_live_paste(service: PasteService, queue) -> None:
    queue.identifiers = deque(["dup00001", "dup00001", "fresh001"])

    first = await service.save("original", ONE_DAY)
    second = await service.save("other text", ONE_DAY)

    assert first == "dup00001"
    assert second == "fresh001"
    assert await service.get(first) == "original"
    assert await service.get(second) == "other text"


@pytest.mark.asyncio
async def test_only_used_hashes_available_is_allocation_error(service: PasteService, queue, blobs) -> None:
    queue.identifiers = deque(["dup00001"] * (CLAIM_ATTEMPTS + 1))
    await service.save("original", ONE_DAY)

    with pytest.raises(PasteError) as exc_info:
        await service.save("other text", ONE_DAY)

    assert exc_info.value.kind is ErrorKind.ALLOCATION_UNAVAILABLE
    assert blobs.objects["dup00001"] == b"original"


@pytest.mark.asyncio
async def test_failed_eviction_on_delete_is_counted(service: PasteService, cache) -> None:
    hash_ = await service.save("hello", ONE_DAY)
    before = REGISTRY.get_sample_value("pastebin_delete_eviction_failures_total") or 0.0
    cache.fail = True

    await service.delete(hash_)

    assert REGISTRY.get_sample_value("pastebin_delete_eviction_failures_total") == before + 1
