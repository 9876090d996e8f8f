import asyncio
import os
from unittest.mock import AsyncMock

import pytest

from anyshare import config
from anyshare.services.errors import (
    InvalidInputError,
    ObjectExpiredError,
    ObjectNotFoundError,
    PayloadMissingError,
    StorageError,
)
from anyshare.services.registry import ObjectRegistry
from anyshare.services.share_service import ShareService, parse_ttl
from anyshare.services.sweeper import ExpirationSweeper

from conftest import START_TIME, SequenceAllocator


@pytest.mark.asyncio
async def test_text_object_expires_after_ttl(service, registry, clock):
    record = await service.create_from_text("hello", ttl=2)
    assert record.created_at == START_TIME
    assert record.size_bytes == 5

    result = await service.fetch(record.id)
    assert result.content == "hello"

    clock.advance(3)
    with pytest.raises(ObjectExpiredError):
        await service.fetch(record.id)

    await service.sweeper.sweep()
    assert record.id not in registry.index
    with pytest.raises(ObjectNotFoundError):
        await service.fetch(record.id)


@pytest.mark.asyncio
async def test_zero_ttl_is_dead_one_second_after_creation(service, clock):
    record = await service.create_from_text("hello", ttl=0)

    # Same second as creation: created_at + 0 < now is false
    assert (await service.fetch(record.id)).content == "hello"

    clock.advance(1)
    with pytest.raises(ObjectExpiredError):
        await service.fetch(record.id)


@pytest.mark.asyncio
async def test_negative_ttl_never_expires(service, clock):
    record = await service.create_from_upload(b"payload", "keep.bin", ttl=-1)
    clock.advance(10 ** 9)

    result = await service.fetch(record.id)
    assert result.content == b"payload"
    assert result.record.display_name == "keep.bin"


@pytest.mark.asyncio
async def test_upload_is_stored_and_retrievable(service, store):
    record = await service.create_from_upload(b"\x00\x01binary", "data.bin", ttl=60)

    assert await store.exists(record.id)
    assert record.size_bytes == 8
    assert not record.is_inline
    assert (await service.fetch(record.id)).content == b"\x00\x01binary"


@pytest.mark.asyncio
async def test_upload_at_size_ceiling_succeeds_and_one_byte_over_fails(service, registry):
    record = await service.create_from_upload(b"x" * 1024, "max.bin", ttl=60)
    assert record.size_bytes == 1024

    with pytest.raises(InvalidInputError):
        await service.create_from_upload(b"x" * 1025, "over.bin", ttl=60)
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_empty_text_is_rejected(service, registry):
    with pytest.raises(InvalidInputError):
        await service.create_from_text("", ttl=60)
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_text_size_is_counted_in_utf8_bytes(service):
    record = await service.create_from_text("héllo", ttl=60)
    assert record.size_bytes == 6


@pytest.mark.asyncio
async def test_fetch_unknown_identifier(service):
    with pytest.raises(ObjectNotFoundError):
        await service.fetch("nope")


@pytest.mark.asyncio
async def test_fetch_expired_upload_sweeps_payload(service, store, registry, clock):
    record = await service.create_from_upload(b"abc", "a.txt", ttl=5)
    clock.advance(6)

    with pytest.raises(ObjectExpiredError):
        await service.fetch(record.id)
    assert record.id not in registry.index
    assert not await store.exists(record.id)


@pytest.mark.asyncio
async def test_missing_payload_fails_read_gracefully(service, store):
    record = await service.create_from_upload(b"abc", "a.txt", ttl=60)
    os.remove(store.get_payload_path(record.id))

    with pytest.raises(PayloadMissingError):
        await service.fetch(record.id)


@pytest.mark.asyncio
async def test_failed_payload_write_leaves_no_entry(store, clock):
    registry = ObjectRegistry(allocator=SequenceAllocator(["ab3k"]))
    service = ShareService(registry, store, clock=clock, max_payload_size=1024)

    real_put = store.put
    store.put = AsyncMock(side_effect=StorageError("disk full"))
    with pytest.raises(StorageError):
        await service.create_from_upload(b"abc", "a.txt", ttl=60)
    assert len(registry) == 0
    assert "ab3k" not in registry.index

    # The identifier was released and can be handed out again
    store.put = real_put
    record = await service.create_from_upload(b"abc", "a.txt", ttl=60)
    assert record.id == "ab3k"
    await service.wait_for_sweeps()


@pytest.mark.asyncio
async def test_create_triggers_background_sweep(service, registry, clock):
    stale = await service.create_from_text("stale", ttl=1)
    clock.advance(2)

    await service.create_from_text("fresh", ttl=60)
    await service.wait_for_sweeps()

    assert stale.id not in registry.index
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_concurrent_uploads_get_distinct_retrievable_identifiers(store, clock):
    candidates = [f"id{n:02d}" for n in range(60)]
    registry = ObjectRegistry(allocator=SequenceAllocator(candidates))
    service = ShareService(registry, store, ExpirationSweeper(registry, store, clock),
                           clock=clock, max_payload_size=1024)

    payloads = [f"payload-{n}".encode() for n in range(50)]
    records = await asyncio.gather(
        *(service.create_from_upload(p, f"{n}.txt", ttl=60) for n, p in enumerate(payloads))
    )
    await service.wait_for_sweeps()

    ids = [r.id for r in records]
    assert len(set(ids)) == len(ids)
    for record, payload in zip(records, payloads):
        assert (await service.fetch(record.id)).content == payload


@pytest.mark.asyncio
async def test_describe_returns_live_record(service):
    record = await service.create_from_text("hello", ttl=60)
    assert await service.describe(record.id) == record


def test_parse_ttl_defaults_and_legacy_reset(monkeypatch):
    monkeypatch.setattr(config, "REJECT_INVALID_TTL", False)
    assert parse_ttl(None) == config.DEFAULT_TTL_SECONDS
    assert parse_ttl("") == config.DEFAULT_TTL_SECONDS
    assert parse_ttl("30") == 30
    assert parse_ttl("abc") == 0
    assert parse_ttl("0") == 0
    assert parse_ttl("-5") == 0
    assert parse_ttl("3_0") == 0
    assert parse_ttl(" 30 ") == 0
    assert parse_ttl("+30") == 30


def test_parse_ttl_can_reject_invalid_values(monkeypatch):
    monkeypatch.setattr(config, "REJECT_INVALID_TTL", True)
    assert parse_ttl("30") == 30
    with pytest.raises(InvalidInputError):
        parse_ttl("abc")
    with pytest.raises(InvalidInputError):
        parse_ttl("-5")
    with pytest.raises(InvalidInputError):
        parse_ttl("3_0")
    with pytest.raises(InvalidInputError):
        parse_ttl(" 30 ")


@pytest.mark.asyncio
async def test_cancelled_upload_releases_identifier_and_payload(store, clock):
    registry = ObjectRegistry(allocator=SequenceAllocator(["ab3k"]))
    service = ShareService(registry, store, clock=clock, max_payload_size=1024)

    real_put = store.put
    stored = asyncio.Event()

    async def stalled_put(object_id, data):
        await real_put(object_id, data)
        stored.set()
        await asyncio.sleep(3600)

    store.put = stalled_put
    task = asyncio.create_task(service.create_from_upload(b"abc", "a.txt", ttl=60))
    await stored.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert "ab3k" not in registry.index
    assert not await store.exists("ab3k")

    store.put = real_put
    record = await service.create_from_upload(b"abc", "a.txt", ttl=60)
    assert record.id == "ab3k"
    await service.wait_for_sweeps()


@pytest.mark.asyncio
async def test_upload_cancelled_while_waiting_to_commit(store, clock):
    registry = ObjectRegistry(allocator=SequenceAllocator(["ab3k"]))
    service = ShareService(registry, store, clock=clock, max_payload_size=1024)

    real_commit = registry.commit
    committing = asyncio.Event()

    async def signalling_commit(record):
        committing.set()
        await real_commit(record)

    registry.commit = signalling_commit

    # Hold the lock after the id is reserved so the commit has to wait
    real_put = store.put
    stored = asyncio.Event()
    proceed = asyncio.Event()

    async def gated_put(object_id, data):
        await real_put(object_id, data)
        stored.set()
        await proceed.wait()

    store.put = gated_put
    task = asyncio.create_task(service.create_from_upload(b"abc", "a.txt", ttl=60))
    await stored.wait()
    await registry.lock.acquire()
    proceed.set()
    await committing.wait()

    task.cancel()
    registry.lock.release()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(registry) == 0
    assert "ab3k" not in registry.index
    assert not await store.exists("ab3k")
