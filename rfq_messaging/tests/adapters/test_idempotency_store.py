import hashlib
import json
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from rfq_messaging.adapters.idempotency_store import (
    IdempotencyRecord,
    ObjectStoreIdempotencyStore,
    compute_body_hash,
    idempotency_object_key,
)
from rfq_messaging.adapters.object_store import InMemoryObjectStore, ObjectNotFound, ObjectStore, ObjectStoreError
from rfq_messaging.errors import Conflict, Internal
from rfq_messaging.models import ContactIn, CreateRfqRequest, PostMessageRequest


def make_request(**overrides) -> CreateRfqRequest:
    fields = dict(
        tenant_id="t1",
        manufacturer_id="mfg_ABC12345",
        buyer=ContactIn(email="buyer@x.com", name="Bea"),
        subject="Need 500 units",
        body="Please quote.",
    )
    fields.update(overrides)
    return CreateRfqRequest(**fields)


def test_body_hash_is_stable_and_content_sensitive():
    assert compute_body_hash(make_request()) == compute_body_hash(make_request())
    assert compute_body_hash(make_request()) != compute_body_hash(make_request(body="Different."))
    assert len(compute_body_hash(make_request())) == 64


def test_body_hash_uses_canonical_json():
    request = PostMessageRequest(by="buyer", body="hi")
    canonical = '{"attachments":null,"body":"hi","by":"buyer"}'
    assert compute_body_hash(request) == hashlib.sha256(canonical.encode()).hexdigest()


def test_body_hash_includes_scope():
    request = PostMessageRequest(by="buyer", body="hi")
    canonical = '{"attachments":null,"body":"hi","by":"buyer","rfq_id":"r_ABCDEF12"}'
    assert compute_body_hash(request, rfq_id="r_ABCDEF12") == hashlib.sha256(canonical.encode()).hexdigest()
    assert compute_body_hash(request, rfq_id="r_ABCDEF12") != compute_body_hash(request, rfq_id="r_ZZZZZZZZ")


def test_storage_key_hides_caller_key():
    object_key = idempotency_object_key("client-key-123")
    assert object_key.startswith("idem/")
    assert "client-key-123" not in object_key
    assert object_key == idempotency_object_key("client-key-123")


@pytest.mark.asyncio
async def test_miss_then_store_then_replay():
    idempotency_store = ObjectStoreIdempotencyStore(InMemoryObjectStore())
    assert await idempotency_store.check("k1", "hash-a") is None

    await idempotency_store.store("k1", "hash-a", '{"id": "r_1"}')
    assert await idempotency_store.check("k1", "hash-a") == '{"id": "r_1"}'


@pytest.mark.asyncio
async def test_reuse_with_different_body_is_conflict():
    idempotency_store = ObjectStoreIdempotencyStore(InMemoryObjectStore())
    await idempotency_store.store("k1", "hash-a", '{"id": "r_1"}')
    with pytest.raises(Conflict):
        await idempotency_store.check("k1", "hash-b")


@pytest.mark.asyncio
async def test_expired_record_is_treated_as_absent():
    object_store = InMemoryObjectStore()
    idempotency_store = ObjectStoreIdempotencyStore(object_store, ttl_seconds=60)
    stale = IdempotencyRecord(
        body_hash="hash-a",
        response='{"id": "r_1"}',
        stored_at=datetime.now(timezone.utc) - timedelta(minutes=5),
    )
    await object_store.put(idempotency_object_key("k1"), stale.model_dump_json().encode())

    assert await idempotency_store.check("k1", "hash-b") is None


@pytest.mark.asyncio
async def test_ambiguous_read_failure_is_internal_not_a_miss():
    object_store = AsyncMock(spec=ObjectStore)
    object_store.get.side_effect = ObjectStoreError("connection reset")
    idempotency_store = ObjectStoreIdempotencyStore(object_store)

    with pytest.raises(Internal):
        await idempotency_store.check("k1", "hash-a")


@pytest.mark.asyncio
async def test_definite_miss_from_store_is_none():
    object_store = AsyncMock(spec=ObjectStore)
    object_store.get.side_effect = ObjectNotFound("idem/x")
    idempotency_store = ObjectStoreIdempotencyStore(object_store)

    assert await idempotency_store.check("k1", "hash-a") is None


@pytest.mark.asyncio
async def test_corrupt_record_is_internal():
    object_store = InMemoryObjectStore()
    await object_store.put(idempotency_object_key("k1"), json.dumps({"body_hash": "x"}).encode())
    with pytest.raises(Internal):
        await ObjectStoreIdempotencyStore(object_store).check("k1", "x")


@pytest.mark.asyncio
async def test_store_failure_is_internal():
    object_store = AsyncMock(spec=ObjectStore)
    object_store.put.side_effect = ObjectStoreError("disk full")
    with pytest.raises(Internal):
        await ObjectStoreIdempotencyStore(object_store).store("k1", "hash-a", "{}")
