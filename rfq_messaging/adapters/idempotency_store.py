import hashlib
import json
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ValidationError

from rfq_messaging.errors import Conflict, Internal
from rfq_messaging.service.ports import AbstractIdempotencyStore
from shared.logging import get_logger
from .object_store import ObjectNotFound, ObjectStore, ObjectStoreError

logger = get_logger(__name__)


def compute_body_hash(payload: BaseModel, **scope: str) -> str:
    """
    SHA-256 over the canonical JSON form of a request model (sorted keys, no whitespace).

    `scope` carries request context that is not part of the body, such as the
    path's RFQ id, so one key replayed against another target is a mismatch.
    """
    document = {**payload.model_dump(mode="json"), **scope}
    canonical = json.dumps(document, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def idempotency_object_key(key: str) -> str:
    # Caller-chosen key material never appears in storage key names
    return f"idem/{hashlib.sha256(key.encode('utf-8')).hexdigest()}"


class IdempotencyRecord(BaseModel):
    body_hash: str
    response: str
    stored_at: datetime


class ObjectStoreIdempotencyStore(AbstractIdempotencyStore):
    def __init__(self, store: ObjectStore, ttl_seconds: int = 86400):
        self.object_store = store
        self.ttl = timedelta(seconds=ttl_seconds)

    async def check(self, key: str, body_hash: str) -> Optional[str]:
        object_key = idempotency_object_key(key)
        try:
            raw = await self.object_store.get(object_key)
        except ObjectNotFound:
            return None
        except ObjectStoreError as e:
            # Only a definite miss counts as "no record"
            raise Internal(f"Failed to read idempotency record: {e}") from e

        try:
            record = IdempotencyRecord.model_validate_json(raw)
        except ValidationError as e:
            raise Internal(f"Corrupt idempotency record at '{object_key}': {e}") from e

        if datetime.now(timezone.utc) - record.stored_at > self.ttl:
            logger.info(f"Idempotency record {object_key} has expired; treating request as new")
            return None

        if record.body_hash != body_hash:
            logger.warning(f"Idempotency key reused with a different request body ({object_key})")
            raise Conflict("Idempotency key was already used with a different request body")

        logger.info(f"Replaying stored response for idempotency record {object_key}")
        return record.response

    async def store(self, key: str, body_hash: str, response: str) -> None:
        record = IdempotencyRecord(body_hash=body_hash, response=response, stored_at=datetime.now(timezone.utc))
        try:
            await self.object_store.put(idempotency_object_key(key), record.model_dump_json().encode("utf-8"))
        except ObjectStoreError as e:
            raise Internal(f"Failed to store idempotency record: {e}") from e
