"""
Repositories over an ObjectStore.

Key layout:

    rfq/{rfq_id}/meta
    rfq/{rfq_id}/index
    rfq/{rfq_id}/events/{ts_sortable}-{event_id}
    manufacturer/{manufacturer_id}
    catalog/category/{category}
    catalog/category_state/{category}/{state}

``ts_sortable`` is a fixed-width UTC timestamp, so plain key order is
chronological order. Listings still re-sort what they fetch, because the
store does not promise sorted or single-page listings.
"""
from datetime import datetime, timezone
from typing import List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from rfq_messaging.errors import Conflict, Internal
from rfq_messaging.events import (
    RfqEvent,
    event_from_json,
    event_id,
    event_rfq_id,
    event_sort_key,
    event_timestamp,
    event_to_json,
)
from rfq_messaging.models import CategorySlice, ManufacturerProfile, RfqIndex, RfqMeta
from rfq_messaging.service.ports import (
    AbstractCatalogRepository,
    AbstractManufacturerRepository,
    AbstractRfqRepository,
)
from rfq_messaging.value_objects import ManufacturerId, RfqId
from shared.logging import get_logger
from .object_store import ObjectExists, ObjectNotFound, ObjectStore, ObjectStoreError

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

EVENTS_PAGE_MAX = 200
TS_SORTABLE_FORMAT = "%Y%m%dT%H%M%S%fZ"


def ts_sortable(ts: datetime) -> str:
    """Fixed-width, lexicographically sortable UTC rendering of ts (microsecond precision)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).strftime(TS_SORTABLE_FORMAT)


def rfq_meta_key(rfq_id: str) -> str:
    return f"rfq/{rfq_id}/meta"


def rfq_index_key(rfq_id: str) -> str:
    return f"rfq/{rfq_id}/index"


def rfq_events_prefix(rfq_id: str) -> str:
    return f"rfq/{rfq_id}/events/"


def rfq_event_key(event: RfqEvent) -> str:
    return f"{rfq_events_prefix(event_rfq_id(event))}{ts_sortable(event_timestamp(event))}-{event_id(event)}"


async def _get_model(store: ObjectStore, key: str, model: Type[ModelT], label: str) -> Optional[ModelT]:
    try:
        raw = await store.get(key)
    except ObjectNotFound:
        logger.debug(f"No {label} at '{key}'")
        return None
    except ObjectStoreError as e:
        raise Internal(f"Failed to fetch {label}: {e}") from e
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        raise Internal(f"Failed to deserialize {label} at '{key}': {e}") from e


async def _put_model(store: ObjectStore, key: str, value: BaseModel, label: str) -> None:
    try:
        await store.put(key, value.model_dump_json().encode("utf-8"))
    except ObjectStoreError as e:
        raise Internal(f"Failed to save {label}: {e}") from e


class ObjectStoreRfqRepository(AbstractRfqRepository):
    """RFQ snapshots, indexes and event log, kept in the private bucket."""

    def __init__(self, store: ObjectStore, page_max: int = EVENTS_PAGE_MAX, default_limit: int = 100, list_page_size: int = 1000):
        self.store = store
        self.page_max = page_max
        self.default_limit = default_limit
        self.list_page_size = list_page_size

    async def save_rfq_meta(self, rfq: RfqMeta) -> None:
        logger.info(f"Saving RFQ meta {rfq.id}")
        await _put_model(self.store, rfq_meta_key(rfq.id), rfq, "RFQ meta")

    async def get_rfq_meta(self, rfq_id: RfqId) -> Optional[RfqMeta]:
        return await _get_model(self.store, rfq_meta_key(rfq_id.value), RfqMeta, "RFQ meta")

    async def save_rfq_index(self, rfq_id: RfqId, index: RfqIndex) -> None:
        logger.debug(f"Saving RFQ index for {rfq_id}: count={index.count}")
        await _put_model(self.store, rfq_index_key(rfq_id.value), index, "RFQ index")

    async def get_rfq_index(self, rfq_id: RfqId) -> Optional[RfqIndex]:
        return await _get_model(self.store, rfq_index_key(rfq_id.value), RfqIndex, "RFQ index")

    async def save_rfq_event(self, event: RfqEvent) -> None:
        key = rfq_event_key(event)
        try:
            await self.store.put(key, event_to_json(event), if_none_match=True)
        except ObjectExists as e:
            raise Conflict(f"Event key already exists: {key}") from e
        except ObjectStoreError as e:
            raise Internal(f"Failed to save RFQ event: {e}") from e
        logger.info(f"Appended {event.type} event {event_id(event)} to RFQ {event_rfq_id(event)}")

    async def _scan_event_keys(self, prefix: str, since_marker: Optional[str]) -> List[str]:
        # Skip straight past every key at or before the `since` instant
        start_after = f"{prefix}{since_marker}-~" if since_marker else None
        keys: List[str] = []
        token: Optional[str] = None
        while True:
            try:
                page = await self.store.list_keys(
                    prefix, start_after=start_after, continuation_token=token, max_keys=self.list_page_size
                )
            except ObjectStoreError as e:
                raise Internal(f"Failed to list RFQ events: {e}") from e
            keys.extend(page.keys)
            if not page.next_token:
                return keys
            token = page.next_token

    async def list_rfq_events(self, rfq_id: RfqId, since: Optional[datetime] = None, limit: Optional[int] = None) -> List[RfqEvent]:
        prefix = rfq_events_prefix(rfq_id.value)
        since_marker = ts_sortable(since) if since is not None else None
        cap = min(limit if limit is not None else self.default_limit, self.page_max)
        if cap <= 0:
            return []

        def key_ts(key: str) -> str:
            return key[len(prefix):].split("-", 1)[0]

        keys = await self._scan_event_keys(prefix, since_marker)
        if since_marker is not None:
            keys = [key for key in keys if key_ts(key) > since_marker]
        keys = sorted(set(keys))
        if len(keys) > cap and key_ts(keys[cap]) == key_ts(keys[cap - 1]):
            # A page never ends inside a group of events sharing one instant,
            # since an exclusive `since` would never reach the rest of the group
            boundary = key_ts(keys[cap - 1])
            trimmed = [key for key in keys[:cap] if key_ts(key) != boundary]
            keys = trimmed or [key for key in keys if key_ts(key) == boundary]
        else:
            keys = keys[:cap]

        events: List[RfqEvent] = []
        for key in keys:
            try:
                raw = await self.store.get(key)
            except ObjectNotFound:
                logger.warning(f"Event {key} was listed but could not be fetched; skipping")
                continue
            except ObjectStoreError as e:
                raise Internal(f"Failed to fetch RFQ event {key}: {e}") from e
            try:
                event = event_from_json(raw)
            except ValidationError as e:
                logger.warning(f"Failed to deserialize event {key}: {e}")
                continue
            if since is not None and event_timestamp(event) <= since:
                continue
            events.append(event)

        events.sort(key=event_sort_key)
        logger.debug(f"Listed {len(events)} events for RFQ {rfq_id}")
        return events


class ObjectStoreManufacturerRepository(AbstractManufacturerRepository):
    """Manufacturer profiles, kept in the public bucket."""

    def __init__(self, store: ObjectStore):
        self.store = store

    async def save_manufacturer(self, manufacturer: ManufacturerProfile) -> None:
        logger.info(f"Saving manufacturer {manufacturer.id}")
        await _put_model(self.store, f"manufacturer/{manufacturer.id}", manufacturer, "manufacturer")

    async def get_manufacturer(self, manufacturer_id: ManufacturerId) -> Optional[ManufacturerProfile]:
        return await _get_model(self.store, f"manufacturer/{manufacturer_id.value}", ManufacturerProfile, "manufacturer")


class ObjectStoreCatalogRepository(AbstractCatalogRepository):
    """Precomputed catalog slices, kept in the public bucket."""

    def __init__(self, store: ObjectStore):
        self.store = store

    async def save_category_slice(self, category_slice: CategorySlice) -> None:
        await _put_model(self.store, f"catalog/category/{category_slice.category}", category_slice, "category slice")

    async def get_category_slice(self, category: str) -> Optional[CategorySlice]:
        return await _get_model(self.store, f"catalog/category/{category}", CategorySlice, "category slice")

    async def save_category_state_slice(self, category: str, state: str, category_slice: CategorySlice) -> None:
        await _put_model(
            self.store, f"catalog/category_state/{category}/{state}", category_slice, "category state slice"
        )

    async def get_category_state_slice(self, category: str, state: str) -> Optional[CategorySlice]:
        return await _get_model(
            self.store, f"catalog/category_state/{category}/{state}", CategorySlice, "category state slice"
        )
