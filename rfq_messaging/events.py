"""
RFQ event model.

An RFQ's history is an append-only log of three kinds of events: messages,
status changes and attachment uploads. They form a closed union; code that
needs a field shared by all kinds goes through the accessor functions below,
which match exhaustively over the three variants.

Wire shape (the one format external consumers rely on): a flat JSON object
with a ``type`` discriminant (``"message" | "status" | "attachment"``), the
shared base fields ``id``, ``rfq_id``, ``ts``, ``by``, and the variant's own
fields.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, model_serializer, model_validator

from .models import AttachmentRef


class EventAuthor(str, Enum):
    BUYER = "buyer"
    MANUFACTURER = "manufacturer"
    SYSTEM = "system"


class StatusType(str, Enum):
    RFQ_CREATED = "rfq_created"
    VENDOR_VIEWED = "vendor_viewed"
    VENDOR_REPLIED = "vendor_replied"
    BUYER_VIEWED = "buyer_viewed"
    CLOSED = "closed"
    ARCHIVED = "archived"


class RfqEventBase(BaseModel):
    id: str
    rfq_id: str
    ts: datetime
    by: EventAuthor


_BASE_FIELDS = tuple(RfqEventBase.model_fields)


class _FlatEvent(BaseModel):
    """Keeps the base fields nested in Python and flat on the wire."""

    @model_validator(mode="before")
    @classmethod
    def _nest_base(cls, data: Any) -> Any:
        if isinstance(data, dict) and "base" not in data:
            data = dict(data)
            data["base"] = {name: data.pop(name) for name in _BASE_FIELDS if name in data}
        return data

    @model_serializer(mode="wrap")
    def _flatten_base(self, handler) -> Dict[str, Any]:
        dumped = handler(self)
        base = dumped.pop("base", {})
        return {"type": dumped.pop("type", None), **base, **dumped}


class MessageEvent(_FlatEvent):
    type: Literal["message"] = "message"
    base: RfqEventBase
    body: str # plain text, validated through MessageBody before construction


class StatusEvent(_FlatEvent):
    type: Literal["status"] = "status"
    base: RfqEventBase
    status: StatusType
    note: Optional[str] = None


class AttachmentEvent(_FlatEvent):
    type: Literal["attachment"] = "attachment"
    base: RfqEventBase
    attachments: List[AttachmentRef]


RfqEvent = Annotated[Union[MessageEvent, StatusEvent, AttachmentEvent], Field(discriminator="type")]

_event_adapter: TypeAdapter[RfqEvent] = TypeAdapter(RfqEvent)


_last_issued: Optional[datetime] = None


def _now() -> datetime:
    # Strictly increasing within the process, so events appended back to back keep their order
    global _last_issued
    now = datetime.now(timezone.utc)
    if _last_issued is not None and now <= _last_issued:
        now = _last_issued + timedelta(microseconds=1)
    _last_issued = now
    return now


def _new_base(rfq_id: str, author: EventAuthor) -> RfqEventBase:
    return RfqEventBase(id=str(uuid.uuid4()), rfq_id=rfq_id, ts=_now(), by=author)


def new_message(rfq_id: str, author: EventAuthor, body: str) -> MessageEvent:
    return MessageEvent(base=_new_base(rfq_id, author), body=body)


def new_status(rfq_id: str, author: EventAuthor, status: StatusType, note: Optional[str] = None) -> StatusEvent:
    return StatusEvent(base=_new_base(rfq_id, author), status=status, note=note)


def new_attachment(rfq_id: str, author: EventAuthor, attachments: List[AttachmentRef]) -> AttachmentEvent:
    return AttachmentEvent(base=_new_base(rfq_id, author), attachments=attachments)


def _base_of(event: RfqEvent) -> RfqEventBase:
    match event:
        case MessageEvent(base=base):
            return base
        case StatusEvent(base=base):
            return base
        case AttachmentEvent(base=base):
            return base
    raise TypeError(f"Not an RFQ event: {type(event).__name__}")


def event_id(event: RfqEvent) -> str:
    return _base_of(event).id


def event_rfq_id(event: RfqEvent) -> str:
    return _base_of(event).rfq_id


def event_timestamp(event: RfqEvent) -> datetime:
    return _base_of(event).ts


def event_author(event: RfqEvent) -> EventAuthor:
    return _base_of(event).by


def event_sort_key(event: RfqEvent):
    """Chronological order; the event id breaks ties between same-instant events."""
    base = _base_of(event)
    return (base.ts, base.id)


def event_to_json(event: RfqEvent) -> bytes:
    return _event_adapter.dump_json(event)


def event_from_json(raw: Union[str, bytes]) -> RfqEvent:
    """Parses one wire record. Raises pydantic.ValidationError on malformed input."""
    return _event_adapter.validate_json(raw)


class ListEventsResponse(BaseModel):
    items: List[RfqEvent]
    next_since: Optional[str] = None
