import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from rfq_messaging.events import (
    AttachmentEvent,
    EventAuthor,
    ListEventsResponse,
    MessageEvent,
    RfqEventBase,
    StatusEvent,
    StatusType,
    event_author,
    event_from_json,
    event_id,
    event_rfq_id,
    event_sort_key,
    event_timestamp,
    event_to_json,
    new_attachment,
    new_message,
    new_status,
)
from rfq_messaging.models import AttachmentRef


@pytest.fixture
def attachment_ref() -> AttachmentRef:
    return AttachmentRef(
        id="att-1",
        file_name="drawing.pdf",
        content_type="application/pdf",
        size_bytes=2048,
        key="uploads/t1/drawing.pdf",
    )


def test_constructors_stamp_fresh_ids_and_utc_timestamps():
    before = datetime.now(timezone.utc)
    first = new_message("r_1", EventAuthor.BUYER, "hello")
    second = new_message("r_1", EventAuthor.BUYER, "hello")

    assert event_id(first) != event_id(second)
    assert event_timestamp(first) >= before
    assert event_timestamp(first).tzinfo is not None
    # Back-to-back events never share an instant
    assert event_timestamp(second) > event_timestamp(first)


def test_accessors_dispatch_over_every_variant(attachment_ref):
    events = [
        new_message("r_1", EventAuthor.BUYER, "hello"),
        new_status("r_1", EventAuthor.SYSTEM, StatusType.RFQ_CREATED),
        new_attachment("r_1", EventAuthor.MANUFACTURER, [attachment_ref]),
    ]
    assert [event_rfq_id(e) for e in events] == ["r_1", "r_1", "r_1"]
    assert [event_author(e) for e in events] == [EventAuthor.BUYER, EventAuthor.SYSTEM, EventAuthor.MANUFACTURER]
    assert [e.type for e in events] == ["message", "status", "attachment"]


def test_accessor_rejects_non_events():
    with pytest.raises(TypeError):
        event_id("not an event")


def test_wire_shape_is_flat_with_type_discriminant():
    event = new_status("r_1", EventAuthor.SYSTEM, StatusType.RFQ_CREATED, note="opened")
    wire = json.loads(event_to_json(event))

    assert wire["type"] == "status"
    assert wire["id"] == event_id(event)
    assert wire["rfq_id"] == "r_1"
    assert wire["by"] == "system"
    assert wire["status"] == "rfq_created"
    assert wire["note"] == "opened"
    assert "base" not in wire
    assert "ts" in wire


@pytest.mark.parametrize("factory", [
    lambda ref: new_message("r_2", EventAuthor.MANUFACTURER, "We can do 500 units."),
    lambda ref: new_status("r_2", EventAuthor.BUYER, StatusType.BUYER_VIEWED),
    lambda ref: new_attachment("r_2", EventAuthor.BUYER, [ref]),
])
def test_round_trip_recovers_the_same_variant(factory, attachment_ref):
    event = factory(attachment_ref)
    restored = event_from_json(event_to_json(event))
    assert type(restored) is type(event)
    assert restored == event


def test_parses_flat_records_written_by_other_producers():
    raw = json.dumps({
        "type": "message",
        "id": "evt-1",
        "rfq_id": "r_ABCDEF12",
        "ts": "2024-05-01T10:00:00Z",
        "by": "buyer",
        "body": "Please quote.",
    })
    event = event_from_json(raw)
    assert isinstance(event, MessageEvent)
    assert event.body == "Please quote."
    assert event_timestamp(event) == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def test_unknown_type_is_rejected():
    raw = json.dumps({"type": "reaction", "id": "e", "rfq_id": "r", "ts": "2024-05-01T10:00:00Z", "by": "buyer"})
    with pytest.raises(ValidationError):
        event_from_json(raw)


def test_sort_key_breaks_timestamp_ties_by_id():
    ts = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    a = MessageEvent(base=RfqEventBase(id="a", rfq_id="r", ts=ts, by=EventAuthor.BUYER), body="first")
    b = StatusEvent(base=RfqEventBase(id="b", rfq_id="r", ts=ts, by=EventAuthor.SYSTEM), status=StatusType.CLOSED)
    assert sorted([b, a], key=event_sort_key) == [a, b]


def test_list_response_serializes_items_flat(attachment_ref):
    event = new_attachment("r_3", EventAuthor.BUYER, [attachment_ref])
    response = ListEventsResponse(items=[event], next_since=event_timestamp(event).isoformat())
    dumped = response.model_dump(mode="json")
    assert dumped["items"][0]["type"] == "attachment"
    assert dumped["items"][0]["attachments"][0]["file_name"] == "drawing.pdf"
    assert isinstance(ListEventsResponse.model_validate(dumped).items[0], AttachmentEvent)
