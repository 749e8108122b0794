from datetime import datetime
from typing import List, Optional
import uuid

from pydantic import BaseModel, ValidationError

from ..errors import Internal, NotFound, ValidationFailed
from ..events import (
    EventAuthor,
    ListEventsResponse,
    RfqEvent,
    StatusType,
    event_timestamp,
    new_attachment,
    new_message,
    new_status,
)
from ..models import (
    AttachmentIn,
    AttachmentRef,
    Contact,
    CreateRfqRequest,
    CreateRfqResponse,
    Participant,
    ParticipantRole,
    PostMessageRequest,
    PostMessageResponse,
    RfqIndex,
    RfqMeta,
    RfqStatus,
)
from ..value_objects import ContentType, Email, FileSize, ManufacturerId, MessageBody, RfqId, TenantId
from ..adapters.idempotency_store import compute_body_hash
from .ports import (
    AbstractIdempotencyStore,
    AbstractManufacturerRepository,
    AbstractNotificationSender,
    AbstractRfqRepository,
)
from shared.logging import get_logger

logger = get_logger(__name__)

MESSAGE_AUTHORS = {
    "buyer": EventAuthor.BUYER,
    "manufacturer": EventAuthor.MANUFACTURER,
}


def format_ts(ts: datetime) -> str:
    return ts.isoformat()


def parse_since(since: str) -> datetime:
    """Parses an RFC 3339 instant. A trailing 'Z' is accepted; offset-less values are not."""
    raw = since.strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationFailed("Invalid since timestamp format") from None
    if parsed.tzinfo is None:
        raise ValidationFailed("Invalid since timestamp format: a UTC offset is required")
    return parsed


def build_attachments(attachments: Optional[List[AttachmentIn]]) -> List[AttachmentRef]:
    """Validates uploaded-file descriptors and turns them into stored references."""
    refs: List[AttachmentRef] = []
    for attachment in attachments or []:
        content_type = ContentType(attachment.content_type)
        size = FileSize(attachment.size_bytes)
        refs.append(AttachmentRef(
            id=str(uuid.uuid4()),
            file_name=attachment.file_name,
            content_type=content_type.value,
            size_bytes=size.value,
            key=attachment.upload_key,
        ))
    return refs


class RfqService:
    """
    Orchestrates the RFQ aggregate: validates commands, appends events,
    maintains the index and triggers notifications.

    None of the repository writes below are atomic with each other. Once the
    first write of a command has landed, later failures do not undo it; the
    event log only grows.
    """

    def __init__(
        self,
        rfq_repository: AbstractRfqRepository,
        manufacturer_repository: AbstractManufacturerRepository,
        notification_sender: AbstractNotificationSender,
        idempotency_store: AbstractIdempotencyStore,
    ):
        self.rfq_repository = rfq_repository
        self.manufacturer_repository = manufacturer_repository
        self.notification_sender = notification_sender
        self.idempotency_store = idempotency_store

    async def _replay(self, idempotency_key: Optional[str], body_hash: Optional[str], response_model):
        if idempotency_key is None:
            return None
        cached = await self.idempotency_store.check(idempotency_key, body_hash)
        if cached is None:
            return None
        try:
            return response_model.model_validate_json(cached)
        except ValidationError as e:
            raise Internal(f"Failed to deserialize cached response: {e}") from e

    async def _remember(self, idempotency_key: Optional[str], body_hash: Optional[str], response: BaseModel) -> None:
        if idempotency_key is None:
            return
        await self.idempotency_store.store(idempotency_key, body_hash, response.model_dump_json())

    async def create_rfq(self, request: CreateRfqRequest, idempotency_key: Optional[str] = None) -> CreateRfqResponse:
        body_hash = compute_body_hash(request) if idempotency_key is not None else None
        replayed = await self._replay(idempotency_key, body_hash, CreateRfqResponse)
        if replayed is not None:
            logger.info(f"Replayed create_rfq response for RFQ {replayed.id}")
            return replayed

        # Everything is validated before the first durable write
        tenant_id = TenantId(request.tenant_id)
        manufacturer_id = ManufacturerId(request.manufacturer_id)
        buyer_email = Email(request.buyer.email)
        message_body = MessageBody(request.body)
        attachments = build_attachments(request.attachments)

        manufacturer = await self.manufacturer_repository.get_manufacturer(manufacturer_id)
        if manufacturer is None:
            raise NotFound("Manufacturer not found")

        rfq_id = RfqId.generate()
        logger.info(f"Creating RFQ {rfq_id} for tenant {tenant_id} and manufacturer {manufacturer_id}")

        events: List[RfqEvent] = [
            new_status(rfq_id.value, EventAuthor.SYSTEM, StatusType.RFQ_CREATED),
            new_message(rfq_id.value, EventAuthor.BUYER, message_body.value),
        ]
        if attachments:
            events.append(new_attachment(rfq_id.value, EventAuthor.BUYER, attachments))
        created_at = event_timestamp(events[0])
        last_event_ts = event_timestamp(events[-1])

        buyer = Contact(email=buyer_email.value, name=request.buyer.name)
        rfq = RfqMeta(
            id=rfq_id.value,
            tenant_id=tenant_id.value,
            manufacturer_id=manufacturer_id.value,
            buyer=buyer,
            subject=request.subject,
            status=RfqStatus.OPEN,
            created_at=created_at,
            last_event_ts=last_event_ts,
            participants=[
                Participant(role=ParticipantRole.BUYER, email=buyer.email, name=buyer.name),
                Participant(
                    role=ParticipantRole.MANUFACTURER,
                    email=manufacturer.contact_email or "",
                    name=manufacturer.name,
                ),
            ],
            attachments=attachments or None,
        )

        await self.rfq_repository.save_rfq_meta(rfq)
        for event in events:
            await self.rfq_repository.save_rfq_event(event)
        await self.rfq_repository.save_rfq_index(rfq_id, RfqIndex(last_event_ts=last_event_ts, count=len(events)))

        try:
            await self.notification_sender.notify_rfq_created(rfq)
        except Exception as e:
            logger.error(f"Failed to send RFQ created notifications for {rfq_id}: {e}", exc_info=True)

        response = CreateRfqResponse(id=rfq_id.value, last_event_ts=format_ts(last_event_ts))
        await self._remember(idempotency_key, body_hash, response)
        logger.info(f"Created RFQ {rfq_id} with {len(events)} events")
        return response

    async def get_rfq(self, rfq_id: str) -> Optional[RfqMeta]:
        return await self.rfq_repository.get_rfq_meta(RfqId(rfq_id))

    async def list_events(self, rfq_id: str, since: Optional[str] = None, limit: Optional[int] = None) -> ListEventsResponse:
        """
        Returns one page of an RFQ's events, oldest first.

        `since` is exclusive: only events strictly after it are returned, so
        feeding `next_since` back in continues where the page ended.
        """
        rfq = RfqId(rfq_id)
        since_dt = parse_since(since) if since is not None else None
        events = await self.rfq_repository.list_rfq_events(rfq, since_dt, limit)
        next_since = format_ts(event_timestamp(events[-1])) if events else None
        return ListEventsResponse(items=events, next_since=next_since)

    async def post_message(self, rfq_id: str, request: PostMessageRequest, idempotency_key: Optional[str] = None) -> PostMessageResponse:
        rfq_key = RfqId(rfq_id)
        body_hash = compute_body_hash(request, rfq_id=rfq_key.value) if idempotency_key is not None else None
        replayed = await self._replay(idempotency_key, body_hash, PostMessageResponse)
        if replayed is not None:
            logger.info(f"Replayed post_message response for RFQ {rfq_key}")
            return replayed

        message_body = MessageBody(request.body)
        author = MESSAGE_AUTHORS.get(request.by)
        if author is None:
            raise ValidationFailed("Invalid author role", details={"by": request.by})
        attachments = build_attachments(request.attachments)

        rfq = await self.rfq_repository.get_rfq_meta(rfq_key)
        if rfq is None:
            raise NotFound("RFQ not found")

        message_event = new_message(rfq_key.value, author, message_body.value)
        events: List[RfqEvent] = [message_event]
        if attachments:
            events.append(new_attachment(rfq_key.value, author, attachments))
        for event in events:
            await self.rfq_repository.save_rfq_event(event)
        last_event_ts = event_timestamp(events[-1])

        index = await self.rfq_repository.get_rfq_index(rfq_key)
        if index is None:
            logger.warning(f"RFQ {rfq_key} had no index; starting a new one")
            index = RfqIndex(last_event_ts=last_event_ts, count=0)
        index.count += len(events)
        index.last_event_ts = last_event_ts
        await self.rfq_repository.save_rfq_index(rfq_key, index)

        if last_event_ts > rfq.last_event_ts:
            rfq.last_event_ts = last_event_ts
            await self.rfq_repository.save_rfq_meta(rfq)

        try:
            await self.notification_sender.notify_new_message(rfq, message_event)
        except Exception as e:
            logger.error(f"Failed to send new message notification for RFQ {rfq_key}: {e}", exc_info=True)

        response = PostMessageResponse(ts=format_ts(event_timestamp(message_event)))
        await self._remember(idempotency_key, body_hash, response)
        logger.info(f"Posted message {message_event.base.id} by {author.value} to RFQ {rfq_key}")
        return response
