import httpx
from pydantic import BaseModel
from typing import Dict, List, Optional

from rfq_messaging.events import EventAuthor, MessageEvent
from rfq_messaging.models import ParticipantRole, RfqMeta
from rfq_messaging.service.ports import AbstractNotificationSender
from shared.logging import get_logger

logger = get_logger(__name__)

SIGNATURE = "Best regards,\nRFQ Messaging"


class EmailMessage(BaseModel):
    to: str
    subject: str
    body: str


def _manufacturer_email(rfq: RfqMeta) -> Optional[str]:
    for participant in rfq.participants:
        if participant.role == ParticipantRole.MANUFACTURER:
            return participant.email
    return None


def compose_rfq_created(rfq: RfqMeta) -> List[EmailMessage]:
    """New-RFQ notice for the manufacturer and a submission receipt for the buyer."""
    messages: List[EmailMessage] = []

    manufacturer_email = _manufacturer_email(rfq)
    if manufacturer_email:
        messages.append(EmailMessage(
            to=manufacturer_email,
            subject=f"New RFQ: {rfq.subject}",
            body=(
                "Hello,\n\n"
                "You have received a new Request for Quote (RFQ).\n\n"
                f"Subject: {rfq.subject}\n"
                f"From: {rfq.buyer.name or 'Anonymous'} ({rfq.buyer.email})\n\n"
                "Please log in to your account to view the details and respond.\n\n"
                f"{SIGNATURE}"
            ),
        ))

    messages.append(EmailMessage(
        to=rfq.buyer.email,
        subject="RFQ Submitted Successfully",
        body=(
            f"Hello {rfq.buyer.name or 'Customer'},\n\n"
            "Your Request for Quote has been submitted successfully.\n\n"
            f"Subject: {rfq.subject}\n"
            f"RFQ ID: {rfq.id}\n\n"
            "The manufacturer will be notified and should respond within a few business days.\n"
            "You will receive notifications for any updates.\n\n"
            f"{SIGNATURE}"
        ),
    ))
    return messages


def compose_new_message(rfq: RfqMeta, event: MessageEvent) -> Optional[EmailMessage]:
    """Notice to the party that did not write the message. System messages notify nobody."""
    author = event.base.by
    if author == EventAuthor.BUYER:
        recipient, from_role = _manufacturer_email(rfq), "buyer"
    elif author == EventAuthor.MANUFACTURER:
        recipient, from_role = rfq.buyer.email, "manufacturer"
    else:
        return None

    if not recipient:
        return None

    return EmailMessage(
        to=recipient,
        subject=f"New message on RFQ: {rfq.subject}",
        body=(
            "Hello,\n\n"
            "You have received a new message on your RFQ.\n\n"
            f"Subject: {rfq.subject}\n"
            f"RFQ ID: {rfq.id}\n"
            f"From: {from_role}\n\n"
            "Message:\n"
            f"{event.body}\n\n"
            "Please log in to your account to view the full conversation and respond.\n\n"
            f"{SIGNATURE}"
        ),
    )


class _ComposingSender(AbstractNotificationSender):
    async def notify_rfq_created(self, rfq: RfqMeta) -> None:
        # Each recipient is attempted; the first failure is raised afterwards
        first_error: Optional[Exception] = None
        for message in compose_rfq_created(rfq):
            try:
                await self.send(message)
            except Exception as e:
                logger.error(f"Failed to send '{message.subject}' to {message.to} for RFQ {rfq.id}: {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    async def notify_new_message(self, rfq: RfqMeta, event: MessageEvent) -> None:
        message = compose_new_message(rfq, event)
        if message is not None:
            await self.send(message)

    async def send(self, message: EmailMessage) -> None:
        raise NotImplementedError


class LoggingNotificationSender(_ComposingSender):
    """Logs outgoing mail instead of delivering it. Used in development and tests."""

    def __init__(self):
        self.sent: List[EmailMessage] = []

    async def send(self, message: EmailMessage) -> None:
        logger.info(f"Would send email to {message.to} with subject: {message.subject}")
        self.sent.append(message)


class HttpNotificationSender(_ComposingSender):
    """
    Delivers each email as a JSON POST to a mail relay webhook.
    """

    def __init__(self, url: str, from_email: str, token: Optional[str] = None, timeout: float = 5.0):
        """
        Args:
            url: The relay endpoint that accepts one email per request.
            from_email: Sender address stamped on every message.
            token: Optional bearer token for the relay.
            timeout: Per-request timeout in seconds.
        """
        self.url = url
        self.from_email = from_email
        self.token = token
        self.timeout = timeout

    def _auth_hdr(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    async def send(self, message: EmailMessage) -> None:
        """
        Raises:
            httpx.HTTPStatusError: If the relay answers with a non-2xx status.
            httpx.RequestError: For network errors and timeouts.
        """
        payload = {"from": self.from_email, **message.model_dump()}
        headers = self._auth_hdr()
        headers["Content-Type"] = "application/json"

        logger.info(f"Sending email to {message.to} via {self.url}, subject: {message.subject}")
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(self.url, json=payload, headers=headers)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error(f"Mail relay {self.url} rejected email to {message.to}: {e.response.status_code}")
                raise
            except httpx.RequestError as e:
                logger.error(f"RequestError while sending email via {self.url}: {e}")
                raise
