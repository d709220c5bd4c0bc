"""Turn channel payloads into InboundMessage / StatusUpdate events."""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from pydantic import ValidationError

from app.logging_config import get_logger
from app.models import Channel
from app.schemas.inbound import (
    ChannelBatch,
    InboundMessage,
    InteractiveMessage,
    LocationMessage,
    MediaMessage,
    StatusUpdate,
    TextMessage,
    UnsupportedMessage,
)
from app.schemas.web_chat import WebChatMessageRequest
from app.schemas.whatsapp import (
    WhatsAppChange,
    WhatsAppContact,
    WhatsAppEntry,
    WhatsAppMessage,
    WhatsAppStatus,
    WhatsAppValue,
)

logger = get_logger("normalizer")

MEDIA_TYPES = ("image", "video", "audio", "document")
DELIVERY_STATUSES = ("sent", "delivered", "read", "failed")
DEFAULT_FAILURE_DETAIL = "Delivery failed"
DEFAULT_VISITOR_NAME = "Visitor"


class ClientInputError(Exception):
    """Inbound request is missing required fields."""

    def __init__(self, message: str = "Missing fields"):
        self.message = message
        super().__init__(message)


def parse_platform_timestamp(value: Optional[str]) -> datetime:
    """Platform timestamps are epoch seconds as strings; fall back to now."""
    if value:
        try:
            return datetime.fromtimestamp(int(value), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            logger.warning(f"Unparseable platform timestamp: {value!r}")
    return datetime.now(timezone.utc)


def _contact_names(raw_contacts: list[dict[str, Any]]) -> dict[str, str]:
    names = {}
    for raw in raw_contacts:
        try:
            contact = WhatsAppContact.model_validate(raw)
        except ValidationError:
            continue
        if contact.profile and contact.profile.name:
            names[contact.wa_id] = contact.profile.name
    return names


def normalize_whatsapp_message(raw: dict[str, Any], contact_names: dict[str, str]) -> InboundMessage:
    """Normalize one platform message object. Raises ValidationError if malformed."""
    message = WhatsAppMessage.model_validate(raw)
    envelope = {
        "channel": Channel.WHATSAPP,
        "contact_id": message.from_,
        "contact_name": contact_names.get(message.from_) or message.from_,
        "external_message_id": message.id,
        "timestamp": parse_platform_timestamp(message.timestamp),
    }

    if message.type == "text":
        return TextMessage(body=message.text.body if message.text else "", **envelope)

    if message.type in MEDIA_TYPES:
        media = getattr(message, message.type)
        if media is None:
            return MediaMessage(message_type=message.type, **envelope)
        return MediaMessage(
            message_type=message.type,
            media_id=media.id,
            mime_type=media.mime_type,
            caption=media.caption,
            filename=media.filename,
            **envelope,
        )

    if message.type == "location" and message.location:
        location = message.location
        return LocationMessage(
            latitude=location.latitude,
            longitude=location.longitude,
            name=location.name,
            **envelope,
        )

    if message.type == "interactive" and message.interactive:
        reply = message.interactive.button_reply or message.interactive.list_reply
        return InteractiveMessage(title=(reply.title if reply else None) or "", **envelope)

    return UnsupportedMessage(message_type=message.type, **envelope)


def normalize_whatsapp_status(raw: dict[str, Any]) -> Optional[StatusUpdate]:
    """Normalize one status callback. Unknown status values yield None."""
    status = WhatsAppStatus.model_validate(raw)
    if status.status not in DELIVERY_STATUSES:
        logger.info(f"Ignoring unknown delivery status: {status.status}")
        return None

    error_detail = None
    if status.status == "failed":
        if status.errors:
            error_detail = status.errors[0].message or status.errors[0].title
        error_detail = error_detail or DEFAULT_FAILURE_DETAIL

    return StatusUpdate(
        external_message_id=status.id,
        status=status.status,
        error_detail=error_detail,
        recipient_id=status.recipient_id,
        timestamp=parse_platform_timestamp(status.timestamp),
    )


def _normalize_change(raw_change: dict[str, Any]) -> Optional[ChannelBatch]:
    change = WhatsAppChange.model_validate(raw_change)
    if change.field != "messages":
        return None

    value = WhatsAppValue.model_validate(change.value)
    batch = ChannelBatch(phone_number_id=value.metadata.phone_number_id)
    names = _contact_names(value.contacts)

    for raw in value.messages:
        try:
            batch.messages.append(normalize_whatsapp_message(raw, names))
        except ValidationError as e:
            logger.warning(
                "Skipping malformed WhatsApp message",
                extra={"context": {"phone_number_id": batch.phone_number_id, "error": str(e)}},
            )

    for raw in value.statuses:
        try:
            update = normalize_whatsapp_status(raw)
        except ValidationError as e:
            logger.warning(
                "Skipping malformed WhatsApp status",
                extra={"context": {"phone_number_id": batch.phone_number_id, "error": str(e)}},
            )
            continue
        if update:
            batch.statuses.append(update)

    return batch


def normalize_whatsapp_payload(payload: Any) -> list[ChannelBatch]:
    """Walk entry[].changes[] and collect one batch per "messages" change.

    Malformed entries or changes are logged and skipped; an empty list means
    there was nothing to process.
    """
    if not isinstance(payload, dict):
        logger.warning("WhatsApp payload is not an object")
        return []

    batches: list[ChannelBatch] = []
    for raw_entry in payload.get("entry") or []:
        try:
            entry = WhatsAppEntry.model_validate(raw_entry)
        except ValidationError as e:
            logger.warning(f"Skipping malformed webhook entry: {e}")
            continue

        for raw_change in entry.changes:
            try:
                batch = _normalize_change(raw_change)
            except ValidationError as e:
                logger.warning(f"Skipping malformed webhook change: {e}")
                continue
            if batch is not None:
                batches.append(batch)

    return batches


def normalize_web_chat(request: WebChatMessageRequest) -> TextMessage:
    """Validate a widget submission. Raises ClientInputError on missing fields."""
    store_id = (request.storeId or "").strip()
    session_id = (request.sessionId or "").strip()
    body = (request.message or "").strip()
    if not store_id or not session_id or not body:
        raise ClientInputError("Missing fields")

    customer_id = None
    if request.customerId:
        try:
            customer_id = UUID(request.customerId)
        except ValueError:
            logger.warning(f"Ignoring malformed customerId: {request.customerId!r}")

    email = (request.customerEmail or "").strip() or None

    return TextMessage(
        channel=Channel.WEB_CHAT,
        contact_id=session_id,
        contact_name=(request.customerName or "").strip() or DEFAULT_VISITOR_NAME,
        timestamp=datetime.now(timezone.utc),
        body=body,
        customer_email=email,
        customer_id=customer_id,
    )
