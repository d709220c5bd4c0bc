import uuid
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import text, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from app.models import Channel, Conversation, Direction, Message, MessageStatus
from app.schemas.inbound import InboundMessage
from app.services.normalizer import DEFAULT_VISITOR_NAME
from app.services.whatsapp_service import OutboundContent

PREVIEW_LENGTH = 100


def build_preview(body: Optional[str], message_type: str = "text") -> str:
    """Conversation list preview: first 100 chars, ellipsis when cut."""
    body = (body or "").strip()
    if not body:
        return f"[{message_type}]"
    if len(body) <= PREVIEW_LENGTH:
        return body
    return body[:PREVIEW_LENGTH] + "..."


def save_inbound_message(db: Session, conversation: Conversation, inbound: InboundMessage) -> Optional[UUID]:
    """Insert an inbound message. Returns None if this native id was already stored."""
    stmt = (
        insert(Message)
        .values(
            id=uuid.uuid4(),
            user_id=conversation.user_id,
            conversation_id=conversation.id,
            channel=inbound.channel.value,
            external_message_id=inbound.external_message_id or "",
            direction=Direction.INBOUND.value,
            status=MessageStatus.RECEIVED.value,
            ai_generated=False,
            created_at=inbound.timestamp,
            **inbound.message_fields(),
        )
        .on_conflict_do_nothing(
            index_elements=["conversation_id", "external_message_id"],
            index_where=text("external_message_id <> ''"),
        )
        .returning(Message.id)
    )
    return db.execute(stmt).scalar_one_or_none()


def touch_conversation_inbound(db: Session, conversation: Conversation, inbound: InboundMessage) -> None:
    """Bump activity, preview and unread count for a new inbound message."""
    values = {
        "last_message_at": inbound.timestamp,
        "last_message_preview": build_preview(inbound.body, inbound.message_type),
        "unread_count": Conversation.unread_count + 1,
        "updated_at": datetime.now(timezone.utc),
    }
    if inbound.contact_name and (inbound.channel == Channel.WHATSAPP or inbound.contact_name != DEFAULT_VISITOR_NAME):
        values["customer_name"] = inbound.contact_name
    if inbound.customer_email:
        values["customer_email"] = inbound.customer_email

    db.execute(
        update(Conversation)
        .where(Conversation.id == conversation.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


def save_outbound_message(
    db: Session,
    conversation: Conversation,
    body: str,
    status: MessageStatus,
    ai_generated: bool = False,
    ai_confidence: Optional[float] = None,
    content: Optional[OutboundContent] = None,
) -> Message:
    """Add an outbound row; `content` carries the template or media fields of non-text sends."""
    now = datetime.now(timezone.utc)
    message = Message(
        id=uuid.uuid4(),
        user_id=conversation.user_id,
        conversation_id=conversation.id,
        channel=conversation.channel,
        external_message_id="",
        direction=Direction.OUTBOUND.value,
        message_type=content.message_type if content else "text",
        body=body,
        media_url=content.media_url if content else None,
        media_caption=content.media_caption if content else None,
        template_name=content.template_name if content else None,
        template_params=content.template_params if content and content.template_name else None,
        status=status.value,
        ai_generated=ai_generated,
        ai_confidence=ai_confidence,
        created_at=now,
        sent_at=now if status == MessageStatus.SENT else None,
    )
    db.add(message)
    db.flush()
    return message


def mark_delivery_result(message: Message, wa_message_id: Optional[str], error: Optional[str]) -> None:
    """Set sent/failed on an outbound message after a platform send attempt."""
    if wa_message_id:
        message.external_message_id = wa_message_id
        message.status = MessageStatus.SENT.value
        message.sent_at = datetime.now(timezone.utc)
    else:
        message.status = MessageStatus.FAILED.value
        message.error_message = error or "Delivery failed"


def list_recent_messages(db: Session, conversation_id: UUID, limit: int) -> list[Message]:
    """Last `limit` messages, oldest first."""
    rows = (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(rows))
