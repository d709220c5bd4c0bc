from datetime import datetime, timezone
from typing import Tuple
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Channel, Conversation, Message, MessageStatus, MessagingConfig
from app.services.conversation_service import NotFoundError
from app.services.message_service import build_preview, mark_delivery_result, save_outbound_message
from app.services.state_machine import InvalidTransitionError, Ownership, operator_return, operator_take
from app.services.whatsapp_service import MEDIA_TYPES, OutboundContent, SendResult, send_whatsapp_message

logger = get_logger("operator_service")

OWNERSHIP_ACTIONS = {
    "take": operator_take,
    "return": operator_return,
}


class OperatorActionError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


def _get_conversation(db: Session, conversation_id: UUID) -> Conversation:
    conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if not conversation:
        raise NotFoundError("Conversation not found")
    return conversation


def change_ownership(db: Session, conversation_id: UUID, action: str) -> Tuple[str, str]:
    """Apply an operator ownership action. Returns (old, new) ownership."""
    if action not in OWNERSHIP_ACTIONS:
        raise OperatorActionError(f"Unknown action '{action}'")

    conversation = _get_conversation(db, conversation_id)
    old = Ownership(conversation.ownership)
    try:
        new = OWNERSHIP_ACTIONS[action](old)
    except InvalidTransitionError as e:
        raise OperatorActionError(str(e))

    now = datetime.now(timezone.utc)
    result = db.execute(
        update(Conversation)
        .where(Conversation.id == conversation.id, Conversation.ownership == old.value)
        .values(ownership=new.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise OperatorActionError("Conversation ownership changed concurrently, reload and retry")

    conversation.ownership = new.value
    logger.info(
        "Ownership changed by operator",
        extra={"context": {"conversation_id": str(conversation.id), "from": old.value, "to": new.value}},
    )
    return old.value, new.value


def _validate_content(content: OutboundContent, channel: str) -> None:
    if channel != Channel.WHATSAPP.value and content.message_type != "text":
        raise OperatorActionError("Web chat supports text messages only")
    if content.message_type == "template" and not content.template_name:
        raise OperatorActionError("templateName is required for template messages")
    if content.message_type in MEDIA_TYPES and not content.media_url:
        raise OperatorActionError(f"mediaUrl is required for {content.message_type} messages")
    if content.message_type == "text" and not content.body:
        raise OperatorActionError("Message body is required")


async def send_operator_reply(db: Session, conversation_id: UUID, content: OutboundContent) -> Message:
    """Record an operator reply and deliver it on the conversation's channel."""
    content.body = (content.body or "").strip()
    conversation = _get_conversation(db, conversation_id)
    _validate_content(content, conversation.channel)
    body = content.stored_body

    if conversation.channel == Channel.WHATSAPP.value:
        config = db.get(MessagingConfig, conversation.config_id)
        message = save_outbound_message(db, conversation, body, MessageStatus.QUEUED, content=content)
        try:
            sent = await send_whatsapp_message(config, conversation.contact_id, content)
        except Exception as e:
            logger.error(
                "WhatsApp send raised",
                extra={"context": {"conversation_id": str(conversation.id), "error": str(e)}},
                exc_info=True,
            )
            sent = SendResult(error=str(e) or e.__class__.__name__)
        mark_delivery_result(message, sent.message_id, sent.error)
    else:
        message = save_outbound_message(db, conversation, body, MessageStatus.SENT)

    conversation.unread_count = 0
    conversation.last_message_at = datetime.now(timezone.utc)
    conversation.last_message_preview = build_preview(body, content.message_type)
    db.flush()
    return message
