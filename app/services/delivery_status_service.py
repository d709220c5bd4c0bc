from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Conversation, Direction, Message, MessageStatus, MessagingConfig

logger = get_logger("delivery_status")

# Callbacks can arrive out of order; a message never moves backwards.
STATUS_RANK = {
    MessageStatus.QUEUED.value: 0,
    MessageStatus.SENT.value: 1,
    MessageStatus.DELIVERED.value: 2,
    MessageStatus.READ.value: 3,
}

TIMESTAMP_FIELDS = {
    MessageStatus.SENT.value: "sent_at",
    MessageStatus.DELIVERED.value: "delivered_at",
    MessageStatus.READ.value: "read_at",
}


def find_outbound_message(db: Session, config: MessagingConfig, external_message_id: str) -> Optional[Message]:
    return (
        db.query(Message)
        .join(Conversation, Message.conversation_id == Conversation.id)
        .filter(
            Conversation.config_id == config.id,
            Message.external_message_id == external_message_id,
            Message.direction == Direction.OUTBOUND.value,
        )
        .first()
    )


def apply_status(
    db: Session,
    config: MessagingConfig,
    external_message_id: str,
    status: str,
    error_detail: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> bool:
    """Record a delivery callback. Unknown ids are a no-op returning False."""
    if not external_message_id:
        return False

    message = find_outbound_message(db, config, external_message_id)
    if not message:
        logger.debug(f"Status {status} for unknown message {external_message_id}")
        return False

    at = timestamp or datetime.now(timezone.utc)

    if status == MessageStatus.FAILED.value:
        message.status = status
        message.error_message = error_detail or "Delivery failed"
        db.flush()
        logger.warning(
            "Outbound message failed",
            extra={"context": {"message_id": str(message.id), "error": message.error_message}},
        )
        return True

    field = TIMESTAMP_FIELDS.get(status)
    if field is None:
        logger.info(f"Ignoring unsupported delivery status: {status}")
        return False

    setattr(message, field, at)
    current_rank = STATUS_RANK.get(message.status, -1)
    if STATUS_RANK[status] > current_rank:
        message.status = status
    db.flush()
    return True
