from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Conversation, MessagingConfig
from app.schemas.inbound import InboundMessage
from app.services.escalation_service import EscalationDecision, evaluate_escalation
from app.services.message_service import save_inbound_message, touch_conversation_inbound
from app.services.reply_service import ReplyJob, build_reply_job

logger = get_logger("ingest_service")


@dataclass
class IngestOutcome:
    message_id: Optional[UUID]
    duplicate: bool = False
    escalation: Optional[EscalationDecision] = None
    reply_job: Optional[ReplyJob] = None


def ingest_inbound(
    db: Session,
    config: MessagingConfig,
    conversation: Conversation,
    inbound: InboundMessage,
) -> IngestOutcome:
    """Store an inbound message and decide what happens next.

    Does not commit. The caller commits and only then schedules
    ``outcome.reply_job``, so the reply worker always sees the message.
    """
    message_id = save_inbound_message(db, conversation, inbound)
    if message_id is None:
        logger.info(
            "Duplicate inbound message ignored",
            extra={"context": {"conversation_id": str(conversation.id), "external_id": inbound.external_message_id}},
        )
        return IngestOutcome(message_id=None, duplicate=True)

    touch_conversation_inbound(db, conversation, inbound)

    decision = evaluate_escalation(db, config, conversation, inbound.body)
    job = None if decision.escalate else build_reply_job(config, conversation, inbound)

    logger.info(
        "Inbound message stored",
        extra={
            "context": {
                "conversation_id": str(conversation.id),
                "channel": inbound.channel.value,
                "type": inbound.message_type,
                "escalated": decision.escalate,
                "reply_scheduled": job is not None,
            }
        },
    )
    return IngestOutcome(message_id=message_id, escalation=decision, reply_job=job)
