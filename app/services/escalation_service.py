from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Conversation, MessagingConfig
from app.services.state_machine import Ownership, escalate

logger = get_logger("escalation_service")


@dataclass
class EscalationDecision:
    escalate: bool
    keyword: Optional[str] = None
    # False when a concurrent request had already flipped ownership.
    applied: bool = False


def match_keyword(body: str, keywords: Optional[list]) -> Optional[str]:
    """First configured keyword found in the body, case-insensitively."""
    text = (body or "").lower()
    if not text:
        return None
    for keyword in keywords or []:
        if not isinstance(keyword, str) or not keyword.strip():
            continue
        if keyword.lower() in text:
            return keyword
    return None


def escalate_conversation(db: Session, conversation: Conversation) -> bool:
    """Apply AI -> ESCALATED as one conditional UPDATE.

    Returns True when this call performed the transition.
    """
    target = escalate(Ownership.AI)
    now = datetime.now(timezone.utc)
    result = db.execute(
        update(Conversation)
        .where(Conversation.id == conversation.id, Conversation.ownership == Ownership.AI.value)
        .values(ownership=target.value, escalated_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    applied = result.rowcount > 0
    if applied:
        conversation.ownership = target.value
        conversation.escalated_at = now
    return applied


def evaluate_escalation(
    db: Session,
    config: MessagingConfig,
    conversation: Conversation,
    body: str,
) -> EscalationDecision:
    """Check an inbound body against the escalation keywords.

    Only runs while AI is enabled and the conversation is not already
    escalated. Escalation is one-way from here; only an operator moves the
    conversation on.
    """
    if not config.ai_enabled or conversation.ownership == Ownership.ESCALATED.value:
        return EscalationDecision(escalate=False)

    keyword = match_keyword(body, config.ai_escalation_keywords)
    if keyword is None:
        return EscalationDecision(escalate=False)

    if conversation.ownership != Ownership.AI.value:
        # Operator already holds it; the match only suppresses the reply.
        return EscalationDecision(escalate=True, keyword=keyword)

    applied = escalate_conversation(db, conversation)
    logger.info(
        "Conversation escalated" if applied else "Escalation already applied",
        extra={"context": {"conversation_id": str(conversation.id), "keyword": keyword}},
    )
    return EscalationDecision(escalate=True, keyword=keyword, applied=applied)
