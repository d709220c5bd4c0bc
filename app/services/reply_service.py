import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import httpx
from sqlalchemy import update
from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.logging_config import get_logger
from app.models import Channel, Conversation, Message, MessageStatus, MessagingConfig
from app.schemas.inbound import InboundMessage
from app.services.context_service import (
    build_store_context,
    build_system_prompt,
    to_completion_messages,
    to_transcript,
)
from app.services.llm import LLMError, LLMProvider, OpenAIProvider
from app.services.message_service import (
    build_preview,
    list_recent_messages,
    mark_delivery_result,
    save_outbound_message,
)
from app.services.result import Result
from app.services.state_machine import Ownership
from app.services.whatsapp_service import SendResult, send_whatsapp_text

logger = get_logger("reply_service")

DEFAULT_DELAY_MS = {
    Channel.WHATSAPP: 2000,
    Channel.WEB_CHAT: 1500,
}

_llm_provider: Optional[LLMProvider] = None


def get_llm_provider() -> LLMProvider:
    global _llm_provider
    if _llm_provider is None:
        _llm_provider = OpenAIProvider(api_key=settings.openai_api_key, default_model=settings.llm_model)
    return _llm_provider


@dataclass
class ReplyJob:
    config_id: UUID
    conversation_id: UUID
    channel: Channel
    delay_seconds: float


def should_reply(config: MessagingConfig, conversation: Conversation, inbound: Optional[InboundMessage] = None) -> bool:
    if not config.ai_enabled or not config.is_active:
        return False
    if conversation.ownership != Ownership.AI.value:
        return False
    if inbound is not None and inbound.channel == Channel.WHATSAPP:
        # Media, locations and button taps wait for a human.
        return inbound.message_type == "text" and bool(inbound.body.strip())
    return True


def reply_delay_seconds(config: MessagingConfig, channel: Channel) -> float:
    delay_ms = config.ai_auto_reply_delay_ms
    if delay_ms is None or delay_ms < 0:
        delay_ms = DEFAULT_DELAY_MS[channel]
    return delay_ms / 1000.0


def build_reply_job(config: MessagingConfig, conversation: Conversation, inbound: InboundMessage) -> Optional[ReplyJob]:
    if not should_reply(config, conversation, inbound):
        return None
    return ReplyJob(
        config_id=config.id,
        conversation_id=conversation.id,
        channel=inbound.channel,
        delay_seconds=reply_delay_seconds(config, inbound.channel),
    )


def schedule_reply(job: Optional[ReplyJob]) -> bool:
    """Hand a job to the background dispatcher. Call after the inbound commit."""
    if job is None:
        return False
    from app.services.reply_worker import get_reply_dispatcher

    return get_reply_dispatcher().submit(job)


async def generate_reply(provider: LLMProvider, messages: list[dict]) -> Result[str]:
    timeout = settings.llm_timeout_seconds
    try:
        response = await asyncio.wait_for(
            provider.generate(
                messages,
                model=settings.llm_model,
                temperature=settings.llm_temperature,
                max_tokens=settings.llm_max_tokens,
                timeout_seconds=timeout,
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        return Result.failure(f"Completion timed out after {timeout}s", "completion_timeout")
    except (LLMError, httpx.HTTPError) as e:
        return Result.failure(str(e) or e.__class__.__name__, "completion_error")

    content = (response.content or "").strip()
    if not content:
        return Result.failure("Completion returned no text", "completion_empty")
    return Result.success(content)


def claim_reply(db: Session, conversation: Conversation, reply_text: str) -> bool:
    """Record the reply on the conversation only while the AI still owns it.

    A single conditional UPDATE, so an escalation committed while the
    completion was running wins and the reply is discarded.
    """
    now = datetime.now(timezone.utc)
    result = db.execute(
        update(Conversation)
        .where(Conversation.id == conversation.id, Conversation.ownership == Ownership.AI.value)
        .values(last_message_at=now, last_message_preview=build_preview(reply_text), updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def run_reply(job: ReplyJob, session_factory=None, provider=None, sender=None) -> Result[Message]:
    """Produce, store and deliver one AI reply for a conversation."""
    session_factory = session_factory or SessionLocal
    provider = provider or get_llm_provider()
    sender = sender or send_whatsapp_text
    log_context = {"conversation_id": str(job.conversation_id), "channel": job.channel.value}

    db = session_factory()
    try:
        config = db.get(MessagingConfig, job.config_id)
        conversation = db.get(Conversation, job.conversation_id)
        if config is None or conversation is None:
            return Result.failure("Config or conversation not found", "not_found")

        # Ownership may have changed while the job was waiting.
        if not should_reply(config, conversation):
            return Result.failure("Conversation is not AI-owned", "not_ai_owned")

        transcript = to_transcript(list_recent_messages(db, conversation.id, settings.reply_history_limit))
        store_context = build_store_context(db, config, conversation)
        system_prompt = build_system_prompt(config, job.channel, store_context)

        reply = await generate_reply(provider, to_completion_messages(system_prompt, transcript))
        if not reply.ok:
            logger.warning("AI reply not generated", extra={"context": {**log_context, "error": reply.error}})
            return reply

        if not claim_reply(db, conversation, reply.value):
            db.rollback()
            logger.info("Ownership changed during generation, reply discarded", extra={"context": log_context})
            return Result.failure("Conversation escalated during generation", "ownership_changed")

        if job.channel == Channel.WEB_CHAT:
            message = save_outbound_message(
                db,
                conversation,
                reply.value,
                MessageStatus.SENT,
                ai_generated=True,
                ai_confidence=settings.ai_reply_confidence,
            )
            db.commit()
            logger.info("AI reply stored", extra={"context": log_context})
            return Result.success(message)

        message = save_outbound_message(
            db,
            conversation,
            reply.value,
            MessageStatus.QUEUED,
            ai_generated=True,
            ai_confidence=settings.ai_reply_confidence,
        )
        db.commit()

        # The row is already committed as queued; it must end up sent or failed.
        try:
            sent = await sender(config, conversation.contact_id, reply.value)
        except Exception as e:
            logger.error("WhatsApp send raised", extra={"context": {**log_context, "error": str(e)}}, exc_info=True)
            sent = SendResult(error=str(e) or e.__class__.__name__)
        mark_delivery_result(message, sent.message_id, sent.error)
        db.commit()
        logger.info(
            "AI reply delivered" if sent.ok else "AI reply delivery failed",
            extra={"context": {**log_context, "status": message.status, "error": sent.error}},
        )
        return Result.success(message)
    except asyncio.CancelledError:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error("AI reply failed", extra={"context": {**log_context, "error": str(e)}}, exc_info=True)
        return Result.failure(str(e), "reply_error")
    finally:
        db.close()
