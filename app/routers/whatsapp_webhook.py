import json
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.orm import Session
from starlette.requests import ClientDisconnect

from app.database import get_db
from app.logging_config import get_logger
from app.models import MessagingConfig
from app.schemas.inbound import ChannelBatch, InboundMessage, StatusUpdate
from app.schemas.webhook import WebhookAck
from app.services.conversation_service import find_config_by_verify_token, find_config_for_phone_number, resolve_conversation
from app.services.dedup_service import forget_delivery, is_duplicate_delivery
from app.services.delivery_status_service import apply_status
from app.services.ingest_service import ingest_inbound
from app.services.normalizer import normalize_whatsapp_payload
from app.services.reply_service import schedule_reply
from app.services.whatsapp_service import verify_signature

logger = get_logger("whatsapp_webhook")

router = APIRouter(prefix="/api/whatsapp")


@router.get("/webhook")
def verify_webhook(
    hub_mode: Optional[str] = Query(default=None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
    db: Session = Depends(get_db),
):
    """Subscription handshake: echo the challenge when the token belongs to a config."""
    if hub_mode == "subscribe" and hub_verify_token and hub_challenge is not None:
        if find_config_by_verify_token(db, hub_verify_token):
            logger.info("WhatsApp webhook verified")
            return PlainTextResponse(hub_challenge)
    logger.warning("WhatsApp webhook verification rejected")
    return JSONResponse(status_code=403, content={"error": "Forbidden"})


async def handle_inbound(db: Session, config: MessagingConfig, inbound: InboundMessage) -> None:
    if await is_duplicate_delivery(config.id, inbound.external_message_id):
        logger.info(f"Skipping redelivered message {inbound.external_message_id}")
        return

    conversation = resolve_conversation(db, config, inbound)
    outcome = ingest_inbound(db, config, conversation, inbound)
    db.commit()
    schedule_reply(outcome.reply_job)


def handle_status(db: Session, config: MessagingConfig, update: StatusUpdate) -> None:
    apply_status(
        db,
        config,
        update.external_message_id,
        update.status,
        error_detail=update.error_detail,
        timestamp=update.timestamp,
    )
    db.commit()


async def process_batch(db: Session, batch: ChannelBatch, raw_body: bytes, signature: Optional[str]) -> None:
    config = find_config_for_phone_number(db, batch.phone_number_id)
    if not config:
        logger.warning(f"No active messaging config for phone_number_id={batch.phone_number_id}")
        return

    if config.wa_webhook_secret and not verify_signature(raw_body, signature, config.wa_webhook_secret):
        logger.warning(
            "Webhook signature mismatch, batch skipped",
            extra={"context": {"config_id": str(config.id)}},
        )
        return

    # Each item gets its own transaction so one failure doesn't lose the rest.
    for inbound in batch.messages:
        try:
            await handle_inbound(db, config, inbound)
        except Exception as e:
            db.rollback()
            await forget_delivery(config.id, inbound.external_message_id)
            logger.error(
                "Failed to ingest WhatsApp message",
                extra={"context": {"external_id": inbound.external_message_id, "error": str(e)}},
                exc_info=True,
            )

    for update in batch.statuses:
        try:
            handle_status(db, config, update)
        except Exception as e:
            db.rollback()
            logger.error(
                "Failed to apply delivery status",
                extra={"context": {"external_id": update.external_message_id, "error": str(e)}},
                exc_info=True,
            )


@router.post("/webhook", response_model=WebhookAck)
async def receive_webhook(request: Request, db: Session = Depends(get_db)):
    """Always acknowledge, otherwise the platform keeps retrying the delivery."""
    try:
        raw_body = await request.body()
    except ClientDisconnect:
        logger.warning("Client disconnected before webhook body was read")
        return WebhookAck()

    try:
        payload = json.loads(raw_body or b"{}")
        signature = request.headers.get("X-Hub-Signature-256")
        for batch in normalize_whatsapp_payload(payload):
            try:
                await process_batch(db, batch, raw_body, signature)
            except Exception as e:
                db.rollback()
                logger.error(
                    "WhatsApp batch failed, continuing with the next",
                    extra={"context": {"phone_number_id": batch.phone_number_id, "error": str(e)}},
                    exc_info=True,
                )
    except Exception as e:
        db.rollback()
        logger.error(f"WhatsApp webhook error: {e}", exc_info=True)

    return WebhookAck()
