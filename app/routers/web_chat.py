from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.database import get_db
from app.logging_config import get_logger
from app.models import Channel, MessagingConfig
from app.schemas.web_chat import (
    ChatMessageOut,
    WebChatConversationResponse,
    WebChatMessageRequest,
    WebChatMessageResponse,
    WidgetConfig,
)
from app.services.conversation_service import NotFoundError, find_conversation, get_or_provision_config, resolve_conversation
from app.services.ingest_service import ingest_inbound
from app.services.message_service import list_recent_messages
from app.services.normalizer import ClientInputError, normalize_web_chat
from app.services.reply_service import schedule_reply

logger = get_logger("web_chat")

router = APIRouter(prefix="/api/messaging")

HISTORY_LIMIT = 100
CHAT_UNAVAILABLE = "Chat not available"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _parse_store_id(raw: Optional[str]) -> Optional[UUID]:
    try:
        return UUID(raw) if raw else None
    except ValueError:
        return None


def _widget(config: MessagingConfig) -> WidgetConfig:
    return WidgetConfig(
        title=config.chat_widget_title,
        subtitle=config.chat_widget_subtitle,
        color=config.chat_widget_color,
        greeting=config.chat_widget_greeting,
        businessName=config.business_name,
    )


@router.get("/chat", response_model=WebChatConversationResponse)
def get_chat(storeId: Optional[str] = None, sessionId: Optional[str] = None, db: Session = Depends(get_db)):
    """Widget bootstrap: copy plus the visitor's history, if any."""
    if not storeId or not sessionId:
        return _error(400, "Missing storeId or sessionId")

    store_id = _parse_store_id(storeId)
    if store_id is None:
        return _error(404, "Store not found")

    try:
        config = get_or_provision_config(db, store_id, Channel.WEB_CHAT)
        db.commit()
    except NotFoundError as e:
        db.rollback()
        return _error(404, e.message)

    if not config.is_active:
        return _error(404, CHAT_UNAVAILABLE)

    conversation = find_conversation(db, config.id, Channel.WEB_CHAT, sessionId)
    messages = []
    if conversation:
        messages = [
            ChatMessageOut(
                id=m.id,
                direction=m.direction,
                messageType=m.message_type,
                body=m.body or "",
                status=m.status,
                aiGenerated=bool(m.ai_generated),
                createdAt=m.created_at,
            )
            for m in list_recent_messages(db, conversation.id, HISTORY_LIMIT)
        ]

    return WebChatConversationResponse(
        config=_widget(config),
        conversationId=conversation.id if conversation else None,
        messages=messages,
    )


@router.post("/chat", response_model=WebChatMessageResponse)
async def post_chat(request: WebChatMessageRequest, db: Session = Depends(get_db)):
    try:
        inbound = normalize_web_chat(request)
    except ClientInputError as e:
        return _error(400, e.message)

    store_id = _parse_store_id(request.storeId)
    if store_id is None:
        return _error(404, "Store not found")

    try:
        config = get_or_provision_config(db, store_id, Channel.WEB_CHAT)
        if not config.is_active:
            db.rollback()
            return _error(404, CHAT_UNAVAILABLE)
        conversation = resolve_conversation(db, config, inbound)
        outcome = ingest_inbound(db, config, conversation, inbound)
        db.commit()
    except NotFoundError as e:
        db.rollback()
        return _error(404, e.message)
    except Exception as e:
        db.rollback()
        logger.error(f"Web chat message failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")

    schedule_reply(outcome.reply_job)
    return WebChatMessageResponse(success=True, conversationId=conversation.id)
