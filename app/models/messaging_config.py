import uuid
from enum import Enum

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.sql import func

from app.database import Base


class Channel(str, Enum):
    WHATSAPP = "whatsapp"
    WEB_CHAT = "web_chat"


class MessagingConfig(Base):
    __tablename__ = "messaging_config"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    store_id = Column(UUID(as_uuid=True), ForeignKey("stores.id"), unique=True)
    channels_enabled = Column(JSONB, nullable=False, default=list)

    # WhatsApp Cloud API credentials, blank until the merchant connects a number
    wa_phone_number_id = Column(Text, index=True)
    wa_business_account_id = Column(Text)
    wa_access_token = Column(Text)
    wa_verify_token = Column(Text)
    wa_webhook_secret = Column(Text)
    display_phone = Column(Text)
    business_name = Column(Text)

    chat_widget_enabled = Column(Boolean, nullable=False, default=False)
    chat_widget_title = Column(Text)
    chat_widget_subtitle = Column(Text)
    chat_widget_color = Column(Text)
    chat_widget_greeting = Column(Text)

    ai_enabled = Column(Boolean, nullable=False, default=False)
    ai_persona = Column(Text)
    ai_greeting = Column(Text)
    ai_auto_reply_delay_ms = Column(Integer)
    ai_handle_orders = Column(Boolean, nullable=False, default=True)
    ai_handle_products = Column(Boolean, nullable=False, default=True)
    ai_handle_support = Column(Boolean, nullable=False, default=True)
    ai_escalation_keywords = Column(JSONB, nullable=False, default=list)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
