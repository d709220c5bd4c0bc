import uuid
from enum import Enum

from sqlalchemy import Boolean, Column, Float, ForeignKey, Index, Numeric, Text, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageStatus(str, Enum):
    RECEIVED = "received"
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class Message(Base):
    __tablename__ = "messaging_messages"
    __table_args__ = (
        Index(
            "uq_messaging_messages_external_id",
            "conversation_id",
            "external_message_id",
            unique=True,
            postgresql_where=text("external_message_id <> ''"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    conversation_id = Column(UUID(as_uuid=True), ForeignKey("messaging_conversations.id"), nullable=False)
    channel = Column(Text, nullable=False)
    external_message_id = Column(Text, nullable=False, default="", index=True)
    direction = Column(Text, nullable=False)  # inbound, outbound
    message_type = Column(Text, nullable=False, default="text")
    body = Column(Text, nullable=False, default="")
    media_url = Column(Text)
    media_mime_type = Column(Text)
    media_caption = Column(Text)
    latitude = Column(Float)
    longitude = Column(Float)
    location_name = Column(Text)
    template_name = Column(Text)
    template_params = Column(JSONB)
    status = Column(Text, nullable=False)
    error_message = Column(Text)
    ai_generated = Column(Boolean, nullable=False, default=False)
    ai_confidence = Column(Numeric(4, 3))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    sent_at = Column(TIMESTAMP(timezone=True))
    delivered_at = Column(TIMESTAMP(timezone=True))
    read_at = Column(TIMESTAMP(timezone=True))

    conversation = relationship("Conversation", back_populates="messages")
