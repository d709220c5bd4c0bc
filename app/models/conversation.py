import uuid

from sqlalchemy import Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class Conversation(Base):
    __tablename__ = "messaging_conversations"
    __table_args__ = (
        UniqueConstraint("config_id", "channel", "contact_id", name="uq_messaging_conversations_contact"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    config_id = Column(UUID(as_uuid=True), ForeignKey("messaging_config.id"), nullable=False)
    channel = Column(Text, nullable=False)  # whatsapp, web_chat
    contact_id = Column(Text, nullable=False)  # phone number or web chat session id
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"))
    customer_name = Column(Text)
    customer_email = Column(Text)
    customer_phone = Column(Text)
    status = Column(Text, nullable=False, default="open")  # open, assigned, resolved, spam
    unread_count = Column(Integer, nullable=False, default=0)
    last_message_at = Column(TIMESTAMP(timezone=True))
    last_message_preview = Column(Text)
    ownership = Column(Text, nullable=False, default="ai")  # ai, human, escalated
    escalated_at = Column(TIMESTAMP(timezone=True))
    ai_context = Column(JSONB, nullable=False, default=dict)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    config = relationship("MessagingConfig")
    messages = relationship("Message", back_populates="conversation", order_by="Message.created_at")

    @property
    def ai_handled(self) -> bool:
        return self.ownership == "ai"

    @property
    def ai_escalated(self) -> bool:
        return self.ownership == "escalated"
