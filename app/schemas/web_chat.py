from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class WebChatMessageRequest(BaseModel):
    storeId: Optional[str] = None
    sessionId: Optional[str] = None
    customerName: Optional[str] = None
    customerEmail: Optional[str] = None
    customerId: Optional[str] = None
    message: Optional[str] = None


class WebChatMessageResponse(BaseModel):
    success: bool
    conversationId: UUID


class WidgetConfig(BaseModel):
    title: Optional[str] = None
    subtitle: Optional[str] = None
    color: Optional[str] = None
    greeting: Optional[str] = None
    businessName: Optional[str] = None


class ChatMessageOut(BaseModel):
    id: UUID
    direction: str
    messageType: str
    body: str
    status: str
    aiGenerated: bool
    createdAt: Optional[datetime] = None


class WebChatConversationResponse(BaseModel):
    config: WidgetConfig
    conversationId: Optional[UUID] = None
    messages: list[ChatMessageOut]
