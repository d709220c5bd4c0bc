from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class OwnershipRequest(BaseModel):
    action: Literal["take", "return"]


class OwnershipResponse(BaseModel):
    success: bool
    conversation_id: UUID
    action: str
    old_ownership: str
    new_ownership: str


class OperatorSendRequest(BaseModel):
    conversationId: UUID
    type: Literal["text", "template", "image", "document"] = "text"
    body: str = ""
    templateName: Optional[str] = None
    templateParams: list = Field(default_factory=list)
    mediaUrl: Optional[str] = None
    mediaCaption: Optional[str] = None


class OperatorSendResponse(BaseModel):
    success: bool
    messageId: UUID
    status: str
    error: Optional[str] = None
