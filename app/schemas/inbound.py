"""Channel-independent inbound events produced by the normalizer."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel

from app.models import Channel


class InboundBase(BaseModel):
    channel: Channel
    contact_id: str
    contact_name: str
    external_message_id: str = ""
    timestamp: datetime
    # Web chat only: identity hints supplied by the widget.
    customer_email: Optional[str] = None
    customer_id: Optional[UUID] = None

    def message_fields(self) -> dict:
        """Columns of the stored Message that depend on the variant."""
        return {"message_type": self.message_type, "body": self.body}


class TextMessage(InboundBase):
    message_type: Literal["text"] = "text"
    body: str


class MediaMessage(InboundBase):
    message_type: Literal["image", "video", "audio", "document"]
    media_id: Optional[str] = None
    mime_type: Optional[str] = None
    caption: Optional[str] = None
    filename: Optional[str] = None

    @property
    def body(self) -> str:
        if self.message_type == "image":
            return self.caption or ""
        if self.message_type == "document":
            return self.caption or self.filename or ""
        return ""

    def message_fields(self) -> dict:
        return {
            **super().message_fields(),
            "media_url": self.media_id,
            "media_mime_type": self.mime_type,
            "media_caption": self.caption,
        }


class LocationMessage(InboundBase):
    message_type: Literal["location"] = "location"
    latitude: float
    longitude: float
    name: Optional[str] = None

    @property
    def body(self) -> str:
        return self.name or f"Location: {self.latitude}, {self.longitude}"

    def message_fields(self) -> dict:
        return {
            **super().message_fields(),
            "latitude": self.latitude,
            "longitude": self.longitude,
            "location_name": self.name,
        }


class InteractiveMessage(InboundBase):
    message_type: Literal["interactive"] = "interactive"
    title: str = ""

    @property
    def body(self) -> str:
        return self.title


class UnsupportedMessage(InboundBase):
    message_type: str

    @property
    def body(self) -> str:
        return f"[{self.message_type} message]"


InboundMessage = Union[TextMessage, MediaMessage, LocationMessage, InteractiveMessage, UnsupportedMessage]


class StatusUpdate(BaseModel):
    external_message_id: str
    status: Literal["sent", "delivered", "read", "failed"]
    error_detail: Optional[str] = None
    recipient_id: Optional[str] = None
    timestamp: datetime


@dataclass
class ChannelBatch:
    """Everything one webhook change carried for a single business phone number."""

    phone_number_id: str
    messages: list = field(default_factory=list)
    statuses: list = field(default_factory=list)
