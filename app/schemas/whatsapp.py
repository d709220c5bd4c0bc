"""WhatsApp Cloud API webhook envelope.

Only the parts the ingestion path reads are modelled; everything else is
accepted and ignored. Lists of messages and statuses stay as raw dicts so a
single malformed item can be skipped without rejecting its siblings.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class WhatsAppProfile(_Envelope):
    name: Optional[str] = None


class WhatsAppContact(_Envelope):
    wa_id: str
    profile: Optional[WhatsAppProfile] = None


class WhatsAppText(_Envelope):
    body: str = ""


class WhatsAppMedia(_Envelope):
    id: Optional[str] = None
    mime_type: Optional[str] = None
    caption: Optional[str] = None
    filename: Optional[str] = None


class WhatsAppLocation(_Envelope):
    latitude: float
    longitude: float
    name: Optional[str] = None
    address: Optional[str] = None


class WhatsAppReply(_Envelope):
    id: Optional[str] = None
    title: Optional[str] = None


class WhatsAppInteractive(_Envelope):
    type: Optional[str] = None
    button_reply: Optional[WhatsAppReply] = None
    list_reply: Optional[WhatsAppReply] = None


class WhatsAppMessage(_Envelope):
    from_: str = Field(alias="from")
    id: str
    timestamp: Optional[str] = None
    type: str
    text: Optional[WhatsAppText] = None
    image: Optional[WhatsAppMedia] = None
    video: Optional[WhatsAppMedia] = None
    audio: Optional[WhatsAppMedia] = None
    document: Optional[WhatsAppMedia] = None
    location: Optional[WhatsAppLocation] = None
    interactive: Optional[WhatsAppInteractive] = None


class WhatsAppError(_Envelope):
    code: Optional[int] = None
    title: Optional[str] = None
    message: Optional[str] = None


class WhatsAppStatus(_Envelope):
    id: str
    status: str
    timestamp: Optional[str] = None
    recipient_id: Optional[str] = None
    errors: list[WhatsAppError] = Field(default_factory=list)


class WhatsAppMetadata(_Envelope):
    phone_number_id: str
    display_phone_number: Optional[str] = None


class WhatsAppValue(_Envelope):
    metadata: WhatsAppMetadata
    contacts: list[dict[str, Any]] = Field(default_factory=list)
    messages: list[dict[str, Any]] = Field(default_factory=list)
    statuses: list[dict[str, Any]] = Field(default_factory=list)


class WhatsAppChange(_Envelope):
    field: str
    value: dict[str, Any] = Field(default_factory=dict)


class WhatsAppEntry(_Envelope):
    id: Optional[str] = None
    changes: list[dict[str, Any]] = Field(default_factory=list)
