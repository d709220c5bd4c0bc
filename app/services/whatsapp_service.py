import hashlib
import hmac
from dataclasses import dataclass, field
from typing import Optional

import httpx

from app.config import settings
from app.logging_config import get_logger
from app.models import MessagingConfig

logger = get_logger("whatsapp_service")

MEDIA_TYPES = ("image", "document")
TEMPLATE_LANGUAGE = "en"


@dataclass
class SendResult:
    message_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return bool(self.message_id)


def verify_signature(raw_body: bytes, signature_header: Optional[str], secret: str) -> bool:
    """Check X-Hub-Signature-256 (``sha256=<hex>``) against the app secret."""
    if not signature_header or not signature_header.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature_header.split("=", 1)[1])


@dataclass
class OutboundContent:
    """An operator or AI message in one of the Cloud API send types."""

    message_type: str = "text"
    body: str = ""
    template_name: Optional[str] = None
    template_params: list = field(default_factory=list)
    media_url: Optional[str] = None
    media_caption: Optional[str] = None

    @property
    def stored_body(self) -> str:
        if self.message_type == "template":
            return f"[Template: {self.template_name}]"
        if self.message_type in MEDIA_TYPES:
            return self.media_caption or self.body
        return self.body

    def payload(self, to: str) -> dict:
        payload = {"messaging_product": "whatsapp", "to": to, "type": self.message_type}
        if self.message_type == "template":
            payload["template"] = {
                "name": self.template_name,
                "language": {"code": TEMPLATE_LANGUAGE},
                "components": self.template_params or [],
            }
        elif self.message_type in MEDIA_TYPES:
            payload[self.message_type] = {"link": self.media_url, "caption": self.media_caption or ""}
        else:
            payload["text"] = {"body": self.body}
        return payload


def _error_detail(data) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict):
        error = error.get("message")
    return str(error) if error else None


def _message_id(data) -> Optional[str]:
    messages = data.get("messages") if isinstance(data, dict) else None
    if not isinstance(messages, list) or not messages or not isinstance(messages[0], dict):
        return None
    message_id = messages[0].get("id")
    return str(message_id) if message_id else None


async def send_whatsapp_message(
    config: MessagingConfig,
    to: str,
    content: OutboundContent,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SendResult:
    """Send one message through the Graph API.

    Never raises; failures come back as SendResult.error.
    """
    if not config.wa_phone_number_id or not config.wa_access_token:
        logger.warning(f"WhatsApp not configured for config {config.id}")
        return SendResult(error="WhatsApp not configured")

    url = f"{settings.whatsapp_graph_api_url}/{config.wa_phone_number_id}/messages"

    try:
        async with httpx.AsyncClient(timeout=settings.whatsapp_send_timeout_seconds, transport=transport) as client:
            response = await client.post(
                url,
                headers={"Authorization": f"Bearer {config.wa_access_token}"},
                json=content.payload(to),
            )
    except httpx.HTTPError as e:
        logger.error(f"WhatsApp send failed: {e}", extra={"context": {"to": to}})
        return SendResult(error=str(e) or e.__class__.__name__)

    try:
        data = response.json()
    except ValueError:
        data = None

    if response.status_code >= 400:
        error = _error_detail(data) or f"Graph API error {response.status_code}"
        logger.error(
            "WhatsApp send rejected",
            extra={"context": {"to": to, "status_code": response.status_code, "error": error}},
        )
        return SendResult(error=error)

    message_id = _message_id(data)
    if not message_id:
        return SendResult(error="Graph API returned no message id")

    logger.info(
        "WhatsApp message sent",
        extra={"context": {"to": to, "type": content.message_type, "wa_message_id": message_id}},
    )
    return SendResult(message_id=message_id)


async def send_whatsapp_text(
    config: MessagingConfig,
    to: str,
    body: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SendResult:
    return await send_whatsapp_message(config, to, OutboundContent(body=body), transport=transport)
