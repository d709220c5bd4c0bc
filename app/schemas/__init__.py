from app.schemas.inbound import (
    ChannelBatch,
    InboundMessage,
    InteractiveMessage,
    LocationMessage,
    MediaMessage,
    StatusUpdate,
    TextMessage,
    UnsupportedMessage,
)
from app.schemas.operator import OperatorSendRequest, OperatorSendResponse, OwnershipRequest, OwnershipResponse
from app.schemas.web_chat import WebChatConversationResponse, WebChatMessageRequest, WebChatMessageResponse
from app.schemas.webhook import WebhookAck

__all__ = [
    "ChannelBatch",
    "InboundMessage",
    "InteractiveMessage",
    "LocationMessage",
    "MediaMessage",
    "OperatorSendRequest",
    "OperatorSendResponse",
    "OwnershipRequest",
    "OwnershipResponse",
    "StatusUpdate",
    "TextMessage",
    "UnsupportedMessage",
    "WebChatConversationResponse",
    "WebChatMessageRequest",
    "WebChatMessageResponse",
    "WebhookAck",
]
