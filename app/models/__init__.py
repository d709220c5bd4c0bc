from app.models.conversation import Conversation
from app.models.customer import Customer
from app.models.message import Direction, Message, MessageStatus
from app.models.messaging_config import Channel, MessagingConfig
from app.models.order import Order
from app.models.product import Product
from app.models.store import Store

__all__ = [
    "Channel",
    "Conversation",
    "Customer",
    "Direction",
    "Message",
    "MessageStatus",
    "MessagingConfig",
    "Order",
    "Product",
    "Store",
]
