"""Everything the completion call sees: transcript, store facts, house style."""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models import Channel, Conversation, Customer, Direction, Message, MessagingConfig, Order, Product
from app.services.conversation_service import load_rules

PRODUCT_LIMIT = 10
ORDER_LIMIT = 5
DEFAULT_PERSONA = "You are a helpful customer service agent."


@dataclass
class TranscriptTurn:
    role: str  # customer, assistant
    content: str


def to_transcript(messages: list[Message]) -> list[TranscriptTurn]:
    turns = []
    for message in messages:
        role = "customer" if message.direction == Direction.INBOUND.value else "assistant"
        content = message.body or f"[{message.message_type}]"
        turns.append(TranscriptTurn(role=role, content=content))
    return turns


def _money(value) -> str:
    return f"{settings.store_currency_symbol}{value if value is not None else 0}"


def format_products(products: list[Product]) -> str:
    lines = []
    for product in products:
        line = f"- {product.name}: {_money(product.price)}"
        if product.description:
            line += f" - {product.description}"
        lines.append(line)
    return "\n".join(lines)


def format_orders(orders: list[Order]) -> str:
    return "\n".join(
        f"- Order #{order.order_number}: {_money(order.amount)} - {order.status} ({order.payment_status})"
        for order in orders
    )


def build_store_context(db: Session, config: MessagingConfig, conversation: Conversation) -> str:
    context = ""

    if config.ai_handle_products:
        query = db.query(Product).filter(Product.is_active.is_(True))
        if config.store_id:
            query = query.filter(Product.store_id == config.store_id)
        products = query.limit(PRODUCT_LIMIT).all()
        if products:
            context += "\n\nAvailable products:\n" + format_products(products)

    if config.ai_handle_orders and conversation.customer_id:
        orders = (
            db.query(Order)
            .join(Customer, Customer.id == Order.customer_id)
            .filter(Order.customer_id == conversation.customer_id, Customer.user_id == config.user_id)
            .order_by(Order.created_at.desc())
            .limit(ORDER_LIMIT)
            .all()
        )
        if orders:
            context += "\n\nCustomer's recent orders:\n" + format_orders(orders)

    return context


def build_system_prompt(
    config: MessagingConfig,
    channel: Channel,
    store_context: str = "",
    rules: Optional[dict] = None,
) -> str:
    rules = rules if rules is not None else load_rules()
    persona = (config.ai_persona or "").strip() or rules.get("persona_fallback") or DEFAULT_PERSONA

    style = list(rules.get("rules") or [])
    channel_rule = (rules.get("channel_format") or {}).get(channel.value)
    if channel_rule:
        style.append(channel_rule)

    prompt = persona + store_context
    if style:
        prompt += "\n\nRules:\n" + "\n".join(f"- {rule}" for rule in style)
    return prompt


def to_completion_messages(system_prompt: str, transcript: list[TranscriptTurn]) -> list[dict]:
    messages = [{"role": "system", "content": system_prompt}]
    for turn in transcript:
        messages.append({"role": "user" if turn.role == "customer" else "assistant", "content": turn.content})
    return messages
