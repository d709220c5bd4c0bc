import uuid
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Optional
from uuid import UUID

import yaml
from sqlalchemy import func, or_
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Channel, Conversation, Customer, MessagingConfig, Store
from app.schemas.inbound import InboundMessage
from app.services.state_machine import initial_ownership

logger = get_logger("conversation_service")

RULES_PATH = Path(__file__).resolve().parents[1] / "prompts" / "reply_rules.yaml"


class NotFoundError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


@lru_cache(maxsize=4)
def load_rules(path: Path = RULES_PATH) -> dict:
    """Reply house style and widget copy, read once per process."""
    if not path.exists():
        logger.warning(f"Rules file not found: {path}")
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return data if isinstance(data, dict) else {}


def find_config_for_phone_number(db: Session, phone_number_id: str) -> Optional[MessagingConfig]:
    """Active config that owns a WhatsApp business phone number."""
    return (
        db.query(MessagingConfig)
        .filter(MessagingConfig.wa_phone_number_id == phone_number_id, MessagingConfig.is_active.is_(True))
        .first()
    )


def find_config_by_verify_token(db: Session, verify_token: str) -> Optional[MessagingConfig]:
    return (
        db.query(MessagingConfig)
        .filter(MessagingConfig.wa_verify_token == verify_token, MessagingConfig.is_active.is_(True))
        .first()
    )


def _find_store_config(db: Session, store_id: UUID) -> Optional[MessagingConfig]:
    return db.query(MessagingConfig).filter(MessagingConfig.store_id == store_id).first()


def _provision_defaults(store: Store, channel: Channel) -> dict:
    if channel == Channel.WHATSAPP:
        # Credentials stay blank until the merchant connects a number.
        return {"channels_enabled": [Channel.WHATSAPP.value], "business_name": store.title}

    widget = load_rules().get("widget_defaults") or {}
    return {
        "channels_enabled": [Channel.WEB_CHAT.value],
        "business_name": store.title,
        "chat_widget_enabled": True,
        "chat_widget_title": widget.get("title"),
        "chat_widget_subtitle": widget.get("subtitle"),
        "chat_widget_color": widget.get("color"),
        "chat_widget_greeting": widget.get("greeting"),
    }


def get_or_provision_config(db: Session, store_id: UUID, channel: Channel) -> MessagingConfig:
    """Return the store's messaging config, creating it on first contact.

    Raises NotFoundError when the store does not exist.
    """
    config = _find_store_config(db, store_id)
    if config:
        return config

    store = db.query(Store).filter(Store.id == store_id).first()
    if not store:
        raise NotFoundError("Store not found")

    now = datetime.now(timezone.utc)
    stmt = (
        insert(MessagingConfig)
        .values(
            id=uuid.uuid4(),
            user_id=store.user_id,
            store_id=store.id,
            ai_enabled=False,
            ai_escalation_keywords=[],
            is_active=True,
            created_at=now,
            updated_at=now,
            **_provision_defaults(store, channel),
        )
        .on_conflict_do_nothing(index_elements=["store_id"])
    )
    result = db.execute(stmt)
    if result.rowcount > 0:
        logger.info(
            "Provisioned messaging config",
            extra={"context": {"store_id": str(store_id), "channel": channel.value}},
        )

    return _find_store_config(db, store_id)


def find_conversation(db: Session, config_id: UUID, channel: Channel, contact_id: str) -> Optional[Conversation]:
    return (
        db.query(Conversation)
        .filter(
            Conversation.config_id == config_id,
            Conversation.channel == channel.value,
            Conversation.contact_id == contact_id,
        )
        .first()
    )


def link_customer(db: Session, user_id: UUID, inbound: InboundMessage) -> Optional[UUID]:
    """Find the CRM customer behind a contact, scoped to the tenant."""
    if inbound.channel == Channel.WHATSAPP:
        phone = inbound.contact_id.lstrip("+")
        customer = (
            db.query(Customer)
            .filter(Customer.user_id == user_id, or_(Customer.gsm == phone, Customer.gsm == f"+{phone}"))
            .first()
        )
        return customer.id if customer else None

    # The widget is unauthenticated, so a supplied id must belong to this tenant.
    if inbound.customer_id:
        customer = (
            db.query(Customer)
            .filter(Customer.id == inbound.customer_id, Customer.user_id == user_id)
            .first()
        )
        if customer:
            return customer.id
        logger.warning(
            "Ignoring customerId outside the tenant",
            extra={"context": {"user_id": str(user_id), "customer_id": str(inbound.customer_id)}},
        )

    if inbound.customer_email:
        customer = (
            db.query(Customer)
            .filter(Customer.user_id == user_id, func.lower(Customer.email) == inbound.customer_email.lower())
            .first()
        )
        return customer.id if customer else None

    return None


def resolve_conversation(db: Session, config: MessagingConfig, inbound: InboundMessage) -> Conversation:
    """Find or create the single conversation for (config, channel, contact).

    Creation is an INSERT ... ON CONFLICT DO NOTHING on the unique key, so two
    concurrent first messages from the same contact end up on the same row.
    """
    conversation = find_conversation(db, config.id, inbound.channel, inbound.contact_id)
    if conversation:
        return conversation

    now = datetime.now(timezone.utc)
    stmt = (
        insert(Conversation)
        .values(
            id=uuid.uuid4(),
            user_id=config.user_id,
            config_id=config.id,
            channel=inbound.channel.value,
            contact_id=inbound.contact_id,
            customer_id=link_customer(db, config.user_id, inbound),
            customer_name=inbound.contact_name,
            customer_email=inbound.customer_email,
            customer_phone=inbound.contact_id if inbound.channel == Channel.WHATSAPP else None,
            status="open",
            unread_count=0,
            ownership=initial_ownership(bool(config.ai_enabled)).value,
            ai_context={},
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(constraint="uq_messaging_conversations_contact")
    )
    result = db.execute(stmt)
    if result.rowcount == 0:
        logger.info(
            "Conversation created concurrently, using existing row",
            extra={"context": {"config_id": str(config.id), "channel": inbound.channel.value}},
        )

    conversation = find_conversation(db, config.id, inbound.channel, inbound.contact_id)
    if conversation is None:
        raise RuntimeError(f"Conversation for {inbound.channel.value}:{inbound.contact_id} vanished after insert")
    return conversation
