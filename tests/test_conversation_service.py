import uuid
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
from sqlalchemy.dialects import postgresql

from app.models import Channel, Customer, Store
from app.schemas.inbound import TextMessage
from app.services.conversation_service import (
    NotFoundError,
    get_or_provision_config,
    link_customer,
    load_rules,
    resolve_conversation,
)
from tests.factories import make_config, make_conversation


def whatsapp_text(contact_id="447700900123", name="Ada"):
    return TextMessage(
        channel=Channel.WHATSAPP,
        contact_id=contact_id,
        contact_name=name,
        external_message_id="wamid.1",
        timestamp=datetime.now(timezone.utc),
        body="hello",
    )


def web_text(**hints):
    return TextMessage(
        channel=Channel.WEB_CHAT,
        contact_id="sess-1",
        contact_name=hints.pop("name", "Visitor"),
        timestamp=datetime.now(timezone.utc),
        body="hello",
        **hints,
    )


def compiled_values(stmt) -> dict:
    return stmt.compile().params


class TestResolveConversation:
    def test_returns_existing_conversation(self):
        config = make_config()
        existing = make_conversation(config)
        db = Mock()
        db.query.return_value.filter.return_value.first.return_value = existing

        result = resolve_conversation(db, config, whatsapp_text())

        assert result is existing
        db.execute.assert_not_called()

    def test_creates_ai_owned_conversation(self):
        config = make_config(ai_enabled=True)
        created = make_conversation(config)
        db = Mock()
        # lookup, customer link, re-read
        db.query.return_value.filter.return_value.first.side_effect = [None, None, created]
        db.execute.return_value.rowcount = 1

        result = resolve_conversation(db, config, whatsapp_text())

        assert result is created
        params = compiled_values(db.execute.call_args[0][0])
        assert params["ownership"] == "ai"
        assert params["status"] == "open"
        assert params["unread_count"] == 0
        assert params["customer_name"] == "Ada"
        assert params["customer_phone"] == "447700900123"
        assert params["channel"] == "whatsapp"

    def test_ai_disabled_creates_human_owned_conversation(self):
        config = make_config(ai_enabled=False)
        db = Mock()
        db.query.return_value.filter.return_value.first.side_effect = [None, None, make_conversation(config)]
        db.execute.return_value.rowcount = 1

        resolve_conversation(db, config, whatsapp_text())

        assert compiled_values(db.execute.call_args[0][0])["ownership"] == "human"

    def test_insert_uses_on_conflict_do_nothing(self):
        config = make_config()
        db = Mock()
        db.query.return_value.filter.return_value.first.side_effect = [None, None, make_conversation(config)]
        db.execute.return_value.rowcount = 1

        resolve_conversation(db, config, whatsapp_text())

        sql = str(db.execute.call_args[0][0].compile(dialect=postgresql.dialect()))
        assert "ON CONFLICT ON CONSTRAINT uq_messaging_conversations_contact DO NOTHING" in sql

    def test_lost_race_returns_winner(self):
        config = make_config()
        winner = make_conversation(config)
        db = Mock()
        db.query.return_value.filter.return_value.first.side_effect = [None, None, winner]
        db.execute.return_value.rowcount = 0

        assert resolve_conversation(db, config, whatsapp_text()) is winner

    def test_links_customer_on_creation(self):
        config = make_config()
        customer = Customer(id=uuid.uuid4(), user_id=config.user_id, gsm="+447700900123")
        db = Mock()
        db.query.return_value.filter.return_value.first.side_effect = [None, customer, make_conversation(config)]
        db.execute.return_value.rowcount = 1

        resolve_conversation(db, config, whatsapp_text())

        assert compiled_values(db.execute.call_args[0][0])["customer_id"] == customer.id

    def test_web_chat_defaults(self):
        config = make_config()
        db = Mock()
        db.query.return_value.filter.return_value.first.side_effect = [None, make_conversation(config, channel="web_chat")]
        db.execute.return_value.rowcount = 1

        resolve_conversation(db, config, web_text())

        params = compiled_values(db.execute.call_args[0][0])
        assert params["customer_name"] == "Visitor"
        assert params["customer_phone"] is None
        assert params["contact_id"] == "sess-1"


class TestLinkCustomer:
    def test_whatsapp_matches_phone_with_or_without_plus(self):
        user_id = uuid.uuid4()
        customer = Customer(id=uuid.uuid4(), user_id=user_id, gsm="447700900123")
        db = Mock()
        db.query.return_value.filter.return_value.first.return_value = customer

        assert link_customer(db, user_id, whatsapp_text(contact_id="+447700900123")) == customer.id

        criteria = str(db.query.return_value.filter.call_args[0][1].compile(compile_kwargs={"literal_binds": True}))
        assert "'447700900123'" in criteria
        assert "'+447700900123'" in criteria

    def test_whatsapp_no_match(self):
        db = Mock()
        db.query.return_value.filter.return_value.first.return_value = None
        assert link_customer(db, uuid.uuid4(), whatsapp_text()) is None

    def test_web_chat_explicit_customer_id_wins(self):
        user_id = uuid.uuid4()
        customer = Customer(id=uuid.uuid4(), user_id=user_id, email="grace@example.com")
        db = Mock()
        db.query.return_value.filter.return_value.first.return_value = customer

        assert link_customer(db, user_id, web_text(customer_id=customer.id, customer_email="a@b.c")) == customer.id

        db.query.return_value.filter.assert_called_once()
        bound = {c.left.name: c.right.value for c in db.query.return_value.filter.call_args[0]}
        assert bound == {"id": customer.id, "user_id": user_id}

    def test_web_chat_unknown_customer_id_is_not_linked(self):
        db = Mock()
        db.query.return_value.filter.return_value.first.return_value = None

        assert link_customer(db, uuid.uuid4(), web_text(customer_id=uuid.uuid4())) is None

    def test_web_chat_foreign_customer_id_falls_back_to_email(self):
        user_id = uuid.uuid4()
        own = Customer(id=uuid.uuid4(), user_id=user_id, email="grace@example.com")
        db = Mock()
        # id lookup scoped to the tenant finds nothing, email match does
        db.query.return_value.filter.return_value.first.side_effect = [None, own]

        linked = link_customer(db, user_id, web_text(customer_id=uuid.uuid4(), customer_email="grace@example.com"))

        assert linked == own.id
        assert db.query.return_value.filter.call_count == 2

    def test_web_chat_email_match_is_case_insensitive(self):
        user_id = uuid.uuid4()
        customer = Customer(id=uuid.uuid4(), user_id=user_id, email="grace@example.com")
        db = Mock()
        db.query.return_value.filter.return_value.first.return_value = customer

        assert link_customer(db, user_id, web_text(customer_email="Grace@Example.COM")) == customer.id

        criteria = str(db.query.return_value.filter.call_args[0][1].compile(compile_kwargs={"literal_binds": True}))
        assert "lower(customers.email)" in criteria
        assert "'grace@example.com'" in criteria

    def test_web_chat_without_hints(self):
        db = Mock()
        assert link_customer(db, uuid.uuid4(), web_text()) is None
        db.query.assert_not_called()


class TestProvisioning:
    def test_returns_existing_config(self):
        existing = make_config()
        db = Mock()
        db.query.return_value.filter.return_value.first.return_value = existing

        assert get_or_provision_config(db, existing.store_id, Channel.WEB_CHAT) is existing
        db.execute.assert_not_called()

    def test_unknown_store(self):
        db = Mock()
        db.query.return_value.filter.return_value.first.side_effect = [None, None]

        with pytest.raises(NotFoundError) as exc_info:
            get_or_provision_config(db, uuid.uuid4(), Channel.WEB_CHAT)
        assert exc_info.value.message == "Store not found"

    def test_web_chat_defaults(self):
        store = Store(id=uuid.uuid4(), user_id=uuid.uuid4(), title="Bloom & Co")
        provisioned = make_config(store_id=store.id)
        db = Mock()
        db.query.return_value.filter.return_value.first.side_effect = [None, store, provisioned]
        db.execute.return_value.rowcount = 1

        result = get_or_provision_config(db, store.id, Channel.WEB_CHAT)

        assert result is provisioned
        params = compiled_values(db.execute.call_args[0][0])
        assert params["user_id"] == store.user_id
        assert params["channels_enabled"] == ["web_chat"]
        assert params["chat_widget_enabled"] is True
        assert params["chat_widget_title"] == "Chat with us"
        assert params["chat_widget_subtitle"] == "We usually reply within minutes"
        assert params["chat_widget_color"] == "#16a34a"
        assert params["chat_widget_greeting"].startswith("Hi there!")
        assert params["business_name"] == "Bloom & Co"
        assert params["ai_enabled"] is False

    def test_whatsapp_leaves_credentials_blank(self):
        store = Store(id=uuid.uuid4(), user_id=uuid.uuid4(), title="Bloom & Co")
        db = Mock()
        db.query.return_value.filter.return_value.first.side_effect = [None, store, make_config()]
        db.execute.return_value.rowcount = 1

        get_or_provision_config(db, store.id, Channel.WHATSAPP)

        params = compiled_values(db.execute.call_args[0][0])
        assert params["channels_enabled"] == ["whatsapp"]
        assert "wa_access_token" not in params
        assert "chat_widget_title" not in params


class TestRules:
    def test_rules_file_has_both_channels(self):
        rules = load_rules()
        assert set(rules["channel_format"]) == {"whatsapp", "web_chat"}
        assert rules["widget_defaults"]["title"] == "Chat with us"

    def test_missing_file(self, tmp_path):
        assert load_rules(tmp_path / "nope.yaml") == {}
