import uuid
from unittest.mock import AsyncMock, patch

from app.config import settings
from app.services.whatsapp_service import SendResult
from tests.factories import make_config, make_conversation


def ownership_url(conversation_id):
    return f"/api/conversations/{conversation_id}/ownership"


class TestOwnershipEndpoint:
    def test_take_escalated_conversation(self, client, db_session):
        conversation = make_conversation(ownership="escalated")
        db_session.query.return_value.filter.return_value.first.return_value = conversation

        response = client.post(ownership_url(conversation.id), json={"action": "take"})

        assert response.status_code == 200
        data = response.json()
        assert data["old_ownership"] == "escalated"
        assert data["new_ownership"] == "human"
        assert conversation.ownership == "human"
        db_session.commit.assert_called_once()

    def test_return_to_ai(self, client, db_session):
        conversation = make_conversation(ownership="human")
        db_session.query.return_value.filter.return_value.first.return_value = conversation

        response = client.post(ownership_url(conversation.id), json={"action": "return"})

        assert response.json()["new_ownership"] == "ai"
        assert conversation.ai_handled is True

    def test_invalid_transition(self, client, db_session):
        conversation = make_conversation(ownership="ai")
        db_session.query.return_value.filter.return_value.first.return_value = conversation

        response = client.post(ownership_url(conversation.id), json={"action": "take"})

        assert response.status_code == 400
        assert "ai -> human" in response.json()["detail"]
        assert conversation.ownership == "ai"

    def test_concurrent_change(self, client, db_session):
        conversation = make_conversation(ownership="escalated")
        db_session.query.return_value.filter.return_value.first.return_value = conversation
        db_session.execute.return_value.rowcount = 0

        response = client.post(ownership_url(conversation.id), json={"action": "take"})

        assert response.status_code == 400
        db_session.rollback.assert_called_once()

    def test_unknown_conversation(self, client, db_session):
        db_session.query.return_value.filter.return_value.first.return_value = None

        response = client.post(ownership_url(uuid.uuid4()), json={"action": "take"})

        assert response.status_code == 404

    def test_unknown_action_is_rejected(self, client):
        response = client.post(ownership_url(uuid.uuid4()), json={"action": "resolve"})
        assert response.status_code == 422

    def test_token_required_when_configured(self, client, db_session):
        with patch.object(settings, "operator_api_token", "s3cret"):
            denied = client.post(ownership_url(uuid.uuid4()), json={"action": "take"})
            db_session.query.return_value.filter.return_value.first.return_value = make_conversation(ownership="escalated")
            allowed = client.post(
                ownership_url(uuid.uuid4()), json={"action": "take"}, headers={"X-Admin-Token": "s3cret"}
            )

        assert denied.status_code == 401
        assert allowed.status_code == 200


class TestOperatorSend:
    def test_web_chat_reply(self, client, db_session):
        conversation = make_conversation(channel="web_chat", unread_count=3)
        db_session.query.return_value.filter.return_value.first.return_value = conversation

        response = client.post("/api/messaging/send", json={"conversationId": str(conversation.id), "body": "On it!"})

        assert response.status_code == 200
        assert response.json()["status"] == "sent"
        message = db_session.add.call_args[0][0]
        assert message.ai_generated is False
        assert message.body == "On it!"
        assert conversation.unread_count == 0
        assert conversation.last_message_preview == "On it!"

    @patch("app.services.operator_service.send_whatsapp_message", new_callable=AsyncMock)
    def test_whatsapp_reply_is_delivered(self, mock_send, client, db_session):
        config = make_config()
        conversation = make_conversation(config, unread_count=2)
        db_session.query.return_value.filter.return_value.first.return_value = conversation
        db_session.get.return_value = config
        mock_send.return_value = SendResult(message_id="wamid.OP1")

        response = client.post("/api/messaging/send", json={"conversationId": str(conversation.id), "body": "Hi Ada"})

        data = response.json()
        assert data["success"] is True
        assert data["status"] == "sent"
        mock_send.assert_awaited_once()
        sent_config, to, content = mock_send.call_args[0]
        assert (sent_config, to, content.message_type, content.body) == (config, "447700900123", "text", "Hi Ada")
        assert db_session.add.call_args[0][0].external_message_id == "wamid.OP1"
        assert conversation.unread_count == 0

    @patch("app.services.operator_service.send_whatsapp_message", new_callable=AsyncMock)
    def test_whatsapp_failure_is_reported(self, mock_send, client, db_session):
        conversation = make_conversation()
        db_session.query.return_value.filter.return_value.first.return_value = conversation
        db_session.get.return_value = make_config()
        mock_send.return_value = SendResult(error="Recipient not on WhatsApp")

        data = client.post("/api/messaging/send", json={"conversationId": str(conversation.id), "body": "Hi"}).json()

        assert data["success"] is False
        assert data["status"] == "failed"
        assert data["error"] == "Recipient not on WhatsApp"

    @patch("app.services.operator_service.send_whatsapp_message", new_callable=AsyncMock)
    def test_send_exception_marks_failed(self, mock_send, client, db_session):
        conversation = make_conversation()
        db_session.query.return_value.filter.return_value.first.return_value = conversation
        db_session.get.return_value = make_config()
        mock_send.side_effect = RuntimeError("unexpected response")

        data = client.post("/api/messaging/send", json={"conversationId": str(conversation.id), "body": "Hi"}).json()

        assert data["status"] == "failed"
        assert data["error"] == "unexpected response"
        assert db_session.add.call_args[0][0].status == "failed"
        db_session.commit.assert_called_once()

    @patch("app.services.operator_service.send_whatsapp_message", new_callable=AsyncMock)
    def test_whatsapp_template(self, mock_send, client, db_session):
        conversation = make_conversation()
        db_session.query.return_value.filter.return_value.first.return_value = conversation
        db_session.get.return_value = make_config()
        mock_send.return_value = SendResult(message_id="wamid.TPL")
        params = [{"type": "body", "parameters": [{"type": "text", "text": "1042"}]}]

        response = client.post(
            "/api/messaging/send",
            json={
                "conversationId": str(conversation.id),
                "type": "template",
                "templateName": "order_update",
                "templateParams": params,
            },
        )

        assert response.json()["status"] == "sent"
        content = mock_send.call_args[0][2]
        assert content.template_name == "order_update"
        assert content.template_params == params
        message = db_session.add.call_args[0][0]
        assert message.message_type == "template"
        assert message.body == "[Template: order_update]"
        assert message.template_name == "order_update"
        assert message.template_params == params
        assert conversation.last_message_preview == "[Template: order_update]"

    @patch("app.services.operator_service.send_whatsapp_message", new_callable=AsyncMock)
    def test_whatsapp_image(self, mock_send, client, db_session):
        conversation = make_conversation()
        db_session.query.return_value.filter.return_value.first.return_value = conversation
        db_session.get.return_value = make_config()
        mock_send.return_value = SendResult(message_id="wamid.IMG")

        client.post(
            "/api/messaging/send",
            json={
                "conversationId": str(conversation.id),
                "type": "image",
                "mediaUrl": "https://cdn.example.com/peony.jpg",
            },
        )

        message = db_session.add.call_args[0][0]
        assert message.message_type == "image"
        assert message.media_url == "https://cdn.example.com/peony.jpg"
        assert message.body == ""
        assert conversation.last_message_preview == "[image]"

    def test_template_requires_name(self, client, db_session):
        db_session.query.return_value.filter.return_value.first.return_value = make_conversation()

        response = client.post(
            "/api/messaging/send", json={"conversationId": str(uuid.uuid4()), "type": "template"}
        )

        assert response.status_code == 400
        assert "templateName" in response.json()["detail"]

    def test_document_requires_media_url(self, client, db_session):
        db_session.query.return_value.filter.return_value.first.return_value = make_conversation()

        response = client.post(
            "/api/messaging/send", json={"conversationId": str(uuid.uuid4()), "type": "document"}
        )

        assert response.status_code == 400

    def test_web_chat_rejects_media(self, client, db_session):
        db_session.query.return_value.filter.return_value.first.return_value = make_conversation(channel="web_chat")

        response = client.post(
            "/api/messaging/send",
            json={"conversationId": str(uuid.uuid4()), "type": "image", "mediaUrl": "https://cdn.example.com/a.jpg"},
        )

        assert response.status_code == 400
        db_session.add.assert_not_called()

    def test_empty_body(self, client):
        response = client.post("/api/messaging/send", json={"conversationId": str(uuid.uuid4()), "body": "  "})
        assert response.status_code == 400

    def test_unknown_conversation(self, client, db_session):
        db_session.query.return_value.filter.return_value.first.return_value = None

        response = client.post("/api/messaging/send", json={"conversationId": str(uuid.uuid4()), "body": "Hi"})

        assert response.status_code == 404
