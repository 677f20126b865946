from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from leadflow.dependencies import get_engine
from leadflow.main import app
from leadflow.schemas.webhook import EvolutionWebhook, extract_inbound_messages


def _upsert(message, *, from_me=False, jid="351911111111@s.whatsapp.net", name="Ana"):
    return {
        "event": "messages.upsert",
        "instance": "DiegoWoo",
        "data": {"key": {"remoteJid": jid, "fromMe": from_me, "id": "ABC"}, "pushName": name, "message": message},
    }


@pytest.fixture
def engine():
    engine = Mock()
    engine.handle = AsyncMock()
    engine.handle_operator_message = AsyncMock()
    return engine


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestExtraction:
    def test_conversation_text(self):
        events = extract_inbound_messages(EvolutionWebhook.model_validate(_upsert({"conversation": " DUVIDA "})))
        assert len(events) == 1
        assert events[0].text == "DUVIDA"
        assert events[0].address == "351911111111@s.whatsapp.net"
        assert events[0].instance == "DiegoWoo"
        assert events[0].display_name == "Ana"
        assert events[0].from_operator is False

    def test_extended_text_and_caption(self):
        extended = _upsert({"extendedTextMessage": {"text": "qual a taxa?"}})
        caption = _upsert({"imageMessage": {"caption": "o meu recibo"}})
        assert extract_inbound_messages(EvolutionWebhook.model_validate(extended))[0].text == "qual a taxa?"
        assert extract_inbound_messages(EvolutionWebhook.model_validate(caption))[0].text == "o meu recibo"

    def test_batch_under_messages(self):
        payload = {
            "event": "MESSAGES_UPSERT",
            "instance": "DiegoWoo",
            "data": {
                "messages": [
                    {"key": {"remoteJid": "351911111111@s.whatsapp.net"}, "message": {"conversation": "a"}},
                    {"key": {"remoteJid": "351922222222@s.whatsapp.net"}, "message": {"conversation": "b"}},
                ]
            },
        }
        events = extract_inbound_messages(EvolutionWebhook.model_validate(payload))
        assert [e.text for e in events] == ["a", "b"]

    def test_batch_items_fall_back_to_event_key_and_name(self):
        payload = {
            "event": "messages.upsert",
            "instance": "DiegoWoo",
            "data": {
                "key": {"remoteJid": "351911111111@s.whatsapp.net", "fromMe": False},
                "pushName": "Ana Silva",
                "messages": [
                    {"message": {"conversation": "sem chave"}},
                    {"key": {"id": "XYZ"}, "pushName": "Rita", "message": {"conversation": "sem destino"}},
                ],
            },
        }
        events = extract_inbound_messages(EvolutionWebhook.model_validate(payload))
        assert [e.address for e in events] == ["351911111111@s.whatsapp.net"] * 2
        assert [e.display_name for e in events] == ["Ana Silva", "Rita"]
        assert not any(e.from_operator for e in events)

    def test_ignored_payloads(self):
        assert extract_inbound_messages(EvolutionWebhook.model_validate({"event": "connection.update"})) == []
        audio_only = _upsert({"audioMessage": {"seconds": 3}})
        assert extract_inbound_messages(EvolutionWebhook.model_validate(audio_only)) == []
        group = _upsert({"conversation": "oi"}, jid="1203630@g.us")
        assert extract_inbound_messages(EvolutionWebhook.model_validate(group)) == []


class TestWebhookEndpoint:
    def test_contact_message_is_processed_after_ack(self, client, engine):
        response = client.post("/webhook/evolution", json=_upsert({"conversation": "DUVIDA"}))

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        engine.handle.assert_awaited_once()
        assert engine.handle.await_args[0][0].text == "DUVIDA"
        engine.handle_operator_message.assert_not_called()

    def test_operator_message_takes_operator_path(self, client, engine):
        client.post("/webhook/evolution", json=_upsert({"conversation": "boa sorte"}, from_me=True))

        engine.handle_operator_message.assert_awaited_once()
        engine.handle.assert_not_called()

    def test_invalid_json_is_acknowledged(self, client, engine):
        response = client.post(
            "/webhook/evolution", content=b"not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        engine.handle.assert_not_called()

    def test_other_events_are_acknowledged(self, client, engine):
        response = client.post("/webhook/evolution", json={"event": "presence.update", "data": {}})

        assert response.json() == {"ok": True}
        engine.handle.assert_not_called()


class TestHealth:
    def test_health(self, client):
        body = client.get("/api/health").json()
        assert body["ok"] is True
        assert body["app"] == "leadflow-api"
        assert "time" in body
