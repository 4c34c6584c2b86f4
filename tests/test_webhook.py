import hashlib
import hmac
import json
from unittest.mock import Mock

import httpx
import pytest
from fastapi.testclient import TestClient

from app.dependencies import (
    build_container,
    generation_deadline_seconds,
    get_conversation_service,
    get_session_store,
    get_settings,
)
from app.main import create_app
from app.routers.webhook import verify_signature
from app.services.delivery_service import DeliveryService
from app.services.locks import KeyedLock, RedisKeyedLock
from app.services.session_store import InMemorySessionStore, RedisSessionStore


def whatsapp_payload(*messages, obj="whatsapp_business_account"):
    return {
        "object": obj,
        "entry": [
            {
                "id": "WABA_ID",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"phone_number_id": "12345"},
                            "messages": list(messages),
                        },
                    }
                ],
            }
        ],
    }


def text_message(sender="555", body="Oi", message_id="wamid.1"):
    return {"from": sender, "id": message_id, "timestamp": "1718000000", "type": "text", "text": {"body": body}}


@pytest.fixture
def conversation():
    return Mock()


@pytest.fixture
def make_client(conversation, test_settings):
    def _make(settings=None):
        app = create_app(settings or test_settings)
        app.dependency_overrides[get_settings] = lambda: settings or test_settings
        app.dependency_overrides[get_conversation_service] = lambda: conversation
        app.dependency_overrides[get_session_store] = lambda: InMemorySessionStore()
        return TestClient(app)

    return _make


class TestVerification:
    def test_valid_token_echoes_challenge(self, make_client):
        response = make_client().get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "1158201444"},
        )

        assert response.status_code == 200
        assert response.text == "1158201444"

    def test_wrong_token_is_forbidden(self, make_client):
        response = make_client().get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "guess", "hub.challenge": "1"},
        )

        assert response.status_code == 403

    def test_missing_parameters(self, make_client):
        response = make_client().get("/webhook", params={"hub.mode": "subscribe"})

        assert response.status_code == 400


class TestReceive:
    def test_text_messages_are_handed_to_turns(self, make_client, conversation):
        payload = whatsapp_payload(
            text_message("555", "Ana", "wamid.1"),
            {"from": "555", "id": "wamid.2", "type": "image", "image": {"id": "media"}},
            text_message("777", "reset", "wamid.3"),
        )

        response = make_client().post("/webhook", json=payload)

        assert response.status_code == 200
        assert response.json() == {"status": "received", "accepted": 2}
        assert conversation.submit.call_count == 2
        conversation.submit.assert_any_call("555", "Ana", message_id="wamid.1")
        conversation.submit.assert_any_call("777", "reset", message_id="wamid.3")

    def test_status_callbacks_are_acknowledged(self, make_client, conversation):
        payload = whatsapp_payload()
        payload["entry"][0]["changes"][0]["value"]["statuses"] = [{"id": "wamid.1", "status": "delivered"}]

        response = make_client().post("/webhook", json=payload)

        assert response.status_code == 200
        assert response.json()["accepted"] == 0
        conversation.submit.assert_not_called()

    def test_invalid_json(self, make_client):
        response = make_client().post(
            "/webhook", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400

    def test_wrong_object(self, make_client):
        response = make_client().post("/webhook", json=whatsapp_payload(text_message(), obj="page"))

        assert response.status_code == 400

    def test_missing_entries(self, make_client):
        response = make_client().post("/webhook", json={"object": "whatsapp_business_account", "entry": []})

        assert response.status_code == 400


class TestSignature:
    def _signed_client(self, make_client, test_settings):
        settings = test_settings.model_copy(update={"whatsapp_app_secret": "app-secret"})
        return make_client(settings)

    def test_valid_signature_is_accepted(self, make_client, test_settings):
        body = json.dumps(whatsapp_payload(text_message())).encode("utf-8")
        signature = "sha256=" + hmac.new(b"app-secret", body, hashlib.sha256).hexdigest()

        response = self._signed_client(make_client, test_settings).post(
            "/webhook",
            content=body,
            headers={"Content-Type": "application/json", "X-Hub-Signature-256": signature},
        )

        assert response.status_code == 200

    def test_bad_signature_is_forbidden(self, make_client, test_settings, conversation):
        body = json.dumps(whatsapp_payload(text_message())).encode("utf-8")

        response = self._signed_client(make_client, test_settings).post(
            "/webhook",
            content=body,
            headers={"Content-Type": "application/json", "X-Hub-Signature-256": "sha256=deadbeef"},
        )

        assert response.status_code == 403
        conversation.submit.assert_not_called()

    def test_verify_signature_requires_prefix(self):
        body = b"{}"
        digest = hmac.new(b"s", body, hashlib.sha256).hexdigest()

        assert verify_signature("s", body, f"sha256={digest}")
        assert not verify_signature("s", body, digest)
        assert not verify_signature("s", body, None)


class TestOperationalEndpoints:
    def test_health(self, make_client):
        response = make_client().get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_store_check(self, make_client):
        response = make_client().get("/store-check")

        assert response.json() == {"status": "ok", "store": "InMemorySessionStore"}


class TestContainer:
    @pytest.mark.asyncio
    async def test_memory_backends_without_redis(self, test_settings):
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200))) as http:
            container = build_container(test_settings, http)

        assert isinstance(container.store, InMemorySessionStore)
        assert isinstance(container.conversation.locks, KeyedLock)
        assert container.conversation.crm is None
        assert container.delivery.max_length == 1000

    @pytest.mark.asyncio
    async def test_redis_backends(self, test_settings):
        settings = test_settings.model_copy(
            update={"session_lock_backend": "redis", "kommo_api_key": "key", "kommo_account_id": "acme"}
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200))) as http:
            container = build_container(settings, http, redis_client=Mock())

        assert isinstance(container.store, RedisSessionStore)
        assert isinstance(container.conversation.locks, RedisKeyedLock)
        assert container.conversation.crm.enabled

    def test_generation_deadline_follows_timeouts(self, test_settings):
        settings = test_settings.model_copy(
            update={
                "scraping_timeout_seconds": 10.0,
                "openai_timeout_seconds": 30.0,
                "whatsapp_timeout_seconds": 20.0,
                "message_max_length": 5000,
                "send_max_attempts": 1,
            }
        )
        delivery = DeliveryService(Mock(), max_attempts=1, chunk_delay_seconds=0)

        # Two letter chunks plus the closing message, one 20 s attempt each.
        assert generation_deadline_seconds(settings, delivery) == 10.0 + 30.0 + 3 * 20.0

        pinned = settings.model_copy(update={"generation_deadline_seconds": 90.0})
        assert generation_deadline_seconds(pinned, delivery) == 90.0

    @pytest.mark.asyncio
    async def test_container_passes_deadline_to_conversation(self, test_settings):
        settings = test_settings.model_copy(update={"generation_deadline_seconds": 45.0})
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200))) as http:
            container = build_container(settings, http)

        assert container.conversation.generation_deadline_seconds == 45.0
