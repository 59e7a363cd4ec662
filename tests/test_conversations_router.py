from types import SimpleNamespace
from unittest.mock import Mock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from replyguard.dependencies import get_service_factory, get_services
from replyguard.main import app
from replyguard.services.auto_reply_config import EffectiveAutoReplyConfig
from replyguard.services.storage import ConversationNotFoundError
from replyguard.services.suggestion_service import Suggestion, SuggestionsResult

HEADERS = {"X-Tenant-ID": "acme"}


@pytest.fixture
def services():
    return SimpleNamespace(
        storage=Mock(),
        ingestion=Mock(),
        orchestrator=Mock(),
        analyzer=Mock(),
        auto_reply=Mock(),
    )


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestCreateConversation:
    def test_creates(self, client, services):
        conversation_id = uuid4()
        services.ingestion.create_conversation.return_value = str(conversation_id)

        response = client.post("/conversations", json={"customer_id": "cust-1"}, headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"conversation_id": str(conversation_id)}
        services.ingestion.create_conversation.assert_called_once_with("acme", "cust-1", None)

    def test_requires_tenant_header(self, client):
        response = client.post("/conversations", json={})

        assert response.status_code == 422


class TestIngestMessage:
    def test_stores_message(self, client, services):
        conversation_id = uuid4()
        message_id = uuid4()
        services.ingestion.ingest_message.return_value = str(message_id)

        response = client.post(
            f"/conversations/{conversation_id}/messages",
            json={"content": " Hola ", "sender": "Customer", "channel": "wa", "language": "es"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message_id": str(message_id),
            "conversation_id": str(conversation_id),
        }
        tenant_id, normalized = services.ingestion.ingest_message.call_args.args
        assert tenant_id == "acme"
        assert normalized.sender == "customer"
        assert normalized.channel == "whatsapp"
        assert normalized.content == "Hola"
        assert normalized.language == "es"

    def test_invalid_sender(self, client, services):
        response = client.post(
            f"/conversations/{uuid4()}/messages",
            json={"content": "Hi", "sender": "robot"},
            headers=HEADERS,
        )

        assert response.status_code == 422
        services.ingestion.ingest_message.assert_not_called()

    def test_unknown_conversation(self, client, services):
        services.ingestion.ingest_message.side_effect = ConversationNotFoundError("acme", "x")

        response = client.post(
            f"/conversations/{uuid4()}/messages",
            json={"content": "Hi", "sender": "customer"},
            headers=HEADERS,
        )

        assert response.status_code == 404


class TestSuggestions:
    def test_returns_envelope(self, client, services):
        conversation_id = uuid4()
        services.orchestrator.get_reply_suggestions.return_value = SuggestionsResult(
            suggestions=[
                Suggestion(text="Try Pro", confidence=0.82, reasoning="fit", product_recommendations=["Pro"]),
            ],
            context_used=True,
            metadata=SimpleNamespace(
                intent="buying",
                intent_score=0.8,
                sentiment="neutral",
                sentiment_score=0.8,
                emotions=None,
                objections=["price"],
            ),
        )

        response = client.post(f"/conversations/{conversation_id}/suggestions", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["suggestions"] == [
            {
                "text": "Try Pro",
                "confidence": 0.82,
                "product_match": True,
                "product_recommendations": ["Pro"],
                "reasoning": "fit",
            }
        ]
        assert body["context_used"] is True
        assert body["metadata"]["intent"] == "buying"
        assert body["metadata"]["emotions"] == []
        services.orchestrator.get_reply_suggestions.assert_called_once_with("acme", str(conversation_id))

    def test_empty_without_metadata(self, client, services):
        services.orchestrator.get_reply_suggestions.return_value = SuggestionsResult(
            suggestions=[], context_used=False
        )

        response = client.post(f"/conversations/{uuid4()}/suggestions", headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"suggestions": [], "context_used": False, "metadata": None}

    def test_invalid_conversation_id(self, client):
        response = client.post("/conversations/not-a-uuid/suggestions", headers=HEADERS)

        assert response.status_code == 422


def test_auto_reply_config(client, services):
    services.auto_reply.resolve_effective_config.return_value = EffectiveAutoReplyConfig(
        enabled=True, confidence_threshold=0.8, source="conversation"
    )

    response = client.get(f"/conversations/{uuid4()}/auto-reply", headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {"enabled": True, "confidence_threshold": 0.8, "source": "conversation"}


def test_auto_reply_config_of_other_tenant_is_not_found(client, services):
    conversation_id = uuid4()
    services.auto_reply.resolve_effective_config.side_effect = ConversationNotFoundError("acme", str(conversation_id))

    response = client.get(f"/conversations/{conversation_id}/auto-reply", headers=HEADERS)

    assert response.status_code == 404


def test_upstream_health_reports_each_dependency(client):
    factory = SimpleNamespace(model_client=None, retriever=Mock())
    factory.retriever.health_check.return_value = None
    app.dependency_overrides[get_service_factory] = lambda: factory

    response = client.get("/health/upstream")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "model": "not_configured", "knowledge": "ok"}
    factory.retriever.health_check.assert_called_once()
