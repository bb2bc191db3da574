"""
API tests for the AI settings and assistant endpoints
"""

import json

import httpx
import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.api.deps import get_ai_gateway
from app.db.database import get_db
from app.main import app
from app.models.ai import AIProvider, AISettings
from app.services.ai_gateway import AIGateway

MODELS = {"object": "list", "data": [{"id": "TheBloke/Mistral-7B-Instruct-v0.2-GGUF", "object": "model"}]}


def chat_reply(content):
    return {
        "id": "chatcmpl-42",
        "model": "TheBloke/Mistral-7B-Instruct-v0.2-GGUF",
        "choices": [
            {"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}
        ],
        "usage": {"prompt_tokens": 30, "completion_tokens": 10, "total_tokens": 40},
    }


class FakeProvider:
    """Records outgoing requests and answers like an OpenAI compatible server"""

    def __init__(self):
        self.requests = []

    def __call__(self, request: httpx.Request):
        self.requests.append(request)
        if request.url.path.endswith("/models"):
            return httpx.Response(200, json=MODELS)
        body = json.loads(request.content)
        last = body["messages"][-1]["content"]
        return httpx.Response(200, json=chat_reply(f"Ответ на: {last}"))


@pytest.fixture
def provider(db_session):
    db_session.add(
        AISettings(
            provider=AIProvider.LM_STUDIO.value,
            base_url="http://lm-studio.local:1234",
            default_model="TheBloke/Mistral-7B-Instruct-v0.2-GGUF",
        )
    )
    db_session.commit()

    fake = FakeProvider()

    def override_gateway(db: Session = Depends(get_db)):
        return AIGateway(
            db,
            model_cache=app.state.model_cache,
            performance_stats=app.state.performance_stats,
            transport=httpx.MockTransport(fake),
        )

    app.dependency_overrides[get_ai_gateway] = override_gateway
    yield fake
    app.dependency_overrides.pop(get_ai_gateway, None)


class TestAISettingsApi:
    def test_settings_hide_api_key(self, client: TestClient, admin_auth_headers):
        response = client.put(
            "/v1/ai-settings",
            json={"provider": "openai", "api_key": "sk-secret"},
            headers=admin_auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["api_key_set"] is True
        assert "api_key" not in data
        assert "sk-secret" not in response.text

    def test_only_admin_updates_settings(self, client: TestClient, auth_headers):
        response = client.put(
            "/v1/ai-settings", json={"temperature": 0.5}, headers=auth_headers
        )
        assert response.status_code == 403

    def test_models_cached_between_requests(
        self, client: TestClient, auth_headers, provider
    ):
        first = client.get("/v1/ai-settings/models", headers=auth_headers).json()
        second = client.get("/v1/ai-settings/models", headers=auth_headers).json()

        assert first["cached"] is False
        assert second["cached"] is True
        assert first["models"][0]["family"] == "Mistral"
        assert len(provider.requests) == 1

        client.post("/v1/ai-settings/clear-cache", headers=auth_headers)
        third = client.get("/v1/ai-settings/models", headers=auth_headers).json()
        assert third["cached"] is False

    def test_connection_probe(self, client: TestClient, auth_headers, provider):
        response = client.post("/v1/ai-settings/test-connection", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["models_count"] == 1

    def test_model_test_feeds_statistics(self, client: TestClient, auth_headers, provider):
        response = client.post(
            "/v1/ai-settings/test-model",
            json={"model_id": "TheBloke/Mistral-7B-Instruct-v0.2-GGUF"},
            headers=auth_headers,
        )
        assert response.json()["success"] is True

        stats = client.get("/v1/ai-settings/performance-stats", headers=auth_headers).json()
        assert stats["total_requests"] == 1
        assert stats["success_rate"] == 100
        assert stats["top_models"][0]["model_id"] == "TheBloke/Mistral-7B-Instruct-v0.2-GGUF"


class TestAssistantApi:
    def test_chat_builds_context_from_contract(
        self, client: TestClient, auth_headers, provider, make_contract
    ):
        contract = make_contract(number="CN-AI-1", content="1. Предмет договора")

        response = client.post(
            "/v1/ai-assistant",
            params={"contract_id": contract.id},
            json={"messages": [{"role": "user", "content": "Какие риски?"}]},
            headers=auth_headers,
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["message"]["content"] == "Ответ на: Какие риски?"
        assert data["provider"] == "lm-studio"

        sent = json.loads(provider.requests[-1].content)
        assert sent["messages"][0]["role"] == "system"
        assert "CN-AI-1" in sent["messages"][0]["content"]
        assert "1. Предмет договора" in sent["messages"][0]["content"]

    def test_context_for_unknown_contract(self, client: TestClient, auth_headers, provider):
        response = client.get(
            "/v1/ai-assistant/context/00000000-0000-0000-0000-000000000000",
            headers=auth_headers,
        )
        assert response.status_code == 404

    def test_chat_history_round(self, client: TestClient, auth_headers, make_contract):
        contract = make_contract()

        saved = client.post(
            "/v1/ai-assistant/history",
            json={
                "contract_id": contract.id,
                "messages": [
                    {"role": "user", "content": "Какие риски?"},
                    {"role": "assistant", "content": "Существенных рисков нет."},
                ],
            },
            headers=auth_headers,
        )
        assert saved.status_code == 200
        assert len(saved.json()["messages"]) == 2

        loaded = client.get(
            "/v1/ai-assistant/history", params={"contract_id": contract.id}, headers=auth_headers
        )
        assert [m["role"] for m in loaded.json()["messages"]] == ["user", "assistant"]

        cleared = client.delete(
            "/v1/ai-assistant/history", params={"contract_id": contract.id}, headers=auth_headers
        )
        assert cleared.status_code == 200
        loaded = client.get(
            "/v1/ai-assistant/history", params={"contract_id": contract.id}, headers=auth_headers
        )
        assert loaded.json()["messages"] == []
