"""
Tests for the AI assistant gateway against a mocked provider transport
"""

import json

import httpx
import pytest
from fastapi import HTTPException

from app.models.ai import AIProvider, AISettings
from app.schemas.ai import AssistantContext, ChatMessage, ChatRequest, CompanyPolicy
from app.services.ai_gateway import (
    AIGateway,
    ProviderConfig,
    assess_response_quality,
    build_headers,
    build_system_prompt,
    chat_url,
    enrich_model,
    models_url,
    parse_provider,
)
from app.services.model_cache import InMemoryModelCache, PerformanceStats

OPENAI_REPLY = {
    "id": "chatcmpl-1",
    "model": "gpt-4o-mini",
    "choices": [
        {
            "index": 0,
            "message": {"role": "assistant", "content": "Договор соответствует регламенту."},
            "finish_reason": "stop",
        }
    ],
    "usage": {"prompt_tokens": 12, "completion_tokens": 7, "total_tokens": 19},
}

ANTHROPIC_REPLY = {
    "id": "msg_1",
    "model": "claude-3-sonnet-20240229",
    "type": "message",
    "content": [{"type": "text", "text": "Риски "}, {"type": "text", "text": "не выявлены."}],
    "stop_reason": "end_turn",
    "usage": {"input_tokens": 10, "output_tokens": 5},
}


def store_settings(db, provider: AIProvider, base_url: str, api_key=None, model="test-model"):
    row = AISettings(
        provider=provider.value,
        base_url=base_url,
        api_key=api_key,
        default_model=model,
        is_active=True,
    )
    db.add(row)
    db.commit()
    return row


def make_gateway(db, handler, cache=None):
    return AIGateway(
        db,
        model_cache=cache or InMemoryModelCache(ttl_seconds=300),
        performance_stats=PerformanceStats(),
        transport=httpx.MockTransport(handler),
    )


def user_request(text="Проверь договор", **kwargs):
    return ChatRequest(messages=[ChatMessage(role="user", content=text)], **kwargs)


class TestProviderHelpers:
    def test_openai_sends_bearer_token(self):
        config = ProviderConfig(AIProvider.OPENAI, "https://api.openai.com/v1", "sk-test", "gpt")
        headers = build_headers(config)

        assert headers["Authorization"] == "Bearer sk-test"
        assert "x-api-key" not in headers

    def test_anthropic_sends_api_key_and_version(self):
        config = ProviderConfig(
            AIProvider.ANTHROPIC, "https://api.anthropic.com/v1", "ak-test", "claude"
        )
        headers = build_headers(config)

        assert headers["x-api-key"] == "ak-test"
        assert headers["anthropic-version"]
        assert "Authorization" not in headers

    def test_local_provider_without_key_has_no_auth(self):
        config = ProviderConfig(AIProvider.LM_STUDIO, "http://localhost:1234", None, "m")
        assert "Authorization" not in build_headers(config)

    def test_endpoint_urls(self):
        lm = ProviderConfig(AIProvider.LM_STUDIO, "http://localhost:1234/", None, "m")
        openai = ProviderConfig(AIProvider.OPENAI, "https://api.openai.com/v1", "k", "m")
        anthropic = ProviderConfig(AIProvider.ANTHROPIC, "https://api.anthropic.com/v1", "k", "m")
        zai = ProviderConfig(AIProvider.Z_AI, "https://z.example.com", "k", "m")

        assert chat_url(lm) == "http://localhost:1234/v1/chat/completions"
        assert models_url(lm) == "http://localhost:1234/v1/models"
        assert chat_url(openai) == "https://api.openai.com/v1/chat/completions"
        assert models_url(openai) == "https://api.openai.com/v1/models"
        assert chat_url(anthropic) == "https://api.anthropic.com/v1/messages"
        assert chat_url(zai) == "https://z.example.com/chat/completions"
        assert models_url(zai) == "https://z.example.com/v1/models"

    def test_unknown_provider_is_rejected(self):
        with pytest.raises(HTTPException) as exc_info:
            parse_provider("gigachat")
        assert exc_info.value.status_code == 400

    def test_enrich_model_guesses_from_id(self):
        model = enrich_model({"id": "TheBloke/Mistral-7B-Instruct-v0.2-GGUF-Q4"})

        assert model["size"] == "7B"
        assert model["format"] == "GGUF"
        assert model["family"] == "Mistral"
        assert model["quantization"] == "Q4"
        assert model["description"].startswith("Инструкционная")

    def test_enrich_model_unknown_fields(self):
        model = enrich_model({"id": "gpt-4o-mini"})

        assert model["size"] == "Unknown"
        assert model["family"] == "Unknown"

    def test_response_quality_scores(self):
        assert assess_response_quality("") == 1
        assert assess_response_quality("Коротко.") == 1
        assert assess_response_quality("Я языковая модель для договоров.") == 3
        assert assess_response_quality("Привет! Я ассистент, готов помочь с анализом договоров.") == 7
        assert assess_response_quality("x" * 120) == 8
        assert assess_response_quality("y" * 70) == 5

    def test_system_prompt_includes_context_sections(self):
        context = AssistantContext(
            contract_metadata={"number": "CN-17", "title": "Аренда склада"},
            company_policies=[CompanyPolicy(title="Лимиты", description="До 1 млн без ГД")],
            contract_text="1. Предмет договора",
        )
        prompt = build_system_prompt(context)

        assert "МЕТАДАННЫЕ ДОГОВОРА" in prompt
        assert "CN-17" in prompt
        assert "1. Лимиты: До 1 млн без ГД" in prompt
        assert "ТЕКСТ ДОГОВОРА:\n1. Предмет договора" in prompt
        assert "ИНФОРМАЦИЯ О КОНТРАГЕНТЕ" not in prompt


class TestChat:
    @pytest.mark.asyncio
    async def test_openai_chat_round_trip(self, db_session):
        store_settings(db_session, AIProvider.OPENAI, "https://api.openai.com/v1", "sk-test")
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=OPENAI_REPLY)

        gateway = make_gateway(db_session, handler)
        result = await gateway.chat(
            user_request(context=AssistantContext(contract_text="Текст"))
        )

        assert seen["url"] == "https://api.openai.com/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["model"] == "test-model"
        assert seen["body"]["messages"][0]["role"] == "system"
        assert seen["body"]["messages"][1] == {"role": "user", "content": "Проверь договор"}

        assert result["message"]["content"] == "Договор соответствует регламенту."
        assert result["finish_reason"] == "stop"
        assert result["provider"] == "openai"
        assert gateway.get_performance_stats()["total_requests"] == 1

    @pytest.mark.asyncio
    async def test_anthropic_chat_uses_messages_api(self, db_session):
        store_settings(
            db_session, AIProvider.ANTHROPIC, "https://api.anthropic.com/v1", "ak-test"
        )
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=ANTHROPIC_REPLY)

        gateway = make_gateway(db_session, handler)
        result = await gateway.chat(
            user_request(context=AssistantContext(contract_text="Текст"))
        )

        assert seen["url"] == "https://api.anthropic.com/v1/messages"
        assert seen["headers"]["x-api-key"] == "ak-test"
        assert "МЕТАДАННЫЕ" not in seen["body"]["system"]
        assert "ТЕКСТ ДОГОВОРА" in seen["body"]["system"]
        assert all(m["role"] != "system" for m in seen["body"]["messages"])

        assert result["message"] == {"role": "assistant", "content": "Риски не выявлены."}
        assert result["finish_reason"] == "end_turn"
        assert result["provider"] == "anthropic"

    @pytest.mark.asyncio
    async def test_timeout_maps_to_504(self, db_session):
        store_settings(db_session, AIProvider.LM_STUDIO, "http://localhost:1234")

        def handler(request: httpx.Request):
            raise httpx.ReadTimeout("timed out", request=request)

        gateway = make_gateway(db_session, handler)
        with pytest.raises(HTTPException) as exc_info:
            await gateway.chat(user_request())

        assert exc_info.value.status_code == 504

    @pytest.mark.asyncio
    async def test_upstream_error_maps_to_502(self, db_session):
        store_settings(db_session, AIProvider.LM_STUDIO, "http://localhost:1234")

        gateway = make_gateway(
            db_session, lambda request: httpx.Response(500, text="model not loaded")
        )
        with pytest.raises(HTTPException) as exc_info:
            await gateway.chat(user_request())

        assert exc_info.value.status_code == 502
        assert "500" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_invalid_json_maps_to_502(self, db_session):
        store_settings(db_session, AIProvider.LM_STUDIO, "http://localhost:1234")

        gateway = make_gateway(db_session, lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(HTTPException) as exc_info:
            await gateway.chat(user_request())

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_missing_choices_maps_to_502_and_counts_failure(self, db_session):
        store_settings(db_session, AIProvider.LM_STUDIO, "http://localhost:1234")

        gateway = make_gateway(
            db_session, lambda request: httpx.Response(200, json={"choices": []})
        )
        with pytest.raises(HTTPException) as exc_info:
            await gateway.chat(user_request())

        assert exc_info.value.status_code == 502
        stats = gateway.get_performance_stats()
        assert stats["total_requests"] == 1
        assert stats["success_rate"] == 0


class TestProbing:
    @pytest.mark.asyncio
    async def test_connection_falls_through_to_first_working_endpoint(self, db_session):
        store_settings(db_session, AIProvider.LM_STUDIO, "http://localhost:1234")
        calls = []

        def handler(request: httpx.Request):
            calls.append((request.method, request.url.path))
            if request.url.path == "/v1/chat/completions":
                return httpx.Response(200, json=OPENAI_REPLY)
            return httpx.Response(404)

        result = await make_gateway(db_session, handler).test_connection()

        assert result["success"] is True
        assert result["endpoint"] == "/v1/chat/completions"
        assert calls == [("GET", "/v1/models"), ("POST", "/v1/chat/completions")]

    @pytest.mark.asyncio
    async def test_connection_counts_models(self, db_session):
        store_settings(db_session, AIProvider.LM_STUDIO, "http://localhost:1234")

        result = await make_gateway(
            db_session,
            lambda request: httpx.Response(200, json={"data": [{"id": "a"}, {"id": "b"}]}),
        ).test_connection()

        assert result["endpoint"] == "/v1/models"
        assert result["models_count"] == 2

    @pytest.mark.asyncio
    async def test_connection_failure_is_reported_not_raised(self, db_session):
        store_settings(db_session, AIProvider.LM_STUDIO, "http://localhost:1234")

        def handler(request: httpx.Request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await make_gateway(db_session, handler).test_connection()

        assert result["success"] is False
        assert "connection refused" in result["message"]

    @pytest.mark.asyncio
    async def test_status_unreachable_is_503(self, db_session):
        store_settings(db_session, AIProvider.LM_STUDIO, "http://localhost:1234")

        gateway = make_gateway(db_session, lambda request: httpx.Response(401))
        with pytest.raises(HTTPException) as exc_info:
            await gateway.check_status()

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_status_connected(self, db_session):
        store_settings(db_session, AIProvider.LM_STUDIO, "http://localhost:1234")

        result = await make_gateway(
            db_session, lambda request: httpx.Response(200, json={"data": [{"id": "m"}]})
        ).check_status()

        assert result["status"] == "connected"
        assert result["provider"] == "lm-studio"
        assert result["models"] == [{"id": "m"}]


class TestModels:
    @pytest.mark.asyncio
    async def test_models_are_enriched_and_cached(self, db_session):
        store_settings(db_session, AIProvider.LM_STUDIO, "http://localhost:1234")
        calls = []

        def handler(request: httpx.Request):
            calls.append(request.url.path)
            return httpx.Response(
                200,
                json={"data": [{"id": "Llama-13B-Chat-GGML"}, {"object": "model"}]},
            )

        gateway = make_gateway(db_session, handler)
        first = await gateway.get_models()
        second = await gateway.get_models()

        assert first["cached"] is False
        assert second["cached"] is True
        assert calls == ["/v1/models"]
        assert len(first["models"]) == 1
        assert first["models"][0]["family"] == "Llama"
        assert first["models"][0]["size"] == "13B"

    @pytest.mark.asyncio
    async def test_clear_cache_forces_refetch(self, db_session):
        store_settings(db_session, AIProvider.LM_STUDIO, "http://localhost:1234")
        calls = []

        def handler(request: httpx.Request):
            calls.append(request.url.path)
            return httpx.Response(200, json={"data": [{"id": "m"}]})

        gateway = make_gateway(db_session, handler)
        await gateway.get_models()
        gateway.clear_cache()
        result = await gateway.get_models()

        assert result["cached"] is False
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_models_upstream_error(self, db_session):
        store_settings(db_session, AIProvider.LM_STUDIO, "http://localhost:1234")

        gateway = make_gateway(db_session, lambda request: httpx.Response(503))
        with pytest.raises(HTTPException) as exc_info:
            await gateway.get_models()

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [{"data": ["llama-2-7b", {"id": "m"}]}, {"data": "llama-2-7b"}, ["llama-2-7b"]],
    )
    async def test_malformed_model_list(self, db_session, payload):
        store_settings(db_session, AIProvider.LM_STUDIO, "http://localhost:1234")

        gateway = make_gateway(db_session, lambda request: httpx.Response(200, json=payload))
        with pytest.raises(HTTPException) as exc_info:
            await gateway.get_models()

        assert exc_info.value.status_code == 502
        assert exc_info.value.detail == "AI provider returned an invalid model list"

    @pytest.mark.asyncio
    async def test_model_test_scores_and_records(self, db_session):
        store_settings(db_session, AIProvider.LM_STUDIO, "http://localhost:1234")
        reply = {
            "model": "m",
            "choices": [
                {
                    "message": {
                        "role": "assistant",
                        "content": "Здравствуйте! Я локальная модель, помогаю с договорами.",
                    },
                    "finish_reason": "stop",
                }
            ],
        }

        gateway = make_gateway(db_session, lambda request: httpx.Response(200, json=reply))
        result = await gateway.test_model("m")

        assert result["success"] is True
        assert result["quality_score"] == 7
        stats = gateway.get_performance_stats()
        assert stats["total_requests"] == 1
        assert stats["top_models"] == [{"model_id": "m", "usage": 1}]

    @pytest.mark.asyncio
    async def test_model_test_failure_is_reported(self, db_session):
        store_settings(db_session, AIProvider.LM_STUDIO, "http://localhost:1234")

        gateway = make_gateway(db_session, lambda request: httpx.Response(500))
        result = await gateway.test_model("m")

        assert result["success"] is False
        assert result["quality_score"] == 0
        assert gateway.get_performance_stats()["success_rate"] == 0


class TestSettings:
    def test_defaults_without_stored_row(self, db_session):
        result = AIGateway(db_session).get_settings()

        assert result["provider"] == "lm-studio"
        assert result["is_active"] is True

    @pytest.mark.asyncio
    async def test_provider_switch_moves_url_and_clears_cache(self, db_session):
        from app.schemas.ai import AISettingsUpdate

        cache = InMemoryModelCache(ttl_seconds=300)
        cache.set("lm-studio:http://localhost:1234", [{"id": "m"}])
        gateway = AIGateway(db_session, model_cache=cache)

        result = await gateway.update_settings(
            AISettingsUpdate(provider=AIProvider.OPENAI, api_key="sk-new")
        )

        assert result["provider"] == "openai"
        assert result["base_url"] == "https://api.openai.com/v1"
        assert result["api_key_set"] is True
        assert cache.get("lm-studio:http://localhost:1234") is None
