"""
AI Assistant Gateway
Proxies chat requests to LM Studio, Z.AI, OpenAI or Anthropic and manages the
model catalogue, connection probes and persisted assistant settings
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx
from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.core.circuit_breaker import CircuitBreakerOpenException, get_provider_breaker
from app.core.config import settings
from app.core.metrics import record_ai_request
from app.models.ai import AIProvider, AISettings
from app.models.approval import Approval
from app.models.contract import Contract
from app.models.reference import Reference, ReferenceType
from app.schemas.ai import (
    AISettingsUpdate,
    AssistantContext,
    ChatRequest,
    CompanyPolicy,
    ContractTemplate,
    HistoryEntry,
)
from app.services.model_cache import InMemoryModelCache, ModelCache, PerformanceStats

logger = logging.getLogger(__name__)

DEFAULT_TEST_PROMPT = "Привет! Пожалуйста, представься кратко."

PROVIDER_NAMES = {
    AIProvider.LM_STUDIO: "LM Studio",
    AIProvider.Z_AI: "Z.AI",
    AIProvider.OPENAI: "OpenAI",
    AIProvider.ANTHROPIC: "Anthropic",
}

# Probed in order by test_connection; the first 200 wins
CONNECTION_PROBES = {
    AIProvider.LM_STUDIO: [
        ("GET", "/v1/models"),
        ("POST", "/v1/chat/completions"),
        ("POST", "/chat/completions"),
        ("GET", "/models"),
    ],
    AIProvider.Z_AI: [
        ("GET", "/v1/models"),
        ("POST", "/v1/chat/completions"),
        ("POST", "/chat/completions"),
        ("GET", "/models"),
    ],
    AIProvider.OPENAI: [("GET", "/models"), ("POST", "/chat/completions")],
    AIProvider.ANTHROPIC: [("GET", "/models"), ("POST", "/messages")],
}


@dataclass
class ProviderConfig:
    provider: AIProvider
    base_url: str
    api_key: Optional[str]
    default_model: str
    temperature: float = 0.2
    max_tokens: int = 2000
    top_p: float = 0.9

    @property
    def name(self) -> str:
        return PROVIDER_NAMES[self.provider]


def provider_defaults(provider: AIProvider) -> ProviderConfig:
    if provider == AIProvider.LM_STUDIO:
        return ProviderConfig(
            provider,
            settings.LM_STUDIO_BASE_URL,
            settings.LM_STUDIO_API_KEY,
            settings.LM_STUDIO_DEFAULT_MODEL,
        )
    if provider == AIProvider.Z_AI:
        return ProviderConfig(
            provider,
            settings.Z_AI_BASE_URL,
            settings.Z_AI_API_KEY,
            settings.Z_AI_DEFAULT_MODEL,
        )
    if provider == AIProvider.OPENAI:
        return ProviderConfig(
            provider,
            settings.OPENAI_BASE_URL,
            settings.OPENAI_API_KEY,
            settings.OPENAI_DEFAULT_MODEL,
        )
    return ProviderConfig(
        provider,
        settings.ANTHROPIC_BASE_URL,
        settings.ANTHROPIC_API_KEY,
        settings.ANTHROPIC_DEFAULT_MODEL,
    )


def parse_provider(value) -> AIProvider:
    try:
        return AIProvider(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported provider: {value}",
        )


def build_headers(config: ProviderConfig) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if config.provider == AIProvider.ANTHROPIC:
        headers["x-api-key"] = config.api_key or ""
        headers["anthropic-version"] = settings.ANTHROPIC_VERSION
    elif config.api_key:
        headers["Authorization"] = f"Bearer {config.api_key}"
    return headers


def chat_url(config: ProviderConfig) -> str:
    base = config.base_url.rstrip("/")
    if config.provider == AIProvider.LM_STUDIO:
        return f"{base}/v1/chat/completions"
    if config.provider == AIProvider.ANTHROPIC:
        return f"{base}/messages"
    return f"{base}/chat/completions"


def models_url(config: ProviderConfig) -> str:
    base = config.base_url.rstrip("/")
    if config.provider in (AIProvider.LM_STUDIO, AIProvider.Z_AI):
        return f"{base}/v1/models"
    return f"{base}/models"


def build_system_prompt(context: AssistantContext) -> str:
    """System prompt grounding the assistant in one contract's data"""
    prompt = (
        "Ты - AI-ассистент для работы с договорами в юридической системе. "
        "Твоя задача - помогать пользователям анализировать, создавать и управлять договорами.\n\n"
        "ИНСТРУКЦИИ:\n"
        "1. Отвечай точно и по существу, основываясь только на предоставленной информации\n"
        "2. Если информации недостаточно, укажи на это\n"
        "3. Для юридических вопросов будь особенно точен и осторожен\n"
        "4. Сохраняй конфиденциальность предоставленных данных\n"
        "5. Используй формальный, профессиональный стиль общения\n"
    )

    metadata = context.contract_metadata
    if metadata:
        prompt += (
            "\n\nМЕТАДАННЫЕ ДОГОВОРА:\n"
            f"- Номер: {metadata.get('number') or 'не указан'}\n"
            f"- Название: {metadata.get('title') or 'не указано'}\n"
            f"- Контрагент: {metadata.get('counterparty') or 'не указан'}\n"
            f"- Дата начала: {metadata.get('start_date') or 'не указана'}\n"
            f"- Дата окончания: {metadata.get('end_date') or 'не указана'}\n"
            f"- Статус: {metadata.get('status') or 'не указан'}\n"
            f"- Ответственный: {metadata.get('responsible') or 'не указан'}"
        )

    counterparty = context.counterparty
    if counterparty:
        prompt += (
            "\n\nИНФОРМАЦИЯ О КОНТРАГЕНТЕ:\n"
            f"- Наименование: {counterparty.get('name') or 'не указано'}\n"
            f"- ИНН: {counterparty.get('inn') or 'не указан'}\n"
            f"- Статус: {counterparty.get('status') or 'не указан'}\n"
            f"- История сотрудничества: {counterparty.get('cooperation_history') or 'не указана'}"
        )

    if context.company_policies:
        prompt += "\n\nВНУТРЕННИЕ РЕГЛАМЕНТЫ КОМПАНИИ:"
        for index, policy in enumerate(context.company_policies, start=1):
            prompt += f"\n{index}. {policy.title}: {policy.description}"

    if context.templates:
        prompt += "\n\nТИПОВЫЕ ШАБЛОНЫ И УСЛОВИЯ:"
        for index, template in enumerate(context.templates, start=1):
            prompt += f"\n{index}. {template.name}: {template.content}"

    if context.contract_text:
        prompt += f"\n\nТЕКСТ ДОГОВОРА:\n{context.contract_text}"

    if context.history:
        prompt += "\n\nИСТОРИЯ СОГЛАСОВАНИЙ И КОММЕНТАРИИ:"
        for index, item in enumerate(context.history, start=1):
            prompt += f"\n{index}. {item.author} ({item.date}): {item.comment}"

    prompt += (
        "\n\nОтвечай на вопросы пользователя, учитывая весь предоставленный контекст. "
        "Если какая-то информация отсутствует, вежливо укажи на это."
    )
    return prompt


def _first_match(model_id: str, candidates: List[str]) -> str:
    for candidate in candidates:
        if candidate in model_id:
            return candidate
    return "Unknown"


def enrich_model(model: Dict[str, Any]) -> Dict[str, Any]:
    """Add size, format, family and quantization guessed from the model id"""
    model_id = model.get("id", "")
    if "Instruct" in model_id:
        description = "Инструкционная модель, оптимизированная для следования командам"
    elif "Chat" in model_id:
        description = "Чат-модель, оптимизированная для диалогов"
    elif "Code" in model_id:
        description = "Модель, специализированная на генерации кода"
    else:
        description = "Универсальная языковая модель"

    return {
        **model,
        "size": _first_match(model_id, ["7B", "13B", "34B", "70B"]),
        "format": _first_match(model_id, ["GGUF", "GGML", "GPTQ"]),
        "family": _first_match(model_id, ["Mistral", "Llama", "Vicuna", "Alpaca"]),
        "quantization": _first_match(model_id, ["Q4", "Q5", "Q8"]),
        "description": description,
    }


def assess_response_quality(text: str) -> int:
    """Rough 1-8 score of a model test answer"""
    if not text or len(text) < 10:
        return 1
    if len(text) < 50:
        return 3
    if "Привет" in text or "Здравствуйте" in text:
        return 7
    if len(text) > 100:
        return 8
    return 5


class AIGateway:
    """Service for AI provider calls and assistant settings"""

    def __init__(
        self,
        db: Session,
        model_cache: Optional[ModelCache] = None,
        performance_stats: Optional[PerformanceStats] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.model_cache = model_cache or InMemoryModelCache(
            settings.AI_MODEL_CACHE_TTL_SECONDS
        )
        self.performance_stats = performance_stats or PerformanceStats()
        self.transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout,
            transport=self.transport,
            headers={"User-Agent": "ContractFlow-API/1.0"},
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def _settings_row(self) -> Optional[AISettings]:
        return (
            self.db.query(AISettings)
            .filter(AISettings.is_active == True)  # noqa: E712
            .order_by(AISettings.updated_at.desc())
            .first()
        )

    def resolve_config(self, provider: Optional[AIProvider] = None) -> ProviderConfig:
        """Provider defaults overlaid with the stored settings for that provider"""
        row = self._settings_row()
        if provider is None:
            provider = parse_provider(row.provider if row else settings.AI_DEFAULT_PROVIDER)

        config = provider_defaults(provider)
        if row and row.provider == provider.value:
            config.base_url = row.base_url or config.base_url
            config.api_key = row.api_key or config.api_key
            config.default_model = row.default_model or config.default_model
            config.temperature = row.temperature
            config.max_tokens = row.max_tokens
            config.top_p = row.top_p

        if not config.base_url:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Provider URL is not configured",
            )
        return config

    def get_settings(self) -> Dict[str, Any]:
        row = self._settings_row()
        if row:
            return {
                "provider": row.provider,
                "base_url": row.base_url,
                "api_key_set": bool(row.api_key),
                "default_model": row.default_model,
                "temperature": row.temperature,
                "max_tokens": row.max_tokens,
                "top_p": row.top_p,
                "is_active": row.is_active,
            }

        defaults = provider_defaults(parse_provider(settings.AI_DEFAULT_PROVIDER))
        return {
            "provider": defaults.provider.value,
            "base_url": defaults.base_url,
            "api_key_set": bool(defaults.api_key),
            "default_model": defaults.default_model,
            "temperature": defaults.temperature,
            "max_tokens": defaults.max_tokens,
            "top_p": defaults.top_p,
            "is_active": True,
        }

    async def update_settings(self, data: AISettingsUpdate) -> Dict[str, Any]:
        try:
            row = self._settings_row()
            if row is None:
                defaults = provider_defaults(
                    data.provider or parse_provider(settings.AI_DEFAULT_PROVIDER)
                )
                row = AISettings(
                    provider=defaults.provider.value,
                    base_url=defaults.base_url,
                    default_model=defaults.default_model,
                )
                self.db.add(row)

            update_data = data.model_dump(exclude_unset=True)
            provider = update_data.pop("provider", None)
            if provider is not None and provider.value != row.provider:
                row.provider = provider.value
                # A provider switch without an explicit URL moves to that provider's endpoint
                if "base_url" not in update_data:
                    row.base_url = provider_defaults(provider).base_url
                if "default_model" not in update_data:
                    row.default_model = provider_defaults(provider).default_model

            for field, value in update_data.items():
                setattr(row, field, value)

            self.db.commit()
            self.db.refresh(row)

            # Cached models belong to the previous endpoint
            self.model_cache.clear()
            logger.info(f"AI settings updated: provider={row.provider}, url={row.base_url}")
            return self.get_settings()

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating AI settings: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to update AI settings",
            )

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(self, request: ChatRequest) -> Dict[str, Any]:
        config = self.resolve_config(request.provider)

        messages = [m.model_dump() for m in request.messages]
        if request.context is not None:
            messages.insert(
                0, {"role": "system", "content": build_system_prompt(request.context)}
            )

        model = request.model or config.default_model
        if config.provider == AIProvider.ANTHROPIC:
            body = self._anthropic_body(messages, model, request)
        else:
            body = {
                "model": model,
                "messages": messages,
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
                "top_p": request.top_p,
                "stream": False,
            }

        logger.info(
            f"Sending chat to {config.provider.value}: model={model}, messages={len(messages)}"
        )
        data, elapsed_ms = await self._post(
            config, chat_url(config), body, settings.AI_REQUEST_TIMEOUT, "chat"
        )

        try:
            if config.provider == AIProvider.ANTHROPIC:
                result = self._parse_anthropic(data)
            else:
                result = self._parse_openai(data)
        except (KeyError, IndexError, TypeError, ValueError):
            self.performance_stats.record(model, elapsed_ms, success=False)
            logger.error(f"Invalid response structure from {config.provider.value}: {data}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Invalid response structure from AI provider",
            )

        self.performance_stats.record(result["model"] or model, elapsed_ms, success=True)
        result["provider"] = config.provider.value
        return result

    def _anthropic_body(
        self, messages: List[Dict[str, str]], model: str, request: ChatRequest
    ) -> Dict[str, Any]:
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        body = {
            "model": model,
            "messages": [m for m in messages if m["role"] != "system"],
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "top_p": request.top_p,
        }
        if system:
            body["system"] = system
        return body

    @staticmethod
    def _parse_openai(data: Dict[str, Any]) -> Dict[str, Any]:
        choices = data["choices"]
        if not isinstance(choices, list) or not choices:
            raise ValueError("Response missing choices")
        choice = choices[0]
        message = choice.get("message") or {"role": "assistant", "content": ""}
        return {
            "id": data.get("id"),
            "model": data.get("model"),
            "message": {
                "role": message.get("role", "assistant"),
                "content": message.get("content") or "",
            },
            "usage": data.get("usage"),
            "finish_reason": choice.get("finish_reason"),
        }

    @staticmethod
    def _parse_anthropic(data: Dict[str, Any]) -> Dict[str, Any]:
        content = data["content"]
        text = "".join(
            block.get("text", "") for block in content if block.get("type") == "text"
        )
        return {
            "id": data.get("id"),
            "model": data.get("model"),
            "message": {"role": "assistant", "content": text},
            "usage": data.get("usage"),
            "finish_reason": data.get("stop_reason"),
        }

    async def _post(
        self,
        config: ProviderConfig,
        url: str,
        body: Dict[str, Any],
        timeout: float,
        operation: str,
    ) -> Tuple[Dict[str, Any], float]:
        """POST to a provider through its circuit breaker; returns (json, elapsed ms)"""
        provider = config.provider.value
        breaker = get_provider_breaker(provider)
        start_time = time.perf_counter()

        try:
            async with breaker.call_context():
                async with self._client(timeout) as client:
                    response = await client.post(
                        url, json=body, headers=build_headers(config)
                    )
        except CircuitBreakerOpenException:
            record_ai_request(provider, operation, "circuit_open", 0.0)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"{config.name} is temporarily unavailable",
            )
        except httpx.TimeoutException:
            elapsed = time.perf_counter() - start_time
            record_ai_request(provider, operation, "timeout", elapsed)
            logger.error(f"Timeout calling {provider} at {url}")
            raise HTTPException(
                status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                detail=f"{config.name} request timed out",
            )
        except httpx.HTTPError as e:
            elapsed = time.perf_counter() - start_time
            record_ai_request(provider, operation, "network_error", elapsed)
            logger.error(f"Network error calling {provider}: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Network error: {str(e)}",
            )

        elapsed = time.perf_counter() - start_time
        if response.status_code != 200:
            record_ai_request(provider, operation, "provider_error", elapsed)
            logger.error(
                f"AI provider API error: {provider} {response.status_code} {response.text[:500]}"
            )
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"AI provider API error: {response.status_code}",
            )

        try:
            data = response.json()
        except ValueError:
            record_ai_request(provider, operation, "invalid_response", elapsed)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="AI provider returned invalid JSON",
            )

        record_ai_request(provider, operation, "success", elapsed)
        return data, elapsed * 1000

    # ------------------------------------------------------------------
    # Provider probing
    # ------------------------------------------------------------------

    async def check_status(self) -> Dict[str, Any]:
        """GET the configured provider's model list as a liveness probe"""
        config = self.resolve_config()
        url = models_url(config)
        try:
            async with self._client(settings.AI_CONNECTION_TEST_TIMEOUT) as client:
                response = await client.get(url, headers=build_headers(config))
        except httpx.HTTPError as e:
            logger.warning(f"{config.name} status probe failed: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"{config.name} not accessible: {str(e) or type(e).__name__}",
            )

        if response.status_code != 200:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"{config.name} not accessible: {response.status_code}",
            )

        try:
            models = response.json().get("data", [])
        except ValueError:
            models = []
        return {
            "status": "connected",
            "provider": config.provider.value,
            "base_url": config.base_url,
            "models": models,
        }

    async def test_connection(self) -> Dict[str, Any]:
        """Try the provider's known endpoints in order and report the first that answers"""
        config = self.resolve_config()
        base = config.base_url.rstrip("/")
        headers = build_headers(config)
        last_error = None
        last_status = None

        async with self._client(settings.AI_CONNECTION_TEST_TIMEOUT) as client:
            for method, path in CONNECTION_PROBES[config.provider]:
                url = f"{base}{path}"
                try:
                    if method == "GET":
                        response = await client.get(url, headers=headers)
                    else:
                        response = await client.post(
                            url,
                            headers=headers,
                            json={
                                "model": config.default_model,
                                "messages": [{"role": "user", "content": "test"}],
                                "max_tokens": 1,
                            },
                        )
                except httpx.TimeoutException:
                    last_error = "timeout"
                    logger.debug(f"Probe {method} {url} timed out")
                    continue
                except httpx.HTTPError as e:
                    last_error = str(e) or type(e).__name__
                    logger.debug(f"Probe {method} {url} failed: {last_error}")
                    continue

                last_status = response.status_code
                if response.status_code != 200:
                    last_error = f"{method} {path} returned {response.status_code}"
                    continue

                models_count = None
                if method == "GET":
                    try:
                        models_count = len(response.json().get("data", []))
                    except ValueError:
                        models_count = None

                logger.info(f"Connection to {config.name} works via {path}")
                return {
                    "success": True,
                    "message": f"Connected to {config.name}",
                    "endpoint": path,
                    "status_code": response.status_code,
                    "models_count": models_count,
                }

        logger.warning(f"Connection test to {config.name} failed: {last_error}")
        return {
            "success": False,
            "message": f"Could not connect to {config.name}: {last_error}",
            "endpoint": None,
            "status_code": last_status,
            "models_count": None,
        }

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    def _cache_key(self, config: ProviderConfig) -> str:
        return f"{config.provider.value}:{config.base_url}"

    async def get_models(self) -> Dict[str, Any]:
        config = self.resolve_config()
        key = self._cache_key(config)

        cached = self.model_cache.get(key)
        if cached is not None:
            logger.debug(f"Returning {len(cached)} cached models for {config.provider.value}")
            return {"success": True, "models": cached, "cached": True}

        provider = config.provider.value
        start_time = time.perf_counter()
        try:
            async with self._client(settings.AI_MODELS_TIMEOUT) as client:
                response = await client.get(models_url(config), headers=build_headers(config))
        except httpx.TimeoutException:
            record_ai_request(provider, "models", "timeout", time.perf_counter() - start_time)
            raise HTTPException(
                status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                detail="Timed out fetching models",
            )
        except httpx.HTTPError as e:
            record_ai_request(
                provider, "models", "network_error", time.perf_counter() - start_time
            )
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Failed to fetch models: {str(e)}",
            )

        elapsed = time.perf_counter() - start_time
        if response.status_code != 200:
            record_ai_request(provider, "models", "provider_error", elapsed)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Failed to fetch models: {response.status_code}",
            )

        try:
            raw_models = response.json().get("data", [])
            if not isinstance(raw_models, list) or not all(
                isinstance(m, dict) for m in raw_models
            ):
                raise ValueError("model list entries must be objects")
        except (ValueError, AttributeError):
            record_ai_request(provider, "models", "invalid_response", elapsed)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="AI provider returned an invalid model list",
            )

        record_ai_request(provider, "models", "success", elapsed)
        models = [enrich_model(m) for m in raw_models if m.get("id")]
        self.model_cache.set(key, models)
        logger.info(f"Fetched {len(models)} models from {config.name}")
        return {"success": True, "models": models, "cached": False}

    def clear_cache(self):
        self.model_cache.clear()
        logger.info("AI model cache cleared")

    async def test_model(self, model_id: str, prompt: Optional[str] = None) -> Dict[str, Any]:
        """One short completion against a model; feeds performance statistics"""
        config = self.resolve_config()
        body_messages = [{"role": "user", "content": prompt or DEFAULT_TEST_PROMPT}]
        if config.provider == AIProvider.ANTHROPIC:
            body = {
                "model": model_id,
                "messages": body_messages,
                "max_tokens": 100,
                "temperature": 0.7,
            }
        else:
            body = {
                "model": model_id,
                "messages": body_messages,
                "temperature": 0.7,
                "max_tokens": 100,
                "stream": False,
            }

        start_time = time.perf_counter()
        try:
            data, elapsed_ms = await self._post(
                config, chat_url(config), body, settings.AI_MODEL_TEST_TIMEOUT, "model_test"
            )
            if config.provider == AIProvider.ANTHROPIC:
                text = self._parse_anthropic(data)["message"]["content"]
            else:
                text = self._parse_openai(data)["message"]["content"]
        except HTTPException as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            self.performance_stats.record(model_id, elapsed_ms, success=False)
            logger.warning(f"Model test failed for {model_id}: {e.detail}")
            return {
                "success": False,
                "model_id": model_id,
                "response_time_ms": int(elapsed_ms),
                "quality_score": 0,
                "response_text": None,
                "error": str(e.detail),
            }
        except (KeyError, IndexError, TypeError, ValueError):
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            self.performance_stats.record(model_id, elapsed_ms, success=False)
            return {
                "success": False,
                "model_id": model_id,
                "response_time_ms": int(elapsed_ms),
                "quality_score": 0,
                "response_text": None,
                "error": "Invalid response structure from AI provider",
            }

        self.performance_stats.record(model_id, elapsed_ms, success=True)
        logger.info(f"Model test of {model_id} took {elapsed_ms:.0f}ms")
        return {
            "success": True,
            "model_id": model_id,
            "response_time_ms": int(elapsed_ms),
            "quality_score": assess_response_quality(text),
            "response_text": text,
            "error": None,
        }

    def get_performance_stats(self) -> Dict[str, Any]:
        return self.performance_stats.snapshot()

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def build_context(self, contract_id: str) -> AssistantContext:
        """Assemble assistant context for a contract from the database"""
        contract = self.db.query(Contract).filter(Contract.id == contract_id).first()
        if not contract:
            raise HTTPException(status_code=404, detail="Contract not found")

        templates = (
            self.db.query(Reference)
            .filter(
                Reference.type == ReferenceType.CONTRACT_TYPE,
                Reference.is_active == True,  # noqa: E712
            )
            .order_by(Reference.sort_order, Reference.name)
            .all()
        )
        policies = (
            self.db.query(Reference)
            .filter(
                Reference.type == ReferenceType.COMPANY_POLICY,
                Reference.is_active == True,  # noqa: E712
            )
            .order_by(Reference.sort_order, Reference.name)
            .all()
        )
        counterparty = (
            self.db.query(Reference)
            .filter(
                Reference.type == ReferenceType.COUNTERPARTY,
                Reference.name == contract.counterparty,
            )
            .first()
        )
        approvals = (
            self.db.query(Approval)
            .filter(Approval.contract_id == contract.id)
            .order_by(Approval.created_at.desc())
            .all()
        )

        extra = (counterparty.extra or {}) if counterparty else {}
        return AssistantContext(
            contract_metadata={
                "id": contract.id,
                "number": contract.number,
                "title": contract.title or contract.counterparty,
                "counterparty": contract.counterparty,
                "start_date": contract.start_date.isoformat() if contract.start_date else "",
                "end_date": contract.end_date.isoformat() if contract.end_date else "",
                "status": contract.status.value,
                "responsible": contract.initiator.name if contract.initiator else "",
            },
            counterparty={
                "name": contract.counterparty,
                "inn": extra.get("inn", ""),
                "status": extra.get("status", ""),
                "cooperation_history": extra.get("cooperation_history")
                or extra.get("cooperationHistory", ""),
            },
            company_policies=[
                CompanyPolicy(title=p.name, description=p.description or "") for p in policies
            ],
            templates=[
                ContractTemplate(name=t.name, content=t.value or t.description or "")
                for t in templates
            ],
            contract_text=contract.content or "",
            history=[
                HistoryEntry(
                    author=a.approver.name if a.approver else "Система",
                    date=a.created_at.isoformat() if a.created_at else None,
                    comment=a.comment or "",
                )
                for a in approvals
            ],
        )
