"""
AI assistant gateway schemas
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from app.models.ai import AIProvider


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class CompanyPolicy(BaseModel):
    title: str
    description: Optional[str] = ""


class ContractTemplate(BaseModel):
    name: str
    content: Optional[str] = ""


class HistoryEntry(BaseModel):
    author: str
    date: Optional[str] = None
    comment: Optional[str] = ""


class AssistantContext(BaseModel):
    """Grounding data folded into the system prompt"""

    contract_metadata: Optional[Dict[str, Any]] = None
    counterparty: Optional[Dict[str, Any]] = None
    company_policies: List[CompanyPolicy] = Field(default_factory=list)
    templates: List[ContractTemplate] = Field(default_factory=list)
    contract_text: Optional[str] = None
    history: List[HistoryEntry] = Field(default_factory=list)


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)
    model: Optional[str] = None
    temperature: float = Field(0.2, ge=0, le=2)
    max_tokens: int = Field(2000, ge=1, le=32000)
    top_p: float = Field(0.9, ge=0, le=1)
    context: Optional[AssistantContext] = None
    provider: Optional[AIProvider] = None


class ChatResponse(BaseModel):
    id: Optional[str] = None
    model: Optional[str] = None
    message: ChatMessage
    usage: Optional[Dict[str, Any]] = None
    finish_reason: Optional[str] = None
    provider: AIProvider


class AISettingsUpdate(BaseModel):
    provider: Optional[AIProvider] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    default_model: Optional[str] = None
    temperature: Optional[float] = Field(None, ge=0, le=1)
    max_tokens: Optional[int] = Field(None, ge=100, le=4000)
    top_p: Optional[float] = Field(None, ge=0, le=1)
    is_active: Optional[bool] = None


class AISettingsResponse(BaseModel):
    provider: AIProvider
    base_url: Optional[str] = None
    api_key_set: bool
    default_model: Optional[str] = None
    temperature: float
    max_tokens: int
    top_p: float
    is_active: bool


class ProviderStatus(BaseModel):
    status: str
    provider: AIProvider
    base_url: Optional[str] = None
    models: List[Dict[str, Any]] = Field(default_factory=list)


class ConnectionTestResult(BaseModel):
    success: bool
    message: str
    endpoint: Optional[str] = None
    status_code: Optional[int] = None
    models_count: Optional[int] = None


class ModelInfo(BaseModel):
    id: str
    object: Optional[str] = None
    owned_by: Optional[str] = None
    size: str
    format: str
    family: str
    quantization: str
    description: str


class ModelsResponse(BaseModel):
    success: bool = True
    models: List[ModelInfo]
    cached: bool


class ModelTestRequest(BaseModel):
    model_id: str = Field(..., min_length=1)
    prompt: Optional[str] = None


class ModelTestResult(BaseModel):
    success: bool
    model_id: str
    response_time_ms: int
    quality_score: int
    response_text: Optional[str] = None
    error: Optional[str] = None


class ModelUsage(BaseModel):
    model_id: str
    usage: int


class PerformanceStatsResponse(BaseModel):
    total_requests: int
    avg_response_time_ms: int
    success_rate: int
    requests_last_24h: int
    top_models: List[ModelUsage]
    last_request_time: Optional[datetime] = None


class ChatHistoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1)
    timestamp: Optional[datetime] = None


class ChatHistoryAppend(BaseModel):
    contract_id: str
    messages: List[ChatHistoryMessage] = Field(..., min_length=1)


class ChatHistoryResponse(BaseModel):
    contract_id: str
    user_id: str
    messages: List[Dict[str, Any]]
    updated_at: Optional[datetime] = None
