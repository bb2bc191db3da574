"""
AI settings endpoints
Provider configuration, connection probing, model catalogue and statistics
"""

from fastapi import APIRouter, Depends

from app.api.deps import get_ai_gateway, get_current_user, require_admin
from app.models.user import User
from app.schemas.ai import (
    AISettingsResponse,
    AISettingsUpdate,
    ConnectionTestResult,
    ModelsResponse,
    ModelTestRequest,
    ModelTestResult,
    PerformanceStatsResponse,
    ProviderStatus,
)
from app.schemas.base import MessageResponse
from app.services.ai_gateway import AIGateway

router = APIRouter()


@router.get("", response_model=AISettingsResponse)
async def get_ai_settings(
    current_user: User = Depends(get_current_user),
    gateway: AIGateway = Depends(get_ai_gateway),
):
    """Current provider settings; the API key itself is never returned"""
    return gateway.get_settings()


@router.put("", response_model=AISettingsResponse)
async def update_ai_settings(
    request: AISettingsUpdate,
    current_user: User = Depends(require_admin()),
    gateway: AIGateway = Depends(get_ai_gateway),
):
    """Update provider settings; the model cache is cleared"""
    return await gateway.update_settings(request)


@router.get("/status", response_model=ProviderStatus)
async def get_provider_status(
    current_user: User = Depends(get_current_user),
    gateway: AIGateway = Depends(get_ai_gateway),
):
    return await gateway.check_status()


@router.post("/test-connection", response_model=ConnectionTestResult)
async def test_connection(
    current_user: User = Depends(get_current_user),
    gateway: AIGateway = Depends(get_ai_gateway),
):
    """
    Probe the provider's known endpoints one by one

    Returns the first endpoint answering 200. A failed probe is reported
    with ``success: false`` rather than an error status.
    """
    return await gateway.test_connection()


@router.get("/models", response_model=ModelsResponse)
async def get_models(
    current_user: User = Depends(get_current_user),
    gateway: AIGateway = Depends(get_ai_gateway),
):
    """Available models with size, format, family and quantization details"""
    return await gateway.get_models()


@router.post("/test-model", response_model=ModelTestResult)
async def test_model(
    request: ModelTestRequest,
    current_user: User = Depends(get_current_user),
    gateway: AIGateway = Depends(get_ai_gateway),
):
    return await gateway.test_model(request.model_id, request.prompt)


@router.post("/clear-cache", response_model=MessageResponse)
async def clear_model_cache(
    current_user: User = Depends(get_current_user),
    gateway: AIGateway = Depends(get_ai_gateway),
):
    gateway.clear_cache()
    return MessageResponse(message="Model cache cleared")


@router.get("/performance-stats", response_model=PerformanceStatsResponse)
async def get_performance_stats(
    current_user: User = Depends(get_current_user),
    gateway: AIGateway = Depends(get_ai_gateway),
):
    return gateway.get_performance_stats()
