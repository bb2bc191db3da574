"""
AI assistant endpoints
Chat proxy, per-contract chat history and assistant context
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_ai_gateway, get_current_user
from app.db.database import get_db
from app.models.user import User
from app.schemas.ai import (
    AssistantContext,
    ChatHistoryAppend,
    ChatHistoryResponse,
    ChatRequest,
    ChatResponse,
    ProviderStatus,
)
from app.schemas.base import MessageResponse
from app.services.ai_gateway import AIGateway
from app.services.chat_history_service import ChatHistoryService

router = APIRouter()


@router.post("", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    contract_id: Optional[str] = Query(
        None, description="Build the context from this contract when none is sent"
    ),
    current_user: User = Depends(get_current_user),
    gateway: AIGateway = Depends(get_ai_gateway),
):
    """
    Forward a conversation to the configured provider

    When a context is present a system prompt describing the contract,
    counterparty, policies, templates and approval history is prepended.
    """
    if request.context is None and contract_id:
        request = request.model_copy(
            update={"context": gateway.build_context(contract_id)}
        )
    return await gateway.chat(request)


@router.get("/status", response_model=ProviderStatus)
async def get_assistant_status(
    current_user: User = Depends(get_current_user),
    gateway: AIGateway = Depends(get_ai_gateway),
):
    return await gateway.check_status()


@router.get("/context/{contract_id}", response_model=AssistantContext)
async def get_context(
    contract_id: str,
    current_user: User = Depends(get_current_user),
    gateway: AIGateway = Depends(get_ai_gateway),
):
    return gateway.build_context(contract_id)


@router.get("/history", response_model=ChatHistoryResponse)
async def get_chat_history(
    contract_id: str = Query(..., min_length=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return await ChatHistoryService(db).get_history(contract_id, current_user)


@router.post("/history", response_model=ChatHistoryResponse)
async def append_chat_history(
    request: ChatHistoryAppend,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return await ChatHistoryService(db).append_messages(
        request.contract_id, request.messages, current_user
    )


@router.delete("/history", response_model=MessageResponse)
async def clear_chat_history(
    contract_id: str = Query(..., min_length=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    await ChatHistoryService(db).clear_history(contract_id, current_user)
    return MessageResponse(message="Chat history cleared")
