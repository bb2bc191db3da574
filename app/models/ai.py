"""
AI assistant settings and chat history models
"""

import enum

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.models.base import GUID, JSON, BaseModel


class AIProvider(str, enum.Enum):
    LM_STUDIO = "lm-studio"
    Z_AI = "z-ai"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class AISettings(BaseModel):
    """Persisted gateway settings; a single active row is used"""

    __tablename__ = "ai_settings"

    provider = Column(String(50), nullable=False, default=AIProvider.LM_STUDIO.value)
    base_url = Column(String(500), nullable=True)
    api_key = Column(String(500), nullable=True)
    default_model = Column(String(255), nullable=True)
    temperature = Column(Float, default=0.2, nullable=False)
    max_tokens = Column(Integer, default=2000, nullable=False)
    top_p = Column(Float, default=0.9, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<AISettings(provider='{self.provider}')>"


class ChatHistory(BaseModel):
    """Assistant conversation for one user about one contract"""

    __tablename__ = "ai_chat_history"

    contract_id = Column(GUID(), ForeignKey("contracts.id"), nullable=False)
    user_id = Column(GUID(), ForeignKey("users.id"), nullable=False)
    # [{"role": "user"|"assistant", "content": ..., "timestamp": ...}]
    messages = Column(JSON, nullable=False, default=list)

    contract = relationship("Contract")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("contract_id", "user_id", name="uq_chat_history_contract_user"),
    )
