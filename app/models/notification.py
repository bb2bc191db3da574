"""
In-app notification model

Rows are written in the same transaction as the state change that caused
them, so the table doubles as an outbox for clients polling it.
"""

import enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship

from app.models.base import GUID, BaseModel


class NotificationType(str, enum.Enum):
    CONTRACT_CREATED = "CONTRACT_CREATED"
    CONTRACT_UPDATED = "CONTRACT_UPDATED"
    APPROVAL_REQUESTED = "APPROVAL_REQUESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMMENT_ADDED = "COMMENT_ADDED"
    DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
    DEADLINE_APPROACHING = "DEADLINE_APPROACHING"
    ESCALATION = "ESCALATION"
    CONTRACT_SIGNED = "CONTRACT_SIGNED"


class Notification(BaseModel):
    __tablename__ = "notifications"

    user_id = Column(GUID(), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(SQLEnum(NotificationType), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    contract_id = Column(GUID(), ForeignKey("contracts.id"), nullable=True)
    action_url = Column(String(500), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime, nullable=True)

    user = relationship("User")
    contract = relationship("Contract")

    def __repr__(self):
        return f"<Notification(type='{self.type.value}', user='{self.user_id}')>"
