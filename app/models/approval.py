"""
Approval model: one approver's decision for one workflow step
"""

import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship

from app.models.base import GUID, BaseModel


class ApprovalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Approval(BaseModel):
    """Approval request for a single (contract, step, approver)"""

    __tablename__ = "approvals"

    contract_id = Column(GUID(), ForeignKey("contracts.id"), nullable=False, index=True)
    approver_id = Column(GUID(), ForeignKey("users.id"), nullable=False, index=True)
    workflow_step_id = Column(GUID(), ForeignKey("workflow_steps.id"), nullable=True)
    step_number = Column(Integer, nullable=False)
    step_name = Column(String(255), nullable=True)

    status = Column(
        SQLEnum(ApprovalStatus), default=ApprovalStatus.PENDING, nullable=False
    )
    comment = Column(Text, nullable=True)
    due_date = Column(DateTime, nullable=True)
    decided_at = Column(DateTime, nullable=True)

    escalated = Column(Boolean, default=False, nullable=False)
    escalated_at = Column(DateTime, nullable=True)
    reminder_sent_at = Column(DateTime, nullable=True)

    # Set when a delegation rule substituted the original approver
    delegated_from_id = Column(GUID(), ForeignKey("users.id"), nullable=True)
    # Superseded rows stay for history but no longer count toward the route
    is_superseded = Column(Boolean, default=False, nullable=False)

    contract = relationship("Contract", back_populates="approvals")
    approver = relationship("User", foreign_keys=[approver_id])
    delegated_from = relationship("User", foreign_keys=[delegated_from_id])
    workflow_step = relationship("WorkflowStep")

    __table_args__ = (
        Index(
            "uq_approvals_active_step_approver",
            "contract_id",
            "approver_id",
            "step_number",
            unique=True,
            postgresql_where=text("NOT is_superseded"),
            sqlite_where=text("is_superseded = 0"),
        ),
    )

    def __repr__(self):
        return (
            f"<Approval(contract='{self.contract_id}', step={self.step_number}, "
            f"approver='{self.approver_id}', status='{self.status.value}')>"
        )
