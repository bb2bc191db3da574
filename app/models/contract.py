"""
Contract and contract history models
"""

import enum

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship

from app.models.base import GUID, JSON, BaseModel


class ContractStatus(str, enum.Enum):
    """Contract lifecycle states"""

    DRAFT = "DRAFT"
    IN_REVIEW = "IN_REVIEW"
    APPROVED = "APPROVED"
    SIGNED = "SIGNED"
    ARCHIVED = "ARCHIVED"
    REJECTED = "REJECTED"


# Manual transitions; APPROVED and REJECTED are only reached through approval decisions
CONTRACT_TRANSITIONS = {
    ContractStatus.DRAFT: {ContractStatus.IN_REVIEW, ContractStatus.ARCHIVED},
    ContractStatus.IN_REVIEW: {ContractStatus.ARCHIVED},
    ContractStatus.APPROVED: {ContractStatus.SIGNED, ContractStatus.ARCHIVED},
    ContractStatus.SIGNED: {ContractStatus.ARCHIVED},
    ContractStatus.REJECTED: {ContractStatus.DRAFT, ContractStatus.ARCHIVED},
    ContractStatus.ARCHIVED: set(),
}


class Contract(BaseModel):
    """Contract record moving through the approval lifecycle"""

    __tablename__ = "contracts"

    number = Column(String(100), unique=True, index=True, nullable=False)
    title = Column(String(500), nullable=True)
    counterparty = Column(String(255), nullable=False, index=True)
    amount = Column(Numeric(18, 2), nullable=False)
    type = Column(String(100), nullable=True, index=True)
    department = Column(String(100), nullable=True)
    status = Column(
        SQLEnum(ContractStatus),
        default=ContractStatus.DRAFT,
        nullable=False,
        index=True,
    )
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    due_date = Column(DateTime, nullable=True)
    description = Column(Text, nullable=True)
    content = Column(Text, nullable=True)

    initiator_id = Column(GUID(), ForeignKey("users.id"), nullable=True, index=True)
    workflow_id = Column(
        GUID(), ForeignKey("workflow_definitions.id"), nullable=True, index=True
    )

    initiator = relationship("User", foreign_keys=[initiator_id])
    workflow = relationship("WorkflowDefinition", back_populates="contracts")
    approvals = relationship(
        "Approval",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="Approval.step_number",
    )
    history = relationship(
        "ContractHistory",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="ContractHistory.created_at",
    )
    comments = relationship(
        "Comment",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="Comment.created_at",
    )

    def __repr__(self):
        return f"<Contract(number='{self.number}', status='{self.status.value}')>"

    def can_transition_to(self, target: ContractStatus) -> bool:
        return target in CONTRACT_TRANSITIONS.get(self.status, set())


class ContractHistory(BaseModel):
    """Append-only audit trail of contract actions"""

    __tablename__ = "contract_history"

    contract_id = Column(
        GUID(), ForeignKey("contracts.id"), nullable=False, index=True
    )
    action = Column(String(100), nullable=False)
    details = Column(JSON, nullable=True)
    actor_id = Column(GUID(), ForeignKey("users.id"), nullable=True)

    contract = relationship("Contract", back_populates="history")
    actor = relationship("User")

    def __repr__(self):
        return f"<ContractHistory(contract='{self.contract_id}', action='{self.action}')>"
