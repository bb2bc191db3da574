"""
Workflow and Routing Models
Approval route templates, amount/type routing rules and approver delegation
"""

import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship

from app.db.database import Base
from app.models.base import GUID, JSON, AuditMixin, BaseModel


class WorkflowStatus(str, enum.Enum):
    """Lifecycle of a workflow definition"""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DRAFT = "DRAFT"


class WorkflowStepType(str, enum.Enum):
    """What a step does when the route reaches it"""

    APPROVAL = "APPROVAL"
    REVIEW = "REVIEW"
    NOTIFICATION = "NOTIFICATION"
    CONDITION = "CONDITION"


# Step types that produce Approval rows
DECISION_STEP_TYPES = (WorkflowStepType.APPROVAL, WorkflowStepType.REVIEW)


workflow_step_roles = Table(
    "workflow_step_roles",
    Base.metadata,
    Column("step_id", GUID(), ForeignKey("workflow_steps.id"), primary_key=True),
    Column("role_id", GUID(), ForeignKey("roles.id"), primary_key=True),
)


class WorkflowDefinition(BaseModel, AuditMixin):
    """Ordered template of approval steps applied to contracts"""

    __tablename__ = "workflow_definitions"

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(
        SQLEnum(WorkflowStatus), default=WorkflowStatus.ACTIVE, nullable=False
    )
    is_default = Column(Boolean, default=False, nullable=False)
    version = Column(Integer, default=1, nullable=False)
    # {"minAmount": ..., "maxAmount": ..., "contractType": ...}
    conditions = Column(JSON, nullable=True)

    steps = relationship(
        "WorkflowStep",
        back_populates="workflow",
        cascade="all, delete-orphan",
        order_by="WorkflowStep.order",
    )
    contracts = relationship("Contract", back_populates="workflow")

    def __repr__(self):
        return f"<WorkflowDefinition(name='{self.name}', status='{self.status.value}')>"


class WorkflowStep(BaseModel):
    """
    One stage of a workflow.

    Approvers come from user_id, else role_id, else (when is_parallel) the
    union of users holding any of parallel_roles.
    """

    __tablename__ = "workflow_steps"

    workflow_id = Column(
        GUID(), ForeignKey("workflow_definitions.id"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(
        SQLEnum(WorkflowStepType), default=WorkflowStepType.APPROVAL, nullable=False
    )
    order = Column(Integer, nullable=False)
    is_required = Column(Boolean, default=True, nullable=False)
    due_days = Column(Integer, nullable=True)
    conditions = Column(JSON, nullable=True)
    is_parallel = Column(Boolean, default=False, nullable=False)

    role_id = Column(GUID(), ForeignKey("roles.id"), nullable=True)
    user_id = Column(GUID(), ForeignKey("users.id"), nullable=True)

    workflow = relationship("WorkflowDefinition", back_populates="steps")
    role = relationship("Role")
    user = relationship("User")
    parallel_roles = relationship("Role", secondary=workflow_step_roles)

    def __repr__(self):
        return f"<WorkflowStep(order={self.order}, name='{self.name}')>"

    @property
    def parallel_role_ids(self):
        return [role.id for role in self.parallel_roles]


class WorkflowRule(BaseModel):
    """
    Routing rule used by auto-assignment when a contract has no workflow.

    approvers is a list of {"roleId"|"userId", "duration", "required"}.
    """

    __tablename__ = "workflow_rules"

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    min_amount = Column(Numeric(18, 2), nullable=True)
    contract_type = Column(String(100), nullable=True)
    department = Column(String(100), nullable=True)
    risk_level = Column(String(50), nullable=True)
    approvers = Column(JSON, nullable=False)
    is_parallel = Column(Boolean, default=False, nullable=False)
    auto_assign = Column(Boolean, default=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    priority = Column(Integer, default=0, nullable=False)

    def __repr__(self):
        return f"<WorkflowRule(name='{self.name}')>"


class DelegationRule(BaseModel):
    """Time-boxed substitution of one approver for another"""

    __tablename__ = "delegation_rules"

    from_user_id = Column(GUID(), ForeignKey("users.id"), nullable=False, index=True)
    to_user_id = Column(GUID(), ForeignKey("users.id"), nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    reason = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    from_user = relationship("User", foreign_keys=[from_user_id])
    to_user = relationship("User", foreign_keys=[to_user_id])

    def __repr__(self):
        return f"<DelegationRule(from='{self.from_user_id}', to='{self.to_user_id}')>"
