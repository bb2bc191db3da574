"""
Workflow Schemas

Pydantic models for workflow definitions, routing rules and delegation
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.workflow import WorkflowStatus, WorkflowStepType
from app.schemas.base import ORMResponse


class WorkflowStepConfig(BaseModel):
    """Configuration for a single workflow step; order follows list position"""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    type: WorkflowStepType = WorkflowStepType.APPROVAL
    is_required: bool = True
    due_days: Optional[int] = Field(None, ge=0)
    conditions: Optional[Dict[str, Any]] = None
    role_id: Optional[str] = None
    role_code: Optional[str] = None
    user_id: Optional[str] = None
    is_parallel: bool = False
    parallel_role_ids: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_parallel(self):
        if self.is_parallel and not self.parallel_role_ids:
            raise ValueError("Parallel steps need at least one parallel role")
        return self


class WorkflowCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    status: WorkflowStatus = WorkflowStatus.ACTIVE
    is_default: bool = False
    conditions: Optional[Dict[str, Any]] = None
    steps: List[WorkflowStepConfig] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Workflow name is required")
        return v


class WorkflowUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[WorkflowStatus] = None
    is_default: Optional[bool] = None
    conditions: Optional[Dict[str, Any]] = None
    # When given, replaces all steps
    steps: Optional[List[WorkflowStepConfig]] = None


class WorkflowStepResponse(ORMResponse):
    name: str
    description: Optional[str] = None
    type: WorkflowStepType
    order: int
    is_required: bool
    due_days: Optional[int] = None
    conditions: Optional[Dict[str, Any]] = None
    role_id: Optional[str] = None
    user_id: Optional[str] = None
    is_parallel: bool
    parallel_role_ids: List[str] = Field(default_factory=list)


class WorkflowResponse(ORMResponse):
    name: str
    description: Optional[str] = None
    status: WorkflowStatus
    is_default: bool
    version: int
    conditions: Optional[Dict[str, Any]] = None
    steps: List[WorkflowStepResponse] = Field(default_factory=list)


class RuleApprover(BaseModel):
    role_id: Optional[str] = None
    user_id: Optional[str] = None
    duration: int = Field(3, ge=0, description="Days allowed for the decision")
    required: bool = True

    @model_validator(mode="after")
    def check_target(self):
        if not self.role_id and not self.user_id:
            raise ValueError("Approver needs role_id or user_id")
        return self


class WorkflowRuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    min_amount: Optional[Decimal] = Field(None, ge=0)
    contract_type: Optional[str] = None
    department: Optional[str] = None
    risk_level: Optional[str] = None
    approvers: List[RuleApprover] = Field(..., min_length=1)
    is_parallel: bool = False
    auto_assign: bool = True
    is_active: bool = True
    priority: int = 0


class WorkflowRuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    min_amount: Optional[Decimal] = Field(None, ge=0)
    contract_type: Optional[str] = None
    department: Optional[str] = None
    risk_level: Optional[str] = None
    approvers: Optional[List[RuleApprover]] = None
    is_parallel: Optional[bool] = None
    auto_assign: Optional[bool] = None
    is_active: Optional[bool] = None
    priority: Optional[int] = None


class WorkflowRuleResponse(ORMResponse):
    name: str
    description: Optional[str] = None
    min_amount: Optional[Decimal] = None
    contract_type: Optional[str] = None
    department: Optional[str] = None
    risk_level: Optional[str] = None
    approvers: List[Dict[str, Any]]
    is_parallel: bool
    auto_assign: bool
    is_active: bool
    priority: int


class DelegationRuleCreate(BaseModel):
    from_user_id: str
    to_user_id: str
    start_date: datetime
    end_date: datetime
    reason: Optional[str] = None
    is_active: bool = True

    @model_validator(mode="after")
    def check_rule(self):
        if self.from_user_id == self.to_user_id:
            raise ValueError("A user cannot delegate to themselves")
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class DelegationRuleUpdate(BaseModel):
    to_user_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    reason: Optional[str] = None
    is_active: Optional[bool] = None


class DelegationRuleResponse(ORMResponse):
    from_user_id: str
    to_user_id: str
    start_date: datetime
    end_date: datetime
    reason: Optional[str] = None
    is_active: bool
