"""
Approval schemas
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.approval import ApprovalStatus
from app.schemas.base import ORMResponse


class ApprovalResponse(ORMResponse):
    contract_id: str
    approver_id: str
    workflow_step_id: Optional[str] = None
    step_number: int
    step_name: Optional[str] = None
    status: ApprovalStatus
    comment: Optional[str] = None
    due_date: Optional[datetime] = None
    decided_at: Optional[datetime] = None
    escalated: bool
    delegated_from_id: Optional[str] = None
    is_superseded: bool


class ApprovalCreate(BaseModel):
    """Manual approval assignment outside of a workflow"""

    contract_id: str
    approver_id: str
    step_number: int = Field(1, ge=1)
    due_date: Optional[datetime] = None
    comment: Optional[str] = None


class ApprovalDecision(BaseModel):
    status: ApprovalStatus
    comment: Optional[str] = Field(None, max_length=4000)

    @field_validator("status")
    @classmethod
    def must_be_terminal(cls, v):
        if v == ApprovalStatus.PENDING:
            raise ValueError("Decision status must be APPROVED or REJECTED")
        return v


class ApprovalDecisionRequest(ApprovalDecision):
    approval_id: str


class ApprovalDecisionResponse(BaseModel):
    approval: ApprovalResponse
    contract_status: str
    next_step_number: Optional[int] = None
    approvals_created: int = 0


class AutoAssignResponse(BaseModel):
    contract_id: str
    step_number: Optional[int] = None
    approvals_created: int
    approvals: List[ApprovalResponse]


class StepProgress(BaseModel):
    step_number: int
    name: Optional[str] = None
    is_active: bool
    is_complete: bool
    escalated: bool
    approvals: List[ApprovalResponse]


class ApprovalProgressResponse(BaseModel):
    contract_id: str
    contract_status: str
    current_step: Optional[int] = None
    steps: List[StepProgress]


class ApprovalActivity(BaseModel):
    id: str
    contract_id: str
    contract_number: Optional[str] = None
    approver_id: str
    status: ApprovalStatus
    decided_at: Optional[datetime] = None


class ApprovalStats(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    overdue: int
    due_soon: int
    recent_activity: List[ApprovalActivity]
