"""
Contract schemas
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from app.models.contract import ContractStatus
from app.schemas.approval import ApprovalResponse
from app.schemas.base import ORMResponse


class ContractCreate(BaseModel):
    number: str = Field(..., min_length=1, max_length=100)
    title: Optional[str] = Field(None, max_length=500)
    counterparty: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., gt=0)
    type: Optional[str] = None
    department: Optional[str] = None
    start_date: date
    end_date: date
    due_date: Optional[datetime] = None
    description: Optional[str] = None
    content: Optional[str] = None
    workflow_id: Optional[str] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ContractUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=500)
    counterparty: Optional[str] = Field(None, min_length=1, max_length=255)
    amount: Optional[Decimal] = Field(None, gt=0)
    type: Optional[str] = None
    department: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    due_date: Optional[datetime] = None
    description: Optional[str] = None
    content: Optional[str] = None
    workflow_id: Optional[str] = None


class ContractStatusUpdate(BaseModel):
    status: ContractStatus
    comment: Optional[str] = None


class ContractResponse(ORMResponse):
    number: str
    title: Optional[str] = None
    counterparty: str
    amount: Decimal
    type: Optional[str] = None
    department: Optional[str] = None
    status: ContractStatus
    start_date: date
    end_date: date
    due_date: Optional[datetime] = None
    description: Optional[str] = None
    initiator_id: Optional[str] = None
    workflow_id: Optional[str] = None


class ContractDetailResponse(ContractResponse):
    content: Optional[str] = None
    approvals: List[ApprovalResponse] = []


class ContractHistoryResponse(ORMResponse):
    contract_id: str
    action: str
    details: Optional[Dict[str, Any]] = None
    actor_id: Optional[str] = None


class StartApprovalRequest(BaseModel):
    contract_id: str = Field(..., min_length=1)
    workflow_id: Optional[str] = Field(
        None, description="Defaults to the contract's workflow, then the default workflow"
    )


class StartApprovalResponse(BaseModel):
    message: str
    contract_id: str
    workflow_id: Optional[str] = None
    step_number: Optional[int] = None
    approvals_created: int
    approvals: List[ApprovalResponse]
