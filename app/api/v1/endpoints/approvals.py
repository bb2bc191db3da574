"""
Approval endpoints
Approver inbox, decisions and statistics
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.db.database import get_db
from app.models.approval import ApprovalStatus
from app.models.user import User
from app.schemas.approval import (
    ApprovalCreate,
    ApprovalDecision,
    ApprovalDecisionRequest,
    ApprovalDecisionResponse,
    ApprovalResponse,
    ApprovalStats,
)
from app.schemas.base import PaginatedResponse, Pagination
from app.services.approval_router import ApprovalRouter

router = APIRouter()


def parse_statuses(raw: Optional[str]) -> Optional[List[ApprovalStatus]]:
    """Comma separated status filter, e.g. ``PENDING,APPROVED``"""
    if not raw:
        return None
    statuses = []
    for value in raw.split(","):
        value = value.strip().upper()
        if not value:
            continue
        try:
            statuses.append(ApprovalStatus(value))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown approval status '{value}'",
            )
    return statuses or None


@router.get("", response_model=PaginatedResponse[ApprovalResponse])
async def list_approvals(
    contract_id: Optional[str] = Query(None),
    approver_id: Optional[str] = Query(None, description="Defaults to all approvers"),
    mine: bool = Query(False, description="Only approvals assigned to current user"),
    status_filter: Optional[str] = Query(
        None, alias="status", description="Comma separated statuses"
    ),
    search: Optional[str] = Query(None, description="Contract number, counterparty or approver"),
    include_superseded: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List approvals with filtering and pagination"""
    items, total = await ApprovalRouter(db).list_approvals(
        contract_id=contract_id,
        approver_id=current_user.id if mine else approver_id,
        statuses=parse_statuses(status_filter),
        search=search,
        include_superseded=include_superseded,
        page=page,
        limit=limit,
    )
    return PaginatedResponse[ApprovalResponse](
        items=[ApprovalResponse.model_validate(a) for a in items],
        pagination=Pagination.build(total, page, limit),
    )


@router.post("", response_model=ApprovalResponse, status_code=status.HTTP_201_CREATED)
async def create_approval(
    request: ApprovalCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Manually assign an approver to a contract step"""
    approval = await ApprovalRouter(db).create_approval(request, current_user)
    return ApprovalResponse.model_validate(approval)


@router.put("", response_model=ApprovalDecisionResponse)
async def record_decision_by_body(
    request: ApprovalDecisionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Record a decision; the approval id travels in the body"""
    decision = ApprovalDecision(status=request.status, comment=request.comment)
    return await ApprovalRouter(db).record_decision(
        request.approval_id, decision, current_user
    )


@router.get("/stats", response_model=ApprovalStats)
async def get_approval_stats(
    mine: bool = Query(True, description="Limit statistics to current user's approvals"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Counts by status plus overdue, due-soon and the last week's decisions"""
    return await ApprovalRouter(db).get_stats(
        approver_id=current_user.id if mine else None
    )


@router.get("/contract/{contract_id}", response_model=List[ApprovalResponse])
async def get_contract_approvals(
    contract_id: str,
    include_superseded: bool = Query(False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """All approvals of a contract ordered by step"""
    approvals = await ApprovalRouter(db).get_contract_approvals(
        contract_id, include_superseded=include_superseded
    )
    return [ApprovalResponse.model_validate(a) for a in approvals]


@router.get("/{approval_id}", response_model=ApprovalResponse)
async def get_approval(
    approval_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    approval = await ApprovalRouter(db).get_approval(approval_id)
    return ApprovalResponse.model_validate(approval)


@router.put("/{approval_id}", response_model=ApprovalDecisionResponse)
async def record_decision(
    approval_id: str,
    request: ApprovalDecision,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Approve or reject a pending approval

    Only the assigned approver (or an administrator) may decide. Rejection
    closes the route; approving the last approval of a step activates the
    next step in the same transaction.
    """
    return await ApprovalRouter(db).record_decision(approval_id, request, current_user)
