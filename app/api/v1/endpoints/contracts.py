"""
Contract endpoints
Contract registry, manual status changes and the entry points of the approval route
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.db.database import get_db
from app.models.contract import ContractStatus
from app.models.user import User
from app.schemas.approval import (
    ApprovalProgressResponse,
    ApprovalResponse,
    AutoAssignResponse,
)
from app.schemas.base import MessageResponse, PaginatedResponse, Pagination
from app.schemas.contract import (
    ContractCreate,
    ContractDetailResponse,
    ContractHistoryResponse,
    ContractResponse,
    ContractStatusUpdate,
    ContractUpdate,
    StartApprovalRequest,
    StartApprovalResponse,
)
from app.services.approval_router import ApprovalRouter
from app.services.contract_service import ContractService

router = APIRouter()


@router.get("", response_model=PaginatedResponse[ContractResponse])
async def list_contracts(
    status_filter: Optional[ContractStatus] = Query(
        None, alias="status", description="Filter by contract status"
    ),
    counterparty: Optional[str] = Query(None, description="Counterparty name contains"),
    search: Optional[str] = Query(None, description="Search number, title, counterparty"),
    mine: bool = Query(False, description="Only contracts initiated by current user"),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List contracts with filtering, sorting and pagination"""
    contracts, total = await ContractService(db).list_contracts(
        status_filter=status_filter,
        counterparty=counterparty,
        search=search,
        initiator_id=current_user.id if mine else None,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return PaginatedResponse[ContractResponse](
        items=[ContractResponse.model_validate(c) for c in contracts],
        pagination=Pagination.build(total, page, limit),
    )


@router.post("", response_model=ContractResponse, status_code=status.HTTP_201_CREATED)
async def create_contract(
    request: ContractCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a new contract in DRAFT status

    The current user becomes the initiator; a history entry and a
    CONTRACT_CREATED notification are written with the contract.
    """
    contract = await ContractService(db).create_contract(request, current_user)
    return ContractResponse.model_validate(contract)


@router.post("/start-approval", response_model=StartApprovalResponse)
async def start_approval(
    request: StartApprovalRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Send a DRAFT contract for approval and create its first-step approvals"""
    return await ApprovalRouter(db).start_approval_process(
        request.contract_id, workflow_id=request.workflow_id, actor=current_user
    )


@router.get("/{contract_id}", response_model=ContractDetailResponse)
async def get_contract(
    contract_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a contract with its current (non-superseded) approvals"""
    contract = await ContractService(db).get_contract(contract_id)
    approvals = await ApprovalRouter(db).get_contract_approvals(contract_id)
    return ContractDetailResponse.model_validate(contract).model_copy(
        update={"approvals": [ApprovalResponse.model_validate(a) for a in approvals]}
    )


@router.put("/{contract_id}", response_model=ContractResponse)
async def update_contract(
    contract_id: str,
    request: ContractUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update contract fields; terms can only change while the contract is a draft"""
    contract = await ContractService(db).update_contract(contract_id, request, current_user)
    return ContractResponse.model_validate(contract)


@router.patch("/{contract_id}/status", response_model=ContractResponse)
async def change_contract_status(
    contract_id: str,
    request: ContractStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Change contract status along the allowed transitions"""
    contract = await ContractService(db).change_status(contract_id, request, current_user)
    return ContractResponse.model_validate(contract)


@router.delete("/{contract_id}", response_model=MessageResponse)
async def delete_contract(
    contract_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a DRAFT contract"""
    await ContractService(db).delete_contract(contract_id, current_user)
    return MessageResponse(message="Contract deleted")


@router.get("/{contract_id}/history", response_model=List[ContractHistoryResponse])
async def get_contract_history(
    contract_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Chronological audit trail of a contract"""
    history = await ContractService(db).get_history(contract_id)
    return [ContractHistoryResponse.model_validate(h) for h in history]


@router.post("/{contract_id}/start-approval", response_model=StartApprovalResponse)
async def start_contract_approval(
    contract_id: str,
    workflow_id: Optional[str] = Query(None, description="Override the contract's workflow"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Send a DRAFT contract for approval"""
    return await ApprovalRouter(db).start_approval_process(
        contract_id, workflow_id=workflow_id, actor=current_user
    )


@router.post("/{contract_id}/auto-assign", response_model=AutoAssignResponse)
async def auto_assign_approvers(
    contract_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create the approvals of the contract's active step if they are missing

    Safe to call repeatedly: an already assigned step is never duplicated.
    """
    return await ApprovalRouter(db).auto_assign_approvers(contract_id, actor=current_user)


@router.get("/{contract_id}/progress", response_model=ApprovalProgressResponse)
async def get_approval_progress(
    contract_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Step-by-step approval progress of a contract"""
    return await ApprovalRouter(db).get_approval_progress(contract_id)
