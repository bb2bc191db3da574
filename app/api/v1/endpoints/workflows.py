"""
Workflow endpoints
Approval route definitions, routing rules and delegations
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require_admin
from app.db.database import get_db
from app.models.user import User
from app.models.workflow import WorkflowStatus
from app.schemas.base import MessageResponse
from app.schemas.workflow import (
    DelegationRuleCreate,
    DelegationRuleResponse,
    DelegationRuleUpdate,
    WorkflowCreate,
    WorkflowResponse,
    WorkflowRuleCreate,
    WorkflowRuleResponse,
    WorkflowRuleUpdate,
    WorkflowUpdate,
)
from app.services.workflow_service import (
    DelegationService,
    WorkflowRuleService,
    WorkflowService,
)

router = APIRouter()
rules_router = APIRouter()
delegation_router = APIRouter()


@router.get("", response_model=List[WorkflowResponse])
async def list_workflows(
    status_filter: Optional[WorkflowStatus] = Query(
        None, alias="status", description="Filter by workflow status"
    ),
    is_default: Optional[bool] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List workflow definitions, default first"""
    workflows = await WorkflowService(db).list_workflows(
        status=status_filter, is_default=is_default
    )
    return [WorkflowResponse.model_validate(w) for w in workflows]


@router.post("", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    request: WorkflowCreate,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    """
    Create a workflow definition

    Steps are ordered by their position in the request. The first workflow
    ever created becomes the default one.
    """
    workflow = await WorkflowService(db).create_workflow(request, current_user)
    return WorkflowResponse.model_validate(workflow)


@router.get("/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow(
    workflow_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    workflow = await WorkflowService(db).get_workflow(workflow_id)
    return WorkflowResponse.model_validate(workflow)


@router.put("/{workflow_id}", response_model=WorkflowResponse)
async def update_workflow(
    workflow_id: str,
    request: WorkflowUpdate,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    """Update a workflow; a steps list replaces all steps and bumps the version"""
    workflow = await WorkflowService(db).update_workflow(workflow_id, request, current_user)
    return WorkflowResponse.model_validate(workflow)


@router.delete("/{workflow_id}", response_model=MessageResponse)
async def delete_workflow(
    workflow_id: str,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    await WorkflowService(db).delete_workflow(workflow_id)
    return MessageResponse(message="Workflow deleted")


@router.post("/{workflow_id}/default", response_model=WorkflowResponse)
async def set_default_workflow(
    workflow_id: str,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    """Make an active workflow the default route"""
    workflow = await WorkflowService(db).set_default(workflow_id)
    return WorkflowResponse.model_validate(workflow)


@rules_router.get("", response_model=List[WorkflowRuleResponse])
async def list_workflow_rules(
    is_active: Optional[bool] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rules = await WorkflowRuleService(db).list_rules(is_active=is_active)
    return [WorkflowRuleResponse.model_validate(r) for r in rules]


@rules_router.post(
    "", response_model=WorkflowRuleResponse, status_code=status.HTTP_201_CREATED
)
async def create_workflow_rule(
    request: WorkflowRuleCreate,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    rule = await WorkflowRuleService(db).create_rule(request)
    return WorkflowRuleResponse.model_validate(rule)


@rules_router.put("/{rule_id}", response_model=WorkflowRuleResponse)
async def update_workflow_rule(
    rule_id: str,
    request: WorkflowRuleUpdate,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    rule = await WorkflowRuleService(db).update_rule(rule_id, request)
    return WorkflowRuleResponse.model_validate(rule)


@rules_router.delete("/{rule_id}", response_model=MessageResponse)
async def delete_workflow_rule(
    rule_id: str,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    await WorkflowRuleService(db).delete_rule(rule_id)
    return MessageResponse(message="Workflow rule deleted")


@delegation_router.get("", response_model=List[DelegationRuleResponse])
async def list_delegation_rules(
    user_id: Optional[str] = Query(None, description="Delegating user"),
    is_active: Optional[bool] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List delegations; non-administrators only see their own"""
    if not current_user.is_admin:
        user_id = current_user.id
    rules = await DelegationService(db).list_rules(user_id=user_id, is_active=is_active)
    return [DelegationRuleResponse.model_validate(r) for r in rules]


@delegation_router.post(
    "", response_model=DelegationRuleResponse, status_code=status.HTTP_201_CREATED
)
async def create_delegation_rule(
    request: DelegationRuleCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Hand over approvals to another user for a period of time"""
    rule = await DelegationService(db).create_rule(request, current_user)
    return DelegationRuleResponse.model_validate(rule)


@delegation_router.put("/{rule_id}", response_model=DelegationRuleResponse)
async def update_delegation_rule(
    rule_id: str,
    request: DelegationRuleUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rule = await DelegationService(db).update_rule(rule_id, request, current_user)
    return DelegationRuleResponse.model_validate(rule)


@delegation_router.delete("/{rule_id}", response_model=MessageResponse)
async def delete_delegation_rule(
    rule_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    await DelegationService(db).delete_rule(rule_id, current_user)
    return MessageResponse(message="Delegation rule deleted")
