"""
Workflow Service

Editing of workflow definitions (ordered approval routes), routing rules
and approval delegation.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy import and_
from sqlalchemy.orm import Session

from app.models.approval import Approval
from app.models.contract import Contract
from app.models.user import Role, User
from app.models.workflow import (
    DelegationRule,
    WorkflowDefinition,
    WorkflowRule,
    WorkflowStatus,
    WorkflowStep,
)
from app.schemas.workflow import (
    DelegationRuleCreate,
    DelegationRuleUpdate,
    WorkflowCreate,
    WorkflowRuleCreate,
    WorkflowRuleUpdate,
    WorkflowStepConfig,
    WorkflowUpdate,
)

logger = logging.getLogger(__name__)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class WorkflowService:
    """Service for managing workflow definitions"""

    def __init__(self, db: Session):
        self.db = db

    def _get_workflow(self, workflow_id: str) -> WorkflowDefinition:
        workflow = (
            self.db.query(WorkflowDefinition)
            .filter(WorkflowDefinition.id == workflow_id)
            .first()
        )
        if not workflow:
            raise HTTPException(status_code=404, detail="Workflow not found")
        return workflow

    def _get_role(self, role_id: Optional[str], role_code: Optional[str]) -> Optional[Role]:
        if not role_id and not role_code:
            return None
        query = self.db.query(Role)
        role = (
            query.filter(Role.id == role_id).first()
            if role_id
            else query.filter(Role.code == role_code.upper()).first()
        )
        if not role:
            raise HTTPException(
                status_code=400, detail=f"Role '{role_id or role_code}' not found"
            )
        return role

    def _build_step(self, config: WorkflowStepConfig, order: int) -> WorkflowStep:
        role = self._get_role(config.role_id, config.role_code)

        if config.user_id and not (
            self.db.query(User).filter(User.id == config.user_id).first()
        ):
            raise HTTPException(
                status_code=400, detail=f"User '{config.user_id}' not found"
            )

        parallel_roles = []
        if config.is_parallel:
            parallel_roles = (
                self.db.query(Role).filter(Role.id.in_(config.parallel_role_ids)).all()
            )
            if len(parallel_roles) != len(set(config.parallel_role_ids)):
                raise HTTPException(
                    status_code=400, detail="One or more parallel roles not found"
                )

        return WorkflowStep(
            name=config.name,
            description=config.description,
            type=config.type,
            order=order,
            is_required=config.is_required,
            due_days=config.due_days,
            conditions=config.conditions,
            is_parallel=config.is_parallel,
            role_id=role.id if role else None,
            user_id=config.user_id,
            parallel_roles=parallel_roles,
        )

    def _clear_other_defaults(self, workflow: WorkflowDefinition):
        (
            self.db.query(WorkflowDefinition)
            .filter(
                and_(
                    WorkflowDefinition.id != workflow.id,
                    WorkflowDefinition.is_default == True,  # noqa: E712
                )
            )
            .update({WorkflowDefinition.is_default: False}, synchronize_session=False)
        )

    async def list_workflows(
        self,
        status: Optional[WorkflowStatus] = None,
        is_default: Optional[bool] = None,
    ) -> List[WorkflowDefinition]:
        query = self.db.query(WorkflowDefinition)
        if status:
            query = query.filter(WorkflowDefinition.status == status)
        if is_default is not None:
            query = query.filter(WorkflowDefinition.is_default == is_default)
        return query.order_by(
            WorkflowDefinition.is_default.desc(), WorkflowDefinition.name
        ).all()

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition:
        return self._get_workflow(workflow_id)

    async def create_workflow(self, data: WorkflowCreate, user: User) -> WorkflowDefinition:
        """Create a workflow; the first one ever created becomes the default"""
        try:
            is_first = self.db.query(WorkflowDefinition).count() == 0

            workflow = WorkflowDefinition(
                name=data.name,
                description=data.description,
                status=data.status,
                is_default=data.is_default or is_first,
                version=1,
                conditions=data.conditions,
                created_by=user.id,
                updated_by=user.id,
            )
            workflow.steps = [
                self._build_step(step, order)
                for order, step in enumerate(data.steps, start=1)
            ]
            self.db.add(workflow)
            self.db.flush()

            if workflow.is_default:
                self._clear_other_defaults(workflow)

            self.db.commit()
            self.db.refresh(workflow)
            logger.info(
                f"Workflow '{workflow.name}' created with {len(workflow.steps)} steps"
            )
            return workflow

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            logger.error(f"Error creating workflow: {str(e)}")
            self.db.rollback()
            raise HTTPException(status_code=500, detail="Failed to create workflow")

    async def update_workflow(
        self, workflow_id: str, data: WorkflowUpdate, user: User
    ) -> WorkflowDefinition:
        try:
            workflow = self._get_workflow(workflow_id)
            update_data = data.model_dump(exclude_unset=True, exclude={"steps"})

            for field, value in update_data.items():
                setattr(workflow, field, value)

            if data.steps is not None:
                old_step_ids = [step.id for step in workflow.steps]
                if old_step_ids:
                    # Approvals keep their step number and name, only the link goes
                    self.db.query(Approval).filter(
                        Approval.workflow_step_id.in_(old_step_ids)
                    ).update({Approval.workflow_step_id: None}, synchronize_session=False)

                workflow.steps.clear()
                self.db.flush()
                workflow.steps.extend(
                    self._build_step(step, order)
                    for order, step in enumerate(data.steps, start=1)
                )
                workflow.version = (workflow.version or 1) + 1

            workflow.updated_by = user.id
            self.db.flush()
            if workflow.is_default:
                self._clear_other_defaults(workflow)

            self.db.commit()
            self.db.refresh(workflow)
            logger.info(f"Workflow '{workflow.name}' updated (version {workflow.version})")
            return workflow

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            logger.error(f"Error updating workflow {workflow_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(status_code=500, detail="Failed to update workflow")

    async def delete_workflow(self, workflow_id: str):
        try:
            workflow = self._get_workflow(workflow_id)
            in_use = (
                self.db.query(Contract).filter(Contract.workflow_id == workflow.id).count()
            )
            if in_use:
                raise HTTPException(
                    status_code=400,
                    detail=f"Workflow is used by {in_use} contracts",
                )

            step_ids = [step.id for step in workflow.steps]
            if step_ids:
                self.db.query(Approval).filter(
                    Approval.workflow_step_id.in_(step_ids)
                ).update({Approval.workflow_step_id: None}, synchronize_session=False)
            self.db.delete(workflow)
            self.db.commit()
            logger.info(f"Workflow '{workflow.name}' deleted")

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error deleting workflow {workflow_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(status_code=500, detail="Failed to delete workflow")

    async def set_default(self, workflow_id: str) -> WorkflowDefinition:
        try:
            workflow = self._get_workflow(workflow_id)
            if workflow.status != WorkflowStatus.ACTIVE:
                raise HTTPException(
                    status_code=400, detail="Only an active workflow can be the default"
                )
            workflow.is_default = True
            self.db.flush()
            self._clear_other_defaults(workflow)
            self.db.commit()
            self.db.refresh(workflow)
            return workflow

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error setting default workflow {workflow_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(status_code=500, detail="Failed to set default workflow")


class WorkflowRuleService:
    """Amount/type/department routing rules used when no workflow is attached"""

    def __init__(self, db: Session):
        self.db = db

    def _get_rule(self, rule_id: str) -> WorkflowRule:
        rule = self.db.query(WorkflowRule).filter(WorkflowRule.id == rule_id).first()
        if not rule:
            raise HTTPException(status_code=404, detail="Workflow rule not found")
        return rule

    def _approvers_payload(self, approvers) -> List[dict]:
        payload = []
        for approver in approvers:
            if approver.role_id and not (
                self.db.query(Role).filter(Role.id == approver.role_id).first()
            ):
                raise HTTPException(
                    status_code=400, detail=f"Role '{approver.role_id}' not found"
                )
            if approver.user_id and not (
                self.db.query(User).filter(User.id == approver.user_id).first()
            ):
                raise HTTPException(
                    status_code=400, detail=f"User '{approver.user_id}' not found"
                )
            payload.append(approver.model_dump())
        return payload

    async def list_rules(self, is_active: Optional[bool] = None) -> List[WorkflowRule]:
        query = self.db.query(WorkflowRule)
        if is_active is not None:
            query = query.filter(WorkflowRule.is_active == is_active)
        return query.order_by(WorkflowRule.priority.desc(), WorkflowRule.name).all()

    async def create_rule(self, data: WorkflowRuleCreate) -> WorkflowRule:
        try:
            rule = WorkflowRule(
                **data.model_dump(exclude={"approvers"}),
                approvers=self._approvers_payload(data.approvers),
            )
            self.db.add(rule)
            self.db.commit()
            self.db.refresh(rule)
            return rule

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating workflow rule: {str(e)}")
            self.db.rollback()
            raise HTTPException(status_code=500, detail="Failed to create workflow rule")

    async def update_rule(self, rule_id: str, data: WorkflowRuleUpdate) -> WorkflowRule:
        try:
            rule = self._get_rule(rule_id)
            update_data = data.model_dump(exclude_unset=True, exclude={"approvers"})
            for field, value in update_data.items():
                setattr(rule, field, value)
            if data.approvers is not None:
                if not data.approvers:
                    raise HTTPException(
                        status_code=400, detail="A rule needs at least one approver"
                    )
                rule.approvers = self._approvers_payload(data.approvers)

            self.db.commit()
            self.db.refresh(rule)
            return rule

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating workflow rule {rule_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(status_code=500, detail="Failed to update workflow rule")

    async def delete_rule(self, rule_id: str):
        rule = self._get_rule(rule_id)
        self.db.delete(rule)
        self.db.commit()


class DelegationService:
    """Time-boxed hand-over of one user's approvals to another"""

    def __init__(self, db: Session):
        self.db = db

    def _get_rule(self, rule_id: str) -> DelegationRule:
        rule = self.db.query(DelegationRule).filter(DelegationRule.id == rule_id).first()
        if not rule:
            raise HTTPException(status_code=404, detail="Delegation rule not found")
        return rule

    def _check_user(self, user_id: str):
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise HTTPException(status_code=400, detail=f"User '{user_id}' not found")
        return user

    async def list_rules(
        self, user_id: Optional[str] = None, is_active: Optional[bool] = None
    ) -> List[DelegationRule]:
        query = self.db.query(DelegationRule)
        if user_id:
            query = query.filter(DelegationRule.from_user_id == user_id)
        if is_active is not None:
            query = query.filter(DelegationRule.is_active == is_active)
        return query.order_by(DelegationRule.start_date.desc()).all()

    async def create_rule(self, data: DelegationRuleCreate, actor: User) -> DelegationRule:
        if data.from_user_id != actor.id and not actor.is_admin:
            raise HTTPException(
                status_code=403, detail="You can only delegate your own approvals"
            )
        self._check_user(data.from_user_id)
        delegate = self._check_user(data.to_user_id)
        if not delegate.is_active:
            raise HTTPException(status_code=400, detail="Delegate is not active")

        try:
            rule = DelegationRule(
                from_user_id=data.from_user_id,
                to_user_id=data.to_user_id,
                start_date=to_naive_utc(data.start_date),
                end_date=to_naive_utc(data.end_date),
                reason=data.reason,
                is_active=data.is_active,
            )
            self.db.add(rule)
            self.db.commit()
            self.db.refresh(rule)
            logger.info(
                f"Delegation {rule.from_user_id} -> {rule.to_user_id} "
                f"from {rule.start_date} to {rule.end_date}"
            )
            return rule

        except Exception as e:
            logger.error(f"Error creating delegation rule: {str(e)}")
            self.db.rollback()
            raise HTTPException(status_code=500, detail="Failed to create delegation rule")

    async def update_rule(
        self, rule_id: str, data: DelegationRuleUpdate, actor: User
    ) -> DelegationRule:
        rule = self._get_rule(rule_id)
        if rule.from_user_id != actor.id and not actor.is_admin:
            raise HTTPException(status_code=403, detail="Not your delegation rule")

        update_data = data.model_dump(exclude_unset=True)
        if update_data.get("to_user_id"):
            if update_data["to_user_id"] == rule.from_user_id:
                raise HTTPException(
                    status_code=400, detail="A user cannot delegate to themselves"
                )
            self._check_user(update_data["to_user_id"])
        for key in ("start_date", "end_date"):
            if key in update_data:
                update_data[key] = to_naive_utc(update_data[key])

        start_date = update_data.get("start_date", rule.start_date)
        end_date = update_data.get("end_date", rule.end_date)
        if end_date <= start_date:
            raise HTTPException(
                status_code=400, detail="end_date must be after start_date"
            )

        for field, value in update_data.items():
            setattr(rule, field, value)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    async def delete_rule(self, rule_id: str, actor: User):
        rule = self._get_rule(rule_id)
        if rule.from_user_id != actor.id and not actor.is_admin:
            raise HTTPException(status_code=403, detail="Not your delegation rule")
        self.db.delete(rule)
        self.db.commit()
