"""
Approval Router

Turns a workflow definition (or the matching routing rules) into Approval rows
for a contract, one step at a time, and reacts to approve/reject decisions.

Only the active step has approvals. The next step is created inside the same
transaction that completes the previous one, under a row lock on the contract,
and the partial unique index on approvals backs that up if two requests race.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.metrics import record_approval_decision, record_approvals_created
from app.models.approval import Approval, ApprovalStatus
from app.models.contract import Contract, ContractHistory, ContractStatus
from app.models.notification import NotificationType
from app.models.user import User
from app.models.workflow import (
    DECISION_STEP_TYPES,
    DelegationRule,
    WorkflowDefinition,
    WorkflowRule,
    WorkflowStatus,
    WorkflowStep,
    WorkflowStepType,
)
from app.schemas.approval import ApprovalCreate, ApprovalDecision
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


@dataclass
class ApproverTarget:
    """Who a route step is addressed to, before resolution to users"""

    user_id: Optional[str] = None
    role_id: Optional[str] = None
    role_ids: List[str] = field(default_factory=list)
    # Rule approvers pick one user per role; workflow steps fan out to all holders
    single: bool = False
    due_days: Optional[int] = None


@dataclass
class RouteStep:
    number: int
    name: str
    step_type: WorkflowStepType
    is_required: bool = True
    conditions: Optional[Dict[str, Any]] = None
    targets: List[ApproverTarget] = field(default_factory=list)
    workflow_step_id: Optional[str] = None


@dataclass
class ResolvedApprover:
    user: User
    due_days: Optional[int]
    delegated_from: Optional[User] = None


def conditions_match(conditions: Optional[Dict[str, Any]], contract: Contract) -> bool:
    """Evaluate minAmount / maxAmount / contractType conditions against a contract"""
    if not conditions:
        return True

    amount = Decimal(str(contract.amount)) if contract.amount is not None else None

    def _decimal(value) -> Optional[Decimal]:
        try:
            return Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError):
            return None

    min_amount = _decimal(conditions.get("minAmount", conditions.get("min_amount")))
    if min_amount is not None and (amount is None or amount < min_amount):
        return False

    max_amount = _decimal(conditions.get("maxAmount", conditions.get("max_amount")))
    if max_amount is not None and (amount is None or amount > max_amount):
        return False

    contract_type = conditions.get("contractType", conditions.get("contract_type"))
    if contract_type and contract.type != contract_type:
        return False

    return True


class ApprovalRouter:
    """Service that creates and resolves approvals along a contract's route"""

    def __init__(self, db: Session, notifications: Optional[NotificationService] = None):
        self.db = db
        self.notifications = notifications or NotificationService(db)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start_approval_process(
        self,
        contract_id: str,
        workflow_id: Optional[str] = None,
        actor: Optional[User] = None,
    ) -> Dict[str, Any]:
        """Put a DRAFT contract under review and create approvals for its first step"""
        try:
            if not contract_id:
                raise HTTPException(status_code=400, detail="contract_id is required")

            contract = self._lock_contract(contract_id)
            if contract.status != ContractStatus.DRAFT:
                raise HTTPException(
                    status_code=400,
                    detail=f"Approval can only start from DRAFT (current status: {contract.status.value})",
                )

            workflow = self._resolve_workflow(contract, workflow_id)
            if workflow is not None:
                contract.workflow_id = workflow.id
                contract.workflow = workflow

            superseded = self._supersede_approvals(contract, only_pending=False)
            if superseded:
                logger.info(
                    f"Superseded {superseded} approvals from a previous run of contract {contract.id}"
                )

            contract.status = ContractStatus.IN_REVIEW
            now = datetime.utcnow()
            step, created = self._activate_next_step(contract, after_step=0, now=now)
            if step is None:
                raise HTTPException(
                    status_code=400,
                    detail="Route has no approval steps applicable to this contract",
                )

            actor_id = actor.id if actor else None
            self._add_history(
                contract,
                "APPROVAL_PROCESS_STARTED",
                {
                    "workflow_id": workflow.id if workflow else None,
                    "step_number": step.number,
                    "approvals_created": len(created),
                },
                actor_id,
            )
            if contract.initiator_id:
                self.notifications.notify(
                    user_id=contract.initiator_id,
                    notification_type=NotificationType.CONTRACT_UPDATED,
                    title="Approval started",
                    message=f"Contract {contract.number} was sent for approval",
                    contract_id=contract.id,
                )

            self.db.commit()
            for approval in created:
                self.db.refresh(approval)
            record_approvals_created("start", len(created))

            logger.info(
                f"Started approval for contract {contract.number}: "
                f"step {step.number}, {len(created)} approvals"
            )
            return {
                "message": "Approval process started",
                "contract_id": contract.id,
                "workflow_id": workflow.id if workflow else None,
                "step_number": step.number,
                "approvals_created": len(created),
                "approvals": created,
            }

        except HTTPException:
            self.db.rollback()
            raise
        except IntegrityError as e:
            logger.warning(f"Concurrent approval activation for {contract_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=409, detail="Approval step was already activated"
            )
        except Exception as e:
            logger.error(f"Error starting approval for contract {contract_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=500, detail="Failed to start approval process"
            )

    async def record_decision(
        self, approval_id: str, decision: ApprovalDecision, actor: User
    ) -> Dict[str, Any]:
        """Apply an APPROVED/REJECTED decision and advance the route"""
        try:
            approval = self.db.query(Approval).filter(Approval.id == approval_id).first()
            if not approval:
                raise HTTPException(status_code=404, detail="Approval not found")

            contract = self._lock_contract(approval.contract_id)
            # Re-read after taking the lock
            self.db.refresh(approval)

            if approval.approver_id != actor.id and not actor.is_admin:
                raise HTTPException(
                    status_code=403, detail="Only the assigned approver can decide"
                )
            if approval.is_superseded:
                raise HTTPException(
                    status_code=400, detail="Approval is no longer part of the route"
                )
            if approval.status != ApprovalStatus.PENDING:
                raise HTTPException(
                    status_code=400,
                    detail=f"Approval already {approval.status.value.lower()}",
                )
            if decision.status == ApprovalStatus.PENDING:
                raise HTTPException(
                    status_code=400, detail="Decision must be APPROVED or REJECTED"
                )
            if contract.status != ContractStatus.IN_REVIEW:
                raise HTTPException(
                    status_code=400,
                    detail=f"Contract is not under review (status: {contract.status.value})",
                )

            now = datetime.utcnow()
            approval.status = decision.status
            approval.comment = decision.comment
            approval.decided_at = now
            self.db.flush()

            self._add_history(
                contract,
                f"APPROVAL_{decision.status.value}",
                {
                    "approval_id": approval.id,
                    "step_number": approval.step_number,
                    "comment": decision.comment,
                },
                actor.id,
            )

            next_step = None
            created: List[Approval] = []
            if decision.status == ApprovalStatus.REJECTED:
                self._reject_contract(contract, approval, actor)
            elif self._step_complete(contract.id, approval.step_number):
                next_step, created = self._activate_next_step(
                    contract, after_step=approval.step_number, now=now
                )
                if next_step is None:
                    self._complete_contract(contract, actor)
                elif contract.initiator_id:
                    self.notifications.notify(
                        user_id=contract.initiator_id,
                        notification_type=NotificationType.CONTRACT_UPDATED,
                        title="Approval step completed",
                        message=(
                            f"Step {approval.step_number} of contract {contract.number} "
                            f"is approved; step {next_step.number} started"
                        ),
                        contract_id=contract.id,
                    )

            self.db.commit()
            self.db.refresh(approval)
            for item in created:
                self.db.refresh(item)

            record_approval_decision(decision.status.value)
            record_approvals_created("decision", len(created))
            logger.info(
                f"Approval {approval.id} {decision.status.value} by {actor.id}; "
                f"contract {contract.number} is {contract.status.value}"
            )
            return {
                "approval": approval,
                "contract_status": contract.status.value,
                "next_step_number": next_step.number if next_step else None,
                "approvals_created": len(created),
            }

        except HTTPException:
            self.db.rollback()
            raise
        except IntegrityError as e:
            logger.warning(f"Concurrent step activation on approval {approval_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=409, detail="Next approval step was already activated"
            )
        except Exception as e:
            logger.error(f"Error recording decision for approval {approval_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(status_code=500, detail="Failed to record decision")

    async def auto_assign_approvers(
        self, contract_id: str, actor: Optional[User] = None
    ) -> Dict[str, Any]:
        """
        Make sure the contract's active step has its approvals.

        DRAFT contracts are started on their workflow or, without one, on the
        matching routing rules. IN_REVIEW contracts get the next step only when
        every approval of the current step is APPROVED. Calling this again
        never creates duplicates.
        """
        contract = self.db.query(Contract).filter(Contract.id == contract_id).first()
        if not contract:
            raise HTTPException(status_code=404, detail="Contract not found")

        if contract.status == ContractStatus.DRAFT:
            result = await self.start_approval_process(
                contract_id, contract.workflow_id, actor=actor
            )
            return {
                "contract_id": contract_id,
                "step_number": result["step_number"],
                "approvals_created": result["approvals_created"],
                "approvals": result["approvals"],
            }

        try:
            contract = self._lock_contract(contract_id)
            if contract.status != ContractStatus.IN_REVIEW:
                raise HTTPException(
                    status_code=400,
                    detail=f"Contract is not under review (status: {contract.status.value})",
                )

            now = datetime.utcnow()
            current = self._current_step_number(contract.id)
            step = None
            created: List[Approval] = []

            if current is None:
                step, created = self._activate_next_step(contract, after_step=0, now=now)
            elif self._step_complete(contract.id, current):
                step, created = self._activate_next_step(
                    contract, after_step=current, now=now
                )
                if step is None:
                    self._complete_contract(contract, actor)

            if created:
                self._add_history(
                    contract,
                    "APPROVERS_AUTO_ASSIGNED",
                    {"step_number": step.number, "approvals_created": len(created)},
                    actor.id if actor else None,
                )

            self.db.commit()
            for item in created:
                self.db.refresh(item)
            record_approvals_created("auto_assign", len(created))

            active_number = step.number if step else current
            return {
                "contract_id": contract.id,
                "step_number": active_number,
                "approvals_created": len(created),
                "approvals": created,
            }

        except HTTPException:
            self.db.rollback()
            raise
        except IntegrityError as e:
            logger.warning(f"Concurrent auto-assign for {contract_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=409, detail="Approval step was already activated"
            )
        except Exception as e:
            logger.error(f"Error auto-assigning approvers for {contract_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(status_code=500, detail="Failed to assign approvers")

    async def create_approval(self, data: ApprovalCreate, actor: User) -> Approval:
        """Manually add an approver to a contract step"""
        try:
            contract = self._lock_contract(data.contract_id)
            if contract.status not in (ContractStatus.DRAFT, ContractStatus.IN_REVIEW):
                raise HTTPException(
                    status_code=400,
                    detail=f"Cannot add approvers to a {contract.status.value} contract",
                )

            approver = self.db.query(User).filter(User.id == data.approver_id).first()
            if not approver or not approver.is_active:
                raise HTTPException(status_code=404, detail="Approver not found")

            if self._has_active_approval(contract.id, approver.id, data.step_number):
                raise HTTPException(
                    status_code=400,
                    detail="Approver is already assigned to this step",
                )

            approval = Approval(
                contract_id=contract.id,
                approver_id=approver.id,
                step_number=data.step_number,
                step_name="Manual assignment",
                status=ApprovalStatus.PENDING,
                due_date=data.due_date,
                comment=data.comment,
            )
            self.db.add(approval)
            self.notifications.notify(
                user_id=approver.id,
                notification_type=NotificationType.APPROVAL_REQUESTED,
                title="Approval requested",
                message=f"Please review contract {contract.number}",
                contract_id=contract.id,
            )
            self._add_history(
                contract,
                "APPROVER_ADDED",
                {"approver_id": approver.id, "step_number": data.step_number},
                actor.id,
            )
            self.db.commit()
            self.db.refresh(approval)
            record_approvals_created("manual", 1)
            return approval

        except HTTPException:
            self.db.rollback()
            raise
        except IntegrityError:
            self.db.rollback()
            raise HTTPException(
                status_code=400, detail="Approver is already assigned to this step"
            )
        except Exception as e:
            logger.error(f"Error creating approval: {str(e)}")
            self.db.rollback()
            raise HTTPException(status_code=500, detail="Failed to create approval")

    async def get_approval(self, approval_id: str) -> Approval:
        approval = self.db.query(Approval).filter(Approval.id == approval_id).first()
        if not approval:
            raise HTTPException(status_code=404, detail="Approval not found")
        return approval

    async def get_contract_approvals(
        self, contract_id: str, include_superseded: bool = False
    ) -> List[Approval]:
        self._get_contract(contract_id)
        query = self.db.query(Approval).filter(Approval.contract_id == contract_id)
        if not include_superseded:
            query = query.filter(Approval.is_superseded == False)  # noqa: E712
        return query.order_by(Approval.step_number, Approval.created_at).all()

    async def get_approval_progress(self, contract_id: str) -> Dict[str, Any]:
        """Per-step view of the route with the approvals created so far"""
        contract = self._get_contract(contract_id)
        approvals = await self.get_contract_approvals(contract_id)

        by_step: Dict[int, List[Approval]] = {}
        for approval in approvals:
            by_step.setdefault(approval.step_number, []).append(approval)

        names: Dict[int, str] = {}
        try:
            for step in self._build_route(contract):
                if step.step_type in DECISION_STEP_TYPES and conditions_match(
                    step.conditions, contract
                ):
                    names[step.number] = step.name
        except HTTPException:
            # No route could be built (no workflow, no rules); show recorded steps only
            pass

        current = self._current_step_number(contract.id)
        steps = []
        for number in sorted(set(names) | set(by_step)):
            step_approvals = by_step.get(number, [])
            is_complete = bool(step_approvals) and all(
                a.status == ApprovalStatus.APPROVED for a in step_approvals
            )
            steps.append(
                {
                    "step_number": number,
                    "name": names.get(number)
                    or next((a.step_name for a in step_approvals if a.step_name), None),
                    "is_active": number == current
                    and contract.status == ContractStatus.IN_REVIEW
                    and not is_complete,
                    "is_complete": is_complete,
                    "escalated": any(a.escalated for a in step_approvals),
                    "approvals": step_approvals,
                }
            )

        return {
            "contract_id": contract.id,
            "contract_status": contract.status.value,
            "current_step": current,
            "steps": steps,
        }

    async def list_approvals(
        self,
        contract_id: Optional[str] = None,
        approver_id: Optional[str] = None,
        statuses: Optional[List[ApprovalStatus]] = None,
        search: Optional[str] = None,
        include_superseded: bool = False,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Approval], int]:
        query = (
            self.db.query(Approval)
            .join(Contract, Approval.contract_id == Contract.id)
            .join(User, Approval.approver_id == User.id)
        )
        if contract_id:
            query = query.filter(Approval.contract_id == contract_id)
        if approver_id:
            query = query.filter(Approval.approver_id == approver_id)
        if statuses:
            query = query.filter(Approval.status.in_(statuses))
        if not include_superseded:
            query = query.filter(Approval.is_superseded == False)  # noqa: E712
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Contract.number.ilike(pattern),
                    Contract.counterparty.ilike(pattern),
                    User.name.ilike(pattern),
                    User.email.ilike(pattern),
                )
            )

        total = query.count()
        items = (
            query.order_by(Approval.created_at.desc(), Approval.step_number)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    async def get_stats(
        self, approver_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        now = now or datetime.utcnow()
        base = self.db.query(Approval).filter(Approval.is_superseded == False)  # noqa: E712
        if approver_id:
            base = base.filter(Approval.approver_id == approver_id)

        pending = base.filter(Approval.status == ApprovalStatus.PENDING)
        due_soon_limit = now + timedelta(days=settings.APPROVAL_DUE_SOON_DAYS)

        recent = (
            base.filter(
                and_(
                    Approval.decided_at.isnot(None),
                    Approval.decided_at >= now - timedelta(days=7),
                )
            )
            .order_by(Approval.decided_at.desc())
            .limit(10)
            .all()
        )

        return {
            "total": base.count(),
            "pending": pending.count(),
            "approved": base.filter(Approval.status == ApprovalStatus.APPROVED).count(),
            "rejected": base.filter(Approval.status == ApprovalStatus.REJECTED).count(),
            "overdue": pending.filter(
                and_(Approval.due_date.isnot(None), Approval.due_date < now)
            ).count(),
            "due_soon": pending.filter(
                and_(Approval.due_date >= now, Approval.due_date <= due_soon_limit)
            ).count(),
            "recent_activity": [
                {
                    "id": a.id,
                    "contract_id": a.contract_id,
                    "contract_number": a.contract.number if a.contract else None,
                    "approver_id": a.approver_id,
                    "status": a.status,
                    "decided_at": a.decided_at,
                }
                for a in recent
            ],
        }

    def select_workflow_for(self, contract: Contract) -> Optional[WorkflowDefinition]:
        """Most specific ACTIVE workflow whose conditions match, else the default"""
        workflows = (
            self.db.query(WorkflowDefinition)
            .filter(WorkflowDefinition.status == WorkflowStatus.ACTIVE)
            .order_by(WorkflowDefinition.created_at, WorkflowDefinition.name)
            .all()
        )
        specific = [
            w for w in workflows if w.conditions and conditions_match(w.conditions, contract)
        ]
        if specific:
            return specific[0]
        return next((w for w in workflows if w.is_default), None)

    # ------------------------------------------------------------------
    # Route building
    # ------------------------------------------------------------------

    def _resolve_workflow(
        self, contract: Contract, workflow_id: Optional[str]
    ) -> Optional[WorkflowDefinition]:
        workflow_id = workflow_id or contract.workflow_id
        if workflow_id:
            workflow = (
                self.db.query(WorkflowDefinition)
                .filter(WorkflowDefinition.id == workflow_id)
                .first()
            )
            if not workflow:
                raise HTTPException(status_code=404, detail="Workflow not found")
        elif self._matching_rules(contract):
            return None
        else:
            workflow = self.select_workflow_for(contract)
            if not workflow:
                raise HTTPException(
                    status_code=400,
                    detail="No workflow or routing rule applies to this contract",
                )

        if workflow.status != WorkflowStatus.ACTIVE:
            raise HTTPException(
                status_code=400,
                detail=f"Workflow '{workflow.name}' is not active",
            )
        if not workflow.steps:
            raise HTTPException(
                status_code=400, detail=f"Workflow '{workflow.name}' has no steps"
            )
        return workflow

    def _build_route(self, contract: Contract) -> List[RouteStep]:
        if contract.workflow_id:
            workflow = contract.workflow or (
                self.db.query(WorkflowDefinition)
                .filter(WorkflowDefinition.id == contract.workflow_id)
                .first()
            )
            if workflow is None:
                raise HTTPException(status_code=404, detail="Workflow not found")
            return [self._route_step_from_definition(step) for step in workflow.steps]

        rules = self._matching_rules(contract)
        if not rules:
            raise HTTPException(
                status_code=400, detail="No routing rule applies to this contract"
            )
        return self._route_from_rules(rules)

    def _route_step_from_definition(self, step: WorkflowStep) -> RouteStep:
        if step.user_id:
            targets = [ApproverTarget(user_id=step.user_id, due_days=step.due_days)]
        elif step.is_parallel:
            targets = [
                ApproverTarget(role_ids=list(step.parallel_role_ids), due_days=step.due_days)
            ]
        elif step.role_id:
            targets = [ApproverTarget(role_id=step.role_id, due_days=step.due_days)]
        else:
            targets = []

        return RouteStep(
            number=step.order,
            name=step.name,
            step_type=step.type,
            is_required=step.is_required,
            conditions=step.conditions,
            targets=targets,
            workflow_step_id=step.id,
        )

    def _matching_rules(self, contract: Contract) -> List[WorkflowRule]:
        rules = (
            self.db.query(WorkflowRule)
            .filter(
                and_(
                    WorkflowRule.is_active == True,  # noqa: E712
                    WorkflowRule.auto_assign == True,  # noqa: E712
                )
            )
            .order_by(WorkflowRule.priority.desc(), WorkflowRule.created_at)
            .all()
        )
        matching = []
        amount = Decimal(str(contract.amount))
        for rule in rules:
            if rule.min_amount is not None and amount < Decimal(str(rule.min_amount)):
                continue
            if rule.contract_type and rule.contract_type != contract.type:
                continue
            if rule.department and rule.department != contract.department:
                continue
            matching.append(rule)
        return matching

    def _route_from_rules(self, rules: List[WorkflowRule]) -> List[RouteStep]:
        steps: List[RouteStep] = []
        number = 1
        for rule in rules:
            configs = rule.approvers or []
            targets = [
                ApproverTarget(
                    user_id=cfg.get("user_id") or cfg.get("userId"),
                    role_id=cfg.get("role_id") or cfg.get("roleId"),
                    single=True,
                    due_days=cfg.get("duration"),
                )
                for cfg in configs
            ]
            if rule.is_parallel:
                steps.append(
                    RouteStep(
                        number=number,
                        name=rule.name,
                        step_type=WorkflowStepType.APPROVAL,
                        is_required=any(cfg.get("required", True) for cfg in configs),
                        targets=targets,
                    )
                )
                number += 1
                continue

            for index, (cfg, target) in enumerate(zip(configs, targets), start=1):
                steps.append(
                    RouteStep(
                        number=number,
                        name=f"{rule.name} ({index}/{len(configs)})",
                        step_type=WorkflowStepType.APPROVAL,
                        is_required=cfg.get("required", True),
                        targets=[target],
                    )
                )
                number += 1
        return steps

    # ------------------------------------------------------------------
    # Step activation
    # ------------------------------------------------------------------

    def _activate_next_step(
        self, contract: Contract, after_step: int, now: datetime
    ) -> Tuple[Optional[RouteStep], List[Approval]]:
        """
        Create approvals for the first applicable step after `after_step`.

        Notification steps passed on the way notify their audience. Returns
        (None, []) when the route has no further decision step.
        """
        for step in self._build_route(contract):
            if step.number <= after_step:
                continue
            if not conditions_match(step.conditions, contract):
                logger.debug(f"Skipping step {step.number} of {contract.number}: conditions")
                continue

            if step.step_type == WorkflowStepType.NOTIFICATION:
                self._run_notification_step(contract, step, now)
                continue
            if step.step_type not in DECISION_STEP_TYPES:
                continue

            if self._current_step_has_approvals(contract.id, step.number):
                # Already activated by an earlier call
                return step, []

            approvers = self._resolve_approvers(step, now)
            if not approvers:
                if step.is_required:
                    raise HTTPException(
                        status_code=400,
                        detail=f"No active approvers found for required step '{step.name}'",
                    )
                logger.warning(
                    f"Skipping optional step '{step.name}' of {contract.number}: no approvers"
                )
                continue

            created = []
            for resolved in approvers:
                due_date = (
                    now + timedelta(days=resolved.due_days)
                    if resolved.due_days is not None
                    else None
                )
                approval = Approval(
                    contract_id=contract.id,
                    approver_id=resolved.user.id,
                    workflow_step_id=step.workflow_step_id,
                    step_number=step.number,
                    step_name=step.name,
                    status=ApprovalStatus.PENDING,
                    due_date=due_date,
                    delegated_from_id=resolved.delegated_from.id
                    if resolved.delegated_from
                    else None,
                )
                self.db.add(approval)
                created.append(approval)

                message = f"Contract {contract.number} is waiting for your decision ({step.name})"
                if resolved.delegated_from:
                    message += f" on behalf of {resolved.delegated_from.display_name}"
                self.notifications.notify(
                    user_id=resolved.user.id,
                    notification_type=NotificationType.APPROVAL_REQUESTED,
                    title="Approval requested",
                    message=message,
                    contract_id=contract.id,
                )

            self.db.flush()
            return step, created

        return None, []

    def _run_notification_step(self, contract: Contract, step: RouteStep, now: datetime):
        recipients = self._resolve_approvers(step, now)
        for resolved in recipients:
            self.notifications.notify(
                user_id=resolved.user.id,
                notification_type=NotificationType.CONTRACT_UPDATED,
                title=step.name,
                message=f"Contract {contract.number} reached step '{step.name}'",
                contract_id=contract.id,
            )

    def _resolve_approvers(self, step: RouteStep, now: datetime) -> List[ResolvedApprover]:
        resolved: List[ResolvedApprover] = []
        seen = set()

        for target in step.targets:
            for user in self._users_for_target(target):
                delegate = self._active_delegate(user, now)
                final_user = delegate or user
                if final_user.id in seen:
                    continue
                seen.add(final_user.id)
                resolved.append(
                    ResolvedApprover(
                        user=final_user,
                        due_days=target.due_days,
                        delegated_from=user if delegate else None,
                    )
                )
        return resolved

    def _users_for_target(self, target: ApproverTarget) -> List[User]:
        active = User.is_active == True  # noqa: E712
        if target.user_id:
            user = (
                self.db.query(User)
                .filter(and_(User.id == target.user_id, active))
                .first()
            )
            return [user] if user else []

        role_ids = target.role_ids or ([target.role_id] if target.role_id else [])
        if not role_ids:
            return []

        query = (
            self.db.query(User)
            .filter(and_(User.role_id.in_(role_ids), active))
            .order_by(User.created_at, User.email)
        )
        if target.single:
            user = query.first()
            return [user] if user else []
        return query.all()

    def _active_delegate(self, user: User, now: datetime) -> Optional[User]:
        """Single-hop delegation lookup at assignment time"""
        rule = (
            self.db.query(DelegationRule)
            .filter(
                and_(
                    DelegationRule.from_user_id == user.id,
                    DelegationRule.is_active == True,  # noqa: E712
                    DelegationRule.start_date <= now,
                    DelegationRule.end_date >= now,
                )
            )
            .order_by(DelegationRule.start_date.desc())
            .first()
        )
        if not rule or not rule.to_user or not rule.to_user.is_active:
            return None
        logger.info(f"Delegating approvals of {user.id} to {rule.to_user_id}")
        return rule.to_user

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _lock_contract(self, contract_id: str) -> Contract:
        contract = (
            self.db.query(Contract)
            .filter(Contract.id == contract_id)
            .with_for_update()
            .first()
        )
        if not contract:
            raise HTTPException(status_code=404, detail="Contract not found")
        return contract

    def _get_contract(self, contract_id: str) -> Contract:
        contract = self.db.query(Contract).filter(Contract.id == contract_id).first()
        if not contract:
            raise HTTPException(status_code=404, detail="Contract not found")
        return contract

    def _active_approvals_query(self, contract_id: str):
        return self.db.query(Approval).filter(
            and_(
                Approval.contract_id == contract_id,
                Approval.is_superseded == False,  # noqa: E712
            )
        )

    def _current_step_number(self, contract_id: str) -> Optional[int]:
        latest = (
            self._active_approvals_query(contract_id)
            .order_by(Approval.step_number.desc())
            .first()
        )
        return latest.step_number if latest else None

    def _current_step_has_approvals(self, contract_id: str, step_number: int) -> bool:
        return (
            self._active_approvals_query(contract_id)
            .filter(Approval.step_number == step_number)
            .count()
            > 0
        )

    def _step_complete(self, contract_id: str, step_number: int) -> bool:
        approvals = (
            self._active_approvals_query(contract_id)
            .filter(Approval.step_number == step_number)
            .all()
        )
        return bool(approvals) and all(
            a.status == ApprovalStatus.APPROVED for a in approvals
        )

    def _has_active_approval(self, contract_id: str, approver_id: str, step_number: int) -> bool:
        return (
            self._active_approvals_query(contract_id)
            .filter(
                and_(
                    Approval.approver_id == approver_id,
                    Approval.step_number == step_number,
                )
            )
            .count()
            > 0
        )

    def _supersede_approvals(
        self, contract: Contract, only_pending: bool, exclude_id: Optional[str] = None
    ) -> int:
        query = self._active_approvals_query(contract.id)
        if only_pending:
            query = query.filter(Approval.status == ApprovalStatus.PENDING)
        count = 0
        for approval in query.all():
            if approval.id == exclude_id:
                continue
            approval.is_superseded = True
            count += 1
        self.db.flush()
        return count

    def _reject_contract(self, contract: Contract, approval: Approval, actor: User):
        contract.status = ContractStatus.REJECTED
        self._supersede_approvals(contract, only_pending=True, exclude_id=approval.id)
        self._add_history(
            contract,
            "CONTRACT_REJECTED",
            {"approval_id": approval.id, "step_number": approval.step_number},
            actor.id if actor else None,
        )
        if contract.initiator_id:
            self.notifications.notify(
                user_id=contract.initiator_id,
                notification_type=NotificationType.REJECTED,
                title="Contract rejected",
                message=(
                    f"Contract {contract.number} was rejected at step {approval.step_number}"
                    + (f": {approval.comment}" if approval.comment else "")
                ),
                contract_id=contract.id,
            )

    def _complete_contract(self, contract: Contract, actor: Optional[User]):
        contract.status = ContractStatus.APPROVED
        self._add_history(
            contract, "CONTRACT_APPROVED", None, actor.id if actor else None
        )
        if contract.initiator_id:
            self.notifications.notify(
                user_id=contract.initiator_id,
                notification_type=NotificationType.APPROVED,
                title="Contract approved",
                message=f"Contract {contract.number} passed all approval steps",
                contract_id=contract.id,
            )

    def _add_history(
        self,
        contract: Contract,
        action: str,
        details: Optional[Dict[str, Any]],
        actor_id: Optional[str],
    ):
        self.db.add(
            ContractHistory(
                contract_id=contract.id,
                action=action,
                details=details,
                actor_id=actor_id,
            )
        )
