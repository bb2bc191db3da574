"""
Unit tests for the Approval Router
Step activation, decisions, parallel steps, delegation and rule-based routes
"""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
import pytest_asyncio
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError

from app.models.approval import Approval, ApprovalStatus
from app.models.contract import ContractHistory, ContractStatus
from app.models.notification import Notification, NotificationType
from app.models.user import RoleCode
from app.models.workflow import (
    DelegationRule,
    WorkflowDefinition,
    WorkflowRule,
    WorkflowStatus,
    WorkflowStep,
    WorkflowStepType,
)
from app.schemas.approval import ApprovalCreate, ApprovalDecision
from app.services.approval_router import ApprovalRouter, conditions_match

APPROVE = ApprovalDecision(status=ApprovalStatus.APPROVED, comment="OK")
REJECT = ApprovalDecision(status=ApprovalStatus.REJECTED, comment="Не согласовано")


def active_approvals(db, contract_id, step_number=None):
    db.expire_all()
    query = db.query(Approval).filter(
        Approval.contract_id == contract_id,
        Approval.is_superseded == False,  # noqa: E712
    )
    if step_number is not None:
        query = query.filter(Approval.step_number == step_number)
    return query.all()


class TestConditions:
    """Workflow and step conditions"""

    def test_empty_conditions_match(self, make_contract):
        assert conditions_match(None, make_contract())
        assert conditions_match({}, make_contract())

    def test_amount_bounds(self, make_contract):
        contract = make_contract(amount="500000")
        assert conditions_match({"minAmount": 500000}, contract)
        assert not conditions_match({"minAmount": 500001}, contract)
        assert conditions_match({"max_amount": "500000"}, contract)
        assert not conditions_match({"maxAmount": 100000}, contract)

    def test_contract_type(self, make_contract):
        contract = make_contract(type="SUPPLY")
        assert conditions_match({"contractType": "SUPPLY"}, contract)
        assert not conditions_match({"contract_type": "LEASE"}, contract)


class TestStartApproval:
    """Starting the approval process"""

    @pytest.mark.asyncio
    async def test_first_step_only(
        self, db_session, make_contract, standard_workflow, manager_user, lawyer_user, director_user
    ):
        """A 500 000 contract on the three-step route gets one approval for step 1"""
        contract = make_contract(amount="500000", workflow=standard_workflow)
        before = datetime.utcnow()

        result = await ApprovalRouter(db_session).start_approval_process(
            contract.id, actor=contract.initiator
        )

        assert result["step_number"] == 1
        assert result["approvals_created"] == 1
        assert result["workflow_id"] == standard_workflow.id

        approvals = active_approvals(db_session, contract.id)
        assert len(approvals) == 1
        approval = approvals[0]
        assert approval.step_number == 1
        assert approval.status == ApprovalStatus.PENDING
        assert approval.approver_id == manager_user.id
        expected_due = before + timedelta(days=3)
        assert abs((approval.due_date - expected_due).total_seconds()) < 60

        db_session.refresh(contract)
        assert contract.status == ContractStatus.IN_REVIEW

    @pytest.mark.asyncio
    async def test_approver_is_notified_in_same_transaction(
        self, db_session, make_contract, standard_workflow, manager_user
    ):
        contract = make_contract(workflow=standard_workflow)
        await ApprovalRouter(db_session).start_approval_process(contract.id)

        notifications = (
            db_session.query(Notification)
            .filter(
                Notification.user_id == manager_user.id,
                Notification.type == NotificationType.APPROVAL_REQUESTED,
            )
            .all()
        )
        assert len(notifications) == 1
        assert notifications[0].contract_id == contract.id

    @pytest.mark.asyncio
    async def test_default_workflow_used_without_explicit_one(
        self, db_session, make_contract, standard_workflow, manager_user
    ):
        contract = make_contract()
        result = await ApprovalRouter(db_session).start_approval_process(contract.id)

        assert result["workflow_id"] == standard_workflow.id
        db_session.refresh(contract)
        assert contract.workflow_id == standard_workflow.id

    @pytest.mark.asyncio
    async def test_not_draft(self, db_session, make_contract, standard_workflow, manager_user):
        contract = make_contract(workflow=standard_workflow, status=ContractStatus.APPROVED)

        with pytest.raises(HTTPException) as exc_info:
            await ApprovalRouter(db_session).start_approval_process(contract.id)

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_contract_id(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            await ApprovalRouter(db_session).start_approval_process("")

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_required_step_without_approvers(
        self, db_session, make_contract, standard_workflow
    ):
        """Nobody holds the manager role: nothing is written, contract stays DRAFT"""
        contract = make_contract(workflow=standard_workflow)

        with pytest.raises(HTTPException) as exc_info:
            await ApprovalRouter(db_session).start_approval_process(contract.id)

        assert exc_info.value.status_code == 400
        db_session.refresh(contract)
        assert contract.status == ContractStatus.DRAFT
        assert active_approvals(db_session, contract.id) == []

    @pytest.mark.asyncio
    async def test_step_conditions_skip_step(
        self, db_session, roles, make_contract, lawyer_user, manager_user
    ):
        workflow = WorkflowDefinition(name="Conditional", status=WorkflowStatus.ACTIVE)
        workflow.steps = [
            WorkflowStep(
                name="Only for large contracts",
                type=WorkflowStepType.APPROVAL,
                order=1,
                role_id=roles[RoleCode.INITIATOR_MANAGER.value].id,
                due_days=1,
                conditions={"minAmount": 1000000},
            ),
            WorkflowStep(
                name="Legal",
                type=WorkflowStepType.APPROVAL,
                order=2,
                role_id=roles[RoleCode.CHIEF_LAWYER.value].id,
                due_days=2,
            ),
        ]
        db_session.add(workflow)
        db_session.commit()
        contract = make_contract(amount="500000", workflow=workflow)

        result = await ApprovalRouter(db_session).start_approval_process(contract.id)

        assert result["step_number"] == 2
        approvals = active_approvals(db_session, contract.id)
        assert [a.approver_id for a in approvals] == [lawyer_user.id]


class TestRecordDecision:
    """Approve and reject decisions"""

    @pytest_asyncio.fixture
    async def started(self, db_session, make_contract, standard_workflow, manager_user, lawyer_user, director_user):
        contract = make_contract(amount="500000", workflow=standard_workflow)
        await ApprovalRouter(db_session).start_approval_process(contract.id)
        approval = active_approvals(db_session, contract.id)[0]
        return contract, approval

    @pytest.mark.asyncio
    async def test_approve_activates_next_step_once(
        self, db_session, started, manager_user, lawyer_user
    ):
        contract, approval = started
        router = ApprovalRouter(db_session)

        result = await router.record_decision(approval.id, APPROVE, manager_user)

        assert result["contract_status"] == ContractStatus.IN_REVIEW.value
        assert result["next_step_number"] == 2
        assert result["approvals_created"] == 1

        # Auto-assign after the decision must not duplicate step 2
        assigned = await router.auto_assign_approvers(contract.id)
        assert assigned["approvals_created"] == 0
        assert assigned["step_number"] == 2
        assigned = await router.auto_assign_approvers(contract.id)
        assert assigned["approvals_created"] == 0

        step_two = active_approvals(db_session, contract.id, step_number=2)
        assert len(step_two) == 1
        assert step_two[0].approver_id == lawyer_user.id
        assert step_two[0].status == ApprovalStatus.PENDING

    @pytest.mark.asyncio
    async def test_full_route_approves_contract(
        self, db_session, started, manager_user, lawyer_user, director_user
    ):
        contract, approval = started
        router = ApprovalRouter(db_session)

        await router.record_decision(approval.id, APPROVE, manager_user)
        step_two = active_approvals(db_session, contract.id, step_number=2)[0]
        await router.record_decision(step_two.id, APPROVE, lawyer_user)
        step_three = active_approvals(db_session, contract.id, step_number=3)[0]
        result = await router.record_decision(step_three.id, APPROVE, director_user)

        assert result["contract_status"] == ContractStatus.APPROVED.value
        assert result["next_step_number"] is None
        db_session.refresh(contract)
        assert contract.status == ContractStatus.APPROVED

        approved_notice = (
            db_session.query(Notification)
            .filter(
                Notification.user_id == contract.initiator_id,
                Notification.type == NotificationType.APPROVED,
            )
            .count()
        )
        assert approved_notice == 1

    @pytest.mark.asyncio
    async def test_reject_closes_route(self, db_session, started, manager_user):
        contract, approval = started

        result = await ApprovalRouter(db_session).record_decision(
            approval.id, REJECT, manager_user
        )

        assert result["contract_status"] == ContractStatus.REJECTED.value
        assert result["approvals_created"] == 0
        assert active_approvals(db_session, contract.id, step_number=2) == []

        rejected_notice = (
            db_session.query(Notification)
            .filter(
                Notification.user_id == contract.initiator_id,
                Notification.type == NotificationType.REJECTED,
            )
            .one()
        )
        assert "Не согласовано" in rejected_notice.message

        actions = [
            h.action
            for h in db_session.query(ContractHistory)
            .filter(ContractHistory.contract_id == contract.id)
            .all()
        ]
        assert "APPROVAL_REJECTED" in actions
        assert "CONTRACT_REJECTED" in actions

    @pytest.mark.asyncio
    async def test_only_assigned_approver_decides(self, db_session, started, lawyer_user):
        _, approval = started

        with pytest.raises(HTTPException) as exc_info:
            await ApprovalRouter(db_session).record_decision(
                approval.id, APPROVE, lawyer_user
            )

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_administrator_may_decide(self, db_session, started, admin_user):
        _, approval = started

        result = await ApprovalRouter(db_session).record_decision(
            approval.id, APPROVE, admin_user
        )

        assert result["approval"].status == ApprovalStatus.APPROVED

    @pytest.mark.asyncio
    async def test_decision_is_final(self, db_session, started, manager_user):
        _, approval = started
        router = ApprovalRouter(db_session)
        await router.record_decision(approval.id, APPROVE, manager_user)

        with pytest.raises(HTTPException) as exc_info:
            await router.record_decision(approval.id, REJECT, manager_user)

        assert exc_info.value.status_code == 400
        db_session.refresh(approval)
        assert approval.status == ApprovalStatus.APPROVED

    @pytest.mark.asyncio
    async def test_unknown_approval(self, db_session, manager_user):
        with pytest.raises(HTTPException) as exc_info:
            await ApprovalRouter(db_session).record_decision(
                "00000000-0000-0000-0000-000000000000", APPROVE, manager_user
            )

        assert exc_info.value.status_code == 404


class TestParallelAndDelegation:
    """Parallel fan-out and delegated approvals"""

    @pytest.mark.asyncio
    async def test_parallel_step_requires_all(
        self, db_session, roles, make_contract, lawyer_user, director_user
    ):
        workflow = WorkflowDefinition(name="Parallel", status=WorkflowStatus.ACTIVE)
        workflow.steps = [
            WorkflowStep(
                name="Legal and director",
                type=WorkflowStepType.APPROVAL,
                order=1,
                is_parallel=True,
                due_days=2,
                parallel_roles=[
                    roles[RoleCode.CHIEF_LAWYER.value],
                    roles[RoleCode.GENERAL_DIRECTOR.value],
                ],
            )
        ]
        db_session.add(workflow)
        db_session.commit()
        contract = make_contract(workflow=workflow)
        router = ApprovalRouter(db_session)

        result = await router.start_approval_process(contract.id)
        assert result["approvals_created"] == 2

        by_user = {a.approver_id: a for a in active_approvals(db_session, contract.id)}
        first = await router.record_decision(by_user[lawyer_user.id].id, APPROVE, lawyer_user)
        assert first["contract_status"] == ContractStatus.IN_REVIEW.value
        assert first["next_step_number"] is None

        second = await router.record_decision(
            by_user[director_user.id].id, APPROVE, director_user
        )
        assert second["contract_status"] == ContractStatus.APPROVED.value

    @pytest.mark.asyncio
    async def test_active_delegation_reroutes_approval(
        self, db_session, make_user, make_contract, standard_workflow, manager_user
    ):
        deputy = make_user(RoleCode.DEPARTMENT_HEAD, name="Deputy")
        now = datetime.utcnow()
        db_session.add(
            DelegationRule(
                from_user_id=manager_user.id,
                to_user_id=deputy.id,
                start_date=now - timedelta(days=1),
                end_date=now + timedelta(days=7),
                reason="Отпуск",
            )
        )
        db_session.commit()
        contract = make_contract(workflow=standard_workflow)

        await ApprovalRouter(db_session).start_approval_process(contract.id)

        approval = active_approvals(db_session, contract.id)[0]
        assert approval.approver_id == deputy.id
        assert approval.delegated_from_id == manager_user.id

    @pytest.mark.asyncio
    async def test_expired_delegation_is_ignored(
        self, db_session, make_user, make_contract, standard_workflow, manager_user
    ):
        deputy = make_user(RoleCode.DEPARTMENT_HEAD, name="Deputy")
        now = datetime.utcnow()
        db_session.add(
            DelegationRule(
                from_user_id=manager_user.id,
                to_user_id=deputy.id,
                start_date=now - timedelta(days=10),
                end_date=now - timedelta(days=1),
            )
        )
        db_session.commit()
        contract = make_contract(workflow=standard_workflow)

        await ApprovalRouter(db_session).start_approval_process(contract.id)

        approval = active_approvals(db_session, contract.id)[0]
        assert approval.approver_id == manager_user.id
        assert approval.delegated_from_id is None


class TestRuleRouting:
    """Routing by WorkflowRule when no workflow is attached"""

    @pytest.fixture
    def amount_rule(self, db_session, roles):
        rule = WorkflowRule(
            name="Крупные договоры",
            min_amount=100000,
            approvers=[
                {"role_id": roles[RoleCode.CHIEF_LAWYER.value].id, "duration": 2, "required": True},
                {"role_id": roles[RoleCode.GENERAL_DIRECTOR.value].id, "duration": 1, "required": True},
            ],
            is_parallel=False,
            auto_assign=True,
            is_active=True,
        )
        db_session.add(rule)
        db_session.commit()
        return rule

    @pytest.mark.asyncio
    async def test_sequential_rule_route(
        self, db_session, amount_rule, make_contract, lawyer_user, director_user
    ):
        contract = make_contract(amount="250000")
        router = ApprovalRouter(db_session)

        result = await router.auto_assign_approvers(contract.id)

        assert result["step_number"] == 1
        assert result["approvals_created"] == 1
        first = active_approvals(db_session, contract.id)[0]
        assert first.approver_id == lawyer_user.id

        decided = await router.record_decision(first.id, APPROVE, lawyer_user)
        assert decided["next_step_number"] == 2
        second = active_approvals(db_session, contract.id, step_number=2)[0]
        assert second.approver_id == director_user.id

    @pytest.mark.asyncio
    async def test_rule_below_threshold_without_workflow(
        self, db_session, amount_rule, make_contract, lawyer_user
    ):
        contract = make_contract(amount="5000")

        with pytest.raises(HTTPException) as exc_info:
            await ApprovalRouter(db_session).auto_assign_approvers(contract.id)

        assert exc_info.value.status_code == 400


class TestManualAndQueries:
    """Manual assignment, progress and statistics"""

    @pytest.mark.asyncio
    async def test_manual_assignment_rejects_duplicates(
        self, db_session, make_contract, manager_user, test_user
    ):
        contract = make_contract()
        router = ApprovalRouter(db_session)
        data = ApprovalCreate(contract_id=contract.id, approver_id=manager_user.id, step_number=1)

        approval = await router.create_approval(data, test_user)
        assert approval.status == ApprovalStatus.PENDING

        with pytest.raises(HTTPException) as exc_info:
            await router.create_approval(data, test_user)
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_progress_lists_all_steps(
        self, db_session, make_contract, standard_workflow, manager_user, lawyer_user, director_user
    ):
        contract = make_contract(workflow=standard_workflow)
        router = ApprovalRouter(db_session)
        await router.start_approval_process(contract.id)

        progress = await router.get_approval_progress(contract.id)

        assert progress["current_step"] == 1
        assert [s["step_number"] for s in progress["steps"]] == [1, 2, 3]
        assert progress["steps"][0]["is_active"] is True
        assert progress["steps"][1]["approvals"] == []

    @pytest.mark.asyncio
    async def test_stats_count_overdue(
        self, db_session, make_contract, standard_workflow, manager_user
    ):
        contract = make_contract(workflow=standard_workflow)
        router = ApprovalRouter(db_session)
        await router.start_approval_process(contract.id)

        stats = await router.get_stats(
            approver_id=manager_user.id, now=datetime.utcnow() + timedelta(days=4)
        )

        assert stats["total"] == 1
        assert stats["pending"] == 1
        assert stats["overdue"] == 1
        assert stats["due_soon"] == 0


class TestConcurrencyGuard:
    """Two activations of the same step never leave duplicate approvals"""

    def _approval(self, contract, approver, **kwargs):
        return Approval(
            contract_id=contract.id,
            approver_id=approver.id,
            step_number=1,
            status=ApprovalStatus.PENDING,
            **kwargs,
        )

    def test_unique_index_on_active_step_approver(self, db_session, make_contract, manager_user):
        contract = make_contract()
        db_session.add(self._approval(contract, manager_user))
        db_session.commit()

        db_session.add(self._approval(contract, manager_user))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

        # Superseded rows stay for history and do not count
        db_session.add(self._approval(contract, manager_user, is_superseded=True))
        db_session.commit()

        rows = db_session.query(Approval).filter(Approval.contract_id == contract.id).all()
        assert len(rows) == 2
        assert len(active_approvals(db_session, contract.id)) == 1

    @pytest.mark.asyncio
    async def test_losing_activation_gets_conflict(
        self, db_session, make_contract, standard_workflow, manager_user, lawyer_user, director_user
    ):
        contract = make_contract(workflow=standard_workflow)
        router = ApprovalRouter(db_session)
        await router.start_approval_process(contract.id)
        first = active_approvals(db_session, contract.id, step_number=1)[0]
        await router.record_decision(first.id, APPROVE, manager_user)

        # A racing request that still sees step 1 as current and step 2 as empty
        with patch.object(router, "_current_step_number", return_value=1), patch.object(
            router, "_current_step_has_approvals", return_value=False
        ):
            with pytest.raises(HTTPException) as exc_info:
                await router.auto_assign_approvers(contract.id)

        assert exc_info.value.status_code == 409
        step_two = active_approvals(db_session, contract.id, step_number=2)
        assert [a.approver_id for a in step_two] == [lawyer_user.id]
