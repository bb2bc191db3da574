"""
Contract Management Service
CRUD, manual status transitions and history for contracts
"""

import logging
from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import asc, desc, or_
from sqlalchemy.orm import Session

from app.models.ai import ChatHistory
from app.models.approval import Approval, ApprovalStatus
from app.models.contract import Contract, ContractHistory, ContractStatus
from app.models.notification import Notification, NotificationType
from app.models.user import User
from app.models.workflow import WorkflowDefinition
from app.schemas.contract import ContractCreate, ContractStatusUpdate, ContractUpdate
from app.services.approval_router import ApprovalRouter
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {
    "created_at": Contract.created_at,
    "updated_at": Contract.updated_at,
    "number": Contract.number,
    "counterparty": Contract.counterparty,
    "amount": Contract.amount,
    "start_date": Contract.start_date,
    "end_date": Contract.end_date,
    "status": Contract.status,
}

# Fields that can only change while the contract is still a draft
DRAFT_ONLY_FIELDS = {
    "counterparty",
    "amount",
    "type",
    "department",
    "start_date",
    "end_date",
    "content",
    "workflow_id",
}


class ContractService:
    """Service for managing contracts"""

    def __init__(self, db: Session):
        self.db = db
        self.notifications = NotificationService(db)

    def _get_contract(self, contract_id: str) -> Contract:
        contract = self.db.query(Contract).filter(Contract.id == contract_id).first()
        if not contract:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Contract not found"
            )
        return contract

    def _check_workflow(self, workflow_id: Optional[str]):
        if workflow_id and not (
            self.db.query(WorkflowDefinition)
            .filter(WorkflowDefinition.id == workflow_id)
            .first()
        ):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Workflow not found"
            )

    def _add_history(self, contract: Contract, action: str, details, actor_id):
        self.db.add(
            ContractHistory(
                contract_id=contract.id, action=action, details=details, actor_id=actor_id
            )
        )

    async def list_contracts(
        self,
        status_filter: Optional[ContractStatus] = None,
        counterparty: Optional[str] = None,
        search: Optional[str] = None,
        initiator_id: Optional[str] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Contract], int]:
        query = self.db.query(Contract)

        if status_filter:
            query = query.filter(Contract.status == status_filter)
        if counterparty:
            query = query.filter(Contract.counterparty.ilike(f"%{counterparty}%"))
        if initiator_id:
            query = query.filter(Contract.initiator_id == initiator_id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Contract.number.ilike(pattern),
                    Contract.title.ilike(pattern),
                    Contract.counterparty.ilike(pattern),
                    Contract.description.ilike(pattern),
                )
            )

        column = SORTABLE_FIELDS.get(sort_by)
        if column is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot sort by '{sort_by}'",
            )
        order = asc if sort_order == "asc" else desc

        total = query.count()
        contracts = (
            query.order_by(order(column), Contract.number)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return contracts, total

    async def get_contract(self, contract_id: str) -> Contract:
        return self._get_contract(contract_id)

    async def create_contract(self, data: ContractCreate, user: User) -> Contract:
        try:
            if self.db.query(Contract).filter(Contract.number == data.number).first():
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Contract number '{data.number}' already exists",
                )
            self._check_workflow(data.workflow_id)

            contract = Contract(
                **data.model_dump(),
                status=ContractStatus.DRAFT,
                initiator_id=user.id,
            )
            self.db.add(contract)
            self.db.flush()

            self._add_history(
                contract,
                "CONTRACT_CREATED",
                {"number": contract.number, "amount": str(contract.amount)},
                user.id,
            )
            self.notifications.notify(
                user_id=user.id,
                notification_type=NotificationType.CONTRACT_CREATED,
                title="Contract created",
                message=f"Contract {contract.number} with {contract.counterparty} was created",
                contract_id=contract.id,
            )

            self.db.commit()
            self.db.refresh(contract)
            logger.info(f"Contract {contract.number} created by {user.id}")
            return contract

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating contract: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to create contract",
            )

    async def update_contract(
        self, contract_id: str, data: ContractUpdate, user: User
    ) -> Contract:
        try:
            contract = self._get_contract(contract_id)
            update_data = data.model_dump(exclude_unset=True)

            locked = DRAFT_ONLY_FIELDS.intersection(update_data)
            if locked and contract.status != ContractStatus.DRAFT:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Fields {sorted(locked)} can only be changed on a DRAFT contract",
                )
            if "workflow_id" in update_data:
                self._check_workflow(update_data["workflow_id"])

            start_date = update_data.get("start_date", contract.start_date)
            end_date = update_data.get("end_date", contract.end_date)
            if end_date < start_date:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="end_date must not be before start_date",
                )

            for field, value in update_data.items():
                setattr(contract, field, value)

            self._add_history(
                contract,
                "CONTRACT_UPDATED",
                {"fields": sorted(update_data)},
                user.id,
            )
            if contract.initiator_id and contract.initiator_id != user.id:
                self.notifications.notify(
                    user_id=contract.initiator_id,
                    notification_type=NotificationType.CONTRACT_UPDATED,
                    title="Contract updated",
                    message=f"Contract {contract.number} was updated by {user.display_name}",
                    contract_id=contract.id,
                )

            self.db.commit()
            self.db.refresh(contract)
            return contract

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating contract {contract_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to update contract",
            )

    async def change_status(
        self, contract_id: str, data: ContractStatusUpdate, user: User
    ) -> Contract:
        """Manual status change limited to the allowed transitions"""
        contract = self._get_contract(contract_id)
        if not contract.can_transition_to(data.status):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot change status from {contract.status.value} to {data.status.value}",
            )

        if data.status == ContractStatus.IN_REVIEW:
            # Review always goes through the router so approvals exist
            await ApprovalRouter(self.db).start_approval_process(
                contract.id, contract.workflow_id, actor=user
            )
            self.db.refresh(contract)
            return contract

        try:
            previous = contract.status
            contract.status = data.status

            if previous == ContractStatus.IN_REVIEW:
                pending = (
                    self.db.query(Approval)
                    .filter(
                        Approval.contract_id == contract.id,
                        Approval.status == ApprovalStatus.PENDING,
                        Approval.is_superseded == False,  # noqa: E712
                    )
                    .all()
                )
                for approval in pending:
                    approval.is_superseded = True

            self._add_history(
                contract,
                "STATUS_CHANGED",
                {"from": previous.value, "to": data.status.value, "comment": data.comment},
                user.id,
            )
            if contract.initiator_id:
                notification_type = (
                    NotificationType.CONTRACT_SIGNED
                    if data.status == ContractStatus.SIGNED
                    else NotificationType.CONTRACT_UPDATED
                )
                self.notifications.notify(
                    user_id=contract.initiator_id,
                    notification_type=notification_type,
                    title="Contract status changed",
                    message=(
                        f"Contract {contract.number} moved from {previous.value} "
                        f"to {data.status.value}"
                    ),
                    contract_id=contract.id,
                )

            self.db.commit()
            self.db.refresh(contract)
            logger.info(
                f"Contract {contract.number} status {previous.value} -> {data.status.value}"
            )
            return contract

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error changing status of contract {contract_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to change contract status",
            )

    async def delete_contract(self, contract_id: str, user: User):
        try:
            contract = self._get_contract(contract_id)
            if contract.status != ContractStatus.DRAFT:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Only DRAFT contracts can be deleted",
                )

            self.db.query(Notification).filter(
                Notification.contract_id == contract.id
            ).delete(synchronize_session=False)
            self.db.query(ChatHistory).filter(
                ChatHistory.contract_id == contract.id
            ).delete(synchronize_session=False)
            self.db.delete(contract)
            self.db.commit()
            logger.info(f"Contract {contract.number} deleted by {user.id}")

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error deleting contract {contract_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to delete contract",
            )

    async def get_history(self, contract_id: str) -> List[ContractHistory]:
        contract = self._get_contract(contract_id)
        return (
            self.db.query(ContractHistory)
            .filter(ContractHistory.contract_id == contract.id)
            .order_by(ContractHistory.created_at)
            .all()
        )
