"""
Approval Escalation Monitor
Periodic deadline reminders and escalation of overdue approvals
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.metrics import record_deadline_reminder, record_escalation
from app.db.database import SessionLocal
from app.models.approval import Approval, ApprovalStatus
from app.models.contract import Contract, ContractStatus
from app.models.notification import NotificationType
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def days_until(due_date: datetime, now: datetime) -> int:
    """Whole days between now and due_date, truncated toward zero"""
    days = (due_date - now).total_seconds() / 86400
    return int(math.trunc(days))


def check_deadlines(
    db: Session, now: Optional[datetime] = None, escalate: bool = True
) -> Dict[str, int]:
    """
    Scan pending approvals of contracts under review.

    An approval due in one day gets a single DEADLINE_APPROACHING reminder per
    due date. An overdue approval has its due date pushed forward, is flagged
    as escalated, and both the approver and the contract initiator are told.
    Everything is committed in one transaction.
    """
    now = now or datetime.utcnow()
    notifications = NotificationService(db)
    reminders = 0
    escalations = 0

    try:
        approvals = (
            db.query(Approval)
            .join(Contract, Approval.contract_id == Contract.id)
            .filter(
                and_(
                    Approval.status == ApprovalStatus.PENDING,
                    Approval.is_superseded == False,  # noqa: E712
                    Approval.due_date.isnot(None),
                    Contract.status == ContractStatus.IN_REVIEW,
                )
            )
            .all()
        )

        for approval in approvals:
            contract = approval.contract
            remaining = days_until(approval.due_date, now)

            if remaining == 1 and approval.reminder_sent_at is None:
                notifications.notify(
                    user_id=approval.approver_id,
                    notification_type=NotificationType.DEADLINE_APPROACHING,
                    title="Approval deadline approaching",
                    message=(
                        f"Contract {contract.number} must be reviewed by "
                        f"{approval.due_date.strftime('%Y-%m-%d %H:%M')}"
                    ),
                    contract_id=contract.id,
                )
                approval.reminder_sent_at = now
                reminders += 1

            elif remaining < 0 and escalate:
                approval.due_date = approval.due_date + timedelta(
                    days=settings.ESCALATION_EXTENSION_DAYS
                )
                approval.escalated = True
                approval.escalated_at = now
                # New due date gets its own reminder
                approval.reminder_sent_at = None

                notifications.notify(
                    user_id=approval.approver_id,
                    notification_type=NotificationType.ESCALATION,
                    title="Approval overdue",
                    message=(
                        f"Approval of contract {contract.number} is overdue; "
                        f"deadline extended to {approval.due_date.strftime('%Y-%m-%d %H:%M')}"
                    ),
                    contract_id=contract.id,
                )
                if contract.initiator_id and contract.initiator_id != approval.approver_id:
                    notifications.notify(
                        user_id=contract.initiator_id,
                        notification_type=NotificationType.ESCALATION,
                        title="Approval escalated",
                        message=(
                            f"Step {approval.step_number} of contract {contract.number} "
                            f"missed its deadline"
                        ),
                        contract_id=contract.id,
                    )
                escalations += 1

        db.commit()

    except Exception as e:
        logger.error(f"Error checking approval deadlines: {str(e)}")
        db.rollback()
        raise

    for _ in range(reminders):
        record_deadline_reminder()
    for _ in range(escalations):
        record_escalation()

    if reminders or escalations:
        logger.info(
            f"Deadline check: {reminders} reminders, {escalations} escalations"
        )
    return {"checked": len(approvals), "reminders": reminders, "escalations": escalations}


class EscalationMonitor:
    """Background loop running check_deadlines on a fixed interval"""

    def __init__(self, interval_seconds: Optional[int] = None):
        self.is_running = False
        self.interval_seconds = interval_seconds or settings.ESCALATION_CHECK_INTERVAL_SECONDS
        self.last_run: Optional[datetime] = None
        self.last_result: Optional[Dict[str, int]] = None
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        if self.is_running:
            logger.warning("Escalation monitor is already running")
            return

        self.is_running = True
        logger.info(
            f"Starting escalation monitor with {self.interval_seconds}s interval"
        )
        self._task = asyncio.create_task(self._monitor_loop())

    async def stop(self):
        self.is_running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Escalation monitor stopped")

    async def _monitor_loop(self):
        while self.is_running:
            try:
                await asyncio.sleep(self.interval_seconds)
                if not self.is_running:
                    break
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in escalation monitor loop: {str(e)}")

    async def run_once(self) -> Dict[str, int]:
        db = SessionLocal()
        try:
            # Blocking DB work stays off the event loop
            result = await asyncio.to_thread(check_deadlines, db)
            self.last_run = datetime.utcnow()
            self.last_result = result
            return result
        finally:
            db.close()

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "interval_seconds": self.interval_seconds,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_result": self.last_result,
        }
