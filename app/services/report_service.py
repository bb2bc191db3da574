"""
Report Service
Read-only contract statistics and approval timelines over a trailing time window
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload

from app.models.approval import Approval, ApprovalStatus
from app.models.contract import Contract, ContractStatus

logger = logging.getLogger(__name__)

TIME_RANGES = {
    "1month": timedelta(days=30),
    "3months": timedelta(days=91),
    "6months": timedelta(days=182),
    "1year": timedelta(days=365),
}
DEFAULT_TIME_RANGE = "6months"

GROUPINGS = ("month", "type", "department")

COMPLETED_STATUSES = {ContractStatus.APPROVED, ContractStatus.SIGNED}
UNKNOWN = "Unknown"


def _days(delta: timedelta) -> float:
    return delta.total_seconds() / 86400


def _round(value: float) -> float:
    return round(value, 1)


def _active(contract: Contract) -> List[Approval]:
    return [a for a in contract.approvals if not a.is_superseded]


def is_overdue(approval: Approval, now: datetime) -> bool:
    return (
        approval.status == ApprovalStatus.PENDING
        and approval.due_date is not None
        and approval.due_date < now
    )


def approval_days(contract: Contract) -> Optional[float]:
    """Average time approvers took on the contract, None while nothing is decided"""
    decided = [
        a
        for a in _active(contract)
        if a.status == ApprovalStatus.APPROVED and a.decided_at is not None
    ]
    if not decided:
        return None
    total = sum(_days(a.decided_at - a.created_at) for a in decided)
    return _round(total / len(decided))


def severity(avg_delay: float) -> str:
    if avg_delay > 2:
        return "high"
    if avg_delay > 1:
        return "medium"
    return "low"


class ReportService:
    """Aggregates contracts created inside the requested window"""

    def __init__(self, db: Session):
        self.db = db

    def _since(self, time_range: str, now: datetime) -> datetime:
        if time_range not in TIME_RANGES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown time range '{time_range}'; use one of {sorted(TIME_RANGES)}",
            )
        return now - TIME_RANGES[time_range]

    def _contracts(self, since: datetime) -> List[Contract]:
        return (
            self.db.query(Contract)
            .options(selectinload(Contract.approvals).selectinload(Approval.approver))
            .filter(Contract.created_at >= since)
            .order_by(Contract.created_at.desc())
            .all()
        )

    async def get_statistics(
        self, time_range: str = DEFAULT_TIME_RANGE, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        now = now or datetime.utcnow()
        since = self._since(time_range, now)
        contracts = self._contracts(since)

        by_status = {s.value: 0 for s in ContractStatus}
        by_type: Dict[str, int] = defaultdict(int)
        departments: Dict[str, Dict[str, Any]] = {}
        workload: Dict[str, Dict[str, Any]] = {}
        approval_times = []
        overdue_contracts = 0

        for contract in contracts:
            by_status[contract.status.value] += 1
            by_type[contract.type or UNKNOWN] += 1

            dept = departments.setdefault(
                contract.department or UNKNOWN,
                {
                    "department": contract.department or UNKNOWN,
                    "total": 0,
                    "approved": 0,
                    "rejected": 0,
                    "in_review": 0,
                },
            )
            dept["total"] += 1
            if contract.status in COMPLETED_STATUSES:
                dept["approved"] += 1
                elapsed = approval_days(contract)
                if elapsed is not None:
                    approval_times.append(elapsed)
            elif contract.status == ContractStatus.REJECTED:
                dept["rejected"] += 1
            elif contract.status == ContractStatus.IN_REVIEW:
                dept["in_review"] += 1

            active = _active(contract)
            if any(is_overdue(a, now) for a in active):
                overdue_contracts += 1

            for approval in active:
                entry = workload.setdefault(
                    approval.approver_id,
                    {
                        "approver_id": approval.approver_id,
                        "approver_name": approval.approver.display_name
                        if approval.approver
                        else None,
                        "pending": 0,
                        "approved": 0,
                        "rejected": 0,
                        "overdue": 0,
                    },
                )
                entry[approval.status.value.lower()] += 1
                if is_overdue(approval, now):
                    entry["overdue"] += 1

        for dept in departments.values():
            dept["efficiency"] = _round(dept["approved"] / dept["total"] * 100)

        total = len(contracts)
        completed = sum(by_status[s.value] for s in COMPLETED_STATUSES)
        logger.debug(f"Statistics over {total} contracts since {since.isoformat()}")

        return {
            "time_range": time_range,
            "since": since,
            "overview": {
                "total_contracts": total,
                "in_review": by_status[ContractStatus.IN_REVIEW.value],
                "approved": by_status[ContractStatus.APPROVED.value],
                "rejected": by_status[ContractStatus.REJECTED.value],
                "avg_approval_days": _round(sum(approval_times) / len(approval_times))
                if approval_times
                else 0.0,
                "overdue_contracts": overdue_contracts,
                "completion_rate": round(completed / total * 100) if total else 0,
            },
            "by_status": by_status,
            "by_type": dict(by_type),
            "by_department": sorted(
                departments.values(), key=lambda d: (-d["total"], d["department"])
            ),
            "approver_workload": sorted(
                workload.values(), key=lambda w: (-w["pending"], w["approver_name"] or "")
            ),
        }

    async def get_timelines(
        self,
        time_range: str = DEFAULT_TIME_RANGE,
        group_by: str = "month",
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        if group_by not in GROUPINGS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot group by '{group_by}'; use one of {list(GROUPINGS)}",
            )
        now = now or datetime.utcnow()
        since = self._since(time_range, now)
        contracts = self._contracts(since)

        groups: Dict[str, Dict[str, Any]] = {}
        steps: Dict[int, Dict[str, Any]] = {}
        approval_times = []
        overdue_count = 0

        for contract in contracts:
            if group_by == "month":
                key = contract.created_at.strftime("%Y-%m")
            elif group_by == "type":
                key = contract.type or UNKNOWN
            else:
                key = contract.department or UNKNOWN

            group = groups.setdefault(key, {"key": key, "contracts": 0, "overdue": 0, "times": []})
            group["contracts"] += 1

            elapsed = (
                approval_days(contract) if contract.status in COMPLETED_STATUSES else None
            )
            if elapsed is not None:
                group["times"].append(elapsed)
                approval_times.append(elapsed)

            active = _active(contract)
            if any(is_overdue(a, now) for a in active):
                group["overdue"] += 1
                overdue_count += 1

            for approval in active:
                step = steps.setdefault(
                    approval.step_number,
                    {
                        "step_number": approval.step_number,
                        "step_name": approval.step_name,
                        "approvals": 0,
                        "delays": [],
                    },
                )
                step["approvals"] += 1
                if (
                    approval.status == ApprovalStatus.APPROVED
                    and approval.due_date is not None
                    and approval.decided_at is not None
                ):
                    step["delays"].append(max(0.0, _days(approval.decided_at - approval.due_date)))

        timeline = []
        for key in sorted(groups):
            group = groups[key]
            times = group["times"]
            timeline.append(
                {
                    "key": key,
                    "contracts": group["contracts"],
                    "completed": len(times),
                    "avg_days": _round(sum(times) / len(times)) if times else 0.0,
                    "min_days": min(times) if times else 0.0,
                    "max_days": max(times) if times else 0.0,
                    "overdue": group["overdue"],
                }
            )

        bottlenecks = []
        for number in sorted(steps):
            step = steps[number]
            delays = step["delays"]
            avg_delay = _round(sum(delays) / len(delays)) if delays else 0.0
            bottlenecks.append(
                {
                    "step_number": number,
                    "step_name": step["step_name"],
                    "approvals": step["approvals"],
                    "avg_delay_days": avg_delay,
                    "max_delay_days": _round(max(delays)) if delays else 0.0,
                    "severity": severity(avg_delay),
                }
            )

        return {
            "time_range": time_range,
            "group_by": group_by,
            "since": since,
            "timeline": timeline,
            "bottlenecks": bottlenecks,
            "summary": {
                "total_contracts": len(contracts),
                "avg_approval_days": _round(sum(approval_times) / len(approval_times))
                if approval_times
                else 0.0,
                "min_approval_days": min(approval_times) if approval_times else 0.0,
                "max_approval_days": max(approval_times) if approval_times else 0.0,
                "overdue_count": overdue_count,
            },
        }
