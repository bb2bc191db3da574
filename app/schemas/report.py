from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel


class ReportOverview(BaseModel):
    total_contracts: int
    in_review: int
    approved: int
    rejected: int
    avg_approval_days: float
    overdue_contracts: int
    completion_rate: int


class DepartmentStats(BaseModel):
    department: str
    total: int
    approved: int
    rejected: int
    in_review: int
    efficiency: float


class ApproverWorkload(BaseModel):
    approver_id: str
    approver_name: Optional[str] = None
    pending: int
    approved: int
    rejected: int
    overdue: int


class StatisticsReport(BaseModel):
    time_range: str
    since: datetime
    overview: ReportOverview
    by_status: Dict[str, int]
    by_type: Dict[str, int]
    by_department: List[DepartmentStats]
    approver_workload: List[ApproverWorkload]


class TimelineEntry(BaseModel):
    key: str
    contracts: int
    completed: int
    avg_days: float
    min_days: float
    max_days: float
    overdue: int


class Bottleneck(BaseModel):
    step_number: int
    step_name: Optional[str] = None
    approvals: int
    avg_delay_days: float
    max_delay_days: float
    severity: str


class TimelineSummary(BaseModel):
    total_contracts: int
    avg_approval_days: float
    min_approval_days: float
    max_approval_days: float
    overdue_count: int


class TimelineReport(BaseModel):
    time_range: str
    group_by: str
    since: datetime
    timeline: List[TimelineEntry]
    bottlenecks: List[Bottleneck]
    summary: TimelineSummary
