"""
Report endpoints
Contract statistics and approval timelines for dashboards
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.db.database import get_db
from app.models.user import User
from app.schemas.report import StatisticsReport, TimelineReport
from app.services.report_service import DEFAULT_TIME_RANGE, ReportService

router = APIRouter()


@router.get("/statistics", response_model=StatisticsReport)
async def get_statistics(
    time_range: str = Query(DEFAULT_TIME_RANGE, description="1month, 3months, 6months or 1year"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Contract counts by status, type and department

    Also reports completion rate, average approval time, overdue contracts
    and each approver's current workload.
    """
    return await ReportService(db).get_statistics(time_range)


@router.get("/timelines", response_model=TimelineReport)
async def get_timelines(
    time_range: str = Query(DEFAULT_TIME_RANGE, description="1month, 3months, 6months or 1year"),
    group_by: str = Query("month", description="month, type or department"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Approval durations grouped over time, by type or by department, with slow steps"""
    return await ReportService(db).get_timelines(time_range, group_by)
