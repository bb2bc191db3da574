"""
Department endpoints
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require_admin
from app.db.database import get_db
from app.models.user import User
from app.schemas.base import MessageResponse
from app.schemas.department import DepartmentCreate, DepartmentResponse, DepartmentUpdate
from app.services.department_service import DepartmentService

router = APIRouter()


@router.get("", response_model=List[DepartmentResponse])
async def list_departments(
    parent_id: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Departments ordered by their path in the hierarchy"""
    departments = await DepartmentService(db).list_departments(parent_id=parent_id)
    return [DepartmentResponse.model_validate(d) for d in departments]


@router.post("", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
async def create_department(
    request: DepartmentCreate,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    department = await DepartmentService(db).create_department(request)
    return DepartmentResponse.model_validate(department)


@router.get("/{department_id}", response_model=DepartmentResponse)
async def get_department(
    department_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    department = await DepartmentService(db).get_department(department_id)
    return DepartmentResponse.model_validate(department)


@router.put("/{department_id}", response_model=DepartmentResponse)
async def update_department(
    department_id: str,
    request: DepartmentUpdate,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    department = await DepartmentService(db).update_department(department_id, request)
    return DepartmentResponse.model_validate(department)


@router.delete("/{department_id}", response_model=MessageResponse)
async def delete_department(
    department_id: str,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    """Delete an empty department (no sub-departments, no users)"""
    await DepartmentService(db).delete_department(department_id)
    return MessageResponse(message="Department deleted")
