"""
User and role management endpoints
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require_admin
from app.db.database import get_db
from app.models.user import User
from app.schemas.auth import (
    RoleCreate,
    RoleResponse,
    UserCreate,
    UserDepartmentAssign,
    UserResponse,
    UserUpdate,
)
from app.schemas.base import PaginatedResponse, Pagination
from app.services.user_service import UserService

router = APIRouter()
roles_router = APIRouter()


@router.get("", response_model=PaginatedResponse[UserResponse])
async def list_users(
    search: Optional[str] = Query(None, description="Name or email contains"),
    role: Optional[str] = Query(None, description="Role code"),
    is_active: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    users, total = await UserService(db).list_users(
        search=search, role_code=role, is_active=is_active, page=page, limit=limit
    )
    return PaginatedResponse[UserResponse](
        items=[UserResponse.model_validate(u) for u in users],
        pagination=Pagination.build(total, page, limit),
    )


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    request: UserCreate,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    user = await UserService(db).create_user(request)
    return UserResponse.model_validate(user)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = await UserService(db).get_user(user_id)
    return UserResponse.model_validate(user)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    request: UserUpdate,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    user = await UserService(db).update_user(user_id, request)
    return UserResponse.model_validate(user)


@router.delete("/{user_id}", response_model=UserResponse)
async def deactivate_user(
    user_id: str,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    """Deactivate a user; the account is kept for history"""
    user = await UserService(db).deactivate_user(user_id, current_user)
    return UserResponse.model_validate(user)


@router.put("/{user_id}/department", response_model=UserResponse)
async def assign_department(
    user_id: str,
    request: UserDepartmentAssign,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    user = await UserService(db).assign_department(user_id, request.department_id)
    return UserResponse.model_validate(user)


@roles_router.get("", response_model=List[RoleResponse])
async def list_roles(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    roles = await UserService(db).list_roles()
    return [RoleResponse.model_validate(r) for r in roles]


@roles_router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    request: RoleCreate,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    role = await UserService(db).create_role(request)
    return RoleResponse.model_validate(role)
