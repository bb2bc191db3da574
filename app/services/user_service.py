"""
User and role management service
"""

import logging
from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.security import SecurityUtils
from app.models.department import Department
from app.models.user import Role, User
from app.schemas.auth import RoleCreate, UserCreate, UserUpdate

logger = logging.getLogger(__name__)


class UserService:
    """Service for users and their roles"""

    def __init__(self, db: Session):
        self.db = db
        self.security = SecurityUtils()

    def _get_user(self, user_id: str) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="User not found"
            )
        return user

    def _resolve_role(
        self, role_id: Optional[str], role_code: Optional[str]
    ) -> Optional[Role]:
        if role_id:
            role = self.db.query(Role).filter(Role.id == role_id).first()
        elif role_code:
            role = self.db.query(Role).filter(Role.code == role_code.upper()).first()
        else:
            return None
        if not role:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Role not found"
            )
        return role

    def _check_department(self, department_id: Optional[str]):
        if department_id and not (
            self.db.query(Department).filter(Department.id == department_id).first()
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Department not found"
            )

    async def list_users(
        self,
        search: Optional[str] = None,
        role_code: Optional[str] = None,
        is_active: Optional[bool] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[User], int]:
        query = self.db.query(User)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
        if role_code:
            query = query.join(Role, User.role_id == Role.id).filter(
                Role.code == role_code.upper()
            )
        if is_active is not None:
            query = query.filter(User.is_active == is_active)

        total = query.count()
        users = (
            query.order_by(User.name, User.email)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return users, total

    async def get_user(self, user_id: str) -> User:
        return self._get_user(user_id)

    async def create_user(self, data: UserCreate) -> User:
        try:
            email = data.email.lower()
            if self.db.query(User).filter(User.email == email).first():
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Email already registered",
                )
            role = self._resolve_role(data.role_id, data.role_code)
            self._check_department(data.department_id)

            user = User(
                email=email,
                name=data.name,
                hashed_password=self.security.get_password_hash(data.password)
                if data.password
                else None,
                role_id=role.id if role else None,
                department_id=data.department_id,
                is_active=True,
            )
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
            logger.info(f"User created: {user.email}")
            return user

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating user: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to create user",
            )

    async def update_user(self, user_id: str, data: UserUpdate) -> User:
        try:
            user = self._get_user(user_id)
            update_data = data.model_dump(exclude_unset=True)

            role_id = update_data.pop("role_id", None)
            role_code = update_data.pop("role_code", None)
            if role_id or role_code:
                user.role_id = self._resolve_role(role_id, role_code).id

            password = update_data.pop("password", None)
            if password:
                user.hashed_password = self.security.get_password_hash(password)

            if "department_id" in update_data:
                self._check_department(update_data["department_id"])

            for field, value in update_data.items():
                setattr(user, field, value)

            self.db.commit()
            self.db.refresh(user)
            return user

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating user {user_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to update user",
            )

    async def deactivate_user(self, user_id: str, actor: User) -> User:
        """Users are never removed; approvals and history keep pointing at them"""
        if user_id == actor.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="You cannot deactivate your own account",
            )
        try:
            user = self._get_user(user_id)
            user.is_active = False
            self.db.commit()
            self.db.refresh(user)
            logger.info(f"User deactivated: {user.email}")
            return user

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error deactivating user {user_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to deactivate user",
            )

    async def assign_department(self, user_id: str, department_id: Optional[str]) -> User:
        user = self._get_user(user_id)
        self._check_department(department_id)
        user.department_id = department_id
        self.db.commit()
        self.db.refresh(user)
        return user

    async def list_roles(self) -> List[Role]:
        return self.db.query(Role).order_by(Role.is_system.desc(), Role.code).all()

    async def create_role(self, data: RoleCreate) -> Role:
        try:
            if self.db.query(Role).filter(Role.code == data.code).first():
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Role '{data.code}' already exists",
                )
            role = Role(
                code=data.code,
                name=data.name,
                description=data.description,
                is_system=False,
            )
            self.db.add(role)
            self.db.commit()
            self.db.refresh(role)
            return role

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating role: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to create role",
            )
