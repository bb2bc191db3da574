"""
Department hierarchy service
"""

import logging
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.models.department import Department
from app.models.user import User
from app.schemas.department import DepartmentCreate, DepartmentUpdate

logger = logging.getLogger(__name__)


class DepartmentService:
    def __init__(self, db: Session):
        self.db = db

    def _get_department(self, department_id: str) -> Department:
        department = (
            self.db.query(Department).filter(Department.id == department_id).first()
        )
        if not department:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Department not found"
            )
        return department

    def _rebuild_paths(self, department: Department):
        """Recompute level/path for a department and its whole subtree"""
        if department.parent:
            department.level = department.parent.level + 1
            department.path = f"{department.parent.path}/{department.name}"
        else:
            department.level = 0
            department.path = department.name
        for child in department.children:
            self._rebuild_paths(child)

    async def list_departments(self, parent_id: Optional[str] = None) -> List[Department]:
        query = self.db.query(Department)
        if parent_id:
            query = query.filter(Department.parent_id == parent_id)
        return query.order_by(Department.path).all()

    async def get_department(self, department_id: str) -> Department:
        return self._get_department(department_id)

    async def create_department(self, data: DepartmentCreate) -> Department:
        try:
            parent = self._get_department(data.parent_id) if data.parent_id else None

            department = Department(
                name=data.name,
                description=data.description,
                parent_id=parent.id if parent else None,
                level=parent.level + 1 if parent else 0,
                path=f"{parent.path}/{data.name}" if parent else data.name,
                children_count=0,
            )
            self.db.add(department)
            if parent:
                parent.children_count = (parent.children_count or 0) + 1

            self.db.commit()
            self.db.refresh(department)
            logger.info(f"Department {department.path} created")
            return department

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating department: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to create department",
            )

    async def update_department(
        self, department_id: str, data: DepartmentUpdate
    ) -> Department:
        try:
            department = self._get_department(department_id)
            update_data = data.model_dump(exclude_unset=True)
            for field, value in update_data.items():
                setattr(department, field, value)

            if "name" in update_data:
                self._rebuild_paths(department)

            self.db.commit()
            self.db.refresh(department)
            return department

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating department {department_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to update department",
            )

    async def delete_department(self, department_id: str):
        try:
            department = self._get_department(department_id)
            if department.children:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Cannot delete a department that has sub-departments",
                )
            users = (
                self.db.query(User).filter(User.department_id == department.id).count()
            )
            if users:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Cannot delete a department with {users} users",
                )

            if department.parent:
                department.parent.children_count = max(
                    (department.parent.children_count or 1) - 1, 0
                )
            self.db.delete(department)
            self.db.commit()
            logger.info(f"Department {department.path} deleted")

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error deleting department {department_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to delete department",
            )
