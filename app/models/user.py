"""
User and role models for authentication and approver resolution
"""

import enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from app.models.base import GUID, BaseModel


class RoleCode(str, enum.Enum):
    """System roles seeded on first start"""

    INITIATOR = "INITIATOR"
    INITIATOR_MANAGER = "INITIATOR_MANAGER"
    DEPARTMENT_HEAD = "DEPARTMENT_HEAD"
    CHIEF_LAWYER = "CHIEF_LAWYER"
    GENERAL_DIRECTOR = "GENERAL_DIRECTOR"
    OFFICE_MANAGER = "OFFICE_MANAGER"
    ADMINISTRATOR = "ADMINISTRATOR"


class Role(BaseModel):
    """Role that workflow steps can route approvals to"""

    __tablename__ = "roles"

    code = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_system = Column(Boolean, default=False, nullable=False)

    users = relationship("User", back_populates="role")

    def __repr__(self):
        return f"<Role(code='{self.code}')>"


class User(BaseModel):
    """User with a single role and an optional department"""

    __tablename__ = "users"

    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    hashed_password = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime, nullable=True)

    role_id = Column(GUID(), ForeignKey("roles.id"), nullable=True, index=True)
    department_id = Column(
        GUID(), ForeignKey("departments.id"), nullable=True, index=True
    )

    role = relationship("Role", back_populates="users")
    department = relationship("Department", back_populates="users")

    def __repr__(self):
        return f"<User(email='{self.email}')>"

    @property
    def role_code(self):
        return self.role.code if self.role else None

    @property
    def is_admin(self) -> bool:
        return self.role_code == RoleCode.ADMINISTRATOR.value

    @property
    def display_name(self) -> str:
        return self.name or self.email
