"""
Authentication, user and role schemas
Pydantic models for request/response validation
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.schemas.base import ORMResponse


class UserCredentials(BaseModel):
    """User login credentials"""

    email: EmailStr
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """JWT token response"""

    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    user_id: str
    role: Optional[str] = None


class RoleCreate(BaseModel):
    code: str = Field(..., min_length=2, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v):
        return v.strip().upper()


class RoleResponse(ORMResponse):
    code: str
    name: str
    description: Optional[str] = None
    is_system: bool


class UserCreate(BaseModel):
    """User creation schema; role may be given by id or code"""

    email: EmailStr
    name: Optional[str] = Field(None, max_length=255)
    password: Optional[str] = None
    role_id: Optional[str] = None
    role_code: Optional[str] = None
    department_id: Optional[str] = None

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        if v is not None and len(v) < 8:
            raise ValueError("Password must be at least 8 characters long")
        return v


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    role_id: Optional[str] = None
    role_code: Optional[str] = None
    department_id: Optional[str] = None
    is_active: Optional[bool] = None
    password: Optional[str] = None

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        if v is not None and len(v) < 8:
            raise ValueError("Password must be at least 8 characters long")
        return v


class UserDepartmentAssign(BaseModel):
    department_id: Optional[str] = None


class UserResponse(ORMResponse):
    """User response schema"""

    email: str
    name: Optional[str] = None
    role_id: Optional[str] = None
    role_code: Optional[str] = None
    department_id: Optional[str] = None
    is_active: bool
    last_login: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
