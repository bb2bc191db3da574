from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.base import ORMResponse


class DepartmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    parent_id: Optional[str] = None


class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


class DepartmentResponse(ORMResponse):
    name: str
    description: Optional[str] = None
    parent_id: Optional[str] = None
    level: int
    path: str
    children_count: int
