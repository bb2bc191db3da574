"""
Base Pydantic models shared by the API schemas
"""

from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ORMResponse(BaseModel):
    """Base for responses built from ORM rows"""

    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "Pagination":
        return cls(
            total=total,
            page=page,
            limit=limit,
            total_pages=(total + limit - 1) // limit if limit else 0,
        )


class PaginatedResponse(BaseModel, Generic[T]):
    items: List[T]
    pagination: Pagination


class MessageResponse(BaseModel):
    message: str = Field(..., description="Human readable result")
