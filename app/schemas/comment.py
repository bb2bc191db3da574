from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.schemas.base import ORMResponse, Pagination


class CommentCreate(BaseModel):
    contract_id: str
    content: str = Field(..., min_length=1, max_length=10000)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Comment cannot be empty")
        return v.strip()


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Comment cannot be empty")
        return v.strip()


class CommentResponse(ORMResponse):
    contract_id: str
    author_id: str
    author_name: Optional[str] = None
    author_role: Optional[str] = None
    content: str
    is_edited: bool
    can_edit: bool = False
    can_delete: bool = False


class CommentListResponse(BaseModel):
    comments: List[CommentResponse]
    pagination: Pagination
