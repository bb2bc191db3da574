"""
Reference (lookup) schemas
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.reference import ReferenceType
from app.schemas.base import ORMResponse


class ReferenceCreate(BaseModel):
    type: ReferenceType
    code: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    value: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0
    metadata: Optional[Dict[str, Any]] = None
    parent_code: Optional[str] = None

    @field_validator("code")
    @classmethod
    def strip_code(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Code must not be blank")
        return v


class ReferenceUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=100)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    value: Optional[str] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None
    parent_code: Optional[str] = None


class ReferenceResponse(ORMResponse):
    type: ReferenceType
    code: str
    name: str
    description: Optional[str] = None
    value: Optional[str] = None
    is_active: bool
    sort_order: int
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="extra")
    parent_code: Optional[str] = None

    # Populated for counterparties only
    contract_count: Optional[int] = None
    last_contract_date: Optional[datetime] = None
