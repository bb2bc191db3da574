"""
Reference (lookup) data model
"""

import enum

from sqlalchemy import Boolean, Column, Integer, String, Text
from sqlalchemy import Enum as SQLEnum

from app.models.base import JSON, AuditMixin, BaseModel


class ReferenceType(str, enum.Enum):
    """Kinds of lookup entries served by the references API"""

    COUNTERPARTY = "COUNTERPARTY"
    CONTRACT_TYPE = "CONTRACT_TYPE"
    DEPARTMENT = "DEPARTMENT"
    POSITION = "POSITION"
    DOCUMENT_CATEGORY = "DOCUMENT_CATEGORY"
    APPROVAL_REASON = "APPROVAL_REASON"
    REJECTION_REASON = "REJECTION_REASON"
    COMPANY_POLICY = "COMPANY_POLICY"


class Reference(BaseModel, AuditMixin):
    """Typed key/value lookup entry; parent_code links hierarchical entries"""

    __tablename__ = "reference_items"

    type = Column(SQLEnum(ReferenceType), nullable=False, index=True)
    code = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    value = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    # "metadata" is reserved on declarative classes
    extra = Column("metadata", JSON, nullable=True)
    parent_code = Column(String(100), nullable=True, index=True)

    def __repr__(self):
        return f"<Reference(type='{self.type.value}', code='{self.code}')>"
