"""
Base model classes and common fields
"""

import json
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import CHAR, Column, DateTime, Text, TypeDecorator
from sqlalchemy.dialects.postgresql import JSONB as PostgresJSONB
from sqlalchemy.dialects.postgresql import UUID as PostgresUUID
from sqlalchemy.sql import func

from app.db.database import Base


class DateTimeEncoder(json.JSONEncoder):
    """JSON encoder that handles dates and decimals"""

    def default(self, obj):
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return float(obj)
        return super().default(obj)


class GUID(TypeDecorator):
    """
    Platform-independent GUID type.
    Uses PostgreSQL's UUID type when available, otherwise uses CHAR(36).
    Values always come back as strings so ids compare the same on every backend.
    """

    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PostgresUUID())
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return str(value)
        # Raises ValueError for malformed ids instead of storing garbage
        return str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        return str(value)


class JSON(TypeDecorator):
    """
    Platform-independent JSON type.
    Uses PostgreSQL's JSONB type when available, otherwise uses TEXT.
    """

    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PostgresJSONB())
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return json.loads(json.dumps(value, cls=DateTimeEncoder))
        return json.dumps(value, cls=DateTimeEncoder, ensure_ascii=False)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value
        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return value


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""

    # Naive UTC on the application side, same clock as due dates
    created_at = Column(
        DateTime, default=datetime.utcnow, server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        server_default=func.now(),
        onupdate=datetime.utcnow,
        nullable=False,
    )


class UUIDMixin:
    """Mixin for UUID primary key"""

    id = Column(
        GUID(), primary_key=True, default=lambda: str(uuid.uuid4()), nullable=False
    )


class BaseModel(Base, UUIDMixin, TimestampMixin):
    """Base model with UUID primary key and timestamps"""

    __abstract__ = True


class AuditMixin:
    """Mixin for audit trail fields"""

    created_by = Column(GUID(), nullable=True)
    updated_by = Column(GUID(), nullable=True)
