from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.models.notification import NotificationType
from app.schemas.base import ORMResponse


class NotificationCreate(BaseModel):
    user_id: str
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    contract_id: Optional[str] = None
    action_url: Optional[str] = None


class NotificationReadUpdate(BaseModel):
    notification_id: str
    read: bool = True


class NotificationResponse(ORMResponse):
    user_id: str
    type: NotificationType
    title: str
    message: str
    contract_id: Optional[str] = None
    action_url: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None


class UnreadCountResponse(BaseModel):
    user_id: str
    unread: int
