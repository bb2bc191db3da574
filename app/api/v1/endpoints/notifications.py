"""
Notification endpoints
In-app notifications written alongside contract and approval changes
"""

from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.db.database import get_db
from app.models.user import User
from app.schemas.notification import (
    NotificationCreate,
    NotificationReadUpdate,
    NotificationResponse,
    UnreadCountResponse,
)
from app.services.notification_service import DEFAULT_LIST_LIMIT, NotificationService

router = APIRouter()


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Current user's notifications, newest first"""
    notifications = await NotificationService(db).list_for_user(
        current_user.id, unread_only=unread_only, limit=limit
    )
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.post(
    "", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED
)
async def create_notification(
    request: NotificationCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = await NotificationService(db).create_notification(request)
    return NotificationResponse.model_validate(notification)


@router.put("", response_model=NotificationResponse)
async def update_notification(
    request: NotificationReadUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark a notification read or unread"""
    notification = await NotificationService(db).mark_read(
        request.notification_id, request.read, current_user
    )
    return NotificationResponse.model_validate(notification)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    unread = await NotificationService(db).unread_count(current_user.id)
    return UnreadCountResponse(user_id=current_user.id, unread=unread)


@router.post("/read-all")
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updated = await NotificationService(db).mark_all_read(current_user.id)
    return {"message": "Notifications marked as read", "updated": updated}


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = await NotificationService(db).mark_read(
        notification_id, True, current_user
    )
    return NotificationResponse.model_validate(notification)
