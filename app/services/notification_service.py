"""
Notification Service

Notifications are added to the caller's session and committed together with
the state change that produced them. Nothing is sent out of band.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy import and_
from sqlalchemy.orm import Session

from app.models.notification import Notification, NotificationType
from app.models.user import User
from app.schemas.notification import NotificationCreate

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50


class NotificationService:
    """Service for writing and reading in-app notifications"""

    def __init__(self, db: Session):
        self.db = db

    def notify(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        contract_id: Optional[str] = None,
        action_url: Optional[str] = None,
    ) -> Notification:
        """Stage a notification in the current transaction (no commit)"""
        notification = Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            contract_id=contract_id,
            action_url=action_url or (f"/contracts/{contract_id}" if contract_id else None),
        )
        self.db.add(notification)
        logger.debug(
            f"Queued {notification_type.value} notification for user {user_id}"
        )
        return notification

    async def create_notification(self, data: NotificationCreate) -> Notification:
        try:
            user = self.db.query(User).filter(User.id == data.user_id).first()
            if not user:
                raise HTTPException(status_code=404, detail="User not found")

            notification = self.notify(
                user_id=data.user_id,
                notification_type=data.type,
                title=data.title,
                message=data.message,
                contract_id=data.contract_id,
                action_url=data.action_url,
            )
            self.db.commit()
            self.db.refresh(notification)
            return notification

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating notification: {str(e)}")
            self.db.rollback()
            raise HTTPException(status_code=500, detail="Failed to create notification")

    async def list_for_user(
        self, user_id: str, unread_only: bool = False, limit: int = DEFAULT_LIST_LIMIT
    ) -> List[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read == False)  # noqa: E712
        return (
            query.order_by(Notification.created_at.desc(), Notification.id)
            .limit(limit)
            .all()
        )

    async def unread_count(self, user_id: str) -> int:
        return (
            self.db.query(Notification)
            .filter(
                and_(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
            )
            .count()
        )

    async def mark_read(
        self, notification_id: str, read: bool, actor: User
    ) -> Notification:
        try:
            notification = (
                self.db.query(Notification)
                .filter(Notification.id == notification_id)
                .first()
            )
            if not notification:
                raise HTTPException(status_code=404, detail="Notification not found")
            if notification.user_id != actor.id and not actor.is_admin:
                raise HTTPException(
                    status_code=403, detail="Cannot modify another user's notification"
                )

            notification.is_read = read
            notification.read_at = datetime.utcnow() if read else None
            self.db.commit()
            self.db.refresh(notification)
            return notification

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating notification {notification_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(status_code=500, detail="Failed to update notification")

    async def mark_all_read(self, user_id: str) -> int:
        try:
            now = datetime.utcnow()
            updated = (
                self.db.query(Notification)
                .filter(
                    and_(
                        Notification.user_id == user_id,
                        Notification.is_read == False,  # noqa: E712
                    )
                )
                .update(
                    {Notification.is_read: True, Notification.read_at: now},
                    synchronize_session=False,
                )
            )
            self.db.commit()
            return updated

        except Exception as e:
            logger.error(f"Error marking notifications read for {user_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(status_code=500, detail="Failed to update notifications")
