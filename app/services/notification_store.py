import uuid
from typing import Optional
from sqlmodel import Session, func, select

from app.models.notification import Notification
from app.services import errors


class NotificationStore:
    """A user's notification inbox. Flushes only."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, user_id: str, **fields) -> Notification:
        notification = Notification(user_id=user_id, **fields)
        self.session.add(notification)
        self.session.flush()
        return notification

    def list_for_user(self, user_id: str, limit: int = 20, unread_only: bool = False) -> list[Notification]:
        query = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
        )

        if unread_only:
            query = query.where(Notification.is_read == False)  # noqa: E712

        return list(self.session.exec(query).all())

    def unread_count(self, user_id: str) -> int:
        return self.session.exec(
            select(func.count(Notification.id))
            .where(Notification.user_id == user_id)
            .where(Notification.is_read == False)  # noqa: E712
        ).one()

    def mark_read(self, notification_id: uuid.UUID, user_id: str) -> Notification:
        notification: Optional[Notification] = self.session.exec(
            select(Notification)
            .where(Notification.id == notification_id)
            .where(Notification.user_id == user_id)
        ).first()

        if not notification:
            raise errors.NotFound("Notification not found")

        notification.is_read = True
        self.session.add(notification)
        self.session.flush()
        return notification

    def mark_all_read(self, user_id: str) -> int:
        unread = self.session.exec(
            select(Notification)
            .where(Notification.user_id == user_id)
            .where(Notification.is_read == False)  # noqa: E712
        ).all()

        for notification in unread:
            notification.is_read = True
            self.session.add(notification)

        self.session.flush()
        return len(unread)
