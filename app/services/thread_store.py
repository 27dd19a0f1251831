import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.models.thread import (
    Message,
    SenderRole,
    TERMINAL_THREAD_STATUSES,
    Thread,
    ThreadStatus,
    ThreadType,
)
from app.services import errors


class ThreadStore:
    """Support threads and their append-only message log. Flushes only."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        user_id: str,
        subject: str,
        type: ThreadType = ThreadType.support,
        description: Optional[str] = None,
        related_claim_id: Optional[uuid.UUID] = None,
        related_item_id: Optional[uuid.UUID] = None,
    ) -> Thread:
        thread = Thread(
            user_id=user_id,
            subject=subject,
            type=type,
            description=description,
            related_claim_id=related_claim_id,
            related_item_id=related_item_id,
        )
        self.session.add(thread)
        self.session.flush()
        return thread

    def get_by_id(self, thread_id: uuid.UUID) -> Thread:
        thread = self.session.get(Thread, thread_id)
        if not thread:
            raise errors.NotFound("Thread not found")
        return thread

    def list_by_user(self, user_id: str) -> list[Thread]:
        return list(self.session.exec(
            select(Thread)
            .where(Thread.user_id == user_id)
            .order_by(Thread.updated_at.desc())
        ).all())

    def list_all(self, status: Optional[ThreadStatus] = None, limit: int = 50) -> list[Thread]:
        query = select(Thread).order_by(Thread.updated_at.desc()).limit(limit)

        if status:
            query = query.where(Thread.status == status)

        return list(self.session.exec(query).all())

    def open_for_item(self, item_id: uuid.UUID) -> list[Thread]:
        return list(self.session.exec(
            select(Thread)
            .where(Thread.related_item_id == item_id)
            .where(Thread.status.not_in(list(TERMINAL_THREAD_STATUSES)))
        ).all())

    def messages(self, thread_id: uuid.UUID) -> list[Message]:
        return list(self.session.exec(
            select(Message)
            .where(Message.thread_id == thread_id)
            .order_by(Message.seq)
        ).all())

    def append_message(
        self,
        thread_id: uuid.UUID,
        sender_id: str,
        text: str,
        sender_role: SenderRole = SenderRole.user,
        attachment: Optional[str] = None,
    ) -> Message:
        thread = self.get_by_id(thread_id)

        if thread.status in TERMINAL_THREAD_STATUSES:
            raise errors.Closed("This conversation has been closed")

        last_seq = self.session.exec(
            select(func.max(Message.seq)).where(Message.thread_id == thread.id)
        ).one()

        message = Message(
            thread_id=thread.id,
            seq=(last_seq or 0) + 1,
            sender_id=sender_id,
            sender_role=sender_role,
            text=text,
            attachment=attachment,
            # system notices need no acknowledgement
            read=sender_role == SenderRole.system,
        )

        # first admin reply picks the ticket up
        if sender_role == SenderRole.admin and thread.status == ThreadStatus.open:
            thread.status = ThreadStatus.in_progress
            thread.assigned_admin_id = thread.assigned_admin_id or sender_id

        thread.updated_at = datetime.now(timezone.utc)

        self.session.add(message)
        self.session.add(thread)

        try:
            self.session.flush()
        except IntegrityError:
            raise errors.Conflict("Another message was posted at the same time, please resend")

        return message

    def mark_read(self, thread_id: uuid.UUID, reader_id: str) -> int:
        """Mark every message not sent by ``reader_id`` as read."""
        unread = self.session.exec(
            select(Message)
            .where(Message.thread_id == thread_id)
            .where(Message.sender_id != reader_id)
            .where(Message.read == False)  # noqa: E712
        ).all()

        for message in unread:
            message.read = True
            self.session.add(message)

        self.session.flush()
        return len(unread)

    def set_status(self, thread_id: uuid.UUID, status: ThreadStatus) -> Thread:
        thread = self.get_by_id(thread_id)

        if thread.status in TERMINAL_THREAD_STATUSES and status not in TERMINAL_THREAD_STATUSES:
            raise errors.Closed("A closed conversation cannot be reopened")

        thread.status = status
        thread.updated_at = datetime.now(timezone.utc)
        self.session.add(thread)
        self.session.flush()
        return thread

    def close(self, thread_id: uuid.UUID) -> Thread:
        thread = self.get_by_id(thread_id)

        if thread.status in TERMINAL_THREAD_STATUSES:
            return thread

        thread.status = ThreadStatus.closed
        thread.updated_at = datetime.now(timezone.utc)
        self.session.add(thread)
        self.session.flush()
        return thread
