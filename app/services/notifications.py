"""
Best-effort notification delivery.

``notify`` runs after the transaction that triggered it has committed and
writes the notification in a session of its own. A failed write is logged
and parked on an in-memory queue that ``retry_pending`` drains later; it never
propagates back into the state change that caused it.
"""
import logging
import os
import threading
import uuid
from collections import deque
from typing import Any, Dict, Optional
from sqlmodel import Session

from app.db.db import engine as default_engine
from app.models.notification import NotificationType
from app.services.events import Event, EventBus, bus as default_bus
from app.services.notification_store import NotificationStore

logger = logging.getLogger(__name__)

MAX_PENDING = int(os.getenv("NOTIFICATION_QUEUE_LIMIT", "1000"))


def _as_uuid(value) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def render(kind: NotificationType, payload: Dict[str, Any]) -> tuple[str, str]:
    """Title and message text for a notification kind."""
    title = payload.get("item_title") or "your item"

    if kind == NotificationType.claim_created:
        return (
            "New claim received",
            f"A claim has been submitted for '{title}'.",
        )
    if kind == NotificationType.claim_approved:
        return (
            "Your claim has been approved",
            f"Great news! Your claim for '{title}' has been APPROVED. Please check instructions for collection.",
        )
    if kind == NotificationType.claim_rejected:
        return (
            "Your claim has been rejected",
            f"Your claim for '{title}' was rejected. Reason: {payload.get('reason')}",
        )
    if kind == NotificationType.claim_update:
        return (
            "More information needed",
            f"Action Required: an admin has requested more information for your claim on '{title}'.",
        )
    if kind == NotificationType.chat_message:
        return (
            "New message",
            f"New message from {payload.get('sender_name', 'Support')} on '{payload.get('subject', 'your ticket')}'.",
        )
    if kind == NotificationType.new_ticket:
        return (
            "Support ticket opened",
            f"We have opened a ticket for '{payload.get('subject', title)}'. Our staff will reply here.",
        )
    if kind == NotificationType.ticket_update:
        return (
            "Ticket updated",
            f"Your ticket '{payload.get('subject', title)}' is now {payload.get('status')}.",
        )
    if kind == NotificationType.match_found:
        if payload.get("match_title"):
            return (
                "Potential match found",
                f"Potential match found! A \"{payload['match_title']}\" was found at {payload.get('match_station')} "
                "that matches your description. Check your dashboard.",
            )
        return (
            "Potential match found",
            f"A potential match has been found for '{title}'. Check your dashboard.",
        )
    if kind == NotificationType.item_resolved:
        return (
            "Item resolved",
            f"'{title}' has been marked as resolved.",
        )

    return ("Update", "Your request has been updated.")


class NotificationDispatcher:
    def __init__(self, db_engine=None, event_bus: Optional[EventBus] = None, max_pending: int = MAX_PENDING):
        self.engine = db_engine if db_engine is not None else default_engine
        self.bus = event_bus if event_bus is not None else default_bus
        self._lock = threading.Lock()
        self._pending: deque[tuple[str, NotificationType, Dict[str, Any]]] = deque(maxlen=max_pending)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def notify(self, user_id: str, kind: NotificationType, payload: Optional[Dict[str, Any]] = None) -> bool:
        payload = payload or {}

        if self._deliver(user_id, kind, payload):
            return True

        queued = self._enqueue(user_id, kind, payload)
        logger.warning("Notification %s for %s queued for retry (%d pending)", kind.value, user_id, queued)
        return False

    def retry_pending(self) -> int:
        """Redeliver queued notifications. Returns how many went out."""
        with self._lock:
            batch = list(self._pending)
            self._pending.clear()

        delivered = 0
        failed = 0

        for user_id, kind, payload in batch:
            if self._deliver(user_id, kind, payload):
                delivered += 1
            else:
                failed += 1
                self._enqueue(user_id, kind, payload)

        if failed:
            logger.warning("%d notifications still pending after retry", failed)

        return delivered

    def _enqueue(self, user_id: str, kind: NotificationType, payload: Dict[str, Any]) -> int:
        with self._lock:
            if len(self._pending) == self._pending.maxlen:
                dropped_user, dropped_kind, _ = self._pending[0]
                logger.error(
                    "Retry queue full (%d), dropping %s notification for %s",
                    self._pending.maxlen, dropped_kind.value, dropped_user,
                )
            self._pending.append((user_id, kind, payload))
            return len(self._pending)

    def _deliver(self, user_id: str, kind: NotificationType, payload: Dict[str, Any]) -> bool:
        # any failure here is queued; the change that triggered it is already committed
        try:
            title, message = render(kind, payload)

            with Session(self.engine) as session:
                notification = NotificationStore(session).create(
                    user_id,
                    type=kind,
                    title=title,
                    message=message,
                    item_id=_as_uuid(payload.get("item_id")),
                    claim_id=_as_uuid(payload.get("claim_id")),
                    thread_id=_as_uuid(payload.get("thread_id")),
                )
                session.commit()
                notification_id = str(notification.id)
        except Exception:
            logger.exception("Failed to store %s notification for %s", kind.value, user_id)
            return False

        self.bus.publish(Event(
            topic="notifications",
            key=user_id,
            action=kind.value,
            payload={"notification_id": notification_id, "title": title},
        ))
        return True


dispatcher = NotificationDispatcher()


def get_dispatcher() -> NotificationDispatcher:
    return dispatcher
