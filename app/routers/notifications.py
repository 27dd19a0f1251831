import uuid
from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.db.db import get_session
from app.services.notification_store import NotificationStore
from app.utils.auth_helper import get_current_user_required


router = APIRouter()


def get_notification_store(session: Session = Depends(get_session)) -> NotificationStore:
    return NotificationStore(session)


@router.get("/")
def get_my_notifications(
    limit: int = 20,
    unread_only: bool = False,
    store: NotificationStore = Depends(get_notification_store),
    current_user=Depends(get_current_user_required),
):
    return {"notifications": store.list_for_user(current_user["sub"], limit=limit, unread_only=unread_only)}


@router.get("/count")
def get_unread_count(
    store: NotificationStore = Depends(get_notification_store),
    current_user=Depends(get_current_user_required),
):
    return {"count": store.unread_count(current_user["sub"])}


@router.post("/{notification_id}/mark-read")
def mark_notification_read(
    notification_id: uuid.UUID,
    store: NotificationStore = Depends(get_notification_store),
    current_user=Depends(get_current_user_required),
):
    store.mark_read(notification_id, current_user["sub"])
    store.session.commit()

    return {"ok": True}


@router.post("/mark-all-read")
def mark_all_notifications_read(
    store: NotificationStore = Depends(get_notification_store),
    current_user=Depends(get_current_user_required),
):
    marked = store.mark_all_read(current_user["sub"])
    store.session.commit()

    return {"ok": True, "marked": marked}
