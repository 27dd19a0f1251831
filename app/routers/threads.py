import uuid
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.models.thread import SenderRole
from app.services.claim_engine import ClaimEngine, get_claim_engine
from app.utils.auth_helper import get_current_user_required, is_admin


router = APIRouter()


class ThreadCreateRequest(BaseModel):
    subject: str = Field(min_length=3, max_length=120)
    description: Optional[str] = Field(default=None, max_length=1000)
    related_item_id: Optional[uuid.UUID] = None


class MessageCreateRequest(BaseModel):
    text: str = Field(default="", max_length=2000)
    attachment: Optional[str] = None


@router.post("/create")
def create_thread(
    payload: ThreadCreateRequest,
    engine: ClaimEngine = Depends(get_claim_engine),
    current_user=Depends(get_current_user_required),
):
    thread = engine.open_support_thread(
        current_user["sub"],
        payload.subject,
        description=payload.description,
        related_item_id=payload.related_item_id,
    )

    return {
        "ok": True,
        "thread_id": str(thread.id),
    }


@router.get("/mine")
def get_my_threads(
    engine: ClaimEngine = Depends(get_claim_engine),
    current_user=Depends(get_current_user_required),
):
    return {"threads": engine.list_user_threads(current_user["sub"])}


@router.get("/{thread_id}")
def get_thread(
    thread_id: uuid.UUID,
    engine: ClaimEngine = Depends(get_claim_engine),
    current_user=Depends(get_current_user_required),
):
    thread, messages = engine.get_thread(thread_id, current_user["sub"], is_admin=is_admin(current_user))

    return {
        "thread": thread,
        "messages": messages,
    }


@router.post("/{thread_id}/messages")
def post_message(
    thread_id: uuid.UUID,
    payload: MessageCreateRequest,
    engine: ClaimEngine = Depends(get_claim_engine),
    current_user=Depends(get_current_user_required),
):
    role = SenderRole.admin if is_admin(current_user) else SenderRole.user

    return engine.append_message(
        thread_id,
        current_user["sub"],
        payload.text,
        attachment=payload.attachment,
        sender_role=role,
    )


@router.post("/{thread_id}/read")
def mark_thread_read(
    thread_id: uuid.UUID,
    engine: ClaimEngine = Depends(get_claim_engine),
    current_user=Depends(get_current_user_required),
):
    count = engine.mark_thread_read(thread_id, current_user["sub"], is_admin=is_admin(current_user))
    return {"ok": True, "marked": count}


@router.post("/{thread_id}/close")
def close_thread(
    thread_id: uuid.UUID,
    engine: ClaimEngine = Depends(get_claim_engine),
    current_user=Depends(get_current_user_required),
):
    thread = engine.close_thread(thread_id, current_user["sub"], is_admin=is_admin(current_user))
    return {"ok": True, "status": thread.status}
