import uuid
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from app.db.db import get_session
from app.models.cctv import CCTVClip
from app.models.thread import SenderRole
from app.services.claim_engine import ClaimEngine, get_claim_engine
from app.utils.auth_helper import require_admin
from app.utils.s3_service import delete_s3_object, get_all_urls, with_signed_url


router = APIRouter()


def evidence_marker(clip_id) -> str:
    """Inline reference the chat UI turns into a "play evidence" button."""
    return f"[[CCTV:{clip_id}]]"


class ClipCreateRequest(BaseModel):
    station: str = Field(min_length=2, max_length=60)
    camera_location: str = Field(min_length=2, max_length=120)
    recorded_at: datetime
    duration: str = Field(pattern=r"^\d{2}:\d{2}$")
    thumbnail: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class ClipShareRequest(BaseModel):
    thread_id: uuid.UUID


@router.get("/clips")
def list_clips(
    station: Optional[str] = None,
    session: Session = Depends(get_session),
    admin=Depends(require_admin),
):
    query = select(CCTVClip).order_by(CCTVClip.recorded_at.desc())

    if station:
        query = query.where(CCTVClip.station == station)

    clips = session.exec(query).all()

    return {"clips": get_all_urls(clips, field="thumbnail")}


@router.post("/clips")
def add_clip(
    payload: ClipCreateRequest,
    session: Session = Depends(get_session),
    admin=Depends(require_admin),
):
    clip = CCTVClip(**payload.model_dump())

    session.add(clip)
    session.commit()
    session.refresh(clip)

    return with_signed_url(clip, field="thumbnail")


@router.delete("/clips/{clip_id}")
def delete_clip(
    clip_id: uuid.UUID,
    session: Session = Depends(get_session),
    admin=Depends(require_admin),
):
    clip = session.get(CCTVClip, clip_id)
    if not clip:
        raise HTTPException(status_code=404, detail="Clip not found")

    thumbnail = clip.thumbnail

    session.delete(clip)
    session.commit()

    delete_s3_object(thumbnail)

    return {"ok": True}


@router.post("/clips/{clip_id}/share")
def share_clip(
    clip_id: uuid.UUID,
    payload: ClipShareRequest,
    engine: ClaimEngine = Depends(get_claim_engine),
    admin=Depends(require_admin),
):
    """Post a clip into a support or verification thread as evidence"""
    clip = engine.session.get(CCTVClip, clip_id)
    if not clip:
        raise HTTPException(status_code=404, detail="Clip not found")

    message = engine.append_message(
        payload.thread_id,
        admin["sub"],
        f"I've attached CCTV footage from {clip.station}. {evidence_marker(clip.id)}",
        attachment=clip.thumbnail,
        sender_role=SenderRole.admin,
    )

    return message
