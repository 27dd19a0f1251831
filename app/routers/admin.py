import uuid
from typing import List, Optional
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session, select, func, and_
from pydantic import BaseModel

from app.db.db import get_session
from app.models.claim import Claim, ClaimStatus, TERMINAL_CLAIM_STATUSES
from app.models.item import Item, ItemKind, ItemStatus
from app.models.thread import Thread, ThreadStatus, TERMINAL_THREAD_STATUSES
from app.services.claim_engine import ClaimEngine, get_claim_engine
from app.services.notifications import NotificationDispatcher, get_dispatcher
from app.utils.auth_helper import require_admin
from app.utils.s3_service import with_signed_url

router = APIRouter()


# Response Models
class OverviewStats(BaseModel):
    total_lost: int
    total_found: int
    active_claims: int
    resolved_items: int
    open_threads: int
    claims_approved_current_month: int
    claims_rejected_current_month: int


class ClaimDetail(BaseModel):
    id: str
    item_id: str
    item_title: str
    item_status: str
    station: str
    claimant_id: str
    status: str
    reason: str
    proof: Optional[str]
    rejection_reason: Optional[str]
    thread_id: Optional[str]
    reviewer_id: Optional[str]
    created_at: datetime
    reviewed_at: Optional[datetime]


class ItemStatusRequest(BaseModel):
    status: ItemStatus
    # found item behind a match_found override
    match_item_id: Optional[uuid.UUID] = None


class ThreadStatusRequest(BaseModel):
    status: ThreadStatus


@router.get("/stats", response_model=OverviewStats)
def get_overview_stats(
    session: Session = Depends(get_session),
    admin=Depends(require_admin)
):
    """Get overview statistics for the admin dashboard"""
    now = datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    total_lost = session.exec(
        select(func.count(Item.id)).where(Item.kind == ItemKind.lost)
    ).one()

    total_found = session.exec(
        select(func.count(Item.id)).where(Item.kind == ItemKind.found)
    ).one()

    active_claims = session.exec(
        select(func.count(Claim.id)).where(Claim.status.not_in(list(TERMINAL_CLAIM_STATUSES)))
    ).one()

    resolved_items = session.exec(
        select(func.count(Item.id)).where(Item.status == ItemStatus.resolved)
    ).one()

    open_threads = session.exec(
        select(func.count(Thread.id)).where(Thread.status.not_in(list(TERMINAL_THREAD_STATUSES)))
    ).one()

    # Claims decided this month
    claims_approved = session.exec(
        select(func.count(Claim.id)).where(
            and_(
                Claim.reviewed_at >= month_start,
                Claim.status == ClaimStatus.approved
            )
        )
    ).one()

    claims_rejected = session.exec(
        select(func.count(Claim.id)).where(
            and_(
                Claim.reviewed_at >= month_start,
                Claim.status == ClaimStatus.rejected
            )
        )
    ).one()

    return OverviewStats(
        total_lost=total_lost,
        total_found=total_found,
        active_claims=active_claims,
        resolved_items=resolved_items,
        open_threads=open_threads,
        claims_approved_current_month=claims_approved,
        claims_rejected_current_month=claims_rejected,
    )


@router.get("/claims", response_model=List[ClaimDetail])
def get_claims_for_moderation(
    status: Optional[ClaimStatus] = None,
    limit: int = Query(50, ge=1, le=100),
    session: Session = Depends(get_session),
    admin=Depends(require_admin)
):
    """Get claims for moderation"""
    query = (
        select(Claim, Item)
        .join(Item, Claim.item_id == Item.id)
        .order_by(Claim.created_at.desc())
        .limit(limit)
    )

    if status:
        query = query.where(Claim.status == status)

    results = session.exec(query).all()

    claims = []

    for claim, item in results:
        claims.append(ClaimDetail(
            id=str(claim.id),
            item_id=str(item.id),
            item_title=item.title,
            item_status=item.status.value,
            station=item.station,
            claimant_id=claim.claimant_id,
            status=claim.status.value,
            reason=claim.reason,
            proof=claim.proof,
            rejection_reason=claim.rejection_reason,
            thread_id=str(claim.thread_id) if claim.thread_id else None,
            reviewer_id=claim.reviewer_id,
            created_at=claim.created_at,
            reviewed_at=claim.reviewed_at,
        ))

    return claims


@router.get("/threads")
def get_threads_for_support(
    status: Optional[ThreadStatus] = None,
    limit: int = Query(50, ge=1, le=100),
    engine: ClaimEngine = Depends(get_claim_engine),
    admin=Depends(require_admin)
):
    return {"threads": engine.list_threads(status=status, limit=limit)}


@router.get("/items/{item_id}/matches")
def get_item_matches(
    item_id: uuid.UUID,
    engine: ClaimEngine = Depends(get_claim_engine),
    admin=Depends(require_admin)
):
    """Open items of the opposite kind that look like this one, best first"""
    matches = engine.find_matches(item_id)

    return {
        "matches": [
            {
                "item": with_signed_url(m.item),
                "score": m.score,
                "reasons": m.reasons,
            }
            for m in matches
        ],
    }


@router.patch("/items/{item_id}/status")
def override_item_status(
    item_id: uuid.UUID,
    payload: ItemStatusRequest,
    engine: ClaimEngine = Depends(get_claim_engine),
    admin=Depends(require_admin)
):
    """Manual status override, e.g. marking a lost report as match_found or closing it"""
    item = engine.override_item_status(item_id, payload.status, match_item_id=payload.match_item_id)

    return {
        "ok": True,
        "status": item.status,
    }


@router.patch("/threads/{thread_id}/status")
def update_thread_status(
    thread_id: uuid.UUID,
    payload: ThreadStatusRequest,
    engine: ClaimEngine = Depends(get_claim_engine),
    admin=Depends(require_admin)
):
    thread = engine.set_thread_status(thread_id, payload.status)

    return {
        "ok": True,
        "status": thread.status,
    }


@router.post("/notifications/retry")
def retry_notifications(
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    admin=Depends(require_admin)
):
    delivered = dispatcher.retry_pending()

    return {
        "ok": True,
        "delivered": delivered,
        "pending": dispatcher.pending_count,
    }
