import uuid
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException

from app.models.claim import TERMINAL_CLAIM_STATUSES
from app.models.item import ItemKind, ItemStatus
from app.services.claim_engine import ClaimEngine, get_claim_engine
from app.utils.auth_helper import get_current_user_optional, get_current_user_required, is_admin
from app.utils.form_validator import ValidatedCreateItem
from app.utils.s3_service import delete_s3_object, get_all_urls, with_signed_url


router = APIRouter()


@router.post("/create")
def add_item(
    payload: ValidatedCreateItem,
    engine: ClaimEngine = Depends(get_claim_engine),
    current_user=Depends(get_current_user_required),
):
    # found items are registered by station staff only
    if payload.kind == "found" and not is_admin(current_user):
        raise HTTPException(status_code=403, detail="Only staff can register found items")

    item = engine.register_item(
        current_user["sub"],
        payload.kind,
        title=payload.title,
        description=payload.description,
        category=payload.category,
        station=payload.station,
        mode=payload.mode,
        line=payload.line,
        image=payload.image,
    )

    return {
        "id": str(item.id),
        "status": item.status,
    }


@router.get("/all")
def get_all_items(
    kind: Optional[ItemKind] = None,
    status: Optional[ItemStatus] = None,
    category: Optional[str] = None,
    station: Optional[str] = None,
    engine: ClaimEngine = Depends(get_claim_engine),
    current_user=Depends(get_current_user_optional),
):
    items = engine.list_items(kind=kind, status=status, category=category, station=station)

    # lost reports are only visible to their owner and to staff
    if not is_admin(current_user):
        viewer = current_user["sub"] if current_user else None
        items = [i for i in items if i.kind == ItemKind.found or i.owner_id == viewer]

    return {
        "items": get_all_urls(items),
    }


@router.get("/{item_id}")
def get_item(
    item_id: uuid.UUID,
    engine: ClaimEngine = Depends(get_claim_engine),
    current_user=Depends(get_current_user_optional),
):
    item = engine.get_item(item_id)
    viewer = current_user["sub"] if current_user else None

    if item.kind == ItemKind.lost and item.owner_id != viewer and not is_admin(current_user):
        raise HTTPException(status_code=403, detail="Unauthorized to view this item")

    # check for existing claim
    claim_status = "none"

    if item.active_claim_id:
        claim = engine.get_claim(item.active_claim_id)
        if claim.status not in TERMINAL_CLAIM_STATUSES:
            claim_status = claim.status.value

    return {
        "item": with_signed_url(item),
        "claim_status": claim_status,
    }


@router.post("/{item_id}/resolve")
def resolve_item(
    item_id: uuid.UUID,
    engine: ClaimEngine = Depends(get_claim_engine),
    current_user=Depends(get_current_user_required),
):
    """Owner found their lost item elsewhere."""
    item = engine.self_resolve_item(item_id, current_user["sub"])
    return with_signed_url(item)


@router.delete("/{item_id}")
def delete_item(
    item_id: uuid.UUID,
    engine: ClaimEngine = Depends(get_claim_engine),
    current_user=Depends(get_current_user_required),
):
    image = engine.delete_item(item_id, current_user["sub"], is_admin=is_admin(current_user))

    delete_s3_object(image)

    return {"ok": True}
