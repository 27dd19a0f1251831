import uuid
from typing import Literal, Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.models.claim import ClaimStatus
from app.services.claim_engine import ClaimEngine, get_claim_engine
from app.utils.auth_helper import get_current_user_required, is_admin, require_admin
from app.utils.form_validator import ValidatedClaim
from app.utils.s3_service import with_signed_url


router = APIRouter()


@router.post("/create")
def create_claim(
    payload: ValidatedClaim,
    engine: ClaimEngine = Depends(get_claim_engine),
    current_user=Depends(get_current_user_required),
):
    claim = engine.create_claim(
        payload.item_id,
        current_user["sub"],
        payload.reason,
        payload.proof,
    )

    return {
        "ok": True,
        "claim_id": str(claim.id),
        "status": claim.status,
    }


@router.get("/mine")
def get_my_claims(
    engine: ClaimEngine = Depends(get_claim_engine),
    current_user=Depends(get_current_user_required),
):
    return {"claims": engine.list_user_claims(current_user["sub"])}


@router.get("/{claim_id}")
def get_claim(
    claim_id: uuid.UUID,
    engine: ClaimEngine = Depends(get_claim_engine),
    current_user=Depends(get_current_user_required),
):
    """
    Get claim by ID - accessible by the claimant and staff.
    """
    claim = engine.get_claim(claim_id)

    if claim.claimant_id != current_user["sub"] and not is_admin(current_user):
        raise HTTPException(status_code=403, detail="Not authorized to view this claim")

    item = engine.get_item(claim.item_id)

    return {
        "claim": claim,
        "item": with_signed_url(item),
    }


class ClaimDecisionRequest(BaseModel):
    decision: Literal["approve", "reject", "open-verification"]
    reason: Optional[str] = Field(default=None, max_length=500)
    # status the admin was looking at when deciding
    expected_status: Optional[ClaimStatus] = None


@router.post("/{claim_id}/decision")
def decide_claim(
    claim_id: uuid.UUID,
    payload: ClaimDecisionRequest,
    engine: ClaimEngine = Depends(get_claim_engine),
    admin=Depends(require_admin),
):
    claim = engine.decide_claim(
        claim_id,
        payload.decision,
        admin["sub"],
        reason=payload.reason,
        expected_status=payload.expected_status,
    )

    return {
        "ok": True,
        "claim": claim,
    }
