import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from sqlalchemy import update
from sqlmodel import Session, select

from app.models.claim import Claim, ClaimStatus, TERMINAL_CLAIM_STATUSES
from app.services import errors


class ClaimEvent(str, Enum):
    approve = "approve"
    reject = "reject"
    open_verification = "open-verification"


# (current status, event) -> next status
TRANSITIONS = {
    (ClaimStatus.submitted, ClaimEvent.approve): ClaimStatus.approved,
    (ClaimStatus.submitted, ClaimEvent.reject): ClaimStatus.rejected,
    (ClaimStatus.submitted, ClaimEvent.open_verification): ClaimStatus.verification_chat,
    (ClaimStatus.verification_chat, ClaimEvent.approve): ClaimStatus.approved,
    (ClaimStatus.verification_chat, ClaimEvent.reject): ClaimStatus.rejected,
}


class ClaimStore:
    """Claim records and the claim state table. Flushes only."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, item_id: uuid.UUID, claimant_id: str, reason: str, proof: Optional[str] = None) -> Claim:
        claim = Claim(
            item_id=item_id,
            claimant_id=claimant_id,
            reason=reason,
            proof=proof,
        )
        self.session.add(claim)
        self.session.flush()
        return claim

    def get_by_id(self, claim_id: uuid.UUID) -> Claim:
        claim = self.session.get(Claim, claim_id)
        if not claim:
            raise errors.NotFound("Claim not found")
        return claim

    def list_by_user(self, claimant_id: str) -> list[Claim]:
        return list(self.session.exec(
            select(Claim)
            .where(Claim.claimant_id == claimant_id)
            .order_by(Claim.created_at.desc())
        ).all())

    def list_all(
        self,
        status: Optional[ClaimStatus] = None,
        item_id: Optional[uuid.UUID] = None,
        limit: int = 50,
    ) -> list[Claim]:
        query = select(Claim).order_by(Claim.created_at.desc()).limit(limit)

        if status:
            query = query.where(Claim.status == status)
        if item_id:
            query = query.where(Claim.item_id == item_id)

        return list(self.session.exec(query).all())

    def next_status(self, claim: Claim, event: ClaimEvent) -> ClaimStatus:
        if claim.status in TERMINAL_CLAIM_STATUSES:
            raise errors.InvalidTransition(f"Claim is already {claim.status.value}")

        target = TRANSITIONS.get((claim.status, event))
        if target is None:
            raise errors.InvalidTransition(
                f"Cannot {event.value} a claim that is {claim.status.value}"
            )
        return target

    def transition(
        self,
        claim: Claim,
        event: ClaimEvent,
        reviewer_id: str,
        rejection_reason: Optional[str] = None,
        thread_id: Optional[uuid.UUID] = None,
    ) -> Claim:
        """
        Move the claim along the state table.

        The write only lands if the stored status still equals the one read
        into ``claim``; otherwise another decision got there first.
        """
        current = claim.status
        target = self.next_status(claim, event)
        now = datetime.now(timezone.utc)

        values = {
            "status": target,
            "updated_at": now,
            "reviewer_id": reviewer_id,
        }

        if target in TERMINAL_CLAIM_STATUSES:
            values["reviewed_at"] = now

        if target == ClaimStatus.rejected:
            values["rejection_reason"] = rejection_reason

        if thread_id is not None:
            values["thread_id"] = thread_id

        result = self.session.exec(
            update(Claim)
            .where(Claim.id == claim.id)
            .where(Claim.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            raise errors.Conflict("This claim was already decided by another admin")

        self.session.refresh(claim)
        return claim
