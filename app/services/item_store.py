import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import update
from sqlmodel import Session, select

from app.models.claim import Claim, ClaimStatus, TERMINAL_CLAIM_STATUSES
from app.models.item import Item, ItemKind, ItemStatus
from app.models.thread import Thread
from app.services import errors

# Where a "resolved" status may come from
PROVENANCE_CLAIM_APPROVAL = "claim_approval"
PROVENANCE_SELF_REPORT = "self_report"

INITIAL_STATUS = {
    ItemKind.lost: ItemStatus.reported,
    ItemKind.found: ItemStatus.listed,
}


class ItemStore:
    """Item records. Flushes only; the caller owns the transaction."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, owner_id: str, kind: ItemKind, **fields) -> Item:
        item = Item(
            owner_id=owner_id,
            kind=kind,
            status=INITIAL_STATUS[kind],
            **fields,
        )
        self.session.add(item)
        self.session.flush()
        return item

    def get_by_id(self, item_id: uuid.UUID) -> Item:
        item = self.session.get(Item, item_id)
        if not item:
            raise errors.NotFound("Item not found")
        return item

    def list(
        self,
        kind: Optional[ItemKind] = None,
        status: Optional[ItemStatus] = None,
        category: Optional[str] = None,
        station: Optional[str] = None,
        owner_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Item]:
        query = select(Item).order_by(Item.created_at.desc())

        if limit:
            query = query.limit(limit)

        if kind:
            query = query.where(Item.kind == kind)
        if status:
            query = query.where(Item.status == status)
        if category:
            query = query.where(Item.category == category)
        if station:
            query = query.where(Item.station == station)
        if owner_id:
            query = query.where(Item.owner_id == owner_id)

        return list(self.session.exec(query).all())

    def update_status(self, item_id: uuid.UUID, new_status: ItemStatus) -> Item:
        """Admin override. Resolution only happens through mark_resolved."""
        if new_status == ItemStatus.resolved:
            raise errors.InvalidTransition(
                "Items are resolved by approving a claim or by their owner"
            )

        item = self.get_by_id(item_id)
        self._set_status(item, new_status)
        return item

    def mark_resolved(self, item: Item, provenance: str) -> Item:
        if provenance == PROVENANCE_CLAIM_APPROVAL:
            approved = self.session.exec(
                select(Claim)
                .where(Claim.item_id == item.id)
                .where(Claim.status == ClaimStatus.approved)
            ).first()

            if not approved:
                raise errors.InvalidTransition("Item has no approved claim")
        elif provenance != PROVENANCE_SELF_REPORT:
            raise ValueError(f"Unknown provenance '{provenance}'")

        self._set_status(item, ItemStatus.resolved)
        return item

    def set_status(self, item: Item, new_status: ItemStatus) -> Item:
        """Engine-side status change for everything except resolution."""
        if new_status == ItemStatus.resolved:
            raise errors.InvalidTransition("Use mark_resolved to resolve an item")
        self._set_status(item, new_status)
        return item

    def attach_claim(self, item: Item, claim_id: uuid.UUID):
        """Take the item's single claim slot, or fail if another claim holds it."""
        result = self.session.exec(
            update(Item)
            .where(Item.id == item.id)
            .where(Item.active_claim_id.is_(None))
            .values(active_claim_id=claim_id, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            raise errors.Conflict("This item already has a claim under review")

        self.session.refresh(item)

    def release_claim(self, item: Item, claim_id: uuid.UUID):
        if item.active_claim_id == claim_id:
            item.active_claim_id = None
            item.updated_at = datetime.now(timezone.utc)
            self.session.add(item)
            self.session.flush()

    def delete(self, item_id: uuid.UUID):
        item = self.get_by_id(item_id)

        claims = self.session.exec(
            select(Claim).where(Claim.item_id == item.id)
        ).all()

        if item.active_claim_id or any(c.status not in TERMINAL_CLAIM_STATUSES for c in claims):
            raise errors.Conflict("Item has a claim under review and cannot be deleted")

        # Detach threads that point at the item or its decided claims
        claim_ids = [c.id for c in claims]
        threads = self.session.exec(
            select(Thread).where(
                (Thread.related_item_id == item.id) | (Thread.related_claim_id.in_(claim_ids))
            )
        ).all()

        for thread in threads:
            thread.related_item_id = None
            if thread.related_claim_id in claim_ids:
                thread.related_claim_id = None
            self.session.add(thread)

        for claim in claims:
            self.session.delete(claim)
        self.session.flush()

        self.session.delete(item)
        self.session.flush()

    def _set_status(self, item: Item, new_status: ItemStatus):
        item.status = new_status
        item.updated_at = datetime.now(timezone.utc)
        self.session.add(item)
        self.session.flush()
