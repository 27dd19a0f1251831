"""
Claim resolution engine.

Every caller (item, claim, thread and admin routers) goes through this class
to change state. Each public mutator is a single transaction over the item,
claim and thread stores: it either commits all of its writes or none.
Notifications and change events go out only after the commit.
"""
import logging
import uuid
from contextlib import contextmanager
from typing import Optional, Union
from fastapi import Depends
from sqlmodel import Session

from app.db.db import get_session
from app.models.claim import Claim, ClaimStatus, TERMINAL_CLAIM_STATUSES
from app.models.item import Item, ItemKind, ItemStatus
from app.models.notification import NotificationType
from app.models.thread import (
    Message,
    SenderRole,
    TERMINAL_THREAD_STATUSES,
    Thread,
    ThreadStatus,
    ThreadType,
)
from app.services import errors, matching
from app.services.claim_store import ClaimEvent, ClaimStore
from app.services.events import Event, EventBus, bus as default_bus
from app.services.item_store import (
    ItemStore,
    PROVENANCE_CLAIM_APPROVAL,
    PROVENANCE_SELF_REPORT,
)
from app.services.matching import MatchResult
from app.services.notifications import NotificationDispatcher, get_dispatcher
from app.services.thread_store import ThreadStore

logger = logging.getLogger(__name__)

SYSTEM_SENDER = "system"


class ClaimEngine:
    def __init__(
        self,
        session: Session,
        dispatcher: NotificationDispatcher,
        event_bus: Optional[EventBus] = None,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.bus = event_bus if event_bus is not None else default_bus

        self.items = ItemStore(session)
        self.claims = ClaimStore(session)
        self.threads = ThreadStore(session)

    @contextmanager
    def _transaction(self):
        try:
            yield
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def _publish(self, topic: str, key, action: str, **payload):
        self.bus.publish(Event(topic=topic, key=str(key), action=action, payload=payload))

    # Items

    def register_item(self, owner_id: str, kind: Union[ItemKind, str], **fields) -> Item:
        """
        File a lost report or register a found item.

        Lost reports also open a support thread so staff can follow up with
        the owner.
        """
        kind = ItemKind(kind)
        thread = None

        with self._transaction():
            item = self.items.create(owner_id, kind, **fields)

            if kind == ItemKind.lost:
                thread = self.threads.create(
                    user_id=owner_id,
                    subject=f"Lost item: {item.title}",
                    type=ThreadType.support,
                    description=item.description,
                    related_item_id=item.id,
                )

        self.session.refresh(item)
        logger.info("Registered %s item %s", kind.value, item.id)
        self._publish("items", item.id, "created", status=item.status.value)

        if thread is not None:
            self.dispatcher.notify(owner_id, NotificationType.new_ticket, {
                "item_id": item.id,
                "item_title": item.title,
                "thread_id": thread.id,
                "subject": thread.subject,
            })

        return item

    def get_item(self, item_id: uuid.UUID) -> Item:
        return self.items.get_by_id(item_id)

    def list_items(self, **filters) -> list[Item]:
        return self.items.list(**filters)

    def find_matches(self, item_id: uuid.UUID) -> list[MatchResult]:
        return matching.find_matches(self.items, self.items.get_by_id(item_id))

    def override_item_status(
        self,
        item_id: uuid.UUID,
        status: Union[ItemStatus, str],
        match_item_id: Optional[uuid.UUID] = None,
    ) -> Item:
        """
        Admin status change. Moving a lost report to ``match_found`` opens an
        ``item_match`` thread with its owner; ``match_item_id`` names the found
        item staff think is theirs.
        """
        status = ItemStatus(status)
        thread = None
        match = None

        with self._transaction():
            item = self.items.get_by_id(item_id)

            if item.active_claim_id is not None:
                raise errors.Conflict("Decide the claim under review before changing this item")

            if match_item_id is not None:
                match = self.items.get_by_id(match_item_id)
                if item.kind != ItemKind.lost or match.kind != ItemKind.found:
                    raise errors.ValidationError("A match links a lost report to a found item")

            opens_match = (
                item.kind == ItemKind.lost
                and status == ItemStatus.match_found
                and item.status != ItemStatus.match_found
            )

            self.items.update_status(item.id, status)

            if opens_match:
                description = "Staff found an item that may be yours."
                if match is not None:
                    description = f"Possible match: {match.title} found at {match.station} (item #{match.id})."

                thread = self.threads.create(
                    user_id=item.owner_id,
                    subject=f"Possible match: {item.title}",
                    type=ThreadType.item_match,
                    description=description,
                    related_item_id=item.id,
                )

        self.session.refresh(item)
        logger.info("Item %s status overridden to %s", item.id, status.value)
        self._publish("items", item.id, "status", status=status.value)

        if thread is not None:
            self._publish("threads", thread.id, "created")
            self.dispatcher.notify(item.owner_id, NotificationType.match_found, {
                "item_id": item.id,
                "item_title": item.title,
                "thread_id": thread.id,
                "match_title": match.title if match is not None else None,
                "match_station": match.station if match is not None else None,
            })

        return item

    def self_resolve_item(self, item_id: uuid.UUID, owner_id: str) -> Item:
        """The owner found their lost item themselves. No claim is involved."""
        with self._transaction():
            item = self.items.get_by_id(item_id)

            if item.owner_id != owner_id:
                raise errors.Unauthorized("Only the person who reported this item can resolve it")

            if item.kind != ItemKind.lost:
                raise errors.InvalidTransition("Found items are resolved by approving a claim")

            if item.status in (ItemStatus.resolved, ItemStatus.closed):
                raise errors.InvalidTransition(f"Item is already {item.status.value}")

            self.items.mark_resolved(item, PROVENANCE_SELF_REPORT)

            closed_threads = []
            for thread in self.threads.open_for_item(item.id):
                self.threads.append_message(
                    thread.id,
                    SYSTEM_SENDER,
                    "Item marked as resolved by owner. Ticket closed.",
                    sender_role=SenderRole.system,
                )
                self.threads.close(thread.id)
                closed_threads.append(thread.id)

        self.session.refresh(item)
        logger.info("Item %s resolved by owner, %d threads closed", item.id, len(closed_threads))

        self._publish("items", item.id, "resolved", provenance=PROVENANCE_SELF_REPORT)
        for thread_id in closed_threads:
            self._publish("threads", thread_id, "closed")

        return item

    def delete_item(self, item_id: uuid.UUID, actor_id: str, is_admin: bool = False) -> Optional[str]:
        """Delete an item. Returns its image key so the caller can drop the upload."""
        with self._transaction():
            item = self.items.get_by_id(item_id)

            if not is_admin and item.owner_id != actor_id:
                raise errors.Unauthorized("Unauthorized to delete this item")

            image = item.image
            self.items.delete(item.id)

        logger.info("Item %s deleted by %s", item_id, actor_id)
        self._publish("items", item_id, "deleted")
        return image

    # Claims

    def create_claim(
        self,
        item_id: uuid.UUID,
        claimant_id: str,
        reason: str,
        proof: Optional[str] = None,
    ) -> Claim:
        reason = (reason or "").strip()
        if not reason:
            raise errors.ValidationError("Please describe why this item belongs to you")

        with self._transaction():
            item = self.items.get_by_id(item_id)

            if item.kind != ItemKind.found:
                raise errors.ValidationError("Only found items can be claimed")

            if item.owner_id == claimant_id:
                raise errors.ValidationError("You cannot claim an item you registered")

            if item.status in (ItemStatus.resolved, ItemStatus.closed):
                raise errors.Conflict("This item is no longer available for claims")

            claim = self.claims.create(item.id, claimant_id, reason, (proof or "").strip() or None)
            self.items.attach_claim(item, claim.id)

        self.session.refresh(claim)
        logger.info("Claim %s submitted for item %s by %s", claim.id, item.id, claimant_id)

        self._publish("claims", claim.id, "created", status=claim.status.value, item_id=str(item.id))
        self.dispatcher.notify(item.owner_id, NotificationType.claim_created, {
            "item_id": item.id,
            "item_title": item.title,
            "claim_id": claim.id,
        })
        return claim

    def get_claim(self, claim_id: uuid.UUID) -> Claim:
        return self.claims.get_by_id(claim_id)

    def list_claims(self, **filters) -> list[Claim]:
        return self.claims.list_all(**filters)

    def list_user_claims(self, claimant_id: str) -> list[Claim]:
        return self.claims.list_by_user(claimant_id)

    def decide_claim(
        self,
        claim_id: uuid.UUID,
        decision: Union[ClaimEvent, str],
        reviewer_id: str,
        reason: Optional[str] = None,
        expected_status: Optional[Union[ClaimStatus, str]] = None,
    ) -> Claim:
        """
        Approve, reject or open verification on a claim.

        ``expected_status`` is the status the caller saw when it loaded the
        claim. If the claim has moved on since, the call fails with Conflict
        instead of acting on a decision someone else already made.
        """
        decision = ClaimEvent(decision)
        reason = (reason or "").strip()

        with self._transaction():
            claim = self.claims.get_by_id(claim_id)
            self.session.refresh(claim)

            if expected_status is not None and claim.status != ClaimStatus(expected_status):
                raise errors.Conflict("This claim was already decided by another admin")

            if (
                decision == ClaimEvent.open_verification
                and claim.thread_id is not None
                and claim.status not in TERMINAL_CLAIM_STATUSES
            ):
                return claim

            # raises InvalidTransition before anything is written
            self.claims.next_status(claim, decision)

            if decision == ClaimEvent.reject and not reason:
                raise errors.ValidationError("A rejection reason is required")

            item = self.items.get_by_id(claim.item_id)

            if decision == ClaimEvent.approve:
                if item.status == ItemStatus.resolved:
                    raise errors.Conflict("This item has already been returned to its owner")

                self.claims.transition(claim, decision, reviewer_id)
                self.items.mark_resolved(item, PROVENANCE_CLAIM_APPROVAL)
                self.items.release_claim(item, claim.id)
                self._close_verification(claim, "CLAIM APPROVED. Please collect your item.")

            elif decision == ClaimEvent.reject:
                self.claims.transition(claim, decision, reviewer_id, rejection_reason=reason)
                self.items.set_status(item, ItemStatus.listed)
                self.items.release_claim(item, claim.id)
                self._close_verification(claim, f"CLAIM REJECTED: {reason}")

            else:
                thread = self.threads.create(
                    user_id=claim.claimant_id,
                    subject=f"Claim verification: {item.title}",
                    type=ThreadType.claim_verification,
                    description=f"Verification of claim for item #{item.id}",
                    related_claim_id=claim.id,
                    related_item_id=item.id,
                )
                thread.assigned_admin_id = reviewer_id
                self.claims.transition(claim, decision, reviewer_id, thread_id=thread.id)
                self.items.set_status(item, ItemStatus.pending_verification)

        self.session.refresh(claim)
        logger.info("Claim %s -> %s by %s", claim.id, claim.status.value, reviewer_id)

        self._publish("claims", claim.id, decision.value, status=claim.status.value)
        self._publish("items", item.id, "status", status=item.status.value)
        if claim.thread_id is not None:
            self._publish("threads", claim.thread_id, "updated")

        payload = {
            "item_id": item.id,
            "item_title": item.title,
            "claim_id": claim.id,
            "thread_id": claim.thread_id,
        }

        if claim.status == ClaimStatus.approved:
            self.dispatcher.notify(claim.claimant_id, NotificationType.claim_approved, payload)
            self.dispatcher.notify(item.owner_id, NotificationType.item_resolved, payload)
        elif claim.status == ClaimStatus.rejected:
            payload["reason"] = claim.rejection_reason
            self.dispatcher.notify(claim.claimant_id, NotificationType.claim_rejected, payload)
        else:
            self.dispatcher.notify(claim.claimant_id, NotificationType.claim_update, payload)

        return claim

    def _close_verification(self, claim: Claim, notice: str):
        if claim.thread_id is None:
            return

        thread = self.threads.get_by_id(claim.thread_id)
        if thread.status not in TERMINAL_THREAD_STATUSES:
            self.threads.append_message(thread.id, SYSTEM_SENDER, notice, sender_role=SenderRole.system)
        self.threads.close(thread.id)

    # Threads

    def open_support_thread(
        self,
        user_id: str,
        subject: str,
        description: Optional[str] = None,
        related_item_id: Optional[uuid.UUID] = None,
    ) -> Thread:
        subject = (subject or "").strip()
        if not subject:
            raise errors.ValidationError("A subject is required")

        with self._transaction():
            if related_item_id is not None:
                self.items.get_by_id(related_item_id)

            thread = self.threads.create(
                user_id=user_id,
                subject=subject,
                description=description,
                related_item_id=related_item_id,
            )

        self.session.refresh(thread)
        self._publish("threads", thread.id, "created")
        self.dispatcher.notify(user_id, NotificationType.new_ticket, {
            "thread_id": thread.id,
            "subject": thread.subject,
        })
        return thread

    def get_thread(self, thread_id: uuid.UUID, viewer_id: str, is_admin: bool = False) -> tuple[Thread, list[Message]]:
        thread = self.threads.get_by_id(thread_id)
        self._check_thread_access(thread, viewer_id, is_admin)
        return thread, self.threads.messages(thread.id)

    def list_threads(self, status: Optional[ThreadStatus] = None, limit: int = 50) -> list[Thread]:
        return self.threads.list_all(status=status, limit=limit)

    def list_user_threads(self, user_id: str) -> list[Thread]:
        return self.threads.list_by_user(user_id)

    def append_message(
        self,
        thread_id: uuid.UUID,
        sender_id: str,
        text: str,
        attachment: Optional[str] = None,
        sender_role: Union[SenderRole, str] = SenderRole.user,
    ) -> Message:
        sender_role = SenderRole(sender_role)
        text = (text or "").strip()

        if not text and not attachment:
            raise errors.ValidationError("Message cannot be empty")

        with self._transaction():
            thread = self.threads.get_by_id(thread_id)
            self._check_thread_access(thread, sender_id, sender_role != SenderRole.user)

            message = self.threads.append_message(
                thread.id,
                sender_id,
                text,
                sender_role=sender_role,
                attachment=attachment,
            )

        self.session.refresh(message)
        self._publish("threads", thread.id, "message", message_id=str(message.id), seq=message.seq)

        if sender_id != thread.user_id:
            self.dispatcher.notify(thread.user_id, NotificationType.chat_message, {
                "thread_id": thread.id,
                "subject": thread.subject,
                "sender_name": "Support" if sender_role == SenderRole.admin else sender_id,
            })

        return message

    def mark_thread_read(self, thread_id: uuid.UUID, reader_id: str, is_admin: bool = False) -> int:
        with self._transaction():
            thread = self.threads.get_by_id(thread_id)
            self._check_thread_access(thread, reader_id, is_admin)
            count = self.threads.mark_read(thread.id, reader_id)
        return count

    def close_thread(self, thread_id: uuid.UUID, actor_id: str, is_admin: bool = False) -> Thread:
        with self._transaction():
            thread = self.threads.get_by_id(thread_id)
            self._check_thread_access(thread, actor_id, is_admin)

            self._guard_claim_chat(thread)
            self.threads.close(thread.id)

        self.session.refresh(thread)
        self._publish("threads", thread.id, "closed")

        if actor_id != thread.user_id:
            self.dispatcher.notify(thread.user_id, NotificationType.ticket_update, {
                "thread_id": thread.id,
                "subject": thread.subject,
                "status": thread.status.value,
            })

        return thread

    def set_thread_status(self, thread_id: uuid.UUID, status: Union[ThreadStatus, str]) -> Thread:
        status = ThreadStatus(status)

        with self._transaction():
            if status in TERMINAL_THREAD_STATUSES:
                self._guard_claim_chat(self.threads.get_by_id(thread_id))
            thread = self.threads.set_status(thread_id, status)

        self.session.refresh(thread)
        self._publish("threads", thread.id, "status", status=status.value)
        self.dispatcher.notify(thread.user_id, NotificationType.ticket_update, {
            "thread_id": thread.id,
            "subject": thread.subject,
            "status": status.value,
        })
        return thread

    def _guard_claim_chat(self, thread: Thread):
        """A verification chat stays open until its claim is decided."""
        if thread.type != ThreadType.claim_verification or thread.related_claim_id is None:
            return

        claim = self.session.get(Claim, thread.related_claim_id)
        if claim and claim.status not in TERMINAL_CLAIM_STATUSES:
            raise errors.Conflict("Approve or reject the claim to close its verification chat")

    def _check_thread_access(self, thread: Thread, actor_id: str, is_admin: bool):
        if not is_admin and thread.user_id != actor_id:
            raise errors.Unauthorized("Not authorized to access this conversation")


def get_claim_engine(
    session: Session = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> ClaimEngine:
    return ClaimEngine(session, dispatcher)
