"""
Tests for the item and thread stores on their own.
Covers:
- Item status overrides and resolution provenance
- Item deletion guard
- Thread message ordering, closing, read flags
"""

import pytest

from app.models.item import ItemKind, ItemStatus
from app.models.thread import SenderRole, ThreadStatus
from app.services import errors
from app.services.item_store import (
    ItemStore,
    PROVENANCE_CLAIM_APPROVAL,
    PROVENANCE_SELF_REPORT,
)
from app.services.thread_store import ThreadStore

from conftest import ADMIN_ID, CLAIMANT_ID, OWNER_ID


def make_item(session, kind=ItemKind.found, owner_id=ADMIN_ID):
    item = ItemStore(session).create(
        owner_id,
        kind,
        title="Black umbrella",
        description="Left on the train",
        category="Other",
        station="Bangsar",
    )
    session.commit()
    return item


# -------------------------------------------------------------------
# ITEMS
# -------------------------------------------------------------------

def test_initial_status_depends_on_kind(session):
    assert make_item(session, ItemKind.found).status == ItemStatus.listed
    assert make_item(session, ItemKind.lost, OWNER_ID).status == ItemStatus.reported


def test_list_filters(session):
    make_item(session, ItemKind.found)
    make_item(session, ItemKind.lost, OWNER_ID)

    store = ItemStore(session)
    assert len(store.list()) == 2
    assert [i.kind for i in store.list(kind=ItemKind.lost)] == [ItemKind.lost]
    assert len(store.list(station="Bangsar", status=ItemStatus.listed)) == 1
    assert store.list(owner_id="nobody") == []


def test_update_status_refuses_resolved(session):
    item = make_item(session)

    with pytest.raises(errors.InvalidTransition):
        ItemStore(session).update_status(item.id, ItemStatus.resolved)


def test_update_status_override(session):
    item = make_item(session, ItemKind.lost, OWNER_ID)

    ItemStore(session).update_status(item.id, ItemStatus.match_found)
    session.commit()

    assert ItemStore(session).get_by_id(item.id).status == ItemStatus.match_found


def test_mark_resolved_needs_approved_claim(session):
    item = make_item(session)

    with pytest.raises(errors.InvalidTransition):
        ItemStore(session).mark_resolved(item, PROVENANCE_CLAIM_APPROVAL)


def test_mark_resolved_self_report(session):
    item = make_item(session, ItemKind.lost, OWNER_ID)

    ItemStore(session).mark_resolved(item, PROVENANCE_SELF_REPORT)
    assert item.status == ItemStatus.resolved


def test_get_missing_item(session):
    import uuid
    with pytest.raises(errors.NotFound):
        ItemStore(session).get_by_id(uuid.uuid4())


def test_delete_blocked_by_active_claim(claim_engine, found_item):
    claim_engine.create_claim(found_item.id, CLAIMANT_ID, "mine")

    with pytest.raises(errors.Conflict):
        claim_engine.delete_item(found_item.id, ADMIN_ID, is_admin=True)

    assert claim_engine.get_item(found_item.id)


def test_delete_after_decided_claim(claim_engine, found_item):
    claim = claim_engine.create_claim(found_item.id, CLAIMANT_ID, "mine")
    claim_engine.decide_claim(claim.id, "reject", ADMIN_ID, reason="Not matching")

    claim_engine.delete_item(found_item.id, ADMIN_ID, is_admin=True)

    with pytest.raises(errors.NotFound):
        claim_engine.get_item(found_item.id)
    with pytest.raises(errors.NotFound):
        claim_engine.get_claim(claim.id)


def test_delete_detaches_support_thread(claim_engine, lost_item):
    claim_engine.delete_item(lost_item.id, OWNER_ID)

    thread = claim_engine.list_user_threads(OWNER_ID)[0]
    assert thread.related_item_id is None


def test_delete_by_stranger(claim_engine, lost_item):
    with pytest.raises(errors.Unauthorized):
        claim_engine.delete_item(lost_item.id, "stranger")


# -------------------------------------------------------------------
# THREADS
# -------------------------------------------------------------------

@pytest.fixture
def thread(session):
    thread = ThreadStore(session).create(OWNER_ID, "Lost my keys")
    session.commit()
    return thread


def test_messages_are_ordered(session, thread):
    store = ThreadStore(session)
    for text in ["first", "second", "third"]:
        store.append_message(thread.id, OWNER_ID, text)
    session.commit()

    messages = store.messages(thread.id)
    assert [m.text for m in messages] == ["first", "second", "third"]
    assert [m.seq for m in messages] == [1, 2, 3]


def test_admin_reply_picks_up_ticket(session, thread):
    ThreadStore(session).append_message(thread.id, ADMIN_ID, "On it", sender_role=SenderRole.admin)
    session.commit()

    assert thread.status == ThreadStatus.in_progress
    assert thread.assigned_admin_id == ADMIN_ID


def test_append_to_closed_thread(session, thread):
    store = ThreadStore(session)
    store.close(thread.id)

    with pytest.raises(errors.Closed):
        store.append_message(thread.id, OWNER_ID, "hello?")


def test_close_is_idempotent(session, thread):
    store = ThreadStore(session)
    first = store.close(thread.id)
    updated_at = first.updated_at

    second = store.close(thread.id)
    assert second.status == ThreadStatus.closed
    assert second.updated_at == updated_at


def test_closed_thread_cannot_reopen(session, thread):
    store = ThreadStore(session)
    store.close(thread.id)

    with pytest.raises(errors.Closed):
        store.set_status(thread.id, ThreadStatus.open)


def test_mark_read_skips_own_messages(session, thread):
    store = ThreadStore(session)
    store.append_message(thread.id, OWNER_ID, "any news?")
    store.append_message(thread.id, ADMIN_ID, "found them", sender_role=SenderRole.admin)
    session.commit()

    assert store.mark_read(thread.id, OWNER_ID) == 1
    read_flags = {m.sender_id: m.read for m in store.messages(thread.id)}
    assert read_flags == {OWNER_ID: False, ADMIN_ID: True}
