"""
Tests for lost/found matching and the match_found workflow.
Covers:
- Candidate scoring, filtering and ordering
- match_found override opening an item_match thread and notifying the owner
- GET /admin/items/{id}/matches
"""

import pytest
from sqlmodel import Session, select

from app.models.item import ItemStatus
from app.models.notification import Notification, NotificationType
from app.models.thread import ThreadType
from app.services import errors
from app.services.matching import score

from conftest import ADMIN_ID, OWNER_ID


def register_found(claim_engine, title, description, station="Pasar Seni", category="Personal Accessories"):
    return claim_engine.register_item(
        ADMIN_ID,
        "found",
        title=title,
        description=description,
        category=category,
        station=station,
    )


@pytest.fixture
def candidates(claim_engine):
    wallet = register_found(claim_engine, "Red Wallet", "Red leather wallet with cards inside.")
    purse = register_found(claim_engine, "Black purse", "Small black purse, zipped.", station="KL Sentral")
    register_found(claim_engine, "Red phone", "Red phone with cracked screen.", category="Electronics")
    closed = register_found(claim_engine, "Red leather wallet", "Red leather wallet with cards.")
    claim_engine.override_item_status(closed.id, ItemStatus.closed)
    return {"wallet": wallet, "purse": purse}


# -------------------------------------------------------------------
# SCORING
# -------------------------------------------------------------------

def test_score_adds_category_station_and_keywords(lost_item, candidates):
    # category 40 + station 30 + four shared keywords (red, leather, wallet, cards) 20
    assert score(lost_item, candidates["wallet"]) == 90
    assert score(lost_item, candidates["purse"]) == 40


def test_find_matches_sorted_and_filtered(claim_engine, lost_item, candidates):
    matches = claim_engine.find_matches(lost_item.id)

    assert [m.item.id for m in matches] == [candidates["wallet"].id, candidates["purse"].id]
    assert matches[0].reasons == ["Same Station", "High Keyword Match"]
    assert matches[1].reasons == ["Partial Keyword Match"]


def test_found_item_matches_lost_reports(claim_engine, lost_item, candidates):
    matches = claim_engine.find_matches(candidates["wallet"].id)
    assert [m.item.id for m in matches] == [lost_item.id]


def test_no_matches_once_report_leaves_reported(claim_engine, lost_item, candidates):
    claim_engine.override_item_status(lost_item.id, ItemStatus.match_found)
    assert claim_engine.find_matches(candidates["wallet"].id) == []


# -------------------------------------------------------------------
# MATCH FOUND
# -------------------------------------------------------------------

def test_match_found_opens_thread_and_notifies_owner(claim_engine, db_engine, lost_item, candidates):
    item = claim_engine.override_item_status(
        lost_item.id, ItemStatus.match_found, match_item_id=candidates["wallet"].id
    )
    assert item.status == ItemStatus.match_found

    threads = [t for t in claim_engine.list_user_threads(OWNER_ID) if t.type == ThreadType.item_match]
    assert len(threads) == 1
    assert threads[0].related_item_id == lost_item.id
    assert "Red Wallet" in threads[0].description

    with Session(db_engine) as session:
        notification = session.exec(
            select(Notification)
            .where(Notification.user_id == OWNER_ID)
            .where(Notification.type == NotificationType.match_found)
        ).one()

    assert notification.thread_id == threads[0].id
    assert "Red Wallet" in notification.message
    assert "Pasar Seni" in notification.message


def test_match_found_twice_opens_one_thread(claim_engine, lost_item):
    claim_engine.override_item_status(lost_item.id, ItemStatus.match_found)
    claim_engine.override_item_status(lost_item.id, ItemStatus.match_found)

    threads = [t for t in claim_engine.list_user_threads(OWNER_ID) if t.type == ThreadType.item_match]
    assert len(threads) == 1


def test_match_must_link_lost_to_found(claim_engine, lost_item, candidates):
    with pytest.raises(errors.ValidationError):
        claim_engine.override_item_status(
            candidates["wallet"].id, ItemStatus.match_found, match_item_id=lost_item.id
        )

    assert claim_engine.get_item(candidates["wallet"].id).status == ItemStatus.listed


def test_self_resolve_closes_match_thread(claim_engine, lost_item):
    claim_engine.override_item_status(lost_item.id, ItemStatus.match_found)
    claim_engine.self_resolve_item(lost_item.id, OWNER_ID)

    statuses = {t.type: t.status.value for t in claim_engine.list_user_threads(OWNER_ID)}
    assert statuses == {ThreadType.support: "closed", ThreadType.item_match: "closed"}


# -------------------------------------------------------------------
# API
# -------------------------------------------------------------------

def test_matches_endpoint(client, auth_user, lost_item, candidates):
    """GET /admin/items/{id}/matches → scored candidates, best first."""
    auth_user("admin", ADMIN_ID)
    matches = client.get(f"/admin/items/{lost_item.id}/matches").json()["matches"]

    assert [m["score"] for m in matches] == [90, 40]
    assert matches[0]["item"]["title"] == "Red Wallet"


def test_matches_endpoint_admin_only(client, auth_user, lost_item):
    """GET /admin/items/{id}/matches → 403 for regular users."""
    auth_user("user", OWNER_ID)
    assert client.get(f"/admin/items/{lost_item.id}/matches").status_code == 403


def test_match_found_override_endpoint(client, auth_user, lost_item, candidates):
    """PATCH /admin/items/{id}/status → match_found with the matching found item."""
    auth_user("admin", ADMIN_ID)
    response = client.patch(
        f"/admin/items/{lost_item.id}/status",
        json={"status": "match_found", "match_item_id": str(candidates["wallet"].id)},
    )
    assert response.json() == {"ok": True, "status": "match_found"}

    auth_user("user", OWNER_ID)
    types = [t["type"] for t in client.get("/threads/mine").json()["threads"]]
    assert sorted(types) == ["item_match", "support"]
