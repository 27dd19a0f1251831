"""
Tests for the Admin module - dashboard, moderation queue and overrides.
"""

import pytest

from conftest import ADMIN_ID, CLAIMANT_ID, OWNER_ID

FOUND = {
    "kind": "found",
    "title": "Grey Backpack",
    "description": "Backpack with a laptop sleeve, no name tag.",
    "category": "Bags",
    "station": "Masjid Jamek",
    "mode": "LRT",
}

LOST = {
    "kind": "lost",
    "title": "Student Card",
    "description": "University student card in a blue holder.",
    "category": "Documents",
    "station": "Masjid Jamek",
}


@pytest.fixture
def seeded(client, auth_user):
    auth_user("admin", ADMIN_ID)
    found_id = client.post("/items/create", json=FOUND).json()["id"]

    auth_user("user", OWNER_ID)
    lost_id = client.post("/items/create", json=LOST).json()["id"]

    auth_user("user", CLAIMANT_ID)
    claim_id = client.post("/claims/create", json={"item_id": found_id, "reason": "My laptop is inside"}).json()["claim_id"]

    auth_user("admin", ADMIN_ID)
    return {"found": found_id, "lost": lost_id, "claim": claim_id}


def test_admin_only(client, auth_user):
    """GET /admin/stats → 403 for regular users."""
    auth_user("user", OWNER_ID)
    assert client.get("/admin/stats").status_code == 403


def test_stats(client, seeded):
    """GET /admin/stats → counts items, claims and open tickets."""
    stats = client.get("/admin/stats").json()
    assert stats["total_lost"] == 1
    assert stats["total_found"] == 1
    assert stats["active_claims"] == 1
    assert stats["resolved_items"] == 0
    assert stats["open_threads"] == 1

    client.post(f"/claims/{seeded['claim']}/decision", json={"decision": "approve"})
    stats = client.get("/admin/stats").json()
    assert stats["active_claims"] == 0
    assert stats["resolved_items"] == 1
    assert stats["claims_approved_current_month"] == 1


def test_claims_queue(client, seeded):
    """GET /admin/claims → claims joined with their item."""
    claims = client.get("/admin/claims", params={"status": "submitted"}).json()
    assert len(claims) == 1
    assert claims[0]["item_title"] == "Grey Backpack"
    assert claims[0]["claimant_id"] == CLAIMANT_ID

    assert client.get("/admin/claims", params={"status": "approved"}).json() == []


def test_item_status_override(client, seeded):
    """PATCH /admin/items/{id}/status → manual status change."""
    response = client.patch(f"/admin/items/{seeded['lost']}/status", json={"status": "match_found"})
    assert response.json() == {"ok": True, "status": "match_found"}


def test_override_cannot_resolve(client, seeded):
    """PATCH /admin/items/{id}/status → 400 for resolved."""
    response = client.patch(f"/admin/items/{seeded['lost']}/status", json={"status": "resolved"})
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_transition"


def test_override_blocked_by_pending_claim(client, seeded):
    """PATCH /admin/items/{id}/status → 409 while a claim is under review."""
    response = client.patch(f"/admin/items/{seeded['found']}/status", json={"status": "closed"})
    assert response.status_code == 409


def test_thread_status(client, seeded):
    """PATCH /admin/threads/{id}/status → ticket workflow."""
    thread = client.get("/admin/threads").json()["threads"][0]

    response = client.patch(f"/admin/threads/{thread['id']}/status", json={"status": "resolved"})
    assert response.json()["status"] == "resolved"

    response = client.patch(f"/admin/threads/{thread['id']}/status", json={"status": "open"})
    assert response.status_code == 409


def test_retry_notifications(client, seeded):
    """POST /admin/notifications/retry → nothing pending after clean deliveries."""
    response = client.post("/admin/notifications/retry")
    assert response.json() == {"ok": True, "delivered": 0, "pending": 0}
