import pytest

from app.services import errors
from app.services.events import Event, EventBus

from conftest import ADMIN_ID, CLAIMANT_ID


def test_subscriber_filters_by_topic_and_key():
    bus = EventBus()
    everything, claims, one_claim = [], [], []

    bus.subscribe(everything.append)
    bus.subscribe(claims.append, topic="claims")
    bus.subscribe(one_claim.append, topic="claims", key="c1")

    bus.publish(Event("items", "i1", "created"))
    bus.publish(Event("claims", "c1", "submitted"))
    bus.publish(Event("claims", "c2", "submitted"))

    assert len(everything) == 3
    assert [e.key for e in claims] == ["c1", "c2"]
    assert [e.key for e in one_claim] == ["c1"]


def test_unsubscribe_stops_delivery():
    bus = EventBus()
    received = []

    sub = bus.subscribe(received.append)
    bus.publish(Event("items", "i1", "created"))
    sub.unsubscribe()
    sub.unsubscribe()
    bus.publish(Event("items", "i2", "created"))

    assert [e.key for e in received] == ["i1"]


def test_failing_subscriber_does_not_block_others():
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(broken)
    bus.subscribe(received.append)

    bus.publish(Event("threads", "t1", "message"))

    assert len(received) == 1


def test_engine_publishes_after_commit(claim_engine, event_bus, found_item):
    received = []
    event_bus.subscribe(received.append, topic="claims")

    claim = claim_engine.create_claim(found_item.id, CLAIMANT_ID, "mine")
    claim_engine.decide_claim(claim.id, "approve", ADMIN_ID)

    assert [e.action for e in received] == ["created", "approve"]
    assert {e.key for e in received} == {str(claim.id)}


def test_failed_operation_publishes_nothing(claim_engine, event_bus, lost_item):
    received = []
    event_bus.subscribe(received.append)

    with pytest.raises(errors.Unauthorized):
        claim_engine.self_resolve_item(lost_item.id, "stranger")

    assert received == []


def test_notification_events_are_keyed_by_user(claim_engine, event_bus, found_item):
    received = []
    event_bus.subscribe(received.append, topic="notifications", key=ADMIN_ID)

    claim_engine.create_claim(found_item.id, CLAIMANT_ID, "mine")

    assert [e.action for e in received] == ["claim_created"]
