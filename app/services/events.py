"""
In-process publish/subscribe used to fan out change events.

Stores never publish; the claim engine and the notification dispatcher
publish once their transaction has committed, so subscribers only ever see
durable state.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Event:
    topic: str  # "items", "claims", "threads", "notifications"
    key: str  # id of the changed record, or user id for notifications
    action: str
    payload: Dict[str, Any] = field(default_factory=dict)


class Subscription:
    def __init__(self, bus: "EventBus", callback: Callable[[Event], None], topic: Optional[str], key: Optional[str]):
        self._bus = bus
        self.callback = callback
        self.topic = topic
        self.key = key

    def matches(self, event: Event) -> bool:
        if self.topic is not None and event.topic != self.topic:
            return False
        if self.key is not None and event.key != self.key:
            return False
        return True

    def unsubscribe(self):
        self._bus._remove(self)


class EventBus:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []

    def subscribe(
        self,
        callback: Callable[[Event], None],
        topic: Optional[str] = None,
        key: Optional[str] = None,
    ) -> Subscription:
        sub = Subscription(self, callback, topic, key)
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def _remove(self, sub: Subscription):
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def publish(self, event: Event):
        with self._lock:
            targets = [s for s in self._subscriptions if s.matches(event)]

        for sub in targets:
            try:
                sub.callback(event)
            except Exception:
                logger.exception("Subscriber failed for %s/%s %s", event.topic, event.key, event.action)


bus = EventBus()
