# Overview: Typed publish/subscribe channel for context and auth changes.

"""
Event Channel

Subscribers register per event type and receive the event object itself.
Delivery is synchronous and in subscription order. A subscriber that raises
is logged with its traceback and skipped; the remaining subscribers still
receive the event and the publisher never sees the error.

Events are published only after the change they describe has been applied
and persisted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable

from .entities import Business, Property

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BusinessChanged:
    business: Business | None


@dataclass(frozen=True)
class PropertyChanged:
    property: Property | None


@dataclass(frozen=True)
class AuthStateChanged:
    identity: Any  # Identity or None on sign-out


class EventBus:
    def __init__(self):
        self._subscribers: dict[type, list[Callable]] = {}
        self._lock = Lock()

    def subscribe(self, event_type: type, callback: Callable) -> Callable[[], None]:
        """Register callback for event_type. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(event_type, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def publish(self, event) -> int:
        """Deliver event to every subscriber of its type. Returns the delivered count."""
        with self._lock:
            callbacks = list(self._subscribers.get(type(event), []))

        delivered = 0
        for callback in callbacks:
            try:
                callback(event)
                delivered += 1
            except Exception:
                logger.exception("Subscriber %r failed handling %s", callback, type(event).__name__)
        return delivered

    def subscriber_count(self, event_type: type) -> int:
        with self._lock:
            return len(self._subscribers.get(event_type, []))
