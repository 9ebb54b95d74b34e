"""In-process publish/subscribe for tracking lifecycle events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    NOTIFICATION_DUE = "notification-due"
    SESSION_STARTED = "session-started"
    SESSION_STOPPED = "session-stopped"
    ACTIVITY_ADDED = "activity-added"


@dataclass(slots=True, frozen=True)
class TrackingEvent:
    kind: EventKind
    data: Any = None


Listener = Callable[[TrackingEvent], None]


@dataclass(slots=True)
class _Subscription:
    listener: Listener
    kinds: frozenset[EventKind] | None


class EventBus:
    """Synchronous callback registry.

    Listeners run in registration order on the emitting call stack. A listener
    that raises is logged and skipped; later listeners still receive the event.
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    def subscribe(
        self,
        listener: Listener,
        kinds: Iterable[EventKind | str] | None = None,
    ) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""

        subscription = _Subscription(
            listener=listener,
            kinds=frozenset(EventKind(kind) for kind in kinds) if kinds is not None else None,
        )
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            try:
                self._subscriptions.remove(subscription)
            except ValueError:
                pass

        return unsubscribe

    def emit(self, kind: EventKind | str, data: Any = None) -> TrackingEvent:
        event = TrackingEvent(kind=EventKind(kind), data=data)
        # snapshot so listeners may unsubscribe while being notified
        for subscription in list(self._subscriptions):
            if subscription.kinds is not None and event.kind not in subscription.kinds:
                continue
            try:
                subscription.listener(event)
            except Exception:
                logger.exception(
                    "Error in event listener", extra={"event_kind": event.kind.value}
                )
        return event

    def clear(self) -> None:
        self._subscriptions.clear()

    def __len__(self) -> int:
        return len(self._subscriptions)


__all__ = ["EventBus", "EventKind", "Listener", "TrackingEvent"]
