"""
Lifecycle events for published snapshots.

Three events exist, each with its own payload type:

    SnapshotEvent.FIRST     -> FirstSnapshot      (first version ever)
    SnapshotEvent.NEW       -> NewSnapshot        (every new version)
    SnapshotEvent.BREAKING  -> BreakingChange     (per flagged section)

Delivery is synchronous and ordered: handlers run in subscription order,
inside the call that publishes the snapshot.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from .diff import DiffEntry
    from .history import SnapshotVersion

logger = logging.getLogger(__name__)


class SnapshotEvent(str, Enum):
    """Lifecycle signals emitted by the engine."""

    FIRST = "ghii:version:first"
    NEW = "ghii:version:new"
    BREAKING = "ghii:version:breaking"


@dataclass(frozen=True, slots=True)
class FirstSnapshot:
    """The engine published its very first version."""

    event: SnapshotEvent = field(default=SnapshotEvent.FIRST, init=False)


@dataclass(frozen=True, slots=True)
class NewSnapshot:
    """A new distinct version was published."""

    version: SnapshotVersion
    diff: list[DiffEntry]
    event: SnapshotEvent = field(default=SnapshotEvent.NEW, init=False)


@dataclass(frozen=True, slots=True)
class BreakingChange:
    """A section changed in a way its predicate flags as incompatible."""

    section: str
    old_value: Any
    new_value: Any
    event: SnapshotEvent = field(default=SnapshotEvent.BREAKING, init=False)


LifecycleEvent = Union[FirstSnapshot, NewSnapshot, BreakingChange]
Handler = Callable[[Any], None]


@dataclass(eq=False, slots=True)
class _Subscription:
    handler: Handler
    once: bool = False


class EventBus:
    """
    Typed publish/subscribe table for SnapshotEvent.

    One subscriber list per event, created up front. Handler errors are
    logged and do not stop delivery to the remaining handlers.

    Example:
        bus = EventBus()
        unsubscribe = bus.on(SnapshotEvent.NEW, lambda e: print(e.diff))
        bus.emit(NewSnapshot(version=v, diff=[]))
        unsubscribe()
    """

    def __init__(self) -> None:
        self._subscribers: dict[SnapshotEvent, list[_Subscription]] = {
            event: [] for event in SnapshotEvent
        }

    def on(self, event: SnapshotEvent, handler: Handler) -> Callable[[], None]:
        """
        Subscribe a handler.

        Returns:
            Callable removing this subscription
        """
        return self._add(SnapshotEvent(event), _Subscription(handler))

    def once(self, event: SnapshotEvent, handler: Handler) -> Callable[[], None]:
        """Subscribe a handler that is removed after its first delivery."""
        return self._add(SnapshotEvent(event), _Subscription(handler, once=True))

    def off(self, event: SnapshotEvent, handler: Handler) -> bool:
        """
        Remove the first subscription of `handler` for `event`.

        Returns:
            True if a subscription was removed
        """
        subscribers = self._subscribers[SnapshotEvent(event)]
        for sub in subscribers:
            if sub.handler == handler:
                subscribers.remove(sub)
                return True
        return False

    def emit(self, payload: LifecycleEvent) -> None:
        """Deliver a payload to every current subscriber of its event."""
        event = payload.event
        subscribers = list(self._subscribers[event])
        if not subscribers:
            logger.debug(f"[events] No subscribers for {event.value}")
            return

        for sub in subscribers:
            if sub.once:
                self._discard(event, sub)
            try:
                sub.handler(payload)
            except Exception:
                logger.exception(f"[events] Handler {sub.handler!r} failed for {event.value}")

    def listener_count(self, event: SnapshotEvent) -> int:
        return len(self._subscribers[SnapshotEvent(event)])

    def clear(self, event: SnapshotEvent | None = None) -> None:
        """Remove all subscriptions, or only those of one event."""
        if event is None:
            for subscribers in self._subscribers.values():
                subscribers.clear()
        else:
            self._subscribers[SnapshotEvent(event)].clear()

    def _add(self, event: SnapshotEvent, sub: _Subscription) -> Callable[[], None]:
        self._subscribers[event].append(sub)

        def unsubscribe() -> None:
            self._discard(event, sub)

        return unsubscribe

    def _discard(self, event: SnapshotEvent, sub: _Subscription) -> None:
        subscribers = self._subscribers[event]
        if sub in subscribers:
            subscribers.remove(sub)
