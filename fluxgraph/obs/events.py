"""Event bus primitives for graph mutation notifications."""
from __future__ import annotations

import itertools
from collections import deque
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Iterable, List, Optional

from fluxgraph.graph.ids import utc_now

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 1000


class GraphEvent(str, Enum):
    """Mutation notifications published by :class:`~fluxgraph.graph.store.GraphStore`."""

    NODE_ADDED = "node:added"
    NODE_DELETED = "node:deleted"
    NODE_UPDATED = "node:updated"
    EDGE_ADDED = "edge:added"
    EDGE_DELETED = "edge:deleted"
    EDGE_UPDATED = "edge:updated"
    GRAPH_CLEARED = "graph:cleared"
    GRAPH_LOADED = "graph:loaded"


@dataclass
class Event:
    """Simple event structure stored in the event bus."""

    ts: str
    type: str
    payload: Any = None


EventCallback = Callable[[Event], None]


@dataclass
class _Subscription:
    id: int
    type: Optional[str]
    callback: EventCallback
    once: bool = False


def _event_name(event_type: GraphEvent | str) -> str:
    return event_type.value if isinstance(event_type, GraphEvent) else str(event_type)


@dataclass
class EventBus:
    """Synchronous in-memory event bus with a bounded history.

    Subscribers run in registration order inside :meth:`emit`. A subscriber
    that raises is logged and skipped so the remaining subscribers still see
    the event. Only the latest ``max_history`` events are kept; ``None``
    keeps all of them.
    """

    max_history: Optional[int] = DEFAULT_MAX_HISTORY
    events: Deque[Event] = field(init=False, repr=False)
    _subscriptions: List[_Subscription] = field(default_factory=list, repr=False)
    _counter: itertools.count = field(default_factory=itertools.count, repr=False)

    def __post_init__(self) -> None:
        if self.max_history is not None and self.max_history < 0:
            raise ValueError("max_history must be non-negative or None")
        self.events = deque(maxlen=self.max_history)

    def on(self, event_type: GraphEvent | str, callback: EventCallback) -> Callable[[], None]:
        """Subscribe ``callback`` to ``event_type``; returns an unsubscribe callable."""

        return self._subscribe(_event_name(event_type), callback, once=False)

    def once(self, event_type: GraphEvent | str, callback: EventCallback) -> Callable[[], None]:
        """Subscribe ``callback`` for the next ``event_type`` only."""

        return self._subscribe(_event_name(event_type), callback, once=True)

    def on_all(self, callback: EventCallback) -> Callable[[], None]:
        """Subscribe ``callback`` to every event."""

        return self._subscribe(None, callback, once=False)

    def emit(self, event_type: GraphEvent | str, payload: Any = None) -> Event:
        """Create, store and dispatch a new :class:`Event`."""

        event = Event(ts=utc_now(), type=_event_name(event_type), payload=payload)
        self.events.append(event)

        for subscription in list(self._subscriptions):
            if subscription.type is not None and subscription.type != event.type:
                continue
            if subscription.once:
                self._unsubscribe(subscription.id)
            try:
                subscription.callback(event)
            except Exception:
                logger.exception("Error in event handler for %s", event.type)
        return event

    def history(self) -> Iterable[Event]:
        """Return the retained events, oldest first."""

        return tuple(self.events)

    def subscriber_count(self, event_type: GraphEvent | str | None = None) -> int:
        if event_type is None:
            return len(self._subscriptions)
        name = _event_name(event_type)
        return sum(1 for item in self._subscriptions if item.type == name)

    def clear(self) -> None:
        """Drop every subscription and the recorded history."""

        self._subscriptions.clear()
        self.events.clear()

    def _subscribe(self, event_type: Optional[str], callback: EventCallback, *, once: bool) -> Callable[[], None]:
        subscription = _Subscription(id=next(self._counter), type=event_type, callback=callback, once=once)
        self._subscriptions.append(subscription)
        return lambda: self._unsubscribe(subscription.id)

    def _unsubscribe(self, subscription_id: int) -> None:
        self._subscriptions = [item for item in self._subscriptions if item.id != subscription_id]


__all__ = ["DEFAULT_MAX_HISTORY", "Event", "EventBus", "GraphEvent"]
