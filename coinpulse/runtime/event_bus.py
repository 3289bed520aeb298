"""
Event bus for internal pub/sub messaging.

Provides decoupled communication between the dashboard components. Topics form
a closed set and every topic carries exactly one payload type, so a publisher
cannot send a malformed event and a subscriber always knows what it receives.

Dispatch is synchronous and single-threaded: ``publish`` runs every handler
registered for the topic, in subscription order, before returning. A handler
that wants to do asynchronous work schedules it itself.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from coinpulse.client.types import EntitySnapshot, HistoricalSeries
from coinpulse.logging import get_logger

logger = get_logger(__name__)


class Topic(str, Enum):
    """Event channels known to the dashboard."""

    # Selection
    SELECTION_CHANGED = "entity.selected"

    # Search lifecycle
    SEARCH_SUBMITTED = "search.submitted"
    SEARCH_CLEARED = "search.cleared"

    # Row removal
    REMOVAL_REQUESTED = "entity.remove_requested"
    REMOVAL_COMPLETED = "list.entity_removed"

    # List lifecycle
    LIST_RENDERED = "list.rendered"
    LIST_UPDATED = "list.updated"

    # Live chart data
    LIVE_DATA_DELIVERED = "entity.live_data"


@dataclass(frozen=True)
class SelectionChanged:
    id: str
    snapshot: EntitySnapshot


@dataclass(frozen=True)
class SearchSubmitted:
    query: str


@dataclass(frozen=True)
class SearchCleared:
    pass


@dataclass(frozen=True)
class RemovalRequested:
    id: str
    name: str = ""


@dataclass(frozen=True)
class RemovalCompleted:
    id: str


@dataclass(frozen=True)
class ListRendered:
    count: int


@dataclass(frozen=True)
class ListUpdated:
    count: int


@dataclass(frozen=True)
class LiveDataDelivered:
    id: str
    snapshot: EntitySnapshot
    series: HistoricalSeries


Payload = (
    SelectionChanged
    | SearchSubmitted
    | SearchCleared
    | RemovalRequested
    | RemovalCompleted
    | ListRendered
    | ListUpdated
    | LiveDataDelivered
)

TOPIC_PAYLOADS: dict[Topic, type] = {
    Topic.SELECTION_CHANGED: SelectionChanged,
    Topic.SEARCH_SUBMITTED: SearchSubmitted,
    Topic.SEARCH_CLEARED: SearchCleared,
    Topic.REMOVAL_REQUESTED: RemovalRequested,
    Topic.REMOVAL_COMPLETED: RemovalCompleted,
    Topic.LIST_RENDERED: ListRendered,
    Topic.LIST_UPDATED: ListUpdated,
    Topic.LIVE_DATA_DELIVERED: LiveDataDelivered,
}

# Type for event handlers
EventHandler = Callable[[Any], None]


class _Registration:
    """One handler registered on one topic."""

    __slots__ = ("topic", "handler")

    def __init__(self, topic: Topic, handler: EventHandler) -> None:
        self.topic = topic
        self.handler = handler


class Subscription:
    """
    Handle returned by ``EventBus.subscribe``.

    Calling it removes exactly the registration it was created for. Further
    calls do nothing.
    """

    def __init__(self, bus: "EventBus", registration: _Registration) -> None:
        self._bus = bus
        self._registration: _Registration | None = registration

    @property
    def active(self) -> bool:
        """True until the subscription has been cancelled."""
        return self._registration is not None

    def __call__(self) -> None:
        if self._registration is None:
            return
        self._bus._remove(self._registration)
        self._registration = None

    unsubscribe = __call__


class EventBus:
    """
    Synchronous event bus for internal pub/sub.

    Supports:
    - Multiple handlers per topic, called in subscription order
    - Per-handler fault isolation (a failing handler is logged, not raised)
    - Idempotent unsubscribe handles
    """

    def __init__(self) -> None:
        self._handlers: dict[Topic, list[_Registration]] = {}

    def subscribe(self, topic: Topic | str, handler: EventHandler) -> Subscription:
        """
        Subscribe to a topic.

        Args:
            topic: Topic to subscribe to
            handler: Callable receiving the topic's payload

        Returns:
            Subscription handle; call it to unsubscribe
        """
        topic = Topic(topic)
        registration = _Registration(topic, handler)
        self._handlers.setdefault(topic, []).append(registration)
        return Subscription(self, registration)

    def publish(self, topic: Topic | str, payload: Payload) -> None:
        """
        Publish a payload to all current subscribers of a topic.

        Args:
            topic: Topic to publish on
            payload: Payload instance matching the topic

        Raises:
            ValueError: Unknown topic
            TypeError: Payload type does not match the topic
        """
        topic = Topic(topic)
        expected = TOPIC_PAYLOADS[topic]
        if not isinstance(payload, expected):
            raise TypeError(
                f"{topic.value} expects {expected.__name__}, got {type(payload).__name__}"
            )

        # Snapshot so handlers may (un)subscribe while we dispatch
        registrations = list(self._handlers.get(topic, ()))
        for registration in registrations:
            try:
                registration.handler(payload)
            except Exception:
                logger.exception("Error in event handler for %s", topic.value)

    def handler_count(self, topic: Topic | str) -> int:
        """Number of handlers currently registered for a topic."""
        return len(self._handlers.get(Topic(topic), ()))

    def clear(self) -> None:
        """Remove all handlers."""
        self._handlers.clear()

    def _remove(self, registration: _Registration) -> None:
        registrations = self._handlers.get(registration.topic)
        if not registrations:
            return
        for index, candidate in enumerate(registrations):
            if candidate is registration:
                del registrations[index]
                break


# Global event bus instance
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the global event bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Reset the global event bus (for testing)."""
    global _event_bus
    _event_bus = None
