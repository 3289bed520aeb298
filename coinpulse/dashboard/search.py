"""
Search box input handling.

Typing is debounced; emptying the box clears the search. Submitting publishes
the trimmed query. Guards on query length and repeats live in the coordinator.
"""

import asyncio

from coinpulse.runtime.event_bus import EventBus, SearchCleared, SearchSubmitted, Topic


class SearchBox:
    """Turns raw input into search lifecycle events."""

    def __init__(self, bus: EventBus, debounce_s: float = 0.3) -> None:
        self._bus = bus
        self._debounce_s = debounce_s
        self._value = ""
        self._pending: asyncio.TimerHandle | None = None

    @property
    def value(self) -> str:
        return self._value.strip()

    def on_input(self, text: str) -> None:
        """Record typed text; publish a clear once it settles empty."""
        self._value = text
        if self._pending is not None:
            self._pending.cancel()
        self._pending = asyncio.get_running_loop().call_later(
            self._debounce_s, self._settle
        )

    def _settle(self) -> None:
        self._pending = None
        if not self.value:
            self._bus.publish(Topic.SEARCH_CLEARED, SearchCleared())

    def submit(self, text: str | None = None) -> bool:
        """
        Publish a search for ``text`` (or the current value).

        Returns:
            False when the trimmed query is empty
        """
        if text is not None:
            self._value = text
        query = self.value
        if not query:
            return False
        self._bus.publish(Topic.SEARCH_SUBMITTED, SearchSubmitted(query=query))
        return True

    def clear(self) -> None:
        """Empty the box and publish a clear immediately."""
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._value = ""
        self._bus.publish(Topic.SEARCH_CLEARED, SearchCleared())

    def close(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
