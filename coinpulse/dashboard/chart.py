"""
Live chart feed.

Forwards live data for the selected coin to the chart view and ignores
deliveries for anything else.
"""

from coinpulse.interfaces.views import ChartView
from coinpulse.logging import get_logger
from coinpulse.runtime.event_bus import (
    EventBus,
    LiveDataDelivered,
    SelectionChanged,
    Subscription,
    Topic,
)

logger = get_logger(__name__)


class LiveChart:
    """Chart component bound to the selection and live-data topics."""

    def __init__(self, view: ChartView, bus: EventBus) -> None:
        self._view = view
        self._selected_id: str | None = None
        self._last_payload: LiveDataDelivered | None = None
        self._subscriptions: list[Subscription] = [
            bus.subscribe(Topic.SELECTION_CHANGED, self._on_selection),
            bus.subscribe(Topic.LIVE_DATA_DELIVERED, self._on_live_data),
        ]

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    @property
    def last_payload(self) -> LiveDataDelivered | None:
        return self._last_payload

    def _on_selection(self, payload: SelectionChanged) -> None:
        if payload.id == self._selected_id:
            return
        self._selected_id = payload.id
        self._last_payload = None
        self._view.show_loading(payload.snapshot.name)

    def _on_live_data(self, payload: LiveDataDelivered) -> None:
        if payload.id != self._selected_id:
            logger.debug("Dropping live data for unselected %s", payload.id)
            return
        self._last_payload = payload
        self._view.push_live_data(payload.snapshot, payload.series)

    def close(self) -> None:
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []
