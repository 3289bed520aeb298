"""
Dashboard coordinator.

Composition root of the dashboard: owns the search state and the current coin
list, turns bus events into poll session lifecycles, and drives the table and
chart.

State machine:

    IDLE -> LOADING -> READY (BROWSING | SEARCHING)
    LOADING / search / reload failure -> ERROR -> READY via retry() or the
    timed search fallback
    empty search result -> back() re-renders the rows shown before the search

Every continuation after an ``await`` re-checks that it still belongs to the
latest search/clear/reload before touching state; poll callbacks check that
their session is still the current one.
"""

import asyncio
from collections.abc import Coroutine
from enum import Enum
from typing import Any

from coinpulse.client.types import EntitySnapshot, HistoricalSeries
from coinpulse.config import Settings
from coinpulse.dashboard.chart import LiveChart
from coinpulse.dashboard.search import SearchBox
from coinpulse.interfaces.data_client import DataClient
from coinpulse.interfaces.views import ChartView, TableView
from coinpulse.logging import get_logger
from coinpulse.market_data.polling import PollingStreamFactory, PollSession, PollSubject
from coinpulse.market_data.reconciliation import EntityTable
from coinpulse.runtime.event_bus import (
    EventBus,
    ListRendered,
    LiveDataDelivered,
    RemovalCompleted,
    SearchCleared,
    SearchSubmitted,
    SelectionChanged,
    Subscription,
    Topic,
)
from coinpulse.runtime.retry import retry_async

logger = get_logger(__name__)

LOAD_ERROR_MESSAGE = (
    "Failed to load cryptocurrency data. Please check your connection and try again."
)
SEARCH_ERROR_MESSAGE = "Search failed. Please try again."


class CoordinatorState(str, Enum):
    """Coordinator lifecycle state."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class FeedMode(str, Enum):
    """Which source feeds the table while READY."""

    BROWSING = "browsing"
    SEARCHING = "searching"


class DashboardConstructionError(Exception):
    """Raised when a required presentation component is missing."""

    pass


class DashboardCoordinator:
    """
    Wires the bus, the data client, the poll sessions and the views together.
    """

    def __init__(
        self,
        client: DataClient,
        settings: Settings,
        table_view: TableView | None,
        chart_view: ChartView | None,
        bus: EventBus,
        polling: PollingStreamFactory | None = None,
    ):
        """
        Initialize coordinator.

        Args:
            client: Market data client
            settings: Application settings
            table_view: Table presentation (required)
            chart_view: Chart presentation (required)
            bus: Event bus shared with the presentation layer
            polling: Poll session factory

        Raises:
            DashboardConstructionError: A required view is missing
        """
        missing = [
            name
            for name, view in (("table", table_view), ("chart", chart_view))
            if view is None
        ]
        if missing or table_view is None or chart_view is None:
            logger.error("Failed to initialize dashboard components: missing %s", missing)
            raise DashboardConstructionError(
                f"Required presentation component(s) not found: {', '.join(missing)}"
            )

        self._client = client
        self._settings = settings
        self._bus = bus
        self._polling = polling or PollingStreamFactory()

        self.table = EntityTable(table_view, bus, removal_delay_s=settings.removal_animation_s)
        self.chart = LiveChart(chart_view, bus)
        self.search_box = SearchBox(bus, debounce_s=settings.search_debounce_s)

        self._state = CoordinatorState.IDLE
        self._mode = FeedMode.BROWSING
        self._current: list[EntitySnapshot] = []
        self._search_query = ""
        self._pending_query: str | None = None
        self._generation = 0
        self._last_error: str | None = None
        self._back_target: tuple[FeedMode, str] | None = None

        self._selected: EntitySnapshot | None = None
        self._table_session: PollSession[list[EntitySnapshot]] | None = None
        self._chart_session: PollSession[HistoricalSeries] | None = None

        self._auto_select_handle: asyncio.TimerHandle | None = None
        self._fallback_handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()

        self._subscriptions: list[Subscription] = [
            bus.subscribe(Topic.SEARCH_CLEARED, self._on_search_cleared),
            bus.subscribe(Topic.SEARCH_SUBMITTED, self._on_search_submitted),
            bus.subscribe(Topic.REMOVAL_COMPLETED, self._on_removal_completed),
            bus.subscribe(Topic.LIST_RENDERED, self._on_list_rendered),
            bus.subscribe(Topic.SELECTION_CHANGED, self._on_selection_changed),
        ]
        logger.info("Dashboard components initialized")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def mode(self) -> FeedMode:
        return self._mode

    @property
    def search_query(self) -> str:
        """Active search query ("" when browsing)."""
        return self._search_query

    @property
    def current(self) -> list[EntitySnapshot]:
        return list(self._current)

    @property
    def current_ids(self) -> list[str]:
        return [entity.id for entity in self._current]

    @property
    def selected_id(self) -> str | None:
        """Id of the coin the chart is polling for."""
        return self._selected.id if self._selected else None

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def polling(self) -> PollingStreamFactory:
        return self._polling

    @property
    def client(self) -> DataClient:
        return self._client

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        """Load the top-N list and start polling."""
        if self._state is not CoordinatorState.IDLE:
            logger.warning("Dashboard already initialized (state=%s)", self._state.value)
            return
        await self._load_top(self._generation)
        if self._state is CoordinatorState.READY:
            logger.info("Dashboard initialized with %d coins", len(self._current))

    async def retry(self) -> None:
        """Explicit user retry: drop any search and reload the top-N list."""
        logger.info("Retry requested (state=%s)", self._state.value)
        generation = self._begin_transition()
        self._mode = FeedMode.BROWSING
        self._search_query = ""
        await self._load_top(generation)

    def back(self) -> bool:
        """
        Leave the "no results" state and bring back the rows shown before it.

        Returns:
            False when the table is not showing an empty search result
        """
        if self._back_target is None or not self.table.can_restore or self._transition_pending:
            return False
        mode, query = self._back_target
        self._back_target = None
        self._begin_transition()
        self._mode = mode
        self._search_query = query
        self._state = CoordinatorState.READY
        self._last_error = None
        self._current = self.table.restorable
        logger.info("Back to %d coins (mode=%s)", len(self._current), mode.value)
        self.table.restore()
        return True

    async def drain(self) -> None:
        """Wait until no coordinator task is running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop every timer, task and poll session, then release the bus."""
        for handle in (self._auto_select_handle, self._fallback_handle):
            if handle is not None:
                handle.cancel()
        self._auto_select_handle = None
        self._fallback_handle = None

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        self._table_session = None
        self._chart_session = None
        await self._polling.aclose()

        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []
        self.search_box.close()
        self.chart.close()
        self.table.close()
        self._bus.clear()
        logger.info("Dashboard shut down")

    # =========================================================================
    # Loading
    # =========================================================================

    @property
    def _transition_pending(self) -> bool:
        """A search or top-N reload has been started and not yet settled."""
        return self._state is CoordinatorState.LOADING or self._pending_query is not None

    def _begin_transition(self) -> int:
        """Invalidate in-flight searches/reloads and cancel pending fallback and auto-select."""
        self._generation += 1
        self._pending_query = None
        for handle in (self._fallback_handle, self._auto_select_handle):
            if handle is not None:
                handle.cancel()
        self._fallback_handle = None
        self._auto_select_handle = None
        self._stop_table_updates()
        return self._generation

    async def _load_top(self, generation: int) -> None:
        self._state = CoordinatorState.LOADING
        self.table.show_loading()
        try:
            entities = await retry_async(
                lambda: self._client.get_top_entities(self._settings.top_limit),
                self._settings.initial_load_retry,
                description="top coins load",
            )
        except Exception as e:
            if generation != self._generation:
                return
            logger.error("Failed to load top coins: %s", e)
            self._fail(LOAD_ERROR_MESSAGE)
            return

        if generation != self._generation:
            logger.debug("Discarding stale top coins response")
            return

        self.table.hide_loading()
        self._current = list(entities)
        self._state = CoordinatorState.READY
        self._last_error = None
        self.table.render(self._current)

    def _fail(self, message: str) -> None:
        self._state = CoordinatorState.ERROR
        self._last_error = message
        self.table.show_error(message)

    # =========================================================================
    # Table polling
    # =========================================================================

    def _stop_table_updates(self) -> None:
        if self._table_session is not None:
            self._table_session.stop()
            self._table_session = None

    def _start_table_updates(self) -> None:
        self._stop_table_updates()
        if not self._current:
            return
        ids = [entity.id for entity in self._current]
        session: PollSession[list[EntitySnapshot]] = self._polling.start(
            PollSubject.table(ids),
            self._settings.table_poll_interval_s,
            lambda: self._client.get_entities_by_ids(ids),
        )
        session.on_data(lambda entities: self._on_table_data(session, entities))
        self._table_session = session

    def _on_table_data(
        self,
        session: PollSession[list[EntitySnapshot]],
        entities: list[EntitySnapshot],
    ) -> None:
        if session is not self._table_session:
            return
        self._current = list(entities)
        self.table.update(self._current, animate=True)

    # =========================================================================
    # Bus handlers
    # =========================================================================

    def _on_list_rendered(self, payload: ListRendered) -> None:
        if payload.count > 0 and self._current:
            if self._auto_select_handle is not None:
                self._auto_select_handle.cancel()
            self._auto_select_handle = asyncio.get_running_loop().call_later(
                self._settings.auto_select_delay_s, self._auto_select
            )
        self._start_table_updates()

    def _auto_select(self) -> None:
        self._auto_select_handle = None
        if not self._current:
            return
        first = self._current[0]
        self._bus.publish(Topic.SELECTION_CHANGED, SelectionChanged(id=first.id, snapshot=first))

    def _on_search_submitted(self, payload: SearchSubmitted) -> None:
        query = payload.query.strip()
        if len(query) < self._settings.min_query_length:
            logger.debug("Ignoring short query %r", query)
            return
        if query == self._search_query or query == self._pending_query:
            logger.debug("Ignoring repeated query %r", query)
            return
        previous = (self._mode, self._search_query)
        generation = self._begin_transition()
        self._pending_query = query
        self._mode = FeedMode.SEARCHING
        self._spawn(self._run_search(query, generation, previous))

    async def _run_search(
        self,
        query: str,
        generation: int,
        previous: tuple[FeedMode, str],
    ) -> None:
        self.table.show_loading()
        logger.info("Searching for %r", query)
        try:
            results = await retry_async(
                lambda: self._client.get_search_results(query),
                self._settings.search_retry,
                description=f"search {query!r}",
            )
        except Exception as e:
            if generation != self._generation:
                return
            self._pending_query = None
            logger.error("Search submit failed: %s", e)
            self._fail(SEARCH_ERROR_MESSAGE)
            self._schedule_fallback()
            return

        if generation != self._generation:
            logger.debug("Discarding stale results for %r", query)
            return

        self._pending_query = None
        self._search_query = query
        self._state = CoordinatorState.READY
        self._last_error = None
        self.table.hide_loading()
        if results:
            self._current = list(results)
            self.table.update(self._current)
            self._start_table_updates()
        else:
            if self.table.count:
                self._back_target = previous
            self._current = []
            self.table.show_empty(f'No results found for "{query}"')

    def _schedule_fallback(self) -> None:
        self._fallback_handle = asyncio.get_running_loop().call_later(
            self._settings.search_fallback_delay_s, self._fallback_clear
        )

    def _fallback_clear(self) -> None:
        self._fallback_handle = None
        logger.info("Search fallback: returning to top coins")
        self._bus.publish(Topic.SEARCH_CLEARED, SearchCleared())

    def _on_search_cleared(self, payload: SearchCleared) -> None:
        if self._mode is not FeedMode.SEARCHING:
            return
        self._clear_search()

    def _clear_search(self) -> None:
        generation = self._begin_transition()
        self._mode = FeedMode.BROWSING
        self._search_query = ""
        logger.info("Search cleared, reloading top coins")
        self._spawn(self._load_top(generation))

    def _on_selection_changed(self, payload: SelectionChanged) -> None:
        if self._selected is not None and self._selected.id == payload.id:
            return
        if self._chart_session is not None:
            self._chart_session.stop()
            self._chart_session = None

        entity_id = payload.id
        self._selected = payload.snapshot
        session: PollSession[HistoricalSeries] = self._polling.start(
            PollSubject.chart(entity_id),
            self._settings.chart_poll_interval_s,
            lambda: self._client.get_historical_series(entity_id),
        )
        session.on_data(lambda series: self._on_chart_data(session, entity_id, series))
        self._chart_session = session

    def _on_chart_data(
        self,
        session: PollSession[HistoricalSeries],
        entity_id: str,
        series: HistoricalSeries,
    ) -> None:
        if session is not self._chart_session or self.selected_id != entity_id:
            return
        snapshot = next(
            (entity for entity in self._current if entity.id == entity_id),
            self._selected,
        )
        if snapshot is None:
            return
        self._bus.publish(
            Topic.LIVE_DATA_DELIVERED,
            LiveDataDelivered(id=entity_id, snapshot=snapshot, series=series),
        )

    def _on_removal_completed(self, payload: RemovalCompleted) -> None:
        self._current = [entity for entity in self._current if entity.id != payload.id]
        # A newer search or reload owns the table poll once it settles
        if self._transition_pending or self._state is not CoordinatorState.READY:
            logger.debug("Removal of %s completed while not browsing results", payload.id)
            return
        if not self._current and self._mode is FeedMode.SEARCHING:
            self._clear_search()
            return
        self._start_table_updates()

    # =========================================================================
    # Tasks
    # =========================================================================

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Dashboard task failed", exc_info=task.exception())
