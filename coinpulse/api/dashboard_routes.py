"""
Dashboard API routes.

Provides endpoints for:
- Reading the current table/chart view model
- Submitting and clearing searches
- Selecting and removing coins
- Retrying after an error

User actions are published on the event bus; routes never mutate the row
registry or the search state directly.
"""

import asyncio
from dataclasses import dataclass, field, fields
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket
from pydantic import BaseModel, Field

from coinpulse.coordinator import DashboardCoordinator
from coinpulse.logging import get_logger
from coinpulse.presentation.state import InMemoryChartView, InMemoryTableView
from coinpulse.runtime.event_bus import (
    TOPIC_PAYLOADS,
    EventBus,
    Payload,
    RemovalRequested,
    SelectionChanged,
    Subscription,
    Topic,
)

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])
logger = get_logger(__name__)


# =============================================================================
# Runtime container
# =============================================================================


@dataclass
class DashboardRuntime:
    """Everything the routes need for one running dashboard."""

    coordinator: DashboardCoordinator
    bus: EventBus
    table_view: InMemoryTableView
    chart_view: InMemoryChartView
    websocket_clients: list[WebSocket] = field(default_factory=list)
    _subscriptions: list[Subscription] = field(default_factory=list)
    _send_tasks: set["asyncio.Task[None]"] = field(default_factory=set)

    def start_forwarding(self) -> None:
        """Forward every bus topic to connected WebSocket clients."""
        for topic in Topic:
            self._subscriptions.append(
                self.bus.subscribe(topic, lambda payload, t=topic: self._forward(t, payload))
            )

    def stop_forwarding(self) -> None:
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions.clear()
        for task in list(self._send_tasks):
            task.cancel()

    def _forward(self, topic: Topic, payload: Payload) -> None:
        if not self.websocket_clients:
            return
        task = asyncio.get_running_loop().create_task(
            self.broadcast(event_message(topic, payload))
        )
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)

    async def broadcast(self, message: dict[str, Any]) -> None:
        """Send a message to all clients, dropping the ones that disconnected."""
        disconnected: list[WebSocket] = []
        for ws in list(self.websocket_clients):
            try:
                await ws.send_json(message)
            except Exception:
                disconnected.append(ws)
        for ws in disconnected:
            if ws in self.websocket_clients:
                self.websocket_clients.remove(ws)
                logger.info("WebSocket client dropped, %d remaining", len(self.websocket_clients))


def event_message(topic: Topic, payload: Payload) -> dict[str, Any]:
    """Serialize a bus event for WebSocket clients."""
    message: dict[str, Any] = {"type": topic.value}
    for f in fields(TOPIC_PAYLOADS[topic]):
        value = getattr(payload, f.name)
        message[f.name] = value.model_dump(mode="json") if isinstance(value, BaseModel) else value
    return message


def get_runtime(request: Request) -> DashboardRuntime:
    """Get the dashboard runtime attached to the app."""
    runtime: DashboardRuntime | None = getattr(request.app.state, "dashboard", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Dashboard not started")
    return runtime


# =============================================================================
# Request/Response Models
# =============================================================================


class SearchRequest(BaseModel):
    """Search submit request."""

    query: str = Field(..., description="Free-text coin query")


class ActionResponse(BaseModel):
    """Response for user actions."""

    accepted: bool
    state: str
    mode: str


class DashboardResponse(BaseModel):
    """Current dashboard view model."""

    state: str
    mode: str
    search_query: str
    selected_id: str | None
    last_error: str | None
    table: dict[str, Any]
    chart: dict[str, Any]
    poll_subjects: list[str]


def _action(runtime: DashboardRuntime, accepted: bool) -> ActionResponse:
    coordinator = runtime.coordinator
    return ActionResponse(
        accepted=accepted,
        state=coordinator.state.value,
        mode=coordinator.mode.value,
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.get("", response_model=DashboardResponse)
async def get_dashboard(runtime: DashboardRuntime = Depends(get_runtime)) -> DashboardResponse:
    """Get the current dashboard state."""
    coordinator = runtime.coordinator
    return DashboardResponse(
        state=coordinator.state.value,
        mode=coordinator.mode.value,
        search_query=coordinator.search_query,
        selected_id=coordinator.selected_id,
        last_error=coordinator.last_error,
        table=runtime.table_view.to_dict(),
        chart=runtime.chart_view.to_dict(),
        poll_subjects=[str(s) for s in coordinator.polling.active_subjects()],
    )


@router.post("/search", response_model=ActionResponse)
async def submit_search(
    request: SearchRequest,
    runtime: DashboardRuntime = Depends(get_runtime),
) -> ActionResponse:
    """Submit a search query."""
    accepted = runtime.coordinator.search_box.submit(request.query)
    return _action(runtime, accepted)


@router.delete("/search", response_model=ActionResponse)
async def clear_search(runtime: DashboardRuntime = Depends(get_runtime)) -> ActionResponse:
    """Clear the search and return to the top coins."""
    runtime.coordinator.search_box.clear()
    return _action(runtime, True)


@router.post("/back", response_model=ActionResponse)
async def back(runtime: DashboardRuntime = Depends(get_runtime)) -> ActionResponse:
    """Leave the "no results" state and show the previous rows again."""
    return _action(runtime, runtime.coordinator.back())


@router.post("/select/{coin_id}", response_model=ActionResponse)
async def select_coin(
    coin_id: str,
    runtime: DashboardRuntime = Depends(get_runtime),
) -> ActionResponse:
    """Select a coin for the live chart."""
    snapshot = next((c for c in runtime.coordinator.current if c.id == coin_id), None)
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"Coin not in list: {coin_id}")
    runtime.bus.publish(Topic.SELECTION_CHANGED, SelectionChanged(id=coin_id, snapshot=snapshot))
    return _action(runtime, True)


@router.delete("/rows/{coin_id}", response_model=ActionResponse)
async def remove_coin(
    coin_id: str,
    runtime: DashboardRuntime = Depends(get_runtime),
) -> ActionResponse:
    """Remove a coin row."""
    row = runtime.coordinator.table.get_row(coin_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Coin not in table: {coin_id}")
    runtime.bus.publish(
        Topic.REMOVAL_REQUESTED,
        RemovalRequested(id=coin_id, name=row.snapshot.name),
    )
    return _action(runtime, True)


@router.post("/retry", response_model=ActionResponse)
async def retry(runtime: DashboardRuntime = Depends(get_runtime)) -> ActionResponse:
    """Reload the top coins after an error."""
    logger.info("Retry requested (state=%s)", runtime.coordinator.state.value)
    await runtime.coordinator.retry()
    return _action(runtime, True)
