"""
coinpulse - FastAPI Application

Main entry point for the dashboard client process.
Provides REST API and WebSocket endpoints for a browser front end.
"""

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from coinpulse import __version__
from coinpulse.api.dashboard_routes import DashboardRuntime
from coinpulse.api.dashboard_routes import router as dashboard_router
from coinpulse.api.diagnostics_routes import router as diagnostics_router
from coinpulse.client.coingecko import AsyncCoinGeckoClient
from coinpulse.config import Settings, get_settings
from coinpulse.coordinator import DashboardCoordinator
from coinpulse.interfaces.data_client import DataClient
from coinpulse.logging import clear_session_id, get_logger, set_session_id, setup_logging
from coinpulse.presentation.state import InMemoryChartView, InMemoryTableView
from coinpulse.runtime.event_bus import get_event_bus, reset_event_bus

# Setup logging
setup_logging(level=get_settings().log_level, json_output=get_settings().log_json)
logger = get_logger(__name__)


# =============================================================================
# Response Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    time: str
    uptime_seconds: float
    dashboard_state: str


# =============================================================================
# Application
# =============================================================================


def create_app(
    settings: Settings | None = None,
    data_client: DataClient | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use (defaults to environment settings)
        data_client: Market data client (defaults to a CoinGecko client)

    Returns:
        Configured application
    """
    settings = settings or get_settings()
    start_time = datetime.now(UTC)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan handler."""
        session_id = uuid.uuid4().hex[:8]
        set_session_id(session_id)
        logger.info("Starting coinpulse v%s (session %s)", __version__, session_id)
        logger.info("Server: http://%s:%d", settings.host, settings.port)
        if not settings.has_api_key:
            logger.warning("No CoinGecko API key configured; public rate limits apply")

        client = data_client or AsyncCoinGeckoClient(
            settings, get_logger("coinpulse.client.coingecko")
        )
        bus = get_event_bus()
        table_view = InMemoryTableView()
        chart_view = InMemoryChartView()
        coordinator = DashboardCoordinator(client, settings, table_view, chart_view, bus)

        runtime = DashboardRuntime(
            coordinator=coordinator,
            bus=bus,
            table_view=table_view,
            chart_view=chart_view,
        )
        runtime.start_forwarding()
        app.state.dashboard = runtime

        await coordinator.initialize()

        yield

        # Shutdown
        logger.info("Shutting down coinpulse")
        runtime.stop_forwarding()
        await coordinator.shutdown()
        await client.close()
        app.state.dashboard = None
        reset_event_bus()
        clear_session_id()

    app = FastAPI(
        title="coinpulse",
        description="Live cryptocurrency dashboard client",
        version=__version__,
        lifespan=lifespan,
    )

    # Local front ends only
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(dashboard_router)
    app.include_router(diagnostics_router)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """
        Health check endpoint.

        Returns current status, version, uptime and dashboard state.
        """
        now = datetime.now(UTC)
        runtime: DashboardRuntime | None = getattr(app.state, "dashboard", None)
        dashboard_state = runtime.coordinator.state.value if runtime else "stopped"
        return HealthResponse(
            status="healthy" if dashboard_state == "ready" else "degraded",
            version=__version__,
            time=now.isoformat(),
            uptime_seconds=round((now - start_time).total_seconds(), 2),
            dashboard_state=dashboard_state,
        )

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """
        WebSocket endpoint for real-time updates.

        Streams every dashboard bus event (selection, search, removal,
        list render/update, live chart data) as JSON.
        """
        runtime: DashboardRuntime | None = getattr(app.state, "dashboard", None)
        await websocket.accept()
        if runtime is None:
            await websocket.close(code=1013)
            return

        runtime.websocket_clients.append(websocket)
        logger.info("WebSocket client connected. Total clients: %d", len(runtime.websocket_clients))
        try:
            await websocket.send_json(
                {
                    "type": "connected",
                    "version": __version__,
                    "state": runtime.coordinator.state.value,
                    "timestamp": datetime.now(UTC).isoformat(),
                }
            )
            while True:
                try:
                    data = await websocket.receive_json()
                    await handle_ws_message(websocket, data)
                except WebSocketDisconnect:
                    break
        finally:
            if websocket in runtime.websocket_clients:
                runtime.websocket_clients.remove(websocket)
            logger.info(
                "WebSocket client disconnected. Total clients: %d",
                len(runtime.websocket_clients),
            )

    return app


async def handle_ws_message(websocket: WebSocket, data: dict[str, Any]) -> None:
    """
    Handle incoming WebSocket messages.

    Args:
        websocket: WebSocket connection
        data: Message data
    """
    msg_type = data.get("type")

    if msg_type == "ping":
        await websocket.send_json(
            {
                "type": "pong",
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )
    else:
        logger.warning("Unknown WebSocket message type: %s", msg_type)


app = create_app()


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Run the server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "coinpulse.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
