"""
Diagnostics API routes.

Provides client health and performance details:
- CoinGecko request latency
- Catalog cache state
- Poll session stats
- Recent log lines
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from coinpulse.api.dashboard_routes import DashboardRuntime, get_runtime
from coinpulse.client.coingecko import AsyncCoinGeckoClient
from coinpulse.logging import get_in_memory_logs

router = APIRouter(prefix="/diagnostics", tags=["Diagnostics"])


# =============================================================================
# Response Models
# =============================================================================


class PollSessionDiagnostics(BaseModel):
    """Stats for one live poll session."""

    subject: str
    ticks: int
    errors: int
    deliveries: int
    in_flight: int


class FullDiagnostics(BaseModel):
    """Complete diagnostics snapshot."""

    state: str
    websocket_clients: int
    client: dict[str, Any] = Field(default_factory=dict)
    catalog_cache: dict[str, Any] = Field(default_factory=dict)
    poll_sessions: list[PollSessionDiagnostics] = Field(default_factory=list)
    timestamp: str


class LogsResponse(BaseModel):
    """Recent in-memory log entries."""

    logs: list[dict[str, Any]]
    count: int


# =============================================================================
# Endpoints
# =============================================================================


@router.get("", response_model=FullDiagnostics)
async def get_diagnostics(runtime: DashboardRuntime = Depends(get_runtime)) -> FullDiagnostics:
    """Get a diagnostics snapshot."""
    coordinator = runtime.coordinator
    sessions: list[PollSessionDiagnostics] = []
    for subject in coordinator.polling.active_subjects():
        session = coordinator.polling.get(subject)
        if session is None:
            continue
        sessions.append(
            PollSessionDiagnostics(
                subject=str(subject),
                ticks=session.ticks,
                errors=session.errors,
                deliveries=session.deliveries,
                in_flight=session.in_flight,
            )
        )

    client_metrics: dict[str, Any] = {}
    cache: dict[str, Any] = {}
    client = coordinator.client
    if isinstance(client, AsyncCoinGeckoClient):
        client_metrics = client.metrics
        info = client.cache_info()
        cache = {
            "has_value": info.has_value,
            "is_valid": info.is_valid,
            "expires_in_s": round(info.expires_in_s, 1),
            "size": info.size,
        }

    return FullDiagnostics(
        state=coordinator.state.value,
        websocket_clients=len(runtime.websocket_clients),
        client=client_metrics,
        catalog_cache=cache,
        poll_sessions=sessions,
        timestamp=datetime.now(UTC).isoformat(),
    )


@router.get("/logs", response_model=LogsResponse)
async def get_logs(
    level: str = Query(default="INFO", description="Minimum log level"),
    limit: int = Query(default=50, ge=1, le=500, description="Maximum entries"),
) -> LogsResponse:
    """Get recent log entries from memory."""
    logs = get_in_memory_logs(level=level, limit=limit)
    return LogsResponse(logs=logs, count=len(logs))
