"""
Shared test doubles for the dashboard tests.
"""

import asyncio
from typing import Any

from coinpulse.client.types import CatalogEntry, EntitySnapshot, HistoricalSeries
from coinpulse.config import Settings
from coinpulse.interfaces.data_client import DataClient

COIN_IDS = [
    "bitcoin",
    "ethereum",
    "tether",
    "binancecoin",
    "solana",
    "ripple",
    "usd-coin",
    "cardano",
    "dogecoin",
    "tron",
]


def coin(entity_id: str, price: float = 100.0, change: float = 1.0) -> EntitySnapshot:
    """Build a snapshot with readable defaults."""
    return EntitySnapshot(
        id=entity_id,
        name=entity_id.replace("-", " ").title(),
        symbol=entity_id[:3],
        current_price=price,
        price_change_percentage_24h=change,
        sparkline=(price * 0.9, price),
    )


def fast_settings(**overrides: Any) -> Settings:
    """Settings with short timings so coordinator tests run quickly."""
    values: dict[str, Any] = {
        "table_poll_interval_s": 60.0,
        "chart_poll_interval_s": 60.0,
        "initial_load_initial_delay_s": 0.01,
        "search_initial_delay_s": 0.01,
        "auto_select_delay_s": 0.01,
        "search_fallback_delay_s": 0.05,
        "removal_animation_s": 0.01,
        "search_debounce_s": 0.01,
    }
    values.update(overrides)
    return Settings(**values)


class FakeDataClient(DataClient):
    """In-memory data client recording every call."""

    def __init__(self, snapshots: list[EntitySnapshot] | None = None) -> None:
        if snapshots is None:
            snapshots = [coin(entity_id, price=1000.0 - i) for i, entity_id in enumerate(COIN_IDS)]
        self.snapshots: dict[str, EntitySnapshot] = {s.id: s for s in snapshots}
        self.top_order = [s.id for s in snapshots]

        self.top_failures = 0
        self.search_error: Exception | None = None
        self.search_gate: asyncio.Event | None = None

        self.top_calls = 0
        self.by_ids_calls: list[list[str]] = []
        self.search_calls: list[str] = []
        self.history_calls: list[str] = []
        self.closed = False

    async def get_top_entities(self, limit: int) -> list[EntitySnapshot]:
        self.top_calls += 1
        if self.top_failures > 0:
            self.top_failures -= 1
            raise ConnectionError("network down")
        return [self.snapshots[i] for i in self.top_order[:limit]]

    async def get_entities_by_ids(self, ids: list[str]) -> list[EntitySnapshot]:
        self.by_ids_calls.append(list(ids))
        return [self.snapshots[i] for i in ids if i in self.snapshots]

    async def search_entities(self, query: str) -> list[CatalogEntry]:
        self.search_calls.append(query)
        if self.search_gate is not None:
            await self.search_gate.wait()
        if self.search_error is not None:
            raise self.search_error
        term = query.lower()
        entries = [CatalogEntry(id=s.id, name=s.name, symbol=s.symbol) for s in self.snapshots.values()]
        return [entry for entry in entries if entry.matches(term)]

    async def get_historical_series(self, entity_id: str) -> HistoricalSeries | None:
        self.history_calls.append(entity_id)
        return HistoricalSeries(id=entity_id, points=((1_000, 1.0), (2_000, 2.0)))

    async def close(self) -> None:
        self.closed = True
