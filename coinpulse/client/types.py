"""
Pydantic models for CoinGecko API responses.

All models are immutable: a newer snapshot for the same id replaces the old
instance rather than mutating it.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EntitySnapshot(BaseModel):
    """
    Point-in-time market data for one coin (``/coins/markets`` item).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    name: str
    symbol: str
    current_price: float | None = None
    price_change_percentage_24h: float | None = None
    sparkline: tuple[float, ...] = Field(default=(), alias="sparkline_in_7d")
    image: str | None = None

    @field_validator("sparkline", mode="before")
    @classmethod
    def extract_sparkline(cls, v: Any) -> Any:
        """Accept CoinGecko's ``{"price": [...]}`` wrapper as well as a bare list."""
        if v is None:
            return ()
        if isinstance(v, dict):
            return tuple(p for p in v.get("price", []) if p is not None)
        return v

    def differs_from(self, other: "EntitySnapshot") -> bool:
        """True when any visible market value differs (price, 24h change, sparkline)."""
        return (
            self.current_price != other.current_price
            or self.price_change_percentage_24h != other.price_change_percentage_24h
            or self.sparkline != other.sparkline
        )


class HistoricalSeries(BaseModel):
    """
    Price history for one coin (``/coins/{id}/market_chart``).

    Points are ``(timestamp_ms, price)`` pairs with non-decreasing timestamps.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    points: tuple[tuple[int, float], ...] = ()

    @field_validator("points")
    @classmethod
    def timestamps_non_decreasing(
        cls, v: tuple[tuple[int, float], ...]
    ) -> tuple[tuple[int, float], ...]:
        for (prev_ts, _), (ts, _) in zip(v, v[1:]):
            if ts < prev_ts:
                raise ValueError("series timestamps must be non-decreasing")
        return v

    @classmethod
    def from_market_chart(cls, entity_id: str, data: dict[str, Any]) -> "HistoricalSeries":
        """Build from a ``market_chart`` response body."""
        prices = data.get("prices") or []
        return cls(
            id=entity_id,
            points=tuple((int(ts), float(price)) for ts, price in prices if price is not None),
        )

    @property
    def latest_price(self) -> float | None:
        return self.points[-1][1] if self.points else None

    def __len__(self) -> int:
        return len(self.points)


class CatalogEntry(BaseModel):
    """
    Coin catalog entry (``/coins/list`` item), normalized to lowercase.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str
    symbol: str

    @field_validator("name", "symbol")
    @classmethod
    def lowercase(cls, v: str) -> str:
        return v.lower()

    def matches(self, term: str) -> bool:
        """Substring match on name, symbol or id (``term`` must be lowercase)."""
        return term in self.name or term in self.symbol or term in self.id.lower()
