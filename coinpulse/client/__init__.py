"""
CoinGecko data client.
"""

from coinpulse.client.coingecko import AsyncCoinGeckoClient, CoinGeckoAPIError
from coinpulse.client.types import CatalogEntry, EntitySnapshot, HistoricalSeries

__all__ = [
    "AsyncCoinGeckoClient",
    "CatalogEntry",
    "CoinGeckoAPIError",
    "EntitySnapshot",
    "HistoricalSeries",
]
