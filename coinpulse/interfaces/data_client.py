"""
DataClient interface.

Defines the contract the dashboard uses to fetch market data.
"""

from abc import ABC, abstractmethod

from coinpulse.client.types import CatalogEntry, EntitySnapshot, HistoricalSeries


class DataClient(ABC):
    """
    Abstract base class for market data sources.

    All methods are coroutines and may raise on network or API errors,
    except ``get_historical_series`` which reports failure as ``None``.
    """

    @abstractmethod
    async def get_top_entities(self, limit: int) -> list[EntitySnapshot]:
        """
        Get the top coins by market cap.

        Args:
            limit: Number of coins to return

        Returns:
            Snapshots ordered by rank.
        """
        pass

    @abstractmethod
    async def get_entities_by_ids(self, ids: list[str]) -> list[EntitySnapshot]:
        """
        Get snapshots for specific coin ids.

        Args:
            ids: Coin identifiers

        Returns:
            Snapshots in server order; empty when ``ids`` is empty.
        """
        pass

    @abstractmethod
    async def search_entities(self, query: str) -> list[CatalogEntry]:
        """
        Search the coin catalog by name, symbol or id.

        Args:
            query: Free-text query

        Returns:
            Matching catalog entries (possibly empty).
        """
        pass

    @abstractmethod
    async def get_historical_series(self, entity_id: str) -> HistoricalSeries | None:
        """
        Get the recent price history for one coin.

        Args:
            entity_id: Coin identifier

        Returns:
            Series, or None if it could not be fetched.
        """
        pass

    async def get_search_results(self, query: str) -> list[EntitySnapshot]:
        """Search the catalog and return full snapshots for the matches."""
        matches = await self.search_entities(query)
        ids = [entry.id for entry in matches]
        if not ids:
            return []
        return await self.get_entities_by_ids(ids)

    async def close(self) -> None:
        """Release network resources."""
        return None
