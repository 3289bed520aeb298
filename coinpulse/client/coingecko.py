"""
Async CoinGecko REST API client.

Handles API key headers, request logging, latency tracking and the cached coin
catalog used for search. Retries are not done here: callers wrap the calls they
want retried in ``retry_async``.
"""

import time
from logging import Logger
from typing import TYPE_CHECKING, Any

import httpx

from coinpulse.client.redaction import redact_params, safe_log_request
from coinpulse.client.types import CatalogEntry, EntitySnapshot, HistoricalSeries
from coinpulse.interfaces.data_client import DataClient
from coinpulse.runtime.cache import CacheInfo, ExpiringCache

if TYPE_CHECKING:
    from coinpulse.config import Settings

API_KEY_HEADER = "x-cg-demo-api-key"
CATALOG_CACHE_KEY = "coins_list"


class CoinGeckoAPIError(Exception):
    """Raised for CoinGecko HTTP and transport errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AsyncCoinGeckoClient(DataClient):
    """
    Async client for the CoinGecko v3 REST API.

    Handles:
    - Demo API key header
    - Request/response logging with redaction
    - Latency tracking
    - Catalog caching with stale fallback
    """

    def __init__(
        self,
        settings: "Settings",
        logger: Logger,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize CoinGecko client.

        Args:
            settings: Application settings
            logger: Logger instance
            transport: Optional httpx transport (tests)
        """
        self._settings = settings
        self._logger = logger
        self._base_url = settings.base_url
        self._timeout = settings.request_timeout_s
        self._vs_currency = settings.vs_currency
        self._search_limit = settings.search_limit
        self._transport = transport

        self._catalog_cache: ExpiringCache[str, list[CatalogEntry]] = ExpiringCache(
            ttl_seconds=settings.catalog_cache_ttl_s,
            name="catalog",
        )

        # HTTP client
        self._client: httpx.AsyncClient | None = None

        # Latency tracking
        self._last_latency_ms: int = 0
        self._latency_history: list[int] = []
        self._max_history = 100

    @property
    def metrics(self) -> dict[str, Any]:
        """Get connection metrics."""
        avg_latency = (
            sum(self._latency_history) / len(self._latency_history)
            if self._latency_history
            else 0
        )
        return {
            "last_request_latency_ms": self._last_latency_ms,
            "average_latency_ms": round(avg_latency, 1),
            "catalog_cache_hit_rate": round(self._catalog_cache.stats.hit_rate, 1),
        }

    def _get_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._settings.coingecko_api_key:
            headers[API_KEY_HEADER] = self._settings.coingecko_api_key.get_secret_value()
        return headers

    async def _log_request(self, request: httpx.Request) -> None:
        self._logger.debug(
            "CoinGecko request: %s",
            safe_log_request(request.method, str(request.url), dict(request.headers)),
        )

    async def _log_response(self, response: httpx.Response) -> None:
        self._logger.debug(
            "CoinGecko response: status=%d url=%s",
            response.status_code,
            response.request.url.path,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._get_headers(),
                timeout=self._timeout,
                transport=self._transport,
                event_hooks={
                    "request": [self._log_request],
                    "response": [self._log_response],
                },
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        GET a JSON resource.

        Raises:
            CoinGeckoAPIError: Transport error or non-2xx status
        """
        client = await self._get_client()
        start_time = time.perf_counter()
        try:
            response = await client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise CoinGeckoAPIError(f"Request timeout for {path}: {e}") from e
        except httpx.RequestError as e:
            raise CoinGeckoAPIError(f"Request error for {path}: {e}") from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        self._last_latency_ms = latency_ms
        self._latency_history.append(latency_ms)
        if len(self._latency_history) > self._max_history:
            self._latency_history.pop(0)

        if response.status_code == 429:
            raise CoinGeckoAPIError("Rate limited by CoinGecko", status_code=429)
        if response.status_code >= 400:
            self._logger.warning(
                "CoinGecko %s failed: status=%d params=%s",
                path,
                response.status_code,
                redact_params(params),
            )
            raise CoinGeckoAPIError(
                f"HTTP Error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise CoinGeckoAPIError(f"Invalid JSON from {path}") from e

    # =========================================================================
    # Market data
    # =========================================================================

    async def get_markets(
        self,
        ids: list[str] | None = None,
        per_page: int = 10,
        page: int = 1,
        order: str = "market_cap_desc",
    ) -> list[EntitySnapshot]:
        """
        Get market snapshots (``/coins/markets``) with 7d sparklines.

        Args:
            ids: Restrict to these coin ids
            per_page: Page size
            page: Page number (1-based)
            order: Sort order

        Returns:
            List of snapshots in server order
        """
        params: dict[str, Any] = {
            "vs_currency": self._vs_currency,
            "order": order,
            "per_page": per_page,
            "page": page,
            "sparkline": "true",
            "price_change_percentage": "24h",
        }
        if ids:
            params["ids"] = ",".join(ids)

        data = await self._get("/coins/markets", params)
        if not isinstance(data, list):
            raise CoinGeckoAPIError("Unexpected /coins/markets payload")
        return [EntitySnapshot.model_validate(item) for item in data]

    async def get_top_entities(self, limit: int = 10) -> list[EntitySnapshot]:
        """Get top coins by market cap."""
        return await self.get_markets(per_page=limit, page=1)

    async def get_entities_by_ids(self, ids: list[str]) -> list[EntitySnapshot]:
        """Get snapshots for specific ids (at most one page of ``len(ids)``)."""
        if not ids:
            return []
        return await self.get_markets(ids=ids, per_page=max(len(ids), 1))

    async def get_historical_series(
        self,
        entity_id: str,
        days: str = "1",
    ) -> HistoricalSeries | None:
        """
        Get price history (``/coins/{id}/market_chart``).

        Returns:
            Series, or None on any failure (logged)
        """
        params = {"vs_currency": self._vs_currency, "days": days}
        try:
            data = await self._get(f"/coins/{entity_id}/market_chart", params)
            if not data:
                return None
            return HistoricalSeries.from_market_chart(entity_id, data)
        except (CoinGeckoAPIError, ValueError) as e:
            self._logger.error("Failed to fetch history for %s: %s", entity_id, e)
            return None

    # =========================================================================
    # Catalog / search
    # =========================================================================

    async def get_catalog(self) -> list[CatalogEntry]:
        """
        Get the full coin catalog (``/coins/list``), cached.

        Falls back to an expired cache if the refresh fails.

        Raises:
            CoinGeckoAPIError: Refresh failed and nothing is cached
        """
        cached = self._catalog_cache.get(CATALOG_CACHE_KEY)
        if cached is not None:
            return cached

        try:
            self._logger.info("Fetching fresh coin catalog")
            data = await self._get("/coins/list")
            catalog = [CatalogEntry.model_validate(item) for item in data]
        except (CoinGeckoAPIError, ValueError) as e:
            stale = self._catalog_cache.get_stale(CATALOG_CACHE_KEY)
            if stale is not None:
                self._logger.warning("Using expired catalog cache due to API error: %s", e)
                return stale
            raise CoinGeckoAPIError(f"Failed to fetch coin catalog: {e}") from e

        self._catalog_cache.set(CATALOG_CACHE_KEY, catalog)
        self._logger.info("Cached %d coins for search", len(catalog))
        return catalog

    async def search_entities(self, query: str) -> list[CatalogEntry]:
        """Search the cached catalog by name, symbol or id."""
        term = query.strip().lower()
        if not term:
            return []
        catalog = await self.get_catalog()
        return [entry for entry in catalog if entry.matches(term)][: self._search_limit]

    def clear_cache(self) -> None:
        """Drop the cached catalog."""
        self._catalog_cache.clear()
        self._logger.info("CoinGecko catalog cache cleared")

    def cache_info(self) -> CacheInfo:
        """Describe the catalog cache state."""
        return self._catalog_cache.info(CATALOG_CACHE_KEY)
