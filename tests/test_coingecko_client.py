"""
Tests for the CoinGecko REST client.

Tests:
- Market snapshot parsing and request parameters
- API key header handling and redaction
- HTTP error mapping
- Catalog caching with stale fallback
- Search composition
"""

import asyncio
import logging
from typing import Any

import httpx
import pytest
import respx
from httpx import Response

from coinpulse.client.coingecko import API_KEY_HEADER, AsyncCoinGeckoClient, CoinGeckoAPIError
from coinpulse.client.redaction import redact_headers, redact_params, safe_log_request
from coinpulse.config import Settings

BASE = "https://api.coingecko.com/api/v3"


def market_item(entity_id: str, price: float = 100.0) -> dict[str, Any]:
    return {
        "id": entity_id,
        "symbol": entity_id[:3],
        "name": entity_id.title(),
        "image": f"https://img.test/{entity_id}.png",
        "current_price": price,
        "market_cap": 1_000_000,
        "price_change_percentage_24h": -1.5,
        "sparkline_in_7d": {"price": [price - 1, price]},
    }


CATALOG = [
    {"id": "bitcoin", "symbol": "BTC", "name": "Bitcoin"},
    {"id": "bitcoin-cash", "symbol": "BCH", "name": "Bitcoin Cash"},
    {"id": "ethereum", "symbol": "ETH", "name": "Ethereum"},
    {"id": "wrapped-bitcoin", "symbol": "WBTC", "name": "Wrapped Bitcoin"},
]


def make_client(**overrides: Any) -> AsyncCoinGeckoClient:
    return AsyncCoinGeckoClient(Settings(**overrides), logging.getLogger("test.coingecko"))


@pytest.fixture
def cg_client() -> AsyncCoinGeckoClient:
    """Client without an API key."""
    return make_client()


class TestMarkets:
    """Tests for /coins/markets."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_top_entities_parsed(self, cg_client: AsyncCoinGeckoClient) -> None:
        route = respx.get(f"{BASE}/coins/markets").mock(
            return_value=Response(200, json=[market_item("bitcoin"), market_item("ethereum", 10.0)])
        )

        coins = await cg_client.get_top_entities(limit=2)

        assert [c.id for c in coins] == ["bitcoin", "ethereum"]
        assert coins[0].sparkline == (99.0, 100.0)
        assert coins[1].current_price == 10.0
        params = route.calls.last.request.url.params
        assert params["vs_currency"] == "usd"
        assert params["per_page"] == "2"
        assert params["order"] == "market_cap_desc"
        assert params["sparkline"] == "true"
        await cg_client.close()

    @respx.mock
    @pytest.mark.asyncio
    async def test_entities_by_ids_sends_id_list(self, cg_client: AsyncCoinGeckoClient) -> None:
        route = respx.get(f"{BASE}/coins/markets").mock(
            return_value=Response(200, json=[market_item("ethereum"), market_item("bitcoin")])
        )

        coins = await cg_client.get_entities_by_ids(["bitcoin", "ethereum"])

        assert [c.id for c in coins] == ["ethereum", "bitcoin"]
        params = route.calls.last.request.url.params
        assert params["ids"] == "bitcoin,ethereum"
        assert params["per_page"] == "2"
        await cg_client.close()

    @respx.mock
    @pytest.mark.asyncio
    async def test_empty_id_list_skips_request(self, cg_client: AsyncCoinGeckoClient) -> None:
        route = respx.get(f"{BASE}/coins/markets").mock(return_value=Response(200, json=[]))

        assert await cg_client.get_entities_by_ids([]) == []
        assert not route.called

    @respx.mock
    @pytest.mark.asyncio
    async def test_missing_optional_fields_tolerated(self, cg_client: AsyncCoinGeckoClient) -> None:
        respx.get(f"{BASE}/coins/markets").mock(
            return_value=Response(
                200,
                json=[{"id": "newcoin", "symbol": "new", "name": "New", "sparkline_in_7d": None}],
            )
        )

        coins = await cg_client.get_top_entities(limit=1)

        assert coins[0].current_price is None
        assert coins[0].sparkline == ()
        await cg_client.close()


class TestErrors:
    """Tests for HTTP error mapping."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_rate_limit_raises(self, cg_client: AsyncCoinGeckoClient) -> None:
        respx.get(f"{BASE}/coins/markets").mock(return_value=Response(429))

        with pytest.raises(CoinGeckoAPIError) as exc_info:
            await cg_client.get_top_entities()

        assert exc_info.value.status_code == 429
        await cg_client.close()

    @respx.mock
    @pytest.mark.asyncio
    async def test_server_error_raises_with_status(self, cg_client: AsyncCoinGeckoClient) -> None:
        respx.get(f"{BASE}/coins/markets").mock(return_value=Response(503))

        with pytest.raises(CoinGeckoAPIError, match="HTTP Error: 503"):
            await cg_client.get_top_entities()
        await cg_client.close()

    @respx.mock
    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self, cg_client: AsyncCoinGeckoClient) -> None:
        respx.get(f"{BASE}/coins/markets").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(CoinGeckoAPIError, match="Request error"):
            await cg_client.get_top_entities()
        await cg_client.close()


class TestApiKey:
    """Tests for API key handling."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_key_sent_as_header(self) -> None:
        client = make_client(coingecko_api_key="demo-secret")
        route = respx.get(f"{BASE}/coins/markets").mock(return_value=Response(200, json=[]))

        await client.get_top_entities()

        assert route.calls.last.request.headers[API_KEY_HEADER] == "demo-secret"
        await client.close()

    @respx.mock
    @pytest.mark.asyncio
    async def test_no_key_no_header(self, cg_client: AsyncCoinGeckoClient) -> None:
        route = respx.get(f"{BASE}/coins/markets").mock(return_value=Response(200, json=[]))

        await cg_client.get_top_entities()

        assert API_KEY_HEADER not in route.calls.last.request.headers
        await cg_client.close()

    def test_key_redacted_from_logs(self) -> None:
        headers = {API_KEY_HEADER: "demo-secret", "Accept": "application/json"}

        assert redact_headers(headers)[API_KEY_HEADER] == "[REDACTED]"
        assert redact_params({"x_cg_demo_api_key": "demo-secret", "ids": "btc"}) == {
            "x_cg_demo_api_key": "[REDACTED]",
            "ids": "btc",
        }
        assert "demo-secret" not in safe_log_request("GET", f"{BASE}/ping", headers)
        assert "demo-secret" not in safe_log_request(
            "GET", f"{BASE}/ping?x_cg_demo_api_key=demo-secret", {}
        )


class TestHistory:
    """Tests for /coins/{id}/market_chart."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_series_parsed(self, cg_client: AsyncCoinGeckoClient) -> None:
        route = respx.get(f"{BASE}/coins/bitcoin/market_chart").mock(
            return_value=Response(
                200,
                json={"prices": [[1_700_000_000_000, 35000.5], [1_700_000_300_000, 35010.0]]},
            )
        )

        series = await cg_client.get_historical_series("bitcoin")

        assert series is not None
        assert series.id == "bitcoin"
        assert len(series) == 2
        assert series.latest_price == 35010.0
        assert route.calls.last.request.url.params["days"] == "1"
        await cg_client.close()

    @respx.mock
    @pytest.mark.asyncio
    async def test_failure_returns_none(self, cg_client: AsyncCoinGeckoClient) -> None:
        respx.get(f"{BASE}/coins/bitcoin/market_chart").mock(return_value=Response(500))

        assert await cg_client.get_historical_series("bitcoin") is None
        await cg_client.close()


class TestCatalogSearch:
    """Tests for catalog caching and search."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_catalog_fetched_once(self, cg_client: AsyncCoinGeckoClient) -> None:
        route = respx.get(f"{BASE}/coins/list").mock(return_value=Response(200, json=CATALOG))

        first = await cg_client.search_entities("bitcoin")
        second = await cg_client.search_entities("ETH")

        assert route.call_count == 1
        assert [e.id for e in first] == ["bitcoin", "bitcoin-cash", "wrapped-bitcoin"]
        assert [e.id for e in second] == ["ethereum"]
        assert cg_client.cache_info().is_valid
        assert cg_client.cache_info().size == len(CATALOG)
        await cg_client.close()

    @respx.mock
    @pytest.mark.asyncio
    async def test_search_matches_symbol_and_respects_limit(self) -> None:
        client = make_client(search_limit=1)
        respx.get(f"{BASE}/coins/list").mock(return_value=Response(200, json=CATALOG))

        results = await client.search_entities("  wbtc ")

        assert [e.id for e in results] == ["wrapped-bitcoin"]
        assert len(await client.search_entities("bitcoin")) == 1
        await client.close()

    @respx.mock
    @pytest.mark.asyncio
    async def test_blank_query_returns_nothing(self, cg_client: AsyncCoinGeckoClient) -> None:
        route = respx.get(f"{BASE}/coins/list").mock(return_value=Response(200, json=CATALOG))

        assert await cg_client.search_entities("   ") == []
        assert not route.called

    @respx.mock
    @pytest.mark.asyncio
    async def test_expired_catalog_used_when_refresh_fails(self) -> None:
        client = make_client(catalog_cache_ttl_s=0.01)
        route = respx.get(f"{BASE}/coins/list")
        route.side_effect = [Response(200, json=CATALOG), Response(500)]

        await client.get_catalog()
        await asyncio.sleep(0.02)
        catalog = await client.get_catalog()

        assert route.call_count == 2
        assert len(catalog) == len(CATALOG)
        await client.close()

    @respx.mock
    @pytest.mark.asyncio
    async def test_catalog_failure_without_cache_raises(
        self, cg_client: AsyncCoinGeckoClient
    ) -> None:
        respx.get(f"{BASE}/coins/list").mock(return_value=Response(500))

        with pytest.raises(CoinGeckoAPIError, match="coin catalog"):
            await cg_client.get_catalog()
        await cg_client.close()

    @respx.mock
    @pytest.mark.asyncio
    async def test_search_results_fetch_markets_for_matches(
        self, cg_client: AsyncCoinGeckoClient
    ) -> None:
        respx.get(f"{BASE}/coins/list").mock(return_value=Response(200, json=CATALOG))
        markets = respx.get(f"{BASE}/coins/markets").mock(
            return_value=Response(200, json=[market_item("ethereum")])
        )

        results = await cg_client.get_search_results("ethereum")

        assert [c.id for c in results] == ["ethereum"]
        assert markets.calls.last.request.url.params["ids"] == "ethereum"
        await cg_client.close()

    @respx.mock
    @pytest.mark.asyncio
    async def test_search_without_matches_skips_markets(
        self, cg_client: AsyncCoinGeckoClient
    ) -> None:
        respx.get(f"{BASE}/coins/list").mock(return_value=Response(200, json=CATALOG))
        markets = respx.get(f"{BASE}/coins/markets").mock(return_value=Response(200, json=[]))

        assert await cg_client.get_search_results("dogecoin") == []
        assert not markets.called
        await cg_client.close()

    def test_clear_cache(self, cg_client: AsyncCoinGeckoClient) -> None:
        cg_client.clear_cache()
        assert not cg_client.cache_info().has_value


class TestMetrics:
    """Tests for latency tracking."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_metrics_after_request(self, cg_client: AsyncCoinGeckoClient) -> None:
        respx.get(f"{BASE}/coins/markets").mock(return_value=Response(200, json=[]))

        await cg_client.get_top_entities()

        metrics = cg_client.metrics
        assert metrics["last_request_latency_ms"] >= 0
        assert "average_latency_ms" in metrics
        await cg_client.close()
