"""
Pytest configuration and shared fixtures.
"""

from collections.abc import Generator

import pytest

from coinpulse.config import get_settings
from coinpulse.runtime.event_bus import EventBus, reset_event_bus
from tests.fakes import FakeDataClient


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure no real credentials or overrides leak into tests from the shell."""
    monkeypatch.delenv("COINGECKO_API_KEY", raising=False)
    for var in ("COINPULSE_BASE_URL", "COINPULSE_LOG_LEVEL", "COINPULSE_TOP_LIMIT"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset module-level singletons between tests."""
    yield
    reset_event_bus()
    get_settings.cache_clear()


@pytest.fixture
def bus() -> EventBus:
    """Fresh event bus."""
    return EventBus()


@pytest.fixture
def data_client() -> FakeDataClient:
    """Fake data client with ten coins."""
    return FakeDataClient()
