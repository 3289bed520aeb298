"""
Configuration management for the coinpulse dashboard client.

Uses pydantic-settings for type-safe environment variable handling.
The API credential is loaded from the environment only - never from files in repo.
"""

from functools import lru_cache

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from coinpulse.runtime.retry import RetryPolicy


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Settings are read once per session and are not hot-reloaded.
    """

    model_config = SettingsConfigDict(
        env_prefix="COINPULSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Server configuration
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8780, ge=1024, le=65535, description="Server port")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Emit JSON formatted logs")

    # CoinGecko API
    coingecko_api_key: SecretStr | None = Field(
        default=None,
        alias="COINGECKO_API_KEY",
        description="CoinGecko demo API key",
    )
    base_url: str = Field(
        default="https://api.coingecko.com/api/v3",
        description="CoinGecko REST base URL",
    )
    vs_currency: str = Field(default="usd", description="Quote currency")
    request_timeout_s: float = Field(
        default=20.0,
        ge=1,
        le=120,
        description="HTTP request timeout in seconds",
    )
    catalog_cache_ttl_s: float = Field(
        default=30 * 60,
        gt=0,
        description="Expiry of the cached coin catalog in seconds",
    )

    # Table / search
    top_limit: int = Field(default=10, ge=1, le=250, description="Rows in the top-N feed")
    search_limit: int = Field(default=10, ge=1, le=250, description="Max search results")
    min_query_length: int = Field(default=2, ge=1, description="Minimum search query length")

    # Polling cadence
    table_poll_interval_s: float = Field(
        default=30.0,
        gt=0,
        description="Table refresh interval in seconds",
    )
    chart_poll_interval_s: float = Field(
        default=30.0,
        gt=0,
        description="Live chart refresh interval in seconds",
    )

    # Retry policy for the initial load (and top-N reloads)
    initial_load_max_retries: int = Field(default=3, ge=0, le=10)
    initial_load_initial_delay_s: float = Field(default=1.0, ge=0)
    initial_load_backoff_multiplier: float = Field(default=2.0, ge=1)

    # Retry policy for search submits
    search_max_retries: int = Field(default=2, ge=0, le=10)
    search_initial_delay_s: float = Field(default=0.5, ge=0)
    search_backoff_multiplier: float = Field(default=2.0, ge=1)

    # UI timings
    auto_select_delay_s: float = Field(default=0.1, ge=0)
    search_fallback_delay_s: float = Field(default=10.0, ge=0)
    removal_animation_s: float = Field(default=0.3, ge=0)
    search_debounce_s: float = Field(default=0.3, ge=0)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known value."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            raise ValueError(f"log_level must be one of {sorted(valid)}")
        return upper

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def has_api_key(self) -> bool:
        """Check if a CoinGecko API key is configured."""
        return self.coingecko_api_key is not None and bool(
            self.coingecko_api_key.get_secret_value()
        )

    @property
    def initial_load_retry(self) -> RetryPolicy:
        """Retry policy for the initial load and top-N reloads."""
        return RetryPolicy(
            max_retries=self.initial_load_max_retries,
            initial_delay_s=self.initial_load_initial_delay_s,
            backoff_multiplier=self.initial_load_backoff_multiplier,
        )

    @property
    def search_retry(self) -> RetryPolicy:
        """Retry policy for search submits."""
        return RetryPolicy(
            max_retries=self.search_max_retries,
            initial_delay_s=self.search_initial_delay_s,
            backoff_multiplier=self.search_backoff_multiplier,
        )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance (cached after first call)
    """
    return Settings()
