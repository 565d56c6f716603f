"""
Application configuration using pydantic-settings.

Loads environment variables from .env file and provides typed access
to configuration values. Components receive a Settings instance through
their constructors instead of reading the environment themselves.
"""

from datetime import timedelta
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PROPERTY_INGEST_",
        case_sensitive=False,
    )

    # Runtime environment; the bundled sample dataset is only consulted
    # outside production.
    environment: Literal["development", "production", "test"] = "development"

    # Storage
    database_url: str = "sqlite+aiosqlite:///property_cache.db"

    # Which live adapter backs the fetch chain
    fetch_adapter: Literal["apify", "scraperapi"] = "apify"

    # Apify configuration
    apify_api_token: Optional[str] = None
    apify_base_url: str = "https://api.apify.com/v2"
    apify_actor_id: str = "dhrumil~rightmove-scraper"
    apify_poll_interval: float = 5.0
    apify_max_poll_attempts: int = 60
    apify_max_properties: int = 100

    # ScraperAPI configuration
    scraper_api_key: Optional[str] = None
    scraper_api_url: str = "https://api.scraperapi.com/"
    scraper_api_account_url: str = "https://api.scraperapi.com/account"

    # Listing site
    rightmove_base_url: str = "https://www.rightmove.co.uk"
    search_radius: float = 1.0

    # Fetch behaviour
    use_mock_data: bool = False
    cache_ttl_hours: float = 12.0
    page_size: int = 24
    request_timeout: float = 30.0
    local_dataset_paths: List[str] = [
        "data/sample_properties.json",
        "sample_data/properties.json",
        "properties.json",
    ]

    # Background reconciliation
    reconciliation_enabled: bool = True
    reconciliation_initial_delay: float = 30.0
    reconciliation_interval_hours: float = 24.0
    reconciliation_batch_size: int = 50
    reconciliation_request_delay: float = 0.5

    # HTTP surface
    cors_origins: List[str] = ["https://myvge.com", "http://localhost:5173"]
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 15 * 60

    # Application settings
    debug: bool = False
    log_level: str = "INFO"
    app_name: str = "Property Ingest API"
    app_version: str = "0.1.0"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(hours=self.cache_ttl_hours)

    @property
    def reconciliation_interval(self) -> timedelta:
        return timedelta(hours=self.reconciliation_interval_hours)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures we only load settings once and reuse
    the same instance throughout the application lifecycle.
    """
    return Settings()
