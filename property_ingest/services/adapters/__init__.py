"""Live fetch adapters."""

from typing import Optional

import httpx

from property_ingest.config import Settings
from property_ingest.services.adapters.apify import ApifyAdapter
from property_ingest.services.adapters.base import FetchAdapter
from property_ingest.services.adapters.scraper_api import ScraperApiAdapter

ADAPTERS = {
    "apify": ApifyAdapter,
    "scraperapi": ScraperApiAdapter,
}


def build_adapter(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FetchAdapter:
    """Create the adapter selected by ``settings.fetch_adapter``."""
    return ADAPTERS[settings.fetch_adapter](settings, transport=transport)


__all__ = ["ADAPTERS", "ApifyAdapter", "FetchAdapter", "ScraperApiAdapter", "build_adapter"]
