"""Search URL construction for the Rightmove query grammars."""

import re
from typing import Any, Dict, List
from urllib.parse import quote, urlencode

from property_ingest.models import SearchFilters

SEARCH_PATH = "/property-for-sale/find.html"

# Identifiers already in Rightmove's TYPE^value form (raw or URL-encoded)
IDENTIFIER_PATTERN = re.compile(r"^(OUTCODE|REGION|POSTCODE|BRANCH)(\^|%5E)", re.IGNORECASE)
OUTCODE_PATTERN = re.compile(r"^[A-Z]{1,2}[0-9]{1,2}[A-Z]?$", re.IGNORECASE)

# Appended by some callers to force a refetch; never part of the location
BYPASS_CACHE_PATTERN = re.compile(r"\?_bypass_cache=\d+")


def clean_location(location: str) -> str:
    return BYPASS_CACHE_PATTERN.sub("", location).strip()


def location_identifier(location: str) -> str:
    """
    Rightmove ``locationIdentifier`` for a free-text location.

    Pre-formatted identifiers pass through, outcodes such as "SW1" become
    ``OUTCODE^SW1`` and anything else is treated as a region name.
    """
    location = clean_location(location)
    if IDENTIFIER_PATTERN.match(location):
        return location.replace("%5E", "^").replace("%5e", "^")
    if OUTCODE_PATTERN.match(location):
        return f"OUTCODE^{location.upper()}"
    return f"REGION^{location}"


def filter_params(filters: SearchFilters) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    if filters.min_price is not None:
        params["minPrice"] = filters.min_price
    if filters.max_price is not None:
        params["maxPrice"] = filters.max_price
    if filters.min_beds is not None:
        params["minBedrooms"] = filters.min_beds
    if filters.max_beds is not None:
        params["maxBedrooms"] = filters.max_beds
    if filters.property_type:
        params["propertyTypes"] = filters.property_type
    return params


def _url(base_url: str, params: Dict[str, Any]) -> str:
    return f"{base_url}{SEARCH_PATH}?{urlencode(params, quote_via=quote, safe='')}"


def identifier_search_url(base_url: str, filters: SearchFilters) -> str:
    """Search URL using the ``locationIdentifier`` grammar."""
    params: Dict[str, Any] = {
        "searchType": "SALE",
        "locationIdentifier": location_identifier(filters.location),
    }
    params.update(filter_params(filters))
    return _url(base_url, params)


def search_url_variants(
    base_url: str,
    filters: SearchFilters,
    radius: float,
    page_size: int,
) -> List[str]:
    """
    Equivalent search URLs, most reliable grammar first.

    1. bare keyword search
    2. keyword search with filters and paging
    3. ``locationIdentifier=REGION^...`` with filters and paging
    """
    location = clean_location(filters.location)
    paging = {
        "radius": radius,
        "includeSSTC": "false",
        "index": (filters.page - 1) * page_size,
    }

    simple = {"searchType": "SALE", "keywords": location}
    if filters.page > 1:
        simple["index"] = paging["index"]

    detailed: Dict[str, Any] = {"searchType": "SALE", "keywords": location}
    detailed.update(filter_params(filters))
    detailed.update(paging)

    region: Dict[str, Any] = {"searchType": "SALE", "locationIdentifier": f"REGION^{location}"}
    region.update(filter_params(filters))
    region.update(paging)

    return [_url(base_url, simple), _url(base_url, detailed), _url(base_url, region)]
