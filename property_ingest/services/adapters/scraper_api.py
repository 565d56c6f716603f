"""
Proxy-rendered HTML adapter.

Fetches Rightmove pages through ScraperAPI, which renders JavaScript
and returns the final HTML, then extracts listing fields with CSS
selectors. Every field has several candidate selectors because the
site's markup differs between page revisions.

API Documentation: https://docs.scraperapi.com/
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

import httpx
from bs4 import BeautifulSoup, Tag

from property_ingest.config import Settings
from property_ingest.errors import AdapterAuthError, AdapterTransientError
from property_ingest.models import RawListings, SearchFilters
from property_ingest.services.adapters.base import FetchAdapter, is_inactive_page
from property_ingest.services.adapters.rightmove_urls import search_url_variants
from property_ingest.utils import clean_text, detect_property_type, extract_number

logger = logging.getLogger(__name__)

CARD_SELECTOR = ".propertyCard, .l-searchResult, [data-test='propertyCard']"

CARD_FIELDS: Dict[str, List[str]] = {
    "link": [
        "a.propertyCard-link",
        "a.propertyCard-img-link",
        "a[data-test='property-details']",
        "a[href*='/properties/']",
    ],
    "address": [
        ".propertyCard-address",
        "[data-test='address-title']",
        "[data-test='property-address']",
        ".propertyCard-title",
    ],
    "price": [".propertyCard-priceValue", ".propertyCard-price", "[data-test='property-price']"],
    "info": [
        ".propertyCard-details",
        ".propertyCard-description",
        "[data-test='property-description']",
        ".property-information",
    ],
    "beds": ["[data-test='property-bedrooms']", ".property-information span"],
    "baths": ["[data-test='property-bathrooms']"],
    "image": [".propertyCard-img img", ".propertyCard-image img", "[data-test='property-image'] img"],
    "agent_logo": [".propertyCard-branchLogo img", ".propertyCard-agent img", "[data-test='agent-logo'] img"],
}

TOTAL_SELECTORS = [".searchHeader-resultCount", "[data-test='total-results']", "[data-test='results-count']"]

DETAIL_FIELDS: Dict[str, List[str]] = {
    "address": ["address.property-header-address", "[itemprop='streetAddress']", "h1 address", "address"],
    "price": [".price-text", "[data-testid='price']", "[data-test='property-price']"],
    "property_type": ["[data-testid='property-type']", "[data-test='property-type']"],
    "beds": ["[data-testid='beds']", "[data-test='beds']"],
    "baths": ["[data-testid='baths']", "[data-test='baths']"],
    "description": [".property-description", "[itemprop='description']", "[data-testid='description']"],
    "agent_name": [".agent-name", "[data-testid='agent-name']"],
    "agent_phone": [".agent-phone", "a[href^='tel:']"],
    "agent_logo": [".agent-logo img", "[data-testid='agent-logo'] img"],
}

PAGE_MODEL_PATTERN = re.compile(r"window\.PAGE_MODEL\s*=\s*(\{.*?\})\s*;?\s*</script>", re.DOTALL)
TOTAL_PATTERN = re.compile(r"of\s+([\d,]+)|([\d,]+)\s+results", re.IGNORECASE)


def select_first(node: Tag, selectors: List[str]) -> Optional[Tag]:
    """First element matching any of ``selectors``, tried in order."""
    for selector in selectors:
        found = node.select_one(selector)
        if found is not None:
            return found
    return None


def select_text(node: Tag, selectors: List[str]) -> Optional[str]:
    found = select_first(node, selectors)
    return clean_text(found.get_text(" ")) if found is not None else None


def _attr(node: Optional[Tag], *names: str) -> Optional[str]:
    if node is None:
        return None
    for name in names:
        value = node.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class ScraperApiAdapter(FetchAdapter):
    """Fetches and parses rendered Rightmove HTML through ScraperAPI."""

    name = "ScraperAPI"
    default_bedrooms = 1

    # Rendered pages shorter than this are error stubs, not result pages
    min_page_length = 1000

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the ScraperAPI adapter.

        Args:
            settings: Application settings containing API configuration.
            transport: Optional httpx transport, e.g. a mock in tests.
        """
        super().__init__(settings, transport=transport, headers={"Accept": "text/html"})
        self.api_key = settings.scraper_api_key
        self.api_url = settings.scraper_api_url
        self.account_url = settings.scraper_api_account_url

    async def verify_credentials(self) -> str:
        if not self.api_key:
            raise AdapterAuthError("No ScraperAPI key is configured.")

        response = await self.request(
            "GET", self.account_url, "verify the API key", params={"api_key": self.api_key}
        )
        self.raise_for_status(response, "verify the API key")

        account = self.json_object(response, "verify the API key")
        return (
            "ScraperAPI key valid "
            f"({account.get('requestCount', '?')}/{account.get('requestLimit', '?')} requests used)"
        )

    async def _fetch_rendered(self, url: str, action: str) -> httpx.Response:
        logger.info("[%s] Fetching %s", self.name, url)
        return await self.request(
            "GET",
            self.api_url,
            action,
            params={
                "api_key": self.api_key,
                "url": url,
                "render": "true",
                "country_code": "uk",
                "keep_headers": "true",
                "premium": "true",
            },
        )

    async def fetch_search(self, filters: SearchFilters) -> RawListings:
        """
        Scrape one page of search results.

        Tries each search URL grammar in turn; the first that yields
        result cards wins.

        Raises:
            AdapterAuthError: If ScraperAPI rejects the key.
            AdapterTransientError: If no URL variant produced result cards.
        """
        await self.ensure_credentials()

        urls = search_url_variants(
            self.base_url, filters, self.settings.search_radius, self.settings.page_size
        )
        for attempt, url in enumerate(urls, start=1):
            logger.info("[%s] Search attempt %d/%d", self.name, attempt, len(urls))
            try:
                response = await self._fetch_rendered(url, "load the search page")
                self.raise_for_status(response, "load the search page")
            except AdapterTransientError as e:
                logger.warning("[%s] Attempt %d failed: %s", self.name, attempt, e.message)
                continue

            html = response.text
            if len(html) < self.min_page_length:
                logger.warning("[%s] Attempt %d returned a short page (%d chars)", self.name, attempt, len(html))
                continue

            soup = BeautifulSoup(html, "html.parser")
            cards = soup.select(CARD_SELECTOR)
            if not cards:
                logger.warning("[%s] Attempt %d found no property cards", self.name, attempt)
                continue

            items = [item for item in (self._parse_card(card) for card in cards) if item]
            total = self._parse_total(soup)
            if total is None:
                total = (filters.page - 1) * self.settings.page_size + len(items)

            logger.info("[%s] Found %d cards (%d results in total)", self.name, len(items), total)
            return RawListings(items=items, total_results=total)

        raise AdapterTransientError(
            f"No listings could be scraped for '{filters.location}' after {len(urls)} attempts."
        )

    def _parse_card(self, card: Tag) -> Optional[Dict[str, Any]]:
        try:
            link = _attr(select_first(card, CARD_FIELDS["link"]), "href") or ""
            if link and not link.startswith("http"):
                link = f"{self.base_url}{link}"

            info = select_text(card, CARD_FIELDS["info"]) or ""
            image = select_first(card, CARD_FIELDS["image"])
            logo = select_first(card, CARD_FIELDS["agent_logo"])
            card_text = card.get_text(" ")

            beds = extract_number(select_text(card, CARD_FIELDS["beds"]))
            if beds is None:
                beds = extract_number(_match(r"(\d+)\s*bed", info))

            return {
                "id": card.get("id", "").replace("property-", "") or None,
                "url": link,
                "address": select_text(card, CARD_FIELDS["address"]),
                "price": select_text(card, CARD_FIELDS["price"]),
                "propertyType": detect_property_type(info),
                "bedrooms": beds,
                "bathrooms": extract_number(select_text(card, CARD_FIELDS["baths"]))
                or extract_number(_match(r"(\d+)\s*bath", info)),
                "description": info,
                "images": [u for u in [_attr(image, "src", "data-src")] if u],
                "agent": {"name": _attr(logo, "alt"), "logoUrl": _attr(logo, "src")},
                "isNewHome": "New build" in card_text or "New home" in card_text,
            }
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning("[%s] Skipping unreadable property card: %s", self.name, e)
            return None

    def _parse_total(self, soup: BeautifulSoup) -> Optional[int]:
        text = select_text(soup, TOTAL_SELECTORS)
        if not text:
            return None
        match = TOTAL_PATTERN.search(text)
        number = (match.group(1) or match.group(2)) if match else text
        return extract_number(number.replace(",", ""))

    async def fetch_details(self, property_id: str) -> Optional[Dict[str, Any]]:
        """
        Scrape a single listing page.

        Returns:
            Raw listing fields, or None if the listing does not exist.
        """
        await self.ensure_credentials()

        url = self.listing_url(property_id)
        response = await self._fetch_rendered(url, "load the listing page")
        if response.status_code in (404, 410):
            return None
        self.raise_for_status(response, "load the listing page")

        html = response.text
        if len(html) < self.min_page_length:
            lowered = html.lower()
            if "rate limit" in lowered or "too many requests" in lowered:
                logger.warning("[%s] Rate limited while loading %s", self.name, url)
                raise AdapterTransientError("The listing service is rate limiting requests.")

        return self.parse_details(html, url, property_id)

    def parse_details(self, html: str, url: str, property_id: str) -> Optional[Dict[str, Any]]:
        """Extract raw fields from a listing page; None if nothing was found."""
        inactive = is_inactive_page(html)

        model = self._page_model(html)
        if model is not None:
            model.setdefault("id", property_id)
            model.setdefault("propertyUrl", url)
            model["isActive"] = not inactive and model.get("isActive", True)
            return model

        soup = BeautifulSoup(html, "html.parser")
        address = select_text(soup, DETAIL_FIELDS["address"])
        price = select_text(soup, DETAIL_FIELDS["price"])
        if not address and not price:
            logger.warning("[%s] No listing fields found on %s", self.name, url)
            return None

        images = [_attr(tag, "content") for tag in soup.select("meta[itemprop='contentUrl']")]
        if not any(images):
            images = [_attr(img, "data-src", "src") for img in soup.select(".property-image img, .Gallery img")]

        property_type = select_text(soup, DETAIL_FIELDS["property_type"]) or ""
        logo = select_first(soup, DETAIL_FIELDS["agent_logo"])

        return {
            "id": property_id,
            "url": url,
            "address": address,
            "price": price,
            "propertyType": property_type or None,
            "bedrooms": extract_number(select_text(soup, DETAIL_FIELDS["beds"])),
            "bathrooms": extract_number(select_text(soup, DETAIL_FIELDS["baths"])),
            "description": select_text(soup, DETAIL_FIELDS["description"]),
            "mainImage": _attr(soup.select_one("meta[itemprop='image']"), "content"),
            "images": [u for u in images if u],
            "agent": {
                "name": select_text(soup, DETAIL_FIELDS["agent_name"]),
                "phone": select_text(soup, DETAIL_FIELDS["agent_phone"]),
                "logoUrl": _attr(logo, "src"),
            },
            "features": [clean_text(li.get_text(" ")) for li in soup.select(".property-features li")],
            "isNewHome": soup.select_one(".new-home-flag") is not None
            or bool(re.search(r"new build|newly built", property_type, re.IGNORECASE)),
            "isActive": not inactive,
        }

    def _page_model(self, html: str) -> Optional[Dict[str, Any]]:
        """Listing JSON embedded in the page as ``window.PAGE_MODEL``."""
        match = PAGE_MODEL_PATTERN.search(html)
        if not match:
            return None
        try:
            data = json.loads(match.group(1))
        except json.JSONDecodeError as e:
            logger.debug("[%s] Unreadable PAGE_MODEL: %s", self.name, e)
            return None

        property_data = data.get("propertyData") if isinstance(data, dict) else None
        return property_data if isinstance(property_data, dict) else None

    async def check_status(self, property_id: str) -> bool:
        await self.ensure_credentials()

        url = self.listing_url(property_id)
        response = await self._fetch_rendered(url, "check the listing status")
        if response.status_code in (404, 410):
            return False
        self.raise_for_status(response, "check the listing status")
        return not is_inactive_page(response.text)


def _match(pattern: str, text: str) -> Optional[str]:
    match = re.search(pattern, text, re.IGNORECASE)
    return match.group(1) if match else None
