"""
Fetch strategy chain.

Resolves a search or details request by trying, in order:

1. a fresh cache entry,
2. the bundled sample dataset (outside production only),
3. the live fetch adapter (skipped in mock-data mode),
4. deterministic synthetic data.

The first strategy that produces an answer wins; later ones never run.
"""

import logging
from datetime import datetime
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from property_ingest.config import Settings
from property_ingest.db import utcnow
from property_ingest.errors import AdapterTransientError, InvalidQuery, PersistenceError
from property_ingest.models import Property, RawListings, SearchFilters, SearchResults
from property_ingest.models import paginate, total_pages
from property_ingest.services.adapters import FetchAdapter
from property_ingest.services.cache_store import CacheStore, is_fresh
from property_ingest.services.local_dataset import LocalDataset
from property_ingest.services.normalizer import normalize, normalize_many
from property_ingest.services.synthetic import SyntheticGenerator, is_synthetic_id

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "rightmove"
PROPERTY_KEY_PREFIX = f"{CACHE_NAMESPACE}:property:"


def property_cache_key(property_id: str) -> str:
    return f"{PROPERTY_KEY_PREFIX}{property_id}"


def build_filters(location: Optional[str], page: int = 1, **filters: Any) -> SearchFilters:
    """
    Validate search input.

    Raises:
        InvalidQuery: If the location is missing or blank, or a filter is
            out of range.
    """
    if location is None or not str(location).strip():
        raise InvalidQuery("Location is required.")

    try:
        return SearchFilters(location=location, page=page, **filters)
    except ValidationError as e:
        logger.info("Rejected search filters: %s", e)
        raise InvalidQuery("The search filters are not valid.") from e


class FetchStrategyChain:
    """Runs the cache, dataset, live and synthetic strategies in order."""

    def __init__(
        self,
        settings: Settings,
        cache: CacheStore,
        adapter: FetchAdapter,
        local_dataset: LocalDataset,
        synthetic: SyntheticGenerator,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings
        self.cache = cache
        self.adapter = adapter
        self.local_dataset = local_dataset
        self.synthetic = synthetic
        self.clock = clock
        self.page_size = settings.page_size

    async def search(self, filters: SearchFilters) -> SearchResults:
        """
        Resolve one page of search results.

        Raises:
            AdapterAuthError: If the live adapter's credentials are rejected.
        """
        key = filters.cache_key(CACHE_NAMESPACE)

        cached = await self._read_cache(key)
        if cached is not None:
            try:
                results = SearchResults.model_validate(cached)
            except ValidationError as e:
                logger.warning("Ignoring malformed cache entry %s: %s", key, e)
            else:
                logger.info("Cache hit for '%s' page %d", filters.location, filters.page)
                return results

        if not self.settings.is_production:
            local = await self.local_dataset.search(filters)
            if local is not None:
                logger.info("Serving %d sample properties for '%s'", len(local), filters.location)
                return self._page(local, filters.page, len(local))

        if not self.settings.use_mock_data:
            try:
                raw = await self.adapter.fetch_search(filters)
            except AdapterTransientError as e:
                logger.warning(
                    "[%s] Live search for '%s' failed: %s", self.adapter.name, filters.location, e.message
                )
            else:
                results = self._from_raw(raw, filters.page)
                await self._write_cache(key, results.model_dump(mode="json", by_alias=True))
                return results

        return self.synthetic.search(filters, self.page_size)

    async def details(self, property_id: str) -> Optional[Property]:
        """
        Resolve one listing by id.

        Returns:
            The listing, or None when no strategy knows it.

        Raises:
            InvalidQuery: If the id is blank.
            AdapterAuthError: If the live adapter's credentials are rejected.
        """
        property_id = (property_id or "").strip()
        if not property_id:
            raise InvalidQuery("Property id is required.")

        key = property_cache_key(property_id)

        cached = await self._read_cache(key)
        if cached is not None:
            try:
                return Property.model_validate(cached)
            except ValidationError as e:
                logger.warning("Ignoring malformed cache entry %s: %s", key, e)

        if not self.settings.is_production:
            local = await self.local_dataset.find(property_id)
            if local is not None:
                return local

        if is_synthetic_id(property_id):
            return self.synthetic.details(property_id)

        if self.settings.use_mock_data:
            return None

        try:
            raw = await self.adapter.fetch_details(property_id)
        except AdapterTransientError as e:
            logger.warning("[%s] Live details for %s failed: %s", self.adapter.name, property_id, e.message)
            return None

        if raw is None:
            logger.info("[%s] Property %s not found", self.adapter.name, property_id)
            return None

        prop = normalize(raw, default_bedrooms=self.adapter.default_bedrooms)
        if prop.id != property_id:
            prop = prop.model_copy(update={"id": property_id})
        await self._write_cache(
            key, prop.model_dump(mode="json", by_alias=True), is_active=prop.is_active
        )
        return prop

    def _from_raw(self, raw: RawListings, page: int) -> SearchResults:
        properties = normalize_many(raw.items, default_bedrooms=self.adapter.default_bedrooms)

        if raw.total_results is None:
            return self._page(properties, page, len(properties))

        # already one page of a server-side paginated result
        return SearchResults(
            properties=properties,
            total_results=raw.total_results,
            current_page=page,
            total_pages=total_pages(raw.total_results, self.page_size),
        )

    def _page(self, properties: List[Property], page: int, total: int) -> SearchResults:
        return SearchResults(
            properties=paginate(properties, page, self.page_size),
            total_results=total,
            current_page=page,
            total_pages=total_pages(total, self.page_size),
        )

    async def _read_cache(self, key: str) -> Optional[Any]:
        """Fresh cached data for ``key``; any cache failure counts as a miss."""
        if not self.cache.ready:
            return None

        try:
            entry = await self.cache.get(key)
        except PersistenceError as e:
            logger.warning("Cache read failed for %s, fetching fresh: %s", key, e.message)
            return None

        if entry is None or not is_fresh(entry, self.settings.cache_ttl, self.clock()):
            return None
        return entry.data

    async def _write_cache(self, key: str, data: Any, is_active: bool = True) -> None:
        if not self.cache.ready:
            return

        try:
            await self.cache.put(key, data, is_active=is_active)
        except PersistenceError as e:
            logger.warning("Could not cache %s: %s", key, e.message)
