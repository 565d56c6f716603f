"""
Search, import and details facade.

Wires the cache store, fetch adapter, sample dataset and synthetic
generator into a fetch chain, and exposes the operations the HTTP layer
and other callers use. Nothing touches the network or the database until
``initialize()`` is called.
"""

import logging
from typing import Any, Iterable, List, NamedTuple, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from property_ingest.config import Settings
from property_ingest.db import create_engine, create_session_factory, init_db
from property_ingest.errors import InvalidQuery
from property_ingest.models import AdapterDiagnostic, Property, SearchResults
from property_ingest.services.adapters import FetchAdapter, build_adapter
from property_ingest.services.background import ReconciliationLoop
from property_ingest.services.cache_store import CacheStore
from property_ingest.services.fetch_chain import FetchStrategyChain, build_filters
from property_ingest.services.importer import PropertyImporter
from property_ingest.services.local_dataset import LocalDataset
from property_ingest.services.synthetic import SyntheticGenerator, is_synthetic_id

logger = logging.getLogger(__name__)


class ServiceStatus(NamedTuple):
    """What ``initialize()`` found at startup."""

    cache_ready: bool
    adapter: AdapterDiagnostic


class PropertyService:
    """Entry point for property search, import and details."""

    def __init__(
        self,
        settings: Settings,
        engine: AsyncEngine,
        adapter: FetchAdapter,
    ) -> None:
        """
        Initialize the service. No I/O happens here.

        Args:
            settings: Application settings.
            engine: Database engine for the cache and import tables.
            adapter: Live fetch adapter.
        """
        self.settings = settings
        self.engine = engine
        self.adapter = adapter

        session_factory = create_session_factory(engine)
        self.cache = CacheStore(session_factory)
        self.importer = PropertyImporter(session_factory)
        self.chain = FetchStrategyChain(
            settings,
            cache=self.cache,
            adapter=adapter,
            local_dataset=LocalDataset(settings.local_dataset_paths),
            synthetic=SyntheticGenerator(),
        )
        self.reconciliation = ReconciliationLoop.from_settings(settings, self.cache, adapter)

    async def initialize(self) -> ServiceStatus:
        """
        Create tables, probe the cache and check adapter credentials.

        Never raises for an unreachable cache or bad credentials; both are
        reported in the returned status and logged.
        """
        try:
            await init_db(self.engine)
        except SQLAlchemyError as e:
            logger.error("Could not create database tables: %s", e)

        cache_ready = await self.cache.ensure_ready()
        if not cache_ready:
            logger.warning("Cache unavailable; every search will fetch fresh data")

        if self.settings.use_mock_data:
            diagnostic = AdapterDiagnostic(success=True, message="Mock data mode; live fetching disabled")
        else:
            diagnostic = await self.adapter.check_credentials()

        logger.info(
            "Property service ready (adapter=%s, cache=%s, credentials=%s)",
            self.adapter.name,
            "ok" if cache_ready else "unavailable",
            "ok" if diagnostic.success else "failed",
        )
        return ServiceStatus(cache_ready=cache_ready, adapter=diagnostic)

    async def search_properties(self, location: Optional[str], page: int = 1, **filters: Any) -> SearchResults:
        """
        Search listings for a location.

        Args:
            location: Town, area, outcode or postcode.
            page: 1-based results page.
            **filters: Optional min_price, max_price, min_beds, max_beds,
                property_type.

        Returns:
            One page of results; ``is_synthetic`` is set when no real data
            could be obtained.

        Raises:
            InvalidQuery: If the location is blank or a filter is invalid.
            AdapterAuthError: If the live adapter's credentials are rejected.
        """
        search = build_filters(location, page, **filters)
        logger.info("Searching properties in '%s' (page %d)", search.location, search.page)
        return await self.chain.search(search)

    async def import_properties(self, properties: Iterable[Any], owner_id: str) -> int:
        """Save listings for an owner; all-or-nothing."""
        return await self.importer.import_properties(properties, owner_id)

    async def list_imported(self, owner_id: str) -> List[Property]:
        return await self.importer.list_for_owner(owner_id)

    async def get_property_details(self, property_id: str) -> Optional[Property]:
        return await self.chain.details(property_id)

    async def check_property_active(self, property_id: str) -> bool:
        """
        Ask the source site whether a listing is still live.

        Synthetic listings are always reported active.

        Raises:
            InvalidQuery: If the id is blank.
            AdapterAuthError: If the live adapter's credentials are rejected.
            AdapterTransientError: If the status could not be determined.
        """
        property_id = (property_id or "").strip()
        if not property_id:
            raise InvalidQuery("Property id is required.")
        if is_synthetic_id(property_id) or self.settings.use_mock_data:
            return True
        return await self.adapter.check_status(property_id)

    async def diagnostics(self) -> AdapterDiagnostic:
        return await self.adapter.check_credentials()

    def start_background_tasks(self) -> None:
        if self.settings.reconciliation_enabled:
            self.reconciliation.start()

    async def close(self) -> None:
        """Stop background work and release connections."""
        await self.reconciliation.stop()
        await self.adapter.close()
        await self.engine.dispose()


def build_property_service(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PropertyService:
    """Create a PropertyService from settings."""
    return PropertyService(
        settings,
        engine=create_engine(settings),
        adapter=build_adapter(settings, transport=transport),
    )
