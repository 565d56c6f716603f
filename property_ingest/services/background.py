"""
Background reconciliation of cached listings.

Runs on a timer inside the application's event loop: purges expired
cache rows, then re-checks a batch of cached listings against the
source site and flags the withdrawn ones as inactive.
"""

import asyncio
import logging
from datetime import timedelta
from typing import NamedTuple, Optional

from property_ingest.config import Settings
from property_ingest.errors import AdapterAuthError, PropertyIngestError
from property_ingest.services.adapters import FetchAdapter
from property_ingest.services.cache_store import CacheStore
from property_ingest.services.fetch_chain import PROPERTY_KEY_PREFIX

logger = logging.getLogger(__name__)


class ReconciliationReport(NamedTuple):
    """Outcome of one reconciliation pass."""

    purged: int = 0
    checked: int = 0
    deactivated: int = 0
    failed: int = 0


class ReconciliationLoop:
    """Periodic purge and liveness re-check of the property cache."""

    def __init__(
        self,
        cache: CacheStore,
        adapter: FetchAdapter,
        ttl: timedelta,
        initial_delay: float = 30.0,
        interval: float = 24 * 60 * 60,
        batch_size: int = 50,
        request_delay: float = 0.5,
    ) -> None:
        """
        Initialize the loop.

        Args:
            cache: Cache store to purge and re-check.
            adapter: Live adapter used for listing status checks.
            ttl: Age after which cache rows are purged.
            initial_delay: Seconds to wait before the first pass.
            interval: Seconds between passes.
            batch_size: Maximum listings re-checked per pass.
            request_delay: Seconds to wait between status checks.
        """
        self.cache = cache
        self.adapter = adapter
        self.ttl = ttl
        self.initial_delay = initial_delay
        self.interval = interval
        self.batch_size = batch_size
        self.request_delay = request_delay
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: Settings, cache: CacheStore, adapter: FetchAdapter) -> "ReconciliationLoop":
        return cls(
            cache,
            adapter,
            ttl=settings.cache_ttl,
            initial_delay=settings.reconciliation_initial_delay,
            interval=settings.reconciliation_interval.total_seconds(),
            batch_size=settings.reconciliation_batch_size,
            request_delay=settings.reconciliation_request_delay,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop. Idempotent."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="property-reconciliation")
        logger.info(
            "Reconciliation scheduled: first pass in %.0fs, then every %.0fs",
            self.initial_delay,
            self.interval,
        )

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reconciliation stopped")

    async def _run(self) -> None:
        await asyncio.sleep(self.initial_delay)
        while True:
            try:
                await self.run_once()
            except PropertyIngestError as e:
                logger.error("Reconciliation pass failed: %s", e.message)
            await asyncio.sleep(self.interval)

    async def run_once(self) -> ReconciliationReport:
        """
        Run one purge and re-check pass.

        Errors for individual listings are logged and skipped. An
        authentication failure ends the batch early, since every further
        check would fail the same way.

        Raises:
            PersistenceError: If the cache cannot be purged or listed.
        """
        purged = await self.cache.purge_expired(self.ttl)
        logger.info("Purged %d expired cache entries", purged)

        keys = await self.cache.list_active_keys(PROPERTY_KEY_PREFIX, self.batch_size)
        checked = deactivated = failed = 0

        for index, key in enumerate(keys):
            if index:
                await asyncio.sleep(self.request_delay)

            property_id = key[len(PROPERTY_KEY_PREFIX):]
            try:
                active = await self.adapter.check_status(property_id)
                checked += 1
                if not active and await self.cache.mark_inactive(key):
                    deactivated += 1
                    logger.info("Property %s is no longer listed", property_id)
            except AdapterAuthError as e:
                logger.error("Stopping reconciliation batch: %s", e.message)
                failed += 1
                break
            except PropertyIngestError as e:
                logger.warning("Could not re-check property %s: %s", property_id, e.message)
                failed += 1

        report = ReconciliationReport(purged, checked, deactivated, failed)
        logger.info(
            "Reconciliation complete: %d purged, %d checked, %d deactivated, %d failed", *report
        )
        return report
