"""
Managed scraping actor adapter.

Runs the Rightmove scraper actor on Apify: starts a run, polls its
status until it reaches a terminal state, then reads the run's dataset.

API Documentation: https://docs.apify.com/api/v2
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from property_ingest.config import Settings
from property_ingest.errors import AdapterAuthError, AdapterRunFailed, AdapterTransientError
from property_ingest.models import RawListings, SearchFilters
from property_ingest.services.adapters.base import FetchAdapter
from property_ingest.services.adapters.rightmove_urls import identifier_search_url

logger = logging.getLogger(__name__)

SUCCEEDED = "SUCCEEDED"
FAILED_STATUSES = {"FAILED", "ABORTED", "TIMED-OUT"}


class ApifyAdapter(FetchAdapter):
    """Runs the Rightmove scraping actor and collects its dataset."""

    name = "Apify"
    default_bedrooms = 0

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the Apify adapter.

        Args:
            settings: Application settings containing API configuration.
            transport: Optional httpx transport, e.g. a mock in tests.
        """
        self.api_token = settings.apify_api_token
        super().__init__(
            settings,
            transport=transport,
            headers={
                "Authorization": f"Bearer {self.api_token or ''}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )
        self.api_url = settings.apify_base_url.rstrip("/")
        self.actor_id = settings.apify_actor_id
        self.poll_interval = settings.apify_poll_interval
        self.max_poll_attempts = settings.apify_max_poll_attempts
        self.max_properties = settings.apify_max_properties

    async def verify_credentials(self) -> str:
        if not self.api_token:
            raise AdapterAuthError("No Apify API token is configured.")

        response = await self.request("GET", f"{self.api_url}/users/me", "verify the API token")
        self.raise_for_status(response, "verify the API token")

        user = self.json_object(response, "verify the API token", key="data")
        return f"Valid Apify token for user: {user.get('username') or 'unknown'}"

    async def run_actor(self, actor_input: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Run the actor to completion and return its dataset items.

        Raises:
            AdapterAuthError: If Apify rejects the token.
            AdapterRunFailed: If the run ends FAILED, ABORTED or TIMED-OUT.
            AdapterTransientError: If the run could not be started or read,
                or did not finish within the polling budget.
        """
        await self.ensure_credentials()

        run_id = await self._start_run(actor_input)
        await self._wait_for_run(run_id)
        return await self._fetch_dataset(run_id)

    async def _start_run(self, actor_input: Dict[str, Any]) -> str:
        url = f"{self.api_url}/acts/{self.actor_id}/runs"
        logger.info("[%s] Starting actor %s", self.name, self.actor_id)

        response = await self.request("POST", url, "start the scraping run", json=actor_input)
        self.raise_for_status(response, "start the scraping run")

        run_id = self.json_object(response, "start the scraping run", key="data").get("id")
        if not run_id:
            logger.error("[%s] Run start response had no id: %s", self.name, response.text[:300])
            raise AdapterTransientError("The Apify service did not return a run id.")

        logger.info("[%s] Actor run started with ID: %s", self.name, run_id)
        return run_id

    async def _wait_for_run(self, run_id: str) -> Dict[str, Any]:
        url = f"{self.api_url}/actor-runs/{run_id}"

        for attempt in range(1, self.max_poll_attempts + 1):
            await asyncio.sleep(self.poll_interval)

            response = await self.request("GET", url, "report the run status")
            self.raise_for_status(response, "report the run status")

            run = self.json_object(response, "report the run status", key="data")
            status = run.get("status")
            logger.info(
                "[%s] Run %s status %s (attempt %d/%d): %s",
                self.name,
                run_id,
                status,
                attempt,
                self.max_poll_attempts,
                run.get("statusMessage") or "no message",
            )

            if status == SUCCEEDED:
                return run
            if status in FAILED_STATUSES:
                raise AdapterRunFailed(f"The scraping run finished with status {status}.", status)

        raise AdapterTransientError("Timed out waiting for the scraping run to finish.")

    async def _fetch_dataset(self, run_id: str) -> List[Dict[str, Any]]:
        url = f"{self.api_url}/actor-runs/{run_id}/dataset/items"
        response = await self.request(
            "GET", url, "return the run results", params={"format": "json", "clean": "true"}
        )
        self.raise_for_status(response, "return the run results")

        items = self.json_body(response, "return the run results")
        if not isinstance(items, list):
            raise AdapterTransientError("The Apify service returned malformed results.")

        logger.info("[%s] Retrieved %d results for run %s", self.name, len(items), run_id)
        return [item for item in items if isinstance(item, dict)]

    async def fetch_search(self, filters: SearchFilters) -> RawListings:
        search_url = identifier_search_url(self.base_url, filters)
        logger.info("[%s] Rightmove search URL: %s", self.name, search_url)

        items = await self.run_actor(
            {
                "listUrls": [{"url": search_url, "method": "GET"}],
                "fullScrape": True,
                "monitoringMode": False,
                "fullPropertyDetails": True,
                "maxProperties": self.max_properties,
                "proxy": {"useApifyProxy": True},
            }
        )
        # The actor returns the whole result set; pagination happens downstream.
        return RawListings(items=items, total_results=None)

    async def fetch_details(self, property_id: str) -> Optional[Dict[str, Any]]:
        items = await self.run_actor(
            {
                "propertyUrls": [{"url": self.listing_url(property_id)}],
                "fullPropertyDetails": True,
            }
        )
        return items[0] if items else None

    async def check_status(self, property_id: str) -> bool:
        raw = await self.fetch_details(property_id)
        if raw is None:
            return False

        status = raw.get("status")
        if isinstance(status, dict):
            if status.get("archived") is True or status.get("published") is False:
                return False

        active = raw.get("isActive", raw.get("is_active", True))
        return active is not False
