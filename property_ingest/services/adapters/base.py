"""Base class for live listing fetch adapters."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from property_ingest.config import Settings
from property_ingest.errors import AdapterAuthError, AdapterTransientError, PropertyIngestError
from property_ingest.models import AdapterDiagnostic, RawListings, SearchFilters

logger = logging.getLogger(__name__)

AUTH_FAILURE_STATUSES = {401, 403}

# Page copy shown by the listing site once a property is withdrawn
INACTIVE_MARKERS = (
    "This property has been removed by the agent",
    "This property is no longer available",
    "has now been sold subject to contract",
)


class FetchAdapter(ABC):
    """
    Abstract base class for live fetch adapters.

    Adapters return raw payloads; turning them into Property records is
    the normalizer's job.
    """

    name: str = "base"

    # Bedroom count assumed when a payload does not state one
    default_bedrooms: int = 0

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Initialize the adapter's HTTP client.

        Args:
            settings: Application settings.
            transport: Optional httpx transport, e.g. a mock in tests.
            headers: Default headers for every request.
        """
        self.settings = settings
        self.base_url = settings.rightmove_base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            timeout=settings.request_timeout,
            headers=headers,
            follow_redirects=True,
            transport=transport,
        )
        self._credentials_verified = False

    @abstractmethod
    async def fetch_search(self, filters: SearchFilters) -> RawListings:
        """
        Fetch raw listings for a search.

        Raises:
            AdapterAuthError: If the upstream service rejects our credentials.
            AdapterTransientError: If this attempt failed but another
                strategy may still succeed.
        """

    @abstractmethod
    async def fetch_details(self, property_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one raw listing, or None if it does not exist."""

    @abstractmethod
    async def check_status(self, property_id: str) -> bool:
        """Whether the listing is still live on the source site."""

    @abstractmethod
    async def verify_credentials(self) -> str:
        """
        Make a cheap authenticated call.

        Returns:
            A short description of the account on success.

        Raises:
            AdapterAuthError: If no credential is configured or it is rejected.
            AdapterTransientError: If the service could not be reached.
        """

    async def check_credentials(self) -> AdapterDiagnostic:
        """Credential check for operator health pages; never raises."""
        try:
            message = await self.verify_credentials()
        except PropertyIngestError as e:
            logger.warning("[%s] Credential check failed: %s", self.name, e.message)
            return AdapterDiagnostic(success=False, message=e.message)

        self._credentials_verified = True
        return AdapterDiagnostic(success=True, message=message)

    async def ensure_credentials(self) -> None:
        """Verify credentials once before the first live fetch."""
        if self._credentials_verified:
            return
        message = await self.verify_credentials()
        logger.info("[%s] %s", self.name, message)
        self._credentials_verified = True

    def listing_url(self, property_id: str) -> str:
        return f"{self.base_url}/properties/{property_id}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        return await self.client.request(method, url, **kwargs)

    async def request(self, method: str, url: str, action: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request, retrying transport failures.

        Raises:
            AdapterTransientError: If the service stays unreachable.
        """
        try:
            return await self._send(method, url, **kwargs)
        except httpx.RequestError as e:
            logger.error("[%s] Could not %s: %s", self.name, action, e)
            raise AdapterTransientError(f"The {self.name} service could not {action}.") from e

    def raise_for_status(self, response: httpx.Response, action: str) -> None:
        """
        Translate an upstream HTTP failure into the adapter error taxonomy.

        The raw status and a snippet of the body are logged; the raised
        error only carries a user-safe message.
        """
        if response.is_success:
            return

        logger.error(
            "[%s] %s failed: %s %s - %s",
            self.name,
            action,
            response.status_code,
            response.reason_phrase,
            response.text[:300],
        )
        if response.status_code in AUTH_FAILURE_STATUSES:
            raise AdapterAuthError(
                f"The {self.name} credentials were rejected. Check the configured API key."
            )
        raise AdapterTransientError(f"The {self.name} service could not {action}.")

    def json_body(self, response: httpx.Response, action: str) -> Any:
        """Decoded JSON body of a successful response."""
        try:
            return response.json()
        except ValueError as e:
            logger.error("[%s] Non-JSON reply to %s: %s", self.name, action, response.text[:300])
            raise AdapterTransientError(f"The {self.name} service returned an unreadable reply.") from e

    def json_object(self, response: httpx.Response, action: str, key: Optional[str] = None) -> Dict[str, Any]:
        """JSON object body (or its ``key`` member); empty when shaped otherwise."""
        body = self.json_body(response, action)
        if key is not None and isinstance(body, dict):
            body = body.get(key)
        return body if isinstance(body, dict) else {}

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()


def is_inactive_page(html: str) -> bool:
    """True if a listing page says the property has been withdrawn."""
    return any(marker in html for marker in INACTIVE_MARKERS)
