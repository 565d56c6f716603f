"""
API routes for property scraping, details and import.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from property_ingest.api.rate_limit import enforce_rate_limit
from property_ingest.errors import (
    AdapterAuthError,
    InvalidQuery,
    PersistenceError,
    PropertyIngestError,
)
from property_ingest.models import (
    AdapterDiagnostic,
    ImportRequest,
    ImportResponse,
    Property,
    ScrapeRequest,
    SearchResults,
)
from property_ingest.services.property_service import PropertyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["properties"])


def get_property_service(request: Request) -> PropertyService:
    """Dependency that provides the service created at startup."""
    return request.app.state.property_service


Service = Annotated[PropertyService, Depends(get_property_service)]


@router.post(
    "/scrape-properties",
    response_model=SearchResults,
    summary="Search listings for a location",
    description="Fetch one page of listings, from cache when fresh, otherwise live.",
    dependencies=[Depends(enforce_rate_limit)],
)
async def scrape_properties(request: ScrapeRequest, service: Service) -> SearchResults:
    """
    Search listings for a location.

    Args:
        request: Location, page and optional filters.
        service: Injected property service.

    Returns:
        One page of results. ``isSynthetic`` is true when no real data was
        available.

    Raises:
        HTTPException: 400 for a missing location, 502 when the listing
            provider rejects our credentials, 500 for anything else.
    """
    logger.info("Received scrape request for '%s' (page %d)", request.location, request.page)

    try:
        results = await service.search_properties(request.location, request.page, **request.filters())
        logger.info(
            "Returning %d of %d properties for '%s'",
            len(results.properties),
            results.total_results,
            request.location,
        )
        return results

    except InvalidQuery as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e

    except AdapterAuthError as e:
        logger.error("Listing provider rejected credentials: %s", e.message)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message) from e

    except PropertyIngestError as e:
        logger.error("Scrape failed: %s", e.message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Failed to scrape properties", "error": e.message},
        ) from e

    except Exception as e:
        logger.exception("Unexpected error during scrape")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Failed to scrape properties", "error": "Internal server error"},
        ) from e


@router.get(
    "/properties/{property_id}",
    response_model=Property,
    summary="Get one listing",
)
async def get_property(property_id: str, service: Service) -> Property:
    """
    Get full details of one listing.

    Raises:
        HTTPException: 404 if no source knows the listing, 502 on a
            credential failure.
    """
    try:
        prop = await service.get_property_details(property_id)
    except InvalidQuery as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e
    except AdapterAuthError as e:
        logger.error("Listing provider rejected credentials: %s", e.message)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message) from e

    if prop is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Property not found: {property_id}",
        )
    return prop


@router.post(
    "/properties/import",
    response_model=ImportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Save listings for a user",
)
async def import_properties(request: ImportRequest, service: Service) -> ImportResponse:
    """
    Save listings for an owner in one transaction.

    Raises:
        HTTPException: 400 for a blank owner id, 500 if nothing could be
            saved.
    """
    try:
        imported = await service.import_properties(request.properties, request.owner_id)
    except InvalidQuery as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e
    except PersistenceError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Failed to import properties", "error": e.message},
        ) from e

    return ImportResponse(imported=imported)


@router.get(
    "/diagnostics/adapter",
    response_model=AdapterDiagnostic,
    summary="Check listing provider credentials",
)
async def adapter_diagnostics(service: Service) -> AdapterDiagnostic:
    """Operator check that the configured adapter accepts our credentials."""
    return await service.diagnostics()
