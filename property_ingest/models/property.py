"""
Pydantic models for property ingestion.

These models define the canonical property record and the request and
response shapes used throughout the application. Field names are
snake_case in Python and camelCase on the wire.
"""

import json
import math
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from property_ingest.utils import MAX_DB_INT


class CamelModel(BaseModel):
    """Base model that serializes with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Agent(CamelModel):
    """Estate agent or branch responsible for a listing."""

    name: str = Field(default="Unknown Agent", description="Agent or branch name")
    phone: Optional[str] = Field(default=None, description="Contact phone number")
    logo_url: Optional[str] = Field(default=None, description="Agent logo URL")


class FloorArea(CamelModel):
    """Internal floor area of a property."""

    size: float = Field(ge=0, allow_inf_nan=False, description="Floor area value")
    unit: str = Field(default="sq ft", description="Unit of the floor area")


class Property(CamelModel):
    """
    Canonical property listing.

    Every source payload is normalized into this shape before it is
    cached, filtered or returned to callers.
    """

    id: str = Field(description="Listing identifier, unique within a source")
    address: str = Field(default="", description="Display address")
    postcode: str = Field(default="", description="UK postcode, if known")
    price: int = Field(default=0, ge=0, le=MAX_DB_INT, description="Asking price in GBP, 0 when unknown")
    property_type: str = Field(default="Not specified", description="Type of property")
    bedrooms: int = Field(default=0, ge=0, le=MAX_DB_INT, description="Number of bedrooms")
    bathrooms: int = Field(default=0, ge=0, le=MAX_DB_INT, description="Number of bathrooms")
    description: str = Field(default="", description="Listing description")
    features: List[str] = Field(default_factory=list, description="Key features")
    main_image_url: Optional[str] = Field(default=None, description="Primary image URL")
    image_urls: List[str] = Field(default_factory=list, description="All image URLs")
    agent: Agent = Field(default_factory=Agent)
    is_active: bool = Field(default=True, description="Whether the listing is still live")
    source_url: str = Field(default="", description="Link back to the original listing")
    floor_area: Optional[FloorArea] = None
    tenure: Optional[str] = None
    new_build: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    date_listed: Optional[str] = None
    is_synthetic: bool = Field(
        default=False,
        description="True when the record was generated rather than fetched",
    )

    @model_validator(mode="after")
    def _reconcile_images(self) -> "Property":
        # main image first, then the rest in listing order, no repeats
        urls: List[str] = []
        for url in [self.main_image_url, *self.image_urls]:
            if url and url not in urls:
                urls.append(url)

        self.image_urls = urls
        self.main_image_url = urls[0] if urls else None
        return self


class SearchFilters(BaseModel):
    """
    One search request.

    Immutable once created; used to drive the fetch chain and to build a
    deterministic cache key.
    """

    model_config = ConfigDict(frozen=True)

    location: str = Field(min_length=1, description="Town, area, outcode or postcode")
    min_price: Optional[int] = Field(default=None, ge=0)
    max_price: Optional[int] = Field(default=None, ge=0)
    min_beds: Optional[int] = Field(default=None, ge=0)
    max_beds: Optional[int] = Field(default=None, ge=0)
    property_type: Optional[str] = None
    page: int = Field(default=1, ge=1)

    @field_validator("location")
    @classmethod
    def _strip_location(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("location must not be blank")
        return value

    def cache_key(self, namespace: str = "rightmove") -> str:
        """Stable key: identical filters always serialize identically."""
        payload = json.dumps(self.model_dump(), sort_keys=True, separators=(",", ":"))
        return f"{namespace}:search:{payload}"


class SearchResults(CamelModel):
    """One page of search results."""

    properties: List[Property] = Field(default_factory=list)
    total_results: int = Field(default=0, ge=0)
    current_page: int = Field(default=1, ge=1)
    total_pages: int = Field(default=0, ge=0)
    is_synthetic: bool = False


class AdapterDiagnostic(CamelModel):
    """Operator-facing credential check result."""

    success: bool
    message: str


class RawListings(NamedTuple):
    """Raw items returned by a fetch adapter for one search."""

    items: List[dict]
    # None when the adapter returns the full result set unpaginated
    total_results: Optional[int] = None


def total_pages(total_results: int, page_size: int) -> int:
    """Number of pages needed to show ``total_results`` items."""
    if total_results <= 0:
        return 0
    return math.ceil(total_results / page_size)


def paginate(items: List[Property], page: int, page_size: int) -> List[Property]:
    start = (page - 1) * page_size
    return items[start:start + page_size]


class ScrapeRequest(CamelModel):
    """Body of a scrape request. A missing location is rejected by the route."""

    location: Optional[str] = Field(default=None, description="Town, area, outcode or postcode")
    page: int = Field(default=1, ge=1)
    min_price: Optional[int] = Field(default=None, ge=0)
    max_price: Optional[int] = Field(default=None, ge=0)
    min_beds: Optional[int] = Field(default=None, ge=0)
    max_beds: Optional[int] = Field(default=None, ge=0)
    property_type: Optional[str] = None

    def filters(self) -> Dict[str, Any]:
        """Optional filters that were actually supplied."""
        return self.model_dump(exclude={"location", "page"}, exclude_none=True)


class ImportRequest(CamelModel):
    """Listings to save for an owner."""

    properties: List[Dict[str, Any]] = Field(default_factory=list)
    owner_id: str = Field(description="User the listings belong to")


class ImportResponse(CamelModel):
    imported: int
