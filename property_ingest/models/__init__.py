from .property import (
    AdapterDiagnostic,
    Agent,
    FloorArea,
    ImportRequest,
    ImportResponse,
    Property,
    RawListings,
    ScrapeRequest,
    SearchFilters,
    SearchResults,
    paginate,
    total_pages,
)

__all__ = [
    "AdapterDiagnostic",
    "Agent",
    "FloorArea",
    "ImportRequest",
    "ImportResponse",
    "Property",
    "RawListings",
    "ScrapeRequest",
    "SearchFilters",
    "SearchResults",
    "paginate",
    "total_pages",
]
