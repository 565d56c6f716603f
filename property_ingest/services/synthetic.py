"""
Deterministic synthetic listings.

Last resort of the fetch chain when no real data can be obtained. Output
depends only on the searched location, so repeating a search returns the
same records. Every record is flagged ``is_synthetic``.
"""

import hashlib
import logging
import random
import re
from typing import List, Optional, Tuple

from property_ingest.models import Agent, FloorArea, Property, SearchFilters, SearchResults
from property_ingest.models import paginate, total_pages
from property_ingest.services.local_dataset import matches_ranges

logger = logging.getLogger(__name__)

ID_PREFIX = "synthetic-"
SYNTHETIC_ID_PATTERN = re.compile(r"^synthetic-([a-z0-9-]+)-(\d+)$")

LARGE_CITIES = {
    "london", "birmingham", "manchester", "leeds", "glasgow", "liverpool",
    "bristol", "sheffield", "edinburgh", "cardiff", "leicester", "nottingham",
    "newcastle", "belfast", "brighton", "southampton", "oxford", "cambridge",
}
SMALL_PLACE_MARKERS = ("village", "rural", "hamlet")

STREET_NAMES = [
    "High Street", "Station Road", "Church Lane", "Victoria Road", "Park Avenue",
    "Mill Lane", "Queens Road", "King Street", "The Crescent", "Manor Way",
    "Orchard Close", "Green Lane",
]
PROPERTY_TYPES = ["Flat", "Terraced", "Semi-Detached", "Detached", "Bungalow", "Cottage"]
FEATURES = [
    "Garden", "Off-street parking", "Double glazing", "Gas central heating",
    "Close to schools", "Recently refurbished", "Garage", "Open-plan kitchen",
]
TENURES = ["Freehold", "Leasehold", "Share of freehold"]


def slugify(location: str) -> str:
    """Normalized location used both as the seed and inside synthetic ids."""
    return re.sub(r"[^a-z0-9]+", "-", location.lower()).strip("-")


def is_synthetic_id(property_id: str) -> bool:
    return SYNTHETIC_ID_PATTERN.match(property_id) is not None


def _seed(*parts: object) -> int:
    digest = hashlib.sha256("|".join(str(p) for p in parts).encode("utf-8")).hexdigest()
    return int(digest[:16], 16)


def _profile(slug: str) -> Tuple[int, int, int]:
    """(result count, minimum price, maximum price) for a location."""
    rng = random.Random(_seed(slug, "profile"))
    words = set(slug.split("-"))

    if words & LARGE_CITIES:
        return rng.randint(60, 96), 250_000, 1_500_000
    if any(marker in slug for marker in SMALL_PLACE_MARKERS):
        return rng.randint(4, 10), 150_000, 600_000
    return rng.randint(18, 40), 150_000, 750_000


class SyntheticGenerator:
    """Builds plausible, clearly labelled listings for a location."""

    def generate(self, location: str) -> List[Property]:
        """Every synthetic listing for ``location``, in a stable order."""
        slug = slugify(location) or "unknown"
        count, _, _ = _profile(slug)
        return [self._listing(slug, index) for index in range(1, count + 1)]

    def search(self, filters: SearchFilters, page_size: int) -> SearchResults:
        properties = [p for p in self.generate(filters.location) if matches_ranges(p, filters)]
        logger.warning(
            "Serving %d synthetic properties for '%s'", len(properties), filters.location
        )
        return SearchResults(
            properties=paginate(properties, filters.page, page_size),
            total_results=len(properties),
            current_page=filters.page,
            total_pages=total_pages(len(properties), page_size),
            is_synthetic=True,
        )

    def details(self, property_id: str) -> Optional[Property]:
        """Regenerate one listing from its id; None for non-synthetic ids."""
        match = SYNTHETIC_ID_PATTERN.match(property_id)
        if not match:
            return None

        slug, index = match.group(1), int(match.group(2))
        count, _, _ = _profile(slug)
        if not 1 <= index <= count:
            return None
        return self._listing(slug, index)

    def _listing(self, slug: str, index: int) -> Property:
        _, min_price, max_price = _profile(slug)
        rng = random.Random(_seed(slug, index))
        town = slug.replace("-", " ").title()

        property_type = rng.choice(PROPERTY_TYPES)
        bedrooms = rng.randint(1, 2) if property_type == "Flat" else rng.randint(2, 5)
        # round to the nearest £5,000 like real asking prices
        price = round(rng.randint(min_price, max_price) / 5000) * 5000
        address = f"{rng.randint(1, 200)} {rng.choice(STREET_NAMES)}, {town}"

        return Property(
            id=f"{ID_PREFIX}{slug}-{index}",
            address=address,
            price=price,
            property_type=property_type,
            bedrooms=bedrooms,
            bathrooms=max(1, bedrooms - rng.randint(0, 2)),
            description=(
                f"Synthetic listing: a {bedrooms} bedroom {property_type.lower()} in {town}. "
                "Generated because no live listings were available."
            ),
            features=rng.sample(FEATURES, 3),
            agent=Agent(name="Synthetic Listings"),
            floor_area=FloorArea(size=float(rng.randint(45, 60) * bedrooms), unit="sq m"),
            tenure="Leasehold" if property_type == "Flat" else rng.choice(TENURES),
            is_synthetic=True,
        )
