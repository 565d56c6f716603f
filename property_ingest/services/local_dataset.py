"""
Bundled sample dataset for development builds.

A JSON file of raw listings (a list, or an object with a ``properties``
or ``items`` list) found at one of the configured candidate paths.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional

from property_ingest.models import Property, SearchFilters
from property_ingest.services.normalizer import normalize_many

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parent.parent


class LocalDataset:
    """Loads and filters the first sample dataset that exists."""

    def __init__(self, candidate_paths: Iterable[str]) -> None:
        self.candidate_paths = [Path(p) for p in candidate_paths]
        self._properties: Optional[List[Property]] = None

    def _resolve(self) -> Optional[Path]:
        for path in self.candidate_paths:
            for candidate in (path, PACKAGE_ROOT / path):
                if candidate.is_file():
                    return candidate
        return None

    async def load(self) -> Optional[List[Property]]:
        """
        Normalized records from the dataset.

        Returns:
            None when no candidate file exists or none can be parsed.
        """
        if self._properties is not None:
            return self._properties

        path = self._resolve()
        if path is None:
            return None

        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
            payload = json.loads(text)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read sample dataset %s: %s", path, e)
            return None

        items = _extract_items(payload)
        if items is None:
            logger.warning("Sample dataset %s has no list of listings", path)
            return None

        self._properties = normalize_many(items)
        logger.info("Loaded %d sample properties from %s", len(self._properties), path)
        return self._properties

    async def search(self, filters: SearchFilters) -> Optional[List[Property]]:
        """Sample records matching ``filters``, or None without a dataset."""
        properties = await self.load()
        if properties is None:
            return None
        return [p for p in properties if matches(p, filters)]

    async def find(self, property_id: str) -> Optional[Property]:
        properties = await self.load() or []
        return next((p for p in properties if p.id == property_id), None)


def _extract_items(payload: Any) -> Optional[List[Any]]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("properties", "items", "data"):
            if isinstance(payload.get(key), list):
                return payload[key]
    return None


def matches(prop: Property, filters: SearchFilters) -> bool:
    """Apply search filters, location included, to one record."""
    location = filters.location.lower()
    if location not in prop.address.lower() and location not in prop.postcode.lower():
        return False
    return matches_ranges(prop, filters)


def matches_ranges(prop: Property, filters: SearchFilters) -> bool:
    """Price, bedroom and type filters only."""
    if filters.min_price is not None and prop.price < filters.min_price:
        return False
    if filters.max_price is not None and prop.price > filters.max_price:
        return False
    if filters.min_beds is not None and prop.bedrooms < filters.min_beds:
        return False
    if filters.max_beds is not None and prop.bedrooms > filters.max_beds:
        return False
    if filters.property_type and filters.property_type.lower() not in prop.property_type.lower():
        return False
    return True
