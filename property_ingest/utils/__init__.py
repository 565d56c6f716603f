"""Utility functions."""

from property_ingest.utils.helpers import (
    MAX_DB_INT,
    clean_text,
    detect_property_type,
    extract_number,
    extract_postcode,
    parse_price,
    stable_hash,
)

__all__ = [
    "MAX_DB_INT",
    "clean_text",
    "detect_property_type",
    "extract_number",
    "extract_postcode",
    "parse_price",
    "stable_hash",
]
