"""Helper utilities for parsing listing fields."""

import hashlib
import math
import re
from typing import Any, Optional

# Full UK postcode, e.g. "SW1A 1AA", "B16 8QT", "m1 1ae"
POSTCODE_PATTERN = re.compile(r"\b([A-Z]{1,2}[0-9][0-9A-Z]?)\s*([0-9][A-Z]{2})\b", re.IGNORECASE)

# Largest value a signed 64-bit database column holds
MAX_DB_INT = 2**63 - 1

PROPERTY_TYPE_PATTERNS = [
    (re.compile(r"\b(flat|apartment|maisonette|penthouse|studio)\b", re.IGNORECASE), "Flat"),
    (re.compile(r"\bsemi[- ]detached\b", re.IGNORECASE), "Semi-Detached"),
    (re.compile(r"\b(terraced|terrace|end of terrace)\b", re.IGNORECASE), "Terraced"),
    (re.compile(r"\bdetached\b", re.IGNORECASE), "Detached"),
    (re.compile(r"\bbungalow\b", re.IGNORECASE), "Bungalow"),
    (re.compile(r"\bcottage\b", re.IGNORECASE), "Cottage"),
    (re.compile(r"\b(house|town house|townhouse)\b", re.IGNORECASE), "House"),
    (re.compile(r"\b(land|plot)\b", re.IGNORECASE), "Land"),
]


def _bounded(number: int) -> Optional[int]:
    return number if abs(number) <= MAX_DB_INT else None


def _leading_int(digits: str) -> Optional[int]:
    # longer runs are never real figures and would overflow int conversion
    if len(digits) > len(str(MAX_DB_INT)):
        return None
    return _bounded(int(digits))


def parse_price(value: Any) -> int:
    """
    Coerce a price into whole pounds.

    Accepts numbers and strings such as "£250,000", "Offers over £1,250,000"
    or "250000.00". Anything unparseable, negative, non-finite or too large
    to store becomes 0.
    """
    if value is None or isinstance(value, bool):
        return 0

    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        return max(_bounded(int(value)) or 0, 0)

    if not isinstance(value, str):
        return 0

    cleaned = re.sub(r"[£$€,\s]", "", value)
    match = re.search(r"(\d+)(?:\.\d+)?", cleaned)
    if not match:
        return 0
    return _leading_int(match.group(1)) or 0


def extract_number(value: Any) -> Optional[int]:
    """Extract the first integer from a number or text; None if absent or out of range."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return _bounded(value)
    if isinstance(value, float):
        return _bounded(int(value)) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None

    match = re.search(r"\d+", value)
    if match:
        return _leading_int(match.group())
    return None


def clean_text(text: Any) -> Optional[str]:
    """Collapse whitespace; return None for empty or non-string input."""
    if not isinstance(text, str):
        return None

    text = " ".join(text.split())
    return text or None


def extract_postcode(address: Optional[str]) -> str:
    """Find a UK postcode inside an address, normalized as 'OUT IN'."""
    if not address:
        return ""

    match = POSTCODE_PATTERN.search(address)
    if not match:
        return ""
    return f"{match.group(1).upper()} {match.group(2).upper()}"


def detect_property_type(text: Optional[str]) -> Optional[str]:
    """Guess a property type from free text."""
    if not text:
        return None

    for pattern, label in PROPERTY_TYPE_PATTERNS:
        if pattern.search(text):
            return label
    return None


def stable_hash(*parts: Any) -> str:
    """Short deterministic hash of the given values."""
    digest = hashlib.sha1("|".join(str(p) for p in parts).encode("utf-8"))
    return digest.hexdigest()[:12]
