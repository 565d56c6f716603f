"""
Normalization of raw listing payloads into canonical Property records.

Source payloads come from the scraping actor (Rightmove JSON in several
revisions), from HTML cards parsed by the proxy adapter, and from
manually imported JSON. Each attribute is probed under every field name
we have seen it use; a missing or malformed field falls back to its
default instead of failing the whole record.
"""

import logging
import math
import re
from typing import Any, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from property_ingest.models.property import Agent, FloorArea, Property
from property_ingest.utils import (
    clean_text,
    detect_property_type,
    extract_number,
    extract_postcode,
    parse_price,
    stable_hash,
)

logger = logging.getLogger(__name__)

RIGHTMOVE_BASE_URL = "https://www.rightmove.co.uk"
LISTING_ID_PATTERN = re.compile(r"(?:property-|/properties/)(\d+)")


def _get(data: Any, *path: str) -> Any:
    """Walk nested mappings; None as soon as a step is missing."""
    for key in path:
        if not isinstance(data, Mapping):
            return None
        data = data.get(key)
    return data


def _first(data: Mapping, *keys: str) -> Any:
    """First non-empty value among ``keys`` (dotted keys walk nested mappings)."""
    for key in keys:
        value = _get(data, *key.split("."))
        if value not in (None, "", [], {}):
            return value
    return None


def _image_url(item: Any) -> Optional[str]:
    if isinstance(item, str):
        return item.strip() or None
    if isinstance(item, Mapping):
        url = _first(item, "srcUrl", "url", "src", "href", "imageUrl")
        if isinstance(url, str):
            return url.strip() or None
    return None


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, Mapping):
        # {"images": [...]} wrappers
        nested = value.get("images")
        if isinstance(nested, list):
            return nested
    return []


def extract_images(raw: Mapping) -> List[str]:
    """Collect every image URL a payload exposes, in order, without repeats."""
    candidates: List[Any] = []
    for key in ("propertyImages", "images", "imageUrls", "image_urls", "photos", "propertyInfo.images"):
        candidates.extend(_as_list(_get(raw, *key.split("."))))

    urls: List[str] = []
    for item in candidates:
        url = _image_url(item)
        if url and url not in urls:
            urls.append(url)
    return urls


def extract_main_image(raw: Mapping) -> Optional[str]:
    value = _first(
        raw,
        "main_image_url",
        "mainImageUrl",
        "mainImage",
        "image_url",
        "imageUrl",
        "propertyImages.mainImageSrc",
    )
    return _image_url(value)


def extract_price(raw: Mapping) -> int:
    value = _first(
        raw,
        "price",
        "propertyInfo.price",
        "prices.primaryPrice",
        "priceText",
        "displayPrice",
        "asking_price",
        "amount",
    )
    if isinstance(value, Mapping):
        value = _first(value, "amount", "value", "displayPrice", "primaryPrice")
    return parse_price(value)


def extract_address(raw: Mapping) -> str:
    value = _first(raw, "address", "displayAddress", "location.displayAddress", "title")
    if isinstance(value, Mapping):
        value = _first(value, "displayAddress", "full", "address")
    address = clean_text(value)
    if address:
        return address

    full_desc = clean_text(raw.get("propertyTypeFullDesc"))
    if full_desc:
        location = clean_text(_first(raw, "locationText", "location")) or ""
        return f"{full_desc}, {location}" if location else full_desc
    return ""


def extract_postcode_field(raw: Mapping, address: str) -> str:
    value = _first(raw, "postcode", "postCode", "address.postcode")
    if isinstance(value, str) and value.strip():
        return value.strip().upper()

    outcode = _first(raw, "address.outcode", "outcode")
    incode = _first(raw, "address.incode", "incode")
    if isinstance(outcode, str) and isinstance(incode, str):
        return f"{outcode} {incode}".upper()

    return extract_postcode(address)


def extract_agent(raw: Mapping) -> Agent:
    block = raw.get("agent")
    if not isinstance(block, Mapping):
        block = raw.get("customer")
    if not isinstance(block, Mapping):
        block = {}

    name = clean_text(
        _first(block, "name", "agentName", "branchDisplayName", "branchName", "brandTradingName")
    ) or clean_text(_first(raw, "agentName", "branchName", "branch.name"))
    phone = clean_text(
        _first(block, "phone", "contactPhoneNumber", "contactTelephone", "telephone")
    ) or clean_text(_first(raw, "contactPhoneNumber", "agentPhone"))
    logo = _first(block, "logo_url", "logoUrl", "brandPlusLogoUrl", "branchLogo") or _first(raw, "agentLogo")

    return Agent(
        name=name or "Unknown Agent",
        phone=phone,
        logo_url=logo if isinstance(logo, str) and logo else None,
    )


def extract_floor_area(raw: Mapping) -> Optional[FloorArea]:
    try:
        value = raw.get("floor_area")
        if isinstance(value, Mapping) and value.get("size") is not None:
            return FloorArea(size=float(value["size"]), unit=str(value.get("unit") or "sq ft"))

        value = raw.get("floorArea")
        if isinstance(value, Mapping):
            size = _first(value, "value", "size")
            if size is not None:
                return FloorArea(size=float(size), unit=str(value.get("unit") or "sq ft"))

        if raw.get("floorAreaValue") is not None and raw.get("floorAreaUnit"):
            return FloorArea(size=float(raw["floorAreaValue"]), unit=str(raw["floorAreaUnit"]))

        for sizing in _as_list(raw.get("sizings")):
            if not isinstance(sizing, Mapping):
                continue
            size = sizing.get("maximumSize") or sizing.get("minimumSize")
            if size is not None:
                return FloorArea(size=float(size), unit=str(sizing.get("unit") or "sqft"))
    except (TypeError, ValueError, OverflowError, ValidationError) as e:
        logger.debug("Skipping malformed floor area: %s", e)
    return None


def extract_features(raw: Mapping) -> List[str]:
    value = _first(raw, "features", "propertyFeatures", "keyFeatures")
    if isinstance(value, str):
        value = [value]

    features: List[str] = []
    for item in _as_list(value):
        if isinstance(item, Mapping):
            item = _first(item, "description", "text", "name")
        text = clean_text(item)
        if text:
            features.append(text)
    return features


def extract_property_type(raw: Mapping) -> str:
    value = clean_text(_first(raw, "property_type", "propertyType", "propertySubType"))
    if value:
        return value
    detected = detect_property_type(
        clean_text(_first(raw, "propertyTypeFullDesc", "summary", "title"))
    )
    return detected or "Not specified"


def extract_source_url(raw: Mapping) -> str:
    value = _first(raw, "rightmove_url", "sourceUrl", "source_url", "propertyUrl", "url", "link")
    if not isinstance(value, str):
        return ""
    value = value.strip()
    if value.startswith("/"):
        return f"{RIGHTMOVE_BASE_URL}{value}"
    return value


def extract_id(raw: Mapping, source_url: str, address: str, price: int) -> str:
    value = _first(raw, "id", "propertyId", "property_id", "identifier")
    if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value).strip():
        return str(value).strip()

    match = LISTING_ID_PATTERN.search(source_url)
    if match:
        return match.group(1)
    return f"rm-{stable_hash(address, price, source_url)}"


def _coordinate(raw: Mapping, *keys: str) -> Optional[float]:
    value = _first(raw, *keys)
    try:
        number = float(value) if value is not None else None
    except (TypeError, ValueError, OverflowError):
        return None
    return number if number is not None and math.isfinite(number) else None


def _tenure(raw: Mapping) -> Optional[str]:
    value = raw.get("tenure")
    if isinstance(value, Mapping):
        value = value.get("tenureType")
    return clean_text(value)


def _bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return default


def normalize(raw: Any, *, default_bedrooms: int = 0) -> Property:
    """
    Convert one raw payload into a Property.

    Never raises: a non-mapping input produces a record made entirely of
    defaults, and each unreadable field falls back individually.
    """
    if not isinstance(raw, Mapping):
        raw = {}

    address = extract_address(raw)
    price = extract_price(raw)
    source_url = extract_source_url(raw)
    property_id = extract_id(raw, source_url, address, price)
    if not source_url and property_id.isdigit():
        source_url = f"{RIGHTMOVE_BASE_URL}/properties/{property_id}"

    bedrooms = extract_number(_first(raw, "bedrooms", "numberOfBedrooms", "beds"))
    bathrooms = extract_number(_first(raw, "bathrooms", "numberOfBathrooms", "baths"))

    description = clean_text(
        _first(raw, "description", "propertyDescription", "text.description", "summary")
    )

    return Property(
        id=property_id,
        address=address,
        postcode=extract_postcode_field(raw, address),
        price=price,
        property_type=extract_property_type(raw),
        bedrooms=max(bedrooms, 0) if bedrooms is not None else default_bedrooms,
        bathrooms=max(bathrooms, 0) if bathrooms is not None else 0,
        description=description or "",
        features=extract_features(raw),
        main_image_url=extract_main_image(raw),
        image_urls=extract_images(raw),
        agent=extract_agent(raw),
        is_active=_bool(_first(raw, "isActive", "is_active"), True),
        source_url=source_url,
        floor_area=extract_floor_area(raw),
        tenure=_tenure(raw),
        new_build=_bool(_first(raw, "new_build", "newBuild", "isNewHome", "newHome"), False),
        latitude=_coordinate(raw, "latitude", "location.latitude", "lat"),
        longitude=_coordinate(raw, "longitude", "location.longitude", "lng", "lon"),
        date_listed=clean_text(
            _first(raw, "date_listed", "dateListed", "listing_date", "addedDate", "firstVisibleDate")
        ),
        is_synthetic=_bool(_first(raw, "isSynthetic", "is_synthetic"), False),
    )


def normalize_many(items: Iterable[Any], *, default_bedrooms: int = 0) -> List[Property]:
    """Normalize a batch of raw payloads."""
    return [normalize(item, default_bedrooms=default_bedrooms) for item in items]
