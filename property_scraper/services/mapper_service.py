"""Mapper service — turns raw listing strings into NormalizedProperty values.

Handles:
- Price parsing: "$ 3,500,000" → (3500000.0, "MXN")
- Area parsing: "120 m²" → 120.0
- Counts: "3 recámaras" → 3, "2.5 baños" → 2.5
- Fallback identity when a source has no stable listing ID
"""
import hashlib
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple

from property_scraper.core.exceptions import ParsingError
from property_scraper.core.logging import get_logger
from property_scraper.schemas.property_schema import Coordinates, NormalizedProperty, Price

logger = get_logger(__name__)

DEFAULT_CURRENCY = "MXN"

_CURRENCY_MAP = {
    "mxn": "MXN",
    "mx$": "MXN",
    "usd": "USD",
    "us$": "USD",
    "u$s": "USD",
    "dólares": "USD",
    "dolares": "USD",
    "eur": "EUR",
    "€": "EUR",
}

_PRICE_PATTERN = re.compile(r"\d[\d\s.,]*")


def parse_price(raw: Optional[str]) -> Tuple[Optional[Decimal], Optional[str]]:
    """Parse a price string like '$ 3,500,000' into (Decimal(3500000), 'MXN')."""
    if not raw:
        return None, None

    match = _PRICE_PATTERN.search(raw)
    if not match:
        return None, None

    num_str = match.group().strip().replace(" ", "")

    if "," in num_str and "." in num_str:
        # 1,250,000.50 (thousands comma) or 1.250.000,50 (thousands dot)
        if num_str.rfind(".") > num_str.rfind(","):
            num_str = num_str.replace(",", "")
        else:
            num_str = num_str.replace(".", "").replace(",", ".")
    elif "," in num_str:
        parts = num_str.split(",")
        if len(parts) == 2 and len(parts[-1]) == 2:
            num_str = num_str.replace(",", ".")
        else:
            num_str = num_str.replace(",", "")
    elif "." in num_str:
        parts = num_str.split(".")
        if len(parts) > 2 or len(parts[-1]) == 3:
            num_str = num_str.replace(".", "")

    try:
        amount = Decimal(num_str)
    except InvalidOperation:
        logger.warning("Failed to parse price amount from: '%s'", raw)
        return None, None

    currency = DEFAULT_CURRENCY
    raw_lower = raw.lower()
    for symbol, code in _CURRENCY_MAP.items():
        if symbol in raw_lower:
            currency = code
            break

    return amount, currency


_AREA_PATTERN = re.compile(r"([\d.,]+)\s*m(?:²|2|ts|t2)?\b", re.IGNORECASE)


def parse_area(raw: Optional[str]) -> Optional[float]:
    """Parse an area string like '120 m²' or '1,200 m² totales' into a float."""
    if not raw:
        return None

    match = _AREA_PATTERN.search(raw)
    if not match:
        return None

    num_str = match.group(1)
    if re.fullmatch(r"\d{1,3}(,\d{3})+", num_str):
        num_str = num_str.replace(",", "")
    else:
        num_str = num_str.replace(",", ".")
    try:
        return float(num_str)
    except ValueError:
        return None


def parse_int(raw: Optional[str]) -> Optional[int]:
    """Parse the first integer from a string: '3 recámaras' → 3."""
    if not raw:
        return None
    match = re.search(r"\d+", raw)
    if match:
        return int(match.group())
    return None


def parse_bathrooms(raw: Optional[str]) -> Optional[float]:
    """Bathrooms allow halves: '2.5 baños' → 2.5, '1 medio baño' → 0.5."""
    if not raw:
        return None
    text = raw.lower()
    match = re.search(r"\d+(?:[.,]5)?", text)
    if not match:
        return None
    value = float(match.group().replace(",", "."))
    if "medio" in text and "." not in match.group() and "," not in match.group():
        value = value * 0.5
    return value


def fallback_external_id(address: str, city: str) -> str:
    """Stable identity for listings whose source exposes no ID."""
    key = f"{address.strip().lower()}|{city.strip().lower()}"
    return "addr-" + hashlib.sha1(key.encode("utf-8")).hexdigest()[:20]


def build_property(source: str, raw: Dict[str, Any]) -> NormalizedProperty:
    """Normalize a raw field dict produced by a source parser.

    Raises ParsingError when the payload has neither an ID nor an address to
    identify it.
    """
    external_id = (raw.get("external_id") or "").strip()
    address = (raw.get("address") or "").strip()
    city = (raw.get("city") or "").strip()
    if not external_id:
        if not address:
            raise ParsingError("Listing has neither an external ID nor an address")
        external_id = fallback_external_id(address, city)

    amount, currency = parse_price(raw.get("price"))
    area = raw.get("area_sqm")
    if isinstance(area, str):
        area = parse_area(area)

    return NormalizedProperty(
        source=source,
        external_id=external_id,
        listing_url=raw.get("listing_url"),
        country=raw.get("country") or "Mexico",
        state_province=raw.get("state_province") or "",
        city=city,
        neighborhood=raw.get("neighborhood") or "",
        postal_code=raw.get("postal_code") or "",
        address=address,
        coordinates=Coordinates(lat=raw.get("lat"), lng=raw.get("lng")),
        transaction_type=raw.get("transaction_type") or "sale",
        price=Price(amount=float(amount) if amount is not None else 0.0, currency=currency),
        property_type=raw.get("property_type"),
        bedrooms=raw.get("bedrooms") or 0,
        bathrooms=raw.get("bathrooms") or 0.0,
        area_sqm=area or 0.0,
        lot_size_sqm=raw.get("lot_size_sqm"),
        amenities=raw.get("amenities") or [],
        images=raw.get("images") or [],
        description=raw.get("description") or "",
        contact_info=raw.get("contact_info") or raw.get("listing_url") or "",
    )
