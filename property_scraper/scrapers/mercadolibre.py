"""MercadoLibre Inmuebles — listing result pages parsed straight from HTML.

Result pages hold 48 cards; page N starts at offset (N - 1) * 48 + 1:
    /<category>/<city>/_Desde_<offset>
"""
import re
import unicodedata
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup, Tag

from property_scraper.config import settings
from property_scraper.scrapers.base import Location, SourceDefinition
from property_scraper.services.mapper_service import parse_area, parse_bathrooms, parse_int

ITEMS_PER_PAGE = 48

CITIES = ("ciudad-de-mexico", "guadalajara", "monterrey", "puebla", "queretaro")
CATEGORIES = {"casas": "house", "departamentos": "apartment"}

HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "es-MX,es;q=0.9,en;q=0.8",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

# Card layouts seen over time, newest first
ITEM_SELECTORS = (
    "li.ui-search-layout__item",
    "li[class*='results-item']",
    "div.ui-search-result__wrapper",
    "article.ui-search-result",
)
TITLE_SELECTOR = ".poly-component__title, .ui-search-item__title, .ui-search-result__content-title, h2"
PRICE_SELECTOR = ".andes-money-amount__fraction, .price-tag-text-sr-only, .price__fraction"
CURRENCY_SELECTOR = ".andes-money-amount__currency-symbol"
LOCATION_SELECTOR = ".poly-component__location, .ui-search-item__location, .ui-search-result__content-location"
ATTRIBUTE_SELECTOR = (
    ".poly-attributes_list__item, .poly-attributes-list__item, "
    ".ui-search-item__attributes li, .ui-search-result__content-attributes li"
)

_ID_PATTERN = re.compile(r"MLM-?(\d+)")

# Federal entities as written on cards, accent-folded and lower-case
STATES = {
    "aguascalientes", "baja california", "baja california sur", "campeche", "chiapas",
    "chihuahua", "coahuila", "colima", "durango", "estado de mexico", "guanajuato",
    "guerrero", "hidalgo", "jalisco", "michoacan", "morelos", "nayarit", "nuevo leon",
    "oaxaca", "puebla", "queretaro", "quintana roo", "san luis potosi", "sinaloa",
    "sonora", "tabasco", "tamaulipas", "tlaxcala", "veracruz", "yucatan", "zacatecas",
}
# The capital is both a city and a federal entity
CAPITAL_NAMES = {"ciudad de mexico", "cdmx", "distrito federal", "df"}
CAPITAL = "Ciudad de México"


def default_locations() -> tuple[Location, ...]:
    return tuple(
        Location(
            slug=f"{category}/{city}",
            path=f"{category}/{city}",
            transaction_type="sale",
            property_type_hint=property_type,
        )
        for city in CITIES
        for category, property_type in CATEGORIES.items()
    )


def page_url(location: Location, page: int) -> str:
    offset = (page - 1) * ITEMS_PER_PAGE + 1
    return f"/{location.path}/_Desde_{offset}"


def extract_items(html: str) -> List[Tag]:
    """Return listing cards using the first selector that matches anything."""
    soup = BeautifulSoup(html, "lxml")
    for selector in ITEM_SELECTORS:
        items = soup.select(selector)
        if items:
            return items
    return []


def determine_property_type(title: str, url: str, hint: Optional[str] = None) -> Optional[str]:
    text = f"{title} {url}".lower()
    for keyword in ("departamento", "depto", "terreno", "local", "oficina", "casa"):
        if keyword in text:
            return keyword
    return hint


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).lower().strip()


def split_location(text: str) -> tuple[str, str, str]:
    """Split a card location into (neighborhood, city, state).

    Cards show "Colonia, Ciudad, Estado", or just two of those parts. With two
    parts the last one decides: a state means "Ciudad, Estado", the capital or
    anything else means "Colonia, Ciudad".
    """
    parts = [p.strip() for p in text.split(",") if p.strip()]
    if len(parts) >= 3:
        return parts[0], parts[-2], parts[-1]
    if len(parts) == 2:
        first, last = parts
        if _fold(last) in CAPITAL_NAMES:
            return first, last, CAPITAL
        if _fold(last) in STATES:
            return "", first, last
        return first, last, ""
    if parts:
        if _fold(parts[0]) in CAPITAL_NAMES:
            return "", parts[0], CAPITAL
        return "", parts[0], ""
    return "", "", ""


def parse_attributes(card: Tag) -> Dict[str, Any]:
    attributes: Dict[str, Any] = {"bedrooms": 0, "bathrooms": 0.0, "area_sqm": 0.0}
    for attr in card.select(ATTRIBUTE_SELECTOR):
        text = attr.get_text(" ", strip=True).lower()
        if "recámara" in text or "recamara" in text or "dormitorio" in text:
            attributes["bedrooms"] = parse_int(text) or 0
        elif "baño" in text:
            attributes["bathrooms"] = parse_bathrooms(text) or 0.0
        elif "m²" in text or "m2" in text:
            attributes["area_sqm"] = parse_area(text) or 0.0
    return attributes


def parse_card(card: Tag, location: Location) -> Optional[Dict[str, Any]]:
    """Turn one result card into raw fields. Cards without title or ID are skipped."""
    title_el = card.select_one(TITLE_SELECTOR)
    title = title_el.get_text(strip=True) if title_el else ""
    if not title:
        return None

    href = ""
    if title_el is not None and title_el.get("href"):
        href = title_el["href"]
    else:
        link = card.select_one("a[href*='MLM']")
        href = link["href"] if link else ""

    id_match = _ID_PATTERN.search(href)
    if not id_match:
        return None
    external_id = f"MLM-{id_match.group(1)}"

    price_el = card.select_one(PRICE_SELECTOR)
    price_text = price_el.get_text(strip=True) if price_el else ""
    currency_el = card.select_one(CURRENCY_SELECTOR)
    if currency_el and price_text and currency_el.get_text(strip=True).upper().startswith("US"):
        price_text = f"USD {price_text}"

    location_el = card.select_one(LOCATION_SELECTOR)
    location_text = location_el.get_text(strip=True) if location_el else ""
    neighborhood, city, state = split_location(location_text)

    image = card.select_one("img[data-src]")
    image_url = image["data-src"] if image else ""
    if not image_url:
        image = card.select_one("img[src^='http']")
        image_url = image["src"] if image else ""

    transaction_type = location.transaction_type
    if "renta" in href.lower():
        transaction_type = "rent"
    elif "venta" in href.lower():
        transaction_type = "sale"

    attributes = parse_attributes(card)

    return {
        "external_id": external_id,
        "listing_url": href,
        "address": location_text or title,
        "city": city,
        "state_province": state,
        "neighborhood": neighborhood,
        "transaction_type": transaction_type,
        "price": price_text,
        "property_type": determine_property_type(title, href, location.property_type_hint),
        "bedrooms": attributes["bedrooms"],
        "bathrooms": attributes["bathrooms"],
        "area_sqm": attributes["area_sqm"],
        "images": [image_url] if image_url else [],
        "description": title,
        "contact_info": href,
    }


def build_definition() -> SourceDefinition:
    return SourceDefinition(
        name="mercadolibre",
        base_url=settings.mercadolibre_base_url,
        locations=default_locations(),
        page_url=page_url,
        extract_items=extract_items,
        parse_item=parse_card,
        headers=HEADERS,
        rate_limit=settings.mercadolibre_rate_limit,
        timeout=settings.request_timeout,
        max_pages=settings.default_max_pages,
    )
