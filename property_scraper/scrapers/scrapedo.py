"""Scrape.do — MercadoLibre sale listings fetched through the rendering proxy.

The proxy executes the page's JavaScript before returning HTML, so requests
are slower and get a longer timeout. A token is mandatory.
"""
from urllib.parse import quote, urlencode

from property_scraper.config import settings
from property_scraper.core.exceptions import MissingCredentialsError
from property_scraper.scrapers import mercadolibre
from property_scraper.scrapers.base import Location, SourceDefinition

TARGET_BASE_URL = "https://inmuebles.mercadolibre.com.mx"

CITIES = {
    "cdmx": "distrito-federal",
    "guadalajara": "jalisco/guadalajara",
    "monterrey": "nuevo-leon/monterrey",
    "puebla": "puebla/puebla",
    "cancun": "quintana-roo/benito-juarez",
    "merida": "yucatan/merida",
    "queretaro": "queretaro/queretaro",
    "san-luis-potosi": "san-luis-potosi/san-luis-potosi",
    "aguascalientes": "aguascalientes/aguascalientes",
    "tijuana": "baja-california/tijuana",
    "leon": "guanajuato/leon",
    "toluca": "estado-de-mexico/toluca",
    "playa-del-carmen": "quintana-roo/solidaridad",
    "tulum": "quintana-roo/tulum",
    "puerto-vallarta": "jalisco/puerto-vallarta",
    "cuernavaca": "morelos/cuernavaca",
    "oaxaca": "oaxaca/oaxaca-de-juarez",
    "chihuahua": "chihuahua/chihuahua",
    "veracruz": "veracruz/veracruz",
    "morelia": "michoacan/morelia",
}


def default_locations() -> tuple[Location, ...]:
    return tuple(
        Location(slug=slug, path=f"venta/{path}", transaction_type="sale")
        for slug, path in CITIES.items()
    )


def page_url(location: Location, page: int) -> str:
    if page == 1:
        return f"{TARGET_BASE_URL}/{location.path}/"
    offset = (page - 1) * mercadolibre.ITEMS_PER_PAGE + 1
    return f"{TARGET_BASE_URL}/{location.path}/_Desde_{offset}"


def proxy_url(api_url: str, token: str):
    """Build the function that wraps a target URL into a scrape.do request."""

    def wrap(target_url: str) -> str:
        query = urlencode({"token": token, "url": target_url, "render": "true"}, quote_via=quote)
        return f"{api_url.rstrip('/')}/?{query}"

    return wrap


def build_definition() -> SourceDefinition:
    if not settings.scrapedo_token:
        raise MissingCredentialsError(
            "SCRAPEDO_TOKEN or SCRAPEDO_API_KEY is required for the scrapedo source"
        )
    return SourceDefinition(
        name="scrapedo",
        base_url=TARGET_BASE_URL,
        locations=default_locations(),
        page_url=page_url,
        extract_items=mercadolibre.extract_items,
        parse_item=mercadolibre.parse_card,
        request_url=proxy_url(settings.scrapedo_api_url, settings.scrapedo_token),
        headers={},
        rate_limit=settings.scrapedo_rate_limit,
        timeout=settings.render_timeout,
        max_pages=settings.default_max_pages,
    )
