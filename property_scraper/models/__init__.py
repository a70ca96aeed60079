"""SQLAlchemy models for the property scraper."""
from property_scraper.models.property_model import Property
from property_scraper.models.scraper_status_model import ScraperStatus

__all__ = [
    "Property",
    "ScraperStatus",
]
