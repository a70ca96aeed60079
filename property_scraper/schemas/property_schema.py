"""Canonical NormalizedProperty — the record every scraper produces.

Source-agnostic and strongly typed. Numeric fields default to 0 instead of
being omitted so rows stay uniform in storage.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class TransactionType(str, Enum):
    SALE = "sale"
    RENT = "rent"


class PropertyType(str, Enum):
    HOUSE = "house"
    APARTMENT = "apartment"
    CONDO = "condo"
    COMMERCIAL = "commercial"
    LAND = "land"


# Keyword → canonical type, checked in order
_PROPERTY_TYPE_KEYWORDS = (
    ("departamento", PropertyType.APARTMENT),
    ("depto", PropertyType.APARTMENT),
    ("apartment", PropertyType.APARTMENT),
    ("condominio", PropertyType.CONDO),
    ("condo", PropertyType.CONDO),
    ("terreno", PropertyType.LAND),
    ("lote", PropertyType.LAND),
    ("land", PropertyType.LAND),
    ("local", PropertyType.COMMERCIAL),
    ("oficina", PropertyType.COMMERCIAL),
    ("bodega", PropertyType.COMMERCIAL),
    ("commercial", PropertyType.COMMERCIAL),
    ("office", PropertyType.COMMERCIAL),
    ("casa", PropertyType.HOUSE),
    ("house", PropertyType.HOUSE),
)


def normalize_property_type(raw: Optional[str]) -> PropertyType:
    """Map a free-form type ('Departamento', 'casas', 'Oficina') onto the closed set."""
    if not raw:
        return PropertyType.HOUSE
    value = raw.strip().lower()
    try:
        return PropertyType(value)
    except ValueError:
        pass
    for keyword, property_type in _PROPERTY_TYPE_KEYWORDS:
        if keyword in value:
            return property_type
    return PropertyType.HOUSE


def normalize_transaction_type(raw: Optional[str]) -> TransactionType:
    value = (raw or "").strip().lower()
    if value in ("rent", "renta", "rental", "alquiler", "arriendo"):
        return TransactionType.RENT
    return TransactionType.SALE


class Coordinates(BaseModel):
    lat: float = 0.0
    lng: float = 0.0

    @field_validator("lat", "lng", mode="before")
    @classmethod
    def default_unknown(cls, v):
        return 0.0 if v is None else v


class Price(BaseModel):
    amount: float = Field(0.0, ge=0)
    currency: str = Field("MXN", min_length=3, max_length=3)

    @field_validator("amount", mode="before")
    @classmethod
    def default_amount(cls, v):
        return 0.0 if v is None else v

    @field_validator("currency", mode="before")
    @classmethod
    def upper_currency(cls, v):
        if not v:
            return "MXN"
        return str(v).strip().upper()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NormalizedProperty(BaseModel):
    """Canonical property record, independent of the source it came from."""

    # Identity
    source: str
    external_id: str = ""
    listing_url: Optional[str] = None

    # Location
    country: str = "Mexico"
    state_province: str = ""
    city: str = ""
    neighborhood: str = ""
    postal_code: str = ""
    address: str = ""
    coordinates: Coordinates = Field(default_factory=Coordinates)

    # Commercial terms
    transaction_type: TransactionType = TransactionType.SALE
    price: Price = Field(default_factory=Price)

    # Physical attributes
    property_type: PropertyType = PropertyType.HOUSE
    bedrooms: int = Field(0, ge=0)
    bathrooms: float = Field(0.0, ge=0)
    area_sqm: float = Field(0.0, ge=0)
    lot_size_sqm: Optional[float] = Field(None, ge=0)

    # Presentation
    amenities: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    description: str = ""
    contact_info: str = ""

    # Provenance
    listing_date: datetime = Field(default_factory=_utcnow)
    last_updated: datetime = Field(default_factory=_utcnow)

    @field_validator("property_type", mode="before")
    @classmethod
    def map_property_type(cls, v):
        if isinstance(v, PropertyType):
            return v
        return normalize_property_type(v)

    @field_validator("transaction_type", mode="before")
    @classmethod
    def map_transaction_type(cls, v):
        if isinstance(v, TransactionType):
            return v
        return normalize_transaction_type(v)

    @property
    def is_low_quality(self) -> bool:
        """Listings without a usable price are kept but filtered on read."""
        return self.price.amount <= 0
