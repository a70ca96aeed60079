"""Property SQLAlchemy model — one row per (source, external_id)."""
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from property_scraper.database import Base


class Property(Base):
    __tablename__ = "properties"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Source identification
    source: Mapped[str] = mapped_column(String(50), index=True, comment="mercadolibre, scrapedo")
    external_id: Mapped[str] = mapped_column(String(255), comment="ID on the original site (e.g. MLM-12345)")
    listing_url: Mapped[Optional[str]] = mapped_column(String(2048))

    # Location
    country: Mapped[str] = mapped_column(String(100), default="Mexico")
    state_province: Mapped[str] = mapped_column(String(100), default="")
    city: Mapped[str] = mapped_column(String(100), default="", index=True)
    neighborhood: Mapped[str] = mapped_column(String(100), default="")
    postal_code: Mapped[str] = mapped_column(String(20), default="")
    address: Mapped[str] = mapped_column(String(500), default="")
    coordinates_lat: Mapped[float] = mapped_column(Float, default=0.0)
    coordinates_lng: Mapped[float] = mapped_column(Float, default=0.0)

    # Commercial terms
    transaction_type: Mapped[str] = mapped_column(String(10), default="sale", comment="sale, rent")
    price_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    price_currency: Mapped[str] = mapped_column(String(3), default="MXN")

    # Physical attributes
    property_type: Mapped[str] = mapped_column(String(20), default="house")
    bedrooms: Mapped[int] = mapped_column(Integer, default=0)
    bathrooms: Mapped[float] = mapped_column(Float, default=0.0)
    area_sqm: Mapped[float] = mapped_column(Float, default=0.0)
    lot_size_sqm: Mapped[Optional[float]] = mapped_column(Float)

    # Presentation
    amenities: Mapped[List[str]] = mapped_column(JSON, default=list)
    images: Mapped[List[str]] = mapped_column(JSON, default=list)
    description: Mapped[str] = mapped_column(Text, default="")
    contact_info: Mapped[str] = mapped_column(String(2048), default="")

    # Timestamps
    listing_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_properties_source_external_id"),
        CheckConstraint("price_amount >= 0", name="ck_properties_price_non_negative"),
        CheckConstraint("bedrooms >= 0", name="ck_properties_bedrooms_non_negative"),
        CheckConstraint("bathrooms >= 0", name="ck_properties_bathrooms_non_negative"),
        CheckConstraint("area_sqm >= 0", name="ck_properties_area_non_negative"),
        Index("ix_properties_price_amount", "price_amount"),
        Index("ix_properties_property_type", "property_type"),
    )

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, source={self.source}, external_id='{self.external_id}')>"
