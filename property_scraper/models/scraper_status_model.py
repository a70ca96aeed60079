"""ScraperStatus SQLAlchemy model — last run bookkeeping per source."""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from property_scraper.database import Base


class ScraperStatus(Base):
    __tablename__ = "scraper_status"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    last_run: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(
        String(20),
        default="idle",
        comment="idle, running, failed",
    )
    total_scraped: Mapped[int] = mapped_column(Integer, default=0)
    errors: Mapped[List[str]] = mapped_column(JSON, default=list, comment="Messages from the most recent run")

    def __repr__(self) -> str:
        return f"<ScraperStatus(name={self.name}, status={self.status}, total={self.total_scraped})>"
