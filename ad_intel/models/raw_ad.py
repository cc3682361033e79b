from datetime import datetime, date, timezone
from dateutil.parser import isoparse
from sqlalchemy import Column, String, DateTime, Date, Integer, Text, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from ad_intel.models.database import Base


class RawAd(Base):
    """One normalized ad creative, the source of truth for both summaries."""

    __tablename__ = "raw_data"
    __table_args__ = (
        UniqueConstraint("brand_id", "ad_archive_id", name="uq_raw_data_brand_archive"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    brand_id = Column(String(36), ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    ad_archive_id = Column(String(100), nullable=False, index=True)
    source = Column(String(20), nullable=False)  # apify, meta, json
    ad_library_url = Column(Text)
    url = Column(Text)
    page_id = Column(String(50), nullable=False, default="")
    page_name = Column(String(255))
    start_date = Column(DateTime, nullable=False, index=True)
    end_date = Column(Date)
    publisher_platform = Column(JSON)  # Array of platforms
    page_categories = Column(JSON)  # Array of categories
    caption = Column(Text)
    display_format = Column(String(50))
    media_type = Column(String(20))  # video, image
    ad_status = Column(String(20))  # ACTIVE, INACTIVE
    link_url = Column(Text)
    total_active_time = Column(Integer, default=0)
    cta_text = Column(Text)
    cta_type = Column(String(50))
    ad_title = Column(Text)
    thumbnail_url = Column(Text)
    media_url = Column(Text)
    page_like_count = Column(Integer)
    collation_count = Column(Integer)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    brand = relationship("Brand", back_populates="raw_ads")

    COLUMNS = (
        "brand_id", "ad_archive_id", "source", "ad_library_url", "url", "page_id", "page_name",
        "start_date", "end_date", "publisher_platform", "page_categories", "caption",
        "display_format", "media_type", "ad_status", "link_url", "total_active_time",
        "cta_text", "cta_type", "ad_title", "thumbnail_url", "media_url",
        "page_like_count", "collation_count",
    )

    def __repr__(self):
        return f"<RawAd(ad_archive_id={self.ad_archive_id}, brand_id={self.brand_id})>"

    @classmethod
    def row_from_record(cls, record: dict) -> dict:
        """Convert a normalized record (ISO date strings) into column values."""
        row = {name: record.get(name) for name in cls.COLUMNS}

        start = isoparse(record["start_date"])
        if start.tzinfo is not None:
            start = start.astimezone(timezone.utc).replace(tzinfo=None)
        row["start_date"] = start

        if record.get("end_date"):
            row["end_date"] = date.fromisoformat(record["end_date"][:10])
        if row["total_active_time"] is None:
            row["total_active_time"] = 0
        return row
