from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Date, Text, ForeignKey
from sqlalchemy.orm import relationship
from ad_intel.models.database import Base, new_id

FETCH_STATUS_SUCCESS = "success"
FETCH_STATUS_ERROR = "error"
FETCH_STATUS_PENDING = "pending"


class Brand(Base):
    """Competitor ad source, identified externally by its Ad Library URL."""

    __tablename__ = "brands"

    id = Column(String(36), primary_key=True, default=new_id)
    brand_name = Column(String(120), nullable=False)
    ads_library_url = Column(Text, unique=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    business_id = Column(String(36), ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    last_fetched_date = Column(Date)
    last_fetch_status = Column(String(20))  # success, error, pending
    last_fetch_error = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    business = relationship("Business", back_populates="brands")
    raw_ads = relationship("RawAd", back_populates="brand", cascade="all, delete-orphan", passive_deletes=True)
    creative_summaries = relationship(
        "CreativeSummary", back_populates="brand", cascade="all, delete-orphan", passive_deletes=True
    )
    funnel_summaries = relationship(
        "FunnelSummary", back_populates="brand", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self):
        return f"<Brand(id={self.id}, brand_name={self.brand_name})>"

    def mark_fetch_success(self, fetched_on=None):
        """Record a successful fetch and clear any previous error."""
        self.last_fetch_status = FETCH_STATUS_SUCCESS
        self.last_fetched_date = fetched_on or datetime.utcnow().date()
        self.last_fetch_error = None

    def mark_fetch_error(self, message: str):
        """Record a failed fetch."""
        self.last_fetch_status = FETCH_STATUS_ERROR
        self.last_fetch_error = message
