from datetime import datetime
from sqlalchemy import Column, String, DateTime, Date, Integer, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from ad_intel.models.database import Base


class CreativeSummary(Base):
    """Monthly creative volume per brand, rebuilt from raw_data."""

    __tablename__ = "brand_creative_summary"
    __table_args__ = (
        UniqueConstraint("brand_id", "month", name="uq_creative_summary_brand_month"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    brand_id = Column(String(36), ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    brand_name = Column(String(120))
    month = Column(Date, nullable=False)  # First day of the month
    creatives_count = Column(Integer, default=0, nullable=False)
    total_active_days = Column(Integer, default=0, nullable=False)
    ads_library_url = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    brand = relationship("Brand", back_populates="creative_summaries")

    KEY = ("brand_id", "month")

    def __repr__(self):
        return f"<CreativeSummary(brand_id={self.brand_id}, month={self.month}, count={self.creatives_count})>"


class FunnelSummary(Base):
    """Monthly creative count per destination URL per brand, rebuilt from raw_data."""

    __tablename__ = "brand_funnel_summary"
    __table_args__ = (
        UniqueConstraint("brand_id", "funnel_url", "month", name="uq_funnel_summary_brand_url_month"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    brand_id = Column(String(36), ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    brand_name = Column(String(120))
    funnel_url = Column(Text, nullable=False)
    funnel_domain = Column(Text)
    funnel_path = Column(Text)
    funnel_type = Column(String(20))  # tracking_link, app_store, quiz_funnel, landing_page, unknown
    month = Column(Date, nullable=False)
    creatives_count = Column(Integer, default=0, nullable=False)
    ads_library_url = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    brand = relationship("Brand", back_populates="funnel_summaries")

    KEY = ("brand_id", "funnel_url", "month")

    def __repr__(self):
        return f"<FunnelSummary(brand_id={self.brand_id}, funnel_url={self.funnel_url}, month={self.month})>"
