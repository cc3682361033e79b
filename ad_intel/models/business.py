from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from ad_intel.models.database import Base, new_id


class Business(Base):
    """A business that groups the competitor brands a user tracks."""

    __tablename__ = "businesses"

    id = Column(String(36), primary_key=True, default=new_id)
    business_name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_shared = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    brands = relationship("Brand", back_populates="business", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f"<Business(id={self.id}, business_name={self.business_name})>"
