from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ad_intel.models import Base, Business

LIBRARY_URL = "https://www.facebook.com/ads/library/?active_status=all&ad_type=all&view_all_page_id=123456789"


@pytest.fixture
def engine():
    """In-memory SQLite shared across connections for one test."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def business(db):
    business = Business(business_name="Acme Analytics")
    db.add(business)
    db.commit()
    return business


@pytest.fixture
def library_url():
    return LIBRARY_URL


def epoch(year, month, day, hour=12):
    return int(datetime(year, month, day, hour, tzinfo=timezone.utc).timestamp())


@pytest.fixture
def make_item():
    """Factory for scraper-shape Ad Library items."""

    def _make(archive_id, start=(2024, 3, 10), link_url="https://glow.example.com/shop", **extra):
        item = {
            "ad_archive_id": archive_id,
            "page_id": "123456789",
            "start_date": epoch(*start),
            "end_date": None,
            "is_active": True,
            "publisher_platform": ["FACEBOOK", "INSTAGRAM"],
            "total_active_time": 5,
            "collation_count": 1,
            "snapshot": {
                "page_name": "Glow Skincare",
                "body": {"text": f"Creative {archive_id}"},
                "link_url": link_url,
                "display_format": "IMAGE",
                "cta_text": "Shop Now",
                "images": [{"original_image_url": f"https://cdn.example.com/{archive_id}.jpg"}],
            },
        }
        item.update(extra)
        return item

    return _make
