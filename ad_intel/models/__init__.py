from ad_intel.models.database import (
    Base,
    engine,
    SessionLocal,
    init_db,
    upsert_rows,
    count_rows,
    fetch_rows,
)
from ad_intel.models.business import Business
from ad_intel.models.brand import Brand
from ad_intel.models.raw_ad import RawAd
from ad_intel.models.summary import CreativeSummary, FunnelSummary

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "init_db",
    "upsert_rows",
    "count_rows",
    "fetch_rows",
    "Business",
    "Brand",
    "RawAd",
    "CreativeSummary",
    "FunnelSummary",
]
