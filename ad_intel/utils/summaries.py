"""Monthly summary tables derived from raw_data.

Both summaries are rebuilt from a full rescan of the raw rows in scope and
written with upserts keyed on (brand, month) and (brand, funnel_url, month).
Summary rows of the scanned brands whose key no longer occurs in the raw data
are deleted, so the tables always equal a recomputation from scratch.

The two rebuilds write different tables and do not depend on each other, but
neither takes a lock: a raw row that lands after the rescan is only picked up
by the next rebuild.
"""

from collections import defaultdict
from dataclasses import dataclass, asdict
from datetime import date, datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ad_intel.errors import StorageError
from ad_intel.models import Brand, RawAd, CreativeSummary, FunnelSummary, upsert_rows, fetch_rows
from ad_intel.utils.funnel import classify_funnel_type, parse_funnel_url
from ad_intel.utils.logger import get_logger

logger = get_logger("summaries")

UNKNOWN_BRAND_NAME = "Unknown"


@dataclass
class SummaryCounts:
    """Rows written by one recompute."""
    creative_rows_written: int = 0
    funnel_rows_written: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def month_start(value) -> Optional[date]:
    """First day of the month a start date falls in."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return date(value.year, value.month, 1)


def build_creative_summary_rows(raw_rows, brands: dict) -> list[dict]:
    """
    Group raw rows by (brand, month) and count them.

    Args:
        raw_rows: Objects with brand_id, start_date and total_active_time
        brands: brand_id -> (brand_name, ads_library_url)

    Returns:
        Summary rows sorted by key
    """
    groups = defaultdict(lambda: {"count": 0, "active": 0})
    for row in raw_rows:
        month = month_start(row.start_date)
        if month is None:
            continue
        agg = groups[(row.brand_id, month)]
        agg["count"] += 1
        agg["active"] += int(row.total_active_time or 0)

    summary = []
    for (brand_id, month), agg in sorted(groups.items()):
        brand_name, library_url = brands.get(brand_id, (UNKNOWN_BRAND_NAME, None))
        summary.append({
            "brand_id": brand_id,
            "brand_name": brand_name or UNKNOWN_BRAND_NAME,
            "month": month,
            "creatives_count": agg["count"],
            "total_active_days": agg["active"],
            "ads_library_url": library_url,
        })
    return summary


def build_funnel_summary_rows(
    raw_rows, brands: dict, classify: Callable[[str], str] = classify_funnel_type
) -> list[dict]:
    """
    Group raw rows that have a destination URL by (brand, URL, month).

    Rows without a link_url are skipped. The classify callable decides the
    funnel_type of each URL.
    """
    groups = defaultdict(int)
    for row in raw_rows:
        link_url = (row.link_url or "").strip()
        if not link_url:
            continue
        month = month_start(row.start_date)
        if month is None:
            continue
        groups[(row.brand_id, link_url, month)] += 1

    summary = []
    for (brand_id, link_url, month), count in sorted(groups.items()):
        brand_name, library_url = brands.get(brand_id, (UNKNOWN_BRAND_NAME, None))
        domain, path = parse_funnel_url(link_url)
        summary.append({
            "brand_id": brand_id,
            "brand_name": brand_name or UNKNOWN_BRAND_NAME,
            "funnel_url": link_url,
            "funnel_domain": domain,
            "funnel_path": path,
            "funnel_type": classify(link_url),
            "month": month,
            "creatives_count": count,
            "ads_library_url": library_url,
        })
    return summary


def _scope_brand_ids(db: Session, brand_id: Optional[str], business_id: Optional[str]) -> list[str]:
    if brand_id:
        return [brand_id]
    if business_id:
        return [row.id for row in fetch_rows(db, Brand, [Brand.id], business_id=business_id)]
    return [row.id for row in fetch_rows(db, Brand, [Brand.id])]


def _brand_lookup(db: Session, brand_ids: list[str]) -> dict:
    rows = fetch_rows(db, Brand, [Brand.id, Brand.brand_name, Brand.ads_library_url], id=brand_ids)
    return {row.id: (row.brand_name, row.ads_library_url) for row in rows}


def _prune_stale(db: Session, model, brand_ids: list[str], kept_rows: list[dict]) -> int:
    """Delete summary rows of the given brands whose key was not rebuilt."""
    kept = {tuple(row[col] for col in model.KEY) for row in kept_rows}
    key_columns = [getattr(model, col) for col in model.KEY]

    try:
        existing = db.query(model.id, *key_columns).filter(model.brand_id.in_(brand_ids)).all()
        stale_ids = [row[0] for row in existing if tuple(row[1:]) not in kept]
        if stale_ids:
            db.query(model).filter(model.id.in_(stale_ids)).delete(synchronize_session=False)
            db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Pruning {model.__tablename__} failed: {e}") from e

    return len(stale_ids)


def populate_creative_summary(db: Session, brand_id: str = None, business_id: str = None) -> int:
    """
    Rebuild brand_creative_summary for one brand, one business or everything.

    Returns:
        Number of summary rows written
    """
    brand_ids = _scope_brand_ids(db, brand_id, business_id)
    if not brand_ids:
        return 0

    columns = [RawAd.brand_id, RawAd.start_date, RawAd.total_active_time]
    raw_rows = fetch_rows(db, RawAd, columns, brand_id=brand_ids)
    rows = build_creative_summary_rows(raw_rows, _brand_lookup(db, brand_ids))

    written = upsert_rows(db, CreativeSummary, rows, CreativeSummary.KEY)
    pruned = _prune_stale(db, CreativeSummary, brand_ids, rows)

    logger.info(
        "creative_summary_rebuilt",
        brand_id=brand_id,
        business_id=business_id,
        raw_rows=len(raw_rows),
        written=written,
        pruned=pruned,
    )
    return written


def populate_funnel_summary(
    db: Session,
    brand_id: str = None,
    business_id: str = None,
    classify: Callable[[str], str] = classify_funnel_type,
) -> int:
    """
    Rebuild brand_funnel_summary for one brand, one business or everything.

    Returns:
        Number of summary rows written
    """
    brand_ids = _scope_brand_ids(db, brand_id, business_id)
    if not brand_ids:
        return 0

    columns = [RawAd.brand_id, RawAd.start_date, RawAd.link_url]
    raw_rows = fetch_rows(db, RawAd, columns, brand_id=brand_ids)
    rows = build_funnel_summary_rows(raw_rows, _brand_lookup(db, brand_ids), classify)

    written = upsert_rows(db, FunnelSummary, rows, FunnelSummary.KEY)
    pruned = _prune_stale(db, FunnelSummary, brand_ids, rows)

    logger.info(
        "funnel_summary_rebuilt",
        brand_id=brand_id,
        business_id=business_id,
        raw_rows=len(raw_rows),
        written=written,
        pruned=pruned,
    )
    return written


def recompute_summaries(db: Session, brand_id: str = None, business_id: str = None) -> SummaryCounts:
    """
    Rebuild both summary tables from the current raw data.

    With neither brand_id nor business_id every brand is recomputed.
    """
    return SummaryCounts(
        creative_rows_written=populate_creative_summary(db, brand_id, business_id),
        funnel_rows_written=populate_funnel_summary(db, brand_id, business_id),
    )
