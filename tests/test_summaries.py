"""Tests for the monthly creative and funnel summaries."""

from datetime import date, datetime
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from ad_intel.errors import StorageError
from ad_intel.models import Business, CreativeSummary, FunnelSummary, RawAd, upsert_rows
from ad_intel.utils.brands import BrandResolver
from ad_intel.utils.funnel import LANDING_PAGE, QUIZ_FUNNEL
from ad_intel.utils.normalizer import normalize_items
from ad_intel.utils.summaries import (
    build_creative_summary_rows,
    build_funnel_summary_rows,
    month_start,
    recompute_summaries,
)


def store(db, brand, items):
    rows = [RawAd.row_from_record(r) for r in normalize_items(items, brand.id, "apify", brand.ads_library_url)]
    upsert_rows(db, RawAd, rows, ("brand_id", "ad_archive_id"))


@pytest.fixture
def brand(db, business, library_url):
    return BrandResolver(db).resolve(library_url, business.id, "Glow Skincare")


def creative_rows(db, brand_id):
    return (
        db.query(CreativeSummary)
        .filter(CreativeSummary.brand_id == brand_id)
        .order_by(CreativeSummary.month)
        .all()
    )


class TestPureBuilders:
    def test_month_start(self):
        assert month_start(datetime(2024, 3, 31, 23, 59)) == date(2024, 3, 1)
        assert month_start("2024-02-10T00:00:00") == date(2024, 2, 1)
        assert month_start(None) is None

    def test_creative_rows_group_by_month(self):
        raw = [
            SimpleNamespace(brand_id="b1", start_date=datetime(2024, 3, 2), total_active_time=3),
            SimpleNamespace(brand_id="b1", start_date=datetime(2024, 3, 20), total_active_time=None),
            SimpleNamespace(brand_id="b1", start_date=datetime(2024, 4, 1), total_active_time=7),
        ]
        rows = build_creative_summary_rows(raw, {"b1": ("Glow", "https://lib")})

        assert [(r["month"], r["creatives_count"], r["total_active_days"]) for r in rows] == [
            (date(2024, 3, 1), 2, 3),
            (date(2024, 4, 1), 1, 7),
        ]
        assert rows[0]["brand_name"] == "Glow"

    def test_unknown_brand_name(self):
        raw = [SimpleNamespace(brand_id="gone", start_date=datetime(2024, 3, 2), total_active_time=0)]
        assert build_creative_summary_rows(raw, {})[0]["brand_name"] == "Unknown"

    def test_funnel_rows_skip_missing_links(self):
        raw = [
            SimpleNamespace(brand_id="b1", start_date=datetime(2024, 3, 2), link_url="https://glow.example.com/quiz"),
            SimpleNamespace(brand_id="b1", start_date=datetime(2024, 3, 9), link_url="https://glow.example.com/quiz"),
            SimpleNamespace(brand_id="b1", start_date=datetime(2024, 3, 9), link_url=None),
            SimpleNamespace(brand_id="b1", start_date=datetime(2024, 3, 9), link_url="  "),
        ]
        rows = build_funnel_summary_rows(raw, {"b1": ("Glow", None)})

        assert len(rows) == 1
        assert rows[0]["creatives_count"] == 2
        assert rows[0]["funnel_type"] == QUIZ_FUNNEL
        assert rows[0]["funnel_domain"] == "glow.example.com"
        assert rows[0]["funnel_path"] == "/quiz"

    def test_classifier_is_swappable(self):
        raw = [SimpleNamespace(brand_id="b1", start_date=datetime(2024, 3, 2), link_url="https://x.example.com")]
        rows = build_funnel_summary_rows(raw, {}, classify=lambda url: "custom")
        assert rows[0]["funnel_type"] == "custom"


class TestRecomputeSummaries:
    def test_counts_per_month(self, db, brand, make_item):
        store(db, brand, [
            make_item("a1", start=(2024, 3, 2)),
            make_item("a2", start=(2024, 3, 28)),
            make_item("a3", start=(2024, 4, 5)),
        ])

        counts = recompute_summaries(db, brand_id=brand.id)

        rows = creative_rows(db, brand.id)
        assert [(r.month, r.creatives_count) for r in rows] == [(date(2024, 3, 1), 2), (date(2024, 4, 1), 1)]
        assert rows[0].total_active_days == 10
        assert rows[0].ads_library_url == brand.ads_library_url
        assert counts.creative_rows_written == 2
        assert counts.funnel_rows_written == 2

    def test_missing_link_only_counts_as_creative(self, db, brand, make_item):
        store(db, brand, [make_item("a1", link_url=None)])

        recompute_summaries(db, brand_id=brand.id)

        assert len(creative_rows(db, brand.id)) == 1
        assert db.query(FunnelSummary).count() == 0

    def test_recompute_is_idempotent(self, db, brand, make_item):
        store(db, brand, [make_item("a1"), make_item("a2", link_url="https://glow.example.com/quiz")])

        recompute_summaries(db, brand_id=brand.id)
        first = [(r.month, r.creatives_count, r.total_active_days) for r in creative_rows(db, brand.id)]
        first_funnels = sorted((r.funnel_url, r.creatives_count) for r in db.query(FunnelSummary).all())

        recompute_summaries(db, brand_id=brand.id)
        second = [(r.month, r.creatives_count, r.total_active_days) for r in creative_rows(db, brand.id)]
        second_funnels = sorted((r.funnel_url, r.creatives_count) for r in db.query(FunnelSummary).all())

        assert first == second
        assert first_funnels == second_funnels
        assert db.query(FunnelSummary).count() == 2

    def test_stale_rows_are_pruned(self, db, brand, make_item):
        store(db, brand, [make_item("a1", start=(2024, 1, 5)), make_item("a2", start=(2024, 2, 5))])
        recompute_summaries(db, brand_id=brand.id)

        db.query(RawAd).filter(RawAd.ad_archive_id == "a1").delete()
        db.commit()
        recompute_summaries(db, brand_id=brand.id)

        assert [r.month for r in creative_rows(db, brand.id)] == [date(2024, 2, 1)]
        funnels = db.query(FunnelSummary).all()
        assert [(f.month, f.funnel_type) for f in funnels] == [(date(2024, 2, 1), LANDING_PAGE)]

    def test_scope_by_business(self, db, brand, make_item):
        other_business = Business(business_name="Other Co")
        db.add(other_business)
        db.commit()
        other = BrandResolver(db).resolve(
            "https://www.facebook.com/ads/library/?view_all_page_id=42", other_business.id, "Other"
        )
        store(db, brand, [make_item("a1")])
        store(db, other, [make_item("b1")])

        recompute_summaries(db, business_id=other_business.id)

        assert creative_rows(db, brand.id) == []
        assert len(creative_rows(db, other.id)) == 1

    def test_storage_failure_raises(self, db, brand, make_item):
        store(db, brand, [make_item("a1")])
        with patch("ad_intel.utils.summaries.upsert_rows", side_effect=StorageError("boom")):
            with pytest.raises(StorageError):
                recompute_summaries(db, brand_id=brand.id)
