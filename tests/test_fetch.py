"""Tests for provider requests, caps and post-filtering.

Provider HTTP is faked with httpx.MockTransport.
"""

import json
from datetime import date

import httpx
import pytest

from ad_intel.errors import ProviderError, ValidationError
from ad_intel.scrapers.apify_scraper import ApifyAdScraper
from ad_intel.scrapers.base import FetchRequest, apply_post_filter, month_date_range
from ad_intel.scrapers.meta_archive import MetaAdsArchive


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# FetchRequest
# ---------------------------------------------------------------------------

class TestFetchRequest:
    def test_count_is_capped(self):
        request = FetchRequest.build(count=1000)
        assert request.count == 300
        assert request.max_items == 300
        assert request.is_count_bounded

    def test_count_wins_over_dates(self):
        request = FetchRequest.build(count=10, start_date="2024-01-01", end_date="2024-01-31")
        assert request.is_count_bounded
        assert request.start_date is None

    @pytest.mark.parametrize("count", [0, -3, "ten", True, 2.5])
    def test_bad_count(self, count):
        with pytest.raises(ValidationError):
            FetchRequest.build(count=count)

    def test_date_range(self):
        request = FetchRequest.build(start_date="2024-01-01", end_date=date(2024, 1, 31))
        assert request.max_items == 5000
        assert request.start_date == date(2024, 1, 1)
        assert request.end_date == date(2024, 1, 31)

    def test_reversed_range(self):
        with pytest.raises(ValidationError):
            FetchRequest.build(start_date="2024-02-01", end_date="2024-01-01")

    def test_half_range(self):
        with pytest.raises(ValidationError):
            FetchRequest.build(start_date="2024-02-01")

    def test_bad_date(self):
        with pytest.raises(ValidationError):
            FetchRequest.build(start_date="yesterday", end_date="2024-01-01")

    def test_default_window(self):
        request = FetchRequest.build(today=date(2024, 3, 31))
        assert request.max_items == 100
        assert request.start_date == date(2024, 3, 1)
        assert request.end_date == date(2024, 3, 31)

    def test_count_request_date_window(self):
        start, end = FetchRequest.build(count=5).date_window(today=date(2024, 3, 31))
        assert (start, end) == (date(2024, 3, 1), date(2024, 3, 31))


class TestMonthDateRange:
    def test_february_leap_year(self):
        assert month_date_range(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_december(self):
        assert month_date_range(2023, 12) == (date(2023, 12, 1), date(2023, 12, 31))

    @pytest.mark.parametrize("month", [0, 13])
    def test_invalid_month(self, month):
        with pytest.raises(ValidationError):
            month_date_range(2024, month)


class TestApplyPostFilter:
    def test_count_keeps_first_items(self, make_item):
        items = [make_item(f"a{i}") for i in range(80)]
        kept = apply_post_filter(items, FetchRequest.build(count=50))
        assert [i["ad_archive_id"] for i in kept] == [f"a{i}" for i in range(50)]

    def test_date_range_end_is_inclusive(self, make_item):
        items = [
            make_item("before", start=(2024, 2, 29, 23)),
            make_item("first", start=(2024, 3, 1, 0)),
            make_item("last", start=(2024, 3, 31, 23)),
            make_item("after", start=(2024, 4, 1, 0)),
            make_item("undated", start_date=None),
        ]
        request = FetchRequest.build(start_date="2024-03-01", end_date="2024-03-31")
        kept = apply_post_filter(items, request)
        assert [i["ad_archive_id"] for i in kept] == ["first", "last"]

    def test_date_range_capped_at_max_items(self, make_item):
        items = [make_item(f"a{i}", start=(2024, 3, 10 + i)) for i in range(3)]
        request = FetchRequest(max_items=2, start_date=date(2024, 3, 1), end_date=date(2024, 3, 31))
        kept = apply_post_filter(items, request)
        assert [i["ad_archive_id"] for i in kept] == ["a0", "a1"]

    def test_invalid_items_dropped_after_slicing(self, make_item):
        items = [make_item("a1"), make_item("a2", errorCode="BLOCKED"), make_item("a3")]
        kept = apply_post_filter(items, FetchRequest.build(count=2))
        assert [i["ad_archive_id"] for i in kept] == ["a1"]


# ---------------------------------------------------------------------------
# Apify provider
# ---------------------------------------------------------------------------

class TestApifyAdScraper:
    @pytest.mark.asyncio
    async def test_count_fetch_slices_provider_output(self, make_item, library_url):
        seen = {}

        def handler(request: httpx.Request):
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=[make_item(f"a{i}") for i in range(80)])

        async with ApifyAdScraper(token="tok", client=mock_client(handler)) as scraper:
            items = await scraper.fetch(library_url, FetchRequest.build(count=50))

        assert len(items) == 50
        assert items[0]["ad_archive_id"] == "a0"
        assert items[-1]["ad_archive_id"] == "a49"
        assert seen["auth"] == "Bearer tok"
        assert seen["body"]["urls"] == [{"url": library_url}]
        assert seen["body"]["maxItems"] == 50
        assert "start_date_min" not in seen["body"]

    @pytest.mark.asyncio
    async def test_date_range_input(self, library_url):
        scraper = ApifyAdScraper(token="tok")
        request = FetchRequest.build(start_date="2024-03-01", end_date="2024-03-31")
        actor_input = scraper.build_input(library_url, request)
        assert actor_input["start_date_min"] == "2024-03-01"
        assert actor_input["start_date_max"] == "2024-03-31"
        assert actor_input["count"] == 5000

    @pytest.mark.asyncio
    async def test_non_success_status(self, library_url):
        def handler(request):
            return httpx.Response(502, text="upstream exploded")

        scraper = ApifyAdScraper(token="tok", client=mock_client(handler))
        with pytest.raises(ProviderError) as exc_info:
            await scraper.fetch(library_url, FetchRequest.build(count=5))

        assert exc_info.value.status_code == 502
        assert "upstream exploded" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_list_body(self, library_url):
        def handler(request):
            return httpx.Response(200, json={"items": []})

        scraper = ApifyAdScraper(token="tok", client=mock_client(handler))
        with pytest.raises(ProviderError, match="not an array"):
            await scraper.fetch(library_url, FetchRequest.build(count=5))

    @pytest.mark.asyncio
    async def test_missing_token(self, library_url):
        scraper = ApifyAdScraper(token="", client=mock_client(lambda r: httpx.Response(200, json=[])))
        scraper.token = None
        with pytest.raises(ProviderError, match="APIFY_TOKEN"):
            await scraper.fetch(library_url, FetchRequest.build(count=5))

    @pytest.mark.asyncio
    async def test_transport_error_becomes_provider_error(self, library_url):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        scraper = ApifyAdScraper(token="tok", client=mock_client(handler))
        with pytest.raises(ProviderError, match="apify request failed"):
            await scraper.fetch(library_url, FetchRequest.build(count=5))

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self, library_url):
        client = mock_client(lambda r: httpx.Response(200, json=[]))
        async with ApifyAdScraper(token="tok", client=client):
            pass
        assert not client.is_closed
        await client.aclose()


class TestProviderErrorMessage:
    def test_body_is_truncated(self):
        error = ProviderError("Apify error", status_code=500, body="x" * 2000)
        assert len(error.body) == 500
        assert str(error).startswith("Apify error: 500 - xxx")

    def test_message_only(self):
        assert str(ProviderError("APIFY_TOKEN not configured")) == "APIFY_TOKEN not configured"


# ---------------------------------------------------------------------------
# Meta ads_archive provider
# ---------------------------------------------------------------------------

def meta_ad(ad_id, start="2024-03-05"):
    return {"id": ad_id, "page_id": "123456789", "page_name": "Glow Skincare", "ad_delivery_start_time": start}


class TestMetaAdsArchive:
    @pytest.mark.asyncio
    async def test_follows_paging_until_cap(self, library_url):
        calls = []

        def handler(request: httpx.Request):
            calls.append(request.url)
            if request.url.params.get("after") == "page2":
                return httpx.Response(200, json={"data": [meta_ad("m3"), meta_ad("m4")]})
            return httpx.Response(200, json={
                "data": [meta_ad("m1"), meta_ad("m2")],
                "paging": {"next": "https://graph.example.com/v21.0/ads_archive?after=page2&access_token=t"},
            })

        archive = MetaAdsArchive(access_token="t", base_url="https://graph.example.com", client=mock_client(handler))
        request = FetchRequest.build(start_date="2024-03-01", end_date="2024-03-31")
        items = await archive.fetch(library_url, request)

        assert [i["id"] for i in items] == ["m1", "m2", "m3", "m4"]
        assert len(calls) == 2
        first = calls[0].params
        assert first["search_page_ids"] == "[123456789]"
        assert first["ad_delivery_date_min"] == "2024-03-01"
        assert first["ad_delivery_date_max"] == "2024-03-31"

    @pytest.mark.asyncio
    async def test_stops_when_count_reached(self, library_url):
        calls = []

        def handler(request):
            calls.append(request.url)
            return httpx.Response(200, json={
                "data": [meta_ad(f"m{len(calls)}-{i}") for i in range(3)],
                "paging": {"next": "https://graph.example.com/v21.0/ads_archive?after=more"},
            })

        archive = MetaAdsArchive(access_token="t", base_url="https://graph.example.com", client=mock_client(handler))
        items = await archive.fetch(library_url, FetchRequest.build(count=2))

        assert len(items) == 2
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_no_page_id(self):
        archive = MetaAdsArchive(access_token="t", client=mock_client(lambda r: httpx.Response(200, json={})))
        with pytest.raises(ProviderError, match="page ID"):
            await archive.fetch("https://www.facebook.com/ads/library/?q=glow", FetchRequest.build(count=5))

    @pytest.mark.asyncio
    async def test_graph_error(self, library_url):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "Invalid OAuth access token"}})

        archive = MetaAdsArchive(access_token="t", client=mock_client(handler))
        with pytest.raises(ProviderError) as exc_info:
            await archive.fetch(library_url, FetchRequest.build(count=5))
        assert exc_info.value.status_code == 400
