"""Graph API ads_archive provider.

Fetches archived ads for the page behind an Ad Library URL, following
paging cursors until the request cap is reached.
See https://developers.facebook.com/docs/graph-api/reference/ads_archive/
"""

import json

import httpx

from ad_intel.config import (
    META_ACCESS_TOKEN,
    META_GRAPH_BASE_URL,
    META_GRAPH_VERSION,
    PROVIDER_TIMEOUT,
)
from ad_intel.errors import ProviderError
from ad_intel.scrapers.base import AdArchiveProvider, FetchRequest
from ad_intel.utils.brands import extract_page_id
from ad_intel.utils.logger import get_logger

logger = get_logger("meta_archive")

ARCHIVE_FIELDS = [
    "id",
    "ad_creation_time",
    "ad_delivery_start_time",
    "ad_delivery_stop_time",
    "ad_creative_bodies",
    "ad_creative_link_captions",
    "ad_creative_link_descriptions",
    "ad_creative_link_titles",
    "ad_snapshot_url",
    "page_id",
    "page_name",
    "publisher_platforms",
]

# The API accepts at most this many page ids per call
MAX_PAGE_IDS = 10


class MetaAdsArchive(AdArchiveProvider):
    """Fetch ads from the Meta Ad Library API by page id and delivery date."""

    source = "meta"

    def __init__(
        self,
        access_token: str = None,
        base_url: str = None,
        version: str = None,
        client: httpx.AsyncClient = None,
        timeout: float = PROVIDER_TIMEOUT,
    ):
        super().__init__(client=client, timeout=timeout)
        self.access_token = access_token or META_ACCESS_TOKEN
        self.base_url = (base_url or META_GRAPH_BASE_URL).rstrip("/")
        self.version = version or META_GRAPH_VERSION

    @property
    def archive_url(self) -> str:
        return f"{self.base_url}/{self.version}/ads_archive"

    def build_params(self, page_ids: list[str], request: FetchRequest) -> dict:
        start, end = request.date_window()
        return {
            "access_token": self.access_token,
            "search_page_ids": f"[{','.join(page_ids[:MAX_PAGE_IDS])}]",
            "ad_delivery_date_min": start.isoformat(),
            "ad_delivery_date_max": end.isoformat(),
            "ad_active_status": "ALL",
            "ad_reached_countries": json.dumps(["ALL"]),
            "fields": ",".join(ARCHIVE_FIELDS),
        }

    async def fetch_raw(self, library_url: str, request: FetchRequest) -> list:
        if not self.access_token:
            raise ProviderError("META_ACCESS_TOKEN not set")

        page_id = extract_page_id(library_url)
        if not page_id:
            raise ProviderError("Could not extract page ID from ads_library_url")

        items = []
        url = self.archive_url
        params = self.build_params([page_id], request)
        pages = 0

        while url and len(items) < request.max_items:
            response = await self.client.get(url, params=params)
            body = self._json_body(response, "Meta Ads API error")
            if not isinstance(body, dict) or not isinstance(body.get("data", []), list):
                raise ProviderError("Meta Ads API response has no data list", body=response.text)

            data = body.get("data") or []
            items.extend(data)
            pages += 1

            next_url = (body.get("paging") or {}).get("next")
            if not data or not next_url:
                break
            # The next link already carries every query parameter
            url, params = next_url, None

        logger.debug("meta_pages_fetched", library_url=library_url, pages=pages, count=len(items))
        return items[: request.max_items]
