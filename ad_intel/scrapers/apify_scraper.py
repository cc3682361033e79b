import httpx

from ad_intel.config import APIFY_TOKEN, APIFY_ACTOR_URL, PROVIDER_TIMEOUT
from ad_intel.errors import ProviderError
from ad_intel.scrapers.base import AdArchiveProvider, FetchRequest
from ad_intel.utils.logger import get_logger

logger = get_logger("apify_scraper")


class ApifyAdScraper(AdArchiveProvider):
    """Fetch Ad Library ads through the Apify facebook-ads-library-scraper actor."""

    source = "apify"

    def __init__(
        self,
        token: str = None,
        actor_url: str = None,
        client: httpx.AsyncClient = None,
        timeout: float = PROVIDER_TIMEOUT,
    ):
        super().__init__(client=client, timeout=timeout)
        self.token = token or APIFY_TOKEN
        self.actor_url = actor_url or APIFY_ACTOR_URL

    def build_input(self, library_url: str, request: FetchRequest) -> dict:
        """Actor input for one Ad Library URL, newest ads first."""
        actor_input = {
            "sortBy": "start_date",
            "sortOrder": "DESC",
            "scrapeAdDetails": False,
            "scrapePageAds": {"activeStatus": "all", "countryCode": "ALL"},
            "urls": [{"url": library_url}],
            # The actor reads different limit keys depending on version
            "maxItems": request.max_items,
            "count": request.max_items,
            "limitPerSource": request.max_items,
        }
        if not request.is_count_bounded:
            actor_input["start_date_min"] = request.start_date.isoformat()
            actor_input["start_date_max"] = request.end_date.isoformat()
        return actor_input

    async def fetch_raw(self, library_url: str, request: FetchRequest) -> list:
        if not self.token:
            raise ProviderError("APIFY_TOKEN not configured")

        response = await self.client.post(
            self.actor_url,
            headers={"Authorization": f"Bearer {self.token}"},
            json=self.build_input(library_url, request),
        )
        items = self._json_body(response, "Apify error")

        if not isinstance(items, list):
            raise ProviderError("Apify response is not an array", body=response.text)

        logger.debug("apify_items_received", library_url=library_url, count=len(items))
        return items
