from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

import httpx

from ad_intel.config import (
    DATE_RANGE_MAX_ITEMS,
    DEFAULT_LOOKBACK_DAYS,
    DEFAULT_MAX_ITEMS,
    MAX_CREATIVES_PER_BRAND,
    PROVIDER_TIMEOUT,
)
from ad_intel.errors import ProviderError, ValidationError
from ad_intel.utils.logger import get_logger
from ad_intel.utils.normalizer import is_valid_item, resolve_start_date

logger = get_logger("providers")

DateLike = Union[date, str, None]


def _to_date(value: DateLike, field: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{field} must be a YYYY-MM-DD date, got {value!r}") from None


@dataclass
class FetchRequest:
    """What to ask a provider for: the newest `count` ads, or ads started in a date range."""
    max_items: int
    count: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @property
    def is_count_bounded(self) -> bool:
        return self.count is not None

    @classmethod
    def build(
        cls,
        count: Optional[int] = None,
        start_date: DateLike = None,
        end_date: DateLike = None,
        today: Optional[date] = None,
    ) -> "FetchRequest":
        """
        Resolve caller bounds into a capped request.

        count wins over a date range. With neither, the last
        DEFAULT_LOOKBACK_DAYS days are requested with a small cap.
        """
        if count is not None:
            if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
                raise ValidationError(f"count must be a positive integer, got {count!r}")
            capped = min(count, MAX_CREATIVES_PER_BRAND)
            return cls(max_items=capped, count=capped)

        start = _to_date(start_date, "start_date")
        end = _to_date(end_date, "end_date")
        if start and end:
            if start > end:
                raise ValidationError(f"start_date {start} is after end_date {end}")
            return cls(max_items=DATE_RANGE_MAX_ITEMS, start_date=start, end_date=end)
        if start or end:
            raise ValidationError("start_date and end_date must be given together")

        today = today or date.today()
        return cls(
            max_items=DEFAULT_MAX_ITEMS,
            start_date=today - timedelta(days=DEFAULT_LOOKBACK_DAYS),
            end_date=today,
        )

    def date_window(self, today: Optional[date] = None) -> tuple[date, date]:
        """Date range to send to providers that always need one."""
        if self.start_date and self.end_date:
            return self.start_date, self.end_date
        today = today or date.today()
        return today - timedelta(days=DEFAULT_LOOKBACK_DAYS), today

    def describe(self) -> str:
        if self.is_count_bounded:
            return f"{self.count} items"
        return f"{self.start_date} to {self.end_date} (max {self.max_items})"


def month_date_range(year: int, month: int) -> tuple[date, date]:
    """First and last day of a calendar month."""
    if not 1 <= month <= 12:
        raise ValidationError(f"month must be between 1 and 12, got {month}")
    first = date(year, month, 1)
    next_month = date(year + month // 12, month % 12 + 1, 1)
    return first, next_month - timedelta(days=1)


def apply_post_filter(items: list, request: FetchRequest) -> list:
    """
    Trim provider output to the request and drop invalid items.

    Count-bounded requests keep the first `count` items in provider order.
    Date-bounded requests keep items whose start date falls inside the range,
    with the end date covering the whole day; undated items are dropped.
    Either way no more than `max_items` survive.
    """
    if request.is_count_bounded:
        selected = items[: request.count]
    else:
        window_start = datetime.combine(request.start_date, time.min, tzinfo=timezone.utc)
        window_end = datetime.combine(request.end_date, time.max, tzinfo=timezone.utc)
        selected = []
        for item in items:
            if not isinstance(item, dict):
                continue
            started = resolve_start_date(item)
            if started is not None and window_start <= started <= window_end:
                selected.append(item)

    return [item for item in selected if is_valid_item(item)][: request.max_items]


class AdArchiveProvider:
    """Base class for ad-archive providers: owns the HTTP client, applies caps and filters."""

    source: str = None

    def __init__(self, client: httpx.AsyncClient = None, timeout: float = PROVIDER_TIMEOUT):
        self.timeout = timeout
        self.client = client
        self._owns_client = client is None

    async def start(self):
        """Initialize the HTTP client."""
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
            self._owns_client = True

    async def stop(self):
        """Close the HTTP client if this provider created it."""
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def fetch_raw(self, library_url: str, request: FetchRequest) -> list:
        raise NotImplementedError

    async def fetch(self, library_url: str, request: FetchRequest) -> list[dict]:
        """Fetch, cap and filter items for one Ad Library URL."""
        await self.start()
        logger.info(
            "provider_fetch_started",
            source=self.source,
            library_url=library_url,
            request=request.describe(),
        )

        try:
            raw_items = await self.fetch_raw(library_url, request)
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.source} request failed: {e}") from e

        items = apply_post_filter(raw_items, request)
        logger.info(
            "provider_fetch_completed",
            source=self.source,
            library_url=library_url,
            received=len(raw_items),
            kept=len(items),
        )
        return items

    @staticmethod
    def _json_body(response: httpx.Response, label: str):
        if not response.is_success:
            raise ProviderError(label, status_code=response.status_code, body=response.text)
        try:
            return response.json()
        except ValueError:
            raise ProviderError(f"{label}: response is not valid JSON", body=response.text) from None
