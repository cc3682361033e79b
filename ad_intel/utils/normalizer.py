"""Normalize provider ad payloads into raw_data records.

Two payload shapes are understood:

- scraper shape (Apify Ad Library scraper, and JSON exports of it): top-level
  ``ad_archive_id``/``id``, epoch ``start_date``/``end_date`` and a nested
  ``snapshot`` with page, link, caption, cards, images and videos.
- vendor shape (Graph API ``ads_archive``): flat ``ad_delivery_start_time``,
  ``ad_creative_bodies[]``, ``ad_snapshot_url`` and friends.

Every normalizer returns a dict with the same keys as ``RawAd.COLUMNS``.
Required fields are always filled; optional ones are ``None`` when absent.
Nothing here touches the network or the database.
"""

import random
import string
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from dateutil.parser import parse as parse_date

from ad_intel.models.raw_ad import RawAd

# Epoch values above this are milliseconds, below it seconds
MILLIS_THRESHOLD = 1e12

_MISSING_IDS = {"", "undefined", "null", "none"}


def is_valid_item(item: Any) -> bool:
    """An item can be ingested if it has some id and no error marker."""
    if not isinstance(item, dict):
        return False
    if not (item.get("ad_archive_id") or item.get("id")):
        return False
    return not item.get("errorCode") and not item.get("error")


def _parse_date_string(value: str) -> Optional[datetime]:
    try:
        parsed = parse_date(value)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse epoch seconds, epoch milliseconds or a date string into a UTC datetime.

    Returns:
        Timezone-aware datetime, or None if the value cannot be read as a date
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            number = float(value)
        except ValueError:
            number = None
        # Eight bare digits is a compact date such as 20240315, not an epoch
        if number is None or (value.isdigit() and len(value) == 8):
            parsed = _parse_date_string(value)
            if parsed is not None or number is None:
                return parsed
        value = number

    if isinstance(value, (int, float)):
        if value != value or value <= 0:  # NaN or non-positive
            return None
        seconds = value / 1000 if value > MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    return None


def first_timestamp(candidates: Iterable[Any]) -> Optional[datetime]:
    """Return the first candidate that parses as a date."""
    for value in candidates:
        parsed = parse_timestamp(value)
        if parsed is not None:
            return parsed
    return None


def _snapshot(item: dict) -> dict:
    snapshot = item.get("snapshot")
    return snapshot if isinstance(snapshot, dict) else {}


def _first(value: Any) -> Any:
    if isinstance(value, list) and value:
        return value[0]
    return None


def _first_dict(value: Any) -> dict:
    entry = _first(value)
    return entry if isinstance(entry, dict) else {}


def _list_or_none(value: Any) -> Optional[list]:
    return value if isinstance(value, list) else None


def _int_or_none(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def resolve_start_date(item: dict) -> Optional[datetime]:
    """Start date from whichever of the known fields parses first, or None."""
    snapshot = _snapshot(item)
    return first_timestamp([
        item.get("start_date"),
        item.get("ad_delivery_start_time"),
        snapshot.get("start_date"),
        item.get("creation_date"),
        item.get("ad_creation_time"),
    ])


def resolve_end_date(item: dict) -> Optional[str]:
    """End date as YYYY-MM-DD, or None if no end field parses."""
    snapshot = _snapshot(item)
    end = first_timestamp([
        item.get("end_date"),
        item.get("ad_delivery_stop_time"),
        snapshot.get("end_date"),
    ])
    return end.date().isoformat() if end else None


def extract_media(snapshot: dict) -> dict:
    """
    Pick media and thumbnail URLs from a scraper snapshot.

    Priority: first card (video, then image), then the videos list, then the
    images list. Each later source only fills what is still missing.
    """
    media_url = None
    thumbnail_url = None
    card = _first_dict(snapshot.get("cards"))

    if card:
        media_url = (
            card.get("video_hd_url")
            or card.get("video_sd_url")
            or card.get("original_image_url")
            or card.get("resized_image_url")
        )
        thumbnail_url = (
            card.get("video_preview_image_url")
            or card.get("resized_image_url")
            or card.get("original_image_url")
        )

    video = _first_dict(snapshot.get("videos"))
    if video and (not media_url or not thumbnail_url):
        media_url = media_url or video.get("video_hd_url") or video.get("video_sd_url")
        thumbnail_url = thumbnail_url or video.get("video_preview_image_url")

    image = _first_dict(snapshot.get("images"))
    if image and (not media_url or not thumbnail_url):
        media_url = media_url or image.get("original_image_url")
        thumbnail_url = thumbnail_url or image.get("resized_image_url") or image.get("original_image_url")

    has_video = bool(card.get("video_hd_url") or card.get("video_sd_url") or snapshot.get("videos"))
    has_image = bool(card.get("original_image_url") or card.get("resized_image_url") or snapshot.get("images"))

    return {
        "media_url": media_url or None,
        "thumbnail_url": thumbnail_url or None,
        "has_video": has_video,
        "has_image": has_image,
    }


def empty_record() -> dict:
    return {name: None for name in RawAd.COLUMNS}


class AdNormalizer:
    """Base class: one normalizer per payload shape, selected by source tag."""

    source: str = None

    def normalize(self, item: dict, brand_id: str, library_url: Optional[str] = None) -> dict:
        raise NotImplementedError

    def archive_id(self, item: dict) -> Optional[str]:
        """Provider id of the ad, or None when it is missing or a placeholder."""
        value = item.get("ad_archive_id") or item.get("id")
        if value is None:
            return None
        text = str(value).strip()
        if text.lower() in _MISSING_IDS:
            return None
        return text

    def page_name(self, item: dict) -> Optional[str]:
        name = _snapshot(item).get("page_name") or item.get("page_name")
        if isinstance(name, str) and name.strip():
            return name.strip()
        return None

    def synthesize_id(self, item: dict, page_id: str, start: datetime) -> str:
        return str(uuid.uuid4())


class ApifyAdNormalizer(AdNormalizer):
    """Scraper-shape items fetched from the Apify Ad Library actor."""

    source = "apify"

    def synthesize_id(self, item: dict, page_id: str, start: datetime) -> str:
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
        return f"{page_id}_{int(start.timestamp() * 1000)}_{suffix}"

    def normalize(self, item: dict, brand_id: str, library_url: Optional[str] = None) -> dict:
        snapshot = _snapshot(item)
        card = _first_dict(snapshot.get("cards"))
        record = empty_record()

        start = resolve_start_date(item) or datetime.now(timezone.utc)
        page_id = str(item.get("page_id") or snapshot.get("page_id") or "")

        media = extract_media(snapshot)
        display_format = snapshot.get("display_format") or item.get("display_format")
        if display_format == "VIDEO" or media["has_video"]:
            media_type = "video"
        elif display_format in ("IMAGE", "DPA", "DCO") or media["has_image"]:
            media_type = "image"
        else:
            media_type = None

        body = snapshot.get("body")
        body_text = body.get("text") if isinstance(body, dict) else body if isinstance(body, str) else None

        is_active = item.get("is_active")
        if is_active is True:
            ad_status = "ACTIVE"
        elif is_active is False:
            ad_status = "INACTIVE"
        else:
            ad_status = None

        record.update({
            "brand_id": brand_id,
            "ad_archive_id": self.archive_id(item) or self.synthesize_id(item, page_id, start),
            "source": self.source,
            "ad_library_url": item.get("ad_library_url") or item.get("url") or library_url,
            "url": item.get("url"),
            "page_id": page_id,
            "page_name": self.page_name(item),
            "start_date": start.isoformat(),
            "end_date": resolve_end_date(item),
            "publisher_platform": _list_or_none(item.get("publisher_platform")),
            "page_categories": _list_or_none(snapshot.get("page_categories")),
            "caption": body_text or snapshot.get("caption") or item.get("caption"),
            "display_format": display_format,
            "media_type": media_type,
            "ad_status": ad_status,
            "link_url": snapshot.get("link_url") or card.get("link_url"),
            "total_active_time": _int_or_none(item.get("total_active_time")),
            "cta_text": snapshot.get("cta_text") or card.get("cta_text"),
            "cta_type": snapshot.get("cta_type") or card.get("cta_type"),
            "ad_title": snapshot.get("title") or card.get("title"),
            "thumbnail_url": media["thumbnail_url"],
            "media_url": media["media_url"],
            "page_like_count": _int_or_none(snapshot.get("page_like_count")),
            "collation_count": _int_or_none(item.get("collation_count", 1)),
        })
        return record


class JsonImportNormalizer(ApifyAdNormalizer):
    """Scraper-shape items pasted or uploaded as JSON instead of fetched."""

    source = "json"

    def synthesize_id(self, item: dict, page_id: str, start: datetime) -> str:
        return str(uuid.uuid4())


class MetaAdNormalizer(AdNormalizer):
    """Vendor-shape items from the Graph API ads_archive endpoint."""

    source = "meta"

    def normalize(self, item: dict, brand_id: str, library_url: Optional[str] = None) -> dict:
        record = empty_record()

        start = resolve_start_date(item) or datetime.now(timezone.utc)
        end_date = resolve_end_date(item)
        page_id = str(item.get("page_id") or "")
        link_title = _first(item.get("ad_creative_link_titles"))

        if end_date and end_date < datetime.now(timezone.utc).date().isoformat():
            ad_status = "INACTIVE"
        else:
            ad_status = "ACTIVE"

        record.update({
            "brand_id": brand_id,
            "ad_archive_id": self.archive_id(item) or self.synthesize_id(item, page_id, start),
            "source": self.source,
            "ad_library_url": item.get("ad_snapshot_url") or library_url,
            "page_id": page_id,
            "page_name": self.page_name(item),
            "start_date": start.isoformat(),
            "end_date": end_date,
            "publisher_platform": _list_or_none(item.get("publisher_platforms")),
            "caption": _first(item.get("ad_creative_bodies")),
            "ad_status": ad_status,
            "total_active_time": 0,
            "cta_text": link_title,
            "ad_title": link_title,
            "collation_count": 1,
        })
        return record


NORMALIZERS = {
    normalizer.source: normalizer
    for normalizer in (ApifyAdNormalizer(), JsonImportNormalizer(), MetaAdNormalizer())
}


def get_normalizer(source: str) -> AdNormalizer:
    """Look up the normalizer registered for a source tag."""
    try:
        return NORMALIZERS[source]
    except KeyError:
        raise ValueError(f"Unknown ad source: {source!r}") from None


def normalize_items(
    items: list, brand_id: str, source: str, library_url: Optional[str] = None
) -> list[dict]:
    """Drop invalid items and normalize the rest, preserving order."""
    normalizer = get_normalizer(source)
    return [normalizer.normalize(item, brand_id, library_url) for item in items if is_valid_item(item)]
