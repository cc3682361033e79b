"""Find-or-create brands and keep their fetch bookkeeping current."""

from collections import Counter
from datetime import datetime
from typing import Optional
from urllib.parse import urlparse, parse_qs

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ad_intel.config import BRAND_NAME_MAX_LENGTH
from ad_intel.errors import StorageError
from ad_intel.models import Brand
from ad_intel.models.database import new_id
from ad_intel.utils.logger import get_logger

logger = get_logger("brands")

UNKNOWN_BRAND_NAME = "Unknown Brand"


def clean_brand_name(name: Optional[str]) -> Optional[str]:
    """Strip and truncate a display name; blank names become None."""
    if not isinstance(name, str):
        return None
    name = name.strip()
    if not name:
        return None
    return name[:BRAND_NAME_MAX_LENGTH]


def extract_page_id(library_url: str) -> Optional[str]:
    """
    Extract the Facebook page id from an Ad Library URL.

    e.g. ...?view_all_page_id=123456789 -> "123456789"
    """
    try:
        params = parse_qs(urlparse(library_url).query)
    except (ValueError, TypeError, AttributeError):
        return None
    values = params.get("view_all_page_id") or params.get("id")
    return values[0] if values else None


def placeholder_brand_name(library_url: Optional[str]) -> str:
    page_id = extract_page_id(library_url) if library_url else None
    return f"Page {page_id}" if page_id else UNKNOWN_BRAND_NAME


def _item_page_name(item) -> Optional[str]:
    if not isinstance(item, dict):
        return None
    snapshot = item.get("snapshot") if isinstance(item.get("snapshot"), dict) else {}
    return clean_brand_name(snapshot.get("page_name") or item.get("page_name"))


def first_page_name(items: list) -> Optional[str]:
    """Page name of the first item, if it has one."""
    return _item_page_name(items[0]) if items else None


def most_common_page_name(items: list) -> Optional[str]:
    """Most frequent page name across items; ties go to the first seen."""
    names = [name for name in (_item_page_name(item) for item in items) if name]
    if not names:
        return None
    return Counter(names).most_common(1)[0][0]


class BrandResolver:
    """Find-or-create brands keyed by Ad Library URL."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_url(self, library_url: str) -> Optional[Brand]:
        return self.db.query(Brand).filter(Brand.ads_library_url == library_url).first()

    def resolve(self, library_url: str, business_id: str, brand_name: str = None) -> Brand:
        """
        Return the brand for library_url, creating it if needed.

        An existing brand is reactivated and moved to business_id; its name
        is only replaced when brand_name is given. New brands without a name
        get a "Page {id}" placeholder.
        """
        brand_name = clean_brand_name(brand_name)

        try:
            brand = self.get_by_url(library_url)
            if brand is None:
                brand = Brand(
                    id=new_id(),
                    brand_name=brand_name or placeholder_brand_name(library_url),
                    ads_library_url=library_url,
                    is_active=True,
                    business_id=business_id,
                )
                self.db.add(brand)
                try:
                    self.db.commit()
                    logger.info("brand_created", brand_id=brand.id, library_url=library_url)
                    return brand
                except IntegrityError:
                    # Created concurrently by another ingestion
                    self.db.rollback()
                    brand = self.get_by_url(library_url)
                    if brand is None:
                        raise

            if brand_name:
                brand.brand_name = brand_name
            brand.is_active = True
            brand.business_id = business_id
            self.db.commit()
            logger.info("brand_updated", brand_id=brand.id, library_url=library_url)
            return brand

        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Could not resolve brand for {library_url}: {e}") from e

    def resolve_by_name(self, business_id: str, brand_name: str) -> Brand:
        """Find-or-create a brand that has no Ad Library URL, keyed by (business, name)."""
        brand_name = clean_brand_name(brand_name) or UNKNOWN_BRAND_NAME

        try:
            brand = (
                self.db.query(Brand)
                .filter(Brand.business_id == business_id, Brand.brand_name == brand_name)
                .first()
            )
            if brand is None:
                brand = Brand(id=new_id(), brand_name=brand_name, is_active=True, business_id=business_id)
                self.db.add(brand)
                logger.info("brand_created", brand_id=brand.id, brand_name=brand_name)
            else:
                brand.is_active = True
            self.db.commit()
            return brand

        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Could not resolve brand {brand_name!r}: {e}") from e

    def rename(self, brand: Brand, brand_name: str):
        brand_name = clean_brand_name(brand_name)
        if not brand_name or brand_name == brand.brand_name:
            return
        brand.brand_name = brand_name
        self._commit("brand_renamed", brand)

    def mark_success(self, brand: Brand):
        brand.mark_fetch_success(datetime.utcnow().date())
        self._commit("brand_fetch_success", brand)

    def mark_error(self, brand: Brand, message: str):
        brand.mark_fetch_error(message)
        self._commit("brand_fetch_error", brand, error=message)

    def _commit(self, event: str, brand: Brand, **context):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Could not update brand {brand.id}: {e}") from e
        logger.info(event, brand_id=brand.id, **context)
