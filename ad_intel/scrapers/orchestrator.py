import asyncio
import weakref
from dataclasses import dataclass, asdict
from typing import Optional
from urllib.parse import urlparse

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ad_intel.config import DEFAULT_SOURCE, MAX_CREATIVES_PER_BRAND, UPSERT_BATCH_SIZE
from ad_intel.errors import (
    AdIntelError,
    EmptyResultError,
    ProviderError,
    StorageError,
    ValidationError,
    WriteVerificationError,
)
from ad_intel.models import SessionLocal, Brand, Business, RawAd, upsert_rows, count_rows
from ad_intel.scrapers.apify_scraper import ApifyAdScraper
from ad_intel.scrapers.base import AdArchiveProvider, FetchRequest
from ad_intel.scrapers.meta_archive import MetaAdsArchive
from ad_intel.utils.brands import (
    BrandResolver,
    UNKNOWN_BRAND_NAME,
    clean_brand_name,
    first_page_name,
    most_common_page_name,
)
from ad_intel.utils.logger import bound_context, get_logger
from ad_intel.utils.normalizer import is_valid_item, normalize_items
from ad_intel.utils.summaries import recompute_summaries

logger = get_logger("orchestrator")

PROVIDER_CLASSES = {
    ApifyAdScraper.source: ApifyAdScraper,
    MetaAdsArchive.source: MetaAdsArchive,
}

RAW_AD_KEY = ("brand_id", "ad_archive_id")

NO_VALID_ADS = "No valid ads found in provider response"
NO_DATA_AFTER_UPSERT = "Upsert completed but no data found in database after insert"


@dataclass
class IngestResult:
    """Outcome of one ingestion call."""
    success: bool
    brand_id: Optional[str] = None
    brand_name: Optional[str] = None
    rows_received: int = 0
    rows_transformed: int = 0
    inserted: int = 0
    batches: int = 0
    summaries: Optional[dict] = None
    message: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class BrandLocks:
    """One asyncio.Lock per brand key, per event loop."""

    def __init__(self):
        self._by_loop = weakref.WeakKeyDictionary()

    def get(self, key: str) -> asyncio.Lock:
        locks = self._by_loop.setdefault(asyncio.get_running_loop(), {})
        if key not in locks:
            locks[key] = asyncio.Lock()
        return locks[key]


brand_locks = BrandLocks()


def dedupe_rows(rows: list[dict]) -> list[dict]:
    """Keep the last row for each (brand_id, ad_archive_id), in first-seen order."""
    by_key = {}
    for row in rows:
        by_key[tuple(row[k] for k in RAW_AD_KEY)] = row
    return list(by_key.values())


def valid_items(items: list) -> list:
    valid = [item for item in items if is_valid_item(item)]
    if not valid:
        raise EmptyResultError(NO_VALID_ADS)
    return valid


def validate_library_url(library_url) -> str:
    if not isinstance(library_url, str) or not library_url.strip():
        raise ValidationError("ads_library_url is required")
    library_url = library_url.strip()
    parsed = urlparse(library_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("Invalid ads_library_url")
    return library_url


def validate_business_id(business_id) -> str:
    if not isinstance(business_id, str) or not business_id.strip():
        raise ValidationError("business_id is required")
    return business_id.strip()


class IngestOrchestrator:
    """Fetches, normalizes and stores ads for brands, then refreshes their summaries."""

    def __init__(self, db: Session = None, source: str = None, providers: dict = None):
        self.db = db
        self.source = source or DEFAULT_SOURCE
        self.providers: dict[str, AdArchiveProvider] = dict(providers or {})
        self._opened_providers: list[AdArchiveProvider] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        """Stop providers this orchestrator created."""
        for provider in self._opened_providers:
            await provider.stop()
        self._opened_providers = []

    def _provider_for(self, source: Optional[str]) -> AdArchiveProvider:
        source = source or self.source
        if source not in self.providers:
            provider_class = PROVIDER_CLASSES.get(source)
            if provider_class is None:
                raise ValidationError(f"Unknown source {source!r}, expected one of {sorted(PROVIDER_CLASSES)}")
            self.providers[source] = provider_class()
            self._opened_providers.append(self.providers[source])
        return self.providers[source]

    def _session(self) -> Session:
        return self.db or SessionLocal()

    def _release(self, db: Session):
        if db is not self.db:
            db.close()

    @staticmethod
    def _business_exists(db: Session, business_id: str) -> bool:
        try:
            return db.query(Business.id).filter(Business.id == business_id).first() is not None
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Business lookup failed: {e}") from e

    async def ingest(
        self,
        library_url: str,
        business_id: str,
        brand_name: str = None,
        count: int = None,
        start_date=None,
        end_date=None,
        refresh_summaries: bool = True,
        source: str = None,
    ) -> IngestResult:
        """
        Run one ingestion for the brand behind an Ad Library URL.

        Never raises for pipeline errors: validation, provider and storage
        failures come back as an IngestResult with success=False, and are
        recorded on the brand row whenever a brand exists.
        """
        try:
            library_url = validate_library_url(library_url)
            business_id = validate_business_id(business_id)
            request = FetchRequest.build(count=count, start_date=start_date, end_date=end_date)
            provider = self._provider_for(source)
        except ValidationError as e:
            logger.warning("ingest_rejected", library_url=library_url, error=str(e))
            return IngestResult(success=False, error=str(e))

        with bound_context(library_url=library_url, source=provider.source):
            async with brand_locks.get(library_url):
                db = self._session()
                try:
                    return await self._ingest_brand(
                        db, provider, library_url, business_id, brand_name, request, refresh_summaries
                    )
                finally:
                    self._release(db)

    async def _ingest_brand(
        self,
        db: Session,
        provider: AdArchiveProvider,
        library_url: str,
        business_id: str,
        brand_name: Optional[str],
        request: FetchRequest,
        refresh_summaries: bool,
    ) -> IngestResult:
        logger.info("ingest_started", business_id=business_id, request=request.describe())
        resolver = BrandResolver(db)

        try:
            if not self._business_exists(db, business_id):
                return IngestResult(success=False, error="Business not found")
            brand = resolver.resolve(library_url, business_id, brand_name)
        except StorageError as e:
            logger.error("brand_resolve_failed", error=str(e))
            return IngestResult(success=False, error=str(e))

        try:
            items = await provider.fetch(library_url, request)
        except ProviderError as e:
            logger.error("provider_fetch_failed", brand_id=brand.id, error=str(e))
            return self._fail(resolver, brand, e)

        if not clean_brand_name(brand_name):
            try:
                resolver.rename(brand, first_page_name([i for i in items if is_valid_item(i)]))
            except StorageError as e:
                return self._fail(resolver, brand, e)

        return self._store(db, resolver, brand, items, provider.source, library_url, refresh_summaries)

    async def ingest_json(
        self,
        creatives: list,
        business_id: str,
        brand_name: str = None,
        library_url: str = None,
        refresh_summaries: bool = True,
    ) -> IngestResult:
        """
        Ingest scraper-shape creatives supplied directly instead of fetched.

        The brand is keyed by library_url, else by the first creative's url,
        else by (business, brand name).
        """
        try:
            business_id = validate_business_id(business_id)
            if not isinstance(creatives, list) or not creatives:
                raise ValidationError("creatives must be a non-empty list")
            first = creatives[0] if isinstance(creatives[0], dict) else {}
            identifier = library_url or first.get("url") or first.get("ad_library_url")
            if identifier:
                identifier = validate_library_url(identifier)
        except ValidationError as e:
            logger.warning("ingest_json_rejected", error=str(e))
            return IngestResult(success=False, error=str(e))

        final_name = clean_brand_name(brand_name) or most_common_page_name(creatives) or UNKNOWN_BRAND_NAME

        async with brand_locks.get(identifier or f"{business_id}:{final_name}"):
            db = self._session()
            try:
                resolver = BrandResolver(db)
                try:
                    if not self._business_exists(db, business_id):
                        return IngestResult(success=False, error="Business not found")
                    if identifier:
                        brand = resolver.resolve(identifier, business_id, final_name)
                    else:
                        brand = resolver.resolve_by_name(business_id, final_name)
                except StorageError as e:
                    logger.error("brand_resolve_failed", library_url=identifier, error=str(e))
                    return IngestResult(success=False, error=str(e))

                logger.info("ingest_json_started", brand_id=brand.id, creatives=len(creatives))
                return self._store(db, resolver, brand, creatives, "json", identifier, refresh_summaries)
            finally:
                self._release(db)

    def _store(
        self,
        db: Session,
        resolver: BrandResolver,
        brand: Brand,
        items: list,
        source: str,
        library_url: Optional[str],
        refresh_summaries: bool,
    ) -> IngestResult:
        """Filter, normalize, upsert and verify items for a resolved brand."""
        brand_id, brand_name = brand.id, brand.brand_name
        received = len(items)

        try:
            valid = valid_items(items)
        except EmptyResultError as e:
            logger.warning("ingest_empty", brand_id=brand_id, received=received)
            try:
                resolver.mark_error(brand, str(e))
            except StorageError as status_error:
                logger.error("brand_status_update_failed", brand_id=brand_id, error=str(status_error))
            return IngestResult(
                success=True,
                brand_id=brand_id,
                brand_name=brand_name,
                rows_received=received,
                message=str(e),
            )

        rows = normalize_items(valid, brand_id, source, library_url)

        try:
            batches = self._upsert_in_batches(db, rows)
            inserted = count_rows(db, RawAd, brand_id=brand_id)
            if inserted == 0:
                raise WriteVerificationError(NO_DATA_AFTER_UPSERT)
            resolver.mark_success(brand)
        except (StorageError, WriteVerificationError) as e:
            logger.error("ingest_store_failed", brand_id=brand_id, error=str(e))
            return self._fail(resolver, brand, e, rows_received=received, rows_transformed=len(rows))

        summaries = self._refresh_summaries(db, brand_id) if refresh_summaries else None

        logger.info(
            "ingest_completed",
            brand_id=brand_id,
            source=source,
            received=received,
            transformed=len(rows),
            inserted=inserted,
            batches=batches,
        )
        return IngestResult(
            success=True,
            brand_id=brand_id,
            brand_name=brand_name,
            rows_received=received,
            rows_transformed=len(rows),
            inserted=inserted,
            batches=batches,
            summaries=summaries,
            message="Ingestion completed successfully",
        )

    def _upsert_in_batches(self, db: Session, records: list[dict]) -> int:
        """Upsert normalized records in fixed-size batches; earlier batches stay committed on failure."""
        rows = dedupe_rows([RawAd.row_from_record(record) for record in records])
        batches = 0
        for i in range(0, len(rows), UPSERT_BATCH_SIZE):
            batch = rows[i:i + UPSERT_BATCH_SIZE]
            upsert_rows(db, RawAd, batch, RAW_AD_KEY)
            batches += 1
            logger.debug("raw_batch_upserted", batch=batches, size=len(batch))
        return batches

    def _refresh_summaries(self, db: Session, brand_id: str) -> Optional[dict]:
        # Best effort: a failed rebuild does not fail the ingestion
        try:
            counts = recompute_summaries(db, brand_id=brand_id)
            return {"creative_count": counts.creative_rows_written, "funnel_count": counts.funnel_rows_written}
        except (AdIntelError, SQLAlchemyError) as e:
            db.rollback()
            logger.warning("summary_refresh_failed", brand_id=brand_id, error=str(e))
            return None

    def _fail(self, resolver: BrandResolver, brand: Brand, error: Exception, **counts) -> IngestResult:
        """Record the error on the brand and build a failure result."""
        message = str(error)
        try:
            resolver.mark_error(brand, message)
        except StorageError as status_error:
            logger.error("brand_status_update_failed", brand_id=brand.id, error=str(status_error))
        return IngestResult(
            success=False,
            brand_id=brand.id,
            brand_name=brand.brand_name,
            error=message,
            **counts,
        )

    async def refresh_all(
        self,
        limit_per_brand: int = MAX_CREATIVES_PER_BRAND,
        refresh_summaries: bool = True,
        source: str = None,
    ) -> dict:
        """
        Re-ingest the newest ads of every active brand that has an Ad Library URL.

        A failing brand is reported in the results and does not stop the loop.
        """
        limit = max(1, min(MAX_CREATIVES_PER_BRAND, int(limit_per_brand or MAX_CREATIVES_PER_BRAND)))

        db = self._session()
        try:
            brands = (
                db.query(Brand.id, Brand.brand_name, Brand.ads_library_url, Brand.business_id)
                .filter(Brand.is_active == True, Brand.ads_library_url.isnot(None))  # noqa: E712
                .order_by(Brand.brand_name)
                .all()
            )
        finally:
            self._release(db)

        logger.info("refresh_all_started", brands=len(brands), limit_per_brand=limit)
        results = []

        for brand in brands:
            try:
                result = await self.ingest(
                    brand.ads_library_url,
                    brand.business_id,
                    brand_name=brand.brand_name,
                    count=limit,
                    refresh_summaries=refresh_summaries,
                    source=source,
                )
                results.append({
                    "brand_id": brand.id,
                    "brand_name": brand.brand_name,
                    "success": result.success,
                    "inserted": result.inserted,
                    "error": result.error,
                })
            except Exception as e:
                logger.error("brand_refresh_failed", brand_id=brand.id, error=str(e))
                results.append({
                    "brand_id": brand.id,
                    "brand_name": brand.brand_name,
                    "success": False,
                    "inserted": 0,
                    "error": str(e),
                })

        succeeded = sum(1 for r in results if r["success"])
        total_inserted = sum(r["inserted"] for r in results)
        logger.info(
            "refresh_all_completed",
            brands=len(brands),
            succeeded=succeeded,
            total_inserted=total_inserted,
        )
        return {
            "brands": len(brands),
            "succeeded": succeeded,
            "limit_per_brand": limit,
            "total_inserted": total_inserted,
            "results": results,
        }
