#!/usr/bin/env python3
"""
Competitor Ad Intelligence - Main CLI Entry Point

Usage:
    python main.py --url {ads_library_url} --business-id {id}              # Last 30 days
    python main.py --url {url} --business-id {id} --count 50               # Newest 50 ads
    python main.py --url {url} --business-id {id} --month 2024-03          # One calendar month
    python main.py --json-file ads.json --business-id {id}                 # Import scraped JSON
    python main.py --refresh-all --limit-per-brand 100                     # Every active brand
    python main.py --summaries-only [--brand-id {id} | --business-id {id}] # Rebuild summaries
"""

import asyncio
import json
import sys
from pathlib import Path

import click

from ad_intel.config import MAX_CREATIVES_PER_BRAND
from ad_intel.errors import AdIntelError, ValidationError
from ad_intel.models import SessionLocal, init_db
from ad_intel.scrapers.base import month_date_range
from ad_intel.scrapers.orchestrator import IngestOrchestrator, PROVIDER_CLASSES
from ad_intel.utils.logger import get_logger
from ad_intel.utils.summaries import recompute_summaries

logger = get_logger("main")


def parse_month(value: str):
    """Turn YYYY-MM into (first_day, last_day)."""
    try:
        year, month = (int(part) for part in value.split("-"))
    except ValueError:
        raise click.BadParameter(f"expected YYYY-MM, got {value!r}", param_hint="--month") from None
    try:
        return month_date_range(year, month)
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint="--month") from None


def load_creatives(path: Path) -> list:
    """Read a JSON file holding either a list of creatives or {"creatives": [...]}."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("creatives")
    if not isinstance(data, list):
        raise click.BadParameter("JSON file must contain a list of creatives", param_hint="--json-file")
    return data


def echo_result(payload: dict):
    click.echo(json.dumps(payload, indent=2, default=str))


async def run_orchestrator(orchestrator: IngestOrchestrator, method: str, *args, **kwargs):
    async with orchestrator:
        return await getattr(orchestrator, method)(*args, **kwargs)


@click.command()
@click.option("--url", "library_url", type=str, help="Ad Library URL of the brand to ingest")
@click.option("--business-id", type=str, help="Business the brand belongs to")
@click.option("--name", "brand_name", type=str, help="Display name for the brand")
@click.option("--count", type=int, help=f"Newest N ads (capped at {MAX_CREATIVES_PER_BRAND})")
@click.option("--start-date", type=click.DateTime(formats=["%Y-%m-%d"]), help="Range start (YYYY-MM-DD)")
@click.option("--end-date", type=click.DateTime(formats=["%Y-%m-%d"]), help="Range end (YYYY-MM-DD)")
@click.option("--month", type=str, help="Ingest one calendar month (YYYY-MM)")
@click.option("--source", type=click.Choice(sorted(PROVIDER_CLASSES)), help="Ad archive provider")
@click.option("--no-summaries", is_flag=True, help="Skip the summary rebuild after ingesting")
@click.option("--json-file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Import creatives from a JSON file instead of fetching")
@click.option("--refresh-all", is_flag=True, help="Re-ingest every active brand")
@click.option("--limit-per-brand", type=int, default=MAX_CREATIVES_PER_BRAND, show_default=True,
              help="Ads per brand for --refresh-all")
@click.option("--summaries-only", is_flag=True, help="Only rebuild summary tables")
@click.option("--brand-id", type=str, help="Brand scope for --summaries-only")
@click.option("--init-db", "initialize_db", is_flag=True, help="Initialize database tables")
def main(
    library_url: str,
    business_id: str,
    brand_name: str,
    count: int,
    start_date,
    end_date,
    month: str,
    source: str,
    no_summaries: bool,
    json_file: Path,
    refresh_all: bool,
    limit_per_brand: int,
    summaries_only: bool,
    brand_id: str,
    initialize_db: bool,
):
    """Competitor ad ingestion and summary CLI."""

    if initialize_db:
        click.echo("Initializing database tables...")
        init_db()
        click.echo("Database initialized successfully!")
        return

    if summaries_only:
        db = SessionLocal()
        try:
            counts = recompute_summaries(db, brand_id=brand_id, business_id=business_id)
        except AdIntelError as e:
            logger.error("summary_rebuild_failed", error=str(e))
            click.echo(f"Summary rebuild failed: {e}")
            sys.exit(1)
        finally:
            db.close()
        echo_result(counts.to_dict())
        return

    orchestrator = IngestOrchestrator(source=source)
    refresh = not no_summaries

    if refresh_all:
        click.echo(f"Refreshing all active brands ({limit_per_brand} ads each)...")
        call = ("refresh_all", [limit_per_brand], {"refresh_summaries": refresh})
    elif json_file:
        creatives = load_creatives(json_file)
        click.echo(f"Importing {len(creatives)} creatives from {json_file}...")
        call = ("ingest_json", [creatives, business_id], {
            "brand_name": brand_name,
            "library_url": library_url,
            "refresh_summaries": refresh,
        })
    elif library_url:
        if month:
            start_date, end_date = parse_month(month)
        click.echo(f"Starting ingestion: {library_url}")
        call = ("ingest", [library_url, business_id], {
            "brand_name": brand_name,
            "count": count,
            "start_date": start_date,
            "end_date": end_date,
            "refresh_summaries": refresh,
        })
    else:
        click.echo("Use --help for usage information")
        sys.exit(1)

    try:
        method, args, kwargs = call
        result = asyncio.run(run_orchestrator(orchestrator, method, *args, **kwargs))
    except KeyboardInterrupt:
        click.echo("\nIngestion interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error("ingest_crashed", error=str(e))
        click.echo(f"Ingestion failed: {e}")
        sys.exit(1)

    if isinstance(result, dict):
        echo_result(result)
        sys.exit(0 if result["succeeded"] == result["brands"] else 1)

    echo_result(result.to_dict())
    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()
