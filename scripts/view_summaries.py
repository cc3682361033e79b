#!/usr/bin/env python3
"""
View monthly creative and funnel summaries.

Usage:
    python scripts/view_summaries.py
    python scripts/view_summaries.py --brand-id {id}
    python scripts/view_summaries.py --funnels --brand-id {id}
    python scripts/view_summaries.py --raw --brand-id {id}
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import click
from sqlalchemy import func

from ad_intel.models import SessionLocal, Brand, RawAd, CreativeSummary, FunnelSummary


@click.command()
@click.option("--brand-id", type=str, help="Filter by brand")
@click.option("--months", type=int, default=6, help="Number of recent months to show")
@click.option("--funnels", is_flag=True, help="Show funnel summary instead of creatives")
@click.option("--raw", is_flag=True, help="Show raw ad statistics")
def main(brand_id: str, months: int, funnels: bool, raw: bool):
    """View ad summaries."""

    db = SessionLocal()

    try:
        if raw:
            show_raw_stats(db, brand_id)
        elif funnels:
            show_funnel_summary(db, brand_id, months)
        else:
            show_creative_summary(db, brand_id, months)
    finally:
        db.close()


def _recent_months(db, model, brand_id: str, months: int) -> list:
    query = db.query(model.month).distinct()
    if brand_id:
        query = query.filter(model.brand_id == brand_id)
    return [row.month for row in query.order_by(model.month.desc()).limit(months).all()]


def show_creative_summary(db, brand_id: str, months: int):
    """Show creatives launched per brand per month."""
    click.echo("\n=== Creatives per Month ===\n")

    recent = _recent_months(db, CreativeSummary, brand_id, months)
    if not recent:
        click.echo("No creative summaries found.")
        return

    query = db.query(CreativeSummary).filter(CreativeSummary.month.in_(recent))
    if brand_id:
        query = query.filter(CreativeSummary.brand_id == brand_id)

    for row in query.order_by(CreativeSummary.month.desc(), CreativeSummary.brand_name).all():
        click.echo(
            f"{row.month.strftime('%Y-%m')}  {row.brand_name[:30]:<30} "
            f"creatives={row.creatives_count:<6} active_days={row.total_active_days}"
        )


def show_funnel_summary(db, brand_id: str, months: int):
    """Show destination URLs per brand per month."""
    click.echo("\n=== Funnels per Month ===\n")

    recent = _recent_months(db, FunnelSummary, brand_id, months)
    if not recent:
        click.echo("No funnel summaries found.")
        return

    query = db.query(FunnelSummary).filter(FunnelSummary.month.in_(recent))
    if brand_id:
        query = query.filter(FunnelSummary.brand_id == brand_id)

    rows = query.order_by(FunnelSummary.month.desc(), FunnelSummary.creatives_count.desc()).all()
    for row in rows:
        click.echo(
            f"{row.month.strftime('%Y-%m')}  {row.brand_name[:24]:<24} {row.funnel_type:<14} "
            f"{row.creatives_count:<5} {row.funnel_domain}{row.funnel_path or ''}"
        )

    click.echo("\nBy funnel type:")
    type_query = db.query(FunnelSummary.funnel_type, func.sum(FunnelSummary.creatives_count))
    if brand_id:
        type_query = type_query.filter(FunnelSummary.brand_id == brand_id)
    for funnel_type, count in type_query.group_by(FunnelSummary.funnel_type).all():
        click.echo(f"  {funnel_type}: {count}")


def show_raw_stats(db, brand_id: str = None):
    """Show raw ad counts."""
    click.echo("\n=== Raw Ad Statistics ===\n")

    query = db.query(RawAd)
    if brand_id:
        query = query.filter(RawAd.brand_id == brand_id)

    click.echo(f"Total ads: {query.count()}")

    click.echo("\nBy source:")
    source_query = db.query(RawAd.source, func.count(RawAd.id))
    if brand_id:
        source_query = source_query.filter(RawAd.brand_id == brand_id)
    for source, count in source_query.group_by(RawAd.source).all():
        click.echo(f"  {source}: {count}")

    click.echo("\nBy media type:")
    media_query = db.query(RawAd.media_type, func.count(RawAd.id))
    if brand_id:
        media_query = media_query.filter(RawAd.brand_id == brand_id)
    for media_type, count in media_query.group_by(RawAd.media_type).all():
        click.echo(f"  {media_type or 'Unknown'}: {count}")

    if not brand_id:
        click.echo("\nAds by brand:")
        brand_counts = (
            db.query(Brand.brand_name, func.count(RawAd.id))
            .join(RawAd, RawAd.brand_id == Brand.id)
            .group_by(Brand.id, Brand.brand_name)
            .order_by(func.count(RawAd.id).desc())
            .limit(10)
            .all()
        )
        for name, count in brand_counts:
            click.echo(f"  {name}: {count} ads")

    click.echo("\nMost recent ads:")
    for ad in query.order_by(RawAd.start_date.desc()).limit(5).all():
        click.echo(f"  [{ad.ad_archive_id}] {ad.page_name or '-'} - {ad.start_date.strftime('%Y-%m-%d')}")


if __name__ == "__main__":
    main()
