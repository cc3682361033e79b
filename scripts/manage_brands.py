#!/usr/bin/env python3
"""
Manage businesses and the competitor brands they track.

Usage:
    python scripts/manage_brands.py --add-business {name}
    python scripts/manage_brands.py --list-businesses
    python scripts/manage_brands.py --list [--business-id {id}]
    python scripts/manage_brands.py --deactivate {brand_id}
    python scripts/manage_brands.py --activate {brand_id}
    python scripts/manage_brands.py --delete {brand_id}
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import click

from ad_intel.models import SessionLocal, Brand, Business, init_db


@click.command()
@click.option("--add-business", "business_name", type=str, help="Create a business with this name")
@click.option("--list-businesses", is_flag=True, help="List all businesses")
@click.option("--list", "list_brands", is_flag=True, help="List brands")
@click.option("--business-id", type=str, help="Filter --list by business")
@click.option("--deactivate", type=str, help="Deactivate a brand by id")
@click.option("--activate", type=str, help="Activate a brand by id")
@click.option("--delete", type=str, help="Delete a brand and all of its ads and summaries")
@click.option("--init-db", "initialize_db", is_flag=True, help="Initialize database tables")
def main(
    business_name: str,
    list_businesses: bool,
    list_brands: bool,
    business_id: str,
    deactivate: str,
    activate: str,
    delete: str,
    initialize_db: bool,
):
    """Manage businesses and brands."""

    if initialize_db:
        click.echo("Initializing database tables...")
        init_db()
        click.echo("Database initialized successfully!")
        return

    db = SessionLocal()

    try:
        if business_name:
            add_business(db, business_name)
        elif list_businesses:
            list_all_businesses(db)
        elif list_brands:
            list_all_brands(db, business_id)
        elif deactivate:
            set_brand_active(db, deactivate, False)
        elif activate:
            set_brand_active(db, activate, True)
        elif delete:
            delete_brand(db, delete)
        else:
            click.echo("Use --help for usage information")
            sys.exit(1)
    finally:
        db.close()


def add_business(db, name: str):
    """Add a new business."""
    business = Business(business_name=name.strip())
    db.add(business)
    db.commit()
    click.echo(f"Added business: {business.business_name} (id: {business.id})")


def list_all_businesses(db):
    """List all businesses with their brand counts."""
    businesses = db.query(Business).order_by(Business.business_name).all()

    if not businesses:
        click.echo("No businesses found. Add one with --add-business")
        return

    click.echo(f"\n{'ID':<38} {'Name':<40} {'Brands':<8}")
    click.echo("-" * 86)

    for b in businesses:
        click.echo(f"{b.id:<38} {b.business_name:<40} {len(b.brands):<8}")

    click.echo(f"\nTotal: {len(businesses)} businesses")


def list_all_brands(db, business_id: str = None):
    """List brands with their last fetch status."""
    query = db.query(Brand)
    if business_id:
        query = query.filter(Brand.business_id == business_id)
    brands = query.order_by(Brand.brand_name).all()

    if not brands:
        click.echo("No brands found. Ingest one with main.py --url")
        return

    click.echo(f"\n{'ID':<38} {'Name':<30} {'Active':<8} {'Last fetch':<12} {'Status':<10}")
    click.echo("-" * 100)

    for b in brands:
        status = "Yes" if b.is_active else "No"
        fetched = b.last_fetched_date.isoformat() if b.last_fetched_date else "-"
        click.echo(f"{b.id:<38} {b.brand_name[:30]:<30} {status:<8} {fetched:<12} {b.last_fetch_status or '-':<10}")
        if b.last_fetch_error:
            click.echo(f"    error: {b.last_fetch_error[:100]}")

    click.echo(f"\nTotal: {len(brands)} brands")


def set_brand_active(db, brand_id: str, active: bool):
    """Set brand active status."""
    brand = db.query(Brand).filter(Brand.id == brand_id).first()

    if not brand:
        click.echo(f"Error: Brand {brand_id} not found")
        sys.exit(1)

    brand.is_active = active
    db.commit()

    status = "activated" if active else "deactivated"
    click.echo(f"Brand {brand.brand_name} ({brand_id}) has been {status}")


def delete_brand(db, brand_id: str):
    """Delete a brand; its raw ads and summaries go with it."""
    brand = db.query(Brand).filter(Brand.id == brand_id).first()

    if not brand:
        click.echo(f"Error: Brand {brand_id} not found")
        sys.exit(1)

    name = brand.brand_name
    db.delete(brand)
    db.commit()
    click.echo(f"Deleted brand: {name} ({brand_id})")


if __name__ == "__main__":
    main()
