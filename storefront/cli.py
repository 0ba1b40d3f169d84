# storefront/cli.py
import click
import pandas as pd
from flask import current_app
from flask.cli import with_appcontext

from .errors import ValidationError
from .extensions import db
from .services import catalog_service

EXPORT_COLUMNS = ["id", "name", "description", "price", "stock", "created_at", "updated_at"]

SAMPLE_PRODUCTS = [
    {"name": "Espresso Cup", "description": "Stoneware, 90 ml", "price": "8.50", "stock": 120},
    {"name": "Latte Mug", "description": "Stoneware, 350 ml", "price": "14.00", "stock": 80},
    {"name": "Pour-over Kettle", "description": "Gooseneck, 1 l", "price": "45.90", "stock": 25},
    {"name": "Coffee Grinder", "description": "Conical burr, hand crank", "price": "62.00", "stock": 15},
    {"name": "Paper Filters", "description": "Size 02, pack of 100", "price": "5.25", "stock": 400},
    {"name": "Milk Jug", "description": "Stainless steel, 600 ml", "price": "19.99", "stock": 60},
    {"name": "Tamper", "description": "58 mm flat base", "price": "24.00", "stock": 40},
    {"name": "Scale", "description": "0.1 g resolution with timer", "price": "34.50", "stock": 30},
    {"name": "Cold Brew Jar", "description": "Glass, 1.5 l", "price": "29.00", "stock": 20},
    {"name": "Cleaning Tablets", "description": "Tube of 20", "price": "9.75", "stock": 150},
]


@click.command("seed-products")
@with_appcontext
def seed_products():
    """Insert a small sample catalog."""
    for row in SAMPLE_PRODUCTS:
        catalog_service.create_product(db.session, **row)
    click.echo(f"{len(SAMPLE_PRODUCTS)} sample products added")


@click.command("export-products")
@with_appcontext
@click.argument("path", type=click.Path(dir_okay=False, writable=True))
def export_products(path):
    """Write all non-deleted products to a CSV file."""
    products = catalog_service.list_products(db.session)
    rows = [{col: p.as_api()[col] for col in EXPORT_COLUMNS} for p in products]
    df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
    df.to_csv(path, index=False)
    click.echo(f"{len(df)} products exported to {path}")


@click.command("import-products")
@with_appcontext
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def import_products(path):
    """Create products from a CSV with name, description, price and stock columns."""
    df = pd.read_csv(path)
    df.columns = df.columns.str.strip().str.lower()
    missing = {"name", "price", "stock"} - set(df.columns)
    if missing:
        raise click.ClickException(f"missing columns: {', '.join(sorted(missing))}")
    if "description" not in df.columns:
        df["description"] = None
    df = df.astype(object).where(df.notna(), None)

    created, failed = 0, 0
    for idx, row in df.iterrows():
        try:
            catalog_service.create_product(
                db.session,
                name=row["name"],
                description=row["description"],
                price=row["price"],
                stock=row["stock"],
            )
            created += 1
        except ValidationError as e:
            failed += 1
            current_app.logger.warning("row %s skipped: %s", idx + 2, e.message)
            click.echo(f"row {idx + 2}: {e.message}", err=True)
    click.echo(f"{created} products imported, {failed} skipped")


def register_cli(app):
    app.cli.add_command(seed_products)
    app.cli.add_command(export_products)
    app.cli.add_command(import_products)
