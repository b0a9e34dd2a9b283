# Overview: Flask CLI command group for bootstrap and ad-hoc analytics inspection.

# backend/inventory_analytics/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask analytics <command> [options]
#
# Bootstrap:
# - python -m flask analytics init-db
#   Create all tables (idempotent).
# - python -m flask analytics seed-demo [--days 90]
#   Insert two suppliers, a handful of items and a few months of stock history.
#
# Inspection:
# - python -m flask analytics show-dialect
#   Print the SQL dialect the analytics queries were built for.
# - python -m flask analytics financial-summary --from 2024-01-01 --to 2024-01-31 [--supplier SUP-1]
#   Print the WAC financial summary for the period.
# - python -m flask analytics monthly-movement --start 2024-01-01 --end 2024-06-30 [--supplier SUP-1]
#   Print stock in/out per month.

import json
from datetime import timedelta
from decimal import Decimal

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import InventoryItem, StockChangeReason, StockHistory, Supplier
from .services import stock_analytics_service, wac_service
from .services.dialect_service import get_dialect_detector
from .services.wac_service import LedgerComputationError
from .time_utils import start_of_day, today
from .validation import ValidationError


@click.group('analytics')
def analytics_group():
    """Stock valuation and cost-flow commands."""


@analytics_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created")


@analytics_group.command('show-dialect')
@with_appcontext
def show_dialect():
    detector = get_dialect_detector()
    label = "test" if detector.is_alternate_dialect() else "production"
    click.echo(f"{detector.dialect.value} ({label} dialect)")


# (item id, name, supplier, current price, minimum quantity)
DEMO_ITEMS = [
    ("ITEM-BOLT", "Hex bolt M8", "SUP-ACME", Decimal("0.35"), 200),
    ("ITEM-NUT", "Hex nut M8", "SUP-ACME", Decimal("0.12"), 200),
    ("ITEM-GLOVE", "Nitrile gloves", "SUP-SAFE", Decimal("7.90"), 20),
    ("ITEM-MASK", "Dust mask", "SUP-SAFE", Decimal("2.40"), 50),
]


def _demo_rows(price: Decimal, days: int):
    """Deterministic daily movements: restocks, sales, damage and customer returns."""
    yield 500, StockChangeReason.INITIAL_STOCK, price
    for step in range(1, days):
        if step % 7 == 0:
            yield 250, StockChangeReason.MANUAL_UPDATE, price * Decimal("1.05") if step % 14 == 0 else price
        elif step % 11 == 0:
            yield -3, StockChangeReason.DAMAGED, None
        elif step % 17 == 0:
            yield 4, StockChangeReason.RETURNED_BY_CUSTOMER, price
        else:
            yield -(10 + step % 9), StockChangeReason.SOLD, None


@analytics_group.command('seed-demo')
@click.option('--days', default=90, show_default=True, type=click.IntRange(min=1), help='Days of history to generate')
@with_appcontext
def seed_demo(days):
    """
    Insert demo suppliers, items and one stock movement per item per day.

    Refuses to run when stock history already exists.
    """
    if db.session.query(StockHistory).count():
        click.echo("WARN  Stock history is not empty, skipping seed")
        return

    for sup_id, name in (("SUP-ACME", "Acme Fasteners"), ("SUP-SAFE", "SafeWork Supplies")):
        if db.session.get(Supplier, sup_id) is None:
            db.session.add(Supplier(id=sup_id, name=name))

    first_day = today() - timedelta(days=days - 1)
    for offset, (item_id, name, supplier_id, price, minimum) in enumerate(DEMO_ITEMS):
        item = db.session.get(InventoryItem, item_id)
        if item is None:
            item = InventoryItem(id=item_id, name=name, supplier_id=supplier_id, price=price, minimum_quantity=minimum)
            db.session.add(item)

        qty = 0
        ts = start_of_day(first_day) + timedelta(hours=9 + offset)
        for change, reason, unit in _demo_rows(price, days):
            db.session.add(StockHistory(
                item_id=item_id,
                supplier_id=supplier_id,
                quantity_change=change,
                reason=reason.value,
                created_by="seed",
                created_at=ts,
                price_at_change=unit.quantize(Decimal("0.01")) if unit is not None else None,
            ))
            qty += change
            ts += timedelta(days=1)
        item.quantity = qty

    db.session.commit()
    click.echo(f"PASS Seeded {len(DEMO_ITEMS)} items with {days} days of history")


def _echo_json(payload) -> None:
    click.echo(json.dumps(payload, indent=2))


@analytics_group.command('financial-summary')
@click.option('--from', 'from_date', required=True, type=click.DateTime(formats=["%Y-%m-%d"]), help='First day (inclusive)')
@click.option('--to', 'to_date', required=True, type=click.DateTime(formats=["%Y-%m-%d"]), help='Last day (inclusive)')
@click.option('--supplier', 'supplier_id', default=None, help='Supplier id (case-insensitive)')
@with_appcontext
def financial_summary_cli(from_date, to_date, supplier_id):
    try:
        summary = wac_service.financial_summary(from_date.date(), to_date.date(), supplier_id)
    except (ValidationError, LedgerComputationError) as e:
        raise click.ClickException(str(e))
    _echo_json(summary.to_dict())
    if summary.uncosted_outflow_qty:
        click.echo(f"WARN  {summary.uncosted_outflow_qty} units were issued without a cost basis", err=True)


@analytics_group.command('monthly-movement')
@click.option('--start', required=True, type=click.DateTime(formats=["%Y-%m-%d"]), help='First day (inclusive)')
@click.option('--end', required=True, type=click.DateTime(formats=["%Y-%m-%d"]), help='Last day (inclusive)')
@click.option('--supplier', 'supplier_id', default=None, help='Supplier id (case-insensitive)')
@with_appcontext
def monthly_movement_cli(start, end, supplier_id):
    try:
        rows = stock_analytics_service.monthly_movement(start.date(), end.date(), supplier_id)
    except ValidationError as e:
        raise click.ClickException(str(e))
    if not rows:
        click.echo("No stock movement in range")
        return
    for row in rows:
        click.echo(f"{row.month}  in={row.stock_in:>8}  out={row.stock_out:>8}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(analytics_group)
