# Overview: Flask CLI command groups for bootstrap, ledger checks, and plant production.

# backend/distro/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to distro (PowerShell: $env:FLASK_APP="distro").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates all tables and the plant stock rows for every SKU.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Ledger checks:
# - python -m flask ledger check [--location plant]
#   Replay stock and wallet ledgers and report any cache drift. Exits 1 on drift.
#
# Stock:
# - python -m flask stock production --sku 1 --quantity 500 --actor plant.admin [--attempts 3]
#   Record plant production for one SKU, retrying on database lock conflicts.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import DistroError
from .extensions import db
from .models import SKU, StockItem
from .services import stock_service, wallet_service
from .services.concurrency import run_with_retry


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create the schema and make sure every SKU has a plant stock row.

    Safe to run repeatedly.
    """
    click.echo("START Initializing distribution back office...")
    db.create_all()

    plant = current_app.config["PLANT_LOCATION_ID"]
    created = 0
    for sku in db.session.query(SKU).order_by(SKU.id).all():
        if stock_service.get_stock_item(plant, sku.id) is None:
            db.session.add(StockItem(location_id=plant, sku_id=sku.id, quantity=0, reserved=0))
            created += 1
    db.session.commit()

    click.echo(f"PASS Schema ready. Plant location: {plant}. Stock rows created: {created}")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('ledger')
def ledger_group():
    """Ledger replay and reconciliation commands."""


@ledger_group.command('check')
@click.option('--location', 'location_id', default=None, help='Limit the stock check to one location')
@with_appcontext
def check_ledgers(location_id):
    """Replay stock and wallet ledgers and compare against cached balances."""
    stock_drift = stock_service.reconcile_stock(location_id)
    wallet_drift = wallet_service.reconcile_wallets()

    for row in stock_drift:
        click.echo(
            f"FAIL stock {row['location_id']} sku={row['sku_id']}: "
            f"cached {row['cached_quantity']}/{row['cached_reserved']} "
            f"replayed {row['replayed_quantity']}/{row['replayed_reserved']}"
        )
    for row in wallet_drift:
        click.echo(
            f"FAIL wallet {row['account_type']} {row['account_id']}: "
            f"cached {row['cached_cents']} replayed {row['replayed_cents']}"
        )

    if stock_drift or wallet_drift:
        raise SystemExit(1)
    click.echo("PASS Stock and wallet ledgers reconcile.")


@click.group('stock')
def stock_group():
    """Plant stock commands."""


@stock_group.command('production')
@click.option('--sku', 'sku_id', type=int, required=True, help='SKU id')
@click.option('--quantity', type=int, required=True, help='Units produced')
@click.option('--actor', default='system', help='Recorded as the ledger actor')
@click.option('--attempts', type=click.IntRange(min=1), default=3, help='Tries on database lock conflicts')
@with_appcontext
def record_production(sku_id, quantity, actor, attempts):
    """Record daily production into plant stock."""
    try:
        entries = run_with_retry(
            lambda: stock_service.add_plant_production([{"sku_id": sku_id, "quantity": quantity}], actor),
            attempts=attempts,
        )
    except DistroError as e:
        raise click.ClickException(e.message) from e
    for entry in entries:
        click.echo(f"PASS SKU {entry.sku_id}: plant quantity now {entry.balance_after}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(stock_group)
