# Overview: Flask CLI command groups for bootstrap, inventory maintenance, and cache repair.

# backend/smartbill/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to smartbill (PowerShell: $env:FLASK_APP="smartbill").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (use `flask db upgrade` for migrated deployments).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Inventory maintenance:
# - python -m flask inventory low-stock
#   List inventory records at or below their min_stock threshold.
# - python -m flask inventory reconcile
#   Recompute status and re-mirror Product.stock wherever they drifted.
#
# Cache repair:
# - python -m flask cache purge product --id 7
# - python -m flask cache purge inventory --id 3 --barcode 8901234567890
# - python -m flask cache purge bill
# - python -m flask cache purge cart --user-id 12
#   Delete every cached view of the given kind that the identifiers address.

import click
from flask.cli import with_appcontext

from .extensions import db, get_services


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete.")


@click.group('inventory')
def inventory_group():
    """Inventory inspection and maintenance commands."""


@inventory_group.command('low-stock')
@with_appcontext
def low_stock():
    """List inventory at or below min_stock."""
    rows = get_services().ledger.low_stock()
    if not rows:
        click.echo("PASS No low stock items.")
        return

    for row in rows:
        product = row.get("product") or {}
        click.echo(
            f"{row['id']:>5}  {product.get('name', '?'):<30}  "
            f"qty={row['quantity']:<5} min={row['min_stock']:<5} {row['status']}"
        )
    click.echo(f"WARN {len(rows)} item(s) at or below min_stock.")


@inventory_group.command('reconcile')
@with_appcontext
def reconcile():
    """Repair status / stock-mirror drift."""
    repaired = get_services().ledger.reconcile()
    if repaired:
        click.echo(f"FIXED {len(repaired)} record(s): {', '.join(str(i) for i in repaired)}")
    else:
        click.echo("PASS Inventory consistent.")


@click.group('cache')
def cache_group():
    """Cache inspection and repair commands."""


@cache_group.command('purge')
@click.argument('kind', type=click.Choice(['product', 'inventory', 'bill', 'cart']))
@click.option('--id', 'record_id', type=int, default=None, help='Record id')
@click.option('--barcode', default=None, help='Barcode')
@click.option('--bill-number', default=None, help='Bill number')
@click.option('--user-id', type=int, default=None, help='Shop user id')
@with_appcontext
def purge(kind, record_id, barcode, bill_number, user_id):
    """Invalidate cached views of KIND."""
    keys = get_services().cache_policy.purge(
        kind,
        id=record_id,
        barcode=barcode,
        bill_number=bill_number,
        user_id=user_id,
    )
    click.echo(f"PASS Purged {len(keys)} key(s).")
    for key in keys:
        click.echo(f"  {key}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(cache_group)
