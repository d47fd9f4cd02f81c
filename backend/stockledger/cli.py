# Overview: Flask CLI command groups for bootstrap, catalog maintenance and audits.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog add-product --name "Kaos Polos" --price 50000 --min-stock 5 [--manual --stock 10]
#   Create a product (unit-tracked unless --manual).
# - python -m flask catalog assign-tag 1 TAG-0001
#   Attach a tag to product 1's next free unit.
# - python -m flask catalog stock
#   Print every active product with ready stock and tagged-unit count.
#
# Audits:
# - python -m flask audits show [--date 2026-01-31] [--filter hasVariance]
#   Print an audit session with variance labels.
# - python -m flask audits close [--date 2026-01-31]
#   Write a numbered audit report for the session.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import audit_service, catalog_service, stock_service, unit_service
from .services.concurrency import StorageError
from .validation import ConflictError, NotFoundError, ValidationError

CLI_ERRORS = (ValidationError, ConflictError, NotFoundError, StorageError)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables ready.")


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


@click.group('catalog')
def catalog_group():
    """Product and tag maintenance."""


@catalog_group.command('add-product')
@click.option('--name', required=True, help='Product name')
@click.option('--category', default=None, help='Category text')
@click.option('--price', type=int, default=0, show_default=True)
@click.option('--cost', type=int, default=None)
@click.option('--min-stock', type=int, default=0, show_default=True)
@click.option('--manual', is_flag=True, help='Track stock as a number instead of tagged units')
@click.option('--stock', type=int, default=0, show_default=True, help='Initial stock (manual products only)')
@with_appcontext
def add_product(name, category, price, cost, min_stock, manual, stock):
    """Create a product."""
    patch = {
        "name": name,
        "category": category,
        "price": price,
        "cost": cost,
        "min_stock": min_stock,
        "unit_tracked": not manual,
    }
    if manual:
        patch["manual_stock"] = stock

    try:
        product = catalog_service.create_product(patch=patch)
    except CLI_ERRORS as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created {product.stock_mode} product: {product.name} (ID: {product.id})")


@catalog_group.command('assign-tag')
@click.argument('product_id', type=int)
@click.argument('tag')
@with_appcontext
def assign_tag(product_id, tag):
    """Attach TAG to PRODUCT_ID's next free unit."""
    try:
        unit = unit_service.assign_tag(product_id, tag)
    except CLI_ERRORS as e:
        raise click.ClickException(str(e))

    ready = stock_service.get_ready_stock(product_id)
    click.echo(f"PASS Tag {unit.tag} -> unit {unit.id} (product {product_id}, ready stock {ready})")


@catalog_group.command('stock')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive products')
@with_appcontext
def show_stock(include_inactive):
    """Print products with ready stock and tagged-unit count."""
    rows = stock_service.get_all_with_stock(include_inactive=include_inactive)
    if not rows:
        click.echo("No products.")
        return

    click.echo(f"{'ID':>5}  {'Name':<30} {'Mode':<7} {'Ready':>6} {'Tagged':>7} {'Min':>5}")
    for row in rows:
        mode = "unit" if row["unit_tracked"] else "manual"
        click.echo(
            f"{row['id']:>5}  {row['name'][:30]:<30} {mode:<7} "
            f"{row['ready_stock']:>6} {row['barcode_count']:>7} {row['min_stock']:>5}"
        )


@click.group('audits')
def audits_group():
    """Stock audit inspection and closure."""


@audits_group.command('show')
@click.option('--date', 'audit_date', default=None, help='YYYY-MM-DD (default: today)')
@click.option('--filter', 'filter_name', default='all', type=click.Choice(audit_service.FILTERS))
@with_appcontext
def show_audit(audit_date, filter_name):
    """Print an audit session with variance labels."""
    try:
        view = audit_service.get_session_view(audit_service.date_key(audit_date), filter_name)
    except CLI_ERRORS as e:
        raise click.ClickException(str(e))

    summary = view["summary"]
    click.echo(
        f"Audit {view['session']['date']}: {summary['audited']}/{summary['total']} audited, "
        f"{summary['with_variance']} with variance"
    )
    for row in view["results"]:
        physical = "-" if row["physical_stock"] is None else row["physical_stock"]
        click.echo(
            f"  [{row['status']:<9}] {row['name'][:30]:<30} system={row['system_stock']:<5} "
            f"physical={physical!s:<5} {row['label']}"
        )


@audits_group.command('close')
@click.option('--date', 'audit_date', default=None, help='YYYY-MM-DD (default: today)')
@with_appcontext
def close_audit(audit_date):
    """Write a numbered report for the session."""
    try:
        report = audit_service.close_session(audit_service.date_key(audit_date))
    except CLI_ERRORS as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Report {report.document_number} written for {report.audit_date}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(audits_group)
