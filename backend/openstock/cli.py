# Overview: Flask CLI command groups for bootstrap, stock mutation, and ledger inspection.

# backend/openstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to openstock (PowerShell: $env:FLASK_APP="openstock").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables and the settings row (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock:
# - python -m flask stock apply prd_... in 10 --unit-cost 4.20 --supplier-id sup_...
#   Apply one movement (in, out, adjustment, transfer, return).
# - python -m flask stock history prd_... [--variant-id var_...] [--limit 20]
#   List movements of one target, newest first.
# - python -m flask stock verify
#   Replay every target's ledger and report drift; exits 1 on any inconsistency.
# - python -m flask stock alerts
#   Print current out-of-stock and low-stock alerts.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import alert_service, stock_service
from .services.concurrency import ConcurrentModificationError
from .services.settings_service import get_settings
from .validation import ConflictError, NotFoundError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create tables and the settings row."""
    click.echo("BUILD  Creating all tables...")
    db.create_all()

    settings = get_settings()
    click.echo(f"PASS Settings ready: {settings.business_name} ({settings.currency})")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, the movement ledger included!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init-db' to seed settings.")


@click.group('stock')
def stock_group():
    """Stock movement and ledger commands."""


@stock_group.command('apply', context_settings={"ignore_unknown_options": True})
@click.argument('product_id')
@click.argument('movement_type')
@click.argument('quantity', type=int)
@click.option('--variant-id', default=None, help='Variant to move instead of the product')
@click.option('--unit-cost', type=float, default=None, help='Unit cost (receipts)')
@click.option('--reference', default=None, help='External reference, e.g. an order number')
@click.option('--reason', default=None, help='Free-text reason')
@click.option('--supplier-id', default=None, help='Supplier of a receipt')
@with_appcontext
def apply_cli(product_id, movement_type, quantity, variant_id, unit_cost, reference, reason, supplier_id):
    """
    Apply one stock movement.

    Example:
        flask stock apply prd_123 in 10 --unit-cost 4.20
        flask stock apply prd_123 adjustment -2 --reason "Breakage"
    """
    try:
        movement = stock_service.apply_movement(
            product_id=product_id,
            movement_type=movement_type,
            quantity=quantity,
            variant_id=variant_id,
            unit_cost=unit_cost,
            reference=reference,
            reason=reason,
            supplier_id=supplier_id,
            actor_id="cli",
        )
    except (ValidationError, NotFoundError, ConflictError, ConcurrentModificationError) as exc:
        raise click.ClickException(str(exc))

    click.echo(
        f"PASS {movement.id}: {movement.type.value} {movement.quantity} "
        f"({movement.stock_before} -> {movement.stock_after})"
    )


@stock_group.command('history')
@click.argument('product_id')
@click.option('--variant-id', default=None, help='Variant target')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def history_cli(product_id, variant_id, limit):
    """List movements of one product (or variant), newest first."""
    movements = stock_service.list_movements(
        product_id=product_id,
        variant_id=variant_id,
        product_level_only=variant_id is None,
        limit=limit,
    )

    if not movements:
        click.echo("No movements found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'Seq':<6} {'Created':<21} {'Type':<11} {'Qty':>6} {'Before':>8} {'After':>8}  {'Reason'}")
    click.echo("=" * 100)

    for movement in movements:
        created = movement.created_at.strftime("%Y-%m-%d %H:%M:%S")
        click.echo(
            f"{movement.sequence:<6} {created:<21} {movement.type.value:<11} {movement.quantity:>6} "
            f"{movement.stock_before:>8} {movement.stock_after:>8}  {movement.reason or ''}"
        )

    click.echo("=" * 100 + "\n")


@stock_group.command('verify')
@with_appcontext
def verify_cli():
    """
    Replay every ledger and compare with the stored quantities.

    Exits with status 1 when any target is inconsistent.
    """
    checks = stock_service.verify_ledger()
    broken = [check for check in checks if not check.is_consistent]

    if not broken:
        click.echo(f"PASS {len(checks)} targets consistent.")
        return

    for check in broken:
        target = check.variant_id or check.product_id
        click.echo(
            f"FAIL {target}: stored={check.stored_quantity} replayed={check.replayed_quantity}",
            err=True,
        )
        for problem in check.breaks:
            click.echo(f"     {problem}", err=True)

    click.echo(f"FAIL {len(broken)} of {len(checks)} targets inconsistent.", err=True)
    raise SystemExit(1)


@stock_group.command('alerts')
@with_appcontext
def alerts_cli():
    """Print current stock alerts."""
    alerts = alert_service.build_stock_alerts()

    if not alerts:
        click.echo("No stock alerts.")
        return

    for alert in alerts:
        click.echo(f"[{alert.level.upper()}] {alert.title}: {alert.description} ({alert.id})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
