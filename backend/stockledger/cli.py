# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Categories:
# - python -m flask categories list
#   List registered category names and their product code prefixes.
# - python -m flask categories add --name "Minuman" --code MN
#   Register (or re-code) a category.
#
# Items:
# - python -m flask items list [--all]
#   List items with on-hand quantity.
# - python -m flask items allocate-code "Minuman"
#   Show the next free product code for a category (nothing is reserved).
#
# Ledger:
# - python -m flask ledger verify [--fix]
#   Compare cached item quantities with the ledger sum; --fix rewrites the cache.
#
# Stock opname:
# - python -m flask opname status [--device default]
#   Show the draft stored for a device.
# - python -m flask opname cancel [--device default] --yes
#   Discard the draft stored for a device (nothing is posted).
# - python -m flask opname history [--limit 20]
#   List committed stock opname sessions.
#
# Monitoring:
# - python -m flask monitoring list [--status critical]
#   List items with discrepancy records, most severe first.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import StockLedgerError
from .extensions import db
from .models import Category, InventoryItem
from .services import code_service, history_service, ledger_service, monitoring_service, session_service
from .services.opname_service import cancel_session, compute_summary


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables. Safe to run more than once."""
    db.create_all()
    click.echo("PASS Tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the stock ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('categories')
def categories_group():
    """Category name -> product code prefix lookup."""


@categories_group.command('list')
@with_appcontext
def list_categories_cli():
    categories = db.session.query(Category).order_by(Category.name).all()
    if not categories:
        click.echo("No categories registered.")
        return

    click.echo(f"{'Code':<6} {'Name'}")
    click.echo("=" * 40)
    for category in categories:
        click.echo(f"{category.code:<6} {category.name}")


@categories_group.command('add')
@click.option('--name', required=True, help='Category name as used on items')
@click.option('--code', required=True, help='1-3 character product code prefix')
@with_appcontext
def add_category_cli(name, code):
    """
    Register a category code.

    Example:
        flask categories add --name "Minuman" --code MN
    """
    try:
        code = code_service.normalize_category_code(code)
    except StockLedgerError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    name = name.strip()
    category = db.session.query(Category).filter_by(name=name).first()
    if category is None:
        category = Category(name=name, code=code)
        db.session.add(category)
        action = "Created"
    else:
        category.code = code
        action = "Updated"
    db.session.commit()
    click.echo(f"PASS {action} category {name!r} with code {code}")


@click.group('items')
def items_group():
    """Item inspection commands."""


@items_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Show inactive items too')
@with_appcontext
def list_items_cli(show_all):
    query = db.session.query(InventoryItem)
    if not show_all:
        query = query.filter_by(is_active=True)
    items = query.order_by(InventoryItem.code).all()

    if not items:
        click.echo("No items found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'Code':<10} {'Name':<30} {'Category':<20} {'Qty':>8} {'Active':<6}")
    click.echo("=" * 80)
    for item in items:
        active_str = "Yes" if item.is_active else "No"
        click.echo(
            f"{item.code:<10} {item.name[:30]:<30} {(item.category or '-')[:20]:<20} "
            f"{item.quantity:>8} {active_str:<6}"
        )
    click.echo("=" * 80 + "\n")


@items_group.command('allocate-code')
@click.argument('category')
@with_appcontext
def allocate_code_cli(category):
    try:
        code = code_service.allocate_code(code_service.resolve_category_code(category))
    except StockLedgerError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(code)


@click.group('ledger')
def ledger_group():
    """Stock ledger integrity commands."""


@ledger_group.command('verify')
@click.option('--fix', is_flag=True, help='Rewrite cached quantities from the ledger')
@with_appcontext
def verify_ledger_cli(fix):
    """
    Check that every item quantity equals the sum of its movements.

    Example:
        flask ledger verify
        flask ledger verify --fix
    """
    drift = ledger_service.verify_balances(fix=fix)
    if not drift:
        click.echo("PASS All item quantities match the ledger.")
        return

    for entry in drift:
        click.echo(
            f"DRIFT {entry['code']}: cached {entry['cached_quantity']}, ledger {entry['ledger_quantity']}"
        )
    if fix:
        db.session.commit()
        click.echo(f"PASS Repaired {len(drift)} item(s).")
    else:
        click.echo(f"FAIL {len(drift)} item(s) drifted. Re-run with --fix to repair.")
        raise SystemExit(1)


@click.group('opname')
def opname_group():
    """Stock opname draft inspection and history."""


def _device_option(f):
    return click.option('--device', 'device_id', default=None, help='Device id (defaults to DEFAULT_DEVICE_ID)')(f)


@opname_group.command('status')
@_device_option
@with_appcontext
def opname_status_cli(device_id):
    device_id = device_id or current_app.config.get("DEFAULT_DEVICE_ID", "default")
    session = session_service.load_active_session(device_id)
    if session is None:
        click.echo(f"No active stock opname on device {device_id}.")
        return

    summary = compute_summary(session)
    posted = sum(1 for line in session.lines if line.applied_movement_id is not None)
    click.echo(f"Session:   {session.id}")
    click.echo(f"Mode:      {session.mode}")
    click.echo(f"View:      {session.last_view}")
    click.echo(f"Started:   {session.started_at} by {session.started_by or '-'}")
    click.echo(f"Lines:     {summary.total_items} ({summary.matching_count} matching, "
               f"{summary.mismatching_count} mismatching)")
    if posted:
        click.echo(f"Posted:    {posted} adjustment(s) from an earlier partial commit")


@opname_group.command('cancel')
@_device_option
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def opname_cancel_cli(device_id, yes):
    device_id = device_id or current_app.config.get("DEFAULT_DEVICE_ID", "default")
    session = session_service.load_active_session(device_id)
    if session is None:
        click.echo(f"No active stock opname on device {device_id}.")
        return

    if not yes:
        click.confirm(f"WARN Discard stock opname {session.id} with {len(session.lines)} line(s)?", abort=True)
    cancel_session(session)
    click.echo(f"PASS Cancelled stock opname {session.id}.")


@opname_group.command('history')
@click.option('--limit', type=int, default=20, help='Max entries to show')
@with_appcontext
def opname_history_cli(limit):
    entries = history_service.list_history(limit=limit)
    if not entries:
        click.echo("No committed stock opname sessions.")
        return

    click.echo(f"{'ID':<22} {'Mode':<8} {'Counted at':<20} {'By':<12} {'Items':>6} {'Diff':>7}")
    click.echo("=" * 80)
    for entry in entries:
        click.echo(
            f"{entry.id:<22} {entry.mode:<8} {entry.counted_at:%Y-%m-%d %H:%M:%S}  "
            f"{entry.counted_by[:12]:<12} {entry.total_items:>6} {entry.total_difference:>7}"
        )


@click.group('monitoring')
def monitoring_group():
    """Discrepancy monitoring."""


@monitoring_group.command('list')
@click.option('--status', type=click.Choice(monitoring_service.STATUSES), help='Filter by status')
@with_appcontext
def monitoring_list_cli(status):
    records = monitoring_service.list_records(status=status)
    if not records:
        click.echo("No monitoring records.")
        return

    click.echo(f"{'Status':<9} {'Code':<10} {'Name':<28} {'Date':<11} {'Streak':>6} {'Value':>12}")
    click.echo("=" * 80)
    for record in records:
        click.echo(
            f"{record.status:<9} {record.item_code:<10} {record.item_name[:28]:<28} "
            f"{record.date.isoformat():<11} {record.consecutive_so_count:>6} "
            f"{record.total_value_difference_cents:>12}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(categories_group)
    app.cli.add_command(items_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(opname_group)
    app.cli.add_command(monitoring_group)
