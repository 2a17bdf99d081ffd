# Overview: Flask CLI command groups for bootstrap, staff, forecasting, inventory and payables.

# backend/stockroom/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init --business "Corner Shop" --branch "Main Branch" --owner-email owner@shop.local
#   Idempotent bootstrap: creates the business, its default branch and a Business Owner.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Staff:
# - python -m flask staff list --business-id 1
#   List staff with roles and home branches.
# - python -m flask staff create --business-id 1 --email mgr@shop.local --first-name Sam --role Manager --branch-id 1
#   Create a staff member.
#
# Permissions:
# - python -m flask perms list [--role Manager]
#   List capability codes (optionally only those a role holds).
#
# Forecasting:
# - python -m flask forecast show --staff-id 1 [--branch-id 1] [--window 30]
#   Print the reorder forecast as the given staff member sees it.
#
# Inventory spreadsheets:
# - python -m flask inventory import stock.xlsx --staff-id 1
#   Create inventory records from an .xlsx or .csv sheet.
# - python -m flask inventory export stock.xlsx --staff-id 1 [--branch-id 1]
#   Write the inventory as a workbook in the import layout.
#
# Payables:
# - python -m flask payables outstanding --business-id 1 [--branch-id 1]
#   Total of approved, unpaid supplier invoices.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import StockroomError
from .models import Business, Branch, Staff
from .permissions import Role, PERMISSION_DEFINITIONS, get_role_permissions
from .services import actor_service, forecast_service, import_service, supplier_invoice_service


ROLE_CHOICES = [role.value for role in Role]


def _actor(staff_id: int):
    try:
        return actor_service.load_actor_context(staff_id)
    except actor_service.StaffNotFoundError as e:
        raise click.ClickException(str(e))


def _money(cents: int) -> str:
    return f"{cents / 100:,.2f}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--business', 'business_name', default='Default Business', help='Business name')
@click.option('--branch', 'branch_name', default='Main Branch', help='Default branch name')
@click.option('--owner-email', default='owner@stockroom.local', help='Business Owner email')
@with_appcontext
def init_system(business_name, branch_name, owner_email):
    """
    Initialize a business: the business row, its default branch and one
    Business Owner staff member. Safe to run repeatedly.
    """
    click.echo("START Initializing stockroom...")
    db.create_all()

    business = db.session.query(Business).filter_by(name=business_name).first()
    if not business:
        business = Business(name=business_name, is_active=True)
        db.session.add(business)
        db.session.commit()
        click.echo(f"PASS Created business: {business.name} (ID: {business.id})")
    else:
        click.echo(f"PASS Using existing business: {business.name} (ID: {business.id})")

    branch = db.session.query(Branch).filter_by(business_id=business.id, name=branch_name).first()
    if not branch:
        has_default = db.session.query(Branch).filter_by(business_id=business.id, is_default=True).first()
        branch = Branch(business_id=business.id, name=branch_name, is_default=not has_default, is_active=True)
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    owner = db.session.query(Staff).filter_by(business_id=business.id, email=owner_email).first()
    if not owner:
        owner = Staff(
            business_id=business.id,
            branch_id=branch.id,
            email=owner_email,
            first_name="Owner",
            role=Role.BUSINESS_OWNER.value,
            is_active=True,
        )
        db.session.add(owner)
        db.session.commit()
        click.echo(f"PASS Created Business Owner: {owner.email} (staff ID: {owner.id})")
    else:
        click.echo(f"WARN  Staff '{owner_email}' already exists, skipping...")

    click.echo("\n" + "=" * 60)
    click.echo("DONE Stockroom initialized")
    click.echo("=" * 60)
    click.echo(f"\nBusiness: {business.name} (ID: {business.id})")
    click.echo(f"Branch:   {branch.name} (ID: {branch.id})")
    click.echo(f"Owner:    {owner.email} (send X-Staff-Id: {owner.id})\n")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm dropping every table')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('staff')
def staff_group():
    """Staff management commands."""


@staff_group.command('list')
@click.option('--business-id', type=int, required=True, help='Business ID')
@with_appcontext
def list_staff(business_id):
    members = db.session.query(Staff).filter_by(business_id=business_id).order_by(Staff.id).all()
    if not members:
        click.echo("No staff found.")
        return
    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Email':<30} {'Name':<20} {'Role':<16} {'Branch':<7} {'Active'}")
    click.echo("=" * 80)
    for s in members:
        click.echo(
            f"{s.id:<5} {s.email:<30} {s.full_name:<20} {s.role:<16} "
            f"{s.branch_id or '-':<7} {'yes' if s.is_active else 'no'}"
        )
    click.echo("=" * 80 + "\n")


@staff_group.command('create')
@click.option('--business-id', type=int, required=True, help='Business ID')
@click.option('--email', required=True, help='Email address (unique within the business)')
@click.option('--first-name', required=True, help='First name')
@click.option('--last-name', default=None, help='Last name')
@click.option('--role', type=click.Choice(ROLE_CHOICES), required=True, help='Role')
@click.option('--branch-id', type=int, default=None, help='Home branch ID')
@with_appcontext
def create_staff(business_id, email, first_name, last_name, role, branch_id):
    business = db.session.get(Business, business_id)
    if not business:
        raise click.ClickException(f"Business ID {business_id} not found")
    if branch_id is not None:
        branch = db.session.get(Branch, branch_id)
        if not branch or branch.business_id != business_id:
            raise click.ClickException(f"Branch ID {branch_id} not found in business {business_id}")
    if db.session.query(Staff).filter_by(business_id=business_id, email=email).first():
        raise click.ClickException(f"Staff '{email}' already exists")

    staff = Staff(
        business_id=business_id,
        branch_id=branch_id,
        email=email,
        first_name=first_name,
        last_name=last_name,
        role=role,
        is_active=True,
    )
    db.session.add(staff)
    db.session.commit()
    click.echo(f"PASS Created staff: {email} (ID: {staff.id}) with role '{role}'")


@click.group('perms')
def perms_group():
    """Permission inspection commands."""


@perms_group.command('list')
@click.option('--role', type=click.Choice(ROLE_CHOICES), default=None, help='Only codes held by this role')
def list_perms(role):
    held = get_role_permissions(role) if role else None
    for code, name, _description, category in PERMISSION_DEFINITIONS:
        if held is not None and code not in held:
            continue
        click.echo(f"{code:<30} {category:<14} {name}")


@click.group('forecast')
def forecast_group():
    """Reorder forecasting commands."""


@forecast_group.command('show')
@click.option('--staff-id', type=int, required=True, help='Acting staff ID')
@click.option('--branch-id', type=int, default=None, help='Branch ID (default: all accessible)')
@click.option('--window', type=int, default=None, help='Sales window in days (7, 14, 30, 60)')
@with_appcontext
def show_forecast(staff_id, branch_id, window):
    ctx = _actor(staff_id)
    try:
        report = forecast_service.build_forecast_report(ctx, branch_id=branch_id, window_days=window)
    except StockroomError as e:
        raise click.ClickException(str(e))

    counts = report.counts
    click.echo(f"\nForecast over {report.window_days} days")
    click.echo(
        f"Urgent: {counts[forecast_service.STATUS_URGENT]}  "
        f"Reorder Soon: {counts[forecast_service.STATUS_REORDER_SOON]}  "
        f"OK: {counts[forecast_service.STATUS_OK]}"
    )
    click.echo("=" * 96)
    click.echo(f"{'SKU':<16} {'Product':<28} {'Stock':>6} {'ADS':>7} {'ROP':>7} {'Days':>7} {'Order':>6}  Status")
    click.echo("=" * 96)
    for f in report.forecasts:
        days = f"{f.days_until_stockout:.1f}" if f.days_until_stockout is not None else "-"
        click.echo(
            f"{(f.sku or '')[:16]:<16} {(f.product_name or '')[:28]:<28} {f.current_stock:>6} "
            f"{f.average_daily_sales:>7.2f} {f.reorder_point:>7.1f} {days:>7} "
            f"{f.suggested_reorder_quantity:>6}  {f.status}"
        )
    click.echo("=" * 96)
    click.echo(
        f"Suggested reorder: {report.total_reorder_quantity} units, "
        f"est. cost {_money(report.total_estimated_reorder_cost_cents)}\n"
    )


@click.group('inventory')
def inventory_group():
    """Inventory spreadsheet commands."""


@inventory_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--staff-id', type=int, required=True, help='Acting staff ID')
@with_appcontext
def import_inventory(path, staff_id):
    ctx = _actor(staff_id)
    try:
        with open(path, "rb") as fh:
            result = import_service.import_inventory_file(ctx, fh, path)
    except StockroomError as e:
        raise click.ClickException(str(e))

    for line in result.created:
        click.echo(f"PASS {line}")
    for line in result.warnings:
        click.echo(f"WARN  {line}")
    for line in result.errors:
        click.echo(f"FAIL {line}")
    click.echo(
        f"\nDONE {len(result.created)} created from {result.total_rows} rows "
        f"({len(result.warnings)} warnings, {len(result.errors)} errors)"
    )


@inventory_group.command('export')
@click.argument('path', type=click.Path(dir_okay=False, writable=True))
@click.option('--staff-id', type=int, required=True, help='Acting staff ID')
@click.option('--branch-id', type=int, default=None, help='Branch ID (default: all accessible)')
@with_appcontext
def export_inventory(path, staff_id, branch_id):
    ctx = _actor(staff_id)
    try:
        with open(path, "wb") as fh:
            count = import_service.export_inventory_xlsx(ctx, fh, branch_id=branch_id)
    except StockroomError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Exported {count} products to {path}")


@click.group('payables')
def payables_group():
    """Supplier payables commands."""


@payables_group.command('outstanding')
@click.option('--business-id', type=int, required=True, help='Business ID')
@click.option('--branch-id', type=int, default=None, help='Branch ID')
@with_appcontext
def outstanding(business_id, branch_id):
    total = supplier_invoice_service.get_outstanding_payables(business_id, branch_id)
    scope = f"branch {branch_id}" if branch_id else f"business {business_id}"
    click.echo(f"Outstanding payables for {scope}: {_money(total)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(staff_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(forecast_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(payables_group)
