# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/lmis/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/inspection:
# - python -m flask system init-db
#   Create all tables (development; use `flask db upgrade` with migrations elsewhere).
# - python -m flask system check-db
#   Print row counts for every table.
#
# Users:
# - python -m flask users seed-admin
#   Create the SUPER_ADMIN from SEED_ADMIN_EMAIL / SEED_ADMIN_PASSWORD (idempotent).
# - python -m flask users create --email wo@lmis.local --full-name "Warehouse Officer" --role WAREHOUSE_OFFICER --facility-code WH-01
#   Create a user (prompts for the password).
#
# Facilities:
# - python -m flask facilities create --code WH-01 --name "Central Warehouse" --type WAREHOUSE
# - python -m flask facilities backfill-warehouse WH-01
#   Link every FACILITY that has no warehouse to WH-01.
#
# Orders:
# - python -m flask orders reset SPO-ISL-00884-001 [--donor "Donor Name"] --yes
#   Purge one order's boxes and box events and restart its box numbering.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Box, BoxEvent, Facility, Order, OrderBoxSequence, Product, SessionToken, User
from .permissions import Role
from .services import auth_service, facility_service, order_service
from .validation import LmisError


@click.group('system')
def system_group():
    """System bootstrap and inspection commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('check-db')
@with_appcontext
def check_db():
    """Print row counts per table."""
    counts = [
        ("facilities", Facility),
        ("users", User),
        ("sessions", SessionToken),
        ("orders", Order),
        ("products", Product),
        ("order_box_sequences", OrderBoxSequence),
        ("boxes", Box),
        ("box_events", BoxEvent),
    ]
    click.echo("\n" + "=" * 40)
    click.echo(f"{'Table':<25} {'Rows'}")
    click.echo("=" * 40)
    for name, model in counts:
        click.echo(f"{name:<25} {db.session.query(model).count()}")
    click.echo("=" * 40 + "\n")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('seed-admin')
@with_appcontext
def seed_admin():
    """Create the SUPER_ADMIN account if it does not exist."""
    email = current_app.config["SEED_ADMIN_EMAIL"].strip().lower()
    password = current_app.config["SEED_ADMIN_PASSWORD"]

    if db.session.query(User).filter_by(email=email).first():
        click.echo(f"WARN  Admin {email} already exists, skipping...")
        return

    try:
        user = auth_service.create_user(
            email=email,
            full_name="Super Admin",
            password=password,
            role=Role.SUPER_ADMIN,
        )
        db.session.commit()
    except LmisError as e:
        db.session.rollback()
        raise click.ClickException(e.message)

    click.echo(f"PASS Created SUPER_ADMIN {user.email} (ID: {user.id})")
    click.echo("SECURITY Change this password immediately in production!")


@users_group.command('create')
@click.option('--email', prompt=True, help='Login email')
@click.option('--full-name', prompt=True, help='Display name')
@click.option('--role', type=click.Choice(Role.ALL, case_sensitive=False), prompt=True)
@click.option('--facility-code', default=None, help='Required for every role except SUPER_ADMIN')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_user_cmd(email, full_name, role, facility_code, password):
    """Create a user bound to a facility."""
    try:
        user = auth_service.create_user(
            email=email,
            full_name=full_name,
            password=password,
            role=role.upper(),
            facility_code=facility_code,
        )
        db.session.commit()
    except LmisError as e:
        db.session.rollback()
        raise click.ClickException(e.message)

    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role {user.role}, facility {user.facility_id or '-'})")


@click.group('facilities')
def facilities_group():
    """Facility directory commands."""


@facilities_group.command('create')
@click.option('--code', prompt=True, help='Unique facility code')
@click.option('--name', prompt=True, help='Display name')
@click.option('--type', 'facility_type', type=click.Choice(["WAREHOUSE", "FACILITY"], case_sensitive=False), default="FACILITY")
@click.option('--warehouse', 'warehouse_ref', default=None, help='Owning warehouse id or code (FACILITY only)')
@with_appcontext
def create_facility_cmd(code, name, facility_type, warehouse_ref):
    """Create a warehouse or facility."""
    try:
        facility = facility_service.create_facility(
            code=code,
            name=name,
            facility_type=facility_type,
            warehouse_id=warehouse_ref,
        )
        db.session.commit()
    except LmisError as e:
        db.session.rollback()
        raise click.ClickException(e.message)

    click.echo(f"PASS Created {facility.type} {facility.code} (ID: {facility.id})")


@facilities_group.command('backfill-warehouse')
@click.argument('warehouse_code')
@with_appcontext
def backfill_warehouse(warehouse_code):
    """Link every FACILITY without a warehouse to WAREHOUSE_CODE."""
    try:
        count = facility_service.backfill_unlinked(warehouse_code)
        db.session.commit()
    except LmisError as e:
        db.session.rollback()
        raise click.ClickException(e.message)

    click.echo(f"PASS Linked {count} facilities to {warehouse_code}")


@click.group('orders')
def orders_group():
    """Order maintenance commands."""


@orders_group.command('reset')
@click.argument('order_number')
@click.option('--donor', default=None, help='Set the donor name on the order')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_order_cmd(order_number, donor, yes):
    """
    DANGER: Delete every box and box event of one order.

    Box numbering for the order restarts at 1.
    """
    if not yes:
        click.confirm(f"WARN This will DELETE all boxes and events of {order_number}. Are you sure?", abort=True)

    try:
        result = order_service.reset_order(order_number, donor)
        db.session.commit()
    except LmisError as e:
        db.session.rollback()
        raise click.ClickException(e.message)

    click.echo(
        f"DELETE  {result['orderNumber']}: {result['deletedEvents']} events, "
        f"{result['deletedBoxes']} boxes removed"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(facilities_group)
    app.cli.add_command(orders_group)
