# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/inventory_api/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Schema:
# - python -m flask db upgrade
#   Apply migrations (creates products, users, inventory_audit, notifications).
#
# System bootstrap:
# - python -m flask system seed [--password "Inventory2026"]
#   Idempotent: default manager + staff accounts and a handful of sample products.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--role manager]
#   List all users with roles.
# - python -m flask users create --username admin --email admin@example.com --password "Inventory2026" --role manager
#   Create a user (prompts if options are omitted).
#
# Stock:
# - python -m flask stock check-low
#   Scan every product and create deduplicated low-stock notifications.
#
# Maintenance:
# - python -m flask maintenance purge-audits --days 365
#   Delete audit records older than the retention window (minimum 30 days).
# - python -m flask maintenance purge-notifications --days 30
#   Delete read notifications older than the window (minimum 7 days).
# - python -m flask maintenance cleanup-files
#   Remove expired exports and stale uploads.

from decimal import Decimal

import click
from flask.cli import with_appcontext

from .errors import AppError
from .extensions import db
from .models import Product, User
from .services import maintenance_service, notification_service
from .services.auth_service import PasswordValidationError, create_user
from .services.product_service import create_product


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


SEED_USERS = (
    ("manager", "manager@inventory.local", "manager"),
    ("staff", "staff@inventory.local", "staff"),
)

def _create_account(username, email, password, role):
    """Operator-side account creation; promotes to role after the staff account exists."""
    user = create_user(username, email, password, role="staff")
    if role != "staff":
        user.role = role
        db.session.commit()
    return user


SEED_PRODUCTS = (
    {"sku": "LAPTOP-001", "name": "Dell Laptop XPS 13", "category": "Electronics",
     "price": Decimal("1299.99"), "quantity": 25, "reorder_level": 5, "location": "Warehouse A"},
    {"sku": "MOUSE-002", "name": "Wireless Mouse", "category": "Electronics",
     "price": Decimal("24.99"), "quantity": 8, "reorder_level": 10, "location": "Warehouse A"},
    {"sku": "BOOK-003", "name": "Python Programming Guide", "category": "Books",
     "price": Decimal("39.99"), "quantity": 100, "reorder_level": 10, "location": "Warehouse B"},
    {"sku": "DESK-004", "name": "Standing Desk", "category": "Furniture",
     "price": Decimal("449.00"), "quantity": 0, "reorder_level": 2, "location": "Warehouse C"},
)


@system_group.command('seed')
@click.option('--password', default='Inventory2026', help='Password for the seeded accounts')
@with_appcontext
def seed_system(password):
    """
    Create default accounts and sample products.

    Existing usernames and SKUs are skipped, so the command is safe to re-run.
    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Seeding inventory system...")

    manager = None
    for username, email, role in SEED_USERS:
        user = db.session.query(User).filter_by(username=username).first()
        if user:
            click.echo(f"SKIP User {username} already exists")
        else:
            try:
                user = _create_account(username, email, password, role)
            except PasswordValidationError as e:
                click.echo(f"FAIL Password validation failed: {e.message}")
                return
            click.echo(f"PASS Created {role}: {username} / {email}")
        if role == "manager":
            manager = user

    for data in SEED_PRODUCTS:
        if db.session.query(Product).filter_by(sku=data["sku"]).first():
            click.echo(f"SKIP Product {data['sku']} already exists")
            continue
        create_product(patch=dict(data), user_id=manager.id)
        click.echo(f"PASS Created product {data['sku']} (qty {data['quantity']})")

    click.echo("PASS Seed complete.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed' to add sample data.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['staff', 'manager']), default='staff', show_default=True, help='Role')
@with_appcontext
def create_user_cli(username, email, password, role):
    """
    Create a new user.

    Operators may create managers directly; the API only lets managers do so.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one letter and one digit
    - Not a common password
    """
    try:
        user = _create_account(username, email, password, role)
        click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")
        click.echo("SECURITY Password securely hashed with bcrypt")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e.message}")
        click.echo("Requirements: 8+ chars, at least one letter and one digit, not a common password")
    except AppError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")


@users_group.command('list')
@click.option('--role', type=click.Choice(['staff', 'manager']), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their roles."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<35} {'Role'}")
    click.echo("=" * 80)
    for user in users:
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<35} {user.role}")
    click.echo("=" * 80 + "\n")


@click.group('stock')
def stock_group():
    """Stock level commands."""


@stock_group.command('check-low')
@with_appcontext
def check_low_stock():
    """Create low-stock notifications for products that do not already have an unread one."""
    created = notification_service.check_all_low_stock()
    click.echo(f"PASS Low stock check complete: {created} notification(s) created")


@click.group('maintenance')
def maintenance_group():
    """Retention cleanup commands."""


@maintenance_group.command('purge-audits')
@click.option('--days', type=int, default=None, help='Retention window in days (default AUDIT_RETENTION_DAYS)')
@with_appcontext
def purge_audits(days):
    """Delete audit records older than the retention window."""
    try:
        deleted = maintenance_service.purge_audit_records(days_old=days)
    except AppError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Deleted {deleted} audit record(s)")


@maintenance_group.command('purge-notifications')
@click.option('--days', type=int, default=30, show_default=True, help='Delete read notifications older than this')
@with_appcontext
def purge_notifications(days):
    """Delete read notifications older than the window."""
    try:
        deleted = maintenance_service.purge_read_notifications(days_old=days)
    except AppError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Deleted {deleted} notification(s)")


@maintenance_group.command('cleanup-files')
@click.option('--type', 'target', type=click.Choice(['all', 'exports', 'temp']), default='all', show_default=True)
@with_appcontext
def cleanup_files(target):
    """Remove expired exports and stale uploads."""
    result = maintenance_service.cleanup_files(target=target)
    click.echo(f"PASS Removed {result['deleted_files']} file(s), freed {result['freed_bytes']} bytes")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(maintenance_group)
