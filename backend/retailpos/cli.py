# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/retailpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to retailpos (PowerShell: $env:FLASK_APP="retailpos").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables and the default admin, manager and cashier users (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Add a demo supplier, customer and two priced products with stock.
#
# User inspection/bootstrap:
# - python -m flask users list
# - python -m flask users create --username jane --name "Jane" --role cashier
#
# Maintenance:
# - python -m flask loyalty reconcile [--customer-id 3]
#   Rebuild cached loyalty balances from the ledger and report drift.
# - python -m flask stock low
#   Print products at or below their reorder point with suggested order quantities.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Product, ROLES
from .errors import POSError
from .services import catalog_service, customer_service, supplier_service, loyalty_service, reporting_service


DEFAULT_USERS = [
    ("admin", "Administrator", "admin"),
    ("manager", "Store Manager", "manager"),
    ("cashier", "Front Counter", "cashier"),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create tables and default users. Safe to re-run."""
    click.echo("START Initializing database...")
    db.create_all()

    for username, name, role in DEFAULT_USERS:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        user = User(username=username, name=name, role=role, is_active=True)
        db.session.add(user)
        db.session.commit()
        click.echo(f"PASS Created user: {username} (ID: {user.id}) with role '{role}'")

    click.echo("DONE Database initialized. Send X-User-Id with API requests.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init-db' to add default users.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Add a demo supplier, customer and products (skips SKUs that exist)."""
    supplier = supplier_service.create_supplier(patch={
        "name": "Demo Wholesale Ltd",
        "email": "orders@demo-wholesale.local",
        "phone": "+254700000001",
    })
    click.echo(f"PASS Created supplier: {supplier.name} (ID: {supplier.id})")

    customer = customer_service.create_customer(patch={"name": "Walk-in Regular", "phone": "+254700000002"})
    click.echo(f"PASS Created customer: {customer.name} (ID: {customer.id})")

    demo_products = [
        {
            "patch": {"sku": "SODA-330", "name": "Soda 330ml", "category": "Beverages"},
            "tiers": [
                {"unit_type": "single", "quantity": 1, "buying_price_cents": 4000,
                 "selling_price_cents": 6000, "is_default": True},
                {"unit_type": "dozen", "quantity": 12, "buying_price_cents": 45000,
                 "selling_price_cents": 66000, "is_default": False},
            ],
            "opening_quantity": 120,
            "reorder_point": 24,
            "max_stock": 240,
        },
        {
            "patch": {"sku": "BREAD-400", "name": "Bread 400g", "category": "Bakery"},
            "tiers": [
                {"unit_type": "single", "quantity": 1, "buying_price_cents": 5000,
                 "selling_price_cents": 6500, "is_default": True},
            ],
            "opening_quantity": 30,
            "min_stock": 10,
            "reorder_point": 15,
        },
    ]

    for demo in demo_products:
        sku = demo["patch"]["sku"]
        if db.session.query(Product).filter_by(sku=sku).first():
            click.echo(f"WARN  Product '{sku}' already exists, skipping...")
            continue
        product = catalog_service.create_product(
            patch=demo["patch"],
            tiers=demo["tiers"],
            opening_quantity=demo["opening_quantity"],
            min_stock=demo.get("min_stock"),
            max_stock=demo.get("max_stock"),
            reorder_point=demo.get("reorder_point"),
        )
        click.echo(f"PASS Created product: {product.sku} (ID: {product.id}, on hand: {demo['opening_quantity']})")


@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<25} {'Role':<10} {'Active'}")
    click.echo("="*70)
    for user in users:
        click.echo(f"{user.id:<5} {user.username:<20} {(user.name or ''):<25} {user.role:<10} {user.is_active}")


@users_group.command('create')
@click.option('--username', prompt=True, help='Login name')
@click.option('--name', default=None, help='Display name')
@click.option('--role', type=click.Choice(ROLES), default='cashier', show_default=True)
@with_appcontext
def create_user(username, name, role):
    """Create a staff user."""
    if db.session.query(User).filter_by(username=username).first():
        raise click.ClickException(f"User '{username}' already exists")
    user = User(username=username, name=name, role=role, is_active=True)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user: {username} (ID: {user.id}) with role '{role}'")


@click.group('loyalty')
def loyalty_group():
    """Loyalty ledger maintenance."""


@loyalty_group.command('reconcile')
@click.option('--customer-id', type=int, default=None, help='Only this customer')
@with_appcontext
def reconcile_loyalty(customer_id):
    """Rebuild cached balances from the ledger and report drift."""
    try:
        if customer_id is not None:
            reports = [loyalty_service.reconcile(customer_id)]
        else:
            reports = loyalty_service.reconcile_all()
    except POSError as e:
        raise click.ClickException(e.message)

    drifted = [r for r in reports if r["drift"]]
    for report in drifted:
        click.echo(
            f"FIXED customer {report['customer_id']}: cached={report['cached_balance']} "
            f"ledger={report['ledger_balance']} drift={report['drift']:+d}"
        )
    click.echo(f"DONE Checked {len(reports)} account(s), corrected {len(drifted)}.")


@click.group('stock')
def stock_group():
    """Stock inspection."""


@stock_group.command('low')
@with_appcontext
def low_stock():
    """Print products at or below reorder point / min stock."""
    report = reporting_service.low_stock_report()
    if not report["low_stock"]:
        click.echo("No products below their reorder point.")
    else:
        click.echo(f"{'SKU':<15} {'Name':<30} {'On hand':>8} {'Reorder':>8} {'Suggest':>8}")
        for row in report["low_stock"]:
            click.echo(
                f"{row['sku']:<15} {row['name'][:30]:<30} {row['quantity']:>8} "
                f"{str(row['reorder_point'] or '-'):>8} {row['suggested_order_quantity']:>8}"
            )
    for row in report["over_max"]:
        click.echo(f"WARN  {row['sku']} is {row['excess_quantity']} over max stock")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(loyalty_group)
    app.cli.add_command(stock_group)
