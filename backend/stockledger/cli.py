# Overview: Flask CLI command groups for bootstrap, inspection, and ledger maintenance.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Ledger bootstrap/repair:
# - python -m flask ledger init-db
#   Create all tables (idempotent).
# - python -m flask ledger reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask ledger seed
#   Create one user per role and a small demo catalog with purchases and sales.
# - python -m flask ledger verify
#   Replay every product's stock from its ledger rows; exits 1 on any mismatch.
#
# User inspection/bootstrap:
# - python -m flask users list [--role admin]
#   List all users with roles and active status.
# - python -m flask users create --username admin --email admin@stockledger.local --role admin
#   Create a user (prompts if options are omitted).

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import Product, User
from .models.auth import ROLE_ADMIN, ROLE_SALES, ROLE_STOCK, VALID_ROLES
from .services import products_service, purchase_service, sales_service, users_service


@click.group('ledger')
def ledger_group():
    """Schema bootstrap and stock ledger maintenance."""


@ledger_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@ledger_group.command('reset-db')
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

    click.echo("PASS Database reset complete. Run 'python -m flask ledger seed' to add demo data.")


DEFAULT_USERS = [
    ("admin", "Store Admin", "admin@stockledger.local", ROLE_ADMIN),
    ("sales", "Sales Clerk", "sales@stockledger.local", ROLE_SALES),
    ("stock", "Stock Keeper", "stock@stockledger.local", ROLE_STOCK),
]

DEMO_PRODUCTS = [
    # sku, name, category, cost, price, supplier, purchased, sold
    ("RICE-25", "Rice 25kg", "Grains", 42000, 55000, "Mbeya Millers", 40, 12),
    ("SUGAR-1", "Sugar 1kg", "Groceries", 2600, 3200, "Kilombero Sugar", 120, 95),
    ("OIL-5L", "Cooking Oil 5L", "Groceries", 21000, 26000, "Murzah Wilmar", 20, 17),
    ("SOAP-BAR", "Bar Soap", "Household", 900, 1300, "Kibo Traders", 60, 8),
]


@ledger_group.command('seed')
@with_appcontext
def seed():
    """
    Seed one user per role and a demo catalog.

    Stock is built through purchases and sales, never written directly, so
    'ledger verify' passes on the result. Existing users/SKUs are skipped.
    """
    db.create_all()

    click.echo("\nUSERS Creating default users...")
    for username, full_name, email, role in DEFAULT_USERS:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        db.session.add(User(username=username, full_name=full_name, email=email, role=role, is_active=True))
        db.session.commit()
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")

    admin = db.session.query(User).filter_by(role=ROLE_ADMIN).order_by(User.id.asc()).first()
    stock_user = db.session.query(User).filter_by(role=ROLE_STOCK).order_by(User.id.asc()).first() or admin
    sales_user = db.session.query(User).filter_by(role=ROLE_SALES).order_by(User.id.asc()).first() or admin

    click.echo("\nLIST Creating demo catalog...")
    for sku, name, category, cost, price, supplier, purchased, sold in DEMO_PRODUCTS:
        if db.session.query(Product).filter_by(sku=sku).first():
            click.echo(f"WARN  Product '{sku}' already exists, skipping...")
            continue
        try:
            product = products_service.create_product(
                patch={
                    "sku": sku,
                    "name": name,
                    "category": category,
                    "cost_price_cents": cost,
                    "selling_price_cents": price,
                },
                actor_user_id=admin.id,
            )
            purchase_service.create_purchase(
                product_id=product.id,
                quantity=purchased,
                unit_cost_cents=cost,
                supplier=supplier,
                actor_user_id=stock_user.id,
            )
            sales_service.create_sale(
                product_id=product.id,
                quantity=sold,
                unit_price_cents=price,
                payment_method="cash",
                payment_status="paid",
                actor_user_id=sales_user.id,
            )
            click.echo(f"PASS {sku}: purchased {purchased}, sold {sold}, on hand {purchased - sold}")
        except LedgerError as e:
            click.echo(f"FAIL Failed to seed '{sku}': {e}")

    click.echo("\nDONE Seed complete.")


@ledger_group.command('verify')
@with_appcontext
def verify():
    """Check stock == purchased - sold + adjustments for every product."""
    mismatches = products_service.verify_stock_invariant()
    if not mismatches:
        count = db.session.query(Product).count()
        click.echo(f"PASS All {count} product(s) balance against the ledger.")
        return

    click.echo("="*80)
    click.echo(f"{'ID':<6} {'SKU':<20} {'Stored':>10} {'Replayed':>10}")
    click.echo("="*80)
    for m in mismatches:
        click.echo(f"{m['product_id']:<6} {m['sku']:<20} {m['stock_quantity']:>10} {m['replayed_quantity']:>10}")
    click.echo("="*80)
    raise click.ClickException(f"{len(mismatches)} product(s) out of balance")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--full-name', default=None, help='Display name')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, full_name, role):
    """
    Create a staff identity.

    Credentials live with the upstream identity provider; this only records
    who the actor is for attribution and notification targeting.
    """
    try:
        user = users_service.create_user(
            patch={"username": username, "email": email, "full_name": full_name, "role": role}
        )
    except LedgerError as exc:
        raise click.ClickException(str(exc))

    click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
    click.echo(f"     User ID: {user.id}")


@users_group.command('list')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), help='Filter by role')
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

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<35} {'Active':<8} {'Role'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<35} {active_str:<8} {user.role}")

    click.echo("="*90 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
    app.cli.add_command(users_group)
