# Overview: Flask CLI command groups for bootstrap, catalog seeding, and ledger inspection.

# backend/retail_ledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Schema:
# - python -m flask db upgrade
#   Apply migrations (preferred for persistent databases).
# - python -m flask system init-db
#   Create any missing tables directly from the models.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog bootstrap:
# - python -m flask catalog add-product --sku "SKU-1" --name "Widget" --price 10 --cost 6 --stock 25
#   Create a product; opening stock is posted to the ledger as an adjustment.
# - python -m flask catalog add-supplier --name "Acme Supply" --phone "555-0100"
# - python -m flask catalog add-customer --name "Jane Doe" --credit-limit 500
#
# Ledger inspection:
# - python -m flask ledger verify [--product-id 1]
#   Replay ledger entries and compare against cached product stock.
# - python -m flask ledger history --product-id 1 [--limit 20]
#   Show the most recent ledger entries for a product.

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import IntegrityError

from .errors import LedgerError, DuplicateKey
from .extensions import db
from .models import Product, Supplier, Customer, MovementType
from .services import stock_service
from .services.concurrency import run_in_transaction
from .validation import money, quantity as parse_quantity


@click.group('system')
def system_group():
    """Schema bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the stock ledger.
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()
    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset complete")


@click.group('catalog')
def catalog_group():
    """Seed products, suppliers, and customers for local use."""


@catalog_group.command('add-product')
@click.option('--sku', required=True, help='Unique SKU')
@click.option('--name', required=True, help='Product name')
@click.option('--price', default='0', help='Selling price')
@click.option('--cost', default='0', help='Cost price')
@click.option('--stock', default='0', help='Opening stock (posted as an adjustment)')
@with_appcontext
def add_product(sku, name, price, cost, stock):
    """Create a product and post its opening stock to the ledger."""
    try:
        price = money(price, "price")
        cost = money(cost, "cost")
        opening = parse_quantity(stock, "stock", allow_zero=True)
    except LedgerError as e:
        raise click.ClickException(str(e))

    def _op():
        product = Product(sku=sku, name=name, price=price, cost_price=cost, stock=0)
        db.session.add(product)
        db.session.flush()
        if opening > 0:
            stock_service.adjust_stock(
                product.id,
                opening,
                MovementType.ADJUSTMENT,
                reason="Opening stock",
            )
        return product

    try:
        product = run_in_transaction(_op)
    except DuplicateKey:
        raise click.ClickException(f"SKU '{sku}' already exists")

    click.echo(f"PASS Created product {product.sku} (ID: {product.id}, stock: {product.stock})")


@catalog_group.command('add-supplier')
@click.option('--name', required=True, help='Supplier name')
@click.option('--contact', 'contact_person', default=None, help='Contact person')
@click.option('--phone', default=None, help='Phone (unique)')
@click.option('--email', default=None, help='Email (unique)')
@with_appcontext
def add_supplier(name, contact_person, phone, email):
    """Create a supplier."""
    supplier = Supplier(name=name, contact_person=contact_person, phone=phone, email=email)
    db.session.add(supplier)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException("A supplier with that phone or email already exists")

    click.echo(f"PASS Created supplier {supplier.name} (ID: {supplier.id})")


@catalog_group.command('add-customer')
@click.option('--name', required=True, help='Customer name')
@click.option('--phone', default=None, help='Phone (unique)')
@click.option('--email', default=None, help='Email (unique)')
@click.option('--credit-limit', default=None, help='Credit limit (omit for no limit)')
@with_appcontext
def add_customer(name, phone, email, credit_limit):
    """Create a customer."""
    try:
        limit = money(credit_limit, "credit_limit") if credit_limit is not None else None
    except LedgerError as e:
        raise click.ClickException(str(e))

    customer = Customer(name=name, phone=phone, email=email, credit_limit=limit)
    db.session.add(customer)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException("A customer with that phone or email already exists")

    click.echo(f"PASS Created customer {customer.name} (ID: {customer.id})")


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection."""


@ledger_group.command('verify')
@click.option('--product-id', type=int, default=None, help='Limit to one product')
@with_appcontext
def verify_ledger(product_id):
    """Replay ledger entries and report drift from cached stock."""
    report = stock_service.verify_ledger(product_id)

    if report["ok"]:
        click.echo(f"PASS Ledger consistent for {report['products_checked']} product(s)")
        return

    click.echo(f"FAIL {len(report['issues'])} issue(s) across {report['products_checked']} product(s)")
    for issue in report["issues"]:
        click.echo(f"  - {issue}")
    raise SystemExit(1)


@ledger_group.command('history')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--limit', type=int, default=20, help='Number of entries')
@with_appcontext
def ledger_history(product_id, limit):
    """Show the most recent ledger entries for a product."""
    result = stock_service.list_movements(product_id=product_id, sort="desc", per_page=limit)
    movements = result["movements"]

    if not movements:
        click.echo("No ledger entries found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<7} {'Type':<22} {'Qty':>10} {'Before':>10} {'After':>10}  {'Reference':<18} {'At'}")
    click.echo("="*100)
    for m in movements:
        click.echo(
            f"{m['id']:<7} {m['movement_type']:<22} {m['quantity']:>10} "
            f"{m['balance_before']:>10} {m['balance_after']:>10}  {m['reference'] or '-':<18} {m['created_at']}"
        )
    click.echo("="*100 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(ledger_group)
