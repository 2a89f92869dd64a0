"""
Pytest fixtures for retail ledger backend tests.

Provides an in-memory database, per-test table cleanup, catalog factories,
and the Flask test client.
"""

from decimal import Decimal

import pytest

from retail_ledger import create_app
from retail_ledger.extensions import db
from retail_ledger.models import Product, Supplier, Customer, MovementType
from retail_ledger.services.concurrency import run_in_transaction
from retail_ledger.services.stock_service import adjust_stock


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: product with opening stock posted through the ledger."""
    counter = {"n": 0}

    def _make(name=None, *, stock=0, price="10.00", cost="6.00", status="active"):
        counter["n"] += 1
        product = Product(
            sku=f"SKU-{counter['n']:04d}",
            name=name or f"Product {counter['n']}",
            price=Decimal(price),
            cost_price=Decimal(cost),
            stock=0,
            status=status,
        )
        db_session.add(product)
        db_session.commit()

        if stock:
            def _op():
                adjust_stock(
                    product.id,
                    stock,
                    MovementType.ADJUSTMENT,
                    reason="Opening stock",
                    require_active=False,
                )
            run_in_transaction(_op)
        return product

    return _make


@pytest.fixture(scope='function')
def make_supplier(db_session):
    counter = {"n": 0}

    def _make(name=None, *, status="active"):
        counter["n"] += 1
        supplier = Supplier(name=name or f"Supplier {counter['n']}", status=status)
        db_session.add(supplier)
        db_session.commit()
        return supplier

    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    counter = {"n": 0}

    def _make(name=None, *, credit_limit=None, balance="0"):
        counter["n"] += 1
        customer = Customer(
            name=name or f"Customer {counter['n']}",
            credit_limit=Decimal(credit_limit) if credit_limit is not None else None,
            current_balance=Decimal(balance),
            total_purchases=Decimal("0"),
        )
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make


def stock_of(product) -> Decimal:
    """Re-read a product's cached stock from the database."""
    db.session.expire(product)
    return Decimal(product.stock)


def movements_for(product):
    from retail_ledger.models import InventoryMovement
    return (
        db.session.query(InventoryMovement)
        .filter_by(product_id=product.id)
        .order_by(InventoryMovement.id.asc())
        .all()
    )
