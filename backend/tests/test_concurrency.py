"""
Concurrent writers against a file-backed SQLite database.

Each worker thread pushes its own app context (and so gets its own session);
BEGIN IMMEDIATE must serialize them so stock never goes negative.
"""

import threading
from decimal import Decimal

import pytest

from retail_ledger import create_app
from retail_ledger.errors import InsufficientStock
from retail_ledger.extensions import db
from retail_ledger.models import MovementType, Product
from retail_ledger.services import sales_service
from retail_ledger.services.concurrency import run_in_transaction
from retail_ledger.services.sequence_service import next_order_number
from retail_ledger.services.stock_service import adjust_stock, verify_ledger


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()


def _seed_product(app, stock) -> int:
    with app.app_context():
        product = Product(
            sku="CONCUR-1",
            name="Concurrent Product",
            price=Decimal("10.00"),
            cost_price=Decimal("4.00"),
            stock=0,
        )
        db.session.add(product)
        db.session.commit()
        product_id = product.id

        def _op():
            adjust_stock(product_id, stock, MovementType.ADJUSTMENT, reason="Opening stock")
        run_in_transaction(_op)
        return product_id


def _run_workers(app, target, count):
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(count)

    def worker():
        with app.app_context():
            try:
                barrier.wait()
                value = target()
                with lock:
                    results.append(value)
            except Exception as exc:
                with lock:
                    results.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def test_two_sales_of_the_last_units_serialize(file_app):
    product_id = _seed_product(file_app, 5)

    def sell():
        sale = sales_service.create_sale(items=[
            {"product_id": product_id, "quantity": 5, "unit_price": "10.00"},
        ])
        return sale.order_number

    results = _run_workers(file_app, sell, 2)

    sold = [r for r in results if isinstance(r, str)]
    refused = [r for r in results if isinstance(r, InsufficientStock)]
    assert len(sold) == 1
    assert len(refused) == 1
    assert refused[0].details["available"] == 0.0

    with file_app.app_context():
        product = db.session.get(Product, product_id)
        assert Decimal(product.stock) == 0
        assert verify_ledger()["ok"] is True


def test_order_numbers_stay_unique_under_contention(file_app):
    results = _run_workers(file_app, lambda: run_in_transaction(lambda: next_order_number("sale")), 8)

    assert not [r for r in results if isinstance(r, Exception)]
    assert len(set(results)) == 8
