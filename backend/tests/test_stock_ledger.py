"""
Stock mutator and ledger invariants.

Every stock change must leave exactly one ledger row behind, the chain of
balance_before/balance_after must replay cleanly, and stock never goes
negative.
"""

from decimal import Decimal

import pytest
from sqlalchemy import text

from retail_ledger.errors import InsufficientStock, NotFound, ValidationError
from retail_ledger.extensions import db
from retail_ledger.models import InventoryMovement, MovementType, LedgerImmutableError
from retail_ledger.services import stock_service
from retail_ledger.services.concurrency import run_in_transaction

from conftest import stock_of, movements_for


def test_opening_stock_writes_one_ledger_row(make_product):
    product = make_product(stock=10)

    rows = movements_for(product)
    assert len(rows) == 1
    assert rows[0].movement_type == MovementType.ADJUSTMENT
    assert Decimal(rows[0].balance_before) == 0
    assert Decimal(rows[0].balance_after) == 10
    assert stock_of(product) == 10


def test_adjust_stock_chains_balances(make_product):
    product = make_product(stock=5)

    run_in_transaction(lambda: stock_service.adjust_stock(product.id, 3, MovementType.RESTOCK))
    run_in_transaction(lambda: stock_service.adjust_stock(product.id, -2, MovementType.DAMAGE))

    rows = movements_for(product)
    assert [Decimal(r.quantity) for r in rows] == [5, 3, -2]
    for prev, cur in zip(rows, rows[1:]):
        assert Decimal(cur.balance_before) == Decimal(prev.balance_after)
    assert Decimal(rows[-1].balance_after) == stock_of(product) == 6


def test_decrease_below_zero_is_rejected_without_writes(make_product):
    product = make_product(stock=2)

    with pytest.raises(InsufficientStock) as exc:
        run_in_transaction(lambda: stock_service.adjust_stock(product.id, -3, MovementType.SALE))

    assert exc.value.details["available"] == 2.0
    assert exc.value.details["requested"] == 3.0
    assert stock_of(product) == 2
    assert len(movements_for(product)) == 1


def test_zero_delta_is_rejected(make_product):
    product = make_product(stock=1)
    with pytest.raises(ValidationError):
        run_in_transaction(lambda: stock_service.adjust_stock(product.id, 0, MovementType.ADJUSTMENT))


def test_unknown_and_inactive_products(make_product):
    inactive = make_product(stock=0, status="inactive")

    with pytest.raises(NotFound):
        run_in_transaction(lambda: stock_service.adjust_stock(999999, 1, MovementType.RESTOCK))
    with pytest.raises(NotFound):
        run_in_transaction(lambda: stock_service.adjust_stock(inactive.id, 1, MovementType.RESTOCK))

    # Receipts and returns may still land on inactive products
    run_in_transaction(
        lambda: stock_service.adjust_stock(inactive.id, 1, MovementType.RETURN, require_active=False)
    )
    assert stock_of(inactive) == 1


def test_failed_unit_rolls_back_earlier_writes(make_product):
    a = make_product(stock=5)
    b = make_product(stock=1)

    def _op():
        stock_service.adjust_stock(a.id, -2, MovementType.SALE)
        stock_service.adjust_stock(b.id, -5, MovementType.SALE)

    with pytest.raises(InsufficientStock):
        run_in_transaction(_op)

    assert stock_of(a) == 5
    assert len(movements_for(a)) == 1


def test_ledger_rows_are_append_only(make_product):
    product = make_product(stock=4)
    row = movements_for(product)[0]

    row.reason = "rewritten"
    with pytest.raises(LedgerImmutableError):
        db.session.flush()
    db.session.rollback()

    db.session.delete(movements_for(product)[0])
    with pytest.raises(LedgerImmutableError):
        db.session.flush()
    db.session.rollback()

    assert movements_for(product)[0].reason == "Opening stock"


class TestAdjustInventory:
    def test_restock_must_be_positive(self, make_product):
        product = make_product(stock=1)
        with pytest.raises(ValidationError):
            stock_service.adjust_inventory(product.id, -1, "restock")

    def test_damage_must_be_negative(self, make_product):
        product = make_product(stock=1)
        with pytest.raises(ValidationError):
            stock_service.adjust_inventory(product.id, 1, "damage")

    def test_sale_type_is_not_manual(self, make_product):
        product = make_product(stock=1)
        with pytest.raises(ValidationError):
            stock_service.adjust_inventory(product.id, -1, "sale")

    def test_adjustment_returns_movement(self, make_product):
        product = make_product(stock=3)
        movement = stock_service.adjust_inventory(product.id, -1, "adjustment", reason="Count correction")

        assert movement["movement_type"] == "adjustment"
        assert movement["quantity"] == -1.0
        assert movement["balance_after"] == 2.0
        assert movement["reason"] == "Count correction"
        assert stock_of(product) == 2


class TestVerifyLedger:
    def test_clean_ledger(self, make_product):
        make_product(stock=3)
        make_product(stock=0)

        report = stock_service.verify_ledger()
        assert report["ok"] is True
        assert report["products_checked"] == 2
        assert report["issues"] == []

    def test_detects_stock_written_behind_the_ledger(self, make_product):
        product = make_product(stock=3)
        # Simulate drift written outside the stock mutator
        db.session.execute(
            text("UPDATE products SET stock = 7 WHERE id = :id"), {"id": product.id}
        )
        db.session.commit()

        report = stock_service.verify_ledger(product.id)
        assert report["ok"] is False
        assert report["issues"][0]["problem"] == "stock_mismatch"
        assert report["issues"][0]["replayed"] == 3.0


class TestListMovements:
    def test_filters_and_sort(self, make_product):
        product = make_product(stock=5)
        stock_service.adjust_inventory(product.id, 2, "restock")
        stock_service.adjust_inventory(product.id, -1, "damage")

        result = stock_service.list_movements(product_id=product.id, sort="asc")
        assert [m["movement_type"] for m in result["movements"]] == ["adjustment", "restock", "damage"]
        assert result["pagination"]["total_items"] == 3

        damage = stock_service.list_movements(product_id=product.id, movement_type="damage")
        assert len(damage["movements"]) == 1

    def test_unknown_movement_type(self, db_session):
        with pytest.raises(ValidationError):
            stock_service.list_movements(movement_type="teleport")

    def test_pagination(self, make_product):
        product = make_product(stock=1)
        for _ in range(4):
            stock_service.adjust_inventory(product.id, 1, "restock")

        result = stock_service.list_movements(product_id=product.id, page=2, per_page=2)
        assert result["pagination"]["current_page"] == 2
        assert result["pagination"]["total_pages"] == 3
        assert result["pagination"]["has_next_page"] is True
        assert len(result["movements"]) == 2


def test_ledger_sum_matches_stock(make_product):
    product = make_product(stock=10)
    stock_service.adjust_inventory(product.id, -4, "damage")
    stock_service.adjust_inventory(product.id, 6, "restock")

    total = sum(
        (Decimal(m.quantity) for m in db.session.query(InventoryMovement).filter_by(product_id=product.id)),
        Decimal("0"),
    )
    assert total == stock_of(product) == 12
