"""Partial returns and full reversals."""

from decimal import Decimal

import pytest

from retail_ledger.errors import InvalidReturn, InvalidState, ValidationError
from retail_ledger.extensions import db
from retail_ledger.models import (
    Customer,
    MovementType,
    ProfitRecord,
    Sale,
    SaleAdjustment,
    SaleItem,
)
from retail_ledger.services import return_service, sales_service
from retail_ledger.services.stock_service import verify_ledger

from conftest import stock_of, movements_for


def _sell(product, quantity, unit_price="10.00", **kwargs):
    return sales_service.create_sale(
        items=[{"product_id": product.id, "quantity": quantity, "unit_price": unit_price}],
        **kwargs,
    )


def _item(sale_id):
    return db.session.query(SaleItem).filter_by(sale_id=sale_id).first()


class TestReturnItems:
    def test_restocked_return(self, make_product):
        product = make_product(stock=10)
        sale = _sell(product, 5)

        result = return_service.return_items(
            sale.id,
            items=[{"product_id": product.id, "quantity": 2, "reason": "wrong size"}],
            refund_amount="20.00",
            restock_items=True,
        )

        item = _item(sale.id)
        assert Decimal(item.quantity) == 3
        assert Decimal(item.original_quantity) == 5
        assert Decimal(item.quantity_returned) == 2
        assert Decimal(item.quantity_restocked) == 2
        assert stock_of(product) == 7

        adjustments = db.session.query(SaleAdjustment).filter_by(sale_id=sale.id).all()
        assert len(adjustments) == 1
        assert adjustments[0].type == "return"

        entry = movements_for(product)[-1]
        assert entry.movement_type == MovementType.RETURN
        assert Decimal(entry.quantity) == 2
        assert entry.reference == f"ADJ-{result['adjustment_id']}"

        assert result["sale_total"] == 30.0
        assert result["items_returned"][0]["new_stock"] == 7.0

    def test_return_without_restock_leaves_stock(self, make_product):
        product = make_product(stock=10)
        sale = _sell(product, 5)

        return_service.return_items(sale.id, items=[{"product_id": product.id, "quantity": 1}])

        assert stock_of(product) == 5
        assert Decimal(_item(sale.id).quantity_restocked) == 0
        assert len(movements_for(product)) == 2

    def test_return_bound(self, make_product):
        product = make_product(stock=10)
        sale = _sell(product, 5)
        return_service.return_items(sale.id, items=[{"product_id": product.id, "quantity": 4}])

        with pytest.raises(InvalidReturn) as exc:
            return_service.return_items(sale.id, items=[{"product_id": product.id, "quantity": 2}])

        assert exc.value.details["returnable"] == 1.0
        assert Decimal(_item(sale.id).quantity) == 1

    def test_product_not_on_sale(self, make_product):
        sold = make_product(stock=10)
        other = make_product(stock=10)
        sale = _sell(sold, 1)
        with pytest.raises(InvalidReturn):
            return_service.return_items(sale.id, items=[{"product_id": other.id, "quantity": 1}])

    def test_refund_cannot_exceed_total(self, make_product):
        product = make_product(stock=10)
        sale = _sell(product, 1, "10.00")
        with pytest.raises(InvalidReturn):
            return_service.return_items(
                sale.id,
                items=[{"product_id": product.id, "quantity": 1}],
                refund_amount="10.01",
            )

    def test_only_completed_sales(self, make_product):
        product = make_product(stock=10)
        sale = _sell(product, 2)
        sales_service.update_order_status(sale.id, "pending")
        with pytest.raises(InvalidState):
            return_service.return_items(sale.id, items=[{"product_id": product.id, "quantity": 1}])

    def test_fully_returned_line_drops_from_held_items(self, make_product):
        product = make_product(stock=10)
        sale = _sell(product, 2)
        return_service.return_items(sale.id, items=[{"product_id": product.id, "quantity": 2}])

        data = sales_service.get_sale(sale.id)
        assert data["items"] == []
        assert len(data["adjustments"]) == 1

    def test_profit_follows_held_quantity(self, make_product):
        product = make_product(stock=10, cost="4.00")
        sale = _sell(product, 5, "10.00")
        return_service.return_items(sale.id, items=[{"product_id": product.id, "quantity": 2}])

        profit = db.session.query(ProfitRecord).filter_by(reference_id=sale.id).one()
        assert Decimal(profit.revenue) == Decimal("30.00")
        assert Decimal(profit.cogs) == Decimal("12.00")

    def test_credit_refund_reduces_balance(self, make_product, make_customer):
        product = make_product(stock=10)
        customer = make_customer()
        sale = _sell(product, 5, customer_id=customer.id, payment_method="credit")

        return_service.return_items(
            sale.id,
            items=[{"product_id": product.id, "quantity": 1}],
            refund_amount="10.00",
        )

        customer = db.session.get(Customer, customer.id)
        db.session.refresh(customer)
        assert Decimal(customer.current_balance) == Decimal("40.00")


class TestRevertOrder:
    def test_reversal_restores_stock(self, make_product):
        a = make_product(stock=10)
        b = make_product(stock=4)
        sale = sales_service.create_sale(items=[
            {"product_id": a.id, "quantity": 3, "unit_price": 5},
            {"product_id": b.id, "quantity": 4, "unit_price": 5},
        ])
        assert stock_of(b) == 0

        result = return_service.revert_order(sale.id, reason="customer cancelled")

        assert stock_of(a) == 10
        assert stock_of(b) == 4
        assert result["new_status"] == "cancelled"
        assert result["original_status"] == "completed"
        assert result["refund_amount"] == 0.0

        sale = db.session.get(Sale, sale.id)
        db.session.refresh(sale)
        assert sale.status == "cancelled"
        assert sale.cancel_reason == "customer cancelled"

        adjustments = db.session.query(SaleAdjustment).filter_by(sale_id=sale.id).all()
        assert [adj.type for adj in adjustments] == ["full_reversal"]
        assert verify_ledger()["ok"] is True

    def test_reversal_after_restocked_return_does_not_double_credit(self, make_product):
        product = make_product(stock=10)
        sale = _sell(product, 5)
        return_service.return_items(
            sale.id,
            items=[{"product_id": product.id, "quantity": 2}],
            restock_items=True,
        )
        assert stock_of(product) == 7

        return_service.revert_order(sale.id, reason="rest of order cancelled")

        assert stock_of(product) == 10
        item = _item(sale.id)
        assert Decimal(item.quantity_restocked) == 5

    def test_reversal_after_written_off_return(self, make_product):
        product = make_product(stock=10)
        sale = _sell(product, 5)
        return_service.return_items(sale.id, items=[{"product_id": product.id, "quantity": 2}])

        return_service.revert_order(sale.id, reason="cancel")

        # The 2 units returned without restock stay out of stock
        assert stock_of(product) == 8

    def test_reversal_without_restore(self, make_product):
        product = make_product(stock=10)
        sale = _sell(product, 5)

        result = return_service.revert_order(sale.id, reason="lost", restore_inventory=False)

        assert stock_of(product) == 5
        assert result["inventory_restored"] == []

    def test_reversal_with_refund_unwinds_credit(self, make_product, make_customer):
        product = make_product(stock=10)
        customer = make_customer()
        sale = _sell(product, 3, customer_id=customer.id, payment_method="credit")

        result = return_service.revert_order(sale.id, reason="refund", process_refund=True)

        assert result["refund_amount"] == 30.0
        customer = db.session.get(Customer, customer.id)
        db.session.refresh(customer)
        assert Decimal(customer.current_balance) == 0
        assert Decimal(customer.total_purchases) == 0

    def test_reversal_is_terminal(self, make_product):
        product = make_product(stock=10)
        sale = _sell(product, 1)
        return_service.revert_order(sale.id, reason="first")

        with pytest.raises(InvalidState):
            return_service.revert_order(sale.id, reason="second")
        assert stock_of(product) == 10

    def test_reason_required(self, make_product):
        product = make_product(stock=10)
        sale = _sell(product, 1)
        with pytest.raises(ValidationError):
            return_service.revert_order(sale.id, reason="  ")

    def test_returns_rejected_after_reversal(self, make_product):
        product = make_product(stock=10)
        sale = _sell(product, 2)
        return_service.revert_order(sale.id, reason="cancel")
        with pytest.raises(InvalidState):
            return_service.return_items(sale.id, items=[{"product_id": product.id, "quantity": 1}])
