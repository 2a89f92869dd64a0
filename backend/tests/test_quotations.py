from datetime import timedelta
from decimal import Decimal

import pytest

from retail_ledger.errors import InsufficientStock, InvalidState, NotFound, ValidationError
from retail_ledger.extensions import db
from retail_ledger.models import Customer, ProfitRecord, Quotation, Sale
from retail_ledger.services import quotation_service, return_service, stock_service
from retail_ledger.time_utils import today

from conftest import stock_of, movements_for


def _quote(customer, *lines, **kwargs):
    return quotation_service.create_quotation(
        customer_id=customer.id,
        items=[{"product_id": p.id, "quantity": q, "unit_price": price} for p, q, price in lines],
        **kwargs,
    )


def _expire(quotation_id):
    quotation = db.session.get(Quotation, quotation_id)
    quotation.valid_until = today() - timedelta(days=1)
    db.session.commit()


def _customer(customer_id):
    customer = db.session.get(Customer, customer_id)
    db.session.refresh(customer)
    return customer


class TestLifecycle:
    def test_create_has_no_side_effects(self, make_product, make_customer):
        product = make_product(stock=5)
        customer = make_customer()

        quotation = _quote(customer, (product, 2, "20.00"), discount="5.00")

        assert quotation.status == "draft"
        assert quotation.quote_number.startswith("QUO-")
        assert Decimal(quotation.subtotal) == Decimal("40.00")
        assert Decimal(quotation.total) == Decimal("35.00")
        assert quotation.valid_until == today() + timedelta(days=30)
        assert stock_of(product) == 5
        assert Decimal(_customer(customer.id).current_balance) == 0

    def test_valid_until_must_be_future(self, make_product, make_customer):
        product = make_product()
        customer = make_customer()
        with pytest.raises(ValidationError):
            _quote(customer, (product, 1, "1.00"), valid_until=today().isoformat())

    def test_unknown_customer(self, make_product):
        product = make_product()
        with pytest.raises(NotFound):
            quotation_service.create_quotation(
                customer_id=5555, items=[{"product_id": product.id, "quantity": 1, "unit_price": 1}]
            )

    def test_update_recomputes_totals(self, make_product, make_customer):
        a = make_product()
        b = make_product()
        customer = make_customer()
        quotation = _quote(customer, (a, 1, "10.00"))

        updated = quotation_service.update_quotation(
            quotation.id,
            items=[{"product_id": b.id, "quantity": 3, "unit_price": "4.00"}],
            discount="2.00",
        )

        assert Decimal(updated.subtotal) == Decimal("12.00")
        assert Decimal(updated.total) == Decimal("10.00")
        assert [i.product_id for i in updated.items] == [b.id]

    def test_discount_cannot_exceed_subtotal(self, make_product, make_customer):
        product = make_product()
        customer = make_customer()
        quotation = _quote(customer, (product, 1, "10.00"))
        with pytest.raises(ValidationError):
            quotation_service.update_quotation(quotation.id, discount="10.01")

    def test_send_then_decide(self, make_product, make_customer):
        product = make_product()
        customer = make_customer()
        quotation = _quote(customer, (product, 1, "10.00"))

        with pytest.raises(InvalidState):
            quotation_service.update_quotation_status(quotation.id, "accepted")

        quotation_service.send_quotation(quotation.id)
        with pytest.raises(InvalidState):
            quotation_service.update_quotation(quotation.id, notes="edit after send")

        rejected = quotation_service.update_quotation_status(quotation.id, "rejected")
        assert rejected.status == "rejected"

    def test_expired_quotation_cannot_be_decided(self, make_product, make_customer):
        product = make_product()
        customer = make_customer()
        quotation = _quote(customer, (product, 1, "10.00"))
        quotation_service.send_quotation(quotation.id)
        _expire(quotation.id)

        with pytest.raises(InvalidState) as exc:
            quotation_service.update_quotation_status(quotation.id, "accepted")
        assert str(exc.value) == "Quotation has expired"
        assert quotation_service.get_quotation(quotation.id)["is_expired"] is True

    def test_decision_vocabulary(self, make_product, make_customer):
        product = make_product()
        customer = make_customer()
        quotation = _quote(customer, (product, 1, "10.00"))
        with pytest.raises(ValidationError):
            quotation_service.update_quotation_status(quotation.id, "sent")

    def test_delete_only_drafts(self, make_product, make_customer):
        product = make_product()
        customer = make_customer()
        draft_id = _quote(customer, (product, 1, "10.00")).id
        sent = _quote(customer, (product, 1, "10.00"))
        quotation_service.send_quotation(sent.id)

        quotation_service.delete_quotation(draft_id)
        assert db.session.get(Quotation, draft_id) is None

        with pytest.raises(InvalidState):
            quotation_service.delete_quotation(sent.id)


class TestConvert:
    def test_convert_creates_completed_credit_sale(self, make_product, make_customer):
        product = make_product(stock=10, cost="3.00")
        customer = make_customer(credit_limit="1.00")
        quotation = _quote(customer, (product, 4, "10.00"), discount="5.00")

        sale = quotation_service.convert_quotation_to_sale(quotation.id)

        assert sale.status == "completed"
        assert sale.payment_method == "credit"
        assert sale.due_date is not None
        assert sale.quotation_id == quotation.id
        assert sale.notes == f"Converted from quotation: {quotation.quote_number}"
        assert Decimal(sale.total) == Decimal("35.00")
        assert stock_of(product) == 6
        assert movements_for(product)[-1].reference == sale.order_number

        # Balance grows regardless of the configured limit
        customer = _customer(customer.id)
        assert Decimal(customer.current_balance) == Decimal("35.00")
        assert Decimal(customer.total_purchases) == Decimal("35.00")

        quotation = db.session.get(Quotation, quotation.id)
        db.session.refresh(quotation)
        assert quotation.status == "accepted"
        assert quotation.converted_sale_id == sale.id
        assert quotation.converted_at is not None

        profit = db.session.query(ProfitRecord).filter_by(reference_id=sale.id).one()
        assert Decimal(profit.cogs) == Decimal("12.00")

    def test_convert_only_once(self, make_product, make_customer):
        product = make_product(stock=10)
        customer = make_customer()
        quotation = _quote(customer, (product, 1, "10.00"))
        quotation_service.convert_quotation_to_sale(quotation.id)

        with pytest.raises(InvalidState):
            quotation_service.convert_quotation_to_sale(quotation.id)
        assert stock_of(product) == 9
        assert db.session.query(Sale).count() == 1

    def test_convert_rechecks_current_stock(self, make_product, make_customer):
        product = make_product(stock=5)
        customer = make_customer()
        quotation = _quote(customer, (product, 5, "10.00"))
        # Stock written off after the quotation was drafted
        stock_service.adjust_inventory(product.id, -3, "damage")

        with pytest.raises(InsufficientStock):
            quotation_service.convert_quotation_to_sale(quotation.id)

        assert stock_of(product) == 2
        assert Decimal(_customer(customer.id).current_balance) == 0
        quotation = db.session.get(Quotation, quotation.id)
        db.session.refresh(quotation)
        assert quotation.converted_sale_id is None
        assert quotation.status == "draft"

    def test_expired_quotation_cannot_convert(self, make_product, make_customer):
        product = make_product(stock=5)
        customer = make_customer()
        quotation = _quote(customer, (product, 1, "10.00"))
        _expire(quotation.id)

        with pytest.raises(InvalidState):
            quotation_service.convert_quotation_to_sale(quotation.id)
        assert stock_of(product) == 5

    def test_rejected_quotation_cannot_convert(self, make_product, make_customer):
        product = make_product(stock=5)
        customer = make_customer()
        quotation = _quote(customer, (product, 1, "10.00"))
        quotation_service.send_quotation(quotation.id)
        quotation_service.update_quotation_status(quotation.id, "rejected")

        with pytest.raises(InvalidState):
            quotation_service.convert_quotation_to_sale(quotation.id)

    def test_converted_sale_accepts_returns(self, make_product, make_customer):
        product = make_product(stock=5)
        customer = make_customer()
        quotation = _quote(customer, (product, 2, "10.00"))
        sale = quotation_service.convert_quotation_to_sale(quotation.id)

        return_service.return_items(
            sale.id,
            items=[{"product_id": product.id, "quantity": 1}],
            refund_amount="10.00",
            restock_items=True,
        )

        assert stock_of(product) == 4
        assert Decimal(_customer(customer.id).current_balance) == Decimal("10.00")


def test_list_quotations(make_product, make_customer):
    product = make_product()
    first = make_customer()
    second = make_customer()
    quotation = _quote(first, (product, 1, "1.00"))
    _quote(second, (product, 1, "1.00"))

    mine = quotation_service.list_quotations(customer_id=first.id)
    assert [q["id"] for q in mine["quotations"]] == [quotation.id]

    drafts = quotation_service.list_quotations(status="draft")
    assert drafts["pagination"]["total_items"] == 2


def test_list_quotations_rejects_unknown_status():
    with pytest.raises(ValidationError):
        quotation_service.list_quotations(status="converted")
