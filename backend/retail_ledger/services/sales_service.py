"""
Sale engine - creation, status and detail changes, reads

A sale completes synchronously on creation: stocked lines are taken out of
stock through the stock mutator, outsourced lines are handed to a supplier
(external purchase + outsourcing order) and never touch stock. Every line
gets its cost captured and one profit record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from flask import current_app

from ..errors import NotFound, InsufficientStock, ValidationError
from ..extensions import db
from ..models import Sale, SaleItem, ProfitRecord, Product, MovementType
from ..models.sales import SALE_STATUSES, PAYMENT_METHODS
from ..time_utils import utcnow
from ..validation import (
    money,
    quantity as parse_quantity,
    round_money,
    require_int,
    optional_int,
    optional_date,
    require_items,
    pick,
    to_decimal,
)
from .account_service import (
    get_locked_customer,
    get_locked_supplier,
    charge_customer,
    add_to_balance,
    reduce_balance,
    record_payment,
)
from .concurrency import lock_for_update, run_in_transaction
from .lifecycle_service import (
    require,
    sale_status_can_change,
    sale_details_editable,
)
from .outsourcing_service import open_outsourcing_order, record_external_purchase
from .pagination import paginate
from .sequence_service import next_order_number
from .stock_service import adjust_stock, lock_products


logger = logging.getLogger(__name__)


@dataclass
class OutsourcingRequest:
    supplier_id: int
    cost_per_unit: Decimal
    source: str | None = None
    notes: str | None = None


@dataclass
class SaleLine:
    product_id: int
    quantity: Decimal
    unit_price: Decimal
    outsourcing: OutsourcingRequest | None = None

    @property
    def total(self) -> Decimal:
        return round_money(self.quantity * self.unit_price)


def parse_sale_lines(items) -> list[SaleLine]:
    """Validate raw line dicts (snake_case or camelCase keys)."""
    lines = []
    for raw in require_items(items):
        outsourcing = None
        raw_out = raw.get("outsourcing")
        if raw_out:
            if not isinstance(raw_out, dict):
                raise ValidationError("outsourcing must be an object")
            outsourcing = OutsourcingRequest(
                supplier_id=require_int(pick(raw_out, "supplier_id", "supplierId"), "outsourcing.supplier_id"),
                cost_per_unit=money(pick(raw_out, "cost_per_unit", "costPerUnit"), "outsourcing.cost_per_unit"),
                source=raw_out.get("source"),
                notes=raw_out.get("notes"),
            )
        lines.append(SaleLine(
            product_id=require_int(pick(raw, "product_id", "productId"), "product_id"),
            quantity=parse_quantity(raw.get("quantity")),
            unit_price=money(pick(raw, "unit_price", "unitPrice"), "unit_price"),
            outsourcing=outsourcing,
        ))
    return lines


def validate_payment_method(value) -> str | None:
    if value in (None, ""):
        return None
    if value not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            {"payment_method": value},
        )
    return value


def _tax_rate() -> Decimal:
    rate = to_decimal(current_app.config.get("TAX_RATE", "0"), "TAX_RATE")
    if rate < 0:
        raise ValidationError("TAX_RATE cannot be negative")
    return rate


def compute_totals(subtotal: Decimal, discount: Decimal) -> tuple[Decimal, Decimal]:
    """(tax, total) for a subtotal and discount under the configured TAX_RATE."""
    if discount > subtotal:
        raise ValidationError(
            "discount cannot exceed subtotal",
            {"discount": float(discount), "subtotal": float(subtotal)},
        )
    tax = round_money((subtotal - discount) * _tax_rate())
    return tax, subtotal - discount + tax


def credit_due_date(on):
    return on + timedelta(days=int(current_app.config.get("CREDIT_SALE_DUE_DAYS", 30)))


def validate_stock(products: dict[int, Product], lines) -> None:
    """
    Check every product exists, is active and (for stocked lines) has enough
    stock for the summed quantity across lines.
    """
    needed: dict[int, Decimal] = {}
    for line in lines:
        product = products.get(line.product_id)
        if product is None:
            raise NotFound("Product not found", {"product_id": line.product_id})
        if not product.is_active:
            raise NotFound(
                f"Product '{product.name}' is inactive",
                {"product_id": product.id, "status": product.status},
            )
        if line.outsourcing is None:
            needed[line.product_id] = needed.get(line.product_id, Decimal("0")) + line.quantity

    for product_id, qty in needed.items():
        product = products[product_id]
        available = Decimal(product.stock or 0)
        if available < qty:
            logger.warning(
                "Insufficient stock for product %s: requested %s, available %s",
                product_id, qty, available,
            )
            raise InsufficientStock(
                f"Insufficient stock for {product.name}",
                {
                    "product_id": product_id,
                    "product_name": product.name,
                    "available": float(available),
                    "requested": float(qty),
                },
            )


def record_profit(item: SaleItem, *, sale_id: int, sale_date) -> ProfitRecord:
    """
    One profit row per sale line. Falls back to the current catalog cost when
    the line has no captured cost, and marks the row approximate.
    """
    cost = item.cost_at_sale
    approximate = False
    if cost is None:
        product = db.session.get(Product, item.product_id)
        cost = product.cost_price if product is not None else Decimal("0")
        approximate = True

    revenue = round_money(Decimal(item.quantity) * Decimal(item.unit_price))
    cogs = round_money(Decimal(item.quantity) * Decimal(cost or 0))
    record = ProfitRecord(
        reference_id=sale_id,
        reference_type="sale",
        sale_item_id=item.id,
        product_id=item.product_id,
        revenue=revenue,
        cogs=cogs,
        profit=revenue - cogs,
        is_approximate=approximate,
        sale_date=sale_date,
    )
    db.session.add(record)
    return record


def refresh_profit(item: SaleItem) -> None:
    """Recompute a line's profit row from what the customer still holds."""
    record = db.session.query(ProfitRecord).filter_by(sale_item_id=item.id).first()
    if record is None:
        return
    qty = Decimal(item.quantity)
    if item.cost_at_sale is not None:
        unit_cost = Decimal(item.cost_at_sale)
    else:
        product = db.session.get(Product, item.product_id)
        unit_cost = Decimal(product.cost_price or 0) if product is not None else Decimal("0")
    record.revenue = round_money(qty * Decimal(item.unit_price))
    record.cogs = round_money(qty * unit_cost)
    record.profit = record.revenue - record.cogs


def write_sale_items(sale: Sale, lines, products: dict[int, Product]) -> list[SaleItem]:
    """
    Persist the lines of an already-flushed sale and apply their effects:
    stock out for stocked lines, supplier hand-off for outsourced ones,
    captured cost and a profit row for every line.
    """
    items = []
    for line in lines:
        product = products[line.product_id]
        out = line.outsourcing
        item = SaleItem(
            sale_id=sale.id,
            product_id=product.id,
            original_quantity=line.quantity,
            quantity=line.quantity,
            quantity_returned=Decimal("0"),
            quantity_restocked=Decimal("0"),
            unit_price=line.unit_price,
            total=line.total,
            cost_at_sale=out.cost_per_unit if out else product.cost_price,
            is_outsourced=out is not None,
            outsourcing_supplier_id=out.supplier_id if out else None,
            outsourcing_cost_per_unit=out.cost_per_unit if out else None,
        )
        db.session.add(item)
        db.session.flush()

        if out:
            supplier = get_locked_supplier(out.supplier_id)
            record_external_purchase(
                sale=sale,
                sale_item=item,
                supplier=supplier,
                product=product,
                quantity=line.quantity,
                cost_per_unit=out.cost_per_unit,
                source=out.source,
                notes=out.notes,
            )
            open_outsourcing_order(
                product=product,
                supplier=supplier,
                quantity=line.quantity,
                cost_per_unit=out.cost_per_unit,
                sale=sale,
                sale_item=item,
                notes=out.notes,
            )
        else:
            adjust_stock(
                product.id,
                -line.quantity,
                MovementType.SALE,
                reference=sale.order_number,
                reason="Sale",
            )

        record_profit(item, sale_id=sale.id, sale_date=sale.date)
        items.append(item)
    return items


def create_sale(
    *,
    items,
    customer_id=None,
    payment_method=None,
    discount=0,
    notes: str | None = None,
) -> Sale:
    """
    Create a completed sale in one transaction.

    Raises NotFound (product/customer/supplier), InsufficientStock and
    ValidationError; nothing is persisted when any of them is raised.
    """
    lines = parse_sale_lines(items)
    customer_id = optional_int(customer_id, "customer_id")
    payment_method = validate_payment_method(payment_method)
    discount = money(discount or 0, "discount")

    def _op() -> Sale:
        customer = get_locked_customer(customer_id) if customer_id is not None else None
        products = lock_products(line.product_id for line in lines)
        validate_stock(products, lines)

        subtotal = sum((line.total for line in lines), Decimal("0.00"))
        tax, total = compute_totals(subtotal, discount)

        now = utcnow()
        sale = Sale(
            order_number=next_order_number("sale", on=now.date()),
            customer_id=customer.id if customer else None,
            date=now.date(),
            time=now.time().replace(microsecond=0),
            due_date=credit_due_date(now.date()) if payment_method == "credit" else None,
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            total=total,
            payment_method=payment_method,
            status="completed",
            notes=notes,
        )
        db.session.add(sale)
        db.session.flush()

        write_sale_items(sale, lines, products)

        if customer is not None and payment_method == "credit":
            # Receivable grows with the sale; no credit-limit check on creation
            charge_customer(customer, total)

        return sale

    sale = run_in_transaction(_op)
    logger.info("Created sale %s (id=%s, total=%s)", sale.order_number, sale.id, sale.total)
    return sale


def _get_locked_sale(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFound("Order not found", {"sale_id": sale_id})
    return sale


def update_order_status(sale_id: int, status: str) -> Sale:
    if status not in SALE_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(SALE_STATUSES)}",
            {"status": status},
        )

    def _op() -> Sale:
        sale = _get_locked_sale(sale_id)
        require(
            sale_status_can_change(sale, status),
            "Cancelled orders are final; use revert to cancel an order",
            sale,
            requested_status=status,
        )
        sale.status = status
        return sale

    sale = run_in_transaction(_op)
    logger.info("Sale %s status -> %s", sale.order_number, status)
    return sale


_UNSET = object()


def update_order_details(
    sale_id: int,
    *,
    payment_method=None,
    customer_id=None,
    notes=_UNSET,
) -> Sale:
    """
    Change payment method, customer and/or notes.

    Credit bookkeeping follows the change:
    - non-credit -> credit: the total is added to the (new) customer's balance,
      subject to the credit limit
    - credit -> non-credit: the total leaves the balance of the customer that
      carried it (floored at 0) and a settling Payment is recorded
    - credit -> credit with another customer: the balance moves from the old
      customer to the new one, subject to the new customer's limit
    """
    payment_method = validate_payment_method(payment_method)
    customer_id = optional_int(customer_id, "customer_id")

    def _op() -> Sale:
        sale = _get_locked_sale(sale_id)
        require(sale_details_editable(sale), "Cancelled orders cannot be edited", sale)

        old_method = sale.payment_method
        new_method = payment_method or old_method
        old_customer_id = sale.customer_id
        new_customer_id = customer_id if customer_id is not None else old_customer_id

        was_credit = old_method == "credit"
        is_credit = new_method == "credit"
        if is_credit and new_customer_id is None:
            raise ValidationError("Credit sales require a customer", {"sale_id": sale.id})

        # Lock every customer involved in ascending id order
        customers = {}
        for cid in sorted({c for c in (old_customer_id, new_customer_id) if c is not None}):
            customers[cid] = get_locked_customer(cid)
        old_customer = customers.get(old_customer_id)
        new_customer = customers.get(new_customer_id)

        total = Decimal(sale.total)
        customer_changed = new_customer_id != old_customer_id

        if was_credit and is_credit:
            if customer_changed:
                if old_customer is not None:
                    reduce_balance(old_customer, total)
                add_to_balance(new_customer, total, check_limit=True)
        elif is_credit:
            add_to_balance(new_customer, total, check_limit=True)
        elif was_credit and old_customer is not None:
            reduce_balance(old_customer, total)
            record_payment(
                old_customer.id,
                total,
                new_method,
                reference=f"Order #{sale.order_number}",
                notes=f"Payment method changed from credit to {new_method}",
            )

        sale.payment_method = new_method
        sale.customer_id = new_customer_id
        if is_credit and not was_credit and sale.due_date is None:
            sale.due_date = credit_due_date(sale.date)
        if notes is not _UNSET:
            sale.notes = notes
        return sale

    sale = run_in_transaction(_op)
    logger.info(
        "Updated sale %s details (payment_method=%s, customer_id=%s)",
        sale.order_number, sale.payment_method, sale.customer_id,
    )
    return sale


def get_sale(sale_id: int) -> dict:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFound("Order not found", {"sale_id": sale_id})
    data = sale.to_dict()
    data["adjustments"] = [adj.to_dict() for adj in sale.adjustments]
    return data


def list_sales(
    *,
    status: str | None = None,
    customer_id=None,
    start_date=None,
    end_date=None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Sale)
    if status:
        query = query.filter(Sale.status == status)
    customer_id = optional_int(customer_id, "customer_id")
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    start = optional_date(start_date, "start_date")
    end = optional_date(end_date, "end_date")
    if start:
        query = query.filter(Sale.date >= start)
    if end:
        query = query.filter(Sale.date <= end)

    query = query.order_by(Sale.date.desc(), Sale.id.desc())
    rows, pagination = paginate(query, page, per_page)
    return {"sales": [s.to_dict(include_items=False) for s in rows], "pagination": pagination}
