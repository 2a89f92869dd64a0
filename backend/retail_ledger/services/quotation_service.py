"""
Quotation engine

Quotations carry no stock or balance effects. Conversion turns one into a
completed credit sale: stock is re-checked against current levels (it may
have sold out since the quote), lines are taken out of stock, cost and
profit are captured, and the customer's receivable grows by the total.
A quotation converts at most once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from flask import current_app

from ..errors import NotFound, InvalidState, ValidationError
from ..extensions import db
from ..models import Quotation, QuotationItem, Product, Sale
from ..models.quotations import QUOTATION_STATUSES
from ..time_utils import today, utcnow
from ..validation import (
    money,
    quantity as parse_quantity,
    round_money,
    require_int,
    optional_int,
    optional_date,
    require_items,
    pick,
)
from .account_service import get_locked_customer, charge_customer
from .concurrency import lock_for_update, run_in_transaction
from .lifecycle_service import (
    require,
    quotation_is_editable,
    quotation_can_be_sent,
    quotation_can_be_decided,
    quotation_can_convert,
    quotation_is_expired,
)
from .pagination import paginate
from .sales_service import SaleLine, validate_stock, write_sale_items, credit_due_date
from .sequence_service import next_order_number
from .stock_service import lock_products


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
_UNSET = object()


@dataclass
class QuoteLine:
    product_id: int
    quantity: Decimal
    unit_price: Decimal

    @property
    def total(self) -> Decimal:
        return round_money(self.quantity * self.unit_price)


def parse_quote_lines(items) -> list[QuoteLine]:
    return [
        QuoteLine(
            product_id=require_int(pick(raw, "product_id", "productId"), "product_id"),
            quantity=parse_quantity(raw.get("quantity")),
            unit_price=money(pick(raw, "unit_price", "unitPrice"), "unit_price"),
        )
        for raw in require_items(items)
    ]


def _default_valid_until():
    return today() + timedelta(days=int(current_app.config.get("QUOTATION_VALIDITY_DAYS", 30)))


def _check_valid_until(valid_until) -> None:
    if valid_until <= today():
        raise ValidationError(
            "valid_until must be in the future",
            {"valid_until": valid_until.isoformat()},
        )


def _check_discount(subtotal: Decimal, discount: Decimal) -> None:
    if discount > subtotal:
        raise ValidationError(
            "discount cannot exceed subtotal",
            {"discount": float(discount), "subtotal": float(subtotal)},
        )


def _require_active_products(lines) -> None:
    ids = sorted({line.product_id for line in lines})
    products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(ids)).all()}
    for pid in ids:
        product = products.get(pid)
        if product is None or not product.is_active:
            raise NotFound(f"Invalid product ID: {pid}", {"product_id": pid})


def _replace_items(quotation: Quotation, lines) -> Decimal:
    quotation.items.clear()
    subtotal = ZERO
    for line in lines:
        quotation.items.append(QuotationItem(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price=line.unit_price,
            total=line.total,
        ))
        subtotal += line.total
    return subtotal


def _get_locked_quotation(quotation_id: int) -> Quotation:
    quotation = lock_for_update(db.session.query(Quotation).filter_by(id=quotation_id)).first()
    if quotation is None:
        raise NotFound("Quotation not found", {"quotation_id": quotation_id})
    return quotation


def create_quotation(
    *,
    customer_id,
    items,
    discount=0,
    valid_until=None,
    notes: str | None = None,
) -> Quotation:
    customer_id = require_int(customer_id, "customer_id")
    lines = parse_quote_lines(items)
    discount = money(discount or 0, "discount")
    valid_until = optional_date(valid_until, "valid_until") or _default_valid_until()
    _check_valid_until(valid_until)

    def _op() -> Quotation:
        customer = get_locked_customer(customer_id)
        _require_active_products(lines)

        quotation = Quotation(
            quote_number=next_order_number("quotation"),
            customer_id=customer.id,
            date=today(),
            valid_until=valid_until,
            status="draft",
            notes=notes,
        )
        subtotal = _replace_items(quotation, lines)
        _check_discount(subtotal, discount)
        quotation.subtotal = subtotal
        quotation.discount = discount
        quotation.total = subtotal - discount
        db.session.add(quotation)
        db.session.flush()
        return quotation

    quotation = run_in_transaction(_op)
    logger.info("Created quotation %s (id=%s, total=%s)", quotation.quote_number, quotation.id, quotation.total)
    return quotation


def update_quotation(
    quotation_id: int,
    *,
    customer_id=None,
    items=None,
    discount=None,
    valid_until=_UNSET,
    notes=_UNSET,
) -> Quotation:
    """Edit a draft quotation; totals are recomputed from the (new) lines and discount."""
    customer_id = optional_int(customer_id, "customer_id")
    lines = parse_quote_lines(items) if items is not None else None
    new_discount = money(discount, "discount") if discount is not None else None
    if valid_until is not _UNSET:
        valid_until = optional_date(valid_until, "valid_until") or _default_valid_until()
        _check_valid_until(valid_until)

    def _op() -> Quotation:
        quotation = _get_locked_quotation(quotation_id)
        require(quotation_is_editable(quotation), "Only draft quotations can be updated", quotation)

        if customer_id is not None and customer_id != quotation.customer_id:
            quotation.customer_id = get_locked_customer(customer_id).id

        subtotal = Decimal(quotation.subtotal)
        if lines is not None:
            _require_active_products(lines)
            quotation.items.clear()
            db.session.flush()
            subtotal = _replace_items(quotation, lines)

        disc = new_discount if new_discount is not None else Decimal(quotation.discount)
        _check_discount(subtotal, disc)
        quotation.subtotal = subtotal
        quotation.discount = disc
        quotation.total = subtotal - disc

        if valid_until is not _UNSET:
            quotation.valid_until = valid_until
        if notes is not _UNSET:
            quotation.notes = notes

        db.session.flush()
        return quotation

    quotation = run_in_transaction(_op)
    logger.info("Updated quotation %s", quotation.quote_number)
    return quotation


def delete_quotation(quotation_id: int) -> None:
    def _op() -> str:
        quotation = _get_locked_quotation(quotation_id)
        require(quotation_is_editable(quotation), "Only draft quotations can be deleted", quotation)
        quote_number = quotation.quote_number
        db.session.delete(quotation)
        return quote_number

    quote_number = run_in_transaction(_op)
    logger.info("Deleted quotation %s", quote_number)


def send_quotation(quotation_id: int) -> Quotation:
    def _op() -> Quotation:
        quotation = _get_locked_quotation(quotation_id)
        require(quotation_can_be_sent(quotation), "Only draft quotations can be sent", quotation)
        quotation.status = "sent"
        return quotation

    quotation = run_in_transaction(_op)
    logger.info("Sent quotation %s", quotation.quote_number)
    return quotation


def update_quotation_status(quotation_id: int, status: str) -> Quotation:
    """Record the customer's decision (accepted | rejected) on a sent, unexpired quotation."""
    if status not in ("accepted", "rejected"):
        raise ValidationError("status must be accepted or rejected", {"status": status})

    def _op() -> Quotation:
        quotation = _get_locked_quotation(quotation_id)
        if quotation.status == "sent" and quotation_is_expired(quotation):
            raise InvalidState(
                "Quotation has expired",
                {"id": quotation.id, "status": quotation.status, "valid_until": quotation.valid_until.isoformat()},
            )
        require(quotation_can_be_decided(quotation), "Only sent quotations can be accepted or rejected", quotation)
        quotation.status = status
        return quotation

    quotation = run_in_transaction(_op)
    logger.info("Quotation %s -> %s", quotation.quote_number, status)
    return quotation


def convert_quotation_to_sale(quotation_id: int) -> Sale:
    """
    Turn a draft/sent/accepted, unexpired quotation into a completed credit sale.

    Raises InsufficientStock when any line is no longer covered by current
    stock; nothing is written in that case.
    """
    def _op() -> Sale:
        quotation = _get_locked_quotation(quotation_id)
        if quotation.converted_sale_id is not None:
            raise InvalidState(
                "Quotation has already been converted",
                {"id": quotation.id, "status": quotation.status, "sale_id": quotation.converted_sale_id},
            )
        if quotation_is_expired(quotation):
            raise InvalidState(
                "Quotation has expired",
                {"id": quotation.id, "status": quotation.status, "valid_until": quotation.valid_until.isoformat()},
            )
        require(quotation_can_convert(quotation), "Quotation cannot be converted in its current status", quotation)

        customer = get_locked_customer(quotation.customer_id)
        lines = [
            SaleLine(product_id=item.product_id, quantity=Decimal(item.quantity), unit_price=Decimal(item.unit_price))
            for item in quotation.items
        ]
        if not lines:
            raise ValidationError("Quotation has no items", {"quotation_id": quotation.id})

        products = lock_products(line.product_id for line in lines)
        validate_stock(products, lines)

        now = utcnow()
        sale = Sale(
            order_number=next_order_number("sale", on=now.date()),
            customer_id=customer.id,
            date=now.date(),
            time=now.time().replace(microsecond=0),
            due_date=credit_due_date(now.date()),
            subtotal=Decimal(quotation.subtotal),
            discount=Decimal(quotation.discount),
            tax=ZERO,
            total=Decimal(quotation.total),
            payment_method="credit",
            status="completed",
            notes=f"Converted from quotation: {quotation.quote_number}",
            quotation_id=quotation.id,
        )
        db.session.add(sale)
        db.session.flush()

        write_sale_items(sale, lines, products)
        charge_customer(customer, sale.total)

        quotation.status = "accepted"
        quotation.converted_sale_id = sale.id
        quotation.converted_at = now
        db.session.flush()
        return sale

    sale = run_in_transaction(_op)
    logger.info("Converted quotation id=%s into sale %s", quotation_id, sale.order_number)
    return sale


def get_quotation(quotation_id: int) -> dict:
    quotation = db.session.get(Quotation, quotation_id)
    if quotation is None:
        raise NotFound("Quotation not found", {"quotation_id": quotation_id})
    data = quotation.to_dict()
    data["is_expired"] = quotation_is_expired(quotation)
    return data


def list_quotations(
    *,
    status: str | None = None,
    customer_id=None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Quotation)
    if status:
        if status not in QUOTATION_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(QUOTATION_STATUSES)}",
                {"status": status},
            )
        query = query.filter(Quotation.status == status)
    customer_id = optional_int(customer_id, "customer_id")
    if customer_id is not None:
        query = query.filter(Quotation.customer_id == customer_id)
    if search:
        query = query.filter(Quotation.quote_number.ilike(f"%{search}%"))

    query = query.order_by(Quotation.date.desc(), Quotation.id.desc())
    rows, pagination = paginate(query, page, per_page)
    return {"quotations": [q.to_dict() for q in rows], "pagination": pagination}
