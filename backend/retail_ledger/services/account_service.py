# Overview: Customer receivable and supplier payable aggregates touched by the order engines.

from __future__ import annotations

import logging
from decimal import Decimal

from ..errors import NotFound, CreditLimitExceeded
from ..extensions import db
from ..models import Customer, Supplier, Payment
from ..time_utils import today
from ..validation import round_money
from .concurrency import lock_for_update


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _dec(value) -> Decimal:
    return Decimal(value or 0)


def get_locked_customer(customer_id: int) -> Customer:
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if customer is None:
        raise NotFound("Customer not found", {"customer_id": customer_id})
    return customer


def get_locked_supplier(supplier_id: int, *, require_active: bool = False) -> Supplier:
    supplier = lock_for_update(db.session.query(Supplier).filter_by(id=supplier_id)).first()
    if supplier is None:
        raise NotFound("Supplier not found", {"supplier_id": supplier_id})
    if require_active and not supplier.is_active:
        raise NotFound(
            f"Supplier '{supplier.name}' is inactive",
            {"supplier_id": supplier_id, "status": supplier.status},
        )
    return supplier


def charge_customer(customer: Customer, amount, *, check_limit: bool = False) -> None:
    """
    Add amount to the customer's receivable balance and lifetime purchases.

    With check_limit, a configured credit_limit may not be exceeded.
    """
    add_to_balance(customer, amount, check_limit=check_limit)
    customer.total_purchases = _dec(customer.total_purchases) + round_money(_dec(amount))


def add_to_balance(customer: Customer, amount, *, check_limit: bool = False) -> None:
    """Receivable only; lifetime purchases are left alone."""
    amount = round_money(_dec(amount))
    new_balance = _dec(customer.current_balance) + amount
    if check_limit and customer.credit_limit is not None and new_balance > _dec(customer.credit_limit):
        logger.warning(
            "Credit limit exceeded for customer %s: balance %s + %s > %s",
            customer.id, customer.current_balance, amount, customer.credit_limit,
        )
        raise CreditLimitExceeded(
            "Credit limit exceeded",
            {
                "customer_id": customer.id,
                "current_balance": float(_dec(customer.current_balance)),
                "amount": float(amount),
                "credit_limit": float(_dec(customer.credit_limit)),
            },
        )
    customer.current_balance = new_balance


def reduce_balance(customer: Customer, amount) -> Decimal:
    """Subtract amount from the receivable balance, floored at zero. Returns the new balance."""
    new_balance = _dec(customer.current_balance) - round_money(_dec(amount))
    customer.current_balance = max(ZERO, new_balance)
    return customer.current_balance


def reduce_purchases(customer: Customer, amount) -> None:
    new_total = _dec(customer.total_purchases) - round_money(_dec(amount))
    customer.total_purchases = max(ZERO, new_total)


def adjust_supplier_purchases(supplier: Supplier, delta) -> None:
    """Signed change to the supplier payable aggregate; never below zero."""
    new_total = _dec(supplier.total_purchases) + round_money(_dec(delta))
    supplier.total_purchases = max(ZERO, new_total)


def record_payment(customer_id: int, amount, payment_method: str, *, reference=None, notes=None) -> Payment:
    payment = Payment(
        customer_id=customer_id,
        amount=round_money(_dec(amount)),
        payment_method=payment_method,
        reference=reference,
        notes=notes,
        date=today(),
    )
    db.session.add(payment)
    db.session.flush()
    return payment
