# Overview: Order-number allocation backed by per-scope counter rows.

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import OrderSequence
from ..time_utils import today


# scope -> (prefix, period granularity)
SCOPES = {
    "sale": ("ORD-", "day"),
    "purchase_order": ("PO-", "month"),
    "quotation": ("QUO-", "month"),
    "outsourcing": ("OUT-", "day"),
}

PAD = 3


class SequenceError(Exception):
    """Raised for an unknown sequence scope."""


def period_for(granularity: str, on: date) -> str:
    if granularity == "day":
        return on.strftime("%Y%m%d")
    if granularity == "month":
        return on.strftime("%Y%m")
    raise SequenceError(f"Unknown period granularity: {granularity}")


def format_number(prefix: str, period: str, value: int) -> str:
    # Zero-padded to 3 digits; the 1000th number in a period simply grows to 4
    return f"{prefix}{period}{value:0{PAD}d}"


def next_order_number(scope: str, *, on: date | None = None) -> str:
    """
    Allocate the next order number for scope.

    Must run inside the caller's transaction: the counter row stays locked
    until the order row it numbers is committed, so two concurrent creations
    can never read the same value. Nothing is committed here.
    """
    try:
        prefix, granularity = SCOPES[scope]
    except KeyError:
        raise SequenceError(f"Unknown sequence scope: {scope}")

    period = period_for(granularity, on or today())

    stmt = (
        update(OrderSequence)
        .where(OrderSequence.scope == scope, OrderSequence.period == period)
        .values(last_value=OrderSequence.last_value + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(OrderSequence(scope=scope, period=period, last_value=1))
            return format_number(prefix, period, 1)
        except IntegrityError:
            # Another writer created the row first; fall back to incrementing it
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    value = (
        db.session.query(OrderSequence.last_value)
        .filter_by(scope=scope, period=period)
        .scalar()
    )
    return format_number(prefix, period, value)
