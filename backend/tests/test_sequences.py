from datetime import date

import pytest

from retail_ledger.extensions import db
from retail_ledger.models import OrderSequence
from retail_ledger.services.concurrency import run_in_transaction
from retail_ledger.services.sequence_service import (
    SequenceError,
    format_number,
    next_order_number,
    period_for,
)


def _allocate(scope, on):
    return run_in_transaction(lambda: next_order_number(scope, on=on))


def test_formats_per_scope(db_session):
    on = date(2026, 3, 7)
    assert _allocate("sale", on) == "ORD-20260307001"
    assert _allocate("purchase_order", on) == "PO-202603001"
    assert _allocate("quotation", on) == "QUO-202603001"
    assert _allocate("outsourcing", on) == "OUT-20260307001"


def test_numbers_increase_within_period(db_session):
    on = date(2026, 3, 7)
    numbers = [_allocate("sale", on) for _ in range(3)]
    assert numbers == ["ORD-20260307001", "ORD-20260307002", "ORD-20260307003"]


def test_new_period_restarts_counter(db_session):
    assert _allocate("sale", date(2026, 3, 7)) == "ORD-20260307001"
    assert _allocate("sale", date(2026, 3, 8)) == "ORD-20260308001"
    # Monthly scopes share the counter for every day of the month
    assert _allocate("purchase_order", date(2026, 3, 7)) == "PO-202603001"
    assert _allocate("purchase_order", date(2026, 3, 28)) == "PO-202603002"


def test_counter_grows_past_padding(db_session):
    db_session.add(OrderSequence(scope="sale", period="20260307", last_value=999))
    db_session.commit()
    assert _allocate("sale", date(2026, 3, 7)) == "ORD-202603071000"


def test_rolled_back_allocation_is_not_consumed(db_session):
    on = date(2026, 3, 7)

    def _fail():
        next_order_number("sale", on=on)
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        run_in_transaction(_fail)

    assert _allocate("sale", on) == "ORD-20260307001"
    assert db.session.query(OrderSequence).count() == 1


def test_unknown_scope(db_session):
    with pytest.raises(SequenceError):
        next_order_number("invoice")


def test_helpers():
    assert period_for("day", date(2026, 1, 2)) == "20260102"
    assert period_for("month", date(2026, 1, 2)) == "202601"
    assert format_number("PO-", "202601", 42) == "PO-202601042"
