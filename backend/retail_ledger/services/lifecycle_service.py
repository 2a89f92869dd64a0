# Overview: Named status-machine guards for every order type.

"""
Order lifecycle guards

================================================================================
PURPOSE: One predicate per guarded transition, so a policy change touches one
place and every engine asks the same question the same way.
================================================================================

STATE MACHINES:
    Sale:         completed -> (returns)* -> cancelled          (terminal)
                  pending <-> completed via status update
    PurchaseOrder: draft -> sent -> confirmed -> partially_received* -> received
                  draft/sent -> cancelled (un-cancel allowed back to draft/sent)
    Quotation:    draft -> sent -> accepted | rejected; draft/sent/accepted -> converted
    Outsourcing:  pending -> ordered -> delivered | cancelled     (both terminal)

Predicates return bool; the require_* helpers raise InvalidState with the
current status in details.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from ..errors import InvalidState
from ..time_utils import today


# ---- Sales ---------------------------------------------------------------

def sale_accepts_returns(sale) -> bool:
    return sale.status == "completed"


def sale_can_be_reverted(sale) -> bool:
    return sale.status != "cancelled"


def sale_status_can_change(sale, new_status: str) -> bool:
    # Cancelling goes through revert_order so stock and balances are unwound
    return sale.status != "cancelled" and new_status != "cancelled"


def sale_details_editable(sale) -> bool:
    return sale.status != "cancelled"


# ---- Purchase orders -----------------------------------------------------

PO_EDITABLE_STATUSES = {"draft", "sent"}
PO_RECEIVABLE_STATUSES = {"draft", "sent", "confirmed", "partially_received"}
PO_CANCELLABLE_STATUSES = {"draft", "sent"}


def po_is_editable(po) -> bool:
    return po.status in PO_EDITABLE_STATUSES


def po_can_receive(po) -> bool:
    # Receiving straight from draft is accepted (long-standing behaviour)
    return po.status in PO_RECEIVABLE_STATUSES


def po_has_receipts(po) -> bool:
    return any(Decimal(item.quantity_received or 0) > 0 for item in po.items)


def po_can_transition(po, new_status: str) -> bool:
    if new_status == po.status:
        return True
    if po.status == "received":
        return False
    # Once goods have arrived the status only moves through receive_purchase_order
    if po.status == "partially_received" or po_has_receipts(po):
        return False
    if new_status == "cancelled":
        return po.status in PO_CANCELLABLE_STATUSES
    if po.status == "cancelled":
        # Reopening a cancelled order puts it back into an editable state
        return new_status in PO_EDITABLE_STATUSES
    # Received states are reached through receive_purchase_order only
    if new_status in {"partially_received", "received"}:
        return False
    return True


def po_can_be_deleted(po) -> bool:
    return po.status == "draft" and not po_has_receipts(po)


# ---- Quotations ----------------------------------------------------------

def quotation_is_expired(quotation, on: date | None = None) -> bool:
    return quotation.valid_until < (on or today())


def quotation_is_editable(quotation) -> bool:
    return quotation.status == "draft" and quotation.converted_sale_id is None


def quotation_can_be_sent(quotation) -> bool:
    return quotation.status == "draft"


def quotation_can_be_decided(quotation) -> bool:
    return quotation.status == "sent" and not quotation_is_expired(quotation)


def quotation_can_convert(quotation) -> bool:
    return (
        quotation.converted_sale_id is None
        and quotation.status in {"draft", "sent", "accepted"}
        and not quotation_is_expired(quotation)
    )


# ---- Outsourcing ---------------------------------------------------------

OUTSOURCING_TERMINAL_STATUSES = {"delivered", "cancelled"}


def outsourcing_can_transition(order, new_status: str) -> bool:
    if order.status in OUTSOURCING_TERMINAL_STATUSES:
        return False
    if new_status == "pending":
        return order.status == "pending"
    return True


# ---- Raising helpers -----------------------------------------------------

def require(allowed: bool, message: str, entity, **details) -> None:
    if not allowed:
        raise InvalidState(message, {"id": entity.id, "status": entity.status, **details})
