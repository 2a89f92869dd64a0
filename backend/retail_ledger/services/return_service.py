"""
Return / reversal engine

Partial returns reduce the sale lines in place, so a sale's lines always show
what the customer still holds. Each line tracks how much of it went back into
stock (quantity_restocked); a later full reversal only restocks what the
customer still holds, so nothing is credited to stock twice.

Adjustment documents (type return | full_reversal) record every change and
are the ledger reference (ADJ-<id>) of the stock movements they cause.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ..errors import NotFound, InvalidReturn, ValidationError
from ..extensions import db
from ..models import Sale, SaleAdjustment, SaleAdjustmentItem, MovementType
from ..time_utils import to_utc_z
from ..validation import money, quantity as parse_quantity, round_money, require_int, require_items, pick
from .account_service import get_locked_customer, reduce_balance, reduce_purchases
from .concurrency import lock_for_update, run_in_transaction
from .lifecycle_service import require, sale_accepts_returns, sale_can_be_reverted
from .outsourcing_service import cancel_open_orders_for_sale
from .sales_service import refresh_profit
from .stock_service import adjust_stock


logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class ReturnLine:
    product_id: int
    quantity: Decimal
    reason: str | None = None


def parse_return_lines(items) -> list[ReturnLine]:
    return [
        ReturnLine(
            product_id=require_int(pick(raw, "product_id", "productId"), "product_id"),
            quantity=parse_quantity(raw.get("quantity")),
            reason=raw.get("reason"),
        )
        for raw in require_items(items)
    ]


def _get_locked_sale(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFound("Order not found", {"sale_id": sale_id})
    return sale


def _apply_return_line(sale: Sale, adjustment: SaleAdjustment, line: ReturnLine, restock: bool) -> list[dict]:
    """
    Take line.quantity back from the sale lines carrying the product (in line
    order) and optionally restock it. Returns per-line results.
    """
    candidates = [item for item in sale.items if item.product_id == line.product_id]
    if not candidates:
        raise InvalidReturn(
            f"Product {line.product_id} not found in order",
            {"sale_id": sale.id, "product_id": line.product_id},
        )

    held = sum((Decimal(item.quantity) for item in candidates), ZERO)
    if line.quantity > held:
        raise InvalidReturn(
            f"Return quantity exceeds purchased quantity for product {line.product_id}",
            {
                "sale_id": sale.id,
                "product_id": line.product_id,
                "requested": float(line.quantity),
                "returnable": float(held),
            },
        )

    results = []
    remaining = line.quantity
    for item in candidates:
        if remaining <= 0:
            break
        take = min(remaining, Decimal(item.quantity))
        if take <= 0:
            continue

        item.quantity = Decimal(item.quantity) - take
        item.quantity_returned = Decimal(item.quantity_returned or 0) + take
        item.total = round_money(Decimal(item.quantity) * Decimal(item.unit_price))

        db.session.add(SaleAdjustmentItem(
            adjustment_id=adjustment.id,
            sale_item_id=item.id,
            product_id=item.product_id,
            quantity=take,
            reason=line.reason,
            restocked=restock,
        ))

        new_stock = None
        if restock:
            change = adjust_stock(
                item.product_id,
                take,
                MovementType.RETURN,
                reference=adjustment.reference,
                reason=line.reason or "Returned item",
                require_active=False,
            )
            item.quantity_restocked = Decimal(item.quantity_restocked or 0) + take
            new_stock = float(change.balance_after)

        refresh_profit(item)
        results.append({
            "product_id": item.product_id,
            "sale_item_id": item.id,
            "quantity": float(take),
            "restocked": restock,
            "new_stock": new_stock,
        })
        remaining -= take
    return results


def return_items(
    sale_id: int,
    *,
    items,
    refund_amount=0,
    restock_items: bool = False,
    adjustment_reason: str | None = None,
) -> dict:
    """
    Partial, line-level return against a completed sale.

    refund_amount is taken as given (not derived from the returned lines) and
    is subtracted from the sale's subtotal and total; on a credit sale it also
    comes off the customer's balance.
    """
    lines = parse_return_lines(items)
    refund = money(refund_amount or 0, "refund_amount")
    restock = bool(restock_items)

    def _op() -> dict:
        sale = _get_locked_sale(sale_id)
        require(sale_accepts_returns(sale), "Only completed orders accept returns", sale)

        if refund > Decimal(sale.total):
            raise InvalidReturn(
                "Refund amount exceeds order total",
                {"sale_id": sale.id, "refund_amount": float(refund), "total": float(sale.total)},
            )

        adjustment = SaleAdjustment(
            sale_id=sale.id,
            type="return",
            reason=adjustment_reason or "",
            refund_amount=refund,
            restock_items=restock,
        )
        db.session.add(adjustment)
        db.session.flush()

        returned = []
        for line in lines:
            returned.extend(_apply_return_line(sale, adjustment, line, restock))

        sale.total = Decimal(sale.total) - refund
        sale.subtotal = max(ZERO, Decimal(sale.subtotal) - refund)

        if refund > 0 and sale.payment_method == "credit" and sale.customer_id is not None:
            reduce_balance(get_locked_customer(sale.customer_id), refund)

        db.session.flush()
        return {
            "adjustment_id": adjustment.id,
            "sale_id": sale.id,
            "order_number": sale.order_number,
            "refund_amount": float(refund),
            "items_returned": returned,
            "sale_total": float(sale.total),
            "processed_at": to_utc_z(adjustment.processed_at),
        }

    result = run_in_transaction(_op)
    logger.info(
        "Processed return ADJ-%s on sale %s (refund=%s, restock=%s)",
        result["adjustment_id"], result["order_number"], refund, restock,
    )
    return result


def revert_order(
    sale_id: int,
    *,
    reason: str,
    restore_inventory: bool = True,
    process_refund: bool = False,
) -> dict:
    """
    Full reversal: cancel the sale (terminal).

    restore_inventory puts back what the customer still holds on every line;
    units already handed back through return_items are not credited again.
    process_refund records the order total as refunded and, for a credit sale,
    takes it off the customer's balance and lifetime purchases.
    Outsourcing orders of the sale that were not yet delivered are cancelled.
    """
    if not reason or not str(reason).strip():
        raise ValidationError("reason is required", {"field": "reason"})

    def _op() -> dict:
        sale = _get_locked_sale(sale_id)
        require(sale_can_be_reverted(sale), "Order is already cancelled", sale)

        original_status = sale.status
        total = Decimal(sale.total)
        adjustment = SaleAdjustment(
            sale_id=sale.id,
            type="full_reversal",
            reason=reason,
            refund_amount=total if process_refund else ZERO,
            restock_items=bool(restore_inventory),
        )
        db.session.add(adjustment)
        db.session.flush()

        restored = []
        if restore_inventory:
            for item in sale.items:
                qty = Decimal(item.quantity)
                if qty <= 0:
                    continue
                change = adjust_stock(
                    item.product_id,
                    qty,
                    MovementType.RETURN,
                    reference=adjustment.reference,
                    reason=reason,
                    require_active=False,
                )
                item.quantity_restocked = Decimal(item.quantity_restocked or 0) + qty
                db.session.add(SaleAdjustmentItem(
                    adjustment_id=adjustment.id,
                    sale_item_id=item.id,
                    product_id=item.product_id,
                    quantity=qty,
                    reason=reason,
                    restocked=True,
                ))
                restored.append({
                    "product_id": item.product_id,
                    "quantity_restored": float(qty),
                    "new_stock": float(change.balance_after),
                })

        if process_refund and sale.payment_method == "credit" and sale.customer_id is not None:
            customer = get_locked_customer(sale.customer_id)
            reduce_balance(customer, total)
            reduce_purchases(customer, total)

        # Goods come back through the reversal, so undelivered supplier orders are dropped
        cancelled_orders = cancel_open_orders_for_sale(sale, f"Cancelled: order {sale.order_number} reverted")

        sale.status = "cancelled"
        sale.cancel_reason = reason
        db.session.flush()

        return {
            "sale_id": sale.id,
            "order_number": sale.order_number,
            "original_status": original_status,
            "new_status": "cancelled",
            "refund_amount": float(adjustment.refund_amount),
            "inventory_restored": restored,
            "outsourcing_cancelled": [order.order_number for order in cancelled_orders],
            "adjustment": {"id": adjustment.id, "type": adjustment.type, "reason": adjustment.reason},
        }

    result = run_in_transaction(_op)
    logger.info("Reverted sale %s (ADJ-%s)", result["order_number"], result["adjustment"]["id"])
    return result
