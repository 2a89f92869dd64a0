"""
Purchase order engine

Supplier payable aggregate (Supplier.total_purchases):
- grows by the order total when the order is created (not when received)
- follows every later change: total edits, supplier swaps, cancelling and
  un-cancelling, deleting a draft
A cancelled order contributes nothing to its supplier's total.

Receiving:
- partial receipts allowed, tracked per line in quantity_received
- good units go into stock through the stock mutator (movement type purchase)
- damaged units are booked as received but never enter stock
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ..errors import NotFound, InvalidState, ValidationError, NoItemsReceived
from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderItem, Product, MovementType, ItemCondition
from ..models.purchasing import PO_STATUSES
from ..time_utils import today
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
from .account_service import get_locked_supplier, adjust_supplier_purchases
from .concurrency import lock_for_update, run_in_transaction
from .lifecycle_service import (
    require,
    po_is_editable,
    po_can_receive,
    po_can_transition,
    po_can_be_deleted,
    po_has_receipts,
)
from .pagination import paginate
from .sequence_service import next_order_number
from .stock_service import adjust_stock


logger = logging.getLogger(__name__)

ZERO = Decimal("0")
_UNSET = object()


@dataclass
class POLine:
    product_id: int
    quantity: Decimal
    unit_price: Decimal

    @property
    def total(self) -> Decimal:
        return round_money(self.quantity * self.unit_price)


@dataclass
class ReceiptLine:
    product_id: int
    quantity_received: Decimal
    condition: ItemCondition


def parse_po_lines(items) -> list[POLine]:
    lines = []
    seen = set()
    for raw in require_items(items):
        line = POLine(
            product_id=require_int(pick(raw, "product_id", "productId"), "product_id"),
            quantity=parse_quantity(raw.get("quantity")),
            unit_price=money(pick(raw, "unit_price", "unitPrice"), "unit_price"),
        )
        if line.product_id in seen:
            raise ValidationError(
                "Each product may appear only once on a purchase order",
                {"product_id": line.product_id},
            )
        seen.add(line.product_id)
        lines.append(line)
    return lines


def parse_receipt_lines(items) -> list[ReceiptLine]:
    lines = []
    for raw in require_items(items):
        condition = raw.get("condition") or "good"
        try:
            condition = ItemCondition(condition)
        except ValueError:
            raise ValidationError("condition must be good or damaged", {"condition": condition})
        lines.append(ReceiptLine(
            product_id=require_int(pick(raw, "product_id", "productId"), "product_id"),
            quantity_received=parse_quantity(
                pick(raw, "quantity_received", "quantityReceived"),
                "quantity_received",
                allow_zero=True,
            ),
            condition=condition,
        ))
    return lines


def _require_active_products(lines) -> None:
    ids = sorted({line.product_id for line in lines})
    products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(ids)).all()}
    for pid in ids:
        product = products.get(pid)
        if product is None or not product.is_active:
            raise NotFound(f"Invalid product ID: {pid}", {"product_id": pid})


def _build_items(po: PurchaseOrder, lines) -> Decimal:
    total = ZERO
    for line in lines:
        po.items.append(PurchaseOrderItem(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price=line.unit_price,
            total=line.total,
            quantity_received=ZERO,
            item_condition=ItemCondition.GOOD.value,
        ))
        total += line.total
    return total


def _get_locked_po(po_id: int) -> PurchaseOrder:
    po = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=po_id)).first()
    if po is None:
        raise NotFound("Purchase order not found", {"purchase_order_id": po_id})
    return po


def create_purchase_order(
    *,
    supplier_id,
    items,
    expected_delivery=None,
    notes: str | None = None,
) -> PurchaseOrder:
    supplier_id = require_int(supplier_id, "supplier_id")
    lines = parse_po_lines(items)
    expected = optional_date(expected_delivery, "expected_delivery")

    def _op() -> PurchaseOrder:
        supplier = get_locked_supplier(supplier_id, require_active=True)
        _require_active_products(lines)

        po = PurchaseOrder(
            order_number=next_order_number("purchase_order"),
            supplier_id=supplier.id,
            date=today(),
            expected_delivery=expected,
            tax=ZERO,
            status="draft",
            notes=notes or "",
        )
        total = _build_items(po, lines)
        po.subtotal = total
        po.total = total
        db.session.add(po)

        adjust_supplier_purchases(supplier, total)
        db.session.flush()
        return po

    po = run_in_transaction(_op)
    logger.info("Created purchase order %s (id=%s, total=%s)", po.order_number, po.id, po.total)
    return po


def update_purchase_order(
    po_id: int,
    *,
    supplier_id=None,
    items=None,
    expected_delivery=_UNSET,
    notes=_UNSET,
    status: str | None = None,
) -> PurchaseOrder:
    """
    Patch a purchase order.

    Only draft/sent orders can be edited unless the patch itself changes the
    status. Replacing items recomputes the total. The supplier total follows:
    - into cancelled: the old total leaves the old supplier
    - out of cancelled: the new total is added to the (new) supplier
    - supplier swap: old total leaves the old supplier, new total joins the new
    - otherwise: the difference is applied to the supplier
    """
    supplier_id = optional_int(supplier_id, "supplier_id")
    lines = parse_po_lines(items) if items is not None else None
    if status is not None and status not in PO_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(PO_STATUSES)}", {"status": status})
    if expected_delivery is not _UNSET:
        expected_delivery = optional_date(expected_delivery, "expected_delivery")

    def _op() -> PurchaseOrder:
        po = _get_locked_po(po_id)
        old_status = po.status

        if status is None:
            require(po_is_editable(po), "Only draft or sent purchase orders can be updated", po)
        else:
            require(
                po_can_transition(po, status),
                f"Purchase order cannot move from {old_status} to {status}",
                po,
                requested_status=status,
            )

        old_supplier_id = po.supplier_id
        old_total = Decimal(po.total)
        new_supplier_id = supplier_id or old_supplier_id
        supplier_changed = new_supplier_id != old_supplier_id

        # Lock both suppliers in ascending id order
        suppliers = {}
        for sid in sorted({old_supplier_id, new_supplier_id}):
            suppliers[sid] = get_locked_supplier(sid, require_active=(sid == new_supplier_id and supplier_changed))
        old_supplier = suppliers[old_supplier_id]
        new_supplier = suppliers[new_supplier_id]

        new_total = old_total
        if lines is not None:
            if po_has_receipts(po):
                raise InvalidState(
                    "Items cannot be replaced once receiving has started",
                    {"id": po.id, "status": po.status},
                )
            _require_active_products(lines)
            po.items.clear()
            # Old rows must be gone before the replacements hit the unique (po, product) key
            db.session.flush()
            new_total = _build_items(po, lines)
            po.subtotal = new_total
            po.total = new_total + Decimal(po.tax or 0)
            new_total = Decimal(po.total)

        is_cancelling = status == "cancelled" and old_status != "cancelled"
        is_uncancelling = old_status == "cancelled" and status is not None and status != "cancelled"

        if is_cancelling:
            adjust_supplier_purchases(old_supplier, -old_total)
        elif is_uncancelling:
            adjust_supplier_purchases(new_supplier, new_total)
        elif old_status == "cancelled":
            pass
        elif supplier_changed:
            adjust_supplier_purchases(old_supplier, -old_total)
            adjust_supplier_purchases(new_supplier, new_total)
        elif new_total != old_total:
            adjust_supplier_purchases(new_supplier, new_total - old_total)

        po.supplier_id = new_supplier_id
        if expected_delivery is not _UNSET:
            po.expected_delivery = expected_delivery
        if notes is not _UNSET:
            po.notes = notes
        if status is not None:
            po.status = status

        db.session.flush()
        return po

    po = run_in_transaction(_op)
    logger.info("Updated purchase order %s (status=%s, total=%s)", po.order_number, po.status, po.total)
    return po


def receive_purchase_order(po_id: int, *, items, notes: str | None = None) -> PurchaseOrder:
    """
    Receive some or all ordered quantities.

    Each line may not push quantity_received past the ordered quantity;
    zero-quantity lines are skipped, and a receipt where every line is zero
    raises NoItemsReceived. Status becomes received once every line is fully
    received, else partially_received.
    """
    lines = parse_receipt_lines(items)

    def _op() -> PurchaseOrder:
        po = _get_locked_po(po_id)
        if po.status == "received":
            raise InvalidState("Purchase order is already marked as received", {"id": po.id, "status": po.status})
        require(po_can_receive(po), "Purchase order cannot be received in its current status", po)

        by_product = {item.product_id: item for item in po.items}
        received_any = False

        for line in lines:
            item = by_product.get(line.product_id)
            if item is None:
                raise ValidationError(
                    f"Invalid product ID in items: {line.product_id}",
                    {"purchase_order_id": po.id, "product_id": line.product_id},
                )

            remaining = Decimal(item.quantity_remaining)
            if line.quantity_received > remaining:
                raise ValidationError(
                    f"Received quantity exceeds remaining quantity for product ID: {line.product_id}",
                    {
                        "purchase_order_id": po.id,
                        "product_id": line.product_id,
                        "ordered": float(item.quantity),
                        "already_received": float(item.quantity_received or 0),
                        "requested": float(line.quantity_received),
                    },
                )
            if line.quantity_received == 0:
                continue

            received_any = True
            item.quantity_received = Decimal(item.quantity_received or 0) + line.quantity_received
            item.item_condition = line.condition.value

            if line.condition == ItemCondition.GOOD:
                adjust_stock(
                    line.product_id,
                    line.quantity_received,
                    MovementType.PURCHASE,
                    reference=po.order_number,
                    reason="Purchase order received",
                    condition=line.condition,
                    require_active=False,
                )

        if not received_any:
            raise NoItemsReceived("No items were received", {"purchase_order_id": po.id})

        fully = all(Decimal(i.quantity_received) >= Decimal(i.quantity) for i in po.items)
        po.status = "received" if fully else "partially_received"
        if notes:
            po.notes = f"{po.notes}\n{notes}" if po.notes else notes

        db.session.flush()
        return po

    po = run_in_transaction(_op)
    logger.info("Received items on purchase order %s (status=%s)", po.order_number, po.status)
    return po


def delete_purchase_order(po_id: int) -> None:
    def _op() -> str:
        po = _get_locked_po(po_id)
        require(po_can_be_deleted(po), "Only draft purchase orders can be deleted", po)
        supplier = get_locked_supplier(po.supplier_id)
        adjust_supplier_purchases(supplier, -Decimal(po.total))
        order_number = po.order_number
        db.session.delete(po)
        return order_number

    order_number = run_in_transaction(_op)
    logger.info("Deleted purchase order %s", order_number)


def get_purchase_order(po_id: int) -> dict:
    po = db.session.get(PurchaseOrder, po_id)
    if po is None:
        raise NotFound("Purchase order not found", {"purchase_order_id": po_id})
    return po.to_dict()


def list_purchase_orders(
    *,
    supplier_id=None,
    status: str | None = None,
    start_date=None,
    end_date=None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(PurchaseOrder)
    supplier_id = optional_int(supplier_id, "supplier_id")
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    if status:
        query = query.filter(PurchaseOrder.status == status)
    start = optional_date(start_date, "start_date")
    end = optional_date(end_date, "end_date")
    if start:
        query = query.filter(PurchaseOrder.date >= start)
    if end:
        query = query.filter(PurchaseOrder.date <= end)
    if search:
        query = query.filter(PurchaseOrder.order_number.ilike(f"%{search}%"))

    query = query.order_by(PurchaseOrder.date.desc(), PurchaseOrder.id.desc())
    rows, pagination = paginate(query, page, per_page)
    return {"orders": [po.to_dict() for po in rows], "pagination": pagination}
