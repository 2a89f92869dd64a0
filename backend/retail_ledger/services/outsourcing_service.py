# Overview: Outsourcing orders and external purchases for lines fulfilled by suppliers.

from __future__ import annotations

import logging
from decimal import Decimal

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import OutsourcingOrder, ExternalPurchase, Sale, SaleItem, Product, MovementType
from ..models.outsourcing import OUTSOURCING_STATUSES
from ..time_utils import utcnow, today, note_timestamp, start_of_day, end_of_day_exclusive
from ..validation import money, quantity as parse_quantity, require_int, optional_int, optional_date
from .account_service import get_locked_supplier, adjust_supplier_purchases
from .concurrency import lock_for_update, run_in_transaction
from .lifecycle_service import require, outsourcing_can_transition
from .pagination import paginate
from .sequence_service import next_order_number
from .stock_service import adjust_stock


logger = logging.getLogger(__name__)


def append_note(existing: str | None, note: str | None) -> str | None:
    """Append a timestamped line to a note trail; earlier lines are never rewritten."""
    if not note:
        return existing
    line = f"{note_timestamp()}: {note}"
    return f"{existing}\n{line}" if existing else line


def open_outsourcing_order(
    *,
    product: Product,
    supplier,
    quantity: Decimal,
    cost_per_unit: Decimal,
    sale: Sale | None = None,
    sale_item: SaleItem | None = None,
    notes: str | None = None,
) -> OutsourcingOrder:
    """Insert a pending outsourcing order inside the caller's transaction."""
    order = OutsourcingOrder(
        order_number=next_order_number("outsourcing"),
        sale_id=sale.id if sale else None,
        sale_item_id=sale_item.id if sale_item else None,
        product_id=product.id,
        supplier_id=supplier.id,
        quantity=quantity,
        cost_per_unit=cost_per_unit,
        total_cost=money(quantity * cost_per_unit, "total_cost"),
        status="pending",
        notes=append_note(None, notes),
    )
    db.session.add(order)
    db.session.flush()
    return order


def record_external_purchase(
    *,
    sale: Sale,
    sale_item: SaleItem,
    supplier,
    product: Product,
    quantity: Decimal,
    cost_per_unit: Decimal,
    source: str | None = None,
    notes: str | None = None,
) -> ExternalPurchase:
    """Record what was bought from the supplier for an outsourced line and grow its payable total."""
    total = money(quantity * cost_per_unit, "total")
    purchase = ExternalPurchase(
        sale_id=sale.id,
        sale_item_id=sale_item.id,
        supplier_id=supplier.id,
        product_id=product.id,
        quantity=quantity,
        cost_per_unit=cost_per_unit,
        total=total,
        reference=sale.order_number,
        source=source,
        notes=notes,
        date=today(),
    )
    db.session.add(purchase)
    adjust_supplier_purchases(supplier, total)
    db.session.flush()
    return purchase


def cancel_open_orders_for_sale(sale: Sale, note: str) -> list[OutsourcingOrder]:
    """Cancel the sale's undelivered outsourcing orders inside the caller's transaction."""
    orders = lock_for_update(
        db.session.query(OutsourcingOrder)
        .filter(OutsourcingOrder.sale_id == sale.id)
        .order_by(OutsourcingOrder.id)
    ).all()
    cancelled = []
    for order in orders:
        if not outsourcing_can_transition(order, "cancelled"):
            continue
        order.status = "cancelled"
        order.notes = append_note(order.notes, note)
        cancelled.append(order)
    return cancelled


def create_outsourcing_order(
    *,
    product_id,
    supplier_id,
    quantity,
    cost_per_unit,
    sale_id=None,
    sale_item_id=None,
    notes: str | None = None,
) -> OutsourcingOrder:
    product_id = require_int(product_id, "product_id")
    supplier_id = require_int(supplier_id, "supplier_id")
    qty = parse_quantity(quantity)
    cost = money(cost_per_unit, "cost_per_unit")
    sale_id = optional_int(sale_id, "sale_id")
    sale_item_id = optional_int(sale_item_id, "sale_item_id")

    def _op() -> OutsourcingOrder:
        product = db.session.get(Product, product_id)
        if product is None or not product.is_active:
            raise NotFound("Product not found", {"product_id": product_id})
        supplier = get_locked_supplier(supplier_id)

        sale = None
        sale_item = None
        if sale_id is not None:
            sale = db.session.get(Sale, sale_id)
            if sale is None:
                raise NotFound("Order not found", {"sale_id": sale_id})
        if sale_item_id is not None:
            sale_item = db.session.get(SaleItem, sale_item_id)
            if sale_item is None or (sale is not None and sale_item.sale_id != sale.id):
                raise NotFound("Sale item not found", {"sale_item_id": sale_item_id, "sale_id": sale_id})

        return open_outsourcing_order(
            product=product,
            supplier=supplier,
            quantity=qty,
            cost_per_unit=cost,
            sale=sale,
            sale_item=sale_item,
            notes=notes,
        )

    order = run_in_transaction(_op)
    logger.info("Created outsourcing order %s (id=%s)", order.order_number, order.id)
    return order


def update_outsourcing_status(order_id: int, status: str, notes: str | None = None) -> OutsourcingOrder:
    """
    Move an outsourcing order along its lifecycle.

    The first transition into delivered credits the ordered quantity to stock
    (movement type outsourcing_delivery). delivered and cancelled are final.
    """
    if status not in OUTSOURCING_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(OUTSOURCING_STATUSES)}",
            {"status": status},
        )

    def _op() -> OutsourcingOrder:
        order = lock_for_update(db.session.query(OutsourcingOrder).filter_by(id=order_id)).first()
        if order is None:
            raise NotFound("Outsourcing order not found", {"outsourcing_order_id": order_id})
        require(
            outsourcing_can_transition(order, status),
            f"Outsourcing order cannot move from {order.status} to {status}",
            order,
            requested_status=status,
        )

        if status == "delivered" and order.status != "delivered":
            adjust_stock(
                order.product_id,
                order.quantity,
                MovementType.OUTSOURCING_DELIVERY,
                reference=order.order_number,
                reason="Outsourcing delivery",
                require_active=False,
            )
            order.delivered_at = utcnow()

        order.status = status
        order.notes = append_note(order.notes, notes)
        return order

    order = run_in_transaction(_op)
    logger.info("Outsourcing order %s status -> %s", order.order_number, status)
    return order


def get_outsourcing_order(order_id: int) -> dict:
    order = db.session.get(OutsourcingOrder, order_id)
    if order is None:
        raise NotFound("Outsourcing order not found", {"outsourcing_order_id": order_id})
    return order.to_dict()


def list_outsourcing_orders(
    *,
    status: str | None = None,
    supplier_id=None,
    start_date=None,
    end_date=None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(OutsourcingOrder)
    if status:
        query = query.filter(OutsourcingOrder.status == status)
    supplier_id = optional_int(supplier_id, "supplier_id")
    if supplier_id is not None:
        query = query.filter(OutsourcingOrder.supplier_id == supplier_id)
    start = optional_date(start_date, "start_date")
    end = optional_date(end_date, "end_date")
    if start:
        query = query.filter(OutsourcingOrder.created_at >= start_of_day(start))
    if end:
        query = query.filter(OutsourcingOrder.created_at < end_of_day_exclusive(end))

    query = query.order_by(OutsourcingOrder.id.desc())
    rows, pagination = paginate(query, page, per_page)
    return {"orders": [o.to_dict() for o in rows], "pagination": pagination}
