# Overview: The stock mutator and ledger reads; the only writer of Product.stock.

"""
Stock & ledger invariants (authoritative)

- Product.stock is a cached projection of SUM(inventory_movements.quantity).
- adjust_stock() is the ONLY code path that writes Product.stock. It always
  appends exactly one InventoryMovement in the same flush, so a stock change
  without its ledger row (or the reverse) cannot be persisted.
- balance_after = balance_before + quantity, and the newest entry's
  balance_after equals Product.stock.
- Stock never goes below zero; a decrease that would is rejected before
  anything is written.
- adjust_stock() never commits. The calling engine owns the transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ..errors import NotFound, InsufficientStock, ValidationError
from ..extensions import db
from ..models import Product, InventoryMovement, MovementType, ItemCondition
from ..time_utils import start_of_day, end_of_day_exclusive
from ..validation import to_decimal, optional_date, QTY_QUANT
from .concurrency import lock_for_update, run_in_transaction
from .pagination import paginate


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockChange:
    product_id: int
    balance_before: Decimal
    balance_after: Decimal
    movement: InventoryMovement


def get_locked_product(product_id: int, *, require_active: bool = True) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise NotFound("Product not found", {"product_id": product_id})
    if require_active and not product.is_active:
        raise NotFound(
            f"Product '{product.name}' is inactive",
            {"product_id": product_id, "status": product.status},
        )
    return product


def lock_products(product_ids) -> dict[int, Product]:
    """Lock every product in ascending id order (one global lock order avoids deadlocks)."""
    ids = sorted({int(pid) for pid in product_ids})
    if not ids:
        return {}
    rows = (
        lock_for_update(db.session.query(Product).filter(Product.id.in_(ids)))
        .order_by(Product.id.asc())
        .all()
    )
    return {p.id: p for p in rows}


def adjust_stock(
    product_id: int,
    delta,
    movement_type: MovementType | str,
    *,
    reference: str | None = None,
    reason: str | None = None,
    condition: ItemCondition | str | None = None,
    require_active: bool = True,
) -> StockChange:
    """
    Apply a signed stock delta to one product and append its ledger entry.

    Raises NotFound when the product is missing (or inactive, unless
    require_active=False) and InsufficientStock when the result would be
    negative. Flushes, never commits.
    """
    delta = to_decimal(delta, "quantity").quantize(QTY_QUANT)
    if delta == 0:
        raise ValidationError("Stock adjustment quantity cannot be zero", {"product_id": product_id})

    movement_type = MovementType(movement_type)
    if condition is not None:
        condition = ItemCondition(condition)

    product = get_locked_product(product_id, require_active=require_active)

    balance_before = Decimal(product.stock or 0).quantize(QTY_QUANT)
    balance_after = balance_before + delta
    if balance_after < 0:
        logger.warning(
            "Rejected %s of %s for product %s: only %s on hand",
            movement_type.value, -delta, product_id, balance_before,
        )
        raise InsufficientStock(
            f"Insufficient stock for {product.name}",
            {
                "product_id": product.id,
                "product_name": product.name,
                "available": float(balance_before),
                "requested": float(-delta),
            },
        )

    product.stock = balance_after
    movement = InventoryMovement(
        product_id=product.id,
        movement_type=movement_type,
        quantity=delta,
        balance_before=balance_before,
        balance_after=balance_after,
        reference=reference,
        reason=reason,
        condition=condition,
    )
    db.session.add(movement)
    db.session.flush()

    return StockChange(
        product_id=product.id,
        balance_before=balance_before,
        balance_after=balance_after,
        movement=movement,
    )


# Manual movement types and the sign each one accepts
_MANUAL_TYPES = {
    MovementType.ADJUSTMENT: None,
    MovementType.RESTOCK: 1,
    MovementType.DAMAGE: -1,
}


def adjust_inventory(
    product_id: int,
    quantity,
    movement_type: str = "adjustment",
    *,
    reason: str | None = None,
    reference: str | None = None,
) -> dict:
    """
    Manual stock movement (stock count corrections, restocks, write-offs).

    quantity is signed: restock must be positive, damage negative,
    adjustment either way.
    """
    try:
        kind = MovementType(movement_type)
    except ValueError:
        kind = None
    if kind not in _MANUAL_TYPES:
        raise ValidationError(
            "movement_type must be one of: adjustment, restock, damage",
            {"movement_type": movement_type},
        )

    delta = to_decimal(quantity, "quantity").quantize(QTY_QUANT)
    sign = _MANUAL_TYPES[kind]
    if sign is not None and delta * sign <= 0:
        raise ValidationError(
            f"{kind.value} quantity must be {'positive' if sign > 0 else 'negative'}",
            {"quantity": float(delta)},
        )

    def _op():
        change = adjust_stock(
            product_id,
            delta,
            kind,
            reference=reference,
            reason=reason or "Manual stock adjustment",
            require_active=False,
        )
        return change.movement.to_dict()

    result = run_in_transaction(_op)
    logger.info("Manual %s of %s on product %s", kind.value, delta, product_id)
    return result


def list_movements(
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    start_date=None,
    end_date=None,
    sort: str = "desc",
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(InventoryMovement)

    if product_id is not None:
        query = query.filter(InventoryMovement.product_id == product_id)
    if movement_type:
        try:
            query = query.filter(InventoryMovement.movement_type == MovementType(movement_type))
        except ValueError:
            raise ValidationError("Unknown movement_type", {"movement_type": movement_type})

    start = optional_date(start_date, "start_date")
    end = optional_date(end_date, "end_date")
    if start:
        query = query.filter(InventoryMovement.created_at >= start_of_day(start))
    if end:
        query = query.filter(InventoryMovement.created_at < end_of_day_exclusive(end))

    if sort == "asc":
        query = query.order_by(InventoryMovement.id.asc())
    else:
        query = query.order_by(InventoryMovement.id.desc())

    rows, pagination = paginate(query, page, per_page)
    return {"movements": [m.to_dict() for m in rows], "pagination": pagination}


def verify_ledger(product_id: int | None = None) -> dict:
    """
    Replay the ledger per product from an opening balance of 0.

    Reports every entry whose balance_before does not continue the chain or
    whose balance_after != balance_before + quantity, and every product whose
    cached stock differs from the replayed balance.
    """
    products_query = db.session.query(Product).order_by(Product.id.asc())
    if product_id is not None:
        products_query = products_query.filter(Product.id == product_id)

    issues = []
    checked = 0
    for product in products_query.all():
        checked += 1
        running = Decimal("0")
        movements = (
            db.session.query(InventoryMovement)
            .filter(InventoryMovement.product_id == product.id)
            .order_by(InventoryMovement.id.asc())
            .all()
        )
        for m in movements:
            before = Decimal(m.balance_before)
            after = Decimal(m.balance_after)
            qty = Decimal(m.quantity)
            if before != running:
                issues.append({
                    "product_id": product.id,
                    "movement_id": m.id,
                    "problem": "chain_break",
                    "expected_before": float(running),
                    "balance_before": float(before),
                })
            if after != before + qty:
                issues.append({
                    "product_id": product.id,
                    "movement_id": m.id,
                    "problem": "bad_arithmetic",
                    "balance_before": float(before),
                    "quantity": float(qty),
                    "balance_after": float(after),
                })
            running += qty

        stock = Decimal(product.stock or 0)
        if stock != running:
            issues.append({
                "product_id": product.id,
                "problem": "stock_mismatch",
                "stock": float(stock),
                "replayed": float(running),
            })

    return {"products_checked": checked, "ok": not issues, "issues": issues}
