from __future__ import annotations

import enum

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


class MovementType(str, enum.Enum):
    """Closed vocabulary of stock movements written to the ledger."""

    SALE = "sale"
    PURCHASE = "purchase"
    ADJUSTMENT = "adjustment"
    RESTOCK = "restock"
    DAMAGE = "damage"
    RETURN = "return"
    OUTSOURCING_DELIVERY = "outsourcing_delivery"


class ItemCondition(str, enum.Enum):
    GOOD = "good"
    DAMAGED = "damaged"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class InventoryMovement(db.Model):
    """
    Stock ledger entry.

    INVARIANTS:
    - Append-only: rows are inserted by stock_service.adjust_stock and never
      updated or deleted (enforced by the mapper listeners below).
    - balance_after = balance_before + quantity
    - The latest entry's balance_after equals Product.stock.
    - quantity is signed: negative = decrease.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.CheckConstraint("balance_after >= 0", name="ck_movements_balance_non_negative"),
        db.Index("ix_movements_product_id_id", "product_id", "id"),
        db.Index("ix_movements_type_created", "movement_type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(
        db.Enum(
            MovementType,
            name="movement_type",
            native_enum=False,
            length=32,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )

    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    balance_before = db.Column(db.Numeric(14, 3), nullable=False)
    balance_after = db.Column(db.Numeric(14, 3), nullable=False)

    # Order number (ORD-/PO-/OUT-), ADJ-<id>, or free text
    reference = db.Column(db.String(128), nullable=True, index=True)
    reason = db.Column(db.String(255), nullable=True)

    condition = db.Column(
        db.Enum(
            ItemCondition,
            name="item_condition",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    def __repr__(self) -> str:
        return (
            f"<InventoryMovement id={self.id} product_id={self.product_id} "
            f"type={self.movement_type.value if self.movement_type else None} qty={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type.value if self.movement_type else None,
            "quantity": float(self.quantity),
            "balance_before": float(self.balance_before),
            "balance_after": float(self.balance_after),
            "reference": self.reference,
            "reason": self.reason,
            "condition": self.condition.value if self.condition else None,
            "created_at": to_utc_z(self.created_at),
        }


class LedgerImmutableError(RuntimeError):
    """Raised when code tries to rewrite or remove a ledger entry."""


@event.listens_for(InventoryMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise LedgerImmutableError(f"inventory movement {target.id} is append-only")


@event.listens_for(InventoryMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise LedgerImmutableError(f"inventory movement {target.id} is append-only")


class OrderSequence(db.Model):
    """
    Atomic per-scope order-number counters.

    One row per (scope, period), e.g. ("SALE", "20261019") or ("PO", "202610").
    Incremented with a single UPDATE inside the transaction that inserts the
    numbered row, so two concurrent creations serialize on the row lock.
    """
    __tablename__ = "order_sequences"
    __table_args__ = (
        db.UniqueConstraint("scope", "period", name="uq_order_sequences_scope_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(32), nullable=False)
    period = db.Column(db.String(16), nullable=False)
    last_value = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scope": self.scope,
            "period": self.period,
            "last_value": self.last_value,
            "updated_at": to_utc_z(self.updated_at),
        }
