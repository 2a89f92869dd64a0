from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


def _num(value):
    return float(value) if value is not None else None


PO_STATUSES = ("draft", "sent", "confirmed", "partially_received", "received", "cancelled")


class PurchaseOrder(db.Model):
    """
    Purchase order against a supplier.

    LIFECYCLE:
    draft -> sent -> confirmed -> (partially_received)* -> received
    draft/sent -> cancelled

    The supplier's total_purchases includes this order's total from creation
    on (cancelled orders excluded); every status/total/supplier change keeps
    that aggregate in step.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_supplier_status", "supplier_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    date = db.Column(db.Date, nullable=False)
    expected_delivery = db.Column(db.Date, nullable=True)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    status = db.Column(db.String(24), nullable=False, default="draft", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    items = db.relationship(
        "PurchaseOrderItem",
        backref="purchase_order",
        lazy=True,
        order_by="PurchaseOrderItem.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} order_number={self.order_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "date": to_iso_date(self.date),
            "expected_delivery": to_iso_date(self.expected_delivery),
            "items": [item.to_dict() for item in self.items],
            "subtotal": _num(self.subtotal),
            "tax": _num(self.tax),
            "total": _num(self.total),
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseOrderItem(db.Model):
    """Ordered line. quantity_received only grows and never exceeds quantity."""
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "product_id", name="uq_po_items_po_product"),
        db.CheckConstraint("quantity_received <= quantity", name="ck_po_items_received_le_ordered"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(14, 2), nullable=False)

    quantity_received = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    item_condition = db.Column(db.String(16), nullable=False, default="good")

    product = db.relationship("Product")

    @property
    def quantity_remaining(self):
        return self.quantity - self.quantity_received

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": _num(self.quantity),
            "unit_price": _num(self.unit_price),
            "total": _num(self.total),
            "quantity_received": _num(self.quantity_received),
            "item_condition": self.item_condition,
        }
