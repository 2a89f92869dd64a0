from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


def _num(value):
    return float(value) if value is not None else None


OUTSOURCING_STATUSES = ("pending", "ordered", "delivered", "cancelled")


class OutsourcingOrder(db.Model):
    """
    Order placed with a supplier to fulfil a product we do not take from stock.

    LIFECYCLE: pending -> ordered -> delivered | cancelled (both terminal).
    The delivered transition credits stock exactly once (movement type
    outsourcing_delivery). notes is an append-only, timestamped trail.
    """
    __tablename__ = "outsourcing_orders"
    __table_args__ = (
        db.Index("ix_outsourcing_supplier_status", "supplier_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    cost_per_unit = db.Column(db.Numeric(12, 2), nullable=False)
    total_cost = db.Column(db.Numeric(14, 2), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    notes = db.Column(db.Text, nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product")
    supplier = db.relationship("Supplier", backref=db.backref("outsourcing_orders", lazy=True))

    def __repr__(self) -> str:
        return f"<OutsourcingOrder id={self.id} order_number={self.order_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "sale_id": self.sale_id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "quantity": _num(self.quantity),
            "cost_per_unit": _num(self.cost_per_unit),
            "total_cost": _num(self.total_cost),
            "status": self.status,
            "notes": self.notes,
            "delivered_at": to_utc_z(self.delivered_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ExternalPurchase(db.Model):
    """
    Purchase made from a supplier on behalf of an outsourced sale line.

    reference is the sale's order number; source is free text supplied by the
    caller (e.g. "market", "partner shop").
    """
    __tablename__ = "external_purchases"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    cost_per_unit = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(14, 2), nullable=False)

    reference = db.Column(db.String(64), nullable=False)
    source = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "sale_item_id": self.sale_item_id,
            "supplier_id": self.supplier_id,
            "product_id": self.product_id,
            "quantity": _num(self.quantity),
            "cost_per_unit": _num(self.cost_per_unit),
            "total": _num(self.total),
            "reference": self.reference,
            "source": self.source,
            "notes": self.notes,
            "date": to_iso_date(self.date),
        }
