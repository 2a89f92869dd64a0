from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


def _num(value):
    return float(value) if value is not None else None


SALE_STATUSES = ("pending", "completed", "cancelled")
PAYMENT_METHODS = ("cash", "credit", "bank_transfer", "cheque", "other")


class Sale(db.Model):
    """
    Sale (customer order).

    LIFECYCLE:
    - Created directly as completed (no separate confirm step).
    - Partial returns any number of times while completed.
    - Full reversal once: status -> cancelled (terminal).

    customer_id NULL = walk-in.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_date", "status", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    date = db.Column(db.Date, nullable=False)
    time = db.Column(db.Time, nullable=False)
    due_date = db.Column(db.Date, nullable=True)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    notes = db.Column(db.Text, nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    # Set when the sale came from a quotation conversion
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id"), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        order_by="SaleItem.id",
        cascade="all, delete-orphan",
    )
    adjustments = db.relationship(
        "SaleAdjustment",
        backref="sale",
        lazy=True,
        order_by="SaleAdjustment.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Sale id={self.id} order_number={self.order_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "date": to_iso_date(self.date),
            "time": self.time.strftime("%H:%M:%S") if self.time else None,
            "due_date": to_iso_date(self.due_date),
            "subtotal": _num(self.subtotal),
            "discount": _num(self.discount),
            "tax": _num(self.tax),
            "total": _num(self.total),
            "payment_method": self.payment_method,
            "status": self.status,
            "notes": self.notes,
            "cancel_reason": self.cancel_reason,
            "quotation_id": self.quotation_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            # Lines fully returned stay on record but are no longer "held" by the customer
            data["items"] = [item.to_dict() for item in self.items if item.quantity > 0]
        return data


class SaleItem(db.Model):
    """
    Sale line.

    QUANTITY COUNTERS:
    - original_quantity: sold quantity, never changes
    - quantity: what the customer still holds (reduced in place by returns)
    - quantity_returned: original_quantity - quantity
    - quantity_restocked: how much of this line went back into on-hand stock
      (returns with restock, full reversal). Reversal only restocks what has
      not been restocked already.

    cost_at_sale is captured when the line is written and never recomputed
    from the current catalog cost.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_sale_items_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    original_quantity = db.Column(db.Numeric(14, 3), nullable=False)
    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    quantity_returned = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    quantity_restocked = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(14, 2), nullable=False)

    cost_at_sale = db.Column(db.Numeric(12, 2), nullable=True)

    is_outsourced = db.Column(db.Boolean, nullable=False, default=False)
    outsourcing_supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True)
    outsourcing_cost_per_unit = db.Column(db.Numeric(12, 2), nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "original_quantity": _num(self.original_quantity),
            "quantity": _num(self.quantity),
            "quantity_returned": _num(self.quantity_returned),
            "quantity_restocked": _num(self.quantity_restocked),
            "unit_price": _num(self.unit_price),
            "total": _num(self.total),
            "cost_at_sale": _num(self.cost_at_sale),
            "is_outsourced": self.is_outsourced,
            "outsourcing_supplier_id": self.outsourcing_supplier_id,
            "outsourcing_cost_per_unit": _num(self.outsourcing_cost_per_unit),
        }


class SaleAdjustment(db.Model):
    """
    Post-sale adjustment document.

    type:
    - return: partial line-level return (any number per sale)
    - full_reversal: cancellation of the whole sale (at most one per sale)
    """
    __tablename__ = "sale_adjustments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False, index=True)
    reason = db.Column(db.String(255), nullable=True)
    refund_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    restock_items = db.Column(db.Boolean, nullable=False, default=False)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "SaleAdjustmentItem",
        backref="adjustment",
        lazy=True,
        order_by="SaleAdjustmentItem.id",
        cascade="all, delete-orphan",
    )

    @property
    def reference(self) -> str:
        """Ledger reference for stock movements caused by this adjustment."""
        return f"ADJ-{self.id}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "type": self.type,
            "reason": self.reason,
            "refund_amount": _num(self.refund_amount),
            "restock_items": self.restock_items,
            "processed_at": to_utc_z(self.processed_at),
            "items": [item.to_dict() for item in self.items],
        }


class SaleAdjustmentItem(db.Model):
    __tablename__ = "sale_adjustment_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    adjustment_id = db.Column(db.Integer, db.ForeignKey("sale_adjustments.id"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    restocked = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "adjustment_id": self.adjustment_id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "quantity": _num(self.quantity),
            "reason": self.reason,
            "restocked": self.restocked,
        }


class ProfitRecord(db.Model):
    """
    Per-line profit snapshot consumed by reporting.

    is_approximate marks rows whose cogs fell back to the catalog cost at
    write time because no cost was captured on the sale line.
    """
    __tablename__ = "profit_records"
    __table_args__ = (
        db.Index("ix_profit_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    reference_id = db.Column(db.Integer, nullable=False)
    reference_type = db.Column(db.String(16), nullable=False, default="sale")
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=True, unique=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    revenue = db.Column(db.Numeric(14, 2), nullable=False)
    cogs = db.Column(db.Numeric(14, 2), nullable=False)
    profit = db.Column(db.Numeric(14, 2), nullable=False)
    is_approximate = db.Column(db.Boolean, nullable=False, default=False)
    sale_date = db.Column(db.Date, nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference_id": self.reference_id,
            "reference_type": self.reference_type,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "revenue": _num(self.revenue),
            "cogs": _num(self.cogs),
            "profit": _num(self.profit),
            "is_approximate": self.is_approximate,
            "sale_date": to_iso_date(self.sale_date),
        }
