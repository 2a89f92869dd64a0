from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


def _num(value):
    return float(value) if value is not None else None


QUOTATION_STATUSES = ("draft", "sent", "accepted", "rejected")


class Quotation(db.Model):
    """
    Price quotation for a customer.

    No stock or balance side effects until it is converted into a sale.
    A quotation converts into at most one sale (converted_sale_id).
    """
    __tablename__ = "quotations"
    __table_args__ = (
        db.Index("ix_quotations_customer_status", "customer_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    quote_number = db.Column(db.String(32), nullable=False, unique=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    date = db.Column(db.Date, nullable=False)
    valid_until = db.Column(db.Date, nullable=False)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    notes = db.Column(db.Text, nullable=True)

    converted_sale_id = db.Column(db.Integer, nullable=True)
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("quotations", lazy=True))
    items = db.relationship(
        "QuotationItem",
        backref="quotation",
        lazy=True,
        order_by="QuotationItem.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Quotation id={self.id} quote_number={self.quote_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quote_number": self.quote_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "date": to_iso_date(self.date),
            "valid_until": to_iso_date(self.valid_until),
            "items": [item.to_dict() for item in self.items],
            "subtotal": _num(self.subtotal),
            "discount": _num(self.discount),
            "total": _num(self.total),
            "status": self.status,
            "notes": self.notes,
            "converted_sale_id": self.converted_sale_id,
            "converted_at": to_utc_z(self.converted_at),
            "created_at": to_utc_z(self.created_at),
        }


class QuotationItem(db.Model):
    __tablename__ = "quotation_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(14, 2), nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": _num(self.quantity),
            "unit_price": _num(self.unit_price),
            "total": _num(self.total),
        }
