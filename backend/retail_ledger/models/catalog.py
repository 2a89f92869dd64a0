from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


def _num(value):
    return float(value) if value is not None else None


class Product(db.Model):
    """
    Catalog product.

    STOCK OWNERSHIP:
    Product.stock is a cached projection of SUM(inventory_movements.quantity)
    for the product. It is written ONLY by services.stock_service.adjust_stock,
    which appends the matching InventoryMovement in the same flush.
    Every other column belongs to the catalog module.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)

    stock = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    cost_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # active | inactive
    status = db.Column(db.String(16), nullable=False, default="active")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "stock": _num(self.stock),
            "cost_price": _num(self.cost_price),
            "price": _num(self.price),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Supplier(db.Model):
    """
    Supplier master data.

    total_purchases is the accounts-payable aggregate: it grows when a
    purchase order is created (not when it is received) and when an
    outsourced sale line is bought from the supplier.
    """
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True, unique=True)
    email = db.Column(db.String(255), nullable=True, unique=True)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)
    total_purchases = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "phone": self.phone,
            "email": self.email,
            "status": self.status,
            "total_purchases": _num(self.total_purchases),
        }


class Customer(db.Model):
    """
    Customer master data with accounts-receivable fields.

    credit_limit NULL means no limit is configured.
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True, unique=True)
    email = db.Column(db.String(255), nullable=True, unique=True)

    credit_limit = db.Column(db.Numeric(14, 2), nullable=True)
    current_balance = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_purchases = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "credit_limit": _num(self.credit_limit),
            "current_balance": _num(self.current_balance),
            "total_purchases": _num(self.total_purchases),
        }


class Payment(db.Model):
    """
    Customer payment record.

    Written by the core when a credit sale is moved to another payment
    method: the outstanding amount is considered settled by that method.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "amount": _num(self.amount),
            "payment_method": self.payment_method,
            "reference": self.reference,
            "notes": self.notes,
            "date": to_iso_date(self.date),
            "created_at": to_utc_z(self.created_at),
        }
