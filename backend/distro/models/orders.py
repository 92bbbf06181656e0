from __future__ import annotations

from ..extensions import db
from distro.time_utils import to_utc_z, utcnow


# Order status constants
ORDER_STATUS_PENDING = "Pending"
ORDER_STATUS_DELIVERED = "Delivered"
ORDER_STATUSES = (ORDER_STATUS_PENDING, ORDER_STATUS_DELIVERED)

# Return status constants
RETURN_STATUS_PENDING = "PENDING"
RETURN_STATUS_CONFIRMED = "CONFIRMED"


class Order(db.Model):
    """
    Distributor order.

    LIFECYCLE:
    1. Pending: wallet debited, stock reserved at location_id
    2. Delivered: reservation consumed as a SALE

    location_id is resolved once at placement (assigned store, else plant)
    so later reassignment of the distributor cannot move the reservation.

    total_amount_cents is tax-inclusive and equals the sum over paid lines of
    quantity * unit_price * (1 + tax), rounded half-up to the cent once.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_distributor_date", "distributor_id", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    distributor_id = db.Column(db.Integer, db.ForeignKey("distributors.id"), nullable=False, index=True)
    location_id = db.Column(db.String(32), nullable=False)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)

    placed_by = db.Column(db.String(120), nullable=False)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_by = db.Column(db.String(120), nullable=True)

    distributor = db.relationship("Distributor", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} distributor_id={self.distributor_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "distributor_id": self.distributor_id,
            "location_id": self.location_id,
            "order_date": to_utc_z(self.order_date),
            "total_amount_cents": self.total_amount_cents,
            "status": self.status,
            "placed_by": self.placed_by,
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "delivered_by": self.delivered_by,
        }


class OrderItem(db.Model):
    """
    Priced order line.

    Freebie lines carry unit_price_cents = 0 and are never returnable.
    tax_rate_bps is the SKU rate at pricing time, so return credits mirror
    the original charge.

    INVARIANT: returned_quantity <= quantity.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("returned_quantity <= quantity", name="ck_order_items_returned_le_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    sku_id = db.Column(db.Integer, db.ForeignKey("skus.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    is_freebie = db.Column(db.Boolean, nullable=False, default=False)
    returned_quantity = db.Column(db.Integer, nullable=False, default=0)

    sku = db.relationship("SKU")

    @property
    def returnable_quantity(self) -> int:
        if self.is_freebie:
            return 0
        return self.quantity - self.returned_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "sku_id": self.sku_id,
            "sku_name": self.sku.name if self.sku else None,
            "hsn_code": self.sku.hsn_code if self.sku else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "is_freebie": self.is_freebie,
            "returned_quantity": self.returned_quantity,
        }


class OrderReturn(db.Model):
    """
    Distributor return against an order.

    LIFECYCLE:
    1. PENDING: credit computed, nothing moved yet
    2. CONFIRMED: stock restored, wallet credited (terminal, one-way)

    order_id is a plain reference: a confirmed return stays on record
    after its order is deleted.
    """
    __tablename__ = "order_returns"
    __table_args__ = (
        db.Index("ix_order_returns_status_initiated", "status", "initiated_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, nullable=False, index=True)
    distributor_id = db.Column(db.Integer, db.ForeignKey("distributors.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=RETURN_STATUS_PENDING, index=True)
    remarks = db.Column(db.Text, nullable=True)
    credit_amount_cents = db.Column(db.Integer, nullable=False)

    initiated_by = db.Column(db.String(120), nullable=False)
    initiated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    confirmed_by = db.Column(db.String(120), nullable=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    distributor = db.relationship("Distributor")
    items = db.relationship(
        "OrderReturnItem",
        backref="order_return",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderReturnItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "distributor_id": self.distributor_id,
            "distributor_name": self.distributor.name if self.distributor else None,
            "status": self.status,
            "remarks": self.remarks,
            "credit_amount_cents": self.credit_amount_cents,
            "initiated_by": self.initiated_by,
            "initiated_at": to_utc_z(self.initiated_at),
            "confirmed_by": self.confirmed_by,
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
            "items": [item.to_dict() for item in self.items],
        }


class OrderReturnItem(db.Model):
    __tablename__ = "order_return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("order_returns.id"), nullable=False, index=True)
    sku_id = db.Column(db.Integer, db.ForeignKey("skus.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    sku = db.relationship("SKU")

    def to_dict(self) -> dict:
        return {
            "sku_id": self.sku_id,
            "sku_name": self.sku.name if self.sku else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "tax_rate_bps": self.tax_rate_bps,
        }
