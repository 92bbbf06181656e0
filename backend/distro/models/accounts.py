from __future__ import annotations

from ..extensions import db
from distro.time_utils import to_utc_z, utcnow


def store_location_id(store_id: int) -> str:
    """Stock location key for a store."""
    return f"store-{store_id}"


class Store(db.Model):
    """
    Company-operated store.

    A store is both a stock location (key "store-<id>") and a wallet
    account that pays for plant dispatches.

    wallet_balance_cents is a cache of the store's WalletTransaction
    ledger; it is never written directly by master-data updates.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_stores_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    location = db.Column(db.String(120), nullable=True)
    address_line1 = db.Column(db.String(255), nullable=True)
    address_line2 = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    gstin = db.Column(db.String(32), nullable=True)

    wallet_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def location_id(self) -> str:
        return store_location_id(self.id)

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "email": self.email,
            "phone": self.phone,
            "gstin": self.gstin,
            "location_id": self.location_id,
            "wallet_balance_cents": self.wallet_balance_cents,
            "created_at": to_utc_z(self.created_at),
        }


class Distributor(db.Model):
    """
    Distributor account.

    LOCATION:
    Orders are fulfilled from the assigned store when store_id is set,
    otherwise from the central plant.

    FUNDS:
    An order may be placed while total <= wallet_balance_cents + credit_limit_cents.
    wallet_balance_cents is a cache of the WalletTransaction ledger.
    """
    __tablename__ = "distributors"
    __table_args__ = (
        db.Index("ix_distributors_store", "store_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    state = db.Column(db.String(64), nullable=True)
    area = db.Column(db.String(120), nullable=True)
    gstin = db.Column(db.String(32), nullable=True)
    billing_address = db.Column(db.Text, nullable=True)
    asm_name = db.Column(db.String(120), nullable=True)
    executive_name = db.Column(db.String(120), nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    has_special_schemes = db.Column(db.Boolean, nullable=False, default=False)

    price_tier_id = db.Column(db.Integer, db.ForeignKey("price_tiers.id"), nullable=True, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True)

    wallet_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    date_added = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    store = db.relationship("Store", backref=db.backref("distributors", lazy=True))
    price_tier = db.relationship("PriceTier", backref=db.backref("distributors", lazy=True))

    def __repr__(self) -> str:
        return f"<Distributor id={self.id} name={self.name!r} store_id={self.store_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "state": self.state,
            "area": self.area,
            "gstin": self.gstin,
            "billing_address": self.billing_address,
            "asm_name": self.asm_name,
            "executive_name": self.executive_name,
            "credit_limit_cents": self.credit_limit_cents,
            "has_special_schemes": self.has_special_schemes,
            "price_tier_id": self.price_tier_id,
            "store_id": self.store_id,
            "wallet_balance_cents": self.wallet_balance_cents,
            "date_added": to_utc_z(self.date_added),
        }
