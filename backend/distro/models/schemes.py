from __future__ import annotations

from ..extensions import db
from distro.time_utils import to_utc_z, utcnow


SCHEME_SCOPE_GLOBAL = "GLOBAL"
SCHEME_SCOPE_STORE = "STORE"
SCHEME_SCOPE_DISTRIBUTOR = "DISTRIBUTOR"
SCHEME_SCOPES = (SCHEME_SCOPE_GLOBAL, SCHEME_SCOPE_STORE, SCHEME_SCOPE_DISTRIBUTOR)


class Scheme(db.Model):
    """
    Buy-X-get-Y promotional rule.

    SCOPE:
    - GLOBAL: applies to every distributor
    - STORE: applies to distributors assigned to store_id
    - DISTRIBUTOR: applies to distributor_id, only while that distributor
      is flagged has_special_schemes

    ACTIVITY:
    Active on a date d iff start_date <= d <= end_date and stopped_at is NULL.
    Stopping sets end_date to the stop date and stamps stopped_by/stopped_at;
    reactivation sets a new end_date and clears both stamps.
    """
    __tablename__ = "schemes"
    __table_args__ = (
        db.CheckConstraint("buy_quantity > 0", name="ck_schemes_buy_quantity_positive"),
        db.CheckConstraint("get_quantity > 0", name="ck_schemes_get_quantity_positive"),
        db.Index("ix_schemes_scope_dates", "scope", "start_date", "end_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(255), nullable=False)

    buy_sku_id = db.Column(db.Integer, db.ForeignKey("skus.id"), nullable=False, index=True)
    buy_quantity = db.Column(db.Integer, nullable=False)
    get_sku_id = db.Column(db.Integer, db.ForeignKey("skus.id"), nullable=False)
    get_quantity = db.Column(db.Integer, nullable=False)

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)

    scope = db.Column(db.String(16), nullable=False, default=SCHEME_SCOPE_GLOBAL)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)
    distributor_id = db.Column(db.Integer, db.ForeignKey("distributors.id"), nullable=True, index=True)

    stopped_by = db.Column(db.String(120), nullable=True)
    stopped_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def is_global(self) -> bool:
        return self.scope == SCHEME_SCOPE_GLOBAL

    def is_active_on(self, as_of) -> bool:
        return self.stopped_at is None and self.start_date <= as_of <= self.end_date

    def __repr__(self) -> str:
        return (
            f"<Scheme id={self.id} buy={self.buy_quantity}x{self.buy_sku_id} "
            f"get={self.get_quantity}x{self.get_sku_id} scope={self.scope}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "buy_sku_id": self.buy_sku_id,
            "buy_quantity": self.buy_quantity,
            "get_sku_id": self.get_sku_id,
            "get_quantity": self.get_quantity,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "scope": self.scope,
            "store_id": self.store_id,
            "distributor_id": self.distributor_id,
            "stopped_by": self.stopped_by,
            "stopped_at": to_utc_z(self.stopped_at) if self.stopped_at else None,
            "created_at": to_utc_z(self.created_at),
        }
