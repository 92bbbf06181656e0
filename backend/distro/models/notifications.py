from __future__ import annotations

from ..extensions import db
from distro.time_utils import to_utc_z, utcnow


NOTIFY_WALLET_LOW = "WALLET_LOW"
NOTIFY_ORDER_PLACED = "ORDER_PLACED"
NOTIFY_ORDER_FAILED = "ORDER_FAILED"
NOTIFY_NEW_SCHEME = "NEW_SCHEME"
NOTIFY_DISTRIBUTOR_ADDED = "DISTRIBUTOR_ADDED"


class Notification(db.Model):
    """Back-office notification feed entry."""
    __tablename__ = "notifications"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(32), nullable=False, index=True)
    message = db.Column(db.String(500), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "message": self.message,
            "created_at": to_utc_z(self.created_at),
            "is_read": self.is_read,
        }
