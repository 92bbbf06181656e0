from __future__ import annotations

from ..extensions import db
from distro.time_utils import to_utc_z, utcnow


# Wallet transaction types
TX_RECHARGE = "RECHARGE"
TX_ORDER_PAYMENT = "ORDER_PAYMENT"
TX_TRANSFER_PAYMENT = "TRANSFER_PAYMENT"
TX_ORDER_REFUND = "ORDER_REFUND"
TX_RETURN_CREDIT = "RETURN_CREDIT"

PAYMENT_METHODS = ("Cash", "UPI", "Bank Transfer", "Credit")


class WalletTransaction(db.Model):
    """
    Wallet ledger row for exactly one account (distributor XOR store).

    amount_cents is signed (debits negative). balance_after_cents is the
    running sum of the account's rows ordered by (occurred_at, id).

    Rows are append-only. The single sanctioned in-place edit is the
    ORDER_PAYMENT amount of a pending order being edited, after which the
    whole account is replayed so every balance_after_cents stays consistent.
    """
    __tablename__ = "wallet_transactions"
    __table_args__ = (
        db.CheckConstraint(
            "(distributor_id IS NULL) <> (store_id IS NULL)",
            name="ck_wallet_tx_single_account",
        ),
        db.Index("ix_wallet_tx_distributor_occurred", "distributor_id", "occurred_at"),
        db.Index("ix_wallet_tx_store_occurred", "store_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    distributor_id = db.Column(db.Integer, db.ForeignKey("distributors.id"), nullable=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    type = db.Column(db.String(32), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    order_id = db.Column(db.Integer, nullable=True, index=True)
    transfer_id = db.Column(db.Integer, nullable=True, index=True)

    payment_method = db.Column(db.String(32), nullable=True)
    remarks = db.Column(db.Text, nullable=True)
    initiated_by = db.Column(db.String(120), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def account_type(self) -> str:
        return "Distributor" if self.distributor_id is not None else "Store"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "distributor_id": self.distributor_id,
            "store_id": self.store_id,
            "account_type": self.account_type,
            "occurred_at": to_utc_z(self.occurred_at),
            "type": self.type,
            "amount_cents": self.amount_cents,
            "balance_after_cents": self.balance_after_cents,
            "order_id": self.order_id,
            "transfer_id": self.transfer_id,
            "payment_method": self.payment_method,
            "remarks": self.remarks,
            "initiated_by": self.initiated_by,
        }
