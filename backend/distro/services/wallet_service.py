# Overview: Service-layer operations for distributor and store wallets; append-only transaction ledger.

"""
Wallet Ledger

WHY: Money must never be double-spent or lost. Every balance change is a
WalletTransaction row; the account's wallet_balance_cents is a cache of the
running sum of its rows ordered by (occurred_at, id).

BALANCE POLICY:
- Appends at the chronological tail update the cache by delta and stamp
  balance_after_cents from it.
- Appends dated before the account's latest row (back-dated recharges) and
  in-place edits of an ORDER_PAYMENT amount trigger a full replay of the
  account: every balance_after_cents and the cache are recomputed.
- reconcile_wallets() compares every cache to a replay and reports drift.

The helpers below neither lock nor commit; engine operations call them
while holding the account's wallet lock inside one unit of work.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Distributor, Store, WalletTransaction
from ..models.notifications import NOTIFY_WALLET_LOW
from ..models.wallet import TX_ORDER_PAYMENT, TX_RECHARGE, PAYMENT_METHODS
from ..time_utils import parse_iso_datetime, utcnow
from .concurrency import atomic, engine_locks, lock_for_update, wallet_lock_key
from .notification_service import notify

logger = logging.getLogger(__name__)

ACCOUNT_DISTRIBUTOR = "distributor"
ACCOUNT_STORE = "store"


def distributor_wallet_key(distributor_id: int) -> tuple:
    return wallet_lock_key(ACCOUNT_DISTRIBUTOR, distributor_id)


def store_wallet_key(store_id: int) -> tuple:
    return wallet_lock_key(ACCOUNT_STORE, store_id)


def get_distributor(distributor_id: int, *, lock: bool = False) -> Distributor:
    q = db.session.query(Distributor).filter_by(id=distributor_id)
    if lock:
        q = lock_for_update(q)
    distributor = q.first()
    if distributor is None:
        raise NotFound("Distributor", distributor_id)
    return distributor


def get_store(store_id: int, *, lock: bool = False) -> Store:
    q = db.session.query(Store).filter_by(id=store_id)
    if lock:
        q = lock_for_update(q)
    store = q.first()
    if store is None:
        raise NotFound("Store", store_id)
    return store


def _account_filter(account):
    if isinstance(account, Distributor):
        return {"distributor_id": account.id}
    return {"store_id": account.id}


def _account_transactions(account) -> list[WalletTransaction]:
    return (
        db.session.query(WalletTransaction)
        .filter_by(**_account_filter(account))
        .order_by(WalletTransaction.occurred_at, WalletTransaction.id)
        .all()
    )


def _latest_occurred_at(account) -> datetime | None:
    return (
        db.session.query(db.func.max(WalletTransaction.occurred_at))
        .filter_by(**_account_filter(account))
        .scalar()
    )


def recalculate_wallet_ledger(account) -> int:
    """
    Replay an account's transactions in chronological order.

    Restamps every balance_after_cents and the cached balance. Returns the
    replayed balance.
    """
    db.session.flush()
    balance = 0
    for tx in _account_transactions(account):
        balance += tx.amount_cents
        tx.balance_after_cents = balance
    account.wallet_balance_cents = balance
    return balance


def replay_balance(account) -> int:
    """Balance derived from the ledger alone; writes nothing."""
    total = (
        db.session.query(db.func.coalesce(db.func.sum(WalletTransaction.amount_cents), 0))
        .filter_by(**_account_filter(account))
        .scalar()
    )
    return int(total)


def append_transaction(
    account,
    *,
    type: str,
    amount_cents: int,
    initiated_by: str,
    occurred_at: datetime | None = None,
    order_id: int | None = None,
    transfer_id: int | None = None,
    payment_method: str | None = None,
    remarks: str | None = None,
) -> WalletTransaction:
    """Append one signed transaction and keep the account cache consistent."""
    now = utcnow()
    occurred_at = occurred_at or now
    latest = _latest_occurred_at(account)

    tx = WalletTransaction(
        occurred_at=occurred_at,
        type=type,
        amount_cents=amount_cents,
        balance_after_cents=0,
        order_id=order_id,
        transfer_id=transfer_id,
        payment_method=payment_method,
        remarks=remarks,
        initiated_by=initiated_by,
        created_at=now,
        **_account_filter(account),
    )
    db.session.add(tx)

    if latest is not None and occurred_at < latest:
        recalculate_wallet_ledger(account)
    else:
        account.wallet_balance_cents += amount_cents
        tx.balance_after_cents = account.wallet_balance_cents
    return tx


def edit_transaction_amount(tx: WalletTransaction, account, amount_cents: int) -> None:
    """Rewrite a transaction's amount in place, then replay the whole account."""
    tx.amount_cents = amount_cents
    recalculate_wallet_ledger(account)


def find_order_payment(order_id: int) -> WalletTransaction | None:
    return (
        db.session.query(WalletTransaction)
        .filter_by(order_id=order_id, type=TX_ORDER_PAYMENT)
        .order_by(WalletTransaction.id)
        .first()
    )


# =============================================================================
# RECHARGE
# =============================================================================

def _validate_recharge(amount_cents, payment_method) -> None:
    if not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("Recharge amount must be a positive integer number of cents")
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method {payment_method!r}",
            allowed=list(PAYMENT_METHODS),
        )


def _as_datetime(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid date: {value!r}") from e


def recharge_wallet(
    distributor_id: int,
    amount_cents: int,
    actor: str,
    *,
    payment_method: str | None = None,
    remarks: str | None = None,
    occurred_at=None,
) -> WalletTransaction:
    """
    Credit a distributor wallet, optionally back-dated.

    A balance moving from <= 0 to > 0 publishes a replenished notice.
    """
    _validate_recharge(amount_cents, payment_method)
    occurred_at = _as_datetime(occurred_at)
    state = {}

    def _op():
        distributor = get_distributor(distributor_id, lock=True)
        state["before"] = distributor.wallet_balance_cents
        tx = append_transaction(
            distributor,
            type=TX_RECHARGE,
            amount_cents=amount_cents,
            initiated_by=actor,
            occurred_at=occurred_at,
            payment_method=payment_method,
            remarks=remarks,
        )
        state["after"] = distributor.wallet_balance_cents
        state["name"] = distributor.name
        return tx

    with engine_locks(distributor_wallet_key(distributor_id)):
        tx = atomic(_op)

    logger.info(
        "Wallet recharge for distributor %s: %s cents by %s (balance %s -> %s)",
        distributor_id, amount_cents, actor, state["before"], state["after"],
    )
    if state["before"] <= 0 < state["after"]:
        notify(NOTIFY_WALLET_LOW, f"Wallet for {state['name']} has been replenished.")
    return tx


def recharge_store_wallet(
    store_id: int,
    amount_cents: int,
    actor: str,
    *,
    payment_method: str | None = None,
    remarks: str | None = None,
    occurred_at=None,
) -> WalletTransaction:
    _validate_recharge(amount_cents, payment_method)
    occurred_at = _as_datetime(occurred_at)

    def _op():
        store = get_store(store_id, lock=True)
        return append_transaction(
            store,
            type=TX_RECHARGE,
            amount_cents=amount_cents,
            initiated_by=actor,
            occurred_at=occurred_at,
            payment_method=payment_method,
            remarks=remarks,
        )

    with engine_locks(store_wallet_key(store_id)):
        tx = atomic(_op)
    logger.info("Wallet recharge for store %s: %s cents by %s", store_id, amount_cents, actor)
    return tx


# =============================================================================
# QUERIES
# =============================================================================

def list_transactions(
    *,
    distributor_id: int | None = None,
    store_id: int | None = None,
) -> list[WalletTransaction]:
    q = db.session.query(WalletTransaction)
    if distributor_id is not None:
        q = q.filter_by(distributor_id=distributor_id)
    if store_id is not None:
        q = q.filter_by(store_id=store_id)
    return q.order_by(WalletTransaction.occurred_at.desc(), WalletTransaction.id.desc()).all()


def reconcile_wallets() -> list[dict]:
    """Accounts whose cached balance disagrees with their ledger replay."""
    drift = []
    accounts = db.session.query(Distributor).order_by(Distributor.id).all()
    accounts += db.session.query(Store).order_by(Store.id).all()
    for account in accounts:
        replayed = replay_balance(account)
        if replayed != account.wallet_balance_cents:
            drift.append({
                "account_type": ACCOUNT_DISTRIBUTOR if isinstance(account, Distributor) else ACCOUNT_STORE,
                "account_id": account.id,
                "cached_cents": account.wallet_balance_cents,
                "replayed_cents": replayed,
            })
    return drift
