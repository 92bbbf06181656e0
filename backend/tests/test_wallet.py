# Overview: Pytest coverage for the wallet ledger; recharges, back-dating and reconciliation.

"""
Wallet Ledger Tests

- Tail appends stamp running balances by delta
- Back-dated recharges replay the whole account
- Replenished notice fires only when crossing from <= 0 to > 0
- Cached balances reconcile against ledger replays
"""

from datetime import timedelta

import pytest

from conftest import START
from distro.errors import NotFound, ValidationError
from distro.models.notifications import NOTIFY_WALLET_LOW
from distro.services import order_service, wallet_service


def replenished(sink):
    return [n for n in sink.published if n["type"] == NOTIFY_WALLET_LOW]


class TestRecharge:
    def test_recharge_appends_and_updates_balance(self, db_session, make_distributor):
        distributor = make_distributor()

        tx = wallet_service.recharge_wallet(distributor.id, 5000, "plant.admin", payment_method="UPI", remarks="NEFT")

        assert tx.type == "RECHARGE"
        assert tx.amount_cents == 5000
        assert tx.balance_after_cents == 5000
        assert tx.payment_method == "UPI"
        assert wallet_service.get_distributor(distributor.id).wallet_balance_cents == 5000

    def test_recharge_validation(self, db_session, make_distributor):
        distributor = make_distributor()
        with pytest.raises(ValidationError):
            wallet_service.recharge_wallet(distributor.id, 0, "plant.admin")
        with pytest.raises(ValidationError):
            wallet_service.recharge_wallet(distributor.id, 100, "plant.admin", payment_method="Cheque")
        with pytest.raises(NotFound):
            wallet_service.recharge_wallet(999, 100, "plant.admin")

    def test_back_dated_recharge_replays_balances(self, db_session, clock, sku, make_distributor, produce):
        distributor = make_distributor(balance_cents=50000)
        produce(sku, 10)
        clock.advance(timedelta(hours=1))
        order = order_service.place_order(distributor.id, [{"sku_id": sku.id, "quantity": 2}], "exec.ravi")
        assert wallet_service.find_order_payment(order.id).balance_after_cents == 26400

        wallet_service.recharge_wallet(
            distributor.id, 10000, "plant.admin", occurred_at=(START - timedelta(days=1)).isoformat()
        )

        history = list(reversed(wallet_service.list_transactions(distributor_id=distributor.id)))
        assert [(tx.amount_cents, tx.balance_after_cents) for tx in history] == [
            (10000, 10000),
            (50000, 60000),
            (-23600, 36400),
        ]
        assert wallet_service.get_distributor(distributor.id).wallet_balance_cents == 36400
        assert wallet_service.reconcile_wallets() == []

    def test_store_wallet_recharge(self, db_session, store):
        tx = wallet_service.recharge_store_wallet(store.id, 7000, "plant.admin", payment_method="Cash")

        assert tx.store_id == store.id
        assert tx.distributor_id is None
        assert wallet_service.get_store(store.id).wallet_balance_cents == 7000
        assert [t.id for t in wallet_service.list_transactions(store_id=store.id)] == [tx.id]


class TestReplenishedNotice:
    def test_first_credit_from_zero_notifies(self, db_session, make_distributor, sink):
        distributor = make_distributor()
        wallet_service.recharge_wallet(distributor.id, 100, "plant.admin")
        wallet_service.recharge_wallet(distributor.id, 100, "plant.admin")

        notices = replenished(sink)
        assert [n["message"] for n in notices] == ["Wallet for Sri Balaji Agencies has been replenished."]

    def test_only_crossing_above_zero_notifies(self, db_session, sku, make_distributor, produce, sink):
        distributor = make_distributor(credit_limit_cents=20000)
        produce(sku, 10)
        order_service.place_order(distributor.id, [{"sku_id": sku.id, "quantity": 1}], "exec.ravi")

        wallet_service.recharge_wallet(distributor.id, 5000, "plant.admin")
        assert replenished(sink) == []

        wallet_service.recharge_wallet(distributor.id, 7000, "plant.admin")
        assert wallet_service.get_distributor(distributor.id).wallet_balance_cents == 200
        assert len(replenished(sink)) == 1


class TestReconcile:
    def test_drift_is_reported(self, db_session, make_distributor):
        distributor = make_distributor(balance_cents=5000)
        row = wallet_service.get_distributor(distributor.id)
        row.wallet_balance_cents = 4000
        db_session.commit()

        assert wallet_service.reconcile_wallets() == [{
            "account_type": "distributor",
            "account_id": distributor.id,
            "cached_cents": 4000,
            "replayed_cents": 5000,
        }]

    def test_recalculate_repairs_drift(self, db_session, make_distributor):
        distributor = make_distributor(balance_cents=5000)
        row = wallet_service.get_distributor(distributor.id)
        row.wallet_balance_cents = 1
        db_session.commit()

        assert wallet_service.recalculate_wallet_ledger(row) == 5000
        db_session.commit()
        assert wallet_service.reconcile_wallets() == []
