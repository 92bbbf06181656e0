# Overview: Pytest coverage for distributor returns.

import pytest

from conftest import plant_item
from distro.errors import AlreadyProcessed, ExceedsReturnable, ValidationError
from distro.models import StockLedgerEntry, WalletTransaction
from distro.models.wallet import TX_RETURN_CREDIT
from distro.roles import ROLE_PLANT_ADMIN
from distro.services import (
    catalog_service,
    order_service,
    return_service,
    scheme_service,
    stock_service,
    transfer_service,
    wallet_service,
)


def line(sku, quantity):
    return {"sku_id": sku.id, "quantity": quantity}


@pytest.fixture
def delivered_order(sku, make_distributor, produce):
    """Five units delivered from the plant; wallet left at 41000."""
    distributor = make_distributor(balance_cents=100000)
    produce(sku, 10)
    order = order_service.place_order(distributor.id, [line(sku, 5)], "exec.ravi")
    order_service.update_order_status(order.id, "Delivered", "driver")
    return order


def balance(order):
    return wallet_service.get_distributor(order.distributor_id).wallet_balance_cents


class TestInitiate:
    def test_pending_return_moves_nothing(self, db_session, sku, delivered_order):
        order_return = return_service.initiate_return(
            delivered_order.id, [line(sku, 2)], "exec.ravi", remarks="Damaged"
        )

        assert order_return.status == "PENDING"
        assert order_return.credit_amount_cents == 23600
        assert order_return.remarks == "Damaged"
        assert plant_item(sku).quantity == 5
        assert balance(delivered_order) == 41000

    def test_exceeds_returnable(self, db_session, sku, delivered_order):
        with pytest.raises(ExceedsReturnable) as exc:
            return_service.initiate_return(delivered_order.id, [line(sku, 6)], "exec.ravi")
        assert (exc.value.requested, exc.value.returnable) == (6, 5)
        assert return_service.list_returns() == []

    def test_freebie_lines_are_not_returnable(self, db_session, make_sku, make_distributor, produce):
        ghee = make_sku(name="Ghee")
        curd = make_sku(name="Curd")
        scheme_service.add_scheme({
            "description": "Ghee with free curd",
            "buy_sku_id": ghee.id,
            "buy_quantity": 1,
            "get_sku_id": curd.id,
            "get_quantity": 1,
            "start_date": "2026-10-01",
            "end_date": "2026-10-31",
        }, ROLE_PLANT_ADMIN)
        distributor = make_distributor(balance_cents=100000)
        produce(ghee, 5)
        produce(curd, 5)
        order = order_service.place_order(distributor.id, [line(ghee, 1)], "exec.ravi")

        with pytest.raises(ValidationError):
            return_service.initiate_return(order.id, [line(curd, 1)], "exec.ravi")

    def test_credit_uses_price_at_order_time(self, db_session, sku, delivered_order):
        catalog_service.update_sku(sku.id, {"price_cents": 50000}, ROLE_PLANT_ADMIN)

        order_return = return_service.initiate_return(delivered_order.id, [line(sku, 1)], "exec.ravi")
        assert order_return.credit_amount_cents == 11800


class TestConfirm:
    def test_confirm_restocks_and_credits(self, db_session, clock, sku, delivered_order):
        order_return = return_service.initiate_return(delivered_order.id, [line(sku, 2)], "exec.ravi")

        confirmed = return_service.confirm_return(order_return.id, "plant.admin")

        assert confirmed.status == "CONFIRMED"
        assert confirmed.confirmed_by == "plant.admin"
        assert confirmed.confirmed_at == clock.now
        assert plant_item(sku).quantity == 7
        assert plant_item(sku).reserved == 0
        assert balance(delivered_order) == 64600
        item = order_service.list_order_items(delivered_order.id)[0]
        assert item.returned_quantity == 2

        credit = db_session.query(WalletTransaction).filter_by(type=TX_RETURN_CREDIT).one()
        assert credit.amount_cents == 23600
        assert credit.remarks == f"Credit for return {order_return.id}"
        entry = db_session.query(StockLedgerEntry).filter_by(return_id=order_return.id).one()
        assert (entry.movement_type, entry.quantity_change, entry.order_id) == ("RETURN", 2, delivered_order.id)

    def test_confirm_twice_is_already_processed(self, db_session, sku, delivered_order):
        order_return = return_service.initiate_return(delivered_order.id, [line(sku, 2)], "exec.ravi")
        return_service.confirm_return(order_return.id, "plant.admin")

        with pytest.raises(AlreadyProcessed):
            return_service.confirm_return(order_return.id, "plant.admin")
        assert plant_item(sku).quantity == 7
        assert balance(delivered_order) == 64600

    def test_returnable_shrinks_after_confirmation(self, db_session, sku, delivered_order):
        first = return_service.initiate_return(delivered_order.id, [line(sku, 2)], "exec.ravi")
        return_service.confirm_return(first.id, "plant.admin")

        with pytest.raises(ExceedsReturnable) as exc:
            return_service.initiate_return(delivered_order.id, [line(sku, 4)], "exec.ravi")
        assert exc.value.returnable == 3

    def test_competing_pending_returns_recheck_on_confirm(self, db_session, sku, delivered_order):
        first = return_service.initiate_return(delivered_order.id, [line(sku, 3)], "exec.ravi")
        second = return_service.initiate_return(delivered_order.id, [line(sku, 3)], "exec.ravi")
        return_service.confirm_return(first.id, "plant.admin")

        with pytest.raises(ExceedsReturnable):
            return_service.confirm_return(second.id, "plant.admin")
        assert return_service.get_return(second.id).status == "PENDING"
        assert [r.id for r in return_service.list_returns(status="PENDING")] == [second.id]

    def test_return_goes_back_to_order_location(self, db_session, sku, store, make_distributor, produce):
        produce(sku, 10)
        transfer = transfer_service.create_transfer(store.id, [line(sku, 10)], "plant.admin")
        transfer_service.mark_delivered(transfer.id, "driver")
        distributor = make_distributor(balance_cents=100000, store_id=store.id)
        order = order_service.place_order(distributor.id, [line(sku, 4)], "exec.ravi")
        order_service.update_order_status(order.id, "Delivered", "driver")

        order_return = return_service.initiate_return(order.id, [line(sku, 1)], "exec.ravi")
        return_service.confirm_return(order_return.id, "store.admin")

        store_item = stock_service.get_stock_item(store.location_id, sku.id)
        assert store_item.quantity == 7
        assert plant_item(sku).quantity == 0

    def test_list_returns_rejects_unknown_status(self, db_session):
        with pytest.raises(ValidationError):
            return_service.list_returns(status="DONE")
