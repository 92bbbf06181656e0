# Overview: Pytest coverage for plant -> store dispatches.

import pytest

from conftest import plant_item
from distro.errors import InsufficientStock, InvalidState, NotFound, ValidationError
from distro.models import StockLedgerEntry
from distro.services import stock_service, transfer_service


def line(sku, quantity):
    return {"sku_id": sku.id, "quantity": quantity}


class TestCreateTransfer:
    def test_create_reserves_plant_stock(self, db_session, sku, store, produce):
        produce(sku, 100)

        transfer = transfer_service.create_transfer(store.id, [line(sku, 30)], "plant.admin")

        assert transfer.status == "Pending"
        assert transfer.source_location_id == "plant"
        assert transfer.total_value_cents == 30 * 10000
        item = plant_item(sku)
        assert (item.quantity, item.reserved) == (100, 30)
        assert stock_service.get_stock_item(store.location_id, sku.id) is None

    def test_insufficient_plant_stock(self, db_session, sku, store, produce):
        produce(sku, 5)

        with pytest.raises(InsufficientStock) as exc:
            transfer_service.create_transfer(store.id, [line(sku, 6)], "plant.admin")
        assert (exc.value.location_id, exc.value.required, exc.value.available) == ("plant", 6, 5)
        assert transfer_service.list_transfers() == []

    def test_unknown_store(self, db_session, sku, produce):
        produce(sku, 5)
        with pytest.raises(NotFound):
            transfer_service.create_transfer(999, [line(sku, 1)], "plant.admin")


class TestDeliverTransfer:
    def test_delivery_moves_stock_with_paired_entries(self, db_session, clock, sku, store, produce):
        produce(sku, 100)
        transfer = transfer_service.create_transfer(store.id, [line(sku, 30)], "plant.admin")

        delivered = transfer_service.update_transfer_status(transfer.id, "Delivered", "driver")

        assert delivered.status == "Delivered"
        assert delivered.delivered_at == clock.now
        item = plant_item(sku)
        assert (item.quantity, item.reserved) == (70, 0)
        assert stock_service.get_stock_item(store.location_id, sku.id).quantity == 30

        entries = (
            db_session.query(StockLedgerEntry)
            .filter(StockLedgerEntry.transfer_id == transfer.id, StockLedgerEntry.movement_type != "RESERVED")
            .order_by(StockLedgerEntry.id)
            .all()
        )
        assert [(e.movement_type, e.location_id, e.quantity_change) for e in entries] == [
            ("TRANSFER_OUT", "plant", -30),
            ("TRANSFER_IN", store.location_id, 30),
        ]
        assert entries[0].occurred_at == entries[1].occurred_at

    def test_second_delivery_is_noop(self, db_session, sku, store, produce):
        produce(sku, 10)
        transfer = transfer_service.create_transfer(store.id, [line(sku, 10)], "plant.admin")
        transfer_service.mark_delivered(transfer.id, "driver")
        transfer_service.mark_delivered(transfer.id, "driver")

        assert plant_item(sku).quantity == 0
        assert stock_service.get_stock_item(store.location_id, sku.id).quantity == 10

    def test_cannot_move_back_to_pending(self, db_session, sku, store, produce):
        produce(sku, 10)
        transfer = transfer_service.create_transfer(store.id, [line(sku, 1)], "plant.admin")
        transfer_service.mark_delivered(transfer.id, "driver")

        with pytest.raises(InvalidState):
            transfer_service.update_transfer_status(transfer.id, "Pending", "driver")
        with pytest.raises(ValidationError):
            transfer_service.update_transfer_status(transfer.id, "Lost", "driver")

    def test_dispatch_note(self, db_session, sku, store, produce):
        produce(sku, 10)
        transfer = transfer_service.create_transfer(store.id, [line(sku, 4)], "plant.admin")

        note = transfer_service.get_dispatch_note_data(transfer.id)
        assert note["store"]["name"] == "Hyderabad Store"
        assert note["items"][0]["quantity"] == 4
        assert note["items"][0]["unit_price_cents"] == 10000
        assert stock_service.reconcile_stock() == []
