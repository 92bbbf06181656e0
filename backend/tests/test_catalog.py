# Overview: Pytest coverage for SKUs, price tiers and unit price resolution.

import pytest

from distro.errors import NotFound, PermissionDenied, ValidationError
from distro.models import StockItem
from distro.roles import ROLE_ASM, ROLE_PLANT_ADMIN
from distro.services import catalog_service, distributor_service


class TestSkus:
    def test_add_sku_creates_empty_plant_stock_row(self, db_session, make_sku):
        sku = make_sku(name="Paneer 200g", price_cents=8500, tax_rate_bps=500)

        item = db_session.query(StockItem).filter_by(location_id="plant", sku_id=sku.id).one()
        assert item.quantity == 0
        assert item.reserved == 0
        assert sku.to_dict()["tax_rate_bps"] == 500

    def test_add_sku_requires_plant_admin(self, db_session):
        with pytest.raises(PermissionDenied):
            catalog_service.add_sku({"name": "Curd", "price_cents": 100}, ROLE_ASM)
        assert catalog_service.list_skus() == []

    def test_add_sku_rejects_negative_price(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.add_sku({"name": "Curd", "price_cents": -1}, ROLE_PLANT_ADMIN)

    def test_update_sku(self, db_session, sku):
        catalog_service.update_sku(sku.id, {"price_cents": 12000}, ROLE_PLANT_ADMIN)
        assert catalog_service.get_sku(sku.id).price_cents == 12000

    def test_get_missing_sku(self, db_session):
        with pytest.raises(NotFound) as exc:
            catalog_service.get_sku(999)
        assert exc.value.entity == "SKU"


class TestPriceTiers:
    def test_tier_override_wins_over_base_price(self, db_session, make_sku, make_distributor):
        ghee = make_sku(name="Ghee 1L", price_cents=10000)
        milk = make_sku(name="Milk 500ml", price_cents=3000)
        tier = catalog_service.add_price_tier({"name": "Wholesale"}, ROLE_PLANT_ADMIN)
        catalog_service.set_price_tier_items(
            tier.id, [{"sku_id": ghee.id, "price_cents": 9000}], ROLE_PLANT_ADMIN
        )
        distributor = make_distributor(price_tier_id=tier.id)

        assert catalog_service.resolve_unit_price(distributor, ghee.id) == 9000
        assert catalog_service.resolve_unit_price(distributor, milk.id) == 3000

    def test_no_tier_uses_base_price(self, db_session, sku, make_distributor):
        distributor = make_distributor()
        assert catalog_service.resolve_unit_price(distributor, sku.id) == sku.price_cents

    def test_set_items_replaces_override_set(self, db_session, make_sku):
        a = make_sku(name="A")
        b = make_sku(name="B")
        tier = catalog_service.add_price_tier({"name": "Retail"}, ROLE_PLANT_ADMIN)
        catalog_service.set_price_tier_items(tier.id, [{"sku_id": a.id, "price_cents": 1}], ROLE_PLANT_ADMIN)
        catalog_service.set_price_tier_items(tier.id, [{"sku_id": b.id, "price_cents": 2}], ROLE_PLANT_ADMIN)

        assert catalog_service.tier_prices(tier.id) == {b.id: 2}

    def test_delete_tier_unassigns_distributors(self, db_session, make_distributor):
        tier = catalog_service.add_price_tier({"name": "Special"}, ROLE_PLANT_ADMIN)
        make_distributor(price_tier_id=tier.id)

        catalog_service.delete_price_tier(tier.id, ROLE_PLANT_ADMIN)

        db_session.expire_all()
        assert distributor_service.list_distributors()[0].price_tier_id is None

    def test_tier_admin_is_role_gated(self, db_session):
        with pytest.raises(PermissionDenied):
            catalog_service.add_price_tier({"name": "X"}, ROLE_ASM)
