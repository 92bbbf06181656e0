# Overview: Pytest coverage for scheme evaluation and scheme administration.

"""
Scheme Tests

- Greedy largest-threshold-first freebie evaluation
- Scope union (global + store + distributor) and the special-schemes flag
- Stop and reactivate lifecycle
"""

from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from distro.errors import PermissionDenied, ValidationError
from distro.models.notifications import NOTIFY_NEW_SCHEME
from distro.roles import ROLE_EXECUTIVE, ROLE_PLANT_ADMIN
from distro.services import scheme_service
from distro.services.scheme_service import evaluate_freebies


TODAY = date(2026, 10, 18)


def rule(buy_sku, buy_qty, get_sku, get_qty):
    return SimpleNamespace(buy_sku_id=buy_sku, buy_quantity=buy_qty, get_sku_id=get_sku, get_quantity=get_qty)


def scheme_data(buy, get, **overrides):
    data = {
        "description": f"Buy {buy.name}",
        "buy_sku_id": buy.id,
        "buy_quantity": 10,
        "get_sku_id": get.id,
        "get_quantity": 1,
        "start_date": (TODAY - timedelta(days=1)).isoformat(),
        "end_date": (TODAY + timedelta(days=30)).isoformat(),
    }
    data.update(overrides)
    return data


class TestEvaluateFreebies:
    def test_single_threshold(self):
        assert evaluate_freebies([rule(1, 100, 1, 10)], {1: 250}) == {1: 20}

    def test_largest_threshold_first_then_remainder(self):
        rules = [rule(1, 10, 2, 1), rule(1, 100, 2, 10), rule(1, 50, 2, 4)]
        # 275 = 2 x 100 + 1 x 50 + 2 x 10 + 5
        assert evaluate_freebies(rules, {1: 275}) == {2: 26}

    def test_below_threshold_gives_nothing(self):
        assert evaluate_freebies([rule(1, 10, 2, 1)], {1: 9}) == {}

    def test_rewards_accumulate_across_buy_skus(self):
        rules = [rule(1, 5, 3, 1), rule(2, 2, 3, 1)]
        assert evaluate_freebies(rules, {1: 10, 2: 3}) == {3: 3}

    def test_unrelated_skus_ignored(self):
        assert evaluate_freebies([rule(1, 1, 2, 1)], {7: 100}) == {}


class TestApplicability:
    def test_scope_union(self, db_session, make_sku, make_store, make_distributor):
        ghee = make_sku(name="Ghee")
        store = make_store()
        distributor = make_distributor(store_id=store.id, has_special_schemes=True)
        other_store = make_store(name="Other Store")

        g = scheme_service.add_scheme(scheme_data(ghee, ghee), ROLE_PLANT_ADMIN)
        s = scheme_service.add_scheme(
            scheme_data(ghee, ghee, scope="STORE", store_id=store.id), ROLE_PLANT_ADMIN
        )
        d = scheme_service.add_scheme(
            scheme_data(ghee, ghee, scope="DISTRIBUTOR", distributor_id=distributor.id), ROLE_PLANT_ADMIN
        )
        scheme_service.add_scheme(
            scheme_data(ghee, ghee, scope="STORE", store_id=other_store.id), ROLE_PLANT_ADMIN
        )

        ids = {scheme.id for scheme in scheme_service.applicable_schemes(distributor, TODAY)}
        assert ids == {g.id, s.id, d.id}

    def test_distributor_scope_requires_special_flag(self, db_session, sku, make_distributor):
        distributor = make_distributor(has_special_schemes=False)
        scheme_service.add_scheme(
            scheme_data(sku, sku, scope="DISTRIBUTOR", distributor_id=distributor.id), ROLE_PLANT_ADMIN
        )
        assert scheme_service.applicable_schemes(distributor, TODAY) == []

    def test_date_window_is_inclusive(self, db_session, sku, make_distributor):
        distributor = make_distributor()
        scheme_service.add_scheme(
            scheme_data(sku, sku, start_date="2026-10-18", end_date="2026-10-18"), ROLE_PLANT_ADMIN
        )
        assert len(scheme_service.applicable_schemes(distributor, TODAY)) == 1
        assert scheme_service.applicable_schemes(distributor, TODAY + timedelta(days=1)) == []

    def test_compute_freebies_uses_applicable_schemes(self, db_session, make_sku, make_distributor):
        ghee = make_sku(name="Ghee")
        curd = make_sku(name="Curd")
        distributor = make_distributor()
        scheme_service.add_scheme(scheme_data(ghee, curd, buy_quantity=5, get_quantity=2), ROLE_PLANT_ADMIN)

        assert scheme_service.compute_freebies(distributor, {ghee.id: 12}, TODAY) == {curd.id: 4}


class TestAdministration:
    def test_add_scheme_is_role_gated(self, db_session, sku):
        with pytest.raises(PermissionDenied):
            scheme_service.add_scheme(scheme_data(sku, sku), ROLE_EXECUTIVE)

    def test_end_before_start_rejected(self, db_session, sku):
        with pytest.raises(ValidationError):
            scheme_service.add_scheme(
                scheme_data(sku, sku, start_date="2026-10-20", end_date="2026-10-19"), ROLE_PLANT_ADMIN
            )

    def test_store_scope_needs_store(self, db_session, sku):
        with pytest.raises(ValidationError):
            scheme_service.add_scheme(scheme_data(sku, sku, scope="STORE"), ROLE_PLANT_ADMIN)

    def test_stop_then_reactivate(self, db_session, sku, make_distributor, sink):
        distributor = make_distributor()
        scheme = scheme_service.add_scheme(scheme_data(sku, sku), ROLE_PLANT_ADMIN)

        stopped = scheme_service.stop_scheme(scheme.id, "plant.admin", ROLE_PLANT_ADMIN)
        assert stopped.end_date == TODAY
        assert stopped.stopped_by == "plant.admin"
        assert scheme_service.applicable_schemes(distributor, TODAY) == []

        new_end = TODAY + timedelta(days=10)
        reactivated = scheme_service.reactivate_scheme(scheme.id, new_end.isoformat(), "plant.admin", ROLE_PLANT_ADMIN)
        assert reactivated.end_date == new_end
        assert reactivated.stopped_by is None
        assert reactivated.stopped_at is None
        assert [s.id for s in scheme_service.applicable_schemes(distributor, TODAY)] == [scheme.id]
        assert sink.types()[-1] == NOTIFY_NEW_SCHEME

    def test_stop_leaves_naturally_ended_scheme_alone(self, db_session, sku):
        scheme = scheme_service.add_scheme(
            scheme_data(sku, sku, start_date="2026-09-01", end_date="2026-09-30"), ROLE_PLANT_ADMIN
        )
        stopped = scheme_service.stop_scheme(scheme.id, "plant.admin", ROLE_PLANT_ADMIN)
        assert stopped.end_date == date(2026, 9, 30)
        assert stopped.stopped_at is None
