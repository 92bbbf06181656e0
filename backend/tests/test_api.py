# Overview: Pytest coverage for the HTTP API; actor headers, error translation and an end-to-end flow.

from conftest import actor_headers
from distro.roles import ROLE_ASM


def create_sku(client, **overrides):
    body = {"name": "Ghee 1L", "price_cents": 10000, "tax_rate_bps": 1800, "hsn_code": "0405"}
    body.update(overrides)
    response = client.post("/api/skus", json=body, headers=actor_headers())
    assert response.status_code == 201
    return response.json


def onboard(client, name="Sri Balaji Agencies", **fields):
    response = client.post("/api/distributors", json={"name": name, **fields}, headers=actor_headers())
    assert response.status_code == 201
    return response.json


class TestActorHeaders:
    def test_missing_actor_is_401(self, client, db_session):
        response = client.post("/api/orders", json={})
        assert response.status_code == 401
        assert response.json["error"] == "ACTOR_REQUIRED"

    def test_unknown_role_is_400(self, client, db_session):
        response = client.post("/api/skus", json={}, headers={"X-Actor": "a", "X-Actor-Role": "Janitor"})
        assert response.status_code == 400

    def test_admin_route_rejects_other_roles(self, client, db_session):
        response = client.post(
            "/api/skus",
            json={"name": "Curd", "price_cents": 100},
            headers=actor_headers("asm.kiran", ROLE_ASM),
        )
        assert response.status_code == 403
        assert response.json["error"] == "PERMISSION_DENIED"


class TestErrorTranslation:
    def test_not_found(self, client, db_session):
        response = client.get("/api/orders/999")
        assert response.status_code == 404
        assert response.json["error"] == "NOT_FOUND"
        assert response.json["entity"] == "Order"

    def test_missing_fields(self, client, db_session):
        response = client.post("/api/orders", json={"items": []}, headers=actor_headers())
        assert response.status_code == 400
        assert response.json["missing"] == ["distributor_id"]

    def test_malformed_sku_id_is_400(self, client, db_session):
        response = client.post("/api/stock/production", json={"items": [{"quantity": 5}]}, headers=actor_headers())
        assert response.status_code == 400
        assert response.json["error"] == "VALIDATION_ERROR"

        response = client.post(
            "/api/orders",
            json={"distributor_id": 1, "items": [{"sku_id": "ghee", "quantity": 1}]},
            headers=actor_headers(),
        )
        assert response.status_code == 400

    def test_insufficient_funds_carries_numbers(self, client, db_session):
        sku = create_sku(client)
        distributor = onboard(client)
        client.post("/api/stock/production", json={"items": [{"sku_id": sku["id"], "quantity": 10}]},
                    headers=actor_headers())

        response = client.post(
            "/api/orders",
            json={"distributor_id": distributor["id"], "items": [{"sku_id": sku["id"], "quantity": 1}]},
            headers=actor_headers("exec.ravi", None),
        )

        assert response.status_code == 409
        assert response.json["error"] == "INSUFFICIENT_FUNDS"
        assert response.json["required_cents"] == 11800
        assert response.json["available_cents"] == 0


class TestOrderFlow:
    def test_place_deliver_return(self, client, db_session):
        sku = create_sku(client)
        distributor = onboard(client, credit_limit_cents=5000)
        response = client.post(
            "/api/stock/production",
            json={"items": [{"sku_id": sku["id"], "quantity": 10}]},
            headers=actor_headers(),
        )
        assert response.status_code == 201

        response = client.post(
            f"/api/wallet/distributors/{distributor['id']}/recharge",
            json={"amount_cents": 50000, "payment_method": "UPI"},
            headers=actor_headers(),
        )
        assert response.status_code == 201
        assert response.json["balance_after_cents"] == 50000

        response = client.post(
            "/api/orders",
            json={"distributor_id": distributor["id"], "items": [{"sku_id": sku["id"], "quantity": 3}]},
            headers=actor_headers("exec.ravi", None),
        )
        assert response.status_code == 201
        order = response.json
        assert order["total_amount_cents"] == 35400
        assert order["items"][0]["quantity"] == 3

        response = client.post(f"/api/orders/{order['id']}/status", json={"status": "Delivered"},
                               headers=actor_headers("driver", None))
        assert response.status_code == 200
        assert response.json["status"] == "Delivered"

        response = client.put(f"/api/orders/{order['id']}/items",
                              json={"items": [{"sku_id": sku["id"], "quantity": 1}]},
                              headers=actor_headers("exec.ravi", None))
        assert response.status_code == 409
        assert response.json["error"] == "INVALID_STATE"

        response = client.post(
            "/api/returns",
            json={"order_id": order["id"], "items": [{"sku_id": sku["id"], "quantity": 1}]},
            headers=actor_headers("exec.ravi", None),
        )
        assert response.status_code == 201
        return_id = response.json["id"]
        assert response.json["credit_amount_cents"] == 11800

        response = client.post(f"/api/returns/{return_id}/confirm", headers=actor_headers())
        assert response.status_code == 200
        response = client.post(f"/api/returns/{return_id}/confirm", headers=actor_headers())
        assert response.status_code == 409
        assert response.json["error"] == "ALREADY_PROCESSED"

        stock = client.get("/api/stock/plant").json
        assert [(row["quantity"], row["reserved"], row["available"]) for row in stock] == [(8, 0, 8)]
        assert client.get(f"/api/distributors/{distributor['id']}").json["wallet_balance_cents"] == 26400
        assert client.get("/api/stock/reconcile").json["ok"] is True
        assert client.get("/api/wallet/reconcile").json["ok"] is True

    def test_notifications_feed_lists_recorded_events(self, client, db_session, sink):
        onboard(client, name="Lakshmi Traders")
        assert sink.published[-1]["message"] == 'New distributor "Lakshmi Traders" onboarded.'
        assert client.get("/api/notifications").status_code == 200


class TestSystem:
    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json["checks"]["database"]["status"] == "healthy"

    def test_version_reports_plant_location(self, client, db_session):
        assert client.get("/version").json["plant_location_id"] == "plant"
