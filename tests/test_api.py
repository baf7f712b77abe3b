"""Tests for the FastAPI REST API."""

import pytest
from fastapi.testclient import TestClient

import grocer.api
from grocer.api import create_app
from grocer.config import Settings


def as_user(user_id: str) -> dict:
    return {"X-User-Id": user_id}


ADMIN = as_user("admin")
COURIER = as_user("courier1")
OTHER_COURIER = as_user("courier2")
CUSTOMER = as_user("cust1")


@pytest.fixture
def client(service):
    app = create_app(service=service, settings=Settings(_env_file=None, load_demo_data=False))
    return TestClient(app)


@pytest.fixture
def order_id(client):
    response = client.post(
        "/api/orders",
        json={"items": [{"product_id": "P1", "quantity": 3}], "delivery_time": "2024-01-15 10:00"},
        headers=CUSTOMER,
    )
    assert response.status_code == 201
    return response.json()["id"]


class TestHealthAndAuth:
    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["products"] == 2

    def test_login(self, client):
        response = client.post("/api/login", json={"username": "customer1", "password": "pw"})

        assert response.status_code == 200
        assert response.json()["id"] == "cust1"
        assert "password_hash" not in response.json()

    def test_login_bad_password(self, client):
        response = client.post("/api/login", json={"username": "customer1", "password": "nope"})

        assert response.status_code == 401
        assert response.json()["error_type"] == "AuthenticationError"

    def test_missing_identity(self, client):
        assert client.get("/api/orders").status_code == 401

    def test_unknown_identity(self, client):
        assert client.get("/api/orders", headers=as_user("ghost")).status_code == 401

    def test_me(self, client):
        response = client.get("/api/users/me", headers=COURIER)
        assert response.json()["community_id"] == "c1"


class TestProductEndpoints:
    def test_list_is_public(self, client):
        response = client.get("/api/products")

        assert response.status_code == 200
        assert response.json()["count"] == 2

    def test_get_unknown_product(self, client):
        response = client.get("/api/products/nope")

        assert response.status_code == 404
        assert response.json()["error_type"] == "ProductNotFoundError"

    def test_create_requires_admin(self, client):
        body = {"name": "Eggs", "category": "Eggs", "price": 12.0, "unit": "500g", "stock": 5}

        assert client.post("/api/products", json=body, headers=CUSTOMER).status_code == 403
        response = client.post("/api/products", json=body, headers=ADMIN)
        assert response.status_code == 201
        assert response.json()["stock"] == 5

    def test_create_rejects_negative_price(self, client):
        body = {"name": "Eggs", "category": "Eggs", "price": -1, "unit": "500g"}
        assert client.post("/api/products", json=body, headers=ADMIN).status_code == 400

    def test_adjust_stock(self, client):
        response = client.put(
            "/api/products/P1/stock", json={"new_stock": 25, "reason": "delivery"}, headers=ADMIN
        )
        assert response.status_code == 200
        assert response.json()["stock"] == 25

        movements = client.get("/api/stock-movements", params={"product_id": "P1"}, headers=ADMIN).json()
        latest = movements["movements"][0]
        assert latest["type"] == "in"
        assert latest["quantity"] == 15
        assert latest["user_id"] == "admin"

    def test_adjust_stock_negative(self, client):
        response = client.put(
            "/api/products/P1/stock", json={"new_stock": -1, "reason": "oops"}, headers=ADMIN
        )
        assert response.status_code == 400

    def test_batch_stock(self, client):
        response = client.post(
            "/api/products/batch-stock",
            json={"adjustments": [
                {"product_id": "P1", "new_stock": 3},
                {"product_id": "ghost", "new_stock": 3},
            ]},
            headers=ADMIN,
        )

        assert response.status_code == 200
        assert response.json()["succeeded"] == ["P1"]
        assert response.json()["failed"] == ["ghost"]

    def test_low_stock(self, client):
        response = client.get("/api/products/low-stock", params={"threshold": 5}, headers=ADMIN)
        assert [p["id"] for p in response.json()["products"]] == ["P2"]

    def test_update_product_stock(self, client):
        response = client.patch("/api/products/P2", json={"stock": 5}, headers=ADMIN)

        assert response.status_code == 200
        latest = client.get("/api/stock-movements", headers=ADMIN).json()["movements"][0]
        assert latest["type"] == "adjustment"
        assert latest["quantity"] == 3

    def test_delete_product(self, client):
        assert client.delete("/api/products/P2", headers=ADMIN).status_code == 200
        assert client.get("/api/products/P2").status_code == 404


class TestOrderEndpoints:
    def test_create_order(self, client, order_id):
        order = client.get(f"/api/orders/{order_id}", headers=CUSTOMER).json()

        assert order["status"] == "pending"
        assert order["total_amount"] == 25.5
        assert order["customer_address"] == "Building 1, Room 101"
        assert client.get("/api/products/P1").json()["stock"] == 7

    def test_insufficient_stock_conflict(self, client):
        response = client.post(
            "/api/orders",
            json={
                "items": [{"product_id": "P1", "quantity": 3}, {"product_id": "P2", "quantity": 5}],
                "delivery_time": "2024-01-15 10:00",
            },
            headers=CUSTOMER,
        )

        assert response.status_code == 409
        assert response.json()["error_type"] == "InsufficientStockError"
        assert client.get("/api/products/P1").json()["stock"] == 10

    def test_only_customers_order(self, client):
        response = client.post(
            "/api/orders",
            json={"items": [{"product_id": "P1", "quantity": 1}], "delivery_time": "10:00"},
            headers=COURIER,
        )
        assert response.status_code == 403

    def test_delivery_flow(self, client, order_id):
        accepted = client.post(f"/api/orders/{order_id}/accept", headers=COURIER)
        assert accepted.status_code == 200
        assert accepted.json()["delivery_person_name"] == "Zhang Courier"

        assert client.post(f"/api/orders/{order_id}/start-delivery", headers=COURIER).json()["status"] == "delivering"
        assert client.post(f"/api/orders/{order_id}/complete", headers=COURIER).json()["status"] == "completed"

        response = client.post(f"/api/orders/{order_id}/cancel", headers=CUSTOMER)
        assert response.status_code == 409
        assert response.json()["error_type"] == "InvalidTransitionError"

        history = client.get(f"/api/orders/{order_id}/history", headers=CUSTOMER).json()
        assert [h["status"] for h in history] == ["pending", "accepted", "delivering", "completed"]

    def test_other_community_cannot_accept(self, client, order_id):
        assert client.post(f"/api/orders/{order_id}/accept", headers=OTHER_COURIER).status_code == 403

    def test_second_accept_conflicts(self, client, service, order_id):
        service.users.add_user(
            user_id="courier3", username="courier3", password="pw", role="delivery",
            name="Zhao Courier", community_id="c1",
        )
        assert client.post(f"/api/orders/{order_id}/accept", headers=COURIER).status_code == 200
        assert client.post(f"/api/orders/{order_id}/accept", headers=as_user("courier3")).status_code == 409

    def test_cancel_and_confirm(self, client, order_id):
        response = client.post(f"/api/orders/{order_id}/cancel", headers=CUSTOMER)
        assert response.json()["status"] == "cancelled"
        assert client.get("/api/products/P1").json()["stock"] == 10

        response = client.post(f"/api/orders/{order_id}/confirm-cancel", headers=COURIER)
        assert response.status_code == 200
        assert client.get("/api/products/P1").json()["stock"] == 10

    def test_customer_sees_only_own_orders(self, client, service, order_id):
        service.users.add_user(
            user_id="cust2", username="customer2", password="pw", role="customer",
            name="Chen", address="Room 9", community_id="c1",
        )

        assert client.get("/api/orders", headers=as_user("cust2")).json()["count"] == 0
        assert client.get(f"/api/orders/{order_id}", headers=as_user("cust2")).status_code == 403
        assert client.get("/api/orders", headers=CUSTOMER).json()["count"] == 1

    def test_delivery_sees_community_orders(self, client, order_id):
        assert client.get("/api/orders", headers=COURIER).json()["count"] == 1
        assert client.get("/api/orders", headers=OTHER_COURIER).json()["count"] == 0

    def test_filter_by_status(self, client, order_id):
        assert client.get("/api/orders", params={"status": "pending"}, headers=ADMIN).json()["count"] == 1

        response = client.get("/api/orders", params={"status": "lost"}, headers=ADMIN)
        assert response.status_code == 400
        assert response.json()["error_type"] == "InvalidStatusError"

    def test_unknown_order(self, client):
        assert client.post("/api/orders/nope/accept", headers=COURIER).status_code == 404

    def test_batch_status(self, client, order_id):
        response = client.post(
            "/api/orders/batch-status",
            json={"order_ids": [order_id, "nope"], "status": "accepted", "staff_id": "courier1"},
            headers=ADMIN,
        )

        assert response.status_code == 200
        assert response.json()["succeeded"] == [order_id]
        assert response.json()["failed"] == ["nope"]

    def test_batch_status_rejects_customer_as_staff(self, client, order_id):
        response = client.post(
            "/api/orders/batch-status",
            json={"order_ids": [order_id], "status": "accepted", "staff_id": "cust1"},
            headers=ADMIN,
        )
        assert response.status_code == 400

    def test_statistics(self, client, order_id):
        stats = client.get("/api/orders/statistics", headers=ADMIN).json()
        assert stats["total"] == 1
        assert stats["pending"] == 1


class TestDirectoryEndpoints:
    def test_create_community(self, client):
        response = client.post(
            "/api/communities", json={"name": "Lakeside", "address": "3 Lake Ave"}, headers=ADMIN
        )
        assert response.status_code == 201
        assert len(client.get("/api/communities").json()) == 3

    def test_delete_referenced_community(self, client):
        assert client.delete("/api/communities/c1", headers=ADMIN).status_code == 400

    def test_create_user(self, client):
        response = client.post(
            "/api/users",
            json={"username": "new", "password": "pw", "role": "customer", "name": "New", "community_id": "c2"},
            headers=ADMIN,
        )
        assert response.status_code == 201
        assert client.post("/api/login", json={"username": "new", "password": "pw"}).status_code == 200

    def test_users_require_admin(self, client):
        assert client.get("/api/users", headers=CUSTOMER).status_code == 403

    def test_admin_cannot_remove_self(self, client):
        assert client.delete("/api/users/admin", headers=ADMIN).status_code == 400


class TestAppFactory:
    def test_import_builds_no_app(self):
        assert not hasattr(grocer.api, "app")

    def test_factory_builds_from_settings(self):
        app = create_app(settings=Settings(_env_file=None, load_demo_data=False))
        response = TestClient(app).get("/api/health")

        assert response.json()["products"] == 0
