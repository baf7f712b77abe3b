"""Tests for GroceryService wiring, seeding and settings."""

import copy
import json
import threading

import pytest

from grocer.config import Settings
from grocer.errors import CommunityNotFoundError, ValidationError
from grocer.models import OrderStatus
from grocer.seed import DEMO_DATA, load_seed_file
from grocer.service import GroceryService

from .conftest import make_draft


class TestSeeding:
    def test_demo_data(self):
        service = GroceryService.from_settings(Settings(_env_file=None))

        assert [p.name for p in service.list_products()] == [
            "Fresh Apples", "Organic Cabbage", "Free-range Eggs",
        ]
        assert service.users.authenticate("delivery1", "delivery123").community_id == "1"
        order = service.get_order("1")
        assert order.status == OrderStatus.PENDING
        assert order.total_amount == 20.2

    def test_seeded_order_does_not_touch_stock(self):
        service = GroceryService()
        service.load_seed(DEMO_DATA)

        assert service.get_product("1").stock == 100
        # the products' initial stock is on the ledger, the seeded order is not
        assert [e.order_id for e in service.stock_movements()] == [None, None, None]

    def test_seeded_order_can_be_cancelled(self):
        service = GroceryService()
        service.load_seed(DEMO_DATA)

        service.cancel_order("1").unwrap()
        assert service.get_product("1").stock == 102

    def test_no_demo_data(self):
        service = GroceryService.from_settings(Settings(_env_file=None, load_demo_data=False))
        assert service.list_products() == []
        assert service.users.list_users() == []

    def test_seed_file(self, tmp_path):
        seed = tmp_path / "seed.json"
        seed.write_text(json.dumps({
            "products": [
                {"id": "x", "name": "Milk", "category": "Dairy", "price": 4.0, "unit": "bottle", "stock": 3},
            ],
        }))

        service = GroceryService.from_settings(Settings(_env_file=None, seed_file=seed))
        assert [p.id for p in service.list_products()] == ["x"]

    def test_seed_file_must_be_object(self, tmp_path):
        seed = tmp_path / "seed.json"
        seed.write_text("[]")
        with pytest.raises(ValidationError):
            load_seed_file(seed)

    def test_seed_file_invalid_json(self, tmp_path):
        seed = tmp_path / "seed.json"
        seed.write_text("{not json")
        with pytest.raises(ValidationError):
            load_seed_file(seed)

    def test_missing_seed_file(self, tmp_path):
        with pytest.raises(ValidationError):
            load_seed_file(tmp_path / "absent.json")

    def test_incomplete_seed_record(self):
        service = GroceryService()
        with pytest.raises(ValidationError):
            service.load_seed({"products": [{"id": "x", "name": "Milk"}]})

    def test_negative_seed_stock_rejected(self):
        service = GroceryService()
        with pytest.raises(ValidationError):
            service.load_seed({
                "products": [
                    {"id": "x", "name": "Milk", "category": "Dairy", "price": 4.0, "unit": "bottle", "stock": -1},
                ],
            })


    @pytest.mark.parametrize("change", [
        {"quantity": -5},
        {"quantity": 0},
        {"price": -1.0},
    ])
    def test_malformed_seed_order_item_rejected(self, change):
        data = copy.deepcopy(DEMO_DATA)
        data["orders"][0]["items"][0].update(change)

        service = GroceryService()
        with pytest.raises(ValidationError):
            service.load_seed(data)
        assert service.get_order("1") is None

    def test_seed_order_total_must_match_items(self):
        data = copy.deepcopy(DEMO_DATA)
        data["orders"][0]["total_amount"] = 999.0

        service = GroceryService()
        with pytest.raises(ValidationError) as excinfo:
            service.load_seed(data)
        assert excinfo.value.field == "total_amount"

    def test_seed_order_without_items_rejected(self):
        data = copy.deepcopy(DEMO_DATA)
        data["orders"][0]["items"] = []
        data["orders"][0]["total_amount"] = 0

        with pytest.raises(ValidationError):
            GroceryService().load_seed(data)


class TestSettings:
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("GROCER_LOW_STOCK_THRESHOLD", "3")
        monkeypatch.setenv("GROCER_LOAD_DEMO_DATA", "false")

        settings = Settings(_env_file=None)
        assert settings.low_stock_threshold == 3
        assert settings.load_demo_data is False

    def test_threshold_flows_into_inventory(self):
        service = GroceryService.from_settings(Settings(_env_file=None, low_stock_threshold=60))
        assert [p.id for p in service.low_stock()] == ["2", "3"]


class TestRemoveCommunity:
    def test_blocked_by_delivery_staff(self, service):
        with pytest.raises(ValidationError):
            service.remove_community("c2")

    def test_blocked_by_orders(self, service, customer):
        service.users.remove_user("courier1")
        service.create_order(make_draft(customer, ("P1", 1))).unwrap()

        with pytest.raises(ValidationError):
            service.remove_community("c1")

    def test_unreferenced_community_removed(self, service):
        service.users.remove_user("courier2")
        removed = service.remove_community("c2")

        assert removed.id == "c2"
        assert "c2" not in service.communities

    def test_unknown_community(self, service):
        with pytest.raises(CommunityNotFoundError):
            service.remove_community("nope")

    def test_removal_waits_for_community_lock(self, service):
        service.users.remove_user("courier2")
        errors = []

        def remove():
            try:
                service.remove_community("c2")
            except Exception as e:
                errors.append(e)

        with service.communities.lock(["c2"]):
            worker = threading.Thread(target=remove)
            worker.start()
            worker.join(timeout=0.2)
            assert worker.is_alive()
            assert "c2" in service.communities
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert errors == []
        assert "c2" not in service.communities

    def test_community_lock_only_covers_its_community(self, service):
        service.users.remove_user("courier2")
        with service.communities.lock(["c2"]):
            service.users.add_user(
                user_id="cust9", username="customer9", password="pw", role="customer",
                name="Zhou", address="Room 9", community_id="c1",
            )
        service.users.add_user(
            user_id="cust2", username="customer2", password="pw", role="customer",
            name="Chen", address="Room 2", community_id="c2",
        )

        with pytest.raises(ValidationError):
            service.remove_community("c2")
        assert "c2" in service.communities

    def test_order_for_removed_community_rejected(self, service, customer):
        service.users.remove_user("courier2")
        service.remove_community("c2")
        draft = make_draft(customer, ("P1", 1))
        draft.community_id = "c2"

        outcome = service.create_order(draft)

        assert not outcome
        assert isinstance(outcome.error, CommunityNotFoundError)
        assert service.get_product("P1").stock == 10
