"""Pytest fixtures for grocer tests."""

import pytest

from grocer import directory
from grocer.models import CartLine, Community, OrderDraft, Product, User
from grocer.service import GroceryService


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    """Keep PBKDF2 cheap so every test can create users."""
    monkeypatch.setattr(directory, "PBKDF2_ITERATIONS", 1000)


@pytest.fixture
def service():
    """A service with two communities, four users and two products."""
    svc = GroceryService(low_stock_threshold=10)
    svc.communities.add_community(Community(id="c1", name="Sunshine", address="1 Sun St"))
    svc.communities.add_community(Community(id="c2", name="Green Garden", address="2 Garden Rd"))

    svc.users.add_user(
        user_id="admin", username="admin", password="admin123", role="admin", name="Admin"
    )
    svc.users.add_user(
        user_id="courier1", username="courier1", password="pw", role="delivery",
        name="Zhang Courier", community_id="c1",
    )
    svc.users.add_user(
        user_id="courier2", username="courier2", password="pw", role="delivery",
        name="Wang Courier", community_id="c2",
    )
    svc.users.add_user(
        user_id="cust1", username="customer1", password="pw", role="customer",
        name="Li Customer", phone="13800138002", address="Building 1, Room 101",
        community_id="c1",
    )

    svc.add_product(
        Product(id="P1", name="Fresh Apples", category="Fruit", price=8.5, unit="500g", stock=10)
    ).unwrap()
    svc.add_product(
        Product(id="P2", name="Organic Cabbage", category="Vegetables", price=3.2, unit="500g", stock=2)
    ).unwrap()
    return svc


@pytest.fixture
def customer(service) -> User:
    return service.users.get_user("cust1")


def make_draft(customer: User, *lines: tuple[str, int], delivery_time: str = "2024-01-15 10:00") -> OrderDraft:
    """Build an order draft for a customer from (product_id, quantity) pairs."""
    return OrderDraft(
        customer_id=customer.id,
        customer_name=customer.name,
        customer_address=customer.address or "somewhere",
        customer_phone=customer.phone or "",
        community_id=customer.community_id,
        items=[CartLine(product_id, quantity) for product_id, quantity in lines],
        delivery_time=delivery_time,
    )


def stock_of(service: GroceryService, product_id: str) -> int:
    return service.get_product(product_id).stock
