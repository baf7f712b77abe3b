"""Seed data for a fresh service."""

import json
from pathlib import Path
from typing import Any

from .errors import ValidationError

DEMO_DATA: dict[str, Any] = {
    "communities": [
        {"id": "1", "name": "Sunshine Community", "address": "12 Sunshine Street, Chaoyang"},
        {"id": "2", "name": "Green Garden Community", "address": "88 Green Garden Road, Haidian"},
    ],
    "users": [
        {
            "id": "1",
            "username": "admin",
            "password": "admin123",
            "role": "admin",
            "name": "System Administrator",
            "phone": "13800138000",
        },
        {
            "id": "2",
            "username": "delivery1",
            "password": "delivery123",
            "role": "delivery",
            "name": "Zhang Courier",
            "phone": "13800138001",
            "community_id": "1",
        },
        {
            "id": "3",
            "username": "customer1",
            "password": "customer123",
            "role": "customer",
            "name": "Li Customer",
            "phone": "13800138002",
            "address": "Sunshine Community, Building 1, Room 101",
            "community_id": "1",
        },
    ],
    "products": [
        {
            "id": "1",
            "name": "Fresh Apples",
            "category": "Fruit",
            "price": 8.5,
            "unit": "500g",
            "stock": 100,
            "description": "Crisp and sweet Fuji apples",
        },
        {
            "id": "2",
            "name": "Organic Cabbage",
            "category": "Vegetables",
            "price": 3.2,
            "unit": "500g",
            "stock": 50,
            "description": "Organically grown",
        },
        {
            "id": "3",
            "name": "Free-range Eggs",
            "category": "Eggs",
            "price": 12.0,
            "unit": "500g",
            "stock": 30,
            "description": "From free-range farm hens",
        },
    ],
    "orders": [
        {
            "id": "1",
            "customer_id": "3",
            "customer_name": "Li Customer",
            "customer_address": "Sunshine Community, Building 1, Room 101",
            "customer_phone": "13800138002",
            "community_id": "1",
            "items": [
                {"product_id": "1", "product_name": "Fresh Apples", "quantity": 2, "price": 8.5},
                {"product_id": "2", "product_name": "Organic Cabbage", "quantity": 1, "price": 3.2},
            ],
            "total_amount": 20.2,
            "status": "pending",
            "delivery_time": "2024-01-15 10:00",
            "created_at": "2024-01-14T15:30:00Z",
        }
    ],
}


def load_seed_file(path: Path) -> dict[str, Any]:
    """
    Read seed data from a JSON file.

    The file holds any of the keys "communities", "users", "products" and
    "orders", each a list of records shaped like DEMO_DATA's.

    Raises:
        ValidationError: If the file can't be read or isn't a JSON object.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ValidationError(f"cannot read {path}: {e.strerror}", field="seed_file") from e
    except json.JSONDecodeError as e:
        raise ValidationError(f"{path} is not valid JSON: {e.msg}", field="seed_file") from e
    if not isinstance(data, dict):
        raise ValidationError(f"{path} must contain a JSON object", field="seed_file")
    return data
