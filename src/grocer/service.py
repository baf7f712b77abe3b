"""Composition root wiring the catalog, ledger, inventory, orders and directories."""

import logging
from typing import Any, Iterable

from .catalog import Catalog
from .config import Settings
from .directory import CommunityDirectory, UserDirectory
from .errors import CommunityNotFoundError, ValidationError
from .inventory import InventoryManager, StockAdjustment
from .ledger import StockLedger
from .models import (
    BatchResult,
    Community,
    Order,
    OrderDraft,
    OrderStatus,
    Product,
    Role,
    StockMovement,
)
from .orders import OrderEngine
from .results import Outcome
from .seed import DEMO_DATA, load_seed_file

logger = logging.getLogger(__name__)


class GroceryService:
    """
    One self-contained set of grocery state.

    Construct one per process (or per test) and pass it to callers; nothing
    in grocer holds global state.
    """

    def __init__(self, low_stock_threshold: int = 10):
        self.catalog = Catalog()
        self.ledger = StockLedger()
        self.inventory = InventoryManager(self.catalog, self.ledger, low_stock_threshold)
        self.orders = OrderEngine(self.catalog, self.ledger)
        self.communities = CommunityDirectory()
        self.users = UserDirectory(self.communities)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GroceryService":
        """Build a service and load the configured seed data."""
        service = cls(low_stock_threshold=settings.low_stock_threshold)
        if settings.seed_file is not None:
            service.load_seed(load_seed_file(settings.seed_file))
            logger.info("loaded seed data from %s", settings.seed_file)
        elif settings.load_demo_data:
            service.load_seed(DEMO_DATA)
            logger.info("loaded demo data")
        return service

    def load_seed(self, data: dict[str, Any]) -> None:
        """
        Load communities, users, products and orders, in that order.

        Raises:
            GrocerError: If any record is rejected or lacks a required field.
        """
        try:
            for record in data.get("communities", []):
                self.communities.add_community(Community.from_dict(record))
            for record in data.get("users", []):
                self.users.add_user(
                    username=record["username"],
                    password=record["password"],
                    role=record["role"],
                    name=record["name"],
                    phone=record.get("phone"),
                    address=record.get("address"),
                    community_id=record.get("community_id"),
                    user_id=str(record["id"]) if "id" in record else None,
                )
            for record in data.get("products", []):
                self.inventory.add_product(Product.from_dict(record)).unwrap()
            for record in data.get("orders", []):
                self.orders.load(Order.from_dict(record))
        except KeyError as e:
            raise ValidationError(f"seed record is missing {e.args[0]!r}", field="seed") from e

    # --- Catalog ---

    def list_products(self) -> list[Product]:
        return self.catalog.list_products()

    def get_product(self, product_id: str) -> Product | None:
        return self.catalog.get_product(product_id)

    def low_stock(self, threshold: int | None = None) -> list[Product]:
        return self.inventory.low_stock(threshold)

    def out_of_stock(self) -> list[Product]:
        return self.inventory.out_of_stock()

    def adjust_stock(self, product_id: str, new_stock: int, reason: str, user_id: str | None = None) -> Outcome[Product]:
        return self.inventory.adjust_stock(product_id, new_stock, reason, user_id=user_id)

    def batch_adjust_stock(self, adjustments: Iterable[StockAdjustment], user_id: str | None = None) -> BatchResult:
        return self.inventory.batch_adjust_stock(adjustments, user_id=user_id)

    def add_product(self, product: Product, user_id: str | None = None) -> Outcome[Product]:
        return self.inventory.add_product(product, user_id=user_id)

    def remove_product(self, product_id: str) -> Outcome[Product]:
        return self.inventory.remove_product(product_id)

    # --- Orders ---

    def list_orders(self) -> list[Order]:
        return self.orders.list_orders()

    def get_order(self, order_id: str) -> Order | None:
        return self.orders.get_order(order_id)

    def orders_by_customer(self, customer_id: str) -> list[Order]:
        return self.orders.orders_by_customer(customer_id)

    def orders_by_community(self, community_id: str) -> list[Order]:
        return self.orders.orders_by_community(community_id)

    def orders_by_delivery_staff(self, staff_id: str) -> list[Order]:
        return self.orders.orders_by_delivery_staff(staff_id)

    def orders_by_status(self, status: "str | OrderStatus") -> list[Order]:
        return self.orders.orders_by_status(status)

    def create_order(self, draft: OrderDraft) -> Outcome[Order]:
        """Place an order, holding its community so it can't be removed meanwhile."""
        with self.communities.lock([draft.community_id or None]):
            if draft.community_id and draft.community_id not in self.communities:
                error = CommunityNotFoundError(draft.community_id)
                logger.warning("order for customer %s rejected: %s", draft.customer_id, error)
                return Outcome.failure(error)
            return self.orders.create_order(draft)

    def accept_order(self, order_id: str, staff_id: str, staff_name: str) -> Outcome[Order]:
        return self.orders.accept_order(order_id, staff_id, staff_name)

    def start_delivery(self, order_id: str) -> Outcome[Order]:
        return self.orders.start_delivery(order_id)

    def complete_delivery(self, order_id: str) -> Outcome[Order]:
        return self.orders.complete_delivery(order_id)

    def cancel_order(self, order_id: str) -> Outcome[Order]:
        return self.orders.cancel_order(order_id)

    def confirm_cancel_order(self, order_id: str) -> Outcome[Order]:
        return self.orders.confirm_cancel_order(order_id)

    # --- Ledger ---

    def stock_movements(self, product_id: str | None = None) -> list[StockMovement]:
        return self.ledger.query(product_id)

    # --- Directories ---

    def remove_community(self, community_id: str) -> Community:
        """
        Remove a community nobody references any more.

        Raises:
            CommunityNotFoundError: If the community doesn't exist.
            ValidationError: If delivery staff or orders still reference it.
        """
        with self.communities.lock([community_id]):
            self.communities.get_community(community_id)
            staff = [u for u in self.users.users_in_community(community_id) if u.role == Role.DELIVERY]
            if staff:
                raise ValidationError(
                    f"{len(staff)} delivery staff still assigned to community {community_id}",
                    field="community_id",
                )
            if self.orders.orders_by_community(community_id):
                raise ValidationError(
                    f"orders still reference community {community_id}", field="community_id"
                )
            return self.communities.remove_community(community_id)
