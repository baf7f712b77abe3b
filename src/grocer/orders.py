"""Order Engine: order records and the delivery status state machine."""

import logging
import threading
from typing import Callable, Iterable

from .catalog import Catalog
from .errors import (
    GrocerError,
    InsufficientStockError,
    InvalidTransitionError,
    OrderNotFoundError,
    ProductNotFoundError,
    ValidationError,
)
from .ledger import StockLedger
from .locking import KeyedLocks
from .models import (
    BatchResult,
    MovementType,
    Order,
    OrderDraft,
    OrderItem,
    OrderStatistics,
    OrderStatus,
    Product,
    StatusChange,
    _utc_now,
)
from .results import Outcome

logger = logging.getLogger(__name__)

ORDER_PLACED_REASON = "order placed"
ORDER_CANCELLED_REASON = "order cancelled by customer"


class OrderEngine:
    """
    Owns orders and drives their status transitions.

    Stock is reserved by deduction: creating an order takes its quantities out
    of the catalog immediately, and cancelling puts them back. Every
    transition holds the order's lock; those touching stock also hold the
    product locks, always taken after the order lock.
    """

    def __init__(self, catalog: Catalog, ledger: StockLedger):
        self.catalog = catalog
        self.ledger = ledger
        self._orders: dict[str, Order] = {}
        self._guard = threading.Lock()
        self._locks = KeyedLocks("orders")

    # --- Reads ---

    def _select(self, predicate: Callable[[Order], bool]) -> list[Order]:
        """Copies of matching orders, newest first."""
        with self._guard:
            orders = list(self._orders.values())
        return [o.copy() for o in reversed(orders) if predicate(o)]

    def list_orders(self) -> list[Order]:
        return self._select(lambda o: True)

    def get_order(self, order_id: str) -> Order | None:
        with self._guard:
            order = self._orders.get(order_id)
        return order.copy() if order else None

    def orders_by_customer(self, customer_id: str) -> list[Order]:
        return self._select(lambda o: o.customer_id == customer_id)

    def orders_by_community(self, community_id: str) -> list[Order]:
        return self._select(lambda o: o.community_id == community_id)

    def pending_orders_by_community(self, community_id: str) -> list[Order]:
        return self._select(
            lambda o: o.community_id == community_id and o.status == OrderStatus.PENDING
        )

    def orders_by_delivery_staff(self, staff_id: str) -> list[Order]:
        return self._select(lambda o: o.delivery_person_id == staff_id)

    def orders_by_status(self, status: "str | OrderStatus") -> list[Order]:
        """
        List orders in a status.

        Raises:
            InvalidStatusError: If status is not a known order status.
        """
        wanted = OrderStatus.parse(status)
        return self._select(lambda o: o.status == wanted)

    def status_history(self, order_id: str) -> list[StatusChange]:
        """Recorded transitions of an order, oldest first (empty if unknown)."""
        order = self.get_order(order_id)
        return list(order.history) if order else []

    def order_statistics(self) -> OrderStatistics:
        orders = self.list_orders()
        counts = {status: 0 for status in OrderStatus}
        for order in orders:
            counts[order.status] += 1
        return OrderStatistics(
            total=len(orders),
            pending=counts[OrderStatus.PENDING],
            accepted=counts[OrderStatus.ACCEPTED],
            delivering=counts[OrderStatus.DELIVERING],
            completed=counts[OrderStatus.COMPLETED],
            cancelled=counts[OrderStatus.CANCELLED],
            total_amount=round(sum(o.total_amount for o in orders), 2),
        )

    def __len__(self) -> int:
        with self._guard:
            return len(self._orders)

    # --- Creation ---

    def create_order(self, draft: OrderDraft) -> Outcome[Order]:
        """
        Place an order, deducting its quantities from stock.

        All-or-nothing: every line is checked, in list order, before any stock
        changes. The first line whose product is missing or short determines
        the failure, and nothing is modified.

        Returns:
            Outcome carrying the pending order, or ValidationError /
            ProductNotFoundError / InsufficientStockError.
        """
        try:
            draft.validate()
            product_ids = [line.product_id for line in draft.items]
            with self.catalog.lock(product_ids):
                items: list[OrderItem] = []
                requested: dict[str, int] = {}
                for line in draft.items:
                    product = self.catalog.get_product(line.product_id)
                    if product is None:
                        raise ProductNotFoundError(line.product_id)
                    # the same product may appear on several lines
                    requested[product.id] = requested.get(product.id, 0) + line.quantity
                    if product.stock < requested[product.id]:
                        raise InsufficientStockError(
                            product.id, product.name, requested[product.id], product.stock
                        )
                    items.append(
                        OrderItem(
                            product_id=product.id,
                            product_name=product.name,
                            quantity=line.quantity,
                            price=product.price,
                        )
                    )

                order = Order.create(draft, items)
                for item in items:
                    product = self.catalog.get_product(item.product_id)
                    self.catalog.set_stock(item.product_id, product.stock - item.quantity)
                    self.ledger.record(
                        product_id=item.product_id,
                        product_name=item.product_name,
                        type=MovementType.OUT,
                        quantity=item.quantity,
                        reason=ORDER_PLACED_REASON,
                        order_id=order.id,
                        user_id=order.customer_id,
                    )
                with self._guard:
                    self._orders[order.id] = order
        except GrocerError as e:
            logger.warning("order for customer %s rejected: %s", draft.customer_id, e)
            return Outcome.failure(e)

        logger.info(
            "order %s created for customer %s: %d item(s), total %.2f",
            order.id, order.customer_id, len(order.items), order.total_amount,
        )
        return Outcome.success(order.copy())

    # --- Transitions ---

    def _transition(
        self,
        order_id: str,
        action: str,
        required: OrderStatus,
        target: OrderStatus,
        effect: Callable[[Order], None] | None = None,
    ) -> Outcome[Order]:
        """
        Run one guarded transition under the order's lock.

        The effect runs after the guard passes and before the status changes;
        if it raises, the order is left untouched.
        """
        try:
            with self._locks.hold([order_id]):
                with self._guard:
                    order = self._orders.get(order_id)
                if order is None:
                    raise OrderNotFoundError(order_id)
                if order.status != required:
                    raise InvalidTransitionError(
                        order_id, order.status.value, action, required.value
                    )
                if effect is not None:
                    effect(order)
                if order.status != target:
                    order.status = target
                    order.history.append(StatusChange(target, _utc_now()))
                result = order.copy()
        except GrocerError as e:
            logger.warning("%s rejected: %s", action, e)
            return Outcome.failure(e)

        logger.info("order %s: %s (status %s)", order_id, action, result.status.value)
        return Outcome.success(result)

    def accept_order(self, order_id: str, staff_id: str, staff_name: str) -> Outcome[Order]:
        """Assign a pending order to a delivery person (pending -> accepted)."""
        if not staff_id or not staff_name:
            error = ValidationError("staff id and name are required", field="delivery_person")
            logger.warning("accept rejected: %s", error)
            return Outcome.failure(error)

        def assign(order: Order) -> None:
            order.delivery_person_id = staff_id
            order.delivery_person_name = staff_name

        return self._transition(
            order_id, "accept", OrderStatus.PENDING, OrderStatus.ACCEPTED, assign
        )

    def start_delivery(self, order_id: str) -> Outcome[Order]:
        """accepted -> delivering."""
        return self._transition(
            order_id, "start delivery", OrderStatus.ACCEPTED, OrderStatus.DELIVERING
        )

    def complete_delivery(self, order_id: str) -> Outcome[Order]:
        """delivering -> completed."""
        return self._transition(
            order_id, "complete delivery", OrderStatus.DELIVERING, OrderStatus.COMPLETED
        )

    def cancel_order(self, order_id: str) -> Outcome[Order]:
        """
        Customer cancellation (pending -> cancelled).

        This is the single point where a cancelled order's stock is restored:
        one IN entry per item, tagged with the order and customer.
        """
        return self._transition(
            order_id, "cancel", OrderStatus.PENDING, OrderStatus.CANCELLED, self._restock
        )

    def confirm_cancel_order(self, order_id: str) -> Outcome[Order]:
        """
        Staff acknowledgement of a customer cancellation.

        Requires status cancelled and changes nothing: stock was already
        restored by cancel_order().
        """
        return self._transition(
            order_id, "confirm cancellation", OrderStatus.CANCELLED, OrderStatus.CANCELLED
        )

    def _restock(self, order: Order) -> None:
        with self.catalog.lock(item.product_id for item in order.items):
            # every new level is checked before any stock changes
            levels: dict[str, int] = {}
            restocked: list[tuple[Product, OrderItem]] = []
            for item in order.items:
                product = self.catalog.get_product(item.product_id)
                if product is None:
                    logger.warning(
                        "order %s: product %s no longer exists, %d unit(s) not restocked",
                        order.id, item.product_id, item.quantity,
                    )
                    continue
                if item.quantity < 1:
                    raise ValidationError(
                        f"cannot restock {item.quantity} unit(s) of {product.id}", field="quantity"
                    )
                levels[product.id] = levels.get(product.id, product.stock) + item.quantity
                restocked.append((product, item))

            for product_id, level in levels.items():
                self.catalog.set_stock(product_id, level)
            for product, item in restocked:
                self.ledger.record(
                    product_id=product.id,
                    product_name=product.name,
                    type=MovementType.IN,
                    quantity=item.quantity,
                    reason=ORDER_CANCELLED_REASON,
                    order_id=order.id,
                    user_id=order.customer_id,
                )

    # --- Batch ---

    def batch_update_status(
        self,
        order_ids: Iterable[str],
        status: "str | OrderStatus",
        staff_id: str | None = None,
        staff_name: str | None = None,
    ) -> Outcome[BatchResult]:
        """
        Move several orders to a status through the normal guarded transitions.

        The status is checked once up front; after that each order succeeds or
        fails on its own.

        Args:
            order_ids: Orders to move.
            status: Target status. "pending" is never a valid target.
            staff_id: Required when the target is "accepted".
            staff_name: Required when the target is "accepted".

        Returns:
            Outcome carrying a BatchResult, or InvalidStatusError /
            ValidationError if the target can't be applied at all.
        """
        try:
            target = OrderStatus.parse(status)
            if target == OrderStatus.PENDING:
                raise ValidationError("orders cannot be moved back to pending", field="status")
            if target == OrderStatus.ACCEPTED and not (staff_id and staff_name):
                raise ValidationError(
                    "staff id and name are required to accept orders", field="delivery_person"
                )
        except GrocerError as e:
            logger.warning("batch status update rejected: %s", e)
            return Outcome.failure(e)

        operations: dict[OrderStatus, Callable[[str], Outcome[Order]]] = {
            OrderStatus.ACCEPTED: lambda oid: self.accept_order(oid, staff_id, staff_name),
            OrderStatus.DELIVERING: self.start_delivery,
            OrderStatus.COMPLETED: self.complete_delivery,
            OrderStatus.CANCELLED: self.cancel_order,
        }
        apply = operations[target]

        result = BatchResult()
        for order_id in order_ids:
            outcome = apply(order_id)
            if outcome:
                result.succeeded.append(order_id)
            else:
                result.failed.append(order_id)
                result.errors[order_id] = str(outcome.error)

        logger.info(
            "batch status update to %s: %d succeeded, %d failed",
            target.value, len(result.succeeded), len(result.failed),
        )
        return Outcome.success(result)

    # --- Loading ---

    def load(self, order: Order) -> None:
        """
        Register an existing order record as-is (seed data); stock is not touched.

        Raises:
            ValidationError: If the record is malformed or an order with this
                ID already exists.
        """
        order.validate()
        with self._guard:
            if order.id in self._orders:
                raise ValidationError(f"order {order.id} already exists", field="id")
            self._orders[order.id] = order.copy()
