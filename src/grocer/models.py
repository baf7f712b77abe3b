"""Data models for grocer."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any
import uuid

from .errors import InvalidStatusError, ValidationError


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _generate_id() -> str:
    """Generate a new record ID."""
    return str(uuid.uuid4())


def _money(value: float) -> float:
    """Round a currency amount to cents."""
    return round(float(value), 2)


def _require_text(value: Any, name: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("must be a non-empty string", field=name)


def _require_count(value: Any, name: str, minimum: int = 0) -> None:
    # bool is an int subclass; True is not a stock level
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("must be an integer", field=name)
    if value < minimum:
        raise ValidationError(f"must be >= {minimum}", field=name)


def _require_price(value: Any, name: str = "price") -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("must be a number", field=name)
    if value < 0:
        raise ValidationError("must be >= 0", field=name)


class OrderStatus(str, Enum):
    """Lifecycle states of an order."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DELIVERING = "delivering"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: "str | OrderStatus") -> "OrderStatus":
        """
        Convert a status string into an OrderStatus.

        Raises:
            InvalidStatusError: If the value is not a known status.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidStatusError(str(value)) from None

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


class MovementType(str, Enum):
    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"


class Role(str, Enum):
    ADMIN = "admin"
    DELIVERY = "delivery"
    CUSTOMER = "customer"


@dataclass
class Product:
    """A sellable catalog item."""

    id: str
    name: str
    category: str
    price: float
    unit: str  # display unit of measure, e.g. "kg"
    stock: int
    description: str | None = None
    image: str | None = None

    def validate(self) -> None:
        """
        Check field invariants.

        Raises:
            ValidationError: If any field is malformed.
        """
        _require_text(self.id, "id")
        _require_text(self.name, "name")
        _require_text(self.category, "category")
        _require_text(self.unit, "unit")
        _require_price(self.price)
        _require_count(self.stock, "stock")

    def copy(self) -> "Product":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price": self.price,
            "unit": self.unit,
            "stock": self.stock,
        }
        if self.description is not None:
            result["description"] = self.description
        if self.image is not None:
            result["image"] = self.image
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            category=data["category"],
            price=data["price"],
            unit=data["unit"],
            stock=data.get("stock", 0),
            description=data.get("description"),
            image=data.get("image"),
        )

    @classmethod
    def create(
        cls,
        name: str,
        category: str,
        price: float,
        unit: str,
        stock: int = 0,
        description: str | None = None,
        image: str | None = None,
    ) -> "Product":
        """Create a new validated product with a generated ID."""
        product = cls(
            id=_generate_id(),
            name=name,
            category=category,
            price=price,
            unit=unit,
            stock=stock,
            description=description,
            image=image,
        )
        product.validate()
        return product


@dataclass(frozen=True)
class OrderItem:
    """One line of an order, with name and unit price snapshotted at order time."""

    product_id: str
    product_name: str
    quantity: int
    price: float

    @property
    def subtotal(self) -> float:
        return _money(self.quantity * self.price)

    def validate(self) -> None:
        _require_text(self.product_id, "product_id")
        _require_count(self.quantity, "quantity", minimum=1)
        _require_price(self.price)

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "price": self.price,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItem":
        return cls(
            product_id=str(data["product_id"]),
            product_name=data.get("product_name", ""),
            quantity=data["quantity"],
            price=data["price"],
        )


@dataclass(frozen=True)
class StatusChange:
    """A recorded status transition."""

    status: OrderStatus
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status.value, "timestamp": self.timestamp}


@dataclass(frozen=True)
class CartLine:
    """A requested product and quantity, as submitted from the cart."""

    product_id: str
    quantity: int

    def validate(self) -> None:
        _require_text(self.product_id, "product_id")
        _require_count(self.quantity, "quantity", minimum=1)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartLine":
        return cls(product_id=str(data["product_id"]), quantity=data["quantity"])


@dataclass
class OrderDraft:
    """A finished cart submitted for order creation."""

    customer_id: str
    customer_name: str
    customer_address: str
    customer_phone: str
    community_id: str
    items: list[CartLine]
    delivery_time: str

    def validate(self) -> None:
        """
        Check the draft is well formed.

        Raises:
            ValidationError: On missing customer fields or malformed items.
        """
        _require_text(self.customer_id, "customer_id")
        _require_text(self.customer_name, "customer_name")
        _require_text(self.customer_address, "customer_address")
        _require_text(self.community_id, "community_id")
        _require_text(self.delivery_time, "delivery_time")
        if not self.items:
            raise ValidationError("order must contain at least one item", field="items")
        for item in self.items:
            item.validate()


@dataclass
class Order:
    """A customer order and its delivery state."""

    id: str
    customer_id: str
    customer_name: str
    customer_address: str
    customer_phone: str
    community_id: str
    items: tuple[OrderItem, ...]
    total_amount: float
    status: OrderStatus
    delivery_time: str
    created_at: str
    delivery_person_id: str | None = None
    delivery_person_name: str | None = None
    history: list[StatusChange] = field(default_factory=list)

    def validate(self) -> None:
        """
        Check an order record, e.g. one loaded from seed data.

        Raises:
            ValidationError: On missing fields, malformed items or a total
                that doesn't match the items.
        """
        _require_text(self.id, "id")
        _require_text(self.customer_id, "customer_id")
        _require_text(self.customer_name, "customer_name")
        _require_text(self.customer_address, "customer_address")
        _require_text(self.community_id, "community_id")
        _require_text(self.delivery_time, "delivery_time")
        if not self.items:
            raise ValidationError("order must contain at least one item", field="items")
        for item in self.items:
            item.validate()
        expected = _money(sum(item.quantity * item.price for item in self.items))
        if _money(self.total_amount) != expected:
            raise ValidationError(
                f"is {self.total_amount}, items add up to {expected}", field="total_amount"
            )

    def copy(self) -> "Order":
        return replace(self, history=list(self.history))

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_address": self.customer_address,
            "customer_phone": self.customer_phone,
            "community_id": self.community_id,
            "items": [i.to_dict() for i in self.items],
            "total_amount": self.total_amount,
            "status": self.status.value,
            "delivery_time": self.delivery_time,
            "created_at": self.created_at,
            "history": [h.to_dict() for h in self.history],
        }
        if self.delivery_person_id is not None:
            result["delivery_person_id"] = self.delivery_person_id
        if self.delivery_person_name is not None:
            result["delivery_person_name"] = self.delivery_person_name
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        created_at = data.get("created_at", "")
        status = OrderStatus.parse(data.get("status", OrderStatus.PENDING))
        history = [
            StatusChange(OrderStatus.parse(h["status"]), h["timestamp"])
            for h in data.get("history", [])
        ]
        if not history:
            history = [StatusChange(OrderStatus.PENDING, created_at)]
            if status != OrderStatus.PENDING:
                history.append(StatusChange(status, created_at))
        return cls(
            id=str(data["id"]),
            customer_id=str(data["customer_id"]),
            customer_name=data["customer_name"],
            customer_address=data["customer_address"],
            customer_phone=data.get("customer_phone", ""),
            community_id=str(data["community_id"]),
            items=tuple(OrderItem.from_dict(i) for i in data["items"]),
            total_amount=data["total_amount"],
            status=status,
            delivery_time=data["delivery_time"],
            created_at=created_at,
            delivery_person_id=data.get("delivery_person_id"),
            delivery_person_name=data.get("delivery_person_name"),
            history=history,
        )

    @classmethod
    def create(cls, draft: OrderDraft, items: list[OrderItem]) -> "Order":
        """
        Create a pending order from a validated draft.

        Args:
            draft: Customer snapshot and delivery slot.
            items: Lines with product name and unit price snapshotted.
        """
        now = _utc_now()
        return cls(
            id=_generate_id(),
            customer_id=draft.customer_id,
            customer_name=draft.customer_name,
            customer_address=draft.customer_address,
            customer_phone=draft.customer_phone,
            community_id=draft.community_id,
            items=tuple(items),
            total_amount=_money(sum(item.quantity * item.price for item in items)),
            status=OrderStatus.PENDING,
            delivery_time=draft.delivery_time,
            created_at=now,
            history=[StatusChange(OrderStatus.PENDING, now)],
        )


@dataclass(frozen=True)
class StockMovement:
    """
    One ledger entry.

    quantity is an absolute amount for IN/OUT and a signed delta for ADJUSTMENT.
    """

    id: str
    sequence: int
    product_id: str
    product_name: str
    type: MovementType
    quantity: int
    reason: str
    timestamp: str
    order_id: str | None = None
    user_id: str | None = None

    @property
    def delta(self) -> int:
        """Signed change this entry applied to stock."""
        if self.type == MovementType.OUT:
            return -self.quantity
        return self.quantity

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "sequence": self.sequence,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "type": self.type.value,
            "quantity": self.quantity,
            "reason": self.reason,
            "timestamp": self.timestamp,
        }
        if self.order_id is not None:
            result["order_id"] = self.order_id
        if self.user_id is not None:
            result["user_id"] = self.user_id
        return result


@dataclass
class Community:
    """A delivery zone."""

    id: str
    name: str
    address: str

    def validate(self) -> None:
        _require_text(self.id, "id")
        _require_text(self.name, "name")
        _require_text(self.address, "address")

    def copy(self) -> "Community":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "address": self.address}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Community":
        return cls(id=str(data["id"]), name=data["name"], address=data["address"])

    @classmethod
    def create(cls, name: str, address: str) -> "Community":
        community = cls(id=_generate_id(), name=name, address=address)
        community.validate()
        return community


@dataclass
class User:
    """An account. Delivery staff and customers belong to a community."""

    id: str
    username: str
    password_hash: str
    role: Role
    name: str
    phone: str | None = None
    address: str | None = None
    community_id: str | None = None

    def validate(self) -> None:
        _require_text(self.id, "id")
        _require_text(self.username, "username")
        _require_text(self.name, "name")
        if not isinstance(self.role, Role):
            raise ValidationError(f"unknown role {self.role!r}", field="role")
        if self.role == Role.DELIVERY and not self.community_id:
            raise ValidationError("delivery staff must belong to a community", field="community_id")

    def copy(self) -> "User":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        """Public representation; the password hash is never included."""
        result: dict[str, Any] = {
            "id": self.id,
            "username": self.username,
            "role": self.role.value,
            "name": self.name,
        }
        if self.phone is not None:
            result["phone"] = self.phone
        if self.address is not None:
            result["address"] = self.address
        if self.community_id is not None:
            result["community_id"] = self.community_id
        return result


@dataclass
class BatchResult:
    """Partition of a batch operation's inputs by outcome."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)  # failed id -> reason

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "errors": self.errors,
        }


@dataclass
class OrderStatistics:
    total: int
    pending: int
    accepted: int
    delivering: int
    completed: int
    cancelled: int
    total_amount: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "pending": self.pending,
            "accepted": self.accepted,
            "delivering": self.delivering,
            "completed": self.completed,
            "cancelled": self.cancelled,
            "total_amount": self.total_amount,
        }


@dataclass
class ProductStatistics:
    total: int
    in_stock: int
    out_of_stock: int
    low_stock: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "in_stock": self.in_stock,
            "out_of_stock": self.out_of_stock,
            "low_stock": self.low_stock,
        }
