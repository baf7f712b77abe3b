"""Caller identity and role-equality permission checks."""

from dataclasses import dataclass
from enum import Enum

from .errors import PermissionDeniedError
from .models import Order, Role, User


class Action(str, Enum):
    CREATE = "create orders"
    VIEW = "view this order"
    ACCEPT = "accept orders"
    START = "start delivery"
    COMPLETE = "complete delivery"
    CANCEL = "cancel orders"
    CONFIRM_CANCEL = "confirm cancellations"
    MANAGE = "manage inventory, users or communities"


@dataclass(frozen=True)
class Identity:
    """An authenticated caller."""

    user_id: str
    role: Role
    name: str
    community_id: str | None = None

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(
            user_id=user.id,
            role=user.role,
            name=user.name,
            community_id=user.community_id,
        )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def can_view(identity: Identity, order: Order) -> bool:
    """Admins see every order, delivery staff their community's, customers their own."""
    if identity.role == Role.ADMIN:
        return True
    if identity.role == Role.DELIVERY:
        return order.community_id == identity.community_id
    return order.customer_id == identity.user_id


def visible_orders(identity: Identity, orders: list[Order]) -> list[Order]:
    return [o for o in orders if can_view(identity, o)]


def ensure_can(identity: Identity, action: Action, order: Order | None = None) -> None:
    """
    Check the caller's role allows an action on an order.

    Raises:
        PermissionDeniedError: If it doesn't.
    """
    role = identity.role

    if action == Action.MANAGE:
        if role != Role.ADMIN:
            raise PermissionDeniedError(role.value, action.value)
        return

    if action == Action.CREATE:
        if role != Role.CUSTOMER:
            raise PermissionDeniedError(role.value, action.value)
        return

    if order is None or not can_view(identity, order):
        raise PermissionDeniedError(role.value, action.value, "order is outside your scope")

    if action == Action.VIEW or role == Role.ADMIN:
        return

    if action == Action.CANCEL:
        if role != Role.CUSTOMER:
            raise PermissionDeniedError(role.value, action.value)
        return

    if role != Role.DELIVERY:
        raise PermissionDeniedError(role.value, action.value)
    if action in (Action.START, Action.COMPLETE) and order.delivery_person_id != identity.user_id:
        raise PermissionDeniedError(role.value, action.value, "order is assigned to someone else")
