"""Custom exceptions for grocer."""


class GrocerError(Exception):
    """Base exception for all grocer errors."""

    pass


class ValidationError(GrocerError):
    """Raised when input is malformed (negative stock, empty required field)."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        if field:
            message = f"{field}: {message}"
        super().__init__(message)


class InvalidStatusError(ValidationError):
    """Raised when a status string is not a known order status."""

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Unknown order status: {status!r}", field="status")


class PreconditionFailed(GrocerError):
    """Raised when a guard on the current state is not satisfied."""

    pass


class NotFoundError(PreconditionFailed):
    """Raised when a referenced record doesn't exist."""

    kind = "Record"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"{self.kind} not found: {record_id}")


class ProductNotFoundError(NotFoundError):
    kind = "Product"


class OrderNotFoundError(NotFoundError):
    kind = "Order"


class UserNotFoundError(NotFoundError):
    kind = "User"


class CommunityNotFoundError(NotFoundError):
    kind = "Community"


class InsufficientStockError(PreconditionFailed):
    """Raised when a product has less stock than an order item requests."""

    def __init__(self, product_id: str, product_name: str, requested: int, available: int):
        self.product_id = product_id
        self.product_name = product_name
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {product_name} ({product_id}): "
            f"requested {requested}, available {available}"
        )


class InvalidTransitionError(PreconditionFailed):
    """Raised when an order is not in the status an operation requires."""

    def __init__(self, order_id: str, current: str, action: str, expected: str):
        self.order_id = order_id
        self.current = current
        self.action = action
        self.expected = expected
        super().__init__(
            f"Cannot {action} order {order_id}: status is {current}, expected {expected}"
        )


class PermissionDeniedError(GrocerError):
    """Raised when the caller's role may not perform an action."""

    def __init__(self, role: str, action: str, reason: str | None = None):
        self.role = role
        self.action = action
        msg = f"Role '{role}' may not {action}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class AuthenticationError(GrocerError):
    """Raised when a request carries no valid identity."""

    def __init__(self, reason: str = "authentication required"):
        super().__init__(reason)
