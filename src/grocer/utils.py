"""Utility functions for grocer."""

import logging

from .models import Order, Product, StockMovement

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Send grocer's log records to stderr at the given level."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    logging.basicConfig(level=numeric, format=LOG_FORMAT)


def format_product(product: Product, verbose: bool = False) -> str:
    """Format a product for display."""
    if product.stock == 0:
        stock = "out of stock"
    else:
        stock = f"{product.stock} in stock"
    result = (
        f"{product.id[:8]:<8}  {product.name} [{product.category}] "
        f"{product.price:.2f}/{product.unit} ({stock})"
    )
    if verbose and product.description:
        result += f"\n          {product.description}"
    return result


def format_movement(movement: StockMovement) -> str:
    """Format a ledger entry for display."""
    result = (
        f"#{movement.sequence:<5} {movement.timestamp}  {movement.type.value:<10} "
        f"{movement.delta:>+6d}  {movement.product_name} - {movement.reason}"
    )
    if movement.order_id:
        result += f" (order {movement.order_id[:8]})"
    return result


def format_order(order: Order, verbose: bool = False) -> str:
    """Format an order for display."""
    result = (
        f"{order.id[:8]:<8}  {order.status.value:<10} {order.total_amount:>8.2f}  "
        f"{order.customer_name} @ {order.delivery_time}"
    )
    if order.delivery_person_name:
        result += f" [courier: {order.delivery_person_name}]"
    if verbose:
        for item in order.items:
            result += f"\n          {item.quantity} x {item.product_name} @ {item.price:.2f}"
    return result
