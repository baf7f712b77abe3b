"""Command-line interface for grocer."""

import argparse
import json
import sys
from pathlib import Path

from . import __version__
from .config import Settings, get_settings
from .errors import GrocerError
from .service import GroceryService
from .utils import configure_logging, format_movement, format_order, format_product


def get_settings_for(args: argparse.Namespace) -> Settings:
    """Apply command-line overrides to the environment settings."""
    settings = get_settings()
    overrides = {}
    if getattr(args, "seed", None):
        overrides["seed_file"] = Path(args.seed)
    if getattr(args, "log_level", None):
        overrides["log_level"] = args.log_level
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


def get_service(args: argparse.Namespace) -> GroceryService:
    """Build a service from the configured seed data."""
    settings = get_settings_for(args)
    configure_logging(settings.log_level)
    return GroceryService.from_settings(settings)


def cmd_products(args: argparse.Namespace) -> int:
    """List the catalog."""
    try:
        service = get_service(args)
        products = service.list_products()

        if not products:
            print("No products found.")
            return 0

        if args.json:
            print(json.dumps([p.to_dict() for p in products], indent=2))
        else:
            print(f"Products ({len(products)}):")
            for product in products:
                print(format_product(product, verbose=args.verbose))
        return 0

    except GrocerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_low_stock(args: argparse.Namespace) -> int:
    """List products running low."""
    try:
        service = get_service(args)
        products = service.low_stock(args.threshold)
        threshold = args.threshold if args.threshold is not None else service.inventory.low_stock_threshold

        if args.json:
            print(json.dumps([p.to_dict() for p in products], indent=2))
            return 0

        if not products:
            print(f"No products at or below {threshold} units.")
            return 0
        print(f"Low stock (<= {threshold}):")
        for product in products:
            print(format_product(product))
        return 0

    except GrocerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_out_of_stock(args: argparse.Namespace) -> int:
    """List products with no stock."""
    try:
        service = get_service(args)
        products = service.out_of_stock()

        if args.json:
            print(json.dumps([p.to_dict() for p in products], indent=2))
            return 0

        if not products:
            print("Every product is in stock.")
            return 0
        print(f"Out of stock ({len(products)}):")
        for product in products:
            print(format_product(product))
        return 0

    except GrocerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders(args: argparse.Namespace) -> int:
    """List orders, optionally by status."""
    try:
        service = get_service(args)
        if args.status:
            orders = service.orders_by_status(args.status)
        else:
            orders = service.list_orders()

        if args.json:
            print(json.dumps([o.to_dict() for o in orders], indent=2))
            return 0

        if not orders:
            print("No orders found.")
            return 0
        print(f"Orders ({len(orders)}):")
        for order in orders:
            print(format_order(order, verbose=args.verbose))
        return 0

    except GrocerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_movements(args: argparse.Namespace) -> int:
    """Show the stock ledger, newest first."""
    try:
        service = get_service(args)
        if args.product and service.get_product(args.product) is None:
            print(f"Warning: product {args.product} is not in the catalog", file=sys.stderr)
        movements = service.stock_movements(args.product)
        if args.limit:
            movements = movements[: args.limit]

        if args.json:
            print(json.dumps([m.to_dict() for m in movements], indent=2))
            return 0

        if not movements:
            print("No stock movements recorded.")
            return 0
        for movement in movements:
            print(format_movement(movement))
        return 0

    except GrocerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_stats(args: argparse.Namespace) -> int:
    """Show order and product statistics."""
    try:
        service = get_service(args)
        orders = service.orders.order_statistics()
        products = service.inventory.product_statistics()

        if args.json:
            print(json.dumps({"orders": orders.to_dict(), "products": products.to_dict()}, indent=2))
            return 0

        print(f"Orders: {orders.total} (total amount {orders.total_amount:.2f})")
        for status in ("pending", "accepted", "delivering", "completed", "cancelled"):
            print(f"  {status:<11} {getattr(orders, status)}")
        print(f"Products: {products.total}")
        print(f"  in stock    {products.in_stock}")
        print(f"  low stock   {products.low_stock}")
        print(f"  out of stock {products.out_of_stock}")
        return 0

    except GrocerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        settings = get_settings_for(args)
        configure_logging(settings.log_level)
        host = args.host if args.host is not None else settings.host
        port = args.port if args.port is not None else settings.port

        from .api import create_app

        app = create_app(settings=settings)

        print("Starting grocer API server...")
        print(f"API docs: http://{host}:{port}/docs")
        print()

        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level=settings.log_level.lower(),
            workers=1,  # state is in process memory
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="grocer",
        description="Order and inventory engine for community grocery delivery",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--seed", help="JSON seed file (overrides GROCER_SEED_FILE)")
    parser.add_argument("--log-level", help="Logging level (overrides GROCER_LOG_LEVEL)")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # products
    products_parser = subparsers.add_parser("products", help="List products")
    products_parser.add_argument("--json", action="store_true", help="Output as JSON")
    products_parser.add_argument("--verbose", "-v", action="store_true", help="Show descriptions")

    # low-stock
    low_parser = subparsers.add_parser("low-stock", help="List products running low")
    low_parser.add_argument("--threshold", "-t", type=int, help="Stock level to report at or below")
    low_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # out-of-stock
    out_parser = subparsers.add_parser("out-of-stock", help="List products with no stock")
    out_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # orders
    orders_parser = subparsers.add_parser("orders", help="List orders")
    orders_parser.add_argument("--status", "-s", help="Only orders in this status")
    orders_parser.add_argument("--json", action="store_true", help="Output as JSON")
    orders_parser.add_argument("--verbose", "-v", action="store_true", help="Show order items")

    # movements
    movements_parser = subparsers.add_parser("movements", help="Show the stock ledger")
    movements_parser.add_argument("--product", "-p", help="Only movements for this product ID")
    movements_parser.add_argument("--limit", "-n", type=int, help="Show at most N entries")
    movements_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # stats
    stats_parser = subparsers.add_parser("stats", help="Show order and product statistics")
    stats_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", help="Host to bind (default: GROCER_HOST)")
    serve_parser.add_argument("--port", type=int, help="Port to bind (default: GROCER_PORT)")

    return parser


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        "products": cmd_products,
        "low-stock": cmd_low_stock,
        "out-of-stock": cmd_out_of_stock,
        "orders": cmd_orders,
        "movements": cmd_movements,
        "stats": cmd_stats,
        "serve": cmd_serve,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
