"""Command-line interface for storefront."""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from . import __version__
from .config import Settings
from .errors import StorefrontError, ValidationError
from .models import Order, Product
from .services import Services, build_services
from .sizes import parse_configurations


def get_services(args: argparse.Namespace) -> Services:
    """Build services from the environment, applying command-line overrides."""
    settings = Settings.from_env()
    if getattr(args, "data_dir", None):
        settings.data_dir = Path(args.data_dir)
    return build_services(settings)


def format_product(product: Product) -> str:
    sub = f" / {product.subcategory}" if product.subcategory else ""
    stock = "" if product.in_stock else "  (out of stock)"
    return f"  {product.id}  {product.name}  [{product.category}{sub}]  {product.price:.2f}{stock}"


def format_order(order: Order) -> str:
    return (
        f"  {order.order_number}  {order.id}  {order.total_amount:.2f}  "
        f"payment={order.payment_status}  order={order.order_status}  {order.customer.name}"
    )


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    import uvicorn

    # The app factory reads settings from the environment
    if args.data_dir:
        os.environ["STOREFRONT_DATA_DIR"] = args.data_dir

    print("Starting storefront API server...")
    print(f"API docs: http://{args.host}:{args.port}/docs")
    print()

    uvicorn.run(
        "storefront.api:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
    return 0


def cmd_sizes_list(args: argparse.Namespace) -> int:
    """List size charts."""
    try:
        configs = get_services(args).sizes.get()

        if not configs:
            print("No size configurations found.")
            return 0

        if args.json:
            data = {k: [v.to_dict() for v in vs] for k, vs in configs.items()}
            print(json.dumps(data, indent=2))
        else:
            for key, variants in configs.items():
                print(f"{key}:")
                for v in variants:
                    print(f"  {v.id:<6} {v.label:<10} {v.dimensions:<16} {v.price_modifier:+.2f}")
                print()

        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_sizes_import(args: argparse.Namespace) -> int:
    """Replace all size charts from a JSON file."""
    try:
        try:
            with open(args.file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ValidationError(f"Cannot read {args.file}: {e}", ["file"])
        if isinstance(data, dict) and "sizeConfigurations" in data:
            data = data["sizeConfigurations"]

        services = get_services(args)
        configs = parse_configurations(data)
        services.sizes.replace_all(configs, products=services.catalog.get_all_products())

        total = sum(len(v) for v in configs.values())
        print(f"Imported {total} sizes across {len(configs)} categories")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_products_list(args: argparse.Namespace) -> int:
    """List catalog products."""
    try:
        catalog = get_services(args).catalog
        if args.category:
            products = catalog.products_by_category(args.category)
        else:
            products = catalog.get_all_products()

        if args.json:
            print(json.dumps([p.to_dict() for p in products], indent=2))
            return 0

        print(f"Products ({len(products)}):")
        for p in products:
            print(format_product(p))
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_categories_list(args: argparse.Namespace) -> int:
    """List categories."""
    try:
        for category in get_services(args).catalog.all_categories():
            print(category)
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_categories_rename(args: argparse.Namespace) -> int:
    """Rename a category on every product."""
    try:
        count = get_services(args).catalog.rename_category(args.old, args.new)
        print(f"Renamed '{args.old}' to '{args.new}' on {count} products")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_categories_delete(args: argparse.Namespace) -> int:
    """Delete a category and all of its products."""
    if not args.yes:
        print(
            f"Error: this deletes every product in '{args.category}'. Re-run with --yes to confirm.",
            file=sys.stderr,
        )
        return 1
    try:
        count = get_services(args).catalog.delete_category(args.category)
        print(f"Deleted {count} products in '{args.category}'")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_list(args: argparse.Namespace) -> int:
    """List orders, newest first."""
    try:
        orders = get_services(args).orders.list_orders()
        if args.payment_status:
            orders = [o for o in orders if o.payment_status == args.payment_status]

        if not orders:
            print("No orders found.")
            return 0

        if args.json:
            print(json.dumps([o.to_dict() for o in orders], indent=2))
        else:
            print(f"Orders ({len(orders)}):")
            for o in orders:
                print(format_order(o))

        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_show(args: argparse.Namespace) -> int:
    """Show one order as JSON."""
    try:
        order = get_services(args).orders.get_order(args.order_id)
        print(json.dumps(order.to_dict(), indent=2))
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_verify(args: argparse.Namespace) -> int:
    """Record a manual payment verification."""
    try:
        order = get_services(args).orders.verify_payment(
            args.order_id,
            args.amount,
            args.status,
            verified_by=args.by,
            force=args.force,
        )
        print(f"Order {order.order_number}: payment {order.payment_status} ({args.amount:.2f})")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_status(args: argparse.Namespace) -> int:
    """Change an order's fulfilment status."""
    try:
        order = get_services(args).orders.update_order_status(
            args.order_id, args.status, force=args.force
        )
        print(f"Order {order.order_number}: {order.order_status}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_delete(args: argparse.Namespace) -> int:
    """Delete an order permanently."""
    if not args.yes:
        print("Error: order deletion is permanent. Re-run with --yes to confirm.", file=sys.stderr)
        return 1
    try:
        get_services(args).orders.delete_order(args.order_id)
        print(f"Deleted order {args.order_id}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="storefront",
        description="Storefront catalog, size charts and order administration",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--data-dir", help="Store directory (overrides STOREFRONT_DATA_DIR)")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    # sizes
    sizes_parser = subparsers.add_parser("sizes", help="Manage size charts")
    sizes_subparsers = sizes_parser.add_subparsers(dest="sizes_command")
    sizes_list_parser = sizes_subparsers.add_parser("list", help="List size charts")
    sizes_list_parser.add_argument("--json", action="store_true", help="Output as JSON")
    sizes_import_parser = sizes_subparsers.add_parser(
        "import", help="Replace all size charts from a JSON file"
    )
    sizes_import_parser.add_argument("file", help="JSON file: {categoryKey: [sizes]}")

    # products
    products_parser = subparsers.add_parser("products", help="Browse products")
    products_subparsers = products_parser.add_subparsers(dest="products_command")
    products_list_parser = products_subparsers.add_parser("list", help="List products")
    products_list_parser.add_argument("--category", "-c", help="Only this category")
    products_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # categories
    categories_parser = subparsers.add_parser("categories", help="Manage categories")
    categories_subparsers = categories_parser.add_subparsers(dest="categories_command")
    categories_subparsers.add_parser("list", help="List categories")
    rename_parser = categories_subparsers.add_parser("rename", help="Rename a category")
    rename_parser.add_argument("old", help="Current category name")
    rename_parser.add_argument("new", help="New category name")
    delete_parser = categories_subparsers.add_parser(
        "delete", help="Delete a category and all its products"
    )
    delete_parser.add_argument("category", help="Category name (case-insensitive)")
    delete_parser.add_argument("--yes", action="store_true", help="Confirm deletion")

    # orders
    orders_parser = subparsers.add_parser("orders", help="Manage orders")
    orders_subparsers = orders_parser.add_subparsers(dest="orders_command")
    orders_list_parser = orders_subparsers.add_parser("list", help="List orders")
    orders_list_parser.add_argument("--payment-status", help="Only orders with this payment status")
    orders_list_parser.add_argument("--json", action="store_true", help="Output as JSON")
    orders_show_parser = orders_subparsers.add_parser("show", help="Show an order")
    orders_show_parser.add_argument("order_id", help="Order ID")
    verify_parser = orders_subparsers.add_parser("verify", help="Verify a submitted payment")
    verify_parser.add_argument("order_id", help="Order ID")
    verify_parser.add_argument("--amount", type=float, required=True, help="Amount received")
    verify_parser.add_argument(
        "--status", required=True, choices=["paid", "partial", "failed"], help="Verification result"
    )
    verify_parser.add_argument("--by", help="Name of the verifying admin")
    verify_parser.add_argument(
        "--force", action="store_true", help="Skip the payment status transition check"
    )
    status_parser = orders_subparsers.add_parser("status", help="Change order status")
    status_parser.add_argument("order_id", help="Order ID")
    status_parser.add_argument(
        "status", choices=["pending", "confirmed", "shipped", "delivered", "cancelled"]
    )
    status_parser.add_argument(
        "--force", action="store_true", help="Allow out-of-order status changes"
    )
    orders_delete_parser = orders_subparsers.add_parser("delete", help="Delete an order")
    orders_delete_parser.add_argument("order_id", help="Order ID")
    orders_delete_parser.add_argument("--yes", action="store_true", help="Confirm deletion")

    return parser


GROUP_COMMANDS = {
    ("sizes", "list"): cmd_sizes_list,
    ("sizes", "import"): cmd_sizes_import,
    ("products", "list"): cmd_products_list,
    ("categories", "list"): cmd_categories_list,
    ("categories", "rename"): cmd_categories_rename,
    ("categories", "delete"): cmd_categories_delete,
    ("orders", "list"): cmd_orders_list,
    ("orders", "show"): cmd_orders_show,
    ("orders", "verify"): cmd_orders_verify,
    ("orders", "status"): cmd_orders_status,
    ("orders", "delete"): cmd_orders_delete,
}


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    try:
        settings = Settings.from_env()
    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "serve":
        return cmd_serve(args)

    subcommand = getattr(args, f"{args.command}_command", None)
    if not subcommand:
        parser.parse_args([args.command, "--help"])
        return 0

    cmd_func = GROUP_COMMANDS.get((args.command, subcommand))
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
