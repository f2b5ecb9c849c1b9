"""Command-line interface for storefront."""

import argparse
import json
import sys
from pathlib import Path

from . import __version__
from .admin import EXPORT_KINDS
from .config import get_settings
from .errors import StorefrontError
from .log import configure_logging
from .services import Services, build_services

# Catalog written by `storefront seed` when no file is given
SAMPLE_CATALOG = {
    "categories": [
        {
            "name": "Room Amenities",
            "description": "Essential items for guest room comfort and convenience",
        },
        {
            "name": "Kitchen Appliances",
            "description": "Modern kitchen equipment for hotels and resorts",
        },
    ],
    "products": [
        {
            "title": "Cotton Bath Towel Set",
            "description": "Set of 4 hotel-grade cotton towels",
            "price": 1299.0,
            "stock": 50,
            "category": "Room Amenities",
            "tags": ["towel", "bathroom"],
            "featured": True,
        },
        {
            "title": "Electric Kettle 1.5L",
            "description": "Stainless steel kettle with auto shut-off",
            "price": 1899.0,
            "stock": 25,
            "category": "Kitchen Appliances",
            "tags": ["kettle"],
        },
        {
            "title": "Hair Dryer 1200W",
            "description": "Wall-mounted hair dryer for guest bathrooms",
            "price": 2499.0,
            "stock": 10,
            "category": "Room Amenities",
            "min_order_quantity": 2,
        },
    ],
}


def get_services(args: argparse.Namespace) -> Services:
    """Build services for the data directory given on the command line."""
    data_dir = Path(args.data_dir) if args.data_dir else None
    return build_services(get_settings(), data_dir=data_dir)


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        settings = get_settings()
        print("Starting storefront API server...")
        print(f"Data directory: {settings.data_dir}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "storefront.api:app" if args.reload else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=1,
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_seed(args: argparse.Namespace) -> int:
    """Load categories and products into the store."""
    try:
        services = get_services(args)
        if args.file:
            with open(args.file, "r", encoding="utf-8") as f:
                catalog = json.load(f)
        else:
            catalog = SAMPLE_CATALOG

        category_ids = {c.name: c.id for c in services.catalog.list_categories(True)}
        for entry in catalog.get("categories", []):
            if entry["name"] in category_ids:
                continue
            category = services.catalog.add_category(entry["name"], entry.get("description", ""))
            category_ids[category.name] = category.id

        count = 0
        for entry in catalog.get("products", []):
            fields = dict(entry)
            category_name = fields.pop("category", None)
            services.catalog.add_product(
                title=fields.pop("title"),
                description=fields.pop("description", ""),
                price=fields.pop("price"),
                stock=fields.pop("stock"),
                category=category_ids.get(category_name) if category_name else None,
                **fields,
            )
            count += 1

        print(f"Seeded {len(category_ids)} categories and {count} products")
        return 0

    except (OSError, ValueError, KeyError) as e:
        print(f"Error: cannot read catalog: {e}", file=sys.stderr)
        return 1
    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_products_list(args: argparse.Namespace) -> int:
    """List products."""
    try:
        services = get_services(args)
        page = services.catalog.list_products(
            include_inactive=args.all, page=1, limit=args.limit
        )

        if not page.items:
            print("No products found.")
            return 0

        if args.json:
            print(json.dumps([p.to_dict() for p in page.items], indent=2))
        else:
            print(f"Products ({page.total}):")
            for p in page.items:
                marker = "" if p.available else " [inactive]"
                print(f"  {p.id[:8]}  {p.title:<32} {p.price:>10.2f}  stock {p.stock}{marker}")

        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_list(args: argparse.Namespace) -> int:
    """List orders of all customers."""
    try:
        services = get_services(args)
        page = services.orders.list_orders(status=args.status, page=1, limit=args.limit)

        if not page.items:
            print("No orders found.")
            return 0

        if args.json:
            print(json.dumps([o.to_dict() for o in page.items], indent=2))
        else:
            print(f"Orders ({page.total}):")
            for o in page.items:
                print(
                    f"  {o.order_number}  {o.status:<10} payment {o.payment.method}/"
                    f"{o.payment.status:<22} {o.pricing.total:>10.2f}  id {o.id}"
                )

        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_advance(args: argparse.Namespace) -> int:
    """Move an order to confirmed, shipped or delivered."""
    try:
        services = get_services(args)
        order = services.lifecycle.advance(args.order_id, args.status, args.note)
        print(f"Order {order.order_number} is now {order.status}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_approve_upi(args: argparse.Namespace) -> int:
    """Approve a UPI payment awaiting verification."""
    try:
        services = get_services(args)
        order = services.lifecycle.approve_manual_payment(args.order_id)
        print(f"Order {order.order_number}: payment {order.payment.status}, status {order.status}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_subscriptions_grant(args: argparse.Namespace) -> int:
    """Give an admin an active subscription without payment."""
    try:
        services = get_services(args)
        sub = services.subscriptions.grant(args.user_id, args.plan, days=args.days)
        print(f"Granted {sub.plan_details['name']} to {sub.user} until {sub.end_date}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_export(args: argparse.Namespace) -> int:
    """Write one collection as JSON to a file or stdout."""
    try:
        services = get_services(args)
        data = services.admin.export(args.type)
        text = json.dumps(data, indent=2)
        if args.output:
            Path(args.output).write_text(text + "\n", encoding="utf-8")
            print(f"Exported {len(data)} {args.type} to {args.output}")
        else:
            print(text)
        return 0

    except OSError as e:
        print(f"Error: cannot write export: {e}", file=sys.stderr)
        return 1
    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="storefront",
        description="Storefront backend: catalog, orders and payments.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--data-dir", help="Data directory (default: DATA_DIR setting)"
    )

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

    # seed
    seed_parser = subparsers.add_parser("seed", help="Load categories and products")
    seed_parser.add_argument(
        "--file", "-f", help="JSON file with 'categories' and 'products' (default: sample catalog)"
    )

    # products (subcommand group)
    products_parser = subparsers.add_parser("products", help="Inspect the catalog")
    products_subparsers = products_parser.add_subparsers(dest="products_command")

    products_list_parser = products_subparsers.add_parser("list", help="List products")
    products_list_parser.add_argument("--json", action="store_true", help="Output as JSON")
    products_list_parser.add_argument(
        "--all", "-a", action="store_true", help="Include inactive products"
    )
    products_list_parser.add_argument("--limit", type=int, default=100)

    # orders (subcommand group)
    orders_parser = subparsers.add_parser("orders", help="Manage orders")
    orders_subparsers = orders_parser.add_subparsers(dest="orders_command")

    orders_list_parser = orders_subparsers.add_parser("list", help="List orders")
    orders_list_parser.add_argument("--status", "-s", help="Filter by order status")
    orders_list_parser.add_argument("--json", action="store_true", help="Output as JSON")
    orders_list_parser.add_argument("--limit", type=int, default=100)

    orders_advance_parser = orders_subparsers.add_parser(
        "advance", help="Set an order to confirmed, shipped or delivered"
    )
    orders_advance_parser.add_argument("order_id", help="Order ID")
    orders_advance_parser.add_argument(
        "status", choices=["confirmed", "shipped", "delivered"], help="Target status"
    )
    orders_advance_parser.add_argument("--note", "-n", help="History note")

    orders_approve_parser = orders_subparsers.add_parser(
        "approve-upi", help="Approve a UPI payment awaiting verification"
    )
    orders_approve_parser.add_argument("order_id", help="Order ID")

    # subscriptions (subcommand group)
    subs_parser = subparsers.add_parser("subscriptions", help="Manage admin subscriptions")
    subs_subparsers = subs_parser.add_subparsers(dest="subscriptions_command")

    subs_grant_parser = subs_subparsers.add_parser(
        "grant", help="Activate a plan for an admin without payment"
    )
    subs_grant_parser.add_argument("user_id", help="Admin user ID (token subject)")
    subs_grant_parser.add_argument(
        "--plan", default="basic", choices=["basic", "professional", "enterprise"]
    )
    subs_grant_parser.add_argument("--days", type=int, help="Length in days (default: plan length)")

    # export
    export_parser = subparsers.add_parser("export", help="Export a collection as JSON")
    export_parser.add_argument(
        "--type", "-t", required=True, choices=list(EXPORT_KINDS), help="What to export"
    )
    export_parser.add_argument("--output", "-o", help="Output file (default: stdout)")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    settings = get_settings()
    configure_logging(settings.log_level, json=settings.log_json)

    groups = {
        "products": ("products_command", {"list": cmd_products_list}),
        "orders": (
            "orders_command",
            {
                "list": cmd_orders_list,
                "advance": cmd_orders_advance,
                "approve-upi": cmd_orders_approve_upi,
            },
        ),
        "subscriptions": ("subscriptions_command", {"grant": cmd_subscriptions_grant}),
    }
    if args.command in groups:
        dest, handlers = groups[args.command]
        subcommand = getattr(args, dest, None)
        if not subcommand:
            parser.parse_args([args.command, "--help"])
            return 0
        return handlers[subcommand](args)

    commands = {
        "serve": cmd_serve,
        "seed": cmd_seed,
        "export": cmd_export,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
