"""MCP Server for OrderDesk."""

import asyncio
import json
import logging
from typing import Any, Optional

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool
from pydantic import AnyUrl

from .app import OrderDesk
from .config import Settings
from .currency import format_price, format_price_string
from .models import Order, OrderStatus, PaymentStatus
from .order_service import filter_orders, has_more_pages, order_stats, paginate, total_revenue

logger = logging.getLogger("orderdesk-mcp-server")

# Initialize server
app = Server("orderdesk-mcp-server")

# Global state
desk: Optional[OrderDesk] = None

PAGE_SIZE = 10
NOT_AUTHENTICATED = (
    "Error: Not authenticated. Please configure ORDERDESK_EMAIL and ORDERDESK_PASSWORD, "
    "or use orderdesk_login first."
)


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


def _format_order_line(index: int, order: Order) -> str:
    return (
        f"\n{index}. Order {order.short_id} - {order.status.label}"
        f"\n   Date: {order.order_date:%d %b %Y, %H:%M}"
        f"\n   Customer: {order.customer_name} ({order.customer_email or 'no email'})"
        f"\n   Items: {order.total_products}  Total: {format_price(order.total_price)}"
    )


def format_order_detail(order: Order) -> str:
    """Render one order with its items, bundle contents and address."""
    lines = [
        f"Order {order.id}",
        f"Status: {order.status.label}",
        f"Payment: {order.payment_status.label} ({order.payment_mode.upper()})",
        f"Date: {order.order_date:%d %b %Y, %H:%M}",
        f"Customer: {order.customer_name}",
    ]
    if order.customer_email:
        lines.append(f"Email: {order.customer_email}")
    if order.shipping_address.full_address:
        lines.append(f"Ship to: {order.shipping_address.full_address}")
    if order.shipping_address.phone:
        lines.append(f"Phone: {order.shipping_address.phone}")

    lines.append(f"\nItems ({order.total_products}):")
    for item in order.items:
        if item.is_bundle_item:
            lines.append(
                f"  - {item.bundle_name or item.title} (bundle) x{item.quantity}: "
                f"{format_price_string(item.bundle_price)}"
            )
            products = item.format_bundle_products_list()
            if products:
                lines.append(f"      Contains: {products}")
            if item.bundle_savings > 0:
                lines.append(f"      You save: {format_price(item.bundle_savings)}")
        else:
            details = []
            if item.size:
                details.append(f"Size: {item.size}")
            if item.color:
                details.append(f"Color: {item.color.name or item.color.hex}")
            suffix = f" ({', '.join(details)})" if details else ""
            lines.append(f"  - {item.title}{suffix} x{item.quantity}: {format_price(item.total_price)}")

    lines.append(f"\nTotal: {format_price(order.total_price)}")
    return "\n".join(lines)


@app.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    resources = []

    if desk is not None and desk.session.is_authenticated:
        resources.append(
            Resource(
                uri=AnyUrl("orderdesk://orders"),
                name="My Orders",
                mimeType="application/json",
                description="Orders placed by the signed in user",
            )
        )

    return resources


@app.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource by URI."""
    uri_str = str(uri)

    if uri_str == "orderdesk://orders":
        if desk is None or not desk.session.is_authenticated:
            return "Error: Not authenticated. Please login first."

        orders = await desk.orders.get_user_orders(desk.session.user_id)
        return json.dumps([order.to_record() | {"id": order.id} for order in orders], indent=2, default=str)

    raise ValueError(f"Unknown resource: {uri}")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="orderdesk_login",
            description="Sign in with email and password",
            inputSchema={
                "type": "object",
                "properties": {
                    "email": {
                        "type": "string",
                        "description": "Email address (optional if ORDERDESK_EMAIL configured)",
                    },
                    "password": {
                        "type": "string",
                        "description": "Password (optional if ORDERDESK_PASSWORD configured)",
                    },
                },
            },
        ),
        Tool(
            name="orderdesk_signup",
            description="Create a customer account and sign in",
            inputSchema={
                "type": "object",
                "properties": {
                    "email": {"type": "string", "description": "Email address"},
                    "password": {"type": "string", "description": "Password (at least 6 characters)"},
                },
                "required": ["email", "password"],
            },
        ),
        Tool(
            name="orderdesk_admin_signup",
            description="Create an admin account using the admin registration code",
            inputSchema={
                "type": "object",
                "properties": {
                    "email": {"type": "string", "description": "Email address"},
                    "password": {"type": "string", "description": "Password (at least 6 characters)"},
                    "display_name": {"type": "string", "description": "Name shown to other admins"},
                    "admin_code": {"type": "string", "description": "Admin registration code"},
                },
                "required": ["email", "password", "display_name", "admin_code"],
            },
        ),
        Tool(
            name="orderdesk_logout",
            description="Sign out",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="orderdesk_session_status",
            description="Show who is signed in and whether they are an admin",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="orderdesk_reset_password",
            description="Request a password reset email",
            inputSchema={
                "type": "object",
                "properties": {"email": {"type": "string", "description": "Account email"}},
                "required": ["email"],
            },
        ),
        Tool(
            name="orderdesk_my_orders",
            description="List orders of the signed in user, newest first",
            inputSchema={
                "type": "object",
                "properties": {
                    "current_only": {
                        "type": "boolean",
                        "description": "Only orders that are not delivered or cancelled",
                        "default": False,
                    },
                },
            },
        ),
        Tool(
            name="orderdesk_get_order",
            description="Show an order with its items and bundle contents",
            inputSchema={
                "type": "object",
                "properties": {"order_id": {"type": "string", "description": "Order ID"}},
                "required": ["order_id"],
            },
        ),
        Tool(
            name="orderdesk_list_orders",
            description="List all orders (admin only)",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Match customer name, email or order ID"},
                    "status": {
                        "type": "string",
                        "description": "all, pending, processing, shipped, delivered or cancelled",
                        "default": "all",
                    },
                    "page": {"type": "integer", "description": "Page number (default: 1)", "default": 1},
                },
            },
        ),
        Tool(
            name="orderdesk_order_stats",
            description="Order counts per status and delivered revenue (admin only)",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="orderdesk_update_order_status",
            description="Change the status of an order (admin only)",
            inputSchema={
                "type": "object",
                "properties": {
                    "order_id": {"type": "string", "description": "Order ID"},
                    "status": {
                        "type": "string",
                        "description": "pending, processing, shipped, delivered or cancelled",
                    },
                },
                "required": ["order_id", "status"],
            },
        ),
        Tool(
            name="orderdesk_update_payment_status",
            description="Mark an order as paid or pending (admin only)",
            inputSchema={
                "type": "object",
                "properties": {
                    "order_id": {"type": "string", "description": "Order ID"},
                    "payment_status": {"type": "string", "description": "paid or pending"},
                },
                "required": ["order_id", "payment_status"],
            },
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    arguments = arguments or {}
    try:
        if desk is None:
            return _text("Error: Server is not initialized")
        session = desk.session

        if name == "orderdesk_login":
            email = arguments.get("email")
            password = arguments.get("password")

            # Use provided credentials or fall back to environment
            if not email or not password:
                credentials = desk.settings.credentials
                if credentials:
                    email = email or credentials.email
                    password = password or credentials.password
                else:
                    return _text(
                        "Error: No credentials provided and ORDERDESK_EMAIL/ORDERDESK_PASSWORD not configured."
                    )

            if await session.sign_in(email, password):
                role = "admin" if session.is_admin else "customer"
                return _text(f"✅ Successfully logged in as {email} ({role})")
            return _text(f"❌ Login failed: {session.last_error}")

        elif name == "orderdesk_signup":
            if await session.sign_up(arguments["email"], arguments["password"]):
                return _text(f"✅ Account created for {session.user_email}")
            return _text(f"❌ Sign up failed: {session.last_error}")

        elif name == "orderdesk_admin_signup":
            success = await session.sign_up_as_admin(
                arguments["email"],
                arguments["password"],
                arguments["display_name"],
                arguments["admin_code"],
            )
            if success:
                return _text(f"✅ Admin account created for {session.user_email}")
            return _text(f"❌ Admin sign up failed: {session.last_error}")

        elif name == "orderdesk_logout":
            if await session.sign_out():
                return _text("✅ Successfully logged out")
            return _text(f"❌ Logout failed: {session.last_error}")

        elif name == "orderdesk_session_status":
            if not session.is_authenticated:
                return _text("Not signed in")
            lines = [f"Signed in as {session.user_email}"]
            if session.display_name:
                lines.append(f"Name: {session.display_name}")
            lines.append(f"Role: {'admin' if session.is_admin else 'customer'}")
            return _text("\n".join(lines))

        elif name == "orderdesk_reset_password":
            if await session.send_password_reset_email(arguments["email"]):
                return _text(f"✅ Password reset email sent to {arguments['email']}")
            return _text(f"❌ Password reset failed: {session.last_error}")

        elif name == "orderdesk_my_orders":
            if not await desk.ensure_authenticated():
                return _text(NOT_AUTHENTICATED)

            orders = await desk.orders.get_user_orders(session.user_id)
            if arguments.get("current_only"):
                orders = [order for order in orders if order.is_active]

            if not orders:
                return _text("You have no orders")

            result_lines = [f"Found {len(orders)} order(s):"]
            for i, order in enumerate(orders, 1):
                result_lines.append(_format_order_line(i, order))
            return _text("\n".join(result_lines))

        elif name == "orderdesk_get_order":
            if not await desk.ensure_authenticated():
                return _text(NOT_AUTHENTICATED)

            order_id = arguments["order_id"]
            order = await desk.orders.get_order(order_id)
            # Customers only see their own orders
            if order is None or (not session.is_admin and order.user_id != session.user_id):
                return _text(f"Order not found: {order_id}")
            return _text(format_order_detail(order))

        elif name in (
            "orderdesk_list_orders",
            "orderdesk_order_stats",
            "orderdesk_update_order_status",
            "orderdesk_update_payment_status",
        ):
            if not await desk.ensure_authenticated():
                return _text(NOT_AUTHENTICATED)
            if not session.is_admin:
                return _text("Error: Admin access required")

            if name == "orderdesk_update_order_status":
                order_id = arguments["order_id"]
                try:
                    status = OrderStatus.parse(arguments["status"])
                except ValueError as e:
                    return _text(f"Error: {e}")
                if await desk.orders.get_order(order_id) is None:
                    return _text(f"Order not found: {order_id}")
                await desk.orders.update_order_status(order_id, status)
                return _text(f"✅ Order {order_id} marked as {status.label}")

            if name == "orderdesk_update_payment_status":
                order_id = arguments["order_id"]
                try:
                    payment_status = PaymentStatus.parse(arguments["payment_status"])
                except ValueError as e:
                    return _text(f"Error: {e}")
                if await desk.orders.get_order(order_id) is None:
                    return _text(f"Order not found: {order_id}")
                await desk.orders.update_payment_status(order_id, payment_status)
                return _text(f"✅ Payment of order {order_id} marked as {payment_status.label}")

            orders = await desk.orders.get_all_orders()

            if name == "orderdesk_order_stats":
                stats = order_stats(orders)
                result_lines = [f"Orders: {stats.pop('total')}"]
                for status_name, count in stats.items():
                    result_lines.append(f"  {status_name.capitalize()}: {count}")
                result_lines.append(f"Delivered revenue: {format_price(total_revenue(orders))}")
                return _text("\n".join(result_lines))

            filtered = filter_orders(orders, arguments.get("query", ""), arguments.get("status", "all"))
            page = int(arguments.get("page", 1))
            page_orders = paginate(filtered, page, PAGE_SIZE)
            if not page_orders:
                return _text("No orders found")

            result_lines = [f"Showing page {page} of {len(filtered)} matching order(s):"]
            for i, order in enumerate(page_orders, (page - 1) * PAGE_SIZE + 1):
                result_lines.append(_format_order_line(i, order))
            if has_more_pages(filtered, page, PAGE_SIZE):
                result_lines.append(f"\nMore orders on page {page + 1}")
            return _text("\n".join(result_lines))

        else:
            return _text(f"Unknown tool: {name}")

    except Exception as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        return _text(f"Error: {str(e)}")


async def main() -> None:
    """Main entry point."""
    global desk

    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    desk = OrderDesk(settings)
    await desk.start()

    logger.info("Starting OrderDesk MCP Server...")

    # Import and run the server
    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        await desk.close()


if __name__ == "__main__":
    asyncio.run(main())
