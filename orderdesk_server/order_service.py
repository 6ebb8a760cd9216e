"""Order loading, updates and reporting."""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from .errors import StoreError
from .models import Order, OrderItem, OrderStatus, PaymentStatus
from .providers import DocumentStore

logger = logging.getLogger(__name__)

CURRENT_STATUSES = (OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.SHIPPED)
PREVIOUS_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class OrderService:
    """Reads and writes orders through a DocumentStore."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def _parse_orders(self, records: list[tuple[str, dict[str, Any]]]) -> list[Order]:
        orders = []
        for doc_id, record in records:
            try:
                orders.append(Order.from_record(doc_id, record))
            except Exception as e:
                logger.warning(f"Skipping unreadable order {doc_id}: {e}")
        orders.sort(key=lambda order: _sort_key(order.order_date), reverse=True)
        return orders

    async def get_user_orders(self, user_id: str) -> list[Order]:
        """Orders placed by ``user_id``, newest first."""
        return self._parse_orders(await self.store.get_orders_for_user(user_id))

    async def get_all_orders(self) -> list[Order]:
        """Every order, newest first."""
        return self._parse_orders(await self.store.get_all_orders())

    async def get_order(self, order_id: str) -> Optional[Order]:
        record = await self.store.get_order(order_id)
        if record is None:
            return None
        try:
            return Order.from_record(order_id, record)
        except Exception as e:
            logger.warning(f"Unreadable order {order_id}: {e}")
            return None

    async def create_order(self, order: Order) -> str:
        order_id = await self.store.add_order(order.to_record())
        logger.info(f"Created order {order_id}")
        return order_id

    async def delete_order(self, order_id: str) -> None:
        await self.store.delete_order(order_id)
        logger.info(f"Deleted order {order_id}")

    async def _status_history_with(self, order_id: str, status: OrderStatus) -> list[dict[str, Any]]:
        """Stored status history of ``order_id`` with a new entry for ``status`` appended."""
        record = await self.store.get_order(order_id)
        if record is None:
            raise StoreError(f"Order not found: {order_id}")
        history = record.get("statusHistory")
        history = [dict(entry) for entry in history if isinstance(entry, dict)] if isinstance(history, list) else []
        history.append({"status": status.value, "timestamp": _now()})
        return history

    async def update_order_status(self, order_id: str, status: OrderStatus) -> None:
        """Set the status of ``order_id`` and record the change in its status history."""
        history = await self._status_history_with(order_id, status)
        await self.store.update_order(
            order_id, {"status": status.value, "statusHistory": history, "updatedAt": _now()}
        )
        logger.info(f"Order {order_id} is now {status.value}")

    async def update_payment_status(self, order_id: str, payment_status: PaymentStatus) -> None:
        await self.store.update_order(order_id, {"paymentStatus": payment_status.value, "updatedAt": _now()})
        logger.info(f"Order {order_id} payment is now {payment_status.value}")

    async def update_order_and_payment_status(
        self, order_id: str, status: OrderStatus, payment_status: PaymentStatus
    ) -> None:
        history = await self._status_history_with(order_id, status)
        await self.store.update_order(
            order_id,
            {
                "status": status.value,
                "paymentStatus": payment_status.value,
                "statusHistory": history,
                "updatedAt": _now(),
            },
        )
        logger.info(f"Order {order_id} is now {status.value}, payment {payment_status.value}")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sort_key(value: datetime) -> float:
    # Stored dates may be naive or aware
    if value.tzinfo is None:
        return value.timestamp()
    return value.astimezone(timezone.utc).timestamp()


def filter_orders(orders: list[Order], query: str = "", status: str = "") -> list[Order]:
    """
    Filter by status and free text.

    ``status`` of "" or "all" keeps every status. ``query`` matches the
    customer name, email or order ID, case-insensitively.
    An unknown status raises ValueError.
    """
    result = orders
    if status and status.lower() != "all":
        wanted = OrderStatus.parse(status)
        result = [order for order in result if order.status == wanted]
    if query:
        needle = query.lower()
        result = [
            order
            for order in result
            if needle in order.customer_name.lower()
            or needle in order.customer_email.lower()
            or needle in order.id.lower()
        ]
    return result


def current_orders(orders: list[Order]) -> list[Order]:
    return [order for order in orders if order.status in CURRENT_STATUSES]


def previous_orders(orders: list[Order]) -> list[Order]:
    return [order for order in orders if order.status in PREVIOUS_STATUSES]


def order_stats(orders: list[Order]) -> dict[str, int]:
    stats = {"total": len(orders)}
    for status in OrderStatus:
        stats[status.value] = 0
    for order in orders:
        stats[order.status.value] += 1
    return stats


def paginate(orders: list[Order], page: int, page_size: int) -> list[Order]:
    """Page ``page`` (1-based) of ``orders``; empty past the end."""
    start = (page - 1) * page_size
    if start < 0 or start >= len(orders):
        return []
    return orders[start : start + page_size]


def has_more_pages(orders: list[Order], page: int, page_size: int) -> bool:
    return page * page_size < len(orders)


def total_revenue(orders: list[Order]) -> float:
    """Revenue of delivered orders."""
    return sum(order.total_price for order in orders if order.status == OrderStatus.DELIVERED)


def orders_in_date_range(orders: list[Order], start: date, end: date) -> list[Order]:
    """Orders placed after ``start`` and no later than the end of ``end``'s day."""
    start_at = datetime(start.year, start.month, start.day)
    end_at = datetime(end.year, end.month, end.day) + timedelta(days=1)
    return [
        order
        for order in orders
        if start_at < order.order_date.replace(tzinfo=None) < end_at
    ]


def bundle_items_with_sizes(order: Order) -> list[dict[str, Any]]:
    return [
        {
            "productId": item.product_id,
            "bundleId": item.bundle_id,
            "bundleName": item.bundle_name,
            "title": item.title,
            "quantity": item.quantity,
            "bundlePrice": item.bundle_price,
            "originalIndividualPrice": item.original_individual_price,
            "image": item.image,
            "savings": item.bundle_savings,
            "productSizes": item.all_bundle_product_sizes(),
        }
        for item in order.items
        if item.is_bundle_item
    ]


def order_sizes_info(order: Order) -> dict[str, Any]:
    """Sizes of every sized line: bundle lines with their per-product sizes, regular lines with theirs."""
    regular_items = []
    bundle_items = []
    for item in order.items:
        if item.is_bundle_item:
            bundle_items.append(
                {
                    "title": item.title,
                    "bundleName": item.bundle_name,
                    "productSizes": item.all_bundle_product_sizes(),
                }
            )
        elif item.size:
            regular_items.append({"title": item.title, "size": item.size, "quantity": item.quantity})
    return {
        "regularItems": regular_items,
        "bundleItems": bundle_items,
        "hasBundles": bool(bundle_items),
        "hasRegularSizedItems": bool(regular_items),
    }


def _product_display_text(product: dict[str, Any], size: str) -> str:
    title = product.get("title") or product.get("productId") or "Unknown"
    quantity = product.get("quantity") or 1
    price = product.get("price") or "0"
    parts = [str(title)]
    if isinstance(quantity, int) and quantity > 1:
        parts.append(f"(Qty: {quantity})")
    if size:
        parts.append(f"Size: {size}")
    parts.append(f"₹{price}")
    return " • ".join(parts)


def bundle_products_with_details(item: OrderItem) -> list[dict[str, Any]]:
    """
    Products of a bundle line ready for display.

    A size recorded in the bundle's size map wins over the size stored on
    the product entry.
    """
    if not item.is_bundle_item:
        return []
    sizes = item.all_bundle_product_sizes()
    details = []
    for product in item.bundle_products_or_empty():
        product_id = product.get("productId")
        size = sizes[product_id] if product_id in sizes else (product.get("size") or "")
        details.append(
            {
                **product,
                "size": size,
                "quantity": product.get("quantity") or 1,
                "price": product.get("price") or "0",
                "image": product.get("image") or "",
                "displayText": _product_display_text(product, size),
            }
        )
    return details


def order_bundle_products_summary(order: Order) -> list[dict[str, Any]]:
    summary = []
    for item in order.items:
        if item.is_bundle_item:
            products = bundle_products_with_details(item)
            summary.append(
                {
                    "bundleId": item.bundle_id,
                    "bundleName": item.bundle_name,
                    "bundlePrice": item.bundle_price,
                    "originalPrice": item.original_individual_price,
                    "products": products,
                    "productCount": len(products),
                }
            )
    return summary
