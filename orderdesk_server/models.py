"""Data models for OrderDesk entities."""

import copy
import time
from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .currency import parse_price

DEFAULT_HEX = "#000000"
OPAQUE_BLACK = 0xFF000000


def _opt_str(value: Any) -> Optional[str]:
    """Return ``value`` as a string, keeping ``None`` as ``None``."""
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _first(record: Mapping[str, Any], *keys: str) -> Any:
    """Return the first non-null value among ``keys``."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def _parse_quantity(value: Any) -> int:
    if value is None:
        return 1
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        return int(str(value))
    except ValueError:
        return 1


class ColorInfo(BaseModel):
    """Color of a product variant."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="", description="Human readable color name")
    hex: str = Field(default=DEFAULT_HEX, description="RGB hex code, optionally prefixed with #")

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ColorInfo":
        """Create a ColorInfo from a stored record. Never raises."""
        name = record.get("name")
        hex_value = record.get("hex")
        return cls(
            name=_opt_str(name) or "",
            hex=hex_value if isinstance(hex_value, str) else DEFAULT_HEX,
        )

    def to_record(self) -> dict[str, str]:
        return {"name": self.name, "hex": self.hex}

    @property
    def color(self) -> int:
        """
        ARGB value for rendering.

        Six digit codes get a fully opaque alpha channel. Anything that does
        not parse as hex falls back to opaque black.
        """
        digits = self.hex.replace("#", "")
        if len(digits) == 6:
            digits = "FF" + digits
        if len(digits) != 8:
            return OPAQUE_BLACK
        try:
            return int(digits, 16)
        except ValueError:
            return OPAQUE_BLACK

    @property
    def argb_hex(self) -> str:
        return f"{self.color:08X}"

    def __str__(self) -> str:
        return f"ColorInfo(name: {self.name}, hex: {self.hex})"


def _parse_color(value: Any) -> Optional[ColorInfo]:
    # Writers store either a bare hex string or a {name, hex} map.
    if isinstance(value, str):
        return ColorInfo(name="", hex=value)
    if isinstance(value, Mapping):
        return ColorInfo.from_record(value)
    return None


class OrderItem(BaseModel):
    """
    A single line of an order: a simple product or a bundle.

    Two items are equal when their ``unique_key`` matches, whatever the
    other fields hold.
    """

    model_config = ConfigDict(frozen=True)

    product_id: str = Field(description="Catalog product ID")
    title: str = Field(description="Product title")
    quantity: int = Field(default=1, description="Number of units")
    price: str = Field(default="0", description="Unit price as stored, e.g. '₹499' or '12.50'")
    size: Optional[str] = Field(None, description="Selected size")
    color: Optional[ColorInfo] = Field(None, description="Selected color")
    image: Optional[str] = Field(None, description="Image URL")
    is_combo: bool = Field(default=False, description="Combo product flag")
    id: str = Field(default="", description="Catalog identifier")
    unique_key: str = Field(description="Disambiguates otherwise identical lines")

    # Bundle fields
    bundle_id: Optional[str] = Field(None, description="Bundle ID")
    is_bundle_item: bool = Field(default=False, description="Whether this line is a bundle")
    bundle_price: Optional[str] = Field(None, description="Price of the whole bundle")
    bundle_name: Optional[str] = Field(None, description="Bundle name")
    original_individual_price: Optional[str] = Field(
        None, description="Sum of the standalone prices of the bundle products"
    )
    bundle_product_sizes: Optional[dict[str, str]] = Field(
        None, description="Maps productId to the size chosen inside the bundle"
    )
    bundle_products: Optional[list[dict[str, Any]]] = Field(
        None, description="Products of the bundle (productId, title, quantity, price, image, size)"
    )

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "OrderItem":
        """
        Create an OrderItem from a stored record.

        Every field has a fallback, so this never raises. Key precedence is
        productId over id, title over name, image over imageUrl and
        uniqueKey over id.
        """
        unique_key = _first(record, "uniqueKey", "id")
        if unique_key is None:
            unique_key = str(int(time.time() * 1000))

        sizes = record.get("bundleProductSizes")
        bundle_product_sizes = None
        if isinstance(sizes, Mapping):
            bundle_product_sizes = {str(k): _opt_str(v) or "" for k, v in sizes.items()}

        products = record.get("bundleProducts")
        bundle_products = None
        if isinstance(products, list):
            bundle_products = [
                copy.deepcopy(dict(product)) for product in products if isinstance(product, Mapping)
            ]

        price = _opt_str(record.get("price"))
        is_combo = record.get("isCombo")
        is_bundle_item = record.get("isBundleItem")

        return cls(
            product_id=_opt_str(_first(record, "productId", "id")) or "",
            title=_opt_str(_first(record, "title", "name")) or "",
            quantity=_parse_quantity(record.get("quantity")),
            price=price if price is not None else "0",
            size=_opt_str(record.get("size")),
            color=_parse_color(record.get("color")),
            image=_opt_str(_first(record, "image", "imageUrl")),
            is_combo=is_combo if isinstance(is_combo, bool) else False,
            id=_opt_str(record.get("id")) or "",
            unique_key=_opt_str(unique_key),
            bundle_id=_opt_str(record.get("bundleId")),
            is_bundle_item=is_bundle_item if isinstance(is_bundle_item, bool) else False,
            bundle_price=_opt_str(record.get("bundlePrice")),
            bundle_name=_opt_str(record.get("bundleName")),
            original_individual_price=_opt_str(record.get("originalIndividualPrice")),
            bundle_product_sizes=bundle_product_sizes,
            bundle_products=bundle_products,
        )

    def to_record(self) -> dict[str, Any]:
        """Convert to the stored record shape."""
        return {
            "productId": self.product_id,
            "title": self.title,
            "quantity": self.quantity,
            "price": self.price,
            "size": self.size,
            "color": self.color.to_record() if self.color else None,
            "image": self.image,
            "isCombo": self.is_combo,
            "id": self.id,
            "uniqueKey": self.unique_key,
            "bundleId": self.bundle_id,
            "isBundleItem": self.is_bundle_item,
            "bundlePrice": self.bundle_price,
            "bundleName": self.bundle_name,
            "originalIndividualPrice": self.original_individual_price,
            "bundleProductSizes": dict(self.bundle_product_sizes)
            if self.bundle_product_sizes is not None
            else None,
            "bundleProducts": copy.deepcopy(self.bundle_products)
            if self.bundle_products is not None
            else None,
        }

    def copy_with(self, **changes: Any) -> "OrderItem":
        """Return a copy with the given fields replaced. ``None`` keeps the current value."""
        unknown = set(changes) - set(type(self).model_fields)
        if unknown:
            raise TypeError(f"Unknown OrderItem field(s): {', '.join(sorted(unknown))}")
        update = {key: value for key, value in changes.items() if value is not None}
        if "color" in update and not isinstance(update["color"], ColorInfo):
            update["color"] = _parse_color(update["color"])
        return type(self).model_validate(self.model_dump() | update)

    @property
    def price_value(self) -> float:
        return parse_price(self.price)

    @property
    def total_price(self) -> float:
        return self.price_value * self.quantity

    @property
    def bundle_price_value(self) -> float:
        return parse_price(self.bundle_price)

    @property
    def original_individual_price_value(self) -> float:
        return parse_price(self.original_individual_price)

    @property
    def bundle_savings(self) -> float:
        """Savings from the bundle discount. Negative when the data is inconsistent."""
        return (self.original_individual_price_value - self.bundle_price_value) * self.quantity

    def product_size_in_bundle(self, product_id: str) -> str:
        """Size chosen for ``product_id`` inside the bundle, or an empty string."""
        if not self.bundle_product_sizes:
            return ""
        return self.bundle_product_sizes.get(product_id, "")

    def all_bundle_product_sizes(self) -> dict[str, str]:
        return dict(self.bundle_product_sizes or {})

    def format_bundle_product_sizes(self) -> str:
        """Format as ``"pid1: XL, pid2: M"``."""
        if not self.bundle_product_sizes:
            return ""
        return ", ".join(f"{pid}: {size}" for pid, size in self.bundle_product_sizes.items())

    def bundle_products_or_empty(self) -> list[dict[str, Any]]:
        return list(self.bundle_products or [])

    def bundle_product_count(self) -> int:
        return len(self.bundle_products or [])

    def bundle_product(self, product_id: str) -> Optional[dict[str, Any]]:
        """First bundle product with ``product_id``, or None."""
        for product in self.bundle_products or []:
            if product.get("productId") == product_id:
                return product
        return None

    def format_bundle_products_list(self) -> str:
        """Format as ``"Shirt (XL), Jeans (M), Cap"``."""
        if not self.bundle_products:
            return ""
        sizes = self.bundle_product_sizes or {}
        parts = []
        for product in self.bundle_products:
            product_id = product.get("productId")
            title = _first(product, "title", "productId")
            title = _opt_str(title) if title is not None else "Unknown"
            size = product.get("size")
            if size is None:
                size = sizes.get(product_id, "") if product_id is not None else ""
            size = _opt_str(size)
            parts.append(f"{title} ({size})" if size else title)
        return ", ".join(parts)

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        return isinstance(other, OrderItem) and other.unique_key == self.unique_key

    def __hash__(self) -> int:
        return hash(self.unique_key)

    def __str__(self) -> str:
        return (
            f"OrderItem(productId: {self.product_id}, title: {self.title}, "
            f"quantity: {self.quantity}, price: {self.price}, "
            f"isBundleItem: {self.is_bundle_item}, bundleName: {self.bundle_name})"
        )


class OrderStatus(str, Enum):
    """Fulfilment status of an order."""

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "OrderStatus":
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.PENDING

    @classmethod
    def parse(cls, value: str) -> "OrderStatus":
        """Strict variant of ``from_string`` for user input. Raises ValueError on unknown names."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown order status: {value!r} (expected one of: {', '.join(s.value for s in cls)})"
            ) from None

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def step_index(self) -> int:
        """Position on the tracking timeline; cancelled orders are off the timeline."""
        if self is OrderStatus.CANCELLED:
            return -1
        return [OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED].index(self)


class PaymentStatus(str, Enum):
    """Payment status of an order."""

    PENDING = "pending"
    PAID = "paid"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "PaymentStatus":
        if value is not None and str(value).lower() == "paid":
            return cls.PAID
        return cls.PENDING

    @classmethod
    def parse(cls, value: str) -> "PaymentStatus":
        """Strict variant of ``from_string`` for user input. Raises ValueError on unknown names."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown payment status: {value!r} (expected one of: {', '.join(s.value for s in cls)})"
            ) from None

    @property
    def label(self) -> str:
        return self.value.capitalize()


class ShippingAddress(BaseModel):
    """Shipping address of an order."""

    model_config = ConfigDict(frozen=True)

    first_name: str = ""
    last_name: str = ""
    street: str = ""
    landmark: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""
    phone: str = ""

    @classmethod
    def from_record(cls, record: Optional[Mapping[str, Any]]) -> "ShippingAddress":
        if not isinstance(record, Mapping):
            return cls()
        return cls(
            first_name=_opt_str(record.get("firstName")) or "",
            last_name=_opt_str(record.get("lastName")) or "",
            street=_opt_str(_first(record, "streetAddress", "street")) or "",
            landmark=_opt_str(record.get("landmark")) or "",
            city=_opt_str(record.get("city")) or "",
            state=_opt_str(record.get("state")) or "",
            pincode=_opt_str(record.get("pincode")) or "",
            phone=_opt_str(_first(record, "mobileNumber", "phone")) or "",
        )

    def to_record(self) -> dict[str, str]:
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "streetAddress": self.street,
            "landmark": self.landmark,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
            "mobileNumber": self.phone,
        }

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def full_address(self) -> str:
        parts = [self.street, self.landmark, self.city, self.state, self.pincode]
        return ", ".join(part for part in parts if part)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return datetime.now()


class Order(BaseModel):
    """A complete order as stored in the ``orders`` collection."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Order document ID")
    customer_name: str = Field(default="Unknown", description="Name from the shipping address")
    customer_email: str = Field(default="", description="Customer email")
    total_price: float = Field(default=0.0, description="Order amount")
    total_products: int = Field(default=0, description="Sum of item quantities")
    payment_mode: str = Field(default="cod", description="'cod' or 'online'")
    payment_id: Optional[str] = Field(None, description="Payment gateway payment ID")
    status: OrderStatus = Field(default=OrderStatus.PENDING, description="Fulfilment status")
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING, description="Payment status")
    order_date: datetime = Field(default_factory=datetime.now, description="Order creation timestamp")
    items: list[OrderItem] = Field(default_factory=list, description="Order items")
    shipping_address: ShippingAddress = Field(default_factory=ShippingAddress)
    razorpay_order_id: Optional[str] = Field(None, description="Payment gateway order ID")
    user_id: Optional[str] = Field(None, description="Owner user ID")
    status_history: list[dict[str, Any]] = Field(
        default_factory=list, description="Status changes as {status, timestamp} records"
    )

    @classmethod
    def from_record(cls, doc_id: str, data: Mapping[str, Any]) -> "Order":
        raw_items = data.get("items")
        items = [
            OrderItem.from_record(item)
            for item in (raw_items if isinstance(raw_items, list) else [])
            if isinstance(item, Mapping)
        ]
        address = ShippingAddress.from_record(data.get("address"))
        customer_name = address.full_name
        raw_history = data.get("statusHistory")
        status_history = [
            copy.deepcopy(dict(entry))
            for entry in (raw_history if isinstance(raw_history, list) else [])
            if isinstance(entry, Mapping)
        ]

        return cls(
            id=doc_id,
            customer_name=customer_name or "Unknown",
            customer_email=_opt_str(_first(data, "customerEmail", "userEmail")) or "",
            total_price=parse_price(data.get("amount")),
            total_products=sum(item.quantity for item in items),
            payment_mode=_opt_str(data.get("paymentMode")) or "cod",
            payment_id=_opt_str(data.get("razorpayPaymentId")),
            status=OrderStatus.from_string(data.get("status")),
            payment_status=PaymentStatus.from_string(data.get("paymentStatus")),
            order_date=_parse_datetime(data.get("createdAt")),
            items=items,
            shipping_address=address,
            razorpay_order_id=_opt_str(data.get("razorpayOrderId")),
            user_id=_opt_str(data.get("userId")),
            status_history=status_history,
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "items": [item.to_record() for item in self.items],
            "address": self.shipping_address.to_record(),
            "amount": self.total_price,
            "status": self.status.value,
            "paymentStatus": self.payment_status.value,
            "paymentMode": self.payment_mode,
            "razorpayOrderId": self.razorpay_order_id,
            "razorpayPaymentId": self.payment_id,
            "createdAt": self.order_date.isoformat(),
            "customerEmail": self.customer_email,
            "statusHistory": copy.deepcopy(self.status_history),
        }

    def copy_with(self, **changes: Any) -> "Order":
        update = {key: value for key, value in changes.items() if value is not None}
        return type(self).model_validate(self.model_dump() | update)

    @property
    def is_cod(self) -> bool:
        return self.payment_mode.lower() == "cod"

    @property
    def is_online_payment(self) -> bool:
        return self.payment_mode.lower() == "online"

    @property
    def is_active(self) -> bool:
        return self.status not in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

    @property
    def short_id(self) -> str:
        return f"{self.id[:8]}..." if len(self.id) > 8 else self.id

    @property
    def has_bundle_items(self) -> bool:
        return any(item.is_bundle_item for item in self.items)

    @property
    def bundle_ids(self) -> list[str]:
        """Distinct bundle IDs in item order."""
        seen: list[str] = []
        for item in self.items:
            if item.is_bundle_item and item.bundle_id and item.bundle_id not in seen:
                seen.append(item.bundle_id)
        return seen

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Order) and other.id == self.id

    def __hash__(self) -> int:
        return hash(self.id)


class UserIdentity(BaseModel):
    """User as reported by the identity provider."""

    model_config = ConfigDict(frozen=True)

    uid: str = Field(description="Opaque user ID")
    email: Optional[str] = Field(None, description="User email")
    display_name: Optional[str] = Field(None, description="Display name")


class AuthCredentials(BaseModel):
    """Authentication credentials."""

    email: str
    password: str


class SessionState(BaseModel):
    """Point-in-time view of an AuthSession."""

    user: Optional[UserIdentity] = Field(None, description="Signed in user")
    is_authenticated: bool = Field(default=False, description="Authentication status")
    is_admin: bool = Field(default=False, description="Admin flag")
    is_loading: bool = Field(default=False, description="An operation is in flight")
    last_error: Optional[str] = Field(None, description="Error of the last failed operation")
    remember_me: bool = Field(default=False, description="Remember me preference")
