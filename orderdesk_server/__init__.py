"""OrderDesk: order line items and authentication sessions for the COGA store."""

from .errors import AuthError, OrderDeskError, StoreError
from .models import ColorInfo, Order, OrderItem, OrderStatus, PaymentStatus, ShippingAddress, UserIdentity
from .session import AuthSession

__version__ = "0.1.0"

__all__ = [
    "AuthError",
    "AuthSession",
    "ColorInfo",
    "Order",
    "OrderDeskError",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "ShippingAddress",
    "StoreError",
    "UserIdentity",
]
