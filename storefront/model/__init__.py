# ------ storefront/model/__init__.py ------

from .user import User
from .product import Product
from .order import Order, OrderItem, PENDING, COMPLETED, CANCELLED, ORDER_STATUSES
from .coupon import Coupon, CouponUsage, PERCENTAGE, FIXED, DISCOUNT_TYPES

__all__ = [
    "User",
    "Product",
    "Order",
    "OrderItem",
    "Coupon",
    "CouponUsage",
    "PENDING",
    "COMPLETED",
    "CANCELLED",
    "ORDER_STATUSES",
    "PERCENTAGE",
    "FIXED",
    "DISCOUNT_TYPES",
]
