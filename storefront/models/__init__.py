from storefront.models.user import User
from storefront.models.product import Product, ProductStatus
from storefront.models.cart import CartItem
from storefront.models.order import (
    Order,
    OrderItem,
    OrderAddress,
    OrderTracking,
    OrderStatus,
    PaymentStatus,
    AddressType,
    VALID_STATUS_TRANSITIONS,
    CANCELLABLE_STATUSES,
    PROCESSOR_PAYMENT_METHODS,
)

__all__ = [
    "User",
    "Product",
    "ProductStatus",
    "CartItem",
    "Order",
    "OrderItem",
    "OrderAddress",
    "OrderTracking",
    "OrderStatus",
    "PaymentStatus",
    "AddressType",
    "VALID_STATUS_TRANSITIONS",
    "CANCELLABLE_STATUSES",
    "PROCESSOR_PAYMENT_METHODS",
]
