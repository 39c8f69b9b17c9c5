"""
Order models

Order is the aggregate root. OrderItem, OrderAddress and OrderTracking rows
are written once and never updated; status and payment_status change only
through services/order_workflow.py.

Monetary fields are Numeric(10, 2).
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, Numeric, ForeignKey, DateTime, Text, Index, CheckConstraint
)
from sqlalchemy.orm import relationship

from storefront.core.database import Base
from storefront.core.utils import utcnow


# =============================================================================
# ENUMS
# =============================================================================

class OrderStatus(str, PyEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, PyEnum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class AddressType(str, PyEnum):
    SHIPPING = "shipping"
    BILLING = "billing"


# refunded is terminal; a cancelled order whose payment was captured can still be refunded
VALID_STATUS_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.REFUNDED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: {OrderStatus.REFUNDED},
    OrderStatus.REFUNDED: set(),
}

CANCELLABLE_STATUSES = {OrderStatus.PENDING, OrderStatus.PROCESSING}

# Payment methods settled through the processor; these orders must carry a hold reference
PROCESSOR_PAYMENT_METHODS = {"stripe"}


# =============================================================================
# MODELS
# =============================================================================

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    status = Column(String(20), default=OrderStatus.PENDING.value, nullable=False, index=True)
    payment_status = Column(String(20), default=PaymentStatus.PENDING.value, nullable=False, index=True)
    payment_method = Column(String(50), nullable=False)
    payment_reference = Column(String(255), nullable=True, unique=True, index=True)

    subtotal = Column(Numeric(10, 2), nullable=False)
    tax_amount = Column(Numeric(10, 2), default=0, nullable=False)
    shipping_amount = Column(Numeric(10, 2), default=0, nullable=False)
    discount_amount = Column(Numeric(10, 2), default=0, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="USD", nullable=False)

    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    shipped_at = Column(DateTime(timezone=True))
    delivered_at = Column(DateTime(timezone=True))

    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    addresses = relationship("OrderAddress", back_populates="order", cascade="all, delete-orphan")
    tracking = relationship(
        "OrderTracking",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderTracking.id",
    )

    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="ck_orders_subtotal_non_negative"),
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
    )

    @property
    def settles_through_processor(self) -> bool:
        return (self.payment_method or "").lower() in PROCESSOR_PAYMENT_METHODS

    def address(self, address_type: AddressType):
        for addr in self.addresses:
            if addr.address_type == address_type.value:
                return addr
        return None

    @property
    def shipping_address(self):
        return self.address(AddressType.SHIPPING)

    @property
    def billing_address(self):
        return self.address(AddressType.BILLING)


class OrderItem(Base):
    """Snapshot of a product at purchase time."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    product_name = Column(String(255), nullable=False)
    product_sku = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )


class OrderAddress(Base):
    __tablename__ = "order_addresses"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    address_type = Column(String(20), nullable=False)

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    company = Column(String(255))
    address_line_1 = Column(String(255), nullable=False)
    address_line_2 = Column(String(255))
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    postal_code = Column(String(20), nullable=False)
    country = Column(String(100), nullable=False)
    phone = Column(String(50))

    order = relationship("Order", back_populates="addresses")

    __table_args__ = (
        Index("ix_order_addresses_order_type", "order_id", "address_type", unique=True),
    )


class OrderTracking(Base):
    """Append-only audit trail of order status changes."""
    __tablename__ = "order_tracking"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    message = Column(Text)
    tracking_number = Column(String(100))
    carrier = Column(String(100))
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    order = relationship("Order", back_populates="tracking")
