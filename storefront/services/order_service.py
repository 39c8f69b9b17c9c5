"""
Order Service

Assembles orders from carts (customers) or explicit lines (admins) and
answers order queries.

Orders paid through the processor carry the reference of a manual-capture hold.
The hold is fetched before any row is locked and checked against the priced
cart inside the transaction: it must be authorized, belong to the buyer, match
the order total and currency, and not already back another order.

Checkout runs as one transaction:
1. Read the cart and lock the referenced product rows
2. Check each product is sellable and has enough stock
3. Price the lines, verify the payment hold, allocate an order number
4. Insert the order with its items, addresses and first tracking entry
5. Decrement stock with a conditional update, clear the cart
Any failure rolls the whole transaction back and leaves the cart untouched.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.config import settings
from storefront.core.database import transaction
from storefront.core.exceptions import (
    EmptyCartError,
    InsufficientStockError,
    NotFoundError,
    PaymentVerificationError,
    ProductUnavailableError,
)
from storefront.core.utils import dollars_to_cents, quantize_money, utcnow
from storefront.models.cart import CartItem
from storefront.models.order import (
    AddressType,
    Order,
    OrderAddress,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    PROCESSOR_PAYMENT_METHODS,
)
from storefront.models.product import Product
from storefront.models.user import User
from storefront.schemas.order import AddressInput, AdminOrderCreate, OrderCreate
from storefront.services import inventory
from storefront.services.cart_service import read_cart
from storefront.services.payment_gateway import PaymentGateway, PaymentIntentResult
from storefront.services.tracking import append_entry

logger = logging.getLogger(__name__)

ORDER_PLACED_MESSAGE = "Order placed successfully. Payment authorized. Awaiting admin confirmation."
ORDER_PLACED_UNPAID_MESSAGE = "Order placed successfully. Awaiting admin confirmation."
ADMIN_ORDER_MESSAGE = "Order created by admin."

# Stripe status of a manual-capture intent that holds funds
AUTHORIZED_HOLD_STATUS = "requires_capture"


@dataclass
class OrderTotals:
    subtotal: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal


def calculate_totals(
    subtotal: Decimal,
    tax_amount: Optional[Decimal] = None,
    shipping_amount: Optional[Decimal] = None,
    discount_amount: Decimal = Decimal("0"),
) -> OrderTotals:
    """
    Flat tax on the subtotal, flat shipping below the free-shipping threshold.

    Explicit tax/shipping amounts (admin orders) replace the computed ones.
    """
    subtotal = quantize_money(subtotal)
    if tax_amount is None:
        tax_amount = subtotal * settings.TAX_RATE
    if shipping_amount is None:
        shipping_amount = (
            Decimal("0") if subtotal >= settings.FREE_SHIPPING_THRESHOLD
            else settings.FLAT_SHIPPING_RATE
        )
    tax_amount = quantize_money(tax_amount)
    shipping_amount = quantize_money(shipping_amount)
    discount_amount = quantize_money(discount_amount)

    return OrderTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        shipping_amount=shipping_amount,
        discount_amount=discount_amount,
        total_amount=subtotal + tax_amount + shipping_amount - discount_amount,
    )


def generate_order_number(prefix: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """
    Human-readable order number: PREFIX-YYYYMMDD-XXXXXXXX.

    The random suffix makes collisions negligible; the unique index on
    orders.order_number is what guarantees it.
    """
    prefix = prefix or settings.ORDER_NUMBER_PREFIX
    date_part = (now or utcnow()).strftime("%Y%m%d")
    return f"{prefix}-{date_part}-{uuid.uuid4().hex[:8].upper()}"


def build_address(address_type: AddressType, data: AddressInput) -> OrderAddress:
    return OrderAddress(address_type=address_type.value, **data.model_dump())


def build_item(product: Product, quantity: int, unit_price: Decimal) -> OrderItem:
    """Snapshot the product as sold."""
    unit_price = quantize_money(unit_price)
    return OrderItem(
        product_id=product.id,
        product_name=product.name,
        product_sku=product.sku,
        quantity=quantity,
        unit_price=unit_price,
        total_price=quantize_money(unit_price * quantity),
    )


def _order_query():
    return select(Order).options(
        selectinload(Order.items),
        selectinload(Order.addresses),
        selectinload(Order.tracking),
    )


async def load_order(db: AsyncSession, order_id: int, for_update: bool = False) -> Order:
    """Load the full aggregate or raise NotFoundError."""
    query = _order_query().where(Order.id == order_id)
    if for_update:
        query = query.with_for_update(of=Order)
    result = await db.execute(query.execution_options(populate_existing=True))
    order = result.scalar_one_or_none()
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


class OrderService:
    """Order assembly and queries."""

    def _check_lines(
        self,
        products: Dict[int, Product],
        lines: List[Tuple[int, int]],
    ) -> None:
        """Every line must reference a sellable product with enough stock."""
        required: Dict[int, int] = {}
        for product_id, quantity in lines:
            required[product_id] = required.get(product_id, 0) + quantity

        for product_id, quantity in required.items():
            product = products.get(product_id)
            if product is None or not product.is_sellable:
                raise ProductUnavailableError(product_id, product.name if product else None)
            if quantity > product.stock_quantity:
                raise InsufficientStockError(
                    product_id=product.id,
                    product_name=product.name,
                    requested=quantity,
                    available=product.stock_quantity,
                )

    def _require_reference(self, payment_method: str, reference: Optional[str]) -> None:
        if payment_method.lower() in PROCESSOR_PAYMENT_METHODS and not reference:
            raise PaymentVerificationError(
                f"A payment authorization is required for payment method {payment_method}",
                details={"payment_method": payment_method},
            )

    async def _check_reference_unused(self, db: AsyncSession, reference: str) -> None:
        result = await db.execute(select(Order.id).where(Order.payment_reference == reference))
        existing = result.scalar_one_or_none()
        if existing is not None:
            raise PaymentVerificationError(
                "An order already exists for this payment",
                details={"payment_reference": reference, "order_id": existing},
            )

    async def _verify_hold(
        self,
        db: AsyncSession,
        hold: PaymentIntentResult,
        user: User,
        total: Decimal,
    ) -> None:
        """The hold must be live, belong to the buyer and cover exactly this order."""
        details = {"payment_reference": hold.reference}
        if hold.status != AUTHORIZED_HOLD_STATUS:
            raise PaymentVerificationError(
                f"Payment is not authorized. Status: {hold.status}",
                details={**details, "status": hold.status},
            )
        if hold.metadata.get("user_id") != str(user.id):
            raise PaymentVerificationError("Payment does not belong to this user", details=details)
        if (hold.currency or "").lower() != settings.ORDER_CURRENCY.lower():
            raise PaymentVerificationError(
                "Payment currency does not match the order currency",
                details={**details, "currency": hold.currency, "expected": settings.ORDER_CURRENCY},
            )
        expected = dollars_to_cents(total)
        if hold.amount != expected:
            raise PaymentVerificationError(
                "Authorized amount does not match the order total",
                details={**details, "authorized": hold.amount, "expected": expected},
            )
        await self._check_reference_unused(db, hold.reference)

    async def place_order(
        self,
        db: AsyncSession,
        user: User,
        data: OrderCreate,
        gateway: PaymentGateway,
    ) -> Order:
        """Turn the user's cart into an order. Returns the full aggregate."""
        self._require_reference(data.payment_method, data.stripe_payment_id)
        hold = None
        if data.stripe_payment_id:
            hold = await gateway.retrieve(data.stripe_payment_id)

        async with transaction(db):
            cart_lines = await read_cart(db, user.id)
            if not cart_lines:
                raise EmptyCartError()

            lines = [(line.product_id, line.quantity) for line in cart_lines]
            products = await inventory.lock_products(db, [pid for pid, _ in lines])
            self._check_lines(products, lines)

            items = [
                build_item(products[pid], quantity, products[pid].price)
                for pid, quantity in lines
            ]
            totals = calculate_totals(sum((item.total_price for item in items), Decimal("0")))
            if hold is not None:
                await self._verify_hold(db, hold, user, totals.total_amount)

            order = Order(
                order_number=generate_order_number(),
                user_id=user.id,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                payment_method=data.payment_method,
                payment_reference=hold.reference if hold else None,
                subtotal=totals.subtotal,
                tax_amount=totals.tax_amount,
                shipping_amount=totals.shipping_amount,
                discount_amount=totals.discount_amount,
                total_amount=totals.total_amount,
                currency=settings.ORDER_CURRENCY,
                notes=data.notes,
                items=items,
                addresses=[
                    build_address(AddressType.SHIPPING, data.shipping_address),
                    build_address(AddressType.BILLING, data.billing_address),
                ],
            )
            append_entry(
                order,
                OrderStatus.PENDING,
                ORDER_PLACED_MESSAGE if hold else ORDER_PLACED_UNPAID_MESSAGE,
            )
            db.add(order)

            for pid, quantity in lines:
                await inventory.reserve(db, products[pid], quantity)

            await db.execute(delete(CartItem).where(CartItem.user_id == user.id))

        logger.info(
            f"Order {order.order_number} placed by user {user.id}: "
            f"{len(items)} line(s), total {order.total_amount} {order.currency}"
        )
        return order

    async def create_order_for_user(self, db: AsyncSession, admin: User, data: AdminOrderCreate) -> Order:
        """
        Admin-entered order with explicit lines. The customer's cart is not touched.

        The payment reference is recorded as given; it must still be unique.
        """
        self._require_reference(data.payment_method, data.payment_reference)

        async with transaction(db):
            customer = await db.get(User, data.user_id)
            if not customer:
                raise NotFoundError("User not found", details={"user_id": data.user_id})
            if data.payment_reference:
                await self._check_reference_unused(db, data.payment_reference)

            lines = [(line.product_id, line.quantity) for line in data.items]
            products = await inventory.lock_products(db, [pid for pid, _ in lines])
            self._check_lines(products, lines)

            items = []
            for line in data.items:
                product = products[line.product_id]
                unit_price = line.unit_price if line.unit_price is not None else product.price
                items.append(build_item(product, line.quantity, unit_price))

            totals = calculate_totals(
                sum((item.total_price for item in items), Decimal("0")),
                tax_amount=data.tax_amount,
                shipping_amount=data.shipping_amount,
            )

            order = Order(
                order_number=generate_order_number(),
                user_id=customer.id,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                payment_method=data.payment_method,
                payment_reference=data.payment_reference,
                subtotal=totals.subtotal,
                tax_amount=totals.tax_amount,
                shipping_amount=totals.shipping_amount,
                discount_amount=totals.discount_amount,
                total_amount=totals.total_amount,
                currency=settings.ORDER_CURRENCY,
                notes=data.notes,
                items=items,
                addresses=[
                    build_address(AddressType.SHIPPING, data.shipping_address),
                    build_address(AddressType.BILLING, data.billing_address or data.shipping_address),
                ],
            )
            append_entry(order, OrderStatus.PENDING, ADMIN_ORDER_MESSAGE)
            db.add(order)

            for line in data.items:
                await inventory.reserve(db, products[line.product_id], line.quantity)

        logger.info(f"Order {order.order_number} created by admin {admin.id} for user {customer.id}")
        return order

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_order_for_user(self, db: AsyncSession, order_id: int, user: User) -> Order:
        """Owners see their own orders; admins see any. Others get 404."""
        order = await load_order(db, order_id)
        if order.user_id != user.id and not user.is_admin:
            raise NotFoundError("Order not found", details={"order_id": order_id})
        return order

    async def list_user_orders(
        self,
        db: AsyncSession,
        user_id: int,
        page: int = 1,
        per_page: int = 20,
        status: Optional[OrderStatus] = None,
    ) -> Tuple[List[Order], int]:
        filters = [Order.user_id == user_id]
        if status:
            filters.append(Order.status == status.value)
        return await self._paginate(db, filters, page, per_page)

    async def list_orders(
        self,
        db: AsyncSession,
        page: int = 1,
        per_page: int = 20,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        search: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Tuple[List[Order], int]:
        """Admin listing with filters on status, payment status, text and date range."""
        filters = []
        if status:
            filters.append(Order.status == status.value)
        if payment_status:
            filters.append(Order.payment_status == payment_status.value)
        if date_from:
            filters.append(Order.created_at >= date_from)
        if date_to:
            filters.append(Order.created_at <= date_to)
        if search:
            pattern = f"%{search.strip()}%"
            matching_users = select(User.id).where(User.email.ilike(pattern))
            filters.append(or_(
                Order.order_number.ilike(pattern),
                Order.user_id.in_(matching_users),
            ))
        return await self._paginate(db, filters, page, per_page)

    async def _paginate(self, db: AsyncSession, filters, page: int, per_page: int) -> Tuple[List[Order], int]:
        count_result = await db.execute(select(func.count(Order.id)).where(*filters))
        total = count_result.scalar() or 0

        result = await db.execute(
            select(Order)
            .where(*filters)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return list(result.scalars().all()), total


order_service = OrderService()
