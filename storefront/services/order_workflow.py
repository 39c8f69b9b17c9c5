"""
Order Workflow

The only code allowed to change an order's status or payment status after it
is placed. Each transition loads the order under a row lock, validates the
move, applies it, appends exactly one tracking entry and commits as one unit.

Payment policy:
- confirm captures before touching local state; a processor failure or an
  unknown outcome leaves the order exactly as it was
- reject and cancel release an uncaptured hold best-effort; a failed release
  is logged and the local cancellation still goes through, since the
  processor expires stale holds on its own
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.database import transaction
from storefront.core.exceptions import (
    AlreadyCapturedError,
    CannotRejectCapturedPaymentError,
    ExternalPaymentError,
    InvalidStateError,
    NotCancellableError,
    NotFoundError,
)
from storefront.core.utils import utcnow
from storefront.models.order import (
    CANCELLABLE_STATUSES,
    VALID_STATUS_TRANSITIONS,
    Order,
    OrderStatus,
    PaymentStatus,
)
from storefront.models.user import User
from storefront.schemas.order import OrderStatusUpdate
from storefront.services import inventory
from storefront.services.order_service import load_order
from storefront.services.payment_gateway import PaymentGateway
from storefront.services.tracking import append_entry

logger = logging.getLogger(__name__)

# Statuses reachable through update_status; the rest have dedicated operations
STATUS_UPDATE_TARGETS = {OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.REFUNDED}


class OrderWorkflow:
    def __init__(self, gateway: PaymentGateway):
        self.gateway = gateway

    async def _restore_stock(self, db: AsyncSession, order: Order) -> None:
        """Put every line's quantity back on its product."""
        quantities = {}
        for item in order.items:
            if item.product_id is None:
                logger.warning(
                    f"Order {order.order_number}: item {item.id} ({item.product_sku}) has no product; "
                    f"stock not restored"
                )
                continue
            quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

        products = await inventory.lock_products(db, quantities.keys())
        for product_id, quantity in quantities.items():
            product = products.get(product_id)
            if product is None:
                logger.warning(f"Order {order.order_number}: product {product_id} no longer exists")
                continue
            await inventory.restore(db, product, quantity)

    async def _release_hold(self, order: Order) -> bool:
        """Best-effort release of an uncaptured hold. Returns True when released."""
        if not order.payment_reference:
            return False
        try:
            await self.gateway.cancel(order.payment_reference)
            return True
        except ExternalPaymentError as e:
            logger.warning(
                f"Order {order.order_number}: could not release payment hold "
                f"{order.payment_reference} ({e.code}: {e.message}); continuing with cancellation"
            )
            return False

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def confirm(self, db: AsyncSession, order_id: int, admin: User) -> Order:
        """Capture the held payment and move the order to processing."""
        async with transaction(db):
            order = await load_order(db, order_id, for_update=True)

            if order.payment_status == PaymentStatus.PAID.value:
                raise AlreadyCapturedError(details={"order_id": order.id})
            if order.status == OrderStatus.CANCELLED.value:
                raise InvalidStateError(
                    "Cannot confirm a cancelled order",
                    details={"order_id": order.id, "status": order.status},
                )
            if order.status != OrderStatus.PENDING.value:
                raise InvalidStateError(
                    f"Cannot confirm an order in {order.status} status",
                    details={"order_id": order.id, "status": order.status},
                )
            if order.payment_status != PaymentStatus.PENDING.value:
                raise InvalidStateError(
                    f"Cannot confirm an order with payment status {order.payment_status}",
                    details={"order_id": order.id, "payment_status": order.payment_status},
                )

            if order.settles_through_processor and not order.payment_reference:
                raise InvalidStateError(
                    "Order has no payment authorization to capture",
                    details={"order_id": order.id, "payment_method": order.payment_method},
                )

            if order.payment_reference:
                await self.gateway.capture(order.payment_reference)

            order.status = OrderStatus.PROCESSING.value
            order.payment_status = PaymentStatus.PAID.value
            append_entry(
                order,
                OrderStatus.PROCESSING,
                "Order confirmed by admin. Payment captured successfully.",
            )

        logger.info(f"Order {order.order_number} confirmed by admin {admin.id}")
        return order

    async def reject(self, db: AsyncSession, order_id: int, admin: User, reason: Optional[str] = None) -> Order:
        """Release the hold, cancel the order and restore stock."""
        async with transaction(db):
            order = await load_order(db, order_id, for_update=True)

            if order.payment_status == PaymentStatus.PAID.value:
                raise CannotRejectCapturedPaymentError(details={"order_id": order.id})
            if order.status == OrderStatus.CANCELLED.value:
                raise InvalidStateError(
                    "Order is already cancelled",
                    details={"order_id": order.id},
                )
            if OrderStatus(order.status) not in CANCELLABLE_STATUSES:
                raise InvalidStateError(
                    f"Cannot reject an order in {order.status} status",
                    details={"order_id": order.id, "status": order.status},
                )

            released = await self._release_hold(order)

            order.status = OrderStatus.CANCELLED.value
            order.payment_status = PaymentStatus.CANCELLED.value
            await self._restore_stock(db, order)

            if released or not order.payment_reference:
                prefix = "Order rejected by admin. Payment authorization released."
            else:
                prefix = "Order rejected by admin. Payment authorization could not be released and will expire."
            append_entry(order, OrderStatus.CANCELLED, f"{prefix} Reason: {reason or 'Not specified'}")

        logger.info(f"Order {order.order_number} rejected by admin {admin.id} (hold released: {released})")
        return order

    async def cancel(self, db: AsyncSession, order_id: int, user: User) -> Order:
        """
        Self-service cancellation by the owner, or by an admin.

        Restores stock. An uncaptured hold is released as in reject; a captured
        payment stays paid until update_status records the refund.
        """
        async with transaction(db):
            order = await load_order(db, order_id, for_update=True)

            if order.user_id != user.id and not user.is_admin:
                raise NotFoundError("Order not found", details={"order_id": order_id})
            if order.status == OrderStatus.CANCELLED.value:
                raise NotCancellableError("Order is already cancelled", details={"order_id": order.id})
            if OrderStatus(order.status) not in CANCELLABLE_STATUSES:
                raise NotCancellableError(
                    f"Cannot cancel an order that has been {order.status}",
                    details={"order_id": order.id, "status": order.status},
                )

            await self._restore_stock(db, order)
            order.status = OrderStatus.CANCELLED.value

            if order.payment_status == PaymentStatus.PENDING.value:
                await self._release_hold(order)
                order.payment_status = PaymentStatus.CANCELLED.value

            actor = "user" if order.user_id == user.id else "admin"
            append_entry(order, OrderStatus.CANCELLED, f"Order cancelled by {actor}")

        logger.info(f"Order {order.order_number} cancelled by {actor} {user.id}")
        return order

    async def update_status(self, db: AsyncSession, order_id: int, admin: User, data: OrderStatusUpdate) -> Order:
        """Fulfilment transitions: shipped, delivered, refunded."""
        target = OrderStatus(data.status)
        if target not in STATUS_UPDATE_TARGETS:
            raise InvalidStateError(
                f"Status {target.value} cannot be set directly; use the confirm, reject or cancel operations",
                details={"order_id": order_id, "status": target.value},
            )

        async with transaction(db):
            order = await load_order(db, order_id, for_update=True)
            current = OrderStatus(order.status)

            if target not in VALID_STATUS_TRANSITIONS[current]:
                raise InvalidStateError(
                    f"Cannot change order status from {current.value} to {target.value}",
                    details={"order_id": order.id, "from": current.value, "to": target.value},
                )

            if target == OrderStatus.REFUNDED:
                if order.payment_status != PaymentStatus.PAID.value:
                    raise InvalidStateError(
                        "Only orders with a captured payment can be marked refunded",
                        details={"order_id": order.id, "payment_status": order.payment_status},
                    )
                order.payment_status = PaymentStatus.REFUNDED.value

            order.status = target.value
            if target == OrderStatus.SHIPPED:
                order.shipped_at = utcnow()
            elif target == OrderStatus.DELIVERED:
                order.delivered_at = utcnow()

            append_entry(
                order,
                target,
                data.message or f"Order status updated to {target.value}",
                tracking_number=data.tracking_number,
                carrier=data.carrier,
            )

        logger.info(f"Order {order.order_number} status {current.value} -> {target.value} by admin {admin.id}")
        return order

    # =========================================================================
    # PROCESSOR EVENTS
    # =========================================================================

    async def apply_payment_event(self, db: AsyncSession, event_type: str, intent) -> Optional[Order]:
        """
        Reconcile a verified processor webhook with local state.

        Returns the affected order, or None when nothing needed to change.
        """
        reference = intent.get("id")
        async with transaction(db):
            result = await db.execute(
                select(Order)
                .where(Order.payment_reference == reference)
                .options(selectinload(Order.tracking))
                .with_for_update(of=Order)
                .execution_options(populate_existing=True)
            )
            order = result.scalar_one_or_none()
            if not order:
                logger.info(f"Payment event {event_type} for {reference}: no matching order")
                return None

            if order.payment_status != PaymentStatus.PENDING.value:
                logger.info(
                    f"Payment event {event_type} for order {order.order_number} ignored: "
                    f"payment status already {order.payment_status}"
                )
                return None

            status = OrderStatus(order.status)
            if event_type == "payment_intent.payment_failed":
                error = intent.get("last_payment_error") or {}
                order.payment_status = PaymentStatus.FAILED.value
                append_entry(order, status, f"Payment failed: {error.get('message') or 'declined'}")
            elif event_type == "payment_intent.canceled":
                order.payment_status = PaymentStatus.CANCELLED.value
                append_entry(order, status, "Payment authorization expired or was cancelled at the processor.")
            elif event_type == "payment_intent.succeeded" and status == OrderStatus.PENDING:
                order.status = OrderStatus.PROCESSING.value
                order.payment_status = PaymentStatus.PAID.value
                append_entry(order, OrderStatus.PROCESSING, "Payment captured at the processor.")
            else:
                logger.info(f"Payment event {event_type} for order {order.order_number} needs no change")
                return None

        logger.warning(
            f"Order {order.order_number} payment status set to {order.payment_status} by {event_type}"
        )
        return order
