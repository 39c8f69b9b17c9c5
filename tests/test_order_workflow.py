"""
Tests for order disposition: confirm, reject, cancel and fulfilment status
updates, including processor failures.
"""
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy import update

from storefront.core.exceptions import (
    AlreadyCapturedError,
    CannotRejectCapturedPaymentError,
    ExternalPaymentError,
    InvalidStateError,
    NotCancellableError,
    NotFoundError,
    PaymentStatusUnknownError,
)
from storefront.models import Order, OrderStatus
from storefront.schemas.order import OrderStatusUpdate
from storefront.services.order_service import order_service
from storefront.services.order_workflow import OrderWorkflow
from storefront.services.payment_gateway import DisabledPaymentGateway
from storefront.services.tracking import list_entries
from tests.factories import make_order_create, reload_order, stock_of


@pytest_asyncio.fixture
async def placed_order(session_factory, gateway, customer, filled_cart):
    async with session_factory() as session:
        return await order_service.place_order(session, customer, make_order_create(), gateway)


@pytest.fixture
def workflow(gateway) -> OrderWorkflow:
    return OrderWorkflow(gateway)


async def confirmed(session_factory, workflow, order, admin):
    async with session_factory() as session:
        return await workflow.confirm(session, order.id, admin)


class TestConfirm:
    @pytest.mark.asyncio
    async def test_captures_then_marks_paid(self, db, workflow, gateway, placed_order, admin):
        order = await workflow.confirm(db, placed_order.id, admin)

        gateway.capture.assert_awaited_once_with("pi_test_123")
        assert order.status == "processing"
        assert order.payment_status == "paid"
        assert order.tracking[-1].status == "processing"
        assert order.tracking[-1].message == "Order confirmed by admin. Payment captured successfully."
        assert len(order.tracking) == 2

    @pytest.mark.asyncio
    async def test_second_confirm_never_recaptures(self, db, session_factory, workflow, gateway, placed_order, admin):
        await confirmed(session_factory, workflow, placed_order, admin)

        with pytest.raises(AlreadyCapturedError):
            await workflow.confirm(db, placed_order.id, admin)

        assert gateway.capture.await_count == 1
        order = await reload_order(session_factory, placed_order.id)
        assert len(order.tracking) == 2

    @pytest.mark.asyncio
    async def test_cancelled_order_is_refused(self, session_factory, workflow, gateway, placed_order, customer, admin):
        async with session_factory() as session:
            await workflow.cancel(session, placed_order.id, customer)

        async with session_factory() as session:
            with pytest.raises(InvalidStateError):
                await workflow.confirm(session, placed_order.id, admin)

        gateway.capture.assert_not_awaited()
        order = await reload_order(session_factory, placed_order.id)
        assert order.status == "cancelled"
        assert order.payment_status == "cancelled"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        ExternalPaymentError("Your card was declined."),
        PaymentStatusUnknownError("The payment processor did not respond in time."),
    ])
    async def test_capture_failure_changes_nothing(self, db, session_factory, workflow, gateway, placed_order, admin, error):
        gateway.capture.side_effect = error

        with pytest.raises(type(error)):
            await workflow.confirm(db, placed_order.id, admin)

        order = await reload_order(session_factory, placed_order.id)
        assert order.status == "pending"
        assert order.payment_status == "pending"
        assert len(order.tracking) == 1

    @pytest.mark.asyncio
    async def test_no_reference_skips_processor(self, db, session_factory, workflow, gateway, customer, filled_cart, admin):
        async with session_factory() as session:
            placed = await order_service.place_order(
                session, customer, make_order_create(payment_method="bank_transfer", stripe_payment_id=None), gateway
            )

        order = await workflow.confirm(db, placed.id, admin)

        gateway.capture.assert_not_awaited()
        assert order.payment_status == "paid"

    @pytest.mark.asyncio
    async def test_processor_order_without_reference_is_refused(self, session_factory, workflow, gateway, customer, filled_cart, admin):
        async with session_factory() as session:
            placed = await order_service.place_order(
                session, customer, make_order_create(payment_method="bank_transfer", stripe_payment_id=None), gateway
            )
        # an order recorded as card-paid whose hold reference never arrived
        async with session_factory() as session:
            await session.execute(update(Order).where(Order.id == placed.id).values(payment_method="stripe"))
            await session.commit()

        async with session_factory() as session:
            with pytest.raises(InvalidStateError):
                await workflow.confirm(session, placed.id, admin)

        gateway.capture.assert_not_awaited()
        order = await reload_order(session_factory, placed.id)
        assert order.status == "pending"
        assert order.payment_status == "pending"

    @pytest.mark.asyncio
    async def test_missing_order(self, db, workflow, admin):
        with pytest.raises(NotFoundError):
            await workflow.confirm(db, 4242, admin)


class TestReject:
    @pytest.mark.asyncio
    async def test_releases_hold_and_restores_stock(self, db, session_factory, workflow, gateway, placed_order, admin, product_a, product_b):
        order = await workflow.reject(db, placed_order.id, admin, "Suspected fraud")

        gateway.cancel.assert_awaited_once_with("pi_test_123")
        assert order.status == "cancelled"
        assert order.payment_status == "cancelled"
        assert order.tracking[-1].message == (
            "Order rejected by admin. Payment authorization released. Reason: Suspected fraud"
        )
        assert await stock_of(session_factory, product_a.id) == 5
        assert await stock_of(session_factory, product_b.id) == 1

    @pytest.mark.asyncio
    async def test_reason_defaults(self, db, workflow, placed_order, admin):
        order = await workflow.reject(db, placed_order.id, admin)
        assert order.tracking[-1].message.endswith("Reason: Not specified")

    @pytest.mark.asyncio
    async def test_release_failure_still_cancels(self, db, session_factory, workflow, gateway, placed_order, admin, product_b):
        gateway.cancel.side_effect = PaymentStatusUnknownError("timeout")

        order = await workflow.reject(db, placed_order.id, admin, "Out of stock at supplier")

        assert order.status == "cancelled"
        assert "could not be released" in order.tracking[-1].message
        assert await stock_of(session_factory, product_b.id) == 1

    @pytest.mark.asyncio
    async def test_disabled_gateway_still_cancels(self, db, session_factory, placed_order, admin):
        order = await OrderWorkflow(DisabledPaymentGateway()).reject(db, placed_order.id, admin)
        assert order.status == "cancelled"

    @pytest.mark.asyncio
    async def test_captured_payment_is_refused(self, db, session_factory, workflow, gateway, placed_order, admin, product_a):
        await confirmed(session_factory, workflow, placed_order, admin)

        with pytest.raises(CannotRejectCapturedPaymentError) as exc_info:
            await workflow.reject(db, placed_order.id, admin, "Changed mind")

        assert "refund" in exc_info.value.message
        gateway.cancel.assert_not_awaited()
        order = await reload_order(session_factory, placed_order.id)
        assert order.status == "processing"
        assert order.payment_status == "paid"
        assert await stock_of(session_factory, product_a.id) == 3


class TestCancel:
    @pytest.mark.asyncio
    async def test_round_trip_restores_stock(self, db, session_factory, workflow, placed_order, customer, product_a, product_b):
        order = await workflow.cancel(db, placed_order.id, customer)

        assert order.status == "cancelled"
        assert order.tracking[-1].message == "Order cancelled by user"
        assert await stock_of(session_factory, product_a.id) == 5
        assert await stock_of(session_factory, product_b.id) == 1

    @pytest.mark.asyncio
    async def test_releases_uncaptured_hold(self, db, workflow, gateway, placed_order, customer):
        order = await workflow.cancel(db, placed_order.id, customer)

        gateway.cancel.assert_awaited_once_with("pi_test_123")
        assert order.payment_status == "cancelled"

    @pytest.mark.asyncio
    async def test_captured_payment_stays_paid(self, db, session_factory, workflow, gateway, placed_order, customer, admin):
        await confirmed(session_factory, workflow, placed_order, admin)

        order = await workflow.cancel(db, placed_order.id, customer)

        assert order.status == "cancelled"
        assert order.payment_status == "paid"
        gateway.cancel.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_admin_may_cancel(self, db, workflow, placed_order, admin):
        order = await workflow.cancel(db, placed_order.id, admin)
        assert order.tracking[-1].message == "Order cancelled by admin"

    @pytest.mark.asyncio
    async def test_other_customer_gets_not_found(self, db, session_factory, workflow, placed_order, other_customer):
        with pytest.raises(NotFoundError):
            await workflow.cancel(db, placed_order.id, other_customer)
        order = await reload_order(session_factory, placed_order.id)
        assert order.status == "pending"

    @pytest.mark.asyncio
    async def test_twice_is_refused(self, session_factory, workflow, placed_order, customer, product_a):
        async with session_factory() as session:
            await workflow.cancel(session, placed_order.id, customer)
        async with session_factory() as session:
            with pytest.raises(NotCancellableError):
                await workflow.cancel(session, placed_order.id, customer)
        # stock restored once only
        assert await stock_of(session_factory, product_a.id) == 5

    @pytest.mark.asyncio
    async def test_shipped_order_is_refused(self, session_factory, workflow, placed_order, customer, admin, product_a):
        await confirmed(session_factory, workflow, placed_order, admin)
        async with session_factory() as session:
            await workflow.update_status(session, placed_order.id, admin, OrderStatusUpdate(status=OrderStatus.SHIPPED))

        async with session_factory() as session:
            with pytest.raises(NotCancellableError):
                await workflow.cancel(session, placed_order.id, customer)
        assert await stock_of(session_factory, product_a.id) == 3


class TestUpdateStatus:
    @pytest.mark.asyncio
    async def test_ship_then_deliver(self, session_factory, workflow, placed_order, admin, gateway):
        await confirmed(session_factory, workflow, placed_order, admin)

        async with session_factory() as session:
            shipped = await workflow.update_status(session, placed_order.id, admin, OrderStatusUpdate(
                status=OrderStatus.SHIPPED, tracking_number="1Z999", carrier="UPS",
            ))
        assert shipped.status == "shipped"
        assert shipped.shipped_at is not None
        assert shipped.delivered_at is None
        assert shipped.tracking[-1].tracking_number == "1Z999"
        assert shipped.tracking[-1].carrier == "UPS"
        assert shipped.tracking[-1].message == "Order status updated to shipped"

        async with session_factory() as session:
            delivered = await workflow.update_status(session, placed_order.id, admin, OrderStatusUpdate(
                status=OrderStatus.DELIVERED, message="Left with neighbour",
            ))
        assert delivered.delivered_at is not None
        assert delivered.tracking[-1].message == "Left with neighbour"

        async with session_factory() as session:
            entries = await list_entries(session, placed_order.id)
        assert [e.status for e in entries] == ["pending", "processing", "shipped", "delivered"]
        # no payment interaction beyond the capture
        assert gateway.capture.await_count == 1
        gateway.cancel.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cannot_skip_confirmation(self, db, session_factory, workflow, placed_order, admin):
        with pytest.raises(InvalidStateError):
            await workflow.update_status(db, placed_order.id, admin, OrderStatusUpdate(status=OrderStatus.SHIPPED))
        order = await reload_order(session_factory, placed_order.id)
        assert order.status == "pending"
        assert order.shipped_at is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("target", [OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.PENDING])
    async def test_dedicated_operations_only(self, db, workflow, placed_order, admin, target):
        with pytest.raises(InvalidStateError):
            await workflow.update_status(db, placed_order.id, admin, OrderStatusUpdate(status=target))

    @pytest.mark.asyncio
    async def test_refund_requires_capture(self, session_factory, workflow, placed_order, admin, customer):
        async with session_factory() as session:
            with pytest.raises(InvalidStateError):
                await workflow.update_status(session, placed_order.id, admin, OrderStatusUpdate(status=OrderStatus.REFUNDED))

        await confirmed(session_factory, workflow, placed_order, admin)
        async with session_factory() as session:
            order = await workflow.update_status(session, placed_order.id, admin, OrderStatusUpdate(status=OrderStatus.REFUNDED))
        assert order.status == "refunded"
        assert order.payment_status == "refunded"

    @pytest.mark.asyncio
    async def test_cancelled_after_capture_can_be_refunded(self, session_factory, workflow, placed_order, admin, customer):
        await confirmed(session_factory, workflow, placed_order, admin)
        async with session_factory() as session:
            await workflow.cancel(session, placed_order.id, customer)

        async with session_factory() as session:
            order = await workflow.update_status(
                session, placed_order.id, admin,
                OrderStatusUpdate(status=OrderStatus.REFUNDED, message="Refunded after cancellation"),
            )

        assert order.status == "refunded"
        assert order.payment_status == "refunded"
        assert order.tracking[-1].message == "Refunded after cancellation"
        assert [e.status for e in order.tracking] == ["pending", "processing", "cancelled", "refunded"]

    @pytest.mark.asyncio
    async def test_cancelled_before_capture_cannot_be_refunded(self, session_factory, workflow, placed_order, customer, admin):
        async with session_factory() as session:
            await workflow.cancel(session, placed_order.id, customer)

        async with session_factory() as session:
            with pytest.raises(InvalidStateError):
                await workflow.update_status(session, placed_order.id, admin, OrderStatusUpdate(status=OrderStatus.REFUNDED))

        order = await reload_order(session_factory, placed_order.id)
        assert order.status == "cancelled"
        assert order.payment_status == "cancelled"


class TestPaymentEvents:
    @pytest.mark.asyncio
    async def test_payment_failed_marks_order(self, db, workflow, placed_order):
        intent = {"id": "pi_test_123", "last_payment_error": {"message": "Insufficient funds"}}

        order = await workflow.apply_payment_event(db, "payment_intent.payment_failed", intent)

        assert order.payment_status == "failed"
        assert order.status == "pending"
        assert order.tracking[-1].message == "Payment failed: Insufficient funds"

    @pytest.mark.asyncio
    async def test_out_of_band_capture_moves_to_processing(self, db, workflow, placed_order):
        order = await workflow.apply_payment_event(db, "payment_intent.succeeded", {"id": "pi_test_123"})

        assert order.status == "processing"
        assert order.payment_status == "paid"

    @pytest.mark.asyncio
    async def test_already_settled_is_ignored(self, session_factory, workflow, placed_order, admin):
        await confirmed(session_factory, workflow, placed_order, admin)
        async with session_factory() as session:
            result = await workflow.apply_payment_event(session, "payment_intent.succeeded", {"id": "pi_test_123"})
        assert result is None

    @pytest.mark.asyncio
    async def test_unknown_reference(self, db, workflow):
        assert await workflow.apply_payment_event(db, "payment_intent.canceled", {"id": "pi_missing"}) is None
