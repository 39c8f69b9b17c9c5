"""
Order routes

Customers place, list, read and cancel their own orders. Confirm, reject and
status updates are admin-only and share this router with the customer paths.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_current_admin, get_current_user, get_order_workflow
from storefront.core.database import get_db
from storefront.core.rate_limit import get_checkout_limit
from storefront.models.order import OrderStatus
from storefront.models.user import User
from storefront.schemas.order import (
    OrderCreate,
    OrderList,
    OrderReject,
    OrderResponse,
    OrderStatusUpdate,
    TrackingEntryResponse,
)
from storefront.services.order_service import order_service
from storefront.services.order_workflow import OrderWorkflow
from storefront.services.payment_gateway import PaymentGateway, get_payment_gateway
from storefront.services.tracking import list_entries

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20


@router.get("", response_model=OrderList)
async def list_orders(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Items per page"),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
):
    """Current user's orders, newest first."""
    orders, total = await order_service.list_user_orders(db, user.id, page, per_page, order_status)
    return OrderList(orders=orders, total=total, page=page, per_page=per_page)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await order_service.get_order_for_user(db, order_id, user)


@router.get("/{order_id}/tracking", response_model=List[TrackingEntryResponse])
async def get_order_tracking(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Order timeline, oldest entry first."""
    order = await order_service.get_order_for_user(db, order_id, user)
    return await list_entries(db, order.id)


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@get_checkout_limit()
async def create_order(
    request: Request,
    order_data: OrderCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Create an order from the server-side cart and the payment hold it was authorized with."""
    return await order_service.place_order(db, user, order_data, gateway)


@router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    workflow: OrderWorkflow = Depends(get_order_workflow),
):
    return await workflow.cancel(db, order_id, user)


@router.post("/{order_id}/confirm", response_model=OrderResponse)
async def confirm_order(
    order_id: int,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    workflow: OrderWorkflow = Depends(get_order_workflow),
):
    """Capture the authorized payment and start processing."""
    return await workflow.confirm(db, order_id, admin)


@router.post("/{order_id}/reject", response_model=OrderResponse)
async def reject_order(
    order_id: int,
    data: Optional[OrderReject] = None,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    workflow: OrderWorkflow = Depends(get_order_workflow),
):
    """Release the authorization, cancel the order and restore stock."""
    reason = data.reason if data else None
    return await workflow.reject(db, order_id, admin, reason)


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    workflow: OrderWorkflow = Depends(get_order_workflow),
):
    return await workflow.update_status(db, order_id, admin, data)
