"""
Admin order routes

Filtered listing across all customers, full detail, and manual order entry.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_current_admin, get_order_workflow
from storefront.core.database import get_db
from storefront.models.order import OrderStatus, PaymentStatus
from storefront.models.user import User
from storefront.schemas.order import AdminOrderCreate, OrderList, OrderResponse, OrderStatusUpdate
from storefront.services.order_service import load_order, order_service
from storefront.services.order_workflow import OrderWorkflow

router = APIRouter()

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20


@router.get("", response_model=OrderList)
async def list_all_orders(
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    per_page: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    payment_status: Optional[PaymentStatus] = Query(None),
    search: Optional[str] = Query(None, max_length=100, description="Order number or customer email"),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
):
    orders, total = await order_service.list_orders(
        db,
        page=page,
        per_page=per_page,
        status=order_status,
        payment_status=payment_status,
        search=search,
        date_from=date_from,
        date_to=date_to,
    )
    return OrderList(orders=orders, total=total, page=page, per_page=per_page)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_any_order(
    order_id: int,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    return await load_order(db, order_id)


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order_for_customer(
    data: AdminOrderCreate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Enter an order on a customer's behalf with explicit lines."""
    return await order_service.create_order_for_user(db, admin, data)


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_status(
    order_id: int,
    data: OrderStatusUpdate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    workflow: OrderWorkflow = Depends(get_order_workflow),
):
    return await workflow.update_status(db, order_id, admin, data)
