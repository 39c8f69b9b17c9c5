"""
Admin product routes

Catalog maintenance: create, edit, archive, and stock adjustments with a
logged reason.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_current_admin
from storefront.core.database import get_db
from storefront.models.product import ProductStatus
from storefront.models.user import User
from storefront.schemas.product import (
    ProductCreate,
    ProductList,
    ProductResponse,
    ProductUpdate,
    StockAdjustment,
    StockAdjustmentResponse,
)
from storefront.services.product_service import product_service

router = APIRouter()

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20


@router.get("", response_model=ProductList)
async def list_all_products(
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    product_status: Optional[ProductStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    per_page: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
):
    """Every product regardless of status unless one is given."""
    products, total = await product_service.list_products(
        db, page=page, per_page=per_page, search=search, status=product_status,
    )
    return ProductList(products=products, total=total, page=page, per_page=per_page)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_any_product(
    product_id: int,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    return await product_service.get_product(db, product_id, include_unlisted=True)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    data: ProductCreate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    return await product_service.create_product(db, admin, data)


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    data: ProductUpdate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    return await product_service.update_product(db, admin, product_id, data)


@router.post("/{product_id}/adjust-stock", response_model=StockAdjustmentResponse)
async def adjust_product_stock(
    product_id: int,
    data: StockAdjustment,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Positive quantity restocks, negative writes units off. Stock never goes below zero."""
    previous, new_stock = await product_service.adjust_stock(db, admin, product_id, data)
    return StockAdjustmentResponse(
        product_id=product_id,
        previous_stock=previous,
        new_stock=new_stock,
        adjustment=data.quantity,
    )


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def archive_product(
    product_id: int,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Archive (status inactive) rather than delete; past orders still reference the row."""
    await product_service.archive_product(db, admin, product_id)
