"""
Product catalog routes

Public browsing of active products. Product ids from here are what
POST /api/cart/items takes.
"""
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.database import get_db
from storefront.schemas.product import ProductList, ProductResponse
from storefront.services.product_service import product_service

router = APIRouter()

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20


@router.get("", response_model=ProductList)
async def list_products(
    db: AsyncSession = Depends(get_db),
    search: Optional[str] = Query(None, max_length=100),
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    in_stock: Optional[bool] = None,
    featured: Optional[bool] = None,
    sort: str = Query("newest", pattern="^(newest|price_asc|price_desc|name|featured)$"),
    page: int = Query(1, ge=1),
    per_page: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
):
    """List products with filtering, sorting, and pagination"""
    products, total = await product_service.list_products(
        db,
        page=page,
        per_page=per_page,
        search=search,
        min_price=min_price,
        max_price=max_price,
        in_stock=in_stock,
        featured=featured,
        sort=sort,
    )
    return ProductList(products=products, total=total, page=page, per_page=per_page)


@router.get("/slug/{slug}", response_model=ProductResponse)
async def get_product_by_slug(slug: str, db: AsyncSession = Depends(get_db)):
    return await product_service.get_product_by_slug(db, slug)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    return await product_service.get_product(db, product_id)
