"""
Product schemas

Stock is set once at creation; afterwards it only moves through checkout,
cancellation and explicit adjustments.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from storefront.models.product import ProductStatus
from storefront.schemas.common import Money

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class ProductCreate(BaseModel):
    sku: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255, pattern=SLUG_PATTERN)
    description: Optional[str] = None
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    status: ProductStatus = ProductStatus.ACTIVE
    stock_quantity: int = Field(0, ge=0)
    featured: bool = False


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255, pattern=SLUG_PATTERN)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    status: Optional[ProductStatus] = None
    featured: Optional[bool] = None


class StockAdjustment(BaseModel):
    quantity: int  # positive to add units, negative to remove
    reason: str = Field(..., min_length=3, max_length=255)

    @field_validator("quantity")
    @classmethod
    def non_zero(cls, v):
        if v == 0:
            raise ValueError("quantity must not be zero")
        return v


class StockAdjustmentResponse(BaseModel):
    product_id: int
    previous_stock: int
    new_stock: int
    adjustment: int


class ProductResponse(BaseModel):
    id: int
    sku: str
    slug: Optional[str]
    name: str
    description: Optional[str]
    price: Money
    status: str
    stock_quantity: int
    featured: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProductList(BaseModel):
    products: List[ProductResponse]
    total: int
    page: int
    per_page: int
