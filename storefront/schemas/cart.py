"""
Cart schemas
"""
from typing import List, Optional
from pydantic import BaseModel, Field

from storefront.schemas.common import Money


class CartItemAdd(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=1)


class CartItemResponse(BaseModel):
    id: int
    product_id: int
    product_name: str
    product_sku: str
    unit_price: Money
    quantity: int
    line_total: Money
    available: bool
    stock_quantity: int
    message: Optional[str] = None


class CartResponse(BaseModel):
    items: List[CartItemResponse]
    subtotal: Money
    item_count: int
