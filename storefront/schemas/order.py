"""
Order schemas

Request bodies only carry what a caller may choose; totals, statuses and
timestamps are always computed server-side.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field

from storefront.models.order import OrderStatus
from storefront.schemas.common import Money


class AddressInput(BaseModel):
    first_name: str = Field(..., min_length=2, max_length=100)
    last_name: str = Field(..., min_length=2, max_length=100)
    company: Optional[str] = Field(None, max_length=255)
    address_line_1: str = Field(..., min_length=5, max_length=255)
    address_line_2: Optional[str] = Field(None, max_length=255)
    city: str = Field(..., min_length=2, max_length=100)
    state: str = Field(..., min_length=2, max_length=100)
    postal_code: str = Field(..., min_length=3, max_length=20)
    country: str = Field(..., min_length=2, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)


class OrderCreate(BaseModel):
    shipping_address: AddressInput
    billing_address: AddressInput
    payment_method: str = Field(..., min_length=2, max_length=50)
    stripe_payment_id: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=1000)


class AdminOrderItemInput(BaseModel):
    product_id: int
    quantity: int = Field(..., ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0)


class AdminOrderCreate(BaseModel):
    user_id: int
    items: List[AdminOrderItemInput] = Field(..., min_length=1)
    shipping_address: AddressInput
    billing_address: Optional[AddressInput] = None
    payment_method: str = Field("manual", min_length=2, max_length=50)
    payment_reference: Optional[str] = Field(None, max_length=255)
    shipping_amount: Optional[Decimal] = Field(None, ge=0)
    tax_amount: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=1000)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    message: Optional[str] = Field(None, max_length=500)
    tracking_number: Optional[str] = Field(None, max_length=100)
    carrier: Optional[str] = Field(None, max_length=100)


class OrderReject(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class OrderItemResponse(BaseModel):
    id: int
    product_id: Optional[int]
    product_name: str
    product_sku: str
    quantity: int
    unit_price: Money
    total_price: Money

    class Config:
        from_attributes = True


class OrderAddressResponse(BaseModel):
    address_type: str
    first_name: str
    last_name: str
    company: Optional[str]
    address_line_1: str
    address_line_2: Optional[str]
    city: str
    state: str
    postal_code: str
    country: str
    phone: Optional[str]

    class Config:
        from_attributes = True


class TrackingEntryResponse(BaseModel):
    id: int
    status: str
    message: Optional[str]
    tracking_number: Optional[str]
    carrier: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class OrderSummary(BaseModel):
    id: int
    order_number: str
    user_id: Optional[int]
    status: str
    payment_status: str
    payment_method: str
    total_amount: Money
    currency: str
    created_at: datetime

    class Config:
        from_attributes = True


class OrderResponse(OrderSummary):
    payment_reference: Optional[str]
    subtotal: Money
    tax_amount: Money
    shipping_amount: Money
    discount_amount: Money
    notes: Optional[str]
    shipped_at: Optional[datetime]
    delivered_at: Optional[datetime]
    items: List[OrderItemResponse]
    addresses: List[OrderAddressResponse]
    tracking: List[TrackingEntryResponse]


class OrderList(BaseModel):
    orders: List[OrderSummary]
    total: int
    page: int
    per_page: int
