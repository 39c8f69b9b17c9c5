"""
Payment schemas
"""
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from storefront.schemas.common import Money


class PaymentIntentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, description="Amount in major currency units")
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class PaymentIntentResponse(BaseModel):
    payment_intent_id: str
    client_secret: Optional[str]
    status: str
    amount: Money
    currency: str


class PaymentStatusResponse(BaseModel):
    payment_intent_id: str
    status: str
    amount: Money
    currency: str
