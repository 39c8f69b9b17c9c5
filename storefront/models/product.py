"""
Product model

stock_quantity is the only contended resource in checkout. The CHECK
constraint is the last line behind the conditional decrement in
services/inventory.py. Products are archived (status inactive), never deleted,
so order lines keep their product link.
"""
from enum import Enum as PyEnum

from sqlalchemy import Boolean, Column, Integer, String, Numeric, DateTime, Text, CheckConstraint
from sqlalchemy.orm import relationship

from storefront.core.database import Base
from storefront.core.utils import utcnow


class ProductStatus(str, PyEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DRAFT = "draft"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True)
    description = Column(Text)
    price = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), default=ProductStatus.ACTIVE.value, nullable=False, index=True)
    stock_quantity = Column(Integer, default=0, nullable=False)
    featured = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    cart_items = relationship("CartItem", back_populates="product", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
    )

    @property
    def is_sellable(self) -> bool:
        return self.status == ProductStatus.ACTIVE.value
