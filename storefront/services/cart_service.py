"""
Cart service

read_cart is the snapshot reader checkout consumes: a pure read of the user's
lines with their products attached. The remaining operations back the cart
endpoints and enforce the same availability rules checkout re-checks later.
"""
import logging
from decimal import Decimal
from typing import List

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.config import settings
from storefront.core.database import transaction
from storefront.core.exceptions import (
    InsufficientStockError,
    NotFoundError,
    ProductUnavailableError,
    ValidationError,
)
from storefront.core.utils import quantize_money
from storefront.models.cart import CartItem
from storefront.models.product import Product
from storefront.schemas.cart import CartItemResponse, CartResponse

logger = logging.getLogger(__name__)


async def read_cart(db: AsyncSession, user_id: int) -> List[CartItem]:
    """Current cart lines for a user, oldest first, with products loaded."""
    result = await db.execute(
        select(CartItem)
        .where(CartItem.user_id == user_id)
        .options(selectinload(CartItem.product))
        .order_by(CartItem.id)
    )
    return list(result.scalars().all())


def build_cart_response(lines: List[CartItem]) -> CartResponse:
    items = []
    subtotal = Decimal("0")
    item_count = 0

    for line in lines:
        product = line.product
        available = product.is_sellable and line.quantity <= product.stock_quantity
        message = None
        if not product.is_sellable:
            message = "No longer available"
        elif product.stock_quantity < line.quantity:
            message = f"Only {product.stock_quantity} left in stock"

        line_total = quantize_money(product.price * line.quantity)
        items.append(CartItemResponse(
            id=line.id,
            product_id=product.id,
            product_name=product.name,
            product_sku=product.sku,
            unit_price=product.price,
            quantity=line.quantity,
            line_total=line_total,
            available=available,
            stock_quantity=product.stock_quantity,
            message=message,
        ))
        subtotal += line_total
        item_count += line.quantity

    return CartResponse(items=items, subtotal=quantize_money(subtotal), item_count=item_count)


class CartService:
    """Cart mutations for one user at a time."""

    def __init__(self, max_quantity: int = None):
        self.max_quantity = max_quantity or settings.CART_MAX_QUANTITY_PER_ITEM

    def _check_quantity(self, product: Product, quantity: int) -> None:
        if quantity > self.max_quantity:
            raise ValidationError(
                f"Maximum {self.max_quantity} per item",
                code="CART_LIMIT_EXCEEDED",
                details={"product_id": product.id, "max_quantity": self.max_quantity},
            )
        if quantity > product.stock_quantity:
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                requested=quantity,
                available=product.stock_quantity,
            )

    async def _get_line(self, db: AsyncSession, user_id: int, item_id: int) -> CartItem:
        result = await db.execute(
            select(CartItem)
            .where(CartItem.id == item_id, CartItem.user_id == user_id)
            .options(selectinload(CartItem.product))
        )
        line = result.scalar_one_or_none()
        if not line:
            raise NotFoundError("Cart item not found")
        return line

    async def add_item(self, db: AsyncSession, user_id: int, product_id: int, quantity: int) -> CartItem:
        async with transaction(db):
            product = await db.get(Product, product_id)
            if not product or not product.is_sellable:
                raise ProductUnavailableError(product_id, product.name if product else None)

            result = await db.execute(
                select(CartItem).where(
                    CartItem.user_id == user_id,
                    CartItem.product_id == product_id,
                )
            )
            line = result.scalar_one_or_none()
            new_quantity = quantity + (line.quantity if line else 0)
            self._check_quantity(product, new_quantity)

            if line:
                line.quantity = new_quantity
            else:
                line = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
                db.add(line)

        logger.info(f"Cart: user {user_id} now has {new_quantity} x product {product_id}")
        return line

    async def update_item(self, db: AsyncSession, user_id: int, item_id: int, quantity: int) -> CartItem:
        async with transaction(db):
            line = await self._get_line(db, user_id, item_id)
            self._check_quantity(line.product, quantity)
            line.quantity = quantity
        return line

    async def remove_item(self, db: AsyncSession, user_id: int, item_id: int) -> None:
        async with transaction(db):
            line = await self._get_line(db, user_id, item_id)
            await db.delete(line)

    async def clear(self, db: AsyncSession, user_id: int) -> None:
        async with transaction(db):
            await db.execute(delete(CartItem).where(CartItem.user_id == user_id))


cart_service = CartService()
