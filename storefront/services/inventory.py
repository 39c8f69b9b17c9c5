"""
Inventory ledger

Product.stock_quantity is only ever changed here, and only with a single
conditional UPDATE, so two checkouts racing for the last unit cannot both
succeed: the second decrement matches zero rows.

Callers lock the product rows first (lock_products) and pass the locked
objects in; all calls must run inside the caller's transaction.
"""
import logging
from typing import Dict, Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from storefront.core.exceptions import InsufficientStockError
from storefront.models.product import Product

logger = logging.getLogger(__name__)


async def lock_products(db: AsyncSession, product_ids: Iterable[int]) -> Dict[int, Product]:
    """
    Re-read product rows under FOR UPDATE.

    Rows are locked in id order so concurrent checkouts over the same products
    cannot deadlock. populate_existing replaces any copy already in the session.
    """
    ids = sorted(set(product_ids))
    if not ids:
        return {}

    result = await db.execute(
        select(Product)
        .where(Product.id.in_(ids))
        .order_by(Product.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {product.id: product for product in result.scalars().all()}


async def reserve(db: AsyncSession, product: Product, quantity: int) -> int:
    """
    Decrement stock by quantity if, and only if, enough remains.

    Returns the new stock level. Raises InsufficientStockError when the
    conditional update matches no row.
    """
    if quantity <= 0:
        raise ValueError("quantity must be positive")

    result = await db.execute(
        update(Product)
        .where(Product.id == product.id, Product.stock_quantity >= quantity)
        .values(stock_quantity=Product.stock_quantity - quantity)
        .returning(Product.stock_quantity)
        .execution_options(synchronize_session=False)
    )
    remaining = result.scalar_one_or_none()

    if remaining is None:
        logger.warning(
            f"Stock reservation refused for product {product.id}: requested {quantity}, "
            f"last seen {product.stock_quantity}"
        )
        raise InsufficientStockError(
            product_id=product.id,
            product_name=product.name,
            requested=quantity,
            available=product.stock_quantity,
        )

    set_committed_value(product, "stock_quantity", remaining)
    return remaining


async def restore(db: AsyncSession, product: Product, quantity: int) -> int:
    """Return quantity units to stock. Returns the new stock level."""
    if quantity <= 0:
        raise ValueError("quantity must be positive")

    result = await db.execute(
        update(Product)
        .where(Product.id == product.id)
        .values(stock_quantity=Product.stock_quantity + quantity)
        .returning(Product.stock_quantity)
        .execution_options(synchronize_session=False)
    )
    restored = result.scalar_one()
    set_committed_value(product, "stock_quantity", restored)
    return restored


async def adjust(db: AsyncSession, product: Product, delta: int) -> int:
    """
    Manual stock correction by a signed amount. Returns the new stock level.

    Decreases go through reserve, so stock can never be taken below zero.
    """
    if delta > 0:
        return await restore(db, product, delta)
    if delta < 0:
        return await reserve(db, product, -delta)
    raise ValueError("delta must not be zero")
