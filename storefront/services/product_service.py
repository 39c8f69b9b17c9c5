"""
Product Service

Catalog reads for shoppers and product administration for admins.

Shoppers only ever see active products. Admin writes run in one transaction
each; stock adjustments lock the row and go through the inventory ledger like
checkout does.
"""
import logging
import re
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.database import transaction
from storefront.core.exceptions import DuplicateSkuError, NotFoundError, ValidationError
from storefront.models.product import Product, ProductStatus
from storefront.models.user import User
from storefront.schemas.product import ProductCreate, ProductUpdate, StockAdjustment
from storefront.services import inventory

logger = logging.getLogger(__name__)

SORT_ORDERS = {
    "newest": (Product.created_at.desc(), Product.id.desc()),
    "price_asc": (Product.price.asc(), Product.id.asc()),
    "price_desc": (Product.price.desc(), Product.id.desc()),
    "name": (Product.name.asc(), Product.id.asc()),
    "featured": (Product.featured.desc(), Product.created_at.desc(), Product.id.desc()),
}


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


class ProductService:
    """Catalog queries and admin product management."""

    async def _get(self, db: AsyncSession, product_id: int) -> Product:
        product = await db.get(Product, product_id)
        if not product:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        return product

    async def _slug_taken(self, db: AsyncSession, slug: str, exclude_id: Optional[int] = None) -> bool:
        query = select(Product.id).where(Product.slug == slug)
        if exclude_id is not None:
            query = query.where(Product.id != exclude_id)
        result = await db.execute(query)
        return result.first() is not None

    async def _unique_slug(self, db: AsyncSession, data: ProductCreate) -> str:
        """Explicit slug must be free; a derived one falls back to name plus SKU."""
        if data.slug:
            if await self._slug_taken(db, data.slug):
                raise ValidationError(f"Slug {data.slug} already exists", code="SLUG_EXISTS")
            return data.slug

        slug = slugify(data.name) or slugify(data.sku)
        if await self._slug_taken(db, slug):
            slug = f"{slug}-{slugify(data.sku)}"
            if await self._slug_taken(db, slug):
                raise ValidationError(f"Slug {slug} already exists", code="SLUG_EXISTS")
        return slug

    # =========================================================================
    # CATALOG
    # =========================================================================

    async def list_products(
        self,
        db: AsyncSession,
        page: int = 1,
        per_page: int = 20,
        search: Optional[str] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        in_stock: Optional[bool] = None,
        featured: Optional[bool] = None,
        sort: str = "newest",
        status: Optional[ProductStatus] = ProductStatus.ACTIVE,
    ) -> Tuple[List[Product], int]:
        """
        Filtered, paginated product listing.

        status=None lists every status (admin view).
        """
        filters = []
        if status is not None:
            filters.append(Product.status == status.value)
        if search:
            pattern = f"%{search.strip()}%"
            filters.append(or_(
                Product.name.ilike(pattern),
                Product.description.ilike(pattern),
                Product.sku.ilike(pattern),
            ))
        if min_price is not None:
            filters.append(Product.price >= min_price)
        if max_price is not None:
            filters.append(Product.price <= max_price)
        if in_stock:
            filters.append(Product.stock_quantity > 0)
        if featured is not None:
            filters.append(Product.featured == featured)

        total = await db.scalar(select(func.count(Product.id)).where(*filters)) or 0

        result = await db.execute(
            select(Product)
            .where(*filters)
            .order_by(*SORT_ORDERS.get(sort, SORT_ORDERS["newest"]))
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return list(result.scalars().all()), total

    async def get_product(self, db: AsyncSession, product_id: int, include_unlisted: bool = False) -> Product:
        """Shoppers get 404 for products that are not active."""
        product = await self._get(db, product_id)
        if not include_unlisted and not product.is_sellable:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        return product

    async def get_product_by_slug(self, db: AsyncSession, slug: str) -> Product:
        result = await db.execute(
            select(Product).where(Product.slug == slug, Product.status == ProductStatus.ACTIVE.value)
        )
        product = result.scalar_one_or_none()
        if not product:
            raise NotFoundError("Product not found", details={"slug": slug})
        return product

    # =========================================================================
    # ADMIN
    # =========================================================================

    async def create_product(self, db: AsyncSession, admin: User, data: ProductCreate) -> Product:
        async with transaction(db):
            existing = await db.execute(select(Product.id).where(Product.sku == data.sku))
            if existing.first() is not None:
                raise DuplicateSkuError(data.sku)

            product = Product(
                **data.model_dump(exclude={"slug", "status"}),
                slug=await self._unique_slug(db, data),
                status=data.status.value,
            )
            db.add(product)

        logger.info(f"Product {product.id} ({product.sku}) created by admin {admin.id}")
        return product

    async def update_product(self, db: AsyncSession, admin: User, product_id: int, data: ProductUpdate) -> Product:
        """Partial update. Stock is not editable here; see adjust_stock."""
        changes = data.model_dump(exclude_unset=True)

        async with transaction(db):
            product = await self._get(db, product_id)

            if changes.get("slug") and await self._slug_taken(db, changes["slug"], exclude_id=product.id):
                raise ValidationError(f"Slug {changes['slug']} already exists", code="SLUG_EXISTS")
            if changes.get("status") is not None:
                changes["status"] = changes["status"].value

            for field, value in changes.items():
                if value is None and field in ("name", "price", "status", "featured"):
                    continue
                setattr(product, field, value)

        logger.info(f"Product {product.id} updated by admin {admin.id}: {sorted(changes)}")
        return product

    async def adjust_stock(
        self,
        db: AsyncSession,
        admin: User,
        product_id: int,
        data: StockAdjustment,
    ) -> Tuple[int, int]:
        """Restock or write off units. Returns (previous, new) stock levels."""
        async with transaction(db):
            products = await inventory.lock_products(db, [product_id])
            product = products.get(product_id)
            if product is None:
                raise NotFoundError("Product not found", details={"product_id": product_id})

            previous = product.stock_quantity
            new_stock = await inventory.adjust(db, product, data.quantity)

        logger.info(
            f"Stock adjusted for product {product_id}: {previous} -> {new_stock} "
            f"({data.quantity:+d}, {data.reason}) by admin {admin.id}"
        )
        return previous, new_stock

    async def archive_product(self, db: AsyncSession, admin: User, product_id: int) -> Product:
        """Take a product off sale. Order history keeps pointing at it."""
        async with transaction(db):
            product = await self._get(db, product_id)
            product.status = ProductStatus.INACTIVE.value

        logger.info(f"Product {product_id} ({product.sku}) archived by admin {admin.id}")
        return product


product_service = ProductService()
