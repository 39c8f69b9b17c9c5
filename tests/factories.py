"""
Test data builders shared by the test modules.
"""
from decimal import Decimal

from storefront.core.security import create_access_token
from storefront.models import CartItem, Product, ProductStatus, User
from storefront.schemas.order import AddressInput, OrderCreate
from storefront.services.payment_gateway import PaymentIntentResult


async def create_user(session_factory, email: str, is_admin: bool = False) -> User:
    async with session_factory() as session:
        user = User(email=email, name=email.split("@")[0].title(), is_admin=is_admin)
        session.add(user)
        await session.commit()
        return user


async def create_product(
    session_factory,
    sku: str,
    price: str,
    stock: int,
    status: ProductStatus = ProductStatus.ACTIVE,
) -> Product:
    async with session_factory() as session:
        product = Product(
            sku=sku,
            name=f"Product {sku}",
            price=Decimal(price),
            stock_quantity=stock,
            status=status.value,
        )
        session.add(product)
        await session.commit()
        return product


async def add_to_cart(session_factory, user: User, product: Product, quantity: int) -> None:
    async with session_factory() as session:
        session.add(CartItem(user_id=user.id, product_id=product.id, quantity=quantity))
        await session.commit()


async def stock_of(session_factory, product_id: int) -> int:
    async with session_factory() as session:
        product = await session.get(Product, product_id)
        return product.stock_quantity


async def cart_size(session_factory, user_id: int) -> int:
    from sqlalchemy import func, select

    async with session_factory() as session:
        result = await session.execute(
            select(func.count(CartItem.id)).where(CartItem.user_id == user_id)
        )
        return result.scalar()


def make_address(**overrides) -> AddressInput:
    data = {
        "first_name": "Casey",
        "last_name": "Jones",
        "address_line_1": "42 Market Street",
        "city": "Springfield",
        "state": "IL",
        "postal_code": "62701",
        "country": "US",
    }
    data.update(overrides)
    return AddressInput(**data)


def make_order_create(**overrides) -> OrderCreate:
    data = {
        "shipping_address": make_address(),
        "billing_address": make_address(first_name="Billie"),
        "payment_method": "stripe",
        "stripe_payment_id": "pi_test_123",
    }
    data.update(overrides)
    return OrderCreate(**data)


def authorize_hold(
    gateway,
    user: User,
    amount: int = 6482,
    reference: str = "pi_test_123",
    status: str = "requires_capture",
    currency: str = "usd",
) -> PaymentIntentResult:
    """Register a manual-capture hold (amount in cents) on the gateway double."""
    hold = PaymentIntentResult(
        reference=reference,
        status=status,
        amount=amount,
        currency=currency,
        metadata={"user_id": str(user.id)},
    )
    gateway.holds[reference] = hold
    return hold


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}


async def reload_order(session_factory, order_id: int):
    """Fresh copy of the order aggregate from a new session."""
    from storefront.services.order_service import load_order

    async with session_factory() as session:
        return await load_order(session, order_id)
