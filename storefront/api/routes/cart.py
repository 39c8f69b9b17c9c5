"""
Cart routes
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_current_user
from storefront.core.database import get_db
from storefront.models.user import User
from storefront.schemas.cart import CartItemAdd, CartItemUpdate, CartResponse
from storefront.services.cart_service import build_cart_response, cart_service, read_cart

router = APIRouter()


@router.get("", response_model=CartResponse)
async def get_cart(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return build_cart_response(await read_cart(db, user.id))


@router.post("/items", response_model=CartResponse, status_code=status.HTTP_201_CREATED)
async def add_to_cart(
    item: CartItemAdd,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await cart_service.add_item(db, user.id, item.product_id, item.quantity)
    return build_cart_response(await read_cart(db, user.id))


@router.patch("/items/{item_id}", response_model=CartResponse)
async def update_cart_item(
    item_id: int,
    update: CartItemUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await cart_service.update_item(db, user.id, item_id, update.quantity)
    return build_cart_response(await read_cart(db, user.id))


@router.delete("/items/{item_id}", response_model=CartResponse)
async def remove_from_cart(
    item_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await cart_service.remove_item(db, user.id, item_id)
    return build_cart_response(await read_cart(db, user.id))


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cart(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await cart_service.clear(db, user.id)
