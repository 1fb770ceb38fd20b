from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from polyshop.api.deps import get_cart_store
from polyshop.core.logging import get_logger
from polyshop.schemas.cart import CartAddWarning, CartCleared, CartCount, CartItemAdd, CartRead
from polyshop.services.cart_service import CartStore
from polyshop.services.exceptions import StoreFailure

router = APIRouter(prefix="/cart", tags=["cart"])

logger = get_logger("polyshop.api.cart")

UserIdPath = Path(..., min_length=1, max_length=200, description="Opaque user identifier")


@router.post("/{user_id}", response_model=CartRead | CartAddWarning)
async def add_item(
    payload: CartItemAdd,
    user_id: str = UserIdPath,
    carts: CartStore = Depends(get_cart_store),
):
    await carts.increment(user_id, payload.product_id, payload.quantity)
    try:
        mapping = await carts.get_cart(user_id)
    except StoreFailure:
        # The increment already landed; only the echo of the cart failed.
        logger.warning("Item added but cart read failed", extra={"user_id": user_id})
        return CartAddWarning(
            message="Item added successfully",
            warning="Failed to retrieve updated cart",
        )
    return CartRead.from_mapping(user_id, mapping)


@router.get("/{user_id}", response_model=CartRead)
async def get_cart(
    user_id: str = UserIdPath,
    carts: CartStore = Depends(get_cart_store),
):
    mapping = await carts.get_cart(user_id)
    return CartRead.from_mapping(user_id, mapping)


@router.get("/{user_id}/count", response_model=CartCount)
async def count_items(
    user_id: str = UserIdPath,
    carts: CartStore = Depends(get_cart_store),
):
    return CartCount(user_id=user_id, item_count=await carts.item_count(user_id))


@router.delete("/{user_id}", response_model=CartCleared)
async def clear_cart(
    user_id: str = UserIdPath,
    carts: CartStore = Depends(get_cart_store),
):
    await carts.clear_cart(user_id)
    return CartCleared(user_id=user_id)
