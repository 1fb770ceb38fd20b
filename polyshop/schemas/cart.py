# polyshop/schemas/cart.py
from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class CartItemAdd(BaseModel):
    product_id: str = Field(..., min_length=1, max_length=200)
    quantity: int = Field(..., gt=0)


class CartItemRead(BaseModel):
    product_id: str
    quantity: int


class CartRead(BaseModel):
    user_id: str
    items: List[CartItemRead] = Field(default_factory=list)
    total_items: int = 0

    @classmethod
    def from_mapping(cls, user_id: str, mapping: dict[str, int]) -> "CartRead":
        items = [CartItemRead(product_id=pid, quantity=qty) for pid, qty in sorted(mapping.items())]
        return cls(user_id=user_id, items=items, total_items=len(items))


class CartAddWarning(BaseModel):
    message: str
    warning: str


class CartCleared(BaseModel):
    message: str = "Cart cleared successfully"
    user_id: str


class CartCount(BaseModel):
    user_id: str
    item_count: int
