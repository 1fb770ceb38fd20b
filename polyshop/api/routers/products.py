from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from polyshop.api.deps import get_db
from polyshop.schemas.product import ProductCreate, ProductRead
from polyshop.services import product_service

router = APIRouter(prefix="/products", tags=["products"])


def _call_timeout(request: Request) -> float:
    return getattr(request.app.state, "call_timeout", product_service.DEFAULT_CALL_TIMEOUT)


@router.get("", response_model=List[ProductRead])
async def list_products(
    request: Request,
    category: str | None = Query(default=None, description="Filter by category"),
    db: AsyncSession = Depends(get_db),
):
    return await product_service.list_products(db, category=category, timeout=_call_timeout(request))


@router.get("/{product_id}", response_model=ProductRead)
async def get_product(
    product_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    return await product_service.get_product(db, product_id, timeout=_call_timeout(request))


@router.post("", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    return await product_service.create_product(db, payload, timeout=_call_timeout(request))
