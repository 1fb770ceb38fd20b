from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Sequence, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from polyshop.core.logging import get_logger
from polyshop.models.product import Product
from polyshop.schemas.product import ProductCreate
from polyshop.services.exceptions import ResourceNotFoundError, StoreFailure

T = TypeVar("T")

logger = get_logger("polyshop.catalog")

DEFAULT_CALL_TIMEOUT = 3.0


async def _bounded(operation: str, awaitable: Awaitable[T], timeout: float) -> T:
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except (DBAPIError, OSError, asyncio.TimeoutError) as exc:
        logger.error("Catalog query failed", extra={"operation": operation, "error": repr(exc)})
        raise StoreFailure(f"Catalog database unavailable during {operation}") from exc


async def list_products(
    db: AsyncSession,
    *,
    category: str | None = None,
    timeout: float = DEFAULT_CALL_TIMEOUT,
) -> Sequence[Product]:
    stmt = select(Product)
    if category:
        stmt = stmt.where(Product.category == category).order_by(Product.name)
    else:
        stmt = stmt.order_by(Product.category, Product.name)
    result = await _bounded("list_products", db.execute(stmt), timeout)
    return result.scalars().all()


async def get_product(db: AsyncSession, product_id: int, *, timeout: float = DEFAULT_CALL_TIMEOUT) -> Product:
    product = await _bounded("get_product", db.get(Product, product_id), timeout)
    if product is None:
        raise ResourceNotFoundError(f"Product {product_id} not found")
    return product


async def create_product(
    db: AsyncSession,
    payload: ProductCreate,
    *,
    timeout: float = DEFAULT_CALL_TIMEOUT,
) -> Product:
    product = Product(**payload.model_dump())
    db.add(product)

    async def _persist() -> None:
        await db.flush()
        await db.commit()
        await db.refresh(product)

    try:
        await _bounded("create_product", _persist(), timeout)
    except StoreFailure:
        await db.rollback()
        raise
    logger.info("Product created", extra={"product_id": product.id, "category": product.category})
    return product
