# polyshop/api/deps.py
from collections.abc import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from polyshop.services.cart_service import CartStore
from polyshop.services.exceptions import StoreFailure
from polyshop.stores.base import ReconnectingStore
from polyshop.stores.database import DatabaseStore


def get_store(request: Request) -> ReconnectingStore:
    """Connection handle opened by the app lifespan."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise StoreFailure("Store is not initialised")
    return store


def get_cart_store(request: Request) -> CartStore:
    cart_store = getattr(request.app.state, "cart_store", None)
    if cart_store is None:
        raise StoreFailure("Cart store is not initialised")
    return cart_store


async def get_db(store: ReconnectingStore = Depends(get_store)) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that yields an AsyncSession from the catalog store."""
    if not isinstance(store, DatabaseStore):
        raise StoreFailure("Catalog database is not configured")
    async with store.session() as session:
        yield session
