"""Per-user cart kept as one hash: ``cart:<user_id>`` -> {product_id: quantity}."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable
from typing import Any, Protocol, TypeVar

from redis.exceptions import RedisError

from polyshop.core.events import EventSink, emit_event
from polyshop.core.logging import get_logger
from polyshop.services.exceptions import (
    DomainValidationError,
    InvalidQuantityError,
    StoreFailure,
)

T = TypeVar("T")

logger = get_logger("polyshop.cart")

CART_KEY_PREFIX = "cart:"

_DECIMAL = re.compile(r"[0-9]+")

# Errors meaning "the store did not answer properly" for a single call.
_STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class HashStore(Protocol):
    """Hash commands the cart needs; ``redis.asyncio.Redis`` satisfies it."""

    def hincrby(self, name: str, key: str, amount: int = 1) -> Awaitable[Any]: ...

    def hgetall(self, name: str) -> Awaitable[Any]: ...

    def hlen(self, name: str) -> Awaitable[Any]: ...

    def delete(self, *names: str) -> Awaitable[Any]: ...


class CartStore(Protocol):
    """Capability set the HTTP layer depends on."""

    async def increment(self, user_id: str, product_id: str, quantity: int) -> None: ...

    async def get_cart(self, user_id: str) -> dict[str, int]: ...

    async def clear_cart(self, user_id: str) -> None: ...

    async def item_count(self, user_id: str) -> int: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


def cart_key(user_id: str) -> str:
    return f"{CART_KEY_PREFIX}{user_id}"


def _parse_quantity(raw: Any) -> int | None:
    """Positive decimal quantity, or None for a corrupt field."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str) or not _DECIMAL.fullmatch(raw):
        return None
    value = int(raw)
    return value if value > 0 else None


class CartAccumulator:
    """Atomic quantity accumulation on top of a hash store.

    Increments are delegated to ``HINCRBY`` so concurrent requests for the
    same user/product never lose an update. Store failures are raised as
    StoreFailure and never retried here.
    """

    def __init__(
        self,
        hashes: HashStore,
        *,
        call_timeout: float = 3.0,
        owner: Any | None = None,
        sink: EventSink | None = None,
    ) -> None:
        self._hashes = hashes
        self.call_timeout = call_timeout
        self._owner = owner
        self.sink = sink

    async def _call(self, operation: str, awaitable: Awaitable[T], **context: Any) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.call_timeout)
        except _STORE_ERRORS as exc:
            logger.error(
                "Cart store operation failed",
                extra={"operation": operation, "error": repr(exc), **context},
            )
            raise StoreFailure(f"Cart store unavailable during {operation}") from exc

    @staticmethod
    def _require_user(user_id: str) -> None:
        if not user_id or not user_id.strip():
            raise DomainValidationError("user_id is required")

    async def increment(self, user_id: str, product_id: str, quantity: int) -> None:
        self._require_user(user_id)
        if not product_id:
            raise DomainValidationError("product_id is required")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantityError(f"quantity must be positive, got {quantity!r}")

        await self._call(
            "increment",
            self._hashes.hincrby(cart_key(user_id), product_id, quantity),
            user_id=user_id,
            product_id=product_id,
        )
        emit_event(self.sink, "cart.increment", user_id=user_id, product_id=product_id, quantity=quantity)
        logger.info(
            "Item added to cart",
            extra={"user_id": user_id, "product_id": product_id, "quantity": quantity},
        )

    async def get_cart(self, user_id: str) -> dict[str, int]:
        self._require_user(user_id)
        raw = await self._call("get_cart", self._hashes.hgetall(cart_key(user_id)), user_id=user_id)

        cart: dict[str, int] = {}
        for field, value in (raw or {}).items():
            product_id = field.decode("utf-8") if isinstance(field, bytes) else str(field)
            quantity = _parse_quantity(value)
            if quantity is None:
                logger.warning(
                    "Invalid quantity in cart, skipping",
                    extra={"user_id": user_id, "product_id": product_id, "quantity_str": repr(value)},
                )
                emit_event(self.sink, "cart.corrupt_entry", user_id=user_id, product_id=product_id)
                continue
            cart[product_id] = quantity

        emit_event(self.sink, "cart.get", user_id=user_id, item_count=len(cart))
        return cart

    async def clear_cart(self, user_id: str) -> None:
        self._require_user(user_id)
        await self._call("clear_cart", self._hashes.delete(cart_key(user_id)), user_id=user_id)
        emit_event(self.sink, "cart.clear", user_id=user_id)
        logger.info("Cart cleared", extra={"user_id": user_id})

    async def item_count(self, user_id: str) -> int:
        """Distinct products in the cart, not the sum of quantities."""
        self._require_user(user_id)
        count = await self._call("item_count", self._hashes.hlen(cart_key(user_id)), user_id=user_id)
        emit_event(self.sink, "cart.count", user_id=user_id, item_count=count)
        return int(count)

    async def ping(self) -> bool:
        if self._owner is None:
            return True
        return await self._owner.ping()

    async def close(self) -> None:
        if self._owner is not None:
            await self._owner.close()
