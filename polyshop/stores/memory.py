from __future__ import annotations

import asyncio

from redis.exceptions import ResponseError

from polyshop.stores.base import ReconnectingStore


class MemoryHashStore:
    """In-process hash store mirroring the Redis hash commands the cart uses.

    Values are kept as decimal strings, like Redis does. Each command runs
    without suspending between read and write, so it is atomic within the
    event loop.
    """

    def __init__(self) -> None:
        self._data: dict[str, dict[str, str]] = {}
        self.closed = False

    async def hincrby(self, name: str, key: str, amount: int = 1) -> int:
        await asyncio.sleep(0)
        bucket = self._data.setdefault(name, {})
        current = bucket.get(key, "0")
        try:
            value = int(current) + int(amount)
        except ValueError:
            raise ResponseError("hash value is not an integer") from None
        bucket[key] = str(value)
        return value

    async def hset(self, name: str, key: str, value: object) -> int:
        await asyncio.sleep(0)
        bucket = self._data.setdefault(name, {})
        created = key not in bucket
        bucket[key] = str(value)
        return int(created)

    async def hgetall(self, name: str) -> dict[str, str]:
        await asyncio.sleep(0)
        return dict(self._data.get(name, {}))

    async def hlen(self, name: str) -> int:
        await asyncio.sleep(0)
        return len(self._data.get(name, {}))

    async def delete(self, *names: str) -> int:
        await asyncio.sleep(0)
        removed = 0
        for name in names:
            if self._data.pop(name, None) is not None:
                removed += 1
        return removed

    async def ping(self) -> bool:
        if self.closed:
            raise ConnectionError("memory store closed")
        return True

    async def aclose(self) -> None:
        self.closed = True


class MemoryStore(ReconnectingStore[MemoryHashStore]):
    """Cart backend selected by a ``memory://`` target."""

    kind = "memory"

    def _open(self) -> MemoryHashStore:
        return MemoryHashStore()

    async def _check(self, client: MemoryHashStore) -> None:
        await client.ping()

    async def _dispose(self, client: MemoryHashStore) -> None:
        await client.aclose()
