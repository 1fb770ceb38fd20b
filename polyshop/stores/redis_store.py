from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

from redis import asyncio as redis_async
from redis.asyncio.retry import Retry
from redis.backoff import NoBackoff

from polyshop.services.exceptions import ConfigError
from polyshop.stores.base import ReconnectingStore


class RedisStore(ReconnectingStore[redis_async.Redis]):
    """Pooled ``redis.asyncio`` client; liveness is ``PING``."""

    kind = "redis"

    def __init__(
        self,
        target: str,
        policy,
        *,
        pool_size: int = 10,
        socket_timeout: float = 3.0,
        socket_connect_timeout: float = 5.0,
        **kwargs,
    ) -> None:
        super().__init__(target, policy, **kwargs)
        self.pool_size = pool_size
        self.socket_timeout = socket_timeout
        self.socket_connect_timeout = socket_connect_timeout

    @property
    def display_target(self) -> str:
        parts = urlsplit(self.target)
        if parts.password is None:
            return self.target
        host = parts.hostname or ""
        if parts.port:
            host = f"{host}:{parts.port}"
        return urlunsplit((parts.scheme, f"***@{host}", parts.path, parts.query, parts.fragment))

    def _open(self) -> redis_async.Redis:
        try:
            return redis_async.from_url(
                self.target,
                encoding="utf-8",
                decode_responses=True,
                max_connections=self.pool_size,
                socket_timeout=self.socket_timeout,
                socket_connect_timeout=self.socket_connect_timeout,
                # per-request failures surface to the caller; no command retries
                retry=Retry(NoBackoff(), 0),
                retry_on_timeout=False,
            )
        except ValueError as exc:
            raise ConfigError(f"Invalid Redis URL: {exc}") from exc

    async def _check(self, client: redis_async.Redis) -> None:
        await client.ping()

    async def _dispose(self, client: redis_async.Redis) -> None:
        await client.aclose()
