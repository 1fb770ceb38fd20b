"""Store wrapper that connects with backoff before the service takes traffic."""

from __future__ import annotations

import abc
import asyncio
import enum
import random
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from polyshop.core.events import EventSink
from polyshop.core.logging import get_logger
from polyshop.core.retry import RetryPolicy, connect_with_retry
from polyshop.services.exceptions import ConfigError, StoreFailure

ClientT = TypeVar("ClientT")

logger = get_logger("polyshop.stores")


class ConnectionState(str, enum.Enum):
    disconnected = "disconnected"
    connecting = "connecting"
    connected = "connected"
    failed = "failed"
    closed = "closed"


class ReconnectingStore(abc.ABC, Generic[ClientT]):
    """Owns one pooled client and its connection lifecycle.

    Subclasses build the pooled client (``_open``), define the liveness
    check (``_check``) and release the pool (``_dispose``).
    """

    kind = "store"

    def __init__(
        self,
        target: str,
        policy: RetryPolicy,
        *,
        connect_timeout: float | None = None,
        ping_timeout: float = 2.0,
        sink: EventSink | None = None,
    ) -> None:
        if not target or not target.strip():
            raise ConfigError(f"{self.kind} target must not be empty")
        self.target = target
        self.policy = policy
        self.connect_timeout = connect_timeout
        self.ping_timeout = ping_timeout
        self.sink = sink
        self._client: ClientT | None = None
        self._state = ConnectionState.disconnected

    @abc.abstractmethod
    def _open(self) -> ClientT:
        """Build the pooled client. Raise ConfigError for a malformed target."""

    @abc.abstractmethod
    async def _check(self, client: ClientT) -> None:
        """Cheap round trip proving the client is usable."""

    @abc.abstractmethod
    async def _dispose(self, client: ClientT) -> None:
        ...

    @property
    def display_target(self) -> str:
        return self.target

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def client(self) -> ClientT:
        if self._client is None or self._state is not ConnectionState.connected:
            raise StoreFailure(f"{self.kind} store is not connected")
        return self._client

    async def connect(
        self,
        *,
        cancel_event: asyncio.Event | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> "ReconnectingStore[ClientT]":
        if self._state is ConnectionState.connected:
            return self
        if self._state is ConnectionState.closed:
            raise StoreFailure(f"{self.kind} store was closed")

        self._state = ConnectionState.connecting
        try:
            self._client = self._open()
        except ConfigError:
            self._state = ConnectionState.failed
            raise

        client = self._client
        try:
            attempts = await connect_with_retry(
                lambda: self._check(client),
                self.policy,
                target=self.display_target,
                timeout=self.connect_timeout,
                cancel_event=cancel_event,
                sleep=sleep,
                rng=rng,
                sink=self.sink,
            )
        except BaseException:
            self._state = ConnectionState.failed
            await self._release()
            raise

        self._state = ConnectionState.connected
        logger.debug(
            "Store client initialized",
            extra={"kind": self.kind, "target": self.display_target, "attempts": attempts},
        )
        return self

    async def ping(self) -> bool:
        """Re-verify liveness, bounded by ``ping_timeout``. Never raises."""
        client = self._client
        if client is None or self._state is not ConnectionState.connected:
            return False
        try:
            await asyncio.wait_for(self._check(client), timeout=self.ping_timeout)
        except Exception as exc:
            logger.warning(
                "Store ping failed",
                extra={"kind": self.kind, "target": self.display_target, "error": repr(exc)},
            )
            return False
        return True

    async def close(self) -> None:
        if self._state is ConnectionState.closed:
            return
        self._state = ConnectionState.closed
        logger.info("Closing store connection", extra={"kind": self.kind})
        await self._release()

    async def _release(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await self._dispose(client)
        except Exception:
            logger.exception("Error releasing store pool", extra={"kind": self.kind})
