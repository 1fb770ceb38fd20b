# polyshop/stores/database.py
"""Async SQLAlchemy engine owned by a ReconnectingStore."""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError, InvalidRequestError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from polyshop.services.exceptions import ConfigError, StoreFailure
from polyshop.stores.base import ConnectionState, ReconnectingStore


class DatabaseStore(ReconnectingStore[AsyncEngine]):
    """Pooled relational connection; liveness is ``SELECT 1``."""

    kind = "database"

    def __init__(self, target: str, policy, *, pool_size: int = 25, **kwargs) -> None:
        super().__init__(target, policy, **kwargs)
        self.pool_size = pool_size
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    def _url(self) -> URL:
        try:
            return make_url(self.target)
        except ArgumentError as exc:
            raise ConfigError(f"Invalid database URL: {exc}") from exc

    @property
    def display_target(self) -> str:
        try:
            return self._url().render_as_string(hide_password=True)
        except ConfigError:
            return "<invalid database url>"

    def _open(self) -> AsyncEngine:
        url = self._url()
        options: dict = {"pool_pre_ping": True}
        if url.get_backend_name() != "sqlite":
            options.update(
                pool_size=self.pool_size,
                max_overflow=0,
                pool_recycle=30 * 60,
            )
        try:
            engine = create_async_engine(url, **options)
        except (ArgumentError, InvalidRequestError) as exc:
            raise ConfigError(f"Unsupported database URL: {exc}") from exc
        self._sessionmaker = async_sessionmaker(
            bind=engine,
            expire_on_commit=False,
            autoflush=False,
        )
        return engine

    async def _check(self, client: AsyncEngine) -> None:
        async with client.connect() as connection:
            await connection.execute(text("SELECT 1"))

    async def _dispose(self, client: AsyncEngine) -> None:
        self._sessionmaker = None
        await client.dispose()

    @property
    def engine(self) -> AsyncEngine:
        return self.client

    def session(self) -> AsyncSession:
        """New AsyncSession bound to the pooled engine."""
        if self._sessionmaker is None or self.state is not ConnectionState.connected:
            raise StoreFailure("database store is not connected")
        return self._sessionmaker()
