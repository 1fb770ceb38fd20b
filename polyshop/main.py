# polyshop/main.py
"""ASGI applications for the cart and catalog services.

Each app owns exactly one store handle. The lifespan connects it with
backoff before traffic is accepted and closes it on shutdown; a fatal
connect aborts startup.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from polyshop.api.error_handlers import register_exception_handlers
from polyshop.api.routers import cart, health, products
from polyshop.core.config import Settings, settings
from polyshop.core.events import EventSink, NoOpEventSink
from polyshop.core.logging import get_logger
from polyshop.core.metrics import MetricsEventSink
from polyshop.db.base import Base
from polyshop.initial_data import seed_products
from polyshop.middleware import ObservabilityMiddleware
from polyshop.services.cart_service import CartAccumulator
from polyshop.stores.base import ReconnectingStore
from polyshop.stores.database import DatabaseStore
from polyshop.stores.memory import MemoryStore
from polyshop.stores.redis_store import RedisStore

import polyshop.models.product  # noqa: F401

logger = get_logger("polyshop.main")

CART_SERVICE = "cart-service"
CATALOG_SERVICE = "product-service"


def default_sink(cfg: Settings = settings) -> EventSink:
    return MetricsEventSink() if cfg.METRICS_ENABLED else NoOpEventSink()


def build_cart_store(cfg: Settings = settings, sink: EventSink | None = None) -> ReconnectingStore:
    options = dict(
        connect_timeout=cfg.STARTUP_TIMEOUT_SECONDS,
        ping_timeout=cfg.HEALTH_PING_TIMEOUT_SECONDS,
        sink=sink,
    )
    if cfg.REDIS_URL.startswith("memory://"):
        return MemoryStore(cfg.REDIS_URL, cfg.retry_policy(), **options)
    return RedisStore(
        cfg.REDIS_URL,
        cfg.retry_policy(),
        pool_size=cfg.REDIS_POOL_SIZE,
        socket_timeout=cfg.STORE_CALL_TIMEOUT_SECONDS,
        **options,
    )


def build_catalog_store(cfg: Settings = settings, sink: EventSink | None = None) -> DatabaseStore:
    return DatabaseStore(
        cfg.ASYNC_DATABASE_URL,
        cfg.retry_policy(),
        pool_size=cfg.DATABASE_POOL_SIZE,
        connect_timeout=cfg.STARTUP_TIMEOUT_SECONDS,
        ping_timeout=cfg.HEALTH_PING_TIMEOUT_SECONDS,
        sink=sink,
    )


def _base_app(
    service_name: str,
    lifespan: Callable[[FastAPI], AbstractAsyncContextManager[None]],
    cfg: Settings,
) -> FastAPI:
    app = FastAPI(
        title=f"{cfg.PROJECT_NAME} {service_name}",
        version=cfg.SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.service_name = service_name
    app.state.call_timeout = cfg.STORE_CALL_TIMEOUT_SECONDS

    app.add_middleware(ObservabilityMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(health.router)
    return app


def create_cart_app(
    *,
    store: ReconnectingStore | None = None,
    sink: EventSink | None = None,
    cfg: Settings = settings,
) -> FastAPI:
    sink = sink or default_sink(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = store or build_cart_store(cfg, sink)
        await owned.connect()
        app.state.store = owned
        app.state.cart_store = CartAccumulator(
            owned.client,
            call_timeout=cfg.STORE_CALL_TIMEOUT_SECONDS,
            owner=owned,
            sink=sink,
        )
        logger.info("Cart service ready", extra={"store": owned.kind})
        try:
            yield
        finally:
            app.state.cart_store = None
            await owned.close()
            logger.info("Cart service stopped")

    app = _base_app(CART_SERVICE, lifespan, cfg)
    app.state.sink = sink
    app.include_router(cart.router, prefix=cfg.API_V1_STR)
    return app


def create_catalog_app(
    *,
    store: DatabaseStore | None = None,
    sink: EventSink | None = None,
    cfg: Settings = settings,
) -> FastAPI:
    sink = sink or default_sink(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = store or build_catalog_store(cfg, sink)
        await owned.connect()
        try:
            if cfg.DATABASE_CREATE_SCHEMA:
                async with owned.engine.begin() as connection:
                    await connection.run_sync(Base.metadata.create_all)
            if cfg.SEED_PRODUCTS:
                async with owned.session() as session:
                    await seed_products(session)
        except BaseException:
            await owned.close()
            raise
        app.state.store = owned
        logger.info("Catalog service ready", extra={"store": owned.kind})
        try:
            yield
        finally:
            await owned.close()
            logger.info("Catalog service stopped")

    app = _base_app(CATALOG_SERVICE, lifespan, cfg)
    app.state.sink = sink
    app.include_router(products.router, prefix=cfg.API_V1_STR)
    return app


cart_app = create_cart_app()
catalog_app = create_catalog_app()
