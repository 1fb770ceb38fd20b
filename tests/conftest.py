# tests/conftest.py
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import os

import pytest
import pytest_asyncio
import httpx

os.environ.setdefault("REDIS_URL", "memory://")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("SEED_PRODUCTS", "true")

from polyshop.core.config import Settings
from polyshop.core.events import RecordingEventSink
from polyshop.core.retry import RetryPolicy
from polyshop.main import create_cart_app, create_catalog_app
from polyshop.services.cart_service import CartAccumulator
from polyshop.stores.database import DatabaseStore
from polyshop.stores.memory import MemoryHashStore, MemoryStore


# ---------- Fixtures ----------

@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Millisecond backoff so connect tests stay quick."""
    return RetryPolicy(initial_delay=0.001, max_delay=0.004, max_attempts=3, jitter_fraction=0.1)


@pytest.fixture
def sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def hashes() -> MemoryHashStore:
    return MemoryHashStore()


@pytest.fixture
def carts(hashes: MemoryHashStore, sink: RecordingEventSink) -> CartAccumulator:
    return CartAccumulator(hashes, call_timeout=1.0, sink=sink)


@pytest.fixture
def cart_app(fast_policy: RetryPolicy, sink: RecordingEventSink):
    store = MemoryStore("memory://", fast_policy)
    return create_cart_app(store=store, sink=sink)


@pytest_asyncio.fixture
async def cart_client(cart_app):
    """AsyncClient bound to a started cart app (lifespan included)."""
    async with cart_app.router.lifespan_context(cart_app):
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=cart_app), base_url="http://test") as ac:
            yield ac
    cart_app.dependency_overrides.clear()


@pytest.fixture
def catalog_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}"


@pytest.fixture
def catalog_app(catalog_url: str, fast_policy: RetryPolicy, sink: RecordingEventSink):
    cfg = Settings(ASYNC_DATABASE_URL=catalog_url, SEED_PRODUCTS=True, DATABASE_CREATE_SCHEMA=True)
    store = DatabaseStore(catalog_url, fast_policy)
    return create_catalog_app(store=store, sink=sink, cfg=cfg)


@pytest_asyncio.fixture
async def catalog_client(catalog_app):
    async with catalog_app.router.lifespan_context(catalog_app):
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=catalog_app), base_url="http://test") as ac:
            yield ac
