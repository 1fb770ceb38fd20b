"""Seed script for populating the demo product catalog."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from polyshop.core.config import Settings, settings
from polyshop.db.base import Base
from polyshop.initial_data import DEMO_CATALOG, seed_products
from polyshop.stores.database import DatabaseStore

import polyshop.models.product  # noqa: F401


async def seed_catalog(cfg: Settings = settings, *, create_schema: bool = False) -> int:
    logger = logging.getLogger("seed_catalog")
    store = DatabaseStore(
        cfg.ASYNC_DATABASE_URL,
        cfg.retry_policy(),
        connect_timeout=cfg.STARTUP_TIMEOUT_SECONDS,
    )
    await store.connect()
    try:
        logger.info("Seeding demo catalog into %s", store.display_target)
        if create_schema:
            async with store.engine.begin() as connection:
                await connection.run_sync(Base.metadata.create_all)
        async with store.session() as session:
            created = await seed_products(session, DEMO_CATALOG)
    finally:
        await store.close()
    logger.info("Seed completed: %s created", created)
    return created


async def main() -> None:
    await seed_catalog()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
