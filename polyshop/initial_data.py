# polyshop/initial_data.py
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from polyshop.models.product import Product

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProductSeed:
    name: str
    description: str
    price: float
    stock: int
    category: str
    image_url: str


def _img(seed: str) -> str:
    return f"https://picsum.photos/seed/{seed}/400/300"


DEMO_CATALOG: tuple[ProductSeed, ...] = (
    # Electronics
    ProductSeed('MacBook Pro 16"', "Apple M3 Max chip with 16-core CPU and 40-core GPU, 64GB unified memory, 1TB SSD storage", 3499.00, 25, "Electronics", _img("laptop1")),
    ProductSeed("Sony WH-1000XM5 Headphones", "Industry-leading noise canceling wireless headphones with 30-hour battery life", 399.99, 50, "Electronics", _img("headphones1")),
    ProductSeed("iPhone 15 Pro Max", "A17 Pro chip, titanium design, 6.7-inch Super Retina XDR display, 256GB", 1199.00, 100, "Electronics", _img("phone1")),
    ProductSeed('Samsung 65" QLED TV', "4K Ultra HD Smart TV with Quantum Processor and HDR10+", 1299.99, 15, "Electronics", _img("tv1")),
    ProductSeed("Dell UltraSharp Monitor", "27-inch 4K USB-C monitor with 99% sRGB color coverage", 549.00, 40, "Electronics", _img("monitor1")),
    # Clothing
    ProductSeed("Levi's 501 Original Jeans", "Classic straight fit denim jeans with button fly, available in multiple washes", 69.99, 200, "Clothing", _img("jeans1")),
    ProductSeed("Nike Air Max Sneakers", "Comfortable running shoes with visible Air cushioning and breathable mesh", 129.99, 150, "Clothing", _img("shoes1")),
    ProductSeed("Patagonia Down Jacket", "Lightweight insulated jacket with 800-fill-power down, water-resistant shell", 229.00, 75, "Clothing", _img("jacket1")),
    ProductSeed("Ralph Lauren Oxford Shirt", "Classic fit button-down shirt in 100% cotton, available in multiple colors", 89.50, 120, "Clothing", _img("shirt1")),
    # Books
    ProductSeed("The Pragmatic Programmer", "Your journey to mastery, 20th Anniversary Edition by David Thomas and Andrew Hunt", 49.99, 80, "Books", _img("book1")),
    ProductSeed("Atomic Habits", "An easy and proven way to build good habits and break bad ones by James Clear", 27.00, 150, "Books", _img("book2")),
    ProductSeed("The Art of War", "Ancient Chinese military treatise by Sun Tzu, deluxe hardcover edition", 19.99, 200, "Books", _img("book3")),
    # Home & Garden
    ProductSeed("Ergonomic Office Chair", "Adjustable lumbar support, breathable mesh back, 360-degree swivel, up to 300 lbs", 299.99, 45, "Home & Garden", _img("chair1")),
    ProductSeed("Dyson V15 Vacuum", "Cordless stick vacuum with laser detection and LCD screen showing particle count", 649.99, 30, "Home & Garden", _img("vacuum1")),
    ProductSeed("KitchenAid Stand Mixer", "5-quart tilt-head stand mixer with 10 speeds and stainless steel bowl", 379.99, 60, "Home & Garden", _img("mixer1")),
    ProductSeed("Weber Gas Grill", "3-burner propane gas grill with 529 sq. in. cooking area and side burner", 499.00, 20, "Home & Garden", _img("grill1")),
)


async def seed_products(session: AsyncSession, seeds: tuple[ProductSeed, ...] = DEMO_CATALOG) -> int:
    """Insert the demo catalog when the table is empty. Returns rows created."""
    existing = (await session.execute(select(func.count()).select_from(Product))).scalar() or 0
    if existing:
        logger.info("Catalog already populated; skipping seed.", extra={"existing": existing})
        return 0

    session.add_all(
        Product(
            name=seed.name,
            description=seed.description,
            price=seed.price,
            stock=seed.stock,
            category=seed.category,
            image_url=seed.image_url,
        )
        for seed in seeds
    )
    await session.commit()
    logger.info("Seed completed", extra={"created": len(seeds)})
    return len(seeds)
