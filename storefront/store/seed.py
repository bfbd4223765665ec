"""Sample catalog for development stores."""

from decimal import Decimal

import structlog

from storefront.models import Product
from storefront.store.base import Store

log = structlog.get_logger(__name__)

SAMPLE_PRODUCTS = [
    ("iPhone 15 Pro", "Latest Apple iPhone with A17 Pro chip", "Electronics", "999.99", 50),
    ("MacBook Air M2", "Powerful laptop with M2 chip", "Electronics", "1199.99", 30),
    ("AirPods Pro", "Wireless earbuds with noise cancellation", "Electronics", "249.99", 100),
    ("Nike Air Max", "Comfortable running shoes", "Shoes", "129.99", 75),
    ("Coffee Maker", "Premium coffee brewing machine", "Home", "89.99", 25),
]


def seed_catalog(store: Store) -> list[Product]:
    """Add the sample products unless the catalog already has some."""
    if store.list_products(include_inactive=True):
        return []
    seeded = []
    with store.transaction():
        for i, (name, description, category, price, stock) in enumerate(SAMPLE_PRODUCTS, start=1):
            seeded.append(store.save_product(Product(
                id=f"prod-{i}",
                name=name,
                description=description,
                category=category,
                price=Decimal(price),
                stock=stock,
            )))
    log.info("catalog.seeded", products=len(seeded))
    return seeded
