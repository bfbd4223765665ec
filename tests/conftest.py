"""Pytest fixtures for storefront tests."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import jwt
import pytest
from fastapi.testclient import TestClient

from storefront.api.deps import build_services
from storefront.core.config import settings
from storefront.models import Product
from storefront.store.memory import MemoryStore

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class Clock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeRedis:
    """Just enough of the redis client for RedisCartStore."""

    def __init__(self):
        self.hashes: dict[str, dict[str, str]] = {}

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def hset(self, key, mapping):
        self.hashes.setdefault(key, {}).update(mapping)
        return len(mapping)

    def delete(self, key):
        return 1 if self.hashes.pop(key, None) is not None else 0

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.ops = []

    def delete(self, key):
        self.ops.append(("delete", (key,), {}))

    def hset(self, key, mapping):
        self.ops.append(("hset", (key,), {"mapping": mapping}))

    def execute(self):
        results = [getattr(self.client, name)(*args, **kwargs) for name, args, kwargs in self.ops]
        self.ops = []
        return results


def make_product(store, product_id, name, price, stock, active=True):
    return store.save_product(Product(
        id=product_id,
        name=name,
        price=Decimal(price),
        stock=stock,
        active=active,
        created_at=START,
        updated_at=START,
    ))


def token_for(user_id: str, role: str = "customer") -> str:
    return jwt.encode(
        {"sub": user_id, "role": role, "type": "access"},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def catalog(store):
    """Two active products and one retired one."""
    return {
        "widget": make_product(store, "widget", "Widget", "10.00", 10),
        "gadget": make_product(store, "gadget", "Gadget", "25.50", 5),
        "retired": make_product(store, "retired", "Retired Thing", "5.00", 100, active=False),
    }


@pytest.fixture
def services(store, clock, catalog):
    return build_services(store, clock)


@pytest.fixture
def events():
    return []


@pytest.fixture
def publishing_services(store, clock, catalog, events):
    return build_services(store, clock, publish=lambda key, value: events.append((key, value)))


@pytest.fixture
def fill_cart(services):
    def _fill(user_id, *lines):
        for product_id, quantity in lines:
            services.carts.add_item(user_id, product_id, quantity)
    return _fill


@pytest.fixture
def place_orders(services, fill_cart):
    """Place ``n`` plain orders of one widget each for ``user_id``."""
    def _place(user_id, n):
        orders = []
        for _ in range(n):
            fill_cart(user_id, ("widget", 1))
            orders.append(services.checkout.checkout(user_id).order)
        return orders
    return _place


@pytest.fixture
def api_client(services):
    from storefront.main import app

    app.state.services = services
    return TestClient(app)


@pytest.fixture
def auth():
    def _headers(user_id="user-1", role="customer"):
        return {"Authorization": f"Bearer {token_for(user_id, role)}"}
    return _headers
