
import json
from datetime import datetime
from typing import Dict, Optional

import structlog
from redis import Redis, RedisError

from storefront.core.config import settings
from storefront.errors import StorageFailure
from storefront.models import Cart, CartItem

log = structlog.get_logger(__name__)

def get_client() -> Redis:
    return Redis.from_url(settings.REDIS_URL, decode_responses=True)

def cart_key(user_id: str) -> str:
    return f"cart:{user_id}"

def _encode(item: CartItem) -> str:
    return json.dumps({
        "product_id": item.product_id,
        "quantity": item.quantity,
        "added_at": item.added_at.isoformat(),
    })

def _decode(raw: str) -> CartItem:
    data = json.loads(raw)
    return CartItem(
        product_id=data["product_id"],
        quantity=int(data["quantity"]),
        added_at=datetime.fromisoformat(data["added_at"]),
    )

class RedisCartStore:
    """Carts as Redis hashes: ``cart:{user_id}`` -> {product_id: item_json}."""

    def __init__(self, client: Optional[Redis] = None):
        self.client = client or get_client()

    def get(self, user_id: str) -> Optional[Cart]:
        try:
            raw: Dict[str, str] = self.client.hgetall(cart_key(user_id))
        except RedisError as e:
            log.error("storage.failure", operation="cart.get", error=str(e))
            raise StorageFailure("cart.get", e) from e
        if not raw:
            return None
        items = []
        for pid, val in raw.items():
            try:
                items.append(_decode(val))
            except (ValueError, KeyError):
                log.warning("cart.item_unreadable", user_id=user_id, product_id=pid)
        # hash order is not guaranteed; insertion order is recovered from added_at
        items.sort(key=lambda i: i.added_at)
        return Cart(user_id=user_id, items=tuple(items))

    def put(self, cart: Cart) -> Cart:
        key = cart_key(cart.user_id)
        try:
            pipe = self.client.pipeline()
            pipe.delete(key)
            if cart.items:
                pipe.hset(key, mapping={i.product_id: _encode(i) for i in cart.items})
            pipe.execute()
        except RedisError as e:
            log.error("storage.failure", operation="cart.put", error=str(e))
            raise StorageFailure("cart.put", e) from e
        return cart

    def delete(self, user_id: str) -> bool:
        try:
            return bool(self.client.delete(cart_key(user_id)))
        except RedisError as e:
            log.error("storage.failure", operation="cart.delete", error=str(e))
            raise StorageFailure("cart.delete", e) from e
