from typing import Any, Callable, Optional

from storefront.models import Order

# (key, value) -> None; the transport picks the topic
Publisher = Callable[[str, dict], None]


def order_event(event_type: str, order: Order, **extra: Any) -> dict:
    return {
        "type": event_type,
        "order_id": order.id,
        "user_id": order.user_id,
        "status": order.status.value,
        "subtotal": str(order.subtotal),
        "discount_amount": str(order.discount_amount),
        "discount_code": order.discount_code,
        "total": str(order.total),
        "items": [
            {"product_id": it.product_id, "quantity": it.quantity, "unit_price": str(it.unit_price)}
            for it in order.items
        ],
        **extra,
    }


def emit(publish: Optional[Publisher], event_type: str, order: Order, **extra: Any) -> None:
    if publish is not None:
        publish(order.id, order_event(event_type, order, **extra))
