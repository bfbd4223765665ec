"""Tests for order event publishing."""

from decimal import Decimal

from kafka.errors import KafkaError

from storefront.kafka import producer
from storefront.models import Order, OrderItem, OrderStatus
from storefront.services.events import order_event

from conftest import START


def sample_order():
    item = OrderItem("widget", "Widget", Decimal("10.00"), 2, Decimal("20.00"))
    return Order(id="o-1", user_id="user-1", items=(item,), subtotal=Decimal("20.00"),
                 discount_amount=Decimal("2.00"), total=Decimal("18.00"),
                 status=OrderStatus.PENDING, discount_code="SPECIAL3ORDER_user-1",
                 created_at=START, updated_at=START)


class FakeProducer:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, topic, key=None, value=None):
        if self.fail:
            raise KafkaError("broker down")
        self.sent.append((topic, key, value))

    def flush(self, timeout=None):
        pass


class TestOrderEvent:
    def test_payload(self):
        payload = order_event("order.created", sample_order())
        assert payload["type"] == "order.created"
        assert payload["total"] == "18.00"
        assert payload["items"] == [{"product_id": "widget", "quantity": 2, "unit_price": "10.00"}]

    def test_extra_fields(self):
        payload = order_event("order.status_changed", sample_order(), previous_status="PENDING")
        assert payload["previous_status"] == "PENDING"


class TestProducer:
    def test_publishes_to_order_topic(self, monkeypatch):
        fake = FakeProducer()
        monkeypatch.setattr(producer, "get_producer", lambda: fake)
        producer.publish_order_event("o-1", {"type": "order.created"})
        assert fake.sent == [(producer.settings.TOPIC_ORDER_EVENTS, "o-1", {"type": "order.created"})]

    def test_broker_failure_is_logged_not_raised(self, monkeypatch):
        monkeypatch.setattr(producer, "get_producer", lambda: FakeProducer(fail=True))
        producer.publish_order_event("o-1", {"type": "order.created"})
