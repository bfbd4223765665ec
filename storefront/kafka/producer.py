
from kafka import KafkaProducer
from kafka.errors import KafkaError
import json
import structlog
from storefront.core.config import settings

log = structlog.get_logger(__name__)

_producer = None

def get_producer():
    global _producer
    if _producer is None:
        _producer = KafkaProducer(
            bootstrap_servers=[settings.KAFKA_BOOTSTRAP],
            value_serializer=lambda v: json.dumps(v).encode("utf-8"),
            key_serializer=lambda v: (v.encode("utf-8") if isinstance(v, str) else v),
            linger_ms=5,
            retries=3,
        )
    return _producer

def send(topic: str, key: str, value: dict):
    p = get_producer()
    p.send(topic, key=key, value=value)
    p.flush(5)

def publish_order_event(key: str, value: dict):
    # Called after the order change has committed; a broker outage must not undo it.
    try:
        send(settings.TOPIC_ORDER_EVENTS, key, value)
    except KafkaError as e:
        log.error("event.publish_failed", topic=settings.TOPIC_ORDER_EVENTS, key=key,
                  event=value.get("type"), error=str(e))

def close():
    global _producer
    if _producer is not None:
        _producer.close(timeout=5)
        _producer = None
