"""Kafka publishing for storefront events.

Every message is an envelope ``{"type", "source", "occurred_at", "data"}``
keyed by the entity it concerns, so consumers can route on ``type`` without
looking inside ``data``.
"""
from kafka import KafkaProducer
import json
from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.db.models import utcnow

log = get_logger("kafka")

SOURCE = "storefront"

_producer = None

def get_producer() -> KafkaProducer:
    global _producer
    if _producer is None:
        _producer = KafkaProducer(
            bootstrap_servers=[settings.KAFKA_BOOTSTRAP],
            client_id=SOURCE,
            value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
            key_serializer=lambda v: str(v).encode("utf-8"),
            acks="all",
            linger_ms=5,
            retries=3,
        )
    return _producer

def envelope(event_type: str, data: dict) -> dict:
    return {
        "type": event_type,
        "source": SOURCE,
        "occurred_at": utcnow().isoformat() + "Z",
        "data": data,
    }

def publish(topic: str, key, event: dict, timeout: float = 5.0) -> None:
    """Send one envelope and wait for the broker; raises on delivery failure."""
    future = get_producer().send(topic, key=key, value=event)
    metadata = future.get(timeout=timeout)
    log.debug("published %s to %s[%s]@%s", event.get("type"), topic, metadata.partition, metadata.offset)
