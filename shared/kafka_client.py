"""
kafka_client.py - Kafka Producer and Consumer Client Wrappers

PURPOSE:
    Shared Kafka plumbing for the storefront services: a producer that
    publishes pydantic events as JSON, and a polling consumer that turns
    messages back into typed events and isolates handler failures.

CLASSES:
    1. BaseKafkaProducer: Publishes events to Kafka topics
       - JSON serialization of pydantic events (or plain dicts)
       - Keyed by cart_id when the event has one, so a cart's events stay
         on one partition and arrive in order
       - acks=all, 3 retries, snappy compression
       - Flushes on every publish so callers see broker failures

    2. BaseKafkaConsumer: Consumes events from Kafka topics
       - Event type mapping to pydantic classes (shared.events.EVENT_TYPE_MAP)
       - Skips event_ids it has already handled
       - Retries a failing handler with backoff, then Dead Letter Queue

USAGE:
    Producer:
        producer = BaseKafkaProducer("localhost:9092", "cart-producer")
        producer.publish("cart.item_added", event)
        producer.flush()

    Consumer:
        consumer = BaseKafkaConsumer(
            "localhost:9092",
            group_id="order-service-group",
            topics=["cart.checkout_initiated"],
        )
        consumer.consume(handle_event)   # blocks until stop()
        consumer.close()

DEAD LETTER QUEUE (DLQ) HANDLING:
    1. Handler is called for the deserialized event
    2. On error, retry after 1s, then 2s (3 attempts in total)
    3. When all attempts fail a DLQEvent is published to "dlq.events"
       carrying the original topic, event type, error and payload,
       and the event is marked processed so it is not replayed in a loop
"""

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from confluent_kafka import Consumer, Producer
from confluent_kafka.error import KafkaError

from shared.events import EVENT_TYPE_MAP, BaseEvent, DLQEvent

logger = logging.getLogger(__name__)

DLQ_TOPIC = "dlq.events"

EventHandler = Callable[[BaseEvent], None]


def _encode(event: Union[BaseEvent, dict]) -> Tuple[str, Dict[str, Any]]:
    """JSON payload plus the log context of an event."""
    if isinstance(event, dict):
        payload = json.dumps(event, default=str)
        fields = event
    else:
        payload = event.model_dump_json()
        fields = event.model_dump(include={"event_type", "event_id", "correlation_id", "cart_id"})
    context = {name: fields.get(name, "unknown") for name in ("event_type", "event_id", "correlation_id")}
    if fields.get("cart_id"):
        context["cart_id"] = fields["cart_id"]
    return payload, context


class BaseKafkaProducer:
    """JSON event producer with delivery reporting."""

    def __init__(self, bootstrap_servers: str, client_id: str = "producer"):
        """
        Initialize Kafka producer.

        Args:
            bootstrap_servers: Comma-separated Kafka broker addresses
            client_id: Unique identifier for this producer instance
        """
        self.config = {
            "bootstrap.servers": bootstrap_servers,
            "client.id": client_id,
            "acks": "all",
            "retries": 3,
            "compression.type": "snappy",
        }
        self.producer = Producer(self.config)

    def _delivery_report(self, err: Optional[KafkaError], msg) -> None:
        if err is not None:
            logger.error(f"Message delivery failed: {err}")
            return
        logger.debug(f"Delivered to {msg.topic()} [{msg.partition()}] at offset {msg.offset()}")

    def publish(self, topic: str, event: Union[BaseEvent, dict], key: Optional[str] = None) -> None:
        """Publish an event and wait for the broker. Errors are logged and re-raised."""
        payload, context = _encode(event)
        key = key or context.get("cart_id")
        try:
            self.producer.produce(
                topic=topic,
                key=key.encode("utf-8") if key else None,
                value=payload.encode("utf-8"),
                callback=self._delivery_report,
            )
            self.producer.flush()
        except Exception as e:
            logger.error(f"Error publishing event to {topic}: {e}", extra=context)
            raise
        logger.info(f"Published event to {topic}", extra=context)

    def flush(self) -> None:
        self.producer.flush()


class BaseKafkaConsumer:
    """Polling consumer with retry and DLQ handling."""

    MAX_RETRIES = 3
    RETRY_DELAYS = [1, 2, 4]

    def __init__(self, bootstrap_servers: str, group_id: str, topics: List[str]):
        self.config = {
            "bootstrap.servers": bootstrap_servers,
            "group.id": group_id,
            "auto.offset.reset": "earliest",
            "enable.auto.commit": True,
            "session.timeout.ms": 30000,
        }
        self.consumer = Consumer(self.config)
        self.topics = topics
        self.consumer.subscribe(topics)
        self.processed_events: Set[str] = set()
        self.producer = BaseKafkaProducer(bootstrap_servers, client_id=f"{group_id}-dlq-producer")
        self._running = False

    def consume(self, handler_fn: EventHandler, timeout: float = 1.0) -> None:
        """Poll and dispatch until stop() is called."""
        self._running = True
        while self._running:
            msg = self.consumer.poll(timeout)
            if msg is None:
                continue
            if msg.error():
                logger.error(f"Consumer error: {msg.error()}")
                continue

            try:
                self._handle_message(msg.topic(), msg.value(), handler_fn)
            except json.JSONDecodeError as e:
                logger.error(f"Failed to deserialize message from {msg.topic()}: {e}")
            except Exception as e:
                logger.error(f"Unexpected error in consumer: {e}")

    def _handle_message(self, topic: str, raw: bytes, handler_fn: EventHandler) -> None:
        event_data = json.loads(raw.decode("utf-8"))
        event_type = event_data.get("event_type")
        event_id = event_data.get("event_id")
        context = {"event_id": event_id, "event_type": event_type, "correlation_id": event_data.get("correlation_id")}

        if event_id in self.processed_events:
            logger.info(f"Event {event_id} already processed, skipping", extra=context)
            return

        # Raises ValidationError for malformed payloads
        event = EVENT_TYPE_MAP.get(event_type, BaseEvent).model_validate(event_data)

        for attempt in range(1, self.MAX_RETRIES + 1):
            try:
                handler_fn(event)
            except Exception as e:
                if attempt < self.MAX_RETRIES:
                    wait_time = self.RETRY_DELAYS[attempt - 1]
                    logger.warning(
                        f"Error processing event (attempt {attempt}/{self.MAX_RETRIES}): {e}. Retrying in {wait_time}s...",
                        extra=context,
                    )
                    time.sleep(wait_time)
                    continue
                logger.error(f"Event failed after {self.MAX_RETRIES} attempts: {e}. Sending to DLQ.", extra=context)
                self._send_to_dlq(topic, event, event_data, e)
            else:
                logger.info("Event processed successfully", extra=context)
            self.processed_events.add(event_id)
            return

    def _send_to_dlq(self, topic: str, event: BaseEvent, payload: Dict[str, Any], error: Exception) -> None:
        self.producer.publish(
            DLQ_TOPIC,
            DLQEvent(
                correlation_id=event.correlation_id,
                original_topic=topic,
                original_event_type=event.event_type or "unknown",
                error_reason=str(error),
                retry_count=self.MAX_RETRIES,
                payload=payload,
            ),
        )

    def stop(self) -> None:
        """Ask the poll loop to exit after the current message."""
        self._running = False

    def close(self) -> None:
        self.stop()
        self.consumer.close()
