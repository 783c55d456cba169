import json
import logging

import pytest

from shared import kafka_client
from shared.admin import is_admin_email
from shared.events import CartItemRemovedEvent
from shared.logging_config import JsonFormatter, ServiceFilter


class StubConfluentConsumer:
    def __init__(self, config):
        self.config = config

    def subscribe(self, topics):
        self.topics = topics

    def close(self):
        pass


class StubConfluentProducer:
    def __init__(self, config):
        self.messages = []

    def produce(self, topic, value, key=None, callback=None):
        self.messages.append((topic, key, json.loads(value)))

    def flush(self):
        pass


@pytest.fixture
def consumer(monkeypatch):
    monkeypatch.setattr(kafka_client, "Consumer", StubConfluentConsumer)
    monkeypatch.setattr(kafka_client, "Producer", StubConfluentProducer)
    monkeypatch.setattr(kafka_client.time, "sleep", lambda seconds: None)
    return kafka_client.BaseKafkaConsumer("localhost:9092", group_id="test-group", topics=["cart.item_removed"])


def removed_event_bytes():
    event = CartItemRemovedEvent(cart_id="s1", cart_item_id="line-1", product_id="P1", correlation_id="corr")
    return event.model_dump_json().encode("utf-8")


def test_handler_receives_typed_event_once(consumer):
    seen = []
    raw = removed_event_bytes()

    consumer._handle_message("cart.item_removed", raw, seen.append)
    consumer._handle_message("cart.item_removed", raw, seen.append)

    assert len(seen) == 1
    assert isinstance(seen[0], CartItemRemovedEvent)


def test_failing_handler_goes_to_dlq_after_retries(consumer):
    calls = []

    def handler(event):
        calls.append(event)
        raise RuntimeError("database down")

    consumer._handle_message("cart.item_removed", removed_event_bytes(), handler)

    assert len(calls) == 3
    ((topic, key, payload),) = consumer.producer.producer.messages
    assert topic == "dlq.events"
    assert payload["original_topic"] == "cart.item_removed"
    assert payload["error_reason"] == "database down"
    assert payload["retry_count"] == 3


def test_json_log_lines_carry_service_and_context():
    record = logging.LogRecord("services.cart", logging.INFO, __file__, 1, "Saved cart", None, None)
    record.cart_id = "s1"
    ServiceFilter("cart-service").filter(record)

    line = json.loads(JsonFormatter().format(record))

    assert line["service_name"] == "cart-service"
    assert line["cart_id"] == "s1"
    assert line["message"] == "Saved cart"
    assert line["timestamp"].endswith("+04:00")


def test_admin_email_check():
    assert is_admin_email(" Admin@Gear-Store.ge ")
    assert not is_admin_email(None)
    assert not is_admin_email("shopper@example.ge")


def test_cart_events_are_keyed_by_cart(monkeypatch):
    monkeypatch.setattr(kafka_client, "Producer", StubConfluentProducer)
    producer = kafka_client.BaseKafkaProducer("localhost:9092", "cart-producer")

    producer.publish("cart.item_removed", CartItemRemovedEvent(
        cart_id="s1", cart_item_id="line-1", product_id="P1", correlation_id="corr"
    ))
    producer.publish("catalog.products_imported", {"event_type": "catalog.products_imported", "success": 1})

    (first_topic, first_key, first), (_, second_key, second) = producer.producer.messages
    assert first_key == b"s1"
    assert first["cart_item_id"] == "line-1"
    assert second_key is None
    assert second["success"] == 1


def test_service_name_follows_logger_package():
    service_filter = ServiceFilter("cart-service", package="services.cart_service")
    service_filter.register("services.order_service", "order-service")

    def tagged(logger_name):
        record = logging.LogRecord(logger_name, logging.INFO, __file__, 1, "msg", None, None)
        service_filter.filter(record)
        return record.service_name

    assert tagged("services.order_service.checkout") == "order-service"
    assert tagged("services.cart_service.main") == "cart-service"
    assert tagged("services.order_service_extra") == "cart-service"
    assert tagged("shared.kafka_client") == "cart-service"


def test_services_in_one_process_keep_their_names():
    import services.cart_service.main  # noqa: F401
    import services.order_service.main  # noqa: F401

    (service_filter,) = [
        existing
        for handler in logging.getLogger().handlers
        if isinstance(handler.formatter, JsonFormatter)
        for existing in handler.filters
        if isinstance(existing, ServiceFilter)
    ]

    assert service_filter.service_for("services.order_service.checkout") == "order-service"
    assert service_filter.service_for("services.cart_service.cart_repository") == "cart-service"
