"""
topic_initializer.py - Kafka Topic Auto-Creation Utility

PURPOSE:
    Makes sure every storefront topic (shared.events.ALL_TOPICS) exists
    before a service starts producing or consuming.

CONFIGURATION (environment):
    - KAFKA_TOPIC_PARTITIONS: partitions per topic (default 3)
    - KAFKA_REPLICATION_FACTOR: replicas per partition (default 1, the local
      single-broker setup; raise it on a real cluster)

Brokers are often still booting when the services start, so the admin
request is retried every 3 seconds, 10 times at most. Topics that already
exist are not an error.
"""

import logging
import os
import time
from typing import Dict, Iterable, Optional

from confluent_kafka import KafkaException
from confluent_kafka.admin import AdminClient, NewTopic

from shared.events import ALL_TOPICS

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 10
RETRY_DELAY_SECONDS = 3


def _already_exists(error: Exception) -> bool:
    text = str(error)
    return "TOPIC_ALREADY_EXISTS" in text or "already exists" in text


def _report(futures: Dict[str, object]) -> None:
    for topic, future in futures.items():
        try:
            future.result(timeout=10)
            logger.info(f"Topic '{topic}' created")
        except KafkaException as e:
            if _already_exists(e):
                logger.info(f"Topic '{topic}' already exists")
            else:
                logger.warning(f"Could not create topic '{topic}': {e}")


def create_topics(
    bootstrap_servers: str,
    topics: Iterable[str] = ALL_TOPICS,
    num_partitions: Optional[int] = None,
    replication_factor: Optional[int] = None,
) -> None:
    """Create the storefront topics, retrying while the brokers come up."""
    num_partitions = num_partitions or int(os.getenv("KAFKA_TOPIC_PARTITIONS", "3"))
    replication_factor = replication_factor or int(os.getenv("KAFKA_REPLICATION_FACTOR", "1"))

    admin_client = AdminClient({"bootstrap.servers": bootstrap_servers})
    new_topics = [NewTopic(topic, num_partitions=num_partitions, replication_factor=replication_factor) for topic in topics]

    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            logger.info(f"Ensuring {len(new_topics)} Kafka topics exist (attempt {attempt}/{MAX_ATTEMPTS})")
            _report(admin_client.create_topics(new_topics, validate_only=False))
            return
        except KafkaException as e:
            if attempt == MAX_ATTEMPTS:
                logger.error(f"Giving up on topic creation after {MAX_ATTEMPTS} attempts: {e}")
                raise
            logger.warning(f"Topic creation failed: {e}. Retrying in {RETRY_DELAY_SECONDS}s...")
            time.sleep(RETRY_DELAY_SECONDS)
