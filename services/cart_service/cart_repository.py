"""
Cart Repository Module

Redis persistence for cart sessions. Each browser session owns one key holding
the serialized array of cart lines; the cart engine is rebuilt from it once
per request and written back after every mutating operation.

Data Format (Redis):
    Key: "cart:{cart_id}"
    Value: '[
        {"cart_item_id": "…", "product_id": "P1", "name_en": "Combat Boots",
         "name_ka": "…", "unit_price": 50.0, "currency": "GEL", "image": null,
         "quantity": 2, "selected_size": "43", "stock_at_add_time": 10,
         "min_order_quantity": 1}
    ]'

TTL Management:
    - Every write resets the TTL (CART_TTL seconds, 24 hours by default)
    - An emptied cart deletes its key
    - Two tabs writing the same session: last writer wins, no merge

Pending checkout:
    Key: "checkout:{cart_id}" = correlation id of the handoff, 15 minute TTL.
    Set when the cart is handed to the order service and removed when
    order.created (cart cleared) or order.failed (cart kept) comes back.

Example Usage:
    ```python
    redis_client = redis.Redis(host="redis", port=6379, decode_responses=True)
    repo = CartRepository(redis_client, minimum_order_value=200)

    engine = repo.load("session-123")
    engine.add_item(item)
    repo.save("session-123", engine)
    ```
"""

import json
import logging
from typing import Optional

import redis
from pydantic import ValidationError

from services.cart_service.cart_engine import GLOBAL_MINIMUM_ORDER_VALUE, CartEngine

logger = logging.getLogger(__name__)


class CartRepository:
    """Repository for cart sessions stored in Redis."""

    CART_KEY_PREFIX = "cart:"
    CART_TTL = 86400  # 24 hours
    PENDING_CHECKOUT_PREFIX = "checkout:"
    PENDING_CHECKOUT_TTL = 900  # Unlocks the cart if no order outcome ever arrives

    def __init__(
        self,
        redis_client: redis.Redis,
        minimum_order_value: float = GLOBAL_MINIMUM_ORDER_VALUE,
        ttl_seconds: Optional[int] = None,
    ):
        """Initialize cart repository."""
        self.redis = redis_client
        self.minimum_order_value = minimum_order_value
        self.ttl_seconds = ttl_seconds or self.CART_TTL

    def _key(self, cart_id: str) -> str:
        return f"{self.CART_KEY_PREFIX}{cart_id}"

    def load(self, cart_id: str) -> CartEngine:
        """Rebuild the cart engine for a session. Missing or corrupted data gives an empty cart."""
        cart_key = self._key(cart_id)
        cart_json = self.redis.get(cart_key)

        if cart_json is None:
            return CartEngine(minimum_order_value=self.minimum_order_value)

        try:
            lines = json.loads(cart_json)
            if not isinstance(lines, list):
                raise ValueError("persisted cart is not a list of lines")
            return CartEngine.from_lines(lines, minimum_order_value=self.minimum_order_value)
        except (ValueError, TypeError, ValidationError) as e:
            # json.JSONDecodeError is a ValueError
            logger.error(f"Corrupted cart data for {cart_id}, discarding: {e}", extra={"cart_id": cart_id})
            self.redis.delete(cart_key)
            return CartEngine(minimum_order_value=self.minimum_order_value)

    def save(self, cart_id: str, engine: CartEngine) -> None:
        """Persist the cart after a mutation, refreshing its TTL."""
        cart_key = self._key(cart_id)

        if engine.is_empty:
            self.redis.delete(cart_key)
            logger.info(f"Cart {cart_id} is empty, key removed", extra={"cart_id": cart_id})
            return

        self.redis.set(cart_key, json.dumps(engine.to_lines(), ensure_ascii=False), ex=self.ttl_seconds)
        logger.info(f"Saved cart {cart_id} with {len(engine.lines)} lines", extra={"cart_id": cart_id})

    def clear(self, cart_id: str) -> None:
        """Drop the persisted snapshot."""
        self.redis.delete(self._key(cart_id))
        logger.info(f"Cleared cart {cart_id}", extra={"cart_id": cart_id})

    # ------------------------------------------------------------------
    # Pending checkout
    # ------------------------------------------------------------------

    def get_pending_checkout(self, cart_id: str) -> Optional[str]:
        """Correlation id of a handoff still waiting for its order, if any."""
        return self.redis.get(f"{self.PENDING_CHECKOUT_PREFIX}{cart_id}")

    def set_pending_checkout(self, cart_id: str, correlation_id: str) -> None:
        self.redis.set(f"{self.PENDING_CHECKOUT_PREFIX}{cart_id}", correlation_id, ex=self.PENDING_CHECKOUT_TTL)

    def clear_pending_checkout(self, cart_id: str) -> None:
        self.redis.delete(f"{self.PENDING_CHECKOUT_PREFIX}{cart_id}")
