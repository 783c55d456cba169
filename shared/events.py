"""
events.py - Kafka Event Schema Definitions

PURPOSE:
    Defines all event schemas exchanged between the storefront services.
    Uses Pydantic for data validation and serialization.

EVENT CATEGORIES:
    1. Cart Events: Shopping cart operations
       - cart.item_added
       - cart.item_updated
       - cart.item_removed
       - cart.cleared
       - cart.checkout_initiated

    2. Order Events: Order lifecycle
       - order.created
       - order.failed

    3. Catalog Events: Admin product maintenance
       - catalog.products_imported

    4. System Events: Dead Letter Queue
       - dlq.events (failed message processing)

COMMON FIELDS (BaseEvent):
    - event_id: Unique identifier (UUID)
    - event_type: Event category and action
    - timestamp: Store-timezone timestamp of event creation
    - correlation_id: Links related events (e.g. a checkout and its order)

SERIALIZATION:
    Serializing to JSON:
        json_data = event.model_dump_json()

    Deserializing from JSON (from dict):
        event = OrderCreatedEvent.model_validate(json.loads(json_string))
"""

from datetime import datetime
from zoneinfo import ZoneInfo
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

STORE_TIMEZONE = ZoneInfo("Asia/Tbilisi")


class BaseEvent(BaseModel):
    """
    Base event model for all Kafka events.

    All events inherit from this class and include:
    - Unique event ID
    - Event type identifier
    - Store timezone-aware timestamp
    - Correlation ID for tracing a checkout through the services
    """

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(STORE_TIMEZONE))
    correlation_id: str


# ============================================================================
# CART EVENTS - Shopping cart operations
# ============================================================================

class CartSnapshotEvent(BaseEvent):
    """
    Cart mutation event carrying the whole cart as it is after the change.
    Consumers: Notification Service (keeps the abandoned cart snapshot current)
    """

    cart_id: str
    user_id: Optional[str] = None  # Known only for signed-in shoppers
    user_email: Optional[str] = None
    cart_items: List[Dict[str, Any]] = []
    cart_total: float = 0.0
    currency: str = "GEL"


class CartItemAddedEvent(CartSnapshotEvent):
    """
    Event published when a line is added to (or incremented in) a cart.
    Triggers: Cart Service on add_item
    """

    event_type: str = "cart.item_added"
    product_id: str
    cart_item_id: str
    quantity: int  # Quantity actually applied after clamping
    unit_price: float


class CartItemUpdatedEvent(CartSnapshotEvent):
    """
    Event published when a line's quantity is set and the line stays.
    Triggers: Cart Service on update_quantity
    """

    event_type: str = "cart.item_updated"
    product_id: str
    cart_item_id: str
    quantity: int


class CartItemRemovedEvent(CartSnapshotEvent):
    """
    Event published when a line leaves the cart.
    Triggers: Cart Service on remove, or update below the minimum order quantity
    """

    event_type: str = "cart.item_removed"
    cart_item_id: str
    product_id: str


class CartClearedEvent(CartSnapshotEvent):
    """
    Event published when the shopper empties the cart.
    Triggers: Cart Service on clear_cart
    """

    event_type: str = "cart.cleared"


class CartCheckoutInitiatedEvent(BaseEvent):
    """
    Event published when checkout is handed off from the cart.
    Triggers: Cart Service when a non-empty cart meets the minimum order value
    Consumers: Order Service (creates order), Notification Service (marks
    abandoned cart recovered)
    """

    event_type: str = "cart.checkout_initiated"
    cart_id: str
    user_id: Optional[str] = None
    items: List[Dict[str, Any]]
    total_amount: float
    shipping: Dict[str, Any]
    coupon_code: Optional[str] = None
    discount_amount: float = 0.0


# ============================================================================
# ORDER EVENTS - Order lifecycle
# ============================================================================

class OrderCreatedEvent(BaseEvent):
    """
    Event published when an order has been written.
    Triggers: Order Service after a successful checkout
    Consumers: Cart Service (clears the cart the order came from)
    """

    event_type: str = "order.created"
    order_id: str
    cart_id: Optional[str] = None  # None for direct HTTP checkout
    user_id: Optional[str] = None
    items: List[Dict[str, Any]]
    total_amount: float
    currency: str = "GEL"


class OrderFailedEvent(BaseEvent):
    """
    Event published when checkout could not produce an order.
    Triggers: Order Service when live stock or product checks fail
    Consumers: Cart Service (logs it; the cart was never cleared)
    """

    event_type: str = "order.failed"
    cart_id: Optional[str] = None
    user_id: Optional[str] = None
    reason: str


# ============================================================================
# CATALOG EVENTS - Admin product maintenance
# ============================================================================

class ProductsImportedEvent(BaseEvent):
    """
    Event published after a CSV bulk import finished.
    Triggers: Catalog Service bulk import endpoint
    """

    event_type: str = "catalog.products_imported"
    success: int
    failed: int


# ============================================================================
# DLQ EVENTS - Dead Letter Queue (failed message processing)
# ============================================================================

class DLQEvent(BaseEvent):
    """
    Event published when message processing fails after retries.
    Triggers: Any consumer that exhausts its retry attempts
    """

    event_type: str = "dlq.events"
    original_topic: str
    original_event_type: str
    error_reason: str
    retry_count: int
    payload: Dict[str, Any]


# Event mapping for deserialization
EVENT_TYPE_MAP = {
    "cart.item_added": CartItemAddedEvent,
    "cart.item_updated": CartItemUpdatedEvent,
    "cart.item_removed": CartItemRemovedEvent,
    "cart.cleared": CartClearedEvent,
    "cart.checkout_initiated": CartCheckoutInitiatedEvent,
    "order.created": OrderCreatedEvent,
    "order.failed": OrderFailedEvent,
    "catalog.products_imported": ProductsImportedEvent,
    "dlq.events": DLQEvent,
}

ALL_TOPICS = list(EVENT_TYPE_MAP)
