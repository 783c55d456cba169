"""
cart_service/main.py - Shopping Cart Microservice

PURPOSE:
    Owns the shopper's cart for a browser session. The cart engine enforces
    per-line quantity bounds and the store-wide minimum order value; Redis
    keeps the cart alive across page reloads.

API ENDPOINTS:
    GET    /cart/{cart_id}                        - View cart contents and totals
    POST   /cart/{cart_id}/items                  - Add a product snapshot (merges product + size)
    PUT    /cart/{cart_id}/items/{cart_item_id}   - Set quantity (below minimum removes the line)
    DELETE /cart/{cart_id}/items/{cart_item_id}   - Remove a line
    DELETE /cart/{cart_id}                        - Clear the cart
    GET    /cart/{cart_id}/minimum                - Minimum order value status
    POST   /cart/{cart_id}/checkout               - Hand the cart to the order service
    GET    /health                                - Health check endpoint

KAFKA EVENTS PUBLISHED (every cart event carries the full cart snapshot):
    - cart.item_added: Line added or incremented
    - cart.item_updated: Line quantity set
    - cart.item_removed: Line removed directly or by a below-minimum update
    - cart.cleared: Cart emptied by the shopper
    - cart.checkout_initiated: Checkout handed off to the order service

KAFKA EVENTS CONSUMED:
    - order.created: Order placed, the cart is cleared
    - order.failed: Order rejected, the cart is kept

OPTIONAL HEADERS:
    X-User-Id / X-User-Email: set by the storefront for signed-in shoppers so the
    abandoned cart reminders know whom to write to.

TESTING COMMANDS:
    1. Add combat boots, size 43:
        curl -X POST http://localhost:8001/cart/session123/items \
          -H "Content-Type: application/json" \
          -d '{"product_id": "P1", "name_en": "Combat Boots", "unit_price": 50,
               "stock_at_add_time": 10, "selected_size": "43"}'

    2. View cart (note minimum_order.remaining):
        curl -X GET http://localhost:8001/cart/session123

    3. Set quantity of a line:
        curl -X PUT http://localhost:8001/cart/session123/items/<cart_item_id> \
          -H "Content-Type: application/json" -d '{"quantity": 4}'

    4. Checkout:
        curl -X POST http://localhost:8001/cart/session123/checkout \
          -H "Content-Type: application/json" \
          -d '{"shipping": {"address": "1 Rustaveli Ave", "city": "Tbilisi"}}'

USAGE:
    Runs on port 8001 in Docker container
"""

import logging
import os
import threading
from contextlib import asynccontextmanager
from typing import Optional, Union
from uuid import uuid4

import redis
from fastapi import Depends, FastAPI, Header, HTTPException, status
from pydantic_settings import BaseSettings

from services.cart_service.cart_engine import CartEngine
from services.cart_service.cart_repository import CartRepository
from services.cart_service.schemas import (
    AddItemRequest,
    CartChangeResponse,
    CartResponse,
    CheckoutRequest,
    HealthResponse,
    MinimumOrderResponse,
    UpdateQuantityRequest,
)
from shared.events import (
    CartCheckoutInitiatedEvent,
    CartClearedEvent,
    CartItemAddedEvent,
    CartItemRemovedEvent,
    CartItemUpdatedEvent,
    OrderCreatedEvent,
    OrderFailedEvent,
)
from shared.kafka_client import BaseKafkaConsumer, BaseKafkaProducer
from shared.logging_config import setup_logging
from shared.topic_initializer import create_topics

setup_logging("cart-service", package=__package__)
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings."""

    kafka_bootstrap_servers: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    redis_host: str = os.getenv("REDIS_HOST", "localhost")
    redis_port: int = int(os.getenv("REDIS_PORT", "6379"))
    cart_service_port: int = int(os.getenv("CART_SERVICE_PORT", "8001"))
    cart_minimum_order_value: float = float(os.getenv("CART_MINIMUM_ORDER_VALUE", "200"))
    cart_ttl_seconds: int = int(os.getenv("CART_TTL_SECONDS", "86400"))


settings = Settings()

# Global instances
redis_client: redis.Redis = None
producer: BaseKafkaProducer = None
consumer: BaseKafkaConsumer = None


def handle_order_outcome(repo: CartRepository, event: Union[OrderCreatedEvent, OrderFailedEvent]) -> None:
    """Clear the cart once its order exists; a failed order leaves the cart as it was."""
    if not event.cart_id:
        return
    context = {"cart_id": event.cart_id, "correlation_id": event.correlation_id}
    repo.clear_pending_checkout(event.cart_id)
    if event.event_type == "order.created":
        repo.clear(event.cart_id)
        logger.info(f"Cart {event.cart_id} cleared, order {event.order_id} placed", extra=context)
    else:
        logger.warning(f"Order for cart {event.cart_id} failed, cart kept: {event.reason}", extra=context)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage app lifecycle."""
    global redis_client, producer, consumer

    logger.info("Starting Cart Service...")

    try:
        create_topics(settings.kafka_bootstrap_servers)
        logger.info("Kafka topics initialized")
    except Exception as e:
        logger.error(f"Failed to initialize Kafka topics: {e}")
        raise

    try:
        redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            decode_responses=True,
        )
        redis_client.ping()
        logger.info("Redis connected")
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        raise

    try:
        producer = BaseKafkaProducer(settings.kafka_bootstrap_servers, client_id="cart-producer")
        logger.info("Kafka producer initialized")
    except Exception as e:
        logger.error(f"Failed to initialize Kafka producer: {e}")
        raise

    consumer = BaseKafkaConsumer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id="cart-service-group",
        topics=["order.created", "order.failed"],
    )

    def cart_consumer():
        try:
            consumer.consume(lambda event: handle_order_outcome(get_cart_repository(), event))
        except Exception as e:
            logger.error(f"Error in cart consumer: {e}")

    consumer_thread = threading.Thread(target=cart_consumer, daemon=True)
    consumer_thread.start()
    logger.info("Cart consumer thread started")

    yield

    logger.info("Shutting down Cart Service...")
    if consumer:
        consumer.close()
    if redis_client:
        redis_client.close()
    if producer:
        producer.flush()


app = FastAPI(title="Cart Service", version="1.0.0", lifespan=lifespan)


def get_cart_repository() -> CartRepository:
    return CartRepository(
        redis_client,
        minimum_order_value=settings.cart_minimum_order_value,
        ttl_seconds=settings.cart_ttl_seconds,
    )


def get_producer() -> BaseKafkaProducer:
    return producer


def _publish_quietly(publisher: BaseKafkaProducer, topic: str, event, cart_id: str) -> None:
    """Cart edits never fail because the event bus is down."""
    try:
        publisher.publish(topic, event)
    except Exception as e:
        logger.error(f"Could not publish {topic} for cart {cart_id}: {e}", extra={"cart_id": cart_id})


def _snapshot(cart_id: str, engine: CartEngine, user_id: Optional[str], user_email: Optional[str]) -> dict:
    """Fields every cart mutation event carries: who, and the whole cart after the change."""
    return {
        "cart_id": cart_id,
        "user_id": user_id,
        "user_email": user_email,
        "cart_items": engine.snapshot(),
        "cart_total": engine.total_price,
        "correlation_id": str(uuid4()),
    }


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", service="cart-service", version="1.0.0")


@app.get("/cart/{cart_id}", response_model=CartResponse)
async def get_cart(cart_id: str, repo: CartRepository = Depends(get_cart_repository)) -> CartResponse:
    """Get the session's cart."""
    try:
        engine = repo.load(cart_id)
        return CartResponse.from_engine(cart_id, engine)
    except Exception as e:
        logger.error(f"Error getting cart: {e}", extra={"cart_id": cart_id})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.get("/cart/{cart_id}/minimum", response_model=MinimumOrderResponse)
async def get_minimum_status(cart_id: str, repo: CartRepository = Depends(get_cart_repository)):
    """Whether the cart has reached the store-wide minimum order value."""
    engine = repo.load(cart_id)
    return MinimumOrderResponse(
        met=engine.is_global_minimum_met(),
        remaining=engine.get_global_minimum_remaining(),
        minimum=engine.get_global_minimum(),
    )


@app.post("/cart/{cart_id}/items", response_model=CartChangeResponse, status_code=status.HTTP_201_CREATED)
async def add_item(
    cart_id: str,
    item: AddItemRequest,
    repo: CartRepository = Depends(get_cart_repository),
    publisher: BaseKafkaProducer = Depends(get_producer),
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
) -> CartChangeResponse:
    """Add a product snapshot to the cart and publish cart.item_added."""
    try:
        engine = repo.load(cart_id)
        change = engine.add_item(item)

        if change.applied == 0:
            # Stock below the minimum order quantity, nothing was added
            return CartChangeResponse(
                message=f"Product {item.product_id} is not available in the minimum order quantity",
                change=change,
                cart=CartResponse.from_engine(cart_id, engine),
            )

        repo.save(cart_id, engine)

        event = CartItemAddedEvent(
            product_id=item.product_id,
            cart_item_id=change.cart_item_id,
            quantity=change.applied,
            unit_price=item.unit_price,
            currency=item.currency,
            **_snapshot(cart_id, engine, x_user_id, x_user_email),
        )
        _publish_quietly(publisher, "cart.item_added", event, cart_id)

        message = f"Item {item.product_id} added to cart"
        if change.clamped:
            message = f"Item {item.product_id} quantity adjusted to {change.applied}"
        return CartChangeResponse(message=message, change=change, cart=CartResponse.from_engine(cart_id, engine))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error adding item to cart: {e}", extra={"cart_id": cart_id})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.put("/cart/{cart_id}/items/{cart_item_id}", response_model=CartChangeResponse)
async def update_item_quantity(
    cart_id: str,
    cart_item_id: str,
    request: UpdateQuantityRequest,
    repo: CartRepository = Depends(get_cart_repository),
    publisher: BaseKafkaProducer = Depends(get_producer),
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
) -> CartChangeResponse:
    """Set a line's quantity. Below the line's minimum order quantity removes it."""
    try:
        engine = repo.load(cart_id)
        line = engine.get_line(cart_item_id)
        if line is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Item {cart_item_id} not found in cart",
            )

        change = engine.update_quantity(cart_item_id, request.quantity)
        repo.save(cart_id, engine)

        snapshot = _snapshot(cart_id, engine, x_user_id, x_user_email)
        if change.removed:
            event = CartItemRemovedEvent(cart_item_id=cart_item_id, product_id=line.product_id, **snapshot)
            _publish_quietly(publisher, "cart.item_removed", event, cart_id)
            message = f"Item {cart_item_id} removed from cart"
        else:
            event = CartItemUpdatedEvent(
                cart_item_id=cart_item_id,
                product_id=line.product_id,
                quantity=change.applied,
                **snapshot,
            )
            _publish_quietly(publisher, "cart.item_updated", event, cart_id)
            message = f"Item {cart_item_id} quantity updated to {change.applied}"

        return CartChangeResponse(message=message, change=change, cart=CartResponse.from_engine(cart_id, engine))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating item quantity: {e}", extra={"cart_id": cart_id})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.delete("/cart/{cart_id}/items/{cart_item_id}", response_model=CartChangeResponse)
async def remove_item(
    cart_id: str,
    cart_item_id: str,
    repo: CartRepository = Depends(get_cart_repository),
    publisher: BaseKafkaProducer = Depends(get_producer),
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
) -> CartChangeResponse:
    """Remove a line from the cart and publish cart.item_removed."""
    try:
        engine = repo.load(cart_id)
        line = engine.get_line(cart_item_id)
        if line is None or not engine.remove_item(cart_item_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Item {cart_item_id} not found in cart",
            )
        repo.save(cart_id, engine)

        event = CartItemRemovedEvent(
            cart_item_id=cart_item_id,
            product_id=line.product_id,
            **_snapshot(cart_id, engine, x_user_id, x_user_email),
        )
        _publish_quietly(publisher, "cart.item_removed", event, cart_id)

        return CartChangeResponse(
            message=f"Item {cart_item_id} removed from cart",
            cart=CartResponse.from_engine(cart_id, engine),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error removing item from cart: {e}", extra={"cart_id": cart_id})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.delete("/cart/{cart_id}", response_model=CartResponse)
async def clear_cart(
    cart_id: str,
    repo: CartRepository = Depends(get_cart_repository),
    publisher: BaseKafkaProducer = Depends(get_producer),
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
) -> CartResponse:
    """Empty the cart and publish cart.cleared."""
    engine = repo.load(cart_id)
    engine.clear_cart()
    repo.clear(cart_id)
    event = CartClearedEvent(**_snapshot(cart_id, engine, x_user_id, x_user_email))
    _publish_quietly(publisher, "cart.cleared", event, cart_id)
    return CartResponse.from_engine(cart_id, engine)


@app.post("/cart/{cart_id}/checkout", status_code=status.HTTP_202_ACCEPTED)
async def checkout(
    cart_id: str,
    request: CheckoutRequest,
    repo: CartRepository = Depends(get_cart_repository),
    publisher: BaseKafkaProducer = Depends(get_producer),
) -> dict:
    """Hand a non-empty cart that meets the minimum order value to the order service.

    The cart is kept until order.created comes back for it; a failed order
    leaves it untouched so the shopper can fix it and try again.
    """
    try:
        engine = repo.load(cart_id)

        if engine.is_empty:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cart is empty")

        if not engine.is_global_minimum_met():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=(
                    f"Minimum order value is {engine.get_global_minimum():.2f} GEL, "
                    f"add {engine.get_global_minimum_remaining():.2f} GEL more"
                ),
            )

        if repo.get_pending_checkout(cart_id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Checkout for this cart is already in progress",
            )

        cart = CartResponse.from_engine(cart_id, engine)
        event = CartCheckoutInitiatedEvent(
            cart_id=cart_id,
            user_id=request.user_id,
            items=engine.snapshot(),
            total_amount=engine.total_price,
            shipping=request.shipping.model_dump(),
            coupon_code=request.coupon_code,
            discount_amount=request.discount_amount,
            correlation_id=str(uuid4()),
        )
        try:
            publisher.publish("cart.checkout_initiated", event)
        except Exception as e:
            logger.error(f"Checkout handoff failed for cart {cart_id}: {e}", extra={"cart_id": cart_id})
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Checkout is temporarily unavailable, please try again",
            )

        repo.set_pending_checkout(cart_id, event.correlation_id)
        logger.info(
            f"Cart {cart_id} handed to checkout",
            extra={"cart_id": cart_id, "correlation_id": event.correlation_id},
        )

        return {
            "message": "Checkout initiated",
            "correlation_id": event.correlation_id,
            "cart": cart.model_dump(),
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error during checkout: {e}", extra={"cart_id": cart_id})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.cart_service_port)
