"""
order_service/main.py - Order and Sales Analytics Microservice

PURPOSE:
    Places orders from cart handoffs (Kafka) or direct checkout (HTTP),
    re-checking every line against live catalog stock and prices, and serves
    sales analytics for the back office and spending analytics for shoppers.

CHECKOUT WORKFLOW:
    1. Cart Service publishes cart.checkout_initiated with the cart snapshot
    2. Lines are re-validated against live stock; prices come from the catalog
    3. Order + items are written and live stock is decremented in one commit
    4. order.created is published, or order.failed with the reason

API ENDPOINTS:
    POST   /orders                         - Direct checkout
    GET    /orders/{order_id}              - Order details
    GET    /orders/user/{user_id}          - A shopper's orders, newest first
    GET    /analytics/sales?days=30        - Paid revenue summary (admin)
    GET    /analytics/realtime             - Today / 7 day / 30 day revenue (admin)
    GET    /analytics/top-products?limit=  - Best sellers (admin)
    GET    /analytics/export?days=30       - Sales CSV export (admin)
    GET    /analytics/users/{user_id}      - Shopper spending dashboard
    GET    /health                         - Health check endpoint

KAFKA EVENTS:
    CONSUMED:
        - cart.checkout_initiated
    PUBLISHED:
        - order.created
        - order.failed

USAGE:
    Runs on port 8003 in Docker container
"""

import logging
import os
import threading
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.responses import PlainTextResponse
from pydantic_settings import BaseSettings
from sqlalchemy.orm import Session

from analytics.aggregations import (
    PERIOD_MONTHS,
    orders_to_csv,
    revenue_windows,
    sales_summary,
    top_products,
    user_analytics,
)
from services.catalog_service import models as catalog_models  # noqa: F401  registers tables
from services.order_service.checkout import CheckoutError, CheckoutService, handle_checkout_initiated
from services.order_service.repository import OrderRepository
from services.order_service.schemas import (
    HealthResponse,
    OrderResponse,
    PlaceOrderRequest,
    PlaceOrderResponse,
    UserOrdersResponse,
)
from shared.admin import require_admin
from shared.database import SessionLocal, get_db, init_db, utcnow
from shared.kafka_client import BaseKafkaConsumer, BaseKafkaProducer
from shared.logging_config import setup_logging
from shared.topic_initializer import create_topics

setup_logging("order-service", package=__package__)
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings."""

    kafka_bootstrap_servers: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    order_service_port: int = int(os.getenv("ORDER_SERVICE_PORT", "8003"))


settings = Settings()

producer: BaseKafkaProducer = None
consumer: BaseKafkaConsumer = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage app lifecycle."""
    global producer, consumer

    logger.info("Starting Order Service...")

    try:
        init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    try:
        create_topics(settings.kafka_bootstrap_servers)
        logger.info("Kafka topics initialized")
    except Exception as e:
        logger.error(f"Failed to initialize Kafka topics: {e}")
        raise

    try:
        producer = BaseKafkaProducer(settings.kafka_bootstrap_servers, client_id="order-producer")
        logger.info("Kafka producer initialized")
    except Exception as e:
        logger.error(f"Failed to initialize Kafka producer: {e}")
        raise

    consumer = BaseKafkaConsumer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id="order-service-group",
        topics=["cart.checkout_initiated"],
    )

    def handle_event(event):
        """Handle incoming event based on type."""
        if event.event_type != "cart.checkout_initiated":
            return
        db = SessionLocal()
        try:
            handle_checkout_initiated(db, producer, event)
        finally:
            db.close()

    def order_event_consumer():
        try:
            consumer.consume(handle_event)
        except Exception as e:
            logger.error(f"Error in order consumer: {e}")

    consumer_thread = threading.Thread(target=order_event_consumer, daemon=True)
    consumer_thread.start()
    logger.info("Order consumer thread started")

    yield

    logger.info("Shutting down Order Service...")
    if consumer:
        consumer.close()
    if producer:
        producer.flush()


app = FastAPI(title="Order Service", version="1.0.0", lifespan=lifespan)


def get_now() -> datetime:
    return utcnow()


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", service="order-service", version="1.0.0")


# ============================================================================
# Orders
# ============================================================================

@app.post("/orders", response_model=PlaceOrderResponse, status_code=status.HTTP_201_CREATED)
async def place_order(request: PlaceOrderRequest, db: Session = Depends(get_db)) -> PlaceOrderResponse:
    """Direct checkout."""
    try:
        order = CheckoutService(db).place_order(
            items=[item.model_dump() for item in request.items],
            shipping=request.shipping.model_dump(),
            user_id=request.user_id,
            coupon_code=request.coupon_code,
            discount_amount=request.discount_amount,
        )
    except CheckoutError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return PlaceOrderResponse(
        order_id=order.id,
        total_amount=order.total_amount,
        discount_amount=order.discount_amount,
    )


@app.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, db: Session = Depends(get_db)) -> OrderResponse:
    """Get order details."""
    order = OrderRepository(db).get_order(order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return OrderResponse.model_validate(order)


@app.get("/orders/user/{user_id}", response_model=UserOrdersResponse)
async def get_user_orders(user_id: str, db: Session = Depends(get_db)) -> UserOrdersResponse:
    """Get all orders for a specific user."""
    orders = OrderRepository(db).get_orders_by_user(user_id)
    return UserOrdersResponse(
        user_id=user_id,
        orders=[OrderResponse.model_validate(order) for order in orders],
        total_orders=len(orders),
    )


# ============================================================================
# Analytics
# ============================================================================

@app.get("/analytics/sales", dependencies=[Depends(require_admin)])
async def sales_analytics(
    days: int = Query(30, ge=1, le=3650),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> dict:
    """Paid orders over the last `days` days."""
    orders = OrderRepository(db).order_rows(start=now - timedelta(days=days), paid_only=True)
    return {**sales_summary(orders), "days": days}


@app.get("/analytics/realtime", dependencies=[Depends(require_admin)])
async def realtime_analytics(db: Session = Depends(get_db), now: datetime = Depends(get_now)) -> dict:
    orders = OrderRepository(db).order_rows(start=now - timedelta(days=30), paid_only=True)
    return revenue_windows(orders, now)


@app.get("/analytics/top-products", dependencies=[Depends(require_admin)])
async def top_products_analytics(limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db)) -> dict:
    return {"products": top_products(OrderRepository(db).item_rows(), limit=limit)}


@app.get("/analytics/export", dependencies=[Depends(require_admin)])
async def export_sales(
    days: int = Query(30, ge=1, le=3650),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> PlainTextResponse:
    """Sales CSV for the last `days` days."""
    orders = OrderRepository(db).order_rows(start=now - timedelta(days=days), paid_only=True)
    return PlainTextResponse(
        orders_to_csv(orders),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=sales-analytics-{days}days.csv"},
    )


@app.get("/analytics/users/{user_id}")
async def shopper_analytics(
    user_id: str,
    period: str = "6months",
    locale: str = "en",
    member_since: Optional[datetime] = None,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> dict:
    """Spending dashboard for one shopper."""
    if period not in PERIOD_MONTHS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"period must be one of {', '.join(PERIOD_MONTHS)}",
        )
    if member_since is not None and member_since.tzinfo is not None:
        member_since = member_since.replace(tzinfo=None) - (member_since.utcoffset() or timedelta(0))

    orders = OrderRepository(db).order_rows(user_id=user_id)
    return user_analytics(orders, now, member_since=member_since, period=period, locale=locale)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.order_service_port)
