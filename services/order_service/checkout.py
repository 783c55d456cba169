"""
Checkout: turns a cart snapshot into an order.

Cart stock figures are only a snapshot from when the item was added, so
every line is checked again against live catalog stock and priced at the
live catalog price. Either the whole order is written or nothing is.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from services.catalog_service.repository import CatalogRepository
from services.order_service.models import Order
from services.order_service.repository import OrderRepository
from shared.events import EVENT_TYPE_MAP, CartCheckoutInitiatedEvent, OrderCreatedEvent, OrderFailedEvent

logger = logging.getLogger(__name__)


class CheckoutError(Exception):
    """Checkout rejected; nothing was written."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class CheckoutService:
    """Places orders against the live catalog."""

    def __init__(self, db: Session):
        self.db = db
        self.orders = OrderRepository(db)
        self.catalog = CatalogRepository(db)

    def place_order(
        self,
        items: List[Dict[str, Any]],
        shipping: Optional[Dict[str, Any]],
        user_id: Optional[str] = None,
        coupon_code: Optional[str] = None,
        discount_amount: float = 0.0,
        cart_id: Optional[str] = None,
        commit: bool = True,
    ) -> Order:
        """Validate, price and write an order, decrementing live stock.

        With commit=False the order is only flushed, so the caller can add
        more rows to the same transaction before committing.
        """
        if not items:
            raise CheckoutError("Cart is empty")
        if not shipping or not (shipping.get("address") or "").strip() or not (shipping.get("city") or "").strip():
            raise CheckoutError("Shipping information required")

        # Same product in several sizes shares one stock figure
        demand: "OrderedDict[str, int]" = OrderedDict()
        for item in items:
            product_id = item.get("product_id")
            quantity = int(item.get("quantity") or 0)
            if not product_id or quantity < 1:
                raise CheckoutError(f"Invalid quantity for product {product_id}")
            demand[product_id] = demand.get(product_id, 0) + quantity

        products = {product.id: product for product in self.catalog.get_products(list(demand))}
        for product_id, quantity in demand.items():
            product = products.get(product_id)
            if not product or not product.is_active:
                raise CheckoutError(f"Product {product_id} not found")
            if product.stock < quantity:
                raise CheckoutError(f"Insufficient stock for {product.name_en}. Available: {product.stock}")

        order_items = []
        total_amount = 0.0
        for item in items:
            product = products[item["product_id"]]
            quantity = int(item["quantity"])
            line_total = round(product.price * quantity, 2)
            total_amount += line_total
            order_items.append(
                {
                    "product_id": product.id,
                    "product_name": product.name_en,
                    "product_sku": product.sku,
                    "quantity": quantity,
                    "unit_price": product.price,
                    "total_price": line_total,
                    "selected_size": item.get("selected_size"),
                }
            )

        try:
            order = self.orders.create_order(
                user_id=user_id,
                shipping=shipping,
                items=order_items,
                total_amount=round(total_amount, 2),
                discount_amount=discount_amount or 0.0,
                coupon_code=coupon_code,
                cart_id=cart_id,
            )
            for product_id, quantity in demand.items():
                self.catalog.decrement_stock(products[product_id], quantity)
            if coupon_code and discount_amount and discount_amount > 0:
                self.orders.increment_coupon_usage(coupon_code)
            if commit:
                self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating order: {e}")
            raise CheckoutError("Failed to create order", status_code=500) from e

        logger.info(f"Order {order.id} placed: {len(order_items)} lines, total {order.total_amount:.2f} GEL")
        return order


def handle_checkout_initiated(db: Session, producer, event: CartCheckoutInitiatedEvent) -> Optional[Order]:
    """Consumer handler: place the order for a cart handoff and report the outcome.

    The order, the stock decrements and the processed-event marker (carrying
    the outcome event) are committed together. A redelivered handoff creates
    nothing and re-publishes the stored outcome with its original event_id,
    so a publish that failed the first time is not lost.
    """
    repo = OrderRepository(db)
    context = {"event_id": event.event_id, "correlation_id": event.correlation_id, "cart_id": event.cart_id}

    processed = repo.get_processed_event(event.event_id)
    if processed is not None:
        logger.info(f"Checkout event {event.event_id} already handled, re-sending its outcome", extra=context)
        if processed.outcome_topic and processed.outcome:
            outcome_cls = EVENT_TYPE_MAP[processed.outcome_topic]
            producer.publish(processed.outcome_topic, outcome_cls.model_validate(processed.outcome))
        return None

    order = None
    try:
        order = CheckoutService(db).place_order(
            items=event.items,
            shipping=event.shipping,
            user_id=event.user_id,
            coupon_code=event.coupon_code,
            discount_amount=event.discount_amount,
            cart_id=event.cart_id,
            commit=False,
        )
        outcome = OrderCreatedEvent(
            order_id=order.id,
            cart_id=event.cart_id,
            user_id=order.user_id,
            items=[
                {"product_id": item.product_id, "quantity": item.quantity, "unit_price": item.unit_price}
                for item in order.items
            ],
            total_amount=order.total_amount,
            correlation_id=event.correlation_id,
        )
        topic = "order.created"
    except CheckoutError as e:
        if e.status_code >= 500:
            # Storage trouble, let the consumer retry
            raise
        db.rollback()
        logger.warning(f"Checkout failed for cart {event.cart_id}: {e.message}", extra=context)
        outcome = OrderFailedEvent(
            cart_id=event.cart_id,
            user_id=event.user_id,
            reason=e.message,
            correlation_id=event.correlation_id,
        )
        topic = "order.failed"

    try:
        repo.mark_event_processed(event.event_id, event.event_type, topic, outcome.model_dump(mode="json"))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.error(f"Could not record checkout event {event.event_id}, nothing was written", extra=context)
        raise

    producer.publish(topic, outcome)
    return order
