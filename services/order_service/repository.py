import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from services.catalog_service.models import Category, Product
from services.order_service.models import Coupon, Order, OrderItem, ProcessedEvent

logger = logging.getLogger(__name__)


class OrderRepository:
    """Repository for order operations."""

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    def create_order(
        self,
        user_id: Optional[str],
        shipping: Dict[str, Any],
        items: List[Dict[str, Any]],
        total_amount: float,
        discount_amount: float = 0.0,
        coupon_code: Optional[str] = None,
        cart_id: Optional[str] = None,
    ) -> Order:
        """Create a new order with its items."""
        order = Order(
            user_id=user_id,
            cart_id=cart_id,
            status="pending",
            payment_status="pending",
            total_amount=total_amount,
            discount_amount=discount_amount,
            coupon_code=coupon_code,
            currency="GEL",
            shipping_address=shipping["address"],
            shipping_city=shipping["city"],
            shipping_postal_code=shipping.get("postal_code") or "",
            shipping_country=shipping.get("country") or "Georgia",
            notes=shipping.get("notes") or "",
        )
        order.items = [OrderItem(**item) for item in items]
        self.db.add(order)
        self.db.flush()
        logger.info(f"Created order {order.id} for user {user_id or 'guest'}")
        return order

    def get_order(self, order_id: str) -> Optional[Order]:
        """Get order by id."""
        return self.db.query(Order).filter(Order.id == order_id).first()

    def get_orders_by_user(self, user_id: str) -> List[Order]:
        return self.db.query(Order).filter(Order.user_id == user_id).order_by(Order.created_at.desc()).all()

    def update_order_status(self, order_id: str, status: str) -> Optional[Order]:
        """Update order status."""
        order = self.get_order(order_id)
        if order:
            order.status = status
            self.db.flush()
            logger.info(f"Updated order {order_id} status to {status}")
        return order

    def increment_coupon_usage(self, code: str) -> bool:
        coupon = self.db.query(Coupon).filter(Coupon.code == code).first()
        if not coupon:
            logger.warning(f"Coupon {code} not found, usage not recorded")
            return False
        coupon.used_count += 1
        self.db.flush()
        return True

    def get_processed_event(self, event_id: str) -> Optional[ProcessedEvent]:
        return self.db.query(ProcessedEvent).filter(ProcessedEvent.event_id == event_id).first()

    def is_event_processed(self, event_id: str) -> bool:
        """Check if event has been processed."""
        return self.get_processed_event(event_id) is not None

    def mark_event_processed(
        self,
        event_id: str,
        event_type: str,
        outcome_topic: Optional[str] = None,
        outcome: Optional[Dict[str, Any]] = None,
    ) -> ProcessedEvent:
        """Mark event as processed, keeping the outcome event that answers it. Not committed here."""
        processed_event = ProcessedEvent(
            event_id=event_id,
            event_type=event_type,
            outcome_topic=outcome_topic,
            outcome=outcome,
        )
        self.db.add(processed_event)
        self.db.flush()
        logger.info(f"Marked event {event_id} as processed")
        return processed_event

    # ------------------------------------------------------------------
    # Analytics rows
    # ------------------------------------------------------------------

    def order_rows(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        user_id: Optional[str] = None,
        paid_only: bool = False,
    ) -> List[Dict[str, Any]]:
        """Orders as plain dicts, newest first, each item tagged with its product's category."""
        query = self.db.query(Order)
        if start is not None:
            query = query.filter(Order.created_at >= start)
        if end is not None:
            query = query.filter(Order.created_at <= end)
        if user_id is not None:
            query = query.filter(Order.user_id == user_id)
        if paid_only:
            query = query.filter(Order.payment_status == "paid")
        orders = query.order_by(Order.created_at.desc()).all()

        product_ids = {item.product_id for order in orders for item in order.items}
        categories = {}
        if product_ids:
            rows = (
                self.db.query(Product.id, Category.name_en, Category.name_ka)
                .join(Category, Product.category_id == Category.id)
                .filter(Product.id.in_(product_ids))
                .all()
            )
            categories = {product_id: (name_en, name_ka) for product_id, name_en, name_ka in rows}

        return [
            {
                "id": order.id,
                "user_id": order.user_id,
                "status": order.status,
                "payment_status": order.payment_status,
                "total_amount": order.total_amount,
                "currency": order.currency,
                "created_at": order.created_at,
                "items": [
                    {
                        "product_id": item.product_id,
                        "product_name": item.product_name,
                        "quantity": item.quantity,
                        "unit_price": item.unit_price,
                        "total_price": item.total_price,
                        "category_en": categories.get(item.product_id, (None, None))[0],
                        "category_ka": categories.get(item.product_id, (None, None))[1],
                    }
                    for item in order.items
                ],
            }
            for order in orders
        ]

    def item_rows(self, start: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Every ordered line, for best-seller rankings."""
        query = self.db.query(OrderItem).join(Order)
        if start is not None:
            query = query.filter(Order.created_at >= start)
        return [
            {
                "product_id": item.product_id,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "total_price": item.total_price,
            }
            for item in query.all()
        ]
