import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from services.notification_service.models import AbandonedCart

logger = logging.getLogger(__name__)


class AbandonedCartRepository:
    """Repository for abandoned cart tracking."""

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    def get_by_user(self, user_id: str) -> Optional[AbandonedCart]:
        return self.db.query(AbandonedCart).filter(AbandonedCart.user_id == user_id).first()

    def upsert(
        self,
        user_id: str,
        email: str,
        cart_data: List[Dict[str, Any]],
        total_amount: float,
        now: datetime,
        cart_id: Optional[str] = None,
        currency: str = "GEL",
    ) -> AbandonedCart:
        """Record the shopper's latest cart. A cart after a recovered one starts a new reminder cycle."""
        cart = self.get_by_user(user_id)
        if cart is None:
            cart = AbandonedCart(user_id=user_id, reminder_sent_count=0)
            self.db.add(cart)
        elif cart.recovered_at is not None:
            cart.recovered_at = None
            cart.reminder_sent_count = 0
            cart.last_reminder_sent = None

        cart.email = email
        cart.cart_id = cart_id
        cart.cart_data = cart_data
        cart.total_amount = total_amount
        cart.currency = currency
        cart.abandoned_at = now
        self.db.flush()
        logger.info(f"Tracked cart for user {user_id}: {len(cart_data)} lines, {total_amount:.2f} {currency}")
        return cart

    def due_for_reminder(
        self,
        now: datetime,
        abandoned_after: timedelta = timedelta(minutes=30),
        second_reminder_after: timedelta = timedelta(hours=24),
        limit: int = 50,
    ) -> List[AbandonedCart]:
        """Unrecovered carts idle long enough, with no reminder yet or one reminder that is old enough."""
        return (
            self.db.query(AbandonedCart)
            .filter(
                AbandonedCart.recovered_at.is_(None),
                AbandonedCart.abandoned_at < now - abandoned_after,
                or_(
                    AbandonedCart.reminder_sent_count == 0,
                    and_(
                        AbandonedCart.reminder_sent_count == 1,
                        AbandonedCart.last_reminder_sent < now - second_reminder_after,
                    ),
                ),
            )
            .order_by(AbandonedCart.abandoned_at.asc())
            .limit(limit)
            .all()
        )

    def mark_reminder_sent(self, cart: AbandonedCart, now: datetime) -> None:
        cart.reminder_sent_count += 1
        cart.last_reminder_sent = now
        self.db.flush()

    def get_open(self, user_id: Optional[str] = None, cart_id: Optional[str] = None) -> Optional[AbandonedCart]:
        """The unrecovered cart of a shopper, looked up by user, otherwise by cart session."""
        query = self.db.query(AbandonedCart).filter(AbandonedCart.recovered_at.is_(None))
        if user_id:
            query = query.filter(AbandonedCart.user_id == user_id)
        elif cart_id:
            query = query.filter(AbandonedCart.cart_id == cart_id)
        else:
            return None
        return query.first()

    def discard(self, cart: AbandonedCart) -> None:
        """Forget a cart the shopper emptied; there is nothing left to remind them of."""
        self.db.delete(cart)
        self.db.flush()
        logger.info(f"Abandoned cart {cart.id} emptied, no longer tracked")

    def mark_recovered(self, now: datetime, user_id: Optional[str] = None, cart_id: Optional[str] = None) -> Optional[AbandonedCart]:
        """Close the open abandoned cart of a shopper who checked out."""
        cart = self.get_open(user_id=user_id, cart_id=cart_id)
        if cart:
            cart.recovered_at = now
            self.db.flush()
            logger.info(f"Abandoned cart {cart.id} recovered")
        return cart

    def abandoned_since(self, start: datetime) -> List[AbandonedCart]:
        """Carts abandoned at or after start, most recent first."""
        return (
            self.db.query(AbandonedCart)
            .filter(AbandonedCart.abandoned_at >= start)
            .order_by(AbandonedCart.abandoned_at.desc())
            .all()
        )
