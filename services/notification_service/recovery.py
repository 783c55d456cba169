"""Abandoned cart tracking and reminder emails.

A signed-in shopper's latest cart is recorded from every cart mutation event
(add, update, remove, clear) and closed by ``cart.checkout_initiated``.
Carts idle for 30 minutes get a first reminder; a second one with a
discount code follows 24 hours later. No cart gets more than two.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from services.notification_service.email_sender import EmailSender
from services.notification_service.models import AbandonedCart
from services.notification_service.repository import AbandonedCartRepository
from shared.events import CartCheckoutInitiatedEvent, CartSnapshotEvent

logger = logging.getLogger(__name__)

FIRST_REMINDER_SUBJECT = "You left something in your cart!"
SECOND_REMINDER_SUBJECT = "Still thinking about your cart?"
SECOND_REMINDER_DISCOUNT = "COMEBACK10"
RECENT_LIMIT = 10


class ReminderEmail(BaseModel):
    to: str
    subject: str
    template: str
    discount_code: Optional[str] = None
    recovery_link: str
    body: str


def _items_count(cart: AbandonedCart) -> int:
    return len(cart.cart_data or [])


def render_body(cart: AbandonedCart, recovery_link: str, discount_code: Optional[str]) -> str:
    lines = ["Your cart is waiting for you:", ""]
    for item in cart.cart_data or []:
        name = item.get("name_en") or item.get("name") or item.get("product_id", "Item")
        size = f" ({item['selected_size']})" if item.get("selected_size") else ""
        lines.append(f"- {name}{size} x {item.get('quantity', 1)}")
    lines.append("")
    lines.append(f"Total: {cart.total_amount:,.2f} {cart.currency}")
    if discount_code:
        lines.append(f"Use code {discount_code} for 10% off your order.")
    lines.append("")
    lines.append(f"Complete your order: {recovery_link}")
    return "\n".join(lines)


def compose_reminder(cart: AbandonedCart, site_url: str) -> ReminderEmail:
    """Build the next reminder for a cart; the second one carries a discount code."""
    is_first = cart.reminder_sent_count == 0
    discount_code = None if is_first else SECOND_REMINDER_DISCOUNT
    recovery_link = f"{site_url.rstrip('/')}/cart?recovery={cart.id}"
    return ReminderEmail(
        to=cart.email,
        subject=FIRST_REMINDER_SUBJECT if is_first else SECOND_REMINDER_SUBJECT,
        template="abandoned_cart_1" if is_first else "abandoned_cart_2",
        discount_code=discount_code,
        recovery_link=recovery_link,
        body=render_body(cart, recovery_link, discount_code),
    )


class CartRecoveryService:
    def __init__(self, db: Session, email_sender: EmailSender, site_url: str):
        self.db = db
        self.repository = AbandonedCartRepository(db)
        self.email_sender = email_sender
        self.site_url = site_url

    def track_cart(self, event: CartSnapshotEvent, now: datetime) -> Optional[AbandonedCart]:
        """Record the cart snapshot carried by any cart mutation event.

        Guests are not tracked. An emptied cart drops its open record. Events
        without shopper headers still refresh a record already open for the
        same cart session.
        """
        if not event.cart_items:
            cart = self.repository.get_open(user_id=event.user_id, cart_id=event.cart_id)
            if cart is not None:
                self.repository.discard(cart)
                self.db.commit()
            return None

        user_id, email = event.user_id, event.user_email
        if not user_id or not email:
            open_cart = self.repository.get_open(cart_id=event.cart_id)
            if open_cart is None:
                return None
            user_id, email = open_cart.user_id, open_cart.email

        cart = self.repository.upsert(
            user_id=user_id,
            email=email,
            cart_data=event.cart_items,
            total_amount=event.cart_total,
            now=now,
            cart_id=event.cart_id,
            currency=event.currency,
        )
        self.db.commit()
        return cart

    def mark_recovered(self, event: CartCheckoutInitiatedEvent, now: datetime) -> Optional[AbandonedCart]:
        cart = self.repository.mark_recovered(now, user_id=event.user_id, cart_id=event.cart_id)
        self.db.commit()
        return cart

    def send_reminders(self, now: datetime) -> Dict[str, Any]:
        """Send the reminders that are due. A failed cart is reported and the batch goes on."""
        carts = self.repository.due_for_reminder(now)
        details: List[Dict[str, Any]] = []
        emails_sent = 0

        for cart in carts:
            email = compose_reminder(cart, self.site_url)
            if not self.email_sender.send_email(email.to, email.subject, email.body):
                details.append({"cart_id": cart.id, "email": cart.email, "status": "failed"})
                continue

            self.repository.mark_reminder_sent(cart, now)
            self.db.commit()
            emails_sent += 1
            details.append({
                "cart_id": cart.id,
                "email": cart.email,
                "status": "sent",
                "template": email.template,
                "reminder_number": cart.reminder_sent_count,
            })

        logger.info(f"Abandoned cart reminders: {emails_sent}/{len(carts)} sent")
        return {
            "success": True,
            "processed": len(carts),
            "emails_sent": emails_sent,
            "details": details,
        }

    def stats(self, days: int, now: datetime) -> Dict[str, Any]:
        """Recovery figures over carts abandoned in the last `days` days."""
        carts = self.repository.abandoned_since(now - timedelta(days=days))
        recovered = [cart for cart in carts if cart.recovered_at is not None]

        total = len(carts)
        recovery_rate = round(len(recovered) / total * 100, 2) if total else 0.0

        return {
            "total_abandoned": total,
            "total_recovered": len(recovered),
            "recovery_rate": recovery_rate,
            "abandoned_value": round(sum(cart.total_amount for cart in carts), 2),
            "recovered_value": round(sum(cart.total_amount for cart in recovered), 2),
            "reminder_stats": {
                "no_reminder": sum(1 for cart in carts if cart.reminder_sent_count == 0),
                "one_reminder": sum(1 for cart in carts if cart.reminder_sent_count == 1),
                "two_reminders": sum(1 for cart in carts if cart.reminder_sent_count >= 2),
            },
            "recent_abandoned": [
                {
                    "id": cart.id,
                    "email": cart.email,
                    "total_amount": cart.total_amount,
                    "currency": cart.currency,
                    "abandoned_at": cart.abandoned_at,
                    "reminder_sent_count": cart.reminder_sent_count,
                    "recovered_at": cart.recovered_at,
                    "items_count": _items_count(cart),
                }
                for cart in carts[:RECENT_LIMIT]
            ],
        }
