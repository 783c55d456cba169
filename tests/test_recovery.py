from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from services.notification_service.main import app, get_email_sender, get_now
from services.notification_service.models import AbandonedCart
from services.notification_service.recovery import CartRecoveryService, compose_reminder
from shared.database import get_db
from shared.events import CartCheckoutInitiatedEvent, CartClearedEvent, CartItemAddedEvent, CartItemRemovedEvent
from tests.conftest import ADMIN_HEADERS

NOW = datetime(2026, 5, 15, 12, 0)
SITE = "https://gear-store.ge"


class FakeEmailSender:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent = []

    def send_email(self, to_email, subject, body):
        if to_email in self.failing:
            return False
        self.sent.append((to_email, subject, body))
        return True


def item_added(user_id="u1", email="shopper@example.ge", total=260.0, cart_id="s1"):
    return CartItemAddedEvent(
        cart_id=cart_id,
        user_id=user_id,
        user_email=email,
        product_id="p-boots",
        cart_item_id="line-1",
        quantity=1,
        unit_price=260.0,
        cart_items=[{"product_id": "p-boots", "name_en": "Combat Boots", "quantity": 1, "selected_size": "43"}],
        cart_total=total,
        correlation_id="corr",
    )


def add_cart(db, user_id, abandoned_at, reminders=0, last_reminder=None, recovered_at=None, total=100.0):
    cart = AbandonedCart(
        user_id=user_id,
        email=f"{user_id}@example.ge",
        cart_data=[{"product_id": "p-knife", "name_en": "Utility Knife", "quantity": 1}],
        total_amount=total,
        abandoned_at=abandoned_at,
        reminder_sent_count=reminders,
        last_reminder_sent=last_reminder,
        recovered_at=recovered_at,
    )
    db.add(cart)
    db.commit()
    return cart


@pytest.fixture
def sender():
    return FakeEmailSender()


@pytest.fixture
def service(db, sender):
    return CartRecoveryService(db, sender, SITE)


def test_tracks_signed_in_carts_only(db, service):
    assert service.track_cart(item_added(user_id=None), NOW) is None

    cart = service.track_cart(item_added(), NOW)
    service.track_cart(item_added(total=300.0), NOW + timedelta(minutes=5))

    assert db.query(AbandonedCart).count() == 1
    assert cart.total_amount == 300.0
    assert cart.abandoned_at == NOW + timedelta(minutes=5)


def test_checkout_marks_cart_recovered(db, service):
    service.track_cart(item_added(), NOW)
    event = CartCheckoutInitiatedEvent(
        cart_id="s1", user_id="u1", items=[], total_amount=260.0, shipping={}, correlation_id="corr"
    )

    cart = service.mark_recovered(event, NOW + timedelta(hours=1))

    assert cart.recovered_at == NOW + timedelta(hours=1)


def test_new_cart_after_recovery_starts_new_cycle(db, service):
    add_cart(db, "u1", NOW - timedelta(days=3), reminders=2, last_reminder=NOW - timedelta(days=1), recovered_at=NOW)

    cart = service.track_cart(item_added(), NOW)

    assert cart.recovered_at is None
    assert cart.reminder_sent_count == 0


def test_compose_reminders():
    cart = AbandonedCart(id="c1", email="a@example.ge", cart_data=[], total_amount=50.0, currency="GEL")

    cart.reminder_sent_count = 0
    first = compose_reminder(cart, SITE + "/")
    cart.reminder_sent_count = 1
    second = compose_reminder(cart, SITE)

    assert first.subject == "You left something in your cart!"
    assert first.discount_code is None
    assert first.recovery_link == "https://gear-store.ge/cart?recovery=c1"
    assert second.subject == "Still thinking about your cart?"
    assert second.template == "abandoned_cart_2"
    assert "COMEBACK10" in second.body


def test_reminder_selection(db, service, sender):
    add_cart(db, "fresh", NOW - timedelta(minutes=10))
    add_cart(db, "due-first", NOW - timedelta(hours=1))
    add_cart(db, "due-second", NOW - timedelta(days=2), reminders=1, last_reminder=NOW - timedelta(hours=25))
    add_cart(db, "too-soon", NOW - timedelta(days=2), reminders=1, last_reminder=NOW - timedelta(hours=2))
    add_cart(db, "done", NOW - timedelta(days=5), reminders=2, last_reminder=NOW - timedelta(days=3))
    add_cart(db, "recovered", NOW - timedelta(hours=3), recovered_at=NOW - timedelta(hours=1))

    summary = service.send_reminders(NOW)

    assert summary["success"] is True
    assert summary["processed"] == 2
    assert summary["emails_sent"] == 2
    assert sorted(to for to, _, _ in sender.sent) == ["due-first@example.ge", "due-second@example.ge"]

    second = db.query(AbandonedCart).filter(AbandonedCart.user_id == "due-second").one()
    assert second.reminder_sent_count == 2
    assert second.last_reminder_sent == NOW


def test_failed_email_does_not_abort_batch(db):
    sender = FakeEmailSender(failing={"broken@example.ge"})
    add_cart(db, "broken", NOW - timedelta(hours=2))
    add_cart(db, "fine", NOW - timedelta(hours=1))

    summary = CartRecoveryService(db, sender, SITE).send_reminders(NOW)

    assert summary["processed"] == 2
    assert summary["emails_sent"] == 1
    assert [detail["status"] for detail in summary["details"]] == ["failed", "sent"]
    broken = db.query(AbandonedCart).filter(AbandonedCart.user_id == "broken").one()
    assert broken.reminder_sent_count == 0


def test_stats(db, service):
    add_cart(db, "a", NOW - timedelta(days=1), total=100.0)
    add_cart(db, "b", NOW - timedelta(days=2), reminders=1, total=50.0, recovered_at=NOW - timedelta(days=1))
    add_cart(db, "c", NOW - timedelta(days=3), reminders=2, total=25.5)
    add_cart(db, "old", NOW - timedelta(days=30), total=999.0)

    stats = service.stats(7, NOW)

    assert stats["total_abandoned"] == 3
    assert stats["total_recovered"] == 1
    assert stats["recovery_rate"] == 33.33
    assert stats["abandoned_value"] == 175.5
    assert stats["recovered_value"] == 50.0
    assert stats["reminder_stats"] == {"no_reminder": 1, "one_reminder": 1, "two_reminders": 1}
    assert [cart["email"] for cart in stats["recent_abandoned"]] == ["a@example.ge", "b@example.ge", "c@example.ge"]
    assert stats["recent_abandoned"][0]["items_count"] == 1


def test_stats_without_carts(service):
    assert service.stats(7, NOW)["recovery_rate"] == 0.0


@pytest.fixture
def client(db, sender):
    def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_email_sender] = lambda: sender
    app.dependency_overrides[get_now] = lambda: NOW
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_recovery_endpoints(db, client, sender):
    add_cart(db, "u1", NOW - timedelta(hours=1))

    assert client.post("/abandoned-carts/recovery").json()["emails_sent"] == 1
    assert client.get("/abandoned-carts/stats").status_code == 403

    stats = client.get("/abandoned-carts/stats", params={"days": 7}, headers=ADMIN_HEADERS).json()
    assert stats["days"] == 7
    assert stats["reminder_stats"]["one_reminder"] == 1


def test_email_message_headers():
    from services.notification_service.email_sender import EmailSender

    message = EmailSender("localhost", 1025, reply_to="support@gear-store.ge").build_message(
        "shopper@example.ge", "Still thinking about your cart?", "გამარჯობა"
    )

    assert message["To"] == "shopper@example.ge"
    assert message["Reply-To"] == "support@gear-store.ge"
    assert "noreply@gear-store.ge" in message["From"]
    assert message.get_content().strip() == "გამარჯობა"


def test_shrunk_cart_refreshes_snapshot(db, service):
    service.track_cart(item_added(), NOW)
    removed = CartItemRemovedEvent(
        cart_id="s1",
        cart_item_id="line-1",
        product_id="p-boots",
        cart_items=[{"product_id": "p-knife", "name_en": "Utility Knife", "quantity": 1}],
        cart_total=80.0,
        correlation_id="corr",
    )

    cart = service.track_cart(removed, NOW + timedelta(minutes=2))

    assert cart.user_id == "u1"
    assert cart.total_amount == 80.0
    assert [line["product_id"] for line in cart.cart_data] == ["p-knife"]


def test_emptied_cart_gets_no_reminders(db, service, sender):
    service.track_cart(item_added(), NOW - timedelta(hours=2))

    service.track_cart(CartClearedEvent(cart_id="s1", user_id="u1", correlation_id="corr"), NOW - timedelta(hours=1))

    assert db.query(AbandonedCart).count() == 0
    assert service.send_reminders(NOW)["processed"] == 0
    assert sender.sent == []
