"""
notification_service/main.py - Abandoned Cart Recovery Microservice

PURPOSE:
    Tracks the latest cart of signed-in shoppers and emails them when they
    walk away from it. Emails go out through Mailhog (SMTP server).

RESPONSIBILITIES:
    - Record cart snapshots from every cart mutation event
    - Mark carts recovered on cart.checkout_initiated
    - Send at most two reminders per cart (30 minutes, then 24 hours later
      with a discount code)
    - Report recovery figures to the back office

API ENDPOINTS:
    POST /abandoned-carts/recovery      - Send due reminders (cron trigger)
    GET  /abandoned-carts/stats?days=7  - Recovery statistics (admin)
    GET  /health                        - Health check

KAFKA EVENTS CONSUMED:
    - cart.item_added, cart.item_updated, cart.item_removed, cart.cleared:
      Snapshot of the shopper's cart after the change (empty drops the record)
    - cart.checkout_initiated: Shopper came back and checked out

EMAIL SERVER:
    - Host: mailhog (Docker container)
    - Port: 1025
    - Web UI: http://localhost:8025

USAGE:
    Runs on port 8005 in Docker container
"""

import logging
import os
import threading
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI, Query
from pydantic_settings import BaseSettings
from sqlalchemy.orm import Session

from services.notification_service.email_sender import EmailSender
from services.notification_service.recovery import CartRecoveryService
from shared.admin import require_admin
from shared.database import SessionLocal, get_db, init_db, utcnow
from shared.kafka_client import BaseKafkaConsumer
from shared.logging_config import setup_logging
from shared.topic_initializer import create_topics

setup_logging("notification-service", package=__package__)
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings."""

    kafka_bootstrap_servers: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    mailhog_host: str = os.getenv("MAILHOG_HOST", "localhost")
    mailhog_port: int = int(os.getenv("MAILHOG_PORT", "1025"))
    site_url: str = os.getenv("SITE_URL", "http://localhost:3000")
    notification_service_port: int = int(os.getenv("NOTIFICATION_SERVICE_PORT", "8005"))


settings = Settings()

CART_SNAPSHOT_TOPICS = ["cart.item_added", "cart.item_updated", "cart.item_removed", "cart.cleared"]

consumer: BaseKafkaConsumer = None


def get_email_sender() -> EmailSender:
    return EmailSender(settings.mailhog_host, settings.mailhog_port)


def get_now() -> datetime:
    return utcnow()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage app lifecycle."""
    global consumer

    logger.info("Starting Notification Service...")

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

    consumer = BaseKafkaConsumer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id="notification-service-group",
        topics=CART_SNAPSHOT_TOPICS + ["cart.checkout_initiated"],
    )

    def handle_event(event):
        """Handle incoming event."""
        db = SessionLocal()
        try:
            service = CartRecoveryService(db, get_email_sender(), settings.site_url)
            if event.event_type in CART_SNAPSHOT_TOPICS:
                service.track_cart(event, utcnow())
            elif event.event_type == "cart.checkout_initiated":
                service.mark_recovered(event, utcnow())
        finally:
            db.close()

    def notification_consumer():
        try:
            consumer.consume(handle_event)
        except Exception as e:
            logger.error(f"Error in notification consumer: {e}")

    consumer_thread = threading.Thread(target=notification_consumer, daemon=True)
    consumer_thread.start()
    logger.info("Notification consumer thread started")

    yield

    logger.info("Shutting down Notification Service...")
    if consumer:
        consumer.close()


app = FastAPI(title="Notification Service", version="1.0.0", lifespan=lifespan)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok", "service": "notification-service", "version": "1.0.0"}


@app.post("/abandoned-carts/recovery")
def send_recovery_emails(
    db: Session = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
    now: datetime = Depends(get_now),
) -> dict:
    """Send every reminder that is due."""
    return CartRecoveryService(db, email_sender, settings.site_url).send_reminders(now)


@app.get("/abandoned-carts/stats", dependencies=[Depends(require_admin)])
def recovery_stats(
    days: int = Query(7, ge=1, le=365),
    db: Session = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
    now: datetime = Depends(get_now),
) -> dict:
    return {**CartRecoveryService(db, email_sender, settings.site_url).stats(days, now), "days": days}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.notification_service_port)
