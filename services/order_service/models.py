from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from shared.database import Base, new_id, utcnow

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed")


class Order(Base):
    """Order model."""

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(255), nullable=True, index=True)  # Null for guest checkout
    cart_id = Column(String(255), nullable=True, index=True)
    status = Column(String(50), default="pending", nullable=False)
    payment_status = Column(String(50), default="pending", nullable=False)
    total_amount = Column(Float, nullable=False)
    discount_amount = Column(Float, default=0.0, nullable=False)
    coupon_code = Column(String(100), nullable=True)
    currency = Column(String(3), default="GEL", nullable=False)
    shipping_address = Column(String(500), nullable=False)
    shipping_city = Column(String(255), nullable=False)
    shipping_postal_code = Column(String(50), default="", nullable=False)
    shipping_country = Column(String(255), default="Georgia", nullable=False)
    notes = Column(Text, default="", nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", lazy="selectin")


class OrderItem(Base):
    """One product line of an order, priced from the live catalog at checkout."""

    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String(36), nullable=False, index=True)
    product_name = Column(String(255), nullable=False)
    product_sku = Column(String(255), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)
    selected_size = Column(String(50), nullable=True)

    order = relationship(Order, back_populates="items")


class Coupon(Base):
    """Discount code; only its usage count is maintained here."""

    __tablename__ = "coupons"

    id = Column(String(36), primary_key=True, default=new_id)
    code = Column(String(100), unique=True, nullable=False, index=True)
    used_count = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class ProcessedEvent(Base):
    """Track processed events for idempotency."""

    __tablename__ = "processed_events"

    id = Column(String(36), primary_key=True, default=new_id)
    event_id = Column(String(255), unique=True, nullable=False, index=True)
    event_type = Column(String(100), nullable=False)
    outcome_topic = Column(String(100), nullable=True)
    outcome = Column(JSON, nullable=True)  # Published result, re-sent on redelivery
    processed_at = Column(DateTime, server_default=func.now(), nullable=False)
