from sqlalchemy import JSON, Column, DateTime, Float, Integer, String

from shared.database import Base, new_id, utcnow


class AbandonedCart(Base):
    """Latest cart of a signed-in shopper who has not checked out yet."""

    __tablename__ = "abandoned_carts"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=False)
    cart_id = Column(String(255), nullable=True, index=True)
    cart_data = Column(JSON, nullable=False, default=list)
    total_amount = Column(Float, nullable=False, default=0.0)
    currency = Column(String(3), nullable=False, default="GEL")
    abandoned_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    reminder_sent_count = Column(Integer, nullable=False, default=0)
    last_reminder_sent = Column(DateTime, nullable=True)
    recovered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
