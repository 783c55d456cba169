from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from shared.database import Base, new_id, utcnow


class Category(Base):
    """Product category with bilingual name."""

    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=new_id)
    name_en = Column(String(255), nullable=False)
    name_ka = Column(String(255), nullable=False, default="")
    slug = Column(String(255), unique=True, nullable=False, index=True)
    description_en = Column(Text, nullable=True)
    description_ka = Column(Text, nullable=True)
    image = Column(String(1024), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)


class Brand(Base):
    """Gear manufacturer."""

    __tablename__ = "brands"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    description_en = Column(Text, nullable=True)
    description_ka = Column(Text, nullable=True)
    logo = Column(String(1024), nullable=True)
    website = Column(String(1024), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)


class Product(Base):
    """Catalog product. Stock here is live; carts only hold a snapshot of it."""

    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    name_en = Column(String(255), nullable=False)
    name_ka = Column(String(255), nullable=True)
    description_en = Column(Text, nullable=False, default="")
    description_ka = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="GEL")
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True, index=True)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=True, index=True)
    subcategory = Column(String(255), nullable=True)
    images = Column(JSON, nullable=False, default=list)
    sizes = Column(JSON, nullable=False, default=list)  # [{"size": "M", "stock": 5}]
    stock = Column(Integer, nullable=False, default=0)
    min_order_quantity = Column(Integer, nullable=False, default=1)
    sku = Column(String(255), nullable=True, index=True)
    tags = Column(JSON, nullable=False, default=list)
    weight = Column(Float, nullable=True)
    dimensions = Column(String(255), nullable=True)
    material = Column(String(255), nullable=True)
    color = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_featured = Column(Boolean, default=False, nullable=False)
    is_new_arrival = Column(Boolean, default=False, nullable=False)
    is_bestseller = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    category = relationship(Category, lazy="joined")
    brand = relationship(Brand, lazy="joined")
