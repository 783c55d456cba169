import logging
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field
from sqlalchemy import or_
from sqlalchemy.orm import Session

from services.catalog_service.models import Brand, Category, Product
from services.catalog_service.schemas import ProductData, ProductUpdate

logger = logging.getLogger(__name__)

SORT_OPTIONS = ("newest", "price_asc", "price_desc", "name")


class ProductFilters(BaseModel):
    """Storefront listing filters. Unset fields do not filter."""

    category_id: Optional[str] = None
    brand_id: Optional[str] = None
    search: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    in_stock: bool = False
    featured: bool = False
    new_arrivals: bool = False
    sort: str = "newest"
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=12, ge=1, le=100)


class CatalogRepository:
    """Repository for catalog reads and admin product maintenance."""

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    # ------------------------------------------------------------------
    # Storefront queries
    # ------------------------------------------------------------------

    def list_products(self, filters: ProductFilters) -> Tuple[List[Product], int]:
        """Active products matching the filters, one page at a time, plus the total match count."""
        query = self.db.query(Product).filter(Product.is_active.is_(True))

        if filters.category_id:
            query = query.filter(Product.category_id == filters.category_id)
        if filters.brand_id:
            query = query.filter(Product.brand_id == filters.brand_id)
        if filters.search and filters.search.strip():
            pattern = f"%{filters.search.strip()}%"
            query = query.filter(or_(Product.name_en.ilike(pattern), Product.name_ka.ilike(pattern)))
        if filters.min_price is not None:
            query = query.filter(Product.price >= filters.min_price)
        if filters.max_price is not None:
            query = query.filter(Product.price <= filters.max_price)
        if filters.in_stock:
            query = query.filter(Product.stock > 0)
        if filters.featured:
            query = query.filter(Product.is_featured.is_(True))
        if filters.new_arrivals:
            query = query.filter(Product.is_new_arrival.is_(True))

        total = query.count()

        if filters.sort == "price_asc":
            query = query.order_by(Product.price.asc(), Product.name_en.asc())
        elif filters.sort == "price_desc":
            query = query.order_by(Product.price.desc(), Product.name_en.asc())
        elif filters.sort == "name":
            query = query.order_by(Product.name_en.asc())
        else:
            query = query.order_by(Product.created_at.desc())

        offset = (filters.page - 1) * filters.page_size
        return query.offset(offset).limit(filters.page_size).all(), total

    def get_product(self, product_id: str) -> Optional[Product]:
        """Get product by ID."""
        return self.db.query(Product).filter(Product.id == product_id).first()

    def get_products(self, product_ids: List[str]) -> List[Product]:
        if not product_ids:
            return []
        return self.db.query(Product).filter(Product.id.in_(product_ids)).all()

    def list_categories(self) -> List[Category]:
        return self.db.query(Category).filter(Category.is_active.is_(True)).order_by(Category.name_en.asc()).all()

    def list_brands(self) -> List[Brand]:
        return self.db.query(Brand).filter(Brand.is_active.is_(True)).order_by(Brand.name.asc()).all()

    def category_exists(self, category_id: str) -> bool:
        return self.db.query(Category.id).filter(Category.id == category_id).first() is not None

    def brand_exists(self, brand_id: str) -> bool:
        return self.db.query(Brand.id).filter(Brand.id == brand_id).first() is not None

    # ------------------------------------------------------------------
    # Admin maintenance
    # ------------------------------------------------------------------

    def create_product(self, data: ProductData) -> Product:
        """Create a new product."""
        product = Product(**data.model_dump())
        self.db.add(product)
        self.db.flush()
        logger.info(f"Created product {product.id}: {product.name_en}, stock: {product.stock}")
        return product

    def update_product(self, product_id: str, update: ProductUpdate) -> Optional[Product]:
        """Apply the fields present in the update. Returns None when the product does not exist."""
        product = self.get_product(product_id)
        if not product:
            return None

        for field, value in update.model_dump(exclude_unset=True).items():
            setattr(product, field, value)
        self.db.flush()
        logger.info(f"Updated product {product_id}")
        return product

    def delete_product(self, product_id: str) -> bool:
        product = self.get_product(product_id)
        if not product:
            return False
        self.db.delete(product)
        self.db.flush()
        logger.info(f"Deleted product {product_id}")
        return True

    def decrement_stock(self, product: Product, quantity: int) -> int:
        """Take sold units off live stock, never going below zero."""
        product.stock = max(0, product.stock - quantity)
        self.db.flush()
        logger.info(f"Stock for {product.id} is now {product.stock}")
        return product.stock
