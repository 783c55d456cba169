"""
Admin product form handling.

The back office builds a product draft over several steps (AI analysis,
image uploads, size rows) before it is saved. ProductForm holds that draft
and turns it into validated ProductData on save.
"""

import logging
import random
import string
import time
from typing import List, Optional

from pydantic import BaseModel

from services.catalog_service.schemas import ProductData, SizeStock

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name_en", "price", "stock")


class ProductFormError(ValueError):
    """Raised when a draft cannot be saved."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


def default_sku(prefix: str = "PROD", timestamp_ms: Optional[int] = None, with_suffix: bool = True) -> str:
    """SKU for products saved without one: PROD-<ms>-<rand> for imports, AI-<ms> for AI drafts."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    if not with_suffix:
        return f"{prefix}-{timestamp_ms}"
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"{prefix}-{timestamp_ms}-{suffix}"


def move_image(images: List[str], old_index: int, new_index: int) -> List[str]:
    """Drag-and-drop reorder: take the image at old_index out and insert it at new_index."""
    result = list(images)
    if not result:
        return result
    if old_index < 0 or old_index >= len(result):
        return result
    new_index = max(0, min(new_index, len(result) - 1))
    result.insert(new_index, result.pop(old_index))
    return result


def remove_image(images: List[str], index: int) -> List[str]:
    return [image for i, image in enumerate(images) if i != index]


def append_images(images: List[str], new_images: List[str]) -> List[str]:
    """Uploaded images go to the end, skipping ones already attached."""
    result = list(images)
    for image in new_images:
        if image and image not in result:
            result.append(image)
    return result


class ProductForm(BaseModel):
    """Editable product draft."""

    name_en: str = ""
    name_ka: str = ""
    description_en: str = ""
    description_ka: str = ""
    price: Optional[float] = None
    currency: str = "GEL"
    category_id: Optional[str] = None
    brand_id: Optional[str] = None
    subcategory: str = ""
    stock: Optional[int] = None
    min_order_quantity: int = 1
    sku: str = ""
    material: str = ""
    weight: Optional[float] = None
    dimensions: str = ""
    color: str = ""
    tags: List[str] = []
    sizes: List[SizeStock] = []
    images: List[str] = []
    is_active: bool = True
    is_featured: bool = False
    is_new_arrival: bool = False
    is_bestseller: bool = False

    def add_size(self, size: str, stock: int) -> bool:
        """Add a size row. Blank or duplicate sizes and non-positive stock are ignored."""
        size = (size or "").strip()
        if not size or stock is None or stock <= 0:
            return False
        if any(existing.size == size for existing in self.sizes):
            return False
        self.sizes = self.sizes + [SizeStock(size=size, stock=stock)]
        return True

    def remove_size(self, index: int) -> None:
        self.sizes = [size for i, size in enumerate(self.sizes) if i != index]

    def update_size_stock(self, size: str, stock: int) -> None:
        self.sizes = [
            existing.model_copy(update={"stock": stock, "available": stock > 0}) if existing.size == size else existing
            for existing in self.sizes
        ]

    def add_tag(self, tag: str) -> None:
        tag = (tag or "").strip()
        if tag and tag not in self.tags:
            self.tags = self.tags + [tag]

    def remove_tag(self, tag: str) -> None:
        self.tags = [existing for existing in self.tags if existing != tag]

    def total_stock(self) -> int:
        """Sum of per-size stock when sizes exist, otherwise the single stock figure."""
        if self.sizes:
            return sum(size.stock for size in self.sizes)
        return self.stock or 0

    def missing_fields(self) -> List[str]:
        missing = []
        if not self.name_en.strip():
            missing.append("name_en")
        if self.price is None:
            missing.append("price")
        if self.stock is None and not self.sizes:
            missing.append("stock")
        return missing

    def to_product_data(self, sku_prefix: str = "PROD") -> ProductData:
        """Validate the draft and produce the fields to save."""
        missing = self.missing_fields()
        if missing:
            raise ProductFormError([f"{field} is required" for field in missing])
        if self.price < 0:
            raise ProductFormError(["price must not be negative"])

        return ProductData(
            name_en=self.name_en.strip(),
            name_ka=self.name_ka.strip() or None,
            description_en=self.description_en,
            description_ka=self.description_ka or None,
            price=self.price,
            currency=self.currency or "GEL",
            category_id=self.category_id or None,
            brand_id=self.brand_id or None,
            subcategory=self.subcategory or None,
            images=self.images,
            sizes=self.sizes,
            stock=self.total_stock(),
            min_order_quantity=max(1, self.min_order_quantity or 1),
            sku=self.sku.strip() or default_sku(sku_prefix, with_suffix=sku_prefix != "AI"),
            tags=self.tags,
            weight=self.weight,
            dimensions=self.dimensions or None,
            material=self.material or None,
            color=self.color or None,
            is_active=self.is_active,
            is_featured=self.is_featured,
            is_new_arrival=self.is_new_arrival,
            is_bestseller=self.is_bestseller,
        )
