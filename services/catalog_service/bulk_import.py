"""
CSV bulk product import.

Rows are validated first, then inserted one at a time with a commit per row,
so a bad row never takes the rest of the file down with it.

CSV Format (header row required, same columns as template_csv()):
    name_en,name_ka,description_en,description_ka,price,currency,category_id,
    brand_id,stock,sku,images,sizes,min_order_quantity

    images: comma separated URLs
    sizes:  comma separated sizes, optionally with stock per size ("S:4,M:6").
            When every size carries a stock figure the product's total stock
            is their sum.
"""

import csv
import io
import logging
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from services.catalog_service.product_forms import default_sku
from services.catalog_service.repository import CatalogRepository
from services.catalog_service.schemas import ImportMessage, ProductData, SizeStock

logger = logging.getLogger(__name__)

TEMPLATE_COLUMNS = [
    "name_en",
    "name_ka",
    "description_en",
    "description_ka",
    "price",
    "currency",
    "category_id",
    "brand_id",
    "stock",
    "sku",
    "images",
    "sizes",
    "min_order_quantity",
]

TEMPLATE_ROW = {
    "name_en": "Example Product",
    "name_ka": "მაგალითი პროდუქტი",
    "description_en": "Product description in English",
    "description_ka": "პროდუქტის აღწერა ქართულად",
    "price": "99.99",
    "currency": "GEL",
    "category_id": "category-id-here",
    "brand_id": "brand-id-here",
    "stock": "100",
    "sku": "PROD-001",
    "images": "https://example.com/image1.jpg,https://example.com/image2.jpg",
    "sizes": "S,M,L,XL",
    "min_order_quantity": "1",
}

ProgressCallback = Callable[[int], None]


class ImportResult(BaseModel):
    """Outcome of one import run."""

    success: int = 0
    failed: int = 0
    errors: List[ImportMessage] = []
    warnings: List[ImportMessage] = []

    def error(self, row: int, message: str) -> None:
        self.failed += 1
        self.errors.append(ImportMessage(row=row, message=message))

    def warn(self, row: int, message: str) -> None:
        self.warnings.append(ImportMessage(row=row, message=message))


def template_csv() -> str:
    """Content of the downloadable products_template.csv."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=TEMPLATE_COLUMNS, lineterminator="\n")
    writer.writeheader()
    writer.writerow(TEMPLATE_ROW)
    return buffer.getvalue()


def _split_list(value: str) -> List[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def _parse_sizes(value: str) -> Tuple[List[SizeStock], bool]:
    """Sizes plus whether every size carried its own stock figure."""
    sizes = []
    all_counted = True
    for part in _split_list(value):
        name, _, count = part.partition(":")
        name = name.strip()
        if not name:
            continue
        try:
            stock = int(count) if count.strip() else None
        except ValueError:
            stock = None
        if stock is None or stock < 0:
            all_counted = False
            stock = 0
        sizes.append(SizeStock(size=name, stock=stock))
    return sizes, bool(sizes) and all_counted


def _parse_int(value: str) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


class BulkImporter:
    """Validates and inserts CSV product rows."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = CatalogRepository(db)
        self._category_cache: Dict[str, bool] = {}
        self._brand_cache: Dict[str, bool] = {}

    def _category_known(self, category_id: str) -> bool:
        if category_id not in self._category_cache:
            self._category_cache[category_id] = self.repo.category_exists(category_id)
        return self._category_cache[category_id]

    def _brand_known(self, brand_id: str) -> bool:
        if brand_id not in self._brand_cache:
            self._brand_cache[brand_id] = self.repo.brand_exists(brand_id)
        return self._brand_cache[brand_id]

    def validate_row(self, row_number: int, row: Dict[str, str], result: ImportResult) -> Optional[ProductData]:
        """Turn one CSV row into ProductData, recording errors and warnings. None means the row is rejected."""
        row = {key.strip(): (value or "").strip() for key, value in row.items() if key}
        name_en = row.get("name_en", "")
        raw_price = row.get("price", "")

        if not name_en or not raw_price:
            result.error(row_number, f"Missing required fields for product: {name_en or 'Unknown'}")
            return None

        try:
            price = float(raw_price)
        except ValueError:
            result.error(row_number, f"Invalid price '{raw_price}' for product: {name_en}")
            return None
        if price < 0:
            result.error(row_number, f"Invalid price '{raw_price}' for product: {name_en}")
            return None

        if not row.get("name_ka"):
            result.warn(row_number, f"Missing Georgian name for product: {name_en}")

        category_id = row.get("category_id") or None
        if category_id and not self._category_known(category_id):
            result.warn(row_number, f"Unknown category '{category_id}' dropped for product: {name_en}")
            category_id = None

        brand_id = row.get("brand_id") or None
        if brand_id and not self._brand_known(brand_id):
            result.warn(row_number, f"Unknown brand '{brand_id}' dropped for product: {name_en}")
            brand_id = None

        min_order_quantity = _parse_int(row.get("min_order_quantity", ""))
        if min_order_quantity is None or min_order_quantity < 1:
            result.warn(row_number, f"Minimum order quantity defaulted to 1 for product: {name_en}")
            min_order_quantity = 1

        sizes, sizes_counted = _parse_sizes(row.get("sizes", ""))
        if sizes_counted:
            stock = sum(size.stock for size in sizes)
        else:
            stock = _parse_int(row.get("stock", ""))
            if stock is None or stock < 0:
                result.warn(row_number, f"Stock defaulted to 0 for product: {name_en}")
                stock = 0

        return ProductData(
            name_en=name_en,
            name_ka=row.get("name_ka") or None,
            description_en=row.get("description_en", ""),
            description_ka=row.get("description_ka") or None,
            price=price,
            currency=row.get("currency") or "GEL",
            category_id=category_id,
            brand_id=brand_id,
            stock=stock,
            sku=row.get("sku") or default_sku("PROD"),
            images=_split_list(row.get("images", "")),
            sizes=sizes,
            min_order_quantity=min_order_quantity,
            is_active=True,
            is_featured=False,
        )

    def import_csv(self, content: str, on_progress: Optional[ProgressCallback] = None) -> ImportResult:
        """Import every row of the CSV text."""
        result = ImportResult()
        reader = csv.DictReader(io.StringIO(content.lstrip("\ufeff")))

        validated: List[Tuple[int, ProductData]] = []
        # Header is line 1
        for row_number, row in enumerate(reader, start=2):
            if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
                continue
            data = self.validate_row(row_number, row, result)
            if data is not None:
                validated.append((row_number, data))

        total = len(validated)
        for index, (row_number, data) in enumerate(validated, start=1):
            try:
                self.repo.create_product(data)
                self.db.commit()
                result.success += 1
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to import row {row_number} ({data.name_en}): {e}")
                result.error(row_number, f"Failed to import {data.name_en}: {e}")

            if on_progress:
                on_progress(round(index / total * 100))

        logger.info(f"Bulk import finished: {result.success} imported, {result.failed} failed")
        return result
