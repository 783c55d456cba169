import logging
import random

from sqlalchemy.orm import Session

from services.catalog_service.models import Brand, Category, Product
from services.catalog_service.product_forms import default_sku

logger = logging.getLogger(__name__)

SAMPLE_CATEGORIES = [
    ("Boots", "ფეხსაცმელი", "boots"),
    ("Backpacks", "ზურგჩანთები", "backpacks"),
    ("Knives", "დანები", "knives"),
    ("Gloves", "ხელთათმანები", "gloves"),
    ("Clothing", "ტანსაცმელი", "clothing"),
]

SAMPLE_BRANDS = [
    ("Lowa", "lowa"),
    ("5.11 Tactical", "511-tactical"),
    ("Mechanix", "mechanix"),
    ("Gerber", "gerber"),
]

# name_en, name_ka, category slug, brand slug, price, sizes
SAMPLE_PRODUCTS = [
    ("Zephyr GTX Mid Boots", "ზეფირ GTX ჩექმები", "boots", "lowa", 389.0, ["41", "42", "43", "44", "45"]),
    ("Rush 24 Backpack", "Rush 24 ზურგჩანთა", "backpacks", "511-tactical", 329.0, []),
    ("StrongArm Knife", "StrongArm დანა", "knives", "gerber", 189.0, []),
    ("M-Pact Gloves", "M-Pact ხელთათმანები", "gloves", "mechanix", 95.0, ["S", "M", "L", "XL"]),
    ("Stryke Pants", "Stryke შარვალი", "clothing", "511-tactical", 210.0, ["30", "32", "34", "36"]),
    ("Original Gloves", "Original ხელთათმანები", "gloves", "mechanix", 65.0, ["M", "L"]),
]


def seed_catalog(db: Session) -> None:
    """Seed database with sample categories, brands and products."""
    if db.query(Product).first():
        logger.info("Catalog already seeded, skipping")
        return

    logger.info("Seeding catalog...")
    categories = {}
    for name_en, name_ka, slug in SAMPLE_CATEGORIES:
        category = Category(name_en=name_en, name_ka=name_ka, slug=slug)
        db.add(category)
        categories[slug] = category

    brands = {}
    for name, slug in SAMPLE_BRANDS:
        brand = Brand(name=name, slug=slug)
        db.add(brand)
        brands[slug] = brand
    db.flush()

    for name_en, name_ka, category_slug, brand_slug, price, sizes in SAMPLE_PRODUCTS:
        size_rows = [{"size": size, "stock": random.randint(1, 10), "available": True} for size in sizes]
        stock = sum(row["stock"] for row in size_rows) if size_rows else random.randint(10, 100)
        db.add(
            Product(
                name_en=name_en,
                name_ka=name_ka,
                description_en=f"{name_en} for field and duty use.",
                price=price,
                category_id=categories[category_slug].id,
                brand_id=brands[brand_slug].id,
                sizes=size_rows,
                stock=stock,
                sku=default_sku("PROD"),
                is_new_arrival=random.random() < 0.3,
            )
        )

    db.commit()
    logger.info(f"Seeded {len(SAMPLE_PRODUCTS)} products")
