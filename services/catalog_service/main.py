"""
catalog_service/main.py - Product Catalog Microservice

PURPOSE:
    Serves the storefront's product listings and the back office's product
    maintenance: manual entry, CSV bulk import and AI-assisted drafts from
    product photos.

API ENDPOINTS:
    Storefront:
        GET    /products                       - Filtered, sorted, paginated listing
        GET    /products/{product_id}          - Product details
        GET    /categories                     - Active categories
        GET    /brands                         - Active brands

    Back office (X-User-Email must be the admin address):
        POST   /admin/products                 - Create product from a form draft
        PUT    /admin/products/{product_id}    - Partial update
        DELETE /admin/products/{product_id}    - Delete product
        GET    /admin/products/import/template - Download products_template.csv
        POST   /admin/products/import          - Bulk import CSV (text/csv body)
        POST   /admin/products/analyze         - AI analysis of product photos

    GET    /health                             - Health check endpoint

KAFKA EVENTS PUBLISHED:
    - catalog.products_imported: After a bulk import run

TESTING COMMANDS:
    1. Search in-stock boots, cheapest first:
        curl "http://localhost:8002/products?search=boot&in_stock=true&sort=price_asc"

    2. Bulk import:
        curl -X POST http://localhost:8002/admin/products/import \
          -H "X-User-Email: admin@gear-store.ge" -H "Content-Type: text/csv" \
          --data-binary @products.csv

USAGE:
    Runs on port 8002 in Docker container
"""

import logging
import math
import os
from contextlib import asynccontextmanager
from typing import List, Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic_settings import BaseSettings
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from services.catalog_service import models  # noqa: F401  registers tables
from services.catalog_service.ai_analysis import AIAnalysisError, ProductAnalyzer, apply_analysis
from services.catalog_service.bulk_import import BulkImporter, ImportResult, template_csv
from services.catalog_service.product_forms import ProductForm, ProductFormError
from services.catalog_service.repository import SORT_OPTIONS, CatalogRepository, ProductFilters
from services.catalog_service.schemas import (
    AnalysisDraftResponse,
    AnalyzeProductRequest,
    BrandResponse,
    CategoryResponse,
    HealthResponse,
    ProductListResponse,
    ProductResponse,
    ProductUpdate,
)
from shared.admin import require_admin
from shared.database import SessionLocal, get_db, init_db
from shared.events import ProductsImportedEvent
from shared.kafka_client import BaseKafkaProducer
from shared.logging_config import setup_logging
from shared.topic_initializer import create_topics

setup_logging("catalog-service", package=__package__)
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings."""

    kafka_bootstrap_servers: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    catalog_service_port: int = int(os.getenv("CATALOG_SERVICE_PORT", "8002"))
    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o")
    seed_catalog: bool = os.getenv("SEED_CATALOG", "true").lower() == "true"


settings = Settings()

producer: BaseKafkaProducer = None
analyzer: ProductAnalyzer = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage app lifecycle."""
    global producer, analyzer

    logger.info("Starting Catalog Service...")

    try:
        init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    if settings.seed_catalog:
        from services.catalog_service.seed_data import seed_catalog

        db = SessionLocal()
        try:
            seed_catalog(db)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to seed catalog: {e}")
        finally:
            db.close()

    try:
        create_topics(settings.kafka_bootstrap_servers)
        logger.info("Kafka topics initialized")
    except Exception as e:
        logger.error(f"Failed to initialize Kafka topics: {e}")
        raise

    try:
        producer = BaseKafkaProducer(settings.kafka_bootstrap_servers, client_id="catalog-producer")
        logger.info("Kafka producer initialized")
    except Exception as e:
        logger.error(f"Failed to initialize Kafka producer: {e}")
        raise

    analyzer = ProductAnalyzer(api_key=settings.openai_api_key, model=settings.openai_model)

    yield

    logger.info("Shutting down Catalog Service...")
    if producer:
        producer.flush()


app = FastAPI(title="Catalog Service", version="1.0.0", lifespan=lifespan)


def get_producer() -> BaseKafkaProducer:
    return producer


def get_analyzer() -> ProductAnalyzer:
    return analyzer


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", service="catalog-service", version="1.0.0")


# ============================================================================
# Storefront
# ============================================================================

@app.get("/products", response_model=ProductListResponse)
async def list_products(
    category_id: Optional[str] = None,
    brand_id: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    in_stock: bool = False,
    featured: bool = False,
    new_arrivals: bool = False,
    sort: str = "newest",
    page: int = Query(1, ge=1),
    page_size: int = Query(12, ge=1, le=100),
    db: Session = Depends(get_db),
) -> ProductListResponse:
    """List active products."""
    if sort not in SORT_OPTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"sort must be one of {', '.join(SORT_OPTIONS)}",
        )

    filters = ProductFilters(
        category_id=category_id,
        brand_id=brand_id,
        search=search,
        min_price=min_price,
        max_price=max_price,
        in_stock=in_stock,
        featured=featured,
        new_arrivals=new_arrivals,
        sort=sort,
        page=page,
        page_size=page_size,
    )
    products, total = CatalogRepository(db).list_products(filters)
    return ProductListResponse(
        items=[ProductResponse.model_validate(product) for product in products],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total else 0,
    )


@app.get("/products/{product_id}", response_model=ProductResponse)
async def get_product(product_id: str, db: Session = Depends(get_db)) -> ProductResponse:
    """Get product details."""
    product = CatalogRepository(db).get_product(product_id)
    if not product or not product.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Product {product_id} not found")
    return ProductResponse.model_validate(product)


@app.get("/categories", response_model=List[CategoryResponse])
async def list_categories(db: Session = Depends(get_db)):
    return CatalogRepository(db).list_categories()


@app.get("/brands", response_model=List[BrandResponse])
async def list_brands(db: Session = Depends(get_db)):
    return CatalogRepository(db).list_brands()


# ============================================================================
# Back office
# ============================================================================

@app.post(
    "/admin/products",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_product(
    form: ProductForm,
    sku_prefix: str = "PROD",
    db: Session = Depends(get_db),
) -> ProductResponse:
    """Create a product from a back-office draft."""
    try:
        data = form.to_product_data(sku_prefix=sku_prefix)
        product = CatalogRepository(db).create_product(data)
        db.commit()
        db.refresh(product)
        return ProductResponse.model_validate(product)
    except ProductFormError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.errors)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating product: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to create product")


@app.put("/admin/products/{product_id}", response_model=ProductResponse, dependencies=[Depends(require_admin)])
async def update_product(product_id: str, update: ProductUpdate, db: Session = Depends(get_db)) -> ProductResponse:
    """Update a product. New size rows recompute total stock unless stock is sent too."""
    if update.sizes and "stock" not in update.model_fields_set:
        update.stock = sum(size.stock for size in update.sizes)

    try:
        product = CatalogRepository(db).update_product(product_id, update)
        if not product:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Product {product_id} not found")
        db.commit()
        db.refresh(product)
        return ProductResponse.model_validate(product)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating product {product_id}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to update product")


@app.delete("/admin/products/{product_id}", dependencies=[Depends(require_admin)])
async def delete_product(product_id: str, db: Session = Depends(get_db)) -> dict:
    if not CatalogRepository(db).delete_product(product_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Product {product_id} not found")
    db.commit()
    return {"message": f"Product {product_id} deleted"}


@app.get("/admin/products/import/template", dependencies=[Depends(require_admin)])
async def download_template() -> PlainTextResponse:
    return PlainTextResponse(
        template_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=products_template.csv"},
    )


@app.post("/admin/products/import", response_model=ImportResult, dependencies=[Depends(require_admin)])
async def bulk_import(
    request: Request,
    db: Session = Depends(get_db),
    publisher: BaseKafkaProducer = Depends(get_producer),
) -> ImportResult:
    """Import products from the CSV request body."""
    raw = await request.body()
    try:
        content = raw.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV must be UTF-8 encoded")
    if not content.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV file is empty")

    correlation_id = str(uuid4())

    def report_progress(percent: int) -> None:
        logger.info(f"Bulk import progress: {percent}%", extra={"correlation_id": correlation_id})

    result = BulkImporter(db).import_csv(content, on_progress=report_progress)

    try:
        publisher.publish(
            "catalog.products_imported",
            ProductsImportedEvent(success=result.success, failed=result.failed, correlation_id=correlation_id),
        )
    except Exception as e:
        logger.error(f"Could not publish import summary: {e}")

    return result


@app.post("/admin/products/analyze", response_model=AnalysisDraftResponse, dependencies=[Depends(require_admin)])
def analyze_product(
    request: AnalyzeProductRequest,
    db: Session = Depends(get_db),
    product_analyzer: ProductAnalyzer = Depends(get_analyzer),
):
    """Run AI analysis on product photos and map it onto a new product draft."""
    try:
        result = product_analyzer.analyze(request.images)
    except AIAnalysisError as e:
        logger.error(f"AI analysis failed: {e.details}")
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=e.to_response())

    repo = CatalogRepository(db)
    form = apply_analysis(result, repo.list_categories(), repo.list_brands(), ProductForm(images=request.images))
    return AnalysisDraftResponse(analysis=result.model_dump(), draft=form.model_dump())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.catalog_service_port)
