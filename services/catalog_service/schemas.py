from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SizeStock(BaseModel):
    """Per-size stock entry."""

    size: str
    stock: int = Field(ge=0)
    available: bool = True


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name_en: str
    name_ka: str
    slug: str
    description_en: Optional[str] = None
    description_ka: Optional[str] = None
    image: Optional[str] = None


class BrandResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    description_en: Optional[str] = None
    description_ka: Optional[str] = None
    logo: Optional[str] = None
    website: Optional[str] = None


class ProductData(BaseModel):
    """Validated product fields ready to be written."""

    name_en: str
    name_ka: Optional[str] = None
    description_en: str = ""
    description_ka: Optional[str] = None
    price: float = Field(ge=0)
    currency: str = "GEL"
    category_id: Optional[str] = None
    brand_id: Optional[str] = None
    subcategory: Optional[str] = None
    images: List[str] = []
    sizes: List[SizeStock] = []
    stock: int = Field(ge=0)
    min_order_quantity: int = Field(default=1, ge=1)
    sku: Optional[str] = None
    tags: List[str] = []
    weight: Optional[float] = None
    dimensions: Optional[str] = None
    material: Optional[str] = None
    color: Optional[str] = None
    is_active: bool = True
    is_featured: bool = False
    is_new_arrival: bool = False
    is_bestseller: bool = False


class ProductUpdate(BaseModel):
    """Partial update; only the fields sent are changed."""

    name_en: Optional[str] = None
    name_ka: Optional[str] = None
    description_en: Optional[str] = None
    description_ka: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = None
    category_id: Optional[str] = None
    brand_id: Optional[str] = None
    subcategory: Optional[str] = None
    images: Optional[List[str]] = None
    sizes: Optional[List[SizeStock]] = None
    stock: Optional[int] = Field(default=None, ge=0)
    min_order_quantity: Optional[int] = Field(default=None, ge=1)
    sku: Optional[str] = None
    tags: Optional[List[str]] = None
    weight: Optional[float] = None
    dimensions: Optional[str] = None
    material: Optional[str] = None
    color: Optional[str] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    is_new_arrival: Optional[bool] = None
    is_bestseller: Optional[bool] = None


class ProductResponse(BaseModel):
    """Response model for product."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name_en: str
    name_ka: Optional[str] = None
    description_en: str = ""
    description_ka: Optional[str] = None
    price: float
    currency: str
    category_id: Optional[str] = None
    brand_id: Optional[str] = None
    subcategory: Optional[str] = None
    images: List[str] = []
    sizes: List[SizeStock] = []
    stock: int
    min_order_quantity: int = 1
    sku: Optional[str] = None
    tags: List[str] = []
    weight: Optional[float] = None
    dimensions: Optional[str] = None
    material: Optional[str] = None
    color: Optional[str] = None
    is_active: bool
    is_featured: bool
    is_new_arrival: bool
    is_bestseller: bool
    created_at: Optional[datetime] = None
    category: Optional[CategoryResponse] = None
    brand: Optional[BrandResponse] = None


class ProductListResponse(BaseModel):
    items: List[ProductResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class ImportMessage(BaseModel):
    row: int
    message: str


class AnalyzeProductRequest(BaseModel):
    """Images to analyze: public URLs or data URLs."""

    images: List[str] = Field(min_length=1)
    language: str = "en"


class AnalysisResultResponse(BaseModel):
    name_en: str
    name_ka: str
    description_en: str
    description_ka: str
    category: str
    brand: str
    subcategory: str
    material: str
    tags: List[str]
    weight: str
    dimensions: str
    color: str
    confidence: float


class AnalysisDraftResponse(BaseModel):
    """Analysis plus the product form draft it was mapped onto."""

    analysis: AnalysisResultResponse
    draft: Dict[str, Any]


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str
    service: str
    version: str
