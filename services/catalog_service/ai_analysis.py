"""
AI product analysis.

Sends product photos to an OpenAI vision model and turns the reply into a
bilingual product draft. Any failure raises AIAnalysisError, which carries a
generic tactical-gear fallback the back office can start editing from.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel

from services.catalog_service.product_forms import ProductForm

logger = logging.getLogger(__name__)

ANALYSIS_MODEL = "gpt-4o"
MAX_TOKENS = 1000
TEMPERATURE = 0.3
DEFAULT_CONFIDENCE = 0.8

REQUIRED_FIELDS = (
    "name_en",
    "name_ka",
    "description_en",
    "description_ka",
    "category",
    "brand",
    "subcategory",
    "material",
    "tags",
    "weight",
    "dimensions",
    "color",
    "confidence",
)

ANALYSIS_PROMPT = """Analyze these product images and extract detailed product information. Return a JSON object with the following structure:

{
  "name_en": "Product name in English",
  "name_ka": "Product name in Georgian (translated)",
  "description_en": "Detailed product description in English (2-3 sentences, focus on features, materials, use cases)",
  "description_ka": "Detailed product description in Georgian (translated)",
  "category": "Main category (e.g., Boots, Knives, Backpacks, Gloves, etc.)",
  "brand": "Brand name if visible or identifiable from logos/markings, or empty string if no brand visible",
  "subcategory": "Specific subcategory (e.g., Tactical Boots, Hiking Boots, Combat Boots)",
  "material": "Primary materials used (e.g., Leather, Nylon, Steel, etc.)",
  "tags": ["array", "of", "relevant", "tags", "like", "waterproof", "tactical", "military"],
  "weight": "Estimated weight with unit (e.g., 1.2 kg)",
  "dimensions": "Estimated dimensions (e.g., 25 x 15 x 10 cm)",
  "color": "Primary color(s) of the product",
  "confidence": 0.85
}

For Georgian translations, use appropriate Georgian text. Focus on tactical/military/outdoor equipment context. Be specific about materials, features, and intended use. Confidence should be between 0.7-0.95 based on image clarity and identifiable features."""

FALLBACK_ANALYSIS: Dict[str, Any] = {
    "name_en": "Tactical Product",
    "name_ka": "ტაქტიკური პროდუქტი",
    "description_en": (
        "High-quality tactical equipment designed for professional use. "
        "Features durable materials and reliable performance."
    ),
    "description_ka": (
        "მაღალი ხარისხის ტაქტიკური აღჭურვილობა პროფესიონალური გამოყენებისთვის. "
        "გამოირჩევა გამძლე მასალებით და საიმედო მუშაობით."
    ),
    "category": "Tactical",
    "brand": "Unknown",
    "subcategory": "Professional Equipment",
    "material": "Synthetic",
    "tags": ["tactical", "professional", "durable"],
    "weight": "1.0 kg",
    "dimensions": "25 x 15 x 10 cm",
    "color": "Black",
    "confidence": 0.7,
}

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_WEIGHT = re.compile(r"(\d+(?:[.,]\d+)?)\s*(kg|g)?", re.IGNORECASE)


class AnalysisResult(BaseModel):
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


class AIAnalysisError(Exception):
    """Analysis failed; ``fallback`` holds a usable default draft."""

    def __init__(self, details: str):
        super().__init__(details)
        self.details = details
        self.fallback = AnalysisResult(**FALLBACK_ANALYSIS)

    def to_response(self) -> Dict[str, Any]:
        return {"error": "AI analysis failed", "details": self.details, "fallback": self.fallback.model_dump()}


def extract_json(text: str) -> Dict[str, Any]:
    """Pull the JSON object out of a model reply that may wrap it in prose or code fences."""
    match = _JSON_OBJECT.search(text)
    try:
        data = json.loads(match.group(0) if match else text)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse AI response: {text[:200]}")
        raise AIAnalysisError("Invalid JSON response from AI") from e
    if not isinstance(data, dict):
        raise AIAnalysisError("Invalid JSON response from AI")
    return data


def _coerce_tags(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(tag).strip() for tag in value if str(tag).strip()]
    return []


def _coerce_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        value = DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, float(value)))


def parse_analysis(text: Optional[str]) -> AnalysisResult:
    """Validate a raw model reply into an AnalysisResult."""
    if not text:
        raise AIAnalysisError("No analysis received from AI")

    data = extract_json(text)
    for field in REQUIRED_FIELDS:
        if field not in data:
            raise AIAnalysisError(f"Missing required field: {field}")

    data["tags"] = _coerce_tags(data["tags"])
    data["confidence"] = _coerce_confidence(data["confidence"])
    for field in REQUIRED_FIELDS:
        if field not in ("tags", "confidence"):
            data[field] = "" if data[field] is None else str(data[field])
    return AnalysisResult(**{field: data[field] for field in REQUIRED_FIELDS})


class ProductAnalyzer:
    """OpenAI vision client for product photos."""

    def __init__(self, api_key: Optional[str] = None, model: str = ANALYSIS_MODEL, client=None):
        self.api_key = api_key
        self.model = model
        self._client = client

    @property
    def client(self):
        """Lazy initialization of OpenAI client."""
        if self._client is None:
            import openai

            self._client = openai.OpenAI(api_key=self.api_key)
        return self._client

    def build_messages(self, images: Sequence[str]) -> List[Dict[str, Any]]:
        content: List[Dict[str, Any]] = [{"type": "text", "text": ANALYSIS_PROMPT}]
        content.extend({"type": "image_url", "image_url": {"url": image, "detail": "high"}} for image in images)
        return [{"role": "user", "content": content}]

    def analyze(self, images: Sequence[str]) -> AnalysisResult:
        """Analyze product images. Raises AIAnalysisError on any failure."""
        if not images:
            raise AIAnalysisError("No images provided")

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=self.build_messages(images),
                max_tokens=MAX_TOKENS,
                temperature=TEMPERATURE,
            )
            text = response.choices[0].message.content if response.choices else None
        except AIAnalysisError:
            raise
        except Exception as e:
            logger.error(f"AI Analysis Error: {e}")
            raise AIAnalysisError(str(e)) from e

        result = parse_analysis(text)
        logger.info(f"AI analysis finished with confidence {result.confidence:.2f}")
        return result


def parse_weight_kg(weight: str) -> Optional[float]:
    """'1.2 kg' -> 1.2, '500 g' -> 0.5."""
    match = _WEIGHT.search(weight or "")
    if not match:
        return None
    value = float(match.group(1).replace(",", "."))
    if (match.group(2) or "").lower() == "g":
        value = value / 1000
    return round(value, 3)


def apply_analysis(result: AnalysisResult, categories: Sequence[Any], brands: Sequence[Any], form: Optional[ProductForm] = None) -> ProductForm:
    """Fill a product draft from an analysis, matching category and brand by name."""
    form = form.model_copy(deep=True) if form else ProductForm()

    category_id = None
    needle = result.category.strip().lower()
    if needle:
        for category in categories:
            if needle in (category.name_en or "").lower() or needle in (category.name_ka or "").lower():
                category_id = category.id
                break

    brand_id = None
    needle = result.brand.strip().lower()
    if needle:
        for brand in brands:
            if needle in (brand.name or "").lower():
                brand_id = brand.id
                break

    form.name_en = result.name_en
    form.name_ka = result.name_ka
    form.description_en = result.description_en
    form.description_ka = result.description_ka
    form.category_id = category_id
    form.brand_id = brand_id
    form.subcategory = result.subcategory
    form.material = result.material
    form.tags = list(result.tags)
    form.weight = parse_weight_kg(result.weight)
    form.dimensions = result.dimensions
    form.color = result.color
    return form
