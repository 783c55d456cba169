import json

import pytest
from fastapi.testclient import TestClient

from services.catalog_service.ai_analysis import ProductAnalyzer
from services.catalog_service.main import app, get_analyzer, get_producer
from shared.database import get_db
from tests.conftest import ADMIN_HEADERS
from tests.test_ai_analysis import REPLY, FakeCompletions


@pytest.fixture
def client(db, catalog, producer):
    def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_producer] = lambda: producer
    yield TestClient(app)
    app.dependency_overrides.clear()


def use_analyzer(content=None, error=None):
    from types import SimpleNamespace

    client = SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(content, error)))
    app.dependency_overrides[get_analyzer] = lambda: ProductAnalyzer(client=client)


def test_list_products_with_pagination(client):
    body = client.get("/products", params={"page_size": 2, "sort": "price_asc"}).json()

    assert body["total"] == 3
    assert body["total_pages"] == 2
    assert [item["name_en"] for item in body["items"]] == ["Assault Gloves", "Utility Knife"]


def test_unknown_sort_rejected(client):
    assert client.get("/products", params={"sort": "popular"}).status_code == 400


def test_inactive_product_is_hidden(client):
    assert client.get("/products/p-boots").json()["category"]["slug"] == "boots"
    assert client.get("/products/p-retired").status_code == 404


def test_categories_and_brands(client):
    assert len(client.get("/categories").json()) == 2
    assert [brand["name"] for brand in client.get("/brands").json()] == ["Gerber", "Magnum"]


def test_admin_endpoints_require_admin(client):
    assert client.post("/admin/products", json={"name_en": "X"}).status_code == 403
    response = client.post("/admin/products", json={"name_en": "X"}, headers={"X-User-Email": "someone@example.ge"})
    assert response.status_code == 403


def test_create_product_from_form(client):
    form = {
        "name_en": "Tactical Vest",
        "price": 180,
        "sizes": [{"size": "M", "stock": 2}, {"size": "L", "stock": 3}],
        "images": ["https://img/vest.jpg"],
    }

    response = client.post("/admin/products", json=form, headers=ADMIN_HEADERS)

    assert response.status_code == 201
    body = response.json()
    assert body["stock"] == 5
    assert body["sku"].startswith("PROD-")


def test_create_product_reports_missing_fields(client):
    response = client.post("/admin/products", json={"price": 10}, headers=ADMIN_HEADERS)

    assert response.status_code == 400
    assert response.json()["detail"] == ["name_en is required", "stock is required"]


def test_update_recomputes_stock_from_sizes(client):
    response = client.put(
        "/admin/products/p-boots",
        json={"sizes": [{"size": "42", "stock": 1}, {"size": "44", "stock": 1}]},
        headers=ADMIN_HEADERS,
    )

    assert response.json()["stock"] == 2
    assert client.put("/admin/products/missing", json={"price": 1}, headers=ADMIN_HEADERS).status_code == 404


def test_delete_product(client):
    assert client.delete("/admin/products/p-gloves", headers=ADMIN_HEADERS).status_code == 200
    assert client.delete("/admin/products/p-gloves", headers=ADMIN_HEADERS).status_code == 404


def test_import_template_download(client):
    response = client.get("/admin/products/import/template", headers=ADMIN_HEADERS)

    assert response.headers["content-type"].startswith("text/csv")
    assert response.text.startswith("name_en,name_ka,")


def test_bulk_import_endpoint(client, producer):
    from services.catalog_service.bulk_import import template_csv

    response = client.post(
        "/admin/products/import",
        content=template_csv().encode("utf-8"),
        headers={**ADMIN_HEADERS, "Content-Type": "text/csv"},
    )

    assert response.status_code == 200
    assert response.json()["success"] == 1
    topic, event = producer.published[-1]
    assert topic == "catalog.products_imported"
    assert event.success == 1


def test_bulk_import_rejects_empty_body(client):
    response = client.post("/admin/products/import", content=b"  ", headers=ADMIN_HEADERS)

    assert response.status_code == 400


def test_analyze_returns_draft(client):
    use_analyzer(json.dumps(REPLY))

    response = client.post("/admin/products/analyze", json={"images": ["https://img/1.jpg"]}, headers=ADMIN_HEADERS)

    body = response.json()
    assert response.status_code == 200
    assert body["draft"]["category_id"] == "cat-boots"
    assert body["draft"]["images"] == ["https://img/1.jpg"]


def test_analyze_failure_returns_fallback(client):
    use_analyzer("I cannot help with that")

    response = client.post("/admin/products/analyze", json={"images": ["https://img/1.jpg"]}, headers=ADMIN_HEADERS)

    assert response.status_code == 500
    body = response.json()
    assert body["details"] == "Invalid JSON response from AI"
    assert body["fallback"]["name_en"] == "Tactical Product"
