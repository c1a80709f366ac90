"""HTTP boundary: request validation and envelopes, with services overridden."""
import asyncio
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from conftest import make_product

from catalog_search import main
from catalog_search.config import Settings
from catalog_search.errors import StoreUnavailableError
from catalog_search.main import app, get_ingestion, get_search_service


@pytest.fixture
def client(service, ingestion, store):
    asyncio.run(
        store.insert_many(
            [
                make_product(id=1, title="Polo Shirt", category="Apparel", brand="Acme", rating=4.8, price=20.0),
                make_product(id=2, title="Pot", category="Pottery", brand="Pogba Inc", rating=4.6, price=12.0),
            ]
        )
    )
    app.dependency_overrides[get_search_service] = lambda: service
    app.dependency_overrides[get_ingestion] = lambda: ingestion
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_search_returns_envelope(client):
    response = client.get("/api/search", params={"q": "polo", "page": 1, "limit": 10})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["total"] == 1
    assert body["data"]["total_pages"] == 1
    assert body["data"]["products"][0]["sku"] == "SKU-1"


@pytest.mark.parametrize(
    "params",
    [
        {"q": "   "},
        {"q": "polo", "page": 0},
        {"q": "polo", "limit": 0},
        {"q": "polo", "limit": 101},
        {"q": "polo", "sortBy": "cheapest"},
    ],
)
def test_search_rejects_malformed_requests(client, params):
    response = client.get("/api/search", params=params)

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_search_accepts_sort_mode(client):
    response = client.get("/api/search", params={"q": "po", "sortBy": "price_asc"})

    prices = [product["price"] for product in response.json()["data"]["products"]]
    assert prices == sorted(prices)


def test_suggest_validation_and_result(client):
    assert client.get("/api/suggest", params={"q": "p"}).status_code == 400
    assert client.get("/api/suggest", params={"q": "po", "limit": 51}).status_code == 400

    response = client.get("/api/suggest", params={"q": "po"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["suggestions"] == ["Polo Shirt", "Pot", "Pottery", "Pogba Inc"]
    assert data["count"] == 4


def test_browse_and_top_rated(client):
    category = client.get("/api/search/category/Pottery").json()
    brand = client.get("/api/search/brand/Acme").json()
    top = client.get("/api/search/top-rated", params={"limit": 1}).json()

    assert [p["id"] for p in category["data"]["products"]] == [2]
    assert [p["id"] for p in brand["data"]["products"]] == [1]
    assert top["data"]["count"] == 1
    assert top["data"]["products"][0]["id"] == 1


def test_bulk_insert_endpoint(client):
    payload = [
        make_product(id=10, title="Kettle").model_dump(mode="json"),
        make_product(id=1, sku="SKU-1").model_dump(mode="json"),
    ]

    response = client.post("/api/index/products", json=payload)

    assert response.status_code == 200
    assert response.json()["data"] == {"inserted": 1, "skipped": 1, "total": 2}
    assert client.get("/api/search", params={"q": "kettle"}).json()["data"]["total"] == 1


def test_bulk_insert_empty_list_is_rejected(client):
    response = client.post("/api/index/products", json=[])

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_stats_and_clear(client):
    assert client.get("/api/index/stats").json()["data"]["total_products"] == 2

    response = client.delete("/api/index/clear")

    assert response.json() == {"success": True, "message": "Deleted 2 products"}


def test_store_outage_maps_to_503(client, service):
    async def broken(field, text):
        raise StoreUnavailableError("timed out")

    service.store.find_containing = broken

    response = client.get("/api/search", params={"q": "anything"})

    assert response.status_code == 503
    assert response.json()["success"] is False


UPLOAD_CSV = (
    "id,title,brand,category,product_type,sku,price,rating,created_at\n"
    "10,Kettle,Acme,Kitchen,Kettle,K-1,30,4.1,2024-01-01T00:00:00\n"
    "11,Duplicate,Acme,Kitchen,Kettle,SKU-1,10,3.0,\n"
    "12,Toaster,Acme,Kitchen,Toaster,T-1,25,4.0,\n"
)


def test_csv_upload_inserts_valid_rows(client):
    response = client.post("/api/upload/csv", files={"file": ("products.csv", UPLOAD_CSV, "text/csv")})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"] == {"inserted": 2, "skipped": 1, "total": 3}
    assert client.get("/api/search", params={"q": "kettle", "sortBy": "newest"}).json()["data"]["total"] == 1


def test_csv_upload_accepts_tsv(client):
    content = "id\ttitle\tbrand\tcategory\tproduct_type\tsku\n20\tLadle\tAcme\tKitchen\tLadle\tL-9\n"

    response = client.post("/api/upload/csv", files={"file": ("products.tsv", content, "text/tab-separated-values")})

    assert response.json()["data"] == {"inserted": 1, "skipped": 0, "total": 1}


def test_csv_upload_rejects_other_extensions(client):
    response = client.post("/api/upload/csv", files={"file": ("products.json", "[]", "application/json")})

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_csv_upload_without_valid_rows_is_rejected(client):
    content = "title,brand,category,product_type,sku\nNo sku,Acme,Kitchen,Kettle,\n"

    response = client.post("/api/upload/csv", files={"file": ("products.csv", content, "text/csv")})

    assert response.status_code == 400
    assert client.get("/api/index/stats").json()["data"]["total_products"] == 2


def test_csv_upload_over_size_limit_is_rejected(client, monkeypatch):
    monkeypatch.setattr(main, "settings", replace(Settings(), max_upload_bytes=16))

    response = client.post("/api/upload/csv", files={"file": ("products.csv", UPLOAD_CSV, "text/csv")})

    assert response.status_code == 400
    assert "exceeds" in response.json()["message"]


def test_csv_upload_removes_temporary_file(client, monkeypatch, tmp_path):
    monkeypatch.setattr(main.tempfile, "tempdir", str(tmp_path))

    client.post("/api/upload/csv", files={"file": ("products.csv", UPLOAD_CSV, "text/csv")})
    client.post("/api/upload/csv", files={"file": ("bad.csv", "title\n\n", "text/csv")})

    assert list(tmp_path.iterdir()) == []
