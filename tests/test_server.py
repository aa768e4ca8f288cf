from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from config import settings
from errors import StoreError
from inventory import InventoryStore
from server import app, get_store


def _reset_store_singleton() -> None:
    if hasattr(get_store, "_instance"):
        instance = getattr(get_store, "_instance")
        instance.close()
        delattr(get_store, "_instance")


@pytest.fixture
def store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> InventoryStore:
    _reset_store_singleton()
    monkeypatch.setattr(settings, "cache_dir", tmp_path / "placeholders")
    test_store = InventoryStore(db_path=tmp_path / "library.db")
    app.dependency_overrides[get_store] = lambda: test_store
    yield test_store
    test_store.close()
    app.dependency_overrides.pop(get_store, None)
    _reset_store_singleton()


@pytest.fixture
def client(store: InventoryStore) -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


def _add_book(store: InventoryStore, book_id: str, title: str, **extra: Any) -> str:
    return store.add_book({"id": book_id, "title": title, **extra})


def test_catalog_search_by_title_or_author(client: TestClient, store: InventoryStore) -> None:
    _add_book(store, "1", "The Hobbit", author="J.R.R. Tolkien", aisle="5", shelf="B-2")
    _add_book(store, "2", "Rayuela", author="Julio Cortázar")
    _add_book(store, "3", "50% off_ everything")

    response = client.get("/api/books", params={"q": "  tolkien  "})
    assert response.status_code == 200
    books = response.json()
    assert [book["id"] for book in books] == ["1"]
    assert books[0]["location"] == {"state": "structured", "text": "P5 · B-2", "placeholder": None}

    response = client.get("/api/books", params={"q": "50% off_"})
    assert [book["id"] for book in response.json()] == ["3"]

    response = client.get("/api/books", params={"q": "   "})
    assert len(response.json()) == 3


def test_book_detail_and_not_found(client: TestClient, store: InventoryStore) -> None:
    _add_book(store, "1", "El Aleph", isbn="9788499089515", tags=["cuentos"], location_code="LIV-07")

    response = client.get("/api/books/1")
    assert response.status_code == 200
    payload = response.json()
    assert payload["location"]["text"] == "LIV-07"
    assert payload["tags"] == ["cuentos"]
    assert payload["isbn"] == "9788499089515"
    assert payload["initials"] == "EA"

    response = client.get("/api/books/missing")
    assert response.status_code == 404


def test_update_location_normalizes_input(client: TestClient, store: InventoryStore) -> None:
    _add_book(store, "1", "Ficciones")

    response = client.put("/api/books/1/location", json={"aisle": " 3 ", "shelf": "a-3", "section": ""})

    assert response.status_code == 200
    payload = response.json()
    assert (payload["aisle"], payload["shelf"], payload["section"]) == ("3", "A-3", None)
    assert payload["display"]["text"] == "Estante A-3 · Pasillo 3"
    row = store.fetch_one("books", ["aisle", "shelf", "section"], "1")
    assert row == {"aisle": "3", "shelf": "A-3", "section": None}


def test_update_location_validation_and_missing_book(client: TestClient, store: InventoryStore) -> None:
    _add_book(store, "1", "Ficciones", aisle="1", shelf="A-1")

    response = client.put("/api/books/1/location", json={"aisle": "", "shelf": "A-3"})
    assert response.status_code == 422
    assert response.json()["detail"] == {"field": "aisle", "message": "aisle required"}

    response = client.put("/api/books/1/location", json={"aisle": "2", "shelf": "A3"})
    assert response.json()["detail"] == {"field": "shelf", "message": "shelf format invalid"}

    # Nothing was written by the rejected submissions.
    assert store.fetch_one("books", ["aisle", "shelf"], "1") == {"aisle": "1", "shelf": "A-1"}

    response = client.put("/api/books/missing/location", json={"aisle": "2", "shelf": "A-3"})
    assert response.status_code == 404


def test_zone_listing(client: TestClient, store: InventoryStore) -> None:
    _add_book(store, "1", "On shelf", aisle="living", shelf="A-3")
    _add_book(store, "2", "Withdrawn", aisle="living", shelf="A-3", is_active=False)
    _add_book(store, "3", "Other aisle", aisle="study", shelf="A-3")

    response = client.get("/api/zones/living/a-3")
    assert response.status_code == 200
    payload = response.json()
    assert payload["heading"] == "Estante A-3"
    assert payload["shelf"] == "A-3"
    assert [book["id"] for book in payload["books"]] == ["1"]

    response = client.get("/api/zones/%20/A-3")
    assert response.status_code == 400


def test_placeholder_cover(client: TestClient, store: InventoryStore) -> None:
    _add_book(store, "1", "Cien años de soledad")

    response = client.get("/api/books/1/placeholder.png")

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content.startswith(b"\x89PNG")


class BrokenStore:
    def fetch_many(self, *args: Any, **kwargs: Any) -> Any:
        raise StoreError("connection reset")

    def fetch_one(self, *args: Any, **kwargs: Any) -> Any:
        raise StoreError("connection reset")

    def update(self, *args: Any, **kwargs: Any) -> Any:
        raise StoreError("connection reset")


def test_store_failures_map_to_bad_gateway(client: TestClient) -> None:
    app.dependency_overrides[get_store] = lambda: BrokenStore()

    assert client.get("/api/books").status_code == 502
    assert client.get("/api/books/1").json()["detail"] == "connection reset"
    assert client.put("/api/books/1/location", json={"aisle": "1", "shelf": "A-1"}).status_code == 502
    assert client.get("/api/zones/1/A-1").status_code == 502
