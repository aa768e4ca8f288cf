from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Response, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from config import configure_logging, settings
from errors import NotFoundError, StoreError, ValidationError
from inventory import InventoryStore
from location import apply_location, location_summary
from media import render_placeholder
from postgrest import PostgrestStore
from views import ZoneView, fetch_book, search_catalog

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Application setup
# -----------------------------------------------------------------------------

app = FastAPI(title="Shelf Locator API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _create_store() -> Any:
    if settings.store_backend == "postgrest":
        return PostgrestStore(
            settings.rest_url,
            settings.rest_key,
            timeout=settings.rest_timeout,
        )
    return InventoryStore(settings.db_path)


def get_store() -> Any:
    if not hasattr(get_store, "_instance"):
        get_store._instance = _create_store()  # type: ignore[attr-defined]
    return get_store._instance  # type: ignore[attr-defined]


@app.on_event("startup")
def _startup() -> None:
    configure_logging()
    logger.info("Using %s store", settings.store_backend)


@app.on_event("shutdown")
def _shutdown() -> None:
    store = getattr(get_store, "_instance", None)
    if store is not None:
        store.close()


# -----------------------------------------------------------------------------
# Pydantic models
# -----------------------------------------------------------------------------


class LocationPayload(BaseModel):
    aisle: str = ""
    shelf: str = ""
    section: Optional[str] = None


class LocationResponse(BaseModel):
    aisle: str
    shelf: str
    section: Optional[str] = None
    location_code: Optional[str] = None
    display: Dict[str, Optional[str]]


class ZoneResponse(BaseModel):
    aisle: str
    shelf: str
    heading: str
    books: List[Dict[str, Any]] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Helper utilities
# -----------------------------------------------------------------------------


def _store_failure(exc: StoreError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    logger.warning("Store request failed: %s", exc.message)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message)


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------


@app.get("/api/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/books")
def list_books(
    q: Optional[str] = Query(None, description="Title or author search"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    store: Any = Depends(get_store),
) -> List[Dict[str, Any]]:
    try:
        return search_catalog(store, q, limit)
    except StoreError as exc:
        raise _store_failure(exc)


@app.get("/api/books/{book_id}")
def get_book(book_id: str, store: Any = Depends(get_store)) -> Dict[str, Any]:
    try:
        return fetch_book(store, book_id)
    except StoreError as exc:
        raise _store_failure(exc)


@app.put("/api/books/{book_id}/location", response_model=LocationResponse)
def update_location(
    book_id: str,
    payload: LocationPayload,
    store: Any = Depends(get_store),
) -> LocationResponse:
    try:
        location = apply_location(store, book_id, payload.aisle, payload.shelf, payload.section)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"field": exc.field, "message": exc.message},
        )
    except StoreError as exc:
        raise _store_failure(exc)
    return LocationResponse(
        aisle=location.aisle or "",
        shelf=location.shelf or "",
        section=location.section,
        location_code=location.location_code,
        display=location_summary(location),
    )


@app.get("/api/books/{book_id}/placeholder.png", response_class=Response)
def placeholder_cover(book_id: str, store: Any = Depends(get_store)) -> Response:
    try:
        row = store.fetch_one("books", ["id", "title"], book_id)
    except StoreError as exc:
        raise _store_failure(exc)
    return Response(content=render_placeholder(row.get("title")), media_type="image/png")


@app.get("/api/zones/{aisle}/{shelf}", response_model=ZoneResponse)
def zone(aisle: str, shelf: str, store: Any = Depends(get_store)) -> ZoneResponse:
    view = ZoneView(store, aisle, shelf)
    if not view.is_valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid zone")
    view.load()
    if view.status == "error":
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=view.error)
    return ZoneResponse(
        aisle=str(view.aisle),
        shelf=str(view.shelf),
        heading=view.heading,
        books=view.books,
    )
