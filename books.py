from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from location import DisplayMode, Location, location_summary, present

UNKNOWN_AUTHOR = "Autor desconocido"

CATALOG_COLUMNS = [
    "id",
    "title",
    "author",
    "description",
    "cover_url",
    "aisle",
    "shelf",
    "section",
    "location_code",
]
DETAIL_COLUMNS = [
    "id",
    "title",
    "author",
    "description",
    "isbn",
    "cover_url",
    "tags",
    "created_at",
    "aisle",
    "shelf",
    "section",
    "location_code",
]
ZONE_COLUMNS = ["id", "title", "author", "cover_url", "description"]


@dataclass
class Book:
    id: str
    title: str = ""
    author: Optional[str] = None
    description: Optional[str] = None
    isbn: Optional[str] = None
    cover_url: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    created_at: Optional[str] = None
    is_active: bool = True
    location: Location = field(default_factory=Location)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Book":
        tags = row.get("tags") or []
        if isinstance(tags, str):
            tags = [part.strip() for part in tags.split(",") if part.strip()]
        is_active = row.get("is_active")
        return cls(
            id=str(row.get("id")),
            title=str(row.get("title") or ""),
            author=present(row.get("author")),
            description=present(row.get("description")),
            isbn=present(row.get("isbn")),
            cover_url=present(row.get("cover_url")),
            tags=[str(tag) for tag in tags if tag],
            created_at=present(row.get("created_at")),
            is_active=True if is_active is None else bool(is_active),
            location=Location.from_row(row),
        )

    @property
    def initials(self) -> str:
        return cover_initials(self.title)

    @property
    def author_label(self) -> str:
        return self.author or UNKNOWN_AUTHOR


def cover_initials(title: Optional[str]) -> str:
    """Two-letter stand-in for a missing cover."""
    cleaned = (title or "").strip()
    if not cleaned:
        return "—"
    words = cleaned.split()
    first = words[0][0]
    if len(words) > 1:
        second = words[1][0]
    else:
        second = words[0][1:2]
    return (first + second).upper()


def _cover(book: Book) -> Dict[str, Any]:
    return {
        "cover_url": book.cover_url,
        "initials": None if book.cover_url else book.initials,
    }


# --------------------------------------------------------------------------- #
# View models
# --------------------------------------------------------------------------- #
def catalog_card(row: Mapping[str, Any]) -> Dict[str, Any]:
    book = Book.from_row(row)
    return {
        "id": book.id,
        "title": book.title,
        "author": book.author_label,
        "description": book.description,
        **_cover(book),
        "location": location_summary(book.location, DisplayMode.COMPACT),
    }


def zone_card(row: Mapping[str, Any]) -> Dict[str, Any]:
    book = Book.from_row(row)
    return {
        "id": book.id,
        "title": book.title,
        "author": book.author_label,
        "description": book.description,
        **_cover(book),
    }


def book_detail(row: Mapping[str, Any]) -> Dict[str, Any]:
    book = Book.from_row(row)
    return {
        "id": book.id,
        "title": book.title,
        "author": book.author_label,
        "description": book.description,
        "isbn": book.isbn,
        "tags": book.tags,
        "created_at": book.created_at,
        **_cover(book),
        "location": location_summary(book.location, DisplayMode.VERBOSE),
        # Initial values for the location edit form.
        "location_form": {
            "aisle": book.location.aisle or "",
            "shelf": book.location.shelf or "",
            "section": book.location.section or "",
        },
    }
