from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from errors import ValidationError

logger = logging.getLogger(__name__)

SHELF_PATTERN = re.compile(r"^[A-Z]-[0-9]+$")
NOT_SET_PLACEHOLDER = "Ubicación no cargada"


class DisplayMode(str, Enum):
    VERBOSE = "verbose"
    COMPACT = "compact"


class LocationState(Enum):
    NOT_SET = "not_set"


NOT_SET = LocationState.NOT_SET


def present(value: Any) -> Optional[str]:
    """Return ``value`` as text, or None when it carries nothing.

    Numbers are kept (aisle ``0`` is a real aisle); blank strings are absent.
    """
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


@dataclass(frozen=True)
class Location:
    aisle: Optional[str] = None
    shelf: Optional[str] = None
    section: Optional[str] = None
    location_code: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Location":
        return cls(
            aisle=present(row.get("aisle")),
            shelf=present(row.get("shelf")),
            section=present(row.get("section")),
            location_code=present(row.get("location_code")),
        )

    @property
    def is_structured(self) -> bool:
        return self.aisle is not None and self.shelf is not None

    def as_patch(self) -> Dict[str, Optional[str]]:
        return {"aisle": self.aisle, "shelf": self.shelf, "section": self.section}


# --------------------------------------------------------------------------- #
# Normalizer
# --------------------------------------------------------------------------- #
def normalize_shelf(value: Optional[str]) -> str:
    shelf = (value or "").strip().upper()
    if not shelf:
        raise ValidationError("shelf required", field="shelf")
    if not SHELF_PATTERN.match(shelf):
        raise ValidationError("shelf format invalid", field="shelf")
    return shelf


def normalize_location(
    aisle: Optional[str],
    shelf: Optional[str],
    section: Optional[str] = None,
) -> Location:
    """Validate raw form input and return the canonical location."""
    aisle_value = (aisle or "").strip()
    if not aisle_value:
        raise ValidationError("aisle required", field="aisle")
    shelf_value = normalize_shelf(shelf)
    section_value = (section or "").strip() or None
    return Location(aisle=aisle_value, shelf=shelf_value, section=section_value)


def apply_location(
    store: Any,
    book_id: str,
    aisle: Optional[str],
    shelf: Optional[str],
    section: Optional[str] = None,
) -> Location:
    """Normalize the input and write it to ``book_id`` in a single update.

    Raises ValidationError before touching the store, or StoreError /
    NotFoundError from the store itself.
    """
    location = normalize_location(aisle, shelf, section)
    row = store.update("books", location.as_patch(), book_id)
    logger.info("Updated location of book %s to %s", book_id, location.as_patch())
    applied = Location.from_row(row) if row else location
    # location_code is not part of the patch; keep whatever the store reports.
    return Location(
        aisle=location.aisle,
        shelf=location.shelf,
        section=location.section,
        location_code=applied.location_code,
    )


# --------------------------------------------------------------------------- #
# Display resolver
# --------------------------------------------------------------------------- #
def resolve_location(
    location: Location,
    mode: DisplayMode = DisplayMode.VERBOSE,
) -> Union[str, LocationState]:
    mode = DisplayMode(mode)
    if location.location_code is not None:
        return location.location_code
    if not location.is_structured:
        return NOT_SET
    if mode is DisplayMode.COMPACT:
        return f"P{location.aisle} · {location.shelf}"
    text = f"Estante {location.shelf} · Pasillo {location.aisle}"
    if location.section is not None:
        text += f" · {location.section}"
    return text


def location_summary(
    location: Location,
    mode: DisplayMode = DisplayMode.VERBOSE,
) -> Dict[str, Optional[str]]:
    """Serializable form of :func:`resolve_location` for view models."""
    resolved = resolve_location(location, mode)
    if resolved is NOT_SET:
        return {"state": NOT_SET.value, "text": None, "placeholder": NOT_SET_PLACEHOLDER}
    state = "code" if location.location_code is not None else "structured"
    return {"state": state, "text": resolved, "placeholder": None}
