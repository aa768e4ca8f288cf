from __future__ import annotations

import re
from typing import Optional

from filters import Contains, Or

SEARCH_COLUMNS = ["title", "author"]
_WHITESPACE = re.compile(r"\s+")


def normalize_query(raw: Optional[str]) -> str:
    """Trim and collapse runs of whitespace to single spaces."""
    return _WHITESPACE.sub(" ", (raw or "").strip())


def escape_like(text: str) -> str:
    # Backslash first so the escapes added below are not doubled.
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_search_filter(raw: Optional[str]) -> Optional[Or]:
    """Return a title/author contains predicate, or None for a full listing."""
    query = normalize_query(raw)
    if not query:
        return None
    needle = escape_like(query)
    return Or(*(Contains(column, needle) for column in SEARCH_COLUMNS))
