from __future__ import annotations

import io
from pathlib import Path

from PIL import Image

from books import cover_initials
from media import cached_placeholder_path, render_placeholder


def test_cover_initials() -> None:
    assert cover_initials("El señor de los anillos") == "ES"
    assert cover_initials("dune") == "DU"
    assert cover_initials("X") == "X"
    assert cover_initials("   ") == "—"
    assert cover_initials(None) == "—"


def test_placeholder_is_png_of_requested_size(tmp_path: Path) -> None:
    data = render_placeholder("Dune", size=(120, 180), cache_dir=tmp_path)

    image = Image.open(io.BytesIO(data))
    assert image.format == "PNG"
    assert image.size == (120, 180)
    assert cached_placeholder_path("DU", (120, 180), tmp_path).exists()


def test_placeholder_is_served_from_cache(tmp_path: Path) -> None:
    render_placeholder("Dune", cache_dir=tmp_path)
    path = cached_placeholder_path("DU", (200, 300), tmp_path)
    path.write_bytes(b"cached")

    assert render_placeholder("dune", cache_dir=tmp_path) == b"cached"


def test_placeholder_for_empty_title(tmp_path: Path) -> None:
    data = render_placeholder("", cache_dir=tmp_path)
    assert data.startswith(b"\x89PNG")
