from __future__ import annotations

import hashlib
import io
import logging
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from books import cover_initials
from config import settings

logger = logging.getLogger(__name__)

PLACEHOLDER_SIZE = (200, 300)
BACKGROUND_TOP = (249, 250, 251)
BACKGROUND_BOTTOM = (229, 231, 235)
TEXT_COLOR = (55, 65, 81)


def _safe_name(identifier: str) -> str:
    return hashlib.sha1(identifier.encode("utf-8")).hexdigest()


def cached_placeholder_path(initials: str, size: Tuple[int, int], cache_dir: Optional[Path] = None) -> Path:
    directory = Path(cache_dir or settings.cache_dir)
    return directory / f"{_safe_name(f'{initials}:{size[0]}x{size[1]}')}.png"


def _font(size: int) -> ImageFont.ImageFont:
    try:
        return ImageFont.load_default(size=size)
    except TypeError:
        # Pillow < 10.1 has no sized default font.
        return ImageFont.load_default()


def _drawable(text: str, font: ImageFont.ImageFont) -> str:
    # Bitmap fonts only cover latin-1.
    if isinstance(font, ImageFont.FreeTypeFont):
        return text
    try:
        text.encode("latin-1")
    except UnicodeEncodeError:
        return "?"
    return text


def _draw_placeholder(initials: str, size: Tuple[int, int]) -> Image.Image:
    width, height = size
    image = Image.new("RGB", size, BACKGROUND_TOP)
    draw = ImageDraw.Draw(image)
    for y in range(height):
        ratio = y / max(height - 1, 1)
        color = tuple(
            int(top + (bottom - top) * ratio)
            for top, bottom in zip(BACKGROUND_TOP, BACKGROUND_BOTTOM)
        )
        draw.line([(0, y), (width, y)], fill=color)

    font = _font(max(width // 5, 10))
    initials = _drawable(initials, font)
    left, top, right, bottom = draw.textbbox((0, 0), initials, font=font)
    text_w, text_h = right - left, bottom - top
    draw.text(
        ((width - text_w) / 2 - left, (height - text_h) / 2 - top),
        initials,
        fill=TEXT_COLOR,
        font=font,
    )
    return image


def render_placeholder(
    title: Optional[str],
    *,
    size: Tuple[int, int] = PLACEHOLDER_SIZE,
    cache_dir: Optional[Path] = None,
) -> bytes:
    """Return PNG bytes of a blank cover showing the title's initials."""
    initials = cover_initials(title)
    target_path = cached_placeholder_path(initials, size, cache_dir)
    if target_path.exists():
        try:
            return target_path.read_bytes()
        except OSError:
            pass

    buffer = io.BytesIO()
    _draw_placeholder(initials, size).save(buffer, format="PNG")
    data = buffer.getvalue()

    try:
        target_path.parent.mkdir(parents=True, exist_ok=True)
        with open(target_path, "wb") as handle:
            handle.write(data)
    except OSError as error:
        logger.debug("Could not cache placeholder %s: %s", target_path, error)
    return data
