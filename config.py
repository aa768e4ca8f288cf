from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

APP_DIR = Path.home() / ".shelf_locator"


def _path_from_env(name: str, default: Path) -> Path:
    value = os.getenv(name)
    return Path(value).expanduser() if value else default


@dataclass
class Settings:
    # Store selection: "sqlite" (local file) or "postgrest" (hosted REST store)
    store_backend: str = field(default_factory=lambda: os.getenv("LOCATOR_STORE", "sqlite").lower())
    db_path: Path = field(
        default_factory=lambda: _path_from_env("LOCATOR_DB_PATH", APP_DIR / "library.db")
    )
    rest_url: str = field(default_factory=lambda: os.getenv("LOCATOR_REST_URL", ""))
    rest_key: str = field(default_factory=lambda: os.getenv("LOCATOR_REST_KEY", ""))
    rest_timeout: float = field(
        default_factory=lambda: float(os.getenv("LOCATOR_REST_TIMEOUT", "15"))
    )

    # Catalog
    page_size: int = field(default_factory=lambda: int(os.getenv("LOCATOR_PAGE_SIZE", "60")))
    search_debounce_ms: int = field(
        default_factory=lambda: int(os.getenv("LOCATOR_SEARCH_DEBOUNCE_MS", "250"))
    )

    # Placeholder covers
    cache_dir: Path = field(
        default_factory=lambda: _path_from_env("LOCATOR_CACHE_DIR", APP_DIR / "placeholders")
    )

    log_level: str = field(default_factory=lambda: os.getenv("LOCATOR_LOG_LEVEL", "INFO").upper())

    @property
    def search_debounce(self) -> float:
        return self.search_debounce_ms / 1000.0


settings = Settings()


def configure_logging(level: str = "") -> None:
    logging.basicConfig(
        level=level or settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
