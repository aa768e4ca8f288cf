from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from config import settings
from errors import NotFoundError, StoreError
from filters import And, Contains, Eq, Or

logger = logging.getLogger(__name__)

BOOK_COLUMNS = [
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
    "is_active",
]
TABLE_COLUMNS: Dict[str, List[str]] = {"books": BOOK_COLUMNS}
IMMUTABLE_COLUMNS = {"id", "created_at"}

# Columns added after the first release of the books table.
LOCATION_COLUMN_DDL = {
    "aisle": "TEXT",
    "shelf": "TEXT",
    "section": "TEXT",
    "location_code": "TEXT",
    "is_active": "INTEGER NOT NULL DEFAULT 1",
}


class InventoryStore:
    """SQLite-backed store for the local library catalog."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or settings.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.create_function("casefold", 1, _casefold, deterministic=True)
        self._ensure_schema()

    # --------------------------------------------------------------------- #
    # Schema
    # --------------------------------------------------------------------- #
    def _ensure_schema(self) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS books (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL DEFAULT '',
                    author TEXT,
                    description TEXT,
                    isbn TEXT,
                    cover_url TEXT,
                    tags TEXT,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    aisle TEXT,
                    shelf TEXT,
                    section TEXT,
                    location_code TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1
                );
                """
            )
        self._ensure_location_columns()
        with self._lock, self._conn:
            self._conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_books_title
                ON books(title COLLATE NOCASE);
                """
            )
            self._conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_books_author
                ON books(author COLLATE NOCASE);
                """
            )
            self._conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_books_zone
                ON books(aisle, shelf);
                """
            )

    def _ensure_location_columns(self) -> None:
        """Add the location columns to a books table created without them."""
        with self._lock:
            info = self._conn.execute("PRAGMA table_info('books');").fetchall()
            existing = {row["name"] for row in info}
            missing = [name for name in LOCATION_COLUMN_DDL if name not in existing]
            if not missing:
                return
            with self._conn:
                for name in missing:
                    self._conn.execute(
                        f"ALTER TABLE books ADD COLUMN {name} {LOCATION_COLUMN_DDL[name]};"
                    )
        logger.info("Added columns %s to %s", ", ".join(missing), self.db_path)

    # --------------------------------------------------------------------- #
    # Utility helpers
    # --------------------------------------------------------------------- #
    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @staticmethod
    def _check_columns(table: str, columns: Iterable[str]) -> List[str]:
        known = TABLE_COLUMNS.get(table)
        if known is None:
            raise StoreError(f"Unknown table: {table}")
        selected = list(columns)
        unknown = [column for column in selected if column not in known]
        if unknown:
            raise StoreError(f"Unknown column(s) for {table}: {', '.join(unknown)}")
        return selected

    def _compile(self, table: str, clause: Any, params: List[Any]) -> str:
        if isinstance(clause, Eq):
            self._check_columns(table, [clause.column])
            params.append(_encode(clause.column, clause.value))
            return f"{clause.column} = ?"
        if isinstance(clause, Contains):
            self._check_columns(table, [clause.column])
            params.append(f"%{clause.needle}%")
            return f"casefold(COALESCE({clause.column}, '')) LIKE casefold(?) ESCAPE '\\'"
        if isinstance(clause, (Or, And)):
            joiner = " OR " if isinstance(clause, Or) else " AND "
            parts = [self._compile(table, child, params) for child in clause.clauses]
            return "(" + joiner.join(parts) + ")"
        raise StoreError(f"Unsupported filter: {clause!r}")

    # --------------------------------------------------------------------- #
    # Query capability
    # --------------------------------------------------------------------- #
    def fetch_many(
        self,
        table: str,
        columns: Sequence[str],
        filter: Any = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        selected = self._check_columns(table, columns)
        params: List[Any] = []
        sql = f"SELECT {', '.join(selected)} FROM {table}"
        if filter is not None:
            sql += " WHERE " + self._compile(table, filter, params)
        sql += " ORDER BY lower(title), id"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        try:
            with self._lock:
                rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return [_decode(row) for row in rows]

    def fetch_one(self, table: str, columns: Sequence[str], match_id: str) -> Dict[str, Any]:
        selected = self._check_columns(table, columns)
        try:
            with self._lock:
                row = self._conn.execute(
                    f"SELECT {', '.join(selected)} FROM {table} WHERE id = ?",
                    (match_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        if row is None:
            raise NotFoundError(f"No row in {table} with id {match_id}")
        return _decode(row)

    def update(self, table: str, patch: Dict[str, Any], match_id: str) -> Dict[str, Any]:
        columns = self._check_columns(table, patch.keys())
        if not columns:
            raise StoreError("Empty update.")
        frozen = IMMUTABLE_COLUMNS.intersection(columns)
        if frozen:
            raise StoreError(f"Column(s) cannot be updated: {', '.join(sorted(frozen))}")
        assignments = ", ".join(f"{column} = ?" for column in columns)
        values = [_encode(column, patch[column]) for column in columns]
        values.append(match_id)
        try:
            with self._lock, self._conn:
                cursor = self._conn.execute(
                    f"UPDATE {table} SET {assignments} WHERE id = ?;",
                    values,
                )
                if cursor.rowcount == 0:
                    raise NotFoundError(f"No row in {table} with id {match_id}")
                row = self._conn.execute(
                    f"SELECT {', '.join(TABLE_COLUMNS[table])} FROM {table} WHERE id = ?",
                    (match_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return _decode(row)

    # --------------------------------------------------------------------- #
    # Book management
    # --------------------------------------------------------------------- #
    def add_book(self, record: Dict[str, Any]) -> str:
        """Insert a book and return its generated id."""
        book_id = str(record.get("id") or uuid.uuid4().hex)
        data = {key: value for key, value in record.items() if key != "id"}
        columns = ["id"] + self._check_columns("books", data.keys())
        values = [book_id] + [_encode(column, data[column]) for column in columns[1:]]
        placeholders = ", ".join("?" for _ in columns)
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    f"INSERT INTO books ({', '.join(columns)}) VALUES ({placeholders});",
                    values,
                )
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return book_id

    def delete_book(self, book_id: str) -> None:
        try:
            with self._lock, self._conn:
                self._conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc


def _casefold(value: Any) -> Any:
    # SQLite's lower() and LIKE only fold ASCII letters.
    return value.casefold() if isinstance(value, str) else value


def _encode(column: str, value: Any) -> Any:
    if column == "tags" and value is not None:
        return json.dumps(list(value))
    if column == "is_active" and value is not None:
        return 1 if value else 0
    return value


def _decode(row: sqlite3.Row) -> Dict[str, Any]:
    record = dict(row)
    if "tags" in record:
        raw = record["tags"]
        try:
            record["tags"] = json.loads(raw) if raw else []
        except ValueError:
            record["tags"] = [part.strip() for part in str(raw).split(",") if part.strip()]
    if "is_active" in record and record["is_active"] is not None:
        record["is_active"] = bool(record["is_active"])
    return record


# ------------------------------------------------------------------------------
# Convenience factory
# ------------------------------------------------------------------------------
def get_store(db_path: Optional[Path] = None) -> InventoryStore:
    return InventoryStore(db_path=db_path)
