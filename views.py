from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from books import CATALOG_COLUMNS, DETAIL_COLUMNS, ZONE_COLUMNS, book_detail, catalog_card, zone_card
from config import settings
from errors import NotFoundError, StoreError, ValidationError
from filters import And, Eq
from location import Location, apply_location, present
from search import build_search_filter, normalize_query

logger = logging.getLogger(__name__)

Task = Callable[[], None]

ZONE_LOAD_FAILED = "No se pudieron cargar los libros."


def run_in_thread(task: Task) -> None:
    threading.Thread(target=task, daemon=True).start()


class RequestGuard:
    """Remembers the latest request so late results can be recognised as stale.

    Every ``begin()`` issues a new epoch; a result may be applied only while
    its epoch is still the newest and the owning view has not been closed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._epoch = 0
        self._closed = False

    def begin(self) -> int:
        with self._lock:
            self._epoch += 1
            return self._epoch

    def is_current(self, epoch: int) -> bool:
        with self._lock:
            return not self._closed and epoch == self._epoch

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._epoch += 1

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed


# --------------------------------------------------------------------------- #
# Store queries shared by the views and the HTTP layer
# --------------------------------------------------------------------------- #
def search_catalog(store: Any, query: Optional[str], limit: Optional[int] = None) -> List[Dict[str, Any]]:
    rows = store.fetch_many(
        "books",
        CATALOG_COLUMNS,
        filter=build_search_filter(query),
        limit=limit or settings.page_size,
    )
    return [catalog_card(row) for row in rows]


def fetch_book(store: Any, book_id: str) -> Dict[str, Any]:
    return book_detail(store.fetch_one("books", DETAIL_COLUMNS, book_id))


def fetch_zone(store: Any, aisle: str, shelf: str) -> List[Dict[str, Any]]:
    criteria = And(Eq("aisle", aisle), Eq("shelf", shelf), Eq("is_active", True))
    rows = store.fetch_many("books", ZONE_COLUMNS, filter=criteria)
    return [zone_card(row) for row in rows]


# --------------------------------------------------------------------------- #
# Catalog
# --------------------------------------------------------------------------- #
class CatalogView:
    """Searchable grid. Input is debounced and only the newest search applies."""

    def __init__(
        self,
        store: Any,
        *,
        debounce: Optional[float] = None,
        page_size: Optional[int] = None,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        self.store = store
        self.debounce = settings.search_debounce if debounce is None else debounce
        self.page_size = page_size or settings.page_size
        self._timer_factory = timer_factory
        self._timer: Optional[Any] = None
        self._guard = RequestGuard()
        self._lock = threading.Lock()

        self.query = ""
        self.active_query = ""
        self.books: List[Dict[str, Any]] = []
        self.loading = False
        self.error: Optional[str] = None

    def set_query(self, text: str) -> None:
        """Record new search input; the store is queried once input settles."""
        with self._lock:
            if self._guard.closed:
                return
            self.query = text
            epoch = self._guard.begin()
            if self._timer is not None:
                self._timer.cancel()
            timer = self._timer_factory(self.debounce, self._load, args=(epoch, text))
            timer.daemon = True
            self._timer = timer
        timer.start()

    def refresh(self) -> None:
        """Load the current query right away, superseding any pending search."""
        with self._lock:
            if self._guard.closed:
                return
            epoch = self._guard.begin()
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            text = self.query
        self._load(epoch, text)

    def _load(self, epoch: int, text: str) -> None:
        with self._lock:
            if not self._guard.is_current(epoch):
                return
            self.loading = True
            self.error = None
        try:
            cards = search_catalog(self.store, text, self.page_size)
        except StoreError as exc:
            logger.warning("Catalog search for %r failed: %s", text, exc.message)
            with self._lock:
                if self._guard.is_current(epoch):
                    # Keep the previous results and the search box content.
                    self.error = exc.message
                    self.loading = False
            return
        with self._lock:
            if not self._guard.is_current(epoch):
                logger.debug("Discarding stale catalog results for %r", text)
                return
            self.books = cards
            self.active_query = normalize_query(text)
            self.loading = False

    def close(self) -> None:
        with self._lock:
            self._guard.close()
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


# --------------------------------------------------------------------------- #
# Location editing
# --------------------------------------------------------------------------- #
class LocationEditor:
    """Edit session for one book's aisle, shelf and section."""

    def __init__(
        self,
        store: Any,
        book_id: str,
        *,
        aisle: str = "",
        shelf: str = "",
        section: str = "",
        on_saved: Optional[Task] = None,
    ):
        self.store = store
        self.book_id = book_id
        self.aisle = aisle
        self.shelf = shelf
        self.section = section
        self.on_saved = on_saved
        self.error: Optional[str] = None
        self.error_field: Optional[str] = None
        self.saved: Optional[Location] = None
        self._submitting = threading.Lock()

    @property
    def saving(self) -> bool:
        return self._submitting.locked()

    def submit(self) -> Optional[Location]:
        """Validate and save the form. Returns the stored location, or None.

        A call made while a previous submission is still in flight is ignored.
        On failure ``error`` is set and the form fields are left untouched.
        """
        if not self._submitting.acquire(blocking=False):
            logger.debug("Location save for %s already in progress", self.book_id)
            return None
        try:
            self.error = None
            self.error_field = None
            try:
                location = apply_location(
                    self.store, self.book_id, self.aisle, self.shelf, self.section
                )
            except ValidationError as exc:
                self.error = exc.message
                self.error_field = exc.field
                return None
            except StoreError as exc:
                logger.warning("Saving location for %s failed: %s", self.book_id, exc.message)
                self.error = exc.message
                return None
            self.saved = location
        finally:
            self._submitting.release()

        if self.on_saved is not None:
            self.on_saved()
        return location


# --------------------------------------------------------------------------- #
# Book detail
# --------------------------------------------------------------------------- #
class DetailView:
    """One book's detail, keyed by the id currently in the navigation context."""

    def __init__(self, store: Any, book_id: Optional[str], *, runner: Callable[[Task], None] = run_in_thread):
        self.store = store
        self.book_id = book_id
        self._runner = runner
        self._guard = RequestGuard()
        self._lock = threading.Lock()

        self.status = "loading"
        self.book: Optional[Dict[str, Any]] = None
        self.error: Optional[str] = None

    def load(self) -> None:
        with self._lock:
            if self._guard.closed:
                return
            epoch = self._guard.begin()
            book_id = present(self.book_id)
            if book_id is None:
                self.status = "not_found"
                self.book = None
                return
            self.status = "loading"
            self.error = None
        self._runner(lambda: self._fetch(epoch, book_id))

    def navigate(self, book_id: Optional[str]) -> None:
        with self._lock:
            self.book_id = book_id
            self.book = None
        self.load()

    def _apply(self, epoch: int, **state: Any) -> None:
        with self._lock:
            if not self._guard.is_current(epoch):
                logger.debug("Discarding stale detail result for %s", self.book_id)
                return
            for name, value in state.items():
                setattr(self, name, value)

    def _fetch(self, epoch: int, book_id: str) -> None:
        try:
            detail = fetch_book(self.store, book_id)
        except NotFoundError:
            self._apply(epoch, status="not_found", book=None)
        except StoreError as exc:
            logger.warning("Loading book %s failed: %s", book_id, exc.message)
            self._apply(epoch, status="error", error=exc.message)
        else:
            self._apply(epoch, status="ready", book=detail, error=None)

    def edit(self) -> Optional[LocationEditor]:
        """Open an edit session for the current book, or None without an id."""
        book_id = present(self.book_id)
        if book_id is None:
            return None
        form = (self.book or {}).get("location_form", {})
        return LocationEditor(
            self.store,
            book_id,
            aisle=form.get("aisle", ""),
            shelf=form.get("shelf", ""),
            section=form.get("section", ""),
            on_saved=self.load,
        )

    def close(self) -> None:
        self._guard.close()


# --------------------------------------------------------------------------- #
# Zone
# --------------------------------------------------------------------------- #
class ZoneView:
    """Active books on one exact aisle and shelf."""

    def __init__(self, store: Any, aisle: Optional[str], shelf: Optional[str]):
        self.store = store
        aisle_value = present(aisle)
        shelf_value = present(shelf)
        self.aisle = aisle_value.strip() if aisle_value else None
        # Stored shelves are canonical (uppercase); links may not be.
        self.shelf = shelf_value.strip().upper() if shelf_value else None
        self._guard = RequestGuard()
        self.books: List[Dict[str, Any]] = []
        self.error: Optional[str] = None
        self.status = "invalid" if not self.is_valid else "loading"

    @property
    def is_valid(self) -> bool:
        return self.aisle is not None and self.shelf is not None

    @property
    def heading(self) -> str:
        return f"Estante {self.shelf}" if self.shelf else "Zona inválida"

    def load(self) -> "ZoneView":
        if not self.is_valid:
            return self
        epoch = self._guard.begin()
        try:
            books = fetch_zone(self.store, str(self.aisle), str(self.shelf))
        except StoreError as exc:
            logger.warning("Loading zone %s/%s failed: %s", self.aisle, self.shelf, exc.message)
            if self._guard.is_current(epoch):
                self.status = "error"
                self.error = ZONE_LOAD_FAILED
                self.books = []
            return self
        if self._guard.is_current(epoch):
            self.books = books
            self.status = "ready"
        return self

    def close(self) -> None:
        self._guard.close()
