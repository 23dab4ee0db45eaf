"""
Book persistence with targeted per-page writes.

Every mutation runs under a single lock and touches only the fields it names,
so painters working on different pages of the same book never clobber each
other. Same-page writes are guarded by the page's ``version`` counter.
"""

from __future__ import annotations

import copy
import logging
import threading
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml

from .lifecycle import BookStatus, is_at_or_beyond, validate_transition
from .models import AnchorKind, Book, ImageRecord, ObjectRef, Order, Page

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "degraded_anchors",
        "final_page_count",
        "pdf_ref",
        "vendor_order_id",
        "vendor_order_status",
        "error",
    }
)


class BookNotFoundError(KeyError):
    """Raised when a book id is unknown to the repository."""


class PageVersionConflictError(RuntimeError):
    """Raised when a page changed since the writer last read it."""

    def __init__(self, book_id: str, page_number: int, expected: int, actual: int) -> None:
        super().__init__(
            f"Page {page_number} of book {book_id} is at version {actual}, expected {expected}."
        )
        self.book_id = book_id
        self.page_number = page_number
        self.expected = expected
        self.actual = actual


def merge_pages(existing: Iterable[Page], rebuilt: Iterable[Page]) -> list[Page]:
    """
    Merge a rebuilt page list onto the stored one.

    A stored ``image_ref`` always survives; the rebuilt list only contributes
    structure (numbering, role, text and prompt) and images for pages that had none.
    """
    stored = {page.page_number: page for page in existing}
    merged: list[Page] = []
    for page in rebuilt:
        previous = stored.get(page.page_number)
        if previous is not None and previous.is_painted:
            page = Page(
                page_number=page.page_number,
                role=page.role,
                text=page.text,
                prompt=page.prompt,
                image_ref=previous.image_ref,
                version=previous.version,
            )
        merged.append(page)
    return merged


class BookRepository:
    """
    Storage-agnostic repository logic.

    Subclasses provide the raw ``_load_*``/``_store_*`` hooks; all locking,
    merging and validation lives here.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()

    # ------------------------------------------------------------------ storage hooks

    def _load_book(self, book_id: str) -> Book | None:
        raise NotImplementedError

    def _store_book(self, book: Book) -> None:
        raise NotImplementedError

    def _load_records(self, book_id: str) -> list[ImageRecord]:
        raise NotImplementedError

    def _store_records(self, book_id: str, records: list[ImageRecord]) -> None:
        raise NotImplementedError

    def _load_order(self, book_id: str) -> Order | None:
        raise NotImplementedError

    def _store_order(self, order: Order) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------ books

    def create(self, book: Book) -> Book:
        with self._lock:
            if self._load_book(book.book_id) is not None:
                raise ValueError(f"Book {book.book_id} already exists.")
            self._store_book(copy.deepcopy(book))
        logger.info("Created book %s (%d story pages).", book.book_id, len(book.story_pages))
        return copy.deepcopy(book)

    def get(self, book_id: str) -> Book:
        with self._lock:
            return copy.deepcopy(self._require(book_id))

    def save_pages(self, book_id: str, pages: Iterable[Page]) -> list[Page]:
        with self._lock:
            book = self._require(book_id)
            book.pages = merge_pages(book.pages, pages)
            self._store_book(book)
            return list(book.pages)

    def set_page_image(
        self,
        book_id: str,
        page_number: int,
        ref: ObjectRef,
        *,
        expected_version: int,
    ) -> Page:
        with self._lock:
            book = self._require(book_id)
            for index, page in enumerate(book.pages):
                if page.page_number != page_number:
                    continue
                if page.version != expected_version:
                    raise PageVersionConflictError(
                        book_id, page_number, expected_version, page.version
                    )
                updated = page.with_image(ref)
                book.pages[index] = updated
                self._store_book(book)
                return updated
        raise KeyError(f"Book {book_id} has no page {page_number}.")

    def set_anchor(self, book_id: str, kind: AnchorKind, ref: ObjectRef) -> None:
        with self._lock:
            book = self._require(book_id)
            book.anchors[kind] = ref
            if kind in book.degraded_anchors:
                book.degraded_anchors.remove(kind)
            self._store_book(book)

    def update_fields(self, book_id: str, **fields: Any) -> Book:
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated directly: {sorted(unknown)}")
        with self._lock:
            book = self._require(book_id)
            for name, value in fields.items():
                setattr(book, name, value)
            self._store_book(book)
            return copy.deepcopy(book)

    def set_status(self, book_id: str, target: BookStatus, **fields: Any) -> Book:
        """Write ``target`` if the transition table allows it, along with ``fields``."""
        with self._lock:
            book = self._require(book_id)
            validate_transition(book.status, target)
            previous = book.status
            book.status = target
            for name, value in fields.items():
                if name not in _UPDATABLE_FIELDS:
                    raise ValueError(f"Field cannot be updated directly: {name}")
                setattr(book, name, value)
            self._store_book(book)
        logger.info("Book %s status %s -> %s.", book_id, previous.value, target.value)
        return copy.deepcopy(book)

    def advance_status(self, book_id: str, target: BookStatus, **fields: Any) -> Book:
        """
        Move forward to ``target`` unless the book is already there or further along.

        Extra ``fields`` are written in both cases; the status itself never regresses.
        """
        with self._lock:
            book = self._require(book_id)
            if is_at_or_beyond(book.status, target):
                if book.status is not target:
                    logger.info(
                        "Book %s already at %s; not regressing to %s.",
                        book_id,
                        book.status.value,
                        target.value,
                    )
                if fields:
                    return self.update_fields(book_id, **fields)
                return copy.deepcopy(book)
            return self.set_status(book_id, target, **fields)

    # ------------------------------------------------------------------ image records

    def record_image(self, record: ImageRecord) -> None:
        with self._lock:
            records = [
                existing
                for existing in self._load_records(record.book_id)
                if existing.page_key != record.page_key
            ]
            records.append(record)
            self._store_records(record.book_id, records)

    def list_image_records(self, book_id: str) -> list[ImageRecord]:
        with self._lock:
            return list(self._load_records(book_id))

    # ------------------------------------------------------------------ orders

    def save_order(self, order: Order) -> None:
        with self._lock:
            self._store_order(order)

    def get_order(self, book_id: str) -> Order:
        with self._lock:
            order = self._load_order(book_id)
        if order is None:
            raise KeyError(f"No order recorded for book {book_id}.")
        return order

    def _require(self, book_id: str) -> Book:
        book = self._load_book(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        return book


class InMemoryBookRepository(BookRepository):
    """Process-local repository, suitable for a single worker."""

    def __init__(self) -> None:
        super().__init__()
        self._books: dict[str, Book] = {}
        self._records: dict[str, list[ImageRecord]] = {}
        self._orders: dict[str, Order] = {}

    def _load_book(self, book_id: str) -> Book | None:
        return self._books.get(book_id)

    def _store_book(self, book: Book) -> None:
        self._books[book.book_id] = book

    def _load_records(self, book_id: str) -> list[ImageRecord]:
        return list(self._records.get(book_id, []))

    def _store_records(self, book_id: str, records: list[ImageRecord]) -> None:
        self._records[book_id] = list(records)

    def _load_order(self, book_id: str) -> Order | None:
        return self._orders.get(book_id)

    def _store_order(self, order: Order) -> None:
        self._orders[order.book_id] = order


class YamlBookRepository(BookRepository):
    """
    Repository backed by one YAML document per book under ``root``.

    Layout::

        root/books/<book_id>.yaml
        root/images/<book_id>.yaml
        root/orders/<book_id>.yaml
    """

    def __init__(self, root: str | Path) -> None:
        super().__init__()
        self._root = Path(root).expanduser()
        for folder in ("books", "images", "orders"):
            (self._root / folder).mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, folder: str, book_id: str) -> Path:
        return self._root / folder / f"{book_id}.yaml"

    def _read(self, path: Path) -> Any:
        if not path.exists():
            return None
        return yaml.safe_load(path.read_text(encoding="utf-8"))

    def _write(self, path: Path, payload: Any) -> None:
        tmp_path = path.with_suffix(".yaml.tmp")
        tmp_path.write_text(
            yaml.safe_dump(payload, sort_keys=False, allow_unicode=True),
            encoding="utf-8",
        )
        tmp_path.replace(path)

    def _load_book(self, book_id: str) -> Book | None:
        data = self._read(self._path("books", book_id))
        if data is None:
            return None
        if not isinstance(data, Mapping):
            raise ValueError(f"Book file for {book_id} must deserialize to a mapping.")
        return Book.from_dict(data)

    def _store_book(self, book: Book) -> None:
        self._write(self._path("books", book.book_id), book.to_dict())

    def _load_records(self, book_id: str) -> list[ImageRecord]:
        data = self._read(self._path("images", book_id)) or []
        return [ImageRecord.from_mapping(entry) for entry in data]

    def _store_records(self, book_id: str, records: list[ImageRecord]) -> None:
        self._write(self._path("images", book_id), [record.as_dict() for record in records])

    def _load_order(self, book_id: str) -> Order | None:
        data = self._read(self._path("orders", book_id))
        return Order.from_mapping(data) if data else None

    def _store_order(self, order: Order) -> None:
        self._write(self._path("orders", order.book_id), order.as_dict())
