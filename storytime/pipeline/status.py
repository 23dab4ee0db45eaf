"""
Read model for a book's progress, with freshly signed links on every read.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

import yaml

from storytime.book.lifecycle import BookStatus
from storytime.book.repository import BookRepository
from storytime.storage.base import DOCUMENT_URL_TTL, PAGE_IMAGE_URL_TTL, ObjectStore


@dataclass(frozen=True)
class PageView:
    page_number: int
    role: str
    text: str
    image_url: str | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "page_number": self.page_number,
            "role": self.role,
            "text": self.text,
            "image_url": self.image_url,
        }


@dataclass(frozen=True)
class BookStatusView:
    """
    Snapshot returned to callers polling a book.

    ``stale`` is True when fewer pages are painted than an earlier read of the
    same book reported; the caller should keep its previous view.
    """

    book_id: str
    status: BookStatus
    title: str
    pages: list[PageView] = field(default_factory=list)
    painted_count: int = 0
    degraded_anchors: list[str] = field(default_factory=list)
    final_page_count: int | None = None
    pdf_url: str | None = None
    vendor_order_id: str | None = None
    vendor_order_status: str | None = None
    error: str | None = None
    stale: bool = False

    @property
    def total_pages(self) -> int:
        return len(self.pages)

    def as_dict(self) -> dict[str, Any]:
        return {
            "book_id": self.book_id,
            "status": self.status.value,
            "title": self.title,
            "painted_count": self.painted_count,
            "total_pages": self.total_pages,
            "degraded_anchors": list(self.degraded_anchors),
            "final_page_count": self.final_page_count,
            "pdf_url": self.pdf_url,
            "vendor_order_id": self.vendor_order_id,
            "vendor_order_status": self.vendor_order_status,
            "error": self.error,
            "stale": self.stale,
            "pages": [page.as_dict() for page in self.pages],
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.as_dict(), sort_keys=False, allow_unicode=True)


class BookStatusReader:
    """
    Builds :class:`BookStatusView` objects from the repository.

    Page links are signed for one hour and the document link for seven days,
    on every call, so no link handed out is ever older than its lifetime.
    The reader remembers the highest painted count it has served per book and
    marks any lower read as stale.
    """

    def __init__(self, repository: BookRepository, store: ObjectStore) -> None:
        self._repository = repository
        self._store = store
        self._high_water: dict[str, int] = {}
        self._lock = threading.Lock()

    def read(self, book_id: str) -> BookStatusView:
        book = self._repository.get(book_id)
        pages = [
            PageView(
                page_number=page.page_number,
                role=page.role.value,
                text=page.text,
                image_url=(
                    self._store.sign_url(page.image_ref, PAGE_IMAGE_URL_TTL)
                    if page.image_ref is not None
                    else None
                ),
            )
            for page in book.pages
        ]
        painted = book.painted_count

        with self._lock:
            high_water = self._high_water.get(book_id, 0)
            stale = painted < high_water
            if not stale:
                self._high_water[book_id] = painted

        return BookStatusView(
            book_id=book.book_id,
            status=book.status,
            title=book.title,
            pages=pages,
            painted_count=painted,
            degraded_anchors=[kind.value for kind in book.degraded_anchors],
            final_page_count=book.final_page_count,
            pdf_url=(
                self._store.sign_url(book.pdf_ref, DOCUMENT_URL_TTL) if book.pdf_ref is not None else None
            ),
            vendor_order_id=book.vendor_order_id,
            vendor_order_status=book.vendor_order_status,
            error=book.error,
            stale=stale,
        )
