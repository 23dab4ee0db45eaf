"""
Print-ready PDF assembly for an illustrated book.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from io import BytesIO
from typing import Callable

from pypdf import PdfReader, PdfWriter

from storytime.book.lifecycle import BookStatus, IllegalStatusTransitionError, check_can_reach
from storytime.book.models import Book
from storytime.book.repository import BookRepository
from storytime.common.settings import PipelineSettings
from storytime.storage.base import (
    DOCUMENT_URL_TTL,
    PAGE_IMAGE_URL_TTL,
    PDF_CONTENT_TYPE,
    ObjectStore,
)

from .filler import build_filler_pages
from .renderer import PageRenderer, PlaywrightPageRenderer
from .template import render_print_html

logger = logging.getLogger(__name__)

RendererFactory = Callable[[], PageRenderer]


class AssemblyError(RuntimeError):
    """Raised when a book's document could not be produced; nothing was persisted."""


def document_path_for(book_id: str, assembly_id: str) -> str:
    """One object per assembly run; ``pdf_ref`` only moves once the book is updated."""
    return f"pdfs/{book_id}/{assembly_id}.pdf"


def expected_block_count(page_count: int) -> int:
    """Blocks in the print document: the title block plus one per page."""
    return page_count + 1


class PdfAssembler:
    """
    Renders every page of a book to PDF, pads it to the printer's minimum and stores it.

    The document holds a title page followed by one page per book page, in
    page order. Documents shorter than ``min_page_count`` get blank parchment
    pages appended. Only a fully produced and uploaded document changes the
    book; on any failure :class:`AssemblyError` is raised and the book is left
    as it was.
    """

    def __init__(
        self,
        repository: BookRepository,
        store: ObjectStore,
        *,
        settings: PipelineSettings | None = None,
        renderer_factory: RendererFactory | None = None,
    ) -> None:
        self._repository = repository
        self._store = store
        self._settings = settings or PipelineSettings()
        self._renderer_factory = renderer_factory or (
            lambda: PlaywrightPageRenderer(navigation_timeout_s=self._settings.navigation_timeout_s)
        )

    async def assemble(self, book_id: str) -> str:
        """Assemble the document and return a seven-day link to it."""
        book = self._repository.get(book_id)
        try:
            check_can_reach(book.status, BookStatus.PDF_READY)
        except IllegalStatusTransitionError as exc:
            raise AssemblyError(f"Book {book_id} cannot be assembled while {book.status.value}.") from exc
        if not book.pages:
            raise AssemblyError(f"Book {book_id} has no pages to assemble.")

        try:
            document, page_count = await self._render(book)
            ref = await asyncio.to_thread(
                self._store.put,
                self._settings.documents_bucket,
                document_path_for(book_id, uuid.uuid4().hex[:12]),
                document,
                content_type=PDF_CONTENT_TYPE,
            )
        except AssemblyError:
            raise
        except Exception as exc:
            raise AssemblyError(f"Failed to assemble the document for book {book_id}: {exc}") from exc

        try:
            self._repository.advance_status(
                book_id,
                BookStatus.PDF_READY,
                pdf_ref=ref,
                final_page_count=page_count,
            )
        except Exception as exc:
            logger.warning("Discarding document %s; book %s could not be updated.", ref.uri, book_id)
            raise AssemblyError(f"Failed to record the document for book {book_id}: {exc}") from exc
        logger.info("Assembled %d-page document for book %s.", page_count, book_id)
        return await asyncio.to_thread(self._store.sign_url, ref, DOCUMENT_URL_TTL)

    async def _render(self, book: Book) -> tuple[bytes, int]:
        expected = expected_block_count(len(book.pages))
        renderer = self._renderer_factory()
        try:
            if self._settings.print_template_url:
                url = self._settings.print_template_url.format(book_id=book.book_id)
                block_count = await renderer.open(url=url)
            else:
                image_urls = {
                    page.page_number: await asyncio.to_thread(
                        self._store.sign_url, page.image_ref, PAGE_IMAGE_URL_TTL
                    )
                    for page in book.pages
                    if page.image_ref is not None
                }
                block_count = await renderer.open(html=render_print_html(book, image_urls))

            if block_count != expected:
                raise AssemblyError(
                    f"Print template for book {book.book_id} has {block_count} blocks, expected {expected}."
                )

            writer = PdfWriter()
            for index in range(block_count):
                chunk = PdfReader(BytesIO(await renderer.capture_page(index)))
                if not chunk.pages:
                    raise AssemblyError(f"Block {index} of book {book.book_id} rendered no page.")
                writer.add_page(chunk.pages[0])
        finally:
            await renderer.close()

        filler_count = self._settings.min_page_count - len(writer.pages)
        if filler_count > 0:
            logger.info("Padding book %s with %d filler pages.", book.book_id, filler_count)
            for filler_page in PdfReader(BytesIO(build_filler_pages(filler_count))).pages:
                writer.add_page(filler_page)

        buffer = BytesIO()
        writer.write(buffer)
        return buffer.getvalue(), len(writer.pages)
