"""
Drives a book's illustration through its teaser and post-purchase phases.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Sequence

from storytime.ai_generation.prompting import build_page_prompt
from storytime.ai_generation.racing import RacingPainter
from storytime.ai_generation.references import (
    AnchorSet,
    AnchorUnavailableError,
    ReferenceImageResolver,
)
from storytime.book.lifecycle import BookStatus, IllegalStatusTransitionError
from storytime.book.models import Book, ImageRecord, Page
from storytime.book.page_set import PageSetBuilder
from storytime.book.repository import BookRepository
from storytime.common.settings import PipelineSettings

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, dict[str, Any]], None]
SleepCallable = Callable[[float], Awaitable[None]]

PREVIOUSLY_PAINTED_SOURCE = "previously_painted"

_FULL_PHASE_STATUSES = frozenset({BookStatus.PAID, BookStatus.GENERATING})


@dataclass
class PhaseSummary:
    """Outcome of one generation phase."""

    book_id: str
    phase: str
    painted: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    missing: list[int] = field(default_factory=list)
    status: BookStatus | None = None

    @property
    def complete(self) -> bool:
        return not self.missing


class GenerationOrchestrator:
    """
    Paints a book's pages in two phases.

    * Teaser: the first ``teaser_pages`` pages, all concurrently, before purchase.
    * Full: every page still unpainted, in batches of ``batch_size`` with a
      ``batch_delay_s`` pause between consecutive batches.

    Painted pages are never repainted, so either phase can be re-run after an
    interruption and only picks up what is missing. Status writes go through
    ``advance_status`` and never move a book backwards.
    """

    def __init__(
        self,
        repository: BookRepository,
        painter: RacingPainter,
        resolver: ReferenceImageResolver,
        *,
        settings: PipelineSettings | None = None,
        page_set_builder: PageSetBuilder | None = None,
        sleep: SleepCallable = asyncio.sleep,
    ) -> None:
        self._repository = repository
        self._painter = painter
        self._resolver = resolver
        self._settings = settings or PipelineSettings()
        self._page_set_builder = page_set_builder or PageSetBuilder()
        self._sleep = sleep

    async def run(
        self,
        book_id: str,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> PhaseSummary:
        """
        Run whichever phase the book's current status calls for.

        A ``failed`` book with a recorded order resumes the full phase rather
        than falling back to the teaser.
        """
        book = self._repository.get(book_id)
        if self._is_paid(book):
            return await self.run_full(book_id, progress_callback=progress_callback)
        return await self.run_teaser(book_id, progress_callback=progress_callback)

    async def run_teaser(
        self,
        book_id: str,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> PhaseSummary:
        self._repository.advance_status(book_id, BookStatus.TEASER_GENERATING)
        book, anchors = await self._prepare(book_id, progress_callback)

        summary = PhaseSummary(book_id=book_id, phase="teaser")
        teaser_pages = book.pages[: self._settings.teaser_pages]
        self._notify(progress_callback, "teaser:started", total_pages=len(teaser_pages))
        await self._paint_pages(book, teaser_pages, anchors, summary, progress_callback)

        updated = self._repository.advance_status(book_id, BookStatus.TEASER_READY)
        summary.status = updated.status
        self._notify(
            progress_callback,
            "teaser:complete",
            painted=len(summary.painted),
            missing=list(summary.missing),
        )
        return summary

    async def run_full(
        self,
        book_id: str,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> PhaseSummary:
        book = self._repository.get(book_id)
        if not self._is_paid(book):
            raise IllegalStatusTransitionError(book.status, BookStatus.GENERATING)

        if book.status is BookStatus.FAILED:
            logger.info("Resuming full generation of failed book %s.", book_id)
            self._repository.set_status(book_id, BookStatus.GENERATING, error=None)
        else:
            self._repository.advance_status(book_id, BookStatus.GENERATING)
        book, anchors = await self._prepare(book_id, progress_callback)

        summary = PhaseSummary(book_id=book_id, phase="full")
        batch_size = self._settings.batch_size
        for page in book.pages:
            if page.is_painted:
                summary.skipped.append(page.page_number)
        self._sync_painted_records(book, book.pages)

        remaining = book.unpainted_pages
        batches = [remaining[i : i + batch_size] for i in range(0, len(remaining), batch_size)]
        self._notify(
            progress_callback,
            "full:started",
            total_pages=len(remaining),
            batches=len(batches),
        )
        for index, batch in enumerate(batches, start=1):
            # Another run may have painted some of these pages since the last read.
            book = self._repository.get(book_id)
            batch = [book.page(page.page_number) for page in batch]
            self._notify(
                progress_callback,
                "batch:started",
                batch=index,
                pages=[page.page_number for page in batch],
            )
            await self._paint_pages(book, batch, anchors, summary, progress_callback)
            if index < len(batches):
                self._notify(progress_callback, "batch:waiting", seconds=self._settings.batch_delay_s)
                await self._sleep(self._settings.batch_delay_s)

        if summary.complete:
            updated = self._repository.advance_status(book_id, BookStatus.ILLUSTRATED)
        else:
            logger.warning(
                "Book %s still has %d unpainted pages: %s",
                book_id,
                len(summary.missing),
                summary.missing,
            )
            updated = self._repository.get(book_id)
        summary.status = updated.status
        self._notify(
            progress_callback,
            "full:complete",
            painted=len(summary.painted),
            missing=list(summary.missing),
        )
        return summary

    # ------------------------------------------------------------------ helpers

    def _is_paid(self, book: Book) -> bool:
        if book.status in _FULL_PHASE_STATUSES:
            return True
        if book.status is not BookStatus.FAILED:
            return False
        try:
            self._repository.get_order(book.book_id)
        except KeyError:
            return False
        return True

    async def _prepare(
        self,
        book_id: str,
        progress_callback: ProgressCallback | None,
    ) -> tuple[Book, AnchorSet]:
        self._notify(progress_callback, "anchors:resolving")
        try:
            anchors = await self._resolver.resolve(book_id)
        except AnchorUnavailableError as exc:
            self._repository.set_status(book_id, BookStatus.FAILED, error=str(exc))
            raise
        self._notify(
            progress_callback,
            "anchors:ready",
            missing=[kind.value for kind in anchors.missing],
        )

        book = self._repository.get(book_id)
        pages = self._page_set_builder.build(book)
        self._repository.save_pages(book_id, pages)
        book = self._repository.get(book_id)
        self._notify(progress_callback, "pages:ready", total_pages=len(book.pages))
        return book, anchors

    async def _paint_pages(
        self,
        book: Book,
        pages: Sequence[Page],
        anchors: AnchorSet,
        summary: PhaseSummary,
        progress_callback: ProgressCallback | None,
    ) -> None:
        to_paint: list[Page] = []
        for page in pages:
            if page.is_painted:
                if page.page_number not in summary.skipped:
                    summary.skipped.append(page.page_number)
                self._notify(progress_callback, "page:skipped", page_number=page.page_number)
            else:
                to_paint.append(page)
        self._sync_painted_records(book, pages)

        results = await asyncio.gather(
            *(self._paint_page(book, page, anchors.anchors) for page in to_paint)
        )
        for page, url in zip(to_paint, results):
            if url is None:
                summary.missing.append(page.page_number)
                self._notify(progress_callback, "page:failed", page_number=page.page_number)
            else:
                summary.painted.append(page.page_number)
                self._notify(progress_callback, "page:painted", page_number=page.page_number, url=url)

    async def _paint_page(self, book: Book, page: Page, anchors: Mapping[Any, Any]) -> str | None:
        prompt = build_page_prompt(book, page, available_anchors=anchors)
        references = [anchors[kind] for kind in prompt.references]
        return await self._painter.paint(book.book_id, page.key, prompt.positive, references)

    def _sync_painted_records(self, book: Book, pages: Sequence[Page]) -> None:
        records = {record.page_key: record for record in self._repository.list_image_records(book.book_id)}
        for page in pages:
            if page.image_ref is None:
                continue
            existing = records.get(page.key)
            if existing is not None and existing.object_ref == page.image_ref:
                continue
            self._repository.record_image(
                ImageRecord(
                    book_id=book.book_id,
                    page_key=page.key,
                    object_ref=page.image_ref,
                    source=PREVIOUSLY_PAINTED_SOURCE,
                )
            )

    @staticmethod
    def _notify(
        callback: ProgressCallback | None,
        stage: str,
        **payload: Any,
    ) -> None:
        if callback is not None:
            callback(stage, payload)
