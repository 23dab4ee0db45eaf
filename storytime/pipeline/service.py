"""
Entry point wiring the generation, assembly and fulfillment components together.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Awaitable, Callable

from storytime.ai_generation.base import GenerationError, ImageModel
from storytime.ai_generation.identity import IdentityExtractor
from storytime.ai_generation.racing import RacingPainter
from storytime.ai_generation.references import ReferenceImageResolver
from storytime.book.lifecycle import BookStatus, IllegalStatusTransitionError, is_at_or_beyond
from storytime.book.models import Book, Order
from storytime.book.repository import BookNotFoundError, BookRepository, YamlBookRepository
from storytime.common.settings import PipelineSettings
from storytime.fulfillment.dispatcher import (
    FulfillmentDispatcher,
    FulfillmentRequest,
    VendorOrder,
)
from storytime.fulfillment.gelato import GelatoClient
from storytime.pdf_generation.assembler import PdfAssembler, RendererFactory
from storytime.storage.base import ObjectStore

from .orchestrator import GenerationOrchestrator, PhaseSummary, ProgressCallback
from .status import BookStatusReader, BookStatusView

logger = logging.getLogger(__name__)


class StorybookService:
    """
    Operations exposed to the web layer and the command-line scripts.

    Parameters
    ----------
    repository:
        Book persistence.
    store:
        Object store for images and documents.
    image_model:
        Model used for every page and reference portrait. Only needed for generation.
    vendor_client:
        Print vendor client. Only needed for fulfillment.
    renderer_factory:
        Creates a fresh renderer session per assembly; defaults to Playwright.
    sleep:
        Awaitable sleep used between retries and batches. Tests pass a recorder.
    """

    def __init__(
        self,
        repository: BookRepository,
        store: ObjectStore,
        *,
        image_model: ImageModel | None = None,
        vendor_client: GelatoClient | None = None,
        settings: PipelineSettings | None = None,
        renderer_factory: RendererFactory | None = None,
        identity_extractor: IdentityExtractor | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or PipelineSettings()
        self.repository = repository
        self.store = store

        self._orchestrator: GenerationOrchestrator | None = None
        if image_model is not None:
            painter = RacingPainter(image_model, store, repository, settings=self.settings, sleep=sleep)
            resolver = ReferenceImageResolver(
                painter,
                repository,
                store,
                settings=self.settings,
                identity_extractor=identity_extractor,
            )
            self._orchestrator = GenerationOrchestrator(
                repository, painter, resolver, settings=self.settings, sleep=sleep
            )
        self.assembler = PdfAssembler(
            repository, store, settings=self.settings, renderer_factory=renderer_factory
        )
        self._vendor_client = vendor_client
        self.status_reader = BookStatusReader(repository, store)
        self._tasks: set[asyncio.Task[Any]] = set()

    @classmethod
    def from_env(cls, *, data_dir: str | Path | None = None, **overrides: Any) -> "StorybookService":
        """
        Build a service from environment variables.

        Books live in ``STORYTIME_DATA_DIR`` (YAML files). Objects go to Google
        Cloud Storage unless ``STORYTIME_STORE_ROOT`` points at a local directory.
        """
        from storytime.ai_generation.replicate_service import ReplicateImageModel
        from storytime.storage.gcs import GCSObjectStore
        from storytime.storage.local import LocalObjectStore

        settings = overrides.pop("settings", None) or PipelineSettings.from_env()
        repository = YamlBookRepository(
            data_dir or os.getenv("STORYTIME_DATA_DIR") or "storytime-data"
        )
        store_root = os.getenv("STORYTIME_STORE_ROOT")
        store = LocalObjectStore(store_root) if store_root else GCSObjectStore()
        if "image_model" not in overrides and os.getenv("REPLICATE_API_TOKEN"):
            overrides["image_model"] = ReplicateImageModel()
        if "vendor_client" not in overrides and os.getenv("GELATO_API_KEY"):
            overrides["vendor_client"] = GelatoClient()
        if "identity_extractor" not in overrides and settings.identity_model:
            overrides["identity_extractor"] = IdentityExtractor(model=settings.identity_model)
        return cls(repository, store, settings=settings, **overrides)

    # ------------------------------------------------------------------ books

    def create_book(self, book: Book) -> Book:
        return self.repository.create(book)

    def book_status(self, book_id: str) -> BookStatusView:
        return self.status_reader.read(book_id)

    def mark_paid(self, order: Order) -> Book:
        """Record a confirmed payment and move the book to ``paid``."""
        self.repository.save_order(order)
        return self.repository.advance_status(order.book_id, BookStatus.PAID, error=None)

    def mark_shipped(self, book_id: str, *, tracking_url: str | None = None) -> Book:
        book = self.repository.advance_status(book_id, BookStatus.SHIPPED)
        try:
            order = self.repository.get_order(book_id)
        except KeyError:
            logger.warning("Book %s shipped without a recorded order.", book_id)
        else:
            self.repository.save_order(replace(order, status="shipped", tracking_url=tracking_url))
        return book

    # ------------------------------------------------------------------ generation

    def generate_images(
        self,
        book_id: str,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> asyncio.Task[PhaseSummary | None]:
        """
        Start painting in the background and return immediately.

        Must be called from a running event loop. Progress is visible through
        :meth:`book_status`; a failure marks the book ``failed``.
        """
        self.repository.get(book_id)
        orchestrator = self.orchestrator
        task = asyncio.create_task(self._run_generation(orchestrator, book_id, progress_callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_generation(
        self,
        orchestrator: GenerationOrchestrator,
        book_id: str,
        progress_callback: ProgressCallback | None,
    ) -> PhaseSummary | None:
        try:
            return await orchestrator.run(book_id, progress_callback=progress_callback)
        except Exception as exc:
            logger.exception("Background generation for book %s failed.", book_id)
            self._mark_failed(book_id, exc)
            return None

    async def generate_pdf(self, book_id: str) -> str:
        return await self.assembler.assemble(book_id)

    async def dispatch_fulfillment(self, request: FulfillmentRequest) -> VendorOrder:
        return await self._dispatcher().dispatch(request)

    async def fulfill_order(
        self,
        book_id: str,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> VendorOrder:
        """
        Post-payment chain: paint the rest of the book, assemble it, send it to print.

        Pages still missing after the first pass get one more pass; if any
        remain the chain stops. Steps already completed by an earlier run are
        skipped. Any error marks the book ``failed``.
        """
        try:
            book = self.repository.get(book_id)
            if _needs_painting(book):
                await self._paint_remaining(book_id, progress_callback)

            book = self.repository.get(book_id)
            if _has_document(book):
                if book.status is BookStatus.FAILED:
                    logger.info("Reusing the assembled document of failed book %s.", book_id)
                    self.repository.set_status(book_id, BookStatus.PDF_READY, error=None)
            else:
                await self.assembler.assemble(book_id)
            order = self.repository.get_order(book_id)
            return await self._dispatcher().dispatch(
                FulfillmentRequest(
                    book_id=book_id,
                    shipping_address=order.shipping_address,
                    currency=order.currency,
                    order_reference_id=order.reference_id,
                )
            )
        except Exception as exc:
            logger.exception("Fulfillment of book %s failed.", book_id)
            self._mark_failed(book_id, exc)
            raise

    async def wait_for_background_tasks(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    # ------------------------------------------------------------------ helpers

    @property
    def orchestrator(self) -> GenerationOrchestrator:
        if self._orchestrator is None:
            raise RuntimeError("No image model configured. Set REPLICATE_API_TOKEN.")
        return self._orchestrator

    async def _paint_remaining(
        self,
        book_id: str,
        progress_callback: ProgressCallback | None,
    ) -> None:
        summary = await self.orchestrator.run_full(book_id, progress_callback=progress_callback)
        if not summary.complete:
            logger.warning(
                "Book %s has %d unpainted pages; repainting once.", book_id, len(summary.missing)
            )
            summary = await self.orchestrator.run_full(book_id, progress_callback=progress_callback)
        if not summary.complete:
            raise GenerationError(f"Book {book_id} still has unpainted pages: {summary.missing}.")

    def _dispatcher(self) -> FulfillmentDispatcher:
        if self._vendor_client is None:
            raise RuntimeError("No print vendor client configured. Set GELATO_API_KEY.")
        return FulfillmentDispatcher(
            self.repository, self.store, self._vendor_client, settings=self.settings
        )

    def _mark_failed(self, book_id: str, exc: Exception) -> None:
        message = str(exc) or type(exc).__name__
        try:
            current = self.repository.get(book_id).status
        except BookNotFoundError:
            return
        if current is BookStatus.FAILED:
            self.repository.update_fields(book_id, error=message)
            return
        try:
            self.repository.set_status(book_id, BookStatus.FAILED, error=message)
        except IllegalStatusTransitionError:
            logger.warning("Book %s cannot be marked failed from its current status.", book_id)


def _has_document(book: Book) -> bool:
    """True when the stored document still matches the book and can be sent as-is."""
    if book.pdf_ref is None or book.final_page_count is None:
        return False
    if book.status is BookStatus.FAILED:
        return bool(book.pages) and not book.unpainted_pages
    return is_at_or_beyond(book.status, BookStatus.PDF_READY)


def _needs_painting(book: Book) -> bool:
    if book.status in (BookStatus.PAID, BookStatus.GENERATING):
        return True
    return not book.pages or bool(book.unpainted_pages)
