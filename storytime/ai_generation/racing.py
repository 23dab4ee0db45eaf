"""
Race-and-retry painting of a single illustration.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from storytime.book.models import AnchorKind, ImageRecord, ObjectRef
from storytime.book.repository import BookRepository, PageVersionConflictError
from storytime.common.settings import PipelineSettings
from storytime.storage.base import PAGE_IMAGE_URL_TTL, PNG_CONTENT_TYPE, ObjectStore

from .base import EmptyGenerationError, ImageModel

logger = logging.getLogger(__name__)

SleepCallable = Callable[[float], Awaitable[None]]

_ANCHOR_KEYS = {kind.page_key: kind for kind in AnchorKind}


def image_path_for(book_id: str, page_key: str) -> str:
    return f"books/{book_id}/{page_key}.png"


def _page_number_from_key(page_key: str) -> int | None:
    prefix, _, number = page_key.partition("_")
    if prefix == "page" and number.isdigit():
        return int(number)
    return None


class RacingPainter:
    """
    Paints one page (or anchor portrait) by racing concurrent model calls.

    Each attempt launches ``concurrency`` identical calls; the first usable
    image wins and the remaining calls are cancelled. A failed attempt is
    followed by ``retry_delay_s`` of waiting, up to ``retries`` attempts, so a
    single :meth:`paint` never issues more than ``concurrency * retries`` calls.
    When every attempt fails the page is left unpainted and ``None`` is returned.
    A page or anchor that already has an image is never repainted: the stored
    image is returned instead, both before any model call and after a race
    whose image lost to a concurrent writer.
    """

    def __init__(
        self,
        model: ImageModel,
        store: ObjectStore,
        repository: BookRepository,
        *,
        settings: PipelineSettings | None = None,
        sleep: SleepCallable = asyncio.sleep,
    ) -> None:
        self._model = model
        self._store = store
        self._repository = repository
        self._settings = settings or PipelineSettings()
        self._sleep = sleep

    async def paint(
        self,
        book_id: str,
        page_key: str,
        prompt: str,
        references: Sequence[ObjectRef] = (),
        *,
        concurrency: int | None = None,
        retries: int | None = None,
    ) -> str | None:
        """
        Paint ``page_key`` of ``book_id`` and return a short-lived URL to the image.

        ``page_key`` is either ``page_<n>`` or an anchor key such as
        ``lead_reference``. Returns ``None`` if no attempt produced an image.
        """
        concurrency = concurrency or self._settings.race_concurrency
        retries = retries or self._settings.race_retries
        page_number = _page_number_from_key(page_key)
        anchor = _ANCHOR_KEYS.get(page_key)
        if page_number is None and anchor is None:
            raise ValueError(f"Unrecognised page key: {page_key!r}")

        existing = self._existing_image(book_id, page_number, anchor)
        if existing is not None:
            logger.info("%s of book %s is already painted; not repainting.", page_key, book_id)
            return await asyncio.to_thread(self._store.sign_url, existing, PAGE_IMAGE_URL_TTL)

        expected_version = 0
        if page_number is not None:
            expected_version = self._repository.get(book_id).page(page_number).version

        reference_urls = [
            await asyncio.to_thread(self._store.sign_url, ref, PAGE_IMAGE_URL_TTL)
            for ref in references
        ]

        for attempt in range(1, retries + 1):
            image = await self._race(prompt, reference_urls, concurrency, book_id, page_key)
            if image is not None:
                return await self._persist(book_id, page_key, page_number, anchor, image, expected_version)
            if attempt < retries:
                logger.info(
                    "Attempt %d/%d for %s of book %s failed; retrying in %.0fs.",
                    attempt,
                    retries,
                    page_key,
                    book_id,
                    self._settings.retry_delay_s,
                )
                await self._sleep(self._settings.retry_delay_s)

        logger.warning(
            "Giving up on %s of book %s after %d attempts; leaving it unpainted.",
            page_key,
            book_id,
            retries,
        )
        return None

    def _existing_image(
        self,
        book_id: str,
        page_number: int | None,
        anchor: AnchorKind | None,
    ) -> ObjectRef | None:
        book = self._repository.get(book_id)
        if page_number is not None:
            return book.page(page_number).image_ref
        return book.anchors.get(anchor)

    async def _race(
        self,
        prompt: str,
        reference_urls: Sequence[str],
        concurrency: int,
        book_id: str,
        page_key: str,
    ) -> bytes | None:
        tasks = [
            asyncio.create_task(self._generate_once(prompt, reference_urls))
            for _ in range(concurrency)
        ]
        try:
            pending = set(tasks)
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    error = task.exception()
                    if error is None:
                        return task.result()
                    logger.warning(
                        "Generation call for %s of book %s failed: %s",
                        page_key,
                        book_id,
                        error,
                    )
            return None
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _generate_once(self, prompt: str, reference_urls: Sequence[str]) -> bytes:
        image = await asyncio.wait_for(
            self._model.generate(prompt, reference_urls),
            timeout=self._settings.generation_timeout_s,
        )
        if not image:
            raise EmptyGenerationError("The model returned an empty image.")
        return image

    async def _persist(
        self,
        book_id: str,
        page_key: str,
        page_number: int | None,
        anchor: AnchorKind | None,
        image: bytes,
        expected_version: int,
    ) -> str:
        winner = self._existing_image(book_id, page_number, anchor)
        if winner is not None:
            logger.info("%s of book %s was painted concurrently; keeping it.", page_key, book_id)
            return await asyncio.to_thread(self._store.sign_url, winner, PAGE_IMAGE_URL_TTL)

        ref = await asyncio.to_thread(
            self._store.put,
            self._settings.images_bucket,
            image_path_for(book_id, page_key),
            image,
            content_type=PNG_CONTENT_TYPE,
        )

        if page_number is not None:
            try:
                self._repository.set_page_image(
                    book_id, page_number, ref, expected_version=expected_version
                )
            except PageVersionConflictError:
                winner = self._repository.get(book_id).page(page_number).image_ref or ref
                logger.info("Page %s of book %s was painted concurrently; keeping it.", page_number, book_id)
                return await asyncio.to_thread(self._store.sign_url, winner, PAGE_IMAGE_URL_TTL)
        else:
            winner = self._repository.get(book_id).anchors.get(anchor)
            if winner is not None:
                logger.info("%s of book %s was painted concurrently; keeping it.", page_key, book_id)
                return await asyncio.to_thread(self._store.sign_url, winner, PAGE_IMAGE_URL_TTL)
            self._repository.set_anchor(book_id, anchor, ref)

        self._repository.record_image(
            ImageRecord(
                book_id=book_id,
                page_key=page_key,
                object_ref=ref,
                source=self._model.source_tag,
            )
        )
        logger.info("Painted %s of book %s.", page_key, book_id)
        return await asyncio.to_thread(self._store.sign_url, ref, PAGE_IMAGE_URL_TTL)
