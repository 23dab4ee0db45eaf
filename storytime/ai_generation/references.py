"""
Resolution of the lead and companion reference portraits ("anchors").
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from storytime.book.models import AnchorKind, Book, ObjectRef
from storytime.book.repository import BookRepository
from storytime.common.settings import PipelineSettings
from storytime.storage.base import ObjectStore

from .identity import IdentityExtractor
from .prompting import build_anchor_prompt
from .racing import RacingPainter

logger = logging.getLogger(__name__)


class AnchorUnavailableError(RuntimeError):
    """Raised in strict mode when a reference portrait could not be painted."""

    def __init__(self, book_id: str, missing: list[AnchorKind]) -> None:
        names = ", ".join(kind.value for kind in missing)
        super().__init__(f"Book {book_id} is missing reference portraits: {names}.")
        self.book_id = book_id
        self.missing = missing


@dataclass(frozen=True)
class AnchorSet:
    """Resolved anchors for one book; ``missing`` lists the kinds that could not be painted."""

    anchors: dict[AnchorKind, ObjectRef] = field(default_factory=dict)
    missing: tuple[AnchorKind, ...] = ()

    @property
    def degraded(self) -> bool:
        return bool(self.missing)


class ReferenceImageResolver:
    """
    Ensures a book has its lead and companion reference portraits.

    Anchors already recorded on the book are reused. The remaining ones are
    painted concurrently. With ``require_anchors`` off, a portrait that cannot
    be painted is recorded on ``Book.degraded_anchors`` and later page prompts
    simply leave that reference out; with it on, :class:`AnchorUnavailableError`
    is raised.
    """

    def __init__(
        self,
        painter: RacingPainter,
        repository: BookRepository,
        store: ObjectStore,
        *,
        settings: PipelineSettings | None = None,
        identity_extractor: IdentityExtractor | None = None,
    ) -> None:
        self._painter = painter
        self._repository = repository
        self._store = store
        self._settings = settings or PipelineSettings()
        self._identity_extractor = identity_extractor

    async def resolve(self, book_id: str) -> AnchorSet:
        book = self._repository.get(book_id)
        wanted = [kind for kind in AnchorKind if kind not in book.anchors]
        if wanted:
            identity_notes = await self._identity_notes(book) if AnchorKind.LEAD in wanted else []
            await asyncio.gather(
                *(self._paint_anchor(book, kind, identity_notes) for kind in wanted)
            )
        else:
            logger.debug("Book %s already has both reference portraits.", book_id)

        book = self._repository.get(book_id)
        missing = [kind for kind in AnchorKind if kind not in book.anchors]
        if missing:
            if self._settings.require_anchors:
                raise AnchorUnavailableError(book_id, missing)
            logger.warning(
                "Book %s continues without reference portraits for: %s.",
                book_id,
                ", ".join(kind.value for kind in missing),
            )
        if missing != book.degraded_anchors:
            self._repository.update_fields(book_id, degraded_anchors=missing)
        return AnchorSet(anchors=dict(book.anchors), missing=tuple(missing))

    async def _paint_anchor(self, book: Book, kind: AnchorKind, identity_notes: list[str]) -> None:
        prompt = build_anchor_prompt(
            book,
            kind,
            identity_notes=identity_notes if kind is AnchorKind.LEAD else None,
        )
        references = [book.photo_ref] if prompt.references and book.photo_ref else []
        url = await self._painter.paint(book.book_id, kind.page_key, prompt.positive, references)
        if url is None:
            logger.warning("Reference portrait %s for book %s could not be painted.", kind.value, book.book_id)

    async def _identity_notes(self, book: Book) -> list[str]:
        if self._identity_extractor is None or book.photo_ref is None or book.lead_description.strip():
            return []
        photo = await asyncio.to_thread(self._store.read, book.photo_ref)
        notes = await self._identity_extractor.extract(photo)
        if notes:
            logger.info("Extracted %d identity notes for book %s.", len(notes), book.book_id)
        return notes
