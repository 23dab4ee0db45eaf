"""
Construction of the canonical, ordered page list for a storybook.
"""

from __future__ import annotations

from typing import Sequence

from .models import AnchorKind, Book, Page, PageRole, StoryPage
from .repository import merge_pages

# Structural pages that wrap the story content: photo, setting, companion, epilogue.
STRUCTURAL_PAGE_COUNT = 4
FIRST_STORY_PAGE_NUMBER = 4

DEFAULT_CLOSING_PROMPT = (
    "A heartwarming final interaction scene between the child hero and their animal friend."
)


class PageSetBuilder:
    """
    Builds the master page list for a book.

    Layout:
      1. photo page - the user's photo, or the lead anchor portrait when none was supplied
      2. setting page - the lead character arriving in the story's setting
      3. companion page - introduces the companion using its anchor portrait
      4..4+N-1. the N story pages, renumbered
      last. epilogue page

    Rebuilding against a partially painted book keeps every stored image.
    """

    def build(self, book: Book) -> list[Page]:
        story_pages = self._validate_story_pages(book.story_pages)

        pages: list[Page] = [
            self._photo_page(book),
            self._setting_page(book),
            self._companion_page(book),
        ]
        for offset, story_page in enumerate(story_pages):
            pages.append(
                Page(
                    page_number=FIRST_STORY_PAGE_NUMBER + offset,
                    role=PageRole.STORY,
                    text=story_page.text,
                    prompt=story_page.prompt,
                )
            )
        pages.append(
            Page(
                page_number=len(pages) + 1,
                role=PageRole.EPILOGUE,
                text="The End. May your adventures never truly end!",
                prompt=book.closing_prompt or DEFAULT_CLOSING_PROMPT,
            )
        )

        self._validate_page_sequence(pages)
        return merge_pages(book.pages, pages)

    def _photo_page(self, book: Book) -> Page:
        if book.photo_ref is not None:
            return Page(
                page_number=1,
                role=PageRole.PHOTO,
                text="Look, here is the real you! Ready to start the story?",
                prompt="The real photo of the child",
                image_ref=book.photo_ref,
            )
        return Page(
            page_number=1,
            role=PageRole.PHOTO,
            text="Look, here is you as a storybook hero! Ready to start?",
            prompt=f"The stylized storybook character portrait of {book.lead_name}",
            image_ref=book.anchors.get(AnchorKind.LEAD),
        )

    def _setting_page(self, book: Book) -> Page:
        return Page(
            page_number=2,
            role=PageRole.STORY,
            text="Once upon a time, your adventure began right here!",
            prompt=(
                f"Our hero {book.lead_name} is standing in {book.setting}, looking at the "
                "horizon with a bright smile, ready for a big adventure. "
                f"Bathed in the {book.style} aesthetic."
            ),
        )

    def _companion_page(self, book: Book) -> Page:
        return Page(
            page_number=3,
            role=PageRole.STORY,
            text=f"Meet your brave friend, {book.companion}!",
            prompt=f"The {book.companion} character friend",
            image_ref=book.anchors.get(AnchorKind.COMPANION),
        )

    @staticmethod
    def _validate_story_pages(story_pages: Sequence[StoryPage]) -> list[StoryPage]:
        if not story_pages:
            raise ValueError("A book needs at least one story page to build its page set.")
        for index, story_page in enumerate(story_pages, start=1):
            if not story_page.text.strip():
                raise ValueError(f"Story page {index} is missing its text.")
        return list(story_pages)

    @staticmethod
    def _validate_page_sequence(pages: Sequence[Page]) -> None:
        for expected, page in enumerate(pages, start=1):
            if page.page_number != expected:
                raise ValueError("Page numbers must be sequential starting from 1.")


def structural_page_count(story_page_count: int) -> int:
    """Number of document pages for a book: every page plus the title block."""
    return story_page_count + STRUCTURAL_PAGE_COUNT + 1
