"""Tests for the master page list."""

import pytest

from storytime.book import AnchorKind, ObjectRef, PageRole, PageSetBuilder, structural_page_count
from storytime.book.models import StoryPage

from conftest import make_book


def test_layout_wraps_story_pages_with_structural_pages():
    book = make_book(story_count=3)
    pages = PageSetBuilder().build(book)

    assert [page.page_number for page in pages] == [1, 2, 3, 4, 5, 6, 7]
    assert pages[0].role is PageRole.PHOTO
    assert pages[3].text == "Story text 1."
    assert pages[3].prompt == "Scene 1 in the forest"
    assert pages[-1].role is PageRole.EPILOGUE
    assert len(pages) == structural_page_count(3) - 1


def test_photo_page_prefers_user_photo_over_lead_anchor():
    book = make_book(story_count=1)
    photo = ObjectRef("images", "books/book-1/photo.png")
    anchor = ObjectRef("images", "books/book-1/lead_reference.png")
    book.anchors[AnchorKind.LEAD] = anchor

    assert PageSetBuilder().build(book)[0].image_ref == anchor

    book.photo_ref = photo
    assert PageSetBuilder().build(book)[0].image_ref == photo


def test_companion_page_uses_companion_anchor():
    book = make_book(story_count=1)
    anchor = ObjectRef("images", "books/book-1/companion_reference.png")
    book.anchors[AnchorKind.COMPANION] = anchor

    pages = PageSetBuilder().build(book)
    assert pages[2].image_ref == anchor
    assert "Pip the Fox" in pages[2].text


def test_rebuild_keeps_painted_images_and_versions():
    book = make_book(story_count=4)
    builder = PageSetBuilder()
    first = builder.build(book)
    painted = first[4].with_image(ObjectRef("images", "books/book-1/page_5.png"))
    book.pages = first[:4] + [painted] + first[5:]

    rebuilt = builder.build(book)

    assert rebuilt[4].image_ref == painted.image_ref
    assert rebuilt[4].version == 1
    assert builder.build(book) == rebuilt


def test_missing_story_content_fails_fast():
    book = make_book(story_count=0)
    with pytest.raises(ValueError):
        PageSetBuilder().build(book)

    book.story_pages = [StoryPage(text="  ", prompt="scene")]
    with pytest.raises(ValueError):
        PageSetBuilder().build(book)


def test_structural_page_count_includes_title_block():
    assert structural_page_count(23) == 28
    assert structural_page_count(10) == 15
