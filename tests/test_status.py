"""Tests for the book status read model."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

from storytime.book import BookStatus, ObjectRef, PageSetBuilder
from storytime.pipeline.status import BookStatusReader
from storytime.storage import LocalObjectStore

from conftest import make_book

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _expiry(url: str) -> datetime:
    seconds = int(parse_qs(urlparse(url).query)["expires"][0])
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def _painted_book(repository, painted=(4, 5)):
    book = repository.create(make_book(story_count=3))
    repository.save_pages("book-1", PageSetBuilder().build(book))
    for number in painted:
        repository.set_page_image("book-1", number, ObjectRef("images", f"p{number}.png"), expected_version=0)


def test_page_links_last_an_hour_and_document_links_a_week(repository, tmp_path):
    store = LocalObjectStore(tmp_path, clock=lambda: NOW)
    _painted_book(repository)
    repository.update_fields("book-1", pdf_ref=ObjectRef("pdfs", "pdfs/book-1.pdf"), final_page_count=28)

    view = BookStatusReader(repository, store).read("book-1")

    page_urls = [page.image_url for page in view.pages if page.image_url]
    assert len(page_urls) == 2
    assert all(_expiry(url) == NOW + timedelta(hours=1) for url in page_urls)
    assert _expiry(view.pdf_url) == NOW + timedelta(days=7)
    assert view.final_page_count == 28


def test_links_are_signed_fresh_on_every_read(repository, tmp_path):
    clock = {"now": NOW}
    store = LocalObjectStore(tmp_path, clock=lambda: clock["now"])
    _painted_book(repository, painted=(4,))
    reader = BookStatusReader(repository, store)

    first = reader.read("book-1").pages[3].image_url
    clock["now"] = NOW + timedelta(minutes=30)
    second = reader.read("book-1").pages[3].image_url

    assert _expiry(second) - _expiry(first) == timedelta(minutes=30)


def test_lower_painted_count_is_flagged_stale(repository, store):
    _painted_book(repository, painted=(4, 5))
    reader = BookStatusReader(repository, store)
    assert reader.read("book-1").stale is False

    # Simulate a lagging replica that has not seen the second page yet.
    book = repository._books["book-1"]
    book.pages[4] = replace(book.pages[4], image_ref=None)

    view = reader.read("book-1")
    assert view.stale is True
    assert view.painted_count == 1


def test_view_serialises_to_yaml(repository, store):
    _painted_book(repository)
    repository.set_status("book-1", BookStatus.TEASER_GENERATING)

    text = BookStatusReader(repository, store).read("book-1").to_yaml()

    assert "status: teaser_generating" in text
    assert "painted_count: 2" in text
