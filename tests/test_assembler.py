"""Tests for print document assembly."""

import asyncio
from io import BytesIO

import pytest
from pypdf import PdfReader

from storytime.book import BookStatus, IllegalStatusTransitionError, InMemoryBookRepository, PageSetBuilder
from storytime.common import PipelineSettings
from storytime.pdf_generation.assembler import AssemblyError, PdfAssembler

from conftest import PNG_BYTES, FakeRenderer, make_book


def _illustrated_book(repository, store, settings, story_count):
    book = repository.create(make_book(story_count=story_count))
    repository.save_pages("book-1", PageSetBuilder().build(book))
    for page in repository.get("book-1").pages:
        ref = store.put(settings.images_bucket, f"books/book-1/{page.key}.png", PNG_BYTES, content_type="image/png")
        repository.set_page_image("book-1", page.page_number, ref, expected_version=page.version)
    for status in (BookStatus.PAID, BookStatus.GENERATING, BookStatus.ILLUSTRATED):
        repository.set_status("book-1", status)


def _assemble(repository, store, settings, renderer):
    assembler = PdfAssembler(repository, store, settings=settings, renderer_factory=lambda: renderer)
    return asyncio.run(assembler.assemble("book-1"))


def _stored_page_count(store, repository):
    ref = repository.get("book-1").pdf_ref
    return len(PdfReader(BytesIO(store.read(ref))).pages)


def test_full_book_needs_no_filler(repository, store, settings):
    _illustrated_book(repository, store, settings, story_count=23)
    renderer = FakeRenderer()

    url = _assemble(repository, store, settings, renderer)

    book = repository.get("book-1")
    assert book.status is BookStatus.PDF_READY
    assert book.final_page_count == 28
    assert book.pdf_ref.bucket == settings.documents_bucket
    assert book.pdf_ref.path.startswith("pdfs/book-1/") and book.pdf_ref.path.endswith(".pdf")
    assert _stored_page_count(store, repository) == 28
    assert renderer.captured == list(range(28))
    assert renderer.closed
    assert "expires=" in url


def test_short_book_is_padded_to_the_minimum(repository, store, settings):
    _illustrated_book(repository, store, settings, story_count=10)

    _assemble(repository, store, settings, FakeRenderer())

    assert repository.get("book-1").final_page_count == 28
    assert _stored_page_count(store, repository) == 28


def test_template_contains_title_and_every_page(repository, store, settings):
    _illustrated_book(repository, store, settings, story_count=2)
    renderer = FakeRenderer()

    _assemble(repository, store, settings, renderer)

    html = renderer.opened_with["html"]
    assert "Mia and Pip the Fox" in html
    assert html.count("<img ") == 6
    assert "Story text 2." in html


def test_configured_template_url_is_used(repository, store):
    settings = PipelineSettings(print_template_url="https://books.example/print/{book_id}")
    _illustrated_book(repository, store, settings, story_count=2)
    renderer = FakeRenderer(block_count=7)

    _assemble(repository, store, settings, renderer)

    assert renderer.opened_with["url"] == "https://books.example/print/book-1"


def test_render_failure_persists_nothing_and_closes_renderer(repository, store, settings):
    _illustrated_book(repository, store, settings, story_count=3)
    renderer = FakeRenderer(fail_on_capture=2)

    with pytest.raises(AssemblyError):
        _assemble(repository, store, settings, renderer)

    book = repository.get("book-1")
    assert renderer.closed
    assert book.status is BookStatus.ILLUSTRATED
    assert book.pdf_ref is None
    assert book.final_page_count is None
    assert not (store._root / settings.documents_bucket).exists()


def test_block_count_mismatch_is_an_assembly_error(repository, store, settings):
    _illustrated_book(repository, store, settings, story_count=3)
    renderer = FakeRenderer(block_count=3)

    with pytest.raises(AssemblyError):
        _assemble(repository, store, settings, renderer)
    assert renderer.closed


def test_book_that_cannot_reach_pdf_ready_is_rejected(repository, store, settings):
    repository.create(make_book(story_count=3))
    renderer = FakeRenderer()

    with pytest.raises(AssemblyError):
        _assemble(repository, store, settings, renderer)
    assert renderer.opened_with == {}


def test_failed_status_write_keeps_the_previous_document(store, settings):
    class StatusRaceRepository(InMemoryBookRepository):
        def advance_status(self, book_id, target, **fields):
            if target is BookStatus.PDF_READY:
                raise IllegalStatusTransitionError(BookStatus.FAILED, target)
            return super().advance_status(book_id, target, **fields)

    repository = StatusRaceRepository()
    _illustrated_book(repository, store, settings, story_count=3)
    previous = store.put(settings.documents_bucket, "pdfs/book-1/earlier.pdf", b"%PDF earlier", content_type="application/pdf")
    repository.update_fields("book-1", pdf_ref=previous, final_page_count=28)

    with pytest.raises(AssemblyError):
        _assemble(repository, store, settings, FakeRenderer())

    book = repository.get("book-1")
    assert book.pdf_ref == previous
    assert store.read(previous) == b"%PDF earlier"
    assert book.status is BookStatus.ILLUSTRATED


def test_each_assembly_writes_a_new_object(repository, store, settings):
    _illustrated_book(repository, store, settings, story_count=3)
    _assemble(repository, store, settings, FakeRenderer())
    first = repository.get("book-1").pdf_ref

    _assemble(repository, store, settings, FakeRenderer())
    second = repository.get("book-1").pdf_ref

    assert first != second
    assert store.exists(first) and store.exists(second)
