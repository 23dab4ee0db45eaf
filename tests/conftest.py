"""Shared fixtures and fakes for the Storytime test suite."""

from __future__ import annotations

import asyncio
from io import BytesIO
from typing import Any, Callable, Sequence

import pytest
from reportlab.pdfgen import canvas

from storytime.ai_generation.base import GenerationError, ImageModel
from storytime.book import Book, InMemoryBookRepository, StoryPage
from storytime.common import PipelineSettings
from storytime.pdf_generation.renderer import PageRenderer
from storytime.storage import LocalObjectStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class FakeImageModel(ImageModel):
    """
    Scriptable image model.

    ``script`` holds one ``(delay_s, outcome)`` pair per call, consumed in order;
    ``outcome`` is the image bytes or an exception instance to raise. Calls beyond
    the script use ``default``. ``fail_when`` forces a failure for matching prompts.
    """

    def __init__(
        self,
        *,
        script: Sequence[tuple[float, Any]] = (),
        default: tuple[float, Any] = (0.0, PNG_BYTES),
        fail_when: Callable[[str], bool] | None = None,
    ) -> None:
        self._script = list(script)
        self._default = default
        self._fail_when = fail_when
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self.cancelled = 0

    @property
    def source_tag(self) -> str:
        return "fake-model"

    async def generate(self, prompt: str, references: Sequence[str] = ()) -> bytes:
        self.calls.append((prompt, tuple(references)))
        delay, outcome = self._script.pop(0) if self._script else self._default
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        if self._fail_when is not None and self._fail_when(prompt):
            raise GenerationError("scripted failure")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingSleep:
    """Awaitable stand-in for ``asyncio.sleep`` that records delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def single_page_pdf(label: str = "") -> bytes:
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=(576, 792))
    pdf.drawString(72, 720, label or "page")
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


class FakeRenderer(PageRenderer):
    """Renderer that counts print blocks in the HTML and returns one-page PDFs."""

    def __init__(self, *, fail_on_capture: int | None = None, block_count: int | None = None) -> None:
        self.fail_on_capture = fail_on_capture
        self.block_count = block_count
        self.opened_with: dict[str, Any] = {}
        self.captured: list[int] = []
        self.closed = False

    async def open(self, *, url: str | None = None, html: str | None = None) -> int:
        self.opened_with = {"url": url, "html": html}
        if self.block_count is not None:
            return self.block_count
        return (html or "").count('class="print-block')

    async def capture_page(self, index: int) -> bytes:
        if index == self.fail_on_capture:
            raise RuntimeError(f"capture failed at block {index}")
        self.captured.append(index)
        return single_page_pdf(f"block {index}")

    async def close(self) -> None:
        self.closed = True


class FakeResponse:
    def __init__(self, status_code: int, payload: Any = None, text: str | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else repr(payload)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class FakeSession:
    """Records POSTs and answers with a fixed response."""

    def __init__(self, response: FakeResponse) -> None:
        self.response = response
        self.posts: list[dict[str, Any]] = []

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.posts.append({"url": url, **kwargs})
        return self.response


def make_book(book_id: str = "book-1", *, story_count: int = 23, with_photo: bool = False, store=None) -> Book:
    book = Book(
        book_id=book_id,
        lead_name="Mia",
        companion="Pip the Fox",
        setting="an enchanted forest",
        style="soft watercolour",
        story_pages=[
            StoryPage(text=f"Story text {index}.", prompt=f"Scene {index} in the forest")
            for index in range(1, story_count + 1)
        ],
    )
    if with_photo and store is not None:
        book.photo_ref = store.put("storytime-images", f"books/{book_id}/photo.png", PNG_BYTES, content_type="image/png")
    return book


@pytest.fixture
def settings() -> PipelineSettings:
    return PipelineSettings(retry_delay_s=0.0, generation_timeout_s=5.0)


@pytest.fixture
def store(tmp_path) -> LocalObjectStore:
    return LocalObjectStore(tmp_path / "objects")


@pytest.fixture
def repository() -> InMemoryBookRepository:
    return InMemoryBookRepository()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()
