"""
Headless-browser rendering of the print template, one block per PDF page.
"""

from __future__ import annotations

import logging
from typing import Any

from playwright.async_api import async_playwright

from .template import BLOCK_SELECTOR, PAGE_HEIGHT_IN, PAGE_WIDTH_IN

logger = logging.getLogger(__name__)

_SHOW_ONLY_BLOCK = """
([selector, index]) => {
  document.querySelectorAll(selector).forEach((element, position) => {
    element.style.display = position === index ? '' : 'none';
  });
}
"""


class PageRenderer:
    """
    A renderer session over a single print document.

    ``open`` loads the document and returns how many blocks it holds;
    ``capture_page`` returns a one-page PDF of a single block. ``close`` must
    be safe to call more than once.
    """

    async def open(self, *, url: str | None = None, html: str | None = None) -> int:
        raise NotImplementedError

    async def capture_page(self, index: int) -> bytes:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError

    async def __aenter__(self) -> "PageRenderer":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


class PlaywrightPageRenderer(PageRenderer):
    """
    Chromium session driven through Playwright's async API.

    Parameters
    ----------
    navigation_timeout_s:
        Maximum time to wait for the template to finish loading, images included.
    block_selector:
        CSS selector identifying one printable block.
    """

    def __init__(
        self,
        *,
        navigation_timeout_s: float = 120.0,
        block_selector: str = BLOCK_SELECTOR,
        width: str = f"{PAGE_WIDTH_IN}in",
        height: str = f"{PAGE_HEIGHT_IN}in",
    ) -> None:
        self._navigation_timeout_ms = navigation_timeout_s * 1000
        self._block_selector = block_selector
        self._width = width
        self._height = height
        self._playwright = None
        self._browser = None
        self._page = None

    async def open(self, *, url: str | None = None, html: str | None = None) -> int:
        if (url is None) == (html is None):
            raise ValueError("Provide exactly one of url or html.")

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=True,
            args=["--no-sandbox", "--disable-dev-shm-usage"],
        )
        self._page = await self._browser.new_page()
        await self._page.emulate_media(media="print")

        if url is not None:
            logger.info("Loading print template from %s.", url)
            await self._page.goto(url, wait_until="networkidle", timeout=self._navigation_timeout_ms)
        else:
            await self._page.set_content(html, wait_until="networkidle", timeout=self._navigation_timeout_ms)

        return await self._page.locator(self._block_selector).count()

    async def capture_page(self, index: int) -> bytes:
        if self._page is None:
            raise RuntimeError("Renderer is not open.")
        await self._page.evaluate(_SHOW_ONLY_BLOCK, [self._block_selector, index])
        return await self._page.pdf(
            width=self._width,
            height=self._height,
            margin={"top": "0", "right": "0", "bottom": "0", "left": "0"},
            print_background=True,
            page_ranges="1",
        )

    async def close(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._page = self._browser = self._playwright = None
        if browser is not None:
            await browser.close()
        if playwright is not None:
            await playwright.stop()
