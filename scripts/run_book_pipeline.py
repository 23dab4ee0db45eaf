"""
CLI to illustrate a storybook, optionally through to print fulfillment.

Usage:
    python scripts/run_book_pipeline.py --book book.yaml
    python scripts/run_book_pipeline.py --book book.yaml --order order.yaml --fulfill
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict

import yaml
from tqdm.auto import tqdm

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from storytime.book import Book, BookNotFoundError, Order  # noqa: E402
from storytime.pipeline import StorybookService  # noqa: E402
from storytime.storage.base import PNG_CONTENT_TYPE  # noqa: E402


class ProgressTracker:
    """
    Command-line progress updates for the illustration pipeline.
    """

    def __init__(self) -> None:
        self._page_bar: tqdm | None = None

    def __call__(self, stage: str, payload: Dict[str, Any]) -> None:
        match stage:
            case "anchors:resolving":
                self._write("[1/3] Preparing the character reference portraits...")
            case "anchors:ready":
                missing = payload.get("missing") or []
                suffix = f" (continuing without: {', '.join(missing)})" if missing else "."
                self._write(f"[1/3] Reference portraits ready{suffix}")
            case "pages:ready":
                self._write(f"[2/3] Page set built with {payload.get('total_pages', 0)} pages.")
            case "teaser:started" | "full:started":
                self.close()
                total = payload.get("total_pages", 0)
                label = "Teaser pages" if stage == "teaser:started" else "Remaining pages"
                self._page_bar = tqdm(total=total, desc=label, unit="page")
            case "batch:started":
                if self._page_bar is not None:
                    self._page_bar.set_description(f"Batch {payload.get('batch')}")
            case "batch:waiting":
                self._write(f"Waiting {payload.get('seconds', 0):.0f}s before the next batch...")
            case "page:painted" | "page:failed" | "page:skipped":
                if self._page_bar is not None:
                    self._page_bar.update(1)
            case "teaser:complete" | "full:complete":
                self.close()
                missing = payload.get("missing") or []
                detail = f"; unpainted pages: {missing}" if missing else ""
                self._write(f"[3/3] {payload.get('painted', 0)} pages painted{detail}.")

    def close(self) -> None:
        if self._page_bar is not None:
            self._page_bar.close()
            self._page_bar = None

    @staticmethod
    def _write(message: str) -> None:
        tqdm.write(message)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Illustrate a storybook from its story content.")
    parser.add_argument(
        "--book",
        required=True,
        help="Path to the book YAML/JSON file (book_id, lead_name, companion, setting, story_pages...).",
    )
    parser.add_argument(
        "--photo",
        default=None,
        help="Optional photo of the child, used for the first page and the lead portrait.",
    )
    parser.add_argument(
        "--order",
        default=None,
        help="Optional paid order YAML/JSON; marks the book paid and paints the remaining pages.",
    )
    parser.add_argument(
        "--fulfill",
        action="store_true",
        help="With --order: also assemble the document and submit the print order.",
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding book records (default: STORYTIME_DATA_DIR or ./storytime-data).",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args()


def load_mapping(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        data = yaml.safe_load(text)
    elif suffix == ".json":
        data = json.loads(text)
    else:
        raise ValueError("Unsupported file format. Use YAML or JSON.")

    if not isinstance(data, dict):
        raise ValueError(f"{path} must deserialize to a mapping.")
    return data


async def run(args: argparse.Namespace) -> int:
    service = StorybookService.from_env(data_dir=args.data_dir)
    book = Book.from_dict(load_mapping(Path(args.book)))

    try:
        service.repository.get(book.book_id)
    except BookNotFoundError:
        if args.photo:
            book.photo_ref = service.store.put(
                service.settings.images_bucket,
                f"books/{book.book_id}/photo.png",
                Path(args.photo).expanduser().read_bytes(),
                content_type=PNG_CONTENT_TYPE,
            )
        service.create_book(book)

    tracker = ProgressTracker()
    try:
        if args.order:
            order = Order.from_mapping({"book_id": book.book_id, **load_mapping(Path(args.order))})
            service.mark_paid(order)
            if args.fulfill:
                vendor_order = await service.fulfill_order(book.book_id, progress_callback=tracker)
                tqdm.write(f"Print order {vendor_order.order_id} submitted ({vendor_order.page_count} pages).")
                return 0

        task = service.generate_images(book.book_id, progress_callback=tracker)
        summary = await task
    finally:
        tracker.close()

    status = service.book_status(book.book_id)
    tqdm.write(f"Book {book.book_id} is now '{status.status.value}'.")
    return 0 if summary is not None else 1


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
