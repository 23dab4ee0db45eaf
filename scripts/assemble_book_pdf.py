"""
Assemble the print document for an illustrated book.

Usage:
    python scripts/assemble_book_pdf.py --book-id b-123
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

# Ensure project root is on the Python path.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from storytime.common import PipelineSettings  # noqa: E402
from storytime.pipeline import StorybookService  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Render an illustrated book into its print-ready PDF."
    )
    parser.add_argument("--book-id", required=True, help="Identifier of the book to assemble.")
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding book records (default: STORYTIME_DATA_DIR or ./storytime-data).",
    )
    parser.add_argument(
        "--template-url",
        default=None,
        help="Optional print template URL; '{book_id}' is substituted.",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    settings = PipelineSettings.from_env()
    if args.template_url:
        settings = replace(settings, print_template_url=args.template_url)
    service = StorybookService.from_env(data_dir=args.data_dir, settings=settings)

    url = asyncio.run(service.generate_pdf(args.book_id))
    book = service.repository.get(args.book_id)
    print(f"Document ready ({book.final_page_count} pages), link valid for 7 days:")
    print(url)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
