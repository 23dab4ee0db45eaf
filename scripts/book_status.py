"""
Print a book's current status, with freshly signed links, as YAML.

Usage:
    python scripts/book_status.py --book-id b-123
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import yaml

# Ensure project root is on the Python path.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from storytime.pipeline import StorybookService  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show the status of a storybook.")
    parser.add_argument("--book-id", required=True, help="Identifier of the book.")
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding book records (default: STORYTIME_DATA_DIR or ./storytime-data).",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Omit the per-page listing.",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    service = StorybookService.from_env(data_dir=args.data_dir)
    view = service.book_status(args.book_id)
    if args.summary:
        payload = view.as_dict()
        payload.pop("pages")
        print(yaml.safe_dump(payload, sort_keys=False, allow_unicode=True), end="")
    else:
        print(view.to_yaml(), end="")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
