"""
Submit the stored order for an assembled book to the print vendor.

Usage:
    python scripts/dispatch_print_order.py --book-id b-123
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Ensure project root is on the Python path.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from storytime.fulfillment import FulfillmentError, FulfillmentRequest  # noqa: E402
from storytime.pipeline import StorybookService  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send an assembled book to print.")
    parser.add_argument("--book-id", required=True, help="Identifier of the book to print.")
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding book records (default: STORYTIME_DATA_DIR or ./storytime-data).",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    service = StorybookService.from_env(data_dir=args.data_dir)
    order = service.repository.get_order(args.book_id)
    request = FulfillmentRequest(
        book_id=args.book_id,
        shipping_address=order.shipping_address,
        currency=order.currency,
        order_reference_id=order.reference_id,
    )
    try:
        vendor_order = asyncio.run(service.dispatch_fulfillment(request))
    except FulfillmentError as exc:
        print(f"Print order rejected: {exc}", file=sys.stderr)
        if exc.body:
            print(exc.body, file=sys.stderr)
        return 1

    mode = "draft" if vendor_order.test_mode else "live"
    print(f"Submitted {mode} order {vendor_order.order_id} ({vendor_order.page_count} pages).")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
