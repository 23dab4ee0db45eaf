"""
Hands an assembled book to the print vendor.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from storytime.book.lifecycle import BookStatus, check_can_reach
from storytime.book.models import ObjectRef, ShippingAddress
from storytime.book.repository import BookRepository
from storytime.common.settings import PipelineSettings
from storytime.storage.base import VENDOR_URL_TTL, ObjectStore

from .gelato import FulfillmentError, GelatoClient, build_order_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FulfillmentRequest:
    """
    What to print and where to send it.

    ``document_ref`` defaults to the book's stored document.
    """

    book_id: str
    shipping_address: ShippingAddress
    currency: str = "AUD"
    order_reference_id: str | None = None
    document_ref: ObjectRef | None = None


@dataclass(frozen=True)
class VendorOrder:
    order_id: str
    fulfillment_status: str | None
    test_mode: bool
    page_count: int
    raw: dict[str, Any]


class FulfillmentDispatcher:
    """
    Submits one print order per call; there is no automatic retry.

    The vendor only ever receives a link valid for 24 hours. Whether the order
    is a non-billing draft is decided by ``settings.print_test_mode`` alone.
    """

    def __init__(
        self,
        repository: BookRepository,
        store: ObjectStore,
        client: GelatoClient,
        *,
        settings: PipelineSettings | None = None,
    ) -> None:
        self._repository = repository
        self._store = store
        self._client = client
        self._settings = settings or PipelineSettings()

    async def dispatch(self, request: FulfillmentRequest) -> VendorOrder:
        book = self._repository.get(request.book_id)
        test_mode = self._settings.print_test_mode
        target = BookStatus.PRINTING_TEST if test_mode else BookStatus.PRINTING
        check_can_reach(book.status, target)

        document_ref = request.document_ref or book.pdf_ref
        if document_ref is None:
            raise FulfillmentError(f"Book {book.book_id} has no assembled document to print.")

        document_url = await asyncio.to_thread(self._store.sign_url, document_ref, VENDOR_URL_TTL)
        page_count = book.final_page_count or self._settings.min_page_count
        payload = build_order_payload(
            document_url=document_url,
            page_count=page_count,
            shipping_address=request.shipping_address,
            order_reference_id=request.order_reference_id or f"{book.book_id}-physical",
            currency=request.currency,
            test_mode=test_mode,
        )

        result = await asyncio.to_thread(self._client.create_order, payload)

        order = VendorOrder(
            order_id=str(result["id"]),
            fulfillment_status=result.get("fulfillmentStatus"),
            test_mode=test_mode,
            page_count=page_count,
            raw=result,
        )
        self._repository.advance_status(
            book.book_id,
            target,
            vendor_order_id=order.order_id,
            vendor_order_status=order.fulfillment_status,
        )
        logger.info(
            "Book %s sent to print as %s order %s.",
            book.book_id,
            "draft" if test_mode else "live",
            order.order_id,
        )
        return order
