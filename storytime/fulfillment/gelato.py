"""
Client for the Gelato print-on-demand order API.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping

import requests

from storytime.book.models import ShippingAddress

from .regions import normalize_region

logger = logging.getLogger(__name__)

GELATO_ORDERS_URL = "https://order.gelatoapis.com/v4/orders"

PHOTOBOOK_PRODUCT_UID = (
    "photobooks-hardcover_pf_210x280-mm-8x11-inch_pt_170-gsm-65lb-coated-silk_cl_4-4_ccl_4-4_"
    "bt_glued-left_ct_matt-lamination_prt_1-0_cpt_130-gsm-65-lb-cover-coated-silk_ver"
)

# The vendor rejects orders with any of these fields empty.
ADDRESS_DEFAULTS = {
    "firstName": "Customer",
    "lastName": "Recipient",
    "addressLine1": "No Address Provided",
    "city": "Unknown City",
    "postCode": "0000",
    "country": "AU",
    "phone": "0000000000",
}


class FulfillmentError(RuntimeError):
    """
    Raised when the print vendor rejects or cannot receive an order.

    ``body`` carries the vendor's raw response text when one was received.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def build_shipping_payload(address: ShippingAddress) -> dict[str, str]:
    return {
        "firstName": address.first_name or ADDRESS_DEFAULTS["firstName"],
        "lastName": address.last_name or ADDRESS_DEFAULTS["lastName"],
        "addressLine1": address.address_line1 or ADDRESS_DEFAULTS["addressLine1"],
        "addressLine2": address.address_line2 or "",
        "city": address.city or ADDRESS_DEFAULTS["city"],
        "postCode": address.post_code or ADDRESS_DEFAULTS["postCode"],
        "state": normalize_region(address.state),
        "country": address.country or ADDRESS_DEFAULTS["country"],
        "email": address.email,
        "phone": address.phone or ADDRESS_DEFAULTS["phone"],
    }


def build_order_payload(
    *,
    document_url: str,
    page_count: int,
    shipping_address: ShippingAddress,
    order_reference_id: str,
    currency: str,
    test_mode: bool,
    product_uid: str = PHOTOBOOK_PRODUCT_UID,
) -> dict[str, Any]:
    """Build a single-item photobook order."""
    return {
        "orderType": "draft" if test_mode else "order",
        "orderReferenceId": order_reference_id,
        "customerReferenceId": shipping_address.email,
        "currency": currency.upper(),
        "items": [
            {
                "itemReferenceId": "item-1",
                "productUid": product_uid,
                "files": [{"type": "default", "url": document_url}],
                "quantity": 1,
                "pageCount": page_count,
            }
        ],
        "shipmentMethodUid": "standard",
        "shippingAddress": build_shipping_payload(shipping_address),
    }


class GelatoClient:
    """
    Thin wrapper around the Gelato v4 order endpoint.

    Parameters
    ----------
    api_key:
        Gelato API key. Falls back to ``GELATO_API_KEY`` environment variable.
    session:
        Optional :class:`requests.Session`, mainly useful for testing.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        session: requests.Session | None = None,
        orders_url: str = GELATO_ORDERS_URL,
        timeout_s: float = 30.0,
    ) -> None:
        self._api_key = api_key or os.getenv("GELATO_API_KEY")
        if not self._api_key:
            raise ValueError("Gelato API key is required. Set GELATO_API_KEY or pass api_key.")
        self._session = session or requests.Session()
        self._orders_url = orders_url
        self._timeout_s = timeout_s

    def create_order(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Submit ``payload`` and return the vendor's order document."""
        logger.info(
            "Submitting %s %s to Gelato.",
            payload.get("orderType", "order"),
            payload.get("orderReferenceId"),
        )
        try:
            response = self._session.post(
                self._orders_url,
                json=dict(payload),
                headers={"X-API-KEY": self._api_key, "Content-Type": "application/json"},
                timeout=self._timeout_s,
            )
        except requests.RequestException as exc:
            raise FulfillmentError(f"Could not reach Gelato: {exc}") from exc

        if not response.ok:
            logger.error("Gelato rejected the order (%s): %s", response.status_code, response.text)
            raise FulfillmentError(
                f"Gelato order failed with status {response.status_code}.",
                status_code=response.status_code,
                body=response.text,
            )
        try:
            result = response.json()
        except ValueError as exc:
            raise FulfillmentError(
                "Gelato returned a response that is not JSON.",
                status_code=response.status_code,
                body=response.text,
            ) from exc
        if not isinstance(result, Mapping) or not result.get("id"):
            raise FulfillmentError(
                "Gelato response is missing the order id.",
                status_code=response.status_code,
                body=response.text,
            )
        return dict(result)
