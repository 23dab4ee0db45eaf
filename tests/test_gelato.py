"""Tests for the Gelato order client and payload builders."""

import pytest
import requests

from storytime.book import ShippingAddress
from storytime.fulfillment.gelato import (
    ADDRESS_DEFAULTS,
    PHOTOBOOK_PRODUCT_UID,
    FulfillmentError,
    GelatoClient,
    build_order_payload,
    build_shipping_payload,
)
from storytime.fulfillment.regions import normalize_region

from conftest import FakeResponse, FakeSession


def _address(**overrides):
    fields = {
        "email": "parent@example.com",
        "first_name": "Ana",
        "last_name": "Lee",
        "address_line1": "1 Main St",
        "city": "Sydney",
        "post_code": "2000",
        "state": "New South Wales",
        "country": "AU",
        "phone": "0400000000",
    }
    fields.update(overrides)
    return ShippingAddress(**fields)


def test_region_names_map_to_codes():
    assert normalize_region("New South Wales") == "NSW"
    assert normalize_region("  california ") == "CA"
    assert normalize_region("Bavaria") == "Bavaria"
    assert normalize_region(None) == ""


def test_missing_address_fields_get_placeholders():
    payload = build_shipping_payload(ShippingAddress(email="parent@example.com"))

    assert payload["firstName"] == ADDRESS_DEFAULTS["firstName"]
    assert payload["postCode"] == ADDRESS_DEFAULTS["postCode"]
    assert payload["country"] == "AU"
    assert payload["state"] == ""
    assert payload["email"] == "parent@example.com"


def test_order_payload_shape():
    payload = build_order_payload(
        document_url="https://files.example/book.pdf",
        page_count=28,
        shipping_address=_address(),
        order_reference_id="book-1-physical",
        currency="aud",
        test_mode=True,
    )

    assert payload["orderType"] == "draft"
    assert payload["currency"] == "AUD"
    assert payload["shippingAddress"]["state"] == "NSW"
    item = payload["items"][0]
    assert item["productUid"] == PHOTOBOOK_PRODUCT_UID
    assert item["pageCount"] == 28
    assert item["files"] == [{"type": "default", "url": "https://files.example/book.pdf"}]


def test_live_orders_are_not_drafts():
    payload = build_order_payload(
        document_url="https://files.example/book.pdf",
        page_count=30,
        shipping_address=_address(),
        order_reference_id="ref",
        currency="USD",
        test_mode=False,
    )
    assert payload["orderType"] == "order"


def test_create_order_posts_with_api_key():
    session = FakeSession(FakeResponse(201, {"id": "gel-1", "fulfillmentStatus": "draft"}))
    client = GelatoClient(api_key="secret", session=session)

    result = client.create_order({"orderType": "draft", "orderReferenceId": "ref"})

    assert result["id"] == "gel-1"
    post = session.posts[0]
    assert post["headers"]["X-API-KEY"] == "secret"
    assert post["json"]["orderReferenceId"] == "ref"


def test_rejection_keeps_vendor_body():
    body = '{"code": "invalid_address"}'
    client = GelatoClient(api_key="secret", session=FakeSession(FakeResponse(400, text=body)))

    with pytest.raises(FulfillmentError) as excinfo:
        client.create_order({"orderType": "order"})

    assert excinfo.value.status_code == 400
    assert excinfo.value.body == body


def test_response_without_id_is_an_error():
    client = GelatoClient(api_key="secret", session=FakeSession(FakeResponse(200, {"status": "ok"})))

    with pytest.raises(FulfillmentError):
        client.create_order({})


def test_network_errors_are_wrapped():
    class BrokenSession:
        def post(self, url, **kwargs):
            raise requests.ConnectionError("connection refused")

    client = GelatoClient(api_key="secret", session=BrokenSession())

    with pytest.raises(FulfillmentError, match="Could not reach Gelato"):
        client.create_order({})


def test_api_key_is_required(monkeypatch):
    monkeypatch.delenv("GELATO_API_KEY", raising=False)
    with pytest.raises(ValueError):
        GelatoClient()
