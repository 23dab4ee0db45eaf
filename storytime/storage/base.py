"""
Object store contract and the access-URL lifetimes used across the pipeline.
"""

from __future__ import annotations

from datetime import timedelta

from storytime.book.models import ObjectRef

# Per-page display links, rotated on every status read.
PAGE_IMAGE_URL_TTL = timedelta(hours=1)
# Links handed to the requester (email, download buttons).
DOCUMENT_URL_TTL = timedelta(days=7)
# Links handed to the print vendor.
VENDOR_URL_TTL = timedelta(hours=24)

PNG_CONTENT_TYPE = "image/png"
PDF_CONTENT_TYPE = "application/pdf"


class ObjectStore:
    """
    Durable object storage.

    Implementations never hand out permanent links: callers keep the
    :class:`ObjectRef` and ask for a fresh signed URL whenever one is needed.
    """

    def put(self, bucket: str, path: str, data: bytes, *, content_type: str) -> ObjectRef:
        raise NotImplementedError

    def read(self, ref: ObjectRef) -> bytes:
        raise NotImplementedError

    def exists(self, ref: ObjectRef) -> bool:
        raise NotImplementedError

    def sign_url(self, ref: ObjectRef, ttl: timedelta) -> str:
        raise NotImplementedError
