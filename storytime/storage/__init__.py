"""
Durable object storage and signed access URLs.
"""

from .base import (
    DOCUMENT_URL_TTL,
    PAGE_IMAGE_URL_TTL,
    PDF_CONTENT_TYPE,
    PNG_CONTENT_TYPE,
    VENDOR_URL_TTL,
    ObjectStore,
)
from .gcs import GCSObjectStore
from .local import LocalObjectStore

__all__ = [
    "DOCUMENT_URL_TTL",
    "GCSObjectStore",
    "LocalObjectStore",
    "ObjectStore",
    "PAGE_IMAGE_URL_TTL",
    "PDF_CONTENT_TYPE",
    "PNG_CONTENT_TYPE",
    "VENDOR_URL_TTL",
]
