"""
Storytime: illustration, print assembly and fulfillment for personalised storybooks.
"""

from .book import Book, BookStatus, Order, ShippingAddress
from .common import PipelineSettings
from .fulfillment import FulfillmentError, FulfillmentRequest
from .pdf_generation import AssemblyError
from .pipeline import BookStatusView, StorybookService

__all__ = [
    "AssemblyError",
    "Book",
    "BookStatus",
    "BookStatusView",
    "FulfillmentError",
    "FulfillmentRequest",
    "Order",
    "PipelineSettings",
    "ShippingAddress",
    "StorybookService",
]
