"""
Print vendor fulfillment.
"""

from .dispatcher import FulfillmentDispatcher, FulfillmentRequest, VendorOrder
from .gelato import FulfillmentError, GelatoClient, build_order_payload
from .regions import normalize_region

__all__ = [
    "FulfillmentDispatcher",
    "FulfillmentError",
    "FulfillmentRequest",
    "GelatoClient",
    "VendorOrder",
    "build_order_payload",
    "normalize_region",
]
