"""
Storybook aggregate, lifecycle, page layout, and persistence.
"""

from .lifecycle import BookStatus, IllegalStatusTransitionError
from .models import (
    AnchorKind,
    Book,
    ImageRecord,
    ObjectRef,
    Order,
    Page,
    PageRole,
    ShippingAddress,
    StoryPage,
)
from .page_set import PageSetBuilder, structural_page_count
from .repository import (
    BookNotFoundError,
    BookRepository,
    InMemoryBookRepository,
    PageVersionConflictError,
    YamlBookRepository,
)

__all__ = [
    "AnchorKind",
    "Book",
    "BookNotFoundError",
    "BookRepository",
    "BookStatus",
    "IllegalStatusTransitionError",
    "ImageRecord",
    "InMemoryBookRepository",
    "ObjectRef",
    "Order",
    "Page",
    "PageRole",
    "PageSetBuilder",
    "PageVersionConflictError",
    "ShippingAddress",
    "StoryPage",
    "YamlBookRepository",
    "structural_page_count",
]
