"""
Book lifecycle states and the transitions allowed between them.
"""

from __future__ import annotations

from enum import Enum


class BookStatus(str, Enum):
    DRAFT = "draft"
    TEASER_GENERATING = "teaser_generating"
    TEASER_READY = "teaser_ready"
    PAID = "paid"
    GENERATING = "generating"
    ILLUSTRATED = "illustrated"
    PDF_READY = "pdf_ready"
    PRINTING_TEST = "printing_test"
    PRINTING = "printing"
    SHIPPED = "shipped"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _RANKS[self]


class IllegalStatusTransitionError(ValueError):
    """Raised when a status write is not allowed by the transition table."""

    def __init__(self, current: BookStatus, target: BookStatus) -> None:
        super().__init__(f"Illegal book status transition: {current.value} -> {target.value}.")
        self.current = current
        self.target = target


_RANKS: dict[BookStatus, int] = {
    BookStatus.FAILED: 0,
    BookStatus.DRAFT: 0,
    BookStatus.TEASER_GENERATING: 1,
    BookStatus.TEASER_READY: 2,
    BookStatus.PAID: 3,
    BookStatus.GENERATING: 4,
    BookStatus.ILLUSTRATED: 5,
    BookStatus.PDF_READY: 6,
    BookStatus.PRINTING_TEST: 7,
    BookStatus.PRINTING: 8,
    BookStatus.SHIPPED: 9,
}

TRANSITIONS: dict[BookStatus, frozenset[BookStatus]] = {
    BookStatus.DRAFT: frozenset(
        {BookStatus.TEASER_GENERATING, BookStatus.PAID, BookStatus.FAILED}
    ),
    BookStatus.TEASER_GENERATING: frozenset(
        {BookStatus.TEASER_READY, BookStatus.PAID, BookStatus.FAILED}
    ),
    BookStatus.TEASER_READY: frozenset({BookStatus.PAID, BookStatus.FAILED}),
    BookStatus.PAID: frozenset({BookStatus.GENERATING, BookStatus.FAILED}),
    BookStatus.GENERATING: frozenset({BookStatus.ILLUSTRATED, BookStatus.FAILED}),
    BookStatus.ILLUSTRATED: frozenset({BookStatus.PDF_READY, BookStatus.FAILED}),
    BookStatus.PDF_READY: frozenset(
        {BookStatus.PRINTING, BookStatus.PRINTING_TEST, BookStatus.FAILED}
    ),
    BookStatus.PRINTING_TEST: frozenset(
        {BookStatus.PRINTING, BookStatus.SHIPPED, BookStatus.FAILED}
    ),
    BookStatus.PRINTING: frozenset({BookStatus.SHIPPED, BookStatus.FAILED}),
    BookStatus.SHIPPED: frozenset(),
    BookStatus.FAILED: frozenset(
        {
            BookStatus.TEASER_GENERATING,
            BookStatus.PAID,
            BookStatus.GENERATING,
            BookStatus.PDF_READY,
        }
    ),
}


def can_transition(current: BookStatus, target: BookStatus) -> bool:
    return target in TRANSITIONS[current]


def validate_transition(current: BookStatus, target: BookStatus) -> None:
    if not can_transition(current, target):
        raise IllegalStatusTransitionError(current, target)


def is_at_or_beyond(current: BookStatus, target: BookStatus) -> bool:
    """
    Return True when ``current`` already represents ``target`` or a later stage.

    ``FAILED`` is never at or beyond another status, in either direction.
    """
    if current is target:
        return True
    if BookStatus.FAILED in (current, target):
        return False
    return current.rank >= target.rank


def check_can_reach(current: BookStatus, target: BookStatus) -> None:
    """Fail fast when ``target`` is neither reached already nor directly reachable."""
    if is_at_or_beyond(current, target):
        return
    validate_transition(current, target)
