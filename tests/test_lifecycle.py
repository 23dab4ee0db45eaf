"""Tests for book status transitions."""

import pytest

from storytime.book.lifecycle import (
    BookStatus,
    IllegalStatusTransitionError,
    can_transition,
    check_can_reach,
    is_at_or_beyond,
    validate_transition,
)


def test_happy_path_transitions_are_legal():
    path = [
        BookStatus.DRAFT,
        BookStatus.TEASER_GENERATING,
        BookStatus.TEASER_READY,
        BookStatus.PAID,
        BookStatus.GENERATING,
        BookStatus.ILLUSTRATED,
        BookStatus.PDF_READY,
        BookStatus.PRINTING,
        BookStatus.SHIPPED,
    ]
    for current, target in zip(path, path[1:]):
        assert can_transition(current, target), f"{current} -> {target}"


def test_every_active_status_can_fail():
    for status in BookStatus:
        if status in (BookStatus.SHIPPED, BookStatus.FAILED):
            continue
        assert can_transition(status, BookStatus.FAILED)


def test_shipped_is_terminal():
    for status in BookStatus:
        assert not can_transition(BookStatus.SHIPPED, status)


def test_illegal_transition_raises_with_details():
    with pytest.raises(IllegalStatusTransitionError) as excinfo:
        validate_transition(BookStatus.DRAFT, BookStatus.PDF_READY)
    assert excinfo.value.current is BookStatus.DRAFT
    assert excinfo.value.target is BookStatus.PDF_READY


def test_failed_books_can_resume():
    assert can_transition(BookStatus.FAILED, BookStatus.GENERATING)
    assert can_transition(BookStatus.FAILED, BookStatus.PDF_READY)
    assert can_transition(BookStatus.FAILED, BookStatus.PAID)


def test_is_at_or_beyond_orders_by_rank():
    assert is_at_or_beyond(BookStatus.PAID, BookStatus.TEASER_READY)
    assert is_at_or_beyond(BookStatus.PRINTING, BookStatus.PRINTING_TEST)
    assert not is_at_or_beyond(BookStatus.TEASER_READY, BookStatus.PAID)


def test_failed_is_never_beyond_anything():
    assert not is_at_or_beyond(BookStatus.FAILED, BookStatus.DRAFT)
    assert not is_at_or_beyond(BookStatus.SHIPPED, BookStatus.FAILED)
    assert is_at_or_beyond(BookStatus.FAILED, BookStatus.FAILED)


def test_check_can_reach_accepts_reached_or_adjacent_targets():
    check_can_reach(BookStatus.ILLUSTRATED, BookStatus.PDF_READY)
    check_can_reach(BookStatus.PRINTING, BookStatus.PDF_READY)
    with pytest.raises(IllegalStatusTransitionError):
        check_can_reach(BookStatus.GENERATING, BookStatus.PDF_READY)
