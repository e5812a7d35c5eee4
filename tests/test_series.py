"""Unit tests for walk alignment, status derivation and paging helpers."""

from __future__ import annotations

import pytest

from models.records import Range, ReadingStatus
from services.series import (
    classify,
    is_aligned,
    next_index,
    previous_index,
    walk_back,
    walk_start,
)

LIMITS = Range(min=0, max=100)
EXPECTED = Range(min=10, max=90)


@pytest.mark.parametrize(
    ("value", "status"),
    [
        (50, ReadingStatus.ok),
        (10, ReadingStatus.ok),
        (90, ReadingStatus.ok),
        (95, ReadingStatus.out_of_range),
        (5, ReadingStatus.out_of_range),
        (100.5, ReadingStatus.error),
        (-1, ReadingStatus.error),
    ],
)
def test_classify_prefers_limits_over_expected(value, status) -> None:
    assert classify(value, LIMITS, EXPECTED) is status


def test_is_aligned_uses_earliest_as_origin() -> None:
    assert is_aligned(1030, 1000, 10)
    assert is_aligned(970, 1000, 10)
    assert not is_aligned(1005, 1000, 10)


def test_walk_start_clamps_to_latest() -> None:
    assert walk_start(5000, latest=1010, period=10) == 1010
    assert walk_start(1010, latest=1010, period=10) == 1010


def test_walk_start_rounds_down_to_period() -> None:
    assert walk_start(1005, latest=1010, period=10) == 1000
    assert walk_start(1000, latest=1010, period=10) == 1000
    assert walk_start(991, latest=1010, period=10) == 990


def test_walk_back_stops_at_earliest() -> None:
    assert list(walk_back(1030, earliest=1000, period=10)) == [1030, 1020, 1010, 1000]
    assert list(walk_back(990, earliest=1000, period=10)) == []


def test_next_index() -> None:
    assert next_index(False, index=0, count=5, returned=5) == 5
    assert next_index(False, index=5, count=5, returned=3) == -1
    assert next_index(True, index=0, count=5, returned=5) == -1


def test_previous_index() -> None:
    assert previous_index(False, index=10, count=5) == 5
    assert previous_index(False, index=5, count=5) == 0
    assert previous_index(False, index=3, count=5) == 0
    assert previous_index(False, index=None, count=5) == -1
    assert previous_index(True, index=10, count=5) == -1
