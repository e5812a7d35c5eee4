"""Pure helpers for time-series walks, status derivation and paging."""

from __future__ import annotations

from typing import Iterator, Optional

from models.records import Range, ReadingStatus


def classify(value: float, limits: Range, expected: Range) -> ReadingStatus:
    """Operating limits take precedence over the expected range."""
    if not limits.contains(value):
        return ReadingStatus.error
    if not expected.contains(value):
        return ReadingStatus.out_of_range
    return ReadingStatus.ok


def is_aligned(timestamp: int, earliest: int, period: int) -> bool:
    return (timestamp - earliest) % period == 0


def walk_start(requested: int, latest: int, period: int) -> int:
    """Latest period-aligned timestamp (relative to ``latest``) not after ``requested``."""
    if requested > latest:
        return latest
    steps = -((requested - latest) // period)
    return latest - steps * period


def walk_back(start: int, earliest: int, period: int) -> Iterator[int]:
    timestamp = start
    while timestamp >= earliest:
        yield timestamp
        timestamp -= period


def next_index(id_scoped: bool, index: int, count: int, returned: int) -> int:
    if id_scoped or returned < count:
        return -1
    return index + count


def previous_index(id_scoped: bool, index: Optional[int], count: int) -> int:
    if id_scoped or index is None:
        return -1
    return index - count if index > count else 0
