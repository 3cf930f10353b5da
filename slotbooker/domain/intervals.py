"""
Interval algebra over half-open time ranges.

Pure functions, no I/O. Two ranges overlap iff
``busy.start < window.end and busy.end > window.start``; ranges that merely
touch do not overlap.
"""

from typing import Iterable, List

from .models import TimeRange


def overlaps(window: TimeRange, busy: TimeRange) -> bool:
    """Half-open overlap test."""
    return busy.start < window.end and busy.end > window.start


def subtract(window: TimeRange, busy: TimeRange) -> List[TimeRange]:
    """
    Remove ``busy`` from ``window``.

    Example:
    Window: 09:00 - 17:00
    Busy: 10:00 - 11:00
    Result: [09:00-10:00, 11:00-17:00]

    Returns zero, one or two ranges; an untouched window comes back as-is.
    """
    if not overlaps(window, busy):
        return [window]

    pieces: List[TimeRange] = []

    if busy.start > window.start:
        pieces.append(TimeRange(start=window.start, end=busy.start))
    if busy.end < window.end:
        pieces.append(TimeRange(start=busy.end, end=window.end))

    return pieces


def subtract_all(
    windows: Iterable[TimeRange],
    busy_ranges: Iterable[TimeRange]
) -> List[TimeRange]:
    """
    Subtract every busy range from every window.

    The result does not depend on the order of ``busy_ranges`` and is
    sorted by start time.
    """
    remaining = list(windows)

    for busy in busy_ranges:
        remaining = [
            piece
            for window in remaining
            for piece in subtract(window, busy)
        ]
        if not remaining:
            break

    return sorted(remaining, key=lambda r: r.start)


def merge(ranges: Iterable[TimeRange]) -> List[TimeRange]:
    """
    Merge overlapping or adjacent time ranges.

    Example: [09:00-10:00, 10:00-11:00] -> [09:00-11:00]
    """
    sorted_ranges = sorted(ranges, key=lambda r: r.start)
    if not sorted_ranges:
        return []

    merged: List[TimeRange] = [sorted_ranges[0]]

    for current in sorted_ranges[1:]:
        last = merged[-1]

        if current.start <= last.end:
            merged[-1] = TimeRange(start=last.start, end=max(last.end, current.end))
        else:
            merged.append(current)

    return merged
