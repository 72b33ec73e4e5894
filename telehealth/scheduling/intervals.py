"""Half-open interval arithmetic.

Works on any ordered endpoint type; the slot generator uses it with
minutes-of-day integers for wall-clock windows and with aware datetimes
for instant ranges.
"""

from collections.abc import Iterable
from typing import Any, NamedTuple


class Interval(NamedTuple):
    start: Any
    end: Any

    @property
    def is_empty(self) -> bool:
        return not self.start < self.end

    def length(self):
        return self.end - self.start


def overlaps(first: Interval, second: Interval) -> bool:
    return first.start < second.end and second.start < first.end


def contains(outer: Interval, inner: Interval) -> bool:
    return outer.start <= inner.start and inner.end <= outer.end


def merge(intervals: Iterable[Interval]) -> list[Interval]:
    """Union of the given intervals, sorted; touching intervals are joined."""
    merged: list[Interval] = []
    for interval in sorted(i for i in intervals if not i.is_empty):
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = Interval(last.start, max(last.end, interval.end))
        else:
            merged.append(interval)
    return merged


def subtract(intervals: Iterable[Interval], removals: Iterable[Interval]) -> list[Interval]:
    remaining = merge(intervals)
    for removal in merge(removals):
        next_remaining: list[Interval] = []
        for interval in remaining:
            if not overlaps(interval, removal):
                next_remaining.append(interval)
                continue
            if interval.start < removal.start:
                next_remaining.append(Interval(interval.start, removal.start))
            if removal.end < interval.end:
                next_remaining.append(Interval(removal.end, interval.end))
        remaining = next_remaining
    return remaining


def clip(intervals: Iterable[Interval], lower, upper) -> list[Interval]:
    clipped = (Interval(max(i.start, lower), min(i.end, upper)) for i in intervals)
    return [interval for interval in clipped if not interval.is_empty]
