# agenda/utils/intervals.py
"""
Interval utilities - pure functions over minute-of-day intervals.

All intervals are half-open [start, end) measured in minutes since midnight.
Interval lists handled here are kept sorted and non-overlapping.
"""
import re
from datetime import time
from typing import Iterable, List, NamedTuple, Union

from agenda.core.exceptions import ValidationError

HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
MINUTES_PER_DAY = 24 * 60


class Interval(NamedTuple):
    """Half-open [start, end) range in minutes of day"""
    start: int
    end: int

    @property
    def duration(self) -> int:
        return self.end - self.start

    def to_dict(self) -> dict:
        return {"start": format_minutes(self.start), "end": format_minutes(self.end)}


def parse_hhmm(value: Union[str, time]) -> int:
    """Parse a 24-hour "HH:MM" string (or a time) into minutes of day"""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    if not isinstance(value, str):
        raise ValidationError(f"Invalid time value: {value!r}", details={"value": str(value)})

    match = HHMM_PATTERN.match(value.strip())
    if not match:
        raise ValidationError(
            f"Time must use the 24-hour HH:MM format, got '{value}'",
            details={"value": value}
        )
    return int(match.group(1)) * 60 + int(match.group(2))


def format_minutes(minutes: int) -> str:
    """Format minutes of day as "HH:MM" """
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def minutes_to_time(minutes: int) -> time:
    return time(hour=minutes // 60, minute=minutes % 60)


def make_interval(start: Union[str, time, int], end: Union[str, time, int]) -> Interval:
    """Build a validated interval (start < end) from HH:MM strings, times or minutes"""
    start_min = start if isinstance(start, int) else parse_hhmm(start)
    end_min = end if isinstance(end, int) else parse_hhmm(end)

    if not 0 <= start_min < MINUTES_PER_DAY or not 0 < end_min <= MINUTES_PER_DAY:
        raise ValidationError("Interval bounds must fall within a single day")
    if end_min <= start_min:
        raise ValidationError(
            f"Interval end must be after start ({format_minutes(start_min)} - {format_minutes(end_min)})",
            details={"start": format_minutes(start_min), "end": format_minutes(end_min)}
        )
    return Interval(start_min, end_min)


def overlaps(a: Interval, b: Interval) -> bool:
    """Half-open overlap test: touching intervals do not overlap"""
    return a.start < b.end and b.start < a.end


def validate_sorted_disjoint(intervals: Iterable[Interval]) -> List[Interval]:
    """Reject lists that are unsorted or overlapping; returns them as a list"""
    result = list(intervals)
    for previous, current in zip(result, result[1:]):
        if current.start < previous.end:
            raise ValidationError(
                "Intervals must be sorted and must not overlap",
                details={"previous": previous.to_dict(), "current": current.to_dict()}
            )
    return result


def merge(intervals: Iterable[Interval]) -> List[Interval]:
    """Sort and merge overlapping or adjacent intervals"""
    ordered = sorted(intervals)
    if not ordered:
        return []

    merged = [ordered[0]]
    for current in ordered[1:]:
        last = merged[-1]
        if current.start <= last.end:
            if current.end > last.end:
                merged[-1] = Interval(last.start, current.end)
        else:
            merged.append(current)
    return merged


def intersect(left: Iterable[Interval], right: Iterable[Interval]) -> List[Interval]:
    """Pairwise intersection of two interval lists, empty results discarded"""
    left_list = merge(left)
    right_list = merge(right)
    result = []
    i = j = 0

    while i < len(left_list) and j < len(right_list):
        start = max(left_list[i].start, right_list[j].start)
        end = min(left_list[i].end, right_list[j].end)
        if start < end:
            result.append(Interval(start, end))

        # Advance whichever interval finishes first
        if left_list[i].end < right_list[j].end:
            i += 1
        else:
            j += 1

    return result


def subtract(windows: Iterable[Interval], blocks: Iterable[Interval]) -> List[Interval]:
    """Remove every block from the windows; zero-length remainders are dropped"""
    remaining = merge(windows)

    for block in merge(blocks):
        next_remaining = []
        for window in remaining:
            if not overlaps(window, block):
                next_remaining.append(window)
                continue
            if block.start > window.start:
                next_remaining.append(Interval(window.start, block.start))
            if block.end < window.end:
                next_remaining.append(Interval(block.end, window.end))
        remaining = next_remaining

    return [w for w in remaining if w.end > w.start]


def contains(windows: Iterable[Interval], candidate: Interval) -> bool:
    """True when the candidate fits entirely inside a single window"""
    return any(w.start <= candidate.start and candidate.end <= w.end for w in windows)


def slice_starts(windows: Iterable[Interval], duration: int, step: int) -> List[Interval]:
    """
    Discrete candidate slots: starts every `step` minutes from each window start,
    kept only when start + duration fits in that same window.
    """
    if duration <= 0:
        raise ValidationError("Duration must be a positive number of minutes")
    if step <= 0:
        raise ValidationError("Slot step must be a positive number of minutes")

    slots = []
    for window in merge(windows):
        start = window.start
        while start + duration <= window.end:
            slots.append(Interval(start, start + duration))
            start += step
    return sorted(slots)
