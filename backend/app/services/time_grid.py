from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from app.core.exceptions import InvalidTimeFormat

TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")
MINUTES_PER_DAY = 24 * 60

DAY_NAMES = {
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
}


@dataclass(frozen=True)
class CandidateSlot:
    day: int
    start: str


def time_to_minutes(value: str) -> int:
    if not isinstance(value, str):
        raise InvalidTimeFormat(value)
    match = TIME_PATTERN.match(value.strip())
    if match is None:
        raise InvalidTimeFormat(value)
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time(value: int) -> str:
    hours = value // 60
    minutes = value % 60
    return f"{hours:02d}:{minutes:02d}"


def normalize_time(value: str) -> str:
    """Canonical HH:MM form; seconds are dropped."""
    return minutes_to_time(time_to_minutes(value))


def add_minutes(value: str, delta: int) -> str:
    # Wraps within one day; callers keep delta small enough not to roll over.
    return minutes_to_time((time_to_minutes(value) + delta) % MINUTES_PER_DAY)


def duration_minutes(start: str, end: str) -> int:
    return time_to_minutes(end) - time_to_minutes(start)


def overlaps(start_a: str, end_a: str, start_b: str, end_b: str) -> bool:
    """Half-open interval overlap: touching edges do not overlap."""
    a_start, a_end = time_to_minutes(start_a), time_to_minutes(end_a)
    b_start, b_end = time_to_minutes(start_b), time_to_minutes(end_b)
    return not (a_end <= b_start or a_start >= b_end)


def day_name(day: int) -> str:
    return DAY_NAMES.get(day, f"Day {day}")


def generate_candidate_slots(
    days: Iterable[int],
    start_hour: int,
    end_hour: int,
    granularity_minutes: int,
) -> Iterator[CandidateSlot]:
    """Yield (day, start) pairs day by day, each day in ascending start order.

    Starts run from ``start_hour:00`` up to but excluding ``end_hour:00``. The
    generator is lazy and finite; calling the function again restarts it.
    """
    if granularity_minutes <= 0:
        raise ValueError("granularity_minutes must be positive")
    first = start_hour * 60
    last = end_hour * 60
    for day in days:
        for minute in range(first, last, granularity_minutes):
            yield CandidateSlot(day=day, start=minutes_to_time(minute))
