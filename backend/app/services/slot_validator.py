from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

from app.core.config import Settings, get_settings
from app.services.scheduling_context import SchedulingContext, SessionView, StudentProfile
from app.services.time_grid import duration_minutes, overlaps, time_to_minutes


class ConstraintKind(str, Enum):
    school_hours = "school_hours"
    bell_schedule = "bell_schedule"
    special_activity = "special_activity"
    double_booking = "double_booking"
    slot_capacity = "slot_capacity"
    daily_minutes = "daily_minutes"
    consecutive_minutes = "consecutive_minutes"


# Kinds that manual placement still enforces.
HARD_CONSTRAINTS = frozenset({ConstraintKind.school_hours, ConstraintKind.double_booking})


@dataclass(frozen=True)
class SchedulingRules:
    school_day_end: str = "15:00"
    grid_start_hour: int = 8
    grid_end_hour: int = 15
    slot_granularity_minutes: int = 5
    school_days: tuple[int, ...] = (1, 2, 3, 4, 5)
    max_concurrent_students: int = 4
    max_daily_minutes: int = 120
    max_consecutive_minutes: int = 60
    rejection_sample_size: int = 5

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "SchedulingRules":
        settings = settings or get_settings()
        return cls(
            school_day_end=settings.school_day_end,
            grid_start_hour=settings.grid_start_hour,
            grid_end_hour=settings.grid_end_hour,
            slot_granularity_minutes=settings.slot_granularity_minutes,
            school_days=tuple(settings.school_days),
            max_concurrent_students=settings.max_concurrent_students,
            max_daily_minutes=settings.max_daily_minutes,
            max_consecutive_minutes=settings.max_consecutive_minutes,
            rejection_sample_size=settings.rejection_sample_size,
        )


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: str | None = None
    kind: ConstraintKind | None = None

    @classmethod
    def accept(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def reject(cls, kind: ConstraintKind, reason: str) -> "ValidationResult":
        return cls(valid=False, reason=reason, kind=kind)


@dataclass(frozen=True)
class _Candidate:
    student: StudentProfile
    day: int
    start: str
    end: str
    day_sessions: tuple[SessionView, ...]

    @property
    def own_sessions(self) -> list[SessionView]:
        return [session for session in self.day_sessions if session.student_id == self.student.id]


def _check_school_hours(candidate: _Candidate, context: SchedulingContext, rules: SchedulingRules) -> ValidationResult | None:
    end = time_to_minutes(candidate.end)
    # end <= start means the end time wrapped past midnight.
    if end > time_to_minutes(rules.school_day_end) or end <= time_to_minutes(candidate.start):
        return ValidationResult.reject(
            ConstraintKind.school_hours,
            f"Extends beyond school hours (ends after {rules.school_day_end})",
        )
    return None


def _check_bell_schedule(candidate: _Candidate, context: SchedulingContext, rules: SchedulingRules) -> ValidationResult | None:
    for bell in context.bell_schedules_for(candidate.student.grade_level, candidate.day):
        if overlaps(candidate.start, candidate.end, bell.start, bell.end):
            return ValidationResult.reject(
                ConstraintKind.bell_schedule,
                f"Conflicts with {bell.period_name} ({bell.start}-{bell.end})",
            )
    return None


def _check_special_activity(candidate: _Candidate, context: SchedulingContext, rules: SchedulingRules) -> ValidationResult | None:
    for activity in context.activities_for(candidate.student.teacher_name, candidate.day):
        if overlaps(candidate.start, candidate.end, activity.start, activity.end):
            return ValidationResult.reject(
                ConstraintKind.special_activity,
                f"Teacher has {activity.activity_name} ({activity.start}-{activity.end})",
            )
    return None


def _check_double_booking(candidate: _Candidate, context: SchedulingContext, rules: SchedulingRules) -> ValidationResult | None:
    for session in candidate.own_sessions:
        if overlaps(candidate.start, candidate.end, session.start, session.end):
            return ValidationResult.reject(
                ConstraintKind.double_booking,
                f"Student already has a session at this time ({session.start}-{session.end})",
            )
    return None


def _check_slot_capacity(candidate: _Candidate, context: SchedulingContext, rules: SchedulingRules) -> ValidationResult | None:
    occupants = {
        session.student_id
        for session in candidate.day_sessions
        if session.student_id != candidate.student.id
        and overlaps(candidate.start, candidate.end, session.start, session.end)
    }
    if len(occupants) >= rules.max_concurrent_students:
        return ValidationResult.reject(
            ConstraintKind.slot_capacity,
            f"Time slot full ({len(occupants)} other students already scheduled, "
            f"limit {rules.max_concurrent_students})",
        )
    return None


def _check_daily_minutes(candidate: _Candidate, context: SchedulingContext, rules: SchedulingRules) -> ValidationResult | None:
    scheduled = sum(duration_minutes(session.start, session.end) for session in candidate.own_sessions)
    total = scheduled + duration_minutes(candidate.start, candidate.end)
    if total > rules.max_daily_minutes:
        return ValidationResult.reject(
            ConstraintKind.daily_minutes,
            f"Daily limit exceeded ({total} of {rules.max_daily_minutes} minutes)",
        )
    return None


def _check_consecutive_minutes(candidate: _Candidate, context: SchedulingContext, rules: SchedulingRules) -> ValidationResult | None:
    blocks = [(time_to_minutes(session.start), time_to_minutes(session.end)) for session in candidate.own_sessions]
    blocks.append((time_to_minutes(candidate.start), time_to_minutes(candidate.end)))
    blocks.sort()

    run = 0
    last_end: int | None = None
    for start, end in blocks:
        if last_end == start:
            run += end - start
        else:
            run = end - start
        if run > rules.max_consecutive_minutes:
            return ValidationResult.reject(
                ConstraintKind.consecutive_minutes,
                f"Consecutive sessions exceed {rules.max_consecutive_minutes} minutes ({run} minute block)",
            )
        last_end = end
    return None


Check = Callable[[_Candidate, SchedulingContext, SchedulingRules], ValidationResult | None]

CHECKS: tuple[Check, ...] = (
    _check_school_hours,
    _check_bell_schedule,
    _check_special_activity,
    _check_double_booking,
    _check_slot_capacity,
    _check_daily_minutes,
    _check_consecutive_minutes,
)


def _build_candidate(
    student: StudentProfile,
    day: int,
    start: str,
    end: str,
    context: SchedulingContext,
    pending: Iterable[SessionView],
) -> _Candidate:
    day_sessions = context.sessions_on(day)
    day_sessions.extend(session for session in pending if session.day == day)
    return _Candidate(student=student, day=day, start=start, end=end, day_sessions=tuple(day_sessions))


def validate_slot(
    student: StudentProfile,
    day: int,
    start: str,
    end: str,
    context: SchedulingContext,
    rules: SchedulingRules,
    pending: Sequence[SessionView] = (),
) -> ValidationResult:
    """Run every constraint in order and stop at the first rejection.

    ``pending`` holds sessions proposed earlier in the same call that are not
    registered in the context yet.
    """
    candidate = _build_candidate(student, day, start, end, context, pending)
    for check in CHECKS:
        result = check(candidate, context, rules)
        if result is not None:
            return result
    return ValidationResult.accept()


def find_violations(
    student: StudentProfile,
    day: int,
    start: str,
    end: str,
    context: SchedulingContext,
    rules: SchedulingRules,
    pending: Sequence[SessionView] = (),
) -> list[ValidationResult]:
    """Run every constraint without short-circuiting."""
    candidate = _build_candidate(student, day, start, end, context, pending)
    return [result for check in CHECKS if (result := check(candidate, context, rules)) is not None]
