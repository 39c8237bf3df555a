from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass, field

from app.services.scheduling_context import SchedulingContext, SessionView, StudentProfile
from app.services.slot_validator import (
    HARD_CONSTRAINTS,
    SchedulingRules,
    ValidationResult,
    find_violations,
    validate_slot,
)
from app.services.time_grid import CandidateSlot, add_minutes, day_name, generate_candidate_slots

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlacedSession:
    session: SessionView
    # Constraint reasons tolerated by manual placement; empty for normal placement.
    violations: tuple[str, ...] = ()


@dataclass
class StudentScheduleResult:
    student: StudentProfile
    required: int
    already_scheduled: int
    placements: list[PlacedSession] = field(default_factory=list)
    rejection_reasons: list[str] = field(default_factory=list)

    @property
    def deficit(self) -> int:
        return max(0, self.required - self.already_scheduled)

    @property
    def unmet(self) -> int:
        return max(0, self.deficit - len(self.placements))

    @property
    def success(self) -> bool:
        return self.unmet == 0

    @property
    def sessions(self) -> list[SessionView]:
        return [placement.session for placement in self.placements]

    def error_message(self) -> str | None:
        if self.success:
            return None
        message = (
            f"{self.student.initials}: could only place {len(self.placements)} "
            f"of {self.deficit} required session(s)"
        )
        if self.rejection_reasons:
            message += f" ({'; '.join(self.rejection_reasons)})"
        return message


class _RejectionSample:
    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.seen: set[str] = set()
        self.items: list[str] = []

    def note(self, slot: CandidateSlot, end: str, result: ValidationResult) -> None:
        if result.reason is None or result.reason in self.seen:
            return
        self.seen.add(result.reason)
        if len(self.items) < self.limit:
            self.items.append(f"{day_name(slot.day)} {slot.start}-{end}: {result.reason}")


class AutoScheduler:
    """Places the weekly sessions of one student against a scheduling context.

    The context is only read. Proposed sessions are returned for the caller to
    persist and register, so later students in the same batch see them.
    """

    def __init__(self, provider_id: str, service_type: str, rules: SchedulingRules | None = None) -> None:
        self.provider_id = provider_id
        self.service_type = service_type
        self.rules = rules or SchedulingRules.from_settings()

    def schedule_student(self, student: StudentProfile, context: SchedulingContext) -> StudentScheduleResult:
        return self._place(student, context, manual=False)

    def place_manually(self, student: StudentProfile, context: SchedulingContext) -> StudentScheduleResult:
        """Relaxed pass: tolerate soft constraint violations, keep the hard ones."""
        return self._place(student, context, manual=True)

    def _place(self, student: StudentProfile, context: SchedulingContext, *, manual: bool) -> StudentScheduleResult:
        result = StudentScheduleResult(
            student=student,
            required=student.sessions_per_week or 0,
            already_scheduled=len(context.sessions_for_student(student.id)),
        )
        if result.deficit <= 0:
            return result
        duration = student.minutes_per_session or 0
        if duration <= 0:
            result.rejection_reasons.append("minutes_per_session is not set")
            return result

        logger.info(
            "%s %s: %d session(s) x %d min needed",
            "Manually placing" if manual else "Scheduling",
            student.initials,
            result.deficit,
            duration,
        )
        rejections = _RejectionSample(self.rules.rejection_sample_size)
        pending: list[SessionView] = []

        # Each pass places at most one session per day, least-loaded day first.
        while len(pending) < result.deficit:
            placed_in_pass = False
            for day in self._rank_days(student, context, pending):
                if len(pending) >= result.deficit:
                    break
                if manual:
                    placement = self._least_violating_slot(student, day, duration, context, pending, rejections)
                else:
                    placement = self._first_valid_slot(student, day, duration, context, pending, rejections)
                if placement is None:
                    continue
                pending.append(placement.session)
                result.placements.append(placement)
                placed_in_pass = True
            if not placed_in_pass:
                break

        result.rejection_reasons = rejections.items if not result.success else []
        logger.info(
            "Placed %d/%d session(s) for %s",
            len(result.placements),
            result.deficit,
            student.initials,
        )
        return result

    def _rank_days(self, student: StudentProfile, context: SchedulingContext, pending: list[SessionView]) -> list[int]:
        load = Counter(session.day for session in context.sessions_for_student(student.id))
        load.update(session.day for session in pending)
        # sorted() is stable, so ties keep ascending weekday order.
        return sorted(self.rules.school_days, key=lambda day: load[day])

    def _candidates(self, day: int) -> Iterator[CandidateSlot]:
        return generate_candidate_slots(
            [day],
            self.rules.grid_start_hour,
            self.rules.grid_end_hour,
            self.rules.slot_granularity_minutes,
        )

    def _session(self, student: StudentProfile, day: int, start: str, end: str) -> SessionView:
        return SessionView(
            student_id=student.id,
            provider_id=self.provider_id,
            day=day,
            start=start,
            end=end,
            service_type=self.service_type,
        )

    def _first_valid_slot(
        self,
        student: StudentProfile,
        day: int,
        duration: int,
        context: SchedulingContext,
        pending: list[SessionView],
        rejections: _RejectionSample,
    ) -> PlacedSession | None:
        for slot in self._candidates(day):
            end = add_minutes(slot.start, duration)
            outcome = validate_slot(student, day, slot.start, end, context, self.rules, pending)
            if outcome.valid:
                return PlacedSession(session=self._session(student, day, slot.start, end))
            logger.debug("Rejected %s day %d %s-%s: %s", student.initials, day, slot.start, end, outcome.reason)
            rejections.note(slot, end, outcome)
        return None

    def _least_violating_slot(
        self,
        student: StudentProfile,
        day: int,
        duration: int,
        context: SchedulingContext,
        pending: list[SessionView],
        rejections: _RejectionSample,
    ) -> PlacedSession | None:
        best: tuple[CandidateSlot, str, list[ValidationResult]] | None = None
        for slot in self._candidates(day):
            end = add_minutes(slot.start, duration)
            violations = find_violations(student, day, slot.start, end, context, self.rules, pending)
            hard = next((item for item in violations if item.kind in HARD_CONSTRAINTS), None)
            if hard is not None:
                rejections.note(slot, end, hard)
                continue
            if best is None or len(violations) < len(best[2]):
                best = (slot, end, violations)
                if not violations:
                    break
        if best is None:
            return None
        slot, end, violations = best
        return PlacedSession(
            session=self._session(student, day, slot.start, end),
            violations=tuple(item.reason for item in violations if item.reason),
        )
