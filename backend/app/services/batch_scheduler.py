from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from app.core.exceptions import ContextLoadFailure, PersistenceWriteFailure
from app.models.schedule_session import ScheduleSession
from app.models.student import Student
from app.services import session_repository, snapshot
from app.services.auto_scheduler import AutoScheduler, StudentScheduleResult
from app.services.scheduling_context import SchedulingContext, SessionView, StudentProfile
from app.services.slot_validator import SchedulingRules

logger = logging.getLogger(__name__)

FORCE_PLACED_REASON = "Force-placed by manual placement"


@dataclass(frozen=True)
class UnplacedStudent:
    student_id: str
    initials: str
    school_site: str
    unmet: int


@dataclass
class BatchResult:
    total_students: int = 0
    total_scheduled: int = 0
    total_failed: int = 0
    errors: list[str] = field(default_factory=list)
    unplaced_students: list[UnplacedStudent] = field(default_factory=list)
    scheduled_sessions: list[ScheduleSession] = field(default_factory=list)

    @property
    def can_manually_place(self) -> bool:
        return bool(self.unplaced_students)


@dataclass
class ManualPlacementResult:
    placed_sessions: list[ScheduleSession] = field(default_factory=list)
    failed_students: list[UnplacedStudent] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def group_by_school(students: Iterable[StudentProfile]) -> list[tuple[str, list[StudentProfile]]]:
    """Group students by school site, keeping first-seen school order and caller order within a school."""
    groups: dict[str, list[StudentProfile]] = {}
    for student in students:
        groups.setdefault(student.school_site, []).append(student)
    return list(groups.items())


def _profile(student: Student | StudentProfile) -> StudentProfile:
    if isinstance(student, StudentProfile):
        return student
    return StudentProfile.from_model(student)


def _unique_profiles(students: Sequence[Student | StudentProfile]) -> list[StudentProfile]:
    profiles: dict[str, StudentProfile] = {}
    for student in students:
        profile = _profile(student)
        profiles.setdefault(profile.id, profile)
    return list(profiles.values())


def _unplaced(student: StudentProfile, unmet: int) -> UnplacedStudent:
    return UnplacedStudent(
        student_id=student.id,
        initials=student.initials,
        school_site=student.school_site,
        unmet=unmet,
    )


def _missing_requirements(student: StudentProfile) -> bool:
    return student.sessions_per_week is None or not student.minutes_per_session


def force_placed_reason(violations: Sequence[str]) -> str:
    if not violations:
        return FORCE_PLACED_REASON
    return f"{FORCE_PLACED_REASON}: {'; '.join(violations)}"


class BatchScheduler:
    """Schedules many students for one provider, one school group at a time.

    Students within a school are processed sequentially in caller order and
    every accepted session is registered in the shared context before the next
    student is considered.
    """

    def __init__(
        self,
        db: Session,
        *,
        provider_id: str,
        service_type: str,
        rules: SchedulingRules | None = None,
        context: SchedulingContext | None = None,
        context_max_age_seconds: int = 15 * 60,
    ) -> None:
        self.db = db
        self.provider_id = provider_id
        self.rules = rules or SchedulingRules.from_settings()
        self.scheduler = AutoScheduler(provider_id, service_type, self.rules)
        self.context = context or SchedulingContext(db, max_age_seconds=context_max_age_seconds)

    def _prepare_context(self, school_site: str, school_district: str | None, *, force_refresh: bool = False) -> None:
        if not self.context.is_initialized_for(school_site, school_district):
            self.context.initialize(self.provider_id, school_site, school_district)
        elif force_refresh or self.context.is_cache_stale():
            self.context.refresh()

    def schedule_batch(self, students: Sequence[Student | StudentProfile]) -> BatchResult:
        profiles = _unique_profiles(students)
        result = BatchResult(total_students=len(profiles))

        for school_site, group in group_by_school(profiles):
            logger.info("Scheduling %d student(s) at %s", len(group), school_site)
            try:
                self._prepare_context(school_site, group[0].school_district)
            except ContextLoadFailure as exc:
                logger.error("Skipping %s: %s", school_site, exc.message)
                for student in group:
                    result.total_failed += 1
                    result.errors.append(f"{student.initials}: {exc.message}")
                continue

            for student in group:
                self._schedule_one(student, result)

        logger.info(
            "Batch finished: %d scheduled, %d failed of %d student(s)",
            result.total_scheduled,
            result.total_failed,
            result.total_students,
        )
        return result

    def _schedule_one(self, student: StudentProfile, result: BatchResult) -> None:
        if _missing_requirements(student):
            result.total_failed += 1
            result.errors.append(f"{student.initials}: sessions_per_week and minutes_per_session must be set")
            return

        try:
            outcome = self.scheduler.schedule_student(student, self.context)
        except Exception as exc:
            logger.exception("Scheduling failed for student %s", student.id)
            result.total_failed += 1
            result.errors.append(f"{student.initials}: {exc}")
            return

        if outcome.sessions and not self._persist(outcome, result):
            return

        # A requirement that is already met, including zero sessions a week, counts as scheduled.
        if outcome.success:
            result.total_scheduled += 1
            return
        result.total_failed += 1
        result.errors.append(outcome.error_message())
        result.unplaced_students.append(_unplaced(student, outcome.unmet))

    def _persist(self, outcome: StudentScheduleResult, result: BatchResult) -> bool:
        stored = session_repository.insert_sessions(self.db, outcome.sessions)
        if not stored.ok:
            result.total_failed += 1
            result.errors.append(f"{outcome.student.initials}: {stored.error}")
            result.unplaced_students.append(_unplaced(outcome.student, outcome.deficit))
            return False
        self.context.register_sessions(SessionView.from_model(row) for row in stored.value)
        result.scheduled_sessions.extend(stored.value)
        return True

    def try_manual_placement(self, students: Sequence[Student | StudentProfile]) -> ManualPlacementResult:
        """Force-place the remaining deficit of each student, flagging every session written."""
        profiles = _unique_profiles(students)
        result = ManualPlacementResult()

        for school_site, group in group_by_school(profiles):
            try:
                self._prepare_context(school_site, group[0].school_district, force_refresh=True)
            except ContextLoadFailure as exc:
                logger.error("Skipping manual placement at %s: %s", school_site, exc.message)
                for student in group:
                    result.failed_students.append(_unplaced(student, student.sessions_per_week or 0))
                    result.errors.append(f"{student.initials}: {exc.message}")
                continue

            for student in group:
                self._place_one_manually(student, result)

        return result

    def _place_one_manually(self, student: StudentProfile, result: ManualPlacementResult) -> None:
        if _missing_requirements(student):
            result.failed_students.append(_unplaced(student, 0))
            result.errors.append(f"{student.initials}: sessions_per_week and minutes_per_session must be set")
            return

        try:
            outcome = self.scheduler.place_manually(student, self.context)
        except Exception as exc:
            logger.exception("Manual placement failed for student %s", student.id)
            result.failed_students.append(_unplaced(student, student.sessions_per_week or 0))
            result.errors.append(f"{student.initials}: {exc}")
            return

        if outcome.placements:
            stored = session_repository.insert_sessions(
                self.db,
                outcome.sessions,
                conflict_reasons=[force_placed_reason(placement.violations) for placement in outcome.placements],
            )
            if not stored.ok:
                result.failed_students.append(_unplaced(student, outcome.deficit))
                result.errors.append(f"{student.initials}: {stored.error}")
                return
            self.context.register_sessions(SessionView.from_model(row) for row in stored.value)
            result.placed_sessions.extend(stored.value)

        if not outcome.success:
            result.failed_students.append(_unplaced(student, outcome.unmet))
            result.errors.append(outcome.error_message())

    def reschedule_school(self, school_site: str) -> BatchResult:
        """Replace every session at one school with a fresh batch run.

        The provider's sessions are snapshotted first so the run can be undone.
        """
        snapshot.save_snapshot(self.db, self.provider_id)
        existing = session_repository.list_provider_sessions(self.db, provider_id=self.provider_id, school_site=school_site)
        deleted = session_repository.delete_sessions(self.db, [session.id for session in existing])
        if not deleted.ok:
            raise PersistenceWriteFailure(deleted.error, details={"school_site": school_site})
        self.context.mark_stale()
        logger.info("Cleared %d session(s) at %s before rescheduling", deleted.value, school_site)

        students = session_repository.list_students_at_school(self.db, provider_id=self.provider_id, school_site=school_site)
        return self.schedule_batch(students)
