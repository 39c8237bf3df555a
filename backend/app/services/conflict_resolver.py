from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import MissingSchoolContext, PersistenceWriteFailure, ResourceNotFoundError
from app.models.bell_schedule import BellSchedule
from app.models.provider import Provider
from app.models.schedule_session import ScheduleSession
from app.models.special_activity import SpecialActivity
from app.models.student import Student
from app.services import session_repository
from app.services.scheduling_context import parse_grade_list
from app.services.time_grid import day_name, normalize_time, overlaps

logger = logging.getLogger(__name__)

ROLE_DISPLAY_NAMES = {
    "resource": "Resource Specialist",
    "speech": "Speech Therapist",
    "ot": "Occupational Therapist",
    "counseling": "Counselor",
    "specialist": "Program Specialist",
}


def role_display_name(role: object) -> str:
    value = getattr(role, "value", role)
    return ROLE_DISPLAY_NAMES.get(str(value), "Provider")


@dataclass
class ResolutionResult:
    marked: int = 0
    failed: int = 0
    skipped: bool = False
    session_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CrossProviderConflict:
    has_conflict: bool
    conflict_details: str | None = None


def _merge_reason(existing: str | None, reason: str) -> str:
    if not existing:
        return reason
    if reason in existing:
        return existing
    return f"{existing}; {reason}"


class ConflictResolver:
    """Flags a provider's existing sessions that collide with a new or edited constraint.

    Sessions are marked ``needs_attention`` and kept in place; nothing is
    deleted or moved here.
    """

    def __init__(self, db: Session, provider_id: str) -> None:
        self.db = db
        self.provider_id = provider_id

    def _sessions_at_school(self, school_site: str) -> list[tuple[ScheduleSession, Student]]:
        rows = self.db.execute(
            select(ScheduleSession, Student)
            .join(Student, Student.id == ScheduleSession.student_id)
            .where(
                ScheduleSession.provider_id == self.provider_id,
                Student.school_site == school_site,
            )
            .order_by(ScheduleSession.day_of_week, ScheduleSession.start_time)
        ).all()
        return [(session, student) for session, student in rows]

    @staticmethod
    def _require_school(record: BellSchedule | SpecialActivity, entity_type: str) -> str:
        # Matching is by school_site, as in the scheduling context; school_id must still be set.
        if not record.school_id:
            raise MissingSchoolContext(entity_type, record.id)
        return record.school_site

    def _mark(self, matches: list[ScheduleSession], reason: str) -> ResolutionResult:
        result = ResolutionResult()
        for session in matches:
            stored = session_repository.flag_session(
                self.db,
                session,
                reason=_merge_reason(session.conflict_reason if session.has_conflict else None, reason),
            )
            if stored.ok:
                result.marked += 1
                result.session_ids.append(session.id)
            else:
                result.failed += 1
        return result

    def resolve_bell_schedule_conflicts(self, bell_schedule: BellSchedule) -> ResolutionResult:
        try:
            school_site = self._require_school(bell_schedule, "Bell schedule")
        except MissingSchoolContext as exc:
            logger.warning(exc.message)
            return ResolutionResult(skipped=True)

        grades = parse_grade_list(bell_schedule.grade_level)
        start = normalize_time(bell_schedule.start_time)
        end = normalize_time(bell_schedule.end_time)
        matches = [
            session
            for session, student in self._sessions_at_school(school_site)
            if (student.grade_level or "").strip() in grades
            and session.day_of_week == bell_schedule.day_of_week
            and overlaps(session.start_time, session.end_time, start, end)
        ]
        reason = (
            f"Conflicts with bell schedule {bell_schedule.period_name} "
            f"({day_name(bell_schedule.day_of_week)} {start}-{end})"
        )
        result = self._mark(matches, reason)
        logger.info(
            "Bell schedule %s: marked %d session(s), %d failed",
            bell_schedule.period_name,
            result.marked,
            result.failed,
        )
        return result

    def resolve_special_activity_conflicts(self, activity: SpecialActivity) -> ResolutionResult:
        try:
            school_site = self._require_school(activity, "Special activity")
        except MissingSchoolContext as exc:
            logger.warning(exc.message)
            return ResolutionResult(skipped=True)

        start = normalize_time(activity.start_time)
        end = normalize_time(activity.end_time)
        matches = [
            session
            for session, student in self._sessions_at_school(school_site)
            if student.teacher_name == activity.teacher_name
            and session.day_of_week == activity.day_of_week
            and overlaps(session.start_time, session.end_time, start, end)
        ]
        reason = (
            f"Conflicts with special activity {activity.activity_name} for {activity.teacher_name} "
            f"({day_name(activity.day_of_week)} {start}-{end})"
        )
        result = self._mark(matches, reason)
        logger.info(
            "Special activity %s: marked %d session(s), %d failed",
            activity.activity_name,
            result.marked,
            result.failed,
        )
        return result

    def check_cross_provider_conflicts(
        self,
        student_id: str,
        day_of_week: int,
        start_time: str,
        end_time: str,
        exclude_session_id: str | None = None,
    ) -> CrossProviderConflict:
        """Read-only: does another provider already see this student at this time?"""
        query = (
            select(ScheduleSession, Provider)
            .outerjoin(Provider, Provider.id == ScheduleSession.provider_id)
            .where(
                ScheduleSession.student_id == student_id,
                ScheduleSession.day_of_week == day_of_week,
                ScheduleSession.provider_id != self.provider_id,
            )
            .order_by(ScheduleSession.start_time)
        )
        if exclude_session_id:
            query = query.where(ScheduleSession.id != exclude_session_id)

        for session, provider in self.db.execute(query).all():
            if not overlaps(start_time, end_time, session.start_time, session.end_time):
                continue
            provider_name = provider.full_name if provider is not None else "another provider"
            role_name = role_display_name(provider.role) if provider is not None else "Provider"
            return CrossProviderConflict(
                has_conflict=True,
                conflict_details=(
                    f"Student has {session.service_type} with {provider_name} ({role_name}) "
                    f"at this time ({normalize_time(session.start_time)}-{normalize_time(session.end_time)})"
                ),
            )
        return CrossProviderConflict(has_conflict=False)

    def clear_session_conflict(self, session_id: str) -> ScheduleSession:
        session = self.db.get(ScheduleSession, session_id)
        if session is None or session.provider_id != self.provider_id:
            raise ResourceNotFoundError("Schedule session", session_id)
        stored = session_repository.clear_session_flag(self.db, session)
        if not stored.ok:
            raise PersistenceWriteFailure(stored.error, details={"session_id": session_id})
        return stored.value
