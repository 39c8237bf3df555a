from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import PersistenceWriteFailure
from app.models.schedule_session import ScheduleSession, SessionStatus
from app.models.student import Student
from app.services import session_repository
from app.services.slot_validator import SchedulingRules
from app.services.time_grid import add_minutes, overlaps, time_to_minutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Requirements:
    sessions_per_week: int | None
    minutes_per_session: int | None


@dataclass
class RequirementSyncResult:
    updated: int = 0
    deleted: int = 0
    conflicts: int = 0


def _session_conflicts(session: ScheduleSession, others: list[ScheduleSession], rules: SchedulingRules) -> list[str]:
    reasons: list[str] = []
    end = time_to_minutes(session.end_time)
    if end > time_to_minutes(rules.school_day_end) or end <= time_to_minutes(session.start_time):
        reasons.append(f"Session extends beyond school hours (ends after {rules.school_day_end})")
    if any(
        other.id != session.id
        and other.day_of_week == session.day_of_week
        and overlaps(session.start_time, session.end_time, other.start_time, other.end_time)
        for other in others
    ):
        reasons.append("Overlaps another session for this student")
    return reasons


def sync_session_requirements(
    db: Session,
    student: Student,
    old: Requirements,
    new: Requirements,
    *,
    rules: SchedulingRules | None = None,
) -> RequirementSyncResult:
    """Bring a student's existing sessions in line with changed weekly requirements.

    A new duration moves every end time and clears old flags; a lower weekly
    count drops the latest sessions. Remaining sessions are rescanned and any
    that now break the school day or overlap each other are flagged.
    Only sessions of the student's own provider are touched.
    """
    rules = rules or SchedulingRules.from_settings()
    result = RequirementSyncResult()
    sessions = session_repository.list_student_sessions(
        db,
        student_id=student.id,
        provider_id=student.provider_id,
    )
    if not sessions:
        return result

    try:
        if new.minutes_per_session and new.minutes_per_session != old.minutes_per_session:
            for session in sessions:
                session.end_time = add_minutes(session.start_time, new.minutes_per_session)
                session.status = SessionStatus.active
                session.has_conflict = False
                session.conflict_reason = None
                result.updated += 1

        if new.sessions_per_week is not None and len(sessions) > new.sessions_per_week:
            excess = sessions[new.sessions_per_week:]
            sessions = sessions[: new.sessions_per_week]
            deleted = session_repository.delete_sessions(db, [session.id for session in excess], commit=False)
            if not deleted.ok:
                raise PersistenceWriteFailure(deleted.error, details={"student_id": student.id})
            result.deleted = deleted.value

        for session in sessions:
            reasons = _session_conflicts(session, sessions, rules)
            if reasons:
                session.status = SessionStatus.needs_attention
                session.has_conflict = True
                session.conflict_reason = "; ".join(reasons)
                result.conflicts += 1

        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to sync session requirements for student %s", student.id)
        raise PersistenceWriteFailure(
            f"Failed to update sessions: {exc}",
            details={"student_id": student.id},
        ) from exc

    logger.info(
        "Synced requirements for %s: %d updated, %d deleted, %d conflict(s)",
        student.initials,
        result.updated,
        result.deleted,
        result.conflicts,
    )
    return result
