from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.schedule_session import ScheduleSession, SessionStatus
from app.models.student import Student
from app.services.scheduling_context import SessionView

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class StoreResult(Generic[T]):
    """Outcome of a write: either a value or an error message, never an exception."""

    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def load_students(db: Session, *, provider_id: str, student_ids: Sequence[str]) -> list[Student]:
    """Students of the provider in the order the ids were first given.

    Unknown and repeated ids are dropped.
    """
    student_ids = list(dict.fromkeys(student_ids))
    if not student_ids:
        return []
    rows = db.execute(
        select(Student).where(Student.provider_id == provider_id, Student.id.in_(student_ids))
    ).scalars().all()
    by_id = {row.id: row for row in rows}
    return [by_id[student_id] for student_id in student_ids if student_id in by_id]


def list_students_at_school(db: Session, *, provider_id: str, school_site: str) -> list[Student]:
    return list(
        db.execute(
            select(Student)
            .where(Student.provider_id == provider_id, Student.school_site == school_site)
            .order_by(Student.initials.asc(), Student.id.asc())
        ).scalars()
    )


def list_provider_sessions(
    db: Session,
    *,
    provider_id: str,
    school_site: str | None = None,
) -> list[ScheduleSession]:
    query = select(ScheduleSession).where(ScheduleSession.provider_id == provider_id)
    if school_site is not None:
        query = query.join(Student, Student.id == ScheduleSession.student_id).where(Student.school_site == school_site)
    query = query.order_by(ScheduleSession.day_of_week, ScheduleSession.start_time, ScheduleSession.student_id)
    return list(db.execute(query).scalars())


def list_student_sessions(
    db: Session,
    *,
    student_id: str,
    provider_id: str | None = None,
    day_of_week: int | None = None,
) -> list[ScheduleSession]:
    query = select(ScheduleSession).where(ScheduleSession.student_id == student_id)
    if provider_id is not None:
        query = query.where(ScheduleSession.provider_id == provider_id)
    if day_of_week is not None:
        query = query.where(ScheduleSession.day_of_week == day_of_week)
    query = query.order_by(ScheduleSession.day_of_week, ScheduleSession.start_time)
    return list(db.execute(query).scalars())


def insert_sessions(
    db: Session,
    sessions: Iterable[SessionView],
    *,
    conflict_reasons: Sequence[str | None] | None = None,
) -> StoreResult[list[ScheduleSession]]:
    """Insert and commit one unit of sessions.

    ``conflict_reasons`` runs parallel to ``sessions``; a non-empty entry
    writes that session flagged for attention.
    """
    views = list(sessions)
    reasons = list(conflict_reasons) if conflict_reasons is not None else [None] * len(views)
    rows = []
    for view, reason in zip(views, reasons):
        rows.append(
            ScheduleSession(
                student_id=view.student_id,
                provider_id=view.provider_id,
                day_of_week=view.day,
                start_time=view.start,
                end_time=view.end,
                service_type=view.service_type,
                status=SessionStatus.needs_attention if reason else SessionStatus.active,
                has_conflict=bool(reason),
                conflict_reason=reason,
            )
        )
    try:
        db.add_all(rows)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Failed to insert %d session(s)", len(rows), exc_info=True)
        return StoreResult(error=f"Failed to save sessions: {exc}")
    return StoreResult(value=rows)


def flag_session(db: Session, session: ScheduleSession, *, reason: str) -> StoreResult[ScheduleSession]:
    try:
        session.has_conflict = True
        session.status = SessionStatus.needs_attention
        session.conflict_reason = reason
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Failed to flag session %s", session.id, exc_info=True)
        return StoreResult(error=f"Failed to update session {session.id}: {exc}")
    return StoreResult(value=session)


def clear_session_flag(db: Session, session: ScheduleSession) -> StoreResult[ScheduleSession]:
    try:
        session.has_conflict = False
        session.status = SessionStatus.active
        session.conflict_reason = None
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Failed to clear session %s", session.id, exc_info=True)
        return StoreResult(error=f"Failed to update session {session.id}: {exc}")
    return StoreResult(value=session)


def delete_sessions(db: Session, session_ids: Sequence[str], *, commit: bool = True) -> StoreResult[int]:
    if not session_ids:
        return StoreResult(value=0)
    try:
        deleted = db.execute(delete(ScheduleSession).where(ScheduleSession.id.in_(list(session_ids)))).rowcount
        if commit:
            db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Failed to delete %d session(s)", len(session_ids), exc_info=True)
        return StoreResult(error=f"Failed to delete sessions: {exc}")
    return StoreResult(value=deleted or 0)
