from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import ContextLoadFailure, InvalidTimeFormat
from app.models.bell_schedule import BellSchedule
from app.models.schedule_session import ScheduleSession
from app.models.special_activity import SpecialActivity
from app.models.student import Student
from app.services.time_grid import normalize_time

logger = logging.getLogger(__name__)


def parse_grade_list(value: str | None) -> frozenset[str]:
    return frozenset(item.strip() for item in (value or "").split(",") if item.strip())


@dataclass(frozen=True)
class StudentProfile:
    id: str
    initials: str
    grade_level: str
    teacher_name: str | None
    school_site: str
    school_district: str | None
    school_id: str | None
    provider_id: str
    sessions_per_week: int | None
    minutes_per_session: int | None

    @classmethod
    def from_model(cls, student: Student) -> "StudentProfile":
        return cls(
            id=student.id,
            initials=student.initials,
            grade_level=(student.grade_level or "").strip(),
            teacher_name=student.teacher_name,
            school_site=student.school_site,
            school_district=student.school_district,
            school_id=student.school_id,
            provider_id=student.provider_id,
            sessions_per_week=student.sessions_per_week,
            minutes_per_session=student.minutes_per_session,
        )


@dataclass(frozen=True)
class BellBlock:
    id: str
    grades: frozenset[str]
    day: int
    start: str
    end: str
    period_name: str

    @classmethod
    def from_model(cls, record: BellSchedule) -> "BellBlock":
        return cls(
            id=record.id,
            grades=parse_grade_list(record.grade_level),
            day=record.day_of_week,
            start=normalize_time(record.start_time),
            end=normalize_time(record.end_time),
            period_name=record.period_name,
        )


@dataclass(frozen=True)
class ActivityBlock:
    id: str
    teacher_name: str
    day: int
    start: str
    end: str
    activity_name: str

    @classmethod
    def from_model(cls, record: SpecialActivity) -> "ActivityBlock":
        return cls(
            id=record.id,
            teacher_name=record.teacher_name,
            day=record.day_of_week,
            start=normalize_time(record.start_time),
            end=normalize_time(record.end_time),
            activity_name=record.activity_name,
        )


@dataclass(frozen=True)
class SessionView:
    """Read-only view of a placed or proposed session."""

    student_id: str
    provider_id: str
    day: int
    start: str
    end: str
    service_type: str
    id: str | None = None

    @classmethod
    def from_model(cls, record: ScheduleSession) -> "SessionView":
        return cls(
            id=record.id,
            student_id=record.student_id,
            provider_id=record.provider_id,
            day=record.day_of_week,
            start=normalize_time(record.start_time),
            end=normalize_time(record.end_time),
            service_type=record.service_type,
        )


class SchedulingContext:
    """Per-school snapshot of bell schedules, special activities and sessions.

    One instance belongs to one batch call. It is loaded once per school and
    afterwards only changes through ``register_sessions`` (sessions the owning
    batch call persisted itself) or ``refresh``.
    """

    def __init__(self, db: Session, *, max_age_seconds: int = 15 * 60) -> None:
        self.db = db
        self.max_age_seconds = max_age_seconds
        self.provider_id: str | None = None
        self.school_site: str | None = None
        self.school_district: str | None = None
        self.loaded_at: datetime | None = None
        self._initialized = False
        self._stale = False
        self._bells_by_day: dict[int, list[BellBlock]] = {}
        self._activities_by_teacher: dict[str, list[ActivityBlock]] = {}
        self._sessions_by_day: dict[int, list[SessionView]] = {}
        self._sessions_by_student: dict[str, list[SessionView]] = {}

    def initialize(self, provider_id: str, school_site: str, school_district: str | None = None) -> None:
        logger.info(
            "Initializing scheduling context for provider %s at %s/%s",
            provider_id,
            school_site,
            school_district,
        )
        self.provider_id = provider_id
        self.school_site = school_site
        self.school_district = school_district
        self._initialized = False
        self._load()
        self._initialized = True

    def is_initialized(self) -> bool:
        return self._initialized

    def is_initialized_for(self, school_site: str, school_district: str | None = None) -> bool:
        return (
            self._initialized
            and self.school_site == school_site
            and (school_district is None or self.school_district == school_district)
        )

    def is_cache_stale(self) -> bool:
        if self._stale or self.loaded_at is None:
            return True
        age = (datetime.now(timezone.utc) - self.loaded_at).total_seconds()
        return age > self.max_age_seconds

    def mark_stale(self) -> None:
        """Flag that the store changed behind this context's back."""
        self._stale = True

    def refresh(self) -> None:
        if self.provider_id is None or self.school_site is None:
            raise ContextLoadFailure(self.school_site or "<unknown>", "context was never initialized")
        logger.info("Refreshing scheduling context for %s", self.school_site)
        self._load()

    def _load(self) -> None:
        provider_id = self.provider_id
        school_site = self.school_site
        try:
            bell_rows = self.db.execute(
                select(BellSchedule).where(
                    BellSchedule.provider_id == provider_id,
                    BellSchedule.school_site == school_site,
                )
            ).scalars().all()
            activity_rows = self.db.execute(
                select(SpecialActivity).where(
                    SpecialActivity.provider_id == provider_id,
                    SpecialActivity.school_site == school_site,
                )
            ).scalars().all()
            session_rows = self.db.execute(
                select(ScheduleSession)
                .join(Student, Student.id == ScheduleSession.student_id)
                .where(
                    ScheduleSession.provider_id == provider_id,
                    Student.school_site == school_site,
                )
                .order_by(ScheduleSession.day_of_week, ScheduleSession.start_time)
            ).scalars().all()

            bells = [BellBlock.from_model(row) for row in bell_rows]
            activities = [ActivityBlock.from_model(row) for row in activity_rows]
            sessions = [SessionView.from_model(row) for row in session_rows]
        except SQLAlchemyError as exc:
            logger.exception("Scheduling context load failed for %s", school_site)
            raise ContextLoadFailure(school_site or "<unknown>", str(exc)) from exc
        except InvalidTimeFormat as exc:
            raise ContextLoadFailure(school_site or "<unknown>", exc.message) from exc

        bells_by_day: dict[int, list[BellBlock]] = defaultdict(list)
        for bell in bells:
            bells_by_day[bell.day].append(bell)
        activities_by_teacher: dict[str, list[ActivityBlock]] = defaultdict(list)
        for activity in activities:
            activities_by_teacher[activity.teacher_name].append(activity)

        self._bells_by_day = dict(bells_by_day)
        self._activities_by_teacher = dict(activities_by_teacher)
        self._sessions_by_day = {}
        self._sessions_by_student = {}
        self._index_sessions(sessions)

        self.loaded_at = datetime.now(timezone.utc)
        self._stale = False
        logger.info(
            "Loaded %d bell schedule(s), %d special activit(ies), %d session(s) for %s",
            len(bells),
            len(activities),
            len(sessions),
            school_site,
        )

    def _index_sessions(self, sessions: Iterable[SessionView]) -> None:
        for session in sessions:
            self._sessions_by_day.setdefault(session.day, []).append(session)
            self._sessions_by_student.setdefault(session.student_id, []).append(session)

    def register_sessions(self, sessions: Iterable[SessionView]) -> None:
        """Add sessions written by the owning batch so later students see them."""
        self._index_sessions(sessions)

    def bell_schedules_for(self, grade_level: str, day: int) -> list[BellBlock]:
        grade = grade_level.strip()
        return [bell for bell in self._bells_by_day.get(day, []) if grade in bell.grades]

    def activities_for(self, teacher_name: str | None, day: int) -> list[ActivityBlock]:
        if not teacher_name:
            return []
        return [item for item in self._activities_by_teacher.get(teacher_name, []) if item.day == day]

    def sessions_on(self, day: int) -> list[SessionView]:
        return list(self._sessions_by_day.get(day, []))

    def sessions_for_student(self, student_id: str, day: int | None = None) -> list[SessionView]:
        sessions = self._sessions_by_student.get(student_id, [])
        if day is None:
            return list(sessions)
        return [session for session in sessions if session.day == day]
