import pytest
from sqlalchemy import select

from app.core.exceptions import ContextLoadFailure
from app.models.schedule_session import ScheduleSession, SessionStatus
from app.services import session_repository, snapshot
from app.services.auto_scheduler import AutoScheduler
from app.services.batch_scheduler import FORCE_PLACED_REASON, BatchScheduler, group_by_school
from app.services.scheduling_context import SchedulingContext, StudentProfile
from app.services.session_repository import StoreResult
from app.services.slot_validator import SchedulingRules

MONDAY_ONLY = SchedulingRules(school_days=(1,))


@pytest.fixture()
def provider(seed):
    return seed.provider()


def batch_scheduler(db, provider, rules=None):
    return BatchScheduler(db, provider_id=provider.id, service_type="resource", rules=rules or SchedulingRules())


def stored_sessions(db, student):
    return list(
        db.execute(
            select(ScheduleSession)
            .where(ScheduleSession.student_id == student.id)
            .order_by(ScheduleSession.day_of_week, ScheduleSession.start_time)
        ).scalars()
    )


def test_group_by_school_keeps_first_seen_order(seed, provider):
    students = [
        StudentProfile.from_model(seed.student(provider, initials="P1", school_site="Pine Middle")),
        StudentProfile.from_model(seed.student(provider, initials="O1")),
        StudentProfile.from_model(seed.student(provider, initials="P2", school_site="Pine Middle")),
    ]

    groups = group_by_school(students)

    assert [school for school, _ in groups] == ["Pine Middle", "Oak Elementary"]
    assert [student.initials for student in groups[0][1]] == ["P1", "P2"]


def test_batch_persists_sessions_and_counts(db, seed, provider):
    first = seed.student(provider, initials="AA")
    second = seed.student(provider, initials="BB")

    result = batch_scheduler(db, provider).schedule_batch([first, second])

    assert result.total_students == 2
    assert result.total_scheduled == 2
    assert result.total_failed == 0
    assert result.errors == []
    assert not result.can_manually_place
    assert len(result.scheduled_sessions) == 4
    assert [(row.day_of_week, row.start_time) for row in stored_sessions(db, first)] == [(1, "08:00"), (2, "08:00")]
    assert all(row.status == SessionStatus.active and not row.has_conflict for row in stored_sessions(db, second))


def test_later_students_see_earlier_placements(db, seed, provider):
    students = [seed.student(provider, initials=f"S{index}", sessions_per_week=1) for index in range(5)]

    result = batch_scheduler(db, provider, MONDAY_ONLY).schedule_batch(students)

    assert result.total_scheduled == 5
    starts = [stored_sessions(db, student)[0].start_time for student in students]
    assert starts == ["08:00", "08:00", "08:00", "08:00", "08:30"]


def test_students_are_processed_in_caller_order(db, seed, provider):
    first = seed.student(provider, initials="ZZ", sessions_per_week=1, minutes_per_session=60)
    second = seed.student(provider, initials="AA", sessions_per_week=1, minutes_per_session=60)
    rules = SchedulingRules(school_days=(1,), max_concurrent_students=1)

    batch_scheduler(db, provider, rules).schedule_batch([first, second])

    assert stored_sessions(db, first)[0].start_time == "08:00"
    assert stored_sessions(db, second)[0].start_time == "09:00"


def test_student_without_requirements_fails_without_stopping_batch(db, seed, provider):
    missing = seed.student(provider, initials="NO", sessions_per_week=None)
    ready = seed.student(provider, initials="OK", sessions_per_week=1)

    result = batch_scheduler(db, provider).schedule_batch([missing, ready])

    assert result.total_scheduled == 1
    assert result.total_failed == 1
    assert result.errors == ["NO: sessions_per_week and minutes_per_session must be set"]
    assert result.unplaced_students == []


def test_unplaceable_student_is_listed_for_manual_placement(db, seed, provider):
    student = seed.student(provider, initials="XY", sessions_per_week=1)
    for day in range(1, 6):
        seed.bell(provider, day, "08:00", "15:00", grade_level="3", period_name="All Day")

    result = batch_scheduler(db, provider).schedule_batch([student])

    assert result.total_failed == 1
    assert result.can_manually_place
    assert result.unplaced_students[0].student_id == student.id
    assert result.unplaced_students[0].unmet == 1
    assert result.errors[0].startswith("XY: could only place 0 of 1 required session(s)")
    assert stored_sessions(db, student) == []


def test_partial_placement_keeps_what_fit(db, seed, provider):
    student = seed.student(provider, initials="PP", sessions_per_week=3)
    for day in range(2, 6):
        seed.bell(provider, day, "08:00", "15:00", grade_level="3", period_name="All Day")

    result = batch_scheduler(db, provider, SchedulingRules(max_daily_minutes=30)).schedule_batch([student])

    assert result.total_failed == 1
    assert result.unplaced_students[0].unmet == 2
    assert len(stored_sessions(db, student)) == 1


def test_context_failure_skips_only_that_school(db, seed, provider, monkeypatch):
    pine = seed.student(provider, initials="PI", school_site="Pine Middle", sessions_per_week=1)
    oak = seed.student(provider, initials="OA", sessions_per_week=1)
    original_initialize = SchedulingContext.initialize

    def flaky_initialize(self, provider_id, school_site, school_district=None):
        if school_site == "Pine Middle":
            raise ContextLoadFailure(school_site, "connection reset")
        return original_initialize(self, provider_id, school_site, school_district)

    monkeypatch.setattr(SchedulingContext, "initialize", flaky_initialize)

    result = batch_scheduler(db, provider).schedule_batch([pine, oak])

    assert result.total_scheduled == 1
    assert result.total_failed == 1
    assert result.errors == ["PI: Failed to load scheduling context for Pine Middle: connection reset"]
    assert len(stored_sessions(db, oak)) == 1


def test_unexpected_error_is_contained_per_student(db, seed, provider, monkeypatch):
    broken = seed.student(provider, initials="BR", sessions_per_week=1)
    fine = seed.student(provider, initials="FI", sessions_per_week=1)
    original = AutoScheduler.schedule_student

    def sometimes_broken(self, student, context):
        if student.id == broken.id:
            raise RuntimeError("boom")
        return original(self, student, context)

    monkeypatch.setattr(AutoScheduler, "schedule_student", sometimes_broken)

    result = batch_scheduler(db, provider).schedule_batch([broken, fine])

    assert result.total_scheduled == 1
    assert result.errors == ["BR: boom"]


def test_write_failure_marks_student_failed(db, seed, provider, monkeypatch):
    student = seed.student(provider, initials="WF", sessions_per_week=2)
    monkeypatch.setattr(
        session_repository,
        "insert_sessions",
        lambda db, sessions, conflict_reasons=None: StoreResult(error="Failed to save sessions: disk full"),
    )

    result = batch_scheduler(db, provider).schedule_batch([student])

    assert result.total_failed == 1
    assert result.errors == ["WF: Failed to save sessions: disk full"]
    assert result.unplaced_students[0].unmet == 2
    assert result.scheduled_sessions == []


def test_manual_placement_force_places_and_flags(db, seed, provider):
    student = seed.student(provider, initials="MP", sessions_per_week=2)
    for day in range(1, 6):
        seed.bell(provider, day, "08:00", "15:00", grade_level="3", period_name="All Day")
    scheduler = batch_scheduler(db, provider)

    batch = scheduler.schedule_batch([student])
    manual = scheduler.try_manual_placement([student])

    assert batch.can_manually_place
    assert manual.failed_students == []
    assert manual.errors == []
    rows = stored_sessions(db, student)
    assert [(row.day_of_week, row.start_time) for row in rows] == [(1, "08:00"), (2, "08:00")]
    for row in rows:
        assert row.has_conflict
        assert row.status == SessionStatus.needs_attention
        assert row.conflict_reason == f"{FORCE_PLACED_REASON}: Conflicts with All Day (08:00-15:00)"


def test_manual_placement_flags_even_clean_slots(db, seed, provider):
    student = seed.student(provider, initials="CL", sessions_per_week=1)

    manual = batch_scheduler(db, provider).try_manual_placement([student])

    assert len(manual.placed_sessions) == 1
    row = manual.placed_sessions[0]
    assert row.has_conflict
    assert row.conflict_reason == FORCE_PLACED_REASON


def test_manual_placement_reports_students_that_cannot_fit(db, seed, provider):
    student = seed.student(provider, initials="FU", sessions_per_week=2)
    seed.session(student, provider, 1, "08:00", "15:00")

    manual = batch_scheduler(db, provider, MONDAY_ONLY).try_manual_placement([student])

    assert manual.placed_sessions == []
    assert manual.failed_students[0].unmet == 1
    assert manual.errors[0].startswith("FU: could only place 0 of 1 required session(s)")


def test_reschedule_school_snapshots_then_rebuilds(db, seed, provider):
    student = seed.student(provider, initials="RS", sessions_per_week=1)
    seed.session(student, provider, 4, "13:00", "13:30")
    other_school = seed.student(provider, initials="PI", school_site="Pine Middle", sessions_per_week=1)
    seed.session(other_school, provider, 2, "10:00", "10:30")

    result = batch_scheduler(db, provider).reschedule_school("Oak Elementary")

    assert result.total_scheduled == 1
    assert [(row.day_of_week, row.start_time) for row in stored_sessions(db, student)] == [(1, "08:00")]
    assert [(row.day_of_week, row.start_time) for row in stored_sessions(db, other_school)] == [(2, "10:00")]
    saved = snapshot.get_snapshot(db, provider.id)
    assert sorted(item["start_time"] for item in saved.sessions) == ["10:00", "13:00"]


def test_repeated_students_are_scheduled_once(db, seed, provider):
    student = seed.student(provider, initials="RP", sessions_per_week=1)

    result = batch_scheduler(db, provider).schedule_batch([student, student])

    assert result.total_students == 1
    assert result.total_scheduled == 1
    assert len(stored_sessions(db, student)) == 1


def test_load_students_drops_repeated_and_unknown_ids(db, seed, provider):
    first = seed.student(provider, initials="AA")
    second = seed.student(provider, initials="BB")

    students = session_repository.load_students(
        db,
        provider_id=provider.id,
        student_ids=[second.id, first.id, second.id, "ghost"],
    )

    assert [student.id for student in students] == [second.id, first.id]


def test_zero_weekly_sessions_counts_as_scheduled_without_writes(db, seed, provider):
    student = seed.student(provider, initials="ZE", sessions_per_week=0)

    result = batch_scheduler(db, provider).schedule_batch([student])

    assert result.total_scheduled == 1
    assert result.total_failed == 0
    assert result.scheduled_sessions == []
    assert stored_sessions(db, student) == []
