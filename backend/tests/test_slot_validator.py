import pytest

from app.services.scheduling_context import SchedulingContext, SessionView, StudentProfile
from app.services.slot_validator import (
    ConstraintKind,
    SchedulingRules,
    find_violations,
    validate_slot,
)

RULES = SchedulingRules()
MONDAY = 1


@pytest.fixture()
def provider(seed):
    return seed.provider()


@pytest.fixture()
def student(seed, provider):
    return seed.student(provider, initials="JD", grade_level="3", teacher_name="Ms. Lee")


def load_context(db, provider):
    context = SchedulingContext(db)
    context.initialize(provider.id, "Oak Elementary", "Unified")
    return context


def check(db, provider, student, start, end, day=MONDAY, pending=()):
    context = load_context(db, provider)
    return validate_slot(StudentProfile.from_model(student), day, start, end, context, RULES, pending)


def test_open_slot_is_accepted(db, provider, student):
    result = check(db, provider, student, "08:00", "08:30")
    assert result.valid
    assert result.reason is None
    assert result.kind is None


def test_session_ending_after_school_day_is_rejected(db, provider, student):
    result = check(db, provider, student, "14:45", "15:15")
    assert not result.valid
    assert result.kind == ConstraintKind.school_hours
    assert result.reason == "Extends beyond school hours (ends after 15:00)"


def test_session_ending_exactly_at_school_day_end_is_accepted(db, provider, student):
    assert check(db, provider, student, "14:30", "15:00").valid


def test_end_time_wrapping_past_midnight_is_rejected(db, provider, student):
    result = check(db, provider, student, "14:55", "00:10")
    assert result.kind == ConstraintKind.school_hours


def test_bell_schedule_for_students_grade_blocks_slot(db, seed, provider, student):
    seed.bell(provider, MONDAY, "08:00", "08:30", grade_level="2, 3", period_name="Recess")

    result = check(db, provider, student, "08:15", "08:45")
    assert result.kind == ConstraintKind.bell_schedule
    assert result.reason == "Conflicts with Recess (08:00-08:30)"


def test_bell_schedule_for_other_grade_is_ignored(db, seed, provider, student):
    seed.bell(provider, MONDAY, "08:00", "08:30", grade_level="K,1", period_name="Recess")
    assert check(db, provider, student, "08:15", "08:45").valid


def test_bell_schedule_touching_edge_does_not_block(db, seed, provider, student):
    seed.bell(provider, MONDAY, "08:00", "08:30", grade_level="3", period_name="Recess")
    assert check(db, provider, student, "08:30", "09:00").valid


def test_teacher_special_activity_blocks_slot(db, seed, provider, student):
    seed.activity(provider, MONDAY, "09:00:00", "09:45:00", teacher_name="Ms. Lee", activity_name="Library")

    result = check(db, provider, student, "09:30", "10:00")
    assert result.kind == ConstraintKind.special_activity
    assert result.reason == "Teacher has Library (09:00-09:45)"


def test_other_teachers_activity_is_ignored(db, seed, provider, student):
    seed.activity(provider, MONDAY, "09:00", "09:45", teacher_name="Mr. Park")
    assert check(db, provider, student, "09:30", "10:00").valid


def test_student_double_booking_is_rejected(db, seed, provider, student):
    seed.session(student, provider, MONDAY, "10:00", "10:30")

    result = check(db, provider, student, "10:15", "10:45")
    assert result.kind == ConstraintKind.double_booking
    assert result.reason == "Student already has a session at this time (10:00-10:30)"


def test_pending_sessions_count_as_existing(db, provider, student):
    pending = [SessionView(student_id=student.id, provider_id=provider.id, day=MONDAY, start="11:00", end="11:30", service_type="resource")]

    result = check(db, provider, student, "11:00", "11:30", pending=pending)
    assert result.kind == ConstraintKind.double_booking


def test_slot_with_four_other_students_is_full(db, seed, provider, student):
    for initials in ("AA", "BB", "CC", "DD"):
        other = seed.student(provider, initials=initials)
        seed.session(other, provider, MONDAY, "10:00", "10:30")

    result = check(db, provider, student, "10:00", "10:30")
    assert result.kind == ConstraintKind.slot_capacity
    assert result.reason == "Time slot full (4 other students already scheduled, limit 4)"


def test_slot_with_three_other_students_has_room(db, seed, provider, student):
    for initials in ("AA", "BB", "CC"):
        other = seed.student(provider, initials=initials)
        seed.session(other, provider, MONDAY, "10:00", "10:30")

    assert check(db, provider, student, "10:00", "10:30").valid


def test_daily_minute_cap(db, seed, provider, student):
    seed.session(student, provider, MONDAY, "08:00", "09:00")
    seed.session(student, provider, MONDAY, "10:00", "10:45")

    result = check(db, provider, student, "12:00", "12:30")
    assert result.kind == ConstraintKind.daily_minutes
    assert result.reason == "Daily limit exceeded (135 of 120 minutes)"


def test_daily_minute_cap_counts_only_the_same_day(db, seed, provider, student):
    seed.session(student, provider, 2, "08:00", "09:00")
    seed.session(student, provider, 2, "10:00", "10:45")

    assert check(db, provider, student, "12:00", "12:30").valid


def test_consecutive_block_over_cap_is_rejected(db, seed, provider, student):
    seed.session(student, provider, MONDAY, "08:00", "08:30")

    result = check(db, provider, student, "08:30", "09:30")
    assert result.kind == ConstraintKind.consecutive_minutes
    assert result.reason == "Consecutive sessions exceed 60 minutes (90 minute block)"


def test_back_to_back_within_cap_is_accepted(db, seed, provider, student):
    seed.session(student, provider, MONDAY, "08:00", "08:30")
    assert check(db, provider, student, "09:00", "09:30").valid
    assert check(db, provider, student, "08:30", "09:00").valid


def test_checks_run_in_order_and_stop_at_first_failure(db, seed, provider, student):
    seed.bell(provider, MONDAY, "14:30", "15:00", period_name="Dismissal")

    result = check(db, provider, student, "14:45", "15:15")
    assert result.kind == ConstraintKind.school_hours


def test_find_violations_reports_every_failing_check(db, seed, provider, student):
    seed.bell(provider, MONDAY, "14:30", "15:00", period_name="Dismissal")
    seed.activity(provider, MONDAY, "14:00", "15:00", activity_name="Music")
    context = load_context(db, provider)

    violations = find_violations(StudentProfile.from_model(student), MONDAY, "14:45", "15:15", context, RULES)
    assert [item.kind for item in violations] == [
        ConstraintKind.school_hours,
        ConstraintKind.bell_schedule,
        ConstraintKind.special_activity,
    ]


def test_custom_rules_override_defaults(db, seed, provider, student):
    seed.session(student, provider, MONDAY, "08:00", "08:30")
    context = load_context(db, provider)
    rules = SchedulingRules(max_consecutive_minutes=30)

    result = validate_slot(StudentProfile.from_model(student), MONDAY, "08:30", "09:00", context, rules)
    assert result.kind == ConstraintKind.consecutive_minutes


def test_sessions_at_other_schools_do_not_count(db, seed, provider, student):
    for initials in ("AA", "BB", "CC", "DD"):
        other = seed.student(provider, initials=initials, school_site="Pine Middle")
        seed.session(other, provider, MONDAY, "10:00", "10:30")

    assert check(db, provider, student, "10:00", "10:30").valid
