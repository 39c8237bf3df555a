"""create scheduling tables

Revision ID: 20261019_0001
Revises: None
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


provider_role_enum = sa.Enum("resource", "speech", "ot", "counseling", "specialist", "sea", name="provider_role")
session_status_enum = sa.Enum("active", "needs_attention", name="session_status")


def upgrade() -> None:
    op.create_table(
        "providers",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("role", provider_role_enum, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "students",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("provider_id", sa.String(length=36), nullable=False),
        sa.Column("initials", sa.String(length=10), nullable=False),
        sa.Column("grade_level", sa.String(length=10), nullable=False),
        sa.Column("teacher_name", sa.String(length=200), nullable=True),
        sa.Column("school_site", sa.String(length=200), nullable=False),
        sa.Column("school_district", sa.String(length=200), nullable=True),
        sa.Column("school_id", sa.String(length=36), nullable=True),
        sa.Column("sessions_per_week", sa.Integer(), nullable=True),
        sa.Column("minutes_per_session", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_students_provider_id", "students", ["provider_id"])
    op.create_index("ix_students_school_site", "students", ["school_site"])
    op.create_index("ix_students_school_id", "students", ["school_id"])

    op.create_table(
        "bell_schedules",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("provider_id", sa.String(length=36), nullable=False),
        sa.Column("school_site", sa.String(length=200), nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=True),
        sa.Column("grade_level", sa.String(length=100), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.String(length=8), nullable=False),
        sa.Column("end_time", sa.String(length=8), nullable=False),
        sa.Column("period_name", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_bell_schedules_provider_id", "bell_schedules", ["provider_id"])
    op.create_index("ix_bell_schedules_school_site", "bell_schedules", ["school_site"])
    op.create_index("ix_bell_schedules_school_id", "bell_schedules", ["school_id"])

    op.create_table(
        "special_activities",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("provider_id", sa.String(length=36), nullable=False),
        sa.Column("school_site", sa.String(length=200), nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=True),
        sa.Column("teacher_name", sa.String(length=200), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.String(length=8), nullable=False),
        sa.Column("end_time", sa.String(length=8), nullable=False),
        sa.Column("activity_name", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_special_activities_provider_id", "special_activities", ["provider_id"])
    op.create_index("ix_special_activities_school_site", "special_activities", ["school_site"])
    op.create_index("ix_special_activities_school_id", "special_activities", ["school_id"])
    op.create_index("ix_special_activities_teacher_name", "special_activities", ["teacher_name"])

    op.create_table(
        "schedule_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("student_id", sa.String(length=36), nullable=False),
        sa.Column("provider_id", sa.String(length=36), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.String(length=8), nullable=False),
        sa.Column("end_time", sa.String(length=8), nullable=False),
        sa.Column("service_type", sa.String(length=50), nullable=False),
        sa.Column("status", session_status_enum, nullable=False, server_default="active"),
        sa.Column("has_conflict", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("conflict_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_schedule_sessions_student_id", "schedule_sessions", ["student_id"])
    op.create_index("ix_schedule_sessions_provider_id", "schedule_sessions", ["provider_id"])

    op.create_table(
        "schedule_snapshots",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("provider_id", sa.String(length=36), nullable=False),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sessions", sa.JSON(), nullable=False),
    )
    op.create_index("ix_schedule_snapshots_provider_id", "schedule_snapshots", ["provider_id"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_schedule_snapshots_provider_id", table_name="schedule_snapshots")
    op.drop_table("schedule_snapshots")
    op.drop_index("ix_schedule_sessions_provider_id", table_name="schedule_sessions")
    op.drop_index("ix_schedule_sessions_student_id", table_name="schedule_sessions")
    op.drop_table("schedule_sessions")
    op.drop_index("ix_special_activities_teacher_name", table_name="special_activities")
    op.drop_index("ix_special_activities_school_id", table_name="special_activities")
    op.drop_index("ix_special_activities_school_site", table_name="special_activities")
    op.drop_index("ix_special_activities_provider_id", table_name="special_activities")
    op.drop_table("special_activities")
    op.drop_index("ix_bell_schedules_school_id", table_name="bell_schedules")
    op.drop_index("ix_bell_schedules_school_site", table_name="bell_schedules")
    op.drop_index("ix_bell_schedules_provider_id", table_name="bell_schedules")
    op.drop_table("bell_schedules")
    op.drop_index("ix_students_school_id", table_name="students")
    op.drop_index("ix_students_school_site", table_name="students")
    op.drop_index("ix_students_provider_id", table_name="students")
    op.drop_table("students")
    op.drop_table("providers")
    session_status_enum.drop(op.get_bind(), checkfirst=True)
    provider_role_enum.drop(op.get_bind(), checkfirst=True)
