from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.schedule_session import SessionStatus
from app.services.time_grid import TIME_PATTERN, normalize_time, time_to_minutes


def _validate_time(value: str) -> str:
    if not TIME_PATTERN.match(value.strip()):
        raise ValueError("Time must be in HH:MM 24-hour format")
    return normalize_time(value)


class TimeBlockBase(BaseModel):
    school_site: str = Field(min_length=1, max_length=200)
    school_id: str | None = Field(default=None, max_length=36)
    day_of_week: int = Field(ge=1, le=5)
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time_format(cls, value: str) -> str:
        return _validate_time(value)

    @model_validator(mode="after")
    def validate_order(self) -> "TimeBlockBase":
        if time_to_minutes(self.end_time) <= time_to_minutes(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


class BellScheduleCreate(TimeBlockBase):
    grade_level: str = Field(min_length=1, max_length=100)
    period_name: str = Field(min_length=1, max_length=100)


class BellScheduleOut(BellScheduleCreate):
    id: str
    provider_id: str

    model_config = {"from_attributes": True}


class SpecialActivityCreate(TimeBlockBase):
    teacher_name: str = Field(min_length=1, max_length=200)
    activity_name: str = Field(min_length=1, max_length=100)


class SpecialActivityOut(SpecialActivityCreate):
    id: str
    provider_id: str

    model_config = {"from_attributes": True}


class ResolutionOut(BaseModel):
    marked: int
    failed: int
    skipped: bool = False


class BellScheduleSaved(BaseModel):
    bell_schedule: BellScheduleOut = Field(alias="bellSchedule")
    conflicts: ResolutionOut

    model_config = ConfigDict(populate_by_name=True)


class SpecialActivitySaved(BaseModel):
    special_activity: SpecialActivityOut = Field(alias="specialActivity")
    conflicts: ResolutionOut

    model_config = ConfigDict(populate_by_name=True)


class ScheduleSessionOut(BaseModel):
    id: str
    student_id: str
    provider_id: str
    day_of_week: int
    start_time: str
    end_time: str
    service_type: str
    status: SessionStatus
    has_conflict: bool
    conflict_reason: str | None = None

    model_config = {"from_attributes": True}


class StudentSelection(BaseModel):
    student_ids: list[str] = Field(min_length=1, max_length=500)


class RescheduleRequest(BaseModel):
    school_site: str = Field(min_length=1, max_length=200)


class UnplacedStudentOut(BaseModel):
    student_id: str = Field(alias="studentId")
    initials: str
    school_site: str = Field(alias="schoolSite")
    unmet: int

    model_config = ConfigDict(populate_by_name=True)


class BatchScheduleOut(BaseModel):
    total_students: int = Field(alias="totalStudents")
    total_scheduled: int = Field(alias="totalScheduled")
    total_failed: int = Field(alias="totalFailed")
    errors: list[str] = Field(default_factory=list)
    unplaced_students: list[UnplacedStudentOut] = Field(default_factory=list, alias="unplacedStudents")
    can_manually_place: bool = Field(alias="canManuallyPlace")
    scheduled_sessions: list[ScheduleSessionOut] = Field(default_factory=list, alias="scheduledSessions")

    model_config = ConfigDict(populate_by_name=True)


class ManualPlacementOut(BaseModel):
    placed_sessions: list[ScheduleSessionOut] = Field(default_factory=list, alias="placedSessions")
    failed_students: list[UnplacedStudentOut] = Field(default_factory=list, alias="failedStudents")
    errors: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class CrossProviderCheckRequest(BaseModel):
    student_id: str
    day_of_week: int = Field(ge=1, le=5)
    start_time: str
    end_time: str
    exclude_session_id: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time_format(cls, value: str) -> str:
        return _validate_time(value)


class CrossProviderCheckOut(BaseModel):
    has_conflict: bool = Field(alias="hasConflict")
    conflict_details: str | None = Field(default=None, alias="conflictDetails")

    model_config = ConfigDict(populate_by_name=True)


class RequirementsUpdate(BaseModel):
    sessions_per_week: int | None = Field(default=None, ge=0, le=20)
    minutes_per_session: int | None = Field(default=None, ge=5, le=240)


class RequirementSyncOut(BaseModel):
    updated: int
    deleted: int
    conflicts: int


class SnapshotOut(BaseModel):
    provider_id: str = Field(alias="providerId")
    captured_at: datetime = Field(alias="capturedAt")
    session_count: int = Field(alias="sessionCount")

    model_config = ConfigDict(populate_by_name=True)
