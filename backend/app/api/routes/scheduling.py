from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_provider
from app.core.config import get_settings
from app.models.provider import Provider
from app.schemas.scheduling import (
    BatchScheduleOut,
    CrossProviderCheckOut,
    CrossProviderCheckRequest,
    ManualPlacementOut,
    RescheduleRequest,
    ScheduleSessionOut,
    StudentSelection,
    UnplacedStudentOut,
)
from app.services import session_repository
from app.services.batch_scheduler import BatchResult, BatchScheduler, ManualPlacementResult, UnplacedStudent
from app.services.conflict_resolver import ConflictResolver

router = APIRouter()


def _batch_scheduler(db: Session, provider: Provider) -> BatchScheduler:
    return BatchScheduler(
        db,
        provider_id=provider.id,
        service_type=provider.role.value,
        context_max_age_seconds=get_settings().context_max_age_seconds,
    )


def _unplaced_out(item: UnplacedStudent) -> UnplacedStudentOut:
    return UnplacedStudentOut(
        student_id=item.student_id,
        initials=item.initials,
        school_site=item.school_site,
        unmet=item.unmet,
    )


def _batch_out(result: BatchResult) -> BatchScheduleOut:
    return BatchScheduleOut(
        total_students=result.total_students,
        total_scheduled=result.total_scheduled,
        total_failed=result.total_failed,
        errors=result.errors,
        unplaced_students=[_unplaced_out(item) for item in result.unplaced_students],
        can_manually_place=result.can_manually_place,
        scheduled_sessions=[ScheduleSessionOut.model_validate(row) for row in result.scheduled_sessions],
    )


def _manual_out(result: ManualPlacementResult) -> ManualPlacementOut:
    return ManualPlacementOut(
        placed_sessions=[ScheduleSessionOut.model_validate(row) for row in result.placed_sessions],
        failed_students=[_unplaced_out(item) for item in result.failed_students],
        errors=result.errors,
    )


@router.post("/providers/{provider_id}/schedule/batch", response_model=BatchScheduleOut)
def schedule_batch(
    payload: StudentSelection,
    provider: Provider = Depends(get_provider),
    db: Session = Depends(get_db),
) -> BatchScheduleOut:
    students = session_repository.load_students(db, provider_id=provider.id, student_ids=payload.student_ids)
    result = _batch_scheduler(db, provider).schedule_batch(students)
    return _batch_out(result)


@router.post("/providers/{provider_id}/schedule/manual", response_model=ManualPlacementOut)
def schedule_manual(
    payload: StudentSelection,
    provider: Provider = Depends(get_provider),
    db: Session = Depends(get_db),
) -> ManualPlacementOut:
    students = session_repository.load_students(db, provider_id=provider.id, student_ids=payload.student_ids)
    result = _batch_scheduler(db, provider).try_manual_placement(students)
    return _manual_out(result)


@router.post("/providers/{provider_id}/schedule/reschedule", response_model=BatchScheduleOut)
def reschedule_school(
    payload: RescheduleRequest,
    provider: Provider = Depends(get_provider),
    db: Session = Depends(get_db),
) -> BatchScheduleOut:
    result = _batch_scheduler(db, provider).reschedule_school(payload.school_site)
    return _batch_out(result)


@router.post("/providers/{provider_id}/schedule/cross-provider-check", response_model=CrossProviderCheckOut)
def cross_provider_check(
    payload: CrossProviderCheckRequest,
    provider: Provider = Depends(get_provider),
    db: Session = Depends(get_db),
) -> CrossProviderCheckOut:
    conflict = ConflictResolver(db, provider.id).check_cross_provider_conflicts(
        payload.student_id,
        payload.day_of_week,
        payload.start_time,
        payload.end_time,
        exclude_session_id=payload.exclude_session_id,
    )
    return CrossProviderCheckOut(has_conflict=conflict.has_conflict, conflict_details=conflict.conflict_details)
