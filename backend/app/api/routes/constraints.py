from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_provider
from app.core.exceptions import ResourceNotFoundError
from app.models.bell_schedule import BellSchedule
from app.models.provider import Provider
from app.models.special_activity import SpecialActivity
from app.schemas.scheduling import (
    BellScheduleCreate,
    BellScheduleOut,
    BellScheduleSaved,
    ResolutionOut,
    SpecialActivityCreate,
    SpecialActivityOut,
    SpecialActivitySaved,
)
from app.services.conflict_resolver import ConflictResolver, ResolutionResult

router = APIRouter()


def _resolution_out(result: ResolutionResult) -> ResolutionOut:
    return ResolutionOut(marked=result.marked, failed=result.failed, skipped=result.skipped)


def _owned(db: Session, model, record_id: str, provider_id: str, label: str):
    record = db.get(model, record_id)
    if record is None or record.provider_id != provider_id:
        raise ResourceNotFoundError(label, record_id)
    return record


def _save_bell_schedule(db: Session, bell_schedule: BellSchedule) -> BellScheduleSaved:
    db.commit()
    db.refresh(bell_schedule)
    result = ConflictResolver(db, bell_schedule.provider_id).resolve_bell_schedule_conflicts(bell_schedule)
    return BellScheduleSaved(
        bell_schedule=BellScheduleOut.model_validate(bell_schedule),
        conflicts=_resolution_out(result),
    )


def _save_special_activity(db: Session, activity: SpecialActivity) -> SpecialActivitySaved:
    db.commit()
    db.refresh(activity)
    result = ConflictResolver(db, activity.provider_id).resolve_special_activity_conflicts(activity)
    return SpecialActivitySaved(
        special_activity=SpecialActivityOut.model_validate(activity),
        conflicts=_resolution_out(result),
    )


@router.post(
    "/providers/{provider_id}/bell-schedules",
    response_model=BellScheduleSaved,
    status_code=status.HTTP_201_CREATED,
)
def create_bell_schedule(
    payload: BellScheduleCreate,
    provider: Provider = Depends(get_provider),
    db: Session = Depends(get_db),
) -> BellScheduleSaved:
    bell_schedule = BellSchedule(provider_id=provider.id, **payload.model_dump())
    db.add(bell_schedule)
    return _save_bell_schedule(db, bell_schedule)


@router.put("/providers/{provider_id}/bell-schedules/{bell_schedule_id}", response_model=BellScheduleSaved)
def update_bell_schedule(
    bell_schedule_id: str,
    payload: BellScheduleCreate,
    provider: Provider = Depends(get_provider),
    db: Session = Depends(get_db),
) -> BellScheduleSaved:
    bell_schedule = _owned(db, BellSchedule, bell_schedule_id, provider.id, "Bell schedule")
    for key, value in payload.model_dump().items():
        setattr(bell_schedule, key, value)
    return _save_bell_schedule(db, bell_schedule)


@router.post(
    "/providers/{provider_id}/special-activities",
    response_model=SpecialActivitySaved,
    status_code=status.HTTP_201_CREATED,
)
def create_special_activity(
    payload: SpecialActivityCreate,
    provider: Provider = Depends(get_provider),
    db: Session = Depends(get_db),
) -> SpecialActivitySaved:
    activity = SpecialActivity(provider_id=provider.id, **payload.model_dump())
    db.add(activity)
    return _save_special_activity(db, activity)


@router.put("/providers/{provider_id}/special-activities/{activity_id}", response_model=SpecialActivitySaved)
def update_special_activity(
    activity_id: str,
    payload: SpecialActivityCreate,
    provider: Provider = Depends(get_provider),
    db: Session = Depends(get_db),
) -> SpecialActivitySaved:
    activity = _owned(db, SpecialActivity, activity_id, provider.id, "Special activity")
    for key, value in payload.model_dump().items():
        setattr(activity, key, value)
    return _save_special_activity(db, activity)
