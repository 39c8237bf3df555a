from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_provider
from app.core.exceptions import PersistenceWriteFailure, ResourceNotFoundError
from app.models.provider import Provider
from app.models.student import Student
from app.schemas.scheduling import RequirementSyncOut, RequirementsUpdate
from app.services.requirement_sync import Requirements, sync_session_requirements

router = APIRouter()


@router.put("/providers/{provider_id}/students/{student_id}/requirements", response_model=RequirementSyncOut)
def update_student_requirements(
    student_id: str,
    payload: RequirementsUpdate,
    provider: Provider = Depends(get_provider),
    db: Session = Depends(get_db),
) -> RequirementSyncOut:
    student = db.get(Student, student_id)
    if student is None or student.provider_id != provider.id:
        raise ResourceNotFoundError("Student", student_id)

    old = Requirements(student.sessions_per_week, student.minutes_per_session)
    data = payload.model_dump(exclude_unset=True)
    for key, value in data.items():
        setattr(student, key, value)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceWriteFailure(f"Failed to update student: {exc}", details={"student_id": student_id}) from exc

    new = Requirements(student.sessions_per_week, student.minutes_per_session)
    result = sync_session_requirements(db, student, old, new)
    return RequirementSyncOut(updated=result.updated, deleted=result.deleted, conflicts=result.conflicts)
