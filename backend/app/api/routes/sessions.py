from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_provider
from app.models.provider import Provider
from app.schemas.scheduling import ScheduleSessionOut
from app.services.conflict_resolver import ConflictResolver

router = APIRouter()


@router.post("/providers/{provider_id}/sessions/{session_id}/clear-conflict", response_model=ScheduleSessionOut)
def clear_session_conflict(
    session_id: str,
    provider: Provider = Depends(get_provider),
    db: Session = Depends(get_db),
) -> ScheduleSessionOut:
    session = ConflictResolver(db, provider.id).clear_session_conflict(session_id)
    return ScheduleSessionOut.model_validate(session)
