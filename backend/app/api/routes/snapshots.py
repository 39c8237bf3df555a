from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_provider
from app.core.exceptions import ResourceNotFoundError
from app.models.provider import Provider
from app.schemas.scheduling import SnapshotOut
from app.services import snapshot
from app.services.snapshot import SnapshotSummary

router = APIRouter()


def _snapshot_out(summary: SnapshotSummary) -> SnapshotOut:
    return SnapshotOut(
        provider_id=summary.provider_id,
        captured_at=summary.captured_at,
        session_count=summary.session_count,
    )


@router.get("/providers/{provider_id}/snapshot", response_model=SnapshotOut)
def get_snapshot(provider: Provider = Depends(get_provider), db: Session = Depends(get_db)) -> SnapshotOut:
    record = snapshot.get_snapshot(db, provider.id)
    if record is None:
        raise ResourceNotFoundError("Schedule snapshot", provider.id)
    return SnapshotOut(
        provider_id=record.provider_id,
        captured_at=record.captured_at,
        session_count=len(record.sessions or []),
    )


@router.post("/providers/{provider_id}/snapshot", response_model=SnapshotOut)
def save_snapshot(provider: Provider = Depends(get_provider), db: Session = Depends(get_db)) -> SnapshotOut:
    return _snapshot_out(snapshot.save_snapshot(db, provider.id))


@router.post("/providers/{provider_id}/snapshot/restore", response_model=SnapshotOut)
def restore_snapshot(provider: Provider = Depends(get_provider), db: Session = Depends(get_db)) -> SnapshotOut:
    return _snapshot_out(snapshot.restore_snapshot(db, provider.id))
