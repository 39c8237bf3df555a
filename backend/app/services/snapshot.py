from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import PersistenceWriteFailure, ResourceNotFoundError
from app.models.schedule_session import ScheduleSession, SessionStatus
from app.models.schedule_snapshot import ScheduleSnapshot
from app.services import session_repository

logger = logging.getLogger(__name__)

# Columns generated by the store; dropped when rows are re-inserted.
SERVER_GENERATED_FIELDS = frozenset({"id", "created_at", "updated_at"})


@dataclass(frozen=True)
class SnapshotSummary:
    provider_id: str
    captured_at: datetime
    session_count: int


def serialize_session(session: ScheduleSession) -> dict:
    return {
        "id": session.id,
        "student_id": session.student_id,
        "provider_id": session.provider_id,
        "day_of_week": session.day_of_week,
        "start_time": session.start_time,
        "end_time": session.end_time,
        "service_type": session.service_type,
        "status": SessionStatus(session.status).value,
        "has_conflict": bool(session.has_conflict),
        "conflict_reason": session.conflict_reason,
        "created_at": session.created_at.isoformat() if session.created_at else None,
        "updated_at": session.updated_at.isoformat() if session.updated_at else None,
    }


def _restorable_row(payload: dict) -> dict:
    row = {key: value for key, value in payload.items() if key not in SERVER_GENERATED_FIELDS}
    row["status"] = SessionStatus(row.get("status") or SessionStatus.active.value)
    return row


def get_snapshot(db: Session, provider_id: str) -> ScheduleSnapshot | None:
    return db.execute(
        select(ScheduleSnapshot).where(ScheduleSnapshot.provider_id == provider_id)
    ).scalars().first()


def save_snapshot(db: Session, provider_id: str) -> SnapshotSummary:
    """Capture every session of the provider, replacing any earlier snapshot."""
    sessions = session_repository.list_provider_sessions(db, provider_id=provider_id)
    payload = [serialize_session(session) for session in sessions]
    captured_at = datetime.now(timezone.utc)

    snapshot = get_snapshot(db, provider_id)
    if snapshot is None:
        snapshot = ScheduleSnapshot(provider_id=provider_id, captured_at=captured_at, sessions=payload)
        db.add(snapshot)
    else:
        snapshot.captured_at = captured_at
        snapshot.sessions = payload

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to save schedule snapshot for provider %s", provider_id)
        raise PersistenceWriteFailure(f"Failed to save snapshot: {exc}", details={"provider_id": provider_id}) from exc

    logger.info("Saved snapshot of %d session(s) for provider %s", len(payload), provider_id)
    return SnapshotSummary(provider_id=provider_id, captured_at=captured_at, session_count=len(payload))


def restore_snapshot(db: Session, provider_id: str) -> SnapshotSummary:
    """Replace the provider's sessions with the snapshot rows, then drop the snapshot.

    Runs as one transaction: on failure nothing is deleted.
    """
    snapshot = get_snapshot(db, provider_id)
    if snapshot is None:
        raise ResourceNotFoundError("Schedule snapshot", provider_id)

    rows = [_restorable_row(item) for item in snapshot.sessions or []]
    captured_at = snapshot.captured_at
    try:
        db.execute(delete(ScheduleSession).where(ScheduleSession.provider_id == provider_id))
        db.add_all(ScheduleSession(**row) for row in rows)
        db.delete(snapshot)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to restore schedule snapshot for provider %s", provider_id)
        raise PersistenceWriteFailure(
            f"Failed to restore snapshot: {exc}",
            details={"provider_id": provider_id},
        ) from exc

    logger.info("Restored %d session(s) for provider %s", len(rows), provider_id)
    return SnapshotSummary(provider_id=provider_id, captured_at=captured_at, session_count=len(rows))
