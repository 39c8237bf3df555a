import os

# Engine creation at import time must not need a postgres driver.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.api.deps import get_db
from app.db.base import Base
from app.main import app
from app.models.bell_schedule import BellSchedule
from app.models.provider import Provider, ProviderRole
from app.models.schedule_session import ScheduleSession, SessionStatus
from app.models.special_activity import SpecialActivity
from app.models.student import Student


@pytest.fixture()
def db():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


class Seeder:
    """Writes rows straight into the test database."""

    def __init__(self, db):
        self.db = db

    def _save(self, row):
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def provider(self, full_name="Pat Rivera", role=ProviderRole.resource, **overrides):
        return self._save(Provider(full_name=full_name, role=role, **overrides))

    def student(self, provider, initials="AB", **overrides):
        values = {
            "grade_level": "3",
            "teacher_name": "Ms. Lee",
            "school_site": "Oak Elementary",
            "school_district": "Unified",
            "school_id": "school-oak",
            "sessions_per_week": 2,
            "minutes_per_session": 30,
        }
        values.update(overrides)
        return self._save(Student(provider_id=provider.id, initials=initials, **values))

    def bell(self, provider, day, start, end, grade_level="3", period_name="Recess", **overrides):
        values = {"school_site": "Oak Elementary", "school_id": "school-oak"}
        values.update(overrides)
        return self._save(
            BellSchedule(
                provider_id=provider.id,
                grade_level=grade_level,
                day_of_week=day,
                start_time=start,
                end_time=end,
                period_name=period_name,
                **values,
            )
        )

    def activity(self, provider, day, start, end, teacher_name="Ms. Lee", activity_name="Library", **overrides):
        values = {"school_site": "Oak Elementary", "school_id": "school-oak"}
        values.update(overrides)
        return self._save(
            SpecialActivity(
                provider_id=provider.id,
                teacher_name=teacher_name,
                day_of_week=day,
                start_time=start,
                end_time=end,
                activity_name=activity_name,
                **values,
            )
        )

    def session(self, student, provider, day, start, end, service_type="resource", **overrides):
        values = {"status": SessionStatus.active, "has_conflict": False}
        values.update(overrides)
        return self._save(
            ScheduleSession(
                student_id=student.id,
                provider_id=provider.id,
                day_of_week=day,
                start_time=start,
                end_time=end,
                service_type=service_type,
                **values,
            )
        )


@pytest.fixture()
def seed(db):
    return Seeder(db)
