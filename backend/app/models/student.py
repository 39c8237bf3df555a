import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class Student(Base):
    __tablename__ = "students"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    provider_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    initials: Mapped[str] = mapped_column(String(10), nullable=False)
    grade_level: Mapped[str] = mapped_column(String(10), nullable=False)
    teacher_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    school_site: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    school_district: Mapped[str | None] = mapped_column(String(200), nullable=True)
    school_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    sessions_per_week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    minutes_per_session: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
