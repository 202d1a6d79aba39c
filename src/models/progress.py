# src/models/progress.py
import uuid
from sqlalchemy import (
    Column,
    Integer,
    Text,
    DateTime,
    ForeignKey,
    JSON,
    Uuid,
)
from enum import Enum as PyEnum
from db.database import Base, str_enum
from utils.time_utils import utc_now


class CompletionStatus(str, PyEnum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    SKIPPED = "skipped"
    UNABLE = "unable"


class Progress(Base):
    __tablename__ = "progress_entries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    patient_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    rehab_task_id = Column(Uuid, ForeignKey("rehab_tasks.id"), nullable=True)
    recorded_by_id = Column(Uuid, ForeignKey("users.id"), nullable=False)

    session_date = Column(DateTime(timezone=True), default=utc_now)
    session_duration = Column(Integer, nullable=True)  # minutes
    completion_status = Column(
        str_enum(CompletionStatus, "completion_status"), default=CompletionStatus.COMPLETED
    )
    completion_percentage = Column(Integer, default=100)

    pain_level = Column(Integer, nullable=True)  # 0-10
    difficulty_level = Column(Integer, nullable=True)  # 0-10
    measurements = Column(JSON, default=dict)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), onupdate=utc_now)
