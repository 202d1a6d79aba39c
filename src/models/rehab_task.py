# src/models/rehab_task.py
import uuid
from sqlalchemy import (
    Column,
    String,
    Text,
    DateTime,
    ForeignKey,
    JSON,
    Uuid,
)
from enum import Enum as PyEnum
from db.database import Base, str_enum
from utils.time_utils import utc_now


class TaskCategory(str, PyEnum):
    EXERCISE = "exercise"
    STRETCHING = "stretching"
    STRENGTH = "strength"
    MOBILITY = "mobility"
    BALANCE = "balance"
    CARDIO = "cardio"
    OTHER = "other"


class TaskStatus(str, PyEnum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(str, PyEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class RehabTask(Base):
    __tablename__ = "rehab_tasks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(
        str_enum(TaskCategory, "task_category"), default=TaskCategory.EXERCISE
    )
    instructions = Column(JSON, default=list)  # Ordered steps
    parameters = Column(JSON, default=dict)  # Sets, reps, duration, intensity

    # The patient doing the task and the provider who authored it
    assigned_to_id = Column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    assigned_by_id = Column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )

    status = Column(str_enum(TaskStatus, "task_status"), default=TaskStatus.ACTIVE)
    priority = Column(
        str_enum(TaskPriority, "task_priority"), default=TaskPriority.NORMAL
    )
    due_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), onupdate=utc_now)
