# src/schemas/resource_schemas.py
from typing import Optional, Dict, Any, List
from datetime import datetime
from uuid import UUID

from models.user import Role
from models.rehab_task import TaskCategory, TaskPriority, TaskStatus
from models.progress import CompletionStatus
from .base_schemas import BaseSchema, IDMixin, TimestampMixin


class UserPublic(IDMixin, TimestampMixin):
    first_name: str
    last_name: str
    email: str
    phone_number: Optional[str] = None
    role: Role
    specialization: Optional[str] = None
    license_number: Optional[str] = None
    is_active: bool = True


class RehabTaskPublic(IDMixin, TimestampMixin):
    title: str
    description: Optional[str] = None
    category: Optional[TaskCategory] = None
    instructions: List[Any] = []
    parameters: Dict[str, Any] = {}
    assigned_to_id: UUID
    assigned_by_id: UUID
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None


class ProgressPublic(IDMixin, TimestampMixin):
    patient_id: UUID
    rehab_task_id: Optional[UUID] = None
    recorded_by_id: UUID
    session_date: Optional[datetime] = None
    session_duration: Optional[int] = None
    completion_status: Optional[CompletionStatus] = None
    completion_percentage: Optional[int] = None
    pain_level: Optional[int] = None
    difficulty_level: Optional[int] = None
    measurements: Dict[str, Any] = {}
    notes: Optional[str] = None


class AssignmentCreate(BaseSchema):
    patient_id: UUID
    provider_id: UUID


class AssignmentResult(BaseSchema):
    patient_id: UUID
    provider_id: UUID
    created: bool
