# src/schemas/access_schemas.py
from enum import Enum
from typing import FrozenSet
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from models.user import Role, PROVIDER_ROLES


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    # Relation-based requirement asked without a concrete instance
    UNKNOWN = "unknown"

    @property
    def allowed(self) -> bool:
        return self is Decision.ALLOW


class AccessContext(BaseModel):
    """Role and assignment facts for the acting user, loaded once per request"""

    model_config = ConfigDict(frozen=True)

    user_id: UUID
    role: Role
    assigned_patient_ids: FrozenSet[UUID] = Field(default_factory=frozenset)
    assigned_provider_ids: FrozenSet[UUID] = Field(default_factory=frozenset)
    is_active: bool = True

    @property
    def is_provider(self) -> bool:
        return Role(self.role) in PROVIDER_ROLES

    @property
    def is_doctor(self) -> bool:
        return Role(self.role) is Role.DOCTOR

    @property
    def is_patient(self) -> bool:
        return Role(self.role) is Role.PATIENT
