# src/models/user.py
import uuid
from sqlalchemy import (
    Column,
    String,
    DateTime,
    Boolean,
    ForeignKey,
    JSON,
    Uuid,
)
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum
from db.database import Base, str_enum
from utils.time_utils import utc_now


class Role(str, PyEnum):
    PATIENT = "patient"
    PHYSIOTHERAPIST = "physiotherapist"
    DOCTOR = "doctor"


PROVIDER_ROLES = frozenset({Role.PHYSIOTHERAPIST, Role.DOCTOR})
role_enum = str_enum(Role, "user_role")


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Personal information
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(100), nullable=False, unique=True)
    phone_number = Column(String(20), nullable=True)

    # Fixed for the lifetime of the account
    role = Column(role_enum, nullable=False)

    # Provider-specific information
    specialization = Column(String(100), nullable=True)
    license_number = Column(String(50), nullable=True)

    preferences = Column(JSON, default=dict)

    # Users are soft-deactivated, never hard-deleted
    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), onupdate=utc_now)

    # Assignment edges seen from either side
    provider_links = relationship(
        "ProviderAssignment",
        foreign_keys="[ProviderAssignment.patient_id]",
        back_populates="patient",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    patient_links = relationship(
        "ProviderAssignment",
        foreign_keys="[ProviderAssignment.provider_id]",
        back_populates="provider",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_provider(self) -> bool:
        return Role(self.role) in PROVIDER_ROLES


class ProviderAssignment(Base):
    """One row per patient/provider pair; both sides of the relation read from it"""

    __tablename__ = "provider_assignments"

    patient_id = Column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    provider_id = Column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    provider_role = Column(role_enum, nullable=False)
    assigned_at = Column(DateTime(timezone=True), default=utc_now)
    assigned_by = Column(Uuid, ForeignKey("users.id"), nullable=True)

    patient = relationship(
        "User", foreign_keys=[patient_id], back_populates="provider_links"
    )
    provider = relationship(
        "User", foreign_keys=[provider_id], back_populates="patient_links"
    )
