# src/services/relationship_service.py
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.user import PROVIDER_ROLES, ProviderAssignment, Role, User
from schemas.access_schemas import AccessContext
from services.document_store import DocumentStore
from utils.exceptions import (
    NotFoundException,
    ValidationFailedException,
    handle_db_exception,
)
from utils.logger import setup_logger
from utils.time_utils import utc_now

logger = setup_logger("RELATIONSHIP_SERVICE")


class RelationshipService:
    """Roles plus the patient/provider assignment graph"""

    async def get_user(self, db: AsyncSession, user_id: UUID) -> User:
        user = await DocumentStore(db).find_one(User, user_id)
        if not user:
            raise NotFoundException("User not found")
        return user

    async def load_access_context(
        self, db: AsyncSession, user_id: UUID
    ) -> AccessContext:
        """Everything the permission engine needs to know about a user"""
        user = await self.get_user(db, user_id)
        role = Role(user.role)

        try:
            patient_ids: List[UUID] = []
            provider_ids: List[UUID] = []
            if role in PROVIDER_ROLES:
                result = await db.execute(
                    select(ProviderAssignment.patient_id).where(
                        ProviderAssignment.provider_id == user.id
                    )
                )
                patient_ids = list(result.scalars().all())
            else:
                result = await db.execute(
                    select(ProviderAssignment.provider_id).where(
                        ProviderAssignment.patient_id == user.id
                    )
                )
                provider_ids = list(result.scalars().all())
        except SQLAlchemyError as e:
            await handle_db_exception(db, logger, "load access context", e)

        return AccessContext(
            user_id=user.id,
            role=role,
            assigned_patient_ids=frozenset(patient_ids),
            assigned_provider_ids=frozenset(provider_ids),
            is_active=bool(user.is_active),
        )

    async def assigned_providers(
        self, db: AsyncSession, patient_id: UUID, active_only: bool = True
    ) -> List[User]:
        """Providers currently assigned to the patient"""
        try:
            query = (
                select(User)
                .join(ProviderAssignment, ProviderAssignment.provider_id == User.id)
                .where(ProviderAssignment.patient_id == patient_id)
                .order_by(ProviderAssignment.assigned_at)
            )
            if active_only:
                query = query.where(User.is_active.is_(True))
            result = await db.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            await handle_db_exception(db, logger, "list assigned providers", e)

    async def is_assigned(
        self, db: AsyncSession, patient_id: UUID, provider_id: UUID
    ) -> bool:
        link = await DocumentStore(db).find_member(
            ProviderAssignment, {"patient_id": patient_id, "provider_id": provider_id}
        )
        return link is not None

    async def assign_provider(
        self,
        db: AsyncSession,
        patient_id: UUID,
        provider_id: UUID,
        assigned_by: Optional[UUID] = None,
    ) -> bool:
        """Link a provider to a patient; False if they were already linked"""
        patient = await self.get_user(db, patient_id)
        provider = await self.get_user(db, provider_id)

        if Role(patient.role) is not Role.PATIENT:
            raise ValidationFailedException("Assignments must target a patient")
        if Role(provider.role) not in PROVIDER_ROLES:
            raise ValidationFailedException("Only providers can be assigned to patients")

        store = DocumentStore(db)
        created = await store.insert_member_once(
            ProviderAssignment,
            {"patient_id": patient.id, "provider_id": provider.id},
            {
                "provider_role": Role(provider.role),
                "assigned_at": utc_now(),
                "assigned_by": assigned_by,
            },
        )
        await store.commit()

        if created:
            logger.info(f"Assigned {provider.role} {provider.id} to patient {patient.id}")
        return created

    async def unassign_provider(
        self, db: AsyncSession, patient_id: UUID, provider_id: UUID
    ) -> bool:
        store = DocumentStore(db)
        removed = await store.delete_member(
            ProviderAssignment, {"patient_id": patient_id, "provider_id": provider_id}
        )
        await store.commit()

        if removed:
            logger.info(f"Unassigned provider {provider_id} from patient {patient_id}")
        return removed

    async def resolve_active_users(
        self, db: AsyncSession, user_ids: Iterable[UUID]
    ) -> List[User]:
        """Existing, active users among the ids; unknown ids are skipped"""
        wanted = list(dict.fromkeys(user_ids))
        if not wanted:
            return []
        try:
            result = await db.execute(
                select(User).where(User.id.in_(wanted), User.is_active.is_(True))
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            await handle_db_exception(db, logger, "resolve users", e)


relationship_service = RelationshipService()
