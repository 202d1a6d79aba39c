# src/services/resource_service.py
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from schemas.access_schemas import AccessContext
from schemas.base_schemas import PaginationParams
from services.access_control_service import access_control_service
from services.document_store import DocumentStore
from services.permissions import Action, ResourceKind, descriptor_for
from services.query_filter_service import query_filter_service
from utils.exceptions import NotFoundException, ValidationFailedException
from utils.logger import setup_logger

logger = setup_logger("RESOURCE_SERVICE")


class ResourceService:
    """Permission-scoped reads over tasks, progress entries and users"""

    def _model(self, kind: Any):
        descriptor = descriptor_for(kind)
        if descriptor is None:
            raise ValidationFailedException(f"Unknown resource kind: {kind}")
        return descriptor.model

    async def list_resources(
        self,
        db: AsyncSession,
        ctx: AccessContext,
        kind: Any,
        pagination: Optional[PaginationParams] = None,
    ) -> List[Any]:
        """Only the rows the user may read, newest first"""
        model = self._model(kind)
        pagination = pagination or PaginationParams()
        predicate = query_filter_service.build_filter(ctx, kind, Action.READ)

        return await DocumentStore(db).find(
            model,
            predicate,
            sort=[("created_at", "desc")],
            skip=pagination.skip,
            limit=pagination.limit,
        )

    async def get_resource(
        self, db: AsyncSession, ctx: AccessContext, kind: Any, resource_id: UUID
    ) -> Any:
        """Missing rows are 404, existing but forbidden rows are 403"""
        model = self._model(kind)
        document = await DocumentStore(db).find_one(model, resource_id)
        if document is None:
            raise NotFoundException(f"{ResourceKind(kind).value} not found")

        access_control_service.ensure_allowed(ctx, kind, Action.READ, document)
        return document


resource_service = ResourceService()
