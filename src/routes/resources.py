# src/routes/resources.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, List
from uuid import UUID
from core.config import settings
from core.dependencies import RoleChecker, get_current_user
from db.database import get_db
from models.user import Role
from schemas.access_schemas import AccessContext
from schemas.base_schemas import PaginationParams
from schemas.notification_schemas import NotificationPublic
from schemas.resource_schemas import (
    AssignmentCreate,
    AssignmentResult,
    ProgressPublic,
    RehabTaskPublic,
    UserPublic,
)
from services.notification_service import notification_service
from services.permissions import ResourceKind
from services.relationship_service import relationship_service
from services.resource_service import resource_service
from utils.logger import setup_logger

router = APIRouter(tags=["resources"])
logger = setup_logger("RESOURCE_ROUTES")

require_doctor = RoleChecker([Role.DOCTOR])


def pagination_params(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
) -> PaginationParams:
    return PaginationParams(page=page, limit=limit)


@router.get(
    "/rehab-tasks",
    response_model=List[RehabTaskPublic],
    summary="List rehab tasks",
    description="Tasks the caller may read, newest first",
)
async def list_rehab_tasks(
    pagination: PaginationParams = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await resource_service.list_resources(
        db, current_user, ResourceKind.REHAB_TASK, pagination
    )


@router.get("/rehab-tasks/{task_id}", response_model=RehabTaskPublic)
async def get_rehab_task(
    task_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await resource_service.get_resource(
        db, current_user, ResourceKind.REHAB_TASK, task_id
    )


@router.get(
    "/progress",
    response_model=List[ProgressPublic],
    summary="List progress entries",
)
async def list_progress(
    pagination: PaginationParams = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await resource_service.list_resources(
        db, current_user, ResourceKind.PROGRESS, pagination
    )


@router.get("/progress/{progress_id}", response_model=ProgressPublic)
async def get_progress(
    progress_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await resource_service.get_resource(
        db, current_user, ResourceKind.PROGRESS, progress_id
    )


@router.get(
    "/users",
    response_model=List[UserPublic],
    summary="List users",
    description="Profiles the caller may read",
)
async def list_users(
    pagination: PaginationParams = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await resource_service.list_resources(
        db, current_user, ResourceKind.USER, pagination
    )


@router.get("/users/{user_id}", response_model=UserPublic)
async def get_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await resource_service.get_resource(
        db, current_user, ResourceKind.USER, user_id
    )


@router.post(
    "/assignments",
    response_model=AssignmentResult,
    status_code=status.HTTP_201_CREATED,
    summary="Assign provider",
    description="Link a provider to a patient (doctors only)",
)
async def assign_provider(
    assignment: AssignmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(require_doctor),
) -> Any:
    created = await relationship_service.assign_provider(
        db, assignment.patient_id, assignment.provider_id, current_user.user_id
    )
    return AssignmentResult(
        patient_id=assignment.patient_id,
        provider_id=assignment.provider_id,
        created=created,
    )


@router.delete(
    "/assignments/{patient_id}/{provider_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Unassign provider",
)
async def unassign_provider(
    patient_id: UUID,
    provider_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(require_doctor),
) -> None:
    await relationship_service.unassign_provider(db, patient_id, provider_id)


@router.get(
    "/notifications",
    response_model=List[NotificationPublic],
    summary="List notifications",
)
async def list_notifications(
    unread_only: bool = False,
    pagination: PaginationParams = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await notification_service.list_notifications(
        db, current_user, pagination, unread_only
    )


@router.post(
    "/notifications/{notification_id}/read",
    response_model=NotificationPublic,
    summary="Mark notification as read",
)
async def mark_notification_as_read(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await notification_service.mark_as_read(
        db, current_user, notification_id
    )
