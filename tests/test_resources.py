# tests/test_resources.py
from uuid import uuid4

import pytest
from fastapi import BackgroundTasks

from models.comment import CommentTargetType
from models.notification import Notification, NotificationType
from schemas.base_schemas import PaginationParams
from schemas.comment_schemas import CommentCreate, ReplyCreate
from schemas.notification_schemas import CommentEvent, CommentEventKind
from services.comment_service import CommentService
from services.document_store import DocumentStore
from services.filters import FieldEquals
from services.notification_service import (
    DatabaseNotificationDispatcher,
    notification_service,
)
from services.permissions import ResourceKind
from services.relationship_service import relationship_service
from services.resource_service import resource_service
from utils.exceptions import (
    AccessDeniedException,
    NotFoundException,
    ValidationFailedException,
)


# Relationships


async def test_access_context_reflects_assignments(db, care_team):
    physio = await care_team.ctx(care_team.physio_b)
    patient = await care_team.ctx(care_team.patient_a)

    assert physio.assigned_patient_ids == {care_team.patient_a.id, care_team.patient_b.id}
    assert patient.assigned_provider_ids == {care_team.physio_a.id, care_team.physio_b.id}
    assert physio.is_provider and not physio.is_doctor
    assert not (await care_team.ctx(care_team.retired)).is_active


async def test_assignment_is_symmetric_and_append_once(db, care_team):
    created = await relationship_service.assign_provider(
        db, care_team.patient_a.id, care_team.physio_c.id, care_team.doctor.id
    )
    again = await relationship_service.assign_provider(
        db, care_team.patient_a.id, care_team.physio_c.id
    )

    assert created is True
    assert again is False
    assert care_team.patient_a.id in (
        await care_team.ctx(care_team.physio_c)
    ).assigned_patient_ids
    assert care_team.physio_c.id in (
        await care_team.ctx(care_team.patient_a)
    ).assigned_provider_ids

    assert await relationship_service.unassign_provider(
        db, care_team.patient_a.id, care_team.physio_c.id
    )
    assert not await relationship_service.is_assigned(
        db, care_team.patient_a.id, care_team.physio_c.id
    )


async def test_assignment_requires_patient_and_provider_roles(db, care_team):
    with pytest.raises(ValidationFailedException):
        await relationship_service.assign_provider(
            db, care_team.physio_a.id, care_team.physio_b.id
        )
    with pytest.raises(ValidationFailedException):
        await relationship_service.assign_provider(
            db, care_team.patient_a.id, care_team.patient_b.id
        )
    with pytest.raises(NotFoundException):
        await relationship_service.assign_provider(db, uuid4(), care_team.physio_a.id)


async def test_inactive_providers_are_not_on_the_team(db, care_team):
    await relationship_service.assign_provider(
        db, care_team.patient_a.id, care_team.retired.id
    )
    providers = await relationship_service.assigned_providers(
        db, care_team.patient_a.id
    )
    everyone = await relationship_service.assigned_providers(
        db, care_team.patient_a.id, active_only=False
    )

    assert care_team.retired.id not in {p.id for p in providers}
    assert care_team.retired.id in {p.id for p in everyone}


# Resource listing


async def test_list_resources_applies_the_read_filter(db, care_team):
    patient_tasks = await resource_service.list_resources(
        db, await care_team.ctx(care_team.patient_a), ResourceKind.REHAB_TASK
    )
    doctor_tasks = await resource_service.list_resources(
        db, await care_team.ctx(care_team.doctor), ResourceKind.REHAB_TASK
    )

    assert [t.id for t in patient_tasks] == [care_team.task_a.id]
    assert {t.id for t in doctor_tasks} == {care_team.task_a.id, care_team.task_b.id}


async def test_list_resources_paginates(db, care_team):
    page = await resource_service.list_resources(
        db,
        await care_team.ctx(care_team.doctor),
        ResourceKind.USER,
        PaginationParams(page=2, limit=5),
    )
    assert len(page) == 2


async def test_get_resource_keeps_not_found_apart_from_denied(db, care_team):
    patient_b = await care_team.ctx(care_team.patient_b)

    with pytest.raises(AccessDeniedException):
        await resource_service.get_resource(
            db, patient_b, ResourceKind.REHAB_TASK, care_team.task_a.id
        )
    with pytest.raises(NotFoundException):
        await resource_service.get_resource(
            db, patient_b, ResourceKind.REHAB_TASK, uuid4()
        )


async def test_physio_sees_own_profile_and_assigned_patients(db, care_team):
    users = await resource_service.list_resources(
        db, await care_team.ctx(care_team.physio_a), ResourceKind.USER
    )
    assert {u.id for u in users} == {care_team.physio_a.id, care_team.patient_a.id}


async def test_unknown_kind_is_rejected(db, care_team):
    with pytest.raises(ValidationFailedException):
        await resource_service.list_resources(
            db, await care_team.ctx(care_team.doctor), "invoice"
        )


# Notifications


async def test_database_dispatcher_stores_notifications(
    db, care_team, session_factory
):
    service = CommentService(DatabaseNotificationDispatcher(session_factory))
    root = await service.create_comment(
        db,
        await care_team.ctx(care_team.patient_a),
        CommentCreate(
            target_type=CommentTargetType.REHAB_TASK,
            target_id=care_team.task_a.id,
            related_patient_id=care_team.patient_a.id,
            content="Is swelling normal?",
        ),
    )
    background_tasks = BackgroundTasks()
    await service.reply_to_comment(
        db,
        await care_team.ctx(care_team.physio_a),
        root.comment.id,
        ReplyCreate(content="Yes, ice it", mentions=[care_team.physio_b.id]),
        background_tasks,
    )
    await background_tasks()

    patient = await care_team.ctx(care_team.patient_a)
    inbox = await notification_service.list_notifications(db, patient)
    assert len(inbox) == 1
    assert inbox[0].type == NotificationType.COMMENT_REPLY
    assert inbox[0].message == "Paula Test replied to your comment"

    read = await notification_service.mark_as_read(db, patient, inbox[0].id)
    assert read.is_read
    assert await notification_service.list_notifications(
        db, patient, unread_only=True
    ) == []

    mentions = await DocumentStore(db).find(
        Notification, FieldEquals("recipient_id", care_team.physio_b.id)
    )
    assert [n.type for n in mentions] == [NotificationType.COMMENT_MENTION]


async def test_notifications_are_private_to_recipient(db, care_team, session_factory):
    dispatcher = DatabaseNotificationDispatcher(session_factory)
    await dispatcher.notify(
        CommentEvent(
            kind=CommentEventKind.RESOLUTION,
            recipient_id=care_team.patient_a.id,
            sender_id=care_team.physio_a.id,
            comment_id=uuid4(),
        )
    )
    stored = await DocumentStore(db).find(Notification)

    with pytest.raises(AccessDeniedException):
        await notification_service.mark_as_read(
            db, await care_team.ctx(care_team.patient_b), stored[0].id
        )
    assert (
        await notification_service.list_notifications(
            db, await care_team.ctx(care_team.doctor)
        )
        == []
    )
