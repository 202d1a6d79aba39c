# tests/test_permissions.py
from uuid import uuid4

import pytest

from models.comment import Comment, CommentVisibility, Visibility
from models.progress import Progress
from models.rehab_task import RehabTask
from models.user import Role
from schemas.access_schemas import AccessContext, Decision
from services import relations
from services.access_control_service import access_control_service
from services.filters import MatchAll, MatchNone
from services.permissions import (
    COMPILED_MATRIX,
    PERMISSION_MATRIX,
    UNCONDITIONAL_RELATIONS,
    Action,
    PermissionMatrixError,
    Relation,
    ResourceKind,
    _compile,
    lookup_requirement,
)
from services.query_filter_service import query_filter_service
from utils.exceptions import AccessDeniedException


def context(role, patients=(), providers=(), active=True):
    return AccessContext(
        user_id=uuid4(),
        role=role,
        assigned_patient_ids=frozenset(patients),
        assigned_provider_ids=frozenset(providers),
        is_active=active,
    )


def test_matrix_covers_every_combination():
    for kind in ResourceKind:
        for role in Role:
            for action in Action:
                assert (kind, role, action) in COMPILED_MATRIX


def test_every_relation_has_a_clause():
    used = {r for requirement in COMPILED_MATRIX.values() for r in requirement}
    assert used - UNCONDITIONAL_RELATIONS <= set(relations.RELATION_CLAUSES)
    assert set(Relation) - UNCONDITIONAL_RELATIONS == set(relations.RELATION_CLAUSES)


def test_incomplete_matrix_fails_at_compile_time():
    broken = {kind: dict(by_role) for kind, by_role in PERMISSION_MATRIX.items()}
    del broken[ResourceKind.PROGRESS][Role.DOCTOR]

    with pytest.raises(PermissionMatrixError):
        _compile(broken)


def test_none_and_all_must_stand_alone():
    broken = {kind: dict(by_role) for kind, by_role in PERMISSION_MATRIX.items()}
    broken[ResourceKind.USER][Role.DOCTOR] = {
        "read": (Relation.ALL, Relation.OWN),
        "write": (Relation.NONE,),
        "delete": (Relation.NONE,),
    }

    with pytest.raises(PermissionMatrixError):
        _compile(broken)


def test_lookup_accepts_plain_strings():
    assert lookup_requirement("rehabTask", "patient", "read") == (Relation.OWN,)
    assert lookup_requirement("invoice", "patient", "read") is None
    assert lookup_requirement("rehabTask", "admin", "read") is None


def test_patient_never_writes_tasks_even_their_own():
    patient = context(Role.PATIENT)
    task = RehabTask(assigned_to_id=patient.user_id, assigned_by_id=uuid4())

    decision = access_control_service.decide(
        patient, ResourceKind.REHAB_TASK, Action.WRITE, task
    )
    assert decision is Decision.DENY


def test_none_short_circuits_before_relations(monkeypatch):
    def explode(ctx, desc):
        raise AssertionError("relation evaluated")

    monkeypatch.setitem(relations.RELATION_CLAUSES, Relation.OWN, explode)
    patient = context(Role.PATIENT)

    assert (
        access_control_service.decide(patient, "rehabTask", "write", RehabTask())
        is Decision.DENY
    )


def test_patient_reads_only_own_tasks():
    patient = context(Role.PATIENT)
    own = RehabTask(assigned_to_id=patient.user_id, assigned_by_id=uuid4())
    other = RehabTask(assigned_to_id=uuid4(), assigned_by_id=uuid4())

    assert access_control_service.is_allowed(patient, "rehabTask", "read", own)
    assert not access_control_service.is_allowed(patient, "rehabTask", "read", other)


def test_physio_reads_tasks_they_authored():
    physio = context(Role.PHYSIOTHERAPIST)
    authored = RehabTask(assigned_to_id=uuid4(), assigned_by_id=physio.user_id)
    foreign = RehabTask(assigned_to_id=uuid4(), assigned_by_id=uuid4())

    assert access_control_service.is_allowed(physio, "rehabTask", "read", authored)
    assert not access_control_service.is_allowed(physio, "rehabTask", "read", foreign)


def test_physio_reads_progress_of_assigned_patients():
    patient_id = uuid4()
    physio = context(Role.PHYSIOTHERAPIST, patients=[patient_id])

    assigned = Progress(patient_id=patient_id, recorded_by_id=patient_id)
    unassigned = Progress(patient_id=uuid4(), recorded_by_id=uuid4())

    assert access_control_service.is_allowed(physio, "progress", "read", assigned)
    assert not access_control_service.is_allowed(
        physio, "progress", "read", unassigned
    )


def test_doctor_reads_everything_without_an_instance():
    doctor = context(Role.DOCTOR)
    assert access_control_service.decide(doctor, "progress", "read") is Decision.ALLOW


def test_relation_without_instance_is_unknown():
    patient = context(Role.PATIENT)
    decision = access_control_service.decide(patient, "rehabTask", "read")

    assert decision is Decision.UNKNOWN
    assert not decision.allowed


def test_unknown_kind_and_inactive_user_fail_closed():
    doctor = context(Role.DOCTOR)
    inactive = context(Role.DOCTOR, active=False)

    assert access_control_service.decide(doctor, "invoice", "read") is Decision.DENY
    assert access_control_service.decide(doctor, "progress", "purge") is Decision.DENY
    assert access_control_service.decide(inactive, "progress", "read") is Decision.DENY
    assert isinstance(query_filter_service.build_filter(doctor, "invoice"), MatchNone)
    assert isinstance(query_filter_service.build_filter(inactive, "progress"), MatchNone)


def test_doctor_filter_matches_everything():
    doctor = context(Role.DOCTOR)
    assert isinstance(query_filter_service.build_filter(doctor, "comment"), MatchAll)


def test_ensure_allowed_raises_access_denied():
    patient = context(Role.PATIENT)
    with pytest.raises(AccessDeniedException):
        access_control_service.ensure_allowed(
            patient, ResourceKind.PROGRESS, Action.DELETE, Progress()
        )


def comment_for(patient_id, author_id, visibility, recipients=()):
    return Comment(
        related_patient_id=patient_id,
        author_id=author_id,
        visibility=visibility,
        visible_to=[
            CommentVisibility(user_id=user_id, role=Role.PHYSIOTHERAPIST)
            for user_id in recipients
        ],
    )


def test_patient_comment_visibility_modes():
    patient = context(Role.PATIENT)
    author = uuid4()

    patient_visible = comment_for(patient.user_id, author, Visibility.PATIENT_VISIBLE)
    everyone = comment_for(uuid4(), author, Visibility.ALL_VISIBLE)
    private = comment_for(patient.user_id, author, Visibility.PRIVATE)
    listed = comment_for(uuid4(), author, Visibility.TEAM_VISIBLE, [patient.user_id])

    def can_read(comment):
        return access_control_service.is_allowed(patient, "comment", "read", comment)

    assert can_read(patient_visible)
    assert can_read(everyone)
    assert can_read(listed)
    assert not can_read(private)


def test_physio_reads_comments_in_assigned_or_own_context():
    patient_id = uuid4()
    physio = context(Role.PHYSIOTHERAPIST, patients=[patient_id])

    assigned = comment_for(patient_id, uuid4(), Visibility.PRIVATE)
    own = comment_for(uuid4(), physio.user_id, Visibility.PRIVATE)
    foreign = comment_for(uuid4(), uuid4(), Visibility.ALL_VISIBLE)

    assert access_control_service.is_allowed(physio, "comment", "read", assigned)
    assert access_control_service.is_allowed(physio, "comment", "read", own)
    assert not access_control_service.is_allowed(physio, "comment", "read", foreign)


def test_comment_delete_is_author_or_doctor():
    physio = context(Role.PHYSIOTHERAPIST)
    doctor = context(Role.DOCTOR)
    theirs = comment_for(uuid4(), physio.user_id, Visibility.PRIVATE)
    someone_elses = comment_for(uuid4(), uuid4(), Visibility.PRIVATE)

    assert access_control_service.is_allowed(physio, "comment", "delete", theirs)
    assert not access_control_service.is_allowed(
        physio, "comment", "delete", someone_elses
    )
    assert access_control_service.is_allowed(doctor, "comment", "delete", someone_elses)


def test_decision_and_filter_share_relation_clauses(monkeypatch):
    patient = context(Role.PATIENT)
    own = RehabTask(assigned_to_id=patient.user_id, assigned_by_id=uuid4())

    monkeypatch.setitem(
        relations.RELATION_CLAUSES, Relation.OWN, lambda ctx, desc: MatchNone()
    )

    assert not access_control_service.is_allowed(patient, "rehabTask", "read", own)
    assert isinstance(query_filter_service.build_filter(patient, "rehabTask"), MatchNone)
