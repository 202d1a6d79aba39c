# tests/test_query_filters.py
import random
from datetime import timedelta

import pytest

from models.comment import (
    Comment,
    CommentPriority,
    CommentTargetType,
    CommentType,
    CommentVisibility,
    Visibility,
)
from models.notification import Notification, NotificationType
from models.progress import Progress
from models.rehab_task import RehabTask
from models.user import Role, User
from schemas.access_schemas import Decision
from services.access_control_service import access_control_service
from services.document_store import DocumentStore
from services.filters import (
    AllOf,
    AnyOf,
    FieldEquals,
    FieldIn,
    FieldRange,
    MatchAll,
    MatchNone,
    Not,
    TextContains,
    all_of,
    any_of,
)
from services.permissions import Action, ResourceKind, descriptor_for
from services.query_filter_service import query_filter_service
from utils.time_utils import utc_now

SEED = 20240611


async def seed_corpus(db, team, rng):
    users = [
        team.patient_a,
        team.patient_b,
        team.physio_a,
        team.physio_b,
        team.physio_c,
        team.doctor,
    ]
    patients = [team.patient_a, team.patient_b]
    providers = [team.physio_a, team.physio_b, team.physio_c, team.doctor]

    for i in range(12):
        db.add(
            RehabTask(
                title=f"Task {i}",
                assigned_to_id=rng.choice(patients).id,
                assigned_by_id=rng.choice(providers).id,
            )
        )
        db.add(
            Progress(
                patient_id=rng.choice(patients).id,
                recorded_by_id=rng.choice(users).id,
                pain_level=rng.randint(0, 10),
            )
        )
        db.add(
            Notification(
                recipient_id=rng.choice(users).id,
                sender_id=rng.choice(users).id,
                type=NotificationType.SYSTEM,
                title="Reminder",
                message=f"Message {i}",
            )
        )

    for i in range(40):
        author = rng.choice(users)
        recipients = rng.sample(users, rng.randint(0, 3))
        db.add(
            Comment(
                target_type=CommentTargetType.GENERAL,
                related_patient_id=rng.choice(patients).id,
                author_id=author.id,
                author_role=author.role,
                content=f"Comment {i}",
                comment_type=rng.choice(list(CommentType)),
                priority=rng.choice(list(CommentPriority)),
                visibility=rng.choice(list(Visibility)),
                visible_to=[
                    CommentVisibility(user_id=user.id, role=user.role)
                    for user in recipients
                ],
            )
        )
    await db.commit()
    return users + [team.retired]


async def test_filter_agrees_with_decision_for_every_user_kind_and_action(
    db, care_team
):
    rng = random.Random(SEED)
    users = await seed_corpus(db, care_team, rng)
    store = DocumentStore(db)

    for kind in ResourceKind:
        model = descriptor_for(kind).model
        corpus = await store.find(model)
        assert corpus

        for user in users:
            ctx = await care_team.ctx(user)
            for action in Action:
                predicate = query_filter_service.build_filter(ctx, kind, action)
                decided = {
                    doc.id
                    for doc in corpus
                    if access_control_service.decide(ctx, kind, action, doc)
                    is Decision.ALLOW
                }
                in_memory = {doc.id for doc in corpus if predicate.matches(doc)}
                queried = {doc.id for doc in await store.find(model, predicate)}

                label = f"{kind.value}/{Role(user.role).value}/{action.value}"
                assert in_memory == decided, label
                assert queried == decided, label


async def test_patient_comment_filter_in_database(db, care_team):
    rng = random.Random(SEED)
    await seed_corpus(db, care_team, rng)
    ctx = await care_team.ctx(care_team.patient_a)

    comments = await DocumentStore(db).find(
        Comment, query_filter_service.build_filter(ctx, ResourceKind.COMMENT)
    )

    for comment in comments:
        assert (
            care_team.patient_a.id in comment.visible_user_ids
            or Visibility(comment.visibility) is Visibility.ALL_VISIBLE
            or (
                Visibility(comment.visibility) is Visibility.PATIENT_VISIBLE
                and comment.related_patient_id == care_team.patient_a.id
            )
        )


async def test_build_clause_compiles_for_the_kind_model(db, care_team):
    ctx = await care_team.ctx(care_team.patient_a)
    clause = query_filter_service.build_clause(ctx, "rehabTask")
    rows = (
        await db.execute(RehabTask.__table__.select().where(clause))
    ).all()

    assert [row.id for row in rows] == [care_team.task_a.id]


async def test_inactive_users_see_nothing(db, care_team):
    ctx = await care_team.ctx(care_team.retired)
    users = await DocumentStore(db).find(
        User, query_filter_service.build_filter(ctx, ResourceKind.USER)
    )
    assert users == []


# Predicate tree


class Doc:
    def __init__(self, **fields):
        self.__dict__.update(fields)


def test_all_of_simplifies():
    clause = FieldEquals("a", 1)

    assert all_of() == MatchAll()
    assert all_of(MatchAll(), clause, None) == clause
    assert all_of(clause, MatchNone()) == MatchNone()
    assert all_of(all_of(clause, FieldEquals("b", 2)), FieldEquals("c", 3)) == AllOf(
        (clause, FieldEquals("b", 2), FieldEquals("c", 3))
    )


def test_any_of_simplifies():
    clause = FieldEquals("a", 1)

    assert any_of() == MatchNone()
    assert any_of(MatchNone(), clause) == clause
    assert any_of(clause, MatchAll()) == MatchAll()
    assert isinstance(any_of(clause, FieldEquals("b", 2)), AnyOf)


def test_operators_build_trees():
    a, b = FieldEquals("a", 1), FieldEquals("b", 2)

    assert (a & b) == AllOf((a, b))
    assert (a | b) == AnyOf((a, b))
    assert ~a == Not(a)


def test_enum_members_match_plain_values():
    doc = Doc(role="patient", visibility=Visibility.PRIVATE)

    assert FieldEquals("role", Role.PATIENT).matches(doc)
    assert FieldIn("visibility", {"private", "team_visible"}).matches(doc)
    assert not FieldIn("role", set()).matches(doc)


def test_field_equals_none_means_missing():
    assert FieldEquals("target_id", None).matches(Doc(target_id=None))
    assert not FieldEquals("target_id", None).matches(Doc(target_id=1))


def test_field_range_is_half_open():
    now = utc_now()
    window = FieldRange("at", gte=now - timedelta(hours=1), lt=now)

    assert window.matches(Doc(at=now - timedelta(hours=1)))
    assert not window.matches(Doc(at=now))
    assert not window.matches(Doc(at=None))


def test_text_contains_ignores_case():
    assert TextContains("content", "KNEE").matches(Doc(content="my knee hurts"))
    assert not TextContains("content", "knee").matches(Doc(content=None))


def test_unknown_field_fails_loudly():
    with pytest.raises(AttributeError):
        FieldEquals("no_such_field", 1).to_clause(Comment)
