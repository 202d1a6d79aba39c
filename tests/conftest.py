# tests/conftest.py
"""
Shared fixtures: a fresh in-memory database per test and a small care team.

patient_a is looked after by physio_a and physio_b; patient_b by physio_b and
the doctor. physio_c has no patients.
"""
import os
from types import SimpleNamespace

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("SQLITE_MODE", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SQLITE_PATH", ":memory:")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from db.database import create_tables, enable_sqlite_foreign_keys
from models.progress import Progress
from models.rehab_task import RehabTask
from models.user import ProviderAssignment, Role, User
from services.comment_service import CommentService
from services.relationship_service import relationship_service


class RecordingDispatcher:
    def __init__(self):
        self.events = []

    async def notify(self, event):
        self.events.append(event)

    def of_kind(self, kind):
        return [event for event in self.events if event.kind == kind]


class FailingDispatcher:
    def __init__(self):
        self.attempts = 0

    async def notify(self, event):
        self.attempts += 1
        raise RuntimeError("delivery channel down")


@pytest.fixture
async def engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(test_engine)
    await create_tables(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


def make_user(role: Role, name: str, **extra) -> User:
    return User(
        first_name=name.capitalize(),
        last_name="Test",
        email=f"{name}@carethread.test",
        role=role,
        **extra,
    )


@pytest.fixture
async def care_team(db):
    team = SimpleNamespace(
        patient_a=make_user(Role.PATIENT, "alice"),
        patient_b=make_user(Role.PATIENT, "bob"),
        physio_a=make_user(Role.PHYSIOTHERAPIST, "paula"),
        physio_b=make_user(Role.PHYSIOTHERAPIST, "peter"),
        physio_c=make_user(Role.PHYSIOTHERAPIST, "petra"),
        doctor=make_user(Role.DOCTOR, "diana"),
        retired=make_user(Role.PHYSIOTHERAPIST, "rita", is_active=False),
    )
    db.add_all(
        [
            team.patient_a,
            team.patient_b,
            team.physio_a,
            team.physio_b,
            team.physio_c,
            team.doctor,
            team.retired,
        ]
    )
    await db.flush()

    for patient, provider in [
        (team.patient_a, team.physio_a),
        (team.patient_a, team.physio_b),
        (team.patient_b, team.physio_b),
        (team.patient_b, team.doctor),
    ]:
        db.add(
            ProviderAssignment(
                patient_id=patient.id,
                provider_id=provider.id,
                provider_role=provider.role,
            )
        )

    team.task_a = RehabTask(
        title="Knee extensions",
        assigned_to_id=team.patient_a.id,
        assigned_by_id=team.physio_a.id,
    )
    team.task_b = RehabTask(
        title="Shoulder rolls",
        assigned_to_id=team.patient_b.id,
        assigned_by_id=team.physio_b.id,
    )
    team.progress_a = Progress(
        patient_id=team.patient_a.id,
        rehab_task_id=None,
        recorded_by_id=team.patient_a.id,
        pain_level=3,
    )
    db.add_all([team.task_a, team.task_b, team.progress_a])
    await db.commit()

    async def ctx(user):
        return await relationship_service.load_access_context(db, user.id)

    team.ctx = ctx
    return team


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def service(dispatcher):
    return CommentService(dispatcher)
