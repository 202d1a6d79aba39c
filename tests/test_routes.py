# tests/test_routes.py
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from db.database import get_db
from main import app
from services.comment_service import comment_service
from utils.security import create_access_token


@pytest.fixture
async def client(session_factory, monkeypatch):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    monkeypatch.setattr(
        comment_service.dispatcher, "session_factory", session_factory
    )
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as http:
        yield http
    app.dependency_overrides.clear()


def auth(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] in {"healthy", "degraded"}


async def test_requests_without_a_token_are_rejected(client, care_team):
    assert (await client.get("/rehab-tasks")).status_code == 401
    response = await client.get(
        "/rehab-tasks", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401


async def test_task_read_distinguishes_denied_from_missing(client, care_team):
    headers = auth(care_team.patient_b)

    denied = await client.get(f"/rehab-tasks/{care_team.task_a.id}", headers=headers)
    missing = await client.get(f"/rehab-tasks/{uuid4()}", headers=headers)
    own = await client.get(f"/rehab-tasks/{care_team.task_b.id}", headers=headers)

    assert denied.status_code == 403
    assert missing.status_code == 404
    assert own.status_code == 200
    assert own.json()["title"] == "Shoulder rolls"


async def test_listing_only_returns_readable_tasks(client, care_team):
    response = await client.get("/rehab-tasks", headers=auth(care_team.patient_a))

    assert response.status_code == 200
    assert [task["id"] for task in response.json()] == [str(care_team.task_a.id)]


async def test_comment_thread_over_http(client, care_team):
    created = await client.post(
        "/comments/",
        json={
            "target_type": "rehabTask",
            "target_id": str(care_team.task_a.id),
            "related_patient_id": str(care_team.patient_a.id),
            "content": "Knee feels stiff in the morning",
            "comment_type": "question",
        },
        headers=auth(care_team.patient_a),
    )
    assert created.status_code == 201
    comment_id = created.json()["comment"]["id"]

    reply = await client.post(
        f"/comments/{comment_id}/replies",
        json={"content": "Try a warm-up first"},
        headers=auth(care_team.physio_a),
    )
    assert reply.status_code == 201

    threads = await client.get(
        f"/comments/rehabTask/{care_team.task_a.id}/threads",
        headers=auth(care_team.patient_a),
    )
    assert threads.status_code == 200
    body = threads.json()
    assert [thread["id"] for thread in body["threads"]] == [comment_id]
    assert body["threads"][0]["thread_summary"]["reply_count"] == 1

    outsider = await client.get(
        f"/comments/{comment_id}", headers=auth(care_team.patient_b)
    )
    assert outsider.status_code == 403

    inbox = await client.get("/notifications", headers=auth(care_team.patient_a))
    assert inbox.status_code == 200
    assert [n["message"] for n in inbox.json()] == [
        "Paula Test replied to your comment"
    ]


async def test_invalid_body_is_unprocessable(client, care_team):
    response = await client.post(
        "/comments/",
        json={"target_type": "invoice", "content": "hi"},
        headers=auth(care_team.patient_a),
    )
    assert response.status_code == 422


async def test_only_doctors_manage_assignments(client, care_team):
    payload = {
        "patient_id": str(care_team.patient_a.id),
        "provider_id": str(care_team.physio_c.id),
    }

    refused = await client.post(
        "/assignments", json=payload, headers=auth(care_team.physio_a)
    )
    created = await client.post(
        "/assignments", json=payload, headers=auth(care_team.doctor)
    )
    removed = await client.delete(
        f"/assignments/{care_team.patient_a.id}/{care_team.physio_c.id}",
        headers=auth(care_team.doctor),
    )

    assert refused.status_code == 403
    assert created.status_code == 201
    assert created.json()["created"] is True
    assert removed.status_code == 204


async def test_inactive_users_are_locked_out(client, care_team):
    response = await client.post(
        "/assignments",
        json={
            "patient_id": str(care_team.patient_a.id),
            "provider_id": str(care_team.physio_c.id),
        },
        headers=auth(care_team.retired),
    )
    assert response.status_code == 403


async def test_error_bodies_name_the_failure(client, care_team):
    headers = auth(care_team.patient_b)

    denied = await client.get(f"/rehab-tasks/{care_team.task_a.id}", headers=headers)
    missing = await client.get(f"/rehab-tasks/{uuid4()}", headers=headers)

    assert denied.json()["type"] == "AccessDeniedException"
    assert denied.json()["status"] == 403
    assert missing.json()["type"] == "NotFoundException"
    assert missing.json()["status"] == 404
    assert missing.json()["message"]


async def test_comments_by_user_over_http(client, care_team):
    for content, comment_type in [
        ("Check the swelling", "note"),
        ("Any pain on stairs?", "question"),
    ]:
        created = await client.post(
            "/comments/",
            json={
                "target_type": "rehabTask",
                "target_id": str(care_team.task_a.id),
                "related_patient_id": str(care_team.patient_a.id),
                "content": content,
                "comment_type": comment_type,
            },
            headers=auth(care_team.physio_b),
        )
        assert created.status_code == 201

    listing = await client.get(
        f"/comments/users/{care_team.physio_b.id}/comments",
        params={"comment_type": "question"},
        headers=auth(care_team.physio_a),
    )
    assert listing.status_code == 200
    body = listing.json()
    assert [c["content"] for c in body["comments"]] == ["Any pain on stairs?"]
    assert body["pagination"]["total"] == 1
    assert body["user_statistics"]["total_comments"] == 2

    refused = await client.get(
        f"/comments/users/{care_team.physio_b.id}/comments",
        headers=auth(care_team.patient_a),
    )
    assert refused.status_code == 403
    assert refused.json()["type"] == "AccessDeniedException"
