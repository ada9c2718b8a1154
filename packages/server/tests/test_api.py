"""
HTTP-level tests: routing, authentication, error mapping and the
one-transaction-per-request guarantee.
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock

import pytest
from sqlmodel import select

from app.core.events import REDIS_PUBSUB_CHANNEL
from app.models.project_stage import ProjectStage


@pytest.fixture
def owner_headers(headers_for, manager):
    return headers_for(manager)


async def _create_project(client, headers, **body):
    body.setdefault("name", "Harbour Works")
    response = await client.post("/api/v1/projects/", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def _create_stage(client, headers, name):
    response = await client.post("/api/v1/stages/", json={"name": name}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def _attach(client, headers, project_id, stage_id, **body):
    body.setdefault("start_date", "2024-01-01")
    response = await client.post(
        f"/api/v1/projects/{project_id}/stages/",
        json={"stage_id": stage_id, **body},
        headers=headers,
    )
    return response


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


async def test_requires_authentication(client):
    response = await client.get("/api/v1/projects/")
    assert response.status_code == 401


async def test_rejects_bad_token(client):
    response = await client.get("/api/v1/projects/", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


async def test_session_cookie_accepted(client, manager, headers_for):
    token = headers_for(manager)["Authorization"].split(" ", 1)[1]
    client.cookies.set("st_session", token)
    response = await client.get("/api/v1/projects/")
    assert response.status_code == 200


# ---------------------------------------------------------------------------
# Project flow
# ---------------------------------------------------------------------------


async def test_stage_lifecycle_over_http(client, owner_headers, fake_redis):
    project = await _create_project(client, owner_headers, created_on="2024-01-01")
    assert project["status"] == "Pending"

    stage = await _create_stage(client, owner_headers, "Foundation")
    attached = await _attach(client, owner_headers, project["id"], stage["id"])
    assert attached.status_code == 201, attached.text
    ps = attached.json()
    assert ps["order"] == 1
    assert ps["stage"]["name"] == "Foundation"

    response = await client.get(f"/api/v1/projects/{project['id']}", headers=owner_headers)
    assert response.json()["status"] == "Ongoing"
    assert response.json()["stage_ids"] == [ps["id"]]

    response = await client.patch(
        f"/api/v1/projects/{project['id']}/stages/{ps['id']}",
        json={"status": "Completed", "completion_date": "2024-02-01"},
        headers=owner_headers,
    )
    assert response.status_code == 200, response.text
    assert response.json()["completion_date"] == "2024-02-01"

    response = await client.get(f"/api/v1/projects/{project['id']}", headers=owner_headers)
    assert response.json()["status"] == "Completed"
    assert response.json()["stage_complete_count"] == 1

    events = await client.get(f"/api/v1/projects/{project['id']}/events", headers=owner_headers)
    types = [e["type"] for e in events.json()]
    assert "project_stage.attached" in types
    assert "project_stage.updated" in types

    assert fake_redis.publish.await_count >= 3
    assert fake_redis.publish.await_args.args[0] == REDIS_PUBSUB_CHANNEL


async def test_connections_over_http(client, owner_headers):
    project = await _create_project(client, owner_headers)
    a = (await _attach(client, owner_headers, project["id"], (await _create_stage(client, owner_headers, "Framing"))["id"])).json()
    b = (await _attach(client, owner_headers, project["id"], (await _create_stage(client, owner_headers, "Roofing"))["id"])).json()
    url = f"/api/v1/projects/{project['id']}/connections/"

    response = await client.post(url, json={"from_stage_id": a["id"], "to_stage_id": a["id"]}, headers=owner_headers)
    assert response.status_code == 422
    assert response.json()["code"] == "validation_failure"

    response = await client.post(url, json={"from_stage_id": a["id"], "to_stage_id": b["id"]}, headers=owner_headers)
    assert response.status_code == 201
    connection = response.json()
    assert connection["from_stage"]["stage"]["name"] == "Framing"

    response = await client.post(url, json={"from_stage_id": a["id"], "to_stage_id": b["id"]}, headers=owner_headers)
    assert response.status_code == 409
    assert response.json()["code"] == "conflict"

    response = await client.delete(f"{url}{connection['id']}", headers=owner_headers)
    assert response.status_code == 200
    assert (await client.get(url, headers=owner_headers)).json() == []


async def test_completion_lock_over_http(client, owner_headers):
    project = await _create_project(client, owner_headers)
    stage = await _create_stage(client, owner_headers, "Foundation")

    response = await client.post(f"/api/v1/projects/{project['id']}/complete", headers=owner_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "Completed"
    assert response.json()["locked"] is True

    response = await _attach(client, owner_headers, project["id"], stage["id"])
    assert response.status_code == 403
    assert response.json()["code"] == "permission_denied"


async def test_years_and_filters(client, owner_headers):
    await _create_project(client, owner_headers, name="Alpha Works", created_on="2023-04-01")
    await _create_project(client, owner_headers, name="Beta Works", created_on="2024-08-09T23:15:00-05:00")

    years = await client.get("/api/v1/projects/years", headers=owner_headers)
    assert years.json() == [2024, 2023]

    response = await client.get("/api/v1/projects/", params={"year": 2024, "month": 8}, headers=owner_headers)
    assert [p["name"] for p in response.json()] == ["Beta Works"]
    assert response.json()[0]["created_on"] == "2024-08-09"


async def test_sharing_over_http(client, owner_headers, headers_for, other_manager):
    project = await _create_project(client, owner_headers)
    peer_headers = headers_for(other_manager)

    response = await client.get(f"/api/v1/projects/{project['id']}", headers=peer_headers)
    assert response.status_code == 403

    response = await client.post(
        f"/api/v1/projects/{project['id']}/shares", json={"email": other_manager.email}, headers=owner_headers
    )
    assert response.status_code == 201

    response = await client.get(f"/api/v1/projects/{project['id']}", headers=peer_headers)
    assert response.status_code == 200
    assert response.json()["shared_with"] == [str(other_manager.id)]


async def test_padded_short_project_names_rejected(client, owner_headers):
    """Names are trimmed before the length check, so whitespace cannot pad them past it."""
    response = await client.post("/api/v1/projects/", json={"name": "  ab  "}, headers=owner_headers)
    assert response.status_code == 422

    project = await _create_project(client, owner_headers, name="  Harbour Works  ")
    assert project["name"] == "Harbour Works"

    response = await client.patch(
        f"/api/v1/projects/{project['id']}", json={"name": "   x   "}, headers=owner_headers
    )
    assert response.status_code == 422

    response = await client.get("/api/v1/projects/", headers=owner_headers)
    assert response.status_code == 200
    assert [p["name"] for p in response.json()] == ["Harbour Works"]


async def test_custom_stage_hidden_from_non_viewers(client, owner_headers, headers_for, other_manager):
    project = await _create_project(client, owner_headers)
    response = await client.post(
        "/api/v1/stages/",
        json={"name": "Site Survey", "is_custom": True, "project_id": project["id"]},
        headers=owner_headers,
    )
    assert response.status_code == 201
    stage_id = response.json()["id"]

    assert (await client.get(f"/api/v1/stages/{stage_id}", headers=owner_headers)).status_code == 200

    response = await client.get(f"/api/v1/stages/{stage_id}", headers=headers_for(other_manager))
    assert response.status_code == 403
    assert response.json()["code"] == "permission_denied"


async def test_unknown_project_is_404(client, owner_headers):
    response = await client.get(f"/api/v1/projects/{uuid.uuid4()}", headers=owner_headers)
    assert response.status_code == 404
    assert response.json() == {"detail": "Project not found", "code": "not_found"}


async def test_delete_project_over_http(client, owner_headers):
    project = await _create_project(client, owner_headers)
    response = await client.delete(f"/api/v1/projects/{project['id']}", headers=owner_headers)
    assert response.json() == {"ok": True}
    response = await client.get(f"/api/v1/projects/{project['id']}", headers=owner_headers)
    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


async def test_failed_status_derivation_rolls_back_attach(
    client, owner_headers, session_factory, monkeypatch
):
    project = await _create_project(client, owner_headers)
    stage = await _create_stage(client, owner_headers, "Foundation")

    monkeypatch.setattr(
        "app.services.project_stages.refresh_project_status",
        AsyncMock(side_effect=RuntimeError("derivation failed")),
    )
    with pytest.raises(RuntimeError):
        await _attach(client, owner_headers, project["id"], stage["id"])

    async with session_factory() as s:
        result = await s.execute(select(ProjectStage))
        assert result.scalars().all() == []
