from __future__ import annotations

from conftest import make_agent, make_meeting


def test_create_and_list_meetings(client, api_headers):
    agent = make_agent()
    r1 = client.post("/v1/meetings", json={"name": "Team Sync", "agent_id": agent.id}, headers=api_headers)
    r2 = client.post(
        "/v1/meetings", json={"name": "Design Review", "agent_id": agent.id}, headers=api_headers
    )
    assert r1.status_code == 201 and r2.status_code == 201
    assert r1.headers["Location"] == f"/v1/meetings/{r1.json()['id']}"
    assert r1.json()["status"] == "upcoming"

    r = client.get("/v1/meetings", headers=api_headers, params={"search": "design"})
    assert r.status_code == 200
    items = r.json()["items"]
    assert [it["name"] for it in items] == ["Design Review"]
    assert r.headers["X-Total-Count"] == "1"


def test_create_meeting_requires_existing_agent(client, api_headers):
    r = client.post("/v1/meetings", json={"name": "Orphan", "agent_id": "nope"}, headers=api_headers)
    assert r.status_code == 404
    assert r.json()["error"] == "NotFoundError"


def test_meetings_require_api_key(client):
    r = client.get("/v1/meetings")
    assert r.status_code == 401

    r = client.get("/v1/meetings", headers={"X-API-Key": "wrong"})
    assert r.status_code == 401


def test_filter_by_status_and_agent(client, api_headers):
    a1 = make_agent(name="One")
    a2 = make_agent(name="Two")
    done = make_meeting(a1.id, status="completed")
    make_meeting(a1.id)
    make_meeting(a2.id, status="completed")

    r = client.get(
        "/v1/meetings",
        headers=api_headers,
        params={"status": "completed", "agent_id": a1.id, "limit": 10, "offset": 0},
    )
    assert r.status_code == 200
    data = r.json()
    assert data["total"] == 1
    assert data["items"][0]["id"] == done.id


def test_invalid_status_filter_is_422(client, api_headers):
    r = client.get("/v1/meetings", headers=api_headers, params={"status": "archived"})
    assert r.status_code == 422
    assert r.json()["error"] == "ValidationError"


def test_pagination(client, api_headers):
    agent = make_agent()
    for _ in range(3):
        make_meeting(agent.id)

    r = client.get("/v1/meetings", headers=api_headers, params={"limit": 2, "offset": 0})
    assert len(r.json()["items"]) == 2
    assert r.json()["total"] == 3

    r = client.get("/v1/meetings", headers=api_headers, params={"limit": 2, "offset": 2})
    assert len(r.json()["items"]) == 1


def test_meeting_crud_minimal(client, api_headers):
    agent = make_agent()
    other = make_agent(name="Other")
    r = client.post("/v1/meetings", json={"name": "Retro", "agent_id": agent.id}, headers=api_headers)
    mid = r.json()["id"]

    r = client.get(f"/v1/meetings/{mid}", headers=api_headers)
    assert r.status_code == 200
    assert r.json()["name"] == "Retro"

    r = client.patch(
        f"/v1/meetings/{mid}", json={"name": "Sprint Retro", "agent_id": other.id}, headers=api_headers
    )
    assert r.status_code == 200
    assert r.json()["name"] == "Sprint Retro"
    assert r.json()["agent_id"] == other.id

    r = client.patch(f"/v1/meetings/{mid}", json={"agent_id": "missing"}, headers=api_headers)
    assert r.status_code == 404

    r = client.delete(f"/v1/meetings/{mid}", headers=api_headers)
    assert r.status_code == 204
    assert client.get(f"/v1/meetings/{mid}", headers=api_headers).status_code == 404


def test_cancel_only_from_upcoming(client, api_headers):
    agent = make_agent()
    upcoming = make_meeting(agent.id)
    active = make_meeting(agent.id, status="active")

    r = client.post(f"/v1/meetings/{upcoming.id}/cancel", headers=api_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"

    r = client.post(f"/v1/meetings/{active.id}/cancel", headers=api_headers)
    assert r.status_code == 409
    assert r.json()["error"] == "ConflictError"

    assert client.post("/v1/meetings/ghost/cancel", headers=api_headers).status_code == 404
