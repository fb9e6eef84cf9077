"""Tests for the HTTP gateway."""

import pytest

from tests.conftest import auth


@pytest.mark.asyncio
async def test_health_check(client):
    """Test basic health check."""
    response = await client.get("/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_liveness_check(client):
    """Test liveness probe."""
    response = await client.get("/health/live")
    assert response.status_code == 200
    assert response.json()["status"] == "alive"


@pytest.mark.asyncio
async def test_readiness_check(client):
    """Test readiness reports storage and delivery state."""
    response = await client.get("/health/ready")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"]["storage"] is True
    assert data["delivery"]["active_subscriptions"] == 0


@pytest.mark.asyncio
async def test_root_endpoint(client):
    """Test root endpoint."""
    response = await client.get("/")
    assert response.status_code == 200

    data = response.json()
    assert data["service"] == "BuzzHub API"
    assert data["status"] == "running"


@pytest.mark.asyncio
async def test_requires_identity(client):
    """Test requests without a forwarded user are rejected."""
    response = await client.get("/users/me")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_username_flow(client):
    """Test first-sight provisioning, username claim and search."""
    response = await client.get("/users/me", headers=auth("alice"))
    assert response.status_code == 200
    assert response.json() == {"id": "alice", "username": None, "name": None, "image": None}

    response = await client.post("/users/me/username", json={"username": "ally"}, headers=auth("alice"))
    assert response.status_code == 200
    assert response.json()["username"] == "ally"

    await client.get("/users/me", headers=auth("bob"))
    response = await client.post("/users/me/username", json={"username": "ally"}, headers=auth("bob"))
    assert response.status_code == 409
    assert response.json()["error"] == "USERNAME_TAKEN"

    response = await client.post("/users/me/username", json={"username": "  "}, headers=auth("bob"))
    assert response.status_code == 422

    response = await client.get("/users", params={"search": "al"}, headers=auth("bob"))
    assert [u["id"] for u in response.json()] == ["alice"]


@pytest.mark.asyncio
async def test_send_and_list_messages(client, users):
    """Test the conversation and message endpoints end to end."""
    response = await client.post(
        "/conversations", json={"participant_ids": ["bob"]}, headers=auth("alice")
    )
    assert response.status_code == 201
    conversation = response.json()
    assert [p["user_id"] for p in conversation["participants"]] == ["alice", "bob"]

    response = await client.post(
        f"/conversations/{conversation['id']}/messages",
        json={"body": "hi"},
        headers=auth("alice"),
    )
    assert response.status_code == 201
    message = response.json()
    assert message["body"] == "hi"
    assert message["sender_id"] == "alice"

    response = await client.get(f"/conversations/{conversation['id']}/messages", headers=auth("bob"))
    assert response.status_code == 200
    assert [m["body"] for m in response.json()] == ["hi"]

    response = await client.get(
        f"/conversations/{conversation['id']}/messages",
        params={"after": message["created_at"]},
        headers=auth("bob"),
    )
    assert response.json() == []

    response = await client.get("/conversations", headers=auth("bob"))
    listed = response.json()
    assert [c["id"] for c in listed] == [conversation["id"]]
    bob = next(p for p in listed[0]["participants"] if p["user_id"] == "bob")
    assert bob["has_seen_latest_message"] is False

    response = await client.post(f"/conversations/{conversation['id']}/read", headers=auth("bob"))
    assert response.status_code == 200
    assert all(p["has_seen_latest_message"] for p in response.json()["participants"])


@pytest.mark.asyncio
async def test_outsider_is_forbidden(client, conversation):
    """Test non-participants get NotParticipant and history is unchanged."""
    response = await client.post(
        f"/conversations/{conversation.id}/messages",
        json={"body": "hack"},
        headers=auth("dave"),
    )
    assert response.status_code == 403
    assert response.json()["error"] == "NOT_PARTICIPANT"

    response = await client.get(f"/conversations/{conversation.id}/messages", headers=auth("dave"))
    assert response.status_code == 403

    response = await client.get(f"/conversations/{conversation.id}/messages", headers=auth("alice"))
    assert response.json() == []


@pytest.mark.asyncio
async def test_error_responses(client, conversation):
    """Test missing conversations and empty bodies."""
    response = await client.post(
        "/conversations/missing/messages", json={"body": "hi"}, headers=auth("alice")
    )
    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"

    response = await client.post(
        f"/conversations/{conversation.id}/messages", json={"body": ""}, headers=auth("alice")
    )
    assert response.status_code == 422
    assert response.json()["error"] == "INVALID_INPUT"
