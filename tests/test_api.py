import sqlite3

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from errors import StorageError
from main import app, get_db


@pytest_asyncio.fixture
async def client(db):
    app.dependency_overrides[get_db] = lambda: db
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_alice_and_bob_scenario(client):
    resp = await client.post("/api/users", json={"userId": "alice", "interests": "music, hiking, reading"})
    assert resp.status_code == 200
    assert resp.json() == {"success": True}
    await client.post("/api/users", json={"userId": "bob", "interests": "music, hiking"})

    resp = await client.get("/api/match/alice")
    assert resp.status_code == 200
    body = resp.json()
    assert body["matchedUser"] == "bob"
    assert 0 < body["score"] < 1

    resp = await client.get("/api/matches/bob")
    assert resp.json() == {"matches": ["alice"]}


@pytest.mark.asyncio
async def test_lone_user_gets_no_matches_message(client):
    await client.post("/api/users", json={"userId": "alice", "interests": "music"})
    resp = await client.get("/api/match/alice")
    assert resp.status_code == 200
    assert resp.json() == {"message": "No matches found"}


@pytest.mark.asyncio
async def test_unknown_user_is_404(client):
    resp = await client.get("/api/match/ghost")
    assert resp.status_code == 404
    assert "message" in resp.json()

    resp = await client.get("/api/matches/ghost")
    assert resp.status_code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"userId": "", "interests": "music"},
        {"userId": "alice", "interests": " , ,"},
        {"userId": "alice"},
        {"interests": "music"},
        {"userId": "alice", "interests": 42},
    ],
)
async def test_bad_submissions_are_400_with_message(client, body):
    resp = await client.post("/api/users", json=body)
    assert resp.status_code == 400
    assert resp.json()["message"]


@pytest.mark.asyncio
async def test_storage_failure_is_500_with_message(client, db, monkeypatch):
    async def _broken(user_id, interests):
        raise StorageError("upsert_interests failed: disk I/O error")

    monkeypatch.setattr(db, "upsert_interests", _broken)
    resp = await client.post("/api/users", json={"userId": "alice", "interests": "music"})
    assert resp.status_code == 500
    assert "disk I/O error" in resp.json()["message"]


@pytest.mark.asyncio
async def test_candidates_are_ranked(client):
    await client.post("/api/users", json={"userId": "alice", "interests": "music, hiking, reading"})
    await client.post("/api/users", json={"userId": "bob", "interests": "music, hiking"})
    await client.post("/api/users", json={"userId": "carol", "interests": "music"})

    resp = await client.get("/api/match/alice/candidates", params={"limit": 1})
    assert resp.status_code == 200
    candidates = resp.json()["candidates"]
    assert [c["userId"] for c in candidates] == ["bob"]

    resp = await client.get("/api/match/alice/candidates", params={"limit": 0})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_surrogate_user_id_is_400_with_message(client):
    resp = await client.post(
        "/api/users",
        content=b'{"userId": "\\ud800", "interests": "music"}',
        headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 400
    assert resp.json()["message"]


@pytest.mark.asyncio
async def test_lookups_trim_user_id_like_submissions(client):
    await client.post("/api/users", json={"userId": "alice ", "interests": "music"})
    await client.post("/api/users", json={"userId": " bob", "interests": "music"})

    resp = await client.get("/api/match/alice%20")
    assert resp.status_code == 200
    assert resp.json()["matchedUser"] == "bob"

    resp = await client.get("/api/matches/%20bob")
    assert resp.json() == {"matches": ["alice"]}

    resp = await client.get("/api/match/%20alice/candidates")
    assert [c["userId"] for c in resp.json()["candidates"]] == ["bob"]


@pytest.mark.asyncio
async def test_failed_match_insert_is_500_with_message(client, db, monkeypatch):
    await client.post("/api/users", json={"userId": "alice", "interests": "music"})
    await client.post("/api/users", json={"userId": "bob", "interests": "music"})

    def _broken(user1, user2):
        raise sqlite3.OperationalError("database disk image is malformed")

    monkeypatch.setattr(db, "_insert_match", _broken)
    resp = await client.get("/api/match/alice")
    assert resp.status_code == 500
    assert "malformed" in resp.json()["message"]
