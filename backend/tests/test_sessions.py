from __future__ import annotations

import uuid

import pytest

pytest.importorskip("fastapi")
pytest.importorskip("httpx")
pytest.importorskip("sqlalchemy")
pytest.importorskip("aiosqlite")
pytest.importorskip("firebase_admin")

from fastapi import Header
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from serenity import auth as auth_utils
from serenity import main as main_module
from serenity.db import get_gateway
from serenity.gateway import SqlAlchemyGateway
from serenity.models import Base


async def fake_current_user_id(authorization: str = Header(default="")) -> str | None:
    token = authorization.removeprefix("Bearer ").strip()
    return token or None


def auth_for(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {user_id}"}


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    gateway = SqlAlchemyGateway(
        async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    )

    async def fake_init_db() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    monkeypatch.setattr(main_module, "init_firebase", lambda: None)
    monkeypatch.setattr(main_module, "init_db", fake_init_db)
    main_module.app.dependency_overrides[get_gateway] = lambda: gateway
    main_module.app.dependency_overrides[auth_utils.get_current_user_id] = fake_current_user_id

    with TestClient(main_module.app) as test_client:
        yield test_client
    main_module.app.dependency_overrides.clear()


def open_session(client: TestClient, user_id: str = "firebase-user") -> dict:
    response = client.post("/api/sessions", headers=auth_for(user_id))
    assert response.status_code == 201
    return response.json()


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_create_session_sets_owner_and_defaults(client: TestClient) -> None:
    session = open_session(client)

    assert session["user_id"] == "firebase-user"
    assert session["status"] == "active"
    assert session["ended_at"] is None
    assert session["overall_mood"] is None


def test_unauthenticated_requests_get_401(client: TestClient) -> None:
    response = client.post("/api/sessions")

    assert response.status_code == 401
    assert client.get("/api/sessions").status_code == 401


def test_list_sessions_only_returns_own_sessions(client: TestClient) -> None:
    mine = open_session(client, "firebase-user")
    open_session(client, "someone-else")

    response = client.get("/api/sessions", headers=auth_for("firebase-user"))

    assert response.status_code == 200
    assert [item["id"] for item in response.json()] == [mine["id"]]


def test_foreign_and_missing_sessions_look_identical(client: TestClient) -> None:
    session = open_session(client, "owner")

    foreign = client.get(f"/api/sessions/{session['id']}", headers=auth_for("intruder"))
    missing = client.get(f"/api/sessions/{uuid.uuid4()}", headers=auth_for("intruder"))

    assert foreign.status_code == missing.status_code == 404
    assert foreign.json() == missing.json()


def test_end_session_once_then_conflict(client: TestClient) -> None:
    session = open_session(client)
    url = f"/api/sessions/{session['id']}/end"
    body = {"summary": "ok", "overall_mood": "anxious"}

    first = client.post(url, json=body, headers=auth_for("firebase-user"))
    second = client.post(url, json=body, headers=auth_for("firebase-user"))

    assert first.status_code == 200
    assert first.json()["status"] == "closed"
    assert first.json()["overall_mood"] == "anxious"
    assert second.status_code == 409


def test_append_message_fuses_observations(client: TestClient) -> None:
    session = open_session(client)
    url = f"/api/sessions/{session['id']}/messages"

    response = client.post(
        url,
        json={
            "role": "user",
            "content": "I guess things are fine",
            "observations": [
                {"source": "facial", "values": {"happy": 0.8}},
                {"source": "text", "values": {"happy": 0.4, "sad": 0.2}},
            ],
        },
        headers=auth_for("firebase-user"),
    )
    messages = client.get(url, headers=auth_for("firebase-user")).json()
    emotions = client.get(
        f"/api/sessions/{session['id']}/emotions", headers=auth_for("firebase-user")
    ).json()

    assert response.status_code == 201
    assert response.json()["detected_emotion"] == "happy"
    assert response.json()["emotion_confidence"] == pytest.approx(0.6)
    assert [item["content"] for item in messages] == ["I guess things are fine"]
    assert len(emotions) == 1
    assert emotions[0]["source"] == "combined"
    assert emotions[0]["values"]["sad"] == pytest.approx(0.2)


def test_empty_observation_batch_is_rejected(client: TestClient) -> None:
    session = open_session(client)

    response = client.post(
        f"/api/sessions/{session['id']}/emotions",
        json={"observations": []},
        headers=auth_for("firebase-user"),
    )

    assert response.status_code == 422


def test_turn_endpoint_returns_adapted_reply(client: TestClient) -> None:
    session = open_session(client, "U1")

    response = client.post(
        f"/api/sessions/{session['id']}/turns",
        json={
            "content": "I feel anxious",
            "observations": [{"source": "facial", "values": {"anxious": 0.7, "neutral": 0.3}}],
        },
        headers=auth_for("U1"),
    )
    mood = client.get(f"/api/sessions/{session['id']}/mood", headers=auth_for("U1"))

    assert response.status_code == 201
    payload = response.json()
    assert payload["strategy"]["name"] == "grounding"
    assert payload["observation"]["source"] == "combined"
    assert payload["user_message"]["detected_emotion"] == "anxious"
    assert payload["assistant_message"]["content"] == payload["strategy"]["message"]
    assert mood.json() == {"overall_mood": "anxious"}


def test_messages_on_closed_session_conflict(client: TestClient) -> None:
    session = open_session(client)
    client.post(
        f"/api/sessions/{session['id']}/end",
        json={"summary": "done", "overall_mood": "neutral"},
        headers=auth_for("firebase-user"),
    )

    response = client.post(
        f"/api/sessions/{session['id']}/messages",
        json={"role": "user", "content": "one more thing"},
        headers=auth_for("firebase-user"),
    )

    assert response.status_code == 409


def test_recommendations_round_trip(client: TestClient) -> None:
    created = client.post(
        "/api/recommendations",
        json={"type": "coping", "content": "Box breathing", "emotion": "anxious", "tags": ["breathing"]},
        headers=auth_for("firebase-user"),
    )
    rec_id = created.json()["id"]

    foreign_delete = client.delete(f"/api/recommendations/{rec_id}", headers=auth_for("intruder"))
    listed = client.get("/api/recommendations", headers=auth_for("firebase-user"))
    deleted = client.delete(f"/api/recommendations/{rec_id}", headers=auth_for("firebase-user"))

    assert created.status_code == 201
    assert foreign_delete.status_code == 404
    assert [item["id"] for item in listed.json()] == [rec_id]
    assert deleted.status_code == 204
    assert client.get("/api/recommendations", headers=auth_for("firebase-user")).json() == []


def test_storage_failures_surface_as_503(client: TestClient) -> None:
    class BrokenSession:
        async def __aenter__(self):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        async def __aexit__(self, *_exc) -> None:
            return None

    main_module.app.dependency_overrides[get_gateway] = lambda: SqlAlchemyGateway(lambda: BrokenSession())

    response = client.get("/api/sessions", headers=auth_for("firebase-user"))

    assert response.status_code == 503
    assert response.json() == {"detail": "Storage is temporarily unavailable"}


def test_trends_are_recorded_and_listed_per_user(client: TestClient) -> None:
    created = client.post(
        "/api/trends",
        json={"dominant_emotion": "anxious", "emotion_intensity": 0, "triggers": ["exams"]},
        headers=auth_for("firebase-user"),
    )
    mine = client.get("/api/trends", headers=auth_for("firebase-user"))
    theirs = client.get("/api/trends?days=7", headers=auth_for("someone-else"))

    assert created.status_code == 201
    assert created.json()["emotion_intensity"] == 1
    assert [item["id"] for item in mine.json()] == [created.json()["id"]]
    assert theirs.json() == []
    assert client.get("/api/trends").status_code == 401
    assert client.get("/api/trends?days=0", headers=auth_for("firebase-user")).status_code == 422
