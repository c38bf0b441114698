from __future__ import annotations

import uuid

import pytest

pytest.importorskip("sqlalchemy")
pytest.importorskip("aiosqlite")

from serenity.adaptation import ResponseSelector
from serenity.conversation import ConversationLog
from serenity.errors import AuthError, InvalidStateError, NotFoundError
from serenity.lifecycle import SessionManager
from serenity.schemas import MessageRole


@pytest.mark.asyncio
async def test_open_creates_active_session(gateway) -> None:
    session = await SessionManager(gateway).open("user-1")

    assert session.user_id == "user-1"
    assert session.status == "active"
    assert session.ended_at is None
    assert session.summary is None
    assert session.overall_mood is None
    assert session.title.startswith("Session on ")


@pytest.mark.asyncio
async def test_open_requires_an_identity(gateway) -> None:
    with pytest.raises(AuthError):
        await SessionManager(gateway).open(None)


@pytest.mark.asyncio
async def test_close_sets_end_state_once(gateway) -> None:
    manager = SessionManager(gateway)
    session = await manager.open("user-1")

    closed = await manager.close(session.id, "user-1", "Talked it through", "sad")

    assert closed.status == "closed"
    assert closed.ended_at is not None
    assert closed.ended_at >= closed.started_at
    assert closed.summary == "Talked it through"
    assert closed.overall_mood == "sad"

    with pytest.raises(InvalidStateError):
        await manager.close(session.id, "user-1", "again", "happy")
    reread = await manager.get(session.id, "user-1")
    assert reread.summary == "Talked it through"


@pytest.mark.asyncio
async def test_close_hides_sessions_of_other_users(gateway) -> None:
    manager = SessionManager(gateway)
    session = await manager.open("user-1")

    with pytest.raises(NotFoundError):
        await manager.close(session.id, "user-2", "summary", "happy")
    with pytest.raises(NotFoundError):
        await manager.close(uuid.uuid4(), "user-1", "summary", "happy")


@pytest.mark.asyncio
async def test_close_that_loses_a_race_is_rejected(gateway, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = SessionManager(gateway)
    session = await manager.open("user-1")
    original_update = gateway.update_by_id

    async def racing_update(collection, record_id, owner_id, patch, **kwargs):
        # Another request closes the session between the check and the write.
        await original_update(
            collection,
            record_id,
            owner_id,
            {"ended_at": gateway.now(), "summary": "winner", "overall_mood": "happy"},
            **kwargs,
        )
        return await original_update(collection, record_id, owner_id, patch, **kwargs)

    monkeypatch.setattr(gateway, "update_by_id", racing_update)

    with pytest.raises(InvalidStateError):
        await manager.close(session.id, "user-1", "loser", "sad")

    stored = await manager.get(session.id, "user-1")
    assert stored.summary == "winner"


@pytest.mark.asyncio
async def test_list_sessions_is_owner_scoped_and_newest_first(gateway) -> None:
    manager = SessionManager(gateway)
    first = await manager.open("user-1")
    await manager.open("user-2")
    second = await manager.open("user-1")

    sessions = await manager.list_sessions("user-1")

    assert [item.id for item in sessions] == [second.id, first.id]
    with pytest.raises(AuthError):
        await manager.list_sessions(None)


@pytest.mark.asyncio
async def test_anxious_session_end_to_end(gateway, anxious_observation) -> None:
    manager = SessionManager(gateway)
    log = ConversationLog(gateway, manager)
    session = await manager.open("U1")

    message = await log.append(session.id, "U1", MessageRole.USER, "I feel anxious", anxious_observation)
    strategy = ResponseSelector().select(message.detected_emotion)
    await manager.close(session.id, "U1", "ok", "anxious")

    assert message.detected_emotion == "anxious"
    assert message.emotion_confidence == pytest.approx(0.7)
    assert strategy.name == "grounding"
    listed = await manager.list_sessions("U1")
    assert [(item.id, item.overall_mood) for item in listed] == [(session.id, "anxious")]
