"""Append-only conversation log and emotion timeline for a session."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Sequence

from .emotions import EmotionObservation
from .gateway import EMOTION_SAMPLES, MESSAGES, PersistenceGateway
from .lifecycle import SessionManager
from .schemas import EmotionSampleOut, MessageOut, MessageRole


logger = logging.getLogger("serenity.conversation")

# (role, content, observation) for one message.
Turn = tuple[MessageRole | str, str, EmotionObservation | None]


class ConversationLog:
    """Write-once record of turns and fused observations.

    There is no update or delete here.  Messages and samples
    read back in the order of the timestamps the gateway assigned.
    """

    def __init__(self, gateway: PersistenceGateway, sessions: SessionManager | None = None) -> None:
        self._gateway = gateway
        self._sessions = sessions or SessionManager(gateway)

    async def append(
        self,
        session_id: Any,
        actor_id: str | None,
        role: MessageRole | str,
        content: str,
        observation: EmotionObservation | None = None,
    ) -> MessageOut:
        """Append one turn to an active session owned by `actor_id`.

        When `observation` is given the user turn is tagged with its
        primary emotion, and the observation is also written to the
        session's emotion timeline under the same timestamp.
        """
        (message,) = await self.append_many(session_id, actor_id, [(role, content, observation)])
        return message

    async def append_many(
        self,
        session_id: Any,
        actor_id: str | None,
        turns: Sequence[Turn],
    ) -> list[MessageOut]:
        """Append consecutive turns, and their samples, in one transaction."""
        parsed = [(MessageRole(role), content, observation) for role, content, observation in turns]
        for role, _content, observation in parsed:
            if observation is not None and role is not MessageRole.USER:
                raise ValueError("Only user turns can carry an emotion observation")
        session = await self._sessions.require_active(session_id, actor_id)

        items: list[tuple[str, dict[str, Any]]] = []
        for role, content, observation in parsed:
            created_at = self._gateway.now()
            items.append((MESSAGES, {
                "session_id": session.id,
                "user_id": actor_id,
                "role": role.value,
                "content": content,
                "detected_emotion": observation.primary_emotion.value if observation else None,
                "emotion_confidence": observation.confidence if observation else None,
                "created_at": created_at,
            }))
            if observation is not None:
                items.append((EMOTION_SAMPLES, _sample_record(session.id, actor_id, observation, created_at)))

        record_ids = await self._gateway.insert_many(items)
        for collection, record in items:
            if collection == EMOTION_SAMPLES:
                _log_sample(record)
        return [
            MessageOut.model_validate({**record, "id": record_id})
            for (collection, record), record_id in zip(items, record_ids)
            if collection == MESSAGES
        ]

    async def record_observation(
        self,
        session_id: Any,
        actor_id: str | None,
        observation: EmotionObservation,
    ) -> EmotionSampleOut:
        """Add a timeline entry that is not tied to a message."""
        session = await self._sessions.require_active(session_id, actor_id)
        record = _sample_record(session.id, actor_id, observation, self._gateway.now())
        sample_id = await self._gateway.insert(EMOTION_SAMPLES, record)
        _log_sample(record)
        return EmotionSampleOut.model_validate({**record, "id": sample_id})

    async def read(self, session_id: Any, actor_id: str | None) -> list[MessageOut]:
        session = await self._sessions.get(session_id, actor_id)
        records = await self._gateway.query_by_owner(
            MESSAGES,
            actor_id,
            order_by="created_at",
            direction="asc",
            filters={"session_id": session.id},
        )
        return [MessageOut.model_validate(record) for record in records]

    async def timeline(self, session_id: Any, actor_id: str | None) -> list[EmotionSampleOut]:
        session = await self._sessions.get(session_id, actor_id)
        records = await self._gateway.query_by_owner(
            EMOTION_SAMPLES,
            actor_id,
            order_by="timestamp",
            direction="asc",
            filters={"session_id": session.id},
        )
        return [EmotionSampleOut.model_validate(record) for record in records]


def _sample_record(
    session_id: Any,
    actor_id: str | None,
    observation: EmotionObservation,
    timestamp: datetime,
) -> dict[str, Any]:
    return {
        "session_id": session_id,
        "user_id": actor_id,
        "timestamp": timestamp,
        "primary_emotion": observation.primary_emotion.value,
        "confidence": observation.confidence,
        "values": observation.scores(),
        "source": observation.source.value,
    }


def _log_sample(record: dict[str, Any]) -> None:
    logger.debug(
        "Recorded %s sample for session %s: %s (%.2f)",
        record["source"],
        record["session_id"],
        record["primary_emotion"],
        record["confidence"],
    )
