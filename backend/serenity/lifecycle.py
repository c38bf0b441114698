"""Therapy session state machine: active -> closed, exactly once."""

from __future__ import annotations

import logging
from typing import Any

from .errors import AuthError, InvalidStateError, NotFoundError
from .gateway import SESSIONS, PersistenceGateway
from .schemas import SessionOut


logger = logging.getLogger("serenity.lifecycle")


class SessionManager:
    """Opens, closes and lists sessions for an explicitly passed actor."""

    def __init__(self, gateway: PersistenceGateway) -> None:
        self._gateway = gateway

    async def open(self, owner_id: str | None, *, title: str | None = None) -> SessionOut:
        """Create an active session owned by `owner_id`."""
        if not owner_id:
            raise AuthError("Sign in to start a session")
        started_at = self._gateway.now()
        record = {
            "user_id": owner_id,
            "title": title or f"Session on {started_at:%Y-%m-%d}",
            "started_at": started_at,
        }
        session_id = await self._gateway.insert(SESSIONS, record)
        logger.info("Opened session %s", session_id)
        return SessionOut.model_validate({**record, "id": session_id})

    async def get(self, session_id: Any, actor_id: str | None) -> SessionOut:
        """Fetch one session; absent and not-owned both raise NotFoundError."""
        if not actor_id:
            raise AuthError("Sign in to view this session")
        record = await self._gateway.get_by_id(SESSIONS, session_id, actor_id)
        if record is None:
            raise NotFoundError("Session not found")
        return SessionOut.model_validate(record)

    async def require_active(self, session_id: Any, actor_id: str | None) -> SessionOut:
        session = await self.get(session_id, actor_id)
        if session.ended_at is not None:
            raise InvalidStateError("Session is already closed")
        return session

    async def close(
        self,
        session_id: Any,
        actor_id: str | None,
        summary: str,
        overall_mood: str,
    ) -> SessionOut:
        """Close an active session.

        A second close is rejected with InvalidStateError rather than
        treated as a no-op.  The write only applies while `ended_at` is
        still null, so concurrent closes cannot both win.
        """
        await self.require_active(session_id, actor_id)
        patch = {
            "ended_at": self._gateway.now(),
            "summary": summary,
            "overall_mood": overall_mood,
        }
        updated = await self._gateway.update_by_id(
            SESSIONS, session_id, actor_id, patch, unless_set="ended_at"
        )
        if not updated:
            # Lost a race with another close, or the row vanished meanwhile.
            await self.require_active(session_id, actor_id)
            raise InvalidStateError("Session is already closed")
        logger.info("Closed session %s with mood %s", session_id, overall_mood)
        return await self.get(session_id, actor_id)

    async def list_sessions(self, owner_id: str | None) -> list[SessionOut]:
        """All sessions owned by `owner_id`, newest first."""
        if not owner_id:
            raise AuthError("Sign in to view your sessions")
        records = await self._gateway.query_by_owner(
            SESSIONS, owner_id, order_by="started_at", direction="desc"
        )
        return [SessionOut.model_validate(record) for record in records]
