"""Owner-scoped persistence gateway.

The core services never touch SQLAlchemy directly.  They go through a
`PersistenceGateway`, whose every operation takes the acting owner id
and filters on it.  There is no unscoped read or write path, so a caller
cannot forget the ownership check.

Records cross the gateway boundary as plain dictionaries keyed by column
name.  Timestamps come from a monotonic clock so that rows appended to
the same session in quick succession still sort in insertion order.
"""

from __future__ import annotations

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .errors import AuthError, InvalidStateError, NotFoundError, PersistenceError
from .models import Base, EmotionalTrend, EmotionSample, Message, SavedRecommendation, TherapySession


logger = logging.getLogger("serenity.gateway")

Record = dict[str, Any]

SESSIONS = "sessions"
MESSAGES = "messages"
EMOTION_SAMPLES = "emotion_samples"
SAVED_RECOMMENDATIONS = "saved_recommendations"
EMOTIONAL_TRENDS = "emotional_trends"

COLLECTIONS: dict[str, type[Base]] = {
    SESSIONS: TherapySession,
    MESSAGES: Message,
    EMOTION_SAMPLES: EmotionSample,
    SAVED_RECOMMENDATIONS: SavedRecommendation,
    EMOTIONAL_TRENDS: EmotionalTrend,
}

# Column stamped by the gateway clock when a record is inserted.
STAMP_FIELDS: dict[str, str] = {
    SESSIONS: "started_at",
    MESSAGES: "created_at",
    EMOTION_SAMPLES: "timestamp",
    SAVED_RECOMMENDATIONS: "created_at",
    EMOTIONAL_TRENDS: "created_at",
}

IMMUTABLE_FIELDS = frozenset({"id", "user_id", "session_id"})

# Collections that may only grow while their session is still active.
OPEN_SESSION_COLLECTIONS = frozenset({MESSAGES, EMOTION_SAMPLES})


class MonotonicClock:
    """Hands out strictly increasing UTC timestamps, safe across threads."""

    def __init__(self, source: Callable[[], datetime] | None = None) -> None:
        self._source = source or (lambda: datetime.now(timezone.utc))
        self._last: datetime | None = None
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            current = self._source()
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


def coerce_id(value: Any) -> uuid.UUID | None:
    """Parse a record id, returning None for anything that is not a UUID."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


class PersistenceGateway(ABC):
    """Storage contract used by the core services."""

    @abstractmethod
    def now(self) -> datetime:
        """Next timestamp from the gateway clock."""

    async def insert(self, collection: str, record: Mapping[str, Any]) -> uuid.UUID:
        """Store a new record and return its id."""
        (record_id,) = await self.insert_many([(collection, record)])
        return record_id

    @abstractmethod
    async def insert_many(self, items: Sequence[tuple[str, Mapping[str, Any]]]) -> list[uuid.UUID]:
        """Store several records in one transaction; either all land or none do."""

    @abstractmethod
    async def get_by_id(self, collection: str, record_id: Any, owner_id: str) -> Record | None:
        """Fetch one record if it exists and belongs to `owner_id`."""

    @abstractmethod
    async def query_by_owner(
        self,
        collection: str,
        owner_id: str,
        *,
        order_by: str,
        direction: str = "asc",
        filters: Mapping[str, Any] | None = None,
        bounds: Mapping[str, tuple[Any, Any]] | None = None,
    ) -> list[Record]:
        """List the owner's records.

        `filters` narrows by equality.  `bounds` maps a column to an
        inclusive `(low, high)` range; either end may be None.
        """

    @abstractmethod
    async def update_by_id(
        self,
        collection: str,
        record_id: Any,
        owner_id: str,
        patch: Mapping[str, Any],
        *,
        unless_set: str | None = None,
    ) -> bool:
        """Apply `patch`; False when nothing matched.

        With `unless_set`, the update only applies while that column is
        still null, which makes one-shot transitions atomic.
        """

    @abstractmethod
    async def delete_by_id(self, collection: str, record_id: Any, owner_id: str) -> bool:
        """Delete one owned record; False when nothing matched."""


class SqlAlchemyGateway(PersistenceGateway):
    """Gateway backed by SQLAlchemy's asyncio ORM.

    Each call opens its own short-lived `AsyncSession`.  Database errors
    are wrapped in `PersistenceError` and are not retried.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: MonotonicClock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or MonotonicClock()

    def now(self) -> datetime:
        return self._clock.now()

    async def insert_many(self, items: Sequence[tuple[str, Mapping[str, Any]]]) -> list[uuid.UUID]:
        staged: list[tuple[type[Base], dict[str, Any]]] = []
        for collection, record in items:
            model = _model_for(collection)
            values = dict(record)
            _require_owner(values.get("user_id"))
            _check_columns(model, values)
            stamp_field = STAMP_FIELDS[collection]
            if values.get(stamp_field) is None:
                values[stamp_field] = self.now()
            values["id"] = coerce_id(values.get("id")) or uuid.uuid4()
            staged.append((model, values))
        names = ", ".join(dict.fromkeys(collection for collection, _record in items))

        try:
            async with self._session_factory() as db:
                for (collection, _record), (model, values) in zip(items, staged):
                    if "session_id" in values:
                        values["session_id"] = await self._owned_session_id(
                            db,
                            values["session_id"],
                            values["user_id"],
                            require_active=collection in OPEN_SESSION_COLLECTIONS,
                        )
                    db.add(model(**values))
                await db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to insert into {names}", exc) from exc
        record_ids = [values["id"] for _model, values in staged]
        logger.debug("Inserted %d record(s) into %s", len(record_ids), names)
        return record_ids

    async def get_by_id(self, collection: str, record_id: Any, owner_id: str) -> Record | None:
        model = _model_for(collection)
        _require_owner(owner_id)
        parsed_id = coerce_id(record_id)
        if parsed_id is None:
            return None
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(model).where(model.id == parsed_id, model.user_id == owner_id)
                )
                instance = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read from {collection}", exc) from exc
        return None if instance is None else _as_record(instance)

    async def query_by_owner(
        self,
        collection: str,
        owner_id: str,
        *,
        order_by: str,
        direction: str = "asc",
        filters: Mapping[str, Any] | None = None,
        bounds: Mapping[str, tuple[Any, Any]] | None = None,
    ) -> list[Record]:
        model = _model_for(collection)
        _require_owner(owner_id)
        _check_columns(model, {order_by: None, **(filters or {}), **(bounds or {})})
        column = getattr(model, order_by)
        if direction == "asc":
            ordering = column.asc()
        elif direction == "desc":
            ordering = column.desc()
        else:
            raise ValueError(f"Unsupported sort direction: {direction}")

        statement = select(model).where(model.user_id == owner_id)
        for name, value in (filters or {}).items():
            statement = statement.where(getattr(model, name) == value)
        for name, (low, high) in (bounds or {}).items():
            if low is not None:
                statement = statement.where(getattr(model, name) >= low)
            if high is not None:
                statement = statement.where(getattr(model, name) <= high)
        try:
            async with self._session_factory() as db:
                result = await db.execute(statement.order_by(ordering))
                instances = result.scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to query {collection}", exc) from exc
        return [_as_record(instance) for instance in instances]

    async def update_by_id(
        self,
        collection: str,
        record_id: Any,
        owner_id: str,
        patch: Mapping[str, Any],
        *,
        unless_set: str | None = None,
    ) -> bool:
        model = _model_for(collection)
        _require_owner(owner_id)
        _check_columns(model, patch)
        locked = IMMUTABLE_FIELDS.intersection(patch)
        if locked:
            raise ValueError(f"Cannot update immutable fields: {', '.join(sorted(locked))}")
        parsed_id = coerce_id(record_id)
        if parsed_id is None:
            return False

        statement = (
            update(model)
            .where(model.id == parsed_id, model.user_id == owner_id)
            .values(**patch)
        )
        if unless_set is not None:
            _check_columns(model, {unless_set: None})
            statement = statement.where(getattr(model, unless_set).is_(None))
        try:
            async with self._session_factory() as db:
                result = await db.execute(statement)
                await db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update {collection}", exc) from exc
        return result.rowcount > 0

    async def delete_by_id(self, collection: str, record_id: Any, owner_id: str) -> bool:
        model = _model_for(collection)
        _require_owner(owner_id)
        parsed_id = coerce_id(record_id)
        if parsed_id is None:
            return False
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    delete(model).where(model.id == parsed_id, model.user_id == owner_id)
                )
                await db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to delete from {collection}", exc) from exc
        return result.rowcount > 0

    async def _owned_session_id(
        self,
        db: AsyncSession,
        session_id: Any,
        owner_id: str,
        *,
        require_active: bool = False,
    ) -> uuid.UUID:
        parsed_id = coerce_id(session_id)
        if parsed_id is not None:
            # The row lock makes a concurrent close wait for this transaction.
            result = await db.execute(
                select(TherapySession.id, TherapySession.ended_at)
                .where(
                    TherapySession.id == parsed_id,
                    TherapySession.user_id == owner_id,
                )
                .with_for_update()
            )
            row = result.one_or_none()
            if row is not None:
                if require_active and row.ended_at is not None:
                    raise InvalidStateError("Session is already closed")
                return parsed_id
        raise NotFoundError("Session not found")


def _model_for(collection: str) -> type[Base]:
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise ValueError(f"Unknown collection: {collection}") from None


def _require_owner(owner_id: Any) -> None:
    if not isinstance(owner_id, str) or not owner_id.strip():
        raise AuthError("An owner id is required for every storage operation")


def _check_columns(model: type[Base], values: Mapping[str, Any]) -> None:
    known = set(model.__table__.columns.keys())
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown {model.__tablename__} fields: {', '.join(sorted(unknown))}")


def _as_record(instance: Base) -> Record:
    record: Record = {}
    for column in instance.__table__.columns:
        value = getattr(instance, column.key)
        # SQLite drops tzinfo on the way back; every stored timestamp is UTC.
        if isinstance(value, datetime) and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        record[column.key] = value
    return record
