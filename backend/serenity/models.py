"""SQLAlchemy models for the Serenity backend.

A therapy session owns an append-only conversation log (`messages`) and
an append-only emotion timeline (`emotion_samples`).  Child rows carry
the owner's `user_id` as well, so every table can be filtered by owner
directly.  Saved recommendations and daily emotional trends stand on
their own and are not tied to a session.
"""

import uuid
from typing import Optional

from sqlalchemy import JSON, Column, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase


JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    __allow_unmapped__ = True


class TherapySession(Base):
    """A bounded conversational interaction.

    `ended_at`, `summary` and `overall_mood` stay null while the session
    is active and are written once, when it is closed.  `title` is display
    metadata only.
    """

    __tablename__ = "therapy_sessions"

    id: uuid.UUID = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: str = Column(String(128), nullable=False, index=True)
    title: Optional[str] = Column(String(256), nullable=True)

    started_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    summary: Optional[str] = Column(Text, nullable=True)
    overall_mood: Optional[str] = Column(String(32), nullable=True)


class Message(Base):
    """One conversation turn."""

    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_session_created", "session_id", "created_at"),)

    id: uuid.UUID = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id: uuid.UUID = Column(
        Uuid(as_uuid=True), ForeignKey("therapy_sessions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: str = Column(String(128), nullable=False)
    role: str = Column(String(16), nullable=False)
    content: str = Column(Text, nullable=False)
    detected_emotion: Optional[str] = Column(String(32), nullable=True)
    emotion_confidence: Optional[float] = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class EmotionSample(Base):
    """One fused observation on a session's emotion timeline."""

    __tablename__ = "emotion_samples"
    __table_args__ = (Index("ix_emotion_samples_session_timestamp", "session_id", "timestamp"),)

    id: uuid.UUID = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id: uuid.UUID = Column(
        Uuid(as_uuid=True), ForeignKey("therapy_sessions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: str = Column(String(128), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    primary_emotion: str = Column(String(32), nullable=False)
    confidence: float = Column(Float, nullable=False)
    values: dict = Column(JSONType, nullable=False)
    source: str = Column(String(16), nullable=False)


class SavedRecommendation(Base):
    """A recommendation the user chose to keep."""

    __tablename__ = "saved_recommendations"

    id: uuid.UUID = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: str = Column(String(128), nullable=False, index=True)
    type: str = Column(String(32), nullable=False)
    content: str = Column(Text, nullable=False)
    emotion: str = Column(String(32), nullable=False)
    tags: list = Column(JSONType, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False)


class EmotionalTrend(Base):
    """A user's dominant emotion for one day, recorded outside any session."""

    __tablename__ = "emotional_trends"
    __table_args__ = (Index("ix_emotional_trends_user_date", "user_id", "date"),)

    id: uuid.UUID = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: str = Column(String(128), nullable=False)
    date = Column(Date, nullable=False)
    dominant_emotion: str = Column(String(32), nullable=False)
    emotion_intensity: int = Column(Integer, nullable=False)
    triggers: list = Column(JSONType, nullable=False, default=list)
    notes: Optional[str] = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
