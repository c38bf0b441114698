"""Pydantic schemas for input and output validation.

The core services return these models, and FastAPI uses them to
validate and serialize request/response bodies.  Output schemas are
built from gateway records (plain dictionaries).
"""

import datetime as dt
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from .emotions import EmotionLabel, EmotionObservation, EmotionSource


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class SessionCreate(BaseModel):
    """Schema for opening a new session."""

    title: Optional[str] = Field(None, max_length=256, description="Display title; defaults to the start date")


class SessionEnd(BaseModel):
    """Schema for closing a session."""

    summary: str = Field(..., description="Free-text summary of the session")
    overall_mood: str = Field(..., min_length=1, max_length=32, description="Overall mood label, e.g. anxious")


class SessionOut(BaseModel):
    """Schema for session retrieval responses."""

    id: uuid.UUID
    user_id: str
    title: Optional[str] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    summary: Optional[str] = None
    overall_mood: Optional[str] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> str:
        return "active" if self.ended_at is None else "closed"


class ObservationIn(BaseModel):
    """One channel's raw scores, as sent by a client-side analyzer."""

    source: EmotionSource
    values: dict[str, float] = Field(default_factory=dict)

    def to_observation(self) -> EmotionObservation:
        return EmotionObservation.from_scores(self.source, self.values)


class ObservationOut(BaseModel):
    source: EmotionSource
    primary_emotion: str
    confidence: float
    values: dict[str, float]

    @classmethod
    def from_observation(cls, observation: EmotionObservation) -> "ObservationOut":
        return cls(
            source=observation.source,
            primary_emotion=observation.primary_emotion.value,
            confidence=observation.confidence,
            values={label.value: score for label, score in observation.values.items()},
        )


class MessageCreate(BaseModel):
    """Schema for appending to the conversation log.

    Observations from several channels are fused before the message is
    stored.
    """

    role: MessageRole
    content: str = Field(..., min_length=1)
    observations: list[ObservationIn] = Field(default_factory=list)


class MessageOut(BaseModel):
    id: uuid.UUID
    session_id: uuid.UUID
    role: MessageRole
    content: str
    detected_emotion: Optional[str] = None
    emotion_confidence: Optional[float] = None
    created_at: datetime


class EmotionSampleOut(BaseModel):
    id: uuid.UUID
    session_id: uuid.UUID
    timestamp: datetime
    primary_emotion: str
    confidence: float
    values: dict[str, float]
    source: EmotionSource


class ObservationBatch(BaseModel):
    """Observations captured together, recorded as one timeline entry."""

    observations: list[ObservationIn] = Field(default_factory=list)


class TurnCreate(BaseModel):
    content: str = Field(..., min_length=1)
    observations: list[ObservationIn] = Field(default_factory=list)


class StrategyOut(BaseModel):
    name: str
    approach: str
    message: str


class TurnOut(BaseModel):
    user_message: MessageOut
    assistant_message: MessageOut
    observation: Optional[ObservationOut] = None
    strategy: StrategyOut


class RecommendationCreate(BaseModel):
    type: str = Field(..., min_length=1, max_length=32, description="activity, coping or resource")
    content: str = Field(..., min_length=1)
    emotion: str = Field(..., min_length=1, max_length=32)
    tags: list[str] = Field(default_factory=list)


class RecommendationOut(BaseModel):
    id: uuid.UUID
    type: str
    content: str
    emotion: str
    tags: list[str] = Field(default_factory=list)
    created_at: datetime


class TrendCreate(BaseModel):
    dominant_emotion: EmotionLabel
    emotion_intensity: float = Field(..., description="Rounded, then clamped to 1-10")
    triggers: list[str] = Field(default_factory=list)
    notes: Optional[str] = None


class TrendOut(BaseModel):
    id: uuid.UUID
    date: dt.date
    dominant_emotion: EmotionLabel
    emotion_intensity: int
    triggers: list[str] = Field(default_factory=list)
    notes: Optional[str] = None
    created_at: datetime
