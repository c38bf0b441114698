"""Daily emotional trends, recorded by the user outside of any session."""

import logging
import math
from datetime import date, timedelta
from typing import Iterable

from fastapi import APIRouter, Depends, Query, status

from . import auth as auth_utils
from .db import get_gateway
from .emotions import EmotionLabel
from .errors import AuthError
from .gateway import EMOTIONAL_TRENDS, PersistenceGateway
from .schemas import TrendCreate, TrendOut


logger = logging.getLogger("serenity.trends")

router = APIRouter(prefix="/api/trends", tags=["trends"])

MIN_INTENSITY = 1
MAX_INTENSITY = 10
DEFAULT_WINDOW_DAYS = 30


def clamp_intensity(value: object) -> int:
    """Round half up, then clamp into [MIN_INTENSITY, MAX_INTENSITY]."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Emotion intensity must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ValueError(f"Emotion intensity must be finite, got {value!r}")
    return min(max(math.floor(value + 0.5), MIN_INTENSITY), MAX_INTENSITY)


class TrendStore:
    def __init__(self, gateway: PersistenceGateway) -> None:
        self._gateway = gateway

    async def record(
        self,
        owner_id: str | None,
        dominant_emotion: EmotionLabel | str,
        intensity: float,
        triggers: Iterable[str] = (),
        notes: str | None = None,
        on: date | None = None,
    ) -> TrendOut:
        """Store one day's dominant emotion; `on` defaults to today (UTC)."""
        if not owner_id:
            raise AuthError("Sign in to record emotional trends")
        if not isinstance(dominant_emotion, EmotionLabel):
            dominant_emotion = EmotionLabel(dominant_emotion.strip().lower())
        created_at = self._gateway.now()
        record = {
            "user_id": owner_id,
            "date": on or created_at.date(),
            "dominant_emotion": dominant_emotion.value,
            "emotion_intensity": clamp_intensity(intensity),
            "triggers": list(dict.fromkeys(item.strip() for item in triggers if item.strip())),
            "notes": notes,
            "created_at": created_at,
        }
        trend_id = await self._gateway.insert(EMOTIONAL_TRENDS, record)
        logger.info("Recorded %s trend for %s", record["dominant_emotion"], record["date"])
        return TrendOut.model_validate({**record, "id": trend_id})

    async def list_trends(
        self,
        owner_id: str | None,
        days: int = DEFAULT_WINDOW_DAYS,
        today: date | None = None,
    ) -> list[TrendOut]:
        """Trends from the last `days` days up to `today`, oldest first."""
        if not owner_id:
            raise AuthError("Sign in to view emotional trends")
        if days < 0:
            raise ValueError("days must not be negative")
        end = today or self._gateway.now().date()
        records = await self._gateway.query_by_owner(
            EMOTIONAL_TRENDS,
            owner_id,
            order_by="date",
            direction="asc",
            bounds={"date": (end - timedelta(days=days), end)},
        )
        return [TrendOut.model_validate(record) for record in records]


@router.get("", response_model=list[TrendOut])
async def list_trends(
    days: int = Query(DEFAULT_WINDOW_DAYS, ge=1, le=365, description="Size of the window, in days"),
    user_id: str | None = Depends(auth_utils.get_current_user_id),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> list[TrendOut]:
    return await TrendStore(gateway).list_trends(user_id, days=days)


@router.post("", response_model=TrendOut, status_code=status.HTTP_201_CREATED)
async def record_trend(
    payload: TrendCreate,
    user_id: str | None = Depends(auth_utils.get_current_user_id),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> TrendOut:
    """Record today's dominant emotion for the authenticated user."""
    return await TrendStore(gateway).record(
        user_id,
        payload.dominant_emotion,
        payload.emotion_intensity,
        triggers=payload.triggers,
        notes=payload.notes,
    )
