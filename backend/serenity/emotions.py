"""Normalized emotion observations produced by the sensing channels."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping


logger = logging.getLogger("serenity.emotions")


class EmotionLabel(str, Enum):
    """Closed label set.  Definition order is the canonical tie-break order."""

    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    ANXIOUS = "anxious"
    NEUTRAL = "neutral"


class EmotionSource(str, Enum):
    FACIAL = "facial"
    VOICE = "voice"
    TEXT = "text"
    COMBINED = "combined"


CANONICAL_ORDER: tuple[EmotionLabel, ...] = tuple(EmotionLabel)
DEFAULT_EMOTION = EmotionLabel.NEUTRAL


def clamp_score(value: object) -> float:
    """Coerce a raw channel score into [0.0, 1.0]; NaN counts as 0.0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Emotion score must be a number, got {value!r}")
    score = float(value)
    if math.isnan(score):
        return 0.0
    return max(0.0, min(1.0, score))


def pick_primary(values: Mapping[EmotionLabel, float]) -> tuple[EmotionLabel, float]:
    """Return the arg-max label and its score.

    Ties go to the label that comes first in `CANONICAL_ORDER`.  An empty
    mapping yields neutral with zero confidence.
    """
    best_label: EmotionLabel | None = None
    best_score = 0.0
    for label in CANONICAL_ORDER:
        if label not in values:
            continue
        score = values[label]
        if best_label is None or score > best_score:
            best_label = label
            best_score = score
    if best_label is None:
        return DEFAULT_EMOTION, 0.0
    return best_label, best_score


@dataclass(frozen=True)
class EmotionObservation:
    """One channel's emotion readout.

    `values` only holds the labels the channel actually reported, so the
    fusion engine can tell "not tracked" apart from "scored zero".  Use
    `scores()` for the full five-label mapping.
    """

    source: EmotionSource
    values: Mapping[EmotionLabel, float]
    primary_emotion: EmotionLabel
    confidence: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "source", EmotionSource(self.source))
        normalized = {EmotionLabel(label): clamp_score(score) for label, score in self.values.items()}
        object.__setattr__(self, "values", MappingProxyType(normalized))
        object.__setattr__(self, "primary_emotion", EmotionLabel(self.primary_emotion))
        if not math.isclose(normalized.get(self.primary_emotion, 0.0), self.confidence, abs_tol=1e-9):
            raise ValueError(
                f"confidence {self.confidence} does not match the {self.primary_emotion.value} score"
            )

    @classmethod
    def from_scores(
        cls,
        source: EmotionSource | str,
        raw_scores: Mapping[str, object] | None,
    ) -> "EmotionObservation":
        """Build an observation from a channel's raw label → score mapping."""
        values: dict[EmotionLabel, float] = {}
        for raw_label, raw_score in (raw_scores or {}).items():
            try:
                if isinstance(raw_label, EmotionLabel):
                    label = raw_label
                else:
                    label = EmotionLabel(str(raw_label).strip().lower())
            except ValueError:
                logger.debug("Dropping unsupported emotion label %r", raw_label)
                continue
            values[label] = clamp_score(raw_score)
        primary, confidence = pick_primary(values)
        return cls(
            source=EmotionSource(source),
            values=values,
            primary_emotion=primary,
            confidence=confidence,
        )

    def scores(self) -> dict[str, float]:
        """Full mapping over the closed label set, missing labels at 0.0."""
        return {label.value: self.values.get(label, 0.0) for label in CANONICAL_ORDER}

    def reported_labels(self) -> frozenset[EmotionLabel]:
        return frozenset(self.values)
