"""Adaptive response strategies keyed by primary emotion."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from .emotions import DEFAULT_EMOTION, EmotionLabel


@dataclass(frozen=True)
class AdaptiveStrategy:
    """How the assistant should respond to a detected emotion."""

    name: str
    approach: str
    message: str


DEFAULT_STRATEGIES: dict[EmotionLabel, AdaptiveStrategy] = {
    EmotionLabel.HAPPY: AdaptiveStrategy(
        name="affirming",
        approach="Reinforce the positive state and invite the user to name what is going well.",
        message="I'm glad to see you're feeling positive today.",
    ),
    EmotionLabel.SAD: AdaptiveStrategy(
        name="acknowledging",
        approach="Acknowledge the low mood and offer steady, supportive presence.",
        message="I notice you might be feeling down. I'm here for you.",
    ),
    EmotionLabel.ANXIOUS: AdaptiveStrategy(
        name="grounding",
        approach="De-escalate with slow breathing and present-moment grounding.",
        message="Let's take a deep breath together. You're safe here.",
    ),
    EmotionLabel.ANGRY: AdaptiveStrategy(
        name="validating",
        approach="Validate the frustration and explore what sits underneath it.",
        message="It's okay to feel frustrated. Let's explore those feelings.",
    ),
    EmotionLabel.NEUTRAL: AdaptiveStrategy(
        name="supportive",
        approach="Keep a warm, open stance and invite the user to share more.",
        message="I'm here to listen and support you.",
    ),
}


class ResponseSelector:
    """Table-driven mapping from primary emotion to adaptive strategy.

    Unknown or missing labels fall back to the neutral strategy, so
    `select` never fails.  Pass a different table to change the assistant
    behaviour without touching emotion inference.
    """

    def __init__(self, strategies: Mapping[EmotionLabel, AdaptiveStrategy] | None = None) -> None:
        table = dict(DEFAULT_STRATEGIES)
        if strategies:
            table.update(strategies)
        self._strategies = table
        self._fallback = table[DEFAULT_EMOTION]

    def select(self, emotion: EmotionLabel | str | None) -> AdaptiveStrategy:
        if emotion is None:
            return self._fallback
        try:
            label = emotion if isinstance(emotion, EmotionLabel) else EmotionLabel(str(emotion).strip().lower())
        except ValueError:
            return self._fallback
        return self._strategies.get(label, self._fallback)
