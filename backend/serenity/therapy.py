"""One conversational turn, end to end.

observations -> fusion -> tagged user message + timeline sample ->
adaptive strategy -> assistant message.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable

from .adaptation import AdaptiveStrategy, ResponseSelector
from .channels import EmotionChannel
from .conversation import ConversationLog
from .emotions import CANONICAL_ORDER, DEFAULT_EMOTION, EmotionLabel, EmotionObservation
from .fusion import fuse
from .lifecycle import SessionManager
from .schemas import MessageOut, MessageRole


logger = logging.getLogger("serenity.therapy")


@dataclass(frozen=True)
class TurnResult:
    user_message: MessageOut
    assistant_message: MessageOut
    observation: EmotionObservation | None
    strategy: AdaptiveStrategy


class TherapyService:
    def __init__(
        self,
        sessions: SessionManager,
        log: ConversationLog,
        selector: ResponseSelector | None = None,
        text_channel: EmotionChannel | None = None,
    ) -> None:
        self._sessions = sessions
        self._log = log
        self._selector = selector or ResponseSelector()
        self._text_channel = text_channel

    async def take_turn(
        self,
        session_id: Any,
        actor_id: str | None,
        content: str,
        observations: Iterable[EmotionObservation] = (),
    ) -> TurnResult:
        """Record a user turn and the assistant's adaptive reply.

        When a text channel is configured, the message content is analyzed
        too and fused with the supplied observations.  With no observations
        at all the turn is stored untagged and the neutral strategy answers.
        Both messages, and the sample, are stored together or not at all.
        """
        items = list(observations)
        if self._text_channel is not None:
            text_observation = self._text_channel.analyze(content)
            if text_observation is not None:
                items.append(text_observation)
        observation = fuse(items) if items else None
        emotion = observation.primary_emotion if observation is not None else None
        strategy = self._selector.select(emotion)
        user_message, assistant_message = await self._log.append_many(
            session_id,
            actor_id,
            [
                (MessageRole.USER, content, observation),
                (MessageRole.ASSISTANT, strategy.message, None),
            ],
        )
        logger.info(
            "Session %s turn answered with %s strategy",
            user_message.session_id,
            strategy.name,
        )
        return TurnResult(
            user_message=user_message,
            assistant_message=assistant_message,
            observation=observation,
            strategy=strategy,
        )

    async def suggest_overall_mood(self, session_id: Any, actor_id: str | None) -> EmotionLabel:
        """Most frequent primary emotion on the session timeline."""
        samples = await self._log.timeline(session_id, actor_id)
        if not samples:
            return DEFAULT_EMOTION
        counts = Counter(sample.primary_emotion for sample in samples)
        top = max(counts.values())
        return next(label for label in CANONICAL_ORDER if counts.get(label.value) == top)
