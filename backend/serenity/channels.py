"""Sensing channel contract and the built-in deterministic channels.

A channel turns raw input (a frame, an audio chunk, a line of text) into
an `EmotionObservation`, or returns None when the input carries no
signal.  Facial and voice models live outside this service; they plug in
through the same `EmotionChannel` protocol, and `StaticChannel` stands in
for them when scores were computed client-side or in tests.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Protocol, runtime_checkable

from .emotions import EmotionLabel, EmotionObservation, EmotionSource


@runtime_checkable
class EmotionChannel(Protocol):
    source: EmotionSource

    def analyze(self, raw: Any) -> EmotionObservation | None:
        ...


class StaticChannel:
    """Replays precomputed scores for one channel."""

    def __init__(self, source: EmotionSource | str) -> None:
        self.source = EmotionSource(source)

    def analyze(self, raw: Mapping[str, object] | None) -> EmotionObservation | None:
        if not raw:
            return None
        return EmotionObservation.from_scores(self.source, raw)


# Intensity 1 (mild) to 5 (severe).  Phrases are matched before single
# words, and words inside a matched phrase are not counted again.
LEXICON: dict[EmotionLabel, dict[str, int]] = {
    EmotionLabel.HAPPY: {
        "happy": 3, "joy": 4, "delighted": 4, "excited": 4, "thrilled": 5,
        "glad": 2, "pleased": 2, "cheerful": 3, "grateful": 3, "relieved": 3,
        "enjoy": 3, "enjoying": 3, "love": 4, "great": 2, "wonderful": 4,
        "feeling good": 3, "in a good mood": 3, "over the moon": 5,
        "having fun": 3, "at peace": 3,
    },
    EmotionLabel.SAD: {
        "sad": 3, "unhappy": 3, "depressed": 4, "miserable": 4, "down": 2,
        "heartbroken": 5, "grief": 5, "hurt": 3, "disappointed": 3,
        "upset": 3, "hopeless": 4, "lonely": 4, "alone": 3, "empty": 4,
        "worthless": 5, "crying": 4, "tears": 3,
        "feeling down": 3, "feeling blue": 3, "lost hope": 4, "given up": 4,
        "can't go on": 5, "feel like crying": 4, "heart is heavy": 4,
    },
    EmotionLabel.ANGRY: {
        "angry": 3, "mad": 3, "furious": 5, "annoyed": 2, "irritated": 2,
        "frustrated": 3, "resentful": 3, "hate": 4, "rage": 5, "livid": 5,
        "pissed off": 4, "fed up": 3, "had enough": 3, "lost my temper": 4,
        "can't stand": 4, "sick and tired": 4, "want to scream": 4,
    },
    EmotionLabel.ANXIOUS: {
        "anxious": 3, "worried": 3, "nervous": 3, "scared": 4, "afraid": 4,
        "terrified": 5, "panic": 5, "panicking": 5, "stressed": 3,
        "overwhelmed": 4, "uneasy": 2, "tense": 2, "restless": 2,
        "can't relax": 3, "can't sleep": 3, "can't breathe": 5,
        "heart racing": 4, "worried about": 3, "afraid of": 4,
        "anxious about": 4, "nervous about": 3, "stressed about": 3,
    },
    EmotionLabel.NEUTRAL: {
        "okay": 1, "ok": 1, "fine": 1, "alright": 1, "normal": 1,
        "could be better": 2, "could be worse": 2, "not good not bad": 1,
    },
}

INTENSIFIERS: dict[str, float] = {
    "very": 1.5,
    "really": 1.5,
    "so": 1.3,
    "extremely": 2.0,
    "incredibly": 2.0,
    "terribly": 1.8,
    "completely": 1.8,
    "totally": 1.8,
    "deeply": 1.7,
    "quite": 1.3,
    "somewhat": 0.7,
    "slightly": 0.5,
}

NEGATIONS = frozenset(
    {"not", "no", "never", "hardly", "barely", "don't", "dont", "doesn't", "didn't", "isn't", "wasn't", "aren't", "won't"}
)
NEGATION_WINDOW = 3
FULL_SCALE = 5.0

_TOKEN_RE = re.compile(r"[a-z']+")
_CLAUSE_RE = re.compile(r"[.!?;,]+")


def tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower().replace("’", "'"))


def split_clauses(text: str) -> list[list[str]]:
    """Tokenize each sentence or clause separately, dropping empty ones."""
    return [tokens for tokens in (tokenize(part) for part in _CLAUSE_RE.split(text)) if tokens]


class TextEmotionChannel:
    """Lexicon-based text analyzer.

    Each lexicon hit adds its intensity to its label, scaled by an
    intensifier directly in front of it.  Hits preceded by a negation in
    the previous few tokens of the same clause are ignored.  A label's
    score is its total intensity over `FULL_SCALE`, capped at 1.0.  Unless
    neutral words were hit explicitly, neutral gets whatever the strongest
    label leaves over.
    """

    source = EmotionSource.TEXT

    def __init__(self, lexicon: Mapping[EmotionLabel, Mapping[str, int]] | None = None) -> None:
        entries: list[tuple[tuple[str, ...], EmotionLabel, int]] = []
        for label, terms in (lexicon or LEXICON).items():
            for term, intensity in terms.items():
                entries.append((tuple(tokenize(term)), label, intensity))
        # Longest terms first so phrases win over the words inside them.
        self._entries = sorted(entries, key=lambda entry: len(entry[0]), reverse=True)

    def analyze(self, raw: str | None) -> EmotionObservation | None:
        totals: dict[EmotionLabel, float] = {}
        for tokens in split_clauses(raw or ""):
            self._score_clause(tokens, totals)

        if not totals:
            return None
        scores = {label: min(1.0, total / FULL_SCALE) for label, total in totals.items()}
        if EmotionLabel.NEUTRAL not in scores:
            scores[EmotionLabel.NEUTRAL] = max(0.0, 1.0 - max(scores.values()))
        return EmotionObservation.from_scores(self.source, scores)

    def _score_clause(self, tokens: list[str], totals: dict[EmotionLabel, float]) -> None:
        # Phrases and negations never reach across a clause boundary.
        consumed: set[int] = set()
        for terms, label, intensity in self._entries:
            width = len(terms)
            for start in range(len(tokens) - width + 1):
                span = range(start, start + width)
                if tuple(tokens[start:start + width]) != terms or consumed.intersection(span):
                    continue
                consumed.update(span)
                if self._is_negated(tokens, start):
                    continue
                weight = INTENSIFIERS.get(tokens[start - 1], 1.0) if start > 0 else 1.0
                totals[label] = totals.get(label, 0.0) + intensity * weight

    @staticmethod
    def _is_negated(tokens: list[str], start: int) -> bool:
        window = tokens[max(0, start - NEGATION_WINDOW):start]
        return any(token in NEGATIONS for token in window)


def observe(
    channels: Iterable[EmotionChannel],
    inputs: Mapping[EmotionSource, Any],
) -> list[EmotionObservation]:
    """Run each channel on its input and keep the observations that came back."""
    observations: list[EmotionObservation] = []
    for channel in channels:
        if channel.source not in inputs:
            continue
        observation = channel.analyze(inputs[channel.source])
        if observation is not None:
            observations.append(observation)
    return observations
