"""Combine per-channel observations into one primary-emotion judgment."""

from __future__ import annotations

from statistics import fmean
from typing import Iterable

from .emotions import CANONICAL_ORDER, EmotionLabel, EmotionObservation, EmotionSource
from .errors import InsufficientDataError


def fuse(observations: Iterable[EmotionObservation]) -> EmotionObservation:
    """Fuse observations captured close together in time.

    Each label's fused score is the mean over the channels that reported
    that label.  A channel that does not track a label does not drag its
    average down.  A single observation is returned as-is.  When every
    observation comes from the same channel the source is kept, otherwise
    the result is tagged `combined`.
    """
    items = list(observations)
    if not items:
        raise InsufficientDataError("At least one emotion observation is required")
    if len(items) == 1:
        return items[0]

    contributions: dict[EmotionLabel, list[float]] = {}
    for observation in items:
        for label, score in observation.values.items():
            contributions.setdefault(label, []).append(score)

    fused = {
        label: fmean(contributions[label])
        for label in CANONICAL_ORDER
        if label in contributions
    }
    sources = {observation.source for observation in items}
    source = sources.pop() if len(sources) == 1 else EmotionSource.COMBINED
    return EmotionObservation.from_scores(source, fused)
