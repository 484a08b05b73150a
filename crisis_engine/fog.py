"""
Cognitive Fog Estimator
=======================

Continuous estimate of momentary difficulty concentrating, derived
from interaction noise (errors, rapid clicks, help requests).

The score is a weighted sum divided by a normalizer and clamped to
[0, 1]: monotonic in every input and saturating rather than divergent.
"""

from __future__ import annotations

from typing import Optional

from crisis_engine.config import FogConfig
from crisis_engine.models.levels import FogBand
from crisis_engine.models.record import BehaviorRecord


def estimate(record: BehaviorRecord, config: Optional[FogConfig] = None) -> float:
    """Fog score in [0, 1] for the current record."""
    cfg = config or FogConfig()
    load = (
        cfg.error_weight * max(0, record.error_event_count)
        + cfg.rapid_click_weight * max(0, record.rapid_click_count)
        + cfg.help_request_weight * max(0, record.help_request_count)
    )
    return max(0.0, min(1.0, load / cfg.normalizer))


def fog_band(score: float, config: Optional[FogConfig] = None) -> FogBand:
    """Three-state read: <foggy clear, [foggy, severe) foggy, >=severe severe."""
    cfg = config or FogConfig()
    if score >= cfg.severe_threshold:
        return FogBand.SEVERE
    if score >= cfg.foggy_threshold:
        return FogBand.FOGGY
    return FogBand.CLEAR


class FogEstimator:
    """
    Recomputes the fog score on every tick.

    With smoothing > 0 the published score is an exponential moving
    average; estimate() stays a pure function of the record.
    """

    def __init__(self, config: Optional[FogConfig] = None):
        self.config = config or FogConfig()
        self._score: Optional[float] = None

    @property
    def score(self) -> float:
        return self._score if self._score is not None else 0.0

    @property
    def band(self) -> FogBand:
        return fog_band(self.score, self.config)

    def estimate(self, record: BehaviorRecord) -> float:
        return estimate(record, self.config)

    def update(self, record: BehaviorRecord) -> float:
        """Fold the current record into the published score."""
        raw = estimate(record, self.config)
        alpha = self.config.smoothing
        if self._score is None or alpha <= 0:
            self._score = raw
        else:
            self._score = alpha * self._score + (1.0 - alpha) * raw
        return self._score

    def reset(self) -> None:
        self._score = None
