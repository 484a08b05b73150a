"""Data models for the crisis engine."""

from crisis_engine.models.levels import CrisisLevel, FogBand, StressTrend
from crisis_engine.models.record import BehaviorRecord, EventKind
from crisis_engine.models.profile import (
    AdaptationProfile, Feature, ColorAdjustment, ConfirmationPolicy, NEUTRAL_PROFILE,
)
from crisis_engine.models.session import (
    CrisisSession, SessionEntry, SessionOutcome, CrisisTrigger, TriggerType,
    EffectivenessRating,
)

__all__ = [
    "CrisisLevel", "FogBand", "StressTrend",
    "BehaviorRecord", "EventKind",
    "AdaptationProfile", "Feature", "ColorAdjustment", "ConfirmationPolicy",
    "NEUTRAL_PROFILE",
    "CrisisSession", "SessionEntry", "SessionOutcome", "CrisisTrigger", "TriggerType",
    "EffectivenessRating",
]
