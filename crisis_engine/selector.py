"""
Adaptation Profile Selector
===========================

Deterministic mapping (stabilized level, fog score) -> AdaptationProfile.

Two independent axes:
- Crisis level sets the base profile: simplification, motion, palette,
  and which safety affordances are visible. Features are gated by level
  only; fog alone never shows emergency contacts.
- Fog scales touch targets and confirmation suppression regardless of
  level, since a user can be foggy without being in crisis.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

from crisis_engine.config import FogConfig, SelectorConfig
from crisis_engine.fog import fog_band
from crisis_engine.models.levels import CrisisLevel, FogBand
from crisis_engine.models.profile import (
    AdaptationProfile, ColorAdjustment, ConfirmationPolicy, Feature,
)


@dataclass(frozen=True)
class LevelBase:
    """Per-level defaults before fog scaling."""
    simplification: float
    touch_target_multiplier: float
    reduce_motion: bool
    color: ColorAdjustment
    hide_non_essential: bool
    features: FrozenSet[Feature]
    confirmation: ConfirmationPolicy


BASE_PROFILES: Dict[CrisisLevel, LevelBase] = {
    CrisisLevel.NONE: LevelBase(
        simplification=0.0,
        touch_target_multiplier=1.0,
        reduce_motion=False,
        color=ColorAdjustment.STANDARD,
        hide_non_essential=False,
        features=frozenset(),
        confirmation=ConfirmationPolicy.STANDARD,
    ),
    CrisisLevel.MILD: LevelBase(
        simplification=0.2,
        touch_target_multiplier=1.1,
        reduce_motion=False,
        color=ColorAdjustment.CALMING,
        hide_non_essential=False,
        features=frozenset({Feature.PAUSE_PROMPT, Feature.SIMPLIFY_OPTION}),
        confirmation=ConfirmationPolicy.STANDARD,
    ),
    CrisisLevel.MODERATE: LevelBase(
        simplification=0.45,
        touch_target_multiplier=1.25,
        reduce_motion=True,
        color=ColorAdjustment.CALMING,
        hide_non_essential=False,
        features=frozenset({
            Feature.PAUSE_PROMPT, Feature.SIMPLIFY_OPTION, Feature.AUTO_SAVE,
            Feature.BREATHING_PROMPT, Feature.MEMORY_AIDS,
        }),
        confirmation=ConfirmationPolicy.ESSENTIAL_ONLY,
    ),
    CrisisLevel.SEVERE: LevelBase(
        simplification=0.65,
        touch_target_multiplier=1.5,
        reduce_motion=True,
        color=ColorAdjustment.CALMING,
        hide_non_essential=True,
        features=frozenset({
            Feature.PAUSE_PROMPT, Feature.AUTO_SAVE, Feature.BREATHING_PROMPT,
            Feature.EMERGENCY_CONTACTS, Feature.CRISIS_RESOURCES,
            Feature.MEMORY_AIDS, Feature.PROGRESS_INDICATOR,
        }),
        confirmation=ConfirmationPolicy.ESSENTIAL_ONLY,
    ),
    CrisisLevel.EMERGENCY: LevelBase(
        simplification=0.9,
        touch_target_multiplier=1.75,
        reduce_motion=True,
        color=ColorAdjustment.HIGH_CONTRAST,
        hide_non_essential=True,
        features=frozenset({
            Feature.EMERGENCY_CONTACTS, Feature.CRISIS_RESOURCES,
            Feature.AUTO_SAVE, Feature.PROGRESS_INDICATOR,
        }),
        confirmation=ConfirmationPolicy.MINIMAL,
    ),
}

FOG_CONFIRMATION: Dict[FogBand, ConfirmationPolicy] = {
    FogBand.CLEAR: ConfirmationPolicy.STANDARD,
    FogBand.FOGGY: ConfirmationPolicy.ESSENTIAL_ONLY,
    FogBand.SEVERE: ConfirmationPolicy.MINIMAL,
}


class AdaptationSelector:
    """Pure profile selection; holds configuration only."""

    def __init__(
        self,
        config: Optional[SelectorConfig] = None,
        fog_config: Optional[FogConfig] = None,
    ):
        self.config = config or SelectorConfig()
        self.fog_config = fog_config or FogConfig()

    def select(self, level: CrisisLevel, fog_score: float) -> AdaptationProfile:
        level = CrisisLevel(level)
        fog = max(0.0, min(1.0, float(fog_score)))
        base = BASE_PROFILES[level]

        touch = base.touch_target_multiplier * (1.0 + self.config.fog_touch_gain * fog)
        touch = round(min(self.config.max_touch_target_multiplier, touch), 2)

        confirmation = max(
            base.confirmation,
            FOG_CONFIRMATION[fog_band(fog, self.fog_config)],
        )

        return AdaptationProfile(
            level=level,
            simplification=base.simplification,
            touch_target_multiplier=touch,
            reduce_motion=base.reduce_motion,
            color=base.color,
            hide_non_essential=base.hide_non_essential,
            features=base.features,
            confirmation=ConfirmationPolicy(confirmation),
        )


def select(level: CrisisLevel, fog_score: float) -> AdaptationProfile:
    """select() with default configuration."""
    return AdaptationSelector().select(level, fog_score)
