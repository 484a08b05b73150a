"""
Adaptation Profile
==================

Declarative bundle of interface-simplification parameters.

Profiles are immutable: the selector builds a fresh one on every
stabilized change and view collaborators replace the old one wholesale.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, FrozenSet

from crisis_engine.models.levels import CrisisLevel


class Feature(str, Enum):
    """Affordances a view may surface."""
    EMERGENCY_CONTACTS = "emergency_contacts"
    CRISIS_RESOURCES = "crisis_resources"
    BREATHING_PROMPT = "breathing_prompt"
    PROGRESS_INDICATOR = "progress_indicator"
    PAUSE_PROMPT = "pause_prompt"
    SIMPLIFY_OPTION = "simplify_option"
    AUTO_SAVE = "auto_save"
    MEMORY_AIDS = "memory_aids"


class ColorAdjustment(str, Enum):
    """Palette/contrast adjustment requested from the theme layer."""
    STANDARD = "standard"
    CALMING = "calming"
    HIGH_CONTRAST = "high_contrast"


class ConfirmationPolicy(IntEnum):
    """How many confirmation dialogs to show; higher suppresses more."""
    STANDARD = 0
    ESSENTIAL_ONLY = 1
    MINIMAL = 2

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class AdaptationProfile:
    """Immutable output of the adaptation selector."""
    level: CrisisLevel = CrisisLevel.NONE
    simplification: float = 0.0          # 0-1
    touch_target_multiplier: float = 1.0
    reduce_motion: bool = False
    color: ColorAdjustment = ColorAdjustment.STANDARD
    hide_non_essential: bool = False
    features: FrozenSet[Feature] = field(default_factory=frozenset)
    confirmation: ConfirmationPolicy = ConfirmationPolicy.STANDARD

    def shows(self, feature: Feature) -> bool:
        return feature in self.features

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.label,
            "simplification": self.simplification,
            "touch_target_multiplier": self.touch_target_multiplier,
            "reduce_motion": self.reduce_motion,
            "color": self.color.value,
            "hide_non_essential": self.hide_non_essential,
            "features": sorted(f.value for f in self.features),
            "confirmation": self.confirmation.label,
        }


NEUTRAL_PROFILE = AdaptationProfile()
