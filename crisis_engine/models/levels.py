"""
Crisis Levels
=============

Discrete severity classification of inferred user distress.

IntEnum so levels compare by severity and can be combined with max().
"""

from __future__ import annotations

from enum import Enum, IntEnum


class CrisisLevel(IntEnum):
    """Ordered crisis levels, least to most severe."""
    NONE = 0
    MILD = 1
    MODERATE = 2
    SEVERE = 3
    EMERGENCY = 4

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_label(cls, label: str) -> CrisisLevel:
        """Parse a lowercase label such as "moderate"."""
        try:
            return cls[str(label).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown crisis level: {label!r}") from None

    def __str__(self) -> str:
        return self.label


class FogBand(str, Enum):
    """Three-state read of the continuous fog score."""
    CLEAR = "clear"
    FOGGY = "foggy"
    SEVERE = "severe"


class StressTrend(str, Enum):
    """Direction of the sampled fog score across evaluation passes."""
    IMPROVING = "improving"
    STABLE = "stable"
    WORSENING = "worsening"
