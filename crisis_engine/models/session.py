"""Audit schemas for crisis sessions.

Pydantic models so closed sessions serialize straight to JSONL.
"""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from crisis_engine.models.levels import CrisisLevel


class TriggerType(str, Enum):
    """Why a level was reached."""
    RAPID_INPUT = "rapid_input"
    EMOTIONAL_DISTRESS = "emotional_distress"   # navigation reversals
    ERROR_PATTERN = "error_pattern"
    TIME_PRESSURE = "time_pressure"             # session duration
    SELF_REPORT = "self_report"
    MANUAL_OVERRIDE = "manual_override"
    SIGNALS_CLEARED = "signals_cleared"
    RESET = "reset"


class SessionOutcome(str, Enum):
    RESOLVED = "resolved"
    ESCALATED = "escalated"
    TRANSFERRED = "transferred"
    ONGOING = "ongoing"


class CrisisTrigger(BaseModel):
    """A classifier rule that fired, with the value that crossed it."""

    type: TriggerType
    value: float = 0.0
    threshold: float = 0.0
    context: str = ""


class SessionEntry(BaseModel):
    """One stabilized change inside a session."""

    timestamp: float = Field(default_factory=time.time)
    trigger: Optional[CrisisTrigger] = None
    level: str = "none"
    profile: Dict[str, Any] = Field(default_factory=dict)


class EffectivenessRating(BaseModel):
    """User-reported effectiveness of the current adaptation (0-1)."""

    timestamp: float = Field(default_factory=time.time)
    score: float
    intervention: Optional[str] = None


class CrisisSession(BaseModel):
    """Audit trail for one excursion away from level none.

    Opened when the stabilized level first leaves none, closed when it
    returns (or when a collaborator tags a terminal outcome).
    """

    id: str = Field(default_factory=lambda: f"crisis-{uuid.uuid4().hex[:12]}")
    episode_number: int = 1
    started_at: float = Field(default_factory=time.time)
    ended_at: Optional[float] = None

    entries: List[SessionEntry] = Field(default_factory=list)
    effectiveness: List[EffectivenessRating] = Field(default_factory=list)
    effective_interventions: List[str] = Field(default_factory=list)

    outcome: SessionOutcome = SessionOutcome.ONGOING
    user_feedback: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.ended_at is None:
            return None
        return max(0.0, self.ended_at - self.started_at)

    @property
    def peak_level(self) -> str:
        if not self.entries:
            return CrisisLevel.NONE.label
        return max(CrisisLevel.from_label(e.level) for e in self.entries).label
