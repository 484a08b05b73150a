"""
Transition Controller
=====================

Stabilizes the classified level so views do not flap between levels
when signals hover around a threshold.

- Escalation (raw above stabilized) applies on the same observation.
- De-escalation to a lower level L waits until the raw level has stayed
  at or below L for the whole quiet period; any raw rise above L
  restarts that hold.
- deactivate() forces none immediately and cancels every pending hold.

The controller never invents a level: every stabilized value is either
a raw level it observed or none from a manual override.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from crisis_engine.config import TransitionConfig
from crisis_engine.models.levels import CrisisLevel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingDeescalation:
    """The lowest level currently being held, and when it may apply."""
    target: CrisisLevel
    since: float
    due_at: float


@dataclass(frozen=True)
class Transition:
    """A change of the stabilized level."""
    previous: CrisisLevel
    current: CrisisLevel
    at: float
    manual: bool = False

    @property
    def is_escalation(self) -> bool:
        return self.current > self.previous


class TransitionController:
    """
    Hysteresis/debounce state machine over CrisisLevel.

    Initial state none; cyclic, no terminal state. Time is whatever the
    caller passes as `now` (seconds), so tests can drive a virtual clock.
    """

    def __init__(self, config: Optional[TransitionConfig] = None):
        self.config = config or TransitionConfig()
        self._level = CrisisLevel.NONE
        self._raw = CrisisLevel.NONE
        # level -> time since which raw has stayed at or below it
        self._holds: Dict[CrisisLevel, float] = {}
        self._last_transition: Optional[Transition] = None

    @property
    def level(self) -> CrisisLevel:
        return self._level

    @property
    def raw_level(self) -> CrisisLevel:
        return self._raw

    @property
    def quiet_period(self) -> float:
        return self.config.quiet_period_s

    @property
    def last_transition(self) -> Optional[Transition]:
        return self._last_transition

    @property
    def pending(self) -> Optional[PendingDeescalation]:
        """The deepest de-escalation currently waiting out its quiet period."""
        candidates = [lvl for lvl in self._holds if lvl < self._level]
        if not candidates:
            return None
        target = min(candidates)
        since = self._holds[target]
        return PendingDeescalation(target=target, since=since, due_at=since + self.quiet_period)

    def observe(self, raw_level: CrisisLevel, now: float) -> CrisisLevel:
        """Feed one raw classification; return the stabilized level."""
        raw_level = CrisisLevel(raw_level)
        self._raw = raw_level
        self._update_holds(raw_level, now)

        if raw_level >= self._level:
            if raw_level > self._level:
                self._apply(raw_level, now)
            self._holds.clear()
            return self._level

        settled = [
            lvl for lvl, since in self._holds.items()
            if lvl < self._level and now - since >= self.quiet_period
        ]
        if settled:
            self._apply(min(settled), now)
            self._holds = {lvl: s for lvl, s in self._holds.items() if lvl < self._level}
        return self._level

    def deactivate(self, now: float) -> CrisisLevel:
        """Manual override: force none and cancel pending holds."""
        self._holds.clear()
        if self._level != CrisisLevel.NONE:
            self._apply(CrisisLevel.NONE, now, manual=True)
        return self._level

    def reset(self) -> None:
        """Back to the initial state without recording a transition."""
        self._level = CrisisLevel.NONE
        self._raw = CrisisLevel.NONE
        self._holds.clear()
        self._last_transition = None

    def _update_holds(self, raw_level: CrisisLevel, now: float) -> None:
        for lvl in CrisisLevel:
            if raw_level <= lvl:
                self._holds.setdefault(lvl, now)
            else:
                self._holds.pop(lvl, None)

    def _apply(self, level: CrisisLevel, now: float, manual: bool = False) -> None:
        transition = Transition(previous=self._level, current=level, at=now, manual=manual)
        self._level = level
        self._last_transition = transition
        if manual:
            logger.info(f"Crisis level {transition.previous} -> {level} (manual override)")
        elif transition.is_escalation:
            logger.info(f"Crisis level escalated {transition.previous} -> {level}")
        else:
            logger.info(f"Crisis level settled {transition.previous} -> {level}")
