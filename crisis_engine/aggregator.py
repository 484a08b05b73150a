"""
Signal Aggregator
=================

Collects raw behavioral events into the BehaviorRecord.

All input is best-effort telemetry: unknown kinds and malformed
payloads are dropped, never raised.
"""

from __future__ import annotations

import math
import numbers
import time
import logging
from typing import Any, Callable, Dict, Optional

from crisis_engine.config import AggregatorConfig
from crisis_engine.models.record import (
    BehaviorRecord, EventKind, SELF_REPORT_MIN, SELF_REPORT_MAX,
)

logger = logging.getLogger(__name__)


# Already-classified voice/gesture actions the engine reacts to.
# Everything else in the command vocabulary belongs to view collaborators.
EMERGENCY_ACTION = "activate_emergency_mode"
NAVIGATE_BACK_ACTION = "navigate_back"

VOICE_PHRASES: Dict[str, str] = {
    "help me": EMERGENCY_ACTION,
    "i need help": EMERGENCY_ACTION,
    "emergency": EMERGENCY_ACTION,
    "crisis": EMERGENCY_ACTION,
    "go back": NAVIGATE_BACK_ACTION,
    "previous page": NAVIGATE_BACK_ACTION,
    "undo": NAVIGATE_BACK_ACTION,
}

GESTURE_PATTERNS: Dict[str, str] = {
    "shake_device": EMERGENCY_ACTION,
}


def parse_self_report(payload: Any) -> Optional[int]:
    """Extract a 1-10 rating from a payload, clamping numeric values.

    Returns None for anything that is not a number.
    """
    if isinstance(payload, dict):
        payload = payload.get("value", payload.get("rating"))
    if isinstance(payload, bool) or payload is None:
        return None
    if isinstance(payload, str):
        try:
            payload = float(payload.strip())
        except ValueError:
            return None
    if isinstance(payload, numbers.Integral):
        return max(SELF_REPORT_MIN, min(SELF_REPORT_MAX, int(payload)))
    if not isinstance(payload, numbers.Real):
        return None
    value = float(payload)
    if not math.isfinite(value):
        return None
    return max(SELF_REPORT_MIN, min(SELF_REPORT_MAX, int(round(value))))


def resolve_command_action(kind: EventKind, payload: Any) -> Optional[str]:
    """Map a voice-command or gesture payload to an action name."""
    if isinstance(payload, str):
        payload = {"phrase": payload} if kind == EventKind.VOICE_COMMAND else {"pattern": payload}
    if not isinstance(payload, dict):
        return None

    action = payload.get("action")
    if isinstance(action, str) and action:
        return action.strip().lower()

    if kind == EventKind.VOICE_COMMAND:
        phrase = payload.get("phrase")
        if isinstance(phrase, str):
            return VOICE_PHRASES.get(phrase.strip().lower())
    else:
        pattern = payload.get("pattern")
        if isinstance(pattern, str):
            return GESTURE_PATTERNS.get(pattern.strip().lower())
    return None


class SignalAggregator:
    """
    Owns the BehaviorRecord.

    record_event() is called from UI event callbacks, tick() from the
    periodic timer; both run on the engine's single logical thread.
    """

    def __init__(
        self,
        config: Optional[AggregatorConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or AggregatorConfig()
        self._clock = clock
        self._record = BehaviorRecord(last_activity_timestamp=clock())
        self._epoch = 0

    @property
    def record(self) -> BehaviorRecord:
        """The live record. Read-only for everyone but the aggregator."""
        return self._record

    @property
    def epoch(self) -> int:
        """Incremented on every reset()."""
        return self._epoch

    def snapshot(self) -> BehaviorRecord:
        return self._record.copy()

    def record_event(self, kind: Any, payload: Any = None) -> bool:
        """Apply one event to the counters.

        Returns True if the event changed the record.
        """
        try:
            kind = EventKind(kind)
        except ValueError:
            logger.debug(f"Ignoring unknown event kind: {kind!r}")
            return False

        rec = self._record

        if kind == EventKind.CLICK:
            rec.rapid_click_count += 1
        elif kind == EventKind.NAVIGATION_BACK:
            rec.navigation_reversal_count += 1
        elif kind == EventKind.RUNTIME_ERROR:
            rec.error_event_count += 1
        elif kind == EventKind.HELP_REQUEST:
            rec.help_request_count += 1
        elif kind == EventKind.MANUAL_RATING:
            rating = parse_self_report(payload)
            if rating is None:
                logger.debug(f"Ignoring malformed manual rating: {payload!r}")
                return False
            rec.manual_self_report = rating
        else:
            return self._apply_command(kind, payload)

        rec.last_activity_timestamp = self._clock()
        return True

    def _apply_command(self, kind: EventKind, payload: Any) -> bool:
        action = resolve_command_action(kind, payload)
        if action == EMERGENCY_ACTION:
            logger.info(f"Emergency {kind.value} received")
            return self.record_event(EventKind.MANUAL_RATING, SELF_REPORT_MAX)
        if action == NAVIGATE_BACK_ACTION:
            return self.record_event(EventKind.NAVIGATION_BACK)

        logger.debug(f"No engine handling for {kind.value} action {action!r}")
        return False

    def tick(self) -> BehaviorRecord:
        """Apply one sampling interval of time-based effects."""
        rec = self._record
        rec.session_duration_seconds += 1
        rec.rapid_click_count = max(0, rec.rapid_click_count - self.config.click_decay_per_tick)
        return rec

    def reset(self) -> None:
        """Zero all counters and start a new epoch."""
        self._record = BehaviorRecord(last_activity_timestamp=self._clock())
        self._epoch += 1
        logger.debug(f"Aggregator reset (epoch {self._epoch})")
