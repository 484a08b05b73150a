"""
Behavior Record
===============

Rolling record of interaction telemetry.

Owned and mutated exclusively by the SignalAggregator; every other
component reads it (or a copy of it).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional


SELF_REPORT_MIN = 1
SELF_REPORT_MAX = 10


class EventKind(str, Enum):
    """Input events accepted from view collaborators."""
    CLICK = "click"
    NAVIGATION_BACK = "navigation-back"
    RUNTIME_ERROR = "runtime-error"
    MANUAL_RATING = "manual-rating"
    HELP_REQUEST = "help-request"
    VOICE_COMMAND = "voice-command"
    GESTURE = "gesture"


@dataclass
class BehaviorRecord:
    """Counters and timestamps describing the current session."""
    rapid_click_count: int = 0
    navigation_reversal_count: int = 0
    error_event_count: int = 0
    session_duration_seconds: int = 0
    help_request_count: int = 0
    manual_self_report: Optional[int] = None
    last_activity_timestamp: float = field(default_factory=time.time)

    def copy(self) -> BehaviorRecord:
        return replace(self)

    def is_valid(self) -> bool:
        """Check the record invariants."""
        counters = (
            self.rapid_click_count,
            self.navigation_reversal_count,
            self.error_event_count,
            self.session_duration_seconds,
            self.help_request_count,
        )
        if any(c < 0 for c in counters):
            return False
        if self.manual_self_report is None:
            return True
        return SELF_REPORT_MIN <= self.manual_self_report <= SELF_REPORT_MAX

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rapid_click_count": self.rapid_click_count,
            "navigation_reversal_count": self.navigation_reversal_count,
            "error_event_count": self.error_event_count,
            "session_duration_seconds": self.session_duration_seconds,
            "help_request_count": self.help_request_count,
            "manual_self_report": self.manual_self_report,
            "last_activity_timestamp": self.last_activity_timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BehaviorRecord:
        return cls(
            rapid_click_count=max(0, int(data.get("rapid_click_count", 0))),
            navigation_reversal_count=max(0, int(data.get("navigation_reversal_count", 0))),
            error_event_count=max(0, int(data.get("error_event_count", 0))),
            session_duration_seconds=max(0, int(data.get("session_duration_seconds", 0))),
            help_request_count=max(0, int(data.get("help_request_count", 0))),
            manual_self_report=_clamp_report(data.get("manual_self_report")),
            last_activity_timestamp=data.get("last_activity_timestamp", time.time()),
        )


def _clamp_report(value: Any) -> Optional[int]:
    if value is None:
        return None
    return max(SELF_REPORT_MIN, min(SELF_REPORT_MAX, int(value)))
