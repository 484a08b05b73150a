"""
Crisis Level Classifier
=======================

Maps a BehaviorRecord to one of five crisis levels.

Rules are evaluated from most to least severe and the first match wins;
there is no cumulative scoring across rules. A manual self-report can
only raise the result, never lower it:

    emergency  rapid clicks > 10 or reversals > 8
    severe     rapid clicks > 7  or reversals > 5 or errors > 5
    moderate   rapid clicks > 4  or reversals > 3 or errors > 3
    mild       rapid clicks > 2  or errors > 1    or session > 300 s
    none       otherwise

    self-report >= 8  -> at least emergency
    self-report >= 6  -> at least severe

Stateless: the same record always yields the same level.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from typing import List, Optional, Tuple

from crisis_engine.config import ClassifierConfig, SENSITIVITIES
from crisis_engine.models.levels import CrisisLevel
from crisis_engine.models.record import BehaviorRecord
from crisis_engine.models.session import CrisisTrigger, TriggerType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassifierThresholds:
    """Strict lower bounds: a counter must exceed the value to fire."""
    emergency_rapid_clicks: int = 10
    emergency_reversals: int = 8

    severe_rapid_clicks: int = 7
    severe_reversals: int = 5
    severe_errors: int = 5

    moderate_rapid_clicks: int = 4
    moderate_reversals: int = 3
    moderate_errors: int = 3

    mild_rapid_clicks: int = 2
    mild_errors: int = 1
    mild_session_seconds: int = 300

    # Inclusive: a report at or above the value raises the level
    self_report_emergency: int = 8
    self_report_severe: int = 6

    @classmethod
    def for_sensitivity(cls, sensitivity: str = "medium") -> ClassifierThresholds:
        """Preset thresholds. medium is the reference table."""
        base = cls()
        if sensitivity == "medium":
            return base
        if sensitivity not in SENSITIVITIES:
            raise ValueError(f"Unknown sensitivity: {sensitivity!r}")

        shift = 2 if sensitivity == "low" else -1
        counts = {
            f.name: max(0, getattr(base, f.name) + shift)
            for f in fields(cls)
            if not f.name.startswith("self_report") and f.name != "mild_session_seconds"
        }
        session = 600 if sensitivity == "low" else 180
        return replace(base, mild_session_seconds=session, **counts)

    @classmethod
    def from_config(cls, config: Optional[ClassifierConfig] = None) -> ClassifierThresholds:
        config = config or ClassifierConfig()
        thresholds = cls.for_sensitivity(config.sensitivity)
        known = {f.name for f in fields(cls)}
        overrides = {}
        for key, value in config.overrides.items():
            if key not in known:
                logger.warning(f"Ignoring unknown threshold override: {key}")
                continue
            overrides[key] = int(value)
        return replace(thresholds, **overrides)


# (trigger type, record attribute, threshold attribute) per level,
# most severe first.
_Rule = Tuple[TriggerType, str, str]

RULES: List[Tuple[CrisisLevel, List[_Rule]]] = [
    (CrisisLevel.EMERGENCY, [
        (TriggerType.RAPID_INPUT, "rapid_click_count", "emergency_rapid_clicks"),
        (TriggerType.EMOTIONAL_DISTRESS, "navigation_reversal_count", "emergency_reversals"),
    ]),
    (CrisisLevel.SEVERE, [
        (TriggerType.RAPID_INPUT, "rapid_click_count", "severe_rapid_clicks"),
        (TriggerType.EMOTIONAL_DISTRESS, "navigation_reversal_count", "severe_reversals"),
        (TriggerType.ERROR_PATTERN, "error_event_count", "severe_errors"),
    ]),
    (CrisisLevel.MODERATE, [
        (TriggerType.RAPID_INPUT, "rapid_click_count", "moderate_rapid_clicks"),
        (TriggerType.EMOTIONAL_DISTRESS, "navigation_reversal_count", "moderate_reversals"),
        (TriggerType.ERROR_PATTERN, "error_event_count", "moderate_errors"),
    ]),
    (CrisisLevel.MILD, [
        (TriggerType.RAPID_INPUT, "rapid_click_count", "mild_rapid_clicks"),
        (TriggerType.ERROR_PATTERN, "error_event_count", "mild_errors"),
        (TriggerType.TIME_PRESSURE, "session_duration_seconds", "mild_session_seconds"),
    ]),
]


@dataclass
class ClassificationResult:
    """Level plus the triggers that produced it, dominant first."""
    level: CrisisLevel = CrisisLevel.NONE
    triggers: List[CrisisTrigger] = field(default_factory=list)

    @property
    def primary_trigger(self) -> Optional[CrisisTrigger]:
        return self.triggers[0] if self.triggers else None


class CrisisClassifier:
    """Ordered threshold rules over the behavior record."""

    def __init__(self, thresholds: Optional[ClassifierThresholds] = None):
        self.thresholds = thresholds or ClassifierThresholds()

    @classmethod
    def from_config(cls, config: Optional[ClassifierConfig] = None) -> CrisisClassifier:
        return cls(ClassifierThresholds.from_config(config))

    def classify(self, record: BehaviorRecord) -> CrisisLevel:
        return self.explain(record).level

    def explain(self, record: BehaviorRecord) -> ClassificationResult:
        """Classify and report which rules fired."""
        result = ClassificationResult()
        t = self.thresholds

        for level, rules in RULES:
            fired = []
            for trigger_type, attr, threshold_attr in rules:
                value = max(0, getattr(record, attr))
                threshold = getattr(t, threshold_attr)
                if value > threshold:
                    fired.append(CrisisTrigger(
                        type=trigger_type,
                        value=float(value),
                        threshold=float(threshold),
                        context=f"{attr} {value} > {threshold}",
                    ))
            if fired:
                result.level = level
                result.triggers = fired
                break

        report = record.manual_self_report
        if report is None:
            return result

        floor = CrisisLevel.NONE
        threshold = 0
        if report >= t.self_report_emergency:
            floor, threshold = CrisisLevel.EMERGENCY, t.self_report_emergency
        elif report >= t.self_report_severe:
            floor, threshold = CrisisLevel.SEVERE, t.self_report_severe

        if floor > result.level:
            result.level = floor
            result.triggers.insert(0, CrisisTrigger(
                type=TriggerType.SELF_REPORT,
                value=float(report),
                threshold=float(threshold),
                context=f"self-report {report}/10",
            ))
        return result
