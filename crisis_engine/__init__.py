"""
Crisis Engine
=============

Behavioral crisis detection and adaptive-interface engine.

Infers user distress from interaction telemetry and publishes an
adaptation profile that views apply to themselves.

Pipeline:
    SignalAggregator     - Folds raw events into the BehaviorRecord
    FogEstimator         - Continuous cognitive-load score in [0, 1]
    CrisisClassifier     - Threshold rules -> five-level crisis scale
    TransitionController - Immediate escalation, quiet-period de-escalation
    AdaptationSelector   - (level, fog) -> AdaptationProfile
    SessionRecorder      - Audit trail of crisis sessions

CrisisEngine wires the stages together behind a subscribe() API.
"""

from crisis_engine.models.levels import CrisisLevel, FogBand, StressTrend
from crisis_engine.models.record import BehaviorRecord, EventKind
from crisis_engine.models.profile import (
    AdaptationProfile, Feature, ColorAdjustment, ConfirmationPolicy, NEUTRAL_PROFILE,
)
from crisis_engine.models.session import (
    CrisisSession, CrisisTrigger, SessionOutcome, TriggerType,
)

from crisis_engine.config import EngineConfig, load_engine_config
from crisis_engine.aggregator import SignalAggregator
from crisis_engine.fog import FogEstimator
from crisis_engine.classifier import CrisisClassifier, ClassifierThresholds
from crisis_engine.transitions import TransitionController, PendingDeescalation
from crisis_engine.selector import AdaptationSelector
from crisis_engine.recorder import SessionRecorder, SessionStore, JsonlSessionStore
from crisis_engine.engine import CrisisEngine, EngineSnapshot
from crisis_engine.driver import TickDriver, VirtualClock

__all__ = [
    # Models
    "CrisisLevel", "FogBand", "StressTrend",
    "BehaviorRecord", "EventKind",
    "AdaptationProfile", "Feature", "ColorAdjustment", "ConfirmationPolicy",
    "NEUTRAL_PROFILE",
    "CrisisSession", "CrisisTrigger", "SessionOutcome", "TriggerType",
    # Config
    "EngineConfig", "load_engine_config",
    # Pipeline
    "SignalAggregator",
    "FogEstimator",
    "CrisisClassifier", "ClassifierThresholds",
    "TransitionController", "PendingDeescalation",
    "AdaptationSelector",
    "SessionRecorder", "SessionStore", "JsonlSessionStore",
    # Hosting
    "CrisisEngine", "EngineSnapshot",
    "TickDriver", "VirtualClock",
]

__version__ = "0.1.0"
