"""
Crisis Engine
=============

Wires the pipeline and exposes it to view collaborators:

    events -> SignalAggregator -> BehaviorRecord
           -> FogEstimator (score) + CrisisClassifier (raw level)
           -> TransitionController (stabilized level)
           -> AdaptationSelector (profile)
           -> subscribers, SessionRecorder

Single logical thread of control: event handlers, tick(), deactivate()
and reset() all serialize on one re-entrant lock. Subscribers are
called synchronously, in registration order, only when the stabilized
level or the profile actually changes. A change caused from inside a
subscriber is queued and delivered after the current one has reached
every subscriber.
"""

from __future__ import annotations

import time
import threading
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple, TYPE_CHECKING

from crisis_engine.aggregator import SignalAggregator
from crisis_engine.classifier import ClassificationResult, CrisisClassifier
from crisis_engine.config import EngineConfig
from crisis_engine.fog import FogEstimator, fog_band
from crisis_engine.models.levels import CrisisLevel, FogBand, StressTrend
from crisis_engine.models.profile import AdaptationProfile, NEUTRAL_PROFILE
from crisis_engine.models.record import BehaviorRecord
from crisis_engine.models.session import (
    CrisisSession, CrisisTrigger, SessionOutcome, TriggerType,
)
from crisis_engine.recorder import SessionRecorder, SessionStore
from crisis_engine.selector import AdaptationSelector
from crisis_engine.transitions import PendingDeescalation, TransitionController

if TYPE_CHECKING:
    from crisis_engine.driver import TickDriver

logger = logging.getLogger(__name__)

Subscriber = Callable[[CrisisLevel, float, AdaptationProfile], None]
Delivery = Tuple[CrisisLevel, float, AdaptationProfile]

TREND_WORSENING_ABOVE = 0.6
TREND_TOLERANCE = 0.05


@dataclass
class EngineSnapshot:
    """Point-in-time view of the whole pipeline."""
    timestamp: float
    record: BehaviorRecord
    raw_level: CrisisLevel
    level: CrisisLevel
    fog_score: float
    fog_band: FogBand
    profile: AdaptationProfile
    trend: StressTrend = StressTrend.STABLE
    triggers: List[CrisisTrigger] = field(default_factory=list)
    pending: Optional[PendingDeescalation] = None
    tick_count: int = 0
    active_session_id: Optional[str] = None
    stopped: bool = False
    detection_enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "record": self.record.to_dict(),
            "raw_level": self.raw_level.label,
            "level": self.level.label,
            "fog_score": round(self.fog_score, 4),
            "fog_band": self.fog_band.value,
            "profile": self.profile.to_dict(),
            "trend": self.trend.value,
            "triggers": [t.model_dump(mode="json") for t in self.triggers],
            "pending": None if self.pending is None else {
                "target": self.pending.target.label,
                "due_at": self.pending.due_at,
            },
            "tick_count": self.tick_count,
            "active_session_id": self.active_session_id,
            "stopped": self.stopped,
            "detection_enabled": self.detection_enabled,
        }


class CrisisEngine:
    """
    Behavioral crisis detection and adaptive-interface engine.

    Holds no durable state: a fresh engine always starts at level none
    with the neutral profile.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        clock: Optional[Callable[[], float]] = None,
        store: Optional[SessionStore] = None,
    ):
        self.config = (config or EngineConfig()).validate()
        self._clock = clock or time.time
        self._lock = threading.RLock()

        self.aggregator = SignalAggregator(self.config.aggregator, clock=self._clock)
        self.fog = FogEstimator(self.config.fog)
        self.classifier = CrisisClassifier.from_config(self.config.classifier)
        self.controller = TransitionController(self.config.transitions)
        self.selector = AdaptationSelector(self.config.selector, self.config.fog)
        self.recorder = SessionRecorder(self.config.recorder, store=store, clock=self._clock)

        self._subscribers: List[Subscriber] = []
        # changes published from inside a subscriber wait here for the outer loop
        self._deliveries: Deque[Delivery] = deque()
        self._delivering = False
        self._level = CrisisLevel.NONE
        self._profile = NEUTRAL_PROFILE
        self._result = ClassificationResult()

        self._ticks = 0
        self._fog_samples: Deque[float] = deque(maxlen=max(2, self.config.scheduling.trend_history))
        self._trend = StressTrend.STABLE

        self._detection_enabled = self.config.detection.enabled
        self._stopped = False
        self._driver: Optional[TickDriver] = None

    # =========================================================================
    # Read side
    # =========================================================================

    @property
    def level(self) -> CrisisLevel:
        """Stabilized level last delivered to subscribers."""
        return self._level

    @property
    def profile(self) -> AdaptationProfile:
        return self._profile

    @property
    def fog_score(self) -> float:
        return self.fog.score

    @property
    def trend(self) -> StressTrend:
        return self._trend

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def detection_enabled(self) -> bool:
        return self._detection_enabled

    def now(self) -> float:
        return self._clock()

    def snapshot(self) -> EngineSnapshot:
        with self._lock:
            active = self.recorder.active
            return EngineSnapshot(
                timestamp=self._clock(),
                record=self.aggregator.snapshot(),
                raw_level=self.controller.raw_level,
                level=self._level,
                fog_score=self.fog.score,
                fog_band=fog_band(self.fog.score, self.config.fog),
                profile=self._profile,
                trend=self._trend,
                triggers=list(self._result.triggers),
                pending=self.controller.pending,
                tick_count=self._ticks,
                active_session_id=active.id if active else None,
                stopped=self._stopped,
                detection_enabled=self._detection_enabled,
            )

    def recent_sessions(self, n: int = 10) -> List[CrisisSession]:
        return self.recorder.recent(n)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, callback: Subscriber, replay: bool = False) -> Callable[[], None]:
        """Register for (level, fog_score, profile) on every stabilized change.

        With replay=True the callback immediately receives the current
        triple. Returns a function that removes the subscription.
        """
        with self._lock:
            self._subscribers.append(callback)
            if replay:
                self._deliver(callback, (self._level, self.fog.score, self._profile))

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # =========================================================================
    # Inputs
    # =========================================================================

    def record_event(self, kind: Any, payload: Any = None) -> bool:
        """Forward one collaborator event to the aggregator."""
        with self._lock:
            if self._stopped:
                logger.debug(f"Engine stopped, dropping event {kind!r}")
                return False
            if not self._detection_enabled:
                logger.debug(f"Detection disabled, dropping event {kind!r}")
                return False
            return self.aggregator.record_event(kind, payload)

    def tick(self, now: Optional[float] = None) -> EngineSnapshot:
        """Advance one sampling interval and re-evaluate."""
        with self._lock:
            if self._stopped:
                logger.debug("Engine stopped, ignoring tick")
                return self.snapshot()
            if not self._detection_enabled:
                return self.snapshot()

            now = self._clock() if now is None else now
            self._ticks += 1

            record = self.aggregator.tick()
            score = self.fog.update(record)
            self._result = self.classifier.explain(record)
            previous = self._level
            level = self.controller.observe(self._result.level, now)

            if self._ticks % self.config.scheduling.evaluation_interval_ticks == 0:
                self._evaluate_trend(score)

            self._publish(level, self._trigger_for(previous, level), now)
            return self.snapshot()

    def deactivate(self, now: Optional[float] = None) -> None:
        """Manual override ("exit crisis mode"): force none immediately.

        Raw signals are left untouched, so the next tick re-escalates if
        they still warrant it.
        """
        with self._lock:
            if self._stopped:
                return
            now = self._clock() if now is None else now
            level = self.controller.deactivate(now)
            trigger = CrisisTrigger(type=TriggerType.MANUAL_OVERRIDE, context="deactivate")
            self._publish(level, trigger, now)

    def report_outcome(
        self,
        outcome: SessionOutcome,
        feedback: Optional[str] = None,
    ) -> Optional[CrisisSession]:
        """Tag the active crisis session (resolved/escalated/transferred/ongoing)."""
        with self._lock:
            return self.recorder.on_manual_outcome(outcome, feedback, now=self._clock())

    def rate_effectiveness(self, score: float, intervention: Optional[str] = None) -> bool:
        with self._lock:
            return self.recorder.rate_effectiveness(score, intervention)

    def set_detection_enabled(self, enabled: bool) -> None:
        """Pause or resume detection.

        While paused, events are dropped and ticks do not advance the
        pipeline. The current level, profile and subscribers are kept;
        call deactivate() to also leave crisis mode.
        """
        with self._lock:
            if enabled == self._detection_enabled:
                return
            self._detection_enabled = enabled
            logger.info(f"Crisis detection {'enabled' if enabled else 'disabled'}")

    def reset(self, now: Optional[float] = None) -> None:
        """Zero the record and return every stage to its initial state."""
        with self._lock:
            now = self._clock() if now is None else now
            self.aggregator.reset()
            self.fog.reset()
            self.controller.reset()
            self._result = ClassificationResult()
            self._fog_samples.clear()
            self._trend = StressTrend.STABLE
            trigger = CrisisTrigger(type=TriggerType.RESET, context="reset")
            if not self._stopped:
                self._publish(CrisisLevel.NONE, trigger, now)
            else:
                self._level = CrisisLevel.NONE
                self._profile = NEUTRAL_PROFILE

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self, interval: Optional[float] = None) -> TickDriver:
        """Tick on a background thread at the configured cadence."""
        from crisis_engine.driver import TickDriver

        if self._stopped:
            raise RuntimeError("Engine has been stopped")
        if self._driver is None:
            self._driver = TickDriver(
                self, interval or self.config.scheduling.tick_interval_s,
            )
        self._driver.start()
        return self._driver

    def stop(self) -> None:
        """Tear down: stop ticking and drop every subscriber."""
        driver = self._driver
        if driver is not None:
            driver.stop()
        with self._lock:
            self._stopped = True
            self._driver = None
            dropped = len(self._subscribers)
            self._subscribers.clear()
        logger.info(f"Crisis engine stopped ({dropped} subscribers released)")

    # =========================================================================
    # Internals
    # =========================================================================

    def _trigger_for(self, previous: CrisisLevel, level: CrisisLevel) -> Optional[CrisisTrigger]:
        if level > previous:
            return self._result.primary_trigger
        if level < previous:
            if level == CrisisLevel.NONE:
                return CrisisTrigger(type=TriggerType.SIGNALS_CLEARED, context="quiet period elapsed")
            return self._result.primary_trigger or CrisisTrigger(type=TriggerType.SIGNALS_CLEARED)
        return None

    def _publish(self, level: CrisisLevel, trigger: Optional[CrisisTrigger], now: float) -> None:
        profile = self.selector.select(level, self.fog.score)
        level_changed = level != self._level
        if not level_changed and profile == self._profile:
            return

        self._level = level
        self._profile = profile

        if level_changed:
            self.recorder.on_level_change(level, profile, trigger, now=now)

        self._deliveries.append((level, self.fog.score, profile))
        if self._delivering:
            return

        # Every subscriber sees one change before any subscriber sees the next.
        self._delivering = True
        try:
            while self._deliveries:
                delivery = self._deliveries.popleft()
                for callback in list(self._subscribers):
                    self._deliver(callback, delivery)
        finally:
            self._delivering = False

    def _deliver(self, callback: Subscriber, delivery: Delivery) -> None:
        try:
            callback(*delivery)
        except Exception as e:
            logger.exception(f"Subscriber callback error: {e}")

    def _evaluate_trend(self, score: float) -> None:
        previous = self._fog_samples[-1] if self._fog_samples else None
        self._fog_samples.append(score)

        if score > TREND_WORSENING_ABOVE:
            trend = StressTrend.WORSENING
        elif previous is None:
            trend = StressTrend.STABLE
        elif score - previous > TREND_TOLERANCE:
            trend = StressTrend.WORSENING
        elif previous - score > TREND_TOLERANCE:
            trend = StressTrend.IMPROVING
        else:
            trend = StressTrend.STABLE

        if trend != self._trend:
            logger.debug(f"Stress trend {self._trend.value} -> {trend.value} (fog {score:.2f})")
        self._trend = trend
