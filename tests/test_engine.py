"""
test_engine.py - End-to-end pipeline behavior

Drives the engine with a virtual clock: events in, stabilized
(level, fog, profile) triples out.

Run with: pytest tests/test_engine.py -v
"""

import logging

import pytest

from crisis_engine.config import DetectionConfig, EngineConfig, SchedulingConfig
from crisis_engine.engine import CrisisEngine
from crisis_engine.models.levels import CrisisLevel, FogBand, StressTrend
from crisis_engine.models.profile import NEUTRAL_PROFILE, Feature
from crisis_engine.models.record import EventKind
from crisis_engine.models.session import SessionOutcome, TriggerType


def send(engine, kind, n=1, payload=None):
    for _ in range(n):
        engine.record_event(kind, payload)


# =============================================================================
# Initial state
# =============================================================================

class TestInitialState:

    def test_fresh_engine_is_neutral(self, engine):
        snap = engine.snapshot()
        assert snap.level == CrisisLevel.NONE
        assert snap.raw_level == CrisisLevel.NONE
        assert snap.profile == NEUTRAL_PROFILE
        assert snap.fog_band == FogBand.CLEAR
        assert snap.trend == StressTrend.STABLE
        assert snap.active_session_id is None

    def test_quiet_ticks_publish_nothing(self, engine, collector, run_ticks):
        run_ticks(5)
        assert collector.calls == []

    def test_replay_on_subscribe(self, engine):
        calls = []
        engine.subscribe(lambda *args: calls.append(args), replay=True)
        assert calls == [(CrisisLevel.NONE, 0.0, NEUTRAL_PROFILE)]


# =============================================================================
# Escalation and publication
# =============================================================================

class TestPublication:

    def test_escalation_published_on_same_tick(self, engine, collector, run_ticks):
        send(engine, EventKind.CLICK, 12)
        snap = run_ticks(1)

        assert snap.level == CrisisLevel.EMERGENCY
        level, fog, profile = collector.calls[-1]
        assert level == CrisisLevel.EMERGENCY
        assert fog == pytest.approx(0.11)
        assert profile.level == CrisisLevel.EMERGENCY
        assert profile.shows(Feature.EMERGENCY_CONTACTS)

    def test_publishes_only_on_change(self, engine, collector, run_ticks):
        send(engine, EventKind.RUNTIME_ERROR, 6)
        run_ticks(1)
        assert collector.levels == [CrisisLevel.SEVERE]

        run_ticks(10)
        assert len(collector.calls) == 1

    def test_fog_change_republishes_profile(self, engine, collector, run_ticks):
        send(engine, EventKind.RUNTIME_ERROR, 2)
        run_ticks(1)
        send(engine, EventKind.HELP_REQUEST, 5)
        run_ticks(1)

        assert collector.levels == [CrisisLevel.MILD, CrisisLevel.MILD]
        assert collector.calls[1][2].touch_target_multiplier > collector.calls[0][2].touch_target_multiplier

    def test_self_report_escalates(self, engine, run_ticks):
        engine.record_event(EventKind.MANUAL_RATING, 9)
        snap = run_ticks(1)
        assert snap.level == CrisisLevel.EMERGENCY
        assert snap.triggers[0].type == TriggerType.SELF_REPORT

    def test_voice_emergency_escalates(self, engine, run_ticks):
        engine.record_event(EventKind.VOICE_COMMAND, {"phrase": "help me"})
        assert run_ticks(1).level == CrisisLevel.EMERGENCY

    def test_failing_subscriber_isolated(self, engine, collector, run_ticks, caplog):
        def broken(level, fog, profile):
            raise RuntimeError("view crashed")

        engine.subscribe(broken)
        late = []
        engine.subscribe(lambda *args: late.append(args))

        send(engine, EventKind.RUNTIME_ERROR, 6)
        with caplog.at_level(logging.ERROR, logger="crisis_engine.engine"):
            run_ticks(1)

        assert "view crashed" in caplog.text
        assert collector.levels == [CrisisLevel.SEVERE]
        assert len(late) == 1

    def test_unsubscribe(self, engine, run_ticks):
        calls = []
        unsubscribe = engine.subscribe(lambda *args: calls.append(args))
        unsubscribe()
        unsubscribe()
        send(engine, EventKind.RUNTIME_ERROR, 6)
        run_ticks(1)
        assert calls == []

    def test_change_from_inside_subscriber_delivered_in_order(self, engine, collector, run_ticks):
        def exit_button(level, fog, profile):
            if level == CrisisLevel.SEVERE:
                engine.deactivate()

        later = []
        engine.subscribe(exit_button)
        engine.subscribe(lambda level, fog, profile: later.append((level, profile.level)))

        send(engine, EventKind.RUNTIME_ERROR, 6)
        run_ticks(1)

        assert engine.level == CrisisLevel.NONE
        assert collector.levels == [CrisisLevel.SEVERE, CrisisLevel.NONE]
        assert later == [
            (CrisisLevel.SEVERE, CrisisLevel.SEVERE),
            (CrisisLevel.NONE, CrisisLevel.NONE),
        ]


# =============================================================================
# De-escalation
# =============================================================================

class TestDeescalation:

    def test_holds_level_through_quiet_period(self, engine, run_ticks):
        send(engine, EventKind.CLICK, 9)
        assert run_ticks(1).level == CrisisLevel.SEVERE

        snap = run_ticks(4)
        assert snap.level == CrisisLevel.SEVERE
        assert snap.raw_level < CrisisLevel.SEVERE
        assert snap.pending is not None

        assert run_ticks(20).level == CrisisLevel.NONE

    def test_session_closed_after_recovery(self, engine, store, run_ticks):
        send(engine, EventKind.CLICK, 9)
        run_ticks(30)

        [session] = engine.recent_sessions()
        assert session.outcome == SessionOutcome.RESOLVED
        assert session.peak_level == "severe"
        assert session.entries[0].trigger.type == TriggerType.RAPID_INPUT
        assert session.entries[-1].trigger.type == TriggerType.SIGNALS_CLEARED
        assert len(store.sessions) == 1


# =============================================================================
# Manual override, outcomes, reset
# =============================================================================

class TestManualControls:

    def test_deactivate_publishes_none_immediately(self, engine, collector, run_ticks):
        send(engine, EventKind.RUNTIME_ERROR, 6)
        run_ticks(1)

        engine.deactivate()

        assert engine.level == CrisisLevel.NONE
        assert collector.levels == [CrisisLevel.SEVERE, CrisisLevel.NONE]
        [session] = engine.recent_sessions()
        assert session.entries[-1].trigger.type == TriggerType.MANUAL_OVERRIDE

    def test_persisting_signals_reescalate(self, engine, run_ticks):
        send(engine, EventKind.RUNTIME_ERROR, 6)
        run_ticks(1)
        engine.deactivate()

        assert run_ticks(1).level == CrisisLevel.SEVERE
        assert engine.recorder.episodes == 2

    def test_report_outcome(self, engine, run_ticks):
        engine.record_event(EventKind.MANUAL_RATING, 10)
        run_ticks(1)
        assert engine.rate_effectiveness(0.75, "breathing_prompt")

        closed = engine.report_outcome(SessionOutcome.TRANSFERRED, "spoke to counselor")

        assert closed.outcome == SessionOutcome.TRANSFERRED
        assert closed.effective_interventions == ["breathing_prompt"]
        assert engine.snapshot().active_session_id is None

    def test_reset_returns_to_neutral(self, engine, collector, run_ticks):
        send(engine, EventKind.CLICK, 12)
        engine.record_event(EventKind.MANUAL_RATING, 9)
        run_ticks(1)

        engine.reset()

        snap = engine.snapshot()
        assert snap.level == CrisisLevel.NONE
        assert snap.profile == NEUTRAL_PROFILE
        assert snap.record.rapid_click_count == 0
        assert snap.record.manual_self_report is None
        assert collector.levels[-1] == CrisisLevel.NONE

    def test_reset_then_classify_is_none(self, engine):
        engine.reset()
        assert engine.classifier.classify(engine.aggregator.snapshot()) == CrisisLevel.NONE


# =============================================================================
# Trend
# =============================================================================

class TestTrend:

    def test_worsening_then_stable(self, clock):
        config = EngineConfig(scheduling=SchedulingConfig(evaluation_interval_ticks=2))
        engine = CrisisEngine(config, clock=clock)

        engine.tick()
        engine.tick()
        assert engine.trend == StressTrend.STABLE

        send(engine, EventKind.RUNTIME_ERROR, 5)
        engine.tick()
        engine.tick()
        assert engine.trend == StressTrend.WORSENING

        engine.tick()
        engine.tick()
        assert engine.trend == StressTrend.STABLE

    def test_improving_as_clicks_decay(self, engine):
        send(engine, EventKind.CLICK, 20)
        for _ in range(20):
            engine.tick()
        assert engine.trend == StressTrend.IMPROVING

    def test_high_fog_is_worsening(self, clock):
        config = EngineConfig(scheduling=SchedulingConfig(evaluation_interval_ticks=1))
        engine = CrisisEngine(config, clock=clock)
        send(engine, EventKind.RUNTIME_ERROR, 35)
        engine.tick()
        engine.tick()
        assert engine.snapshot().trend == StressTrend.WORSENING


# =============================================================================
# Detection on/off
# =============================================================================

class TestDetectionSwitch:

    def test_disabled_by_config(self, clock):
        config = EngineConfig(detection=DetectionConfig(enabled=False))
        engine = CrisisEngine(config, clock=clock)
        calls = []
        engine.subscribe(lambda *args: calls.append(args))

        assert engine.record_event(EventKind.CLICK) is False
        send(engine, EventKind.RUNTIME_ERROR, 6)
        snap = engine.tick()

        assert snap.level == CrisisLevel.NONE
        assert snap.record.error_event_count == 0
        assert snap.tick_count == 0
        assert not snap.detection_enabled
        assert calls == []
        assert engine.subscriber_count == 1

    def test_pause_keeps_level_and_subscribers(self, engine, collector, run_ticks):
        send(engine, EventKind.CLICK, 9)
        run_ticks(1)

        engine.set_detection_enabled(False)
        run_ticks(20)

        assert engine.level == CrisisLevel.SEVERE
        assert collector.levels == [CrisisLevel.SEVERE]
        assert engine.subscriber_count == 1

    def test_resume_detects_again(self, engine, collector, run_ticks):
        engine.set_detection_enabled(False)
        send(engine, EventKind.CLICK, 12)
        run_ticks(1)
        assert collector.calls == []

        engine.set_detection_enabled(True)
        send(engine, EventKind.CLICK, 12)
        assert run_ticks(1).level == CrisisLevel.EMERGENCY
        assert collector.levels == [CrisisLevel.EMERGENCY]


# =============================================================================
# Teardown
# =============================================================================

class TestStop:

    def test_stop_releases_subscribers_and_ignores_input(self, engine, collector, run_ticks):
        engine.stop()

        assert engine.subscriber_count == 0
        assert engine.record_event(EventKind.RUNTIME_ERROR) is False
        snap = run_ticks(3)
        assert snap.tick_count == 0
        assert snap.stopped
        assert collector.calls == []

    def test_start_after_stop_rejected(self, engine):
        engine.stop()
        with pytest.raises(RuntimeError):
            engine.start()

    def test_snapshot_to_dict(self, engine, run_ticks):
        send(engine, EventKind.CLICK, 9)
        data = run_ticks(2).to_dict()
        assert data["level"] == "severe"
        assert data["pending"]["target"] in ("none", "mild", "moderate")
        assert data["triggers"][0]["type"] == "rapid_input"
