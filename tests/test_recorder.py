"""
test_recorder.py - Crisis session audit trail
"""

import logging

import pytest

from crisis_engine.config import RecorderConfig
from crisis_engine.driver import VirtualClock
from crisis_engine.models.levels import CrisisLevel
from crisis_engine.models.session import (
    CrisisSession, CrisisTrigger, SessionOutcome, TriggerType,
)
from crisis_engine.recorder import (
    JsonlSessionStore, MemorySessionStore, SessionRecorder, SessionStore,
)
from crisis_engine.selector import select


class FailingStore(SessionStore):
    """Store whose writes always fail."""

    def append(self, session):
        raise OSError("disk full")

    def iter_all(self):
        return iter([])


@pytest.fixture
def clock():
    return VirtualClock(100.0)


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def recorder(clock, store):
    return SessionRecorder(store=store, clock=clock)


def change(recorder, level, trigger=None, now=None):
    recorder.on_level_change(level, select(level, 0.0), trigger, now=now)


# =============================================================================
# Session lifecycle
# =============================================================================

class TestSessionLifecycle:

    def test_none_while_idle_is_ignored(self, recorder):
        change(recorder, CrisisLevel.NONE)
        assert recorder.active is None
        assert recorder.episodes == 0

    def test_opens_on_first_crisis_level(self, recorder):
        trigger = CrisisTrigger(type=TriggerType.RAPID_INPUT, value=11, threshold=10)
        change(recorder, CrisisLevel.EMERGENCY, trigger, now=105.0)

        session = recorder.active
        assert session is not None
        assert session.episode_number == 1
        assert session.started_at == 105.0
        assert session.entries[0].trigger.type == TriggerType.RAPID_INPUT
        assert session.entries[0].profile["level"] == "emergency"

    def test_closes_resolved_on_none(self, recorder, store):
        change(recorder, CrisisLevel.SEVERE, now=100.0)
        change(recorder, CrisisLevel.MODERATE, now=110.0)
        change(recorder, CrisisLevel.NONE, now=130.0)

        assert recorder.active is None
        [session] = recorder.recent()
        assert session.outcome == SessionOutcome.RESOLVED
        assert session.duration_seconds == 30.0
        assert session.peak_level == "severe"
        assert [e.level for e in session.entries] == ["severe", "moderate", "none"]
        assert len(store.sessions) == 1

    def test_episode_numbers_increase(self, recorder):
        for _ in range(3):
            change(recorder, CrisisLevel.MILD)
            change(recorder, CrisisLevel.NONE)
        assert [s.episode_number for s in recorder.recent()] == [1, 2, 3]

    def test_history_bounded(self, clock):
        recorder = SessionRecorder(RecorderConfig(history_size=2), clock=clock)
        for _ in range(4):
            change(recorder, CrisisLevel.MILD)
            change(recorder, CrisisLevel.NONE)
        assert [s.episode_number for s in recorder.recent(10)] == [3, 4]
        assert recorder.recent(0) == []

    def test_zero_history_keeps_nothing(self, clock, store):
        recorder = SessionRecorder(RecorderConfig(history_size=0), store=store, clock=clock)
        change(recorder, CrisisLevel.MILD)
        change(recorder, CrisisLevel.NONE)

        assert recorder.recent() == []
        assert recorder.episodes == 1
        assert len(store.sessions) == 1

    def test_disabled_records_nothing(self, clock):
        recorder = SessionRecorder(RecorderConfig(enabled=False), clock=clock)
        change(recorder, CrisisLevel.SEVERE)
        assert recorder.active is None
        assert recorder.rate_effectiveness(1.0) is False


# =============================================================================
# Outcomes and effectiveness
# =============================================================================

class TestOutcomes:

    def test_terminal_outcome_closes(self, recorder):
        change(recorder, CrisisLevel.EMERGENCY)
        closed = recorder.on_manual_outcome(SessionOutcome.TRANSFERRED, "called helpline")

        assert recorder.active is None
        assert closed.outcome == SessionOutcome.TRANSFERRED
        assert closed.user_feedback == "called helpline"

    def test_ongoing_keeps_session_open(self, recorder):
        change(recorder, CrisisLevel.MODERATE)
        assert recorder.on_manual_outcome(SessionOutcome.ONGOING, "still rough") is None
        assert recorder.active.user_feedback == "still rough"
        assert recorder.active.outcome == SessionOutcome.ONGOING

    def test_outcome_without_session(self, recorder):
        assert recorder.on_manual_outcome(SessionOutcome.RESOLVED) is None

    def test_outcome_accepts_string(self, recorder):
        change(recorder, CrisisLevel.MILD)
        closed = recorder.on_manual_outcome("escalated")
        assert closed.outcome == SessionOutcome.ESCALATED

    def test_effectiveness_ratings(self, recorder):
        change(recorder, CrisisLevel.SEVERE)
        assert recorder.rate_effectiveness(0.9, "breathing_prompt")
        assert recorder.rate_effectiveness(0.2, "simplify_option")
        assert recorder.rate_effectiveness(7.0)

        session = recorder.active
        assert [r.score for r in session.effectiveness] == [0.9, 0.2, 1.0]
        assert session.effective_interventions == ["breathing_prompt"]

    def test_rating_without_session(self, recorder):
        assert recorder.rate_effectiveness(0.5) is False


# =============================================================================
# Failure isolation and persistence
# =============================================================================

class TestStores:

    def test_store_failure_logged_not_raised(self, clock, caplog):
        recorder = SessionRecorder(store=FailingStore(), clock=clock)
        with caplog.at_level(logging.WARNING, logger="crisis_engine.recorder"):
            change(recorder, CrisisLevel.SEVERE)
            change(recorder, CrisisLevel.NONE)

        assert "disk full" in caplog.text
        assert len(recorder.recent()) == 1

    def test_bad_input_logged_not_raised(self, recorder, caplog):
        with caplog.at_level(logging.WARNING, logger="crisis_engine.recorder"):
            recorder.on_level_change(42, None)
        assert "Session recording failed" in caplog.text
        assert recorder.active is None

    def test_jsonl_store(self, tmp_path, clock, caplog):
        path = tmp_path / "sessions" / "crisis.jsonl"
        recorder = SessionRecorder(RecorderConfig(store_path=str(path)), clock=clock)
        assert isinstance(recorder.store, JsonlSessionStore)

        change(recorder, CrisisLevel.SEVERE, now=100.0)
        recorder.rate_effectiveness(0.8, "auto_save")
        change(recorder, CrisisLevel.NONE, now=140.0)

        with path.open("a") as f:
            f.write("not json\n")

        with caplog.at_level(logging.WARNING, logger="crisis_engine.recorder"):
            sessions = list(JsonlSessionStore(path).iter_all())

        assert len(sessions) == 1
        assert isinstance(sessions[0], CrisisSession)
        assert sessions[0].duration_seconds == 40.0
        assert sessions[0].effective_interventions == ["auto_save"]
        assert "Failed to parse" in caplog.text

    def test_missing_jsonl_file(self, tmp_path):
        assert list(JsonlSessionStore(tmp_path / "absent.jsonl").iter_all()) == []

    def test_memory_store_keeps_copies(self, recorder, store):
        change(recorder, CrisisLevel.MILD)
        change(recorder, CrisisLevel.NONE)
        recorder.recent()[0].user_feedback = "edited later"
        assert store.sessions[0].user_feedback is None
