"""Session Recorder - audit trail of crisis sessions.

Taps every stabilized change and keeps a CrisisSession per excursion
away from level none. Recording is best-effort: any failure is logged
as a warning and swallowed at this boundary, so audit problems never
reach the classification/adaptation path. Nothing here feeds back into
classification.
"""

from __future__ import annotations

import json
import time
import logging
from abc import ABC, abstractmethod
from collections import deque
from pathlib import Path
from typing import Callable, Deque, Iterator, List, Optional

from crisis_engine.config import RecorderConfig
from crisis_engine.models.levels import CrisisLevel
from crisis_engine.models.profile import AdaptationProfile
from crisis_engine.models.session import (
    CrisisSession, CrisisTrigger, EffectivenessRating, SessionEntry, SessionOutcome,
)

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Destination for closed sessions, supplied by a collaborator."""

    @abstractmethod
    def append(self, session: CrisisSession) -> None:
        ...

    @abstractmethod
    def iter_all(self) -> Iterator[CrisisSession]:
        ...


class MemorySessionStore(SessionStore):
    """Keeps closed sessions in a list."""

    def __init__(self):
        self.sessions: List[CrisisSession] = []

    def append(self, session: CrisisSession) -> None:
        self.sessions.append(session.model_copy(deep=True))

    def iter_all(self) -> Iterator[CrisisSession]:
        return iter(list(self.sessions))


class JsonlSessionStore(SessionStore):
    """Appends one JSON line per closed session."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def append(self, session: CrisisSession) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(session.model_dump_json() + "\n")

    def iter_all(self) -> Iterator[CrisisSession]:
        """Yield stored sessions, skipping lines that do not parse."""
        if not self.path.exists():
            return

        with self.path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    yield CrisisSession(**json.loads(line))
                except Exception as e:
                    logger.warning(f"Failed to parse session line: {e}")
                    continue


class SessionRecorder:
    """
    Opens, appends to, and closes CrisisSessions.

    A session opens on the first stabilized level above none and closes
    when the stabilized level returns to none (which already includes
    the quiet period) or when a terminal outcome is reported.
    """

    def __init__(
        self,
        config: Optional[RecorderConfig] = None,
        store: Optional[SessionStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or RecorderConfig()
        self._clock = clock
        if store is None and self.config.get_store_path() is not None:
            store = JsonlSessionStore(self.config.get_store_path())
        self.store = store

        self._active: Optional[CrisisSession] = None
        self._history: Deque[CrisisSession] = deque(maxlen=self.config.history_size)
        self._episodes = 0

    @property
    def active(self) -> Optional[CrisisSession]:
        return self._active

    @property
    def episodes(self) -> int:
        """Sessions opened so far."""
        return self._episodes

    def recent(self, n: int = 10) -> List[CrisisSession]:
        """Most recently closed sessions, oldest first."""
        if n <= 0:
            return []
        return list(self._history)[-n:]

    def on_level_change(
        self,
        level: CrisisLevel,
        profile: AdaptationProfile,
        trigger: Optional[CrisisTrigger] = None,
        now: Optional[float] = None,
    ) -> None:
        """Append a stabilized change, opening or closing sessions as needed."""
        if not self.config.enabled:
            return
        try:
            self._on_level_change(CrisisLevel(level), profile, trigger, now)
        except Exception as e:
            logger.warning(f"Session recording failed: {e}")

    def on_manual_outcome(
        self,
        outcome: SessionOutcome,
        feedback: Optional[str] = None,
        now: Optional[float] = None,
    ) -> Optional[CrisisSession]:
        """Tag the active session; terminal outcomes close it.

        Returns the closed session, if any.
        """
        if not self.config.enabled:
            return None
        try:
            return self._on_manual_outcome(SessionOutcome(outcome), feedback, now)
        except Exception as e:
            logger.warning(f"Recording outcome failed: {e}")
            return None

    def rate_effectiveness(self, score: float, intervention: Optional[str] = None) -> bool:
        """Attach a 0-1 effectiveness rating to the active session."""
        if not self.config.enabled or self._active is None:
            logger.debug("No active crisis session to rate")
            return False
        try:
            score = max(0.0, min(1.0, float(score)))
            self._active.effectiveness.append(EffectivenessRating(
                timestamp=self._clock(), score=score, intervention=intervention,
            ))
            if (
                intervention
                and score >= self.config.effective_threshold
                and intervention not in self._active.effective_interventions
            ):
                self._active.effective_interventions.append(intervention)
            return True
        except Exception as e:
            logger.warning(f"Recording effectiveness failed: {e}")
            return False

    def _on_level_change(
        self,
        level: CrisisLevel,
        profile: AdaptationProfile,
        trigger: Optional[CrisisTrigger],
        now: Optional[float],
    ) -> None:
        ts = self._clock() if now is None else now

        if self._active is None:
            if level == CrisisLevel.NONE:
                return
            self._episodes += 1
            self._active = CrisisSession(episode_number=self._episodes, started_at=ts)
            logger.info(f"Crisis session {self._active.id} opened at level {level}")

        self._active.entries.append(SessionEntry(
            timestamp=ts,
            trigger=trigger,
            level=level.label,
            profile=profile.to_dict(),
        ))

        if level == CrisisLevel.NONE:
            self._close(SessionOutcome.RESOLVED, ts)

    def _on_manual_outcome(
        self,
        outcome: SessionOutcome,
        feedback: Optional[str],
        now: Optional[float],
    ) -> Optional[CrisisSession]:
        if self._active is None:
            logger.debug(f"Outcome {outcome.value} reported with no active session")
            return None

        if feedback:
            self._active.user_feedback = feedback

        if outcome == SessionOutcome.ONGOING:
            return None

        ts = self._clock() if now is None else now
        return self._close(outcome, ts)

    def _close(self, outcome: SessionOutcome, ts: float) -> CrisisSession:
        session = self._active
        session.ended_at = ts
        session.outcome = outcome
        self._active = None
        self._history.append(session)
        logger.info(
            f"Crisis session {session.id} closed: {outcome.value} "
            f"after {session.duration_seconds:.0f}s (peak {session.peak_level})"
        )

        if self.store is not None:
            try:
                self.store.append(session)
            except Exception as e:
                logger.warning(f"Failed to persist crisis session {session.id}: {e}")
        return session
