"""
Tick sources for the engine.

VirtualClock - manually advanced clock for tests and simulation
TickDriver   - background thread calling engine.tick() at a fixed cadence
"""

from __future__ import annotations

import threading
import logging
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from crisis_engine.engine import CrisisEngine

logger = logging.getLogger(__name__)


class VirtualClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._lock = threading.Lock()

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("VirtualClock cannot move backwards")
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, now: float) -> None:
        with self._lock:
            self._now = float(now)


class TickDriver:
    """Runs engine.tick() on a daemon thread until stopped."""

    def __init__(self, engine: CrisisEngine, interval_s: float = 1.0):
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self.engine = engine
        self.interval = interval_s
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._ticks = 0

    @property
    def ticks(self) -> int:
        """Ticks issued by this driver."""
        return self._ticks

    def start(self) -> None:
        """Start the tick thread."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Tick driver already running")
            return

        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            daemon=True,
            name="CrisisEngineTick",
        )
        self._thread.start()
        logger.info(f"Tick driver started (interval: {self.interval}s)")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop ticking. Safe to call from a subscriber on the tick thread."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        logger.info("Tick driver stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        logger.debug("Tick loop started")

        while not self._stop.wait(timeout=self.interval):
            if self.engine.stopped:
                break
            try:
                self.engine.tick()
                self._ticks += 1
            except Exception as e:
                logger.exception(f"Tick error: {e}")

        logger.debug("Tick loop exited")
