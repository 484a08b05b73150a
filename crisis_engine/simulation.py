"""
Scenario Simulation
===================

Drives a CrisisEngine through scripted stress scenarios on a virtual
clock and checks the stabilized outcome:

    mild-stress         isolated errors              -> mild
    moderate-stress     steady errors, light clicks  -> moderate
    severe-stress       repeated reversals           -> severe
    emergency-crisis    sustained rapid clicking     -> emergency
    threshold-flapping  click bursts with short dips -> moderate, never none

Per-tick event counts may be ranges; values are drawn from a seeded
numpy generator so runs are reproducible.

Scenario files are YAML:

    name: my-scenario
    expected_peak: moderate
    allow_flapping: false
    steps:
      - ticks: 4
        errors: 1
        clicks: [0, 2]
      - ticks: 20
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import yaml

from crisis_engine.config import EngineConfig
from crisis_engine.driver import VirtualClock
from crisis_engine.engine import CrisisEngine
from crisis_engine.models.levels import CrisisLevel
from crisis_engine.models.profile import AdaptationProfile
from crisis_engine.models.record import EventKind
from crisis_engine.recorder import MemorySessionStore

logger = logging.getLogger(__name__)

Count = Union[int, Tuple[int, int]]

STEP_EVENTS: Dict[str, EventKind] = {
    "clicks": EventKind.CLICK,
    "reversals": EventKind.NAVIGATION_BACK,
    "errors": EventKind.RUNTIME_ERROR,
    "help_requests": EventKind.HELP_REQUEST,
}


@dataclass
class ScenarioStep:
    """Per-tick event counts held for `ticks` ticks."""
    ticks: int = 1
    clicks: Count = 0
    reversals: Count = 0
    errors: Count = 0
    help_requests: Count = 0
    rating: Optional[int] = None      # sent once, on the first tick of the step

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ScenarioStep:
        unknown = set(data) - {"ticks", "rating", *STEP_EVENTS}
        if unknown:
            raise ValueError(f"Unknown scenario step keys: {sorted(unknown)}")
        step = cls(ticks=int(data.get("ticks", 1)), rating=data.get("rating"))
        for name in STEP_EVENTS:
            if name in data:
                setattr(step, name, _parse_count(name, data[name]))
        if step.ticks < 1:
            raise ValueError("Scenario step needs ticks >= 1")
        return step

    def draw(self, rng: np.random.Generator) -> Dict[str, int]:
        """Event counts for one tick."""
        counts = {}
        for name in STEP_EVENTS:
            value = getattr(self, name)
            if isinstance(value, tuple):
                low, high = value
                value = int(rng.integers(low, high + 1))
            counts[name] = value
        return counts


@dataclass
class Scenario:
    name: str
    steps: List[ScenarioStep]
    expected_peak: CrisisLevel
    description: str = ""
    allow_flapping: bool = False

    @property
    def total_ticks(self) -> int:
        return sum(step.ticks for step in self.steps)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Scenario:
        if not isinstance(data, dict):
            raise ValueError("Scenario must be a mapping")
        try:
            name = str(data["name"])
            expected = CrisisLevel.from_label(str(data["expected_peak"]))
        except KeyError as e:
            raise ValueError(f"Scenario missing required key: {e}") from e
        steps = [ScenarioStep.from_dict(s) for s in data.get("steps") or []]
        if not steps:
            raise ValueError(f"Scenario {name!r} has no steps")
        return cls(
            name=name,
            steps=steps,
            expected_peak=expected,
            description=str(data.get("description", "")),
            allow_flapping=bool(data.get("allow_flapping", False)),
        )


def _parse_count(name: str, value: Any) -> Count:
    if isinstance(value, (list, tuple)):
        if len(value) != 2:
            raise ValueError(f"{name}: range must be [low, high]")
        low, high = int(value[0]), int(value[1])
        if low < 0 or high < low:
            raise ValueError(f"{name}: invalid range [{low}, {high}]")
        return (low, high)
    count = int(value)
    if count < 0:
        raise ValueError(f"{name}: count must be >= 0")
    return count


BUILTIN_SCENARIOS: Dict[str, Scenario] = {
    s.name: s for s in [
        Scenario(
            name="mild-stress",
            description="A couple of errors early in a short session",
            expected_peak=CrisisLevel.MILD,
            steps=[
                ScenarioStep(ticks=1, errors=2),
                ScenarioStep(ticks=5, clicks=(0, 1)),
                ScenarioStep(ticks=24),
            ],
        ),
        Scenario(
            name="moderate-stress",
            description="Steady errors with light, jittered clicking",
            expected_peak=CrisisLevel.MODERATE,
            steps=[
                ScenarioStep(ticks=4, errors=1, clicks=(0, 2)),
                ScenarioStep(ticks=2, help_requests=1),
                ScenarioStep(ticks=39),
            ],
        ),
        Scenario(
            name="severe-stress",
            description="Repeated back-navigation while errors pile up",
            expected_peak=CrisisLevel.SEVERE,
            steps=[
                ScenarioStep(ticks=3, reversals=2, errors=1),
                ScenarioStep(ticks=5, clicks=(0, 2), help_requests=1),
                ScenarioStep(ticks=52),
            ],
        ),
        Scenario(
            name="emergency-crisis",
            description="Sustained rapid clicking followed by a distress report",
            expected_peak=CrisisLevel.EMERGENCY,
            steps=[
                ScenarioStep(ticks=8, clicks=(4, 7), errors=1),
                ScenarioStep(ticks=1, rating=9),
                ScenarioStep(ticks=81),
            ],
        ),
        Scenario(
            name="threshold-flapping",
            description="Click bursts separated by dips shorter than the quiet period",
            expected_peak=CrisisLevel.MODERATE,
            steps=[
                step
                for _ in range(4)
                for step in (ScenarioStep(ticks=1, clicks=6), ScenarioStep(ticks=5))
            ],
        ),
    ]
}


def load_scenario(path: Path) -> Scenario:
    """Load a scenario from a YAML file. Raises ValueError on bad content."""
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid scenario file {path}: {e}") from e
    return Scenario.from_dict(data)


def get_scenario(name_or_path: str) -> Scenario:
    """Built-in scenario by name, otherwise a YAML file path."""
    if name_or_path in BUILTIN_SCENARIOS:
        return BUILTIN_SCENARIOS[name_or_path]
    path = Path(name_or_path)
    if path.exists():
        return load_scenario(path)
    raise KeyError(
        f"Unknown scenario {name_or_path!r}; built-ins: {', '.join(BUILTIN_SCENARIOS)}"
    )


@dataclass
class TimelineEntry:
    """One stabilized change delivered to subscribers."""
    tick: int
    time: float
    level: CrisisLevel
    fog_score: float
    touch_target_multiplier: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tick": self.tick,
            "time": self.time,
            "level": self.level.label,
            "fog_score": round(self.fog_score, 4),
            "touch_target_multiplier": self.touch_target_multiplier,
        }


@dataclass
class ScenarioResult:
    scenario: str
    expected_peak: CrisisLevel
    peak_level: CrisisLevel
    final_level: CrisisLevel
    timeline: List[TimelineEntry] = field(default_factory=list)
    flapped: bool = False
    sessions: int = 0
    passed: bool = False
    seed: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scenario": self.scenario,
            "seed": self.seed,
            "expected_peak": self.expected_peak.label,
            "peak_level": self.peak_level.label,
            "final_level": self.final_level.label,
            "flapped": self.flapped,
            "sessions": self.sessions,
            "passed": self.passed,
            "timeline": [e.to_dict() for e in self.timeline],
        }


def run_scenario(
    scenario: Scenario,
    config: Optional[EngineConfig] = None,
    seed: Optional[int] = None,
) -> ScenarioResult:
    """Play a scenario tick by tick against a fresh engine."""
    config = config or EngineConfig()
    rng = np.random.default_rng(seed)
    clock = VirtualClock()
    engine = CrisisEngine(config, clock=clock, store=MemorySessionStore())
    interval = config.scheduling.tick_interval_s

    timeline: List[TimelineEntry] = []
    tick = 0

    def on_change(level: CrisisLevel, fog_score: float, profile: AdaptationProfile) -> None:
        timeline.append(TimelineEntry(
            tick=tick,
            time=clock(),
            level=level,
            fog_score=fog_score,
            touch_target_multiplier=profile.touch_target_multiplier,
        ))

    engine.subscribe(on_change)
    logger.info(f"Running scenario {scenario.name} ({scenario.total_ticks} ticks, seed={seed})")

    for step in scenario.steps:
        for i in range(step.ticks):
            if i == 0 and step.rating is not None:
                engine.record_event(EventKind.MANUAL_RATING, step.rating)
            for name, count in step.draw(rng).items():
                for _ in range(count):
                    engine.record_event(STEP_EVENTS[name])
            clock.advance(interval)
            tick += 1
            engine.tick()

    final_level = engine.level
    sessions = engine.recorder.episodes
    engine.stop()

    levels = [entry.level for entry in timeline]
    peak = max(levels, default=CrisisLevel.NONE)
    flapped = _returned_to_none_mid_episode(levels)
    passed = peak == scenario.expected_peak and (scenario.allow_flapping or not flapped)

    result = ScenarioResult(
        scenario=scenario.name,
        expected_peak=scenario.expected_peak,
        peak_level=peak,
        final_level=final_level,
        timeline=timeline,
        flapped=flapped,
        sessions=sessions,
        passed=passed,
        seed=seed,
    )
    logger.info(
        f"Scenario {scenario.name}: peak {peak} (expected {scenario.expected_peak}), "
        f"{'PASS' if passed else 'FAIL'}"
    )
    return result


def _returned_to_none_mid_episode(levels: List[CrisisLevel]) -> bool:
    """True if the level dropped to none and later rose again."""
    seen_none_after_crisis = False
    in_crisis = False
    for level in levels:
        if level > CrisisLevel.NONE:
            if seen_none_after_crisis:
                return True
            in_crisis = True
        elif in_crisis:
            seen_none_after_crisis = True
    return False
