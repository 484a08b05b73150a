"""Engine Configuration - tuning values for the crisis engine.

Every heuristic constant lives here so hosts can tune it without code
changes:
- Aggregator decay
- Fog weights and bands
- Classifier sensitivity and threshold overrides
- Quiet period and tick cadence
- Adaptation scaling
- Session recording
- Detection on/off

None of these values are clinically validated.
"""

from __future__ import annotations

import os
import math
import numbers
import logging
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

SENSITIVITIES = ("low", "medium", "high")


@dataclass
class DetectionConfig:
    """Master switch. Disabled means events are dropped and ticks do nothing."""

    enabled: bool = True


@dataclass
class AggregatorConfig:
    """Time-based effects applied on every tick."""

    click_decay_per_tick: int = 1


@dataclass
class FogConfig:
    """Weights for the saturating cognitive-load sum."""

    error_weight: float = 0.2
    rapid_click_weight: float = 0.1
    help_request_weight: float = 0.3
    normalizer: float = 10.0
    foggy_threshold: float = 0.3
    severe_threshold: float = 0.7
    smoothing: float = 0.0          # EMA weight of the previous score, 0 = off


@dataclass
class ClassifierConfig:
    """Sensitivity preset plus per-threshold overrides."""

    sensitivity: str = "medium"
    overrides: Dict[str, int] = field(default_factory=dict)


@dataclass
class TransitionConfig:
    """Hysteresis for downward level changes."""

    quiet_period_s: float = 5.0


@dataclass
class SchedulingConfig:
    """Tick cadence for hosts that use the threaded driver."""

    tick_interval_s: float = 1.0
    evaluation_interval_ticks: int = 10
    trend_history: int = 30


@dataclass
class SelectorConfig:
    """How strongly fog enlarges touch targets."""

    fog_touch_gain: float = 0.5
    max_touch_target_multiplier: float = 2.5


@dataclass
class RecorderConfig:
    """Session audit settings. No store path means memory only."""

    enabled: bool = True
    store_path: Optional[str] = None
    history_size: int = 50
    effective_threshold: float = 0.5

    def get_store_path(self) -> Optional[Path]:
        if not self.store_path:
            return None
        return Path(os.path.expanduser(self.store_path))


@dataclass
class EngineConfig:
    """Complete engine configuration."""

    detection: DetectionConfig = field(default_factory=DetectionConfig)
    aggregator: AggregatorConfig = field(default_factory=AggregatorConfig)
    fog: FogConfig = field(default_factory=FogConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    transitions: TransitionConfig = field(default_factory=TransitionConfig)
    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    selector: SelectorConfig = field(default_factory=SelectorConfig)
    recorder: RecorderConfig = field(default_factory=RecorderConfig)

    def validate(self) -> "EngineConfig":
        """Raise ValueError on values the engine cannot work with."""
        if self.aggregator.click_decay_per_tick < 0:
            raise ValueError("aggregator.click_decay_per_tick must be >= 0")
        if self.fog.normalizer <= 0:
            raise ValueError("fog.normalizer must be > 0")
        for name in ("error_weight", "rapid_click_weight", "help_request_weight"):
            if getattr(self.fog, name) < 0:
                raise ValueError(f"fog.{name} must be >= 0")
        if not 0.0 <= self.fog.foggy_threshold <= self.fog.severe_threshold <= 1.0:
            raise ValueError("fog thresholds must satisfy 0 <= foggy <= severe <= 1")
        if not 0.0 <= self.fog.smoothing < 1.0:
            raise ValueError("fog.smoothing must be in [0, 1)")
        if self.classifier.sensitivity not in SENSITIVITIES:
            raise ValueError(
                f"classifier.sensitivity must be one of {SENSITIVITIES}, "
                f"got {self.classifier.sensitivity!r}"
            )
        for name, value in self.classifier.overrides.items():
            if isinstance(value, bool) or not isinstance(value, numbers.Integral):
                raise ValueError(f"classifier.overrides.{name} must be an integer, got {value!r}")
        if self.transitions.quiet_period_s < 0:
            raise ValueError("transitions.quiet_period_s must be >= 0")
        if self.scheduling.tick_interval_s <= 0:
            raise ValueError("scheduling.tick_interval_s must be > 0")
        if self.scheduling.evaluation_interval_ticks < 1:
            raise ValueError("scheduling.evaluation_interval_ticks must be >= 1")
        if self.selector.max_touch_target_multiplier < 1.0:
            raise ValueError("selector.max_touch_target_multiplier must be >= 1")
        if self.recorder.history_size < 0:
            raise ValueError("recorder.history_size must be >= 0")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Create from dictionary.

        Unknown keys are ignored with a warning. A non-mapping document or
        section, or a value of the wrong type, raises ValueError.
        """
        if not isinstance(data, dict):
            raise ValueError(
                f"Engine config must be a mapping, got {type(data).__name__}"
            )
        config = cls()
        for f in fields(cls):
            section = data.get(f.name)
            if section is None:
                continue
            if not isinstance(section, dict):
                raise ValueError(
                    f"Config section {f.name!r} must be a mapping, "
                    f"got {type(section).__name__}"
                )
            current = getattr(config, f.name)
            setattr(config, f.name, _merge_section(f.name, current, section))
        return config


def _merge_section(name: str, current: Any, data: Dict[str, Any]) -> Any:
    known = {f.name for f in fields(current)}
    values = asdict(current)
    for key, value in data.items():
        if key in known:
            values[key] = _check_value(f"{name}.{key}", values[key], value)
        else:
            logger.warning(f"Ignoring unknown config key: {type(current).__name__}.{key}")
    return type(current)(**values)


def _check_value(key: str, default: Any, value: Any) -> Any:
    """Coerce value to the type of the field default or raise ValueError."""
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ValueError(f"{key} must be true or false, got {value!r}")
        return value
    if isinstance(default, (int, float)):
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise ValueError(f"{key} must be a number, got {value!r}")
        if not math.isfinite(value):
            raise ValueError(f"{key} must be finite, got {value!r}")
        if isinstance(default, int):
            if not float(value).is_integer():
                raise ValueError(f"{key} must be a whole number, got {value!r}")
            return int(value)
        return float(value)
    if isinstance(default, dict):
        if not isinstance(value, dict):
            raise ValueError(f"{key} must be a mapping, got {value!r}")
        return dict(value)
    if isinstance(default, str) or default is None:
        if value is not None and not isinstance(value, str):
            raise ValueError(f"{key} must be a string, got {value!r}")
        if default is not None and value is None:
            raise ValueError(f"{key} must be a string, got None")
        return value
    return value


# =============================================================================
# Loading Functions
# =============================================================================

_config_search_paths: List[Path] = [
    Path.home() / ".crisis_engine" / "config.yaml",
    Path.home() / ".config" / "crisis_engine" / "config.yaml",
    Path("crisis_engine.yaml"),
    Path("config/crisis_engine.yaml"),
]


def load_engine_config(path: Optional[Path] = None) -> EngineConfig:
    """Load engine configuration from file and environment.

    Args:
        path: Explicit config path (optional)

    Returns:
        Validated configuration
    """
    config_path = path
    if not config_path:
        for search_path in _config_search_paths:
            if search_path.exists():
                config_path = search_path
                break

    config = EngineConfig()
    if config_path and Path(config_path).exists():
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
            config = EngineConfig.from_dict(data)
            logger.info(f"Loaded engine config from {config_path}")
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")
    elif path:
        logger.warning(f"Config file not found: {path}, using defaults")

    _apply_env_overrides(config)
    return config.validate()


def _apply_env_overrides(config: EngineConfig) -> None:
    sensitivity = os.environ.get("CRISIS_ENGINE_SENSITIVITY")
    if sensitivity:
        config.classifier.sensitivity = sensitivity.strip().lower()

    quiet = os.environ.get("CRISIS_ENGINE_QUIET_PERIOD")
    if quiet:
        try:
            config.transitions.quiet_period_s = float(quiet)
        except ValueError:
            logger.warning(f"Ignoring invalid CRISIS_ENGINE_QUIET_PERIOD={quiet!r}")


def save_engine_config(config: EngineConfig, path: Path) -> None:
    """Write configuration as YAML."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
