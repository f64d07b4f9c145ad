"""Engine configuration — dataclass defaults, optionally overridden by YAML."""

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from warden.behavior.aggregator import ScoringConfig, build_scorers
from warden.behavior.profile import ProfileConfig
from warden.limiter.throttle import ThrottleConfig

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "engine.yml"

_SECTIONS = ("cadence", "retention", "profile", "throttle", "scoring")


@dataclass
class EngineConfig:
    micro_interval_seconds: float = 1.0
    macro_interval_seconds: float = 30.0
    eviction_interval_seconds: float = 120.0
    subject_ttl_seconds: float = 1800.0
    violation_retention_seconds: float = 3600.0
    profile: ProfileConfig = field(default_factory=ProfileConfig)
    throttle: ThrottleConfig = field(default_factory=ThrottleConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> EngineConfig:
    """Parse an engine YAML file into an EngineConfig."""
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Engine config not found: {path}")

    with open(path) as f:
        definition = yaml.safe_load(f) or {}

    if not isinstance(definition, dict):
        raise ValueError(f"{path.name}: engine config must be a YAML mapping")
    unknown = set(definition) - set(_SECTIONS) - {"version"}
    if unknown:
        raise ValueError(f"{path.name}: unknown sections: {', '.join(sorted(unknown))}")

    try:
        config = from_dict(definition)
        # Fail at load time, not on first engine construction.
        build_scorers(config.scoring.scorers)
    except (TypeError, ValueError) as e:
        # dataclass constructors reject unknown keys with TypeError
        raise ValueError(f"{path.name}: {e}") from e
    return config


def from_dict(definition: dict) -> EngineConfig:
    profile = dict(definition.get("profile") or {})
    if "category_thresholds" in profile:
        thresholds = tuple(float(t) for t in profile["category_thresholds"])
        if len(thresholds) != 4 or list(thresholds) != sorted(thresholds):
            raise ValueError("category_thresholds must be 4 ascending values")
        profile["category_thresholds"] = thresholds

    return EngineConfig(
        **(definition.get("cadence") or {}),
        **(definition.get("retention") or {}),
        profile=ProfileConfig(**profile),
        throttle=ThrottleConfig(**(definition.get("throttle") or {})),
        scoring=ScoringConfig(**(definition.get("scoring") or {})),
    )
