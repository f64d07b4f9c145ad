"""Per-subject behavior profile — rolling, age-bounded telemetry buffers.

Two horizons:
  - micro (default 60s): actions, inter-action timings, movements.  Read by
    the per-second feature scorers.
  - macro (default 600s): longer action and movement history plus throttle
    violations.  Read by the slower risk scorers.

Buffers are deques: append at the back, evict from the front.  Samples
arriving older than the last accepted sample of their kind are dropped
rather than inserted out of order, even once eviction has emptied the
buffers.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any

from warden.behavior.category import DEFAULT_THRESHOLDS, BehaviorCategory, classify

Vector = tuple[float, float, float]


@dataclass(frozen=True)
class ActionSample:
    timestamp: float
    action_type: str
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class TimingSample:
    timestamp: float
    interval: float


@dataclass(frozen=True)
class MovementSample:
    timestamp: float
    position: Vector
    velocity: Vector


@dataclass
class ProfileConfig:
    micro_retention_seconds: float = 60.0
    macro_retention_seconds: float = 600.0
    max_samples: int = 2000
    idle_gap_seconds: float = 300.0
    category_thresholds: tuple[float, ...] = DEFAULT_THRESHOLDS


class SampleBuffer:
    __slots__ = ("max_age", "_buf")

    def __init__(self, max_age_seconds: float, max_samples: int):
        self.max_age = max_age_seconds
        self._buf: deque = deque(maxlen=max_samples)

    def add(self, sample) -> bool:
        """Append sample.  Returns False (and drops) if it is out of order."""
        if self._buf and sample.timestamp < self._buf[-1].timestamp:
            return False
        self._buf.append(sample)
        return True

    def samples(self, now: float) -> list:
        """Return all samples currently inside the retention window."""
        self.evict(now)
        return list(self._buf)

    def evict(self, now: float) -> None:
        cutoff = now - self.max_age
        while self._buf and self._buf[0].timestamp < cutoff:
            self._buf.popleft()

    def __len__(self) -> int:
        return len(self._buf)


class BehaviorProfile:

    def __init__(self, subject_id: str, now: float,
                 config: ProfileConfig | None = None):
        cfg = config or ProfileConfig()
        self.config = cfg
        self.subject_id = subject_id
        self.created_at = now

        micro, macro, cap = (
            cfg.micro_retention_seconds, cfg.macro_retention_seconds, cfg.max_samples,
        )
        self.actions = SampleBuffer(micro, cap)
        self.timings = SampleBuffer(micro, cap)
        self.movements = SampleBuffer(micro, cap)
        self.action_history = SampleBuffer(macro, cap)
        self.movement_history = SampleBuffer(macro, cap)
        self.violations = SampleBuffer(macro, cap)

        self.baseline_rate = 1.0
        self.anomaly_score = 0.0
        self.risk_score = 0.0
        self.sample_count = 0
        self.details: dict[str, Any] = {}

        self.active_since: float | None = None
        self.last_action_time: float | None = None
        self.last_movement_time: float | None = None
        self.last_seen = now
        self.last_anomaly_event: float | None = None

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def record_action(self, action_type: str, data: dict | None, now: float) -> bool:
        # Checked against the last accepted time, not the buffers, which may
        # already have been emptied by eviction.
        if self.last_action_time is not None and now < self.last_action_time:
            return False
        sample = ActionSample(now, action_type, dict(data or {}))
        self.actions.add(sample)
        self.action_history.add(sample)

        if self.last_action_time is not None:
            interval = now - self.last_action_time
            self.timings.add(TimingSample(now, interval))
            if interval >= self.config.idle_gap_seconds:
                self.active_since = now
        else:
            self.active_since = now

        self.last_action_time = now
        self._touch(now)
        return True

    def record_movement(self, position: Vector, velocity: Vector, now: float) -> bool:
        if self.last_movement_time is not None and now < self.last_movement_time:
            return False
        sample = MovementSample(now, tuple(position), tuple(velocity))
        self.movements.add(sample)
        self.movement_history.add(sample)
        self.last_movement_time = now
        self._touch(now)
        return True

    def record_violation(self, violation) -> bool:
        """Throttle violations are a behavioral signal too."""
        return self.violations.add(violation)

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    def classify(self) -> tuple[BehaviorCategory, float]:
        return classify(
            self.risk_score, self.anomaly_score, self.config.category_thresholds,
        )

    @property
    def behavior_category(self) -> BehaviorCategory:
        return self.classify()[0]

    @property
    def confidence(self) -> float:
        return self.classify()[1]

    def snapshot(self) -> dict:
        category, confidence = self.classify()
        return {
            "risk_score": round(self.risk_score, 4),
            "anomaly_score": round(self.anomaly_score, 4),
            "behavior_category": category.name,
            "confidence": round(confidence, 4),
            "sample_count": self.sample_count,
        }

    def prune(self, now: float) -> None:
        for buf in (self.actions, self.timings, self.movements,
                    self.action_history, self.movement_history, self.violations):
            buf.evict(now)

    def _touch(self, now: float) -> None:
        self.sample_count += 1
        self.last_seen = max(self.last_seen, now)
