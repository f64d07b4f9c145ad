"""Anomaly aggregator — weighted scorer composites and anomaly events.

Two cadences:
  micro (~1s)  — action/timing/movement scorers → anomaly_score.  Crossing
                 the event threshold fires an out-of-band anomaly event
                 immediately instead of waiting for the next macro tick.
  macro (~30s) — session/sequence/velocity/violation scorers → risk_score.

Composites are normalised by the horizon's weight budget, so both scores
stay in [0, 1] whatever the configured weights are.  Classification is not
done here: it is a pure function of the two scores (see category.py).
"""

from dataclasses import dataclass, field

from warden.behavior.profile import BehaviorProfile
from warden.behavior.scorers import MACRO_SCORERS, MICRO_SCORERS, Scorer

_SCORER_CLASSES = {cls.id: cls for cls in MICRO_SCORERS + MACRO_SCORERS}


@dataclass
class ScoringConfig:
    event_threshold: float = 0.7
    event_refire_seconds: float = 30.0
    baseline_learning_rate: float = 0.1
    min_baseline_rate: float = 0.5
    # Per-scorer overrides, e.g. {"action_frequency": {"weight": 0.3}}
    scorers: dict[str, dict] = field(default_factory=dict)


def build_scorers(overrides: dict[str, dict] | None = None) -> tuple[list[Scorer], list[Scorer]]:
    """Instantiate micro and macro scorers with per-id parameter overrides."""
    overrides = overrides or {}
    unknown = set(overrides) - set(_SCORER_CLASSES)
    if unknown:
        raise ValueError(f"unknown scorers in config: {', '.join(sorted(unknown))}")
    micro = [cls(**overrides.get(cls.id, {})) for cls in MICRO_SCORERS]
    macro = [cls(**overrides.get(cls.id, {})) for cls in MACRO_SCORERS]
    return micro, macro


def weighted(scores: dict[str, float], scorers: list[Scorer]) -> float:
    budget = sum(s.weight for s in scorers)
    if budget <= 0:
        return 0.0
    return sum(scores[s.id] * s.weight for s in scorers) / budget


class AnomalyAggregator:

    def __init__(self, config: ScoringConfig | None = None):
        self.config = config or ScoringConfig()
        self.micro_scorers, self.macro_scorers = build_scorers(self.config.scorers)

    def micro_tick(self, profile: BehaviorProfile, now: float) -> dict | None:
        """Recompute the anomaly score.  Returns an anomaly event or None."""
        scores = {s.id: s.evaluate(profile, now) for s in self.micro_scorers}
        profile.anomaly_score = weighted(scores, self.micro_scorers)
        profile.details["micro"] = scores
        self._learn_baseline(profile, now)

        if profile.anomaly_score <= self.config.event_threshold:
            return None
        last = profile.last_anomaly_event
        if last is not None and now - last < self.config.event_refire_seconds:
            return None

        profile.last_anomaly_event = now
        category, confidence = profile.classify()
        return {
            "subject_id": profile.subject_id,
            "score": round(profile.anomaly_score, 4),
            "risk_score": round(profile.risk_score, 4),
            "behavior_category": category.name,
            "confidence": round(confidence, 4),
            "timestamp": now,
            "scores": {k: round(v, 4) for k, v in scores.items()},
            "evidence": {
                s.id: s.explain(profile, now)
                for s in self.micro_scorers if scores[s.id] > 0
            },
        }

    def macro_tick(self, profile: BehaviorProfile, now: float) -> float:
        """Recompute the risk score from the long-horizon scorers."""
        scores = {s.id: s.evaluate(profile, now) for s in self.macro_scorers}
        profile.risk_score = weighted(scores, self.macro_scorers)
        profile.details["macro"] = scores
        return profile.risk_score

    def _learn_baseline(self, profile: BehaviorProfile, now: float) -> None:
        freq = next(
            (s for s in self.micro_scorers if s.id == "action_frequency"), None,
        )
        if freq is None:
            return
        samples = freq.select(profile, now)
        if len(samples) < freq.min_samples:
            return
        rate = freq.rate(samples)
        # Never learn from a spike, or an attack becomes the new normal.
        if rate > profile.baseline_rate * freq.frequency_multiple:
            return
        alpha = self.config.baseline_learning_rate
        profile.baseline_rate = max(
            self.config.min_baseline_rate,
            (1 - alpha) * profile.baseline_rate + alpha * rate,
        )
