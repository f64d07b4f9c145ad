# Feature scorers as Python classes, one per file.
#
# Each scorer reduces one of the profile's sample buffers to an anomaly
# sub-score in [0, 1].  Scorers are stateless: all per-subject state lives in
# the BehaviorProfile, so the same scorer instances serve every subject.
# Thresholds are class attributes and can be overridden per instance from
# the engine config (ScoringConfig.scorers).

from collections import Counter
from statistics import fmean, pstdev, pvariance


class Scorer:
    """Base feature scorer.  Subclass and implement select() + score()."""

    id: str
    name: str
    horizon: str  # micro | macro
    weight: float
    min_samples: int = 10

    def __init__(self, **params):
        for key, value in params.items():
            if not hasattr(type(self), key) or key in ("id", "name", "horizon"):
                raise ValueError(f"{self.id}: unknown scorer parameter '{key}'")
            setattr(self, key, value)

    def select(self, profile, now: float) -> list:
        """Return the samples this scorer reads, pruned to its horizon."""
        raise NotImplementedError

    def score(self, samples: list, profile, now: float) -> float:
        """Raw sub-score for a buffer that has at least min_samples entries."""
        raise NotImplementedError

    # Evidence is only computed when an anomaly event fires, so it can
    # afford to recompute what score() already looked at.
    def evidence(self, samples: list, profile, now: float) -> dict:
        return {}

    def evaluate(self, profile, now: float) -> float:
        """Sub-score in [0, 1].  Insufficient data scores 0, never an error."""
        samples = self.select(profile, now)
        if len(samples) < self.min_samples:
            return 0.0
        return max(0.0, min(1.0, self.score(samples, profile, now)))

    def explain(self, profile, now: float) -> dict:
        samples = self.select(profile, now)
        if len(samples) < self.min_samples:
            return {"sample_size": len(samples), "insufficient_data": True}
        return {"sample_size": len(samples), **self.evidence(samples, profile, now)}


# ---------------------------------------------------------------------------
# Shared statistics helpers
# ---------------------------------------------------------------------------

def gaps(timestamps: list[float]) -> list[float]:
    """Consecutive differences of an ascending timestamp list."""
    return [b - a for a, b in zip(timestamps, timestamps[1:])]


def variance(values: list[float]) -> float:
    return pvariance(values) if len(values) > 1 else 0.0


def coefficient_of_variation(values: list[float]) -> float | None:
    """stddev / mean, or None when the mean is zero (undefined)."""
    if not values:
        return None
    mean = fmean(values)
    if mean <= 0:
        return None
    return pstdev(values) / mean


def top_ngram(sequence: list, n: int) -> tuple[tuple | None, int, int]:
    """Most common n-gram in *sequence*: (ngram, its count, total n-grams)."""
    grams = [tuple(sequence[i:i + n]) for i in range(len(sequence) - n + 1)]
    if not grams:
        return None, 0, 0
    gram, count = Counter(grams).most_common(1)[0]
    return gram, count, len(grams)


from warden.behavior.scorers.action_frequency import ActionFrequency
from warden.behavior.scorers.timing import TimingConsistency
from warden.behavior.scorers.movement import MovementSpatial
from warden.behavior.scorers.session import SessionLength
from warden.behavior.scorers.sequence import InteractionSequence
from warden.behavior.scorers.velocity import VelocityProfile
from warden.behavior.scorers.violations import ViolationPressure

MICRO_SCORERS = (ActionFrequency, TimingConsistency, MovementSpatial)
MACRO_SCORERS = (SessionLength, InteractionSequence, VelocityProfile, ViolationPressure)
ALL_SCORERS = MICRO_SCORERS + MACRO_SCORERS
