"""Action frequency — rate spikes, machine regularity, repeated macros.

Three independent patterns, each adding its weight to the sub-score:
  - frequency: actions/second far above the subject's learned baseline
  - regularity: near-zero variance between consecutive actions
  - repetition: the same short sequence of action types over and over

The baseline starts at 1 action/s and is learned by the aggregator only
while the subject stays under the frequency multiple, so a sustained attack
cannot teach the profile that attacking is normal.
"""

from warden.behavior.scorers import Scorer, gaps, top_ngram, variance


class ActionFrequency(Scorer):
    id = "action_frequency"
    name = "Action Frequency"
    horizon = "micro"
    weight = 0.25
    min_samples = 10

    frequency_multiple = 5.0
    variance_epsilon = 0.001
    ngram_size = 3
    repeat_threshold = 5

    frequency_weight = 0.4
    regularity_weight = 0.3
    repetition_weight = 0.3

    def select(self, profile, now):
        return profile.actions.samples(now)

    def score(self, samples, profile, now):
        total = 0.0
        if self.rate(samples) > profile.baseline_rate * self.frequency_multiple:
            total += self.frequency_weight
        if variance(gaps([s.timestamp for s in samples])) < self.variance_epsilon:
            total += self.regularity_weight
        _, repeats, _ = top_ngram([s.action_type for s in samples], self.ngram_size)
        if repeats > self.repeat_threshold:
            total += self.repetition_weight
        return total

    def evidence(self, samples, profile, now):
        gram, repeats, _ = top_ngram([s.action_type for s in samples], self.ngram_size)
        return {
            "actions_per_second": round(self.rate(samples), 2),
            "baseline_rate": round(profile.baseline_rate, 2),
            "interval_variance": round(
                variance(gaps([s.timestamp for s in samples])), 6,
            ),
            "top_sequence": list(gram) if gram else [],
            "top_sequence_repeats": repeats,
        }

    @staticmethod
    def rate(samples) -> float:
        if not samples:
            return 0.0
        span = samples[-1].timestamp - samples[0].timestamp
        if span <= 0:
            return float(len(samples))
        return (len(samples) - 1) / span
