"""Timing consistency — coefficient of variation of inter-action intervals.

Humans are noisy but not wildly so.  A CV near zero means a script with a
fixed sleep; a very high CV means bursts of instant actions separated by long
pauses, the shape of recorded input being replayed.
"""

from statistics import fmean

from warden.behavior.scorers import Scorer, coefficient_of_variation


class TimingConsistency(Scorer):
    id = "timing_consistency"
    name = "Timing Consistency"
    horizon = "micro"
    weight = 0.20
    min_samples = 10

    low_cv = 0.1
    high_cv = 2.0
    regularity_penalty = 0.7
    erratic_penalty = 0.5

    def select(self, profile, now):
        return profile.timings.samples(now)

    def score(self, samples, profile, now):
        cv = coefficient_of_variation([s.interval for s in samples])
        # Zero mean interval: every action landed in the same instant.
        if cv is None or cv < self.low_cv:
            return self.regularity_penalty
        if cv > self.high_cv:
            return self.erratic_penalty
        return 0.0

    def evidence(self, samples, profile, now):
        intervals = [s.interval for s in samples]
        cv = coefficient_of_variation(intervals)
        return {
            "mean_interval": round(fmean(intervals), 4),
            "coefficient_of_variation": round(cv, 4) if cv is not None else None,
        }
