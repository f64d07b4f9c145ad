"""Violation pressure — rate-limit denials fed back as a behavioral signal.

Linear in the number of throttle violations inside the macro window,
saturating at ``saturation``.
"""

from warden.behavior.scorers import Scorer


class ViolationPressure(Scorer):
    id = "violations"
    name = "Violation Pressure"
    horizon = "macro"
    weight = 0.10
    min_samples = 1

    saturation = 10

    def select(self, profile, now):
        return profile.violations.samples(now)

    def score(self, samples, profile, now):
        return len(samples) / self.saturation

    def evidence(self, samples, profile, now):
        return {
            "violations": len(samples),
            "endpoints": sorted({getattr(v, "endpoint", "unknown") for v in samples}),
        }
