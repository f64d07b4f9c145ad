"""Velocity profile — constant-speed movement and sustained overspeed.

Only samples where the subject is actually moving count.  Human movement
accelerates and stops; a speed CV near zero over minutes is a movement bot.
"""

from warden.behavior.scorers import Scorer, coefficient_of_variation
from warden.behavior.scorers.movement import magnitude


class VelocityProfile(Scorer):
    id = "velocity"
    name = "Velocity Profile"
    horizon = "macro"
    weight = 0.10
    min_samples = 20

    moving_threshold = 0.5
    max_speed = 50.0
    constant_cv = 0.05
    constant_weight = 0.5
    overspeed_weight = 0.5

    def select(self, profile, now):
        return [
            s for s in profile.movement_history.samples(now)
            if magnitude(s.velocity) > self.moving_threshold
        ]

    def score(self, samples, profile, now):
        speeds = [magnitude(s.velocity) for s in samples]
        total = 0.0
        cv = coefficient_of_variation(speeds)
        if cv is not None and cv < self.constant_cv:
            total += self.constant_weight
        if self.p95(speeds) > self.max_speed:
            total += self.overspeed_weight
        return total

    def evidence(self, samples, profile, now):
        speeds = [magnitude(s.velocity) for s in samples]
        cv = coefficient_of_variation(speeds)
        return {
            "speed_cv": round(cv, 4) if cv is not None else None,
            "p95_speed": round(self.p95(speeds), 2),
        }

    @staticmethod
    def p95(values) -> float:
        if not values:
            return 0.0
        ordered = sorted(values)
        return ordered[min(len(ordered) - 1, int(0.95 * len(ordered)))]
