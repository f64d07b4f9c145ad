"""Session length — unbroken activity far beyond what a person sustains.

A break is any gap of at least the profile's idle gap between actions.
Activity that has run longer than the marathon threshold without one scores
from 0.5 upward, saturating at twice the threshold.
"""

from warden.behavior.scorers import Scorer


class SessionLength(Scorer):
    id = "session"
    name = "Session Length"
    horizon = "macro"
    weight = 0.05
    min_samples = 1

    marathon_seconds = 4 * 3600.0

    def select(self, profile, now):
        return profile.action_history.samples(now)

    def score(self, samples, profile, now):
        active = self.active_seconds(profile, now)
        if active <= self.marathon_seconds:
            return 0.0
        return 0.5 + 0.5 * (active - self.marathon_seconds) / self.marathon_seconds

    def evidence(self, samples, profile, now):
        return {"active_hours": round(self.active_seconds(profile, now) / 3600, 2)}

    @staticmethod
    def active_seconds(profile, now) -> float:
        if profile.active_since is None or profile.last_action_time is None:
            return 0.0
        if now - profile.last_action_time >= profile.config.idle_gap_seconds:
            return 0.0
        return now - profile.active_since
