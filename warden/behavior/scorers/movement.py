"""Movement / spatial — impossible speeds and scripted paths.

Speed is implied from consecutive positions (distance / elapsed), and the
velocity the client reports is checked against the same cap.  Separately,
direction vectors between samples are rounded to one decimal and grouped in
short windows: a window that keeps recurring is a path being replayed.
"""

import math
from collections import Counter

from warden.behavior.scorers import Scorer


def magnitude(v) -> float:
    return math.sqrt(sum(c * c for c in v))


def implied_speeds(samples) -> list[float]:
    speeds = []
    for a, b in zip(samples, samples[1:]):
        dt = b.timestamp - a.timestamp
        if dt <= 0:
            continue
        delta = [q - p for p, q in zip(a.position, b.position)]
        speeds.append(magnitude(delta) / dt)
    return speeds


def directions(samples) -> list[tuple]:
    out = []
    for a, b in zip(samples, samples[1:]):
        delta = [q - p for p, q in zip(a.position, b.position)]
        length = magnitude(delta)
        if length == 0:
            continue
        out.append(tuple(round(c / length, 1) for c in delta))
    return out


class MovementSpatial(Scorer):
    id = "movement"
    name = "Movement / Spatial"
    horizon = "micro"
    weight = 0.15
    min_samples = 10

    max_speed = 50.0
    direction_window = 4
    repeat_threshold = 3
    speed_penalty = 0.6
    pattern_penalty = 0.4

    def select(self, profile, now):
        return profile.movements.samples(now)

    def score(self, samples, profile, now):
        total = 0.0
        if self._speed_violations(samples):
            total += self.speed_penalty
        if self._top_window_repeats(samples) > self.repeat_threshold:
            total += self.pattern_penalty
        return total

    def evidence(self, samples, profile, now):
        speeds = implied_speeds(samples)
        return {
            "max_implied_speed": round(max(speeds), 2) if speeds else 0.0,
            "speed_violations": self._speed_violations(samples),
            "top_path_repeats": self._top_window_repeats(samples),
        }

    def _speed_violations(self, samples) -> int:
        implied = sum(1 for s in implied_speeds(samples) if s > self.max_speed)
        reported = sum(1 for s in samples if magnitude(s.velocity) > self.max_speed)
        return implied + reported

    def _top_window_repeats(self, samples) -> int:
        dirs = directions(samples)
        n = self.direction_window
        windows = [tuple(dirs[i:i + n]) for i in range(len(dirs) - n + 1)]
        if not windows:
            return 0
        return Counter(windows).most_common(1)[0][1]
