"""Adaptive throttle — per-subject multiplier that tightens limits after abuse.

Escalation is fast (multiplicative once the violation threshold is reached)
and recovery is slow (only after a quiet period, one relax step per macro
tick).  Multiplier and trust always move in opposite directions.
"""

import math
from dataclasses import dataclass, replace

from warden.limiter.policies import EndpointPolicy


@dataclass
class ThrottleConfig:
    escalation_threshold: int = 3
    escalation_factor: float = 1.5
    max_multiplier: float = 5.0
    trust_decay: float = 0.8
    min_trust: float = 0.1
    quiet_period_seconds: float = 60.0
    relax_factor: float = 0.9
    trust_recovery: float = 1.1
    reset_cutoff: float = 1.1


@dataclass
class AdaptiveState:
    violation_count: int = 0
    throttle_multiplier: float = 1.0
    trust_score: float = 1.0
    last_violation_time: float | None = None

    @property
    def is_neutral(self) -> bool:
        return (self.violation_count == 0
                and self.throttle_multiplier == 1.0
                and self.trust_score == 1.0)


class AdaptiveThrottle:

    def __init__(self, config: ThrottleConfig | None = None):
        self.config = config or ThrottleConfig()

    def scale(self, policy: EndpointPolicy, state: AdaptiveState) -> EndpointPolicy:
        """Effective policy for a subject: fewer requests over a longer window."""
        m = state.throttle_multiplier
        if m <= 1.0:
            return policy
        return replace(
            policy,
            max_requests=max(1, math.floor(policy.max_requests / m)),
            burst_limit=max(1, math.floor(policy.burst_limit / m)),
            window_seconds=policy.window_seconds * m,
            cooldown_seconds=policy.cooldown_seconds * m,
        )

    def on_violation(self, state: AdaptiveState, now: float) -> bool:
        """Count a violation.  Returns True if the throttle escalated."""
        cfg = self.config
        state.violation_count += 1
        state.last_violation_time = now

        if state.violation_count < cfg.escalation_threshold:
            return False

        state.throttle_multiplier = min(
            cfg.max_multiplier, state.throttle_multiplier * cfg.escalation_factor,
        )
        state.trust_score = max(cfg.min_trust, state.trust_score * cfg.trust_decay)
        return True

    def decay(self, state: AdaptiveState, now: float) -> bool:
        """Relax one step if the subject has been quiet long enough.

        Returns True if the state changed.
        """
        cfg = self.config
        if state.last_violation_time is None:
            return False
        if now - state.last_violation_time <= cfg.quiet_period_seconds:
            return False

        state.throttle_multiplier = max(1.0, state.throttle_multiplier * cfg.relax_factor)
        state.trust_score = min(1.0, state.trust_score * cfg.trust_recovery)

        if state.throttle_multiplier < cfg.reset_cutoff:
            state.violation_count = 0
            state.throttle_multiplier = 1.0
            state.trust_score = 1.0
            state.last_violation_time = None
        return True
