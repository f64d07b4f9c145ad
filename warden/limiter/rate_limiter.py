"""Rate limiter facade — policy lookup, adaptive scaling, window check.

One call per inbound action:
  1. Resolve  — endpoint (and privilege) → base policy
  2. Scale    — apply the subject's throttle multiplier
  3. Evaluate — sliding window: cooldown, burst, window
  4. Record   — allowed requests are appended; denials become violations

Denials are return values, never exceptions: at steady state most abusive
traffic is denied and that is not exceptional.
"""

from collections import deque
from dataclasses import dataclass

from warden import metrics
from warden.limiter.policies import PolicyTable, load_policy_table
from warden.limiter.sliding_window import Decision, SlidingWindowLimiter
from warden.limiter.throttle import AdaptiveState, AdaptiveThrottle, ThrottleConfig

_MAX_VIOLATIONS_PER_SUBJECT = 100


@dataclass(frozen=True)
class ViolationRecord:
    endpoint: str
    reason: str
    timestamp: float
    subject_id: str


class RateLimiter:

    def __init__(self, table: PolicyTable | None = None,
                 throttle_config: ThrottleConfig | None = None,
                 violation_retention_seconds: float = 3600.0):
        self.table = table or load_policy_table()
        self.throttle = AdaptiveThrottle(throttle_config)
        # A throttled subject's effective window can be max_multiplier times
        # the base window, so request history is kept at least that long.
        self.limiter = SlidingWindowLimiter(
            self.table.max_window_seconds * self.throttle.config.max_multiplier,
        )
        self.violation_retention = violation_retention_seconds

        self._states: dict[str, AdaptiveState] = {}
        self._violations: dict[str, deque[ViolationRecord]] = {}

        self.allowed_total = 0
        self.denied_total = 0

    def check_and_record(self, subject_id: str, endpoint: str,
                         is_privileged: bool, now: float) -> Decision:
        if not subject_id:
            return self._reject_invalid("missing subject id")
        if not endpoint:
            return self._reject_invalid("missing endpoint name")

        base = self.table.resolve(endpoint, is_privileged)
        state = self.state(subject_id)
        policy = self.throttle.scale(base, state)

        decision = self.limiter.allow(subject_id, endpoint, policy, now)
        if not decision.allowed:
            self.denied_total += 1
            metrics.requests_denied_total.labels(
                tier=base.tier, limit=decision.limit,
            ).inc()
            self.record_violation(subject_id, endpoint, decision.reason, now)
            return decision

        self.limiter.record(subject_id, endpoint, now)
        self.allowed_total += 1
        metrics.requests_allowed_total.labels(tier=base.tier).inc()
        return decision

    def record_violation(self, subject_id: str, endpoint: str, reason: str,
                         now: float) -> ViolationRecord:
        """Feed a violation into the subject's throttle and history.

        Also used for out-of-band anomaly events, which count against the
        subject the same way a denied request does.
        """
        if self.throttle.on_violation(self.state(subject_id), now):
            metrics.throttle_escalations_total.inc()

        record = ViolationRecord(endpoint, reason, now, subject_id)
        history = self._violations.get(subject_id)
        if history is None:
            history = deque(maxlen=_MAX_VIOLATIONS_PER_SUBJECT)
            self._violations[subject_id] = history
        history.append(record)
        return record

    def state(self, subject_id: str) -> AdaptiveState:
        """Adaptive state for *subject_id*, created lazily."""
        state = self._states.get(subject_id)
        if state is None:
            state = AdaptiveState()
            self._states[subject_id] = state
        return state

    def peek_state(self, subject_id: str) -> AdaptiveState:
        """Like state(), but never creates an entry."""
        return self._states.get(subject_id) or AdaptiveState()

    def violations(self, subject_id: str, now: float | None = None) -> list[ViolationRecord]:
        history = self._violations.get(subject_id)
        if not history:
            return []
        if now is None:
            return list(history)
        cutoff = now - self.violation_retention
        return [v for v in history if v.timestamp > cutoff]

    def decay(self, now: float) -> int:
        """Relax every quiet subject one step.  Returns how many changed."""
        return sum(1 for state in self._states.values() if self.throttle.decay(state, now))

    def prune(self, now: float) -> None:
        """Drop expired request windows, old violations and neutral states."""
        self.limiter.prune(now, self.limiter.retention_seconds)

        cutoff = now - self.violation_retention
        for subject_id in list(self._violations):
            history = self._violations[subject_id]
            while history and history[0].timestamp <= cutoff:
                history.popleft()
            if not history:
                del self._violations[subject_id]

        for subject_id in list(self._states):
            if self._states[subject_id].is_neutral:
                del self._states[subject_id]

    def evict(self, subject_id: str) -> None:
        self.limiter.evict(subject_id)
        self._states.pop(subject_id, None)
        self._violations.pop(subject_id, None)

    def stats(self) -> dict:
        return {
            "allowed_total": self.allowed_total,
            "denied_total": self.denied_total,
            "throttled_subjects": sum(
                1 for s in self._states.values() if s.throttle_multiplier > 1.0
            ),
        }

    def _reject_invalid(self, reason: str) -> Decision:
        self.denied_total += 1
        metrics.requests_denied_total.labels(tier="none", limit="invalid").inc()
        return Decision(False, f"invalid request: {reason}", "invalid")
