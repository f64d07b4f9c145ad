"""Abuse-prevention engine — rate limiting plus behavioral anomaly scoring.

Pure business logic, no Kafka dependency.  The service feeds telemetry and
gating requests in, drives tick() from its poll loop, and publishes the
anomaly events that come back out.

State is owned here, keyed by subject:
  - RateLimiter      request windows, adaptive throttle state, violations
  - _profiles        dict[subject_id, BehaviorProfile]

The two halves feed each other: a denied request is recorded as a violation
in the subject's profile (raising macro risk), and an anomaly event counts
as a violation against the subject's throttle (tightening its limits).

Single-threaded: every call mutates one subject's state synchronously and
never yields mid-update, so no locks are needed.  Evicting a subject just
drops its entries; later calls for it start from fresh state.
"""

import time
from collections.abc import Callable

from warden import metrics
from warden.behavior.aggregator import AnomalyAggregator
from warden.behavior.profile import BehaviorProfile
from warden.config import EngineConfig
from warden.limiter.policies import PolicyTable
from warden.limiter.rate_limiter import RateLimiter, ViolationRecord
from warden.limiter.sliding_window import Decision

ANOMALY_ENDPOINT = "anomaly"


def _vector(value) -> tuple[float, float, float] | None:
    if not isinstance(value, (list, tuple)) or len(value) != 3:
        return None
    try:
        return tuple(float(c) for c in value)
    except (TypeError, ValueError):
        return None


class AbusePreventionEngine:

    def __init__(self, config: EngineConfig | None = None,
                 table: PolicyTable | None = None,
                 is_privileged: Callable[[str], bool] | None = None,
                 on_anomaly: Callable[[str, float, dict], None] | None = None,
                 on_evict: Callable[[str, dict], None] | None = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config or EngineConfig()
        self.limiter = RateLimiter(
            table, self.config.throttle, self.config.violation_retention_seconds,
        )
        self.aggregator = AnomalyAggregator(self.config.scoring)

        self._profiles: dict[str, BehaviorProfile] = {}
        self._is_privileged = is_privileged or (lambda subject_id: False)
        self._on_anomaly = on_anomaly
        self._on_evict = on_evict
        self._clock = clock

        self._intervals = {
            "micro": self.config.micro_interval_seconds,
            "macro": self.config.macro_interval_seconds,
            "eviction": self.config.eviction_interval_seconds,
        }
        self._last_run: dict[str, float] = {}

    # ------------------------------------------------------------------
    # Gating
    # ------------------------------------------------------------------

    def check_and_record(self, subject_id: str, endpoint: str,
                         is_privileged: bool | None = None,
                         now: float | None = None) -> Decision:
        """Gate one inbound action.  Always returns synchronously."""
        now = self._now(now)
        if subject_id and is_privileged is None:
            is_privileged = bool(self._is_privileged(subject_id))

        decision = self.limiter.check_and_record(
            subject_id, endpoint, bool(is_privileged), now,
        )
        if decision.limit == "invalid":
            return decision

        profile = self._profile(subject_id, now)
        profile.last_seen = max(profile.last_seen, now)
        if not decision.allowed:
            profile.record_violation(
                ViolationRecord(endpoint, decision.reason, now, subject_id)
            )
        return decision

    # ------------------------------------------------------------------
    # Telemetry ingestion
    # ------------------------------------------------------------------

    def record_action(self, subject_id: str, action_type: str,
                      action_data: dict | None = None,
                      now: float | None = None) -> bool:
        """Buffer one action.  Returns False if the sample was rejected."""
        if not subject_id or not action_type:
            return False
        now = self._now(now)
        return self._profile(subject_id, now).record_action(action_type, action_data, now)

    def record_movement(self, subject_id: str, position, velocity=(0.0, 0.0, 0.0),
                        now: float | None = None) -> bool:
        """Buffer one movement sample.  Returns False if it was rejected."""
        position, velocity = _vector(position), _vector(velocity)
        if not subject_id or position is None or velocity is None:
            return False
        now = self._now(now)
        return self._profile(subject_id, now).record_movement(position, velocity, now)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def get_analysis(self, subject_id: str) -> dict:
        """Read-only snapshot.  Unknown subjects read as fresh, never created."""
        profile = self._profiles.get(subject_id)
        if profile is None:
            profile = BehaviorProfile(subject_id, 0.0, self.config.profile)
        state = self.limiter.peek_state(subject_id)
        return {
            **profile.snapshot(),
            "trust_score": round(state.trust_score, 4),
            "throttle_multiplier": round(state.throttle_multiplier, 4),
        }

    def subjects(self) -> list[str]:
        return list(self._profiles)

    def stats(self) -> dict:
        return {**self.limiter.stats(), "subjects_tracked": len(self._profiles)}

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def tick(self, now: float | None = None) -> list[dict]:
        """Run whichever cadences are due.  Returns anomaly events fired."""
        now = self._now(now)
        events = []
        if self._due("micro", now):
            events = self.tick_micro(now)
        if self._due("macro", now):
            self.tick_macro(now)
        if self._due("eviction", now):
            self.evict_expired(now)
        return events

    def tick_micro(self, now: float | None = None) -> list[dict]:
        """Score every subject's short-horizon features."""
        now = self._now(now)
        events = []
        for profile in list(self._profiles.values()):
            event = self.aggregator.micro_tick(profile, now)
            metrics.anomaly_score.observe(profile.anomaly_score)
            if event is not None:
                self._dispatch_anomaly(profile, event, now)
                events.append(event)
        return events

    def tick_macro(self, now: float | None = None) -> int:
        """Recompute risk for every subject and relax quiet throttles."""
        now = self._now(now)
        for profile in list(self._profiles.values()):
            self.aggregator.macro_tick(profile, now)
        self.limiter.decay(now)
        return len(self._profiles)

    def evict_expired(self, now: float | None = None) -> int:
        """Prune buffers and evict subjects idle past their TTL."""
        now = self._now(now)
        ttl = self.config.subject_ttl_seconds
        evicted = 0
        for subject_id, profile in list(self._profiles.items()):
            if now - profile.last_seen > ttl:
                self._evict(subject_id, cause="idle")
                evicted += 1
            else:
                profile.prune(now)
        self.limiter.prune(now)
        metrics.subjects_tracked.set(len(self._profiles))
        return evicted

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def disconnect(self, subject_id: str) -> bool:
        """Evict all state for a subject that left.  Returns False if unknown."""
        known = subject_id in self._profiles
        if known:
            self._evict(subject_id, cause="disconnect")
        else:
            self.limiter.evict(subject_id)
        metrics.subjects_tracked.set(len(self._profiles))
        return known

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _dispatch_anomaly(self, profile: BehaviorProfile, event: dict, now: float) -> None:
        subject_id = profile.subject_id
        reason = f"anomaly score {event['score']:.2f}"
        profile.record_violation(
            self.limiter.record_violation(subject_id, ANOMALY_ENDPOINT, reason, now)
        )
        metrics.anomalies_total.labels(category=event["behavior_category"]).inc()
        if self._on_anomaly is not None:
            self._on_anomaly(subject_id, event["score"], event)

    def _evict(self, subject_id: str, cause: str) -> None:
        if self._on_evict is not None:
            self._on_evict(subject_id, self.get_analysis(subject_id))
        self._profiles.pop(subject_id, None)
        self.limiter.evict(subject_id)
        metrics.subjects_evicted_total.labels(cause=cause).inc()

    def _profile(self, subject_id: str, now: float) -> BehaviorProfile:
        profile = self._profiles.get(subject_id)
        if profile is None:
            profile = BehaviorProfile(subject_id, now, self.config.profile)
            self._profiles[subject_id] = profile
            metrics.subjects_tracked.set(len(self._profiles))
        return profile

    def _due(self, cadence: str, now: float) -> bool:
        last = self._last_run.get(cadence)
        if last is not None and now - last < self._intervals[cadence]:
            return False
        self._last_run[cadence] = now
        return True

    def _now(self, now: float | None) -> float:
        return self._clock() if now is None else now
