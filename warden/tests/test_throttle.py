"""Tests for AdaptiveThrottle — scaling, escalation, decay hysteresis."""

import pytest

from warden.limiter.policies import EndpointPolicy
from warden.limiter.throttle import AdaptiveState, AdaptiveThrottle, ThrottleConfig

BASE = EndpointPolicy("STANDARD", max_requests=30, window_seconds=60,
                      burst_limit=5, cooldown_seconds=0.5)


def _violate(throttle, state, times):
    for t in times:
        throttle.on_violation(state, t)


class TestScale:
    def setup_method(self):
        self.throttle = AdaptiveThrottle()

    def test_neutral_state_returns_base_policy(self):
        assert self.throttle.scale(BASE, AdaptiveState()) is BASE

    def test_multiplier_tightens_every_limit(self):
        scaled = self.throttle.scale(BASE, AdaptiveState(throttle_multiplier=2.0))
        assert scaled.max_requests == 15
        assert scaled.burst_limit == 2
        assert scaled.window_seconds == 120
        assert scaled.cooldown_seconds == 1.0
        assert scaled.tier == "STANDARD"

    def test_counts_never_drop_below_one(self):
        tiny = EndpointPolicy("CRITICAL", max_requests=2, window_seconds=60,
                              burst_limit=1, cooldown_seconds=2.0)
        scaled = self.throttle.scale(tiny, AdaptiveState(throttle_multiplier=5.0))
        assert scaled.max_requests == 1
        assert scaled.burst_limit == 1

    def test_zero_cooldown_stays_zero(self):
        policy = EndpointPolicy("PRIVILEGED", 1000, 60, 100, 0)
        scaled = self.throttle.scale(policy, AdaptiveState(throttle_multiplier=3.0))
        assert scaled.cooldown_seconds == 0


class TestEscalation:
    def setup_method(self):
        self.throttle = AdaptiveThrottle()
        self.state = AdaptiveState()

    def test_below_threshold_only_counts(self):
        _violate(self.throttle, self.state, [0, 1])
        assert self.state.violation_count == 2
        assert self.state.throttle_multiplier == 1.0
        assert self.state.trust_score == 1.0
        assert self.state.last_violation_time == 1

    def test_third_violation_escalates(self):
        _violate(self.throttle, self.state, [0, 10, 20])
        assert self.state.throttle_multiplier == pytest.approx(1.5)
        assert self.state.trust_score == pytest.approx(0.8)

    def test_fourth_violation_escalates_again(self):
        _violate(self.throttle, self.state, [0, 10, 20])
        assert self.throttle.on_violation(self.state, 30) is True
        assert self.state.throttle_multiplier == pytest.approx(2.25)
        assert self.state.trust_score == pytest.approx(0.64)

    def test_multiplier_capped_and_trust_floored(self):
        _violate(self.throttle, self.state, range(50))
        assert self.state.throttle_multiplier == 5.0
        assert self.state.trust_score == pytest.approx(0.1)

    def test_multiplier_and_trust_move_in_opposite_directions(self):
        prev_m, prev_t = self.state.throttle_multiplier, self.state.trust_score
        for t in range(3, 10):
            self.throttle.on_violation(self.state, t)
            if self.state.violation_count >= 3 and self.state.throttle_multiplier < 5.0:
                assert self.state.throttle_multiplier > prev_m
                assert self.state.trust_score < prev_t
            prev_m, prev_t = self.state.throttle_multiplier, self.state.trust_score

    def test_custom_threshold(self):
        throttle = AdaptiveThrottle(ThrottleConfig(escalation_threshold=1))
        state = AdaptiveState()
        assert throttle.on_violation(state, 0) is True
        assert state.throttle_multiplier == pytest.approx(1.5)


class TestDecay:
    def setup_method(self):
        self.throttle = AdaptiveThrottle()
        self.state = AdaptiveState()
        _violate(self.throttle, self.state, [0, 1, 2, 3])  # 2.25 / 0.64

    def test_no_decay_inside_quiet_period(self):
        assert self.throttle.decay(self.state, 60.0) is False
        assert self.state.throttle_multiplier == pytest.approx(2.25)

    def test_one_step_after_quiet_period(self):
        assert self.throttle.decay(self.state, 64.0) is True
        assert self.state.throttle_multiplier == pytest.approx(2.025)
        assert self.state.trust_score == pytest.approx(0.704)

    def test_sustained_quiet_resets_fully(self):
        now = 100.0
        steps = 0
        while not self.state.is_neutral:
            prev_m, prev_t = self.state.throttle_multiplier, self.state.trust_score
            assert self.throttle.decay(self.state, now)
            if not self.state.is_neutral:
                assert self.state.throttle_multiplier < prev_m
                assert self.state.trust_score >= prev_t
            steps += 1
            assert steps < 50
        assert self.state.violation_count == 0
        assert self.state.throttle_multiplier == 1.0
        assert self.state.trust_score == 1.0

    def test_decay_without_violations_is_noop(self):
        state = AdaptiveState()
        assert self.throttle.decay(state, 1000.0) is False
        assert state.is_neutral

    def test_sub_threshold_violations_forgotten_after_quiet(self):
        state = AdaptiveState()
        _violate(self.throttle, state, [0, 1])
        assert self.throttle.decay(state, 100.0) is True
        assert state.violation_count == 0

    def test_new_violation_interrupts_recovery(self):
        self.throttle.decay(self.state, 64.0)
        self.throttle.on_violation(self.state, 65.0)
        assert self.throttle.decay(self.state, 100.0) is False
