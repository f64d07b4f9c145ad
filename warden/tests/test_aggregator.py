"""Tests for the aggregator and classifier — composites, events, baseline learning."""

import pytest

from warden.behavior.aggregator import AnomalyAggregator, ScoringConfig, build_scorers
from warden.behavior.category import BehaviorCategory, classify
from warden.behavior.profile import BehaviorProfile, ProfileConfig
from warden.limiter.rate_limiter import ViolationRecord


def _bot(profile, n=20, step=0.1):
    for i in range(n):
        profile.record_action("click", None, i * step)
    return (n - 1) * step


def _speed_hack(profile, n=20, step=0.1):
    for i in range(n):
        profile.record_movement((i * 10.0, 0.0, 0.0), (0.0, 0.0, 0.0), i * step)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class TestClassify:
    @pytest.mark.parametrize("risk,anomaly,expected", [
        (0.0, 0.0, BehaviorCategory.NORMAL),
        (0.1, 0.2, BehaviorCategory.NORMAL),
        (0.3, 0.3, BehaviorCategory.SUSPICIOUS),
        (0.5, 0.5, BehaviorCategory.BOT_LIKE),
        (0.7, 0.7, BehaviorCategory.EXPLOIT_ATTEMPT),
        (0.9, 0.9, BehaviorCategory.ADVANCED_EXPLOIT),
        (1.0, 1.0, BehaviorCategory.ADVANCED_EXPLOIT),
    ])
    def test_category_table(self, risk, anomaly, expected):
        assert classify(risk, anomaly)[0] is expected

    @pytest.mark.parametrize("score,expected", [
        (0.2, BehaviorCategory.SUSPICIOUS),
        (0.4, BehaviorCategory.BOT_LIKE),
        (0.6, BehaviorCategory.EXPLOIT_ATTEMPT),
        (0.8, BehaviorCategory.ADVANCED_EXPLOIT),
    ])
    def test_thresholds_are_lower_inclusive(self, score, expected):
        assert classify(score, score)[0] is expected

    def test_confidence(self):
        assert classify(0.0, 0.0)[1] == 1.0
        assert classify(0.1, 0.1)[1] == pytest.approx(0.9)
        assert classify(0.5, 0.7)[1] == pytest.approx(0.6)

    def test_custom_thresholds(self):
        assert classify(0.3, 0.3, (0.5, 0.6, 0.7, 0.9))[0] is BehaviorCategory.NORMAL

    def test_profile_category_tracks_scores(self):
        profile = BehaviorProfile("p", 0.0)
        assert profile.behavior_category is BehaviorCategory.NORMAL
        profile.risk_score, profile.anomaly_score = 0.9, 0.9
        assert profile.behavior_category is BehaviorCategory.ADVANCED_EXPLOIT
        assert profile.snapshot()["behavior_category"] == "ADVANCED_EXPLOIT"

    def test_profile_thresholds_from_config(self):
        profile = BehaviorProfile("p", 0.0, ProfileConfig(category_thresholds=(0.5, 0.6, 0.7, 0.9)))
        profile.risk_score = profile.anomaly_score = 0.3
        assert profile.behavior_category is BehaviorCategory.NORMAL

    def test_classification_is_idempotent(self):
        assert classify(0.3, 0.5) == classify(0.3, 0.5)
        profile = BehaviorProfile("p", 0.0)
        profile.risk_score, profile.anomaly_score = 0.45, 0.65
        first = profile.classify()
        assert profile.classify() == first
        assert profile.behavior_category is first[0]
        assert profile.snapshot()["behavior_category"] == first[0].name


# ---------------------------------------------------------------------------
# Micro composite and anomaly events
# ---------------------------------------------------------------------------

class TestMicroTick:
    def setup_method(self):
        self.aggregator = AnomalyAggregator()
        self.profile = BehaviorProfile("bot", 0.0)

    def test_fresh_profile_scores_zero(self):
        assert self.aggregator.micro_tick(self.profile, 1.0) is None
        assert self.profile.anomaly_score == 0.0

    def test_scripted_clicks_composite(self):
        now = _bot(self.profile)
        event = self.aggregator.micro_tick(self.profile, now)
        # (0.25 * 1.0 + 0.20 * 0.7) / 0.60
        assert self.profile.anomaly_score == pytest.approx(0.65)
        assert self.profile.anomaly_score > 0.5
        assert event is None
        assert self.profile.details["micro"]["action_frequency"] == pytest.approx(1.0)

    def test_event_fires_above_threshold(self):
        now = _bot(self.profile)
        _speed_hack(self.profile)
        event = self.aggregator.micro_tick(self.profile, now)
        assert event is not None
        assert event["subject_id"] == "bot"
        assert event["score"] == pytest.approx(0.9)
        assert event["behavior_category"] == "BOT_LIKE"
        assert event["timestamp"] == now
        assert set(event["evidence"]) == {"action_frequency", "timing_consistency", "movement"}
        assert self.profile.last_anomaly_event == now

    def test_refire_suppressed_then_allowed(self):
        now = _bot(self.profile)
        _speed_hack(self.profile)
        assert self.aggregator.micro_tick(self.profile, now) is not None
        assert self.aggregator.micro_tick(self.profile, now + 1) is None
        assert self.profile.anomaly_score == pytest.approx(0.9)
        assert self.aggregator.micro_tick(self.profile, now + 31) is not None

    def test_lower_event_threshold(self):
        aggregator = AnomalyAggregator(ScoringConfig(event_threshold=0.5))
        now = _bot(self.profile)
        assert aggregator.micro_tick(self.profile, now) is not None

    def test_weight_override_renormalises(self):
        aggregator = AnomalyAggregator(ScoringConfig(
            scorers={"timing_consistency": {"weight": 0.0}},
        ))
        now = _bot(self.profile)
        aggregator.micro_tick(self.profile, now)
        # (0.25 * 1.0) / (0.25 + 0.15)
        assert self.profile.anomaly_score == pytest.approx(0.625)


# ---------------------------------------------------------------------------
# Macro composite
# ---------------------------------------------------------------------------

class TestMacroTick:
    def setup_method(self):
        self.aggregator = AnomalyAggregator()
        self.profile = BehaviorProfile("abuser", 0.0)

    def test_no_history_no_risk(self):
        assert self.aggregator.macro_tick(self.profile, 10.0) == 0.0

    def test_violations_raise_risk(self):
        for i in range(10):
            self.profile.record_violation(ViolationRecord("BuyItem", "burst", float(i), "abuser"))
        risk = self.aggregator.macro_tick(self.profile, 10.0)
        # 0.10 * 1.0 / (0.05 + 0.15 + 0.10 + 0.10)
        assert risk == pytest.approx(0.25)
        assert self.profile.risk_score == risk
        assert self.profile.details["macro"]["violations"] == 1.0

    def test_scores_stay_in_unit_interval(self):
        for i in range(40):
            self.profile.record_action("a" if i % 2 else "b", None, float(i))
            self.profile.record_movement((i * 100.0, 0, 0), (100.0, 0, 0), float(i))
            self.profile.record_violation(ViolationRecord("BuyItem", "burst", float(i), "abuser"))
        risk = self.aggregator.macro_tick(self.profile, 39.0)
        assert 0.0 <= risk <= 1.0


# ---------------------------------------------------------------------------
# Baseline learning
# ---------------------------------------------------------------------------

class TestBaseline:
    def setup_method(self):
        self.aggregator = AnomalyAggregator()
        self.profile = BehaviorProfile("p", 0.0)

    def test_learns_from_normal_rate(self):
        for i in range(15):
            self.profile.record_action(f"a{i % 5}", None, i * 0.5)
        self.aggregator.micro_tick(self.profile, 7.0)
        # 0.9 * 1.0 + 0.1 * 2.0
        assert self.profile.baseline_rate == pytest.approx(1.1)

    def test_ignores_spikes(self):
        now = _bot(self.profile)
        self.aggregator.micro_tick(self.profile, now)
        assert self.profile.baseline_rate == 1.0

    def test_floored(self):
        for i in range(12):
            self.profile.record_action(f"a{i % 5}", None, i * 5.0)
        for _ in range(50):
            self.aggregator.micro_tick(self.profile, 55.0)
        assert self.profile.baseline_rate == 0.5

    def test_insufficient_samples_leave_baseline(self):
        for i in range(5):
            self.profile.record_action("a", None, float(i))
        self.aggregator.micro_tick(self.profile, 4.0)
        assert self.profile.baseline_rate == 1.0


class TestBuildScorers:
    def test_defaults(self):
        micro, macro = build_scorers()
        assert [s.id for s in micro] == ["action_frequency", "timing_consistency", "movement"]
        assert [s.id for s in macro] == ["session", "sequence", "velocity", "violations"]
        assert sum(s.weight for s in micro + macro) == pytest.approx(1.0)

    def test_unknown_scorer_id(self):
        with pytest.raises(ValueError, match="unknown scorers in config: teleport"):
            build_scorers({"teleport": {}})

    def test_override_applies_to_one_instance(self):
        micro, _ = build_scorers({"movement": {"max_speed": 80.0}})
        assert micro[2].max_speed == 80.0
