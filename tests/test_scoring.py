"""Tests for metric extraction, normalization, weighting and aggregation."""

import math

import pytest

from prism.utils.scoring import (
    ScoringConfig,
    aggregate_scores,
    average_scores,
    calculate_weighted_score,
    extract_metric_value,
    normalize_metric,
)


class TestExtractMetricValue:
    def test_prefers_score_over_rating(self):
        assert extract_metric_value({"score": 1800, "rating": 2000}) == 1800.0

    def test_prefers_rating_over_problems_solved(self):
        assert extract_metric_value({"rating": 2000, "problemsSolved": 450}) == 2000.0

    def test_falls_back_to_problems_solved(self):
        assert extract_metric_value({"problemsSolved": 450}) == 450.0

    def test_no_known_field_is_absent(self):
        assert extract_metric_value({"unknown": 123}) is None
        assert extract_metric_value({}) is None

    def test_non_numeric_field_is_skipped(self):
        assert extract_metric_value({"score": "high", "rating": 1500}) == 1500.0
        assert extract_metric_value({"score": None}) is None

    def test_booleans_are_not_numbers(self):
        assert extract_metric_value({"score": True, "problemsSolved": 12}) == 12.0

    def test_non_mapping_metrics(self):
        assert extract_metric_value(None) is None
        assert extract_metric_value([1, 2, 3]) is None

    def test_custom_field_order(self):
        metrics = {"rating": 2000, "problemsSolved": 450}
        assert extract_metric_value(metrics, fields=("problemsSolved", "rating")) == 450.0


class TestNormalizeMetric:
    @pytest.mark.parametrize(
        "value, low, high, expected",
        [
            (1500, 0, 3000, 50.0),
            (2100, 0, 3000, 70.0),
            (1650, 0, 4000, 41.25),
            (0, 0, 3000, 0.0),
            (3000, 0, 3000, 100.0),
            (150, 0, 100, 100.0),
            (-50, 0, 100, 0.0),
            (600, 500, 1500, 10.0),
        ],
    )
    def test_scaling_and_clamping(self, value, low, high, expected):
        assert normalize_metric(value, low, high) == pytest.approx(expected)

    def test_degenerate_range_is_zero(self):
        assert normalize_metric(100, 50, 50) == 0.0
        assert normalize_metric(0, 0, 0) == 0.0

    def test_nan_is_zero(self):
        assert normalize_metric(math.nan, 0, 100) == 0.0

    def test_result_always_in_range(self):
        for value in (-1e9, -1, 0, 1, 99.9, 1e9):
            assert 0.0 <= normalize_metric(value, 0, 100) <= 100.0


class TestWeighting:
    def test_default_weights(self, scoring_config):
        assert calculate_weighted_score("LEETCODE", 50, scoring_config) == pytest.approx(50.0)
        assert calculate_weighted_score("CODEFORCES", 50, scoring_config) == pytest.approx(60.0)
        assert calculate_weighted_score("GITHUB", 50, scoring_config) == pytest.approx(40.0)

    def test_unlisted_platform_uses_default_weight(self, scoring_config):
        assert calculate_weighted_score("TOPCODER", 50, scoring_config) == pytest.approx(50.0)

    def test_unlisted_platform_uses_default_range(self, scoring_config):
        assert scoring_config.range_for("TOPCODER") == (0.0, 1000.0)

    def test_negative_weight_rejected(self):
        with pytest.raises(ValueError):
            ScoringConfig(weights={"LEETCODE": -1.0})

    def test_config_tables_are_read_only(self):
        weights = {"LEETCODE": 2.0}
        config = ScoringConfig(weights=weights)
        weights["LEETCODE"] = 5.0

        assert config.weight_for("LEETCODE") == 2.0
        with pytest.raises(TypeError):
            config.weights["LEETCODE"] = 3.0


class TestAggregation:
    def test_weighted_sum(self, scoring_config):
        total = aggregate_scores([("LEETCODE", 50), ("CODEFORCES", 50)], scoring_config)
        assert total == pytest.approx(110.0)

    def test_weighted_sum_empty_is_zero(self, scoring_config):
        assert aggregate_scores([], scoring_config) == 0.0

    def test_weighted_sum_rewards_more_platforms(self, scoring_config):
        one = aggregate_scores([("LEETCODE", 50)], scoring_config)
        two = aggregate_scores([("LEETCODE", 50), ("GITHUB", 10)], scoring_config)
        assert two > one

    def test_mean(self):
        assert average_scores([70.0, 12.0]) == pytest.approx(41.0)

    def test_mean_empty_is_zero(self):
        assert average_scores([]) == 0.0
