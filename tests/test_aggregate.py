"""Tests for cross-feature aggregation and engagement rate."""

import pytest

from guest_mau_engine.analysis.aggregate import aggregate_features, engagement_rate


class TestAggregateFeatures:

    def test_union_counts_shared_guest_once(self):
        result = aggregate_features({
            "entitlement_management": {"G1", "G2"},
            "lifecycle_workflows": {"G2", "G3"},
            "access_reviews": set(),
        })
        assert result.total == {"G1", "G2", "G3"}
        assert result.total_count == 3
        assert result.per_feature_counts == {
            "entitlement_management": 2,
            "lifecycle_workflows": 2,
            "access_reviews": 0,
        }

    def test_failed_feature_counts_as_empty(self):
        result = aggregate_features({"entitlement_management": {"G1"}, "access_reviews": None})
        assert result.total == {"G1"}
        assert result.per_feature_counts["access_reviews"] == 0

    def test_no_features(self):
        result = aggregate_features({})
        assert result.total == frozenset()
        assert result.per_feature_counts == {}

    def test_inputs_are_not_mutated(self):
        em = {"G1"}
        aggregate_features({"entitlement_management": em, "lifecycle_workflows": {"G2"}})
        assert em == {"G1"}

    def test_features_for_guest(self):
        result = aggregate_features({"a": {"G1"}, "b": {"G1", "G2"}})
        assert result.features_for("G1") == ["a", "b"]
        assert result.features_for("G2") == ["b"]
        assert result.features_for("nobody") == []


class TestEngagementRate:

    def test_zero_guests_is_zero(self):
        assert engagement_rate(0, 0) == 0
        assert engagement_rate(5, 0) == 0

    def test_ratio(self):
        assert engagement_rate(1, 4) == pytest.approx(0.25)

    def test_negative_count_is_guarded(self):
        assert engagement_rate(3, -1) == 0.0
