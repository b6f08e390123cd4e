"""
Unit Tests for Suspicion Tier Thresholds

Tests tier classification and escalation rules.
"""

import pytest

from fraud_engine.domains.fraud.domain.enums import RiskLevel
from fraud_engine.domains.fraud.domain.thresholds import RiskThresholds, saturate


@pytest.mark.unit
class TestRiskThresholds:
    """Test tier definitions and classification."""

    def test_threshold_coverage(self):
        """Thresholds cover 0-100 contiguously."""
        thresholds = RiskThresholds.get_all_thresholds()

        assert len(thresholds) == 4
        assert thresholds[0].min_score == 0
        assert thresholds[-1].max_score == 100

        for i in range(len(thresholds) - 1):
            assert thresholds[i].max_score == thresholds[i + 1].min_score

    def test_threshold_levels(self):
        actual_levels = [t.level for t in RiskThresholds.get_all_thresholds()]

        assert actual_levels == [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]

    @pytest.mark.parametrize("score,expected", [
        (0, RiskLevel.LOW),
        (29, RiskLevel.LOW),
        (29.99, RiskLevel.LOW),
        (30, RiskLevel.MEDIUM),
        (49, RiskLevel.MEDIUM),
        (50, RiskLevel.HIGH),
        (69, RiskLevel.HIGH),
        (70, RiskLevel.CRITICAL),
        (100, RiskLevel.CRITICAL),
    ])
    def test_tier_boundaries(self, score, expected):
        assert RiskThresholds.level_for(score) == expected

    def test_invalid_score_range(self):
        with pytest.raises(ValueError, match="between 0-100"):
            RiskThresholds.classify_score(-1)

        with pytest.raises(ValueError, match="between 0-100"):
            RiskThresholds.classify_score(100.5)

    def test_threshold_by_level(self):
        threshold = RiskThresholds.get_threshold_by_level(RiskLevel.HIGH)

        assert threshold.score_range == "50-70"
        assert threshold.contains_score(50)
        assert not threshold.contains_score(70)

    def test_escalation_requires_strict_rise_into_high_or_critical(self):
        assert RiskThresholds.is_escalation(RiskLevel.MEDIUM, RiskLevel.HIGH)
        assert RiskThresholds.is_escalation(RiskLevel.LOW, RiskLevel.CRITICAL)
        assert RiskThresholds.is_escalation(RiskLevel.HIGH, RiskLevel.CRITICAL)

        assert not RiskThresholds.is_escalation(RiskLevel.LOW, RiskLevel.MEDIUM)
        assert not RiskThresholds.is_escalation(RiskLevel.HIGH, RiskLevel.HIGH)
        assert not RiskThresholds.is_escalation(RiskLevel.CRITICAL, RiskLevel.CRITICAL)

    def test_saturation(self):
        assert saturate(40) == 40
        assert saturate(100) == 100
        assert saturate(175) == 100
