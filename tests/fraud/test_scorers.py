"""
Unit Tests for Evidence Scorers
"""

import pytest

from fraud_engine.domains.fraud.application.scorers import (
    PERCENTAGE_VALUES,
    EvidenceScorer,
    ScorerRegistry,
)
from fraud_engine.shared.exceptions import ValidationError


@pytest.mark.unit
class TestScorerRegistry:
    """Catalogue lookup and registration."""

    def test_catalogue_weights(self):
        registry = ScorerRegistry()

        assert registry.methods() == sorted(PERCENTAGE_VALUES)
        assert registry.get("deviceMatch").weight == 40
        assert registry.get("timezoneLanguage").weight == 10
        assert registry.get("bruteForce").weight == 35

    def test_unknown_method(self):
        with pytest.raises(ValidationError, match="Unknown scoring method"):
            ScorerRegistry().get("telepathy")

    def test_register_custom_scorer(self):
        registry = ScorerRegistry(scorers=[])
        registry.register(EvidenceScorer("velocity", 12.5, lambda count: f"{count} deposits in one hour"))

        assert "velocity" in registry
        assert "deviceMatch" not in registry
        update = registry.get("velocity").build(count=9)
        assert update.percentage == 12.5
        assert update.evidence == "9 deposits in one hour"

    @pytest.mark.parametrize("weight", [0, -5, 101])
    def test_invalid_weight(self, weight):
        with pytest.raises(ValidationError):
            ScorerRegistry(scorers=[]).register(EvidenceScorer("bad", weight, lambda: "x"))


@pytest.mark.unit
class TestEvidenceText:
    """Evidence strings written into score history."""

    @pytest.mark.parametrize("method,params,expected", [
        (
            "deviceMatch",
            {"fingerprint_id": "abcdef0123456789", "device_info": "Chrome on Windows"},
            "Same device detected (Chrome on Windows) - Fingerprint: abcdef012345...",
        ),
        ("ipMatch", {"ip_address": "10.0.0.1"}, "Same IP address detected: 10.0.0.1"),
        (
            "ipBrowserMatch",
            {"ip_address": "10.0.0.1", "browser": "Firefox"},
            "Same IP (10.0.0.1) and browser (Firefox) detected",
        ),
        ("timezoneLanguage", {"timezone": "Africa/Casablanca", "language": "fr"},
         "Same timezone (Africa/Casablanca) and language (fr)"),
        ("rapidCreation", {"time_window_minutes": 15}, "Multiple accounts created within 15 minutes"),
        ("tradingSimilarity", {"similarity_percent": 87}, "87% trading pattern similarity detected"),
        ("mirrorTrading", {"match_rate": 0.913}, "Mirror trading detected (91% opposite trades)"),
        ("sameCity", {"city": "Rabat", "distance_km": 2}, "Accounts within 2km (Rabat)"),
        ("deviceSwitching", {"device_count": 5, "time_window_hours": 24}, "Used 5 different devices within 24 hours"),
        (
            "rateLimitExceeded",
            {"limit_type": "login", "attempts": 40, "ip_address": "10.0.0.9"},
            "Rate limit exceeded: 40 login attempts from IP 10.0.0.9",
        ),
    ])
    def test_evidence_format(self, method, params, expected):
        update = ScorerRegistry().get(method).build(**params)

        assert update.method == method
        assert update.percentage == PERCENTAGE_VALUES[method]
        assert update.evidence == expected

    def test_brute_force_with_email(self):
        update = ScorerRegistry().get("bruteForce").build(
            failed_attempts=8, ip_address="10.0.0.3", email="trader@example.com"
        )

        assert update.evidence == "Brute force attack: 8 failed login attempts from IP 10.0.0.3 for trader@example.com"


@pytest.mark.integration
class TestEvidenceScoringService:
    def test_pairwise_helpers_link_both_users(self, engine):
        engine.scorers.score_mirror_trading("u1", "u2", 0.8)

        assert engine.scores.get_score("u1").total_score == 35
        assert engine.scores.get_score("u2").linked_user_ids == ["u1"]

    def test_single_user_helpers_do_not_link(self, engine):
        engine.scorers.score_device_switching("u1", 4, 12)
        engine.scorers.score_rate_limit_exceeded("u1", "signup", 30, "10.0.0.2")

        score = engine.scores.get_score("u1")
        assert score.total_score == 40
        assert score.linked_accounts == []

    def test_group_helpers(self, engine):
        engine.scorers.score_ip_browser_match(["u1", "u2"], "10.0.0.5", "Opera")
        engine.scorers.score_timezone_language(["u1", "u2"], "Europe/Paris", "fr")
        engine.scorers.score_payment_match(["u1", "u2"], "stripe", "pm_fp_000111222333")
        engine.scorers.score_coordinated_entry(["u1", "u2"], "comp-42-abcdefghij", 3)
        engine.scorers.score_trading_similarity("u1", "u2", 88)

        score = engine.scores.get_score("u2")
        assert score.score_breakdown == {
            "ipBrowserMatch": 35,
            "timezoneLanguage": 10,
            "samePayment": 30,
            "coordinatedEntry": 25,
            "tradingSimilarity": 30,
        }
        assert score.total_score == 100
        assert score.raw_score == 130

    def test_brute_force_helper(self, engine):
        change = engine.scorers.score_brute_force("u1", 20, "10.0.0.8")

        assert change.new_score == 35
