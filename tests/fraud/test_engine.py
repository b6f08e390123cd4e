"""
Tests for the Fraud Engine entry points

Fire-and-forget behaviour: failures are queued as audit gaps and never raised
into the business flow.
"""

import pytest

from fraud_engine.domains.fraud.application.scorers import EvidenceScorer
from fraud_engine.domains.fraud.domain.value_objects import PaymentFingerprintData
from fraud_engine.infrastructure.common.exceptions import TransientDatabaseError


class _Flaky:
    """Fails the first ``failures`` calls, then delegates."""

    def __init__(self, func, failures=1):
        self.func = func
        self.failures = failures
        self.calls = 0

    def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise TransientDatabaseError("database is locked")
        return self.func(*args, **kwargs)


@pytest.mark.integration
class TestFraudEngine:
    def test_signal_entry_point(self, engine):
        changes = engine.on_signal("deviceMatch", ["A", "B"], fingerprint_id="fp-abcdef123456", device_info="Edge")

        assert [c.new_score for c in changes] == [40, 40]
        assert engine.scores.get_score("A").linked_user_ids == ["B"]

    def test_user_signal_entry_point(self, engine):
        change = engine.on_user_signal("bruteForce", "u1", failed_attempts=12, ip_address="192.0.2.1")

        assert change.new_score == 35
        evidence = engine.scores.get_score("u1").score_history[0].evidence
        assert evidence == "Brute force attack: 12 failed login attempts from IP 192.0.2.1"

    def test_failure_is_queued_not_raised(self, engine, monkeypatch):
        flaky = _Flaky(engine.payments.track_payment_fingerprint)
        monkeypatch.setattr(engine.payments, "track_payment_fingerprint", flaky)

        result = engine.on_payment(PaymentFingerprintData(user_id="u1", provider="stripe", fingerprint_hash="fp-hash-1"))

        assert result is None
        gaps = engine.audit_gaps.pending()
        assert len(gaps) == 1
        assert gaps[0].operation == "track_payment_fingerprint"
        assert gaps[0].correlation_id is not None
        assert "database is locked" in gaps[0].last_error

        report = engine.retry_audit_gaps()

        assert report.succeeded == 1
        assert len(engine.audit_gaps) == 0
        assert len(engine.payments.get_user_payment_fingerprints("u1")) == 1

    def test_repeated_failures_are_dead_lettered(self, engine, settings, monkeypatch):
        flaky = _Flaky(engine.scorers.apply, failures=100)
        monkeypatch.setattr(engine.scorers, "apply", flaky)

        engine.on_signal("ipMatch", ["u1"], ip_address="192.0.2.7")

        first = engine.retry_audit_gaps()
        second = engine.retry_audit_gaps()

        assert first.failed == 1
        assert second.dead_lettered == 1
        assert len(engine.audit_gaps) == 0
        dead = engine.audit_gaps.dead_letters()
        assert len(dead) == 1
        assert dead[0].attempts == settings.fraud.audit_gap_max_attempts

    def test_unknown_method_is_rejected_not_queued(self, engine):
        assert engine.on_signal("telepathy", ["u1"]) is None
        assert len(engine.audit_gaps) == 0

    def test_malformed_params_are_not_queued(self, engine):
        assert engine.on_signal("ipMatch", ["u1"]) is None
        assert len(engine.audit_gaps) == 0
        assert engine.scores.get_score("u1") is None

    def test_failed_escalation_is_queued(self, engine, enable_auto_suspend, monkeypatch):
        enable_auto_suspend(threshold=50)
        flaky = _Flaky(engine.enforcement.evaluate)
        monkeypatch.setattr(engine.scores, "escalation_handler", flaky)

        engine.on_signal("deviceMatch", ["X"], fingerprint_id="fp-abcdef123456", device_info="Edge")
        engine.on_signal("ipMatch", ["X"], ip_address="203.0.113.5")

        assert engine.scores.get_score("X").total_score == 70
        assert engine.restrictions.get_active_restriction("X") is None
        assert [gap.operation for gap in engine.audit_gaps.pending()] == ["auto_enforcement"]

        engine.retry_audit_gaps()

        assert engine.restrictions.get_active_restriction("X") is not None

    def test_custom_scorer(self, engine):
        engine.scorers.registry.register(
            EvidenceScorer("sharedWithdrawalAddress", 45, lambda address: f"Same withdrawal address {address}")
        )

        changes = engine.on_signal("sharedWithdrawalAddress", ["u1", "u2"], address="0xabc")

        assert changes[0].new_score == 45
        assert engine.scores.get_score("u2").score_breakdown == {"sharedWithdrawalAddress": 45}
