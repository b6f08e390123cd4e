"""
Tests for the Suspicion Score Service

Covers saturating sums, tier transitions, symmetric linking and resets.
"""

import itertools
import threading

import pytest
from pydantic import ValidationError as PydanticValidationError

from fraud_engine.domains.fraud.domain.enums import RiskLevel
from fraud_engine.domains.fraud.domain.value_objects import ScoreUpdate
from fraud_engine.shared.exceptions import EntityNotFoundError, ValidationError


@pytest.mark.integration
class TestSuspicionScoreService:
    """Score store behaviour against a real SQLite database."""

    def test_score_created_lazily(self, engine, make_update):
        assert engine.scores.get_score("user-1") is None

        change = engine.scores.update_score("user-1", make_update(percentage=10))

        assert change.old_score == 0
        assert change.new_score == 10
        score = engine.scores.get_score("user-1")
        assert score.total_score == 10
        assert score.risk_level == RiskLevel.LOW

    def test_device_then_ip_scenario(self, engine):
        """Shared device lifts three users to medium; an IP match lifts one to critical."""
        engine.scorers.score_device_match(["A", "B", "X"], "fp-1234567890abcdef", "Chrome on macOS")

        for user_id in ("A", "B", "X"):
            score = engine.scores.get_score(user_id)
            assert score.total_score == 40
            assert score.risk_level == RiskLevel.MEDIUM

        changes = engine.scorers.score_ip_match(["X"], "203.0.113.7")

        assert changes[0].old_level == RiskLevel.MEDIUM
        assert changes[0].new_level == RiskLevel.CRITICAL
        x = engine.scores.get_score("X")
        assert x.total_score == 70
        assert x.risk_level == RiskLevel.CRITICAL
        assert engine.scores.get_score("A").total_score == 40

    def test_total_saturates_at_100(self, engine, make_update):
        for _ in range(4):
            engine.scores.update_score("user-1", make_update(percentage=35))

        score = engine.scores.get_score("user-1")
        assert score.total_score == 100
        assert score.raw_score == 140
        assert score.risk_level == RiskLevel.CRITICAL
        assert score.score_breakdown == {"deviceMatch": 140}

    def test_order_insensitive(self, engine):
        contributions = [("deviceMatch", 40), ("sameCity", 15), ("timezoneLanguage", 10)]

        for index, order in enumerate(itertools.permutations(contributions)):
            user_id = f"user-{index}"
            for method, percentage in order:
                engine.scores.update_score(
                    user_id, ScoreUpdate(method=method, percentage=percentage, evidence="e")
                )

        totals = {engine.scores.get_score(f"user-{i}").total_score for i in range(6)}
        assert totals == {65}

    def test_breakdown_and_history(self, engine, make_update):
        engine.scores.update_score("user-1", make_update("deviceMatch", 40, "device"))
        engine.scores.update_score("user-1", make_update("ipMatch", 30, "ip"))
        engine.scores.update_score("user-1", make_update("deviceMatch", 40, "device again"))

        score = engine.scores.get_score("user-1")
        assert score.score_breakdown == {"deviceMatch": 80, "ipMatch": 30}
        assert len(score.score_history) == 3
        assert {entry.evidence for entry in score.score_history} == {"device", "ip", "device again"}

    def test_links_are_symmetric(self, engine, make_update):
        engine.scores.update_score("A", make_update(linked_user_ids=["B"], confidence=0.9))

        a = engine.scores.get_score("A")
        b = engine.scores.get_score("B")
        assert a.linked_user_ids == ["B"]
        assert b.linked_user_ids == ["A"]
        assert a.linked_accounts[0].confidence == 0.9
        # The linked user is implicated but not scored
        assert b.total_score == 0

    def test_links_are_idempotent(self, engine):
        engine.scorers.score_device_match(["A", "B"], "fingerprint-abc", "Firefox")
        engine.scorers.score_ip_match(["A", "B"], "198.51.100.1")
        engine.scorers.score_device_match(["B", "A"], "fingerprint-abc", "Firefox")

        assert engine.scores.get_score("A").linked_user_ids == ["B"]
        assert engine.scores.get_score("B").linked_user_ids == ["A"]

    def test_default_link_confidence(self, engine, settings, make_update):
        engine.scores.update_score("A", make_update(linked_user_ids=["B"]))

        link = engine.scores.get_score("A").linked_accounts[0]
        assert link.confidence == settings.fraud.default_link_confidence
        assert link.method == "deviceMatch"

    def test_batch_update_treats_set_as_mutually_linked(self, engine, make_update):
        changes = engine.scores.update_scores_for_multiple_users(
            ["A", "B", "C"], make_update("rapidCreation", 20)
        )

        assert [c.new_score for c in changes] == [20, 20, 20]
        assert sorted(engine.scores.get_score("C").linked_user_ids) == ["A", "B"]

    def test_concurrent_updates_do_not_lose_contributions(self, engine, make_update):
        errors = []

        def worker():
            try:
                engine.scores.update_score("user-1", make_update("ipMatch", 5))
            except Exception as e:  # pragma: no cover - surfaced by the assertion below
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        score = engine.scores.get_score("user-1")
        assert score.total_score == 50
        assert len(score.score_history) == 10

    def test_reset_score(self, engine, make_update):
        engine.scores.update_score("user-1", make_update(percentage=60))

        view = engine.scores.reset_score("user-1", performed_by_id="admin-1")

        assert view.total_score == 0
        assert view.risk_level == RiskLevel.LOW
        assert view.score_breakdown == {}
        assert len(view.score_history) == 1
        assert view.generation == 1

        engine.scores.update_score("user-1", make_update("ipMatch", 30))
        assert engine.scores.get_score("user-1").score_breakdown == {"ipMatch": 30}

        history = engine.history.get_user_history("user-1")
        assert [entry.action_type for entry in history] == ["score_reset"]

    def test_reset_unknown_user(self, engine):
        with pytest.raises(EntityNotFoundError):
            engine.scores.reset_score("nobody")

    def test_queries_by_level(self, engine, make_update):
        engine.scores.update_score("low", make_update(percentage=10))
        engine.scores.update_score("high", make_update(percentage=55))
        engine.scores.update_score("critical", make_update(percentage=90))

        assert [s.user_id for s in engine.scores.get_high_risk_users()] == ["critical", "high"]
        assert [s.user_id for s in engine.scores.get_users_by_risk_level(RiskLevel.LOW)] == ["low"]
        assert engine.scores.get_users_by_risk_level("medium") == []

    def test_statistics(self, engine, make_update):
        engine.scores.update_score("u1", make_update(percentage=10))
        engine.scores.update_score("u2", make_update(percentage=30))
        engine.scores.update_score("u3", make_update(percentage=80))

        stats = engine.scores.get_statistics()

        assert stats.total_users == 3
        assert stats.by_level == {"low": 1, "medium": 1, "high": 0, "critical": 1}
        assert stats.average_score == pytest.approx(40)

    def test_batch_requires_users(self, engine, make_update):
        with pytest.raises(ValidationError):
            engine.scores.update_scores_for_multiple_users([], make_update())


@pytest.mark.unit
class TestScoreUpdate:
    def test_rejects_non_positive_percentage(self):
        with pytest.raises(PydanticValidationError):
            ScoreUpdate(method="ipMatch", percentage=0, evidence="e")

    def test_dedupes_linked_users(self):
        update = ScoreUpdate(method="ipMatch", percentage=30, evidence="e", linked_user_ids=["b", "b", "c"])

        assert update.linked_user_ids == ["b", "c"]
