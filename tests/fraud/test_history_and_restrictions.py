"""
Tests for Fraud History and Admin Restrictions
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from fraud_engine.domains.fraud.domain.enums import FraudActionType, RestrictionType
from fraud_engine.domains.fraud.infrastructure.models import FraudHistory, utcnow
from fraud_engine.shared.exceptions import BusinessRuleViolationError, EntityNotFoundError


@pytest.mark.integration
class TestFraudHistory:
    """Append-only ledger behaviour."""

    def test_user_summary_flags(self, engine):
        engine.history.log_suspended("u1", "multi-accounting", admin_id="admin-1")
        engine.history.log_suspension_lifted("u1", "appeal", admin_id="admin-1")
        engine.history.log_suspended("u1", "repeat multi-accounting", admin_id="admin-1")
        engine.history.log_warning_issued("u1", "admin-2", "suspicious deposits")

        summary = engine.history.get_user_summary("u1")

        assert summary.total_incidents == 4
        assert summary.suspension_count == 2
        assert summary.warning_count == 1
        assert summary.lift_count == 1
        assert summary.is_repeat_offender
        assert summary.has_been_rehabbed

    def test_ban_makes_repeat_offender(self, engine):
        engine.history.log_banned("u1", "confirmed fraud", admin_id="admin-1")

        summary = engine.history.get_user_summary("u1")
        assert summary.ban_count == 1
        assert summary.is_repeat_offender
        assert not summary.has_been_rehabbed

    def test_clean_user(self, engine):
        summary = engine.history.get_user_summary("nobody")

        assert summary.total_incidents == 0
        assert not summary.is_repeat_offender

    def test_state_snapshots_and_performer(self, engine):
        entry = engine.history.log_banned("u1", "confirmed fraud", admin_id="admin-1")

        assert entry.previous_state == {"accountStatus": "active"}
        assert entry.new_state == {"accountStatus": "banned"}
        assert entry.performed_by == "admin"
        assert entry.severity == "critical"

        automated = engine.history.log_evidence_added("u1", "device", "shared fingerprint")
        assert automated.performed_by == "automated"

    def test_action_counts_and_recent(self, engine):
        engine.history.log_manual_review("u1", "admin-1", "looked fine")
        engine.history.log_manual_review("u2", "admin-1", "looked fine")
        engine.history.log_investigation_started("u1", "alert-1", admin_id="admin-1")

        assert engine.history.get_action_counts("u1") == {
            FraudActionType.MANUAL_REVIEW.value: 1,
            FraudActionType.INVESTIGATION_STARTED.value: 1,
        }
        recent = engine.history.get_recent_actions(action_types=[FraudActionType.MANUAL_REVIEW])
        assert {entry.user_id for entry in recent} == {"u1", "u2"}

    def test_lifecycle_wrappers(self, engine):
        engine.history.log_alert_created("u1", "alert-1", "multi_account", "high")
        engine.history.log_investigation_resolved("u1", "alert-1", "confirmed", admin_id="admin-1")
        engine.history.log_restriction_added("u1", "withdrawals frozen", admin_id="admin-1")
        engine.history.log_restriction_removed("u1", "withdrawals restored", admin_id="admin-1")
        engine.history.log_ban_lifted("u1", "appeal", admin_id="admin-1")

        counts = engine.history.get_action_counts("u1")
        assert counts == {
            FraudActionType.ALERT_CREATED.value: 1,
            FraudActionType.INVESTIGATION_RESOLVED.value: 1,
            FraudActionType.RESTRICTION_ADDED.value: 1,
            FraudActionType.RESTRICTION_REMOVED.value: 1,
            FraudActionType.BAN_LIFTED.value: 1,
        }
        summary = engine.history.get_user_summary("u1")
        assert summary.lift_count == 1
        assert not summary.is_repeat_offender

    def test_entries_cannot_be_modified(self, engine):
        engine.history.log_manual_review("u1", "admin-1", "initial")

        with pytest.raises(BusinessRuleViolationError):
            with engine.db.session_scope() as session:
                entry = session.scalars(select(FraudHistory)).first()
                entry.reason = "rewritten"

        with pytest.raises(BusinessRuleViolationError):
            with engine.db.session_scope() as session:
                session.delete(session.scalars(select(FraudHistory)).first())

        assert engine.history.get_user_history("u1")[0].reason == "Manual review performed"


@pytest.mark.integration
class TestRestrictions:
    """Manual restrictions, lifting and expiry."""

    def test_manual_suspension(self, engine):
        view = engine.restrictions.restrict_user(
            "u1", RestrictionType.SUSPENDED, "chargebacks", admin_id="admin-1", duration_days=3
        )

        assert view.is_active
        assert not view.can_trade
        assert (view.expires_at - view.created_at).days == 3
        history = engine.history.get_user_history("u1")
        assert history[0].action_type == FraudActionType.ACCOUNT_SUSPENDED.value
        assert history[0].restriction_id == view.id

    def test_warning_keeps_capabilities(self, engine):
        view = engine.restrictions.restrict_user("u1", RestrictionType.WARNING, "odd logins", admin_id="admin-1")

        assert view.can_trade and view.can_withdraw
        assert engine.history.get_user_history("u1")[0].action_type == FraudActionType.WARNING_ISSUED.value

    def test_duplicate_active_restriction_rejected(self, engine):
        engine.restrictions.restrict_user("u1", RestrictionType.SUSPENDED, "first", admin_id="admin-1")

        with pytest.raises(BusinessRuleViolationError):
            engine.restrictions.restrict_user("u1", RestrictionType.BANNED, "second", admin_id="admin-1")

        assert len(engine.restrictions.get_restrictions("u1")) == 1
        assert len(engine.history.get_user_history("u1")) == 1

    def test_lift_restriction(self, engine):
        engine.restrictions.restrict_user("u1", RestrictionType.BANNED, "fraud", admin_id="admin-1")

        lifted = engine.restrictions.lift_restriction("u1", lifted_by="admin-2", reason="appeal accepted")

        assert not lifted.is_active
        assert lifted.lifted_at is not None
        assert engine.restrictions.get_active_restriction("u1") is None
        actions = [entry.action_type for entry in engine.history.get_user_history("u1")]
        assert FraudActionType.BAN_LIFTED.value in actions

        # A new restriction is allowed once the previous one is lifted
        engine.restrictions.restrict_user("u1", RestrictionType.SUSPENDED, "again", admin_id="admin-1")

    def test_lift_without_restriction(self, engine):
        with pytest.raises(EntityNotFoundError):
            engine.restrictions.lift_restriction("u1", lifted_by="admin-1", reason="none")

    def test_expire_restrictions(self, engine):
        engine.restrictions.restrict_user(
            "u1", RestrictionType.SUSPENDED, "short", admin_id="admin-1", duration_days=1
        )
        engine.restrictions.restrict_user("u2", RestrictionType.BANNED, "permanent", admin_id="admin-1")

        assert engine.restrictions.expire_restrictions(utcnow()) == []

        expired = engine.restrictions.expire_restrictions(utcnow() + timedelta(days=2))

        assert [r.user_id for r in expired] == ["u1"]
        assert engine.restrictions.get_active_restriction("u1") is None
        assert engine.restrictions.get_active_restriction("u2") is not None
        assert engine.history.get_user_history("u1")[0].action_type == FraudActionType.RESTRICTION_EXPIRED.value
