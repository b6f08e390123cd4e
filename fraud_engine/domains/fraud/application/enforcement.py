"""
Auto-Enforcement

The only path that changes account capabilities without an admin. The
restriction and the score's auto-restriction marker are committed together
first; the alert and history entry follow as best-effort writes that are
queued as audit gaps when they fail.
"""

from datetime import timedelta
from typing import Optional

import structlog

from ....infrastructure.logging.structured_logger import get_fraud_event_logger
from ....shared.exceptions import FraudEngineError
from ..domain.enums import (
    AlertSeverity,
    AlertStatus,
    AlertType,
    EnforcementOutcome,
    RestrictionType,
)
from ..domain.evidence import ScoreBreakdownEvidence
from ..domain.value_objects import EnforcementDecision, FraudPolicySettings
from ..infrastructure.models import new_id, utcnow
from ..infrastructure.repositories import SuspicionScoreRepository, UserRestrictionRepository
from .alert_manager import AlertManager
from .audit_gap import AuditGapQueue
from .base import FraudService, retry_transient_writes
from .history_service import FraudHistoryService
from .policy import FraudPolicyProvider

logger = structlog.get_logger(__name__)

AUTO_RESTRICTION_REASON = "automated_fraud_detection"


class AutoEnforcementService(FraudService):
    def __init__(
        self,
        db,
        config,
        policy: FraudPolicyProvider,
        alerts: AlertManager,
        history: FraudHistoryService,
        audit_gaps: AuditGapQueue,
    ):
        super().__init__(db, config)
        self.policy = policy
        self.alerts = alerts
        self.history = history
        self.audit_gaps = audit_gaps
        self.events = get_fraud_event_logger()

    def evaluate(self, user_id: str, score: Optional[float] = None) -> EnforcementDecision:
        """Decide whether to auto-restrict ``user_id``; reads the stored score when none is given."""
        settings = self.policy.load()
        if score is None:
            score = self._current_score(user_id)

        decision = self._decide(user_id, score, settings)
        self.events.log_enforcement(
            user_id,
            decision.outcome.value,
            score,
            settings.auto_suspend_threshold,
            details={"reason": decision.reason, "settings_source": settings.source},
        )
        return decision

    def _decide(self, user_id: str, score: float, settings: FraudPolicySettings) -> EnforcementDecision:
        def decision(outcome: EnforcementOutcome, reason: str, **kwargs) -> EnforcementDecision:
            return EnforcementDecision(
                user_id=user_id,
                outcome=outcome,
                reason=reason,
                score=score,
                threshold=settings.auto_suspend_threshold,
                settings_source=settings.source,
                **kwargs,
            )

        if not settings.auto_suspend_enabled:
            reason = (
                "auto-suspension disabled by policy"
                if settings.source == "stored"
                else "disabled by default"
            )
            return decision(EnforcementOutcome.DISABLED, reason)

        if score < settings.auto_suspend_threshold:
            return decision(
                EnforcementOutcome.BELOW_THRESHOLD,
                f"score {score:g} below threshold {settings.auto_suspend_threshold:g}",
            )

        restriction_id = self._claim_restriction(user_id, score, settings)
        if restriction_id is None:
            return decision(EnforcementOutcome.ALREADY_RESTRICTED, "user already has an active restriction")

        alert_id = self._raise_alert(user_id, score, settings)
        self._record_history(user_id, score, settings, restriction_id, alert_id)

        return decision(
            EnforcementOutcome.RESTRICTED,
            f"score {score:g} reached threshold {settings.auto_suspend_threshold:g}",
            restriction_id=restriction_id,
            alert_id=alert_id,
        )

    def _current_score(self, user_id: str) -> float:
        with self.db.session_scope() as session:
            row = SuspicionScoreRepository(session).read_row(user_id)
            return row.total_score if row else 0.0

    @retry_transient_writes
    def _claim_restriction(
        self, user_id: str, score: float, settings: FraudPolicySettings
    ) -> Optional[str]:
        """Insert the restriction and set the score marker in one transaction.

        Returns the restriction id, or None when another restriction is active.
        """
        now = utcnow()
        restriction_id = new_id()

        with self.db.session_scope() as session:
            restrictions = UserRestrictionRepository(session)
            if restrictions.get_active(user_id) is not None:
                return None

            claimed = restrictions.claim({
                "id": restriction_id,
                "user_id": user_id,
                "restriction_type": RestrictionType.SUSPENDED.value,
                "reason": AUTO_RESTRICTION_REASON,
                "details": (
                    f"Suspicion score {score:g} reached auto-suspend threshold "
                    f"{settings.auto_suspend_threshold:g}"
                ),
                "can_trade": False,
                "can_deposit": False,
                "can_withdraw": False,
                "can_enter_competitions": False,
                "created_by": "system",
                "created_at": now,
                "expires_at": now + timedelta(days=self.config.auto_suspension_days),
            })
            if not claimed:
                return None

            SuspicionScoreRepository(session).mark_auto_restricted(
                user_id, AUTO_RESTRICTION_REASON, now
            )

        logger.warning(
            "User auto-restricted",
            user_id=user_id,
            restriction_id=restriction_id,
            score=score,
            threshold=settings.auto_suspend_threshold,
            expires_in_days=self.config.auto_suspension_days,
        )
        return restriction_id

    def _raise_alert(self, user_id: str, score: float, settings: FraudPolicySettings) -> Optional[str]:
        breakdown, level = self._breakdown(user_id)
        evidence = ScoreBreakdownEvidence(
            description=(
                f"Automatic suspension at score {score:g} "
                f"(threshold {settings.auto_suspend_threshold:g})"
            ),
            total_score=score,
            risk_level=level,
            breakdown=breakdown,
        )
        kwargs = dict(
            alert_type=AlertType.AUTO_SUSPENSION.value,
            user_ids=[user_id],
            title="User Automatically Suspended",
            description=(
                f"Suspicion score {score:g} reached the auto-suspend threshold "
                f"of {settings.auto_suspend_threshold:g}"
            ),
            severity=AlertSeverity.CRITICAL,
            confidence=self.config.auto_alert_confidence,
            evidence=[evidence],
            status=AlertStatus.INVESTIGATING,
        )
        try:
            return self.alerts.create_or_update_alert(**kwargs).alert_id
        except FraudEngineError as e:
            self.audit_gaps.enqueue("auto_enforcement_alert", self.alerts.create_or_update_alert, error=e, **kwargs)
            return None

    def _breakdown(self, user_id: str):
        try:
            with self.db.session_scope() as session:
                repo = SuspicionScoreRepository(session)
                row = repo.read_row(user_id)
                if row is None:
                    return {}, "low"
                return repo.breakdown(user_id, row.generation), row.risk_level
        except FraudEngineError as e:
            logger.warning("Score breakdown unavailable for alert evidence", user_id=user_id, error=str(e))
            return {}, "unknown"

    def _record_history(
        self,
        user_id: str,
        score: float,
        settings: FraudPolicySettings,
        restriction_id: str,
        alert_id: Optional[str],
    ) -> None:
        kwargs = dict(
            user_id=user_id,
            reason=(
                f"Automatic suspension: suspicion score {score:g} "
                f"reached threshold {settings.auto_suspend_threshold:g}"
            ),
            previous_state={"accountStatus": "active", "suspicionScore": score},
            new_state={"accountStatus": "suspended", "suspicionScore": score},
            alert_id=alert_id,
            restriction_id=restriction_id,
        )
        try:
            self.history.log_auto_action(**kwargs)
        except FraudEngineError as e:
            self.audit_gaps.enqueue("auto_enforcement_history", self.history.log_auto_action, error=e, **kwargs)
