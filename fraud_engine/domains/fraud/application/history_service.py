"""Fraud history ledger: append-only record of every fraud-related action."""

from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy.orm import Session

from ....infrastructure.common.context import get_current_execution_context
from ..domain.enums import FraudActionType, PerformedByType
from ..domain.value_objects import HistoryEntryView, UserFraudSummary
from ..infrastructure.models import FraudHistory, utcnow
from ..infrastructure.repositories import FraudHistoryRepository
from .base import FraudService, retry_transient_writes

logger = structlog.get_logger(__name__)

LIFT_ACTIONS = (FraudActionType.SUSPENSION_LIFTED.value, FraudActionType.BAN_LIFTED.value)


class FraudHistoryService(FraudService):
    """Writes and reads fraud history entries.

    Every ``log_*`` method accepts an optional ``session`` so the entry can be
    committed together with the change it describes.
    """

    def log_action(
        self,
        user_id: str,
        action_type: FraudActionType,
        reason: str,
        performed_by: PerformedByType = PerformedByType.SYSTEM,
        performed_by_id: Optional[str] = None,
        severity: str = "low",
        details: Optional[str] = None,
        previous_state: Optional[Dict[str, Any]] = None,
        new_state: Optional[Dict[str, Any]] = None,
        alert_id: Optional[str] = None,
        restriction_id: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> HistoryEntryView:
        context = get_current_execution_context()
        entry = FraudHistory(
            user_id=user_id,
            action_type=FraudActionType(action_type).value,
            severity=severity,
            performed_by=PerformedByType(performed_by).value,
            performed_by_id=performed_by_id,
            reason=reason,
            details=details,
            previous_state=previous_state,
            new_state=new_state,
            alert_id=alert_id,
            restriction_id=restriction_id,
            correlation_id=context.correlation_id if context else None,
            created_at=utcnow(),
        )

        if session is not None:
            view = FraudHistoryRepository.to_view(FraudHistoryRepository(session).append(entry))
        else:
            view = self._append(entry)

        logger.info(
            "Fraud history entry recorded",
            user_id=user_id,
            action_type=view.action_type,
            performed_by=view.performed_by,
        )
        return view

    @retry_transient_writes
    def _append(self, entry: FraudHistory) -> HistoryEntryView:
        with self.db.session_scope() as session:
            return FraudHistoryRepository.to_view(FraudHistoryRepository(session).append(entry))

    def log_warning_issued(self, user_id: str, admin_id: str, reason: str, **kwargs) -> HistoryEntryView:
        return self.log_action(
            user_id, FraudActionType.WARNING_ISSUED, reason,
            performed_by=PerformedByType.ADMIN, performed_by_id=admin_id, severity="low", **kwargs,
        )

    def log_investigation_started(self, user_id: str, alert_id: str, admin_id: Optional[str] = None, **kwargs) -> HistoryEntryView:
        return self.log_action(
            user_id, FraudActionType.INVESTIGATION_STARTED, "Fraud investigation started",
            performed_by=_performer(admin_id), performed_by_id=admin_id,
            severity="medium", alert_id=alert_id, **kwargs,
        )

    def log_investigation_resolved(
        self, user_id: str, alert_id: str, outcome: str, admin_id: Optional[str] = None, **kwargs
    ) -> HistoryEntryView:
        return self.log_action(
            user_id, FraudActionType.INVESTIGATION_RESOLVED, f"Investigation resolved: {outcome}",
            performed_by=_performer(admin_id), performed_by_id=admin_id,
            severity="low", alert_id=alert_id, **kwargs,
        )

    def log_suspended(self, user_id: str, reason: str, admin_id: Optional[str] = None, **kwargs) -> HistoryEntryView:
        return self.log_action(
            user_id, FraudActionType.ACCOUNT_SUSPENDED, reason,
            performed_by=_performer(admin_id), performed_by_id=admin_id, severity="high",
            previous_state={"accountStatus": "active"}, new_state={"accountStatus": "suspended"},
            **kwargs,
        )

    def log_suspension_lifted(self, user_id: str, reason: str, admin_id: Optional[str] = None, **kwargs) -> HistoryEntryView:
        return self.log_action(
            user_id, FraudActionType.SUSPENSION_LIFTED, reason,
            performed_by=_performer(admin_id), performed_by_id=admin_id, severity="low",
            previous_state={"accountStatus": "suspended"}, new_state={"accountStatus": "active"},
            **kwargs,
        )

    def log_banned(self, user_id: str, reason: str, admin_id: Optional[str] = None, **kwargs) -> HistoryEntryView:
        return self.log_action(
            user_id, FraudActionType.ACCOUNT_BANNED, reason,
            performed_by=_performer(admin_id), performed_by_id=admin_id, severity="critical",
            previous_state={"accountStatus": "active"}, new_state={"accountStatus": "banned"},
            **kwargs,
        )

    def log_ban_lifted(self, user_id: str, reason: str, admin_id: Optional[str] = None, **kwargs) -> HistoryEntryView:
        return self.log_action(
            user_id, FraudActionType.BAN_LIFTED, reason,
            performed_by=_performer(admin_id), performed_by_id=admin_id, severity="low",
            previous_state={"accountStatus": "banned"}, new_state={"accountStatus": "active"},
            **kwargs,
        )

    def log_restriction_added(self, user_id: str, reason: str, admin_id: Optional[str] = None, **kwargs) -> HistoryEntryView:
        return self.log_action(
            user_id, FraudActionType.RESTRICTION_ADDED, reason,
            performed_by=_performer(admin_id), performed_by_id=admin_id, severity="medium", **kwargs,
        )

    def log_restriction_removed(self, user_id: str, reason: str, admin_id: Optional[str] = None, **kwargs) -> HistoryEntryView:
        return self.log_action(
            user_id, FraudActionType.RESTRICTION_REMOVED, reason,
            performed_by=_performer(admin_id), performed_by_id=admin_id, severity="low", **kwargs,
        )

    def log_alert_created(self, user_id: str, alert_id: str, alert_type: str, severity: str, **kwargs) -> HistoryEntryView:
        return self.log_action(
            user_id, FraudActionType.ALERT_CREATED, f"Fraud alert raised: {alert_type}",
            performed_by=PerformedByType.AUTOMATED, severity=severity, alert_id=alert_id, **kwargs,
        )

    def log_alert_dismissed(self, user_id: str, alert_id: str, admin_id: Optional[str] = None, reason: str = "", **kwargs) -> HistoryEntryView:
        return self.log_action(
            user_id, FraudActionType.ALERT_DISMISSED, reason or "Fraud alert dismissed",
            performed_by=_performer(admin_id), performed_by_id=admin_id, alert_id=alert_id, **kwargs,
        )

    def log_alert_resolved(self, user_id: str, alert_id: str, admin_id: Optional[str] = None, reason: str = "", **kwargs) -> HistoryEntryView:
        return self.log_action(
            user_id, FraudActionType.ALERT_RESOLVED, reason or "Fraud alert resolved",
            performed_by=_performer(admin_id), performed_by_id=admin_id, alert_id=alert_id, **kwargs,
        )

    def log_evidence_added(self, user_id: str, evidence_type: str, reason: str, alert_id: Optional[str] = None, **kwargs) -> HistoryEntryView:
        return self.log_action(
            user_id, FraudActionType.EVIDENCE_ADDED, f"{evidence_type}: {reason}",
            performed_by=PerformedByType.AUTOMATED, alert_id=alert_id, **kwargs,
        )

    def log_manual_review(self, user_id: str, admin_id: str, notes: str, **kwargs) -> HistoryEntryView:
        return self.log_action(
            user_id, FraudActionType.MANUAL_REVIEW, "Manual review performed",
            performed_by=PerformedByType.ADMIN, performed_by_id=admin_id, details=notes, **kwargs,
        )

    def log_auto_action(
        self,
        user_id: str,
        reason: str,
        previous_state: Dict[str, Any],
        new_state: Dict[str, Any],
        **kwargs,
    ) -> HistoryEntryView:
        return self.log_action(
            user_id, FraudActionType.AUTO_ACTION, reason,
            performed_by=PerformedByType.AUTOMATED, severity="critical",
            previous_state=previous_state, new_state=new_state, **kwargs,
        )

    def get_user_history(self, user_id: str, limit: Optional[int] = None) -> List[HistoryEntryView]:
        with self.db.session_scope() as session:
            return [FraudHistoryRepository.to_view(e) for e in FraudHistoryRepository(session).for_user(user_id, limit)]

    def get_action_counts(self, user_id: str) -> Dict[str, int]:
        with self.db.session_scope() as session:
            return FraudHistoryRepository(session).action_counts(user_id)

    def get_recent_actions(
        self, limit: int = 50, action_types: Optional[Sequence[FraudActionType]] = None
    ) -> List[HistoryEntryView]:
        types = [FraudActionType(a).value for a in action_types] if action_types else None
        with self.db.session_scope() as session:
            return [FraudHistoryRepository.to_view(e) for e in FraudHistoryRepository(session).recent(limit, types)]

    def get_user_summary(self, user_id: str) -> UserFraudSummary:
        """Aggregate counts and derived repeat-offender / rehabilitation flags."""
        history = self.get_user_history(user_id)

        counts: Dict[str, int] = {}
        for entry in history:
            counts[entry.action_type] = counts.get(entry.action_type, 0) + 1

        # Automated suspensions are recorded as auto_action entries
        auto_suspensions = sum(
            1 for entry in history
            if entry.action_type == FraudActionType.AUTO_ACTION.value
            and entry.new_state.get("accountStatus") == "suspended"
        )

        return UserFraudSummary(
            user_id=user_id,
            history=history,
            counts=counts,
            total_incidents=len(history),
            suspension_count=counts.get(FraudActionType.ACCOUNT_SUSPENDED.value, 0) + auto_suspensions,
            ban_count=counts.get(FraudActionType.ACCOUNT_BANNED.value, 0),
            warning_count=counts.get(FraudActionType.WARNING_ISSUED.value, 0),
            lift_count=sum(counts.get(action, 0) for action in LIFT_ACTIONS),
        )


def _performer(admin_id: Optional[str]) -> PerformedByType:
    return PerformedByType.ADMIN if admin_id else PerformedByType.SYSTEM
