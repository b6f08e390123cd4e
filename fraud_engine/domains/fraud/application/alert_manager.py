"""
Alert Manager

Groups repeated detections of the same correlation into one case record.
An unresolved alert of the same type that shares any user absorbs new
evidence; otherwise a new alert is inserted under the canonical dedup key,
and a concurrent insert of the same key falls back to merging.
"""

from typing import List, Optional, Sequence

import structlog

from ....shared.exceptions import (
    BusinessRuleViolationError,
    EntityNotFoundError,
    ValidationError,
)
from ..domain.enums import SEVERITY_RANK, AlertSeverity, AlertStatus
from ..domain.evidence import evidence_to_json
from ..domain.value_objects import AlertResult, AlertView
from ..infrastructure.models import FraudAlert, new_id, utcnow
from ..infrastructure.repositories import FraudAlertRepository
from .base import FraudService, retry_transient_writes
from .history_service import FraudHistoryService

logger = structlog.get_logger(__name__)

ALLOWED_TRANSITIONS = {
    AlertStatus.OPEN: {AlertStatus.INVESTIGATING, AlertStatus.RESOLVED, AlertStatus.DISMISSED},
    AlertStatus.INVESTIGATING: {AlertStatus.RESOLVED, AlertStatus.DISMISSED},
    AlertStatus.RESOLVED: set(),
    AlertStatus.DISMISSED: set(),
}


def build_dedup_key(alert_type: str, user_ids: Sequence[str], competition_id: Optional[str] = None) -> str:
    """Canonical key: alert type, competition scope and the sorted user set."""
    return "|".join([alert_type, competition_id or "", ",".join(sorted(set(user_ids)))])


class AlertManager(FraudService):
    def __init__(self, db, config, history: FraudHistoryService):
        super().__init__(db, config)
        self.history = history

    @retry_transient_writes
    def create_or_update_alert(
        self,
        alert_type: str,
        user_ids: Sequence[str],
        title: str,
        description: str,
        severity: AlertSeverity,
        confidence: float,
        evidence: Sequence,
        competition_id: Optional[str] = None,
        status: AlertStatus = AlertStatus.OPEN,
    ) -> AlertResult:
        """Merge into a matching unresolved alert, or create one.

        Merging appends every evidence item and keeps the higher severity and
        confidence. ``status`` applies to new alerts; an open alert merged with
        ``status=investigating`` is promoted.
        """
        users = sorted(set(u for u in user_ids if u))
        if not users:
            raise ValidationError("An alert needs at least one user")
        if not (0 <= confidence <= 1):
            raise ValidationError(f"Alert confidence must be between 0-1, got {confidence}")
        severity = AlertSeverity(severity)
        status = AlertStatus(status)
        if not status.is_unresolved:
            raise ValidationError("New alerts must be open or investigating")

        detected_at = utcnow()
        payloads = [
            evidence_to_json(item.model_copy(update={
                "detected_at": item.detected_at or detected_at,
                "competition_id": item.competition_id or competition_id,
            }))
            for item in evidence
        ]
        dedup_key = build_dedup_key(alert_type, users, competition_id)

        with self.db.session_scope() as session:
            repo = FraudAlertRepository(session)

            existing = repo.find_unresolved_overlapping(alert_type, users, competition_id)
            if existing is None:
                alert_id = new_id()
                now = utcnow()
                if repo.insert_if_absent({
                    "id": alert_id,
                    "alert_type": alert_type,
                    "dedup_key": dedup_key,
                    "competition_id": competition_id,
                    "title": title,
                    "description": description,
                    "severity": severity.value,
                    "confidence": confidence,
                    "status": status.value,
                    "created_at": now,
                    "updated_at": now,
                }):
                    repo.add_users(alert_id, users)
                    repo.add_evidence(alert_id, payloads)
                    logger.info(
                        "Fraud alert created",
                        alert_id=alert_id,
                        alert_type=alert_type,
                        user_ids=users,
                        severity=severity.value,
                        status=status.value,
                    )
                    return AlertResult(alert_id=alert_id, created=True, evidence_count=len(payloads))

                # Lost the insert race on the same key
                existing = repo.find_unresolved_by_key(dedup_key)
                if existing is None:
                    raise BusinessRuleViolationError(
                        f"Alert key {dedup_key} conflicted but no unresolved alert holds it"
                    )

            return self._merge(repo, existing, users, payloads, severity, confidence, status)

    def _merge(
        self,
        repo: FraudAlertRepository,
        alert: FraudAlert,
        users: List[str],
        payloads: List[dict],
        severity: AlertSeverity,
        confidence: float,
        status: AlertStatus,
    ) -> AlertResult:
        repo.add_evidence(alert.id, payloads)
        added_users = repo.add_users(alert.id, users)
        repo.merge_severity_confidence(alert.id, severity.value, confidence)
        if status == AlertStatus.INVESTIGATING:
            repo.transition(alert.id, [AlertStatus.OPEN.value], AlertStatus.INVESTIGATING.value)

        evidence_count = repo.evidence_count(alert.id)
        logger.info(
            "Fraud alert merged",
            alert_id=alert.id,
            alert_type=alert.alert_type,
            added_users=added_users,
            evidence_count=evidence_count,
            severity_upgraded=SEVERITY_RANK[severity.value] > SEVERITY_RANK[alert.severity],
        )
        return AlertResult(alert_id=alert.id, created=False, evidence_count=evidence_count)

    def can_create_alert(
        self, alert_type: str, user_ids: Sequence[str], competition_id: Optional[str] = None
    ) -> bool:
        """False when a closed alert of this type exists for the users and they were never cleared."""
        with self.db.session_scope() as session:
            precedent = FraudAlertRepository(session).find_closed_precedent(
                alert_type, list(user_ids), competition_id
            )
            if precedent is None:
                return True
            return precedent.investigation_cleared_at is not None

    def transition_alert(
        self,
        alert_id: str,
        to_status: AlertStatus,
        performed_by_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> AlertView:
        """Move an alert along open -> investigating -> resolved/dismissed and record it."""
        to_status = AlertStatus(to_status)

        with self.db.session_scope() as session:
            repo = FraudAlertRepository(session)
            alert = repo.get(alert_id)
            if alert is None:
                raise EntityNotFoundError("FraudAlert", alert_id)

            current = AlertStatus(alert.status)
            if to_status not in ALLOWED_TRANSITIONS[current]:
                raise BusinessRuleViolationError(
                    f"Alert {alert_id} cannot move from {current.value} to {to_status.value}"
                )

            values = {}
            if not to_status.is_unresolved:
                values = {"resolved_at": utcnow(), "resolved_by": performed_by_id, "resolution_notes": notes}
            if not repo.transition(alert_id, [current.value], to_status.value, **values):
                raise BusinessRuleViolationError(f"Alert {alert_id} changed status concurrently")

            for user_id in repo.user_ids(alert_id):
                if to_status == AlertStatus.INVESTIGATING:
                    self.history.log_investigation_started(
                        user_id, alert_id, admin_id=performed_by_id, session=session
                    )
                elif to_status == AlertStatus.RESOLVED:
                    self.history.log_alert_resolved(
                        user_id, alert_id, admin_id=performed_by_id, reason=notes or "", session=session
                    )
                else:
                    self.history.log_alert_dismissed(
                        user_id, alert_id, admin_id=performed_by_id, reason=notes or "", session=session
                    )

            session.refresh(alert)
            view = repo.to_view(alert)

        logger.info(
            "Fraud alert status changed",
            alert_id=alert_id,
            from_status=current.value,
            to_status=to_status.value,
            performed_by_id=performed_by_id,
        )
        return view

    def get_alert(self, alert_id: str) -> AlertView:
        with self.db.session_scope() as session:
            repo = FraudAlertRepository(session)
            alert = repo.get(alert_id)
            if alert is None:
                raise EntityNotFoundError("FraudAlert", alert_id)
            return repo.to_view(alert)

    def get_alerts_for_user(self, user_id: str, unresolved_only: bool = False) -> List[AlertView]:
        with self.db.session_scope() as session:
            repo = FraudAlertRepository(session)
            return [repo.to_view(a) for a in repo.list_for_user(user_id, unresolved_only)]
