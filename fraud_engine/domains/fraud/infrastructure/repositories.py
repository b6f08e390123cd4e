"""Fraud engine repository implementations.

Every write that can race with another caller is a single statement: an atomic
``UPDATE ... SET x = x + n`` or an ``INSERT ... ON CONFLICT DO NOTHING`` against a
unique index. Repositories never commit; the caller's session scope does.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from ....infrastructure.database.session import insert_ignore
from ..domain.enums import SEVERITY_RANK, UNRESOLVED_ALERT_STATUSES, RiskLevel
from ..domain.thresholds import MAX_SCORE, RiskThresholds
from ..domain.value_objects import (
    AlertView,
    HistoryEntryView,
    LinkedAccountView,
    PaymentFingerprintView,
    RestrictionView,
    ScoreHistoryEntry,
)
from ..domain.evidence import evidence_from_json
from .models import (
    FraudAlert,
    FraudAlertEvidence,
    FraudAlertUser,
    FraudHistory,
    FraudPolicySettingsRecord,
    LinkedAccount,
    PaymentFingerprint,
    PaymentFingerprintGuard,
    PaymentFingerprintLink,
    POLICY_SETTINGS_ID,
    SuspicionScore,
    SuspicionScoreEvent,
    UserRestriction,
    new_id,
    utcnow,
)


@dataclass
class ScoreRow:
    """Score columns as read back right after an increment."""
    user_id: str
    raw_score: float
    total_score: float
    risk_level: str
    generation: int
    auto_restricted_at: Optional[datetime]


def _risk_level_case(raw_expr):
    """SQL CASE mirroring RiskThresholds so the tier is computed in the same statement."""
    tiers = sorted(RiskThresholds.get_all_thresholds(), key=lambda t: t.min_score, reverse=True)
    whens = [(raw_expr >= t.min_score, t.level.value) for t in tiers if t.min_score > 0]
    return case(*whens, else_=RiskLevel.LOW.value)


class SuspicionScoreRepository:
    """Score rows, their append-only events and the linked-account graph."""

    def __init__(self, session: Session):
        self.session = session

    def ensure(self, user_id: str) -> bool:
        """Create the score row if absent. Returns True when this call created it."""
        now = utcnow()
        return insert_ignore(self.session, SuspicionScore, {
            "user_id": user_id,
            "raw_score": 0.0,
            "total_score": 0.0,
            "risk_level": RiskLevel.LOW.value,
            "generation": 0,
            "created_at": now,
            "last_updated": now,
        }) == 1

    def increment(self, user_id: str, percentage: float) -> ScoreRow:
        """Atomically add a contribution and recompute total and tier in one UPDATE."""
        new_raw = SuspicionScore.raw_score + percentage
        self.session.execute(
            update(SuspicionScore)
            .where(SuspicionScore.user_id == user_id)
            .values(
                raw_score=new_raw,
                total_score=case((new_raw > MAX_SCORE, MAX_SCORE), else_=new_raw),
                risk_level=_risk_level_case(new_raw),
                last_updated=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return self.read_row(user_id)

    def read_row(self, user_id: str) -> Optional[ScoreRow]:
        row = self.session.execute(
            select(
                SuspicionScore.user_id,
                SuspicionScore.raw_score,
                SuspicionScore.total_score,
                SuspicionScore.risk_level,
                SuspicionScore.generation,
                SuspicionScore.auto_restricted_at,
            ).where(SuspicionScore.user_id == user_id)
        ).one_or_none()
        if row is None:
            return None
        return ScoreRow(*row)

    def append_event(
        self, user_id: str, generation: int, method: str, percentage: float, evidence: str
    ) -> None:
        self.session.add(SuspicionScoreEvent(
            user_id=user_id,
            generation=generation,
            method=method,
            percentage=percentage,
            evidence=evidence,
            created_at=utcnow(),
        ))
        self.session.flush()

    def get(self, user_id: str) -> Optional[SuspicionScore]:
        return self.session.get(SuspicionScore, user_id)

    def breakdown(self, user_id: str, generation: int) -> Dict[str, float]:
        rows = self.session.execute(
            select(SuspicionScoreEvent.method, func.sum(SuspicionScoreEvent.percentage))
            .where(
                SuspicionScoreEvent.user_id == user_id,
                SuspicionScoreEvent.generation == generation,
            )
            .group_by(SuspicionScoreEvent.method)
        ).all()
        return {method: float(total) for method, total in rows}

    def history(self, user_id: str, limit: int) -> List[ScoreHistoryEntry]:
        events = self.session.scalars(
            select(SuspicionScoreEvent)
            .where(SuspicionScoreEvent.user_id == user_id)
            .order_by(SuspicionScoreEvent.created_at.desc(), SuspicionScoreEvent.id.desc())
            .limit(limit)
        ).all()
        return [
            ScoreHistoryEntry(
                method=e.method,
                percentage=e.percentage,
                evidence=e.evidence,
                timestamp=e.created_at,
                generation=e.generation,
            )
            for e in events
        ]

    def link(self, user_id: str, other_user_id: str, method: str, confidence: float) -> int:
        """Write both directions of a link; returns how many directed rows were new."""
        if user_id == other_user_id:
            return 0
        now = utcnow()
        inserted = 0
        for source, target in ((user_id, other_user_id), (other_user_id, user_id)):
            inserted += insert_ignore(self.session, LinkedAccount, {
                "id": new_id(),
                "user_id": source,
                "linked_user_id": target,
                "method": method,
                "confidence": confidence,
                "linked_at": now,
            })
        return inserted

    def linked_accounts(self, user_id: str) -> List[LinkedAccountView]:
        links = self.session.scalars(
            select(LinkedAccount)
            .where(LinkedAccount.user_id == user_id)
            .order_by(LinkedAccount.linked_at, LinkedAccount.linked_user_id)
        ).all()
        return [
            LinkedAccountView(
                user_id=link.linked_user_id,
                method=link.method,
                confidence=link.confidence,
                linked_at=link.linked_at,
            )
            for link in links
        ]

    def mark_auto_restricted(self, user_id: str, reason: str, at: datetime) -> bool:
        """Compare-and-swap on the auto-restriction marker."""
        result = self.session.execute(
            update(SuspicionScore)
            .where(
                SuspicionScore.user_id == user_id,
                SuspicionScore.auto_restricted_at.is_(None),
            )
            .values(auto_restricted_at=at, auto_restriction_reason=reason)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def clear_auto_restriction(self, user_id: str) -> None:
        self.session.execute(
            update(SuspicionScore)
            .where(SuspicionScore.user_id == user_id)
            .values(auto_restricted_at=None, auto_restriction_reason=None)
            .execution_options(synchronize_session=False)
        )

    def reset(self, user_id: str) -> bool:
        """Zero the score and start a new generation; events are kept."""
        result = self.session.execute(
            update(SuspicionScore)
            .where(SuspicionScore.user_id == user_id)
            .values(
                raw_score=0.0,
                total_score=0.0,
                risk_level=RiskLevel.LOW.value,
                generation=SuspicionScore.generation + 1,
                auto_restricted_at=None,
                auto_restriction_reason=None,
                last_updated=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def find_by_levels(self, levels: Sequence[RiskLevel]) -> List[SuspicionScore]:
        return list(self.session.scalars(
            select(SuspicionScore)
            .where(SuspicionScore.risk_level.in_([level.value for level in levels]))
            .order_by(SuspicionScore.total_score.desc(), SuspicionScore.user_id)
        ).all())

    def level_counts(self) -> Dict[str, int]:
        rows = self.session.execute(
            select(SuspicionScore.risk_level, func.count()).group_by(SuspicionScore.risk_level)
        ).all()
        return {level: count for level, count in rows}

    def average_total(self) -> float:
        value = self.session.scalar(select(func.avg(SuspicionScore.total_score)))
        return float(value or 0.0)


class PaymentFingerprintRepository:
    def __init__(self, session: Session):
        self.session = session

    def lock_hash(self, provider: str, fingerprint_hash: str) -> None:
        """Serialize uses of one instrument until the transaction ends."""
        insert_ignore(self.session, PaymentFingerprintGuard, {
            "provider": provider,
            "fingerprint_hash": fingerprint_hash,
            "created_at": utcnow(),
        })
        self.session.execute(
            select(PaymentFingerprintGuard.provider)
            .where(
                PaymentFingerprintGuard.provider == provider,
                PaymentFingerprintGuard.fingerprint_hash == fingerprint_hash,
            )
            .with_for_update()
        )

    def insert_if_absent(self, values: Dict) -> bool:
        return insert_ignore(self.session, PaymentFingerprint, values) == 1

    def get_for_user(self, user_id: str, provider: str, fingerprint_hash: str) -> Optional[PaymentFingerprint]:
        return self.session.scalars(
            select(PaymentFingerprint).where(
                PaymentFingerprint.user_id == user_id,
                PaymentFingerprint.provider == provider,
                PaymentFingerprint.fingerprint_hash == fingerprint_hash,
            )
        ).one_or_none()

    def record_use(self, fingerprint_id: str) -> None:
        self.session.execute(
            update(PaymentFingerprint)
            .where(PaymentFingerprint.id == fingerprint_id)
            .values(times_used=PaymentFingerprint.times_used + 1, last_used=utcnow())
            .execution_options(synchronize_session=False)
        )

    def find_by_hash(self, provider: str, fingerprint_hash: str) -> List[PaymentFingerprint]:
        return list(self.session.scalars(
            select(PaymentFingerprint)
            .where(
                PaymentFingerprint.provider == provider,
                PaymentFingerprint.fingerprint_hash == fingerprint_hash,
            )
            .order_by(PaymentFingerprint.first_used, PaymentFingerprint.user_id)
        ).all())

    def add_link(self, fingerprint_id: str, linked_user_id: str) -> bool:
        return insert_ignore(self.session, PaymentFingerprintLink, {
            "fingerprint_id": fingerprint_id,
            "linked_user_id": linked_user_id,
            "linked_at": utcnow(),
        }) == 1

    def refresh_sharing(self, fingerprint_id: str, per_link_risk: float) -> None:
        """Recompute is_shared and risk_score from the link rows in one statement."""
        link_count = (
            select(func.count(PaymentFingerprintLink.id))
            .where(PaymentFingerprintLink.fingerprint_id == fingerprint_id)
            .scalar_subquery()
        )
        risk = link_count * per_link_risk
        self.session.execute(
            update(PaymentFingerprint)
            .where(PaymentFingerprint.id == fingerprint_id)
            .values(
                is_shared=link_count > 0,
                risk_score=case((risk > MAX_SCORE, MAX_SCORE), else_=risk),
            )
            .execution_options(synchronize_session=False)
        )

    def linked_user_ids(self, fingerprint_ids: Iterable[str]) -> Dict[str, List[str]]:
        ids = list(fingerprint_ids)
        result: Dict[str, List[str]] = {fid: [] for fid in ids}
        if not ids:
            return result
        rows = self.session.execute(
            select(PaymentFingerprintLink.fingerprint_id, PaymentFingerprintLink.linked_user_id)
            .where(PaymentFingerprintLink.fingerprint_id.in_(ids))
            .order_by(PaymentFingerprintLink.linked_at, PaymentFingerprintLink.linked_user_id)
        ).all()
        for fid, user_id in rows:
            result[fid].append(user_id)
        return result

    def for_user(self, user_id: str) -> List[PaymentFingerprint]:
        return list(self.session.scalars(
            select(PaymentFingerprint)
            .where(PaymentFingerprint.user_id == user_id)
            .order_by(PaymentFingerprint.last_used.desc())
        ).all())

    def shared(self, limit: int) -> List[PaymentFingerprint]:
        return list(self.session.scalars(
            select(PaymentFingerprint)
            .where(PaymentFingerprint.is_shared.is_(True))
            .order_by(PaymentFingerprint.risk_score.desc(), PaymentFingerprint.last_used.desc())
            .limit(limit)
        ).all())

    def count_shared_for_user(self, user_id: str) -> int:
        return self.session.scalar(
            select(func.count(PaymentFingerprint.id)).where(
                PaymentFingerprint.user_id == user_id,
                PaymentFingerprint.is_shared.is_(True),
            )
        ) or 0

    def stats_counts(self, high_risk_threshold: float) -> Dict[str, int]:
        total = self.session.scalar(select(func.count(PaymentFingerprint.id))) or 0
        shared = self.session.scalar(
            select(func.count(PaymentFingerprint.id)).where(PaymentFingerprint.is_shared.is_(True))
        ) or 0
        high_risk = self.session.scalar(
            select(func.count(PaymentFingerprint.id)).where(
                PaymentFingerprint.is_shared.is_(True),
                PaymentFingerprint.risk_score >= high_risk_threshold,
            )
        ) or 0
        return {"total": total, "shared": shared, "high_risk": high_risk}

    def affected_user_ids(self) -> set:
        owners = self.session.scalars(
            select(PaymentFingerprint.user_id).where(PaymentFingerprint.is_shared.is_(True))
        ).all()
        linked = self.session.scalars(
            select(PaymentFingerprintLink.linked_user_id)
            .join(PaymentFingerprint, PaymentFingerprint.id == PaymentFingerprintLink.fingerprint_id)
            .where(PaymentFingerprint.is_shared.is_(True))
        ).all()
        return set(owners) | set(linked)

    def to_view(self, fp: PaymentFingerprint, linked_user_ids: List[str]) -> PaymentFingerprintView:
        return PaymentFingerprintView(
            id=fp.id,
            user_id=fp.user_id,
            provider=fp.provider,
            fingerprint_hash=fp.fingerprint_hash,
            linked_user_ids=linked_user_ids,
            is_shared=fp.is_shared,
            risk_score=fp.risk_score,
            times_used=fp.times_used,
            first_used=fp.first_used,
            last_used=fp.last_used,
            card_last4=fp.card_last4,
            card_brand=fp.card_brand,
            card_country=fp.card_country,
        )


class FraudAlertRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, alert_id: str) -> Optional[FraudAlert]:
        return self.session.get(FraudAlert, alert_id)

    def find_unresolved_overlapping(
        self, alert_type: str, user_ids: Sequence[str], competition_id: Optional[str]
    ) -> Optional[FraudAlert]:
        """Most recently updated unresolved alert of this type sharing at least one user."""
        stmt = (
            select(FraudAlert)
            .join(FraudAlertUser, FraudAlertUser.alert_id == FraudAlert.id)
            .where(
                FraudAlert.alert_type == alert_type,
                FraudAlert.status.in_(UNRESOLVED_ALERT_STATUSES),
                FraudAlertUser.user_id.in_(list(user_ids)),
            )
            .order_by(FraudAlert.updated_at.desc(), FraudAlert.created_at.desc())
            .limit(1)
        )
        if competition_id is not None:
            stmt = stmt.where(FraudAlert.competition_id == competition_id)
        return self.session.scalars(stmt).first()

    def find_unresolved_by_key(self, dedup_key: str) -> Optional[FraudAlert]:
        return self.session.scalars(
            select(FraudAlert).where(
                FraudAlert.dedup_key == dedup_key,
                FraudAlert.status.in_(UNRESOLVED_ALERT_STATUSES),
            )
        ).first()

    def find_closed_precedent(
        self, alert_type: str, user_ids: Sequence[str], competition_id: Optional[str]
    ) -> Optional[FraudAlert]:
        """Most recently closed alert of this type for any of the users."""
        stmt = (
            select(FraudAlert)
            .join(FraudAlertUser, FraudAlertUser.alert_id == FraudAlert.id)
            .where(
                FraudAlert.alert_type == alert_type,
                FraudAlert.status.not_in(UNRESOLVED_ALERT_STATUSES),
                FraudAlertUser.user_id.in_(list(user_ids)),
            )
            .order_by(FraudAlert.resolved_at.desc())
            .limit(1)
        )
        if competition_id is not None:
            stmt = stmt.where(FraudAlert.competition_id == competition_id)
        return self.session.scalars(stmt).first()

    def insert_if_absent(self, values: Dict) -> bool:
        return insert_ignore(self.session, FraudAlert, values) == 1

    def add_users(self, alert_id: str, user_ids: Iterable[str]) -> int:
        added = 0
        for user_id in user_ids:
            added += insert_ignore(self.session, FraudAlertUser, {
                "alert_id": alert_id,
                "user_id": user_id,
            })
        return added

    def add_evidence(self, alert_id: str, items: Sequence[Dict]) -> None:
        now = utcnow()
        for payload in items:
            self.session.add(FraudAlertEvidence(
                alert_id=alert_id,
                evidence_type=payload["type"],
                payload=payload,
                created_at=now,
            ))
        self.session.flush()

    def merge_severity_confidence(self, alert_id: str, severity: str, confidence: float) -> None:
        """Keep the max of stored and incoming severity/confidence in one UPDATE."""
        rank = case(SEVERITY_RANK, value=FraudAlert.severity, else_=0)
        self.session.execute(
            update(FraudAlert)
            .where(FraudAlert.id == alert_id)
            .values(
                severity=case((rank < SEVERITY_RANK[severity], severity), else_=FraudAlert.severity),
                confidence=case((FraudAlert.confidence < confidence, confidence), else_=FraudAlert.confidence),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

    def transition(
        self,
        alert_id: str,
        from_statuses: Sequence[str],
        to_status: str,
        **values,
    ) -> bool:
        """Conditional status change; False when the alert is no longer in a source status."""
        result = self.session.execute(
            update(FraudAlert)
            .where(FraudAlert.id == alert_id, FraudAlert.status.in_(list(from_statuses)))
            .values(status=to_status, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def mark_cleared_for_user(self, user_id: str, at: datetime) -> int:
        """Stamp investigation_cleared_at on the user's closed alerts."""
        alert_ids = select(FraudAlertUser.alert_id).where(FraudAlertUser.user_id == user_id)
        result = self.session.execute(
            update(FraudAlert)
            .where(
                FraudAlert.id.in_(alert_ids),
                FraudAlert.status.not_in(UNRESOLVED_ALERT_STATUSES),
                FraudAlert.investigation_cleared_at.is_(None),
            )
            .values(investigation_cleared_at=at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def user_ids(self, alert_id: str) -> List[str]:
        return list(self.session.scalars(
            select(FraudAlertUser.user_id)
            .where(FraudAlertUser.alert_id == alert_id)
            .order_by(FraudAlertUser.user_id)
        ).all())

    def evidence_count(self, alert_id: str) -> int:
        return self.session.scalar(
            select(func.count(FraudAlertEvidence.id)).where(FraudAlertEvidence.alert_id == alert_id)
        ) or 0

    def list_for_user(self, user_id: str, unresolved_only: bool = False) -> List[FraudAlert]:
        stmt = (
            select(FraudAlert)
            .join(FraudAlertUser, FraudAlertUser.alert_id == FraudAlert.id)
            .where(FraudAlertUser.user_id == user_id)
            .order_by(FraudAlert.updated_at.desc())
        )
        if unresolved_only:
            stmt = stmt.where(FraudAlert.status.in_(UNRESOLVED_ALERT_STATUSES))
        return list(self.session.scalars(stmt).all())

    def to_view(self, alert: FraudAlert) -> AlertView:
        evidence_rows = self.session.scalars(
            select(FraudAlertEvidence)
            .where(FraudAlertEvidence.alert_id == alert.id)
            .order_by(FraudAlertEvidence.id)
        ).all()
        return AlertView(
            id=alert.id,
            alert_type=alert.alert_type,
            user_ids=self.user_ids(alert.id),
            title=alert.title,
            description=alert.description,
            severity=alert.severity,
            confidence=alert.confidence,
            status=alert.status,
            evidence=[evidence_from_json(row.payload) for row in evidence_rows],
            competition_id=alert.competition_id,
            created_at=alert.created_at,
            updated_at=alert.updated_at,
            resolved_at=alert.resolved_at,
            investigation_cleared_at=alert.investigation_cleared_at,
        )


class FraudPolicyRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self) -> Optional[FraudPolicySettingsRecord]:
        return self.session.get(FraudPolicySettingsRecord, POLICY_SETTINGS_ID)

    def insert_defaults(self, threshold: float) -> bool:
        return insert_ignore(self.session, FraudPolicySettingsRecord, {
            "id": POLICY_SETTINGS_ID,
            "auto_suspend_enabled": False,
            "auto_suspend_threshold": threshold,
            "updated_at": utcnow(),
        }) == 1

    def update(self, **values) -> None:
        self.session.execute(
            update(FraudPolicySettingsRecord)
            .where(FraudPolicySettingsRecord.id == POLICY_SETTINGS_ID)
            .values(updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )


class UserRestrictionRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, restriction_id: str) -> Optional[UserRestriction]:
        return self.session.get(UserRestriction, restriction_id)

    def get_active(self, user_id: str) -> Optional[UserRestriction]:
        return self.session.scalars(
            select(UserRestriction).where(
                UserRestriction.user_id == user_id,
                UserRestriction.is_active.is_(True),
            )
        ).one_or_none()

    def claim(self, values: Dict) -> bool:
        """Insert an active restriction unless the user already holds one."""
        return insert_ignore(self.session, UserRestriction, {**values, "is_active": True}) == 1

    def deactivate(self, restriction_id: str, lifted_by: Optional[str], at: datetime) -> bool:
        result = self.session.execute(
            update(UserRestriction)
            .where(UserRestriction.id == restriction_id, UserRestriction.is_active.is_(True))
            .values(is_active=False, lifted_at=at, lifted_by=lifted_by)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def find_expired(self, now: datetime) -> List[UserRestriction]:
        return list(self.session.scalars(
            select(UserRestriction).where(
                UserRestriction.is_active.is_(True),
                UserRestriction.expires_at.is_not(None),
                UserRestriction.expires_at <= now,
            )
        ).all())

    def list_for_user(self, user_id: str) -> List[UserRestriction]:
        return list(self.session.scalars(
            select(UserRestriction)
            .where(UserRestriction.user_id == user_id)
            .order_by(UserRestriction.created_at.desc())
        ).all())

    @staticmethod
    def to_view(restriction: UserRestriction) -> RestrictionView:
        return RestrictionView(
            id=restriction.id,
            user_id=restriction.user_id,
            restriction_type=restriction.restriction_type,
            reason=restriction.reason,
            can_trade=restriction.can_trade,
            can_deposit=restriction.can_deposit,
            can_withdraw=restriction.can_withdraw,
            can_enter_competitions=restriction.can_enter_competitions,
            is_active=restriction.is_active,
            created_at=restriction.created_at,
            expires_at=restriction.expires_at,
            lifted_at=restriction.lifted_at,
            alert_id=restriction.alert_id,
        )


class FraudHistoryRepository:
    def __init__(self, session: Session):
        self.session = session

    def append(self, entry: FraudHistory) -> FraudHistory:
        self.session.add(entry)
        self.session.flush()
        return entry

    def for_user(self, user_id: str, limit: Optional[int] = None) -> List[FraudHistory]:
        stmt = (
            select(FraudHistory)
            .where(FraudHistory.user_id == user_id)
            .order_by(FraudHistory.created_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt).all())

    def action_counts(self, user_id: str) -> Dict[str, int]:
        rows = self.session.execute(
            select(FraudHistory.action_type, func.count())
            .where(FraudHistory.user_id == user_id)
            .group_by(FraudHistory.action_type)
        ).all()
        return {action: count for action, count in rows}

    def recent(self, limit: int, action_types: Optional[Sequence[str]] = None) -> List[FraudHistory]:
        stmt = select(FraudHistory).order_by(FraudHistory.created_at.desc()).limit(limit)
        if action_types:
            stmt = stmt.where(FraudHistory.action_type.in_(list(action_types)))
        return list(self.session.scalars(stmt).all())

    @staticmethod
    def to_view(entry: FraudHistory) -> HistoryEntryView:
        return HistoryEntryView(
            id=entry.id,
            user_id=entry.user_id,
            action_type=entry.action_type,
            severity=entry.severity,
            performed_by=entry.performed_by,
            reason=entry.reason,
            created_at=entry.created_at,
            performed_by_id=entry.performed_by_id,
            details=entry.details,
            previous_state=dict(entry.previous_state or {}),
            new_state=dict(entry.new_state or {}),
            alert_id=entry.alert_id,
            restriction_id=entry.restriction_id,
        )
