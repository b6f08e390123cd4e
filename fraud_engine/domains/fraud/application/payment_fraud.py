"""
Payment Fraud Service

Tracks payment-instrument fingerprints supplied by the gateway integration
and flags instruments shared across accounts. Sharing links the fingerprint
records of every implicated user, scores them all with ``samePayment`` and
raises or merges a ``same_payment`` alert. Tracking never blocks the payment.
"""

from typing import List

import structlog

from ....shared.exceptions import FraudEngineError
from ..domain.enums import AlertSeverity, AlertType
from ..domain.evidence import PaymentFingerprintEvidence
from ..domain.value_objects import (
    PaymentFingerprintData,
    PaymentFingerprintView,
    PaymentFraudStats,
    PaymentTrackingResult,
    ScoreUpdate,
)
from ..infrastructure.models import new_id, utcnow
from ..infrastructure.repositories import PaymentFingerprintRepository
from .alert_manager import AlertManager
from .audit_gap import AuditGapQueue
from .base import FraudService, retry_transient_writes
from .scorers import PERCENTAGE_VALUES
from .scoring_service import SuspicionScoreService

logger = structlog.get_logger(__name__)

HIGH_RISK_PAYMENT_SCORE = 50
SHARED_PAYMENT_CONFIDENCE = 0.85
SHARED_PAYMENT_LIST_LIMIT = 100


class PaymentFraudService(FraudService):
    def __init__(
        self,
        db,
        config,
        scoring: SuspicionScoreService,
        alerts: AlertManager,
        audit_gaps: AuditGapQueue,
    ):
        super().__init__(db, config)
        self.scoring = scoring
        self.alerts = alerts
        self.audit_gaps = audit_gaps

    def track_payment_fingerprint(self, data: PaymentFingerprintData) -> PaymentTrackingResult:
        """Record a payment instrument use and report whether it is shared.

        Every use of an instrument that another account also holds scores all
        implicated users with ``samePayment`` and raises or merges the alert.
        """
        fingerprint_id, other_users, newly_linked = self._record(data)
        result = PaymentTrackingResult(
            fingerprint_id=fingerprint_id,
            is_shared=bool(other_users),
            linked_user_ids=other_users,
            newly_linked_user_ids=newly_linked,
        )

        if not other_users:
            return result

        implicated = [data.user_id] + other_users
        logger.warning(
            "Shared payment method detected",
            user_id=data.user_id,
            provider=data.provider,
            fingerprint_hash=data.fingerprint_hash,
            accounts=len(implicated),
        )
        self._score(implicated, data)
        self._alert(implicated, data)
        return result

    @retry_transient_writes
    def _record(self, data: PaymentFingerprintData):
        per_link_risk = PERCENTAGE_VALUES["samePayment"]
        now = utcnow()

        with self.db.session_scope() as session:
            repo = PaymentFingerprintRepository(session)
            repo.lock_hash(data.provider, data.fingerprint_hash)
            created = repo.insert_if_absent({
                "id": new_id(),
                "user_id": data.user_id,
                "provider": data.provider,
                "fingerprint_hash": data.fingerprint_hash,
                "card_last4": data.card_last4,
                "card_brand": data.card_brand,
                "card_country": data.card_country,
                "card_funding": data.card_funding,
                "provider_account_id": data.provider_account_id,
                "is_shared": False,
                "risk_score": 0.0,
                "times_used": 1,
                "first_used": now,
                "last_used": now,
            })
            own = repo.get_for_user(data.user_id, data.provider, data.fingerprint_hash)
            if not created:
                repo.record_use(own.id)

            fingerprints = repo.find_by_hash(data.provider, data.fingerprint_hash)
            all_users = [fp.user_id for fp in fingerprints]
            other_users = [u for u in all_users if u != data.user_id]

            newly_linked = set()
            for fp in fingerprints:
                for other in all_users:
                    if other != fp.user_id and repo.add_link(fp.id, other):
                        newly_linked.update((fp.user_id, other))
                repo.refresh_sharing(fp.id, per_link_risk)

        logger.info(
            "Payment fingerprint tracked",
            user_id=data.user_id,
            provider=data.provider,
            fingerprint_hash=data.fingerprint_hash,
            first_use=created,
            shared_with=len(other_users),
        )
        return own.id, other_users, sorted(newly_linked)

    def _score(self, user_ids: List[str], data: PaymentFingerprintData) -> None:
        update = ScoreUpdate(
            method="samePayment",
            percentage=PERCENTAGE_VALUES["samePayment"],
            evidence=f"Shared payment method detected: {data.display_name} ({len(user_ids)} accounts)",
            confidence=SHARED_PAYMENT_CONFIDENCE,
        )
        try:
            self.scoring.update_scores_for_multiple_users(user_ids, update, user_ids)
        except FraudEngineError as e:
            self.audit_gaps.enqueue(
                "payment_scoring", self.scoring.update_scores_for_multiple_users,
                user_ids, update, user_ids, error=e,
            )

    def _alert(self, user_ids: List[str], data: PaymentFingerprintData) -> None:
        kwargs = dict(
            alert_type=AlertType.SAME_PAYMENT.value,
            user_ids=user_ids,
            title="Shared Payment Method Detected",
            description=f"{len(user_ids)} accounts are using the same payment method ({data.display_name})",
            severity=AlertSeverity.HIGH if len(user_ids) > 2 else AlertSeverity.MEDIUM,
            confidence=SHARED_PAYMENT_CONFIDENCE,
            evidence=[PaymentFingerprintEvidence(
                description=f"Payment method fingerprint match across {len(user_ids)} accounts",
                provider=data.provider,
                fingerprint_prefix=data.fingerprint_hash[:12],
                user_ids=sorted(user_ids),
            )],
        )
        try:
            self.alerts.create_or_update_alert(**kwargs)
        except FraudEngineError as e:
            self.audit_gaps.enqueue("payment_alert", self.alerts.create_or_update_alert, error=e, **kwargs)

    def has_shared_payments(self, user_id: str) -> bool:
        with self.db.session_scope() as session:
            return PaymentFingerprintRepository(session).count_shared_for_user(user_id) > 0

    def get_shared_payments(self) -> List[PaymentFingerprintView]:
        with self.db.session_scope() as session:
            repo = PaymentFingerprintRepository(session)
            fingerprints = repo.shared(SHARED_PAYMENT_LIST_LIMIT)
            links = repo.linked_user_ids(fp.id for fp in fingerprints)
            return [repo.to_view(fp, links[fp.id]) for fp in fingerprints]

    def get_user_payment_fingerprints(self, user_id: str) -> List[PaymentFingerprintView]:
        with self.db.session_scope() as session:
            repo = PaymentFingerprintRepository(session)
            fingerprints = repo.for_user(user_id)
            links = repo.linked_user_ids(fp.id for fp in fingerprints)
            return [repo.to_view(fp, links[fp.id]) for fp in fingerprints]

    def get_payment_fraud_stats(self) -> PaymentFraudStats:
        with self.db.session_scope() as session:
            repo = PaymentFingerprintRepository(session)
            counts = repo.stats_counts(HIGH_RISK_PAYMENT_SCORE)
            return PaymentFraudStats(
                total_payment_fingerprints=counts["total"],
                shared_payment_methods=counts["shared"],
                high_risk_payments=counts["high_risk"],
                affected_users=len(repo.affected_user_ids()),
            )
