"""
Fraud Engine

Wires the fraud services together and exposes the entry points business flows
call. Those entry points are fire-and-forget: they never raise into the
caller's payment, trade or login handling. A failure is logged and the call is
queued as an audit gap for ``retry_audit_gaps``.
"""

from typing import Any, Callable, Optional, Sequence

import structlog

from ....infrastructure.common.context import (
    ExecutionContext,
    get_current_execution_context,
    reset_execution_context,
    set_execution_context,
)
from ....infrastructure.common.decorators import with_execution_context
from ....infrastructure.config.settings import Settings, get_settings
from ....infrastructure.database.session import DatabaseSessionManager
from ....infrastructure.logging.structured_logger import configure_logging
from ....shared.exceptions import FraudEngineError, ValidationError
from ..domain.value_objects import PaymentFingerprintData, PaymentTrackingResult
from ..infrastructure.models import Base
from .alert_manager import AlertManager
from .audit_gap import AuditGapQueue, ReplayReport
from .enforcement import AutoEnforcementService
from .history_service import FraudHistoryService
from .payment_fraud import PaymentFraudService
from .policy import FraudPolicyProvider
from .restrictions import RestrictionService
from .scorers import EvidenceScoringService, ScorerRegistry
from .scoring_service import SuspicionScoreService

logger = structlog.get_logger(__name__)


class FraudEngine:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        db: Optional[DatabaseSessionManager] = None,
        registry: Optional[ScorerRegistry] = None,
    ):
        self.settings = settings or get_settings()
        configure_logging(self.settings.logging)
        self.db = db or DatabaseSessionManager(self.settings.database)
        config = self.settings.fraud

        self.audit_gaps = AuditGapQueue(max_attempts=config.audit_gap_max_attempts)
        self.history = FraudHistoryService(self.db, config)
        self.policy = FraudPolicyProvider(self.db, config)
        self.alerts = AlertManager(self.db, config, self.history)
        self.enforcement = AutoEnforcementService(
            self.db, config, self.policy, self.alerts, self.history, self.audit_gaps
        )
        self.scores = SuspicionScoreService(
            self.db, config, self.history, self.audit_gaps,
            escalation_handler=self.enforcement.evaluate,
        )
        self.scorers = EvidenceScoringService(self.scores, registry)
        self.payments = PaymentFraudService(
            self.db, config, self.scores, self.alerts, self.audit_gaps
        )
        self.restrictions = RestrictionService(self.db, config, self.history)

    def create_schema(self) -> None:
        self.db.create_all(Base)

    def close(self) -> None:
        self.db.dispose()

    def submit(self, operation: str, func: Callable, *args, **kwargs) -> Optional[Any]:
        """Run ``func`` under a correlation context; failures are queued, never raised."""
        context = get_current_execution_context()
        token = None
        if context is None:
            context = ExecutionContext.create_for_system(operation_type=operation)
            token = set_execution_context(context)

        try:
            return func(*args, **kwargs)
        except ValidationError as e:
            logger.warning(
                "Fraud signal rejected",
                operation=operation,
                error=str(e),
                correlation_id=context.correlation_id,
            )
        except FraudEngineError as e:
            self.audit_gaps.enqueue(
                operation, func, *args, error=e, correlation_id=context.correlation_id, **kwargs
            )
        except Exception as e:
            # Malformed payloads cannot succeed on replay
            logger.exception(
                "Fraud signal failed",
                operation=operation,
                error=str(e),
                correlation_id=context.correlation_id,
            )
        finally:
            if token is not None:
                reset_execution_context(token)
        return None

    def on_payment(self, data: PaymentFingerprintData) -> Optional[PaymentTrackingResult]:
        """Payment callback hook; returns None when tracking could not complete."""
        return self.submit("track_payment_fingerprint", self.payments.track_payment_fingerprint, data)

    def on_signal(self, method: str, user_ids: Sequence[str], **params):
        """Correlation detected across accounts (device, IP, trading behaviour...)."""
        return self.submit(f"signal:{method}", self.scorers.apply, method, list(user_ids), **params)

    def on_user_signal(self, method: str, user_id: str, **params):
        """Single-account signal (device switching, brute force, rate limits)."""
        return self.submit(f"signal:{method}", self.scorers.apply_single, method, user_id, **params)

    @with_execution_context("audit_gap_replay")
    def retry_audit_gaps(self) -> ReplayReport:
        report = self.audit_gaps.replay()
        logger.info(
            "Audit gap replay finished",
            succeeded=report.succeeded,
            failed=report.failed,
            dead_lettered=report.dead_lettered,
            pending=len(self.audit_gaps),
        )
        return report
