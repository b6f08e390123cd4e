"""
Suspicion Score Service

Maintains one composite score per user. The store is generic over method name
and percentage: every contribution is an atomic increment of the running sum,
the total saturates at 100 and the tier is re-derived in the same statement.
A strict rise into the high or critical tier hands the user to auto-enforcement
once the contribution has been committed.
"""

from typing import Callable, List, Optional, Sequence

import structlog

from ....infrastructure.logging.structured_logger import get_fraud_event_logger
from ....shared.exceptions import EntityNotFoundError, FraudEngineError, ValidationError
from ..domain.enums import FraudActionType, PerformedByType, RiskLevel
from ..domain.thresholds import RiskThresholds, saturate
from ..domain.value_objects import ScoreChange, ScoreStatistics, ScoreUpdate, SuspicionScoreView
from ..infrastructure.models import SuspicionScore
from ..infrastructure.repositories import SuspicionScoreRepository
from .audit_gap import AuditGapQueue
from .base import FraudService, retry_transient_writes
from .history_service import FraudHistoryService

logger = structlog.get_logger(__name__)

# Receives the user id after a committed tier escalation
EscalationHandler = Callable[[str], object]


class SuspicionScoreService(FraudService):
    def __init__(
        self,
        db,
        config,
        history: FraudHistoryService,
        audit_gaps: AuditGapQueue,
        escalation_handler: Optional[EscalationHandler] = None,
    ):
        super().__init__(db, config)
        self.history = history
        self.audit_gaps = audit_gaps
        self.escalation_handler = escalation_handler
        self.events = get_fraud_event_logger()

    def update_score(self, user_id: str, update: ScoreUpdate) -> ScoreChange:
        """Apply one contribution to a user and link any implicated accounts both ways."""
        if not user_id:
            raise ValidationError("user_id is required")
        change = self._apply([(user_id, update)])[0]
        self._escalate([change])
        return change

    def update_scores_for_multiple_users(
        self,
        user_ids: Sequence[str],
        update: ScoreUpdate,
        linked_user_ids: Optional[Sequence[str]] = None,
    ) -> List[ScoreChange]:
        """Apply one contribution to every user; the set is treated as mutually linked.

        All users are updated in one transaction, so a retry or a replay never
        applies the contribution to only part of the group.
        """
        users = list(dict.fromkeys(u for u in user_ids if u))
        if not users:
            raise ValidationError("At least one user is required")
        group = list(dict.fromkeys(linked_user_ids)) if linked_user_ids is not None else users

        updates = [
            (user_id, update.model_copy(update={
                "linked_user_ids": [other for other in group if other != user_id],
            }))
            for user_id in users
        ]
        changes = self._apply(updates)
        self._escalate(changes)
        return changes

    @retry_transient_writes
    def _apply(self, updates: List[tuple]) -> List[ScoreChange]:
        changes = []
        with self.db.session_scope() as session:
            repo = SuspicionScoreRepository(session)
            for user_id, update in updates:
                confidence = (
                    update.confidence if update.confidence is not None
                    else self.config.default_link_confidence
                )
                repo.ensure(user_id)
                for other in update.linked_user_ids:
                    if other == user_id:
                        continue
                    repo.ensure(other)
                    repo.link(user_id, other, update.method, confidence)

                row = repo.increment(user_id, update.percentage)
                repo.append_event(user_id, row.generation, update.method, update.percentage, update.evidence)

                old_score = saturate(round(row.raw_score - update.percentage, 6))
                changes.append(ScoreChange(
                    user_id=user_id,
                    method=update.method,
                    percentage=update.percentage,
                    old_score=old_score,
                    new_score=row.total_score,
                    old_level=RiskThresholds.level_for(old_score),
                    new_level=RiskLevel(row.risk_level),
                    auto_restricted=row.auto_restricted_at is not None,
                ))

        for change in changes:
            self.events.log_score_change(
                change.user_id, change.method, change.old_score, change.new_score, change.new_level.value
            )
        return changes

    def _escalate(self, changes: List[ScoreChange]) -> None:
        if self.escalation_handler is None:
            return
        for change in changes:
            if not change.requires_enforcement_check:
                continue
            logger.info(
                "Risk tier escalated",
                user_id=change.user_id,
                old_level=change.old_level.value,
                new_level=change.new_level.value,
                new_score=change.new_score,
            )
            try:
                self.escalation_handler(change.user_id)
            except FraudEngineError as e:
                # The contribution is committed; only the decision is deferred
                self.audit_gaps.enqueue(
                    "auto_enforcement", self.escalation_handler, change.user_id, error=e
                )

    def get_score(self, user_id: str) -> Optional[SuspicionScoreView]:
        with self.db.session_scope() as session:
            repo = SuspicionScoreRepository(session)
            score = repo.get(user_id)
            if score is None:
                return None
            return self._to_view(repo, score, include_history=True)

    def get_high_risk_users(self) -> List[SuspicionScoreView]:
        return self._find_by_levels([RiskLevel.HIGH, RiskLevel.CRITICAL])

    def get_users_by_risk_level(self, level: RiskLevel) -> List[SuspicionScoreView]:
        return self._find_by_levels([RiskLevel(level)])

    def _find_by_levels(self, levels: List[RiskLevel]) -> List[SuspicionScoreView]:
        with self.db.session_scope() as session:
            repo = SuspicionScoreRepository(session)
            return [self._to_view(repo, s, include_history=False) for s in repo.find_by_levels(levels)]

    @retry_transient_writes
    def reset_score(self, user_id: str, performed_by_id: Optional[str] = None) -> SuspicionScoreView:
        """Explicit admin reset: zero score, low tier, marker cleared, history kept."""
        with self.db.session_scope() as session:
            repo = SuspicionScoreRepository(session)
            before = repo.read_row(user_id)
            if before is None:
                raise EntityNotFoundError("SuspicionScore", user_id)

            repo.reset(user_id)
            self.history.log_action(
                user_id,
                FraudActionType.SCORE_RESET,
                "Suspicion score reset",
                performed_by=PerformedByType.ADMIN if performed_by_id else PerformedByType.SYSTEM,
                performed_by_id=performed_by_id,
                previous_state={"suspicionScore": before.total_score, "riskLevel": before.risk_level},
                new_state={"suspicionScore": 0.0, "riskLevel": RiskLevel.LOW.value},
                session=session,
            )
            session.expire_all()
            view = self._to_view(repo, repo.get(user_id), include_history=True)

        logger.info("Suspicion score reset", user_id=user_id, previous_score=before.total_score)
        return view

    def get_statistics(self) -> ScoreStatistics:
        with self.db.session_scope() as session:
            repo = SuspicionScoreRepository(session)
            counts = repo.level_counts()
            by_level = {level.value: counts.get(level.value, 0) for level in RiskLevel}
            return ScoreStatistics(
                total_users=sum(by_level.values()),
                by_level=by_level,
                average_score=repo.average_total(),
            )

    def _to_view(
        self, repo: SuspicionScoreRepository, score: SuspicionScore, include_history: bool
    ) -> SuspicionScoreView:
        return SuspicionScoreView(
            user_id=score.user_id,
            total_score=score.total_score,
            risk_level=RiskLevel(score.risk_level),
            raw_score=score.raw_score,
            generation=score.generation,
            score_breakdown=repo.breakdown(score.user_id, score.generation),
            linked_accounts=repo.linked_accounts(score.user_id),
            score_history=(
                repo.history(score.user_id, self.config.score_history_limit) if include_history else []
            ),
            auto_restricted_at=score.auto_restricted_at,
            auto_restriction_reason=score.auto_restriction_reason,
            last_updated=score.last_updated,
        )
