"""Admin restriction management: manual restrictions, lifting and expiry."""

from datetime import datetime, timedelta
from typing import List, Optional

import structlog

from ....infrastructure.common.decorators import with_execution_context
from ....shared.exceptions import BusinessRuleViolationError, EntityNotFoundError
from ..domain.enums import FraudActionType, PerformedByType, RestrictionType
from ..domain.value_objects import RestrictionView
from ..infrastructure.models import new_id, utcnow
from ..infrastructure.repositories import (
    FraudAlertRepository,
    SuspicionScoreRepository,
    UserRestrictionRepository,
)
from .base import FraudService, retry_transient_writes
from .history_service import FraudHistoryService

logger = structlog.get_logger(__name__)

# A warning is recorded as a restriction that keeps every capability
CAPABILITIES = {
    RestrictionType.SUSPENDED: False,
    RestrictionType.BANNED: False,
    RestrictionType.WARNING: True,
}

LIFT_ACTIONS = {
    RestrictionType.SUSPENDED: FraudActionType.SUSPENSION_LIFTED,
    RestrictionType.BANNED: FraudActionType.BAN_LIFTED,
    RestrictionType.WARNING: FraudActionType.RESTRICTION_REMOVED,
}


class RestrictionService(FraudService):
    def __init__(self, db, config, history: FraudHistoryService):
        super().__init__(db, config)
        self.history = history

    @retry_transient_writes
    def restrict_user(
        self,
        user_id: str,
        restriction_type: RestrictionType,
        reason: str,
        admin_id: str,
        duration_days: Optional[int] = None,
        details: Optional[str] = None,
        alert_id: Optional[str] = None,
    ) -> RestrictionView:
        """Create a manual restriction; fails if the user already has an active one."""
        restriction_type = RestrictionType(restriction_type)
        allowed = CAPABILITIES[restriction_type]
        now = utcnow()
        restriction_id = new_id()

        with self.db.session_scope() as session:
            repo = UserRestrictionRepository(session)
            if not repo.claim({
                "id": restriction_id,
                "user_id": user_id,
                "restriction_type": restriction_type.value,
                "reason": reason,
                "details": details,
                "can_trade": allowed,
                "can_deposit": allowed,
                "can_withdraw": allowed,
                "can_enter_competitions": allowed,
                "created_by": admin_id,
                "alert_id": alert_id,
                "created_at": now,
                "expires_at": now + timedelta(days=duration_days) if duration_days else None,
            }):
                raise BusinessRuleViolationError(f"User {user_id} already has an active restriction")

            log = {
                RestrictionType.SUSPENDED: self.history.log_suspended,
                RestrictionType.BANNED: self.history.log_banned,
            }.get(restriction_type)
            if log is not None:
                log(user_id, reason, admin_id=admin_id, alert_id=alert_id,
                    restriction_id=restriction_id, session=session)
            else:
                self.history.log_warning_issued(
                    user_id, admin_id, reason, alert_id=alert_id,
                    restriction_id=restriction_id, session=session,
                )

            view = repo.to_view(repo.get(restriction_id))

        logger.info(
            "User restricted",
            user_id=user_id,
            restriction_type=restriction_type.value,
            restriction_id=restriction_id,
            admin_id=admin_id,
        )
        return view

    @retry_transient_writes
    def lift_restriction(self, user_id: str, lifted_by: str, reason: str) -> RestrictionView:
        """Deactivate the active restriction and clear the user's closed alerts.

        The auto-restriction marker is reset as well, so new activity can
        escalate and be enforced again.
        """
        now = utcnow()
        with self.db.session_scope() as session:
            repo = UserRestrictionRepository(session)
            restriction = repo.get_active(user_id)
            if restriction is None:
                raise EntityNotFoundError("ActiveRestriction", user_id)

            if not repo.deactivate(restriction.id, lifted_by, now):
                raise BusinessRuleViolationError(f"Restriction {restriction.id} was lifted concurrently")

            restriction_type = RestrictionType(restriction.restriction_type)
            self.history.log_action(
                user_id,
                LIFT_ACTIONS[restriction_type],
                reason,
                performed_by=PerformedByType.ADMIN,
                performed_by_id=lifted_by,
                previous_state={"accountStatus": restriction_type.value},
                new_state={"accountStatus": "active"},
                alert_id=restriction.alert_id,
                restriction_id=restriction.id,
                session=session,
            )
            cleared = FraudAlertRepository(session).mark_cleared_for_user(user_id, now)
            SuspicionScoreRepository(session).clear_auto_restriction(user_id)

            session.refresh(restriction)
            view = repo.to_view(restriction)

        logger.info(
            "Restriction lifted",
            user_id=user_id,
            restriction_id=view.id,
            lifted_by=lifted_by,
            alerts_cleared=cleared,
        )
        return view

    @with_execution_context("expire_restrictions")
    @retry_transient_writes
    def expire_restrictions(self, now: Optional[datetime] = None) -> List[RestrictionView]:
        """Deactivate every active restriction whose expiry has passed."""
        now = now or utcnow()
        expired = []
        with self.db.session_scope() as session:
            repo = UserRestrictionRepository(session)
            scores = SuspicionScoreRepository(session)
            for restriction in repo.find_expired(now):
                if not repo.deactivate(restriction.id, None, now):
                    continue
                self.history.log_action(
                    restriction.user_id,
                    FraudActionType.RESTRICTION_EXPIRED,
                    f"Restriction expired ({restriction.restriction_type})",
                    performed_by=PerformedByType.SYSTEM,
                    previous_state={"accountStatus": restriction.restriction_type},
                    new_state={"accountStatus": "active"},
                    restriction_id=restriction.id,
                    session=session,
                )
                scores.clear_auto_restriction(restriction.user_id)
                session.refresh(restriction)
                expired.append(repo.to_view(restriction))

        if expired:
            logger.info("Expired restrictions deactivated", count=len(expired))
        return expired

    def get_active_restriction(self, user_id: str) -> Optional[RestrictionView]:
        with self.db.session_scope() as session:
            restriction = UserRestrictionRepository(session).get_active(user_id)
            return UserRestrictionRepository.to_view(restriction) if restriction else None

    def get_restrictions(self, user_id: str) -> List[RestrictionView]:
        with self.db.session_scope() as session:
            return [
                UserRestrictionRepository.to_view(r)
                for r in UserRestrictionRepository(session).list_for_user(user_id)
            ]
