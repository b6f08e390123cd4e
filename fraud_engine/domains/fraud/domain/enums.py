"""Enumerations shared across the fraud domain."""

from enum import Enum


class RiskLevel(str, Enum):
    """Suspicion tiers derived from the composite score."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]

    @property
    def is_enforceable(self) -> bool:
        """Only high and critical tiers may trigger auto-enforcement."""
        return self in (RiskLevel.HIGH, RiskLevel.CRITICAL)


_RISK_RANK = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self.value]


SEVERITY_RANK = {"low": 1, "medium": 2, "high": 3, "critical": 4}


class AlertStatus(str, Enum):
    OPEN = "open"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"

    @property
    def is_unresolved(self) -> bool:
        return self in (AlertStatus.OPEN, AlertStatus.INVESTIGATING)


UNRESOLVED_ALERT_STATUSES = (AlertStatus.OPEN.value, AlertStatus.INVESTIGATING.value)


class AlertType(str, Enum):
    """Alert categories.

    SAME_PAYMENT and AUTO_SUSPENSION are raised by the engine itself. MULTI_ACCOUNT,
    COLLUSION and LOGIN_ABUSE name the findings of the platform's device, trading and
    login detectors, which report them through ``AlertManager.create_or_update_alert``.
    Any other string is accepted as well.
    """
    MULTI_ACCOUNT = "multi_account"
    SAME_PAYMENT = "same_payment"
    AUTO_SUSPENSION = "auto_suspension"
    COLLUSION = "collusion"
    LOGIN_ABUSE = "login_abuse"


class FraudActionType(str, Enum):
    WARNING_ISSUED = "warning_issued"
    INVESTIGATION_STARTED = "investigation_started"
    INVESTIGATION_RESOLVED = "investigation_resolved"
    ACCOUNT_SUSPENDED = "account_suspended"
    SUSPENSION_LIFTED = "suspension_lifted"
    ACCOUNT_BANNED = "account_banned"
    BAN_LIFTED = "ban_lifted"
    RESTRICTION_ADDED = "restriction_added"
    RESTRICTION_REMOVED = "restriction_removed"
    ALERT_CREATED = "alert_created"
    ALERT_DISMISSED = "alert_dismissed"
    ALERT_RESOLVED = "alert_resolved"
    EVIDENCE_ADDED = "evidence_added"
    MANUAL_REVIEW = "manual_review"
    AUTO_ACTION = "auto_action"
    SCORE_RESET = "score_reset"
    RESTRICTION_EXPIRED = "restriction_expired"


class PerformedByType(str, Enum):
    AUTOMATED = "automated"
    SYSTEM = "system"
    ADMIN = "admin"


class RestrictionType(str, Enum):
    SUSPENDED = "suspended"
    BANNED = "banned"
    WARNING = "warning"


class EnforcementOutcome(str, Enum):
    """Result of one auto-enforcement decision."""
    DISABLED = "disabled"
    BELOW_THRESHOLD = "below_threshold"
    ALREADY_RESTRICTED = "already_restricted"
    RESTRICTED = "restricted"
