"""Value objects passed into and returned from the fraud services."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import EnforcementOutcome, RiskLevel
from .thresholds import RiskThresholds


class ScoreUpdate(BaseModel):
    """One evidence contribution to a user's suspicion score."""

    model_config = ConfigDict(frozen=True)

    method: str = Field(..., min_length=1)
    percentage: float = Field(..., gt=0, le=100)
    evidence: str
    linked_user_ids: List[str] = Field(default_factory=list)
    confidence: Optional[float] = Field(None, ge=0, le=1)

    @field_validator("linked_user_ids")
    @classmethod
    def dedupe_linked_users(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(u for u in v if u))


class PaymentFingerprintData(BaseModel):
    """A payment instrument use already verified by the gateway integration."""

    user_id: str = Field(..., min_length=1)
    provider: str = Field(..., min_length=1)
    fingerprint_hash: str = Field(..., min_length=1)

    card_last4: Optional[str] = Field(None, max_length=4)
    card_brand: Optional[str] = None
    card_country: Optional[str] = Field(None, max_length=2)
    card_funding: Optional[str] = None
    provider_account_id: Optional[str] = None

    transaction_id: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.card_last4:
            return f"{self.card_brand or 'card'} •••• {self.card_last4}"
        return f"{self.provider} payment method"


@dataclass
class FraudPolicySettings:
    """Admin-controlled auto-enforcement policy.

    ``source`` records where the values came from: ``stored`` (the persisted
    row), ``defaults`` (row was absent and has just been created) or
    ``fallback`` (the row could not be read).
    """
    auto_suspend_enabled: bool = False
    auto_suspend_threshold: float = 90.0
    source: str = "defaults"
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None


@dataclass
class LinkedAccountView:
    user_id: str
    method: str
    confidence: float
    linked_at: datetime


@dataclass
class ScoreHistoryEntry:
    method: str
    percentage: float
    evidence: str
    timestamp: datetime
    generation: int = 0


@dataclass
class SuspicionScoreView:
    user_id: str
    total_score: float
    risk_level: RiskLevel
    raw_score: float = 0.0
    generation: int = 0
    score_breakdown: Dict[str, float] = field(default_factory=dict)
    linked_accounts: List[LinkedAccountView] = field(default_factory=list)
    score_history: List[ScoreHistoryEntry] = field(default_factory=list)
    auto_restricted_at: Optional[datetime] = None
    auto_restriction_reason: Optional[str] = None
    last_updated: Optional[datetime] = None

    @property
    def is_auto_restricted(self) -> bool:
        return self.auto_restricted_at is not None

    @property
    def linked_user_ids(self) -> List[str]:
        return [link.user_id for link in self.linked_accounts]


@dataclass
class ScoreChange:
    """Before/after state of one atomic score increment."""
    user_id: str
    method: str
    percentage: float
    old_score: float
    new_score: float
    old_level: RiskLevel
    new_level: RiskLevel
    auto_restricted: bool = False

    @property
    def requires_enforcement_check(self) -> bool:
        """Strict rise into high/critical on a record that is not yet auto-restricted."""
        return not self.auto_restricted and RiskThresholds.is_escalation(self.old_level, self.new_level)


@dataclass
class EnforcementDecision:
    user_id: str
    outcome: EnforcementOutcome
    reason: str
    score: float
    threshold: Optional[float] = None
    settings_source: Optional[str] = None
    restriction_id: Optional[str] = None
    alert_id: Optional[str] = None

    @property
    def restricted(self) -> bool:
        return self.outcome == EnforcementOutcome.RESTRICTED


@dataclass
class ScoreStatistics:
    total_users: int
    by_level: Dict[str, int]
    average_score: float


@dataclass
class PaymentFingerprintView:
    id: str
    user_id: str
    provider: str
    fingerprint_hash: str
    linked_user_ids: List[str]
    is_shared: bool
    risk_score: float
    times_used: int
    first_used: datetime
    last_used: datetime
    card_last4: Optional[str] = None
    card_brand: Optional[str] = None
    card_country: Optional[str] = None


@dataclass
class PaymentTrackingResult:
    """What a payment callback needs to decide whether to flag the transaction."""
    fingerprint_id: str
    is_shared: bool
    linked_user_ids: List[str] = field(default_factory=list)
    newly_linked_user_ids: List[str] = field(default_factory=list)

    @property
    def fraud_detected(self) -> bool:
        return self.is_shared


@dataclass
class PaymentFraudStats:
    total_payment_fingerprints: int
    shared_payment_methods: int
    high_risk_payments: int
    affected_users: int


@dataclass
class AlertView:
    id: str
    alert_type: str
    user_ids: List[str]
    title: str
    description: str
    severity: str
    confidence: float
    status: str
    evidence: List[Any]
    competition_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    investigation_cleared_at: Optional[datetime] = None


@dataclass
class AlertResult:
    alert_id: str
    created: bool
    evidence_count: int


@dataclass
class RestrictionView:
    id: str
    user_id: str
    restriction_type: str
    reason: str
    can_trade: bool
    can_deposit: bool
    can_withdraw: bool
    can_enter_competitions: bool
    is_active: bool
    created_at: datetime
    expires_at: Optional[datetime] = None
    lifted_at: Optional[datetime] = None
    alert_id: Optional[str] = None


@dataclass
class HistoryEntryView:
    id: str
    user_id: str
    action_type: str
    severity: str
    performed_by: str
    reason: str
    created_at: datetime
    performed_by_id: Optional[str] = None
    details: Optional[str] = None
    previous_state: Dict[str, Any] = field(default_factory=dict)
    new_state: Dict[str, Any] = field(default_factory=dict)
    alert_id: Optional[str] = None
    restriction_id: Optional[str] = None


@dataclass
class UserFraudSummary:
    user_id: str
    history: List[HistoryEntryView]
    counts: Dict[str, int]
    total_incidents: int
    suspension_count: int
    ban_count: int
    warning_count: int
    lift_count: int

    @property
    def is_repeat_offender(self) -> bool:
        return self.suspension_count > 1 or self.ban_count > 0

    @property
    def has_been_rehabbed(self) -> bool:
        return self.lift_count > 0
