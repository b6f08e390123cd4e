"""
Fraud Engine Persistence Models

Design Principles:
- Scores are mutated only through atomic increments, never read-modify-write
- Score history is an append-only side table, not an embedded list
- Uniqueness that guards a race lives in the schema (unique / partial unique indexes)
- Fraud history is append-only: ORM updates and deletes are rejected
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ....shared.exceptions import BusinessRuleViolationError


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


class SuspicionScore(Base):
    """One row per user; created lazily on first evidence."""

    __tablename__ = "suspicion_scores"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Unbounded running sum for the current generation; total_score saturates at 100
    raw_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    risk_level: Mapped[str] = mapped_column(String(16), nullable=False, default="low", index=True)

    # Incremented by an explicit reset; the breakdown only covers the current generation
    generation: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    auto_restricted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    auto_restriction_reason: Mapped[Optional[str]] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    last_updated: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("total_score >= 0 AND total_score <= 100", name="ck_suspicion_total_range"),
        Index("idx_suspicion_total", "total_score"),
    )


class SuspicionScoreEvent(Base):
    """Append-only contribution history, keyed by user and time."""

    __tablename__ = "suspicion_score_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    generation: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    method: Mapped[str] = mapped_column(String(64), nullable=False)
    percentage: Mapped[float] = mapped_column(Float, nullable=False)
    evidence: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_score_events_user_time", "user_id", "created_at"),
        Index("idx_score_events_user_generation", "user_id", "generation"),
    )


class LinkedAccount(Base):
    """Directed half of a symmetric link; both directions are always written."""

    __tablename__ = "linked_accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    linked_user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    method: Mapped[str] = mapped_column(String(64), nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    linked_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "linked_user_id", name="uq_linked_accounts_pair"),
        CheckConstraint("user_id <> linked_user_id", name="ck_linked_accounts_not_self"),
    )


class PaymentFingerprint(Base):
    __tablename__ = "payment_fingerprints"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    fingerprint_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    card_last4: Mapped[Optional[str]] = mapped_column(String(4))
    card_brand: Mapped[Optional[str]] = mapped_column(String(50))
    card_country: Mapped[Optional[str]] = mapped_column(String(2))
    card_funding: Mapped[Optional[str]] = mapped_column(String(20))
    provider_account_id: Mapped[Optional[str]] = mapped_column(String(255))

    is_shared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    risk_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    times_used: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    first_used: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    last_used: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "provider", "fingerprint_hash", name="uq_payment_fingerprint_user"),
        Index("idx_payment_fingerprint_lookup", "provider", "fingerprint_hash"),
    )


class PaymentFingerprintGuard(Base):
    """One row per instrument; locked so uses of the same hash see each other's records."""

    __tablename__ = "payment_fingerprint_guards"

    provider: Mapped[str] = mapped_column(String(50), primary_key=True)
    fingerprint_hash: Mapped[str] = mapped_column(String(255), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class PaymentFingerprintLink(Base):
    __tablename__ = "payment_fingerprint_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    fingerprint_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("payment_fingerprints.id"), nullable=False, index=True
    )
    linked_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    linked_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("fingerprint_id", "linked_user_id", name="uq_payment_fingerprint_link"),
    )


UNRESOLVED_ALERT_PREDICATE = "status IN ('open', 'investigating')"


class FraudAlert(Base):
    """
    Deduplicated case record.

    ``dedup_key`` is the canonical ``alertType|competitionId|sorted userIds``; the
    partial unique index allows at most one unresolved alert per key.
    """

    __tablename__ = "fraud_alerts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    alert_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    dedup_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    competition_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open", index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(64))
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text)
    investigation_cleared_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_fraud_alert_confidence"),
        Index(
            "uq_fraud_alerts_unresolved_key",
            "dedup_key",
            unique=True,
            postgresql_where=text(UNRESOLVED_ALERT_PREDICATE),
            sqlite_where=text(UNRESOLVED_ALERT_PREDICATE),
        ),
    )


class FraudAlertUser(Base):
    __tablename__ = "fraud_alert_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    alert_id: Mapped[str] = mapped_column(String(36), ForeignKey("fraud_alerts.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("alert_id", "user_id", name="uq_fraud_alert_user"),
    )


class FraudAlertEvidence(Base):
    __tablename__ = "fraud_alert_evidence"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    alert_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("fraud_alerts.id"), nullable=False, index=True
    )
    evidence_type: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


POLICY_SETTINGS_ID = 1


class FraudPolicySettingsRecord(Base):
    """Singleton row holding the admin auto-enforcement policy."""

    __tablename__ = "fraud_policy_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=POLICY_SETTINGS_ID)
    auto_suspend_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_suspend_threshold: Mapped[float] = mapped_column(Float, nullable=False, default=90.0)
    updated_by: Mapped[Optional[str]] = mapped_column(String(64))
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("id = 1", name="ck_fraud_policy_singleton"),
        CheckConstraint(
            "auto_suspend_threshold >= 0 AND auto_suspend_threshold <= 100",
            name="ck_fraud_policy_threshold",
        ),
    )


class UserRestriction(Base):
    """Time-boxed enforcement record consumed by the wallet and trading gates."""

    __tablename__ = "user_restrictions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    restriction_type: Mapped[str] = mapped_column(String(16), nullable=False)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[Optional[str]] = mapped_column(Text)

    can_trade: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_deposit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_withdraw: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_enter_competitions: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(64))
    alert_id: Mapped[Optional[str]] = mapped_column(String(36))

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    lifted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    lifted_by: Mapped[Optional[str]] = mapped_column(String(64))

    __table_args__ = (
        # At most one active restriction per user
        Index(
            "uq_user_restrictions_active",
            "user_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )


class FraudHistory(Base):
    """Immutable fraud action ledger."""

    __tablename__ = "fraud_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    severity: Mapped[str] = mapped_column(String(16), nullable=False, default="low")
    performed_by: Mapped[str] = mapped_column(String(16), nullable=False)
    performed_by_id: Mapped[Optional[str]] = mapped_column(String(64))
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    details: Mapped[Optional[str]] = mapped_column(Text)

    previous_state: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    new_state: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)

    alert_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    restriction_id: Mapped[Optional[str]] = mapped_column(String(36))
    correlation_id: Mapped[Optional[str]] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_fraud_history_user_time", "user_id", "created_at"),
    )


@event.listens_for(FraudHistory, "before_update")
def _reject_history_update(mapper, connection, target):
    raise BusinessRuleViolationError("Fraud history entries are immutable")


@event.listens_for(FraudHistory, "before_delete")
def _reject_history_delete(mapper, connection, target):
    raise BusinessRuleViolationError("Fraud history entries cannot be deleted")
