"""TradeSense fraud engine: multi-account detection, suspicion scoring and auto-enforcement."""

from .domains.fraud.application.engine import FraudEngine
from .domains.fraud.domain.enums import (
    AlertSeverity,
    AlertStatus,
    AlertType,
    EnforcementOutcome,
    FraudActionType,
    PerformedByType,
    RestrictionType,
    RiskLevel,
)
from .domains.fraud.domain.value_objects import PaymentFingerprintData, ScoreUpdate
from .infrastructure.config.settings import Settings, get_settings

__version__ = "0.1.0"

__all__ = [
    "FraudEngine",
    "Settings",
    "get_settings",
    "ScoreUpdate",
    "PaymentFingerprintData",
    "RiskLevel",
    "AlertSeverity",
    "AlertStatus",
    "AlertType",
    "EnforcementOutcome",
    "FraudActionType",
    "PerformedByType",
    "RestrictionType",
]
