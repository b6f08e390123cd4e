"""Typed alert evidence.

Every evidence item carries a ``type`` discriminator with a fixed schema per type.
Items are persisted as JSON and parsed back through ``EvidenceAdapter``.

The engine builds the payment and score-breakdown items itself. Device, IP/browser,
coordinated-entry, trading-pattern and generic scoring items are supplied by the
detectors that call ``AlertManager.create_or_update_alert``.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _EvidenceBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    detected_at: Optional[datetime] = None
    competition_id: Optional[str] = None


class DeviceFingerprintEvidence(_EvidenceBase):
    type: Literal["device_fingerprint"] = "device_fingerprint"
    fingerprint_id: str
    device_name: Optional[str] = None


class IpBrowserEvidence(_EvidenceBase):
    type: Literal["ip_browser_match"] = "ip_browser_match"
    ip_address: str
    browser: Optional[str] = None


class PaymentFingerprintEvidence(_EvidenceBase):
    type: Literal["payment_fingerprint"] = "payment_fingerprint"
    provider: str
    fingerprint_prefix: str
    user_ids: List[str] = Field(default_factory=list)


class CoordinatedEntryEvidence(_EvidenceBase):
    type: Literal["coordinated_entry"] = "coordinated_entry"
    time_window_seconds: float


class TradingPatternEvidence(_EvidenceBase):
    """Mirror trading or trading similarity metrics."""
    type: Literal["trading_pattern"] = "trading_pattern"
    pattern: Literal["mirror_trading", "trading_similarity"]
    rate_percent: float


class ScoreBreakdownEvidence(_EvidenceBase):
    """Snapshot of a suspicion score attached to auto-enforcement alerts."""
    type: Literal["score_breakdown"] = "score_breakdown"
    total_score: float
    risk_level: str
    breakdown: Dict[str, float] = Field(default_factory=dict)


class ScoringEvidence(_EvidenceBase):
    """A single scorer contribution without a more specific schema."""
    type: Literal["scoring"] = "scoring"
    method: str
    percentage: float


FraudEvidence = Annotated[
    Union[
        DeviceFingerprintEvidence,
        IpBrowserEvidence,
        PaymentFingerprintEvidence,
        CoordinatedEntryEvidence,
        TradingPatternEvidence,
        ScoreBreakdownEvidence,
        ScoringEvidence,
    ],
    Field(discriminator="type"),
]

EvidenceAdapter: TypeAdapter = TypeAdapter(FraudEvidence)


def evidence_to_json(evidence: Any) -> Dict[str, Any]:
    return evidence.model_dump(mode="json")


def evidence_from_json(data: Dict[str, Any]) -> Any:
    return EvidenceAdapter.validate_python(data)
