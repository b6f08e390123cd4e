"""
Suspicion Tier Thresholds

Fixed boundaries mapping a composite suspicion score to a risk tier.
Tiers are not configurable; only the auto-suspension threshold is.
"""

from dataclasses import dataclass
from typing import List

from .enums import RiskLevel

MAX_SCORE = 100.0


@dataclass(frozen=True)
class TierThreshold:
    """Score interval [min_score, max_score) for one tier; the top tier includes 100."""
    level: RiskLevel
    min_score: float
    max_score: float
    description: str

    @property
    def score_range(self) -> str:
        """Human-readable score range."""
        return f"{self.min_score:g}-{self.max_score:g}"

    def contains_score(self, score: float) -> bool:
        if self.max_score == MAX_SCORE:
            return self.min_score <= score <= MAX_SCORE
        return self.min_score <= score < self.max_score


class RiskThresholds:
    """
    Risk tier definitions.

    Boundaries are contiguous and cover 0-100; the critical tier is closed
    at 100 so a saturated score still classifies.
    """

    THRESHOLDS = [
        TierThreshold(
            level=RiskLevel.LOW,
            min_score=0.0,
            max_score=30.0,
            description="No meaningful correlation with other accounts",
        ),
        TierThreshold(
            level=RiskLevel.MEDIUM,
            min_score=30.0,
            max_score=50.0,
            description="Some shared signals; worth watching",
        ),
        TierThreshold(
            level=RiskLevel.HIGH,
            min_score=50.0,
            max_score=70.0,
            description="Several independent signals point to one actor",
        ),
        TierThreshold(
            level=RiskLevel.CRITICAL,
            min_score=70.0,
            max_score=MAX_SCORE,
            description="Strong multi-accounting evidence; eligible for auto-enforcement",
        ),
    ]

    @staticmethod
    def classify_score(score: float) -> TierThreshold:
        """
        Classify a suspicion score into its tier.

        Args:
            score: Composite score between 0-100

        Returns:
            TierThreshold containing the score

        Raises:
            ValueError: If score is outside 0-100 range
        """
        if not (0 <= score <= MAX_SCORE):
            raise ValueError(f"Suspicion score must be between 0-100, got {score}")

        for threshold in RiskThresholds.THRESHOLDS:
            if threshold.contains_score(score):
                return threshold

        raise ValueError(f"No threshold found for score {score}")

    @staticmethod
    def level_for(score: float) -> RiskLevel:
        return RiskThresholds.classify_score(score).level

    @staticmethod
    def get_all_thresholds() -> List[TierThreshold]:
        """Get all defined tier thresholds."""
        return RiskThresholds.THRESHOLDS.copy()

    @staticmethod
    def get_threshold_by_level(level: RiskLevel) -> TierThreshold:
        for threshold in RiskThresholds.THRESHOLDS:
            if threshold.level == level:
                return threshold
        raise ValueError(f"No threshold defined for level {level}")

    @staticmethod
    def is_escalation(old_level: RiskLevel, new_level: RiskLevel) -> bool:
        """True when the tier strictly rises into high or critical."""
        return new_level.rank > old_level.rank and new_level.is_enforceable


def saturate(raw_score: float) -> float:
    """Cap a running sum of contributions at the maximum score."""
    return min(MAX_SCORE, raw_score)
