"""
Evidence Scorers

Each scorer fixes a method name, its weight from the catalogue and how its
evidence text is written. Scorers only build ``ScoreUpdate`` values and hand
them to the score service, so adding a scorer never touches the score store.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from ....shared.exceptions import ValidationError
from ..domain.value_objects import ScoreChange, ScoreUpdate

# Weight per method, in percentage points of the 0-100 suspicion score
PERCENTAGE_VALUES: Dict[str, float] = {
    "deviceMatch": 40,
    "ipMatch": 30,
    "ipBrowserMatch": 35,
    "sameCity": 15,
    "samePayment": 30,
    "rapidCreation": 20,
    "coordinatedEntry": 25,
    "tradingSimilarity": 30,
    "mirrorTrading": 35,
    "timezoneLanguage": 10,
    "deviceSwitching": 15,
    "bruteForce": 35,
    "rateLimitExceeded": 25,
}


@dataclass(frozen=True)
class EvidenceScorer:
    """A named detector: method, weight and evidence formatter."""
    method: str
    weight: float
    formatter: Callable[..., str]

    def build(self, linked_user_ids: Sequence[str] = (), **params) -> ScoreUpdate:
        return ScoreUpdate(
            method=self.method,
            percentage=self.weight,
            evidence=self.formatter(**params),
            linked_user_ids=list(linked_user_ids),
        )


def _short(value: str, length: int = 12) -> str:
    return f"{value[:length]}..."


def _brute_force(failed_attempts, ip_address, email=None):
    suffix = f" for {email}" if email else ""
    return f"Brute force attack: {failed_attempts} failed login attempts from IP {ip_address}{suffix}"


DEFAULT_SCORERS = [
    EvidenceScorer(
        "deviceMatch", PERCENTAGE_VALUES["deviceMatch"],
        lambda fingerprint_id, device_info: (
            f"Same device detected ({device_info}) - Fingerprint: {_short(fingerprint_id)}"
        ),
    ),
    EvidenceScorer(
        "ipMatch", PERCENTAGE_VALUES["ipMatch"],
        lambda ip_address: f"Same IP address detected: {ip_address}",
    ),
    EvidenceScorer(
        "ipBrowserMatch", PERCENTAGE_VALUES["ipBrowserMatch"],
        lambda ip_address, browser: f"Same IP ({ip_address}) and browser ({browser}) detected",
    ),
    EvidenceScorer(
        "timezoneLanguage", PERCENTAGE_VALUES["timezoneLanguage"],
        lambda timezone, language: f"Same timezone ({timezone}) and language ({language})",
    ),
    EvidenceScorer(
        "samePayment", PERCENTAGE_VALUES["samePayment"],
        lambda provider, fingerprint: (
            f"Same payment method detected ({provider}) - Fingerprint: {_short(fingerprint)}"
        ),
    ),
    EvidenceScorer(
        "rapidCreation", PERCENTAGE_VALUES["rapidCreation"],
        lambda time_window_minutes: f"Multiple accounts created within {time_window_minutes} minutes",
    ),
    EvidenceScorer(
        "coordinatedEntry", PERCENTAGE_VALUES["coordinatedEntry"],
        lambda competition_id, time_window_minutes: (
            f"Coordinated competition entry within {time_window_minutes} minutes "
            f"(Competition: {_short(competition_id)})"
        ),
    ),
    EvidenceScorer(
        "tradingSimilarity", PERCENTAGE_VALUES["tradingSimilarity"],
        lambda similarity_percent: f"{similarity_percent}% trading pattern similarity detected",
    ),
    EvidenceScorer(
        "mirrorTrading", PERCENTAGE_VALUES["mirrorTrading"],
        lambda match_rate: f"Mirror trading detected ({round(match_rate * 100)}% opposite trades)",
    ),
    EvidenceScorer(
        "sameCity", PERCENTAGE_VALUES["sameCity"],
        lambda city, distance_km: f"Accounts within {distance_km}km ({city})",
    ),
    EvidenceScorer(
        "deviceSwitching", PERCENTAGE_VALUES["deviceSwitching"],
        lambda device_count, time_window_hours: (
            f"Used {device_count} different devices within {time_window_hours} hours"
        ),
    ),
    EvidenceScorer("bruteForce", PERCENTAGE_VALUES["bruteForce"], _brute_force),
    EvidenceScorer(
        "rateLimitExceeded", PERCENTAGE_VALUES["rateLimitExceeded"],
        lambda limit_type, attempts, ip_address: (
            f"Rate limit exceeded: {attempts} {limit_type} attempts from IP {ip_address}"
        ),
    ),
]


class ScorerRegistry:
    """Lookup of scorers by method name; custom scorers can be registered at runtime."""

    def __init__(self, scorers: Optional[Sequence[EvidenceScorer]] = None):
        self._scorers: Dict[str, EvidenceScorer] = {}
        for scorer in scorers if scorers is not None else DEFAULT_SCORERS:
            self.register(scorer)

    def register(self, scorer: EvidenceScorer) -> None:
        if not (0 < scorer.weight <= 100):
            raise ValidationError(f"Scorer weight must be in (0, 100], got {scorer.weight}")
        self._scorers[scorer.method] = scorer

    def get(self, method: str) -> EvidenceScorer:
        try:
            return self._scorers[method]
        except KeyError:
            raise ValidationError(f"Unknown scoring method: {method}") from None

    def methods(self) -> List[str]:
        return sorted(self._scorers)

    def __contains__(self, method: str) -> bool:
        return method in self._scorers


class EvidenceScoringService:
    """Turns detected correlations into score contributions."""

    def __init__(self, scoring, registry: Optional[ScorerRegistry] = None):
        self.scoring = scoring
        self.registry = registry or ScorerRegistry()

    def apply(self, method: str, user_ids: Sequence[str], **params) -> List[ScoreChange]:
        """Score every user in ``user_ids`` with ``method``; the users become mutually linked."""
        update = self.registry.get(method).build(**params)
        return self.scoring.update_scores_for_multiple_users(user_ids, update, user_ids)

    def apply_single(self, method: str, user_id: str, **params) -> ScoreChange:
        update = self.registry.get(method).build(**params)
        return self.scoring.update_score(user_id, update)

    def score_device_match(self, user_ids, fingerprint_id: str, device_info: str):
        return self.apply("deviceMatch", user_ids, fingerprint_id=fingerprint_id, device_info=device_info)

    def score_ip_match(self, user_ids, ip_address: str):
        return self.apply("ipMatch", user_ids, ip_address=ip_address)

    def score_ip_browser_match(self, user_ids, ip_address: str, browser: str):
        return self.apply("ipBrowserMatch", user_ids, ip_address=ip_address, browser=browser)

    def score_timezone_language(self, user_ids, timezone: str, language: str):
        return self.apply("timezoneLanguage", user_ids, timezone=timezone, language=language)

    def score_payment_match(self, user_ids, provider: str, fingerprint: str):
        return self.apply("samePayment", user_ids, provider=provider, fingerprint=fingerprint)

    def score_rapid_creation(self, user_ids, time_window_minutes: float):
        return self.apply("rapidCreation", user_ids, time_window_minutes=time_window_minutes)

    def score_coordinated_entry(self, user_ids, competition_id: str, time_window_minutes: float):
        return self.apply(
            "coordinatedEntry", user_ids,
            competition_id=competition_id, time_window_minutes=time_window_minutes,
        )

    def score_trading_similarity(self, user_id_1: str, user_id_2: str, similarity_percent: float):
        return self.apply("tradingSimilarity", [user_id_1, user_id_2], similarity_percent=similarity_percent)

    def score_mirror_trading(self, user_id_1: str, user_id_2: str, match_rate: float):
        return self.apply("mirrorTrading", [user_id_1, user_id_2], match_rate=match_rate)

    def score_same_city(self, user_ids, city: str, distance_km: float):
        return self.apply("sameCity", user_ids, city=city, distance_km=distance_km)

    def score_device_switching(self, user_id: str, device_count: int, time_window_hours: float):
        return self.apply_single(
            "deviceSwitching", user_id, device_count=device_count, time_window_hours=time_window_hours
        )

    def score_brute_force(self, user_id: str, failed_attempts: int, ip_address: str, email: Optional[str] = None):
        return self.apply_single(
            "bruteForce", user_id, failed_attempts=failed_attempts, ip_address=ip_address, email=email
        )

    def score_rate_limit_exceeded(self, user_id: str, limit_type: str, attempts: int, ip_address: str):
        return self.apply_single(
            "rateLimitExceeded", user_id, limit_type=limit_type, attempts=attempts, ip_address=ip_address
        )
