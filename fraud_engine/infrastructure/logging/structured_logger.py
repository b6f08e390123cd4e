"""Structured logging for fraud decisions.

Every record carries the active execution context, and payment fingerprints
and credentials are masked before rendering.
"""

import logging
import sys
from typing import Any, Dict, List, Optional

import structlog
from structlog.types import EventDict, FilteringBoundLogger, Processor

from ..config.settings import LoggingConfig
from ..common.context import get_current_execution_context

_logger: Optional[FilteringBoundLogger] = None

MASK = "***MASKED***"


class SensitiveDataMasker:
    """Masks configured keys anywhere in an event dict.

    Long values keep a short prefix so log lines about the same payment
    instrument can still be matched up.
    """

    visible_prefix = 6

    def __init__(self, sensitive_fields: List[str]):
        self.sensitive_fields = {f.lower() for f in sensitive_fields}

    def _mask(self, value: Any) -> str:
        if isinstance(value, str) and len(value) > self.visible_prefix * 2:
            return f"{value[:self.visible_prefix]}...{MASK}"
        return MASK

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {key: self._mask_item(key, value) for key, value in data.items()}

    def _mask_item(self, key: str, value: Any) -> Any:
        if key.lower() in self.sensitive_fields:
            return self._mask(value)
        if isinstance(value, dict):
            return self.mask_dict(value)
        if isinstance(value, list):
            return [self.mask_dict(v) if isinstance(v, dict) else v for v in value]
        return value


def add_execution_context(logger, method_name: str, event_dict: EventDict) -> EventDict:
    context = get_current_execution_context()
    if context is not None:
        event_dict["correlation_id"] = context.correlation_id
        event_dict["operation_type"] = context.operation_type
        if context.actor:
            event_dict.setdefault("actor", context.actor)
    return event_dict


def masking_processor(masker: SensitiveDataMasker) -> Processor:
    def mask_event(logger, method_name: str, event_dict: EventDict) -> EventDict:
        return masker.mask_dict(event_dict)
    return mask_event


def build_processors(config: LoggingConfig) -> List[Processor]:
    processors: List[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_execution_context,
        masking_processor(SensitiveDataMasker(config.sensitive_fields)),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if config.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    return processors


def configure_logging(config: Optional[LoggingConfig] = None) -> FilteringBoundLogger:
    """Configure structlog on top of stdlib logging once per process."""
    global _logger

    if _logger is not None:
        return _logger

    config = config or LoggingConfig()
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, config.level))
    structlog.configure(
        processors=build_processors(config),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    _logger = structlog.get_logger("fraud_engine")
    _logger.info("Fraud engine logging configured", level=config.level, format=config.format)
    return _logger


def get_logger(name: Optional[str] = None) -> FilteringBoundLogger:
    """Return the configured logger, or structlog's default before configuration."""
    logger = _logger if _logger is not None else structlog.get_logger()
    return logger.bind(logger_name=name) if name else logger


class FraudEventLogger:
    """Score changes and enforcement decisions, tagged ``event_category=fraud``."""

    def __init__(self, logger: FilteringBoundLogger):
        self.logger = logger.bind(event_category="fraud")

    def log_score_change(
        self,
        user_id: str,
        method: str,
        old_score: float,
        new_score: float,
        new_level: str,
    ) -> None:
        self.logger.info(
            "Suspicion score changed",
            user_id=user_id,
            method=method,
            old_score=old_score,
            new_score=new_score,
            risk_level=new_level,
        )

    def log_enforcement(
        self,
        user_id: str,
        outcome: str,
        score: float,
        threshold: float,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        # Restrictions go out at warning so they surface in default alerting
        log = self.logger.warning if outcome == "restricted" else self.logger.info
        log(
            "Auto-enforcement decision",
            user_id=user_id,
            outcome=outcome,
            score=score,
            threshold=threshold,
            details=details or {},
        )


def get_fraud_event_logger() -> FraudEventLogger:
    return FraudEventLogger(get_logger("fraud"))
