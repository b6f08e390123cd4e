"""
Audit Gap Queue

A fraud write that still fails after retries (evidence, alert, history entry,
deferred enforcement) is parked here instead of being dropped. Replays run the
same unit of work again; entries that keep failing move to a dead-letter list.
"""

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

import structlog

from ....shared.exceptions import FraudEngineError
from ..infrastructure.models import utcnow

logger = structlog.get_logger(__name__)


@dataclass
class AuditGap:
    operation: str
    func: Callable
    args: Tuple = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 1
    last_error: Optional[str] = None
    first_failed_at: datetime = field(default_factory=utcnow)
    correlation_id: Optional[str] = None


@dataclass
class ReplayReport:
    succeeded: int = 0
    failed: int = 0
    dead_lettered: int = 0


class AuditGapQueue:
    """Thread-safe in-process queue of failed fraud writes."""

    def __init__(self, max_attempts: int = 5):
        self.max_attempts = max_attempts
        self._pending: Deque[AuditGap] = deque()
        self._dead_letters: List[AuditGap] = []
        self._lock = threading.Lock()

    def enqueue(
        self,
        operation: str,
        func: Callable,
        *args,
        error: Optional[BaseException] = None,
        correlation_id: Optional[str] = None,
        **kwargs,
    ) -> AuditGap:
        gap = AuditGap(
            operation=operation,
            func=func,
            args=args,
            kwargs=kwargs,
            last_error=str(error) if error else None,
            correlation_id=correlation_id,
        )
        with self._lock:
            self._pending.append(gap)

        logger.error(
            "Fraud write failed; queued as audit gap",
            operation=operation,
            error=gap.last_error,
            pending=len(self._pending),
        )
        return gap

    def pending(self) -> List[AuditGap]:
        with self._lock:
            return list(self._pending)

    def dead_letters(self) -> List[AuditGap]:
        with self._lock:
            return list(self._dead_letters)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def replay(self) -> ReplayReport:
        """Run every pending entry once."""
        with self._lock:
            batch = list(self._pending)
            self._pending.clear()

        report = ReplayReport()
        for gap in batch:
            try:
                gap.func(*gap.args, **gap.kwargs)
            except FraudEngineError as e:
                gap.attempts += 1
                gap.last_error = str(e)
                if gap.attempts >= self.max_attempts:
                    report.dead_lettered += 1
                    with self._lock:
                        self._dead_letters.append(gap)
                    logger.critical(
                        "Audit gap abandoned after repeated failures",
                        operation=gap.operation,
                        attempts=gap.attempts,
                        first_failed_at=gap.first_failed_at.isoformat(),
                        correlation_id=gap.correlation_id,
                        error=gap.last_error,
                    )
                else:
                    report.failed += 1
                    with self._lock:
                        self._pending.append(gap)
            else:
                report.succeeded += 1
                logger.info("Audit gap replayed", operation=gap.operation, attempts=gap.attempts)

        return report
