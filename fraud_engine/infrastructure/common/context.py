"""Execution context management for correlation tracking."""

import contextvars
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel


class ExecutionContext(BaseModel):
    """Execution context for operation tracking."""

    correlation_id: str
    actor: Optional[str] = None
    timestamp: datetime
    operation_type: Optional[str] = None

    @classmethod
    def create_for_system(
        cls,
        operation_type: str,
        correlation_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> "ExecutionContext":
        """Create execution context for system operations."""
        return cls(
            correlation_id=correlation_id or f"system_{uuid4()}",
            actor=actor,
            timestamp=datetime.now(timezone.utc),
            operation_type=operation_type,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for logging."""
        return self.model_dump(exclude_none=True)


_execution_context: contextvars.ContextVar[Optional[ExecutionContext]] = contextvars.ContextVar(
    "execution_context", default=None
)


def set_execution_context(context: Optional[ExecutionContext]) -> contextvars.Token:
    """Set execution context for current operation."""
    return _execution_context.set(context)


def reset_execution_context(token: contextvars.Token) -> None:
    """Restore the execution context that was active before ``set_execution_context``."""
    _execution_context.reset(token)


def get_current_execution_context() -> Optional[ExecutionContext]:
    """Get current execution context."""
    return _execution_context.get()
