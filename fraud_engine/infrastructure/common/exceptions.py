"""Infrastructure-specific exceptions with detailed error context."""

from typing import Any, Dict, Optional

from ...shared.exceptions import FraudEngineError


class InfrastructureError(FraudEngineError):
    """Base exception for infrastructure-related errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.correlation_id = correlation_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "correlation_id": self.correlation_id,
        }


class ConfigurationError(InfrastructureError):
    """Configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = str(config_value)

        super().__init__(
            message,
            error_code="CONFIG_ERROR",
            context=context,
            **kwargs,
        )


class DatabaseSessionError(InfrastructureError):
    """Database session errors."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            error_code="DB_SESSION_ERROR",
            **kwargs,
        )


class UnsupportedDialectError(InfrastructureError):
    """Raised when an atomic upsert is requested on a dialect without ON CONFLICT."""

    def __init__(self, dialect_name: str, **kwargs):
        super().__init__(
            f"Dialect '{dialect_name}' does not support INSERT ... ON CONFLICT",
            error_code="DB_UNSUPPORTED_DIALECT",
            context={"dialect": dialect_name},
            **kwargs,
        )


class TransientDatabaseError(DatabaseSessionError):
    """Database failure that is expected to succeed on retry (lock timeout, dropped connection)."""
    pass
