"""Fraud policy settings: loaded fresh for every enforcement decision."""

from typing import Optional

import structlog

from ....shared.exceptions import FraudEngineError, ValidationError
from ..domain.value_objects import FraudPolicySettings
from ..infrastructure.repositories import FraudPolicyRepository
from .base import FraudService, retry_transient_writes

logger = structlog.get_logger(__name__)


class FraudPolicyProvider(FraudService):
    """Reads and updates the singleton policy row.

    Safe by default: a missing row is created disabled, and a row that cannot
    be read yields a disabled fallback instead of an error.
    """

    def load(self) -> FraudPolicySettings:
        try:
            return self._load_or_create()
        except FraudEngineError as e:
            logger.warning(
                "Fraud policy settings unavailable; auto-suspension disabled",
                error=str(e),
            )
            return FraudPolicySettings(
                auto_suspend_enabled=False,
                auto_suspend_threshold=self.config.default_auto_suspend_threshold,
                source="fallback",
            )

    @retry_transient_writes
    def _load_or_create(self) -> FraudPolicySettings:
        with self.db.session_scope() as session:
            repo = FraudPolicyRepository(session)
            record = repo.get()
            if record is None:
                repo.insert_defaults(self.config.default_auto_suspend_threshold)
                logger.info(
                    "Fraud policy settings created with defaults",
                    auto_suspend_threshold=self.config.default_auto_suspend_threshold,
                )
                return FraudPolicySettings(
                    auto_suspend_enabled=False,
                    auto_suspend_threshold=self.config.default_auto_suspend_threshold,
                    source="defaults",
                )
            return FraudPolicySettings(
                auto_suspend_enabled=record.auto_suspend_enabled,
                auto_suspend_threshold=record.auto_suspend_threshold,
                source="stored",
                updated_by=record.updated_by,
                updated_at=record.updated_at,
            )

    def update(
        self,
        auto_suspend_enabled: Optional[bool] = None,
        auto_suspend_threshold: Optional[float] = None,
        updated_by: Optional[str] = None,
    ) -> FraudPolicySettings:
        """Admin update of the policy row; unspecified fields keep their value."""
        if auto_suspend_threshold is not None and not (0 <= auto_suspend_threshold <= 100):
            raise ValidationError(
                f"Auto-suspend threshold must be between 0-100, got {auto_suspend_threshold}"
            )

        values = {"updated_by": updated_by}
        if auto_suspend_enabled is not None:
            values["auto_suspend_enabled"] = auto_suspend_enabled
        if auto_suspend_threshold is not None:
            values["auto_suspend_threshold"] = float(auto_suspend_threshold)

        self._write(values)
        logger.info(
            "Fraud policy settings updated",
            auto_suspend_enabled=auto_suspend_enabled,
            auto_suspend_threshold=auto_suspend_threshold,
            updated_by=updated_by,
        )
        return self._load_or_create()

    @retry_transient_writes
    def _write(self, values: dict) -> None:
        with self.db.session_scope() as session:
            repo = FraudPolicyRepository(session)
            repo.insert_defaults(self.config.default_auto_suspend_threshold)
            repo.update(**values)
