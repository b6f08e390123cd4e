"""
Shared test fixtures and configuration for the fraud engine test suite.
"""

import pytest

from fraud_engine.domains.fraud.application.engine import FraudEngine
from fraud_engine.domains.fraud.domain.value_objects import ScoreUpdate
from fraud_engine.infrastructure.config.settings import (
    DatabaseConfig,
    FraudEngineConfig,
    LoggingConfig,
    Settings,
)


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a throwaway SQLite file, with retries that do not sleep."""
    return Settings(
        database=DatabaseConfig(url=f"sqlite:///{tmp_path / 'fraud.db'}"),
        logging=LoggingConfig(level="WARNING", format="console"),
        fraud=FraudEngineConfig(write_retry_backoff_seconds=0, audit_gap_max_attempts=3),
    )


@pytest.fixture
def engine(settings):
    """Fully wired fraud engine with a fresh schema."""
    fraud_engine = FraudEngine(settings=settings)
    fraud_engine.create_schema()
    yield fraud_engine
    fraud_engine.close()


@pytest.fixture
def enable_auto_suspend(engine):
    """Turn on auto-suspension at the given threshold."""
    def _enable(threshold: float = 50):
        return engine.policy.update(
            auto_suspend_enabled=True,
            auto_suspend_threshold=threshold,
            updated_by="admin-1",
        )
    return _enable


@pytest.fixture
def make_update():
    """Build a score contribution."""
    def _make(method: str = "deviceMatch", percentage: float = 40, evidence: str = "test evidence", **kwargs):
        return ScoreUpdate(method=method, percentage=percentage, evidence=evidence, **kwargs)
    return _make


# Custom pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
