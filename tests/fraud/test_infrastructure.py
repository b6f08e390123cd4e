"""
Tests for infrastructure helpers: sessions, retries, configuration and log masking.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import text

from fraud_engine.domains.fraud.infrastructure.models import Base, SuspicionScore, utcnow
from fraud_engine.infrastructure.common.context import (
    ExecutionContext,
    get_current_execution_context,
)
from fraud_engine.infrastructure.common.decorators import with_execution_context, with_retry
from fraud_engine.infrastructure.common.exceptions import (
    ConfigurationError,
    DatabaseSessionError,
    TransientDatabaseError,
)
from fraud_engine.infrastructure.config.settings import (
    DatabaseConfig,
    FraudEngineConfig,
    LoggingConfig,
)
from fraud_engine.infrastructure.database.session import DatabaseSessionManager, insert_ignore
from fraud_engine.infrastructure.logging.structured_logger import SensitiveDataMasker, masking_processor


@pytest.fixture
def db(tmp_path):
    manager = DatabaseSessionManager(f"sqlite:///{tmp_path / 'infra.db'}")
    manager.create_all(Base)
    yield manager
    manager.dispose()


def _score_row(user_id="u1"):
    return {
        "user_id": user_id,
        "total_score": 0.0,
        "raw_score": 0.0,
        "risk_level": "low",
        "generation": 0,
        "last_updated": utcnow(),
    }


@pytest.mark.integration
class TestDatabaseSession:
    def test_insert_ignore_reports_conflicts(self, db):
        with db.session_scope() as session:
            assert insert_ignore(session, SuspicionScore, _score_row()) == 1
            assert insert_ignore(session, SuspicionScore, _score_row()) == 0

    def test_commit_on_success(self, db):
        with db.session_scope() as session:
            insert_ignore(session, SuspicionScore, _score_row())

        with db.session_scope() as session:
            assert session.get(SuspicionScore, "u1") is not None

    def test_rollback_on_error(self, db):
        with pytest.raises(RuntimeError):
            with db.session_scope() as session:
                insert_ignore(session, SuspicionScore, _score_row())
                raise RuntimeError("boom")

        with db.session_scope() as session:
            assert session.get(SuspicionScore, "u1") is None

    def test_operational_errors_are_transient(self, db):
        with pytest.raises(TransientDatabaseError):
            with db.session_scope() as session:
                session.execute(text("SELECT * FROM no_such_table"))

    def test_integrity_errors_are_not_transient(self, db):
        with pytest.raises(DatabaseSessionError) as exc_info:
            with db.session_scope() as session:
                insert_ignore(session, SuspicionScore, _score_row())
            with db.session_scope() as session:
                session.add(SuspicionScore(**_score_row()))
                session.flush()

        assert not isinstance(exc_info.value, TransientDatabaseError)

    def test_bad_driver_is_configuration_error(self, tmp_path):
        manager = DatabaseSessionManager(f"sqlite+nosuchdriver:///{tmp_path / 'x.db'}")

        with pytest.raises(ConfigurationError):
            manager.initialize()


@pytest.mark.unit
class TestDecorators:
    def test_retry_until_success(self):
        calls = []

        @with_retry(max_attempts=3, backoff_factor=0, exceptions=(TransientDatabaseError,))
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise TransientDatabaseError("locked")
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3

    def test_retry_gives_up(self):
        calls = []

        @with_retry(max_attempts=2, backoff_factor=0, exceptions=(TransientDatabaseError,))
        def always_fails():
            calls.append(1)
            raise TransientDatabaseError("locked")

        with pytest.raises(TransientDatabaseError):
            always_fails()
        assert len(calls) == 2

    def test_other_errors_are_not_retried(self):
        calls = []

        @with_retry(max_attempts=3, backoff_factor=0, exceptions=(TransientDatabaseError,))
        def broken():
            calls.append(1)
            raise DatabaseSessionError("constraint")

        with pytest.raises(DatabaseSessionError):
            broken()
        assert len(calls) == 1

    def test_attempts_read_from_instance(self):
        class Service:
            attempts = 4
            calls = 0

            @with_retry(max_attempts=lambda self: self.attempts, backoff_factor=0, exceptions=(ValueError,))
            def run(self):
                self.calls += 1
                raise ValueError("nope")

        service = Service()
        with pytest.raises(ValueError):
            service.run()
        assert service.calls == 4

    def test_execution_context_is_scoped(self):
        seen = []

        @with_execution_context("nightly_job")
        def job():
            seen.append(get_current_execution_context())

        job()

        assert seen[0].operation_type == "nightly_job"
        assert seen[0].correlation_id.startswith("system_")
        assert get_current_execution_context() is None

    def test_context_serialization(self):
        context = ExecutionContext.create_for_system(operation_type="replay")

        assert context.to_dict()["operation_type"] == "replay"


@pytest.mark.unit
class TestConfiguration:
    def test_rejects_unsupported_dialect(self):
        with pytest.raises(PydanticValidationError):
            DatabaseConfig(url="mysql://localhost/fraud")

    def test_log_level_normalised(self):
        assert LoggingConfig(level="debug").level == "DEBUG"
        with pytest.raises(PydanticValidationError):
            LoggingConfig(level="verbose")
        with pytest.raises(PydanticValidationError):
            LoggingConfig(format="xml")

    def test_fraud_bounds(self):
        with pytest.raises(PydanticValidationError):
            FraudEngineConfig(default_auto_suspend_threshold=150)

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("FRAUD_AUTO_SUSPENSION_DAYS", "14")

        assert FraudEngineConfig().auto_suspension_days == 14


@pytest.mark.unit
class TestSensitiveDataMasker:
    def test_masks_fingerprint_hash_keeping_prefix(self):
        masker = SensitiveDataMasker(LoggingConfig().sensitive_fields)

        masked = masker.mask_dict({"fingerprint_hash": "pm_fp_7c1e9a0b3d5f", "user_id": "u1"})

        assert masked["fingerprint_hash"] == "pm_fp_...***MASKED***"
        assert masked["user_id"] == "u1"

    def test_masks_nested_and_short_values(self):
        masker = SensitiveDataMasker(["token"])

        masked = masker.mask_dict({"details": {"token": "abc"}, "items": [{"TOKEN": "x"}]})

        assert masked["details"]["token"] == "***MASKED***"
        assert masked["items"][0]["TOKEN"] == "***MASKED***"

    def test_processor_masks_event_and_keeps_message(self):
        mask_event = masking_processor(SensitiveDataMasker(LoggingConfig().sensitive_fields))

        event = mask_event(None, "info", {
            "event": "Shared payment method detected",
            "payment_fingerprint": "pm_fp_7c1e9a0b3d5f",
            "details": {"api_key": "k1"},
        })

        assert event["event"] == "Shared payment method detected"
        assert event["payment_fingerprint"] == "pm_fp_...***MASKED***"
        assert event["details"]["api_key"] == "***MASKED***"
