"""Shared plumbing for fraud application services."""

from ....infrastructure.common.decorators import with_retry
from ....infrastructure.common.exceptions import TransientDatabaseError
from ....infrastructure.config.settings import FraudEngineConfig
from ....infrastructure.database.session import DatabaseSessionManager

# Each retried unit of work is one transaction, so a replay never double-applies.
retry_transient_writes = with_retry(
    max_attempts=lambda self: self.config.write_retry_attempts,
    backoff_factor=lambda self: self.config.write_retry_backoff_seconds,
    exceptions=(TransientDatabaseError,),
)


class FraudService:
    def __init__(self, db: DatabaseSessionManager, config: FraudEngineConfig):
        self.db = db
        self.config = config
