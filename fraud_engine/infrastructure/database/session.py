"""Database engine and session management with transactional scopes."""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Type, Union

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import ArgumentError, DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from ..config.settings import DatabaseConfig
from ..common.context import get_current_execution_context
from ..common.exceptions import (
    ConfigurationError,
    DatabaseSessionError,
    TransientDatabaseError,
    UnsupportedDialectError,
)

logger = structlog.get_logger(__name__)


class DatabaseSessionManager:
    """Owns the engine and hands out transactional sessions."""

    def __init__(self, config: Union[DatabaseConfig, str, None] = None):
        if isinstance(config, str):
            config = DatabaseConfig(url=config)
        self.config = config or DatabaseConfig()
        self.engine: Optional[Engine] = None
        self.session_factory: Optional[sessionmaker] = None

    def initialize(self) -> None:
        """Create the engine and session factory."""
        if self.engine is not None:
            return

        connect_args: Dict[str, Any] = {}
        if self.config.url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": 30}

        try:
            self.engine = create_engine(
                self.config.url,
                echo=self.config.echo,
                pool_pre_ping=self.config.pool_pre_ping,
                connect_args=connect_args,
            )
        except (ArgumentError, ImportError) as e:
            raise ConfigurationError(
                f"Cannot create database engine: {e}",
                config_key="FRAUD_DB_URL",
                config_value=self.config.url.split(":")[0],
            ) from e

        if self.engine.dialect.name == "sqlite":
            _install_sqlite_locking(self.engine)

        self.session_factory = sessionmaker(
            bind=self.engine,
            expire_on_commit=False,  # Keep objects accessible after commit
            autoflush=True,
        )

        logger.info("Database session factory initialized", dialect=self.engine.dialect.name)

    def create_all(self, base: Type[DeclarativeBase]) -> None:
        """Create all tables registered on the declarative base."""
        self.initialize()
        base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self.session_factory = None

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Run a unit of work: commit on success, roll back on any failure."""
        if self.session_factory is None:
            self.initialize()

        context = get_current_execution_context()
        correlation_id = context.correlation_id if context else None

        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(
                "Database session error, rolled back",
                correlation_id=correlation_id,
                error=str(e),
            )
            if _is_transient(e):
                raise TransientDatabaseError(
                    f"Transient database failure: {e}", correlation_id=correlation_id
                ) from e
            raise DatabaseSessionError(
                f"Database session failed: {e}", correlation_id=correlation_id
            ) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def _is_transient(error: SQLAlchemyError) -> bool:
    if isinstance(error, OperationalError):
        return True
    return isinstance(error, DBAPIError) and error.connection_invalidated


def _install_sqlite_locking(engine: Engine) -> None:
    """Take the SQLite write lock at BEGIN so read-then-write units never deadlock on upgrade."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def insert_ignore(session: Session, model: type, values: Dict[str, Any]) -> int:
    """INSERT ... ON CONFLICT DO NOTHING; returns 1 when a row was written, 0 on conflict.

    Any unique constraint or unique index (partial ones included) counts as a conflict.
    """
    dialect = session.get_bind().dialect.name
    table = getattr(model, "__table__", model)
    if dialect == "postgresql":
        stmt = postgresql.insert(table).values(**values)
    elif dialect == "sqlite":
        stmt = sqlite.insert(table).values(**values)
    else:
        raise UnsupportedDialectError(dialect)

    result = session.execute(stmt.on_conflict_do_nothing())
    return result.rowcount or 0
