"""SQL runtime wiring for the durable orchestrator store."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from packages.hearth_shared.config import DatabaseSettings, HearthSettings
from packages.hearth_shared.logging import get_logger
from services.action.orchestrator.data.schema import metadata

logger = get_logger(__name__)


def create_store_engine(config: DatabaseSettings) -> Engine:
    """Build an engine for the configured URL.

    In-memory SQLite shares one connection across threads so every session
    sees the same database.
    """
    if config.url.startswith("sqlite") and (":memory:" in config.url or config.url.endswith("://")):
        return create_engine(
            config.url,
            echo=config.echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(config.url, echo=config.echo, pool_pre_ping=config.pool_pre_ping)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to the provided SQLAlchemy engine."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def transactional_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """Yield a session and enforce commit/rollback semantics."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@dataclass(frozen=True)
class OrchestratorSqlRuntime:
    """Engine and session factory for the durable store."""

    engine: Engine
    session_factory: sessionmaker[Session]

    @classmethod
    def from_settings(cls, settings: HearthSettings) -> "OrchestratorSqlRuntime":
        """Build the runtime from typed application settings."""
        return cls.from_database_settings(settings.database)

    @classmethod
    def from_database_settings(cls, config: DatabaseSettings) -> "OrchestratorSqlRuntime":
        engine = create_store_engine(config)
        runtime = cls(engine=engine, session_factory=create_session_factory(engine))
        if config.create_schema:
            runtime.create_schema()
        return runtime

    def create_schema(self) -> None:
        """Create any missing orchestrator tables."""
        metadata.create_all(self.engine)
        logger.info("Orchestrator schema ensured on %s", self.engine.url.render_as_string())

    def is_healthy(self) -> bool:
        """Return ``True`` when the backing database answers a trivial query."""
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("Orchestrator store health check failed", exc_info=True)
            return False
        return True
