"""Database engine and session factory used across the application."""

from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import Engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine

from src.authsync.runtime.config.config_data import ConfigData
from src.authsync.runtime.context import get_config


def enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy own transaction boundaries on pysqlite connections.

    The driver's implicit BEGIN handling breaks SAVEPOINT, which the identity
    reconciler relies on for its retry-on-conflict path.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_tables(engine: Engine) -> None:
    """Create every table registered by the entity packages."""
    import src.authsync.entities  # noqa: F401  registers tables with the metadata

    SQLModel.metadata.create_all(engine)


class DbSessionService:
    def __init__(self, engine: Engine | None = None):
        """Initialize the shared database engine, or adopt ``engine`` when given."""
        main_config = get_config()
        self._engine = engine or self._create_engine(main_config)

    @staticmethod
    def _create_engine(main_config: ConfigData) -> Engine:
        db_config = main_config.database
        logger.info(
            "Configuring database engine for environment: {}",
            main_config.app.environment,
        )

        engine_kwargs: dict = {
            "echo": db_config.echo,
            "pool_pre_ping": True,
        }
        if db_config.is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 20}
            if main_config.app.is_production:
                logger.warning(
                    "SQLite is not recommended for production use. "
                    "Consider PostgreSQL for better performance and reliability."
                )
        else:
            engine_kwargs.update(
                {
                    "pool_size": db_config.pool_size,
                    "max_overflow": db_config.max_overflow,
                    "pool_timeout": db_config.pool_timeout,
                    "pool_recycle": db_config.pool_recycle,
                    "connect_args": {
                        "application_name": f"authsync_{main_config.app.environment}",
                        "connect_timeout": 30,
                    },
                }
            )

        engine = create_engine(db_config.url, **engine_kwargs)
        if db_config.is_sqlite:
            enable_sqlite_savepoints(engine)
        return engine

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_all(self) -> None:
        create_tables(self._engine)
        logger.info("Database initialized with tables.")

    def get_session(self) -> Session:
        """Return a new SQLModel session bound to the shared engine."""
        return Session(self._engine, expire_on_commit=False)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Yield a session that is closed afterwards; commits are left to the caller."""
        db = self.get_session()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                "Database operation failed: {}: {}", type(e).__name__, e
            )
            raise
        finally:
            db.close()

    def health_check(self) -> bool:
        """Perform a health check on the database connection."""
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
                return True
        except SQLAlchemyError as e:
            logger.error("Database health check failed: {}", e)
            return False
