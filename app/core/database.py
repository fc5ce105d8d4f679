"""
Database connection and session management.

Provides the SQLAlchemy declarative base, engine construction with
connection pooling for PostgreSQL (and a SQLite mode for local
development and tests), session factories and health checks.
"""

import logging
from typing import Any, Dict

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import Settings

# Configure logging
logger = logging.getLogger(__name__)

# SQLAlchemy base class for models
Base = declarative_base()


def get_engine_options(config: Settings) -> Dict[str, Any]:
    """
    Build engine options for the configured database.

    Args:
        config: Application settings

    Returns:
        Dict: Keyword arguments for ``create_engine``
    """
    echo = config.log_level.upper() == "DEBUG"

    if config.database_url.startswith("sqlite"):
        options: Dict[str, Any] = {
            "connect_args": {"check_same_thread": False},
            "echo": echo,
        }
        if ":memory:" in config.database_url or config.database_url in ("sqlite://", "sqlite:///"):
            # One shared connection so every session sees the same in-memory database
            options["poolclass"] = StaticPool
        return options

    return {
        "pool_size": config.db_pool_size,
        "max_overflow": config.db_max_overflow,
        "pool_timeout": config.db_pool_timeout,
        "pool_recycle": config.db_pool_recycle,
        "pool_pre_ping": True,
        "echo": echo,
    }


def create_db_engine(config: Settings) -> Engine:
    """
    Create the SQLAlchemy engine for the configured database URL.

    Example:
        >>> engine = create_db_engine(Settings(database_url="sqlite://"))
    """
    engine = create_engine(config.database_url, **get_engine_options(config))

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            """Enable foreign keys and WAL for local SQLite databases."""
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    logger.info(f"Database engine created for dialect {engine.dialect.name}")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to an engine."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False  # Records are read after the session closes
    )


def init_database(engine: Engine) -> None:
    """
    Create all tables.

    Raises:
        SQLAlchemyError: If the schema cannot be created
    """
    # Import models to ensure they're registered
    from app.models.memory import MemoryRecord  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")


def check_database_connection(engine: Engine) -> bool:
    """
    Check if database connection is working.

    Returns:
        bool: True if connection is healthy, False otherwise
    """
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1")).fetchone()
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
