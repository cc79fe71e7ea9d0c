"""Database connection module.

Provides the SQLAlchemy declarative base, an engine built from
`DATABASE_URL` with connection pooling, and session helpers for scripts and
FastAPI dependency injection.
"""

import logging
from typing import Generator

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_database_engine(
    connection_string: str | None = None,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
) -> Engine:
    """Create SQLAlchemy engine for the sample and rollup tables.

    Args:
        connection_string: Database URL (read from DATABASE_URL if None)
        pool_size: Number of connections to maintain in pool
        max_overflow: Maximum overflow connections beyond pool_size
        pool_pre_ping: Test connections before use to detect stale connections

    Returns:
        Configured SQLAlchemy engine

    Example:
        engine = create_database_engine('postgresql+psycopg://user:pw@host/db')
    """
    if connection_string is None:
        from channeldata.lib.config import load_settings

        connection_string = load_settings().database_url

    if connection_string.startswith('sqlite'):
        # SQLite pools are chosen by the dialect
        return create_engine(connection_string, echo=False)

    return create_engine(
        connection_string,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_recycle=3600,  # Recycle connections after 1 hour
        echo=False  # Set to True for SQL query logging (debugging)
    )


# Global engine instance (lazy-initialized)
_engine: Engine | None = None


def get_engine() -> Engine:
    """Get or create global engine instance.

    Returns:
        Global SQLAlchemy engine instance
    """
    global _engine
    if _engine is None:
        _engine = create_database_engine()
    return _engine


def reset_engine() -> None:
    """Dispose the global engine (tests, reconfiguration)."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


def create_schema(engine: Engine | None = None) -> None:
    """Create the samples and rollups tables if they do not exist."""
    from channeldata import models  # noqa: F401  (registers tables)

    Base.metadata.create_all(engine or get_engine())


def get_session_factory(engine: Engine | None = None) -> sessionmaker:
    """Get session factory for ORM operations.

    Usage:
        SessionFactory = get_session_factory()
        with SessionFactory() as session:
            rows = session.query(Sample).filter_by(channel_id=1).count()
    """
    return sessionmaker(autocommit=False, autoflush=False, bind=engine or get_engine())


def get_db_session() -> Generator[Session, None, None]:
    """Get database session for dependency injection.

    Yields:
        Database session

    Usage (FastAPI):
        @router.get("/data/{channel_id}")
        async def get_data(db: Session = Depends(get_db_session)):
            ...
    """
    SessionFactory = get_session_factory()
    session = SessionFactory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def check_connection(engine: Engine | None = None) -> bool:
    """Test database connection.

    Args:
        engine: Engine to test (global engine if None)

    Returns:
        True if connection successful, False otherwise
    """
    try:
        with (engine or get_engine()).connect() as conn:
            conn.execute(text('SELECT 1'))
        return True
    except Exception as e:
        logger.warning(f"Database connection test failed: {e}")
        return False
