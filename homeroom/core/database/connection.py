"""
Database connection and session management.
"""
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import OperationalError, DBAPIError
from contextlib import contextmanager
from typing import Generator, Optional
import logging
import time

from homeroom.core.config import get_settings

logger = logging.getLogger(__name__)

engine = None
SessionLocal = None


def _normalize_url(url: str) -> str:
    # Some hosts still hand out postgres:// URLs
    if url.startswith('postgres://'):
        return url.replace('postgres://', 'postgresql://', 1)
    return url


def enable_sqlite_savepoints(sqlite_engine: Engine) -> Engine:
    """
    Make pysqlite honour SAVEPOINT so per-item `begin_nested()` works.

    The driver's own transaction handling is switched off and BEGIN is
    emitted by SQLAlchemy instead.
    """
    @event.listens_for(sqlite_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    return sqlite_engine


def init_db(database_url: Optional[str] = None, max_retries: int = 3, retry_delay: float = 1.0):
    """
    Initialize the database engine and session factory with retry logic.
    Call this once at application startup.

    Args:
        database_url: Connection URL (defaults to DATABASE_URL setting)
        max_retries: Number of connection attempts
        retry_delay: Seconds to wait between retries

    Raises:
        RuntimeError: If no URL is configured or connection fails after all retries
    """
    global engine, SessionLocal

    settings = get_settings()
    url = _normalize_url(database_url or settings.database_url)
    if not url:
        raise RuntimeError("DATABASE_URL not set")

    engine_kwargs = {"pool_pre_ping": True, "echo": False}
    if url.startswith('postgresql'):
        engine_kwargs.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_recycle=3600,
            connect_args={'connect_timeout': 10},
        )

    for attempt in range(max_retries):
        try:
            engine = create_engine(url, **engine_kwargs)
            if url.startswith('sqlite'):
                enable_sqlite_savepoints(engine)

            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))

            SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

            logger.info(f"Database initialized: {url.split('@')[1] if '@' in url else 'local'}")
            return

        except (OperationalError, DBAPIError) as e:
            logger.warning(f"Database connection attempt {attempt + 1}/{max_retries} failed: {e}")
            if attempt < max_retries - 1:
                time.sleep(retry_delay * (attempt + 1))
            else:
                logger.error(f"Database initialization failed after {max_retries} attempts")
                raise RuntimeError(f"Failed to connect to database: {e}") from e


def get_session_factory() -> sessionmaker:
    """Return the configured session factory (for components that open their own sessions)."""
    if not SessionLocal:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    Get a database session.

    Usage:
        from homeroom.core.database import get_db

        db = next(get_db())
    """
    if not SessionLocal:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    db = SessionLocal()
    try:
        yield db
    except (OperationalError, DBAPIError) as e:
        logger.error(f"Database session error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Transactional scope: commit on success, rollback on any error.

    Args:
        factory: Session factory to use (defaults to the global one)
    """
    factory = factory or get_session_factory()
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def create_tables():
    """
    Create all tables in the database.
    Only use for initial setup and local development.
    """
    if not engine:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    from .models import Base
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
