import logging
import time

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, DBAPIError
from sqlalchemy.orm import declarative_base, sessionmaker

from waitlist.core.config import settings
from waitlist.core.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

# SQLite-specific configuration
if settings.DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        settings.DATABASE_URL,
        connect_args={"check_same_thread": False}  # Allow SQLite to work with FastAPI
    )

    # Apply performance PRAGMAs per connection
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.close()
else:
    # Postgres: bounded pool, callers wait up to DB_POOL_TIMEOUT for a connection
    engine = create_engine(
        settings.DATABASE_URL,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        connect_args={"connect_timeout": settings.DB_RECONNECT_INTERVAL},
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def connect_with_retry(
    bind: Engine = engine,
    tries: int = settings.DB_RECONNECT_TRIES,
    interval: float = settings.DB_RECONNECT_INTERVAL,
) -> bool:
    """Check the database is reachable, retrying a bounded number of times.

    Only used at startup; store operations never retry on their own.
    Raises StorageUnavailableError once every attempt has failed.
    """
    attempts_left = tries
    while True:
        try:
            with bind.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Successfully connected to the database")
            return True
        except (OperationalError, DBAPIError) as e:
            logger.error(f"Failed to connect to database (attempts remaining: {attempts_left}): {e}")
            if attempts_left <= 0:
                raise StorageUnavailableError("Database unreachable", details=str(e)) from e
            attempts_left -= 1
            time.sleep(interval)
