"""Database connection, session management and failure classification."""
import enum
import logging
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import NoResultFound

from config import DATABASE_URL, DB_LOCK_TIMEOUT_MS, DB_MAX_OVERFLOW, DB_POOL_SIZE
from models import Base

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATEs raised when concurrent transactions collide:
# serialization_failure, deadlock_detected, lock_not_available (lock_timeout)
CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}
SQLITE_CONFLICT_ERRORS = {"SQLITE_BUSY", "SQLITE_LOCKED"}


class FailureKind(str, enum.Enum):
    """Closed set of store failures the order core is allowed to react to.

    Only CONFLICT changes the core's behaviour (see concurrency_guard).
    NOT_FOUND exists to keep the set complete for callers that use
    Query.one(); the order core looks rows up with one_or_none() and
    raises errors.NotFound itself, so it never receives this kind.
    """
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    OTHER = "other"


def classify_failure(exc: BaseException) -> FailureKind:
    """
    Map a persistence-layer exception onto a FailureKind.

    Driver error codes are interpreted here and nowhere else.

    Args:
        exc: Exception raised by SQLAlchemy or the DBAPI driver

    Returns:
        CONFLICT for serialization failures, deadlocks and lock-wait
        timeouts, NOT_FOUND for missing rows, OTHER for everything else
    """
    if isinstance(exc, NoResultFound):
        return FailureKind.NOT_FOUND

    if isinstance(exc, DBAPIError):
        orig = exc.orig
        sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if sqlstate in CONFLICT_SQLSTATES:
            return FailureKind.CONFLICT

        if getattr(orig, "sqlite_errorname", None) in SQLITE_CONFLICT_ERRORS:
            return FailureKind.CONFLICT
        if "database is locked" in str(orig).lower():
            return FailureKind.CONFLICT

    return FailureKind.OTHER


def _use_immediate_transactions(engine: Engine) -> None:
    """Make every SQLite transaction take the write lock up front."""

    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        # pysqlite would otherwise emit its own deferred BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(
    url: str = DATABASE_URL,
    lock_timeout_ms: int = DB_LOCK_TIMEOUT_MS
) -> Engine:
    """
    Create an engine whose transactions run serializably.

    PostgreSQL gets SERIALIZABLE isolation plus a server-side lock_timeout.
    SQLite only ever has one writer, so transactions are opened with
    BEGIN IMMEDIATE and the driver busy timeout bounds the lock wait.

    Args:
        url: SQLAlchemy database URL
        lock_timeout_ms: Longest wait for a contended lock

    Returns:
        Configured engine
    """
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={
                "check_same_thread": False,
                "timeout": lock_timeout_ms / 1000,
            },
            pool_pre_ping=True,
        )
        _use_immediate_transactions(engine)
        return engine

    return create_engine(
        url,
        isolation_level="SERIALIZABLE",
        connect_args={"options": f"-c lock_timeout={lock_timeout_ms}"},
        pool_size=DB_POOL_SIZE,
        max_overflow=DB_MAX_OVERFLOW,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=3600,  # Recycle connections after 1 hour
        pool_timeout=30,  # Wait max 30 seconds for a connection
    )


engine = build_engine()

# Objects stay usable after commit; services return them to the caller
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session.

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create database tables."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready", extra={"dialect": engine.dialect.name})
