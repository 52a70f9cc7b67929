# schoolpay/core/db.py - Engine and session factory for the ledger database
from sqlalchemy import create_engine, text, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool, QueuePool
from typing import Generator, Optional
import logging
import threading
import time

from schoolpay.core.config import settings

logger = logging.getLogger(__name__)

SLOW_QUERY_SECONDS = 0.1


class DatabaseManager:
    """
    Lazily builds one engine per process.

    SQLite (tests, local runs) shares a single connection through StaticPool so
    an in-memory database survives across sessions; PostgreSQL gets a QueuePool
    sized from the DATABASE_POOL_* settings.
    """

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.DATABASE_URL
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None
        self._ready = threading.Event()
        self._lock = threading.Lock()

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    def initialize(self) -> None:
        if self._ready.is_set():
            return

        with self._lock:
            if self._ready.is_set():
                return

            self.engine = self._build_engine()
            self._install_listeners(self.engine)
            # Ledger objects stay readable after commit; handlers build responses from them
            self.SessionLocal = sessionmaker(
                bind=self.engine,
                autoflush=False,
                expire_on_commit=False,
            )

            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))

            self._ready.set()
            logger.info(f"Database ready ({self.engine.dialect.name})")

    def _build_engine(self) -> Engine:
        if self.is_sqlite:
            return create_engine(
                self.url,
                echo=settings.DATABASE_ECHO,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False, "timeout": 30},
            )

        return create_engine(
            self.url,
            echo=settings.DATABASE_ECHO,
            poolclass=QueuePool,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_timeout=settings.DATABASE_POOL_TIMEOUT,
            pool_recycle=settings.DATABASE_POOL_RECYCLE,
            pool_pre_ping=True,
            connect_args={
                "connect_timeout": 10,
                "application_name": f"schoolpay_{settings.ENV}",
                "options": "-c timezone=UTC",
            },
        )

    def _install_listeners(self, engine: Engine) -> None:
        if self.is_sqlite:
            @event.listens_for(engine, "connect")
            def enforce_foreign_keys(dbapi_connection, connection_record):
                # Cascades from auth_users and the FK checks on specialties depend on this
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        if settings.is_development:
            @event.listens_for(engine, "before_cursor_execute")
            def start_timer(conn, cursor, statement, parameters, context, executemany):
                context._schoolpay_started = time.perf_counter()

            @event.listens_for(engine, "after_cursor_execute")
            def report_slow_query(conn, cursor, statement, parameters, context, executemany):
                elapsed = time.perf_counter() - getattr(context, "_schoolpay_started", time.perf_counter())
                if elapsed > SLOW_QUERY_SECONDS:
                    logger.warning(f"Slow query ({elapsed:.3f}s): {statement[:100]}...")

    def get_session(self) -> Generator[Session, None, None]:
        self.initialize()

        session = self.SessionLocal()
        try:
            yield session
        except Exception as e:
            session.rollback()
            logger.error(f"Session rolled back: {e}")
            raise
        finally:
            session.close()

    def health_check(self) -> dict:
        started = time.perf_counter()
        try:
            self.initialize()
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {"status": "unhealthy", "error": str(e)}

        return {
            "status": "healthy",
            "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
        }

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            logger.info("Database connections closed")


db_manager = DatabaseManager()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one session per request"""
    yield from db_manager.get_session()


def get_engine() -> Engine:
    db_manager.initialize()
    return db_manager.engine


def get_session_maker() -> sessionmaker:
    db_manager.initialize()
    return db_manager.SessionLocal


def health_check() -> dict:
    return db_manager.health_check()


__all__ = [
    "DatabaseManager",
    "db_manager",
    "get_db",
    "get_engine",
    "get_session_maker",
    "health_check",
]
