import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Sequence

import psycopg2
import psycopg2.extras
from psycopg2.extensions import make_dsn
from psycopg2.pool import PoolError, ThreadedConnectionPool

from src.api.config import Settings, get_settings

logger = logging.getLogger(__name__)

POOL_MIN_CONNECTIONS = 1
POOL_MAX_CONNECTIONS = 10


class DatabaseError(RuntimeError):
    """Database work for a request failed in a way the handler should report."""


class DatabaseUnavailableError(DatabaseError):
    """No connection could be obtained (pool exhausted or server unreachable)."""


class RejectedInputError(DatabaseError):
    """The driver refused to bind a parameter (e.g. a string containing NUL)."""


def _build_dsn(settings: Settings) -> str:
    """
    Build a libpq DSN from settings.

    TLS is disabled; statement and connect timeouts bound how long a request
    can wait on the server.
    """
    return make_dsn(
        host=settings.db_host,
        dbname=settings.db_name,
        user=settings.db_user,
        password=settings.db_password,
        sslmode="disable",
        connect_timeout=settings.connect_timeout,
        options=f"-c statement_timeout={settings.statement_timeout_ms}",
    )


_POOL: Optional[ThreadedConnectionPool] = None
_POOL_LOCK = threading.Lock()
# ThreadedConnectionPool raises instead of waiting when it is exhausted; the
# semaphore makes callers queue for a free slot instead.
_SLOTS = threading.BoundedSemaphore(POOL_MAX_CONNECTIONS)
_acquire_timeout: float = 30.0


# PUBLIC_INTERFACE
def init_db_pool(settings: Optional[Settings] = None) -> None:
    """Initialize the global PostgreSQL connection pool."""
    global _POOL, _acquire_timeout
    with _POOL_LOCK:
        if _POOL is not None:
            return

        settings = settings or get_settings()
        _acquire_timeout = settings.pool_acquire_timeout
        _POOL = ThreadedConnectionPool(
            minconn=POOL_MIN_CONNECTIONS,
            maxconn=POOL_MAX_CONNECTIONS,
            dsn=_build_dsn(settings),
        )
        logger.info(
            "Database pool ready (host=%s, db=%s, max=%d)",
            settings.db_host,
            settings.db_name,
            POOL_MAX_CONNECTIONS,
        )


# PUBLIC_INTERFACE
def close_db_pool() -> None:
    """Close every pooled connection and forget the pool."""
    global _POOL
    with _POOL_LOCK:
        if _POOL is None:
            return
        _POOL.closeall()
        _POOL = None
    logger.info("Database pool closed")


def _ensure_pool() -> ThreadedConnectionPool:
    if _POOL is None:
        try:
            init_db_pool()
        except psycopg2.OperationalError as exc:
            raise DatabaseUnavailableError(f"Could not connect to the database: {exc}") from exc
    assert _POOL is not None
    return _POOL


@contextmanager
def _get_conn():
    pool = _ensure_pool()
    if not _SLOTS.acquire(timeout=_acquire_timeout):
        raise DatabaseUnavailableError("Timed out waiting for a free database connection.")
    try:
        try:
            conn = pool.getconn()
        except (psycopg2.OperationalError, PoolError) as exc:
            raise DatabaseUnavailableError(f"Could not connect to the database: {exc}") from exc

        discard = False
        try:
            yield conn
        except Exception:
            if conn.closed:
                discard = True
            else:
                try:
                    conn.rollback()
                except psycopg2.Error:
                    logger.warning("Rollback failed; discarding connection", exc_info=True)
                    discard = True
            raise
        finally:
            pool.putconn(conn, close=discard or bool(conn.closed))
    finally:
        _SLOTS.release()


def _dict_cursor(conn):
    return conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)


def _execute(cur, query: str, params: Optional[Sequence[Any]]) -> None:
    try:
        cur.execute(query, params or [])
    except ValueError as exc:
        # Raised client-side while quoting parameters, before anything reaches the server.
        raise RejectedInputError(str(exc)) from exc


# PUBLIC_INTERFACE
def fetch_all(query: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
    """Fetch all rows as dicts."""
    with _get_conn() as conn:
        with _dict_cursor(conn) as cur:
            _execute(cur, query, params)
            rows = cur.fetchall()
            return [dict(r) for r in rows]


# PUBLIC_INTERFACE
def execute_returning_one(query: str, params: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
    """Execute a statement with RETURNING and return the first row as dict."""
    with _get_conn() as conn:
        with _dict_cursor(conn) as cur:
            _execute(cur, query, params)
            row = cur.fetchone()
            if not row:
                conn.rollback()
                raise DatabaseError("Expected one row returned, got none.")
            conn.commit()
            return dict(row)
