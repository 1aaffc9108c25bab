from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from functools import wraps
from typing import Callable, Iterator, ParamSpec, TypeVar

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def connect(db_path: str) -> sqlite3.Connection:
    """
    Open the engine's connection.

    Autocommit mode: transactions are opened explicitly by `write_transaction`,
    so each ledger operation maps to exactly one BEGIN/COMMIT.
    """
    conn = sqlite3.connect(db_path, timeout=30, check_same_thread=False, isolation_level=None)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA busy_timeout=10000")  # Wait up to 10s for locks
    logger.info("Opened ledger database %s", db_path)
    return conn


@contextmanager
def write_transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Run the enclosed writes as one all-or-nothing unit.

    BEGIN IMMEDIATE takes the database write lock up front, so a second process
    sharing the file cannot interleave its writes with ours.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    else:
        conn.commit()


def safe_db_read(default_factory: Callable[[], T]) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator for history reads that returns a default value on database errors.
    Keeps the API responsive when the database is locked or unavailable.

    Usage:
        @safe_db_read(default_factory=pd.DataFrame)
        def get_something(conn) -> pd.DataFrame:
            ...
    """
    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except sqlite3.OperationalError as e:
                logger.warning(f"Database read failed ({func.__name__}): {e}")
                return default_factory()
            except sqlite3.DatabaseError as e:
                logger.error(f"Database error ({func.__name__}): {e}")
                return default_factory()
        return wrapper
    return decorator
