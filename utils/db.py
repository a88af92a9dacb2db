"""
Postgres connection helpers shared by the feature db modules.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any

import psycopg2
import psycopg2.extras

import config

log = logging.getLogger(__name__)

_pool: list[Any] = []
_lock = threading.Lock()


class DatabaseNotConfigured(RuntimeError):
    """Raised when a query is attempted without DATABASE_URL."""


def is_configured() -> bool:
    return bool(config.DATABASE_URL)


def _get_conn():
    """Get a Postgres connection (simple single-connection reuse)."""
    with _lock:
        if _pool:
            conn = _pool[0]
            if not conn.closed:
                return conn
            _pool.clear()

        if not is_configured():
            raise DatabaseNotConfigured("DATABASE_URL is not set")
        conn = psycopg2.connect(config.DATABASE_URL)
        conn.autocommit = True
        _pool.append(conn)
        return conn


@contextmanager
def get_cursor():
    """Yield a dict cursor."""
    conn = _get_conn()
    cur = conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
    try:
        yield cur
    finally:
        cur.close()


def close() -> None:
    """Close the shared connection, if any."""
    with _lock:
        while _pool:
            conn = _pool.pop()
            try:
                conn.close()
            except psycopg2.Error as e:
                log.warning("Error closing Postgres connection: %s", e)
