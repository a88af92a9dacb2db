"""
Postgres backing store for execution logs.

Tables:
  execution_logs — one row per lifecycle event; client_id scopes rows to a tenant

Writes come from ExecutionLogger (insert + close-the-running-row update);
reads come from the stream and debug endpoints.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from utils.db import get_cursor
from utils.payloads import dumps

log = logging.getLogger(__name__)

# ── Schema ────────────────────────────────────────────────────────────

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS execution_logs (
    id              BIGSERIAL PRIMARY KEY,
    execution_id    TEXT NOT NULL,
    node_name       TEXT NOT NULL,
    status          TEXT NOT NULL DEFAULT 'running',
    timestamp       TIMESTAMPTZ NOT NULL DEFAULT now(),
    seq             INTEGER,
    input_data      JSONB,
    output_data     JSONB,
    error           JSONB,
    duration_ms     INTEGER,
    metadata        JSONB DEFAULT '{}'::jsonb,
    client_id       TEXT,
    created_at      TIMESTAMPTZ DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_execution_logs_exec_ts ON execution_logs(execution_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_execution_logs_client_ts ON execution_logs(client_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_execution_logs_running
    ON execution_logs(execution_id, node_name) WHERE status = 'running';
"""


def init_db():
    """Create tables if they don't exist."""
    try:
        with get_cursor() as cur:
            cur.execute(SCHEMA_SQL)
        log.info("execution_logs schema initialized")
    except Exception as e:
        log.error("Failed to initialize execution_logs schema: %s", e)
        raise


# ── Writes ────────────────────────────────────────────────────────────

def insert_log(event: dict) -> None:
    """Insert one log event."""
    with get_cursor() as cur:
        cur.execute("""
            INSERT INTO execution_logs (
                execution_id, node_name, status, timestamp, seq,
                input_data, output_data, error, duration_ms, metadata, client_id
            ) VALUES (
                %(execution_id)s, %(node_name)s, %(status)s, %(timestamp)s, %(seq)s,
                %(input_data)s, %(output_data)s, %(error)s, %(duration_ms)s, %(metadata)s, %(client_id)s
            )
        """, {
            "execution_id": event["execution_id"],
            "node_name": event["node_name"],
            "status": event.get("status", "running"),
            "timestamp": event.get("timestamp"),
            "seq": event.get("seq"),
            "input_data": dumps(event.get("input_data")),
            "output_data": dumps(event.get("output_data")),
            "error": dumps(event.get("error")),
            "duration_ms": event.get("duration_ms"),
            "metadata": dumps(event.get("metadata") or {}),
            "client_id": event.get("client_id"),
        })


def close_running_log(execution_id: str, node_name: str, fields: dict) -> int:
    """Close the still-running rows of a node with a terminal status.

    Returns the number of rows updated (0 when the start event never landed).
    """
    with get_cursor() as cur:
        cur.execute("""
            UPDATE execution_logs SET
                status = %(status)s,
                output_data = COALESCE(%(output_data)s, output_data),
                error = COALESCE(%(error)s, error),
                duration_ms = COALESCE(%(duration_ms)s, duration_ms)
            WHERE execution_id = %(execution_id)s
              AND node_name = %(node_name)s
              AND status = 'running'
        """, {
            "status": fields["status"],
            "output_data": dumps(fields.get("output_data")),
            "error": dumps(fields.get("error")),
            "duration_ms": fields.get("duration_ms"),
            "execution_id": execution_id,
            "node_name": node_name,
        })
        return cur.rowcount


# ── Reads ─────────────────────────────────────────────────────────────

def _tenant_clause(tenant_id: str | None) -> tuple[str, list[Any]]:
    # Without a tenant only unscoped rows are visible.
    if tenant_id is None:
        return "client_id IS NULL", []
    return "client_id = %s", [tenant_id]


def fetch_logs(
    tenant_id: str | None,
    limit: int = 100,
    execution_id: str | None = None,
    since: datetime | str | None = None,
) -> list[dict]:
    """Fetch the most recent log rows visible to a tenant, newest first."""
    clause, params = _tenant_clause(tenant_id)
    conditions = [clause]
    if execution_id:
        conditions.append("execution_id = %s")
        params.append(execution_id)
    if since:
        conditions.append("timestamp > %s")
        params.append(since)
    params.append(int(limit))

    with get_cursor() as cur:
        cur.execute(
            "SELECT * FROM execution_logs WHERE " + " AND ".join(conditions)
            + " ORDER BY timestamp DESC, seq DESC NULLS LAST, id DESC LIMIT %s",
            params,
        )
        return [dict(row) for row in cur.fetchall()]


def count_logs() -> int:
    with get_cursor() as cur:
        cur.execute("SELECT count(*) AS n FROM execution_logs")
        return int(cur.fetchone()["n"])


def count_unscoped_logs() -> int:
    with get_cursor() as cur:
        cur.execute("SELECT count(*) AS n FROM execution_logs WHERE client_id IS NULL")
        return int(cur.fetchone()["n"])


def recent_logs(limit: int = 10) -> list[dict]:
    """Latest rows across every tenant (diagnostics only)."""
    with get_cursor() as cur:
        cur.execute(
            "SELECT id, execution_id, node_name, client_id, timestamp, status "
            "FROM execution_logs ORDER BY timestamp DESC LIMIT %s",
            (limit,),
        )
        return [dict(row) for row in cur.fetchall()]


def distinct_tenants(limit: int = 1000) -> set[str]:
    with get_cursor() as cur:
        cur.execute(
            "SELECT DISTINCT client_id FROM execution_logs WHERE client_id IS NOT NULL LIMIT %s",
            (limit,),
        )
        return {row["client_id"] for row in cur.fetchall()}
