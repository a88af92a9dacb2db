"""
Postgres backing store for tenants and their WhatsApp customers.

Tables:
  clients             — one row per tenant, keyed by id; owns a phone_number_id
  user_profiles       — dashboard users, each linked to a client
  whatsapp_customers  — one row per (client, phone)
"""

from __future__ import annotations

import logging

from utils.db import get_cursor

log = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS clients (
    id                TEXT PRIMARY KEY,
    name              TEXT NOT NULL,
    phone_number_id   TEXT UNIQUE,
    created_at        TIMESTAMPTZ DEFAULT now()
);

CREATE TABLE IF NOT EXISTS user_profiles (
    id          TEXT PRIMARY KEY,
    email       TEXT,
    client_id   TEXT REFERENCES clients(id) ON DELETE SET NULL,
    api_token   TEXT UNIQUE,
    created_at  TIMESTAMPTZ DEFAULT now()
);

CREATE TABLE IF NOT EXISTS whatsapp_customers (
    client_id   TEXT NOT NULL DEFAULT '',
    phone       TEXT NOT NULL,
    name        TEXT,
    status      TEXT NOT NULL DEFAULT 'bot',
    created_at  TIMESTAMPTZ DEFAULT now(),
    updated_at  TIMESTAMPTZ DEFAULT now(),
    PRIMARY KEY (client_id, phone)
);
"""


def init_db():
    """Create tables if they don't exist."""
    try:
        with get_cursor() as cur:
            cur.execute(SCHEMA_SQL)
        log.info("clients schema initialized")
    except Exception as e:
        log.error("Failed to initialize clients schema: %s", e)
        raise


def tenant_for_token(token: str) -> tuple[bool, str | None]:
    """Resolve a dashboard API token.

    Returns (known, client_id); a known user may have no client linked yet.
    """
    with get_cursor() as cur:
        cur.execute("SELECT client_id FROM user_profiles WHERE api_token = %s", (token,))
        row = cur.fetchone()
        if row is None:
            return False, None
        return True, row["client_id"]


def tenant_for_phone_number_id(phone_number_id: str) -> str | None:
    with get_cursor() as cur:
        cur.execute("SELECT id FROM clients WHERE phone_number_id = %s", (phone_number_id,))
        row = cur.fetchone()
        return row["id"] if row else None


def upsert_customer(client_id: str | None, phone: str, name: str | None) -> dict:
    """Insert a customer or refresh its name; returns the stored row."""
    with get_cursor() as cur:
        cur.execute("""
            INSERT INTO whatsapp_customers (client_id, phone, name, status)
            VALUES (%(client_id)s, %(phone)s, %(name)s, 'bot')
            ON CONFLICT (client_id, phone) DO UPDATE SET
                name = COALESCE(EXCLUDED.name, whatsapp_customers.name),
                updated_at = now()
            RETURNING client_id, phone, name, status, created_at
        """, {"client_id": client_id or "", "phone": phone, "name": name})
        row = cur.fetchone()
        if row is None:
            raise RuntimeError(f"No row returned from customer upsert for {phone}")
        return dict(row)
