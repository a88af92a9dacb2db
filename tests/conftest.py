import os
import threading
from datetime import datetime, timedelta, timezone

import pytest

# Tests never talk to a real Postgres.
os.environ.pop("DATABASE_URL", None)

from features.executions.models import END_NODE, START_NODE

BASE_TIME = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class InMemoryLogStore:
    """Stand-in for features.executions.db with the same write/read calls."""

    def __init__(self):
        self.rows: list[dict] = []
        self._lock = threading.Lock()

    def insert_log(self, event: dict) -> None:
        with self._lock:
            self.rows.append(dict(event))

    def close_running_log(self, execution_id: str, node_name: str, fields: dict) -> int:
        updated = 0
        with self._lock:
            for row in self.rows:
                if (row["execution_id"] == execution_id and row["node_name"] == node_name
                        and row["status"] == "running"):
                    row.update({k: v for k, v in fields.items() if v is not None})
                    updated += 1
        return updated

    def fetch_logs(self, tenant_id, limit=100, execution_id=None, since=None) -> list[dict]:
        rows = [r for r in self.rows if r.get("client_id") == tenant_id]
        if execution_id:
            rows = [r for r in rows if r["execution_id"] == execution_id]
        rows.sort(key=lambda r: (r["timestamp"], r.get("seq") or 0), reverse=True)
        return rows[:limit]


class FailingLogStore:
    def __init__(self):
        self.calls = 0

    def insert_log(self, event: dict) -> None:
        self.calls += 1
        raise ConnectionError("log store unavailable")

    def close_running_log(self, execution_id: str, node_name: str, fields: dict) -> int:
        self.calls += 1
        raise ConnectionError("log store unavailable")


@pytest.fixture
def store():
    return InMemoryLogStore()


@pytest.fixture
def failing_store():
    return FailingLogStore()


@pytest.fixture
def row():
    """Build a store row; t is seconds after BASE_TIME."""
    def _row(execution_id, node_name, status="success", t=0, **extra):
        data = {
            "execution_id": execution_id,
            "node_name": node_name,
            "status": status,
            "timestamp": (BASE_TIME + timedelta(seconds=t)).isoformat() if t is not None else None,
        }
        data.update(extra)
        return data
    return _row


@pytest.fixture
def start_row(row):
    def _start(execution_id, t=0, **extra):
        return row(execution_id, START_NODE, "running", t, **extra)
    return _start


@pytest.fixture
def end_row(row):
    def _end(execution_id, status="success", t=0, **extra):
        return row(execution_id, END_NODE, status, t, **extra)
    return _end


def whatsapp_text_payload(phone="5511999990000", name="Maria", body="Oi", phone_number_id="PNID-1"):
    return {
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "WABA-1",
            "changes": [{
                "field": "messages",
                "value": {
                    "messaging_product": "whatsapp",
                    "metadata": {"display_phone_number": "15550000000", "phone_number_id": phone_number_id},
                    "contacts": [{"profile": {"name": name}, "wa_id": phone}],
                    "messages": [{
                        "from": phone,
                        "id": "wamid.TEXT1",
                        "timestamp": "1768478400",
                        "type": "text",
                        "text": {"body": body},
                    }],
                },
            }],
        }],
    }


def whatsapp_status_payload(phone_number_id="PNID-1"):
    return {
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "WABA-1",
            "changes": [{
                "field": "messages",
                "value": {
                    "messaging_product": "whatsapp",
                    "metadata": {"phone_number_id": phone_number_id},
                    "statuses": [{
                        "id": "wamid.OUT1",
                        "status": "delivered",
                        "timestamp": "1768478400",
                        "recipient_id": "5511999990000",
                    }],
                },
            }],
        }],
    }


@pytest.fixture
def text_payload():
    return whatsapp_text_payload


@pytest.fixture
def status_payload():
    return whatsapp_status_payload
