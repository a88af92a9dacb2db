"""
Activity: Check or Create Customer — makes sure the sender exists as a
customer of the tenant that owns the receiving number.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from features.clients.models import ConversationStatus, Customer

log = logging.getLogger(__name__)


def check_or_create_customer(
    client_id: str | None,
    phone: str,
    name: str | None,
    upsert: Callable[[str | None, str, str | None], dict] | None = None,
) -> Customer:
    """Upsert the customer and return it.

    upsert defaults to the Postgres store; errors are re-raised with context.
    """
    if not phone:
        raise ValueError("Customer phone is required")
    if upsert is None:
        from features.clients.db import upsert_customer as upsert

    start = time.monotonic()
    try:
        row = upsert(client_id, phone, name)
    except Exception as e:
        log.error("Customer upsert failed for %s after %.0fms: %s",
                  phone, (time.monotonic() - start) * 1000, e)
        raise RuntimeError(f"Failed to check or create customer: {e}") from e

    created_at = row.get("created_at")
    customer = Customer(
        phone=str(row.get("phone", phone)),
        name=row.get("name"),
        client_id=row.get("client_id") or client_id,
        status=ConversationStatus(row.get("status") or ConversationStatus.BOT.value),
        created_at=created_at.isoformat() if hasattr(created_at, "isoformat") else created_at,
    )
    log.info("Customer %s ready in %.0fms (status=%s)",
             customer.phone, (time.monotonic() - start) * 1000, customer.status.value)
    return customer
