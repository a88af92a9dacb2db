"""
Workflow: Inbound Message

Runs for every WhatsApp webhook delivery:
  1. Resolve the tenant from the receiving phone_number_id
  2. Start an execution (message_type recorded in metadata)
  3. parse_message
  4. check_or_create_customer (skipped for delivery/read receipts)
  5. Finish the execution with success or error

Replies are sent by the external automation engine, not here.
"""

from __future__ import annotations

import logging
from typing import Callable

from activities.customers import check_or_create_customer
from activities.parse_message import (
    InboundMessage,
    parse_message,
    peek_message_type,
    peek_phone_number_id,
)
from features.executions.logger import ExecutionLogger
from features.executions.models import ExecutionStatus

log = logging.getLogger(__name__)

TenantLookup = Callable[[str], str | None]


def _resolve_tenant(payload: dict, lookup: TenantLookup | None) -> str | None:
    phone_number_id = peek_phone_number_id(payload)
    if not phone_number_id or lookup is None:
        return None
    try:
        return lookup(phone_number_id)
    except Exception as e:
        log.warning("Tenant lookup failed for phone_number_id=%s: %s", phone_number_id, e)
        return None


def run_chatbot_flow(
    payload: dict,
    logger: ExecutionLogger,
    tenant_lookup: TenantLookup | None = None,
    upsert_customer: Callable | None = None,
) -> dict:
    """Process one webhook payload and return a summary of the execution."""
    tenant_id = _resolve_tenant(payload, tenant_lookup)
    execution_id = logger.start_execution(
        {"message_type": peek_message_type(payload), "source": "whatsapp_webhook"},
        tenant_id,
    )
    result: dict = {"execution_id": execution_id, "client_id": tenant_id, "status": "running"}

    try:
        message: InboundMessage = logger.execute_node(
            "parse_message", lambda: parse_message(payload), payload,
        )
        result["message_type"] = message.message_type

        if not message.is_status_update:
            customer = logger.execute_node(
                "check_or_create_customer",
                lambda: check_or_create_customer(tenant_id, message.phone, message.name, upsert_customer),
                {"phone": message.phone, "name": message.name},
            )
            result["customer"] = customer.phone

        logger.finish_execution(ExecutionStatus.SUCCESS)
        result["status"] = ExecutionStatus.SUCCESS.value
    except Exception as e:
        log.error("Inbound message flow %s failed: %s", execution_id, e)
        logger.finish_execution(ExecutionStatus.ERROR)
        result["status"] = ExecutionStatus.ERROR.value
        result["error"] = str(e)

    return result
