"""
Activity: Parse Message — normalizes a WhatsApp Cloud API webhook payload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

STATUS_UPDATE = "status_update"


@dataclass
class InboundMessage:
    """The first message (or delivery status) carried by a webhook payload."""
    phone_number_id: str | None
    message_type: str
    phone: str | None = None
    name: str | None = None
    text: str | None = None
    message_id: str | None = None
    statuses: list[dict] = field(default_factory=list)

    @property
    def is_status_update(self) -> bool:
        return self.message_type == STATUS_UPDATE


def _first_dict(items: Any) -> dict:
    """First element of a list when it is a dict, else {}."""
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def _message_type(msg: dict) -> str:
    msg_type = msg.get("type")
    return msg_type if isinstance(msg_type, str) and msg_type else "unknown"


def first_change_value(payload: dict) -> dict:
    """Return entry[0].changes[0].value, or {} when the shape is different."""
    try:
        value = payload["entry"][0]["changes"][0]["value"]
    except (KeyError, IndexError, TypeError):
        return {}
    return value if isinstance(value, dict) else {}


def peek_phone_number_id(payload: dict) -> str | None:
    metadata = first_change_value(payload).get("metadata")
    if not isinstance(metadata, dict):
        return None
    return metadata.get("phone_number_id")


def peek_message_type(payload: dict) -> str:
    value = first_change_value(payload)
    if value.get("statuses"):
        return STATUS_UPDATE
    return _message_type(_first_dict(value.get("messages")))


def parse_message(payload: dict) -> InboundMessage:
    """Extract the sender and content of an inbound webhook.

    Raises ValueError when the payload carries neither a message nor a status.
    """
    value = first_change_value(payload)
    phone_number_id = peek_phone_number_id(payload)

    statuses = value.get("statuses")
    if statuses:
        status = _first_dict(statuses)
        if not status:
            raise ValueError("Webhook statuses are not objects")
        return InboundMessage(
            phone_number_id=phone_number_id,
            message_type=STATUS_UPDATE,
            phone=status.get("recipient_id"),
            message_id=status.get("id"),
            statuses=[s for s in statuses if isinstance(s, dict)],
        )

    msg = _first_dict(value.get("messages"))
    if not msg:
        raise ValueError("Webhook payload has no messages or statuses")

    profile = _first_dict(value.get("contacts")).get("profile")
    if not isinstance(profile, dict):
        profile = {}
    msg_type = _message_type(msg)

    text = None
    body = msg.get(msg_type)
    if isinstance(body, dict):
        text = body.get("body") if msg_type == "text" else body.get("caption")

    return InboundMessage(
        phone_number_id=phone_number_id,
        message_type=msg_type,
        phone=msg.get("from"),
        name=profile.get("name"),
        text=text,
        message_id=msg.get("id"),
    )
