"""
Data models for the clients feature.

A client is a tenant of the dashboard; customers are the WhatsApp contacts
that talk to a client's number.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ConversationStatus(str, Enum):
    BOT = "bot"
    WAITING = "waiting"
    HUMAN = "human"


@dataclass
class Customer:
    """A WhatsApp contact of one client."""
    phone: str
    name: str | None
    client_id: str | None
    status: ConversationStatus = ConversationStatus.BOT
    created_at: str | None = None
