"""
Clients feature — tenants, dashboard users and WhatsApp customers.

Public API:
    from features.clients import Customer, ConversationStatus
    from features.clients import db as client_db
"""

from features.clients.models import ConversationStatus, Customer

__all__ = ["ConversationStatus", "Customer"]
