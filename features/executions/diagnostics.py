"""
Diagnostics for "why don't I see my execution logs?".

Logs are only visible to the tenant stamped on them, so an empty dashboard
usually means a tenant mismatch rather than missing data.
"""

from __future__ import annotations

from collections.abc import Collection


def diagnose(
    total_logs: int,
    unscoped_logs: int,
    user_tenant: str | None,
    tenants_in_logs: Collection[str],
) -> list[str]:
    """Return human-readable findings, most severe first."""
    if total_logs == 0:
        return [
            "ERROR: no execution_logs rows exist",
            "  fix: process a test message to create logs",
        ]

    if unscoped_logs == total_logs:
        return [
            "ERROR: every log row is missing client_id, tenants cannot see any of them",
            "  fix: pass the tenant id to ExecutionLogger.start_execution",
        ]

    if not user_tenant:
        return [
            "ERROR: the user profile is not linked to a client",
            "  fix: set user_profiles.client_id for this user",
        ]

    if user_tenant not in tenants_in_logs:
        return [
            "WARN: the user's client_id has no matching logs",
            f"  user client_id: {user_tenant}",
            f"  client ids in logs: {', '.join(sorted(tenants_in_logs))}",
            "  fix: correct the profile's client_id or generate logs for this client",
        ]

    return [
        "OK: logs exist for the user's client_id",
        "  if nothing shows, check the dashboard query filters",
    ]


def short_id(value: str | None, length: int = 8) -> str | None:
    if not value:
        return value
    return value[:length] + "..." if len(value) > length else value
