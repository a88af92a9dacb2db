"""
Execution aggregator — reduces a flat batch of log events into one view per
execution.

Steps:
  1. Group events by execution_id (events without one are dropped).
  2. Sort each group by (timestamp, seq, fetch position); undated events last.
  3. Derive the status, first match wins:
       a. any event is an error         → error
       b. an _END event exists          → the _END event's status
       c. every non-sentinel node's
          latest event is a success     → success (needs at least one node)
       d. otherwise                     → running
  4. Flag status-update executions from the first event.
  5. Order views by started_at, most recent first; ties keep fetch order.

Rule (c) reports success even without an _END event, so an execution whose
closing event was lost does not show as running forever. The cost is that an
execution between two nodes may briefly read as success.

The function is pure: the same batch always yields the same views.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Mapping

from features.executions.models import (
    END_NODE,
    ExecutionStatus,
    ExecutionView,
    LogEvent,
)

log = logging.getLogger(__name__)

STATUS_UPDATE_MESSAGE_TYPE = "status_update"


def _sort_key(indexed: tuple[int, LogEvent]) -> tuple:
    position, event = indexed
    ts = event.timestamp
    seq = event.seq if event.seq is not None else -1
    # Undated events go after every dated one.
    return (ts is None, ts.timestamp() if ts else 0.0, seq, position)


def derive_status(events: list[LogEvent]) -> ExecutionStatus:
    """Apply the status precedence to one chronologically sorted group."""
    if any(e.status == ExecutionStatus.ERROR for e in events):
        return ExecutionStatus.ERROR

    end_event = next((e for e in events if e.node_name == END_NODE), None)
    if end_event is not None:
        return end_event.status

    # Later events for the same node close earlier ones.
    latest_by_node: dict[str, ExecutionStatus] = {}
    for e in events:
        if not e.is_sentinel:
            latest_by_node[e.node_name] = e.status
    if latest_by_node and all(s == ExecutionStatus.SUCCESS for s in latest_by_node.values()):
        return ExecutionStatus.SUCCESS

    return ExecutionStatus.RUNNING


def is_status_update(first: LogEvent) -> bool:
    """True for executions triggered by a delivery/read receipt.

    Checked paths: metadata.message_type == "status_update", or the WhatsApp
    webhook shape input_data.entry[0].changes[0].value.statuses.
    """
    if first.metadata.get("message_type") == STATUS_UPDATE_MESSAGE_TYPE:
        return True
    payload = first.input_data
    try:
        statuses = payload["entry"][0]["changes"][0]["value"]["statuses"]
    except (KeyError, IndexError, TypeError):
        return False
    return bool(statuses)


def build_view(execution_id: str, events: list[LogEvent]) -> ExecutionView:
    """Build the view for one group of events that share an execution_id."""
    ordered = [e for _, e in sorted(enumerate(events), key=_sort_key)]
    first, last = ordered[0], ordered[-1]
    dated = [e.timestamp for e in ordered if e.timestamp is not None]
    return ExecutionView(
        execution_id=execution_id,
        logs=ordered,
        started_at=first.timestamp,
        last_update=dated[-1] if dated else None,
        status=derive_status(ordered),
        metadata={**first.metadata, "is_status_update": is_status_update(first)},
    )


def _fallback_view(execution_id: str, events: list[LogEvent]) -> ExecutionView:
    dated = [e.timestamp for e in events if e.timestamp is not None]
    return ExecutionView(
        execution_id=execution_id,
        logs=list(events),
        started_at=min(dated) if dated else None,
        last_update=max(dated) if dated else None,
        status=ExecutionStatus.RUNNING,
        metadata={"is_status_update": False},
    )


def aggregate_executions(events: Iterable[LogEvent | Mapping[str, Any]]) -> list[ExecutionView]:
    """Group a batch of events into execution views, most recent first.

    Accepts LogEvent instances or raw store rows.
    """
    groups: dict[str, list[LogEvent]] = {}
    dropped = 0
    for item in events:
        event = item if isinstance(item, LogEvent) else LogEvent.from_row(item)
        if not event.execution_id:
            dropped += 1
            continue
        groups.setdefault(event.execution_id, []).append(event)

    if dropped:
        log.warning("[AGGREGATOR] Dropped %d event(s) without execution_id", dropped)

    views: list[ExecutionView] = []
    for execution_id, group in groups.items():
        try:
            views.append(build_view(execution_id, group))
        except Exception:
            log.exception("[AGGREGATOR] Failed to build view for %s", execution_id)
            views.append(_fallback_view(execution_id, group))

    # Stable sort: equal started_at keeps first-seen order, undated views last.
    views.sort(key=lambda v: _started_key(v.started_at))
    return views


def _started_key(started_at: datetime | None) -> tuple:
    if started_at is None:
        return (1, 0.0)
    return (0, -started_at.timestamp())
