"""
Data models for the executions feature.

LogEvent is the append-only fact written by ExecutionLogger; ExecutionView is
the per-execution summary derived from a batch of events on every read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

START_NODE = "_START"
END_NODE = "_END"
SENTINEL_NODES = frozenset({START_NODE, END_NODE})


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"

    @classmethod
    def coerce(cls, value: Any) -> "ExecutionStatus":
        """Map a stored status onto the enum; unknown values read as running."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.RUNNING


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a stored timestamp. Returns None when missing or unparsable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class LogEvent:
    """A single lifecycle event of one execution."""
    execution_id: str | None
    node_name: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    timestamp: datetime | None = None
    tenant_id: str | None = None
    seq: int | None = None
    input_data: Any = None
    output_data: Any = None
    error: Any = None
    duration_ms: int | None = None
    metadata: dict = field(default_factory=dict)

    @property
    def is_sentinel(self) -> bool:
        return self.node_name in SENTINEL_NODES

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "LogEvent":
        """Build an event from a store row (client_id is the tenant column)."""
        execution_id = row.get("execution_id")
        if execution_id is not None:
            execution_id = str(execution_id).strip() or None
        tenant_id = row.get("client_id", row.get("tenant_id"))
        seq = row.get("seq")
        metadata = row.get("metadata")
        return cls(
            execution_id=execution_id,
            node_name=str(row.get("node_name") or ""),
            status=ExecutionStatus.coerce(row.get("status")),
            timestamp=parse_timestamp(row.get("timestamp")),
            tenant_id=str(tenant_id) if tenant_id is not None else None,
            seq=int(seq) if isinstance(seq, (int, float)) else None,
            input_data=row.get("input_data"),
            output_data=row.get("output_data"),
            error=row.get("error"),
            duration_ms=row.get("duration_ms"),
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )

    def to_dict(self) -> dict:
        return {
            "execution_id": self.execution_id,
            "node_name": self.node_name,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "client_id": self.tenant_id,
            "seq": self.seq,
            "input_data": self.input_data,
            "output_data": self.output_data,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "metadata": self.metadata,
        }


@dataclass
class ExecutionView:
    """Derived, display-ready summary of one execution."""
    execution_id: str
    logs: list[LogEvent]
    started_at: datetime | None
    last_update: datetime | None
    status: ExecutionStatus
    metadata: dict = field(default_factory=dict)

    @property
    def node_count(self) -> int:
        return len(self.logs)

    @property
    def is_status_update(self) -> bool:
        return bool(self.metadata.get("is_status_update"))

    def to_dict(self) -> dict:
        return {
            "execution_id": self.execution_id,
            "logs": [e.to_dict() for e in self.logs],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "last_update": self.last_update.isoformat() if self.last_update else None,
            "status": self.status.value,
            "metadata": self.metadata,
            "node_count": self.node_count,
        }
