"""
Pydantic models for the HTTP API.

Domain objects live in features/*/models.py; these only describe the JSON
shapes returned to the dashboard.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class LogEventOut(BaseModel):
    execution_id: str | None
    node_name: str
    status: str
    timestamp: str | None = None
    client_id: str | None = None
    seq: int | None = None
    input_data: Any = None
    output_data: Any = None
    error: Any = None
    duration_ms: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ExecutionViewOut(BaseModel):
    execution_id: str
    logs: list[LogEventOut]
    started_at: str | None = None
    last_update: str | None = None
    status: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    node_count: int


class ExecutionStreamResponse(BaseModel):
    success: bool = True
    executions: list[ExecutionViewOut]
    total: int
    timestamp: str


class WebhookAck(BaseModel):
    status: str
    message: str
