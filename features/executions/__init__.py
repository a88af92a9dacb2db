"""
Executions feature — execution logging and log-to-status aggregation.

Public API:
    from features.executions import ExecutionLogger, aggregate_executions
    from features.executions import db as execution_db
"""

from features.executions.aggregator import aggregate_executions
from features.executions.logger import ExecutionLogger, create_execution_logger
from features.executions.models import (
    END_NODE,
    START_NODE,
    ExecutionStatus,
    ExecutionView,
    LogEvent,
)

__all__ = [
    "END_NODE",
    "START_NODE",
    "ExecutionLogger",
    "ExecutionStatus",
    "ExecutionView",
    "LogEvent",
    "aggregate_executions",
    "create_execution_logger",
]
