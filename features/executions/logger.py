"""
Execution Logger — records the lifecycle of one unit of work as log events.

One logger is created per unit of work (typically per inbound message) and
passed to the code it instruments. Every write is fire-and-forget: it is
submitted to a thread pool and its outcome is only logged locally, so a lost
log event never fails the work it describes.

Event sequence for one execution:

    _START (running) → node (running → success|error) ... → _END (success|error)

Node closes are written as an update of the node's running row; each insert
carries a per-execution seq so events stay ordered when timestamps tie.
"""

from __future__ import annotations

import logging
import threading
import time
import traceback
import uuid
from collections import deque
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Any, Callable, Protocol, TypeVar

from features.executions.models import END_NODE, START_NODE, ExecutionStatus
from utils.payloads import preview

log = logging.getLogger(__name__)

T = TypeVar("T")


class LogStore(Protocol):
    """Write interface of the execution log store."""

    def insert_log(self, event: dict) -> None: ...

    def close_running_log(self, execution_id: str, node_name: str, fields: dict) -> int: ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def describe_error(error: Any) -> dict:
    """Capture message, name and stack of an exception (or any error value)."""
    if isinstance(error, BaseException):
        return {
            "message": str(error) or type(error).__name__,
            "name": type(error).__name__,
            "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
        }
    return {"message": str(error), "name": None, "stack": None}


class ExecutionLogger:
    """Best-effort audit trail for a single execution.

    With no store the logger is inert: ids are still generated but nothing
    is written.
    """

    def __init__(self, store: LogStore | None = None, executor: Executor | None = None):
        self.store = store
        self.execution_id: str | None = None
        self.tenant_id: str | None = None
        self._seq = 0
        self._executor = executor
        self._owns_executor = False
        self._pending: set[Future] = set()
        self._queue: deque[tuple] = deque()
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()

    # ── Dispatch ──────────────────────────────────────────────────────

    def _get_executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="execution-log")
            self._owns_executor = True
        return self._executor

    def _dispatch(self, tag: str, label: str, fn: Callable[..., Any], *args: Any) -> None:
        """Queue a store write and submit a task to run it, without waiting."""
        item = (tag, label, fn, args)
        with self._lock:
            self._queue.append(item)
        try:
            future = self._get_executor().submit(self._run_next)
        except RuntimeError as e:
            # Executor already shut down.
            log.error("[%s EXCEPTION] Could not dispatch log for %s: %s", tag, label, e)
            with self._lock:
                if item in self._queue:
                    self._queue.remove(item)
            return
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._on_done)

    def _run_next(self) -> None:
        # Writes of one logger run one at a time, in the order they were issued,
        # so a node close never overtakes the insert it closes.
        with self._write_lock:
            with self._lock:
                if not self._queue:
                    return
                tag, label, fn, args = self._queue.popleft()
            try:
                result = fn(*args)
            except Exception as e:
                log.error("[%s EXCEPTION] Failed to log %s: %s", tag, label, e)
                return
            if result == 0:
                log.debug("[%s] No running row to close for %s", tag, label)

    def _on_done(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
        if future.cancelled():
            log.warning("[EXECUTION] A log write was cancelled before it ran")

    def _next_seq(self) -> int:
        seq = self._seq
        self._seq += 1
        return seq

    def _insert(self, tag: str, label: str, event: dict) -> None:
        event["seq"] = self._next_seq()
        self._dispatch(tag, label, self.store.insert_log, event)

    # ── Lifecycle ─────────────────────────────────────────────────────

    def start_execution(self, metadata: dict | None = None, tenant_id: str | None = None) -> str:
        """Begin a new execution and return its id."""
        self.execution_id = str(uuid.uuid4())
        self.tenant_id = tenant_id or None
        self._seq = 0

        if self.store is not None:
            log.info("[EXECUTION] Starting execution %s (client=%s)", self.execution_id, self.tenant_id)
            self._insert("EXECUTION START", self.execution_id, {
                "execution_id": self.execution_id,
                "node_name": START_NODE,
                "status": ExecutionStatus.RUNNING.value,
                "timestamp": _now(),
                "metadata": metadata or {},
                "client_id": self.tenant_id,
            })
        return self.execution_id

    def log_node_start(self, node_name: str, input_data: Any = None) -> int:
        """Open a running event for the node.

        Returns the start time in epoch milliseconds, the value stored as
        metadata.start_time and accepted by log_node_success.
        """
        start_time = _epoch_ms()
        if not self.execution_id or self.store is None:
            return start_time
        log.info("[NODE START] %s execution=%s input=%s",
                 node_name, self.execution_id, preview(input_data))
        self._insert("NODE START", node_name, {
            "execution_id": self.execution_id,
            "node_name": node_name,
            "status": ExecutionStatus.RUNNING.value,
            "timestamp": _now(),
            "input_data": input_data,
            "metadata": {"start_time": start_time},
            "client_id": self.tenant_id,
        })
        return start_time

    def log_node_success(self, node_name: str, output: Any = None, start_time: int | None = None) -> None:
        """Close the node's running event as a success.

        start_time is the node start in epoch milliseconds, as returned by
        log_node_start.
        """
        if not self.execution_id or self.store is None:
            return
        duration_ms = max(0, _epoch_ms() - int(start_time)) if start_time is not None else None
        log.info("[NODE SUCCESS] %s execution=%s duration_ms=%s output=%s",
                 node_name, self.execution_id, duration_ms, preview(output))
        self._dispatch("NODE SUCCESS", node_name, self.store.close_running_log,
                       self.execution_id, node_name, {
                           "status": ExecutionStatus.SUCCESS.value,
                           "output_data": output,
                           "duration_ms": duration_ms,
                       })

    def log_node_error(self, node_name: str, error: Any) -> None:
        if not self.execution_id or self.store is None:
            return
        detail = describe_error(error)
        log.error("[NODE ERROR] %s execution=%s %s: %s",
                  node_name, self.execution_id, detail["name"], detail["message"])
        self._dispatch("NODE ERROR", node_name, self.store.close_running_log,
                       self.execution_id, node_name, {
                           "status": ExecutionStatus.ERROR.value,
                           "error": detail,
                       })

    def execute_node(self, node_name: str, fn: Callable[[], T], input_data: Any = None) -> T:
        """Run fn as a logged node; errors are logged and re-raised."""
        start_time = self.log_node_start(node_name, input_data)
        try:
            result = fn()
        except Exception as e:
            self.log_node_error(node_name, e)
            raise
        self.log_node_success(node_name, result, start_time)
        return result

    def finish_execution(self, status: ExecutionStatus | str) -> None:
        if not self.execution_id or self.store is None:
            return
        status = ExecutionStatus.coerce(status)
        log.info("[EXECUTION END] Execution %s finished with status: %s (client=%s)",
                 self.execution_id, status.value, self.tenant_id)
        self._insert("EXECUTION END", self.execution_id, {
            "execution_id": self.execution_id,
            "node_name": END_NODE,
            "status": status.value,
            "timestamp": _now(),
            "client_id": self.tenant_id,
        })

    # ── Shutdown ──────────────────────────────────────────────────────

    def flush(self, timeout: float | None = None) -> bool:
        """Wait for dispatched writes. Returns False if some are still pending."""
        with self._lock:
            pending = set(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self, timeout: float | None = None) -> None:
        """Flush and release the executor if this logger created it."""
        self.flush(timeout)
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
            self._owns_executor = False


def create_execution_logger(executor: Executor | None = None) -> ExecutionLogger:
    """Create a logger for one unit of work, backed by Postgres when configured."""
    from features.executions import db as execution_db
    from utils.db import is_configured

    return ExecutionLogger(store=execution_db if is_configured() else None, executor=executor)
