"""
FastAPI application — REST API for the WhatsApp support dashboard backend.

Endpoints:
  GET  /api/backend/stream      — Execution views for the caller's tenant
  GET  /api/backend/debug-logs  — Log visibility diagnostics (opt-in)
  GET  /webhook                 — Meta webhook verification
  POST /webhook                 — Inbound WhatsApp webhook
  GET  /health                  — Health check
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse

import config
from features.clients import db as client_db
from features.executions import aggregate_executions, create_execution_logger
from features.executions import db as execution_db
from features.executions.diagnostics import diagnose, short_id
from features.executions.models import parse_timestamp
from models.schemas import ExecutionStreamResponse, WebhookAck
from utils import db as pg
from workflows.chatbot import run_chatbot_flow

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if pg.is_configured():
        try:
            client_db.init_db()
            execution_db.init_db()
            log.info("Postgres database initialized")
        except Exception as e:
            log.warning("Could not initialize Postgres: %s (execution logs will not be stored)", e)
    else:
        log.warning("DATABASE_URL not set; execution logging is disabled")

    app.state.log_writer = ThreadPoolExecutor(
        max_workers=config.LOG_WRITER_THREADS, thread_name_prefix="execution-log",
    )
    yield
    # Let pending fire-and-forget writes land before exiting.
    app.state.log_writer.shutdown(wait=True)
    pg.close()


app = FastAPI(
    title="WhatsApp Support Backend",
    description="Execution logging and status stream for the multi-tenant WhatsApp support dashboard",
    version="1.0.0",
    lifespan=lifespan,
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    value = authorization.strip()
    if value.lower().startswith("bearer "):
        value = value[7:].strip()
    return value or None


def resolve_tenant(authorization: str | None = Header(default=None)) -> str | None:
    """Map the caller's bearer token to a tenant id (None = unscoped)."""
    if config.DISABLE_AUTH:
        return None
    token = _bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        known, tenant_id = client_db.tenant_for_token(token)
    except Exception as e:
        log.error("[AUTH] Tenant lookup failed: %s", e)
        raise HTTPException(status_code=503, detail="Authentication provider unavailable")
    if not known:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return tenant_id


# ── Health ────────────────────────────────────────────────────────────

@app.get("/health")
def health():
    return {
        "status": "ok",
        "service": "whatsapp-support-backend",
        "database_configured": pg.is_configured(),
    }


# ── Execution stream ──────────────────────────────────────────────────

@app.get("/api/backend/stream", response_model=ExecutionStreamResponse)
async def execution_stream(
    execution_id: str | None = None,
    limit: int = config.STREAM_DEFAULT_LIMIT,
    since: str | None = None,
    tenant_id: str | None = Depends(resolve_tenant),
):
    """Recent executions of the caller's tenant, most recent first."""
    limit = max(1, min(limit, config.STREAM_MAX_LIMIT))
    since_dt = None
    if since:
        since_dt = parse_timestamp(since)
        if since_dt is None:
            raise HTTPException(status_code=400, detail=f"Invalid 'since' timestamp: {since}")

    log.info("[STREAM API] client=%s execution_id=%s limit=%d since=%s",
             tenant_id, execution_id, limit, since)
    loop = asyncio.get_running_loop()
    try:
        rows = await loop.run_in_executor(
            None, execution_db.fetch_logs, tenant_id, limit, execution_id, since_dt,
        )
    except Exception as e:
        log.error("[STREAM API] Error querying execution_logs: %s", e)
        return JSONResponse(status_code=500, content={
            "success": False,
            "error": "Failed to fetch execution logs",
            "details": str(e),
        })

    executions = aggregate_executions(rows)
    log.info("[STREAM API] %d logs, %d executions", len(rows), len(executions))
    return {
        "success": True,
        "executions": [_serialize(v.to_dict()) for v in executions],
        "total": len(executions),
        "timestamp": _now(),
    }


# ── Diagnostics ───────────────────────────────────────────────────────

@app.get("/api/backend/debug-logs")
async def debug_logs(authorization: str | None = Header(default=None)):
    """Explain why a user may not see their execution logs."""
    if not config.ENABLE_DEBUG_ENDPOINTS:
        raise HTTPException(status_code=404, detail="Not Found")

    def _collect() -> dict:
        user_tenant = None
        token = _bearer_token(authorization)
        if token:
            _, user_tenant = client_db.tenant_for_token(token)
        total = execution_db.count_logs()
        unscoped = execution_db.count_unscoped_logs()
        tenants = execution_db.distinct_tenants()
        recent = execution_db.recent_logs(10)
        return {
            "user": {"client_id": user_tenant},
            "database": {
                "total_execution_logs": total,
                "logs_without_client_id": unscoped,
                "logs_with_client_id": total - unscoped,
                "client_ids_in_logs": sorted(tenants),
            },
            "recent_logs": [
                {**_serialize(r), "execution_id": short_id(r.get("execution_id"))} for r in recent
            ],
            "client_id_found": bool(user_tenant and user_tenant in tenants),
            "diagnosis": diagnose(total, unscoped, user_tenant, tenants),
        }

    loop = asyncio.get_running_loop()
    try:
        debug = await loop.run_in_executor(None, _collect)
    except Exception as e:
        log.error("[DEBUG LOGS] %s", e)
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    return {"success": True, "debug": debug, "timestamp": _now()}


# ── WhatsApp webhook ──────────────────────────────────────────────────

@app.get("/webhook")
async def verify_webhook(request: Request):
    params = request.query_params
    mode = params.get("hub.mode")
    token = params.get("hub.verify_token")
    challenge = params.get("hub.challenge")
    if mode == "subscribe" and challenge and config.META_VERIFY_TOKEN and token == config.META_VERIFY_TOKEN:
        log.info("Webhook verified")
        return PlainTextResponse(challenge)
    log.warning("Webhook verification failed (mode=%s)", mode)
    return PlainTextResponse("Verification failed", status_code=403)


@app.post("/webhook", response_model=WebhookAck)
async def receive_webhook(request: Request, background_tasks: BackgroundTasks):
    """Acknowledge the delivery and process it after the response."""
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")

    background_tasks.add_task(_process_webhook, payload, request.app.state.log_writer)
    return WebhookAck(status="received", message="Webhook accepted for processing")


def _process_webhook(payload: dict, executor: ThreadPoolExecutor) -> dict:
    logger = create_execution_logger(executor=executor)
    lookup = client_db.tenant_for_phone_number_id if pg.is_configured() else None
    result = run_chatbot_flow(payload, logger, tenant_lookup=lookup)
    log.info("Webhook processed: execution=%s status=%s", result["execution_id"], result["status"])
    return result


def _serialize(obj: Any) -> Any:
    """Make a dict JSON-serializable (handle datetimes, Decimals, etc)."""
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_serialize(v) for v in obj]
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    return obj
