"""
Configuration — loads settings from environment / .env file.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


# Postgres
DATABASE_URL = os.getenv("DATABASE_URL", "")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Auth / access
DISABLE_AUTH = _flag("DISABLE_AUTH")
ENABLE_DEBUG_ENDPOINTS = _flag("ENABLE_DEBUG_ENDPOINTS")

# WhatsApp webhook
META_VERIFY_TOKEN = os.getenv("META_VERIFY_TOKEN", "")

# Execution log stream
STREAM_DEFAULT_LIMIT = 100
STREAM_MAX_LIMIT = 500

# Max characters of a payload shown in local log lines
LOG_PREVIEW_CHARS = 200

# Background threads used for fire-and-forget log writes
LOG_WRITER_THREADS = int(os.getenv("LOG_WRITER_THREADS", "4"))
