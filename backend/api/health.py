"""
Health API.

Provides lightweight endpoints for operational monitoring without exposing secrets.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from backend.core.logging import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

root_router = APIRouter(tags=["health"])

REQUIRED_TABLES = [
    "users",
    "conversations",
    "messages",
    "audio_files",
    "usage_tracking",
    "billing_events",
]


@root_router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@root_router.get("/readyz")
def readyz(request: Request):
    """Readiness check: DB connectivity + required tables."""
    db = request.app.state.db
    try:
        if not db.check_connection():
            return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

        # Table existence probe (non-fatal per-table)
        inspector = inspect(db.engine)
        missing = [t for t in REQUIRED_TABLES if not inspector.has_table(t)]
        if missing:
            detail = f"missing tables: {', '.join(missing)}"
            logger.warning(f"[readyz] {detail}")
            return JSONResponse(status_code=503, content={"status": "error", "detail": detail})

        return {"status": "ok"}
    except Exception as e:
        logger.error(f"[readyz] readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})
