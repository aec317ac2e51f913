"""
Liveness and readiness probes.

Readiness checks the configured account store: a SQL store must answer a
trivial query and have its tables in place.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from sankalpa.core.database import check_connection
from sankalpa.store.sql import SqlAccountStore

logger = logging.getLogger("sankalpa")

router = APIRouter(tags=["health"])

REQUIRED_TABLES = ("accounts", "coin_ledger")


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz(request: Request):
    store = request.app.state.services.store
    if not isinstance(store, SqlAccountStore):
        return {"status": "ok", "store": "memory"}

    if not check_connection(store.engine):
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    inspector = inspect(store.engine)
    missing = [t for t in REQUIRED_TABLES if not inspector.has_table(t)]
    if missing:
        detail = f"missing tables: {', '.join(missing)}"
        logger.warning(f"[readyz] {detail}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": detail})
    return {"status": "ok", "store": "sql"}
