"""
sankalpa/api/realtime.py
WebSocket change feed for one account.

Read-only socket: on connect the client receives the current snapshot, then
every committed change. Mutations go through the REST endpoints.
"""

from datetime import datetime, timezone
from uuid import uuid4
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from sankalpa.core.errors import AppError
from sankalpa.core.logging import log_event

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/v1/ws/accounts/{account_id}")
async def account_feed(websocket: WebSocket, account_id: str):
    """
    Events emitted:
    - account.snapshot (on connect and after every committed write)
    - pong (reply to {"type": "ping"})
    """
    await websocket.accept()
    request_id = websocket.headers.get("X-Request-Id") or str(uuid4())
    services = websocket.app.state.services
    hub = websocket.app.state.hub

    try:
        account, _ = await run_in_threadpool(services.accounts.load, account_id)
    except AppError as exc:
        await _reject_and_close(websocket, request_id, exc.code, exc.message)
        return

    if not await hub.register(account_id, websocket):
        log_event("info", "ws.limit.account", request_id=request_id, account_id=account_id, event_type="ws.limit.account")
        await _reject_and_close(websocket, request_id, "ws_limit", "Account socket limit exceeded")
        return

    log_event("info", "ws.connected", request_id=request_id, account_id=account_id, event_type="ws.connected")
    try:
        await websocket.send_json({"type": "account.snapshot", "data": services.accounts.view(account)})
        while True:
            raw_message = await websocket.receive_text()
            try:
                data = json.loads(raw_message)
            except ValueError:
                logger.debug(f"[WS] Ignoring non-JSON message for account {account_id}")
                continue
            if isinstance(data, dict) and data.get("type") == "ping":
                await websocket.send_json({
                    "type": "pong",
                    "ts": datetime.now(timezone.utc).isoformat(),
                    "request_id": request_id,
                })
    except WebSocketDisconnect:
        log_event("info", "ws.disconnected", request_id=request_id, account_id=account_id, event_type="ws.disconnected")
    finally:
        await hub.unregister(account_id, websocket)


async def _reject_and_close(websocket: WebSocket, request_id: str, code: str, message: str):
    try:
        await websocket.send_json({
            "type": "error",
            "code": code,
            "message": message,
            "request_id": request_id,
        })
        await websocket.close(code=1008, reason=message)
    except RuntimeError:
        logger.debug("[WS] Socket already closed while rejecting")
