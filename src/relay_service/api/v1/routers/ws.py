from __future__ import annotations

import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from relay_service.api.deps import get_hub
from relay_service.application.exceptions import AuthError
from relay_service.infrastructure.ws.hub import Connection
from relay_service.infrastructure.ws.protocol import WsInbound

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


@router.websocket("/ws")
async def ws_relay(
    websocket: WebSocket,
    token: str | None = Query(None),
) -> None:
    hub = get_hub(websocket)
    try:
        connection = await hub.admit(websocket, token)
    except AuthError as exc:
        await _reject(websocket, exc)
        return

    try:
        await _read_loop(connection)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", connection.principal.principal_key)
    finally:
        await hub.remove(connection)


async def _reject(websocket: WebSocket, exc: AuthError) -> None:
    # Accept first so the client sees the application close code, not a 403 handshake.
    await websocket.accept()
    await websocket.close(code=exc.close_code, reason=exc.detail)


async def _read_loop(connection: Connection) -> None:
    ws = connection.websocket
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except Exception:
            await ws.send_json({"type": "error", "code": "invalid_payload"})
            continue

        if msg.type == "ping":
            await ws.send_json({"type": "pong"})
        else:
            await ws.send_json({"type": "error", "code": "unknown_type", "detail": msg.type})
