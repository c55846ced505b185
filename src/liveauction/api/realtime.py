"""WebSocket endpoint joining viewers to their tenant's room."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, status

from liveauction.broadcast import RoomHub, room_name
from liveauction.broadcast.events import (
    ERROR,
    HEARTBEAT,
    HEARTBEAT_ACK,
    JOIN_ROOM,
    JOINED_ROOM,
    LEAVE_ROOM,
    PING,
    PONG,
)
from liveauction.errors import AccessDenied
from liveauction.tenancy import PrincipalResolver


logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.time() * 1000.0


def _heartbeat_ack(data: Any) -> dict[str, Any]:
    server_time = _now_ms()
    sent = data.get("timestamp") if isinstance(data, dict) else None
    latency = None
    if isinstance(sent, (int, float)) and not isinstance(sent, bool):
        latency = max(0.0, server_time - sent)
    return {"timestamp": sent, "serverTime": server_time, "latency": latency}


def register_realtime(app: FastAPI, hub: RoomHub, resolver: PrincipalResolver) -> None:
    @app.websocket("/ws")
    async def auction_socket(websocket: WebSocket) -> None:
        try:
            principal = resolver.resolve(websocket.headers, websocket.query_params)
        except AccessDenied:
            principal = None
        if principal is None:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        await websocket.accept()
        hub.bind_loop(asyncio.get_running_loop())
        joined: str | None = None
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    await websocket.send_json({"event": ERROR, "data": {"message": "Malformed message"}})
                    continue
                if not isinstance(message, dict):
                    await websocket.send_json({"event": ERROR, "data": {"message": "Malformed message"}})
                    continue
                event = message.get("event")
                data = message.get("data")

                if event == JOIN_ROOM:
                    tenant_id = str(data or "")
                    if tenant_id != principal.tenant_id:
                        logger.warning(
                            "Tenant %s tried to join room of %s", principal.tenant_id, tenant_id or "<empty>"
                        )
                        await websocket.send_json(
                            {"event": ERROR, "data": {"message": "Not allowed to join this auction"}}
                        )
                        continue
                    if joined is None:
                        hub.join(tenant_id, websocket)
                        joined = tenant_id
                    await websocket.send_json({"event": JOINED_ROOM, "data": {"room": room_name(tenant_id)}})
                elif event == LEAVE_ROOM:
                    if joined is not None:
                        hub.leave(joined, websocket)
                        joined = None
                elif event == HEARTBEAT:
                    await websocket.send_json({"event": HEARTBEAT_ACK, "data": _heartbeat_ack(data)})
                elif event == PING:
                    await websocket.send_json({"event": PONG, "data": {"serverTime": _now_ms()}})
                else:
                    await websocket.send_json(
                        {"event": ERROR, "data": {"message": f"Unknown event {event!r}"}}
                    )
        except WebSocketDisconnect:
            logger.debug("Socket for tenant %s disconnected", principal.tenant_id)
        finally:
            hub.drop(websocket)
