from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from groovebox.core import settings
from groovebox.runtime.registry import registry
from groovebox.services.event_router import EventRouter


logger = logging.getLogger(__name__)

router = APIRouter(tags=["rooms-ws"])


@dataclass
class ConnectionHub:
    """Live sockets keyed by connection id (which doubles as participant id)."""

    sockets: Dict[str, WebSocket] = field(default_factory=dict)

    def register(self, conn_id: str, websocket: WebSocket) -> None:
        self.sockets[conn_id] = websocket

    def unregister(self, conn_id: str) -> None:
        self.sockets.pop(conn_id, None)

    async def send(self, participant_id: str, message: BaseModel) -> None:
        """
        Send a pydantic model to one connection.
        Uses jsonable_encoder to safely serialize datetimes. A socket that fails
        is forgotten; its own loop delivers the disconnect.
        """
        ws = self.sockets.get(participant_id)
        if ws is None:
            return
        try:
            await ws.send_json(jsonable_encoder(message))
        except Exception:
            logger.warning("Dropping dead socket %s", participant_id)
            self.sockets.pop(participant_id, None)


hub = ConnectionHub()
event_router = EventRouter(registry, hub)


async def _cleanup_idle_rooms() -> None:
    """
    Background task: close rooms with no activity for ROOM_IDLE_TTL_SECONDS.
    """
    while True:
        await asyncio.sleep(settings.ROOM_REAP_INTERVAL_SECONDS)
        try:
            reaped = await event_router.reap_idle_rooms(settings.ROOM_IDLE_TTL_SECONDS)
        except Exception:
            logger.exception("Error cleaning up idle rooms")
            continue
        if reaped:
            logger.info("Reaped %d idle room(s): %s", len(reaped), ", ".join(reaped))


@router.websocket("/ws")
async def room_ws(websocket: WebSocket):
    await websocket.accept()

    conn_id = uuid.uuid4().hex
    hub.register(conn_id, websocket)
    logger.info("User connected: %s from %s", conn_id, websocket.client)

    try:
        while True:
            raw = await websocket.receive_text()

            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON frame from %s", conn_id)
                continue

            await event_router.handle(conn_id, data)

    except WebSocketDisconnect:
        pass
    finally:
        hub.unregister(conn_id)
        # the one and only disconnect for this connection
        await event_router.disconnect(conn_id)
        logger.info("User disconnected: %s", conn_id)
