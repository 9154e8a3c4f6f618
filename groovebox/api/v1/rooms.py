from __future__ import annotations

from fastapi import APIRouter, HTTPException, Response, status

from groovebox.api.v1.ws_rooms import event_router
from groovebox.runtime.registry import registry
from groovebox.schemas.room import RoomOut, RoomStatsOut
from groovebox.services.event_router import build_room_out

router = APIRouter()


@router.get("", response_model=RoomStatsOut)
async def list_rooms() -> RoomStatsOut:
    return RoomStatsOut(
        total_rooms=len(registry),
        total_users=len(event_router.sessions),
        rooms=registry.codes(),
    )


@router.get("/{room_code}", response_model=RoomOut)
async def get_room(room_code: str) -> RoomOut:
    room = registry.get(room_code.upper())
    if room is None:
        raise HTTPException(status_code=404, detail="room not found")
    return build_room_out(room.snapshot())


@router.delete("/{room_code}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_room(room_code: str) -> Response:
    """
    Close a room (for debugging purposes).
    Every member receives room-closed and the code is freed.
    """
    closed = await event_router.close_room(room_code.upper(), reason="Room was closed by the server")
    if not closed:
        raise HTTPException(status_code=404, detail="room not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
