from fastapi import APIRouter
from groovebox.api.v1 import rooms, songs, ws_rooms

router = APIRouter()
router.include_router(rooms.router, prefix="/rooms", tags=["rooms"])
router.include_router(songs.router, tags=["songs"])
router.include_router(ws_rooms.router, tags=["rooms-ws"])
