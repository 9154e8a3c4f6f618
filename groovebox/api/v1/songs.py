from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, Response, UploadFile

from groovebox.api.storage import build_range_response
from groovebox.runtime.registry import registry
from groovebox.schemas.song import SongUploadOut, UploadedSongOut
from groovebox.services.storage_service import StorageService, UploadTooLarge, get_storage

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/upload-song", response_model=SongUploadOut)
async def upload_song(
    song: Optional[UploadFile] = File(None),
    room_code: Optional[str] = Form(None, alias="roomCode"),
    song_id: Optional[str] = Form(None, alias="songId"),
    title: Optional[str] = Form(None),
    artist: Optional[str] = Form(None),
    album: Optional[str] = Form(None),
    duration: float = Form(0.0, ge=0),
    storage: StorageService = Depends(get_storage),
) -> SongUploadOut:
    """
    Store one audio file and describe it as a track.
    The track is not added to any playlist; clients do that over the socket.
    """
    if song is None or not song.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if not (song.content_type or "").startswith("audio/"):
        raise HTTPException(status_code=400, detail="Only audio files are allowed!")

    try:
        stored = await storage.save_upload(song)
    except UploadTooLarge as e:
        raise HTTPException(status_code=413, detail=str(e))

    uploaded = UploadedSongOut(
        id=song_id or uuid.uuid4().hex,
        title=title or song.filename,
        artist=artist or "Unknown Artist",
        album=album or "Unknown Album",
        duration=duration,
        locator=stored.url,
        filename=stored.key.rsplit("/", 1)[-1],
        size=stored.size,
        uploaded_at=datetime.now(timezone.utc),
        room_code=room_code,
    )
    return SongUploadOut(success=True, song=uploaded, message="Song uploaded successfully")


@router.get("/stream/{room_code}/{song_id}")
@router.head("/stream/{room_code}/{song_id}")
async def stream_song(
    room_code: str,
    song_id: str,
    request: Request,
    storage: StorageService = Depends(get_storage),
) -> Response:
    room = registry.get(room_code.upper())
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")

    track = room.find_track(song_id)
    if track is None or not track.locator:
        raise HTTPException(status_code=404, detail="Song not found or not available for streaming")

    path = storage.path_for_locator(track.locator)
    if path is None:
        raise HTTPException(status_code=404, detail="File not found on server")

    return await build_range_response(path, request, cache_control="public, max-age=3600")
