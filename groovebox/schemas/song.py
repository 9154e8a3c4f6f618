from __future__ import annotations

from datetime import datetime
from typing import Optional

from groovebox.schemas.base import CamelModel
from groovebox.schemas.room import TrackOut


class UploadedSongOut(TrackOut):
    filename: str
    size: int
    uploaded_at: datetime
    room_code: Optional[str] = None


class SongUploadOut(CamelModel):
    success: bool
    song: UploadedSongOut
    message: str
