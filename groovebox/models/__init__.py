from groovebox.models.room import (
    LeaveResult,
    Participant,
    Room,
    RoomSettings,
    RoomSnapshot,
    Track,
    dedupe_tracks,
)

__all__ = [
    "LeaveResult",
    "Participant",
    "Room",
    "RoomSettings",
    "RoomSnapshot",
    "Track",
    "dedupe_tracks",
]
