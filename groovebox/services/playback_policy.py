"""Who may drive synchronized playback in a room."""

from __future__ import annotations

from groovebox.core.errors import Unauthorized
from groovebox.models.room import RoomSettings


SYNC_ACTIONS = ("play", "pause", "seek", "track-change")


def ensure_can_sync(settings: RoomSettings, *, is_host: bool) -> bool:
    """
    Return True when a sync command from this participant should be broadcast.

    In ``individual`` mode every client plays on its own, so nothing is relayed
    and no error is raised. Under ``sync`` + ``host-only`` a non-host command is
    rejected with Unauthorized.
    """
    if settings.playback_mode != "sync":
        return False
    if settings.sync_control == "host-only" and not is_host:
        raise Unauthorized("Only host can control synchronized playback")
    return True
