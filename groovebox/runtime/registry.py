from __future__ import annotations

import logging
import random
import string
import threading
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from groovebox.models.room import (
    DEFAULT_ROOM_DESCRIPTION,
    DEFAULT_ROOM_NAME,
    Participant,
    Room,
    Track,
    dedupe_tracks,
)


logger = logging.getLogger(__name__)

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
ROOM_CODE_LENGTH = 6


def generate_room_code() -> str:
    return "".join(random.choices(ROOM_CODE_ALPHABET, k=ROOM_CODE_LENGTH))


class RoomRegistry:
    """
    Process-wide set of live rooms keyed by room code.

    Code allocation (check + reserve) happens under a single lock so concurrent
    creators never receive the same code. A code is free again as soon as its
    room is destroyed.
    """

    def __init__(self, code_factory: Callable[[], str] = generate_room_code):
        self._rooms: dict[str, Room] = {}
        self._lock = threading.Lock()
        self._code_factory = code_factory

    # ---------- public API ----------

    def create_room(
        self,
        *,
        host: Participant,
        name: Optional[str] = None,
        description: Optional[str] = None,
        initial_playlist: Iterable[Track] = (),
    ) -> Room:
        host.is_host = True
        with self._lock:
            code = self._fresh_code()
            room = Room(
                code=code,
                host_id=host.id,
                name=(name or "").strip() or DEFAULT_ROOM_NAME,
                description=(description or "").strip() or DEFAULT_ROOM_DESCRIPTION,
                playlist=dedupe_tracks(initial_playlist),
                participants={host.id: host},
            )
            self._rooms[code] = room
        logger.info("Room created: %s by %s", code, host.id)
        return room

    def get(self, code: Optional[str]) -> Room | None:
        if not code:
            return None
        return self._rooms.get(code)

    def destroy(self, code: str) -> Room | None:
        """Remove a room and free its code. Destroying an absent code is a no-op."""
        with self._lock:
            room = self._rooms.pop(code, None)
        if room is None:
            return None
        room.close()
        logger.info("Room %s destroyed", code)
        return room

    def idle_rooms(self, max_idle_seconds: float, *, now: Optional[datetime] = None) -> list[Room]:
        """
        Rooms with no recorded activity for at least ``max_idle_seconds``.
        Nothing is destroyed here; the caller closes them so members can be told.
        """
        now = now or datetime.now(timezone.utc)
        with self._lock:
            return [room for room in self._rooms.values() if room.idle_for(now) >= max_idle_seconds]

    def codes(self) -> list[str]:
        return list(self._rooms.keys())

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, code: object) -> bool:
        return code in self._rooms

    def clear(self) -> None:
        with self._lock:
            rooms = list(self._rooms.values())
            self._rooms.clear()
        for room in rooms:
            room.close()

    # ---------- internals ----------

    def _fresh_code(self) -> str:
        # caller holds self._lock
        while True:
            code = self._code_factory()
            if code not in self._rooms:
                return code


registry = RoomRegistry()
