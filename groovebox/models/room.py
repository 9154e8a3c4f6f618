from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Iterable, Literal, Optional

from groovebox.core.errors import NotAMember, RoomNotFound, Unauthorized


PlaybackMode = Literal["individual", "sync"]
SyncControl = Literal["host-only", "anyone"]

DEFAULT_ROOM_NAME = "Music Room"
DEFAULT_ROOM_DESCRIPTION = "No description"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Track:
    """A playlist entry. Identity is ``id``; everything else is display metadata."""

    id: str
    title: str = "Unknown Title"
    artist: str = "Unknown Artist"
    album: str = "Unknown Album"
    duration: float = 0.0
    locator: Optional[str] = None  # opaque, handed to the streaming layer as-is


@dataclass
class Participant:
    id: str
    display_name: str
    is_host: bool = False
    joined_at: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True)
class RoomSettings:
    playback_mode: PlaybackMode = "individual"
    sync_control: SyncControl = "host-only"

    def merged(self, patch: dict) -> RoomSettings:
        """Shallow merge; keys missing from ``patch`` keep their current value."""
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in patch.items() if k in known and v is not None})


@dataclass(frozen=True)
class RoomSnapshot:
    code: str
    name: str
    description: str
    playlist: tuple[Track, ...]
    settings: RoomSettings
    participants: tuple[Participant, ...]
    host_id: str
    created_at: datetime


@dataclass
class LeaveResult:
    participant: Optional[Participant]
    closed: bool
    remaining: list[str]


@dataclass
class Room:
    code: str
    host_id: str
    name: str = DEFAULT_ROOM_NAME
    description: str = DEFAULT_ROOM_DESCRIPTION
    playlist: list[Track] = field(default_factory=list)
    settings: RoomSettings = field(default_factory=RoomSettings)
    participants: dict[str, Participant] = field(default_factory=dict)

    created_at: datetime = field(default_factory=_utc_now)
    last_activity_at: datetime = field(default_factory=_utc_now)
    closed: bool = False

    # Serializes every read-modify-write (and its fan-out) on this room.
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    # ---------- membership ----------

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    def is_member(self, participant_id: str) -> bool:
        return participant_id in self.participants

    def require_member(self, participant_id: str) -> Participant:
        participant = self.participants.get(participant_id)
        if participant is None:
            raise NotAMember()
        return participant

    def member_ids(self, *, exclude: Optional[str] = None) -> list[str]:
        return [pid for pid in self.participants if pid != exclude]

    def join(self, participant: Participant) -> RoomSnapshot:
        if self.closed:
            raise RoomNotFound()
        participant.is_host = participant.id == self.host_id
        self.participants[participant.id] = participant
        self.touch()
        return self.snapshot()

    def leave(self, participant_id: str) -> LeaveResult:
        """
        Remove a participant. When the host leaves the room is closed and every
        remaining member is returned so the caller can notify them.
        """
        participant = self.participants.pop(participant_id, None)
        if participant is None:
            return LeaveResult(participant=None, closed=self.closed, remaining=self.member_ids())
        self.touch()
        if participant_id == self.host_id:
            return LeaveResult(participant=participant, closed=True, remaining=self.close())
        return LeaveResult(participant=participant, closed=False, remaining=self.member_ids())

    def close(self) -> list[str]:
        """Mark the room dead and drop all members. Returns the former member ids."""
        former = self.member_ids()
        self.participants.clear()
        self.closed = True
        return former

    # ---------- settings ----------

    def update_settings(self, requester_id: str, patch: dict) -> RoomSettings:
        if requester_id != self.host_id or not self.is_member(requester_id):
            raise Unauthorized("Unauthorized to update room settings")
        self.settings = self.settings.merged(patch)
        self.touch()
        return self.settings

    # ---------- playlist ----------

    def add_tracks(self, requester_id: str, tracks: Iterable[Track]) -> tuple[list[Track], Participant]:
        participant = self.require_member(requester_id)
        seen = {t.id for t in self.playlist}
        for track in tracks:
            if track.id in seen:
                continue
            seen.add(track.id)
            self.playlist.append(track)
        self.touch()
        return list(self.playlist), participant

    def remove_tracks(self, requester_id: str, track_ids: Iterable[str]) -> tuple[list[Track], Participant]:
        participant = self.require_member(requester_id)
        drop = set(track_ids)
        self.playlist = [t for t in self.playlist if t.id not in drop]
        self.touch()
        return list(self.playlist), participant

    def find_track(self, track_id: str) -> Optional[Track]:
        for track in self.playlist:
            if track.id == track_id:
                return track
        return None

    # ---------- views ----------

    def snapshot(self) -> RoomSnapshot:
        return RoomSnapshot(
            code=self.code,
            name=self.name,
            description=self.description,
            playlist=tuple(self.playlist),
            settings=self.settings,
            participants=tuple(self.participants.values()),
            host_id=self.host_id,
            created_at=self.created_at,
        )

    def idle_for(self, now: datetime) -> float:
        return (now - self.last_activity_at).total_seconds()

    def touch(self) -> None:
        """Record activity; rooms untouched for longer than the idle TTL get reaped."""
        self.last_activity_at = _utc_now()


def dedupe_tracks(tracks: Iterable[Track]) -> list[Track]:
    """First occurrence of each id wins; order is preserved."""
    out: list[Track] = []
    seen: set[str] = set()
    for track in tracks:
        if track.id in seen:
            continue
        seen.add(track.id)
        out.append(track)
    return out
