from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Protocol

from pydantic import BaseModel, ValidationError

from groovebox.core.errors import AlreadyInRoom, CoordinatorError, NotAMember, RoomNotFound
from groovebox.models.room import Participant, Room, RoomSettings, RoomSnapshot, Track
from groovebox.runtime.presence import SessionTable
from groovebox.runtime.registry import RoomRegistry
from groovebox.schemas.room import ParticipantOut, RoomOut, SettingsOut, TrackIn, TrackOut
from groovebox.schemas.ws import (
    CLIENT_MESSAGES,
    AddToRoomPlaylistIn,
    ChatMessageOut,
    ChatSendIn,
    ClientToServer,
    CreateRoomIn,
    ErrorOut,
    JoinErrorOut,
    JoinRoomIn,
    ParticipantJoinedOut,
    ParticipantLeftOut,
    RemoveFromRoomPlaylistIn,
    RoomClosedOut,
    RoomCreatedOut,
    RoomJoinedOut,
    RoomPlaylistUpdatedOut,
    RoomSettingsUpdatedOut,
    SyncPlaybackCommandOut,
    SyncPlaybackIn,
    UpdateRoomSettingsIn,
)
from groovebox.services.playback_policy import ensure_can_sync


HOST_DISPLAY_NAME = "Host"
GUEST_DISPLAY_NAME = "Anonymous"
HOST_LEFT_MESSAGE = "Host has left the room"
IDLE_CLOSED_MESSAGE = "Room was closed due to inactivity"


class Transport(Protocol):
    """Delivers one outbound event to one connected participant."""

    async def send(self, participant_id: str, message: BaseModel) -> None: ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------- wire <-> domain helpers ----------

def track_out(track: Track) -> TrackOut:
    return TrackOut(
        id=track.id,
        title=track.title,
        artist=track.artist,
        album=track.album,
        duration=track.duration,
        locator=track.locator,
    )


def to_track(track: TrackIn) -> Track:
    return Track(
        id=track.id,
        title=track.title,
        artist=track.artist,
        album=track.album,
        duration=track.duration,
        locator=track.locator,
    )


def participant_out(participant: Participant) -> ParticipantOut:
    return ParticipantOut(
        id=participant.id,
        display_name=participant.display_name,
        is_host=participant.is_host,
        joined_at=participant.joined_at,
    )


def settings_out(settings: RoomSettings) -> SettingsOut:
    return SettingsOut(playback_mode=settings.playback_mode, sync_control=settings.sync_control)


def build_room_out(snapshot: RoomSnapshot) -> RoomOut:
    return RoomOut(
        code=snapshot.code,
        name=snapshot.name,
        description=snapshot.description,
        playlist=[track_out(t) for t in snapshot.playlist],
        settings=settings_out(snapshot.settings),
        participants=[participant_out(p) for p in snapshot.participants],
        host_id=snapshot.host_id,
        created_at=snapshot.created_at,
        participant_count=len(snapshot.participants),
    )


def _display_name(raw: Optional[str], default: str) -> str:
    return (raw or "").strip() or default


class EventRouter:
    """
    Turns inbound client events into room operations and fans the results out.

    Every mutation of a room and the events it produces happen while holding
    that room's lock, so members observe events in the order the room changed.
    The router owns the connection -> room bindings; the registry and rooms never
    see a transport.
    """

    def __init__(
        self,
        rooms: RoomRegistry,
        transport: Transport,
        sessions: Optional[SessionTable] = None,
    ):
        self.rooms = rooms
        self.transport = transport
        self.sessions = sessions if sessions is not None else SessionTable()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        self._handlers = {
            CreateRoomIn: self.create_room,
            JoinRoomIn: self.join_room,
            UpdateRoomSettingsIn: self.update_settings,
            AddToRoomPlaylistIn: self.add_tracks,
            RemoveFromRoomPlaylistIn: self.remove_tracks,
            SyncPlaybackIn: self.sync_playback,
            ChatSendIn: self.chat,
        }

    # ---------- entry points ----------

    async def handle(self, participant_id: str, data: Any) -> None:
        """Decode a raw inbound frame and dispatch it."""
        if not isinstance(data, dict):
            self.logger.debug("Dropping non-object frame from %s", participant_id)
            return
        event_type = data.get("type")
        model = CLIENT_MESSAGES.get(event_type) if isinstance(event_type, str) else None
        if model is None:
            self.logger.debug("Ignoring unknown event %r from %s", event_type, participant_id)
            return
        try:
            message = model.model_validate(data)
        except ValidationError as exc:
            self.logger.info("Invalid %s payload from %s: %s", event_type, participant_id, exc.errors())
            await self._reject(participant_id, event_type, f"Invalid {event_type} payload")
            return
        await self.dispatch(participant_id, message)

    async def dispatch(self, participant_id: str, message: ClientToServer) -> None:
        handler = self._handlers[type(message)]
        try:
            await handler(participant_id, message)
        except CoordinatorError as exc:
            self.logger.info("Rejected %s from %s: %s", message.type, participant_id, exc.message)
            await self._reject(participant_id, message.type, exc.message)

    async def disconnect(self, participant_id: str) -> None:
        """Release the connection's membership. Safe to call repeatedly."""
        session = self.sessions.unbind(participant_id)
        if session is None:
            return
        room = self.rooms.get(session.room_code)
        if room is None:
            return

        async with room.lock:
            result = room.leave(participant_id)
            if result.participant is None:
                return
            if result.closed:
                self._teardown(room)
                await self._broadcast(result.remaining, RoomClosedOut(message=HOST_LEFT_MESSAGE))
                self.logger.info("Room %s closed by host", room.code)
            else:
                await self._broadcast(
                    result.remaining,
                    ParticipantLeftOut(
                        participant_id=participant_id,
                        participant_count=room.participant_count,
                    ),
                )
                self.logger.info("%s left room %s", participant_id, room.code)

    async def close_room(self, code: str, *, reason: str) -> bool:
        """Administratively close a room, telling every member why."""
        room = self.rooms.get(code)
        if room is None:
            return False
        async with room.lock:
            if room.closed:
                return False
            await self._close_locked(room, reason)
        self.logger.info("Room %s closed: %s", code, reason)
        return True

    async def reap_idle_rooms(self, max_idle_seconds: float, *, now: Optional[datetime] = None) -> list[str]:
        """
        Close every room that has seen no activity for ``max_idle_seconds``.
        Idleness is re-checked under the room lock, so a room touched while we
        waited for it survives.
        """
        now = now or _utc_now()
        reaped: list[str] = []
        for room in self.rooms.idle_rooms(max_idle_seconds, now=now):
            async with room.lock:
                if room.closed or room.idle_for(now) < max_idle_seconds:
                    continue
                await self._close_locked(room, IDLE_CLOSED_MESSAGE)
            self.logger.info("Room %s reaped after %.0fs idle", room.code, room.idle_for(now))
            reaped.append(room.code)
        return reaped

    # ---------- handlers ----------

    async def create_room(self, participant_id: str, msg: CreateRoomIn) -> None:
        self._ensure_unbound(participant_id)
        host = Participant(
            id=participant_id,
            display_name=_display_name(msg.display_name, HOST_DISPLAY_NAME),
            is_host=True,
        )
        room = self.rooms.create_room(
            host=host,
            name=msg.name,
            description=msg.description,
            initial_playlist=[to_track(t) for t in msg.initial_playlist],
        )
        self.sessions.bind(participant_id, room.code)
        async with room.lock:
            await self._send(
                participant_id,
                RoomCreatedOut(room=build_room_out(room.snapshot()), user=participant_out(host)),
            )

    async def join_room(self, participant_id: str, msg: JoinRoomIn) -> None:
        self._ensure_unbound(participant_id)
        room = self.rooms.get(msg.room_code.strip().upper())
        if room is None:
            raise RoomNotFound()
        participant = Participant(
            id=participant_id,
            display_name=_display_name(msg.display_name, GUEST_DISPLAY_NAME),
        )
        async with room.lock:
            # raises RoomNotFound if the room was destroyed while we waited
            snapshot = room.join(participant)
            self.sessions.bind(participant_id, room.code)
            await self._send(
                participant_id,
                RoomJoinedOut(room=build_room_out(snapshot), user=participant_out(participant)),
            )
            await self._broadcast(
                room.member_ids(exclude=participant_id),
                ParticipantJoinedOut(
                    participant=participant_out(participant),
                    participant_count=room.participant_count,
                ),
            )
        self.logger.info("%s joined room %s as %s", participant_id, room.code, participant.display_name)

    async def update_settings(self, participant_id: str, msg: UpdateRoomSettingsIn) -> None:
        room = self._resolve_room(participant_id, msg.room_code)
        async with room.lock:
            self._ensure_live(room)
            settings = room.update_settings(participant_id, msg.settings.model_dump(exclude_none=True))
            await self._broadcast(room.member_ids(), RoomSettingsUpdatedOut(settings=settings_out(settings)))

    async def add_tracks(self, participant_id: str, msg: AddToRoomPlaylistIn) -> None:
        room = self._resolve_room(participant_id, msg.room_code)
        async with room.lock:
            self._ensure_live(room)
            playlist, by = room.add_tracks(participant_id, [to_track(t) for t in msg.tracks])
            await self._broadcast(
                room.member_ids(),
                RoomPlaylistUpdatedOut(
                    playlist=[track_out(t) for t in playlist],
                    added_by=by.display_name,
                    added_by_id=by.id,
                ),
            )

    async def remove_tracks(self, participant_id: str, msg: RemoveFromRoomPlaylistIn) -> None:
        room = self._resolve_room(participant_id, msg.room_code)
        async with room.lock:
            self._ensure_live(room)
            playlist, by = room.remove_tracks(participant_id, msg.track_ids)
            await self._broadcast(
                room.member_ids(),
                RoomPlaylistUpdatedOut(
                    playlist=[track_out(t) for t in playlist],
                    removed_by=by.display_name,
                    removed_by_id=by.id,
                ),
            )

    async def sync_playback(self, participant_id: str, msg: SyncPlaybackIn) -> None:
        room = self._resolve_room(participant_id, msg.room_code)
        async with room.lock:
            self._ensure_live(room)
            sender = room.require_member(participant_id)
            room.touch()
            if not ensure_can_sync(room.settings, is_host=sender.is_host):
                self.logger.debug("Room %s is in individual mode; not relaying %s", room.code, msg.action)
                return
            await self._broadcast(
                room.member_ids(exclude=participant_id),
                SyncPlaybackCommandOut(
                    action=msg.action,
                    song_id=msg.song_id,
                    current_time=msg.current_time,
                    is_playing=msg.is_playing,
                    controlled_by=sender.display_name,
                    controlled_by_id=sender.id,
                ),
            )

    async def chat(self, participant_id: str, msg: ChatSendIn) -> None:
        room = self._resolve_room(participant_id, msg.room_code)
        async with room.lock:
            self._ensure_live(room)
            sender = room.require_member(participant_id)
            room.touch()
            await self._broadcast(
                room.member_ids(),
                ChatMessageOut(
                    display_name=sender.display_name,
                    participant_id=sender.id,
                    message=msg.message,
                    timestamp=_utc_now(),
                ),
            )

    # ---------- internals ----------

    def _ensure_unbound(self, participant_id: str) -> None:
        if self.sessions.get(participant_id) is not None:
            raise AlreadyInRoom()

    def _resolve_room(self, participant_id: str, claimed_code: Optional[str]) -> Room:
        """The bound session is authoritative; a mismatching client code is refused."""
        session = self.sessions.get(participant_id)
        if session is None:
            raise NotAMember()
        if claimed_code and claimed_code.strip().upper() != session.room_code:
            raise NotAMember()
        room = self.rooms.get(session.room_code)
        if room is None:
            raise RoomNotFound()
        return room

    @staticmethod
    def _ensure_live(room: Room) -> None:
        if room.closed:
            raise RoomNotFound()

    async def _close_locked(self, room: Room, reason: str) -> None:
        # caller holds room.lock
        former = room.member_ids()
        self._teardown(room)
        await self._broadcast(former, RoomClosedOut(message=reason))

    def _teardown(self, room: Room) -> None:
        # caller holds room.lock
        for pid in room.member_ids():
            self.sessions.unbind(pid)
        for pid in self.sessions.in_room(room.code):
            self.sessions.unbind(pid)
        self.rooms.destroy(room.code)

    async def _reject(self, participant_id: str, event_type: str, message: str) -> None:
        if event_type == "join-room":
            await self._send(participant_id, JoinErrorOut(message=message))
        else:
            await self._send(participant_id, ErrorOut(message=message))

    async def _send(self, participant_id: str, message: BaseModel) -> None:
        await self.transport.send(participant_id, message)

    async def _broadcast(self, participant_ids: Iterable[str], message: BaseModel) -> None:
        for pid in list(participant_ids):
            await self.transport.send(pid, message)
