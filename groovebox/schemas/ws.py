from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import AliasChoices, Field

from groovebox.schemas.base import CamelModel
from groovebox.schemas.room import ParticipantOut, RoomOut, SettingsOut, SettingsPatchIn, TrackIn, TrackOut


SyncAction = Literal["play", "pause", "seek", "track-change"]


# ---- client -> server ----

class CreateRoomIn(CamelModel):
    type: Literal["create-room"] = "create-room"
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    initial_playlist: List[TrackIn] = []
    display_name: Optional[str] = Field(None, max_length=100)


class JoinRoomIn(CamelModel):
    type: Literal["join-room"] = "join-room"
    room_code: str = Field(..., min_length=1)
    display_name: Optional[str] = Field(None, max_length=100)


class UpdateRoomSettingsIn(CamelModel):
    type: Literal["update-room-settings"] = "update-room-settings"
    room_code: Optional[str] = None
    settings: SettingsPatchIn


class AddToRoomPlaylistIn(CamelModel):
    type: Literal["add-to-room-playlist"] = "add-to-room-playlist"
    room_code: Optional[str] = None
    tracks: List[TrackIn] = Field(..., validation_alias=AliasChoices("tracks", "songs"))


class RemoveFromRoomPlaylistIn(CamelModel):
    type: Literal["remove-from-room-playlist"] = "remove-from-room-playlist"
    room_code: Optional[str] = None
    track_ids: List[str] = Field(
        ..., validation_alias=AliasChoices("trackIds", "track_ids", "songIds")
    )


class SyncPlaybackIn(CamelModel):
    type: Literal["sync-playback"] = "sync-playback"
    room_code: Optional[str] = None
    action: SyncAction
    song_id: Optional[str] = None
    current_time: float = Field(0.0, ge=0)
    is_playing: bool = False


class ChatSendIn(CamelModel):
    type: Literal["chat-message"] = "chat-message"
    room_code: Optional[str] = None
    message: str = Field(..., min_length=1, max_length=1000)


ClientToServer = Union[
    CreateRoomIn,
    JoinRoomIn,
    UpdateRoomSettingsIn,
    AddToRoomPlaylistIn,
    RemoveFromRoomPlaylistIn,
    SyncPlaybackIn,
    ChatSendIn,
]

CLIENT_MESSAGES: dict[str, type[CamelModel]] = {
    "create-room": CreateRoomIn,
    "join-room": JoinRoomIn,
    "update-room-settings": UpdateRoomSettingsIn,
    "add-to-room-playlist": AddToRoomPlaylistIn,
    "remove-from-room-playlist": RemoveFromRoomPlaylistIn,
    "sync-playback": SyncPlaybackIn,
    "chat-message": ChatSendIn,
}


# ---- server -> clients ----

class RoomCreatedOut(CamelModel):
    type: Literal["room-created"] = "room-created"
    room: RoomOut
    user: ParticipantOut


class RoomJoinedOut(CamelModel):
    type: Literal["room-joined"] = "room-joined"
    room: RoomOut
    user: ParticipantOut


class JoinErrorOut(CamelModel):
    type: Literal["join-error"] = "join-error"
    message: str


class ParticipantJoinedOut(CamelModel):
    type: Literal["participant-joined"] = "participant-joined"
    participant: ParticipantOut
    participant_count: int


class ParticipantLeftOut(CamelModel):
    type: Literal["participant-left"] = "participant-left"
    participant_id: str
    participant_count: int


class RoomClosedOut(CamelModel):
    type: Literal["room-closed"] = "room-closed"
    message: str


class RoomSettingsUpdatedOut(CamelModel):
    type: Literal["room-settings-updated"] = "room-settings-updated"
    settings: SettingsOut


class RoomPlaylistUpdatedOut(CamelModel):
    type: Literal["room-playlist-updated"] = "room-playlist-updated"
    playlist: List[TrackOut] = []
    added_by: Optional[str] = None
    added_by_id: Optional[str] = None
    removed_by: Optional[str] = None
    removed_by_id: Optional[str] = None


class SyncPlaybackCommandOut(CamelModel):
    type: Literal["sync-playback-command"] = "sync-playback-command"
    action: SyncAction
    song_id: Optional[str] = None
    current_time: float
    is_playing: bool
    controlled_by: str
    controlled_by_id: str


class ChatMessageOut(CamelModel):
    type: Literal["chat-message"] = "chat-message"
    display_name: str
    participant_id: str
    message: str
    timestamp: datetime


class ErrorOut(CamelModel):
    type: Literal["error"] = "error"
    message: str


ServerToClient = Union[
    RoomCreatedOut,
    RoomJoinedOut,
    JoinErrorOut,
    ParticipantJoinedOut,
    ParticipantLeftOut,
    RoomClosedOut,
    RoomSettingsUpdatedOut,
    RoomPlaylistUpdatedOut,
    SyncPlaybackCommandOut,
    ChatMessageOut,
    ErrorOut,
]
