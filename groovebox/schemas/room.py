from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, ConfigDict, Field
from pydantic.alias_generators import to_camel

from groovebox.models.room import PlaybackMode, SyncControl
from groovebox.schemas.base import CamelModel


class TrackIn(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    # older player clients send "_id" and "filePath"
    id: str = Field(..., min_length=1, validation_alias=AliasChoices("id", "_id"))
    title: str = "Unknown Title"
    artist: str = "Unknown Artist"
    album: str = "Unknown Album"
    duration: float = Field(0.0, ge=0)
    locator: Optional[str] = Field(None, validation_alias=AliasChoices("locator", "filePath"))


class TrackOut(CamelModel):
    id: str
    title: str
    artist: str
    album: str
    duration: float
    locator: Optional[str] = None


class ParticipantOut(CamelModel):
    id: str
    display_name: str
    is_host: bool
    joined_at: datetime


class SettingsOut(CamelModel):
    playback_mode: PlaybackMode
    sync_control: SyncControl


class SettingsPatchIn(CamelModel):
    playback_mode: Optional[PlaybackMode] = None
    sync_control: Optional[SyncControl] = None


class RoomOut(CamelModel):
    code: str
    name: str
    description: str
    playlist: List[TrackOut] = []
    settings: SettingsOut
    participants: List[ParticipantOut] = []
    host_id: str
    created_at: datetime
    participant_count: int = 0


class RoomStatsOut(CamelModel):
    total_rooms: int
    total_users: int
    rooms: List[str] = []
