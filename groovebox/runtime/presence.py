from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ParticipantSession:
    """Binding of one connection to the room it created or joined."""

    participant_id: str
    room_code: str


class SessionTable:
    """participant_id -> ParticipantSession. Absent means UNBOUND."""

    def __init__(self) -> None:
        self._sessions: dict[str, ParticipantSession] = {}

    def bind(self, participant_id: str, room_code: str) -> ParticipantSession:
        session = ParticipantSession(participant_id=participant_id, room_code=room_code)
        self._sessions[participant_id] = session
        return session

    def get(self, participant_id: str) -> Optional[ParticipantSession]:
        return self._sessions.get(participant_id)

    def unbind(self, participant_id: str) -> Optional[ParticipantSession]:
        return self._sessions.pop(participant_id, None)

    def in_room(self, room_code: str) -> list[str]:
        return [s.participant_id for s in self._sessions.values() if s.room_code == room_code]

    def __len__(self) -> int:
        return len(self._sessions)

    def clear(self) -> None:
        self._sessions.clear()
