from __future__ import annotations

from collections import defaultdict

import pytest
from fastapi.testclient import TestClient
from pydantic import BaseModel

from groovebox.api.v1.ws_rooms import event_router as app_event_router, hub
from groovebox.main import app
from groovebox.models import Participant
from groovebox.runtime.registry import RoomRegistry, registry as app_registry
from groovebox.services.event_router import EventRouter
from groovebox.services.storage_service import StorageService, get_storage


class RecordingTransport:
    """Collects every outbound event per participant instead of writing to sockets."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, BaseModel]] = []

    async def send(self, participant_id: str, message: BaseModel) -> None:
        self.sent.append((participant_id, message))

    def inbox(self, participant_id: str) -> list[BaseModel]:
        return [m for pid, m in self.sent if pid == participant_id]

    def types(self, participant_id: str) -> list[str]:
        return [m.type for m in self.inbox(participant_id)]

    def last(self, participant_id: str) -> BaseModel:
        return self.inbox(participant_id)[-1]

    def by_type(self) -> dict[str, set[str]]:
        out: dict[str, set[str]] = defaultdict(set)
        for pid, m in self.sent:
            out[m.type].add(pid)
        return out

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def rooms() -> RoomRegistry:
    return RoomRegistry()


@pytest.fixture
def router(rooms, transport) -> EventRouter:
    return EventRouter(rooms, transport)


@pytest.fixture
def host() -> Participant:
    return Participant(id="host-1", display_name="Host", is_host=True)


@pytest.fixture(autouse=True)
def reset_runtime():
    """The app keeps rooms and sessions in process-wide singletons."""
    app_registry.clear()
    app_event_router.sessions.clear()
    hub.sockets.clear()
    yield
    app_registry.clear()
    app_event_router.sessions.clear()
    hub.sockets.clear()


@pytest.fixture
def storage(tmp_path) -> StorageService:
    return StorageService(storage_dir=tmp_path / "uploads", base_url="/storage", max_bytes=64 * 1024)


@pytest.fixture
def client(storage):
    app.dependency_overrides[get_storage] = lambda: storage
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_storage, None)
