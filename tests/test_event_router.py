import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from groovebox.runtime.registry import RoomRegistry
from groovebox.services.event_router import EventRouter


def _track(track_id: str) -> dict:
    return {"id": track_id, "title": track_id.upper()}


async def _create(router, pid="host", **payload):
    await router.handle(pid, {"type": "create-room", **payload})
    return router.sessions.get(pid).room_code


async def _join(router, code, pid, name=None):
    await router.handle(pid, {"type": "join-room", "roomCode": code, "displayName": name})


async def _sync_room(router, transport, *, control="host-only"):
    code = await _create(router)
    await _join(router, code, "g1", "Guest One")
    await _join(router, code, "g2", "Guest Two")
    await router.handle("host", {
        "type": "update-room-settings",
        "roomCode": code,
        "settings": {"playbackMode": "sync", "syncControl": control},
    })
    transport.clear()
    return code


@pytest.mark.asyncio
async def test_full_session_scenario(transport):
    rooms = RoomRegistry(code_factory=lambda: "ABC123")
    router = EventRouter(rooms, transport)

    code = await _create(router, name="Friday")
    assert code == "ABC123"
    assert transport.last("host").type == "room-created"

    await router.handle("host", {"type": "add-to-room-playlist", "roomCode": code,
                                 "tracks": [_track("t1"), _track("t2")]})

    await _join(router, code, "guest", "Sam")
    joined = transport.last("guest")
    assert joined.type == "room-joined"
    assert [t.id for t in joined.room.playlist] == ["t1", "t2"]

    await router.handle("guest", {"type": "add-to-room-playlist", "roomCode": code,
                                  "tracks": [_track("t2"), _track("t3")]})
    update = transport.last("host")
    assert update.type == "room-playlist-updated"
    assert [t.id for t in update.playlist] == ["t1", "t2", "t3"]
    assert update.added_by == "Sam"

    await router.disconnect("host")

    closed = transport.last("guest")
    assert closed.type == "room-closed"
    assert rooms.get("ABC123") is None
    assert router.sessions.get("guest") is None


@pytest.mark.asyncio
async def test_create_room_snapshot(router, transport):
    await router.handle("host", {
        "type": "create-room",
        "name": "Chill",
        "initialPlaylist": [{"_id": "x", "filePath": "/storage/songs/x.mp3"}],
    })
    created = transport.last("host")
    assert created.room.name == "Chill"
    assert created.room.description == "No description"
    assert created.room.playlist[0].locator == "/storage/songs/x.mp3"
    assert created.user.is_host is True
    assert created.user.display_name == "Host"
    assert created.room.participant_count == 1


@pytest.mark.asyncio
async def test_join_notifies_existing_members_only(router, transport):
    code = await _create(router)
    await _join(router, code, "g1", "Ana")

    assert transport.types("g1") == ["room-joined"]
    notice = transport.last("host")
    assert notice.type == "participant-joined"
    assert notice.participant.display_name == "Ana"
    assert notice.participant_count == 2


@pytest.mark.asyncio
async def test_join_defaults_display_name_and_normalizes_code(router, transport):
    code = await _create(router)
    await _join(router, code.lower(), "g1")
    joined = transport.last("g1")
    assert joined.user.display_name == "Anonymous"
    assert joined.user.is_host is False


@pytest.mark.asyncio
async def test_join_unknown_room_sends_join_error(router, transport):
    await _join(router, "ZZZZZZ", "g1")
    assert transport.types("g1") == ["join-error"]
    assert transport.last("g1").message == "Room not found"
    assert router.sessions.get("g1") is None


@pytest.mark.asyncio
async def test_join_racing_destroy_never_half_joins(router, rooms, transport):
    code = await _create(router)
    room = rooms.get(code)

    await room.lock.acquire()
    join = asyncio.create_task(_join(router, code, "g1"))
    await asyncio.sleep(0)  # join is now waiting on the room lock
    rooms.destroy(code)
    room.lock.release()
    await join

    assert transport.types("g1") == ["join-error"]
    assert "g1" not in room.participants
    assert router.sessions.get("g1") is None


@pytest.mark.asyncio
async def test_bound_connection_cannot_create_or_join_again(router, transport):
    code = await _create(router)
    other = await _create(router, pid="other-host")

    await router.handle("host", {"type": "create-room"})
    assert transport.last("host").type == "error"

    await _join(router, other, "host")
    assert transport.last("host").type == "join-error"
    assert router.sessions.get("host").room_code == code


@pytest.mark.asyncio
async def test_guest_disconnect_notifies_room(router, transport):
    code = await _create(router)
    await _join(router, code, "g1")
    await _join(router, code, "g2")
    transport.clear()

    await router.disconnect("g1")

    left = transport.last("host")
    assert left.type == "participant-left"
    assert left.participant_id == "g1"
    assert left.participant_count == 2
    assert transport.by_type()["participant-left"] == {"host", "g2"}


@pytest.mark.asyncio
async def test_host_disconnect_closes_room_for_everyone(router, rooms, transport):
    code = await _create(router)
    await _join(router, code, "g1")
    await _join(router, code, "g2")
    transport.clear()

    await router.disconnect("host")

    assert transport.by_type()["room-closed"] == {"g1", "g2"}
    assert transport.last("g1").message == "Host has left the room"
    assert code not in rooms
    assert len(router.sessions) == 0


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(router, transport):
    code = await _create(router)
    await _join(router, code, "g1")
    transport.clear()

    await router.disconnect("g1")
    await router.disconnect("g1")
    await router.disconnect("never-joined")

    assert transport.types("host") == ["participant-left"]


@pytest.mark.asyncio
async def test_settings_update_broadcasts_to_room(router, transport):
    code = await _create(router)
    await _join(router, code, "g1")
    transport.clear()

    await router.handle("host", {"type": "update-room-settings", "roomCode": code,
                                 "settings": {"playbackMode": "sync"}})

    assert transport.by_type()["room-settings-updated"] == {"host", "g1"}
    update = transport.last("g1")
    assert update.settings.playback_mode == "sync"
    assert update.settings.sync_control == "host-only"


@pytest.mark.asyncio
async def test_guest_cannot_update_settings(router, rooms, transport):
    code = await _create(router)
    await _join(router, code, "g1")
    transport.clear()

    await router.handle("g1", {"type": "update-room-settings", "roomCode": code,
                               "settings": {"playbackMode": "sync"}})

    assert transport.types("g1") == ["error"]
    assert transport.inbox("host") == []
    assert rooms.get(code).settings.playback_mode == "individual"


@pytest.mark.asyncio
async def test_invalid_settings_value_is_rejected(router, transport):
    code = await _create(router)
    await router.handle("host", {"type": "update-room-settings", "roomCode": code,
                                 "settings": {"playbackMode": "karaoke"}})
    assert transport.last("host").type == "error"


@pytest.mark.asyncio
async def test_host_only_sync_from_guest_is_unauthorized(router, transport):
    await _sync_room(router, transport)

    await router.handle("g1", {"type": "sync-playback", "action": "pause", "songId": "t1",
                               "currentTime": 12.5, "isPlaying": False})

    assert transport.types("g1") == ["error"]
    assert transport.last("g1").message == "Only host can control synchronized playback"
    assert transport.inbox("host") == []
    assert transport.inbox("g2") == []


@pytest.mark.asyncio
async def test_host_sync_reaches_everyone_but_host(router, transport):
    await _sync_room(router, transport)

    await router.handle("host", {"type": "sync-playback", "action": "seek", "songId": "t1",
                                 "currentTime": 42, "isPlaying": True})

    assert transport.by_type() == {"sync-playback-command": {"g1", "g2"}}
    command = transport.last("g1")
    assert command.action == "seek"
    assert command.current_time == 42
    assert command.controlled_by == "Host"


@pytest.mark.asyncio
async def test_anyone_sync_from_guest_is_relayed(router, transport):
    await _sync_room(router, transport, control="anyone")

    await router.handle("g1", {"type": "sync-playback", "action": "play", "songId": "t1"})

    assert transport.by_type() == {"sync-playback-command": {"host", "g2"}}


@pytest.mark.asyncio
async def test_individual_mode_drops_sync_silently(router, transport):
    code = await _create(router)
    await _join(router, code, "g1")
    transport.clear()

    await router.handle("host", {"type": "sync-playback", "action": "play"})

    assert transport.sent == []


@pytest.mark.asyncio
async def test_chat_includes_sender(router, transport):
    code = await _create(router)
    await _join(router, code, "g1", "Lee")
    transport.clear()

    await router.handle("g1", {"type": "chat-message", "roomCode": code, "message": "hi"})

    assert transport.by_type() == {"chat-message": {"host", "g1"}}
    msg = transport.last("host")
    assert msg.display_name == "Lee"
    assert msg.message == "hi"
    assert msg.timestamp is not None


@pytest.mark.asyncio
async def test_unbound_connection_is_not_a_member(router, transport):
    await _create(router)
    await router.handle("stranger", {"type": "chat-message", "message": "hello"})
    await router.handle("stranger", {"type": "add-to-room-playlist", "tracks": [_track("t1")]})

    assert transport.types("stranger") == ["error", "error"]
    assert transport.inbox("host")[-1].type == "room-created"


@pytest.mark.asyncio
async def test_room_code_must_match_session(router, rooms, transport):
    mine = await _create(router)
    theirs = await _create(router, pid="other-host")
    transport.clear()

    await router.handle("host", {"type": "add-to-room-playlist", "roomCode": theirs,
                                 "tracks": [_track("evil")]})

    assert transport.types("host") == ["error"]
    assert transport.inbox("other-host") == []
    assert rooms.get(theirs).playlist == []
    assert rooms.get(mine).playlist == []


@pytest.mark.asyncio
async def test_remove_from_playlist_accepts_song_ids_alias(router, transport):
    code = await _create(router, initialPlaylist=[_track("t1"), _track("t2"), _track("t3")])
    transport.clear()

    await router.handle("host", {"type": "remove-from-room-playlist", "roomCode": code,
                                 "songIds": ["t2", "missing"]})

    update = transport.last("host")
    assert [t.id for t in update.playlist] == ["t1", "t3"]
    assert update.removed_by == "Host"


@pytest.mark.asyncio
async def test_unknown_events_and_bad_frames_are_ignored(router, transport):
    await router.handle("x", {"type": "disconnect"})
    await router.handle("x", {"type": "launch-rockets"})
    await router.handle("x", ["not", "an", "object"])
    assert transport.sent == []


@pytest.mark.asyncio
async def test_invalid_payload_reports_error(router, transport):
    await router.handle("x", {"type": "join-room"})
    await router.handle("x", {"type": "chat-message", "message": ""})
    assert transport.types("x") == ["join-error", "error"]


@pytest.mark.asyncio
async def test_close_room_notifies_and_unbinds(router, rooms, transport):
    code = await _create(router)
    await _join(router, code, "g1")
    transport.clear()

    assert await router.close_room(code, reason="maintenance") is True
    assert await router.close_room(code, reason="maintenance") is False

    assert transport.by_type() == {"room-closed": {"host", "g1"}}
    assert code not in rooms
    assert len(router.sessions) == 0

    # freed connections may start over
    await _create(router)
    assert transport.last("host").type == "room-created"


@pytest.mark.asyncio
async def test_concurrent_playlist_edits_all_land(router, rooms, transport):
    code = await _create(router)
    for i in range(5):
        await _join(router, code, f"g{i}")

    await asyncio.gather(*[
        router.handle(f"g{i}", {"type": "add-to-room-playlist", "tracks": [_track(f"t{i}"), _track("shared")]})
        for i in range(5)
    ])

    ids = [t.id for t in rooms.get(code).playlist]
    assert sorted(ids) == sorted(["shared"] + [f"t{i}" for i in range(5)])
    assert ids.count("shared") == 1


def _age(room, days: int = 30) -> None:
    room.last_activity_at = datetime.now(timezone.utc) - timedelta(days=days)


@pytest.mark.asyncio
async def test_idle_room_with_host_present_is_reaped(router, rooms, transport):
    code = await _create(router)
    await _join(router, code, "g1")
    await router.disconnect("g1")
    _age(rooms.get(code))
    transport.clear()

    assert await router.reap_idle_rooms(1) == [code]

    assert transport.types("host") == ["room-closed"]
    assert transport.last("host").message == "Room was closed due to inactivity"
    assert code not in rooms
    assert len(router.sessions) == 0


@pytest.mark.asyncio
async def test_reap_notifies_every_member_and_frees_them(router, rooms, transport):
    code = await _create(router)
    await _join(router, code, "g1")
    await _join(router, code, "g2")
    _age(rooms.get(code))
    transport.clear()

    await router.reap_idle_rooms(60)

    assert transport.by_type() == {"room-closed": {"host", "g1", "g2"}}
    await _create(router, pid="g1")
    assert transport.last("g1").type == "room-created"


@pytest.mark.asyncio
async def test_recent_activity_keeps_room_alive(router, rooms, transport):
    quiet = await _create(router)
    chatty = await _create(router, pid="other-host")
    for code in (quiet, chatty):
        _age(rooms.get(code))

    await router.handle("other-host", {"type": "chat-message", "message": "still here"})

    assert await router.reap_idle_rooms(3600) == [quiet]
    assert chatty in rooms
    assert transport.inbox("other-host")[-1].type == "chat-message"


@pytest.mark.asyncio
async def test_room_touched_while_waiting_for_lock_survives_reap(router, rooms):
    code = await _create(router)
    room = rooms.get(code)
    _age(room)

    await room.lock.acquire()
    reap = asyncio.create_task(router.reap_idle_rooms(60))
    await asyncio.sleep(0)  # reap is now waiting on the room lock
    room.touch()
    room.lock.release()

    assert await reap == []
    assert code in rooms
