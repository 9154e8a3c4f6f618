#!/usr/bin/env python3
"""
WebSocket Test Client for GrooveBox rooms

Usage:
    python ws_test_client.py <server_url> [room_code] [display_name]

Examples:
    python ws_test_client.py ws://localhost:8000                 # create a new room
    python ws_test_client.py ws://localhost:8000 ABC123 Sam      # join room ABC123 as Sam
    python ws_test_client.py wss://your-server.com ABC123        # For HTTPS

Commands (while connected):
    - Type any message and press Enter to send a chat message
    - /add <id> [title]          add a track to the room playlist
    - /remove <id> [id ...]      remove tracks from the playlist
    - /mode individual|sync      change playback mode (host only)
    - /control host-only|anyone  change who may drive sync playback (host only)
    - /sync <action> [songId] [seconds]   play | pause | seek | track-change
    - Type 'quit' or 'exit' to disconnect
    - Press Ctrl+C to force disconnect
"""

import asyncio
import json
import sys
from datetime import datetime

try:
    import websockets
except ImportError:
    print("Error: 'websockets' package not installed.")
    print("Install it with: pip install 'groovebox[tools]'")
    sys.exit(1)


def format_timestamp(ts: str | datetime) -> str:
    """Format a timestamp for display."""
    if isinstance(ts, str):
        try:
            dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
            return dt.strftime("%H:%M:%S")
        except ValueError:
            return ts
    return ts.strftime("%H:%M:%S")


def format_playlist(playlist: list[dict]) -> str:
    if not playlist:
        return "   (empty playlist)"
    return "\n".join(
        f"   {i + 1:>2}. {t.get('title', '?')} - {t.get('artist', '?')} [{t.get('id')}]"
        for i, t in enumerate(playlist)
    )


def print_message(msg: dict) -> None:
    """Pretty print a received WebSocket message."""
    msg_type = msg.get("type", "unknown")

    print()
    print("=" * 60)

    if msg_type in ("room-created", "room-joined"):
        room = msg.get("room", {})
        user = msg.get("user", {})
        print("🏠 ROOM CREATED" if msg_type == "room-created" else "🚪 ROOM JOINED")
        print(f"   Code: {room.get('code', 'N/A')}")
        print(f"   Name: {room.get('name', 'N/A')} ({room.get('description', '')})")
        print(f"   You: {user.get('displayName', 'N/A')}{' (host)' if user.get('isHost') else ''}")
        settings = room.get("settings", {})
        print(f"   Playback: {settings.get('playbackMode')} / control: {settings.get('syncControl')}")
        print(f"   Participants: {room.get('participantCount', 'N/A')}")
        print(format_playlist(room.get("playlist", [])))

    elif msg_type == "participant-joined":
        who = msg.get("participant", {}).get("displayName", "someone")
        print(f"👋 {who} JOINED ({msg.get('participantCount', '?')} in room)")

    elif msg_type == "participant-left":
        print(f"🚶 {msg.get('participantId')} LEFT ({msg.get('participantCount', '?')} in room)")

    elif msg_type == "room-closed":
        print(f"🔒 ROOM CLOSED: {msg.get('message', '')}")

    elif msg_type == "room-settings-updated":
        settings = msg.get("settings", {})
        print(f"⚙️  SETTINGS: {settings.get('playbackMode')} / control: {settings.get('syncControl')}")

    elif msg_type == "room-playlist-updated":
        by = msg.get("addedBy") or msg.get("removedBy") or "?"
        print(f"🎵 PLAYLIST UPDATED by {by}")
        print(format_playlist(msg.get("playlist", [])))

    elif msg_type == "sync-playback-command":
        print(f"⏯️  SYNC {msg.get('action')} song={msg.get('songId')} "
              f"t={msg.get('currentTime')} playing={msg.get('isPlaying')} by {msg.get('controlledBy')}")

    elif msg_type == "chat-message":
        ts = format_timestamp(msg.get("timestamp", ""))
        print(f"💬 [{ts}] {msg.get('displayName', 'Unknown')}: {msg.get('message', '')}")

    elif msg_type in ("error", "join-error"):
        print(f"⚠️  {msg_type.upper()}: {msg.get('message', '')}")

    else:
        print(f"📨 UNKNOWN MESSAGE TYPE: {msg_type}")
        print(f"   {json.dumps(msg, indent=2, default=str)}")

    print("=" * 60)


def parse_command(line: str) -> dict | None:
    """Turn one input line into an outbound frame, or None if it is not understood."""
    if not line.startswith("/"):
        return {"type": "chat-message", "message": line}

    cmd, *args = line[1:].split()
    if cmd == "add" and args:
        title = " ".join(args[1:]) or args[0]
        return {"type": "add-to-room-playlist", "tracks": [{"id": args[0], "title": title}]}
    if cmd == "remove" and args:
        return {"type": "remove-from-room-playlist", "trackIds": args}
    if cmd == "mode" and len(args) == 1:
        return {"type": "update-room-settings", "settings": {"playbackMode": args[0]}}
    if cmd == "control" and len(args) == 1:
        return {"type": "update-room-settings", "settings": {"syncControl": args[0]}}
    if cmd == "sync" and args:
        frame = {"type": "sync-playback", "action": args[0], "isPlaying": args[0] != "pause"}
        if len(args) > 1:
            frame["songId"] = args[1]
        if len(args) > 2:
            try:
                frame["currentTime"] = float(args[2])
            except ValueError:
                return None
        return frame
    return None


async def receive_messages(websocket) -> None:
    """Task to continuously receive and print messages."""
    try:
        async for message in websocket:
            try:
                msg = json.loads(message)
                print_message(msg)
                print("\n[You] > ", end="", flush=True)
            except json.JSONDecodeError:
                print(f"\n⚠️  Received non-JSON message: {message}")
                print("\n[You] > ", end="", flush=True)
    except websockets.exceptions.ConnectionClosed as e:
        print(f"\n❌ Connection closed: {e.code} - {e.reason}")


async def send_messages(websocket) -> None:
    """Task to read user input and send frames."""
    loop = asyncio.get_running_loop()

    print("\n✅ Connected! Type a message and press Enter to send.")
    print("   Type 'quit' or 'exit' to disconnect.\n")

    while True:
        try:
            print("[You] > ", end="", flush=True)
            user_input = await loop.run_in_executor(None, sys.stdin.readline)
            user_input = user_input.strip()

            if not user_input:
                continue

            if user_input.lower() in ("quit", "exit"):
                print("👋 Disconnecting...")
                await websocket.close()
                break

            frame = parse_command(user_input)
            if frame is None:
                print("   ? unknown command, see the usage at the top of this file")
                continue
            await websocket.send(json.dumps(frame))
            print(f"   ✓ Sent: {frame['type']}")

        except websockets.exceptions.ConnectionClosed:
            print("\n❌ Connection was closed")
            break


async def main(server_url: str, room_code: str | None, display_name: str | None) -> None:
    """Connect, create or join a room, then relay stdin until the user quits."""
    ws_url = f"{server_url}/v1/ws"

    print(f"🔌 Connecting to: {ws_url}")
    print("-" * 60)

    try:
        async with websockets.connect(ws_url) as websocket:
            if room_code:
                hello = {"type": "join-room", "roomCode": room_code, "displayName": display_name}
            else:
                hello = {"type": "create-room", "displayName": display_name}
            await websocket.send(json.dumps(hello))

            receive_task = asyncio.create_task(receive_messages(websocket))
            send_task = asyncio.create_task(send_messages(websocket))

            # Wait for either task to complete (usually send_task when user quits)
            done, pending = await asyncio.wait(
                [receive_task, send_task],
                return_when=asyncio.FIRST_COMPLETED
            )

            for task in pending:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    except websockets.exceptions.InvalidURI as e:
        print(f"❌ Invalid URI: {e}")
        print("   Make sure the server URL starts with ws:// or wss://")
    except ConnectionRefusedError:
        print("❌ Connection refused. Is the server running?")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        print(f"Usage: python {sys.argv[0]} <server_url> [room_code] [display_name]")
        sys.exit(1)

    server_url = sys.argv[1].rstrip("/")
    room_code = sys.argv[2].upper() if len(sys.argv) > 2 else None
    display_name = sys.argv[3] if len(sys.argv) > 3 else None

    if not server_url.startswith(("ws://", "wss://")):
        print("⚠️  Warning: URL should start with ws:// or wss://")
        print(f"   Assuming ws:// prefix...")
        server_url = f"ws://{server_url}"

    try:
        asyncio.run(main(server_url, room_code, display_name))
    except KeyboardInterrupt:
        print("\n\n👋 Interrupted by user. Goodbye!")
        sys.exit(0)
