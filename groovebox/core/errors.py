"""Errors raised by the room coordinator.

All of them are recoverable: the event router reports them to the originating
connection as an ``error`` (or ``join-error``) event and keeps the socket open.
"""

from __future__ import annotations


class CoordinatorError(RuntimeError):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class RoomNotFound(CoordinatorError):
    def __init__(self, message: str = "Room not found") -> None:
        super().__init__(message)


class Unauthorized(CoordinatorError):
    pass


class NotAMember(CoordinatorError):
    def __init__(self, message: str = "Room not found or user not in room") -> None:
        super().__init__(message)


class AlreadyInRoom(CoordinatorError):
    def __init__(self, message: str = "Already in a room") -> None:
        super().__init__(message)
